"""
Scoring helpers for the domain intelligence system.

This module implements the pure derivations shared by the orchestrator and
the result records:
- Risk level from reputation analysis counters
- Human-readable domain age from a creation date
"""

from datetime import datetime, timezone
from typing import Optional

from .enums import RiskLevel
from .exceptions import ParseError


# Strict thresholds, evaluated in order; the first match wins.
HIGH_MALICIOUS_THRESHOLD = 5
MEDIUM_SUSPICIOUS_THRESHOLD = 3

# Calendar approximation used for the age string.
DAYS_PER_YEAR = 365
DAYS_PER_MONTH = 30
SECONDS_PER_DAY = 86400

# Date layouts seen in WHOIS payloads besides ISO-8601.
DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%Y.%m.%d",
    "%Y/%m/%d",
    "%d-%b-%Y",
    "%d.%m.%Y",
    "%m/%d/%Y, %I:%M:%S %p",
    "%a, %d %b %Y %H:%M:%S %Z",
)


def derive_risk_level(malicious: int, suspicious: int) -> RiskLevel:
    """
    Derive a risk level from malicious/suspicious engine counts.

    malicious > 5 -> High; malicious > 0 or suspicious > 3 -> Medium;
    suspicious > 0 -> Low; otherwise Clean.
    """
    if malicious > HIGH_MALICIOUS_THRESHOLD:
        return RiskLevel.HIGH
    if malicious > 0 or suspicious > MEDIUM_SUSPICIOUS_THRESHOLD:
        return RiskLevel.MEDIUM
    if suspicious > 0:
        return RiskLevel.LOW
    return RiskLevel.CLEAN


def parse_date(value: str) -> datetime:
    """
    Parse a date string into a timezone-aware datetime.

    Naive values are taken as UTC.

    Raises:
        ParseError: If no known layout matches
    """
    text = value.strip()
    if not text:
        raise ParseError(code="empty_date", message="Date string is empty")

    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        parsed = None
        for layout in DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, layout)
                break
            except ValueError:
                continue
        if parsed is None:
            raise ParseError(
                code="unparseable_date",
                message=f"Unrecognized date format: {value}",
                details={"value": value},
            )

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''}"


def compute_age(created: Optional[str], now: Optional[datetime] = None) -> str:
    """
    Express the time elapsed since `created` as "Y years M months D days".

    Zero components are omitted; "Less than 1 day" when all are zero.
    Missing dates yield "-" and unparseable dates are returned unchanged.
    """
    if not created or created == "-":
        return "-"
    try:
        created_at = parse_date(created)
    except ParseError:
        return created

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    elapsed = abs((now - created_at).total_seconds())
    total_days = int(elapsed // SECONDS_PER_DAY)
    years = total_days // DAYS_PER_YEAR
    months = (total_days % DAYS_PER_YEAR) // DAYS_PER_MONTH
    days = (total_days % DAYS_PER_YEAR) % DAYS_PER_MONTH

    parts = []
    if years > 0:
        parts.append(_plural(years, "year"))
    if months > 0:
        parts.append(_plural(months, "month"))
    if days > 0:
        parts.append(_plural(days, "day"))
    return " ".join(parts) if parts else "Less than 1 day"
