"""
Provider response records for the domain intelligence system.

Each provider's JSON payload is validated once, at the boundary, into an
explicit optional-field record with defined coercion rules:
- numbers: numeric or absent, with a per-field default
- flags: truthiness, absent means False
- text: non-empty string (numbers are stringified), otherwise None

Only the fields consumed downstream are extracted; everything else is ignored.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .exceptions import ParseError


def _require_mapping(payload: Any, provider: str) -> dict:
    if not isinstance(payload, dict):
        raise ParseError(
            code="invalid_payload",
            message=f"{provider} payload is not a JSON object",
            details={"provider": provider, "type": type(payload).__name__},
        )
    return payload


def as_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    """Finite numeric values become int; anything else (NaN, Infinity included) yields `default`."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and not math.isfinite(value):
        return default
    return int(value)


def as_text(value: Any) -> Optional[str]:
    """Non-empty strings pass through (stripped); finite numbers are stringified."""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def first_text(payload: dict, *names: str) -> Optional[str]:
    """Return the first present, non-empty text value among `names`."""
    for name in names:
        text = as_text(payload.get(name))
        if text is not None:
            return text
    return None


def as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def epoch_to_iso(value: Any) -> Optional[str]:
    """Convert epoch seconds to an ISO-8601 UTC string; falsy input yields None."""
    seconds = as_int(value, default=None)
    if not seconds:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return None


@dataclass
class DnsRecord:
    """A single DNS record reported by the reputation provider."""

    type: str
    value: str


@dataclass
class ReputationAttributes:
    """Attribute bag returned by the reputation provider."""

    reputation: int = 0
    last_analysis_stats: dict = field(default_factory=dict)
    total_votes: dict = field(default_factory=dict)
    categories: dict = field(default_factory=dict)
    popularity_ranks: dict = field(default_factory=dict)
    whois: Optional[str] = None
    whois_date: Optional[str] = None
    creation_date: Optional[str] = None
    last_update_date: Optional[str] = None
    last_modification_date: Optional[str] = None
    last_analysis_date: Optional[str] = None
    last_dns_records: list[DnsRecord] = field(default_factory=list)
    last_dns_records_raw: list = field(default_factory=list)
    last_dns_records_date: Optional[str] = None
    last_https_certificate: Optional[dict] = None
    last_https_certificate_date: Optional[str] = None
    tags: list = field(default_factory=list)
    registrar: Optional[str] = None
    jarm: Optional[str] = None
    last_analysis_results: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "ReputationAttributes":
        """
        Parse either the full provider envelope (`data.attributes`) or the bare bag.

        Raises:
            ParseError: If the payload is not a JSON object
        """
        body = _require_mapping(payload, "reputation")
        data = body.get("data")
        if isinstance(data, dict) and isinstance(data.get("attributes"), dict):
            attrs = data["attributes"]
        else:
            attrs = body

        raw_records = as_list(attrs.get("last_dns_records"))
        records = []
        for record in raw_records:
            if isinstance(record, dict):
                record_type = as_text(record.get("type"))
                value = as_text(record.get("value"))
                if record_type and value:
                    records.append(DnsRecord(type=record_type, value=value))

        certificate = attrs.get("last_https_certificate")

        return cls(
            reputation=as_int(attrs.get("reputation")),
            last_analysis_stats=as_dict(attrs.get("last_analysis_stats")),
            total_votes=as_dict(attrs.get("total_votes")),
            categories=as_dict(attrs.get("categories")),
            popularity_ranks=as_dict(attrs.get("popularity_ranks")),
            whois=as_text(attrs.get("whois")),
            whois_date=epoch_to_iso(attrs.get("whois_date")),
            creation_date=epoch_to_iso(attrs.get("creation_date")),
            last_update_date=epoch_to_iso(attrs.get("last_update_date")),
            last_modification_date=epoch_to_iso(attrs.get("last_modification_date")),
            last_analysis_date=epoch_to_iso(attrs.get("last_analysis_date")),
            last_dns_records=records,
            last_dns_records_raw=raw_records,
            last_dns_records_date=epoch_to_iso(attrs.get("last_dns_records_date")),
            last_https_certificate=certificate if isinstance(certificate, dict) else None,
            last_https_certificate_date=epoch_to_iso(attrs.get("last_https_certificate_date")),
            tags=as_list(attrs.get("tags")),
            registrar=as_text(attrs.get("registrar")),
            jarm=as_text(attrs.get("jarm")),
            last_analysis_results=as_dict(attrs.get("last_analysis_results")),
        )

    def stat(self, name: str) -> int:
        return as_int(self.last_analysis_stats.get(name))

    @property
    def malicious(self) -> int:
        return self.stat("malicious")

    @property
    def suspicious(self) -> int:
        return self.stat("suspicious")

    def name_servers(self) -> list[str]:
        return [r.value for r in self.last_dns_records if r.type == "NS"]

    def resolved_address(self) -> Optional[str]:
        """First A record, else first AAAA record."""
        for wanted in ("A", "AAAA"):
            for record in self.last_dns_records:
                if record.type == wanted:
                    return record.value
        return None

    def flattened_dns_records(self) -> Optional[str]:
        if not self.last_dns_records:
            return None
        return "; ".join(f"{r.type}: {r.value}" for r in self.last_dns_records)


@dataclass
class WhoisRecord:
    """Fields consumed from the WHOIS lookup."""

    created: Optional[str] = None
    expires: Optional[str] = None
    registrar: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "WhoisRecord":
        body = _require_mapping(payload, "whois")
        return cls(
            created=first_text(body, "created", "creation_date"),
            expires=first_text(body, "expires", "expiry_date"),
            registrar=first_text(body, "registrar"),
        )


@dataclass
class FraudReport:
    """IP-fraud provider answer; location fields are None when absent."""

    fraud_score: int = 0
    vpn: bool = False
    proxy: bool = False
    tor: bool = False
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    isp: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "FraudReport":
        body = _require_mapping(payload, "fraud")
        return cls(
            fraud_score=as_int(body.get("fraud_score")),
            vpn=bool(body.get("vpn")),
            proxy=bool(body.get("proxy")),
            tor=bool(body.get("tor")),
            country=first_text(body, "country_code", "country"),
            region=first_text(body, "region"),
            city=first_text(body, "city"),
            latitude=as_text(body.get("latitude")),
            longitude=as_text(body.get("longitude")),
            isp=first_text(body, "ISP", "isp", "organization"),
        )


@dataclass
class AbuseReport:
    """Abuse-report provider answer."""

    abuse_confidence_score: Optional[int] = None
    total_reports: Optional[int] = None
    last_reported_at: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "AbuseReport":
        body = _require_mapping(payload, "abuse")
        data = as_dict(body.get("data"))
        return cls(
            abuse_confidence_score=as_int(data.get("abuseConfidenceScore"), default=None),
            total_reports=as_int(data.get("totalReports"), default=None),
            last_reported_at=as_text(data.get("lastReportedAt")),
        )


@dataclass
class BlacklistZone:
    zone: str
    listed: bool
    text: Optional[str] = None


@dataclass
class BlacklistReport:
    """DNS-blacklist provider answer."""

    ip: Optional[str] = None
    results: list[BlacklistZone] = field(default_factory=list)
    listed_count: int = 0

    @classmethod
    def from_payload(cls, payload: Any) -> "BlacklistReport":
        body = _require_mapping(payload, "dnsbl")
        zones = []
        for item in as_list(body.get("results")):
            if isinstance(item, dict) and as_text(item.get("zone")):
                zones.append(BlacklistZone(
                    zone=as_text(item.get("zone")),
                    listed=bool(item.get("listed")),
                    text=as_text(item.get("text")),
                ))
        listed_count = as_int(body.get("listedCount"), default=None)
        if listed_count is None:
            listed_count = sum(1 for z in zones if z.listed)
        return cls(ip=as_text(body.get("ip")), results=zones, listed_count=listed_count)

    @property
    def listed_zones(self) -> list[str]:
        return [z.zone for z in self.results if z.listed]
