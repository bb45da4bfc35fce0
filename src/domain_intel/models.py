"""
Data models for the domain intelligence system.

This module defines the result records emitted by a scan, the session-cached
IP intelligence record, and the entries of an API key pool.
"""

import time
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .enums import KeyStatus, RiskLevel
from .scoring import compute_age


PLACEHOLDER = "-"


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class IdSequence:
    """
    Monotonically increasing creation-time ids.

    Ids are millisecond timestamps; when two scans start within the same
    millisecond (or the clock goes backwards) the sequence keeps counting
    upwards from the last id it handed out.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None) -> None:
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._last = 0

    def next_block(self, size: int = 1) -> int:
        """Reserve `size` consecutive ids and return the first one."""
        base = max(self._clock(), self._last + 1)
        self._last = base + size - 1
        return base


@dataclass(frozen=True)
class ScanResult:
    """Normalized result of one domain scan."""

    id: int
    domain: str
    created: Optional[str] = None
    expires: Optional[str] = None
    registrar: str = PLACEHOLDER
    name_servers: tuple[str, ...] = ()
    dns_records: str = PLACEHOLDER
    abuse_score: int = 0
    is_vpn_proxy: bool = False
    ip_address: str = PLACEHOLDER
    country: str = PLACEHOLDER
    region: str = PLACEHOLDER
    city: str = PLACEHOLDER
    latitude: str = PLACEHOLDER
    longitude: str = PLACEHOLDER
    isp: str = PLACEHOLDER
    timestamp: str = field(default_factory=utc_timestamp)

    @property
    def domain_age(self) -> str:
        """Human-readable age computed from the creation date at read time."""
        return compute_age(self.created)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["name_servers"] = list(self.name_servers)
        data["domain_age"] = self.domain_age
        return data


@dataclass(frozen=True)
class ReputationResult:
    """Reputation provider attributes plus the derived risk level."""

    id: int
    domain: str
    risk_level: RiskLevel
    timestamp: str = field(default_factory=utc_timestamp)
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
    last_dns_records: list = field(default_factory=list)
    last_dns_records_date: Optional[str] = None
    last_https_certificate: Optional[dict] = None
    last_https_certificate_date: Optional[str] = None
    tags: list = field(default_factory=list)
    registrar: Optional[str] = None
    jarm: Optional[str] = None
    last_analysis_results: dict = field(default_factory=dict)
    malicious_score: int = 0
    suspicious_score: int = 0
    harmless_score: int = 0
    undetected_score: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["risk_level"] = self.risk_level.value
        return data


# Fields that describe the record rather than the page; never counted
# towards completeness.
METADATA_BOOKKEEPING_FIELDS = frozenset({
    "id", "domain", "timestamp", "json_ld", "completeness_score", "error",
})


@dataclass(frozen=True)
class MetadataResult:
    """Page metadata extracted from a domain's landing page."""

    id: int
    domain: str
    timestamp: str = field(default_factory=utc_timestamp)
    title: Optional[str] = None
    description: Optional[str] = None
    keywords: Optional[str] = None
    author: Optional[str] = None
    lang: Optional[str] = None
    publisher: Optional[str] = None
    type: Optional[str] = None
    image: Optional[str] = None
    image_alt: Optional[str] = None
    url: Optional[str] = None
    twitter_card: Optional[str] = None
    twitter_site: Optional[str] = None
    twitter_creator: Optional[str] = None
    date: Optional[str] = None
    modified_date: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[str] = None
    favicon: Optional[str] = None
    logo: Optional[str] = None
    robots: Optional[str] = None
    viewport: Optional[str] = None
    theme_color: Optional[str] = None
    charset: Optional[str] = None
    generator: Optional[str] = None
    rss_feed: Optional[str] = None
    atom_feed: Optional[str] = None
    schema_type: Optional[str] = None
    json_ld: tuple[Any, ...] = ()
    completeness_score: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def extracted_field_names(cls) -> list[str]:
        """Names of all fields that hold extracted page data."""
        return [f.name for f in fields(cls) if f.name not in METADATA_BOOKKEEPING_FIELDS]

    def filled_field_count(self) -> int:
        """Number of extracted fields that are non-empty."""
        return sum(1 for name in self.extracted_field_names() if getattr(self, name))

    def to_dict(self) -> dict:
        """Serialize, leaving out fields that were never populated."""
        data = asdict(self)
        data["json_ld"] = list(self.json_ld)
        return {
            key: value for key, value in data.items()
            if value not in (None, "", [])
        }


@dataclass(frozen=True)
class IpIntelligenceRecord:
    """Merged fraud, abuse and blacklist intelligence for one IP."""

    ip: str
    fraud_score: int = 0
    vpn: bool = False
    proxy: bool = False
    tor: bool = False
    country: str = PLACEHOLDER
    region: str = PLACEHOLDER
    city: str = PLACEHOLDER
    latitude: str = PLACEHOLDER
    longitude: str = PLACEHOLDER
    isp: str = PLACEHOLDER
    abuse_confidence_score: Optional[int] = None
    abuse_report_count: Optional[int] = None
    last_reported_at: Optional[str] = None
    blacklist_listed_count: int = 0
    blacklist_zones: tuple[str, ...] = ()
    abuse_score: int = 0
    sources: tuple[str, ...] = ()

    @property
    def is_anonymized(self) -> bool:
        """True if any VPN, proxy or Tor signal was reported."""
        return self.vpn or self.proxy or self.tor


@dataclass
class ApiKeyPoolEntry:
    """A single credential in a key pool."""

    key: str
    status: KeyStatus = KeyStatus.UNTESTED
