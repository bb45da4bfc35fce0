"""
IP Intelligence Resolver for the domain intelligence system.

For one IP this module queries, in order:
1. The IP-fraud provider (through the key rotation gateway)
2. The abuse-report provider
3. The DNS-blacklist provider, only when the abuse provider failed and no
   abuse score exists yet

and merges the answers into one IpIntelligenceRecord, memoized per IP for
the lifetime of the injected cache.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from .audit_logger import AuditLogger
from .config import ProviderEndpoints
from .enums import LogLevel
from .exceptions import ConfigurationError, DomainIntelError
from .key_rotation import KeyRotationGateway
from .models import PLACEHOLDER, IpIntelligenceRecord
from .provider_gateway import ProviderGateway
from .provider_records import AbuseReport, BlacklistReport, FraudReport


# Each listed blacklist zone adds this much to the estimated abuse score.
BLACKLIST_POINTS_PER_ZONE = 25
MAX_SCORE = 100
ABUSE_MAX_AGE_DAYS = 90


class IpIntelligenceCache:
    """Per-IP record cache scoped to one process/session."""

    def __init__(self) -> None:
        self._records: dict[str, IpIntelligenceRecord] = {}

    def get(self, ip: str) -> Optional[IpIntelligenceRecord]:
        return self._records.get(ip)

    def put(self, record: IpIntelligenceRecord) -> None:
        self._records[record.ip] = record

    def __contains__(self, ip: str) -> bool:
        return ip in self._records

    def __len__(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        self._records.clear()


@dataclass
class _IntelDraft:
    """Mutable accumulator used while one IP is being resolved."""

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
    blacklist_zones: list[str] = field(default_factory=list)
    abuse_score: int = 0
    sources: list[str] = field(default_factory=list)

    def raise_abuse_score(self, value: Optional[int]) -> None:
        """Scores only ever move up."""
        if value is not None:
            self.abuse_score = max(self.abuse_score, min(MAX_SCORE, max(0, value)))

    def to_record(self) -> IpIntelligenceRecord:
        return IpIntelligenceRecord(
            ip=self.ip,
            fraud_score=self.fraud_score,
            vpn=self.vpn,
            proxy=self.proxy,
            tor=self.tor,
            country=self.country,
            region=self.region,
            city=self.city,
            latitude=self.latitude,
            longitude=self.longitude,
            isp=self.isp,
            abuse_confidence_score=self.abuse_confidence_score,
            abuse_report_count=self.abuse_report_count,
            last_reported_at=self.last_reported_at,
            blacklist_listed_count=self.blacklist_listed_count,
            blacklist_zones=tuple(self.blacklist_zones),
            abuse_score=self.abuse_score,
            sources=tuple(self.sources),
        )


class IpIntelligenceResolver:
    """
    Merges fraud, abuse and blacklist intelligence for IP addresses.

    Every provider call is isolated: a failure is logged and the remaining
    providers still run and contribute their fields.
    """

    COMPONENT = "IpIntelligenceResolver"

    def __init__(
        self,
        gateway: ProviderGateway,
        endpoints: ProviderEndpoints,
        fraud_gateway: Optional[KeyRotationGateway] = None,
        abuse_api_key: Optional[str] = None,
        cache: Optional[IpIntelligenceCache] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            gateway: HTTP gateway for the abuse and blacklist providers
            endpoints: Provider URL configuration
            fraud_gateway: Key rotation gateway in front of the fraud provider
            abuse_api_key: Credential for the abuse-report provider
            cache: Injected per-IP cache (a fresh one if omitted)
            logger: Optional audit logger
        """
        self._gateway = gateway
        self._endpoints = endpoints
        self._fraud_gateway = fraud_gateway
        self._abuse_api_key = abuse_api_key
        self._cache = cache if cache is not None else IpIntelligenceCache()
        self._logger = logger
        self._in_flight: dict[str, asyncio.Task] = {}

    @property
    def cache(self) -> IpIntelligenceCache:
        return self._cache

    async def resolve(self, ip: str) -> IpIntelligenceRecord:
        """
        Resolve intelligence for `ip`, at most once per cache lifetime.

        Concurrent calls for the same IP share one in-flight resolution.
        """
        cached = self._cache.get(ip)
        if cached is not None:
            return cached

        loop = asyncio.get_running_loop()
        task = self._in_flight.get(ip)
        if task is None or task.get_loop() is not loop:
            task = loop.create_task(self._resolve_uncached(ip))
            self._in_flight[ip] = task

        try:
            record = await task
        finally:
            if self._in_flight.get(ip) is task and task.done():
                del self._in_flight[ip]

        self._cache.put(record)
        return record

    async def _resolve_uncached(self, ip: str) -> IpIntelligenceRecord:
        draft = _IntelDraft(ip=ip)
        self._log(LogLevel.INFO, "Resolving IP intelligence", {"ip": ip})

        await self._apply_fraud(draft)
        abuse_ok = await self._apply_abuse(draft)
        if not abuse_ok and draft.abuse_score == 0:
            await self._apply_blacklist(draft)

        record = draft.to_record()
        self._log(LogLevel.INFO, "IP intelligence resolved", {
            "ip": ip,
            "abuse_score": record.abuse_score,
            "fraud_score": record.fraud_score,
            "anonymized": record.is_anonymized,
            "sources": list(record.sources),
        })
        return record

    async def _apply_fraud(self, draft: _IntelDraft) -> bool:
        if self._fraud_gateway is None:
            self._log(LogLevel.WARN, "Fraud provider skipped", {
                "reason": "no fraud API keys configured",
            })
            return False

        try:
            response = await self._fraud_gateway.request(ip=draft.ip)
            if not response.ok:
                self._log(LogLevel.WARN, "Fraud provider failed", {
                    "status_code": response.status_code,
                    "error": response.error.message if response.error else None,
                    "body": response.text[:200],
                })
                return False
            report = FraudReport.from_payload(response.json())
        except DomainIntelError as e:
            self._log(LogLevel.WARN, "Fraud provider failed", {"error": e.message, "code": e.code})
            return False

        draft.fraud_score = report.fraud_score
        draft.raise_abuse_score(report.fraud_score)
        draft.vpn = report.vpn
        draft.proxy = report.proxy
        draft.tor = report.tor
        for name in ("country", "region", "city", "latitude", "longitude", "isp"):
            value = getattr(report, name)
            if value is not None:
                setattr(draft, name, value)
        draft.sources.append("fraud")
        return True

    async def _apply_abuse(self, draft: _IntelDraft) -> bool:
        try:
            if not self._abuse_api_key:
                raise ConfigurationError(
                    code="missing_credentials",
                    message="ABUSEIPDB_API_KEY not set",
                )
            response = await self._gateway.get(
                self._endpoints.abuse_url,
                params={"ipAddress": draft.ip, "maxAgeInDays": ABUSE_MAX_AGE_DAYS},
                headers={"Key": self._abuse_api_key, "Accept": "application/json"},
            )
            response.raise_for_status()
            report = AbuseReport.from_payload(response.json())
        except DomainIntelError as e:
            self._log(LogLevel.WARN, "Abuse provider failed", {"error": e.message, "code": e.code})
            return False

        draft.abuse_confidence_score = report.abuse_confidence_score
        draft.abuse_report_count = report.total_reports
        draft.last_reported_at = report.last_reported_at
        draft.raise_abuse_score(report.abuse_confidence_score)
        draft.sources.append("abuse")
        return True

    async def _apply_blacklist(self, draft: _IntelDraft) -> bool:
        try:
            response = await self._gateway.get(
                self._endpoints.dnsbl_url,
                params={"ip": draft.ip},
            )
            response.raise_for_status()
            report = BlacklistReport.from_payload(response.json())
        except DomainIntelError as e:
            self._log(LogLevel.WARN, "Blacklist provider failed", {"error": e.message, "code": e.code})
            return False

        draft.blacklist_listed_count = report.listed_count
        draft.blacklist_zones = report.listed_zones
        estimate = min(MAX_SCORE, report.listed_count * BLACKLIST_POINTS_PER_ZONE)
        if estimate > 0:
            draft.raise_abuse_score(estimate)
            self._log(LogLevel.INFO, "Estimated abuse score from blacklists", {
                "estimate": estimate,
                "listed_count": report.listed_count,
            })
        draft.sources.append("dnsbl")
        return True

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, self.COMPONENT, message, data)
