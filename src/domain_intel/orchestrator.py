"""
Domain Analysis Orchestrator for the domain intelligence system.

This module coordinates one scan of a domain:
- Input validation before any network call
- Reputation lookup, then WHOIS, seeded by the reputation attributes
- IP intelligence for the resolved address (fraud, abuse, blacklists)
- Risk level and record assembly
- Page metadata, fetched through mirrors on a detached task
"""

import asyncio
import ipaddress
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import quote

import httpx

from .audit_logger import AuditLogger
from .config import SystemConfig
from .domain_validator import DomainValidator
from .enums import LogLevel
from .exceptions import ConfigurationError, DomainIntelError, MirrorFetchError
from .i18n import get_message
from .ip_intelligence import IpIntelligenceCache, IpIntelligenceResolver
from .key_rotation import KeyPool, KeyRotationGateway
from .metadata_extractor import MetadataExtractor
from .mirror_fetcher import MirrorFetcher
from .models import (
    PLACEHOLDER,
    IdSequence,
    IpIntelligenceRecord,
    MetadataResult,
    ReputationResult,
    ScanResult,
)
from .provider_gateway import ProviderGateway
from .provider_records import ReputationAttributes, WhoisRecord
from .scoring import derive_risk_level


def is_ip_literal(value: str) -> bool:
    """True for a syntactically valid IPv4 or IPv6 address."""
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


@dataclass
class ScanOutcome:
    """Everything one scan produced."""

    domain: str
    scan: Optional[ScanResult]
    reputation: Optional[ReputationResult]
    metadata: "asyncio.Task[MetadataResult]"
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    async def wait_metadata(self) -> MetadataResult:
        return await self.metadata


class DomainAnalysisOrchestrator:
    """
    Main orchestrator for domain scans.

    The orchestrator keeps no per-scan state between calls; it may be
    invoked again as soon as a previous scan returned or failed. Key pool
    and IP cache are injected so that they can outlive one orchestrator.
    """

    COMPONENT = "DomainAnalysisOrchestrator"

    def __init__(
        self,
        config: SystemConfig,
        gateway: Optional[ProviderGateway] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        key_pool: Optional[KeyPool] = None,
        ip_cache: Optional[IpIntelligenceCache] = None,
        id_sequence: Optional[IdSequence] = None,
        logger: Optional[AuditLogger] = None,
        on_scan: Optional[Callable[[ScanResult], None]] = None,
        on_reputation: Optional[Callable[[ReputationResult], None]] = None,
        on_metadata: Optional[Callable[[MetadataResult], None]] = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            config: System configuration
            gateway: Optional shared HTTP gateway (built from config if omitted)
            transport: Optional httpx transport for a gateway built here
            key_pool: Optional shared fraud key pool
            ip_cache: Optional shared per-IP intelligence cache
            id_sequence: Optional id source
            logger: Optional audit logger
            on_scan: Called with the ScanResult once it is assembled
            on_reputation: Called with the ReputationResult once it is assembled
            on_metadata: Called with the MetadataResult when the detached task ends
        """
        self._config = config
        self._logger = logger
        self._owns_gateway = gateway is None
        self._gateway = gateway or ProviderGateway(
            timeout=config.provider_timeout,
            transport=transport,
        )
        self._validator = DomainValidator()
        self._ids = id_sequence or IdSequence()
        self._on_scan = on_scan
        self._on_reputation = on_reputation
        self._on_metadata = on_metadata

        if key_pool is None:
            key_pool = KeyPool(config.credentials.fraud_api_keys)
        self._key_pool = key_pool
        self._fraud_gateway = None
        if len(key_pool):
            self._fraud_gateway = KeyRotationGateway(
                gateway=self._gateway,
                pool=key_pool,
                url_template=config.endpoints.fraud_url,
                probe_params={"ip": config.key_rotation.probe_ip},
                quota_signals=config.key_rotation.quota_signals,
                startup_wait_seconds=config.key_rotation.startup_wait_seconds,
                logger=logger,
            )

        self._resolver = IpIntelligenceResolver(
            gateway=self._gateway,
            endpoints=config.endpoints,
            fraud_gateway=self._fraud_gateway,
            abuse_api_key=config.credentials.abuse_api_key,
            cache=ip_cache,
            logger=logger,
        )
        self._mirror_fetcher = MirrorFetcher(
            gateway=self._gateway,
            mirrors=config.mirrors.mirrors,
            per_attempt_timeout=config.mirrors.per_attempt_timeout,
            logger=logger,
        )
        self._extractor = MetadataExtractor(logger=logger)
        self._metadata_tasks: set[asyncio.Task] = set()

    async def __aenter__(self) -> "DomainAnalysisOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    @property
    def config(self) -> SystemConfig:
        return self._config

    @property
    def key_pool(self) -> KeyPool:
        return self._key_pool

    @property
    def fraud_gateway(self) -> Optional[KeyRotationGateway]:
        return self._fraud_gateway

    @property
    def resolver(self) -> IpIntelligenceResolver:
        return self._resolver

    async def analyze(self, raw_domain: str) -> ScanOutcome:
        """
        Scan one domain.

        Args:
            raw_domain: Domain as typed by the user

        Returns:
            ScanOutcome; on a main-path failure `error` is set and the
            metadata task still runs

        Raises:
            InputValidationError: If the input is empty or malformed
        """
        domain = self._validator.validate(raw_domain).raise_if_invalid()
        base_id = self._ids.next_block(3)
        language = self._config.language

        self._log_info(f"Starting scan for domain: {domain}", {"domain": domain, "id": base_id})
        metadata_task = self._start_metadata(domain, base_id + 1)

        try:
            scan, reputation = await self._run_main_path(domain, base_id)
        except Exception as e:
            message = e.message if isinstance(e, DomainIntelError) else str(e)
            error = get_message("scan.failed", language, error=message)
            if self._logger:
                self._logger.log_error(self.COMPONENT, "Scan Failed", error=e, additional_data={"domain": domain})
            return ScanOutcome(domain=domain, scan=None, reputation=None, metadata=metadata_task, error=error)

        self._log_info("Scan Complete", {
            "domain": domain,
            "risk_level": reputation.risk_level.value,
            "abuse_score": scan.abuse_score,
        })
        return ScanOutcome(domain=domain, scan=scan, reputation=reputation, metadata=metadata_task)

    async def _run_main_path(self, domain: str, base_id: int) -> tuple[ScanResult, ReputationResult]:
        attributes = await self._fetch_reputation(domain)

        created = attributes.creation_date
        expires = attributes.last_modification_date
        registrar = attributes.registrar

        whois = await self._fetch_whois(domain)
        if whois is not None:
            created = whois.created or created
            expires = whois.expires or expires
            registrar = whois.registrar or registrar

        ip = attributes.resolved_address() or PLACEHOLDER
        intel: Optional[IpIntelligenceRecord] = None
        if is_ip_literal(ip):
            intel = await self._resolver.resolve(ip)
        elif ip != PLACEHOLDER:
            self._log_warn("Resolved address is not an IP literal", {"value": ip})

        scan = self._build_scan(domain, base_id, created, expires, registrar, attributes, ip, intel)
        if self._on_scan:
            self._on_scan(scan)

        reputation = self._build_reputation(domain, base_id + 2, attributes)
        if self._on_reputation:
            self._on_reputation(reputation)

        return scan, reputation

    async def _fetch_reputation(self, domain: str) -> ReputationAttributes:
        """Reputation attributes, or an empty bag when the lookup fails."""
        try:
            api_key = self._config.credentials.reputation_api_key
            if not api_key:
                raise ConfigurationError(
                    code="missing_credentials",
                    message="VIRUSTOTAL_API_KEY not set",
                )
            url = self._config.endpoints.reputation_url.format(domain=quote(domain, safe=""))
            response = await self._gateway.get(url, headers={"x-apikey": api_key})
            response.raise_for_status()
            return ReputationAttributes.from_payload(response.json())
        except DomainIntelError as e:
            self._log_warn("Reputation lookup failed", {"domain": domain, "error": e.message, "code": e.code})
            return ReputationAttributes()

    async def _fetch_whois(self, domain: str) -> Optional[WhoisRecord]:
        try:
            response = await self._gateway.get(
                self._config.endpoints.whois_url,
                params={"domain": domain},
            )
            response.raise_for_status()
            return WhoisRecord.from_payload(response.json())
        except DomainIntelError as e:
            self._log_warn("WHOIS lookup failed", {"domain": domain, "error": e.message, "code": e.code})
            return None

    def _build_scan(
        self,
        domain: str,
        scan_id: int,
        created: Optional[str],
        expires: Optional[str],
        registrar: Optional[str],
        attributes: ReputationAttributes,
        ip: str,
        intel: Optional[IpIntelligenceRecord],
    ) -> ScanResult:
        location = {}
        if intel is not None:
            location = {
                "abuse_score": intel.abuse_score,
                "is_vpn_proxy": intel.is_anonymized,
                "country": intel.country,
                "region": intel.region,
                "city": intel.city,
                "latitude": intel.latitude,
                "longitude": intel.longitude,
                "isp": intel.isp,
            }
        return ScanResult(
            id=scan_id,
            domain=domain,
            created=created,
            expires=expires,
            registrar=registrar or PLACEHOLDER,
            name_servers=tuple(attributes.name_servers()),
            dns_records=attributes.flattened_dns_records() or PLACEHOLDER,
            ip_address=ip,
            **location,
        )

    def _build_reputation(
        self,
        domain: str,
        reputation_id: int,
        attributes: ReputationAttributes,
    ) -> ReputationResult:
        return ReputationResult(
            id=reputation_id,
            domain=domain,
            risk_level=derive_risk_level(attributes.malicious, attributes.suspicious),
            reputation=attributes.reputation,
            last_analysis_stats=attributes.last_analysis_stats,
            total_votes=attributes.total_votes,
            categories=attributes.categories,
            popularity_ranks=attributes.popularity_ranks,
            whois=attributes.whois,
            whois_date=attributes.whois_date,
            creation_date=attributes.creation_date,
            last_update_date=attributes.last_update_date,
            last_modification_date=attributes.last_modification_date,
            last_analysis_date=attributes.last_analysis_date,
            last_dns_records=attributes.last_dns_records_raw,
            last_dns_records_date=attributes.last_dns_records_date,
            last_https_certificate=attributes.last_https_certificate,
            last_https_certificate_date=attributes.last_https_certificate_date,
            tags=attributes.tags,
            registrar=attributes.registrar,
            jarm=attributes.jarm,
            last_analysis_results=attributes.last_analysis_results,
            malicious_score=attributes.malicious,
            suspicious_score=attributes.suspicious,
            harmless_score=attributes.stat("harmless"),
            undetected_score=attributes.stat("undetected"),
        )

    def _start_metadata(self, domain: str, result_id: int) -> "asyncio.Task[MetadataResult]":
        task = asyncio.get_running_loop().create_task(self._collect_metadata(domain, result_id))
        self._metadata_tasks.add(task)
        task.add_done_callback(self._metadata_tasks.discard)
        return task

    async def _collect_metadata(self, domain: str, result_id: int) -> MetadataResult:
        try:
            html = await self._mirror_fetcher.fetch(f"https://{domain}")
        except MirrorFetchError as e:
            if e.is_timeout:
                message = get_message("metadata.timeout", self._config.language)
            elif e.last_error is not None and e.last_error.message:
                message = e.last_error.message
            else:
                message = get_message("metadata.failed", self._config.language)
            self._log_warn("Metadata fetch failed", {"domain": domain, "error": message, "attempts": e.attempts})
            result = MetadataResult(id=result_id, domain=domain, error=message)
        else:
            try:
                result = self._extractor.extract(html, domain, result_id)
            except Exception as e:
                if self._logger:
                    self._logger.log_error(
                        self.COMPONENT,
                        "Metadata extraction failed",
                        error=e,
                        additional_data={"domain": domain},
                    )
                message = get_message("metadata.failed", self._config.language)
                result = MetadataResult(id=result_id, domain=domain, error=message)

        if self._on_metadata:
            self._on_metadata(result)
        return result

    async def aclose(self) -> None:
        """Wait for outstanding metadata tasks, then close an owned gateway."""
        if self._metadata_tasks:
            await asyncio.gather(*self._metadata_tasks, return_exceptions=True)
        if self._owns_gateway:
            await self._gateway.close()

    def _log_info(self, message: str, data: dict) -> None:
        """Log an info message if logger is available."""
        if self._logger:
            self._logger.log(LogLevel.INFO, self.COMPONENT, message, data)

    def _log_warn(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.WARN, self.COMPONENT, message, data)
