"""
Domain Intel - multi-source domain and IP threat intelligence lookup.

This package answers "is this domain risky?" by querying WHOIS, a reputation
provider, IP-fraud, abuse-report and DNS-blacklist providers and the domain's
own landing page, and merging the answers into normalized records.
"""

__version__ = "0.1.0"
__author__ = "Domain Intel Team"

from domain_intel.exceptions import (
    DomainIntelError,
    ConfigurationError,
    InputValidationError,
    UpstreamError,
    ProviderTimeoutError,
    QuotaExceededError,
    ParseError,
    MirrorFetchError,
)
from domain_intel.enums import (
    RiskLevel,
    KeyStatus,
    LogLevel,
    ProviderErrorCode,
    DomainValidationErrorCode,
)
from domain_intel.models import (
    IdSequence,
    ScanResult,
    ReputationResult,
    MetadataResult,
    IpIntelligenceRecord,
    ApiKeyPoolEntry,
)
from domain_intel.config import (
    ProviderEndpoints,
    ApiCredentials,
    KeyRotationConfig,
    MirrorConfig,
    LoggingConfig,
    SystemConfig,
    load_config_from_env,
)
from domain_intel.scoring import derive_risk_level, compute_age
from domain_intel.audit_logger import AuditLogger, LogEntry
from domain_intel.domain_validator import DomainValidator, DomainValidationResult
from domain_intel.provider_gateway import ProviderGateway, ProviderResponse, ProviderError
from domain_intel.key_rotation import KeyPool, KeyRotationGateway
from domain_intel.mirror_fetcher import MirrorFetcher, fetch_via_mirrors
from domain_intel.metadata_extractor import MetadataExtractor, FIELD_RULES, extract
from domain_intel.ip_intelligence import IpIntelligenceCache, IpIntelligenceResolver
from domain_intel.orchestrator import DomainAnalysisOrchestrator, ScanOutcome
from domain_intel.i18n import get_message, SUPPORTED_LANGUAGES, DEFAULT_LANGUAGE
from domain_intel.proxy_server import create_app
from domain_intel.cli import main as cli_main

__all__ = [
    "__version__",
    # Exceptions
    "DomainIntelError",
    "ConfigurationError",
    "InputValidationError",
    "UpstreamError",
    "ProviderTimeoutError",
    "QuotaExceededError",
    "ParseError",
    "MirrorFetchError",
    # Enums
    "RiskLevel",
    "KeyStatus",
    "LogLevel",
    "ProviderErrorCode",
    "DomainValidationErrorCode",
    # Models
    "IdSequence",
    "ScanResult",
    "ReputationResult",
    "MetadataResult",
    "IpIntelligenceRecord",
    "ApiKeyPoolEntry",
    # Config
    "ProviderEndpoints",
    "ApiCredentials",
    "KeyRotationConfig",
    "MirrorConfig",
    "LoggingConfig",
    "SystemConfig",
    "load_config_from_env",
    # Scoring
    "derive_risk_level",
    "compute_age",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Validation
    "DomainValidator",
    "DomainValidationResult",
    # Gateways
    "ProviderGateway",
    "ProviderResponse",
    "ProviderError",
    "KeyPool",
    "KeyRotationGateway",
    # Metadata
    "MirrorFetcher",
    "fetch_via_mirrors",
    "MetadataExtractor",
    "FIELD_RULES",
    "extract",
    # IP intelligence
    "IpIntelligenceCache",
    "IpIntelligenceResolver",
    # Orchestrator
    "DomainAnalysisOrchestrator",
    "ScanOutcome",
    # I18n
    "get_message",
    "SUPPORTED_LANGUAGES",
    "DEFAULT_LANGUAGE",
    # Proxy / CLI
    "create_app",
    "cli_main",
]
