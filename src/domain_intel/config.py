"""
Configuration dataclasses for the domain intelligence system.

This module defines all configuration structures used throughout the system,
including provider endpoints, credentials, key rotation, metadata mirrors,
and logging configuration, plus loading them from the environment.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


DEFAULT_MIRRORS = [
    "https://api.allorigins.win/raw?url={url}",
    "https://corsproxy.io/?{url}",
    "https://api.codetabs.com/v1/proxy?quest={url}",
]

DEFAULT_QUOTA_SIGNALS = [
    "exceeded your request quota",
    "insufficient credits",
    "request quota",
]


@dataclass
class ProviderEndpoints:
    """URL templates for every consumed provider."""

    whois_url: str = "https://whois-aoi.onrender.com/whois"
    reputation_url: str = "https://www.virustotal.com/api/v3/domains/{domain}"
    fraud_url: str = (
        "https://ipqualityscore.com/api/json/ip/{key}/{ip}"
        "?strictness=1&allow_public_access_points=true&lighter_penalties=true"
    )
    abuse_url: str = "https://api.abuseipdb.com/api/v2/check"
    dnsbl_url: str = "http://localhost:3001/api/dnsbl/check"


@dataclass
class ApiCredentials:
    """Provider credentials. Fraud keys form an ordered rotation pool."""

    reputation_api_key: Optional[str] = None
    abuse_api_key: Optional[str] = None
    fraud_api_keys: list[str] = field(default_factory=list)


@dataclass
class KeyRotationConfig:
    """Key pool health check and rotation settings."""

    probe_ip: str = "8.8.8.8"
    startup_wait_seconds: float = 3.0
    quota_signals: list[str] = field(default_factory=lambda: list(DEFAULT_QUOTA_SIGNALS))


@dataclass
class MirrorConfig:
    """Mirror chain used to fetch page markup."""

    mirrors: list[str] = field(default_factory=lambda: list(DEFAULT_MIRRORS))
    per_attempt_timeout: float = 3.0


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    endpoints: ProviderEndpoints = field(default_factory=ProviderEndpoints)
    credentials: ApiCredentials = field(default_factory=ApiCredentials)
    key_rotation: KeyRotationConfig = field(default_factory=KeyRotationConfig)
    mirrors: MirrorConfig = field(default_factory=MirrorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    provider_timeout: float = 8.0
    language: str = "en"  # 'de' or 'en'


def parse_key_list(env_val: Optional[str]) -> list[str]:
    """Split a comma/semicolon/whitespace separated key list, keeping order."""
    if not env_val:
        return []
    raw = [p.strip() for chunk in env_val.replace(";", ",").split(",") for p in chunk.split()]
    seen, out = set(), []
    for key in raw:
        if key and key not in seen:
            out.append(key)
            seen.add(key)
    return out


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def load_config_from_env(dotenv_path: Optional[str] = None) -> SystemConfig:
    """
    Build a SystemConfig from a .env file and the process environment.

    Args:
        dotenv_path: Optional explicit .env path; defaults to searching upwards
                     from the working directory

    Returns:
        SystemConfig with credentials and overrides applied
    """
    load_dotenv(dotenv_path)

    fraud_keys = parse_key_list(os.getenv("IPQS_API_KEYS"))
    for key in parse_key_list(os.getenv("IPQS_API_KEY")):
        if key not in fraud_keys:
            fraud_keys.append(key)

    credentials = ApiCredentials(
        reputation_api_key=os.getenv("VIRUSTOTAL_API_KEY") or None,
        abuse_api_key=os.getenv("ABUSEIPDB_API_KEY") or None,
        fraud_api_keys=fraud_keys,
    )

    endpoints = ProviderEndpoints()
    if os.getenv("DNSBL_URL"):
        endpoints.dnsbl_url = os.environ["DNSBL_URL"]
    if os.getenv("WHOIS_URL"):
        endpoints.whois_url = os.environ["WHOIS_URL"]

    language = (os.getenv("DOMAIN_INTEL_LANGUAGE", "en") or "en").lower()
    if language not in ("de", "en"):
        language = "en"

    return SystemConfig(
        endpoints=endpoints,
        credentials=credentials,
        logging=LoggingConfig(
            level=(os.getenv("DOMAIN_INTEL_LOG_LEVEL", "info") or "info").lower(),
        ),
        provider_timeout=_float_env("DOMAIN_INTEL_TIMEOUT", 8.0),
        language=language,
    )
