"""
Enumeration types for the domain intelligence system.

These enums provide type-safe constants for risk levels, key health,
error codes, and configuration options throughout the system.
"""

from enum import Enum


class RiskLevel(Enum):
    """Risk level derived from reputation analysis counters."""

    CLEAN = "Clean"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class KeyStatus(Enum):
    """Health status of a pooled API key."""

    UNTESTED = "untested"
    LIVE = "live"
    EXHAUSTED = "exhausted"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class ProviderErrorCode(Enum):
    """Error codes for provider gateway operations."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    PARSE_ERROR = "parse_error"


class DomainValidationErrorCode(Enum):
    """Error codes for domain input validation failures."""

    FORBIDDEN_CHARS = "forbidden_chars"
    IDNA_ERROR = "idna_error"
    EMPTY_INPUT = "empty_input"
    MISSING_DOT = "missing_dot"
