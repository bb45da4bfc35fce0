"""
Exception classes for the domain intelligence system.

All exceptions inherit from DomainIntelError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class DomainIntelError(Exception):
    """Base exception for all domain intelligence errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(DomainIntelError):
    """Raised when a provider credential or setting is missing."""

    pass


class InputValidationError(DomainIntelError):
    """Raised when a required parameter is missing or malformed."""

    pass


class UpstreamError(DomainIntelError):
    """Raised when a provider answers with a non-2xx status."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> None:
        super().__init__(code, message, details)
        self.status_code = status_code


class ProviderTimeoutError(DomainIntelError):
    """Raised when a single network attempt exceeds its time bound."""

    pass


class QuotaExceededError(DomainIntelError):
    """Raised when a provider signals that the current credential is out of quota."""

    pass


class ParseError(DomainIntelError):
    """Raised when a provider payload, date or structured-data block is malformed."""

    pass


class MirrorFetchError(DomainIntelError):
    """Raised when every mirror in a fallback chain failed."""

    def __init__(
        self,
        message: str,
        last_error: Optional[Exception] = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(
            code="mirrors_exhausted",
            message=message,
            details={"attempts": attempts},
        )
        self.last_error = last_error
        self.attempts = attempts

    @property
    def is_timeout(self) -> bool:
        """True if the last underlying failure was a timeout."""
        return isinstance(self.last_error, ProviderTimeoutError)
