"""
Domain input validation for the domain intelligence system.

Trims user input, rejects forbidden characters before any network call is
made, and converts internationalized names to their ASCII (IDNA) form so
every provider receives the same canonical domain.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

import idna

from .enums import DomainValidationErrorCode
from .exceptions import InputValidationError


# Control characters, whitespace and URL/shell punctuation never occur in a
# host name.
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'
    r'\s'
    r'!@#$%^&*()+=\[\]{}|\\:;"\'<>,?/`~]'
)


@dataclass
class DomainValidationResult:
    """Outcome of validating one raw domain string."""

    valid: bool
    domain: Optional[str] = None
    error_code: Optional[DomainValidationErrorCode] = None
    message: Optional[str] = None
    details: dict = field(default_factory=dict)

    def raise_if_invalid(self) -> str:
        """
        Return the canonical domain or raise.

        Raises:
            InputValidationError: If validation failed
        """
        if not self.valid:
            raise InputValidationError(
                code=self.error_code.value,
                message=self.message,
                details=self.details,
            )
        return self.domain


class DomainValidator:
    """Validates and normalizes domains typed by a user."""

    def __init__(self, require_dot: bool = True) -> None:
        """
        Args:
            require_dot: Reject single-label names such as "localhost"
        """
        self._require_dot = require_dot

    def validate(self, raw_domain: Optional[str]) -> DomainValidationResult:
        if not raw_domain or not raw_domain.strip():
            return DomainValidationResult(
                valid=False,
                error_code=DomainValidationErrorCode.EMPTY_INPUT,
                message="Domain input is empty",
                details={"raw_input": raw_domain},
            )

        domain = raw_domain.strip().rstrip(".")

        forbidden = FORBIDDEN_CHARS_PATTERN.findall(domain)
        if forbidden:
            return DomainValidationResult(
                valid=False,
                error_code=DomainValidationErrorCode.FORBIDDEN_CHARS,
                message="Domain contains forbidden characters",
                details={"raw_input": raw_domain, "forbidden_chars": forbidden},
            )

        if self._require_dot and "." not in domain.strip("."):
            return DomainValidationResult(
                valid=False,
                error_code=DomainValidationErrorCode.MISSING_DOT,
                message="Domain must contain at least one dot",
                details={"raw_input": raw_domain},
            )

        try:
            canonical = self.normalize(domain)
        except idna.IDNAError as e:
            return DomainValidationResult(
                valid=False,
                error_code=DomainValidationErrorCode.IDNA_ERROR,
                message=f"IDNA encoding failed: {e}",
                details={"raw_input": raw_domain, "idna_error": str(e)},
            )

        return DomainValidationResult(valid=True, domain=canonical)

    def normalize(self, domain: str) -> str:
        """
        Lowercase, and IDNA-encode when the name has non-ASCII characters.

        Raises:
            idna.IDNAError: If the name cannot be encoded
        """
        lowered = domain.lower()
        if any(ord(c) > 127 for c in lowered):
            return idna.encode(lowered, uts46=True).decode("ascii")
        return lowered


def validate_domain(raw_domain: Optional[str]) -> str:
    """
    Validate `raw_domain` and return its canonical form.

    Raises:
        InputValidationError: If the input is empty or malformed
    """
    return DomainValidator().validate(raw_domain).raise_if_invalid()
