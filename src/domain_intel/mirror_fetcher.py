"""
Mirror Fetcher for the domain intelligence system.

Fetches a target URL through an ordered chain of mirror endpoints. Each
attempt is bounded by its own timeout; the first 2xx answer wins and the
remaining mirrors are never contacted.
"""

from typing import Optional, Sequence
from urllib.parse import quote

from .audit_logger import AuditLogger
from .enums import LogLevel, ProviderErrorCode
from .exceptions import DomainIntelError, MirrorFetchError
from .provider_gateway import ProviderGateway


def build_mirror_url(template: str, target_url: str) -> str:
    """Fill a mirror template's `{url}` placeholder with the encoded target."""
    return template.format(url=quote(target_url, safe=""))


class MirrorFetcher:
    """
    Sequential fallback over mirror endpoints.

    The chain is never retried beyond its fixed length; when every mirror
    fails the last timeout or network error is surfaced.
    """

    COMPONENT = "MirrorFetcher"

    def __init__(
        self,
        gateway: ProviderGateway,
        mirrors: Sequence[str],
        per_attempt_timeout: float = 3.0,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the mirror fetcher.

        Args:
            gateway: Underlying bounded-timeout HTTP gateway
            mirrors: Mirror URL templates with a `{url}` placeholder, in order
            per_attempt_timeout: Bound for each single attempt in seconds
            logger: Optional audit logger
        """
        self._gateway = gateway
        self._mirrors = list(mirrors)
        self._per_attempt_timeout = per_attempt_timeout
        self._logger = logger

    @property
    def mirrors(self) -> list[str]:
        return list(self._mirrors)

    async def fetch(self, target_url: str) -> str:
        """
        Fetch `target_url` through the first mirror that answers 2xx.

        Returns:
            The raw response body

        Raises:
            MirrorFetchError: If every mirror failed or timed out
        """
        last_error: Optional[DomainIntelError] = None
        attempts = 0

        for template in self._mirrors:
            mirror_url = build_mirror_url(template, target_url)
            attempts += 1
            response = await self._gateway.get(mirror_url, timeout=self._per_attempt_timeout)

            if response.ok:
                self._log(LogLevel.DEBUG, "Mirror succeeded", {
                    "mirror": template,
                    "attempt": attempts,
                    "response_time_ms": round(response.response_time_ms, 1),
                })
                return response.text

            if response.error is not None and response.error.code in (
                ProviderErrorCode.TIMEOUT,
                ProviderErrorCode.NETWORK_ERROR,
            ):
                try:
                    response.raise_for_status()
                except DomainIntelError as e:
                    last_error = e
            # A non-2xx answer is skipped without becoming the last error
            self._log(LogLevel.DEBUG, "Mirror failed", {
                "mirror": template,
                "attempt": attempts,
                "status_code": response.status_code,
                "error": response.error.message if response.error else None,
            })

        message = last_error.message if last_error else "All mirrors failed"
        raise MirrorFetchError(message=message, last_error=last_error, attempts=attempts)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, self.COMPONENT, message, data)


async def fetch_via_mirrors(
    gateway: ProviderGateway,
    target_url: str,
    mirror_list: Sequence[str],
    per_attempt_timeout: float,
) -> str:
    """Functional form of MirrorFetcher.fetch."""
    return await MirrorFetcher(gateway, mirror_list, per_attempt_timeout).fetch(target_url)
