"""
Key Rotation Gateway for the domain intelligence system.

This module makes a pool of interchangeable, individually quota-limited
credentials look like one reliable credential:
- Concurrent startup health check of every key against a cheap probe request
- Bounded wait for callers that arrive while the health check is running
- Per-request key binding from the current pool pointer
- Forward-only rotation when a response carries a quota-exceeded signal
"""

import asyncio
import threading
from typing import Callable, Coroutine, Iterable, Optional
from urllib.parse import quote

from .audit_logger import AuditLogger, mask_secret
from .enums import KeyStatus, LogLevel, ProviderErrorCode
from .exceptions import ConfigurationError, QuotaExceededError
from .models import ApiKeyPoolEntry
from .provider_gateway import ProviderGateway, ProviderResponse


class KeyPool:
    """
    Ordered pool of credentials with a current-key pointer.

    Array order is priority order. The pointer starts at 0 and only ever
    moves forward: the startup health check may move it to the first live
    key at or after its position, and a quota signal moves it past the
    signalled key. A key marked exhausted stays exhausted for the lifetime
    of the pool.

    The pool may be shared by request handlers running on different threads
    (the proxy server), so every mutation happens under one lock.
    """

    def __init__(self, keys: Iterable[str]) -> None:
        self.entries: list[ApiKeyPoolEntry] = [ApiKeyPoolEntry(key=k) for k in keys]
        self.current_index = 0
        self._lock = threading.Lock()
        self._checked = threading.Event()
        self._health_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def health_checked(self) -> bool:
        return self._checked.is_set()

    @health_checked.setter
    def health_checked(self, value: bool) -> None:
        if value:
            self._checked.set()
        else:
            self._checked.clear()

    @property
    def current_entry(self) -> ApiKeyPoolEntry:
        with self._lock:
            return self.entries[self.current_index]

    @property
    def current_key(self) -> str:
        return self.current_entry.key

    def statuses(self) -> list[KeyStatus]:
        with self._lock:
            return [entry.status for entry in self.entries]

    def set_status(self, entry: ApiKeyPoolEntry, status: KeyStatus) -> KeyStatus:
        """
        Record a health check result for `entry`.

        Exhausted is final: an exhausted key is never marked live again.

        Returns:
            The entry's status after the update
        """
        with self._lock:
            if entry.status != KeyStatus.EXHAUSTED:
                entry.status = status
            return entry.status

    def select_first_live(self) -> None:
        """Move the pointer to the first live key at or after it; stay put when there is none."""
        with self._lock:
            for index in range(self.current_index, len(self.entries)):
                if self.entries[index].status == KeyStatus.LIVE:
                    self.current_index = index
                    return

    def _advance_locked(self) -> bool:
        for index in range(self.current_index + 1, len(self.entries)):
            if self.entries[index].status != KeyStatus.EXHAUSTED:
                self.current_index = index
                return True
        return False

    def advance(self) -> bool:
        """
        Move the pointer to the next key that is not exhausted.

        Returns:
            True if the pointer moved, False if no such key exists
        """
        with self._lock:
            return self._advance_locked()

    def exhaust(self, entry: ApiKeyPoolEntry) -> Optional[bool]:
        """
        Mark `entry` exhausted and, if the pointer is on it, advance.

        Returns:
            None if the pointer had already moved past `entry`, otherwise
            whether it could advance to a further key
        """
        with self._lock:
            entry.status = KeyStatus.EXHAUSTED
            if entry is not self.entries[self.current_index]:
                return None
            return self._advance_locked()

    def claim_health_check(self, start: Callable[[], Coroutine]) -> Optional[asyncio.Task]:
        """
        Return the running health check task, starting one if needed.

        Only one check runs per pool. A task whose event loop has closed
        (a finished proxy request) no longer counts, so the next caller
        starts a new check.

        Returns:
            The health check task, or None once the pool has been checked
        """
        with self._lock:
            if self.health_checked:
                return None
            task = self._health_task
            if task is None or task.done() or task.get_loop().is_closed():
                task = asyncio.get_running_loop().create_task(start())
                self._health_task = task
            return task

    def wait_health_checked(self, timeout: float) -> bool:
        """Block the calling thread until the pool has been checked, bounded."""
        return self._checked.wait(timeout)


class KeyRotationGateway:
    """
    Gateway that stamps each request with the current pooled key.

    The key is substituted into the URL template's `{key}` placeholder, or
    sent in `key_header` when one is configured. Rotation after a
    quota-exceeded response affects only the next request; the current
    response is returned to the caller as received.
    """

    COMPONENT = "KeyRotationGateway"

    def __init__(
        self,
        gateway: ProviderGateway,
        pool: KeyPool,
        url_template: str,
        probe_params: dict[str, str],
        quota_signals: Iterable[str],
        startup_wait_seconds: float = 3.0,
        key_header: Optional[str] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the key rotation gateway.

        Args:
            gateway: Underlying bounded-timeout HTTP gateway
            pool: Injected key pool state
            url_template: Provider URL with `{key}` and request placeholders
            probe_params: Placeholder values for the health check request
            quota_signals: Body substrings meaning "quota exceeded"
            startup_wait_seconds: Ceiling for waiting on the health check
            key_header: Optional header name carrying the key
            logger: Optional audit logger
        """
        self._gateway = gateway
        self._pool = pool
        self._url_template = url_template
        self._probe_params = dict(probe_params)
        self._quota_signals = [s.lower() for s in quota_signals if s]
        self._startup_wait_seconds = startup_wait_seconds
        self._key_header = key_header
        self._logger = logger

    @property
    def pool(self) -> KeyPool:
        return self._pool

    def is_quota_exceeded(self, body: str) -> bool:
        """Check a response body for a quota-exceeded signal."""
        text = (body or "").lower()
        return any(signal in text for signal in self._quota_signals)

    def _check_quota(self, key: str, response: ProviderResponse) -> None:
        """
        Raises:
            QuotaExceededError: If the response body carries a quota signal
        """
        if self.is_quota_exceeded(response.text):
            raise QuotaExceededError(
                code="quota_exceeded",
                message=f"Quota exceeded for key {mask_secret(key)}",
                details={"status_code": response.status_code},
            )

    def _build_request(self, key: str, params: dict[str, str]) -> tuple[str, Optional[dict[str, str]]]:
        values = {name: quote(str(value), safe="") for name, value in params.items()}
        if self._key_header:
            return self._url_template.format(**values), {self._key_header: key}
        return self._url_template.format(key=quote(key, safe=""), **values), None

    async def _probe(self, entry: ApiKeyPoolEntry) -> KeyStatus:
        url, headers = self._build_request(entry.key, self._probe_params)
        response = await self._gateway.get(url, headers=headers)

        if response.error is not None and response.error.code in (
            ProviderErrorCode.TIMEOUT,
            ProviderErrorCode.NETWORK_ERROR,
        ):
            # Unreachable probe endpoint: fail open
            self._log(LogLevel.WARN, "Key probe failed, assuming live", {
                "key_hint": mask_secret(entry.key),
                "error": response.error.message,
            })
            return self._pool.set_status(entry, KeyStatus.LIVE)

        try:
            self._check_quota(entry.key, response)
        except QuotaExceededError as e:
            self._log(LogLevel.INFO, e.message, {"key_hint": mask_secret(entry.key)})
            return self._pool.set_status(entry, KeyStatus.EXHAUSTED)
        return self._pool.set_status(entry, KeyStatus.LIVE)

    async def run_health_check(self) -> list[KeyStatus]:
        """
        Probe every key concurrently and select the first live one.

        Keys exhausted by live traffic while the check was running stay
        exhausted, and the pointer never moves backwards.

        Returns:
            Key statuses in pool order
        """
        statuses = await asyncio.gather(*(self._probe(entry) for entry in self._pool.entries))
        self._pool.select_first_live()
        self._pool.health_checked = True
        self._log(LogLevel.INFO, "Key health check completed", {
            "live": sum(1 for s in statuses if s == KeyStatus.LIVE),
            "exhausted": sum(1 for s in statuses if s == KeyStatus.EXHAUSTED),
            "current_index": self._pool.current_index,
        })
        return list(statuses)

    async def ensure_health_checked(self) -> None:
        """
        Start the pool's health check on first use and wait for it, bounded.

        If the check has not finished within the startup ceiling the caller
        proceeds with the current pointer; the check keeps running. A check
        running on another thread's event loop is waited for without
        blocking this loop.
        """
        task = self._pool.claim_health_check(self.run_health_check)
        if task is None:
            return

        if task.get_loop() is asyncio.get_running_loop():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self._startup_wait_seconds)
                return
            except asyncio.TimeoutError:
                pass
        elif await asyncio.to_thread(self._pool.wait_health_checked, self._startup_wait_seconds):
            return

        self._log(LogLevel.WARN, "Key health check still running, using current key", {
            "wait_seconds": self._startup_wait_seconds,
            "current_index": self._pool.current_index,
        })

    def _rotate_after_quota(self, entry: ApiKeyPoolEntry) -> None:
        moved = self._pool.exhaust(entry)
        if moved is None:
            # Pointer already moved past this key
            return
        if moved:
            self._log(LogLevel.INFO, "Rotated to next key", {
                "current_index": self._pool.current_index,
                "key_hint": mask_secret(self._pool.current_key),
            })
        else:
            self._log(LogLevel.WARN, "All keys exhausted, keeping last key", {
                "current_index": self._pool.current_index,
            })

    async def request(self, **params: str) -> ProviderResponse:
        """
        Send one provider request with the key at the current pointer.

        Args:
            **params: Values for the URL template placeholders

        Returns:
            The provider response, unchanged

        Raises:
            ConfigurationError: If the pool holds no keys
        """
        if not len(self._pool):
            raise ConfigurationError(
                code="missing_credentials",
                message="No API keys configured for key rotation",
            )

        await self.ensure_health_checked()

        entry = self._pool.current_entry
        url, headers = self._build_request(entry.key, params)
        response = await self._gateway.get(url, headers=headers)

        try:
            self._check_quota(entry.key, response)
        except QuotaExceededError as e:
            self._log(LogLevel.WARN, e.message, {"current_index": self._pool.current_index})
            self._rotate_after_quota(entry)

        return response

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, self.COMPONENT, message, data)
