"""
Audit logging for the domain intelligence system.

Every component reports through one AuditLogger. Entries are kept in memory
(tests inspect them) and written to a stream as JSON lines, readable text,
or both. Provider credentials are masked before an entry is stored, so they
never reach the stream.
"""

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TextIO

from domain_intel.enums import LogLevel


LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}

MASK = "***MASKED***"

# A key is sensitive if it contains one of these fragments...
SENSITIVE_FRAGMENTS = (
    "apikey", "api_key", "token", "secret", "password",
    "auth", "credential", "private_key",
)
# ...or is exactly one of these (header names used by the providers).
SENSITIVE_NAMES = frozenset({"key"})


def mask_secret(value: Optional[str]) -> str:
    """Show only the last four characters of a credential."""
    if not value:
        return "no"
    return f"***{value[-4:]}" if len(value) > 4 else "***"


def is_sensitive_key(name: Any) -> bool:
    lowered = str(name).lower()
    return lowered in SENSITIVE_NAMES or any(f in lowered for f in SENSITIVE_FRAGMENTS)


def mask_sensitive(value: Any) -> Any:
    """Copy `value`, replacing the values of sensitive keys at any depth."""
    if isinstance(value, dict):
        return {
            k: MASK if is_sensitive_key(k) else mask_sensitive(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [mask_sensitive(item) for item in value]
    return value


@dataclass
class LogEntry:
    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "component": self.component,
            "message": self.message,
            "data": self.data,
        }

    def render_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def render_text(self) -> str:
        # [timestamp] LEVEL [component] message {data}
        line = f"[{self.timestamp}] {self.level.value.upper()} [{self.component}] {self.message}"
        if self.data:
            line += " " + json.dumps(self.data, ensure_ascii=False, default=str)
        return line


_RENDERERS: dict[str, tuple[Callable[[LogEntry], str], ...]] = {
    "json": (LogEntry.render_json,),
    "text": (LogEntry.render_text,),
    "both": (LogEntry.render_json, LogEntry.render_text),
}


class AuditLogger:
    """
    Structured logger with a minimum level and credential masking.

    Entries below `min_level` are dropped entirely: not stored, not written.
    """

    MASK_VALUE = MASK

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        min_level: LogLevel = LogLevel.DEBUG,
    ):
        """
        Args:
            output_format: 'json', 'text', or 'both'
            output_stream: Destination stream (sys.stderr when omitted)
            min_level: Lowest level that is recorded

        Raises:
            ValueError: If output_format is unknown
        """
        try:
            self._renderers = _RENDERERS[output_format]
        except KeyError:
            raise ValueError(f"Invalid output_format: {output_format}") from None

        self._stream = output_stream or sys.stderr
        self._threshold = LEVEL_ORDER[min_level]
        self._entries: list[LogEntry] = []

    @classmethod
    def from_config(cls, level: str, output_format: str, output_stream: Optional[TextIO] = None) -> "AuditLogger":
        """Create a logger from LoggingConfig values; unknown levels mean info."""
        try:
            min_level = LogLevel(level.lower())
        except ValueError:
            min_level = LogLevel.INFO
        return cls(output_format=output_format, output_stream=output_stream, min_level=min_level)

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return LEVEL_ORDER[level] >= self._threshold

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Record one entry.

        Returns:
            The stored LogEntry, or None when the level is filtered out
        """
        if not self.is_enabled_for(level):
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=mask_sensitive(data or {}),
        )
        self._entries.append(entry)

        for render in self._renderers:
            self._stream.write(render(entry) + "\n")
        self._stream.flush()
        return entry

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[Exception] = None,
        request_url: Optional[str] = None,
        response_status_code: Optional[int] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """Record an error together with the exception and request that caused it."""
        context = dict(additional_data or {})
        if error is not None:
            context.update(error_message=str(error), error_type=type(error).__name__)
        optional = {"request_url": request_url, "response_status_code": response_status_code}
        context.update({k: v for k, v in optional.items() if v is not None})
        return self.log(LogLevel.ERROR, component, message, context)
