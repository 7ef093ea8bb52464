"""Normalized log record model and the level table shared across the transport."""

import datetime
import traceback
from dataclasses import dataclass, field
from typing import Any, Optional

LEVELS = {
    60: "fatal",
    50: "error",
    40: "warn",
    30: "info",
    20: "debug",
    10: "trace",
}
UNKNOWN_LEVEL = "unknown"
_LEVELS_BY_KEY = {str(code): name for code, name in LEVELS.items()}
ALERT_LEVELS = ("error", "fatal")

# Field owned by the transport itself; producers must not set it.
RESERVED_FIELD = "name"

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


def level_name(code: Any) -> str:
    """Map a severity code to its level name, 'unknown' otherwise.

    The code is looked up by its decimal form, so ``50``, ``50.0`` and ``"50"``
    all name the same level while ``"50.0"`` or ``" 50"`` do not.
    """
    if isinstance(code, str):
        return _LEVELS_BY_KEY.get(code, UNKNOWN_LEVEL)
    if isinstance(code, bool) or not isinstance(code, (int, float)):
        return UNKNOWN_LEVEL
    return LEVELS.get(code, UNKNOWN_LEVEL)


def name_is_set(value: Any) -> bool:
    """Whether a producer-supplied ``name`` counts as set.

    Follows the truthiness of the JavaScript producers: ``None``, ``False``,
    ``0`` and ``""`` are unset, empty lists and objects are set.
    """
    if isinstance(value, (list, dict)):
        return True
    return bool(value)


def isoformat(dt: datetime.datetime) -> str:
    """Render *dt* as UTC ISO-8601 with millisecond precision and a Z suffix."""
    utc = dt.astimezone(datetime.timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def now_iso() -> str:
    return isoformat(datetime.datetime.now(datetime.timezone.utc))


def time_to_iso(value: Any) -> Optional[str]:
    """Convert a source ``time`` value (epoch milliseconds or ISO string).

    Returns None when the value cannot be converted.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            dt = _EPOCH + datetime.timedelta(milliseconds=value)
        except (OverflowError, ValueError):
            return None
        return isoformat(dt)
    if isinstance(value, str):
        try:
            dt = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=datetime.timezone.utc)
        return isoformat(dt)
    return None


@dataclass
class ErrorInfo:
    type: Optional[str] = None
    message: Optional[str] = None
    stack: Optional[str] = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Any) -> "ErrorInfo":
        """Build from a source ``err`` value; non-object values become the message."""
        if isinstance(value, dict):
            rest = dict(value)
            return cls(
                type=rest.pop("type", None),
                message=rest.pop("message", None),
                stack=rest.pop("stack", None),
                extra=rest,
            )
        return cls(message=str(value))

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorInfo":
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(type=type(exc).__name__, message=str(exc), stack=stack)

    def to_dict(self) -> dict:
        out = dict(self.extra)
        for key in ("type", "message", "stack"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


@dataclass
class LogRecord:
    """A normalized record as shipped to the sink.

    ``name`` is only ever populated while a record is being validated; it is
    stripped before the record enters the batch and never serialized.
    """

    datetime: str
    level: str
    message: Optional[str] = None
    error: Optional[ErrorInfo] = None
    fields: dict = field(default_factory=dict)
    name: Any = None

    @property
    def is_alert(self) -> bool:
        return self.level in ALERT_LEVELS

    def without_name(self) -> "LogRecord":
        return LogRecord(
            datetime=self.datetime,
            level=self.level,
            message=self.message,
            error=self.error,
            fields=dict(self.fields),
        )

    def to_dict(self, include_name: bool = False) -> dict:
        out = dict(self.fields)
        if self.message is not None:
            out["message"] = self.message
        if self.error is not None:
            out["error"] = self.error.to_dict()
        out["datetime"] = self.datetime
        out["level"] = self.level
        if include_name and self.name is not None:
            out[RESERVED_FIELD] = self.name
        return out


def diagnostic(level: str, message: str, error: Optional[ErrorInfo] = None, **fields) -> LogRecord:
    """Create a transport-generated record stamped with the current time."""
    return LogRecord(
        datetime=now_iso(),
        level=level,
        message=message,
        error=error,
        fields=fields,
    )
