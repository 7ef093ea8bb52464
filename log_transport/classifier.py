"""Line classifier: structured pino records vs. multi-line crash output.

Each line from the stream becomes zero or one normalized records:

  1. A JSON object with ``time`` and ``level`` is mapped onto the normalized
     schema (``msg`` -> ``message``, ``err`` -> ``error``, epoch ``time`` ->
     ISO ``datetime``, numeric ``level`` -> level name).
  2. A JSON object missing either field yields a ``warn`` diagnostic only.
  3. Anything else starts a crash run. Following lines are taken from the
     stream for as long as they are not JSON objects, peeking first so the
     next structured record is never consumed. Runs mentioning
     ``error: `` become one ``fatal`` record; other runs are dropped as
     stray output.

A reserved ``name`` field is stripped from every record after emitting a
``warn`` diagnostic about it.
"""

import asyncio
import json
import logging
import math
from typing import Callable, Optional

from log_transport.lazy_iter import LazyIter
from log_transport.models import (
    RESERVED_FIELD,
    ErrorInfo,
    LogRecord,
    diagnostic,
    level_name,
    name_is_set,
    now_iso,
    time_to_iso,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("time", "level")
CRASH_MARKER = "error: "
CRASH_SENTINEL = "[unable to infer due to this being a hard crash]"
RESERVED_NAME_MESSAGE = (
    "Log has a name field, but that should be handled by the transport alone, ignoring"
)


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def _finite_float(text: str) -> float:
    value = float(text)
    if math.isinf(value):
        raise ValueError(f"{text} overflows a float")
    return value


def parse_structured(line: str) -> Optional[dict]:
    """Return the JSON object encoded by *line*, or None if it is not one.

    Only strict JSON counts: ``NaN``, ``Infinity`` and floats that overflow
    to infinity are rejected.
    """
    try:
        parsed = json.loads(line, parse_constant=_reject_constant, parse_float=_finite_float)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def is_structured(line: str) -> bool:
    return parse_structured(line) is not None


def normalize(source: dict) -> LogRecord:
    """Map a parsed pino object with ``time`` and ``level`` onto a LogRecord."""
    rest = dict(source)
    time_value = rest.pop("time")
    level_code = rest.pop("level")
    msg = rest.pop("msg", None)
    err = rest.pop("err", None)
    name = rest.pop(RESERVED_FIELD, None)

    stamp = time_to_iso(time_value)
    if stamp is None:
        logger.debug("Unconvertible time %r, using wall clock", time_value)
        stamp = now_iso()

    return LogRecord(
        datetime=stamp,
        level=level_name(level_code),
        message=msg,
        error=ErrorInfo.from_value(err) if err is not None else None,
        fields=rest,
        name=name,
    )


class LineClassifier:
    """Turns stream lines into records and hands them to *emit*.

    The classifier shares *stream* with the driver loop so that a crash run
    can pull its continuation lines directly. *lookahead_timeout* bounds how
    long a crash run waits for its next line; None waits until the stream ends.
    """

    def __init__(
        self,
        stream: LazyIter,
        emit: Callable[[LogRecord], None],
        lookahead_timeout: Optional[float] = None,
    ):
        self._stream = stream
        self._emit = emit
        self._lookahead_timeout = lookahead_timeout

    async def handle_line(self, line: str) -> int:
        """Classify *line*. Returns how many stream lines it used, *line* included."""
        source = parse_structured(line)
        if source is None:
            return await self._handle_crash(line)

        for field_name in REQUIRED_FIELDS:
            if field_name not in source:
                self._handle_invalid(source, field_name)
                return 1

        self.handle_record(normalize(source))
        return 1

    def handle_record(self, record: LogRecord) -> None:
        """Emit *record* minus ``name``, preceded by a warning if it had one."""
        if name_is_set(record.name):
            self._emit(
                diagnostic("warn", RESERVED_NAME_MESSAGE, log=record.to_dict(include_name=True))
            )
        self._emit(record.without_name())

    def _handle_invalid(self, source: dict, field_name: str) -> None:
        if name_is_set(source.get(RESERVED_FIELD)):
            self._emit(diagnostic("warn", RESERVED_NAME_MESSAGE, log=source))
        self._emit(
            diagnostic("warn", f"Invalid log line, missing {field_name} field", log=source)
        )

    async def _handle_crash(self, line: str) -> int:
        parts = [line]

        following = await self._peek_continuation()
        while following is not None:
            parts.append(following)
            await self._stream.next()
            following = await self._peek_continuation()

        if not any(CRASH_MARKER in part.lower() for part in parts):
            logger.debug("Dropping %d line(s) of unstructured output", len(parts))
            return len(parts)

        error = ErrorInfo(type=CRASH_SENTINEL, message=CRASH_SENTINEL, stack="\n".join(parts))
        self._emit(diagnostic("fatal", CRASH_SENTINEL, error=error))
        return len(parts)

    async def _peek_continuation(self) -> Optional[str]:
        """Peek the next line if it continues the crash run.

        With a lookahead timeout set, a producer that goes quiet ends the run.
        """
        if self._lookahead_timeout is None:
            return await self._stream.peek_and(_is_unstructured)
        try:
            return await asyncio.wait_for(
                self._stream.peek_and(_is_unstructured), self._lookahead_timeout
            )
        except asyncio.TimeoutError:
            return None


def _is_unstructured(line: str) -> bool:
    return not is_structured(line)
