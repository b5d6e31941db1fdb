"""
Structured logging for the bridge.

Records follow the OpenTelemetry Logging Data Model when written as JSON and
a compact one-line layout on terminals. Bridge code attaches the native class
(``cls``) and, where one is involved, the native method (``method``) of the
object a message is about; both end up as attributes and the human layout
prints them as ``(Class.method)``.

Usage::

    from ._logging import scoped_logger

    logger = scoped_logger("bound")
    logger.debug("Attached native object", extra={"cls": "Shape", "owned": True})

Environment::

    SCRIPTBRIDGE_LOG_LEVEL=trace|debug|info|warn|error|fatal|off (default: info)
    SCRIPTBRIDGE_LOG_FORMAT=json|human (default: human on a tty, json otherwise)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import MutableMapping
from datetime import datetime, timezone
from typing import Any

from ._version import __version__

__all__ = ["logger", "setup_logging", "scoped_logger", "LOG_FORMATS", "parse_level"]

LOG_FORMATS = ("json", "human")

_LEVEL_ENV = "SCRIPTBRIDGE_LOG_LEVEL"
_FORMAT_ENV = "SCRIPTBRIDGE_LOG_FORMAT"

_OFF = logging.CRITICAL + 10

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
    "off": _OFF,
}

# Lowest level first; a record takes the name of the highest threshold it reaches
_SEVERITIES = (
    (logging.CRITICAL, "FATAL"),
    (logging.ERROR, "ERROR"),
    (logging.WARNING, "WARN"),
    (logging.INFO, "INFO"),
)

# Logger name fragment -> scope, for records logged without a scoped adapter
_SCOPE_HINTS = (
    ("signal", "signal"),
    ("callback", "dispatch"),
    ("dispatch", "dispatch"),
    ("cache", "cache"),
    ("runtime", "runtime"),
    ("native", "native"),
    ("bound", "bound"),
    ("wrapper", "bound"),
)

# Attributes every LogRecord carries; anything else was passed as ``extra``
_RECORD_FIELDS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "scope"}


def parse_level(name: str) -> int | None:
    """Map a level name to a logging level, or None if the name is unknown."""
    return _LEVELS.get(name.strip().lower())


def _severity(levelno: int) -> str:
    for threshold, text in _SEVERITIES:
        if levelno >= threshold:
            return text
    return "DEBUG"


def _scope(record: logging.LogRecord) -> str:
    scope = getattr(record, "scope", None)
    if scope:
        return scope
    for fragment, hinted in _SCOPE_HINTS:
        if fragment in record.name:
            return hinted
    return record.name.rpartition(".")[2] or "scriptbridge"


def _code_location(record: logging.LogRecord) -> tuple[str, int] | None:
    """Source position of DEBUG, ERROR and FATAL records, relative to the package."""
    if record.levelno not in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
        return None
    path = record.pathname.replace(os.sep, "/")
    for root in ("scriptbridge/", "bindings/python/"):
        head, sep, tail = path.partition(root)
        if sep:
            return tail, record.lineno
    return path, record.lineno


def _extra_attributes(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_FIELDS and not key.startswith("_")
    }


def _call_context(record: logging.LogRecord) -> str | None:
    cls_name = getattr(record, "cls", None)
    method = getattr(record, "method", None)
    if cls_name and method:
        return f"{cls_name}.{method}"
    return cls_name or getattr(record, "context", None)


# =============================================================================
# Formatters
# =============================================================================


class JsonFormatter(logging.Formatter):
    """One JSON object per record, OpenTelemetry log data model."""

    _resource = {"service.name": "scriptbridge", "service.version": __version__}

    def format(self, record: logging.LogRecord) -> str:
        when = datetime.fromtimestamp(record.created, tz=timezone.utc)
        attributes: dict[str, Any] = {"scope": _scope(record)}
        attributes.update(_extra_attributes(record))

        location = _code_location(record)
        if location is not None:
            attributes["code.filepath"], attributes["code.lineno"] = location
        if record.exc_info and record.exc_info[1] is not None:
            attributes["exception.type"] = type(record.exc_info[1]).__name__
            attributes["exception.message"] = str(record.exc_info[1])

        entry = {
            # RFC 3339 with nanosecond digits
            "timestamp": f"{when:%Y-%m-%dT%H:%M:%S}.{when.microsecond * 1000:09d}Z",
            "severityText": _severity(record.levelno),
            "body": record.getMessage(),
            "attributes": attributes,
            "resource": self._resource,
        }
        return json.dumps(entry, separators=(",", ":"), default=repr)


class HumanFormatter(logging.Formatter):
    """
    ``HH:MM:SS LEVEL [scope] message (Class.method) [file:line]``

    Colors the level and scope when ``use_colors`` is set.
    """

    _RESET = "\x1b[0m"
    _LEVEL_COLORS = (
        (logging.ERROR, "\x1b[31m"),
        (logging.WARNING, "\x1b[33m"),
        (logging.INFO, ""),
        (logging.NOTSET, "\x1b[2m"),
    )
    _SCOPE_COLOR = "\x1b[36m"
    _LOCATION_COLOR = "\x1b[2m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self._use_colors = use_colors

    def _paint(self, text: str, color: str) -> str:
        if not self._use_colors or not color:
            return text
        return f"{color}{text}{self._RESET}"

    def _level_color(self, levelno: int) -> str:
        return next(color for threshold, color in self._LEVEL_COLORS if levelno >= threshold)

    def format(self, record: logging.LogRecord) -> str:
        when = datetime.fromtimestamp(record.created, tz=timezone.utc)
        line = [
            f"{when:%H:%M:%S}",
            self._paint(f"{_severity(record.levelno):<5}", self._level_color(record.levelno)),
            self._paint(f"[{_scope(record)}]", self._SCOPE_COLOR),
            record.getMessage(),
        ]

        context = _call_context(record)
        if context:
            line.append(f"({context})")

        location = _code_location(record)
        if location is not None:
            line.append(self._paint(f"[{location[0]}:{location[1]}]", self._LOCATION_COLOR))

        text = " ".join(line)
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


# =============================================================================
# Logger Setup
# =============================================================================

logger = logging.getLogger("scriptbridge")


def _get_log_level() -> int:
    """Level from SCRIPTBRIDGE_LOG_LEVEL; unknown names fall back to INFO."""
    return parse_level(os.environ.get(_LEVEL_ENV, "info")) or logging.INFO


def _get_log_format() -> str:
    """Format from SCRIPTBRIDGE_LOG_FORMAT, else human on a tty and json otherwise."""
    fmt = os.environ.get(_FORMAT_ENV, "").strip().lower()
    if fmt:
        return fmt
    return "human" if sys.stderr.isatty() else "json"


def _stderr_handler(fmt: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(HumanFormatter(use_colors=sys.stderr.isatty()))
    return handler


def setup_logging(level: str | int = "INFO", format: str | None = None) -> None:
    """
    Configure the ``scriptbridge`` logger, replacing its handlers.

    Args:
        level: Level name ("debug", "info", "warn", ...) or a ``logging``
            constant. Unknown names mean INFO.
        format: "json" or "human". None uses SCRIPTBRIDGE_LOG_FORMAT or
            detects a terminal. A given format is exported to the
            environment so child processes log the same way.

    Example:
        >>> import scriptbridge
        >>> scriptbridge.setup_logging("debug", format="human")
    """
    if isinstance(level, str):
        level = parse_level(level) or logging.INFO
    if format:
        os.environ[_FORMAT_ENV] = format

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.addHandler(_stderr_handler(_get_log_format()))
    logger.setLevel(level)


class _ScopedLoggerAdapter(logging.LoggerAdapter):
    """Adds the fixed scope to the ``extra`` of every call."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


def scoped_logger(scope: str) -> logging.LoggerAdapter:
    """
    Logger for one area of the bridge.

    Scopes in use: "bound", "dispatch", "signal", "cache", "runtime",
    "native".
    """
    return _ScopedLoggerAdapter(logger, {"scope": scope})


# Applications that configured the logger themselves keep their handlers
if not logger.handlers:
    logger.addHandler(_stderr_handler(_get_log_format()))
    logger.setLevel(_get_log_level())
