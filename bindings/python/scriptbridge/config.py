"""Runtime configuration for the binding bridge."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

from ._logging import LOG_FORMATS, parse_level
from .exceptions import ValidationError

__all__ = ["BridgeConfig"]

_FALSE_VALUES = ("0", "false", "no", "off")


@dataclass(frozen=True)
class BridgeConfig:
    """
    Configuration of a :class:`~scriptbridge.runtime.ScriptRuntime`.

    Attributes
    ----------
        cache_callbacks: Cache the set of overridden virtual methods per script
            class. Default is True. When False, every attach walks the native
            class hierarchy again and nothing is stored.

        log_level: Level name for the ``scriptbridge`` logger ("trace",
            "debug", "info", "warn", "error", "fatal" or "off"). None leaves
            the level as it is (environment or :func:`set_log_level`).

        log_format: "json" or "human". None keeps the environment default.

    Example:
        >>> config = BridgeConfig.from_env().override(cache_callbacks=False)
        >>> runtime = ScriptRuntime.start(config)
    """

    cache_callbacks: bool = True
    log_level: str | None = None
    log_format: str | None = None

    def __post_init__(self) -> None:
        if self.log_level is not None and parse_level(self.log_level) is None:
            raise ValidationError(
                f"log_level must be one of trace, debug, info, warn, error, fatal, off; "
                f"got {self.log_level!r}",
                details={"log_level": self.log_level},
            )
        if self.log_format is not None and self.log_format.lower() not in LOG_FORMATS:
            raise ValidationError(
                f"log_format must be 'json' or 'human', got {self.log_format!r}",
                details={"log_format": self.log_format},
            )

    @classmethod
    def from_env(cls) -> BridgeConfig:
        """
        Build a configuration from ``SCRIPTBRIDGE_*`` environment variables.

        Recognized variables: ``SCRIPTBRIDGE_CACHE_CALLBACKS``,
        ``SCRIPTBRIDGE_LOG_LEVEL`` and ``SCRIPTBRIDGE_LOG_FORMAT``.

        Raises
        ------
            ValidationError: If a variable holds an unsupported value.
        """
        cache = os.environ.get("SCRIPTBRIDGE_CACHE_CALLBACKS", "1")
        return cls(
            cache_callbacks=cache.strip().lower() not in _FALSE_VALUES,
            log_level=os.environ.get("SCRIPTBRIDGE_LOG_LEVEL") or None,
            log_format=os.environ.get("SCRIPTBRIDGE_LOG_FORMAT") or None,
        )

    def override(self, **kwargs) -> BridgeConfig:
        """Return a copy with the given fields replaced."""
        return replace(self, **kwargs)
