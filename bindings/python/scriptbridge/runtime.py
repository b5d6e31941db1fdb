"""
Script runtime: the execution context native code enters to call script code.

There is at most one current runtime per process. It owns

- the execution-context boundary (:meth:`ScriptRuntime.execute`) which wraps
  script exceptions with the calling context and lets interpreter exit
  requests through unmodified,
- the retention table: the extra script-side references held on behalf of
  native code for wrappers of natively owned objects,
- the class callback cache, whose entries are only valid for the lifetime of
  one scripting environment.

Example:
    >>> runtime = ScriptRuntime.start()
    >>> with runtime.execute("Shape.area"):
    ...     ...  # call script code
    >>> runtime.reload()    # class identities become stale: cache is dropped
    >>> runtime.shutdown()  # ScriptRuntime.current() is None afterwards
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator
from typing import ClassVar

from ._logging import logger as _root_logger
from ._logging import parse_level, scoped_logger, setup_logging
from .cache import ClassCallbackCache
from .config import BridgeConfig
from .exceptions import MarshalError, ScriptCallFailure

__all__ = ["ScriptRuntime"]

logger = scoped_logger("runtime")


class ScriptRuntime:
    """
    The active scripting environment.

    Use :meth:`start` to create and activate a runtime, :meth:`get` to obtain
    the current one (starting it from the environment if needed) and
    :meth:`current` when code must cope with no runtime being active, such as
    notifications arriving during teardown.
    """

    _current: ClassVar[ScriptRuntime | None] = None

    def __init__(self, config: BridgeConfig | None = None):
        self.config = config or BridgeConfig()
        self.callback_cache = ClassCallbackCache(enabled=self.config.cache_callbacks)
        self._retained: dict[int, list] = {}
        self._depth = 0

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @classmethod
    def start(cls, config: BridgeConfig | None = None) -> ScriptRuntime:
        """Create a runtime, make it current and apply its logging settings."""
        if cls._current is not None:
            cls._current.shutdown()
        runtime = cls(config)
        runtime._apply_logging()
        cls._current = runtime
        logger.debug(
            "Script runtime started",
            extra={"cache_callbacks": runtime.config.cache_callbacks},
        )
        return runtime

    @classmethod
    def current(cls) -> ScriptRuntime | None:
        """The current runtime, or None if there is none (e.g. during teardown)."""
        return cls._current

    @classmethod
    def get(cls) -> ScriptRuntime:
        """The current runtime, started from ``SCRIPTBRIDGE_*`` variables if needed."""
        if cls._current is None:
            return cls.start(BridgeConfig.from_env())
        return cls._current

    def reset(self) -> None:
        """
        Reset the scripting environment.

        Script class identities do not survive a reset, so the class callback
        cache is dropped as a whole.
        """
        dropped = len(self.callback_cache)
        self.callback_cache.invalidate()
        logger.debug("Script runtime reset", extra={"cache_entries": dropped})

    def reload(self) -> None:
        """Reload the scripting environment (same cache semantics as :meth:`reset`)."""
        self.reset()

    def shutdown(self) -> None:
        """
        Tear the runtime down.

        Drops the callback cache and all retentions. Wrappers only kept alive
        by a retention are finalized; they do not own their native objects so
        those stay alive. Afterwards :meth:`current` returns None.
        """
        if ScriptRuntime._current is self:
            ScriptRuntime._current = None
        self.callback_cache.invalidate()
        retained = self._retained
        self._retained = {}
        logger.debug("Script runtime shut down", extra={"retained": len(retained)})
        retained.clear()

    def _apply_logging(self) -> None:
        level = self.config.log_level
        if self.config.log_format:
            current = _root_logger.level or logging.INFO
            setup_logging(level or current, format=self.config.log_format)
        elif level is not None:
            _root_logger.setLevel(parse_level(level) or logging.INFO)

    # =========================================================================
    # Execution Context
    # =========================================================================

    @property
    def active(self) -> bool:
        """True while script code is being executed through :meth:`execute`."""
        return self._depth > 0

    @property
    def depth(self) -> int:
        """Nesting depth of :meth:`execute` (reentrant native/script calls)."""
        return self._depth

    @contextlib.contextmanager
    def execute(self, context: str | None = None) -> Iterator[ScriptRuntime]:
        """
        Enter the script execution context.

        Args:
            context: Calling context (``"Class.method"``). When given, any
                exception raised inside is re-raised as
                :class:`ScriptCallFailure` carrying that context, except
                :class:`MarshalError` which propagates unchanged. Exit and
                abort requests (``SystemExit``, ``KeyboardInterrupt``) always
                propagate unmodified.

        Raises
        ------
            ScriptCallFailure: If script code raised and a context was given.
        """
        self._depth += 1
        try:
            yield self
        except MarshalError:
            raise
        except Exception as exc:
            if context is None:
                raise
            raise ScriptCallFailure.from_exception(exc, context) from exc
        finally:
            self._depth -= 1

    # =========================================================================
    # Retention
    # =========================================================================

    def retain(self, obj: object) -> int:
        """Hold an extra strong reference to ``obj``; returns its retention count."""
        entry = self._retained.setdefault(id(obj), [obj, 0])
        entry[1] += 1
        return entry[1]

    def unretain(self, obj: object) -> bool:
        """
        Drop one retention of ``obj``.

        Dropping the last retention may finalize ``obj`` once the caller's own
        reference goes away. Returns False if ``obj`` was not retained.
        """
        key = id(obj)
        entry = self._retained.get(key)
        if entry is None or entry[0] is not obj:
            return False
        entry[1] -= 1
        if entry[1] == 0:
            del self._retained[key]
        return True

    def retain_count(self, obj: object) -> int:
        entry = self._retained.get(id(obj))
        if entry is None or entry[0] is not obj:
            return 0
        return entry[1]

    @property
    def retained(self) -> int:
        """Number of distinct retained objects."""
        return len(self._retained)

    def __repr__(self) -> str:
        state = "current" if ScriptRuntime._current is self else "inactive"
        return f"<ScriptRuntime {state} depth={self._depth} retained={len(self._retained)}>"
