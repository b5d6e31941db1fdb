"""
Scriptbridge - Bind a reflected native object model to Python.

Scriptbridge pairs Python wrapper objects with native objects whose lifetime
is governed by native ownership rules. Python subclasses can override the
virtual methods of native classes and subscribe to native events.

Quick Start
-----------

Describe the native classes:

    >>> from scriptbridge.native import INT, ClassDescriptor, MethodDescriptor
    >>>
    >>> shape = ClassDescriptor("Shape", [
    ...     MethodDescriptor("area", ret=INT, virtual=True),
    ... ], managed=True)

Subclass the generated wrapper and let native code call into Python:

    >>> import scriptbridge
    >>>
    >>> Shape = scriptbridge.wrapper_class(shape)
    >>> class Square(Shape):
    ...     def area(self):
    ...         return 42
    >>>
    >>> sq = Square()
    >>> sq.native_handle().call("area")
    42

Ownership
---------

A wrapper owns the native object it created: the object is destroyed with
the wrapper. ``keep()`` hands it to native code, which keeps the wrapper
alive until it destroys the object or ``release()`` takes it back.

Events
------

    >>> widget.clicked += on_click
    >>> widget.clicked -= on_click

Core Classes
------------

- `BoundObject` - Ownership state of a wrapper and its native object
- `NativeProxy` - Base class of all generated wrapper classes
- `ScriptRuntime` - Execution context, retentions and the callback cache
- `BridgeConfig` - Runtime configuration
"""

from scriptbridge._logging import setup_logging as setup_logging
from scriptbridge._version import __version__ as __version__
from scriptbridge.bound import BoundObject
from scriptbridge.cache import ClassCallbackCache
from scriptbridge.callbacks import Callee, CallbackFunction
from scriptbridge.config import BridgeConfig

# Exceptions (commonly-used exceptions at root; all via scriptbridge.exceptions)
from scriptbridge.exceptions import (
    AlreadyDestroyed as AlreadyDestroyed,
)
from scriptbridge.exceptions import (
    BridgeError,
)
from scriptbridge.exceptions import (
    InvariantViolation as InvariantViolation,
)
from scriptbridge.exceptions import (
    MarshalError as MarshalError,
)
from scriptbridge.exceptions import (
    PermissionDenied as PermissionDenied,
)
from scriptbridge.exceptions import (
    ScriptCallFailure as ScriptCallFailure,
)
from scriptbridge.exceptions import (
    ValidationError as ValidationError,
)
from scriptbridge.runtime import ScriptRuntime
from scriptbridge.signals import SignalRelay
from scriptbridge.wrapper import NativeProxy, SignalProxy, bind_registry, wrap_handle, wrapper_class


def set_log_level(level: str) -> None:
    """Set logging verbosity level.

    Args:
        level: One of 'trace', 'debug', 'info', 'warn', 'error', 'fatal', 'off'.

    Example:
        >>> import scriptbridge
        >>> scriptbridge.set_log_level('debug')  # Enable debug output
    """
    from scriptbridge._logging import logger, parse_level

    resolved = parse_level(level)
    if resolved is None:
        raise ValidationError(f"Unknown log level {level!r}", details={"level": level})
    logger.setLevel(resolved)


def set_log_format(fmt: str) -> None:
    """Set logging output format.

    Args:
        fmt: Either 'json' (machine-readable) or 'human' (readable).

    Example:
        >>> import scriptbridge
        >>> scriptbridge.set_log_format('human')
    """
    from scriptbridge._logging import LOG_FORMATS, logger

    if fmt.lower() not in LOG_FORMATS:
        raise ValidationError(f"log format must be 'json' or 'human', got {fmt!r}")
    setup_logging(logger.level or "INFO", format=fmt.lower())


__all__ = [
    # Binding
    "BoundObject",
    "NativeProxy",
    "SignalProxy",
    "wrapper_class",
    "bind_registry",
    "wrap_handle",
    # Dispatch
    "CallbackFunction",
    "Callee",
    "SignalRelay",
    "ClassCallbackCache",
    # Runtime
    "ScriptRuntime",
    "BridgeConfig",
    "setup_logging",
    "set_log_level",
    "set_log_format",
    # Exceptions
    "BridgeError",
]
