"""
Scriptbridge exceptions.

This module defines the exception hierarchy for scriptbridge:

    BridgeError (base)
    ├── InvariantViolation - Double attach, use after destruction
    │   └── AlreadyDestroyed - Object was destroyed before
    ├── PermissionDenied - Explicit destroy without permission
    ├── ScriptCallFailure - Script code raised during dispatch or broadcast
    ├── MarshalError - Argument/return value conversion failed
    └── ValidationError - Invalid parameter value

Usage:
    try:
        shape.destroy()
    except scriptbridge.PermissionDenied:
        print("Shape is owned by native code")
    except scriptbridge.BridgeError as e:
        print(f"Error {e.code}: {e}")

Interpreter exit requests (``SystemExit``, ``KeyboardInterrupt``) are never
wrapped into any of these.
"""

from typing import Any

__all__ = [
    "BridgeError",
    "InvariantViolation",
    "AlreadyDestroyed",
    "PermissionDenied",
    "ScriptCallFailure",
    "MarshalError",
    "ValidationError",
]


class BridgeError(Exception):
    """
    Base exception for all scriptbridge errors.

    Attributes
    ----------
    message : str
        Human-readable error description.
    code : str
        Stable, string-based error code (e.g., "PERMISSION_DENIED").
        Use this for programmatic error handling.
    details : dict[str, Any]
        Structured context (e.g., {"cls": "Shape"}).
    original_code : int | None
        Numeric code of the failure class (for logging).
    """

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
        original_code: int | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.original_code = original_code

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.args[0]!r}, code={self.code!r})"


# =============================================================================
# Lifecycle Errors
# =============================================================================


class InvariantViolation(BridgeError, RuntimeError):
    """
    A binding invariant was violated.

    Raised for programmer errors such as:
    - Attaching a second handle to a bound object
    - Attaching a handle which already has a bound object
    - Calling a non-const method through a const reference
    - Temporaries leaking out of a script callback

    The operation is aborted and the object state is unchanged.
    """

    def __init__(
        self,
        message: str,
        code: str = "INVARIANT_VIOLATION",
        details: dict[str, Any] | None = None,
        original_code: int | None = None,
    ):
        super().__init__(message, code, details, original_code or 100)


class AlreadyDestroyed(InvariantViolation):
    """
    The object has been destroyed already.

    Raised on a second explicit ``destroy()`` and on any attempt to reach the
    native object of a wrapper whose native counterpart is gone.
    """

    def __init__(
        self,
        message: str | None = None,
        code: str = "ALREADY_DESTROYED",
        details: dict[str, Any] | None = None,
        original_code: int | None = None,
    ):
        if message is None:
            message = "Object has been destroyed already"
        super().__init__(message, code, details, original_code or 101)


class PermissionDenied(BridgeError, PermissionError):
    """
    The object cannot be destroyed explicitly.

    Raised by ``destroy()`` when the native object is alive but the wrapper
    was not granted permission to free it (typically because native code
    owns it). The object stays attached.
    """

    def __init__(
        self,
        message: str | None = None,
        code: str = "PERMISSION_DENIED",
        details: dict[str, Any] | None = None,
        original_code: int | None = None,
    ):
        if message is None:
            message = "Object cannot be destroyed explicitly"
        super().__init__(message, code, details, original_code or 200)


# =============================================================================
# Dispatch Errors
# =============================================================================


class ScriptCallFailure(BridgeError, RuntimeError):
    """
    Script code raised while being called from native code.

    The calling context (``"Class.method"``) is available as ``context`` and
    the original exception is chained as ``__cause__``.

    Example
    -------
    >>> try:
    ...     handle.call("area")
    ... except ScriptCallFailure as e:
    ...     print(e.context)
    Shape.area
    """

    def __init__(
        self,
        message: str,
        context: str = "",
        reason: str | None = None,
        code: str = "SCRIPT_CALL_FAILED",
        details: dict[str, Any] | None = None,
        original_code: int | None = None,
    ):
        self.context = context
        self.reason = message if reason is None else reason
        details = dict(details or {})
        details.setdefault("context", context)
        super().__init__(message, code, details, original_code or 300)

    @classmethod
    def from_exception(cls, exc: BaseException, context: str) -> "ScriptCallFailure":
        """Build a failure for ``exc`` raised while calling ``context``."""
        if isinstance(exc, ScriptCallFailure):
            reason = exc.reason
        else:
            reason = str(exc) or type(exc).__name__
        return cls(f"Error calling method '{context}': {reason}", context=context, reason=reason)


class MarshalError(BridgeError, TypeError):
    """
    A value could not be converted between script and native representation.

    Raised when an argument or return value does not match the declared
    native type. Propagates unchanged through dispatch.
    """

    def __init__(
        self,
        message: str,
        code: str = "MARSHAL_ERROR",
        details: dict[str, Any] | None = None,
        original_code: int | None = None,
    ):
        super().__init__(message, code, details, original_code or 400)


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(BridgeError, ValueError):
    """
    Invalid parameter value.

    This exception inherits from both BridgeError and ValueError, so both work::

        except scriptbridge.BridgeError:   # catches all scriptbridge errors
        except ValueError:                 # catches validation errors (Pythonic)
    """

    def __init__(
        self,
        message: str,
        code: str = "INVALID_ARGUMENT",
        details: dict[str, Any] | None = None,
        original_code: int | None = None,
    ):
        super().__init__(message, code, details, original_code or 901)
