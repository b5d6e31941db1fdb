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
"""

from .exceptions import (
    AlreadyDestroyed,
    BridgeError,
    InvariantViolation,
    MarshalError,
    PermissionDenied,
    ScriptCallFailure,
    ValidationError,
)

__all__ = [
    # Base
    "BridgeError",
    # Lifecycle
    "InvariantViolation",
    "AlreadyDestroyed",
    "PermissionDenied",
    # Dispatch
    "ScriptCallFailure",
    "MarshalError",
    # Validation
    "ValidationError",
]
