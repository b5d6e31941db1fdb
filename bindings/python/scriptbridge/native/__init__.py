"""
Reflected native object model.

Describes native classes and their handles at the boundary the bridge
consumes: class descriptors with factory/destroy operations, overridable
methods and events, and the per-handle ownership ledger of managed objects.
"""

from .classes import Callback, ClassDescriptor, ClassRegistry, MethodDescriptor, NativeObject
from .events import Event, ObjectLedger, StatusEvent
from .types import ANY, BOOL, FLOAT, INT, STR, VOID, ArgSpec, TypeSpec

__all__ = [
    "Callback",
    "ClassDescriptor",
    "ClassRegistry",
    "MethodDescriptor",
    "NativeObject",
    "Event",
    "ObjectLedger",
    "StatusEvent",
    "ArgSpec",
    "TypeSpec",
    "ANY",
    "BOOL",
    "FLOAT",
    "INT",
    "STR",
    "VOID",
]
