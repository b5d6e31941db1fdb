"""
Value marshaling between native and script representation.

Also provides the callable introspection the dispatch layer needs: the
declared positional argument count of a callable and the decomposition of a
bound method into receiver and function.
"""

from __future__ import annotations

import inspect
import operator
from collections.abc import Callable
from typing import Any

from .exceptions import MarshalError
from .native import NativeObject, TypeSpec

__all__ = ["Heap", "ValueMarshaler", "marshaler", "argument_count", "decompose"]


class Heap:
    """
    Scratch area for the temporaries of one call.

    Values that need storage outliving a conversion (by-reference values) are
    pushed here. The heap is cleared when the ``with`` block ends.
    """

    def __init__(self) -> None:
        self._objects: list[Any] = []

    def push(self, obj: Any) -> Any:
        self._objects.append(obj)
        return obj

    def empty(self) -> bool:
        return not self._objects

    def clear(self) -> None:
        self._objects.clear()

    def __len__(self) -> int:
        return len(self._objects)

    def __enter__(self) -> Heap:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.clear()


def argument_count(func: Callable[..., Any]) -> int | None:
    """
    Number of positional arguments ``func`` declares.

    A bound method's receiver is not counted. Returns None when the count is
    unknown (builtins, callable objects) or unbounded (``*args``); such
    callables receive all available arguments.
    """
    code = getattr(func, "__code__", None)
    if code is None:
        return None
    if code.co_flags & inspect.CO_VARARGS:
        return None
    count = code.co_argcount
    if getattr(func, "__self__", None) is not None:
        count -= 1
    return max(count, 0)


def decompose(func: Any) -> tuple[Any, Callable[..., Any]] | None:
    """Split a bound method into ``(receiver, function)``; None for other callables."""
    if inspect.ismethod(func):
        return func.__self__, func.__func__
    return None


class ValueMarshaler:
    """
    Converts values according to a :class:`~scriptbridge.native.TypeSpec`.

    ``to_script`` turns a native value into the script value handed to script
    code; native objects become their script wrappers. ``to_native`` checks
    and converts a script value into the native representation; wrappers are
    replaced by their native handles.
    """

    def to_script(self, spec: TypeSpec, value: Any, heap: Heap) -> Any:
        if spec.kind in ("void", "any"):
            return None if spec.kind == "void" else value
        if spec.kind == "object":
            return self._object_to_script(spec, value)
        return self._convert_scalar(spec, value)

    def to_native(self, spec: TypeSpec, value: Any, heap: Heap) -> Any:
        if spec.kind == "void":
            return None
        if spec.kind == "any":
            return value
        if spec.kind == "object":
            return self._object_to_native(spec, value)
        converted = self._convert_scalar(spec, value)
        if spec.ref:
            # a reference needs storage that outlives the conversion
            heap.push(converted)
        return converted

    def _convert_scalar(self, spec: TypeSpec, value: Any) -> Any:
        if value is None:
            raise MarshalError(f"None is not a valid {spec} value", details={"type": str(spec)})
        try:
            if spec.kind == "int":
                return operator.index(value)
            if spec.kind == "float":
                if isinstance(value, (str, bytes)):
                    raise TypeError(type(value).__name__)
                return float(value)
            if spec.kind == "bool":
                return bool(value)
            if spec.kind == "str":
                if not isinstance(value, str):
                    raise TypeError(type(value).__name__)
                return value
        except (TypeError, ValueError) as exc:
            raise MarshalError(
                f"Cannot convert {type(value).__name__} to {spec}",
                details={"type": str(spec), "value_type": type(value).__name__},
            ) from exc
        raise MarshalError(f"Unsupported type {spec}")  # pragma: no cover - kinds are validated

    def _object_to_script(self, spec: TypeSpec, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, NativeObject):
            raise MarshalError(
                f"Expected a native object for {spec}, got {type(value).__name__}",
                details={"type": str(spec)},
            )
        from .wrapper import wrap_handle

        return wrap_handle(value, const_ref=spec.const)

    def _object_to_native(self, spec: TypeSpec, value: Any) -> Any:
        if value is None:
            return None

        from .wrapper import NativeProxy

        if isinstance(value, NativeProxy):
            handle = value.native_handle()
        elif isinstance(value, NativeObject):
            handle = value
        else:
            raise MarshalError(
                f"Expected {spec}, got {type(value).__name__}",
                details={"type": str(spec), "value_type": type(value).__name__},
            )
        if spec.cls is not None and not handle.cls_decl.is_derived_from(spec.cls):
            raise MarshalError(
                f"Expected {spec}, got {handle.cls_decl.name}",
                details={"type": str(spec), "value_type": handle.cls_decl.name},
            )
        return handle


# Shared stateless instance
marshaler = ValueMarshaler()
