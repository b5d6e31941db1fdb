"""
Script-visible wrapper classes of native classes.

:func:`wrapper_class` turns a :class:`~scriptbridge.native.ClassDescriptor`
into a Python class. Native methods become forwarding stubs, events become
:class:`SignalProxy` properties. Script code subclasses these classes to
override virtual methods:

    >>> Shape = wrapper_class(shape_decl)
    >>> class Square(Shape):
    ...     def area(self):
    ...         return 42
    >>> sq = Square()
    >>> sq.native_handle().call("area")   # native virtual call
    42

The native object behind a wrapper is created on first access. It belongs to
the wrapper until :meth:`NativeProxy.keep` hands it to native code.
"""

from __future__ import annotations

import types
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, ClassVar

from ._logging import scoped_logger
from .bound import BoundObject
from .exceptions import InvariantViolation, ValidationError
from .marshaling import Heap, marshaler

if TYPE_CHECKING:
    from .native import ClassDescriptor, MethodDescriptor, NativeObject
    from .signals import SignalRelay

__all__ = ["NativeProxy", "SignalProxy", "wrapper_class", "bind_registry", "wrap_handle"]

logger = scoped_logger("bound")


class NativeProxy:
    """
    Base class of all wrapper classes.

    Native method names must not collide with the methods defined here.
    """

    _cls_decl: ClassVar[ClassDescriptor | None] = None

    def __new__(cls, *args: Any, **kwargs: Any) -> NativeProxy:
        self = super().__new__(cls)
        self._bound = BoundObject(cls._cls_decl, self)
        return self

    @classmethod
    def _adopt(
        cls, handle: NativeObject, owned: bool = False, const_ref: bool = False
    ) -> NativeProxy:
        """Wrap an existing native object; ``__init__`` is not run."""
        self = cls.__new__(cls)
        self._bound.attach(handle, owned=owned, const_ref=const_ref, can_destroy=False)
        return self

    def __del__(self) -> None:
        bound = self.__dict__.get("_bound")
        if bound is not None:
            bound.finalize()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def native_handle(self) -> NativeObject:
        """
        The native object, created on first access.

        Raises
        ------
            AlreadyDestroyed: If the object was destroyed.
        """
        return self._bound.obj()

    def destroy(self) -> None:
        """
        Destroy the native object now.

        Raises
        ------
            PermissionDenied: If the object belongs to native code.
            AlreadyDestroyed: If the object was destroyed before.
        """
        self._bound.destroy()

    def destroyed(self) -> bool:
        return self._bound.destroyed

    def is_const_object(self) -> bool:
        """True if this wrapper is a const reference (only const methods can be called)."""
        return self._bound.const_ref

    def keep(self) -> None:
        """Hand ownership of the native object to native code."""
        self._bound.keep()

    def release(self) -> None:
        """Take ownership of the native object back from native code."""
        self._bound.release()

    # =========================================================================
    # Native Calls
    # =========================================================================

    def _call_native(self, meth: MethodDescriptor, args: tuple[Any, ...]) -> Any:
        bound = self._bound
        handle = bound.obj()
        if bound.const_ref and not meth.const:
            raise InvariantViolation(
                f"Cannot call non-const method {meth.qualified_name} through a const reference",
                details={"cls": handle.cls_decl.name, "method": meth.name},
            )
        if len(args) > len(meth.args):
            raise ValidationError(
                f"{meth.qualified_name}() takes {len(meth.args)} argument(s), got {len(args)}",
                details={"method": meth.qualified_name},
            )

        with Heap() as heap:
            native_args = []
            for i, arg in enumerate(meth.args):
                if i < len(args):
                    value = args[i]
                elif arg.has_default:
                    value = arg.default
                else:
                    raise ValidationError(
                        f"{meth.qualified_name}() missing argument {arg.name!r}",
                        details={"method": meth.qualified_name, "argument": arg.name},
                    )
                native_args.append(marshaler.to_native(arg.type, value, heap))
            result = meth.invoke_base(handle, native_args)
            return marshaler.to_script(meth.ret, result, heap)

    def __repr__(self) -> str:
        return f"<{type(self).__qualname__} {self._bound!r}>"


def _method_stub(meth: MethodDescriptor) -> Callable[..., Any]:
    def stub(self: NativeProxy, *args: Any) -> Any:
        return self._call_native(meth, args)

    stub.__name__ = meth.name
    stub.__qualname__ = meth.qualified_name
    stub.__doc__ = meth.doc or None
    stub.__native_stub__ = True  # type: ignore[attr-defined]
    return stub


class SignalProxy:
    """
    Script view of one event of one object.

    Example:
        >>> widget.clicked += on_click
        >>> widget.clicked -= on_click
        >>> widget.clicked = on_other_click   # replaces all subscribers
        >>> widget.clicked = None             # removes all subscribers
    """

    __slots__ = ("_bound", "_meth")

    def __init__(self, bound: BoundObject, meth: MethodDescriptor):
        self._bound = bound
        self._meth = meth

    @property
    def relay(self) -> SignalRelay:
        return self._bound.signal(self._meth)

    def add(self, func: Callable[..., Any]) -> None:
        _check_callable(func, self._meth)
        self.relay.add(func)

    def remove(self, func: Callable[..., Any]) -> None:
        self.relay.remove(func)

    def clear(self) -> None:
        self.relay.clear()

    def __iadd__(self, func: Callable[..., Any]) -> SignalProxy:
        self.add(func)
        return self

    def __isub__(self, func: Callable[..., Any]) -> SignalProxy:
        self.remove(func)
        return self

    def __contains__(self, func: object) -> bool:
        return func in self.relay

    def __len__(self) -> int:
        return len(self.relay)

    def __repr__(self) -> str:
        return f"<SignalProxy {self._meth.qualified_name}>"


def _check_callable(func: object, meth: MethodDescriptor) -> None:
    if not callable(func):
        raise ValidationError(
            f"Event {meth.qualified_name} needs a callable, got {type(func).__name__}",
            details={"event": meth.qualified_name},
        )


class _EventProperty:
    """Class attribute giving access to an event's :class:`SignalProxy`."""

    def __init__(self, meth: MethodDescriptor):
        self._meth = meth
        self.__doc__ = meth.doc or None

    def __get__(self, obj: NativeProxy | None, owner: type | None = None) -> Any:
        if obj is None:
            return self
        return SignalProxy(obj._bound, self._meth)

    def __set__(self, obj: NativeProxy, value: Any) -> None:
        relay = obj._bound.signal(self._meth)
        if isinstance(value, SignalProxy):
            # "+=" and "-=" assign the proxy back
            relay.assign(value.relay)
        elif value is None:
            relay.clear()
        else:
            _check_callable(value, self._meth)
            relay.clear()
            relay.add(value)


_RESERVED = frozenset(name for name in vars(NativeProxy) if not name.startswith("__"))

_wrapper_classes: dict[ClassDescriptor, type[NativeProxy]] = {}


def wrapper_class(cls_decl: ClassDescriptor) -> type[NativeProxy]:
    """
    The wrapper class of ``cls_decl`` (built once, then reused).

    The wrapper of the base class is built first and becomes the base of the
    new class.

    Raises
    ------
        ValidationError: If a native method name collides with a
            :class:`NativeProxy` method or is private.
    """
    cls = _wrapper_classes.get(cls_decl)
    if cls is not None:
        return cls

    base = wrapper_class(cls_decl.base) if cls_decl.base is not None else NativeProxy
    namespace: dict[str, Any] = {
        "_cls_decl": cls_decl,
        "__doc__": f"Script wrapper of native class {cls_decl.name}.",
        "__module__": __name__,
    }
    for meth in cls_decl.methods():
        if meth.name in _RESERVED or meth.name.startswith("_"):
            raise ValidationError(
                f"Method name {meth.qualified_name} is reserved",
                details={"cls": cls_decl.name, "method": meth.name},
            )
        namespace[meth.name] = _EventProperty(meth) if meth.event else _method_stub(meth)

    cls = type(cls_decl.name, (base,), namespace)
    _wrapper_classes[cls_decl] = cls
    logger.debug("Built wrapper class", extra={"cls": cls_decl.name})
    return cls


def bind_registry(registry: Iterable[ClassDescriptor]) -> types.SimpleNamespace:
    """Wrapper classes of all classes of ``registry``, as attributes by class name."""
    return types.SimpleNamespace(**{c.name: wrapper_class(c) for c in registry})


def wrap_handle(handle: NativeObject, const_ref: bool = False) -> NativeProxy:
    """
    The script object of a native object.

    Returns the attached wrapper if there is one. Otherwise the handle is
    adopted by a new wrapper that does not own it.

    Raises
    ------
        InvariantViolation: If the handle is bound to an object without a
            live wrapper.
    """
    bound = handle.bound_object()
    if bound is not None:
        wrapper = bound.wrapper()
        if wrapper is None:
            raise InvariantViolation(
                f"{handle.cls_decl.name} object is bound without a script wrapper"
            )
        return wrapper
    return wrapper_class(handle.cls_decl)._adopt(handle, owned=False, const_ref=const_ref)
