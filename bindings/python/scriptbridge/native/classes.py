"""
Reflected native classes, methods and object handles.

This is the class registry the bridge consumes: it describes native classes
(their base, whether they are managed, their overridable methods and events)
and creates and destroys :class:`NativeObject` handles. Native code is plain
Python here, but it follows native rules: a handle lives until its class
destroys it, independent of any script wrapper.
"""

from __future__ import annotations

import weakref
from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import TYPE_CHECKING, Any

from .._logging import scoped_logger
from ..exceptions import InvariantViolation, ValidationError
from .events import ObjectLedger
from .types import VOID, ArgSpec, TypeSpec

if TYPE_CHECKING:
    from ..bound import BoundObject
    from ..callbacks import Callee

__all__ = [
    "Callback",
    "MethodDescriptor",
    "ClassDescriptor",
    "NativeObject",
    "ClassRegistry",
]

logger = scoped_logger("native")


class Callback:
    """Callback slot value: routes a virtual call to entry ``id`` of a callee."""

    __slots__ = ("id", "callee")

    def __init__(self, id: int, callee: Callee):
        self.id = id
        self.callee = callee

    def __call__(self, args: Sequence[Any]) -> Any:
        return self.callee.call(self.id, args)

    def __repr__(self) -> str:
        return f"Callback(id={self.id})"


class MethodDescriptor:
    """
    A native method, virtual method or event of a class.

    Args:
        name: Script-visible name.
        args: Argument descriptions.
        ret: Return type.
        impl: Native (base) implementation, called as ``impl(handle, *args)``.
            None returns the return type's default value.
        virtual: Overridable from script code.
        event: The method is an event scripts can subscribe to.
        const: Callable through const references.
    """

    def __init__(
        self,
        name: str,
        args: Iterable[ArgSpec] = (),
        ret: TypeSpec = VOID,
        impl: Callable[..., Any] | None = None,
        *,
        virtual: bool = False,
        event: bool = False,
        const: bool = False,
        doc: str = "",
    ):
        if virtual and event:
            raise ValidationError(f"method {name!r} cannot be both virtual and an event")
        self.name = name
        self.args = tuple(args)
        self.ret = ret
        self.impl = impl
        self.virtual = virtual
        self.event = event
        self.const = const
        self.doc = doc
        self.owner: ClassDescriptor | None = None

    @property
    def qualified_name(self) -> str:
        owner = self.owner.name if self.owner is not None else "?"
        return f"{owner}.{self.name}"

    def set_callback(self, handle: NativeObject, callback: Callback | None) -> None:
        """Install (or with None, remove) the script callback of this virtual method."""
        handle._set_callback(self, callback)

    def add_handler(self, handle: NativeObject, handler: Any) -> None:
        """Register an event handler (an object with ``broadcast(args)``)."""
        handle._add_handler(self, handler)

    def remove_handler(self, handle: NativeObject, handler: Any) -> None:
        handle._remove_handler(self, handler)

    def invoke_base(self, handle: NativeObject, args: Sequence[Any]) -> Any:
        """Call the native implementation, bypassing script overrides."""
        if self.impl is None:
            return self.ret.default_value()
        return self.impl(handle, *args)

    def __repr__(self) -> str:
        kind = "event" if self.event else "virtual" if self.virtual else "method"
        return f"<{kind} {self.qualified_name}>"


class ClassDescriptor:
    """
    A reflected native class.

    Args:
        name: Class name.
        methods: Methods declared by this class (not inherited ones).
        base: Base class descriptor.
        managed: Instances carry an :class:`ObjectLedger` announcing their
            destruction and ownership changes.
        factory: Creates the handle, called as ``factory(descriptor)``.
            Defaults to :class:`NativeObject`.
    """

    def __init__(
        self,
        name: str,
        methods: Iterable[MethodDescriptor] = (),
        *,
        base: ClassDescriptor | None = None,
        managed: bool = False,
        factory: Callable[[ClassDescriptor], NativeObject] | None = None,
    ):
        self.name = name
        self.base = base
        self._managed = managed
        self._factory = factory or NativeObject
        self._methods: dict[str, MethodDescriptor] = {}
        for meth in methods:
            self.add_method(meth)

    def add_method(self, meth: MethodDescriptor) -> MethodDescriptor:
        if meth.name in self._methods:
            raise ValidationError(f"{self.name} already declares {meth.name!r}")
        meth.owner = self
        self._methods[meth.name] = meth
        return meth

    def is_managed(self) -> bool:
        return self._managed

    def is_derived_from(self, other: ClassDescriptor) -> bool:
        cls: ClassDescriptor | None = self
        while cls is not None:
            if cls is other:
                return True
            cls = cls.base
        return False

    def methods(self) -> tuple[MethodDescriptor, ...]:
        """Methods declared by this class (excluding base classes)."""
        return tuple(self._methods.values())

    def callbacks(self) -> tuple[MethodDescriptor, ...]:
        """Overridable methods declared by this class."""
        return tuple(m for m in self._methods.values() if m.virtual)

    def events(self) -> tuple[MethodDescriptor, ...]:
        return tuple(m for m in self._methods.values() if m.event)

    def find_method(self, name: str) -> MethodDescriptor:
        """Look up a method by name, searching base classes too."""
        cls: ClassDescriptor | None = self
        while cls is not None:
            meth = cls._methods.get(name)
            if meth is not None:
                return meth
            cls = cls.base
        raise AttributeError(f"native class {self.name!r} has no method {name!r}")

    def create(self) -> NativeObject:
        handle = self._factory(self)
        logger.debug("Created native object", extra={"cls": self.name})
        return handle

    def destroy(self, handle: NativeObject) -> None:
        handle._destroy()
        logger.debug("Destroyed native object", extra={"cls": self.name})

    def ledger(self, handle: NativeObject, required: bool = True) -> ObjectLedger | None:
        """The ownership ledger of a managed object's handle."""
        if handle.ledger is None and required:
            raise InvariantViolation(f"{self.name} objects are not managed")
        return handle.ledger

    def __repr__(self) -> str:
        return f"<class {self.name}>"


class NativeObject:
    """
    Handle of a native object.

    ``call()`` is a native virtual call: it runs the installed script callback
    of a virtual method, or the native implementation when there is none.
    ``emit()`` fires an event to the registered handlers.
    """

    def __init__(self, cls_decl: ClassDescriptor):
        self._cls_decl = cls_decl
        self._ledger = ObjectLedger() if cls_decl.is_managed() else None
        self._callbacks: dict[MethodDescriptor, Callback] = {}
        self._handlers: dict[MethodDescriptor, list[Any]] = {}
        self._client: weakref.ref[BoundObject] | None = None
        self._destroyed = False

    @property
    def cls_decl(self) -> ClassDescriptor:
        return self._cls_decl

    @property
    def ledger(self) -> ObjectLedger | None:
        return self._ledger

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def call(self, name: str, *args: Any) -> Any:
        meth = self._cls_decl.find_method(name)
        self._check_alive(meth)
        if meth.virtual:
            callback = self._callbacks.get(meth)
            if callback is not None:
                return callback(args)
        return meth.invoke_base(self, args)

    def emit(self, name: str, *args: Any) -> Any:
        """Fire event ``name``; returns the last handler's result."""
        meth = self._cls_decl.find_method(name)
        self._check_alive(meth)
        result = meth.ret.default_value()
        for handler in list(self._handlers.get(meth, ())):
            result = handler.broadcast(args)
        return result

    def callback(self, meth: MethodDescriptor) -> Callback | None:
        return self._callbacks.get(meth)

    def handlers(self, meth: MethodDescriptor) -> tuple[Any, ...]:
        return tuple(self._handlers.get(meth, ()))

    def bound_object(self) -> BoundObject | None:
        """The bound object attached to this handle, if any."""
        return self._client() if self._client is not None else None

    def _set_bound_object(self, bound: BoundObject | None) -> None:
        self._client = weakref.ref(bound) if bound is not None else None

    def _check_alive(self, meth: MethodDescriptor) -> None:
        if self._destroyed:
            raise InvariantViolation(
                f"Calling {meth.qualified_name} on a destroyed native object",
                details={"cls": self._cls_decl.name},
            )

    def _set_callback(self, meth: MethodDescriptor, callback: Callback | None) -> None:
        if callback is None:
            self._callbacks.pop(meth, None)
        else:
            self._callbacks[meth] = callback

    def _add_handler(self, meth: MethodDescriptor, handler: Any) -> None:
        handlers = self._handlers.setdefault(meth, [])
        if handler not in handlers:
            handlers.append(handler)

    def _remove_handler(self, meth: MethodDescriptor, handler: Any) -> None:
        handlers = self._handlers.get(meth)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def _destroy(self) -> None:
        if self._destroyed:
            return
        # Listeners still see a live handle while being notified
        if self._ledger is not None:
            self._ledger.notify_destroyed()
        self._destroyed = True
        self._callbacks.clear()
        self._handlers.clear()
        self._client = None

    def __repr__(self) -> str:
        state = " destroyed" if self._destroyed else ""
        return f"<{self._cls_decl.name} native object at {id(self):#x}{state}>"


class ClassRegistry:
    """Name to class descriptor registry."""

    def __init__(self, classes: Iterable[ClassDescriptor] = ()):
        self._classes: dict[str, ClassDescriptor] = {}
        for cls_decl in classes:
            self.register(cls_decl)

    def register(self, cls_decl: ClassDescriptor) -> ClassDescriptor:
        if cls_decl.name in self._classes:
            raise ValidationError(f"class {cls_decl.name!r} is registered already")
        if cls_decl.base is not None and cls_decl.base.name not in self._classes:
            raise ValidationError(
                f"base class {cls_decl.base.name!r} of {cls_decl.name!r} must be registered first"
            )
        self._classes[cls_decl.name] = cls_decl
        return cls_decl

    def get(self, name: str) -> ClassDescriptor:
        try:
            return self._classes[name]
        except KeyError:
            raise ValidationError(f"unknown native class {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._classes

    def __iter__(self) -> Iterator[ClassDescriptor]:
        return iter(self._classes.values())

    def __len__(self) -> int:
        return len(self._classes)
