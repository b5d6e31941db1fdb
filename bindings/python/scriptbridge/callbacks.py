"""
Native to script dispatch.

A :class:`CallbackFunction` references a script callable without creating a
reference cycle: bound methods are taken apart into a weak reference to the
receiver and a strong reference to the function. When the receiver is gone
the callback simply becomes unavailable.

A :class:`Callee` is the dispatch table of one bound object. Native code
reaches it through the :class:`~scriptbridge.native.Callback` slots installed
on the handle's virtual methods.
"""

from __future__ import annotations

import types
import weakref
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from ._logging import scoped_logger
from .exceptions import InvariantViolation
from .marshaling import Heap, ValueMarshaler, decompose, marshaler
from .native import Callback
from .runtime import ScriptRuntime

if TYPE_CHECKING:
    from .bound import BoundObject
    from .native import MethodDescriptor, NativeObject

__all__ = ["CallbackFunction", "Callee"]

logger = scoped_logger("dispatch")


class CallbackFunction:
    """
    A cycle-safe reference to a script callable.

    Args:
        func: Plain callable or bound method.
        method: The native method this callable implements (dispatch tables)
            or None (signal subscribers).
    """

    __slots__ = ("_method", "_callable", "_weak_self", "_class")

    def __init__(self, func: Callable[..., Any] | None, method: MethodDescriptor | None = None):
        self._method = method
        self._weak_self: weakref.ref | None = None
        self._class: type | None = None
        self._callable = func

        parts = decompose(func)
        if parts is not None:
            receiver, function = parts
            try:
                self._weak_self = weakref.ref(receiver)
            except TypeError:
                # receiver does not support weak references: keep the method
                return
            self._callable = function
            self._class = type(receiver)

    @property
    def method(self) -> MethodDescriptor | None:
        return self._method

    @property
    def is_instance_method(self) -> bool:
        """True for a decomposed bound method."""
        return self._callable is not None and self._weak_self is not None

    @property
    def declaring_class(self) -> type | None:
        """Class of the receiver at decomposition time."""
        return self._class

    @property
    def expired(self) -> bool:
        return self._weak_self is not None and self._weak_self() is None

    def receiver(self) -> Any:
        """The bound receiver, or None if expired or not an instance method."""
        return self._weak_self() if self._weak_self is not None else None

    def resolve(self) -> Callable[..., Any] | None:
        """An invokable callable, or None if the receiver has expired."""
        if self._weak_self is not None:
            receiver = self._weak_self()
            if receiver is None:
                return None
            return types.MethodType(self._callable, receiver)
        return self._callable

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CallbackFunction):
            return NotImplemented
        if self.is_instance_method != other.is_instance_method:
            return False
        if self._weak_self is not None and self.receiver() is not other.receiver():
            return False
        return _same_callable(self._callable, other._callable)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        name = getattr(self._callable, "__qualname__", repr(self._callable))
        if self._weak_self is None:
            return f"CallbackFunction({name})"
        state = "expired" if self.expired else "bound"
        return f"CallbackFunction({name}, {state})"


def _same_callable(a: Any, b: Any) -> bool:
    # bound methods kept whole are recreated on every attribute access
    if isinstance(a, types.MethodType) and isinstance(b, types.MethodType):
        return a.__self__ is b.__self__ and a.__func__ is b.__func__
    return a is b


class Callee:
    """
    Dispatch table of one bound object.

    Entries are addressed by the integer id handed out on installation; the
    native side stores that id in the method's callback slot.
    """

    def __init__(self, owner: BoundObject, values: ValueMarshaler | None = None):
        self._owner = weakref.ref(owner)
        self._cls_name = owner.cls_decl.name if owner.cls_decl is not None else "?"
        self._values = values or marshaler
        self._cbfuncs: list[CallbackFunction] = []
        self._index: dict[MethodDescriptor, int] = {}

    @property
    def owner(self) -> BoundObject | None:
        return self._owner()

    def add_callback(self, cbfunc: CallbackFunction) -> int:
        self._cbfuncs.append(cbfunc)
        return len(self._cbfuncs) - 1

    def install(self, meth: MethodDescriptor, cbfunc: CallbackFunction, handle: NativeObject) -> int:
        """Add ``cbfunc`` and route native calls of ``meth`` on ``handle`` to it."""
        cb_id = self.add_callback(cbfunc)
        self._index[meth] = cb_id
        meth.set_callback(handle, Callback(cb_id, self))
        return cb_id

    def uninstall(self, handle: NativeObject) -> None:
        """Reset every callback slot installed on ``handle`` and clear the table."""
        for meth in self._index:
            meth.set_callback(handle, None)
        self.clear_callbacks()

    def clear_callbacks(self) -> None:
        self._cbfuncs.clear()
        self._index.clear()

    def lookup(self, meth: MethodDescriptor) -> CallbackFunction | None:
        """The callback function installed for ``meth``."""
        cb_id = self._index.get(meth)
        return self._cbfuncs[cb_id] if cb_id is not None else None

    def methods(self) -> tuple[MethodDescriptor, ...]:
        return tuple(self._index)

    def __len__(self) -> int:
        return len(self._cbfuncs)

    def call(self, id: int, args: Sequence[Any]) -> Any:
        """
        Invoke entry ``id`` with native arguments; returns the native result.

        An expired receiver is not an error: nothing is called and the
        method's default value is returned.

        Raises
        ------
            ScriptCallFailure: If the script callable raised.
            MarshalError: If an argument or the result cannot be converted.
            InvariantViolation: If the callback left temporaries behind.
        """
        cbfunc = self._cbfuncs[id]
        meth = cbfunc.method
        func = cbfunc.resolve()
        if func is None:
            logger.debug(
                "Receiver expired, returning default",
                extra={"cls": self._cls_name, "method": meth.name},
            )
            return meth.ret.default_value()

        runtime = ScriptRuntime.current()
        if runtime is None:
            logger.warning(
                "Virtual call without a script runtime, returning default",
                extra={"cls": self._cls_name, "method": meth.name},
            )
            return meth.ret.default_value()

        context = f"{self._cls_name}.{meth.name}"
        ret_heap = Heap()
        with runtime.execute(context), Heap() as heap:
            argv = [
                self._values.to_script(arg.type, value, heap)
                for arg, value in zip(meth.args, args)
            ]
            result = func(*argv)
            native = self._values.to_native(meth.ret, result, ret_heap)

        # a script callback must not leave temporary objects
        if not ret_heap.empty():
            raise InvariantViolation(
                f"Callback '{context}' left {len(ret_heap)} temporary object(s) behind",
                code="TEMPORARIES_LEAKED",
                details={"context": context, "type": str(meth.ret)},
            )
        return native
