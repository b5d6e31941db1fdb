"""
Signal relays: multi-subscriber broadcast of native events to script code.

A relay is registered as the handler of one event on one native handle.
When native code fires the event, every subscriber is called in registration
order. Subscribers may declare fewer parameters than the event provides; they
receive the leading arguments only.

Example:
    >>> relay = SignalRelay(widget_clicked, context="Widget.clicked")
    >>> relay.add(lambda: print("clicked"))
    >>> relay.add(on_clicked)              # on_clicked(x, y)
    >>> relay.broadcast((10, 20))
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from ._logging import scoped_logger
from .callbacks import CallbackFunction
from .exceptions import InvariantViolation
from .marshaling import Heap, ValueMarshaler, argument_count, marshaler
from .runtime import ScriptRuntime

if TYPE_CHECKING:
    from .native import MethodDescriptor

__all__ = ["SignalRelay"]

logger = scoped_logger("signal")


class SignalRelay:
    """
    Ordered subscriber list of one native event.

    Subscribers are unique by effective identity: adding a callable that is
    equal to an existing subscriber (same function, same receiver) moves it to
    the end of the list instead of adding it twice.

    Args:
        method: The event.
        context: Calling context used in error messages (``"Class.event"``).
    """

    def __init__(
        self,
        method: MethodDescriptor,
        context: str = "",
        values: ValueMarshaler | None = None,
    ):
        self._method = method
        self._context = context or method.qualified_name
        self._values = values or marshaler
        self._cbfuncs: list[CallbackFunction] = []

    @property
    def method(self) -> MethodDescriptor:
        return self._method

    @property
    def context(self) -> str:
        return self._context

    def add(self, func: Callable[..., Any]) -> None:
        """Subscribe ``func``; an equal subscriber is moved to the end."""
        self.remove(func)
        self._cbfuncs.append(CallbackFunction(func))

    def remove(self, func: Callable[..., Any]) -> None:
        """Unsubscribe the first subscriber equal to ``func`` (no-op if none)."""
        wanted = CallbackFunction(func)
        for i, cbfunc in enumerate(self._cbfuncs):
            if cbfunc == wanted:
                del self._cbfuncs[i]
                return

    def clear(self) -> None:
        self._cbfuncs.clear()

    def assign(self, other: SignalRelay) -> None:
        """Replace the subscribers with those of ``other``."""
        if other is self:
            return
        self._cbfuncs = list(other._cbfuncs)

    def subscribers(self) -> list[Callable[..., Any]]:
        """The live subscribers as callables, in registration order."""
        funcs = (cbfunc.resolve() for cbfunc in self._cbfuncs)
        return [func for func in funcs if func is not None]

    def __contains__(self, func: object) -> bool:
        if not callable(func):
            return False
        wanted = CallbackFunction(func)
        return any(cbfunc == wanted for cbfunc in self._cbfuncs)

    def __len__(self) -> int:
        return len(self._cbfuncs)

    def broadcast(self, args: Sequence[Any]) -> Any:
        """
        Call every subscriber with the native event arguments.

        Each subscriber receives as many leading arguments as it declares
        positional parameters (all of them when that cannot be determined).
        Subscribers whose receiver has expired are skipped.

        Returns:
            The last called subscriber's result converted to the event's
            return type, or the type's default if nobody was called.

        Raises
        ------
            ScriptCallFailure: If a subscriber raised; the remaining
                subscribers are not called.
            MarshalError: If an argument or the result cannot be converted.
        """
        meth = self._method
        default = meth.ret.default_value()
        if not self._cbfuncs:
            return default

        runtime = ScriptRuntime.current()
        if runtime is None:
            logger.warning(
                "Event fired without a script runtime, dropped",
                extra={"event": self._context, "subscribers": len(self._cbfuncs)},
            )
            return default

        ret_heap = Heap()
        native = default
        with runtime.execute(self._context), Heap() as heap:
            argv = [
                self._values.to_script(arg.type, value, heap)
                for arg, value in zip(meth.args, args)
            ]
            called = False
            result = None
            for cbfunc in list(self._cbfuncs):
                func = cbfunc.resolve()
                if func is None:
                    continue
                count = argument_count(func)
                if count is None or count >= len(argv):
                    result = func(*argv)
                else:
                    result = func(*argv[:count])
                called = True

            if called:
                native = self._values.to_native(meth.ret, result, ret_heap)

        if not ret_heap.empty():
            raise InvariantViolation(
                f"Event '{self._context}' left {len(ret_heap)} temporary object(s) behind",
                code="TEMPORARIES_LEAKED",
                details={"context": self._context, "type": str(meth.ret)},
            )
        return native

    def __repr__(self) -> str:
        return f"<SignalRelay {self._context} subscribers={len(self._cbfuncs)}>"
