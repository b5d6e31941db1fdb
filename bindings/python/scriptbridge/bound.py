"""
Bound objects: the pairing of a script wrapper with a native handle.

Native objects and script objects follow different lifetime rules. Native
objects live until someone destroys them; script objects live as long as
they are referenced. A :class:`BoundObject` reconciles both:

- A *script-owned* object (``owned``) is destroyed together with its wrapper.
- A *native-owned* object keeps its wrapper alive through a retention in the
  :class:`~scriptbridge.runtime.ScriptRuntime` until native code destroys the
  object or hands it back.

Ownership changes only through :meth:`BoundObject.attach`,
:meth:`BoundObject.capture`, :meth:`BoundObject.release` and
:meth:`BoundObject.on_native_destroyed`. Once destroyed, a bound object
stays destroyed.
"""

from __future__ import annotations

import inspect
import weakref
from typing import TYPE_CHECKING, Any

from ._logging import scoped_logger
from .callbacks import CallbackFunction, Callee
from .exceptions import AlreadyDestroyed, InvariantViolation, PermissionDenied, ValidationError
from .native import StatusEvent
from .runtime import ScriptRuntime
from .signals import SignalRelay

if TYPE_CHECKING:
    from .native import ClassDescriptor, MethodDescriptor, NativeObject

__all__ = ["BoundObject", "StatusChangedListener"]

logger = scoped_logger("bound")


class StatusChangedListener:
    """
    Status listener subscribed to the ledger of a managed native object.

    Holds its bound object weakly so the native side never keeps a wrapper
    alive through its listener list.
    """

    __slots__ = ("_bound",)

    def __init__(self, bound: BoundObject):
        self._bound = weakref.ref(bound)

    def __call__(self, status: StatusEvent) -> None:
        bound = self._bound()
        if bound is not None:
            bound.object_status_changed(status)


class BoundObject:
    """
    Binding state of one script wrapper.

    Args:
        cls_decl: Native class the wrapper represents. None makes every
            lifecycle operation a no-op.
        wrapper: The script object. Its class is searched for overridden
            virtual methods and it is the object retained while the native
            side owns the handle. Held weakly.
    """

    def __init__(self, cls_decl: ClassDescriptor | None, wrapper: Any = None):
        self._cls_decl = cls_decl
        self._wrapper = weakref.ref(wrapper) if wrapper is not None else None
        self._handle: NativeObject | None = None
        self._owned = False
        self._const_ref = False
        self._destroyed = False
        self._can_destroy = False
        self._listener: StatusChangedListener | None = None
        self._retention: ScriptRuntime | None = None
        self._callee = Callee(self)
        self._signals: dict[MethodDescriptor, SignalRelay] = {}

    # =========================================================================
    # State
    # =========================================================================

    @property
    def cls_decl(self) -> ClassDescriptor | None:
        return self._cls_decl

    @property
    def handle(self) -> NativeObject | None:
        """The attached handle; None if detached (no lazy creation, see :meth:`obj`)."""
        return self._handle

    @property
    def owned(self) -> bool:
        """True if the script side owns the native object."""
        return self._owned

    @property
    def const_ref(self) -> bool:
        return self._const_ref

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def can_destroy(self) -> bool:
        return self._can_destroy

    @property
    def callee(self) -> Callee:
        return self._callee

    @property
    def retained(self) -> bool:
        """True while the runtime holds a retention on behalf of the native side."""
        return self._retention is not None

    def wrapper(self) -> Any:
        return self._wrapper() if self._wrapper is not None else None

    def _retention_target(self) -> Any:
        if self._wrapper is None:
            return self
        return self._wrapper()

    def _name(self) -> str:
        return self._cls_decl.name if self._cls_decl is not None else "?"

    # =========================================================================
    # Attach / Detach
    # =========================================================================

    def attach(
        self,
        handle: NativeObject,
        owned: bool,
        const_ref: bool = False,
        can_destroy: bool = False,
    ) -> None:
        """
        Attach a native handle.

        Installs the script overrides of virtual methods (script-owned objects
        only, natively created objects cannot have script overrides). For
        managed classes a status listener is subscribed and a handle that
        native code kept already becomes native-owned. A native-owned object
        retains its wrapper.

        Raises
        ------
            InvariantViolation: If this object or ``handle`` is attached
                already, or ``handle`` was destroyed.
            ValidationError: If ``handle`` is not an instance of the class.
        """
        cls_decl = self._cls_decl
        if cls_decl is None:
            return
        if self._handle is not None:
            raise InvariantViolation(f"{cls_decl.name} object is attached already")
        if handle is None:
            raise ValidationError("cannot attach a null handle")
        if handle.destroyed:
            raise InvariantViolation(f"cannot attach a destroyed {handle.cls_decl.name} object")
        if handle.bound_object() is not None:
            raise InvariantViolation(
                f"{handle.cls_decl.name} object is bound to another script object already"
            )
        if not handle.cls_decl.is_derived_from(cls_decl):
            raise ValidationError(
                f"cannot attach a {handle.cls_decl.name} object to a {cls_decl.name} wrapper"
            )

        runtime = ScriptRuntime.get()

        self._handle = handle
        self._owned = owned
        self._const_ref = const_ref
        self._can_destroy = can_destroy
        handle._set_bound_object(self)

        if owned:
            self._install_callbacks(runtime, handle)

        if cls_decl.is_managed():
            ledger = cls_decl.ledger(handle)
            # kept from inside the native constructor
            if ledger.already_kept():
                self._owned = False
            self._listener = StatusChangedListener(self)
            ledger.status_changed.add(self._listener)

        if not self._owned:
            self._retain(runtime)

        logger.debug(
            "Attached native object",
            extra={"cls": cls_decl.name, "owned": self._owned, "const": const_ref},
        )

    def _install_callbacks(self, runtime: ScriptRuntime, handle: NativeObject) -> None:
        wrapper = self.wrapper()
        if wrapper is None:
            return
        script_cls = type(wrapper)
        for meth in runtime.callback_cache.callbacks_for(script_cls, self._cls_decl):
            attr = inspect.getattr_static(script_cls, meth.name)
            getter = getattr(type(attr), "__get__", None)
            func = getter(attr, wrapper, script_cls) if getter is not None else attr
            self._callee.install(meth, CallbackFunction(func, meth), handle)

    def detach(self) -> None:
        """
        Detach the handle (idempotent).

        Unsubscribes the status listener unless the object is destroyed,
        removes the installed callbacks and event handlers and resets the
        ownership flags. The retention is not touched.
        """
        handle = self._handle
        if handle is None:
            return

        if self._listener is not None:
            if not self._destroyed and handle.ledger is not None:
                handle.ledger.status_changed.remove(self._listener)
            self._listener = None

        self._callee.uninstall(handle)
        for meth, relay in self._signals.items():
            meth.remove_handler(handle, relay)
        self._signals.clear()

        if handle.bound_object() is self:
            handle._set_bound_object(None)

        self._handle = None
        self._const_ref = False
        self._owned = False
        self._can_destroy = False
        logger.debug("Detached native object", extra={"cls": self._name()})

    # =========================================================================
    # Destruction
    # =========================================================================

    def obj(self) -> NativeObject:
        """
        The native handle, created on first access.

        A lazily created object is script-owned and may be destroyed
        explicitly.

        Raises
        ------
            AlreadyDestroyed: If the object was destroyed before.
        """
        if self._handle is None:
            if self._destroyed:
                raise AlreadyDestroyed()
            if self._cls_decl is None:
                raise InvariantViolation("object has no native class")
            self.attach(self._cls_decl.create(), owned=True, const_ref=False, can_destroy=True)
        return self._handle

    def destroy(self) -> None:
        """
        Explicitly destroy the native object.

        An object that was never created is created first, so destroying it
        runs the native destructor exactly once.

        Raises
        ------
            PermissionDenied: If the attached object cannot be destroyed
                explicitly. The object stays attached.
            AlreadyDestroyed: If the object was destroyed before.
        """
        cls_decl = self._cls_decl
        if cls_decl is None:
            self._handle = None
            return

        if not self._can_destroy and self._handle is not None:
            raise PermissionDenied()

        if self._handle is None:
            if self._destroyed:
                raise AlreadyDestroyed()
            self._handle = cls_decl.create()
            self._handle._set_bound_object(self)
            self._owned = True

        handle = self._handle
        free = self._owned or self._can_destroy

        self.detach()
        if free:
            cls_decl.destroy(handle)
        self._destroyed = True
        logger.debug("Destroyed explicitly", extra={"cls": cls_decl.name, "freed": free})

        # may finalize the wrapper
        self._drop_retention()

    def on_native_destroyed(self) -> None:
        """
        Handle the destruction of the native object by native code.

        May run with no script runtime (interpreter teardown). The retention
        is then gone already and only the state is updated.
        """
        runtime = ScriptRuntime.current()
        prev_owned = self._owned

        self._destroyed = True
        self.detach()

        if runtime is None:
            logger.warning(
                "Native object destroyed without a script runtime",
                extra={"cls": self._name()},
            )
            self._retention = None
            return

        logger.debug("Native object destroyed", extra={"cls": self._name()})
        if not prev_owned:
            # may finalize the wrapper: no state access after this
            self._drop_retention()

    def finalize(self) -> None:
        """
        Tear down when the wrapper goes away.

        Destroys the native object if the script side owns it. Errors are
        logged, not raised: there is no caller to report them to.
        """
        try:
            prev_owned = self._owned
            prev_handle = self._handle
            self.detach()
            if self._cls_decl is not None and prev_handle is not None and prev_owned:
                self._cls_decl.destroy(prev_handle)
        except Exception as exc:
            logger.warning(
                "Caught exception in object finalizer: %s",
                exc,
                extra={"cls": self._name()},
            )
        self._destroyed = True

    # =========================================================================
    # Ownership
    # =========================================================================

    def capture(self) -> None:
        """Hand ownership to the native side (no-op if native-owned)."""
        if not self._owned:
            return
        self._owned = False
        self._retain(ScriptRuntime.get())
        logger.debug("Captured by native code", extra={"cls": self._name()})

    def keep(self) -> None:
        """
        Make native code the owner of the object.

        For managed objects this goes through the object's ledger so every
        wrapper of it is informed.
        """
        cls_decl = self._cls_decl
        if cls_decl is None:
            return
        handle = self.obj()
        if cls_decl.is_managed():
            cls_decl.ledger(handle).keep()
        else:
            self.capture()

    def release(self) -> None:
        """
        Make the script side the owner of the object.

        For managed objects the native claim recorded in the ledger is
        dropped. Releasing an object that is script-owned already, or not
        attached, does nothing.
        """
        cls_decl = self._cls_decl
        handle = self._handle
        if cls_decl is None or handle is None:
            logger.debug("Release of a detached object ignored", extra={"cls": self._name()})
            return
        if self._owned:
            logger.debug("Release of a script-owned object ignored", extra={"cls": self._name()})
            return
        if cls_decl.is_managed():
            cls_decl.ledger(handle).reclaim()
        self._take_ownership()

    def _take_ownership(self) -> None:
        if self._owned or self._handle is None:
            return
        self._owned = True
        logger.debug("Released by native code", extra={"cls": self._name()})
        # may finalize the wrapper
        self._drop_retention()

    def object_status_changed(self, status: StatusEvent) -> None:
        if status == StatusEvent.DESTROYED:
            self.on_native_destroyed()
        elif status == StatusEvent.KEEP:
            self.capture()
        elif status == StatusEvent.RELEASE:
            self._take_ownership()

    def _retain(self, runtime: ScriptRuntime) -> None:
        if self._retention is not None:
            return
        target = self._retention_target()
        if target is None:
            return
        runtime.retain(target)
        self._retention = runtime

    def _drop_retention(self) -> None:
        runtime = self._retention
        if runtime is None:
            return
        self._retention = None
        target = self._retention_target()
        if target is not None:
            runtime.unretain(target)

    # =========================================================================
    # Signals
    # =========================================================================

    def signal(self, meth: MethodDescriptor) -> SignalRelay:
        """
        The relay of event ``meth``, registered with the native object on
        first use.
        """
        relay = self._signals.get(meth)
        if relay is None:
            handle = self.obj()
            relay = SignalRelay(meth, context=f"{self._name()}.{meth.name}")
            meth.add_handler(handle, relay)
            self._signals[meth] = relay
        return relay

    def __repr__(self) -> str:
        if self._destroyed:
            state = "destroyed"
        elif self._handle is None:
            state = "detached"
        else:
            state = "owned" if self._owned else "native-owned"
        return f"<BoundObject {self._name()} {state}>"
