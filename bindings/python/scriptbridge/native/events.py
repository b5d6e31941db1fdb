"""Native-side events and the per-handle ownership ledger."""

from __future__ import annotations

import contextlib
from collections.abc import Callable
from enum import IntEnum
from typing import Any

__all__ = ["StatusEvent", "Event", "ObjectLedger"]


class StatusEvent(IntEnum):
    """Status change delivered to the listeners of a managed native object."""

    DESTROYED = 0
    KEEP = 1
    RELEASE = 2


class Event:
    """
    Ordered listener list of a native event.

    A listener is added at most once. Firing iterates over a snapshot so
    listeners may unsubscribe themselves (or others) while being notified.
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[..., Any]] = []

    def add(self, listener: Callable[..., Any]) -> None:
        """Subscribe ``listener`` (no-op if already subscribed)."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove(self, listener: Callable[..., Any]) -> None:
        """Unsubscribe ``listener`` (no-op if not subscribed)."""
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    def clear(self) -> None:
        self._listeners.clear()

    def __call__(self, *args: Any) -> None:
        for listener in list(self._listeners):
            listener(*args)

    def __contains__(self, listener: object) -> bool:
        return listener in self._listeners

    def __len__(self) -> int:
        return len(self._listeners)


class ObjectLedger:
    """
    Shared ownership record of one managed native object.

    Native code calls :meth:`keep` to claim the object (script wrappers turn
    into non-owning references) and :meth:`release` to hand it back. The
    object's destruction is announced through :attr:`status_changed`.
    """

    def __init__(self) -> None:
        self._kept = False
        self.status_changed = Event()

    def already_kept(self) -> bool:
        """True if native code claimed the object, possibly before any wrapper existed."""
        return self._kept

    def keep(self) -> None:
        self._kept = True
        self.status_changed(StatusEvent.KEEP)

    def release(self) -> None:
        self._kept = False
        self.status_changed(StatusEvent.RELEASE)

    def reclaim(self) -> None:
        """Script side takes the object back: drop the native claim without notifying."""
        self._kept = False

    def notify_destroyed(self) -> None:
        self.status_changed(StatusEvent.DESTROYED)
