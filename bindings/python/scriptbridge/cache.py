"""
Class callback cache.

Finding the virtual methods a script class overrides requires walking the
native class hierarchy and probing the script class for every overridable
method. The result only depends on the script class, so it is computed once
per class and reused for every further instance.

Entries are keyed by script class identity, which does not survive a reset or
reload of the scripting environment. The owning
:class:`~scriptbridge.runtime.ScriptRuntime` invalidates the cache then.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ._logging import scoped_logger

if TYPE_CHECKING:
    from .native import ClassDescriptor, MethodDescriptor

__all__ = ["ClassCallbackCache", "is_native_stub"]

logger = scoped_logger("cache")


def is_native_stub(attr: object) -> bool:
    """True for attributes the wrapper layer generated to forward to native code."""
    return bool(getattr(attr, "__native_stub__", False))


class ClassCallbackCache:
    """
    Script class to overridden virtual methods mapping.

    Args:
        enabled: Store results. When False every lookup walks the hierarchy.

    Attributes
    ----------
        walks: Number of hierarchy walks performed so far.
    """

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self._entries: dict[type, tuple[MethodDescriptor, ...]] = {}
        self.walks = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    def callbacks_for(
        self, script_cls: type, cls_decl: ClassDescriptor
    ) -> tuple[MethodDescriptor, ...]:
        """
        The virtual methods of ``cls_decl`` (and its bases) ``script_cls`` overrides.

        Only attributes of the class object are considered: a method assigned
        to an instance attribute is not an override.
        """
        entry = self._entries.get(script_cls)
        if entry is not None:
            return entry

        entry = self._collect(script_cls, cls_decl)
        if self._enabled:
            self._entries[script_cls] = entry
        return entry

    def _collect(
        self, script_cls: type, cls_decl: ClassDescriptor
    ) -> tuple[MethodDescriptor, ...]:
        self.walks += 1
        overridden: list[MethodDescriptor] = []
        cls: ClassDescriptor | None = cls_decl
        while cls is not None:
            for meth in cls.callbacks():
                attr = getattr(script_cls, meth.name, None)
                if attr is None or not callable(attr) or is_native_stub(attr):
                    continue
                overridden.append(meth)
            cls = cls.base

        logger.debug(
            "Collected overridden methods",
            extra={
                "cls": cls_decl.name,
                "script_class": script_cls.__qualname__,
                "overridden": [m.name for m in overridden],
            },
        )
        return tuple(overridden)

    def invalidate(self) -> None:
        """Drop all entries."""
        self._entries.clear()

    def __contains__(self, script_cls: object) -> bool:
        return script_cls in self._entries

    def __len__(self) -> int:
        return len(self._entries)
