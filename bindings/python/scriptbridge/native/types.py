"""
Type descriptions for native method signatures.

A :class:`TypeSpec` describes one argument or return type of a native
method: its kind, whether it is passed by reference, and (for object kinds)
the native class. The marshaler uses it to convert values and to produce the
default value returned when no script callback is available.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..exceptions import ValidationError

if TYPE_CHECKING:
    from .classes import ClassDescriptor

__all__ = [
    "TypeSpec",
    "ArgSpec",
    "KINDS",
    "VOID",
    "INT",
    "FLOAT",
    "STR",
    "BOOL",
    "ANY",
]

_UNSET: Any = object()

_KIND_DEFAULTS: dict[str, Any] = {
    "void": None,
    "int": 0,
    "float": 0.0,
    "str": "",
    "bool": False,
    "object": None,
    "any": None,
}

KINDS = tuple(_KIND_DEFAULTS)


@dataclass(frozen=True)
class TypeSpec:
    """
    Native type of an argument or return value.

    Attributes
    ----------
        kind: One of "void", "int", "float", "str", "bool", "object", "any".
        ref: Passed by reference. A by-reference return value needs storage
            that outlives the call.
        const: Const object reference (object kinds only).
        cls: Native class of object kinds. None accepts any native object.
        default: Value used when no value is produced. Defaults to the
            kind's zero value.
    """

    kind: str = "void"
    ref: bool = False
    const: bool = False
    cls: ClassDescriptor | None = field(default=None, compare=False)
    default: Any = field(default=_UNSET, compare=False)

    def __post_init__(self) -> None:
        if self.kind not in _KIND_DEFAULTS:
            raise ValidationError(
                f"kind must be one of {', '.join(KINDS)}, got {self.kind!r}",
                details={"kind": self.kind},
            )
        if self.cls is not None and self.kind != "object":
            raise ValidationError(f"only object types carry a class, got kind {self.kind!r}")

    @classmethod
    def object_of(cls, cls_decl: ClassDescriptor | None, *, const: bool = False) -> TypeSpec:
        """Object type of the given native class."""
        return cls("object", const=const, cls=cls_decl)

    def default_value(self) -> Any:
        """The value a call of this type yields when nothing was returned."""
        if self.default is not _UNSET:
            return self.default
        return _KIND_DEFAULTS[self.kind]

    def __str__(self) -> str:
        name = self.cls.name if self.cls is not None else self.kind
        if self.const:
            name = f"const {name}"
        return f"{name} &" if self.ref else name


@dataclass(frozen=True)
class ArgSpec:
    """A named argument of a native method, optionally with a default value."""

    name: str
    type: TypeSpec = field(default_factory=lambda: ANY)
    default: Any = field(default=_UNSET, compare=False)

    @property
    def has_default(self) -> bool:
        return self.default is not _UNSET


VOID = TypeSpec("void")
INT = TypeSpec("int")
FLOAT = TypeSpec("float")
STR = TypeSpec("str")
BOOL = TypeSpec("bool")
ANY = TypeSpec("any")
