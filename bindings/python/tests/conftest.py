"""
Global pytest fixtures for scriptbridge tests.

This module provides:
- A fresh script runtime per test (shut down afterwards)
- A small sample class registry and its wrapper classes

Sample registry
---------------

    Shape (managed)       area() -> int               virtual, no native impl
                          describe(prefix) -> str     virtual, native impl
                          name() -> str               const
                          scale(factor=2) -> int
    Square : Shape        side() -> int               virtual
    Widget (managed)      clicked(x, y) -> int        event
                          changed()                   event
                          title() -> str              const
    Counter (unmanaged)   value() -> int              virtual, native impl

Weak references expire deterministically in CPython once the last strong
reference is dropped; tests call ``gc.collect()`` anyway before checking.
"""

import gc

import pytest

from scriptbridge import BridgeConfig, ScriptRuntime, bind_registry
from scriptbridge.native import (
    INT,
    STR,
    ArgSpec,
    ClassDescriptor,
    ClassRegistry,
    MethodDescriptor,
)


def make_registry() -> ClassRegistry:
    """Build the sample registry (new descriptors on every call)."""
    shape = ClassDescriptor(
        "Shape",
        [
            MethodDescriptor("area", ret=INT, virtual=True),
            MethodDescriptor(
                "describe",
                [ArgSpec("prefix", STR)],
                ret=STR,
                impl=lambda handle, prefix: f"{prefix}shape",
                virtual=True,
            ),
            MethodDescriptor("name", ret=STR, impl=lambda handle: "shape", const=True),
            MethodDescriptor(
                "scale",
                [ArgSpec("factor", INT, default=2)],
                ret=INT,
                impl=lambda handle, factor: 10 * factor,
            ),
        ],
        managed=True,
    )
    square = ClassDescriptor(
        "Square",
        [MethodDescriptor("side", ret=INT, virtual=True)],
        base=shape,
        managed=True,
    )
    widget = ClassDescriptor(
        "Widget",
        [
            MethodDescriptor("clicked", [ArgSpec("x", INT), ArgSpec("y", INT)], ret=INT, event=True),
            MethodDescriptor("changed", event=True),
            MethodDescriptor("title", ret=STR, impl=lambda handle: "widget", const=True),
        ],
        managed=True,
    )
    counter = ClassDescriptor(
        "Counter",
        [MethodDescriptor("value", ret=INT, impl=lambda handle: 7, virtual=True)],
    )
    return ClassRegistry([shape, square, widget, counter])


# =============================================================================
# Runtime Fixtures
# =============================================================================


@pytest.fixture
def runtime():
    """A started script runtime, shut down after the test."""
    rt = ScriptRuntime.start(BridgeConfig())
    yield rt
    rt.shutdown()
    gc.collect()


# =============================================================================
# Registry Fixtures
# =============================================================================


@pytest.fixture
def registry():
    return make_registry()


@pytest.fixture
def classes(registry, runtime):
    """Wrapper classes of the sample registry, as attributes by class name."""
    return bind_registry(registry)


@pytest.fixture
def shape_decl(registry):
    return registry.get("Shape")


@pytest.fixture
def widget_decl(registry):
    return registry.get("Widget")
