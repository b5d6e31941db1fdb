"""Tests for the reflected native object model."""

from unittest.mock import MagicMock

import pytest

from scriptbridge.exceptions import InvariantViolation, ValidationError
from scriptbridge.native import (
    INT,
    STR,
    ArgSpec,
    Callback,
    ClassDescriptor,
    ClassRegistry,
    Event,
    MethodDescriptor,
    ObjectLedger,
    StatusEvent,
    TypeSpec,
)


class TestTypeSpec:
    """Tests for TypeSpec."""

    @pytest.mark.parametrize(
        ("kind", "default"),
        [("void", None), ("int", 0), ("float", 0.0), ("str", ""), ("bool", False), ("object", None)],
    )
    def test_default_values(self, kind, default):
        assert TypeSpec(kind).default_value() == default

    def test_explicit_default(self):
        assert TypeSpec("int", default=-1).default_value() == -1

    def test_unknown_kind_raises(self):
        with pytest.raises(ValidationError):
            TypeSpec("complex")

    def test_class_only_for_objects(self, shape_decl):
        with pytest.raises(ValidationError):
            TypeSpec("int", cls=shape_decl)

    def test_str(self, shape_decl):
        assert str(INT) == "int"
        assert str(TypeSpec("int", ref=True)) == "int &"
        assert str(TypeSpec.object_of(shape_decl, const=True)) == "const Shape"

    def test_arg_default(self):
        assert ArgSpec("factor", INT, default=2).has_default
        assert not ArgSpec("factor", INT).has_default


class TestMethodDescriptor:
    """Tests for MethodDescriptor."""

    def test_virtual_event_conflict(self):
        with pytest.raises(ValidationError):
            MethodDescriptor("both", virtual=True, event=True)

    def test_qualified_name(self, shape_decl):
        assert shape_decl.find_method("area").qualified_name == "Shape.area"
        assert MethodDescriptor("loose").qualified_name == "?.loose"

    def test_invoke_base_without_impl(self, shape_decl):
        handle = shape_decl.create()

        assert shape_decl.find_method("area").invoke_base(handle, ()) == 0

    def test_invoke_base_with_impl(self, shape_decl):
        handle = shape_decl.create()

        assert shape_decl.find_method("describe").invoke_base(handle, ("a ",)) == "a shape"


class TestClassDescriptor:
    """Tests for ClassDescriptor."""

    def test_duplicate_method_raises(self):
        with pytest.raises(ValidationError):
            ClassDescriptor("Dup", [MethodDescriptor("f"), MethodDescriptor("f")])

    def test_find_method_searches_bases(self, registry):
        square = registry.get("Square")

        assert square.find_method("area").owner is registry.get("Shape")

    def test_find_method_missing(self, shape_decl):
        with pytest.raises(AttributeError):
            shape_decl.find_method("volume")

    def test_is_derived_from(self, registry):
        shape, square = registry.get("Shape"), registry.get("Square")

        assert square.is_derived_from(shape)
        assert square.is_derived_from(square)
        assert not shape.is_derived_from(square)

    def test_callbacks_and_events(self, shape_decl, widget_decl):
        assert [m.name for m in shape_decl.callbacks()] == ["area", "describe"]
        assert [m.name for m in widget_decl.events()] == ["clicked", "changed"]

    def test_ledger_of_unmanaged_raises(self, registry):
        counter = registry.get("Counter")
        handle = counter.create()

        with pytest.raises(InvariantViolation):
            counter.ledger(handle)

        assert counter.ledger(handle, required=False) is None

    def test_factory(self):
        made = MagicMock()
        decl = ClassDescriptor("Made", factory=lambda d: made)

        assert decl.create() is made


class TestNativeObject:
    """Tests for NativeObject handles."""

    def test_call_without_callback_uses_base(self, registry):
        counter = registry.get("Counter")

        assert counter.create().call("value") == 7

    def test_call_routes_through_callback(self, shape_decl):
        handle = shape_decl.create()
        area = shape_decl.find_method("area")
        callee = MagicMock()
        callee.call.return_value = 11

        area.set_callback(handle, Callback(3, callee))

        assert handle.call("area") == 11
        callee.call.assert_called_once_with(3, ())

    def test_non_virtual_ignores_callback(self, shape_decl):
        handle = shape_decl.create()
        name = shape_decl.find_method("name")
        callee = MagicMock()

        name.set_callback(handle, Callback(0, callee))

        assert handle.call("name") == "shape"
        callee.call.assert_not_called()

    def test_call_destroyed_raises(self, shape_decl):
        handle = shape_decl.create()
        shape_decl.destroy(handle)

        with pytest.raises(InvariantViolation):
            handle.call("area")

    def test_emit_returns_last_result(self, widget_decl):
        handle = widget_decl.create()
        clicked = widget_decl.find_method("clicked")
        first, second = MagicMock(), MagicMock()
        first.broadcast.return_value = 1
        second.broadcast.return_value = 2

        clicked.add_handler(handle, first)
        clicked.add_handler(handle, second)

        assert handle.emit("clicked", 4, 5) == 2
        first.broadcast.assert_called_once_with((4, 5))

    def test_handlers_are_unique(self, widget_decl):
        handle = widget_decl.create()
        clicked = widget_decl.find_method("clicked")
        handler = MagicMock()

        clicked.add_handler(handle, handler)
        clicked.add_handler(handle, handler)
        assert handle.handlers(clicked) == (handler,)

        clicked.remove_handler(handle, handler)
        assert handle.handlers(clicked) == ()

    def test_destroy_notifies_while_alive(self, shape_decl):
        """Status listeners see a live handle during notification."""
        handle = shape_decl.create()
        seen = []
        handle.ledger.status_changed.add(lambda status: seen.append((status, handle.destroyed)))

        shape_decl.destroy(handle)

        assert seen == [(StatusEvent.DESTROYED, False)]
        assert handle.destroyed

    def test_destroy_twice_notifies_once(self, shape_decl):
        handle = shape_decl.create()
        listener = MagicMock()
        handle.ledger.status_changed.add(listener)

        shape_decl.destroy(handle)
        shape_decl.destroy(handle)

        listener.assert_called_once_with(StatusEvent.DESTROYED)

    def test_unmanaged_has_no_ledger(self, registry):
        assert registry.get("Counter").create().ledger is None


class TestObjectLedger:
    """Tests for ObjectLedger and Event."""

    def test_keep_and_release(self):
        ledger = ObjectLedger()
        listener = MagicMock()
        ledger.status_changed.add(listener)

        assert not ledger.already_kept()
        ledger.keep()
        assert ledger.already_kept()
        ledger.release()
        assert not ledger.already_kept()

        assert [c.args[0] for c in listener.call_args_list] == [StatusEvent.KEEP, StatusEvent.RELEASE]

    def test_reclaim_is_silent(self):
        ledger = ObjectLedger()
        ledger.keep()
        listener = MagicMock()
        ledger.status_changed.add(listener)

        ledger.reclaim()

        assert not ledger.already_kept()
        listener.assert_not_called()

    def test_event_snapshot_allows_unsubscribe(self):
        event = Event()
        calls = []

        def first():
            calls.append("first")
            event.remove(second)

        def second():
            calls.append("second")

        event.add(first)
        event.add(second)
        event()

        # second was removed while firing but still received this event
        assert calls == ["first", "second"]
        assert second not in event

    def test_event_remove_unknown(self):
        Event().remove(print)  # Should not raise


class TestClassRegistry:
    """Tests for ClassRegistry."""

    def test_get_and_contains(self, registry):
        assert registry.get("Shape").name == "Shape"
        assert "Widget" in registry
        assert len(registry) == 4

    def test_unknown_class_raises(self, registry):
        with pytest.raises(ValidationError):
            registry.get("Nope")

    def test_duplicate_raises(self, registry):
        with pytest.raises(ValidationError):
            registry.register(ClassDescriptor("Shape"))

    def test_base_must_be_registered_first(self):
        base = ClassDescriptor("Base")
        derived = ClassDescriptor("Derived", base=base)

        with pytest.raises(ValidationError):
            ClassRegistry([derived])

    def test_iteration_order(self, registry):
        assert [c.name for c in registry] == ["Shape", "Square", "Widget", "Counter"]

    def test_method_signature(self, shape_decl):
        scale = shape_decl.find_method("scale")

        assert scale.args == (ArgSpec("factor", INT, default=2),)
        assert shape_decl.find_method("name").ret == STR
