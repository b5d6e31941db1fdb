"""Tests for ClassCallbackCache."""

import pytest

from scriptbridge import BridgeConfig, ClassCallbackCache, ScriptRuntime
from scriptbridge.cache import is_native_stub


def names(methods):
    return tuple(m.name for m in methods)


class TestCollect:
    """Tests for finding the overridden virtual methods of a script class."""

    def test_override_is_found(self, classes, shape_decl):
        class MyShape(classes.Shape):
            def area(self):
                return 1

        cache = ClassCallbackCache()

        assert names(cache.callbacks_for(MyShape, shape_decl)) == ("area",)

    def test_wrapper_stubs_are_not_overrides(self, classes, shape_decl):
        cache = ClassCallbackCache()

        assert cache.callbacks_for(classes.Shape, shape_decl) == ()
        assert is_native_stub(classes.Shape.area)

    def test_base_class_methods_are_included(self, classes, registry):
        """The walk goes from the most derived class up to the root."""

        class MySquare(classes.Square):
            def area(self):
                return 1

            def side(self):
                return 2

        cache = ClassCallbackCache()

        assert names(cache.callbacks_for(MySquare, registry.get("Square"))) == ("side", "area")

    def test_non_virtual_methods_are_ignored(self, classes, shape_decl):
        class MyShape(classes.Shape):
            def name(self):
                return "mine"

        cache = ClassCallbackCache()

        assert cache.callbacks_for(MyShape, shape_decl) == ()

    def test_non_callable_attribute_is_ignored(self, classes, shape_decl):
        class Weird(classes.Shape):
            area = 5

        cache = ClassCallbackCache()

        assert cache.callbacks_for(Weird, shape_decl) == ()

    def test_plain_class_without_attributes(self, shape_decl):
        class Unrelated:
            pass

        assert ClassCallbackCache().callbacks_for(Unrelated, shape_decl) == ()


class TestCaching:
    """Tests for populate-on-first-use and invalidation."""

    def test_second_lookup_costs_no_walk(self, classes, shape_decl):
        class MyShape(classes.Shape):
            def area(self):
                return 1

        cache = ClassCallbackCache()
        first = cache.callbacks_for(MyShape, shape_decl)
        second = cache.callbacks_for(MyShape, shape_decl)

        assert cache.walks == 1
        assert first is second
        assert MyShape in cache

    def test_empty_result_is_cached(self, classes, shape_decl):
        class NoOverrides(classes.Shape):
            pass

        cache = ClassCallbackCache()
        cache.callbacks_for(NoOverrides, shape_decl)
        cache.callbacks_for(NoOverrides, shape_decl)

        assert cache.walks == 1
        assert len(cache) == 1

    def test_instances_share_one_walk(self, classes, runtime):
        """Population for a class costs one walk, further instances none."""

        class MyShape(classes.Shape):
            def area(self):
                return 42

        first = MyShape()
        first.native_handle()
        assert runtime.callback_cache.walks == 1

        second = MyShape()
        second.native_handle()
        assert runtime.callback_cache.walks == 1

        assert second.native_handle().call("area") == 42

    def test_invalidate_forces_new_walk(self, classes, shape_decl):
        class MyShape(classes.Shape):
            def area(self):
                return 1

        cache = ClassCallbackCache()
        cache.callbacks_for(MyShape, shape_decl)

        cache.invalidate()

        assert len(cache) == 0
        cache.callbacks_for(MyShape, shape_decl)
        assert cache.walks == 2

    @pytest.mark.parametrize("operation", ["reset", "reload"])
    def test_runtime_reset_invalidates(self, classes, runtime, operation):
        class MyShape(classes.Shape):
            def area(self):
                return 1

        MyShape().native_handle()
        assert MyShape in runtime.callback_cache

        getattr(runtime, operation)()

        assert MyShape not in runtime.callback_cache

    def test_disabled_cache_walks_every_time(self, classes, shape_decl):
        class MyShape(classes.Shape):
            def area(self):
                return 1

        cache = ClassCallbackCache(enabled=False)
        cache.callbacks_for(MyShape, shape_decl)
        cache.callbacks_for(MyShape, shape_decl)

        assert cache.walks == 2
        assert len(cache) == 0
        assert not cache.enabled

    def test_disabled_by_config(self, classes):
        runtime = ScriptRuntime.start(BridgeConfig(cache_callbacks=False))
        try:

            class MyShape(classes.Shape):
                def area(self):
                    return 3

            first = MyShape()
            second = MyShape()

            assert first.native_handle().call("area") == 3
            assert second.native_handle().call("area") == 3
            assert runtime.callback_cache.walks == 2
        finally:
            runtime.shutdown()

    def test_detach_after_invalidate_resets_slots(self, classes, runtime, shape_decl):
        """Installed callbacks are removed even when the cache entry is gone."""

        class MyShape(classes.Shape):
            def area(self):
                return 1

        obj = MyShape()
        handle = obj.native_handle()
        runtime.reset()

        obj._bound.detach()

        assert handle.callback(shape_decl.find_method("area")) is None
