"""Tests for ScriptRuntime lifecycle, execution context and retentions."""

import gc
import weakref

import pytest

from scriptbridge import BridgeConfig, ScriptRuntime
from scriptbridge.exceptions import MarshalError, ScriptCallFailure


class Thing:
    pass


class TestLifecycle:
    """Tests for start(), current(), get() and shutdown()."""

    def test_start_makes_current(self, runtime):
        assert ScriptRuntime.current() is runtime

    def test_shutdown_clears_current(self, runtime):
        runtime.shutdown()

        assert ScriptRuntime.current() is None

    def test_start_replaces_previous(self, runtime):
        thing = Thing()
        runtime.retain(thing)

        replacement = ScriptRuntime.start()
        try:
            assert ScriptRuntime.current() is replacement
            assert runtime.retained == 0
        finally:
            replacement.shutdown()

    def test_get_returns_current(self, runtime):
        assert ScriptRuntime.get() is runtime

    def test_get_starts_from_environment(self, runtime, monkeypatch):
        monkeypatch.setenv("SCRIPTBRIDGE_CACHE_CALLBACKS", "0")
        runtime.shutdown()

        started = ScriptRuntime.get()
        try:
            assert not started.config.cache_callbacks
            assert not started.callback_cache.enabled
        finally:
            started.shutdown()

    def test_shutdown_drops_retentions(self, runtime):
        thing = Thing()
        ref = weakref.ref(thing)
        runtime.retain(thing)
        del thing
        gc.collect()
        assert ref() is not None

        runtime.shutdown()
        gc.collect()

        assert ref() is None

    def test_repr(self, runtime):
        assert "current" in repr(runtime)


class TestExecute:
    """Tests for the execution context boundary."""

    def test_depth_and_active(self, runtime):
        assert not runtime.active

        with runtime.execute("A.a"):
            assert runtime.active
            assert runtime.depth == 1
            with runtime.execute("B.b"):
                assert runtime.depth == 2

        assert runtime.depth == 0
        assert not runtime.active

    def test_exception_is_wrapped(self, runtime):
        with pytest.raises(ScriptCallFailure) as exc_info, runtime.execute("Shape.area"):
            raise KeyError("k")

        assert exc_info.value.context == "Shape.area"
        assert exc_info.value.code == "SCRIPT_CALL_FAILED"
        assert isinstance(exc_info.value.__cause__, KeyError)

    def test_no_context_reraises_unchanged(self, runtime):
        with pytest.raises(KeyError), runtime.execute():
            raise KeyError("k")

    def test_marshal_error_is_not_wrapped(self, runtime):
        with pytest.raises(MarshalError), runtime.execute("Shape.area"):
            raise MarshalError("bad value")

    @pytest.mark.parametrize("exc_type", [SystemExit, KeyboardInterrupt, GeneratorExit])
    def test_exit_signals_pass_through(self, runtime, exc_type):
        with pytest.raises(exc_type), runtime.execute("Shape.area"):
            raise exc_type()

        assert runtime.depth == 0

    def test_depth_restored_after_failure(self, runtime):
        with pytest.raises(ScriptCallFailure), runtime.execute("Shape.area"):
            raise ValueError

        assert runtime.depth == 0

    def test_empty_message_uses_type_name(self, runtime):
        with pytest.raises(ScriptCallFailure) as exc_info, runtime.execute("Shape.area"):
            raise ValueError

        assert str(exc_info.value) == "Error calling method 'Shape.area': ValueError"


class TestRetention:
    """Tests for retain(), unretain() and retain_count()."""

    def test_retain_counts(self, runtime):
        thing = Thing()

        assert runtime.retain(thing) == 1
        assert runtime.retain(thing) == 2
        assert runtime.retain_count(thing) == 2
        assert runtime.retained == 1

    def test_unretain(self, runtime):
        thing = Thing()
        runtime.retain(thing)
        runtime.retain(thing)

        assert runtime.unretain(thing)
        assert runtime.retain_count(thing) == 1
        assert runtime.unretain(thing)
        assert runtime.retain_count(thing) == 0
        assert runtime.retained == 0

    def test_unretain_unknown_returns_false(self, runtime):
        assert not runtime.unretain(Thing())

    def test_retention_keeps_object_alive(self, runtime):
        thing = Thing()
        ref = weakref.ref(thing)
        runtime.retain(thing)
        del thing
        gc.collect()

        assert ref() is not None

        runtime.unretain(ref())
        gc.collect()

        assert ref() is None


class TestConfigApplication:
    """Tests for logging settings applied on start()."""

    @pytest.fixture(autouse=True)
    def restore_level(self):
        from scriptbridge._logging import logger

        level = logger.level
        yield
        logger.setLevel(level)

    def test_log_level_is_applied(self):
        import logging

        from scriptbridge._logging import logger

        runtime = ScriptRuntime.start(BridgeConfig(log_level="debug"))
        try:
            assert logger.level == logging.DEBUG
        finally:
            runtime.shutdown()

    def test_unset_level_keeps_logger_level(self):
        import logging

        import scriptbridge
        from scriptbridge._logging import logger

        scriptbridge.set_log_level("error")

        runtime = ScriptRuntime.start(BridgeConfig())
        try:
            assert logger.level == logging.ERROR
        finally:
            runtime.shutdown()
