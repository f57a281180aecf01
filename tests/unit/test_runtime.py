"""Tests for classtest.runtime and classtest.outcomes modules."""

import pytest

from classtest.harness import Harness
from classtest.outcomes import SkipTest, TestCancelled, skip
from classtest.runtime import SuiteContext, TestContext, get_runtime, reset_runtime, set_runtime


class TestContexts:
    def test_diagnostics_accumulate(self):
        context = SuiteContext(name="Checkout")
        context.diagnostic("first")
        context.diagnostic("second")
        assert context.diagnostics == ["first", "second"]

    def test_check_counts_and_fails_with_message(self):
        context = TestContext(name="pays", suite_name="Checkout")
        context.check(True)
        with pytest.raises(AssertionError, match="check #2 failed"):
            context.check(False)
        with pytest.raises(AssertionError, match="totals differ"):
            context.check(0, "totals differ")
        assert context.checks == 3

    def test_skip_raises_outcome(self):
        context = TestContext(name="pays", suite_name="Checkout")
        with pytest.raises(SkipTest) as exc_info:
            context.skip("no sandbox")
        assert exc_info.value.reason == "no sandbox"


class TestOutcomes:
    def test_skip_is_not_an_exception(self):
        # `except Exception` in test code must not swallow a skip
        with pytest.raises(SkipTest):
            try:
                skip("later")
            except Exception:
                pass

    def test_cancelled_default_reason(self):
        assert TestCancelled().reason == "aborted"


class TestDefaultRuntime:
    def test_set_runtime_returns_previous(self):
        replacement = Harness()
        previous = set_runtime(replacement)
        try:
            assert get_runtime() is replacement
        finally:
            set_runtime(previous)

    def test_reset_installs_fresh_harness(self):
        before = get_runtime()
        fresh = reset_runtime()
        assert isinstance(fresh, Harness)
        assert fresh is not before
        assert get_runtime() is fresh

    def test_module_run_executes_default_harness(self):
        from classtest import run, suite, test as case

        @suite
        class Defaulted:
            @case
            def works(self, context):
                pass

        result = run()
        assert result.passed == 1

    def test_module_run_needs_a_harness(self, recording_runtime):
        from classtest import run

        previous = set_runtime(recording_runtime)
        try:
            with pytest.raises(TypeError, match="not a Harness"):
                run()
        finally:
            set_runtime(previous)
