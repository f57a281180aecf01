"""Tests for classtest.options module."""

import asyncio

import pytest
from pydantic import ValidationError

from classtest.errors import ConfigurationError
from classtest.options import (
    HookOptions,
    TestOptions as Opts,
    coerce_options,
    ensure_no_own_defaults,
    resolve_options,
    static_defaults,
    suite_defaults,
)


class TestResolveOptions:
    """Tests for the layered option merge."""

    def test_empty_layers_resolve_to_empty_options(self):
        resolved = resolve_options()
        assert resolved.explicit() == {}

    def test_later_layers_win_per_field(self):
        resolved = resolve_options(
            Opts(todo=True, diagnostic="inherited"),
            None,
            Opts(diagnostic="call", skip="flaky"),
            Opts(diagnostic="run"),
        )
        assert resolved.todo is True
        assert resolved.skip == "flaky"
        assert resolved.diagnostic == "run"

    def test_none_never_overwrites(self):
        resolved = resolve_options(Opts(timeout=300, diagnostic="base"), None, Opts(timeout=None, diagnostic=None))
        assert resolved.timeout == 300
        assert resolved.diagnostic == "base"

    def test_mappings_are_accepted(self):
        resolved = resolve_options({"todo": True}, None, {"only": True})
        assert resolved.todo is True
        assert resolved.only is True

    def test_signal_is_carried_verbatim(self):
        signal = asyncio.Event()
        resolved = resolve_options(None, None, Opts(signal=signal))
        assert resolved.signal is signal


class TestTimeoutFallback:
    """Run timeout > call timeout > static default > process default > unset."""

    def test_run_timeout_wins(self):
        resolved = resolve_options(Opts(timeout=1), Opts(timeout=2), Opts(timeout=3), Opts(timeout=4), default_timeout=5)
        assert resolved.timeout == 4

    def test_call_timeout_beats_static_default(self):
        resolved = resolve_options(Opts(timeout=1), None, Opts(timeout=3), None, default_timeout=5)
        assert resolved.timeout == 3

    def test_static_default_beats_process_default(self):
        resolved = resolve_options(Opts(timeout=1), None, None, None, default_timeout=5)
        assert resolved.timeout == 1

    def test_process_default_beats_unset(self):
        assert resolve_options(default_timeout=5).timeout == 5

    def test_unset_without_any_source(self):
        assert resolve_options().timeout is None


class TestOptionModels:
    def test_unknown_fields_are_rejected(self):
        with pytest.raises(ValidationError):
            Opts(retries=3)

    def test_negative_timeout_is_rejected(self):
        with pytest.raises(ValidationError):
            HookOptions(timeout=-1)

    def test_skip_accepts_reason(self):
        assert Opts(skip="not on CI").skip == "not on CI"

    def test_concurrency_keeps_bool(self):
        assert Opts(concurrency=True).concurrency is True
        assert Opts(concurrency=4).concurrency == 4

    def test_coerce_rejects_other_types(self):
        with pytest.raises(ConfigurationError):
            coerce_options(["todo"])


class TestStaticDefaults:
    def test_nearest_ancestor_provides_inherited_defaults(self):
        class Root:
            suite_options = Opts(todo=True)

        class Middle(Root):
            suite_options = Opts(diagnostic="middle")

        class Leaf(Middle):
            pass

        inherited, own = static_defaults(Leaf)
        assert inherited.diagnostic == "middle"
        assert own is None

    def test_own_defaults_are_reported_separately(self):
        class Root:
            suite_options = {"todo": True}

        inherited, own = static_defaults(Root)
        assert inherited is None
        assert own.todo is True

    def test_own_defaults_on_suite_class_are_rejected(self):
        class Leaf:
            suite_options = Opts(todo=True)

        with pytest.raises(ConfigurationError, match="Leaf: defining static suite_options is not supported"):
            ensure_no_own_defaults(Leaf)

    def test_inherited_defaults_are_allowed(self):
        class Root:
            suite_options = Opts(todo=True)

        class Leaf(Root):
            pass

        ensure_no_own_defaults(Leaf)


class TestSuiteDefaultsDecorator:
    def test_sets_defaults_from_fields(self):
        @suite_defaults(todo=True, timeout=100)
        class Base:
            pass

        assert Base.suite_options == Opts(todo=True, timeout=100)

    def test_rejects_second_declaration(self):
        with pytest.raises(ConfigurationError, match="already declared"):

            @suite_defaults(todo=True)
            class Base:
                suite_options = Opts(skip=True)

    def test_rejects_decorated_suite(self):
        class Decorated:
            __classtest_suites__ = ()

        with pytest.raises(ConfigurationError, match="must be applied to a base class"):
            suite_defaults(todo=True)(Decorated)

    def test_rejects_object_and_fields_together(self):
        with pytest.raises(ConfigurationError):
            suite_defaults(Opts(todo=True), skip=True)
