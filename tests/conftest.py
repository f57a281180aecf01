"""Shared fixtures."""

from __future__ import annotations

import pytest
from rich.console import Console

from classtest import config
from classtest.harness import Harness
from classtest.runtime import HookPhase, SuiteContext, set_runtime


class RecordingRuntime:
    """Runtime double recording every registration in call order."""

    def __init__(self) -> None:
        self.suites: list[tuple[str, object, object]] = []
        self.calls: list[tuple[str, object, object, object]] = []

    def register_suite(self, name, options, body) -> None:
        self.suites.append((name, options, body))

    def register_hook_once(self, phase: HookPhase, fn, options=None) -> None:
        self.calls.append(("once", phase, fn, options))

    def register_hook_per_test(self, phase: HookPhase, fn, options=None) -> None:
        self.calls.append(("each", phase, fn, options))

    def register_test(self, name, options, fn) -> None:
        self.calls.append(("test", name, fn, options))

    @property
    def suite_names(self) -> list[str]:
        return [name for name, _, _ in self.suites]

    def options_of(self, name: str):
        return next(options for suite_name, options, _ in self.suites if suite_name == name)

    async def enter(self, index: int = 0) -> SuiteContext:
        """Run the body of the suite registered at ``index``."""
        name, _, body = self.suites[index]
        context = SuiteContext(name=name)
        await body(context)
        return context


@pytest.fixture
def recording_runtime() -> RecordingRuntime:
    return RecordingRuntime()


@pytest.fixture
def harness() -> Harness:
    return Harness(console=Console(quiet=True))


@pytest.fixture(autouse=True)
def isolated_defaults(monkeypatch):
    """Keep the process default runtime and timeout out of reach of other tests."""
    monkeypatch.setattr(config, "DEFAULT_TIMEOUT", None)
    previous = set_runtime(Harness(console=Console(quiet=True)))
    yield
    set_runtime(previous)
