"""Boundary between the declaration engine and the runtime executing tests."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from classtest.options import HookOptions, TestOptions
from classtest.outcomes import SkipTest


if TYPE_CHECKING:
    from classtest.harness import Harness


class HookPhase(Enum):
    """Lifecycle phase a hook is registered for."""

    BEFORE = "before"
    BEFORE_EACH = "before_each"
    AFTER_EACH = "after_each"
    AFTER = "after"


@dataclass
class SuiteContext:
    """Context handed to a suite body and to its before/after hooks."""

    name: str
    signal: asyncio.Event | None = None
    diagnostics: list[str] = field(default_factory=list)

    def diagnostic(self, message: str) -> None:
        """Attach a diagnostic message to the suite report."""
        self.diagnostics.append(message)


@dataclass
class TestContext:
    """Context handed to a test and to its per-test hooks."""

    __test__ = False

    name: str
    suite_name: str
    signal: asyncio.Event | None = None
    diagnostics: list[str] = field(default_factory=list)
    checks: int = 0

    def diagnostic(self, message: str) -> None:
        """Attach a diagnostic message to the test report."""
        self.diagnostics.append(message)

    def skip(self, reason: str = "") -> None:
        """Stop the test and report it as skipped."""
        raise SkipTest(reason)

    def check(self, condition: Any, message: str = "") -> None:
        """Assert ``condition`` and count it towards the test's plan."""
        self.checks += 1
        if not condition:
            raise AssertionError(message or f"check #{self.checks} failed")


SuiteBody = Callable[[SuiteContext], Awaitable[None] | None]
HookFn = Callable[[Any], Awaitable[None] | None]
TestFn = Callable[[TestContext], Awaitable[None] | None]


class Runtime(Protocol):
    """Registration surface the engine wires suites into."""

    def register_suite(self, name: str, options: TestOptions, body: SuiteBody) -> None:
        """Register a suite whose body runs later and registers hooks and tests."""
        ...

    def register_hook_once(self, phase: HookPhase, fn: HookFn, options: HookOptions | None = None) -> None:
        """Register a hook running once before or after the current suite's tests."""
        ...

    def register_hook_per_test(self, phase: HookPhase, fn: HookFn, options: HookOptions | None = None) -> None:
        """Register a hook running before or after every test of the current suite."""
        ...

    def register_test(self, name: str, options: TestOptions | None, fn: TestFn) -> None:
        """Register a test in the current suite."""
        ...


_runtime: Runtime | None = None


def get_runtime() -> Runtime:
    """Get the process default runtime, creating a Harness on first use."""
    global _runtime
    if _runtime is None:
        _runtime = _new_harness()
    return _runtime


def set_runtime(runtime: Runtime) -> Runtime | None:
    """Install ``runtime`` as process default and return the previous one."""
    global _runtime
    previous, _runtime = _runtime, runtime
    return previous


def reset_runtime() -> Runtime:
    """Install a fresh Harness as process default."""
    global _runtime
    _runtime = _new_harness()
    return _runtime


def _new_harness() -> Harness:
    # Import here to avoid circular imports at runtime
    from classtest.harness import Harness  # noqa: PLC0415

    return Harness()
