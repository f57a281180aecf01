"""Default runtime executing registered suites on asyncio."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape

from classtest.options import HookOptions, TestOptions
from classtest.outcomes import SkipTest, TestCancelled
from classtest.runtime import HookFn, HookPhase, SuiteBody, SuiteContext, TestContext, TestFn, get_runtime
from classtest.tracing import ExecutionTracer, init_tracing


logger = logging.getLogger(__name__)


class TestStatus(Enum):
    """Test execution status."""

    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    TODO = "todo"
    CANCELLED = "cancelled"


@dataclass
class TestResult:
    """Result of a single test execution."""

    __test__ = False

    name: str
    suite_name: str
    status: TestStatus
    duration_ms: float
    error: BaseException | None = None
    reason: str | None = None
    diagnostics: list[str] = field(default_factory=list)


@dataclass
class SuiteResult:
    """Results of one suite, including failures outside its tests."""

    name: str
    results: list[TestResult] = field(default_factory=list)
    error: BaseException | None = None
    skip_reason: str | None = None
    diagnostics: list[str] = field(default_factory=list)
    duration_ms: float = 0

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None

    @property
    def ok(self) -> bool:
        return self.error is None and not any(
            r.status in {TestStatus.FAILED, TestStatus.CANCELLED} for r in self.results
        )


@dataclass
class RunResult:
    """Result of a complete run."""

    suites: list[SuiteResult] = field(default_factory=list)
    total_duration_ms: float = 0

    @property
    def results(self) -> list[TestResult]:
        return [r for s in self.suites for r in s.results]

    def _count(self, status: TestStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def passed(self) -> int:
        return self._count(TestStatus.PASSED)

    @property
    def failed(self) -> int:
        return self._count(TestStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(TestStatus.SKIPPED)

    @property
    def todo(self) -> int:
        return self._count(TestStatus.TODO)

    @property
    def cancelled(self) -> int:
        return self._count(TestStatus.CANCELLED)

    @property
    def suite_errors(self) -> int:
        """Count of suites whose body or hooks failed."""
        return sum(1 for s in self.suites if s.error is not None)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def ok(self) -> bool:
        return all(s.ok for s in self.suites)


@dataclass
class _Hook:
    fn: HookFn
    options: HookOptions | None


@dataclass
class _Test:
    name: str
    options: TestOptions
    fn: TestFn


@dataclass
class _SuiteNode:
    name: str
    options: TestOptions
    body: SuiteBody
    before: list[_Hook] = field(default_factory=list)
    after: list[_Hook] = field(default_factory=list)
    before_each: list[_Hook] = field(default_factory=list)
    after_each: list[_Hook] = field(default_factory=list)
    tests: list[_Test] = field(default_factory=list)

    def reset(self) -> None:
        for registered in (self.before, self.after, self.before_each, self.after_each, self.tests):
            registered.clear()


_CURRENT_SUITE: ContextVar[_SuiteNode | None] = ContextVar("classtest_current_suite", default=None)


def _reason(value: bool | str | None, fallback: str) -> str:
    return value if isinstance(value, str) and value else fallback


async def _call(fn: Any, context: Any) -> Any:
    outcome = fn(context)
    if inspect.isawaitable(outcome):
        return await outcome
    return outcome


class Harness:
    """Runs suites registered through the :class:`~classtest.runtime.Runtime` protocol.

    Before-all hooks run once in registration order, after-all hooks once in
    reverse registration order. Before-each hooks run in registration order
    around every test, after-each hooks in reverse order, also when the test failed.

    Examples:
        harness = Harness()
        set_runtime(harness)
        import suite_checkout  # decorators register their suites
        result = await harness.run()

        # Run only tests and suites marked with only=True
        harness = Harness(only=True)
    """

    DEFAULT_MAX_CONCURRENCY = 10

    def __init__(
        self,
        console: Console | None = None,
        *,
        only: bool = False,
        verbosity: int = 0,
        enable_tracing: bool = False,
        trace_output: Path | str | None = None,
    ) -> None:
        self.console = console or Console()
        self.only = only
        self.verbosity = verbosity
        self.enable_tracing = enable_tracing
        self.trace_output = Path(trace_output) if trace_output else Path("traces.jsonl")
        self.tracer = ExecutionTracer(enabled=enable_tracing)
        self._suites: list[_SuiteNode] = []

    @property
    def suite_names(self) -> list[str]:
        return [node.name for node in self._suites]

    def register_suite(self, name: str, options: TestOptions, body: SuiteBody) -> None:
        self._suites.append(_SuiteNode(name=name, options=options or TestOptions(), body=body))

    def register_hook_once(self, phase: HookPhase, fn: HookFn, options: HookOptions | None = None) -> None:
        node = self._current("register_hook_once")
        if phase is HookPhase.BEFORE:
            node.before.append(_Hook(fn, options))
        elif phase is HookPhase.AFTER:
            node.after.append(_Hook(fn, options))
        else:
            raise ValueError(f"register_hook_once() does not accept phase {phase.value!r}")

    def register_hook_per_test(self, phase: HookPhase, fn: HookFn, options: HookOptions | None = None) -> None:
        node = self._current("register_hook_per_test")
        if phase is HookPhase.BEFORE_EACH:
            node.before_each.append(_Hook(fn, options))
        elif phase is HookPhase.AFTER_EACH:
            node.after_each.append(_Hook(fn, options))
        else:
            raise ValueError(f"register_hook_per_test() does not accept phase {phase.value!r}")

    def register_test(self, name: str, options: TestOptions | None, fn: TestFn) -> None:
        node = self._current("register_test")
        node.tests.append(_Test(name=name, options=options or TestOptions(), fn=fn))

    def _current(self, caller: str) -> _SuiteNode:
        node = _CURRENT_SUITE.get()
        if node is None:
            raise RuntimeError(f"{caller}() must be called from inside a suite body")
        return node

    async def run(self) -> RunResult:
        """Run every registered suite and return the results."""
        run_result = RunResult()

        if self.enable_tracing:
            init_tracing(self.trace_output)

        if not self._suites:
            self.console.print("[yellow]No suites found.[/yellow]")
            return run_result

        self.console.print(f"[bold]Collected {len(self._suites)} suites[/bold]\n")
        start = time.perf_counter()

        for node in self._suites:
            suite_result = await self._run_suite(node)
            run_result.suites.append(suite_result)
            self._print_suite(suite_result)

        run_result.total_duration_ms = (time.perf_counter() - start) * 1000
        self._print_summary(run_result)

        if self.enable_tracing and self.trace_output.exists():
            self.console.print(
                f"[dim]Tracing written to {self.trace_output} ({self.trace_output.stat().st_size} bytes)[/dim]"
            )
        return run_result

    async def _run_suite(self, node: _SuiteNode) -> SuiteResult:
        result = SuiteResult(name=node.name)
        if node.options.skip:
            result.skip_reason = _reason(node.options.skip, "skipped")
            return result

        context = SuiteContext(name=node.name, signal=node.options.signal)
        start = time.perf_counter()
        with self.tracer.span(f"suite.{node.name}", **{"classtest.suite": node.name}) as span:
            node.reset()
            token = _CURRENT_SUITE.set(node)
            try:
                await _call(node.body, context)
            except SkipTest as e:
                result.skip_reason = e.reason or "skipped"
            except Exception as e:
                logger.warning("Suite %r failed to register its tests: %s", node.name, e)
                result.error = e
            finally:
                _CURRENT_SUITE.reset(token)

            if result.error is None and not result.skipped and not self._selected(node):
                result.skip_reason = "only mode"

            if result.error is None and not result.skipped:
                await self._run_registered(node, context, result)

            result.diagnostics = context.diagnostics
            result.duration_ms = (time.perf_counter() - start) * 1000
            self.tracer.record(span, "passed" if result.ok else "failed", result.duration_ms, result.error)
        return result

    async def _run_registered(self, node: _SuiteNode, context: SuiteContext, result: SuiteResult) -> None:
        before_error: Exception | None = None
        skip_reason: str | None = None
        for hook in node.before:
            try:
                await self._invoke_hook(hook, context, node.options)
            except SkipTest as e:
                skip_reason = e.reason or "skipped in before hook"
                break
            except Exception as e:
                before_error = e
                break

        if before_error is not None or skip_reason is not None:
            status = TestStatus.SKIPPED if skip_reason is not None else TestStatus.FAILED
            for registered in node.tests:
                result.results.append(
                    TestResult(
                        name=registered.name,
                        suite_name=node.name,
                        status=status,
                        duration_ms=0,
                        error=before_error,
                        reason=skip_reason or "before hook failed",
                    )
                )
        else:
            result.results.extend(await self._run_tests(node))

        for hook in reversed(node.after):
            try:
                await self._invoke_hook(hook, context, node.options)
            except SkipTest as e:
                logger.debug("Ignoring skip in after hook of %r: %s", node.name, e.reason)
            except Exception as e:
                if result.error is None:
                    result.error = e

    def _selected(self, node: _SuiteNode) -> bool:
        """Whether ``node`` runs at all under only mode."""
        if not self.only or node.options.only:
            return True
        return any(registered.options.only for registered in node.tests)

    def _concurrency_limit(self, concurrency: bool | int | None) -> int:
        if concurrency is True:
            return self.DEFAULT_MAX_CONCURRENCY
        if isinstance(concurrency, int) and not isinstance(concurrency, bool) and concurrency > 1:
            return concurrency
        return 1

    async def _run_tests(self, node: _SuiteNode) -> list[TestResult]:
        limit = self._concurrency_limit(node.options.concurrency)
        if limit == 1:
            return [await self._run_test(node, registered) for registered in node.tests]

        semaphore = asyncio.Semaphore(limit)

        async def run_one(registered: _Test) -> TestResult:
            async with semaphore:
                return await self._run_test(node, registered)

        # gather keeps registration order
        return list(await asyncio.gather(*[run_one(registered) for registered in node.tests]))

    async def _run_test(self, node: _SuiteNode, registered: _Test) -> TestResult:
        opts = registered.options
        suite_opts = node.options

        if opts.skip:
            return TestResult(
                name=registered.name,
                suite_name=node.name,
                status=TestStatus.SKIPPED,
                duration_ms=0,
                reason=_reason(opts.skip, "skipped"),
            )
        if self.only and not (opts.only or suite_opts.only):
            return TestResult(
                name=registered.name,
                suite_name=node.name,
                status=TestStatus.SKIPPED,
                duration_ms=0,
                reason="only mode",
            )

        todo = opts.todo if opts.todo is not None else suite_opts.todo
        timeout = opts.timeout if opts.timeout is not None else suite_opts.timeout
        context = TestContext(name=registered.name, suite_name=node.name, signal=opts.signal or suite_opts.signal)

        error: BaseException | None = None
        skip_reason: str | None = None
        start = time.perf_counter()
        with self.tracer.span(
            f"test.{registered.name}",
            **{"classtest.suite": node.name, "classtest.test": registered.name},
        ) as span:
            try:
                for hook in node.before_each:
                    await self._invoke_hook(hook, context, suite_opts)
                await self._invoke(registered.fn, context, timeout, context.signal)
                if opts.plan is not None and context.checks != opts.plan:
                    raise AssertionError(f"plan expected {opts.plan} checks, ran {context.checks}")
            except SkipTest as e:
                skip_reason = e.reason or "skipped"
            except Exception as e:
                error = e

            for hook in reversed(node.after_each):
                try:
                    await self._invoke_hook(hook, context, suite_opts)
                except SkipTest as e:
                    logger.debug("Ignoring skip in after-each hook of %r: %s", registered.name, e.reason)
                except Exception as e:
                    error = error or e

            duration = (time.perf_counter() - start) * 1000
            status = self._status(error, skip_reason, todo)
            self.tracer.record(span, status.value, duration, error)

        reason = skip_reason if status is TestStatus.SKIPPED else None
        if status is TestStatus.TODO:
            reason = _reason(todo, "todo")
        return TestResult(
            name=registered.name,
            suite_name=node.name,
            status=status,
            duration_ms=duration,
            error=error,
            reason=reason,
            diagnostics=context.diagnostics,
        )

    def _status(self, error: BaseException | None, skip_reason: str | None, todo: bool | str | None) -> TestStatus:
        if error is None and skip_reason is not None:
            return TestStatus.SKIPPED
        if isinstance(error, TestCancelled):
            return TestStatus.CANCELLED
        if todo:
            return TestStatus.TODO
        if error is not None:
            return TestStatus.FAILED
        return TestStatus.PASSED

    async def _invoke_hook(self, hook: _Hook, context: Any, suite_opts: TestOptions) -> Any:
        options = hook.options or HookOptions()
        timeout = options.timeout if options.timeout is not None else suite_opts.timeout
        signal = options.signal or getattr(context, "signal", None)
        return await self._invoke(hook.fn, context, timeout, signal)

    async def _invoke(
        self,
        fn: Any,
        context: Any,
        timeout: int | None,
        signal: asyncio.Event | None,
    ) -> Any:
        """Call ``fn`` with ``context``, bounded by a timeout (ms) and an abort signal."""
        if signal is not None and signal.is_set():
            raise TestCancelled("aborted before start")

        task = asyncio.ensure_future(_call(fn, context))
        waiters: set[asyncio.Future[Any]] = {task}
        abort = asyncio.ensure_future(signal.wait()) if signal is not None else None
        if abort is not None:
            waiters.add(abort)
        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=timeout / 1000 if timeout is not None else None,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if abort is not None:
                abort.cancel()

        if task in done:
            return task.result()

        task.cancel()
        # The outcome of the abandoned call is superseded by the timeout or abort.
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task
        if signal is not None and signal.is_set():
            raise TestCancelled("aborted")
        raise TimeoutError(f"timed out after {timeout}ms")

    def _print_suite(self, suite_result: SuiteResult) -> None:
        if self.verbosity < 0 and suite_result.ok:
            return

        name = escape(suite_result.name)
        if suite_result.skipped:
            self.console.print(f"[yellow]-[/yellow] {name} [dim]skipped ({escape(suite_result.skip_reason)})[/dim]")
            return

        self.console.print(f"[bold]{name}[/bold] [dim]({suite_result.duration_ms:.1f}ms)[/dim]")
        for message in suite_result.diagnostics:
            self.console.print(f"  [dim]# {escape(message)}[/dim]")
        for result in suite_result.results:
            self._print_result(result)
        if suite_result.error is not None:
            self.console.print(
                f"  [red]![/red] suite failed: [red]{type(suite_result.error).__name__}: "
                f"{escape(str(suite_result.error))}[/red]"
            )

    def _print_result(self, result: TestResult) -> None:
        """Print a single test result."""
        if self.verbosity < 0 and result.status not in {TestStatus.FAILED, TestStatus.CANCELLED}:
            return

        name = escape(result.name)
        if result.status == TestStatus.PASSED:
            self.console.print(f"  [green]✓[/green] {name} [dim]({result.duration_ms:.1f}ms)[/dim]")
        elif result.status == TestStatus.FAILED:
            self.console.print(f"  [red]✗[/red] {name} [dim]({result.duration_ms:.1f}ms)[/dim]")
            if result.error:
                self.console.print(f"    [red]{type(result.error).__name__}: {escape(str(result.error))}[/red]")
        elif result.status == TestStatus.SKIPPED:
            self.console.print(f"  [yellow]-[/yellow] {name} [dim]skipped ({escape(result.reason or '')})[/dim]")
        elif result.status == TestStatus.TODO:
            self.console.print(f"  [blue]#[/blue] {name} [dim]TODO ({escape(result.reason or '')})[/dim]")
        elif result.status == TestStatus.CANCELLED:
            self.console.print(f"  [magenta]![/magenta] {name} [dim]cancelled[/dim]")
        for message in result.diagnostics:
            self.console.print(f"    [dim]# {escape(message)}[/dim]")

    def _print_summary(self, run_result: RunResult) -> None:
        """Print run summary."""
        self.console.print()
        parts = []
        if run_result.passed:
            parts.append(f"[green]{run_result.passed} passed[/green]")
        if run_result.failed:
            parts.append(f"[red]{run_result.failed} failed[/red]")
        if run_result.skipped:
            parts.append(f"[yellow]{run_result.skipped} skipped[/yellow]")
        if run_result.todo:
            parts.append(f"[blue]{run_result.todo} todo[/blue]")
        if run_result.cancelled:
            parts.append(f"[magenta]{run_result.cancelled} cancelled[/magenta]")
        if run_result.suite_errors:
            parts.append(f"[red]{run_result.suite_errors} suite errors[/red]")

        summary = ", ".join(parts) if parts else "[dim]0 tests[/dim]"
        self.console.print(f"[bold]{summary}[/bold] in {run_result.total_duration_ms:.0f}ms")


def run() -> RunResult:
    """Run the suites registered with the default runtime synchronously."""
    runtime = get_runtime()
    if not isinstance(runtime, Harness):
        raise TypeError(f"the default runtime is a {type(runtime).__name__}, not a Harness")
    return asyncio.run(runtime.run())
