"""Class decorators turning declared classes into runtime suites.

Composition happens at decoration time: options are resolved and one suite
per run is registered with the runtime. Wiring happens later, inside the suite
body the runtime invokes: the class is instantiated, its declarations are read
and every hook and test is registered against that instance.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from classtest import config
from classtest.declarations import (
    DeclarationEntry,
    DeclarationKind,
    iter_declarations,
    populate_registry,
    registry_for,
)
from classtest.errors import ConfigurationError
from classtest.options import (
    DEFAULTS_ATTR,
    SUITES_ATTR,
    HookOptions,
    OptionsLike,
    TestOptions,
    coerce_options,
    ensure_no_own_defaults,
    resolve_options,
    static_defaults,
)
from classtest.runtime import HookPhase, Runtime, SuiteContext, get_runtime


logger = logging.getLogger(__name__)

C = TypeVar("C", bound=type)


@dataclass(frozen=True)
class ParameterRun:
    """Values for one parameterized run, with options overriding the suite's."""

    values: Sequence[Any]
    options: OptionsLike = None


@dataclass(frozen=True)
class RunDescriptor:
    """A validated parameterized run."""

    index: int
    values: tuple[Any, ...]
    options: HookOptions | None
    name: str


@dataclass(frozen=True)
class SuiteRegistration:
    """A suite as handed to the runtime."""

    name: str
    options: TestOptions
    params: dict[str, Any] = field(default_factory=dict)


def _normalize_run(cls: type, index: int, run: Any) -> tuple[tuple[Any, ...], HookOptions | None]:
    if isinstance(run, ParameterRun):
        return tuple(run.values), coerce_options(run.options)
    if isinstance(run, Mapping):
        if "values" not in run:
            raise ConfigurationError(
                f"@parameterized_suite on {cls.__name__}: run at position {index} has no 'values'"
            )
        return tuple(run["values"]), coerce_options(run.get("options"))
    if isinstance(run, (str, bytes)) or not isinstance(run, Sequence):
        raise ConfigurationError(
            f"@parameterized_suite on {cls.__name__}: run at position {index} must be a sequence of values, "
            f"a mapping or a ParameterRun, got {type(run).__name__}"
        )
    return tuple(run), None


def compose_runs(
    cls: type,
    properties: Sequence[str],
    values: Sequence[Any],
) -> list[RunDescriptor]:
    """Validate every run before any of them is registered."""
    runs = []
    for index, run in enumerate(values):
        run_values, run_options = _normalize_run(cls, index, run)
        if len(run_values) != len(properties):
            raise ConfigurationError(
                f"@parameterized_suite on {cls.__name__}: use exact number of values at position {index} "
                f"for parameterized fields: [{', '.join(properties)}] (expected {len(properties)}, "
                f"got {len(run_values)})"
            )
        runs.append(
            RunDescriptor(index=index, values=run_values, options=run_options, name=f"{cls.__name__} #{index}")
        )
    return runs


def _suite_name(name: str, options: TestOptions) -> str:
    if options.diagnostic:
        return f"{name}: {options.diagnostic}"
    return name


def _register(
    cls: type,
    runtime: Runtime | None,
    call_options: OptionsLike,
    runs: list[tuple[str, HookOptions | None, dict[str, Any]]],
) -> Any:
    ensure_no_own_defaults(cls)
    # Fail at import, not inside the first suite body.
    list(iter_declarations(cls))

    runtime = runtime or get_runtime()
    inherited, own = static_defaults(cls)
    captured = getattr(cls, DEFAULTS_ATTR, None)

    registrations = []
    for base_name, run_options, params in runs:
        options = resolve_options(
            inherited, own, call_options, run_options, default_timeout=config.DEFAULT_TIMEOUT
        )
        registration = SuiteRegistration(name=_suite_name(base_name, options), options=options, params=params)
        runtime.register_suite(
            registration.name,
            registration.options,
            _suite_body(cls, registration, runtime, captured),
        )
        logger.debug("Registered suite %r", registration.name)
        registrations.append(registration)

    setattr(cls, SUITES_ATTR, tuple(registrations))
    return cls


def suite(
    cls: C | None = None,
    /,
    *,
    options: OptionsLike = None,
    runtime: Runtime | None = None,
    **fields: Any,
) -> C | Callable[[C], C]:
    """Mark a class as a test suite named after the class.

    The constructor receives the suite context when it accepts an argument.

    Examples:
    --------
    >>> @suite
    ... class Checkout:
    ...     @test
    ...     def pays(self, context): ...

    >>> @suite(timeout=500, diagnostic="slow backend")
    ... class Search: ...
    """
    if options is not None and fields:
        raise ConfigurationError("suite() takes either an options object or keyword fields, not both")
    call_options = options if options is not None else (fields or None)

    def decorator(target: C) -> C:
        return _register(target, runtime, call_options, [(target.__name__, None, {})])

    if cls is not None:
        return decorator(cls)
    return decorator


def suite_with_options(options: OptionsLike = None, *, runtime: Runtime | None = None) -> Callable[[C], C]:
    """Mark a class as a test suite registered with the given options."""
    return suite(options=options, runtime=runtime)


def parameterized_suite(
    properties: Sequence[str] = (),
    values: Sequence[Any] | None = None,
    options: OptionsLike = None,
    *,
    runtime: Runtime | None = None,
) -> Callable[[C], C]:
    """Mark a class as a suite registered once per set of property values.

    Each run sets ``properties`` on a fresh instance to its values and is
    named ``"<ClassName> #<index>"``. A run is a sequence of values, or a
    :class:`ParameterRun` / mapping carrying ``values`` and ``options`` that
    override ``options`` for that run only.

    Examples:
    --------
    >>> @parameterized_suite(
    ...     properties=["iteration", "label"],
    ...     values=[[0, "a"], ParameterRun([1, "b"], {"diagnostic": "second run"})],
    ... )
    ... class Sample: ...
    """
    properties = tuple(properties)
    run_values = [[]] if values is None else list(values)

    def decorator(cls: C) -> C:
        runs = compose_runs(cls, properties, run_values)
        return _register(
            cls,
            runtime,
            options,
            [(run.name, run.options, dict(zip(properties, run.values))) for run in runs],
        )

    return decorator


def _suite_body(
    cls: type,
    registration: SuiteRegistration,
    runtime: Runtime,
    captured_defaults: Any,
) -> Callable[[SuiteContext], Any]:
    async def body(context: SuiteContext) -> None:
        # Let pending module-level initialization settle before wiring.
        await asyncio.sleep(0)
        _ensure_defaults_unchanged(cls, captured_defaults)
        instance = construct(cls, context)
        for prop, value in registration.params.items():
            setattr(instance, prop, value)
        wire(instance, runtime)

    body.__qualname__ = f"{cls.__qualname__}.<suite body>"
    return body


def _ensure_defaults_unchanged(cls: type, captured: Any) -> None:
    ensure_no_own_defaults(cls)
    if getattr(cls, DEFAULTS_ATTR, None) is not captured:
        raise ConfigurationError(
            f"{cls.__name__}: static {DEFAULTS_ATTR} of a base class changed after the suite was decorated; "
            f"declare defaults before decorating subclasses"
        )


def _accepts_argument(fn: Callable[..., Any]) -> bool:
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        return False
    try:
        sig.bind(None)
    except TypeError:
        return False
    return True


def construct(cls: type, context: SuiteContext) -> Any:
    """Instantiate a suite class and populate its declaration registry."""
    instance = cls(context) if _accepts_argument(cls) else cls()
    populate_registry(instance)
    return instance


def bind_entry(instance: Any, entry: DeclarationEntry) -> Callable[[Any], Any]:
    """Bind a declared method to ``instance`` as a runtime callable.

    The callable takes the runtime context and forwards it when the method
    accepts an argument. With a diagnostic configured, the diagnostic is
    emitted through the context first.
    """
    bound = entry.method.__get__(instance, type(instance))
    pass_context = _accepts_argument(bound)
    diagnostic = entry.options.diagnostic if entry.options else None

    if not diagnostic:
        if pass_context:
            return bound
        return functools.wraps(bound)(lambda context: bound())

    def emit(context: Any) -> None:
        emitter = getattr(context, "diagnostic", None)
        if callable(emitter):
            emitter(diagnostic)

    if inspect.iscoroutinefunction(bound):

        @functools.wraps(bound)
        async def run_async(context: Any) -> Any:
            emit(context)
            return await (bound(context) if pass_context else bound())

        return run_async

    @functools.wraps(bound)
    def run(context: Any) -> Any:
        emit(context)
        return bound(context) if pass_context else bound()

    return run


def wire(instance: Any, runtime: Runtime) -> None:
    """Register every declared hook and test of ``instance`` with ``runtime``."""
    registry = registry_for(instance)
    for entry in registry or ():
        fn = bind_entry(instance, entry)
        kind = entry.kind
        if kind is DeclarationKind.BEFORE_ALL:
            runtime.register_hook_once(HookPhase.BEFORE, fn, entry.options)
        elif kind is DeclarationKind.AFTER_ALL:
            runtime.register_hook_once(HookPhase.AFTER, fn, entry.options)
        elif kind is DeclarationKind.BEFORE_EACH:
            runtime.register_hook_per_test(HookPhase.BEFORE_EACH, fn, entry.options)
        elif kind is DeclarationKind.AFTER_EACH:
            runtime.register_hook_per_test(HookPhase.AFTER_EACH, fn, entry.options)
        elif kind is DeclarationKind.TEST:
            runtime.register_test(entry.name, entry.options, fn)
        else:
            raise ConfigurationError(f"unexpected declaration kind: {kind!r}")
    logger.debug("Wired %s", type(instance).__name__)
