"""Option models and the resolution of suite options.

Options reach a suite from four places, lowest precedence first:

1. the nearest ancestor's ``suite_options`` (inherited static defaults)
2. the class's own ``suite_options`` (only legal on undecorated base classes)
3. the options given to the suite decorator
4. the options of a single parameterized run

``timeout`` additionally falls back to the process default from
:data:`classtest.config.DEFAULT_TIMEOUT`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from classtest.errors import ConfigurationError


DEFAULTS_ATTR = "suite_options"
SUITES_ATTR = "__classtest_suites__"

C = TypeVar("C", bound=type)


class HookOptions(BaseModel):
    """Options accepted by lifecycle hooks.

    Attributes:
    ----------
    diagnostic : str | None
        Message emitted through the context's diagnostic channel before the hook runs.
    timeout : int | None
        Timeout in milliseconds.
    signal : asyncio.Event | None
        Abort signal; once set, pending and running work is cancelled.
    """

    __test__ = False

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    diagnostic: str | None = None
    timeout: int | None = Field(default=None, ge=0)
    signal: asyncio.Event | None = None

    def explicit(self) -> dict[str, Any]:
        """Fields that were set to something other than None."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None
        }


class TestOptions(HookOptions):
    """Options accepted by tests and suites."""

    __test__ = False

    concurrency: bool | int | None = None
    only: bool | None = None
    skip: bool | str | None = None
    todo: bool | str | None = None
    plan: int | None = Field(default=None, ge=0)


OptionsLike = HookOptions | Mapping[str, Any] | None


def coerce_options(options: OptionsLike, model: type[HookOptions] = TestOptions) -> HookOptions | None:
    """Turn a mapping into an options model; models and None pass through."""
    if options is None or isinstance(options, HookOptions):
        return options
    if isinstance(options, Mapping):
        return model(**options)
    raise ConfigurationError(f"options must be {model.__name__} or a mapping, got {type(options).__name__}")


def resolve_options(
    inherited: OptionsLike = None,
    own: OptionsLike = None,
    call: OptionsLike = None,
    run_override: OptionsLike = None,
    *,
    default_timeout: int | None = None,
) -> TestOptions:
    """Merge option layers into one effective option set.

    Later layers overwrite fields of earlier ones; unset and None fields never
    overwrite. A missing ``timeout`` falls back to ``default_timeout``.
    """
    merged: dict[str, Any] = {}
    for layer in (inherited, own, call, run_override):
        layer = coerce_options(layer)
        if layer is not None:
            merged.update(layer.explicit())

    if merged.get("timeout") is None and default_timeout is not None:
        merged["timeout"] = default_timeout
    return TestOptions(**merged)


def static_defaults(cls: type) -> tuple[HookOptions | None, HookOptions | None]:
    """Return ``(inherited, own)`` static default options of a class.

    ``inherited`` comes from the nearest ancestor declaring ``suite_options``.
    """
    own = vars(cls).get(DEFAULTS_ATTR)
    inherited = None
    for base in cls.__mro__[1:]:
        if DEFAULTS_ATTR in vars(base):
            inherited = vars(base)[DEFAULTS_ATTR]
            break
    return coerce_options(inherited), coerce_options(own)


def ensure_no_own_defaults(cls: type) -> None:
    """Reject ``suite_options`` declared directly on a suite class."""
    if DEFAULTS_ATTR in vars(cls):
        raise ConfigurationError(
            f"{cls.__name__}: defining static {DEFAULTS_ATTR} is not supported on test classes, only on "
            f"base classes of such, because the suite decorator resolves options when the class is "
            f"decorated. Use suite_with_options() or parameterized_suite(options=...) to set options on "
            f"test classes."
        )


def suite_defaults(options: OptionsLike = None, **fields: Any) -> Callable[[C], C]:
    """Declare static default options on a shared base class.

    Examples:
    --------
    >>> @suite_defaults(todo=True, diagnostic="work in progress")
    ... class IntegrationBase: ...
    """
    if options is not None and fields:
        raise ConfigurationError("suite_defaults() takes either an options object or keyword fields, not both")
    defaults = coerce_options(options) if options is not None else TestOptions(**fields)

    def decorator(cls: C) -> C:
        if SUITES_ATTR in vars(cls):
            raise ConfigurationError(
                f"{cls.__name__}: suite_defaults() must be applied to a base class, not to a decorated suite"
            )
        if DEFAULTS_ATTR in vars(cls):
            raise ConfigurationError(f"{cls.__name__}: static {DEFAULTS_ATTR} are already declared")
        setattr(cls, DEFAULTS_ATTR, defaults)
        return cls

    return decorator
