"""Decorators declaring hooks and tests on suite methods.

A declaration only marks the function. The ordered, per-instance registry is
built when a suite instance is constructed (see :func:`populate_registry`):
the class MRO is walked from the root-most ancestor to the instance's own
class, so ancestor hooks always precede descendant hooks of the same kind.

Decorated base methods cannot be re-implemented in subclasses: the base
function stays declared on the base class and is registered as well. Use an
undecorated method for behaviour that subclasses should override.
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from classtest.errors import ConfigurationError
from classtest.options import HookOptions, OptionsLike, TestOptions, coerce_options


logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

DECLARATION_ATTR = "__classtest_declaration__"


class DeclarationKind(Enum):
    """Role of a declared method."""

    BEFORE_ALL = "before_all"
    BEFORE_EACH = "before_each"
    AFTER_EACH = "after_each"
    AFTER_ALL = "after_all"
    TEST = "test"


@dataclass(frozen=True)
class Declaration:
    """Marker stored on a decorated function."""

    kind: DeclarationKind
    options: HookOptions | None = None
    name: str | None = None


@dataclass(frozen=True)
class DeclarationEntry:
    """A declared method as found on a concrete class."""

    kind: DeclarationKind
    name: str
    method: Callable[..., Any]
    owner: type
    options: HookOptions | None = None


class AnnotationRegistry:
    """Ordered declarations of one suite instance, keyed by method."""

    def __init__(self) -> None:
        self._entries: dict[Callable[..., Any], DeclarationEntry] = {}

    def register(self, entry: DeclarationEntry) -> None:
        if entry.method in self._entries:
            raise ConfigurationError(
                f"{entry.owner.__name__}.{entry.name}: method is already registered for this instance"
            )
        self._entries[entry.method] = entry

    def entries(self) -> list[DeclarationEntry]:
        return list(self._entries.values())

    def __iter__(self) -> Iterator[DeclarationEntry]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self._entries)


# id(instance) -> registry; entries are dropped by a finalizer once the instance is collected
_registries: dict[int, AnnotationRegistry] = {}


def get_declaration(fn: Any) -> Declaration | None:
    """Return the declaration marker of a function, if any."""
    return getattr(fn, DECLARATION_ATTR, None)


def _declare(fn: F, declaration: Declaration) -> F:
    label = declaration.kind.value
    if isinstance(fn, (staticmethod, classmethod)):
        raise ConfigurationError(
            f"@{label}: can only be used on instance methods, got {type(fn).__name__} "
            f"{getattr(fn.__func__, '__qualname__', fn)}"
        )
    if not callable(fn):
        raise ConfigurationError(f"@{label}: expected a method, got {type(fn).__name__}")
    existing = get_declaration(fn)
    if existing is not None:
        raise ConfigurationError(
            f"@{label}: {fn.__qualname__} is already declared as @{existing.kind.value}"
        )
    setattr(fn, DECLARATION_ATTR, declaration)
    return fn


def declaration_for(
    kind: DeclarationKind,
    options: OptionsLike = None,
) -> Callable[..., Any]:
    """Create a decorator declaring a method as hook or test of ``kind``.

    The returned decorator works bare (``@before_each``) and called with
    option fields (``@before_each(timeout=100)``).
    """
    model = TestOptions if kind is DeclarationKind.TEST else HookOptions
    preset = coerce_options(options, model)

    def decorator(fn: Any = None, /, *, name: str | None = None, **fields: Any) -> Any:
        def apply(target: F) -> F:
            merged = {**(preset.explicit() if preset else {}), **fields}
            resolved = model(**merged) if merged else None
            if name is not None and kind is not DeclarationKind.TEST:
                raise ConfigurationError(f"@{kind.value}: only tests accept a name")
            return _declare(target, Declaration(kind=kind, options=resolved, name=name))

        if fn is not None:
            return apply(fn)
        return apply

    decorator.__name__ = kind.value
    decorator.__test__ = False  # keep pytest from collecting the decorators themselves
    return decorator


before_all = declaration_for(DeclarationKind.BEFORE_ALL)
"""Run the method once before all tests of the suite."""

before_each = declaration_for(DeclarationKind.BEFORE_EACH)
"""Run the method before every test of the suite."""

after_each = declaration_for(DeclarationKind.AFTER_EACH)
"""Run the method after every test of the suite."""

after_all = declaration_for(DeclarationKind.AFTER_ALL)
"""Run the method once after all tests of the suite."""

test = declaration_for(DeclarationKind.TEST)
"""Declare the method as a test case. It receives the test context."""

test_skip = declaration_for(DeclarationKind.TEST, {"skip": True})
test_skip.__name__ = "test_skip"
test_todo = declaration_for(DeclarationKind.TEST, {"todo": True})
test_todo.__name__ = "test_todo"
test_only = declaration_for(DeclarationKind.TEST, {"only": True})
test_only.__name__ = "test_only"


def test_with_options(options: OptionsLike) -> Callable[[F], F]:
    """Declare the method as a test case with the given options."""
    return declaration_for(DeclarationKind.TEST, options)


test_with_options.__test__ = False


def iter_declarations(cls: type) -> Iterator[DeclarationEntry]:
    """Yield the declared methods of a class, ancestors first.

    Within one class, definition order is kept.
    """
    seen: dict[Callable[..., Any], str] = {}
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        for attr, value in vars(klass).items():
            if isinstance(value, (staticmethod, classmethod)):
                if get_declaration(value.__func__) is not None:
                    raise ConfigurationError(
                        f"{klass.__name__}.{attr}: hooks and tests can only be declared on instance methods"
                    )
                continue
            declaration = get_declaration(value)
            if declaration is None:
                continue
            if value in seen:
                raise ConfigurationError(
                    f"{klass.__name__}.{attr}: the method declared as {seen[value]} is reused; "
                    f"declare a separate method instead"
                )
            seen[value] = f"{klass.__name__}.{attr}"
            yield DeclarationEntry(
                kind=declaration.kind,
                name=declaration.name or attr,
                method=value,
                owner=klass,
                options=declaration.options,
            )


def populate_registry(instance: Any) -> AnnotationRegistry:
    """Record the declarations reachable from ``instance``'s class.

    Called once per construction. Registering the same method twice for one
    instance raises :class:`ConfigurationError`.
    """
    key = id(instance)
    registry = _registries.get(key)
    if registry is None:
        try:
            weakref.finalize(instance, _registries.pop, key, None)
        except TypeError as e:
            raise ConfigurationError(
                f"{type(instance).__name__}: suite instances must support weak references"
            ) from e
        registry = _registries[key] = AnnotationRegistry()

    for entry in iter_declarations(type(instance)):
        registry.register(entry)
    logger.debug("Registered %d declarations for %s", len(registry), type(instance).__name__)
    return registry


def registry_for(instance: Any) -> AnnotationRegistry | None:
    """Return the registry populated for ``instance``, if any."""
    return _registries.get(id(instance))
