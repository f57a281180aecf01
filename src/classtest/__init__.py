"""classtest - declare test suites as decorated classes."""

from .declarations import (
    DeclarationKind,
    after_all,
    after_each,
    before_all,
    before_each,
    test,
    test_only,
    test_skip,
    test_todo,
    test_with_options,
)
from .errors import ConfigurationError
from .harness import Harness, RunResult, SuiteResult, TestResult, TestStatus, run
from .options import HookOptions, TestOptions, resolve_options, suite_defaults
from .outcomes import SkipTest, TestCancelled, skip
from .runtime import HookPhase, Runtime, SuiteContext, TestContext, get_runtime, reset_runtime, set_runtime
from .suites import ParameterRun, parameterized_suite, suite, suite_with_options
from .version import __version__


__all__ = [
    # Declaring suites
    "suite",
    "suite_with_options",
    "parameterized_suite",
    "ParameterRun",
    "suite_defaults",
    # Declaring hooks and tests
    "DeclarationKind",
    "before_all",
    "before_each",
    "after_each",
    "after_all",
    "test",
    "test_with_options",
    "test_skip",
    "test_todo",
    "test_only",
    # Options
    "HookOptions",
    "TestOptions",
    "resolve_options",
    # Runtime
    "Runtime",
    "HookPhase",
    "SuiteContext",
    "TestContext",
    "get_runtime",
    "set_runtime",
    "reset_runtime",
    "Harness",
    "RunResult",
    "SuiteResult",
    "TestResult",
    "TestStatus",
    "run",
    # Outcomes and errors
    "ConfigurationError",
    "SkipTest",
    "TestCancelled",
    "skip",
    "__version__",
]
