"""Errors raised by the declaration engine."""


class ConfigurationError(TypeError):
    """A suite or declaration is set up in a way that cannot be registered.

    Raised synchronously at import (decoration) time, or from inside a suite
    body before any of its hooks or tests are registered.
    """
