"""Test outcome control flow."""

from typing import NoReturn


class SkipTest(BaseException):
    """Skip the current test."""

    def __init__(self, reason: str = "") -> None:
        self.reason = reason
        super().__init__(reason)


class TestCancelled(Exception):
    """The test's abort signal fired before or while it ran."""

    __test__ = False

    def __init__(self, reason: str = "aborted") -> None:
        self.reason = reason
        super().__init__(reason)


def skip(reason: str = "") -> NoReturn:
    """Skip the current test."""
    raise SkipTest(reason)
