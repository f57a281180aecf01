"""Process-wide configuration."""

from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TimeoutSettings(BaseSettings):
    """The default timeout, read from ``CLASSTEST_TIMEOUT``.

    Kept apart from :class:`Settings` so importing the package only ever
    reads this one variable.
    """

    timeout: int | None = Field(
        default=None,
        description="Default timeout in milliseconds for suites that declare none",
    )

    model_config = SettingsConfigDict(
        env_prefix="CLASSTEST_",
        extra="ignore",
    )

    @field_validator("timeout", mode="before")
    @classmethod
    def parse_timeout(cls, v: Any) -> int | None:
        """Accept base-10 integers only; anything else means no default."""
        if v is None or isinstance(v, int):
            return v
        try:
            return int(str(v).strip(), 10)
        except ValueError:
            return None


class Settings(TimeoutSettings):
    """Settings read from the environment.

    Loads from environment variables automatically:
        CLASSTEST_TIMEOUT, CLASSTEST_ONLY, CLASSTEST_TRACE_OUTPUT
    """

    only: bool = Field(default=False, description="Run only tests marked with only")
    trace_output: Path | None = Field(default=None, description="JSONL file receiving execution spans")


def load_settings() -> Settings:
    """Read settings from the current environment."""
    return Settings()


def load_default_timeout() -> int | None:
    """Read only the default timeout from the current environment."""
    return TimeoutSettings().timeout


# Parsed once at import. The CLI may override it before suite modules load.
DEFAULT_TIMEOUT: int | None = load_default_timeout()
