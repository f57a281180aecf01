"""Command-line entry point: `classtest run`."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from classtest import config
from classtest.discovery import DEFAULT_PATTERN, load_suites
from classtest.harness import Harness
from classtest.runtime import set_runtime


class CLIApplication:
    """Top-level command router."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self.parser = argparse.ArgumentParser(
            prog="classtest",
            description="Run class-based test suites.",
        )
        subparsers = self.parser.add_subparsers(dest="command", required=True)
        run = subparsers.add_parser(
            "run",
            help="Import suite modules and run the suites they declare.",
        )
        run.add_argument(
            "paths",
            nargs="*",
            default=["."],
            help="Files or directories to load suites from (default: current directory)",
        )
        run.add_argument(
            "--pattern",
            default=DEFAULT_PATTERN,
            help=f"File name glob for suite modules (default: {DEFAULT_PATTERN})",
        )
        run.add_argument(
            "--only",
            action="store_true",
            default=None,
            help="Run only tests and suites marked with only (CLASSTEST_ONLY).",
        )
        run.add_argument(
            "--timeout",
            type=int,
            help="Default timeout in milliseconds for suites without one (CLASSTEST_TIMEOUT).",
        )
        run.add_argument(
            "--trace-output",
            dest="trace_output",
            help="Write execution spans as JSONL to this file (CLASSTEST_TRACE_OUTPUT).",
        )
        run.add_argument("-v", "--verbose", action="count", default=0, help="Enable debug logging.")
        run.add_argument("-q", "--quiet", action="store_true", help="Only print failures.")

    def run(self, argv: Sequence[str] | None = None) -> int:
        load_dotenv(Path.cwd() / ".env")
        args = self.parser.parse_args(argv)
        try:
            command = RunCommand(self.console, args)
        except ValidationError as e:
            self.console.print(f"[red]Invalid CLASSTEST_* settings:[/red] {escape(str(e))}")
            return 2
        return command.run()


class RunCommand:
    """Driver for `classtest run`."""

    def __init__(self, console: Console, args: argparse.Namespace) -> None:
        settings = config.load_settings()
        self.console = console
        self.paths = [Path(p).expanduser() for p in args.paths]
        self.pattern = args.pattern
        self.only = settings.only if args.only is None else args.only
        self.timeout = args.timeout if args.timeout is not None else settings.timeout
        self.trace_output = Path(args.trace_output) if args.trace_output else settings.trace_output
        self.verbose = args.verbose
        self.quiet = args.quiet

    def run(self) -> int:
        if self.verbose:
            logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

        # Suite options are resolved at import, so the default must be in place first.
        config.DEFAULT_TIMEOUT = self.timeout

        harness = Harness(
            self.console,
            only=self.only,
            verbosity=-1 if self.quiet else self.verbose,
            enable_tracing=self.trace_output is not None,
            trace_output=self.trace_output,
        )
        previous = set_runtime(harness)
        try:
            for path in self.paths:
                load_suites(path, self.pattern)
            result = asyncio.run(harness.run())
        finally:
            if previous is not None:
                set_runtime(previous)
        return 0 if result.ok else 1


def main() -> None:
    sys.exit(CLIApplication().run())
