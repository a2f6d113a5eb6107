# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Colored terminal output of the CLI."""

import os
import re

from colorama import Fore, Style, init

from device_test_runner.core.types import TestOutcome, TestResults

init(autoreset=True)


class TerminalColors:
    """Semantic colors; all output is plain text when NO_COLOR is set."""

    ERROR = Fore.RED
    WARNING = Fore.YELLOW
    SUCCESS = Fore.GREEN
    INFO = Fore.CYAN
    HIGHLIGHT = Fore.MAGENTA
    BOLD = Style.BRIGHT
    RESET = Style.RESET_ALL

    NO_COLOR = "NO_COLOR" in os.environ

    _ANSI = re.compile(r"\x1b\[[0-9;]*m")

    @classmethod
    def strip_ansi(cls, text: str) -> str:
        return cls._ANSI.sub("", text)

    @classmethod
    def _color(cls, color: str, text: str) -> str:
        return text if cls.NO_COLOR else f"{color}{text}{cls.RESET}"

    @classmethod
    def error(cls, text: str) -> str:
        return cls._color(cls.ERROR, text)

    @classmethod
    def warning(cls, text: str) -> str:
        return cls._color(cls.WARNING, text)

    @classmethod
    def success(cls, text: str) -> str:
        return cls._color(cls.SUCCESS, text)

    @classmethod
    def info(cls, text: str) -> str:
        return cls._color(cls.INFO, text)

    @classmethod
    def highlight(cls, text: str) -> str:
        return cls._color(cls.HIGHLIGHT, text)

    @classmethod
    def bold(cls, text: str) -> str:
        return cls._color(cls.BOLD, text)

    @classmethod
    def header(cls, text: str, width: int = 70, char: str = "=") -> str:
        """Title framed by two rules of ``char``."""
        rule = cls.info(char * width)
        return "\n".join((rule, cls.bold(text), rule))

    @classmethod
    def outcome(cls, outcome: TestOutcome) -> str:
        """Format a test outcome with the color matching its meaning."""
        label = outcome.value.upper()
        if outcome == TestOutcome.PASSED:
            return cls.success(label)
        if outcome == TestOutcome.FAILED:
            return cls.error(label)
        if outcome == TestOutcome.SKIPPED:
            return cls.warning(label)
        return cls.highlight(label)

    @classmethod
    def format_summary(cls, results: TestResults) -> str:
        """Format the final count line of a run."""
        parts = [
            cls.success(f"{results.passed} passed"),
            cls.error(f"{results.failed} failed") if results.failed else f"{results.failed} failed",
            cls.warning(f"{results.skipped} skipped"),
        ]
        if results.other:
            parts.append(cls.highlight(f"{results.other} not run"))
        if results.reason:
            parts.append(cls.error(results.reason))
        return f"{results.total} results: " + ", ".join(parts)


terminal = TerminalColors()
