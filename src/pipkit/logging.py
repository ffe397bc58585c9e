# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""User-facing console helpers with optional colour and emoji support."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache, partial
from typing import Final, Literal

from rich.console import Console
from rich.rule import Rule
from rich.text import Text

from .errors import PipError

PACKAGE_LOGGER: Final[str] = "pipkit"
_CONFIGURED_FLAG: Final[str] = "_pipkit_handler"


def detect_tty() -> bool:
    """Return ``True`` when stdout appears to be backed by a terminal."""

    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


@lru_cache(maxsize=8)
def _console(color: bool, emoji: bool, tty: bool) -> Console:
    color_system: Literal["auto", "standard", "256", "truecolor", "windows"] | None = (
        "auto" if color and tty else None
    )
    return Console(
        color_system=color_system,
        force_terminal=tty,
        no_color=not (color and tty),
        emoji=emoji,
        soft_wrap=True,
    )


def get_console(*, color: bool, emoji: bool) -> Console:
    """Return a console configured for ``color`` and ``emoji`` preferences.

    Args:
        color: ``True`` when ANSI colour output should be enabled.
        emoji: ``True`` when Rich should render emoji glyphs.

    Returns:
        Console: Cached console matching the preferences and the current TTY state.
    """

    return _console(color, emoji, detect_tty())


class Level(str, Enum):
    """Severity of a user-facing console line."""

    INFO = "info"
    OK = "ok"
    WARN = "warn"
    FAIL = "fail"


@dataclass(frozen=True, slots=True)
class LineStyle:
    symbol: str
    style: str


LEVEL_STYLES: Final[dict[Level, LineStyle]] = {
    Level.INFO: LineStyle("ℹ️ ", "cyan"),
    Level.OK: LineStyle("✅ ", "green"),
    Level.WARN: LineStyle("⚠️ ", "yellow"),
    Level.FAIL: LineStyle("❌ ", "red"),
}
SUGGESTION_STYLE: Final[str] = "yellow"


def _write(text: str, style: str | None, *, use_emoji: bool, use_color: bool | None) -> None:
    colored = detect_tty() if use_color is None else use_color
    line = Text(text, style=style if colored and style else "")
    get_console(color=colored, emoji=use_emoji).print(line)


def emit(level: Level, msg: str, *, use_emoji: bool, use_color: bool | None = None) -> None:
    """Print ``msg`` with the symbol and colour registered for ``level``.

    Args:
        level: Severity selecting the entry in :data:`LEVEL_STYLES`.
        msg: Message text.
        use_emoji: Prefix the level symbol when ``True``.
        use_color: Explicit colour flag; TTY detection decides when ``None``.
    """

    entry = LEVEL_STYLES[level]
    prefix = entry.symbol if use_emoji else ""
    _write(f"{prefix}{msg}", entry.style, use_emoji=use_emoji, use_color=use_color)


info = partial(emit, Level.INFO)
ok = partial(emit, Level.OK)
warn = partial(emit, Level.WARN)
fail = partial(emit, Level.FAIL)


def section(title: str, *, use_color: bool) -> None:
    """Print a rule (colour) or a ``--- title ---`` banner (plain)."""

    console = get_console(color=use_color, emoji=True)
    console.print(Rule(title) if use_color else f"\n--- {title} ---")


def report_failure(error: PipError, *, use_emoji: bool, use_color: bool | None = None) -> None:
    """Render ``error`` as a failure line followed by its suggestions."""

    fail(f"[{error.kind.value}] {error.message}", use_emoji=use_emoji, use_color=use_color)
    if error.command:
        info(f"Command: {error.command}", use_emoji=use_emoji, use_color=use_color)
    _print_suggestions(error.suggestions, use_emoji=use_emoji, use_color=use_color)


def _print_suggestions(suggestions: Iterable[str], *, use_emoji: bool, use_color: bool | None) -> None:
    for suggestion in suggestions:
        _write(f"  • {suggestion}", SUGGESTION_STYLE, use_emoji=use_emoji, use_color=use_color)


def configure_logging(level: str | int = logging.INFO) -> logging.Logger:
    """Attach a stderr handler to the ``pipkit`` logger once and set its level.

    Args:
        level: Level name (``"DEBUG"``) or numeric level.

    Returns:
        logging.Logger: The configured package logger.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    if not getattr(logger, _CONFIGURED_FLAG, False):
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False
        setattr(logger, _CONFIGURED_FLAG, True)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    return logger


__all__ = [
    "LEVEL_STYLES",
    "Level",
    "configure_logging",
    "detect_tty",
    "emit",
    "fail",
    "get_console",
    "info",
    "ok",
    "report_failure",
    "section",
    "warn",
]
