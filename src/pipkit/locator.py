# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Locate the Python interpreter and the pip executable."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Literal

from .config import PATH_KEY, PipConfig
from .platform import OSFamily, detect_os_family

LOGGER = logging.getLogger(__name__)

RefSource = Literal["config", "search"]

RUNTIME_CANDIDATES: Final[dict[OSFamily, tuple[str, ...]]] = {
    OSFamily.WINDOWS: ("py", "python3", "python"),
    OSFamily.MACOS: ("python3", "python", "python2"),
    OSFamily.LINUX: ("python3", "python", "python2"),
    OSFamily.UNKNOWN: ("python3", "python", "python2"),
}

TOOL_CANDIDATES: Final[dict[OSFamily, tuple[str, ...]]] = {
    OSFamily.WINDOWS: ("pip", "pip3", "py -m pip", "python -m pip"),
    OSFamily.MACOS: ("pip3", "pip", "python3 -m pip", "python -m pip"),
    OSFamily.LINUX: ("pip3", "pip", "python3 -m pip", "python -m pip"),
    OSFamily.UNKNOWN: ("pip3", "pip", "python3 -m pip", "python -m pip"),
}


@dataclass(frozen=True, slots=True)
class ExecutableRef:
    """Resolved invocation for an executable, possibly multi-token.

    ``("python3", "-m", "pip")`` and ``("/usr/bin/pip3",)`` are both valid
    references; only the first token is checked during resolution.
    """

    tokens: tuple[str, ...]
    source: RefSource = "search"

    def __post_init__(self) -> None:
        if not self.tokens or not self.tokens[0]:
            raise ValueError("executable reference requires at least one token")

    @classmethod
    def parse(cls, text: str, *, source: RefSource = "search") -> ExecutableRef:
        """Split ``text`` on whitespace into an invocation.

        Paths that exist on disk are kept whole so that directories containing
        spaces still resolve to a single executable.
        """

        stripped = text.strip()
        if stripped and Path(stripped).exists():
            return cls((stripped,), source)
        return cls(tuple(stripped.split()), source)

    @property
    def executable(self) -> str:
        return self.tokens[0]

    @property
    def is_module_invocation(self) -> bool:
        return len(self.tokens) > 1

    def argv(self, args: Sequence[str] = ()) -> list[str]:
        """Return the full argument vector for ``args``."""

        return [*self.tokens, *args]

    @property
    def display(self) -> str:
        return " ".join(self.tokens)

    def __str__(self) -> str:
        return self.display


def _search_path(config: PipConfig) -> str | None:
    return config.environment.get(PATH_KEY)


def _explicit(path: str | None) -> ExecutableRef | None:
    if not path:
        return None
    if Path(path).exists():
        return ExecutableRef((path,), "config")
    LOGGER.debug("Configured executable %s does not exist; falling back to search", path)
    return None


def _first_available(candidates: Sequence[str], search_path: str | None) -> ExecutableRef | None:
    for candidate in candidates:
        tokens = tuple(candidate.split())
        resolved = shutil.which(tokens[0], path=search_path)
        if resolved is None:
            continue
        if len(tokens) == 1:
            return ExecutableRef((resolved,), "search")
        return ExecutableRef(tokens, "search")
    return None


def resolve_runtime(config: PipConfig, family: OSFamily | None = None) -> ExecutableRef | None:
    """Return the Python interpreter to use, or ``None`` when none is found.

    An explicit ``python_path`` that exists on disk always wins. Nothing is
    cached: activating a different environment changes the answer.
    """

    explicit = _explicit(config.python_path)
    if explicit is not None:
        return explicit
    family = family or detect_os_family()
    ref = _first_available(RUNTIME_CANDIDATES[family], _search_path(config))
    LOGGER.debug("Resolved runtime: %s", ref or "<not found>")
    return ref


def resolve_tool(config: PipConfig, family: OSFamily | None = None) -> ExecutableRef | None:
    """Return the pip invocation to use, or ``None`` when none is found."""

    explicit = _explicit(config.pip_path)
    if explicit is not None:
        return explicit
    family = family or detect_os_family()
    ref = _first_available(TOOL_CANDIDATES[family], _search_path(config))
    LOGGER.debug("Resolved pip: %s", ref or "<not found>")
    return ref


def module_invocation(runtime: ExecutableRef, module: str) -> ExecutableRef:
    """Return ``runtime -m module`` as a reference."""

    return ExecutableRef((*runtime.tokens, "-m", module), runtime.source)


__all__ = [
    "ExecutableRef",
    "RUNTIME_CANDIDATES",
    "TOOL_CANDIDATES",
    "module_invocation",
    "resolve_runtime",
    "resolve_tool",
]
