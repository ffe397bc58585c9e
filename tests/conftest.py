# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared pytest fixtures."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from pathlib import Path

import pytest

from pipkit.locator import ExecutableRef
from pipkit.process import CommandResult, ExecutionContext

Handler = Callable[[tuple[str, ...]], tuple[int, str]]


class RecordingRunner:
    """Command runner double that records argv and replays scripted results."""

    def __init__(self, handler: Handler | None = None) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.envs: list[dict[str, str]] = []
        self.contexts: list[ExecutionContext | None] = []
        self._handler = handler or (lambda argv: (0, ""))

    def __call__(
        self,
        ref: ExecutableRef,
        args: Sequence[str] = (),
        *,
        env: Mapping[str, str] | None = None,
        context: ExecutionContext | None = None,
        cwd: Path | None = None,
    ) -> CommandResult:
        argv = tuple(ref.argv(args))
        self.calls.append(argv)
        self.envs.append(dict(env or {}))
        self.contexts.append(context)
        exit_code, output = self._handler(argv)
        return CommandResult(argv, output, exit_code, 0.0)


@pytest.fixture(autouse=True)
def _restore_package_logger() -> Iterator[None]:
    logger = logging.getLogger("pipkit")
    handlers = list(logger.handlers)
    level, propagate = logger.level, logger.propagate
    configured = logger.__dict__.get("_pipkit_handler")
    yield
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate
    if configured is None:
        logger.__dict__.pop("_pipkit_handler", None)


@pytest.fixture
def make_runner() -> type[RecordingRunner]:
    """Return the recording runner class so tests can script responses."""
    return RecordingRunner


@pytest.fixture
def fake_venv(tmp_path: Path) -> Path:
    """Create a directory laid out like a POSIX virtual environment."""
    root = tmp_path / "venv"
    bin_dir = root / "bin"
    bin_dir.mkdir(parents=True)
    (bin_dir / "python").write_text("", encoding="utf-8")
    (bin_dir / "pip").write_text("", encoding="utf-8")
    return root
