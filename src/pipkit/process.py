# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Cancellable subprocess execution with combined output capture."""

from __future__ import annotations

import logging
import os
import shlex

# Bandit: commands are argument lists executed without ``shell=True``.
import subprocess  # nosec B404
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Protocol

from .classifier import LAUNCH_FAILED, as_text, classify
from .errors import CommandCancelled, PipError
from .locator import ExecutableRef

LOGGER = logging.getLogger(__name__)

POLL_INTERVAL: Final[float] = 0.1
REASON_CANCELLED: Final[str] = "cancelled"
REASON_DEADLINE: Final[str] = "deadline exceeded"


class ExecutionContext:
    """Cancellation signal and optional deadline shared along one call chain.

    ``cancel()`` may be called from any thread. Child contexts share the
    cancellation signal and can only tighten the deadline.
    """

    def __init__(self, timeout: float | None = None, *, _event: threading.Event | None = None) -> None:
        self._event = _event or threading.Event()
        self._deadline = time.monotonic() + timeout if timeout else None

    @classmethod
    def background(cls) -> ExecutionContext:
        """Return a context without deadline that is only cancelled explicitly."""

        return cls()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; return ``cancelled``."""

        return self._event.wait(timeout)

    def remaining(self) -> float | None:
        """Return seconds left before the deadline, or ``None`` without one."""

        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def stop_reason(self) -> str | None:
        """Return why the context is no longer live, or ``None`` when it is."""

        if self.cancelled:
            return REASON_CANCELLED
        if self.expired:
            return REASON_DEADLINE
        return None

    def child(self, timeout: float | None = None) -> ExecutionContext:
        """Return a context sharing this cancellation signal with a tighter deadline."""

        child = ExecutionContext(_event=self._event)
        candidates = [value for value in (self.remaining(), timeout) if value is not None]
        if candidates:
            child._deadline = time.monotonic() + min(candidates)
        return child


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one external invocation."""

    command: tuple[str, ...]
    output: str
    exit_code: int
    duration: float
    launch_error: OSError | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def launched(self) -> bool:
        return self.exit_code != LAUNCH_FAILED

    @property
    def rendered(self) -> str:
        return render_command(self.command)


class CommandRunner(Protocol):
    """Callable signature shared by :func:`run_command` and test doubles."""

    def __call__(
        self,
        ref: ExecutableRef,
        args: Sequence[str] = (),
        *,
        env: Mapping[str, str] | None = None,
        context: ExecutionContext | None = None,
        cwd: Path | None = None,
    ) -> CommandResult: ...


def render_command(argv: Sequence[str]) -> str:
    return shlex.join(argv)


def merge_env(overlay: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a copy of the process environment with ``overlay`` applied on top."""

    env = os.environ.copy()
    if overlay:
        env.update(overlay)
    return env


def run_command(
    ref: ExecutableRef,
    args: Sequence[str] = (),
    *,
    env: Mapping[str, str] | None = None,
    context: ExecutionContext | None = None,
    cwd: Path | None = None,
) -> CommandResult:
    """Execute ``ref`` with ``args`` and capture combined stdout/stderr.

    Args:
        ref: Executable reference; multi-token references prepend their extra tokens.
        args: Arguments appended after the reference tokens.
        env: Overlay applied to a copy of the inherited environment.
        context: Cancellation/deadline context; defaults to one without deadline.
        cwd: Optional working directory.

    Returns:
        CommandResult: Exit status and output. A process that never started
        reports ``exit_code == -1`` and carries ``launch_error``.

    Raises:
        PipError: ``timeout`` when the context is cancelled or its deadline
            passes before the process exits; the process is killed first.
    """

    argv = ref.argv(args)
    rendered = render_command(argv)
    context = context or ExecutionContext.background()

    reason = context.stop_reason()
    if reason is not None:
        raise classify(rendered, None, LAUNCH_FAILED, CommandCancelled(reason))

    LOGGER.debug("Executing command: %s", rendered)
    started = time.monotonic()
    try:
        # Bandit: argv is a list and shell expansion is disabled.
        process = subprocess.Popen(  # nosec B603
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            cwd=str(cwd) if cwd is not None else None,
            env=merge_env(env),
        )
    except OSError as exc:
        duration = time.monotonic() - started
        LOGGER.debug("Command %s failed to start: %s", rendered, exc)
        return CommandResult(tuple(argv), "", LAUNCH_FAILED, duration, launch_error=exc)

    raw = _drain(process, context, rendered)
    duration = time.monotonic() - started
    output = as_text(raw)
    LOGGER.debug("Command %s exited with %s after %.2fs", rendered, process.returncode, duration)
    if output:
        LOGGER.debug("Command output: %s", output)
    return CommandResult(tuple(argv), output, process.returncode, duration)


def _watch(
    process: subprocess.Popen[bytes],
    context: ExecutionContext,
    finished: threading.Event,
    reasons: list[str],
) -> None:
    while not finished.is_set():
        remaining = context.remaining()
        context.wait(POLL_INTERVAL if remaining is None else min(POLL_INTERVAL, remaining))
        reason = context.stop_reason()
        if reason is not None:
            reasons.append(reason)
            process.kill()
            return


def _drain(process: subprocess.Popen[bytes], context: ExecutionContext, rendered: str) -> bytes:
    """Collect output while a watcher kills the process once ``context`` stops.

    A stop observed at any point before the output is returned wins over the
    exit status, so a cancelled command never reports success.
    """

    finished = threading.Event()
    reasons: list[str] = []
    watcher = threading.Thread(
        target=_watch,
        args=(process, context, finished, reasons),
        name="pipkit-cancel-watcher",
        daemon=True,
    )
    watcher.start()
    try:
        raw, _ = process.communicate()
    finally:
        finished.set()
        watcher.join()
    reason = reasons[0] if reasons else context.stop_reason()
    if reason is not None:
        LOGGER.debug("Command %s stopped: %s", rendered, reason)
        raise classify(rendered, raw, process.returncode, CommandCancelled(reason))
    return raw or b""


def check_command(result: CommandResult) -> CommandResult:
    """Return ``result`` when it succeeded, otherwise raise its classified error."""

    if result.succeeded:
        return result
    raise classify(result.rendered, result.output, result.exit_code, result.launch_error)


__all__ = [
    "CommandResult",
    "CommandRunner",
    "ExecutionContext",
    "PipError",
    "check_command",
    "merge_env",
    "render_command",
    "run_command",
]
