# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for the cancellable command runner."""

from __future__ import annotations

import os
import sys
import threading
import time
from pathlib import Path

import pytest

from pipkit.classifier import LAUNCH_FAILED
from pipkit.errors import ErrorKind, PipError
from pipkit.locator import ExecutableRef
from pipkit.process import ExecutionContext, check_command, merge_env, run_command

PYTHON = ExecutableRef((sys.executable,))


def test_combined_output_and_exit_code() -> None:
    result = run_command(
        PYTHON,
        ["-c", "import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)"],
    )

    assert result.exit_code == 3
    assert "out" in result.output
    assert "err" in result.output
    assert not result.succeeded
    assert result.duration >= 0


def test_module_invocation_tokens_are_prepended() -> None:
    ref = ExecutableRef((sys.executable, "-c"))

    result = run_command(ref, ["print('hello')"])

    assert result.succeeded
    assert result.output.strip() == "hello"
    assert result.command[:2] == (sys.executable, "-c")


def test_environment_overlay_does_not_leak(monkeypatch) -> None:
    monkeypatch.setenv("PIPKIT_BASE", "base")
    overlay = {"PIPKIT_OVERLAY": "value", "PIPKIT_BASE": "override"}

    result = run_command(
        PYTHON,
        ["-c", "import os; print(os.environ['PIPKIT_OVERLAY'], os.environ['PIPKIT_BASE'])"],
        env=overlay,
    )

    assert result.output.split() == ["value", "override"]
    assert "PIPKIT_OVERLAY" not in os.environ
    assert os.environ["PIPKIT_BASE"] == "base"
    assert overlay == {"PIPKIT_OVERLAY": "value", "PIPKIT_BASE": "override"}


def test_merge_env_copies_process_environment(monkeypatch) -> None:
    monkeypatch.setenv("PIPKIT_MERGE", "1")

    merged = merge_env({"EXTRA": "2"})
    merged["PIPKIT_MERGE"] = "changed"

    assert os.environ["PIPKIT_MERGE"] == "1"
    assert merged["EXTRA"] == "2"


def test_binary_output_is_decoded_with_replacement() -> None:
    result = run_command(PYTHON, ["-c", "import sys; sys.stdout.buffer.write(b'\\xff\\xfeok')"])

    assert result.succeeded
    assert result.output.endswith("ok")
    assert "�" in result.output


def test_launch_failure_returns_sentinel(tmp_path: Path) -> None:
    missing = ExecutableRef((str(tmp_path / "does-not-exist"),))

    result = run_command(missing, ["--version"])

    assert result.exit_code == LAUNCH_FAILED
    assert isinstance(result.launch_error, FileNotFoundError)
    assert not result.launched

    with pytest.raises(PipError) as excinfo:
        check_command(result)
    assert excinfo.value.kind is ErrorKind.COMMAND_FAILED
    assert excinfo.value.exit_code == LAUNCH_FAILED


def test_check_command_raises_classified_error() -> None:
    result = run_command(PYTHON, ["-c", "print('ERROR: No module named pip'); raise SystemExit(1)"])

    with pytest.raises(PipError) as excinfo:
        check_command(result)

    assert excinfo.value.kind is ErrorKind.COMMAND_FAILED
    assert "Install pip using: python -m ensurepip --upgrade" in excinfo.value.suggestions


def test_deadline_kills_process_and_reports_timeout() -> None:
    context = ExecutionContext(0.3)
    started = time.monotonic()

    with pytest.raises(PipError) as excinfo:
        run_command(PYTHON, ["-c", "import time; time.sleep(30)"], context=context)

    assert excinfo.value.kind is ErrorKind.TIMEOUT
    assert excinfo.value.context["reason"] == "deadline exceeded"
    assert time.monotonic() - started < 10


def test_cancel_from_another_thread_reports_timeout() -> None:
    context = ExecutionContext()
    timer = threading.Timer(0.3, context.cancel)
    timer.start()
    try:
        with pytest.raises(PipError) as excinfo:
            run_command(PYTHON, ["-c", "import time; time.sleep(30)"], context=context)
    finally:
        timer.cancel()

    assert excinfo.value.kind is ErrorKind.TIMEOUT
    assert excinfo.value.context["reason"] == "cancelled"


@pytest.mark.parametrize("attempt", range(5))
def test_cancel_just_before_exit_is_never_success(tmp_path: Path, attempt: int) -> None:
    marker = tmp_path / f"release-{attempt}"
    script = (
        "import os, time\n"
        f"while not os.path.exists({str(marker)!r}):\n"
        "    time.sleep(0.005)\n"
    )
    context = ExecutionContext()

    def cancel_then_release() -> None:
        context.cancel()
        marker.write_text("", encoding="utf-8")

    timer = threading.Timer(0.2, cancel_then_release)
    timer.start()
    try:
        with pytest.raises(PipError) as excinfo:
            run_command(PYTHON, ["-c", script], context=context)
    finally:
        timer.cancel()

    assert excinfo.value.kind is ErrorKind.TIMEOUT
    assert excinfo.value.context["reason"] == "cancelled"


def test_context_wait_returns_on_cancel() -> None:
    context = ExecutionContext()
    threading.Timer(0.05, context.cancel).start()

    assert context.wait(5)
    assert not ExecutionContext().wait(0)


def test_already_cancelled_context_does_not_launch(tmp_path: Path) -> None:
    marker = tmp_path / "ran"
    context = ExecutionContext()
    context.cancel()

    with pytest.raises(PipError) as excinfo:
        run_command(PYTHON, ["-c", f"open({str(marker)!r}, 'w').close()"], context=context)

    assert excinfo.value.kind is ErrorKind.TIMEOUT
    assert not marker.exists()


def test_child_context_shares_cancellation_and_tightens_deadline() -> None:
    parent = ExecutionContext(60)
    child = parent.child(1)

    remaining = child.remaining()
    assert remaining is not None and remaining <= 1
    parent.cancel()
    assert child.cancelled
    assert child.stop_reason() == "cancelled"


def test_zero_timeout_means_no_deadline() -> None:
    context = ExecutionContext(0)

    assert context.remaining() is None
    assert not context.expired
