# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for the pip installation strategy orchestrator."""

from __future__ import annotations

import errno
import http.client
import tempfile
from pathlib import Path

import pytest

from pipkit.config import PipConfig
from pipkit.errors import ErrorKind, PipError
from pipkit.installer import (
    ALREADY_AVAILABLE,
    BOOTSTRAP_MODULE,
    HOMEBREW,
    OS_PACKAGE_MANAGER,
    REMOTE_BOOTSTRAP_SCRIPT,
    STRATEGY_TABLE,
    InstallOrchestrator,
    InstallState,
    InstallStrategy,
    StrategyContext,
    StrategyStatus,
    fetch_bootstrap_script,
    install_pip,
    strategies_for,
)
from pipkit.locator import ExecutableRef
from pipkit.platform import OSFamily
from pipkit.process import ExecutionContext

RUNTIME = ExecutableRef(("/usr/bin/python3",))
PIP_PROBE = ("/usr/bin/python3", "-m", "pip", "--version")


def _context(runner, *, runtime=RUNTIME, family=OSFamily.LINUX, downloader=None) -> StrategyContext:
    return StrategyContext(
        config=PipConfig(),
        runtime=runtime,
        execution=ExecutionContext(),
        runner=runner,
        downloader=downloader,
        family=family,
    )


def _recording_strategy(name: str, result: str | None, log: list[str]) -> InstallStrategy:
    def action(ctx: StrategyContext) -> str | None:
        log.append(name)
        return result

    return InstallStrategy(name=name, check=lambda ctx: None, action=action, verify=False)


def test_first_success_stops_the_fold(make_runner) -> None:
    log: list[str] = []
    strategies = [
        _recording_strategy("one", "boom", log),
        _recording_strategy("two", None, log),
        _recording_strategy("three", None, log),
    ]

    report = InstallOrchestrator(_context(make_runner())).run(strategies)

    assert log == ["one", "two"]
    assert report.state is InstallState.SUCCEEDED
    assert report.winner == "two"
    assert [outcome.status for outcome in report.outcomes] == [StrategyStatus.FAILED, StrategyStatus.SUCCEEDED]


def test_every_strategy_runs_once_when_all_fail(make_runner) -> None:
    log: list[str] = []
    strategies = [_recording_strategy(name, f"{name} failed", log) for name in ("a", "b", "c")]

    report = InstallOrchestrator(_context(make_runner())).run(strategies)

    assert log == ["a", "b", "c"]
    assert report.state is InstallState.EXHAUSTED_FAILED
    assert report.failures() == {
        "a": "failed: a failed",
        "b": "failed: b failed",
        "c": "failed: c failed",
    }


def test_unavailable_strategy_is_skipped_without_running(make_runner) -> None:
    log: list[str] = []
    skipped = InstallStrategy(
        name="skipped",
        check=lambda ctx: "tool missing",
        action=lambda ctx: log.append("skipped"),
    )

    report = InstallOrchestrator(_context(make_runner())).run([skipped, _recording_strategy("ok", None, log)])

    assert log == ["ok"]
    assert report.outcomes[0].status is StrategyStatus.UNAVAILABLE
    assert report.outcomes[0].detail == "tool missing"


def test_success_is_verified_with_pip_probe(make_runner) -> None:
    runner = make_runner(lambda argv: (1, "No module named pip") if argv == PIP_PROBE else (0, ""))
    strategy = InstallStrategy(name="claims-success", check=lambda ctx: None, action=lambda ctx: None)

    report = InstallOrchestrator(_context(runner)).run([strategy])

    assert not report.succeeded
    assert report.outcomes[0].detail == "pip still unavailable after claims-success"
    assert runner.calls == [PIP_PROBE]


def test_non_timeout_errors_become_failure_reasons(make_runner) -> None:
    def explode(ctx: StrategyContext) -> str | None:
        raise PipError(ErrorKind.COMMAND_FAILED, "it broke")

    failing = InstallStrategy(name="explodes", check=lambda ctx: None, action=explode)

    report = InstallOrchestrator(_context(make_runner())).run([failing])

    assert report.outcomes[0].detail == "it broke"


def test_timeout_aborts_the_whole_attempt(make_runner) -> None:
    log: list[str] = []

    def stalls(ctx: StrategyContext) -> str | None:
        raise PipError(ErrorKind.TIMEOUT, "deadline", context={"reason": "deadline exceeded"})

    strategies = [
        InstallStrategy(name="stalls", check=lambda ctx: None, action=stalls),
        _recording_strategy("never", None, log),
    ]

    with pytest.raises(PipError) as excinfo:
        InstallOrchestrator(_context(make_runner())).run(strategies)

    assert excinfo.value.kind is ErrorKind.TIMEOUT
    assert log == []


def test_runtime_is_refreshed_after_runtime_providing_strategy(make_runner) -> None:
    resolved = ExecutableRef(("/opt/python/bin/python3",))
    strategy = InstallStrategy(
        name="brings-python",
        check=lambda ctx: None,
        action=lambda ctx: None,
        provides_runtime=True,
    )
    ctx = _context(make_runner(), runtime=None)

    report = InstallOrchestrator(ctx, resolver=lambda config: resolved).run([strategy])

    assert report.succeeded
    assert ctx.runtime == resolved


def test_install_pip_short_circuits_when_available(make_runner) -> None:
    runner = make_runner()

    report = install_pip(_context(runner))

    assert report.succeeded
    assert report.winner == ALREADY_AVAILABLE
    assert runner.calls == [PIP_PROBE]


def test_install_pip_exhaustion_raises_tool_not_installed(monkeypatch, make_runner) -> None:
    monkeypatch.setattr("shutil.which", lambda cmd, mode=0, path=None: None)
    runner = make_runner(lambda argv: (1, "failure"))

    def offline(url: str, timeout: float) -> bytes:
        raise OSError("offline")

    with pytest.raises(PipError) as excinfo:
        install_pip(_context(runner, downloader=offline), resolver=lambda config: RUNTIME)

    error = excinfo.value
    assert error.kind is ErrorKind.TOOL_NOT_INSTALLED
    assert error.context[OS_PACKAGE_MANAGER].startswith("unavailable")
    assert error.context[BOOTSTRAP_MODULE].startswith("failed")
    assert "network error while downloading" in error.context[REMOTE_BOOTSTRAP_SCRIPT]
    assert "Install pip using: python -m ensurepip --upgrade" in error.suggestions


def test_remote_script_is_run_then_deleted(make_runner) -> None:
    seen: list[Path] = []

    def handler(argv: tuple[str, ...]) -> tuple[int, str]:
        if len(argv) == 2 and argv[1].endswith(".py"):
            script = Path(argv[1])
            assert script.read_bytes() == b"print('bootstrap')"
            seen.append(script)
        return 0, ""

    runner = make_runner(handler)
    remote = STRATEGY_TABLE[OSFamily.LINUX][-1]
    ctx = _context(runner, downloader=lambda url, timeout: b"print('bootstrap')")

    report = InstallOrchestrator(ctx).run([remote])

    assert report.winner == REMOTE_BOOTSTRAP_SCRIPT
    assert len(seen) == 1
    assert seen[0].name.startswith("get-pip-")
    assert not seen[0].exists()


def test_remote_script_is_deleted_when_it_fails(make_runner) -> None:
    seen: list[Path] = []

    def handler(argv: tuple[str, ...]) -> tuple[int, str]:
        seen.append(Path(argv[-1]))
        return 1, "ERROR: boom"

    remote = STRATEGY_TABLE[OSFamily.LINUX][-1]
    ctx = _context(make_runner(handler), downloader=lambda url, timeout: b"")

    report = InstallOrchestrator(ctx).run([remote])

    assert report.outcomes[0].detail.endswith("exited with 1: ERROR: boom")
    assert not seen[0].exists()


class _FullDisk:
    """Temporary file handle whose writes fail with ENOSPC."""

    def __init__(self, inner) -> None:
        self._inner = inner
        self.name = inner.name

    def write(self, data: bytes) -> int:
        raise OSError(errno.ENOSPC, "No space left on device")

    def __enter__(self) -> _FullDisk:
        return self

    def __exit__(self, *exc_info) -> None:
        self._inner.close()


def test_remote_script_write_failure_is_recorded_and_cleaned_up(monkeypatch, make_runner) -> None:
    real_temp = tempfile.NamedTemporaryFile
    created: list[Path] = []

    def full_disk(*args, **kwargs):
        handle = _FullDisk(real_temp(*args, **kwargs))
        created.append(Path(handle.name))
        return handle

    monkeypatch.setattr("tempfile.NamedTemporaryFile", full_disk)
    log: list[str] = []
    remote = STRATEGY_TABLE[OSFamily.LINUX][-1]
    ctx = _context(make_runner(), downloader=lambda url, timeout: b"print('bootstrap')")

    report = InstallOrchestrator(ctx).run([remote, _recording_strategy("next", None, log)])

    assert report.outcomes[0].status is StrategyStatus.FAILED
    assert "No space left on device" in report.outcomes[0].detail
    assert log == ["next"]
    assert report.winner == "next"
    assert len(created) == 1
    assert not created[0].exists()


def test_truncated_download_is_a_network_failure(make_runner) -> None:
    def truncated(url: str, timeout: float) -> bytes:
        raise http.client.IncompleteRead(b"partial", 100)

    remote = STRATEGY_TABLE[OSFamily.LINUX][-1]
    runner = make_runner()

    report = InstallOrchestrator(_context(runner, downloader=truncated)).run([remote])

    assert report.state is InstallState.EXHAUSTED_FAILED
    assert report.outcomes[0].detail.startswith("network error while downloading")
    assert runner.calls == []


def test_unexpected_action_exception_continues_the_fold(make_runner) -> None:
    log: list[str] = []

    def broken(ctx: StrategyContext) -> str | None:
        raise http.client.BadStatusLine("garbage")

    strategies = [
        InstallStrategy(name="broken", check=lambda ctx: None, action=broken),
        _recording_strategy("fallback", "also failed", log),
    ]

    report = InstallOrchestrator(_context(make_runner())).run(strategies)

    assert log == ["fallback"]
    assert report.state is InstallState.EXHAUSTED_FAILED
    assert report.failures()["broken"].startswith("failed: BadStatusLine")


def test_unknown_platform_is_unsupported() -> None:
    with pytest.raises(PipError) as excinfo:
        strategies_for(OSFamily.UNKNOWN)

    assert excinfo.value.kind is ErrorKind.UNSUPPORTED_PLATFORM


def test_strategy_order_per_platform() -> None:
    names = {family: [strategy.name for strategy in STRATEGY_TABLE[family]] for family in STRATEGY_TABLE}

    assert names[OSFamily.LINUX] == [OS_PACKAGE_MANAGER, BOOTSTRAP_MODULE, REMOTE_BOOTSTRAP_SCRIPT]
    assert names[OSFamily.MACOS] == [HOMEBREW, BOOTSTRAP_MODULE, REMOTE_BOOTSTRAP_SCRIPT]
    assert names[OSFamily.WINDOWS][:2] == [BOOTSTRAP_MODULE, REMOTE_BOOTSTRAP_SCRIPT]


def test_package_manager_runs_through_sudo(monkeypatch, make_runner) -> None:
    tools = {"apt-get": "/usr/bin/apt-get", "sudo": "/usr/bin/sudo"}
    monkeypatch.setattr("shutil.which", lambda cmd, mode=0, path=None: tools.get(cmd))
    monkeypatch.setattr("pipkit.installer._is_root", lambda: False)
    runner = make_runner()

    report = InstallOrchestrator(_context(runner), resolver=lambda config: RUNTIME).run(
        STRATEGY_TABLE[OSFamily.LINUX][:1]
    )

    assert report.winner == OS_PACKAGE_MANAGER
    assert runner.calls == [
        ("/usr/bin/sudo", "/usr/bin/apt-get", "update"),
        ("/usr/bin/sudo", "/usr/bin/apt-get", "install", "-y", "python3-pip"),
        PIP_PROBE,
    ]


def test_package_manager_without_sudo_fails(monkeypatch, make_runner) -> None:
    monkeypatch.setattr("shutil.which", lambda cmd, mode=0, path=None: "/sbin/apk" if cmd == "apk" else None)
    monkeypatch.setattr("pipkit.installer._is_root", lambda: False)
    runner = make_runner()

    report = InstallOrchestrator(_context(runner), resolver=lambda config: RUNTIME).run(
        STRATEGY_TABLE[OSFamily.LINUX][:1]
    )

    assert report.outcomes[0].status is StrategyStatus.FAILED
    assert "sudo is not available" in report.outcomes[0].detail
    assert runner.calls == []


def test_homebrew_only_offered_without_runtime(monkeypatch, make_runner) -> None:
    monkeypatch.setattr("shutil.which", lambda cmd, mode=0, path=None: "/opt/homebrew/bin/brew")
    homebrew = STRATEGY_TABLE[OSFamily.MACOS][0]

    report = InstallOrchestrator(_context(make_runner(), family=OSFamily.MACOS)).run([homebrew])

    assert report.outcomes[0].status is StrategyStatus.UNAVAILABLE
    assert report.outcomes[0].detail == "Python interpreter already available"


def test_bootstrap_script_requires_https() -> None:
    with pytest.raises(ValueError):
        fetch_bootstrap_script("http://bootstrap.pypa.io/get-pip.py", 1)
