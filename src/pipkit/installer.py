# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Ordered, per-platform strategies that bring pip onto a machine."""

from __future__ import annotations

import http.client
import logging
import os
import shutil
import ssl
import tempfile
import urllib.request
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Final
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from .config import PATH_KEY, PipConfig
from .errors import ErrorKind, PipError
from .locator import ExecutableRef, module_invocation, resolve_runtime
from .platform import OSFamily, detect_os_family
from .process import CommandResult, CommandRunner, ExecutionContext, run_command

LOGGER = logging.getLogger(__name__)

_SUPPORTED_SCHEMES: Final[frozenset[str]] = frozenset({"https"})
_HTTP_OK: Final[int] = 200
USER_AGENT: Final[str] = "pipkit-bootstrap/1.0"

ALREADY_AVAILABLE: Final[str] = "already-available"
BOOTSTRAP_MODULE: Final[str] = "bootstrap-module"
REMOTE_BOOTSTRAP_SCRIPT: Final[str] = "remote-bootstrap-script"
OS_PACKAGE_MANAGER: Final[str] = "os-package-manager"
HOMEBREW: Final[str] = "homebrew"
CHOCOLATEY: Final[str] = "chocolatey"
SCOOP: Final[str] = "scoop"

MANUAL_BOOTSTRAP_SUGGESTIONS: Final[tuple[str, ...]] = (
    "Install pip using: python -m ensurepip --upgrade",
    "Or download get-pip.py and run: python get-pip.py",
)

Downloader = Callable[[str, float], bytes]


class StrategyStatus(str, Enum):
    """Result recorded for one strategy."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"


class InstallState(str, Enum):
    """Lifecycle of one installation attempt."""

    NOT_ATTEMPTED = "not_attempted"
    TRYING = "trying"
    SUCCEEDED = "succeeded"
    EXHAUSTED_FAILED = "exhausted_failed"


class StrategyOutcome(BaseModel):
    """Outcome captured for a strategy that ran or was skipped."""

    model_config = ConfigDict(frozen=True)

    name: str
    status: StrategyStatus
    detail: str | None = None

    def is_success(self) -> bool:
        return self.status is StrategyStatus.SUCCEEDED


class InstallReport(BaseModel):
    """Ordered outcomes plus the terminal state of an installation attempt."""

    model_config = ConfigDict(validate_assignment=True)

    state: InstallState = InstallState.NOT_ATTEMPTED
    outcomes: list[StrategyOutcome] = Field(default_factory=list)

    def register(self, outcome: StrategyOutcome) -> None:
        """Append ``outcome`` and move the state machine forward.

        Args:
            outcome: Outcome of the strategy that was just evaluated.
        """

        self.outcomes = [*self.outcomes, outcome]
        self.state = InstallState.SUCCEEDED if outcome.is_success() else InstallState.TRYING

    def finish(self) -> None:
        """Mark the attempt exhausted unless a strategy already succeeded."""

        if self.state is not InstallState.SUCCEEDED:
            self.state = InstallState.EXHAUSTED_FAILED

    @property
    def succeeded(self) -> bool:
        return self.state is InstallState.SUCCEEDED

    @property
    def winner(self) -> str | None:
        """Return the name of the strategy that succeeded, if any."""

        for outcome in self.outcomes:
            if outcome.is_success():
                return outcome.name
        return None

    def failures(self) -> dict[str, str]:
        """Return a mapping of strategy name to its failure or skip reason."""

        return {
            outcome.name: f"{outcome.status.value}: {outcome.detail or 'no detail'}"
            for outcome in self.outcomes
            if not outcome.is_success()
        }

    def to_error(
        self,
        kind: ErrorKind,
        message: str,
        suggestions: Sequence[str] = (),
    ) -> PipError:
        """Return the error describing an exhausted attempt."""

        return PipError.create(kind, message, suggestions=suggestions, context=self.failures())


@dataclass(slots=True)
class StrategyContext:
    """State handed to every strategy check and action.

    ``runtime`` is refreshed by the orchestrator after strategies that may
    have installed an interpreter.
    """

    config: PipConfig
    runtime: ExecutableRef | None
    execution: ExecutionContext
    runner: CommandRunner = run_command
    downloader: Downloader | None = None
    family: OSFamily = field(default_factory=detect_os_family)

    @property
    def search_path(self) -> str | None:
        return self.config.environment.get(PATH_KEY)

    def which(self, name: str) -> str | None:
        return shutil.which(name, path=self.search_path)

    def run(self, ref: ExecutableRef, args: Sequence[str] = ()) -> CommandResult:
        return self.runner(ref, args, env=self.config.environment, context=self.execution)

    def pip_ready(self) -> bool:
        """Return ``True`` when ``runtime -m pip --version`` succeeds."""

        if self.runtime is None:
            return False
        return self.run(module_invocation(self.runtime, "pip"), ["--version"]).succeeded


StrategyCheck = Callable[[StrategyContext], str | None]
StrategyAction = Callable[[StrategyContext], str | None]


@dataclass(frozen=True, slots=True)
class InstallStrategy:
    """One way of obtaining the tool.

    ``check`` returns ``None`` when the strategy can run, otherwise the reason
    it is unavailable. ``action`` returns ``None`` on success, otherwise the
    failure reason. ``provides_runtime`` marks strategies that may install the
    interpreter itself.
    """

    name: str
    check: StrategyCheck
    action: StrategyAction
    provides_runtime: bool = False
    verify: bool = True


def _failure_reason(result: CommandResult) -> str | None:
    if result.succeeded:
        return None
    if not result.launched:
        return f"{result.rendered} could not be started: {result.launch_error}"
    tail = result.output.strip().splitlines()[-1:] if result.output.strip() else []
    suffix = f": {tail[0]}" if tail else ""
    return f"{result.rendered} exited with {result.exit_code}{suffix}"


def _needs_runtime(ctx: StrategyContext) -> str | None:
    return None if ctx.runtime is not None else "Python interpreter not found"


def _needs_tool(name: str) -> StrategyCheck:
    def check(ctx: StrategyContext) -> str | None:
        return None if ctx.which(name) else f"{name} not found"

    return check


def _run_tool(name: str, *args: str) -> StrategyAction:
    def action(ctx: StrategyContext) -> str | None:
        executable = ctx.which(name) or name
        return _failure_reason(ctx.run(ExecutableRef((executable,)), args))

    return action


def _bootstrap_module(ctx: StrategyContext) -> str | None:
    if ctx.runtime is None:
        return "Python interpreter not found"
    return _failure_reason(ctx.run(module_invocation(ctx.runtime, "ensurepip"), ["--upgrade"]))


def fetch_bootstrap_script(url: str, timeout: float) -> bytes:
    """Download ``url`` enforcing HTTPS and a successful status.

    Args:
        url: HTTPS location of the bootstrap script.
        timeout: Seconds allowed for the whole request.

    Returns:
        bytes: Script body.

    Raises:
        ValueError: If the URL scheme is not HTTPS.
        OSError: On network failures or a non-200 response.
        http.client.HTTPException: On truncated or malformed responses.
    """

    parsed = urlparse(url)
    if parsed.scheme.lower() not in _SUPPORTED_SCHEMES:
        raise ValueError(f"Unsupported download scheme '{parsed.scheme}' for bootstrap script")
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    opener = urllib.request.build_opener(urllib.request.HTTPSHandler(context=ssl.create_default_context()))
    with opener.open(request, timeout=timeout) as response:
        status = getattr(response, "status", _HTTP_OK)
        if status != _HTTP_OK:
            raise OSError(f"failed to download bootstrap script: HTTP {status}")
        return response.read()


def _remote_bootstrap_script(ctx: StrategyContext) -> str | None:
    if ctx.runtime is None:
        return "Python interpreter not found"
    download = ctx.downloader or fetch_bootstrap_script
    url = ctx.config.bootstrap_url
    try:
        body = download(url, ctx.config.network_timeout)
    except (OSError, ValueError, http.client.HTTPException) as exc:
        LOGGER.debug("Downloading %s failed: %s", url, exc)
        return f"network error while downloading {url}: {exc}"

    try:
        handle = tempfile.NamedTemporaryFile(prefix="get-pip-", suffix=".py", delete=False)
    except OSError as exc:
        return f"could not create bootstrap script: {exc}"
    script = Path(handle.name)
    try:
        try:
            with handle:
                handle.write(body)
        except OSError as exc:
            return f"could not write bootstrap script {script}: {exc}"
        return _failure_reason(ctx.run(ctx.runtime, [str(script)]))
    finally:
        script.unlink(missing_ok=True)


@dataclass(frozen=True, slots=True)
class SystemPackageManager:
    """Linux package manager able to install pip."""

    name: str
    install_args: tuple[str, ...]
    refresh_args: tuple[str, ...] = ()


LINUX_PACKAGE_MANAGERS: Final[tuple[SystemPackageManager, ...]] = (
    SystemPackageManager("apt-get", ("install", "-y", "python3-pip"), refresh_args=("update",)),
    SystemPackageManager("dnf", ("install", "-y", "python3-pip")),
    SystemPackageManager("yum", ("install", "-y", "python3-pip")),
    SystemPackageManager("pacman", ("-S", "--noconfirm", "python-pip")),
    SystemPackageManager("zypper", ("install", "-y", "python3-pip")),
    SystemPackageManager("apk", ("add", "py3-pip")),
)


def _is_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def _available_package_manager(ctx: StrategyContext) -> tuple[SystemPackageManager, str] | None:
    for manager in LINUX_PACKAGE_MANAGERS:
        path = ctx.which(manager.name)
        if path:
            return manager, path
    return None


def _check_package_manager(ctx: StrategyContext) -> str | None:
    if _available_package_manager(ctx) is None:
        return "no supported package manager found"
    return None


def _package_manager(ctx: StrategyContext) -> str | None:
    found = _available_package_manager(ctx)
    if found is None:
        return "no supported package manager found"
    manager, path = found
    prefix: tuple[str, ...] = ()
    if not _is_root():
        sudo = ctx.which("sudo")
        if sudo is None:
            return f"{manager.name} requires root privileges and sudo is not available"
        prefix = (sudo,)
    LOGGER.info("Found package manager: %s", manager.name)
    ref = ExecutableRef((*prefix, path))
    if manager.refresh_args:
        failure = _failure_reason(ctx.run(ref, manager.refresh_args))
        if failure is not None:
            return failure
    return _failure_reason(ctx.run(ref, manager.install_args))


def _check_homebrew(ctx: StrategyContext) -> str | None:
    if ctx.runtime is not None:
        return "Python interpreter already available"
    return _needs_tool("brew")(ctx)


BOOTSTRAP_MODULE_STRATEGY: Final[InstallStrategy] = InstallStrategy(
    name=BOOTSTRAP_MODULE,
    check=_needs_runtime,
    action=_bootstrap_module,
)
REMOTE_BOOTSTRAP_STRATEGY: Final[InstallStrategy] = InstallStrategy(
    name=REMOTE_BOOTSTRAP_SCRIPT,
    check=_needs_runtime,
    action=_remote_bootstrap_script,
)

STRATEGY_TABLE: Final[Mapping[OSFamily, tuple[InstallStrategy, ...]]] = {
    OSFamily.WINDOWS: (
        BOOTSTRAP_MODULE_STRATEGY,
        REMOTE_BOOTSTRAP_STRATEGY,
        InstallStrategy(
            name=CHOCOLATEY,
            check=_needs_tool("choco"),
            action=_run_tool("choco", "install", "python", "-y"),
            provides_runtime=True,
        ),
        InstallStrategy(
            name=SCOOP,
            check=_needs_tool("scoop"),
            action=_run_tool("scoop", "install", "python"),
            provides_runtime=True,
        ),
    ),
    OSFamily.MACOS: (
        InstallStrategy(
            name=HOMEBREW,
            check=_check_homebrew,
            action=_run_tool("brew", "install", "python"),
            provides_runtime=True,
        ),
        BOOTSTRAP_MODULE_STRATEGY,
        REMOTE_BOOTSTRAP_STRATEGY,
    ),
    OSFamily.LINUX: (
        InstallStrategy(
            name=OS_PACKAGE_MANAGER,
            check=_check_package_manager,
            action=_package_manager,
            provides_runtime=True,
        ),
        BOOTSTRAP_MODULE_STRATEGY,
        REMOTE_BOOTSTRAP_STRATEGY,
    ),
}


class InstallOrchestrator:
    """Fold an ordered strategy list until one succeeds."""

    def __init__(
        self,
        context: StrategyContext,
        *,
        resolver: Callable[[PipConfig], ExecutableRef | None] = resolve_runtime,
    ) -> None:
        """Initialise the orchestrator.

        Args:
            context: Shared strategy state; its ``runtime`` may be refreshed.
            resolver: Interpreter resolver used after runtime-providing strategies.
        """

        self._context = context
        self._resolver = resolver

    @property
    def context(self) -> StrategyContext:
        return self._context

    def run(self, strategies: Iterable[InstallStrategy]) -> InstallReport:
        """Try ``strategies`` in order and return the report.

        Strategies are never retried and never run concurrently. Once a
        strategy succeeds, later ones are not evaluated. Exceptions other than a timeout
        raised by an action are recorded as that strategy's failure.

        Raises:
            PipError: ``timeout`` when the execution context is cancelled or
                expires while a strategy runs.
        """

        report = InstallReport()
        for strategy in strategies:
            outcome = self._attempt(strategy)
            report.register(outcome)
            if outcome.is_success():
                LOGGER.info("Strategy %s succeeded", strategy.name)
                break
            LOGGER.info("Strategy %s %s: %s", strategy.name, outcome.status.value, outcome.detail)
        report.finish()
        return report

    def _attempt(self, strategy: InstallStrategy) -> StrategyOutcome:
        ctx = self._context
        unavailable = strategy.check(ctx)
        if unavailable is not None:
            return StrategyOutcome(name=strategy.name, status=StrategyStatus.UNAVAILABLE, detail=unavailable)

        LOGGER.info("Trying strategy %s", strategy.name)
        try:
            failure = strategy.action(ctx)
        except PipError as exc:
            if exc.kind is ErrorKind.TIMEOUT:
                raise
            failure = exc.message
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("Strategy %s raised", strategy.name, exc_info=True)
            failure = f"{type(exc).__name__}: {exc}"
        if strategy.provides_runtime:
            ctx.runtime = self._resolver(ctx.config)
        if failure is None and strategy.verify and not ctx.pip_ready():
            failure = f"pip still unavailable after {strategy.name}"
        if failure is not None:
            return StrategyOutcome(name=strategy.name, status=StrategyStatus.FAILED, detail=failure)
        return StrategyOutcome(name=strategy.name, status=StrategyStatus.SUCCEEDED)


def strategies_for(family: OSFamily) -> tuple[InstallStrategy, ...]:
    """Return the ordered strategies for ``family``.

    Raises:
        PipError: ``unsupported_platform`` for an unknown OS family.
    """

    strategies = STRATEGY_TABLE.get(family)
    if strategies is None:
        raise PipError.create(
            ErrorKind.UNSUPPORTED_PLATFORM,
            f"unsupported operating system: {family.value}",
            context={"os": family.value},
        )
    return strategies


def install_pip(
    context: StrategyContext,
    *,
    resolver: Callable[[PipConfig], ExecutableRef | None] = resolve_runtime,
) -> InstallReport:
    """Ensure pip is available using the strategies for ``context.family``.

    Args:
        context: Strategy state carrying config, runtime and execution context.
        resolver: Interpreter resolver used after runtime-providing strategies.

    Returns:
        InstallReport: Successful report; the first outcome is
        ``already-available`` when nothing had to be installed.

    Raises:
        PipError: ``unsupported_platform`` for an unknown OS, ``timeout`` on
            cancellation, ``tool_not_installed`` when every strategy failed.
    """

    strategies = strategies_for(context.family)
    LOGGER.info("Installing pip for %s", context.family.value)
    if context.pip_ready():
        LOGGER.info("pip is already available through python -m pip")
        report = InstallReport()
        report.register(StrategyOutcome(name=ALREADY_AVAILABLE, status=StrategyStatus.SUCCEEDED))
        return report

    report = InstallOrchestrator(context, resolver=resolver).run(strategies)
    if not report.succeeded:
        raise report.to_error(
            ErrorKind.TOOL_NOT_INSTALLED,
            "all pip installation strategies failed",
            MANUAL_BOOTSTRAP_SUGGESTIONS,
        )
    return report


__all__ = [
    "ALREADY_AVAILABLE",
    "BOOTSTRAP_MODULE",
    "InstallOrchestrator",
    "InstallReport",
    "InstallState",
    "InstallStrategy",
    "LINUX_PACKAGE_MANAGERS",
    "REMOTE_BOOTSTRAP_SCRIPT",
    "STRATEGY_TABLE",
    "StrategyContext",
    "StrategyOutcome",
    "StrategyStatus",
    "fetch_bootstrap_script",
    "install_pip",
    "strategies_for",
]
