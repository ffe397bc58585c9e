# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Create, inspect and remove isolated environments."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path

from .config import PipConfig, active_environment
from .errors import ErrorKind, PipError, runtime_not_found
from .installer import InstallOrchestrator, InstallReport, InstallStrategy, StrategyAction, StrategyContext
from .interpret import parse_python_version
from .locator import ExecutableRef, module_invocation, resolve_runtime
from .models import VenvInfo
from .platform import OSFamily, detect_os_family, python_executable_name
from .platform import venv_bin_dir as _platform_bin_dir
from .process import CommandRunner, ExecutionContext, run_command

LOGGER = logging.getLogger(__name__)

VENV_MODULE = "venv-module"
VIRTUALENV_MODULE = "virtualenv-module"
VIRTUALENV_COMMAND = "virtualenv-command"


def venv_bin_dir(path: Path | str, family: OSFamily | None = None) -> Path:
    """Return the ``bin`` (or ``Scripts``) directory of the environment at ``path``."""

    return _platform_bin_dir(Path(path), family)


def venv_python(path: Path | str, family: OSFamily | None = None) -> Path:
    return venv_bin_dir(path, family) / python_executable_name(family)


def is_valid_venv(path: Path | str, family: OSFamily | None = None) -> bool:
    """Return ``True`` when ``path`` is a directory holding an interpreter."""

    root = Path(path)
    return root.is_dir() and venv_python(root, family).exists()


def _require_path(path: Path | str) -> Path:
    if not str(path).strip():
        raise PipError.create(ErrorKind.INVALID_PATH, "virtual environment path cannot be empty")
    return Path(path)


def _command_reason(ctx: StrategyContext, ref: ExecutableRef, args: list[str]) -> str | None:
    result = ctx.run(ref, args)
    if result.succeeded:
        return None
    if not result.launched:
        return f"{result.rendered} could not be started: {result.launch_error}"
    return f"{result.rendered} exited with {result.exit_code}"


def venv_strategies(target: Path) -> tuple[InstallStrategy, ...]:
    """Return the ordered environment creation strategies for ``target``."""

    def needs_runtime(ctx: StrategyContext) -> str | None:
        return None if ctx.runtime is not None else "Python interpreter not found"

    def with_module(module: str) -> StrategyAction:
        def action(ctx: StrategyContext) -> str | None:
            if ctx.runtime is None:
                return "Python interpreter not found"
            return _command_reason(ctx, module_invocation(ctx.runtime, module), [str(target)])

        return action

    def needs_virtualenv(ctx: StrategyContext) -> str | None:
        return None if ctx.which("virtualenv") else "virtualenv not found"

    def virtualenv_command(ctx: StrategyContext) -> str | None:
        executable = ctx.which("virtualenv") or "virtualenv"
        return _command_reason(ctx, ExecutableRef((executable,)), [str(target)])

    return (
        InstallStrategy(VENV_MODULE, needs_runtime, with_module("venv"), verify=False),
        InstallStrategy(VIRTUALENV_MODULE, needs_runtime, with_module("virtualenv"), verify=False),
        InstallStrategy(VIRTUALENV_COMMAND, needs_virtualenv, virtualenv_command, verify=False),
    )


def create_venv(
    config: PipConfig,
    path: Path | str,
    *,
    runner: CommandRunner = run_command,
    context: ExecutionContext | None = None,
    family: OSFamily | None = None,
) -> InstallReport:
    """Create an isolated environment at ``path``.

    Creation falls back from the ``venv`` module to the ``virtualenv`` module
    and finally to the ``virtualenv`` command.

    Args:
        config: Configuration snapshot used to resolve the interpreter.
        path: Directory to create; it must not exist yet.
        runner: Command runner used for every attempt.
        context: Cancellation context; bounded by ``config.timeout`` by default.
        family: OS family override.

    Returns:
        InstallReport: Report naming the method that created the environment.

    Raises:
        PipError: ``invalid_path`` for an empty path,
            ``environment_already_exists`` when the directory exists,
            ``runtime_not_found`` without an interpreter or virtualenv command,
            ``command_failed`` when every method failed.
    """

    target = _require_path(path)
    if target.exists():
        raise PipError.create(
            ErrorKind.ENVIRONMENT_ALREADY_EXISTS,
            f"directory already exists: {target}",
            context={"path": str(target)},
        )
    LOGGER.info("Creating virtual environment: %s", target)
    runtime = resolve_runtime(config, family)
    strategy_context = StrategyContext(
        config=config,
        runtime=runtime,
        execution=context or ExecutionContext(config.timeout),
        runner=runner,
        family=family or detect_os_family(),
    )
    if runtime is None and strategy_context.which("virtualenv") is None:
        raise runtime_not_found()
    report = InstallOrchestrator(strategy_context).run(venv_strategies(target))
    if not report.succeeded:
        raise report.to_error(
            ErrorKind.COMMAND_FAILED,
            "failed to create virtual environment using any available method",
            ("Install virtualenv: python -m pip install virtualenv",),
        )
    LOGGER.info("Created virtual environment using %s", report.winner)
    return report


def remove_venv(path: Path | str) -> None:
    """Delete the environment at ``path``.

    Raises:
        PipError: ``invalid_path`` for an empty path, ``environment_not_found``
            when nothing exists there, ``permission_denied`` when removal fails.
    """

    target = _require_path(path)
    if not target.exists():
        raise PipError.create(
            ErrorKind.ENVIRONMENT_NOT_FOUND,
            f"virtual environment not found: {target}",
            context={"path": str(target)},
        )
    LOGGER.info("Removing virtual environment: %s", target)
    try:
        shutil.rmtree(target)
    except OSError as exc:
        raise PipError.create(
            ErrorKind.PERMISSION_DENIED,
            f"failed to remove virtual environment: {exc}",
            cause=exc,
        ) from exc


def venv_info(
    config: PipConfig,
    path: Path | str,
    *,
    runner: CommandRunner = run_command,
    context: ExecutionContext | None = None,
    family: OSFamily | None = None,
) -> VenvInfo:
    """Describe the environment at ``path``.

    The interpreter version is best effort and left empty when the
    interpreter cannot report it.
    """

    target = _require_path(path)
    if not is_valid_venv(target, family):
        raise PipError.create(
            ErrorKind.ENVIRONMENT_NOT_FOUND,
            f"virtual environment not found or invalid: {target}",
            context={"path": str(target)},
        )
    python = venv_python(target, family)
    active = active_environment(config)
    version = ""
    try:
        result = runner(
            ExecutableRef((str(python),)),
            ["--version"],
            env=config.environment,
            context=context or ExecutionContext(config.timeout),
        )
    except PipError as exc:
        LOGGER.debug("Could not query %s: %s", python, exc.message)
    else:
        if result.succeeded:
            version = parse_python_version(result.output)
    return VenvInfo(
        path=target,
        python_path=python,
        is_active=active is not None and active.resolve() == target.resolve(),
        created_at=datetime.fromtimestamp(target.stat().st_mtime),
        python_version=version,
    )


__all__ = [
    "create_venv",
    "is_valid_venv",
    "remove_venv",
    "venv_bin_dir",
    "venv_info",
    "venv_python",
    "venv_strategies",
]
