# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Command line front-end for the pip management engine."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from .config import PipConfig, load_config
from .errors import PipError
from .logging import configure_logging, info, ok, report_failure, section, warn
from .manager import PipManager, render_requirement
from .models import PackageSpec
from .venv import create_venv, remove_venv, venv_info

app = typer.Typer(help="Locate, install and drive pip.", no_args_is_help=True, add_completion=False)
requirements_app = typer.Typer(help="Install or generate requirements files.", no_args_is_help=True)
venv_app = typer.Typer(help="Manage isolated environments.", no_args_is_help=True)
app.add_typer(requirements_app, name="requirements")
app.add_typer(venv_app, name="venv")


@dataclass(slots=True)
class CLIState:
    """Options shared by every sub-command."""

    config: PipConfig
    use_emoji: bool

    def manager(self) -> PipManager:
        return PipManager(self.config)


def _state(ctx: typer.Context) -> CLIState:
    state = ctx.find_root().obj
    if not isinstance(state, CLIState):
        raise typer.BadParameter("CLI state was not initialised")
    return state


def _abort(error: PipError, state: CLIState) -> typer.Exit:
    report_failure(error, use_emoji=state.use_emoji)
    return typer.Exit(code=error.exit_code if error.exit_code > 0 else 1)


@app.callback()
def main(
    ctx: typer.Context,
    python: str | None = typer.Option(None, "--python", help="Explicit Python interpreter path."),
    pip: str | None = typer.Option(None, "--pip", help="Explicit pip executable path."),
    timeout: float | None = typer.Option(None, "--timeout", min=0, help="Seconds allowed per operation."),
    root: Path | None = typer.Option(None, "--root", help="Directory holding pyproject.toml or pipkit.toml."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log executed commands and their output."),
    emoji: bool = typer.Option(True, "--emoji/--no-emoji", help="Toggle emoji in CLI output."),
) -> None:
    """Load configuration and prepare shared CLI state."""

    try:
        config = load_config(root, overrides={"python_path": python, "pip_path": pip, "timeout": timeout})
    except PipError as exc:
        report_failure(exc, use_emoji=emoji)
        raise typer.Exit(code=1) from exc
    configure_logging("DEBUG" if verbose else config.log_level)
    ctx.obj = CLIState(config=config, use_emoji=emoji)


@app.command("check")
def check_command(ctx: typer.Context) -> None:
    """Report whether pip is available."""

    state = _state(ctx)
    manager = state.manager()
    if not manager.is_installed():
        warn("pip is not installed", use_emoji=state.use_emoji)
        raise typer.Exit(code=1)
    ok(f"pip is installed ({manager.resolve_tool()})", use_emoji=state.use_emoji)


@app.command("install-pip")
def install_pip_command(ctx: typer.Context) -> None:
    """Install pip using the strategies for this platform."""

    state = _state(ctx)
    info("Installing pip", use_emoji=state.use_emoji)
    try:
        report = state.manager().install()
    except PipError as exc:
        raise _abort(exc, state) from exc
    for outcome in report.outcomes:
        if not outcome.is_success():
            warn(f"{outcome.name}: {outcome.status.value} ({outcome.detail})", use_emoji=state.use_emoji)
    ok(f"pip is available via {report.winner}", use_emoji=state.use_emoji)


@app.command("version")
def version_command(ctx: typer.Context) -> None:
    """Print the installed pip version."""

    state = _state(ctx)
    try:
        version = state.manager().get_version()
    except PipError as exc:
        raise _abort(exc, state) from exc
    typer.echo(version)


@app.command("install")
def install_command(
    ctx: typer.Context,
    package: str = typer.Argument(..., help="Package name."),
    version: str = typer.Option("", "--version", help="Version or constraint, e.g. '>=1.0'."),
    extras: list[str] = typer.Option([], "--extra", help="Extra to install; repeatable."),
    upgrade: bool = typer.Option(False, "--upgrade", "-U", help="Upgrade when already installed."),
    index_url: str | None = typer.Option(None, "--index-url", "-i", help="Package index to use."),
    force_reinstall: bool = typer.Option(False, "--force-reinstall", help="Reinstall even when up to date."),
) -> None:
    """Install a package."""

    state = _state(ctx)
    spec = PackageSpec(
        name=package,
        version=version,
        extras=tuple(extras),
        upgrade=upgrade,
        index=index_url,
        force_reinstall=force_reinstall,
    )
    info(f"Installing {spec.requirement()}", use_emoji=state.use_emoji)
    try:
        state.manager().install_package(spec)
    except PipError as exc:
        raise _abort(exc, state) from exc
    ok(f"Installed {spec.requirement()}", use_emoji=state.use_emoji)


@app.command("uninstall")
def uninstall_command(ctx: typer.Context, package: str = typer.Argument(..., help="Package name.")) -> None:
    """Uninstall a package."""

    state = _state(ctx)
    try:
        state.manager().uninstall_package(package)
    except PipError as exc:
        raise _abort(exc, state) from exc
    ok(f"Uninstalled {package}", use_emoji=state.use_emoji)


@app.command("list")
def list_command(ctx: typer.Context) -> None:
    """List installed packages."""

    state = _state(ctx)
    try:
        records = state.manager().list_packages()
    except PipError as exc:
        raise _abort(exc, state) from exc
    for record in records:
        suffix = " (editable)" if record.editable else ""
        typer.echo(f"{record.name} {record.version}{suffix}".rstrip())


@app.command("show")
def show_command(ctx: typer.Context, package: str = typer.Argument(..., help="Package name.")) -> None:
    """Show details about an installed package."""

    state = _state(ctx)
    try:
        detail = state.manager().show_package(package)
    except PipError as exc:
        raise _abort(exc, state) from exc
    section(f"{detail.name} {detail.version}", use_color=False)
    for label, value in (
        ("Summary", detail.summary),
        ("Home-page", detail.home_page),
        ("Author", detail.author),
        ("License", detail.license),
        ("Location", detail.location),
        ("Requires", ", ".join(detail.requires)),
        ("Required-by", ", ".join(detail.required_by)),
    ):
        if value:
            typer.echo(f"{label}: {value}")


@app.command("freeze")
def freeze_command(ctx: typer.Context) -> None:
    """Print installed packages in requirements format."""

    state = _state(ctx)
    try:
        records = state.manager().freeze_packages()
    except PipError as exc:
        raise _abort(exc, state) from exc
    for record in records:
        typer.echo(render_requirement(record))


@requirements_app.command("install")
def requirements_install_command(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("requirements.txt"), help="Requirements file."),
) -> None:
    """Install every requirement listed in a file."""

    state = _state(ctx)
    try:
        state.manager().install_requirements(path)
    except PipError as exc:
        raise _abort(exc, state) from exc
    ok(f"Installed requirements from {path}", use_emoji=state.use_emoji)


@requirements_app.command("generate")
def requirements_generate_command(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("requirements.txt"), help="File to write."),
) -> None:
    """Write the installed package set to a requirements file."""

    state = _state(ctx)
    try:
        target = state.manager().generate_requirements(path)
    except PipError as exc:
        raise _abort(exc, state) from exc
    ok(f"Wrote {target}", use_emoji=state.use_emoji)


@venv_app.command("create")
def venv_create_command(ctx: typer.Context, path: Path = typer.Argument(..., help="Environment directory.")) -> None:
    """Create an isolated environment."""

    state = _state(ctx)
    try:
        report = create_venv(state.config, path)
    except PipError as exc:
        raise _abort(exc, state) from exc
    ok(f"Created {path} using {report.winner}", use_emoji=state.use_emoji)


@venv_app.command("remove")
def venv_remove_command(ctx: typer.Context, path: Path = typer.Argument(..., help="Environment directory.")) -> None:
    """Remove an isolated environment."""

    state = _state(ctx)
    try:
        remove_venv(path)
    except PipError as exc:
        raise _abort(exc, state) from exc
    ok(f"Removed {path}", use_emoji=state.use_emoji)


@venv_app.command("info")
def venv_info_command(ctx: typer.Context, path: Path = typer.Argument(..., help="Environment directory.")) -> None:
    """Describe an isolated environment."""

    state = _state(ctx)
    try:
        details = venv_info(state.config, path)
    except PipError as exc:
        raise _abort(exc, state) from exc
    typer.echo(f"Path: {details.path}")
    typer.echo(f"Python: {details.python_path}")
    if details.python_version:
        typer.echo(f"Version: {details.python_version}")
    typer.echo(f"Active: {'yes' if details.is_active else 'no'}")


def run() -> None:
    """Console-script entry point."""

    app()


__all__ = ["app", "run"]


if __name__ == "__main__":
    run()
