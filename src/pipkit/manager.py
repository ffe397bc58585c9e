# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Operation surface driving pip through the locator, runner and interpreter."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Final

from .classifier import report_error
from .config import PipConfig, activate_environment, deactivate_environment
from .errors import ErrorKind, PipError, invalid_specification, runtime_not_found, tool_not_installed
from .installer import Downloader, InstallReport, StrategyContext, install_pip
from .interpret import (
    PackageDetail,
    PackageRecord,
    parse_freeze_output,
    parse_list_output,
    parse_python_version,
    parse_show_many,
    parse_show_output,
    parse_version_output,
)
from .locator import ExecutableRef, resolve_runtime, resolve_tool
from .models import PackageSpec
from .platform import OSFamily, detect_os_family
from .process import CommandResult, CommandRunner, ExecutionContext, check_command, run_command

LOGGER = logging.getLogger(__name__)

PACKAGE_NOT_FOUND_MARKER: Final[str] = "package(s) not found"
REQUIREMENTS_HEADER: Final[str] = "# Generated requirements file"
TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
SEARCH_DISABLED_MESSAGE: Final[str] = (
    "pip search has been disabled. Please use https://pypi.org to search for packages"
)
_INDEX_FLAGS: Final[frozenset[str]] = frozenset({"-i", "--index-url"})


class ReadOperation(str, Enum):
    """pip subcommands whose output is interpreted."""

    LIST = "list"
    FREEZE = "freeze"
    SHOW = "show"


class WriteOperation(str, Enum):
    """pip subcommands whose success is the only result."""

    INSTALL = "install"
    UNINSTALL = "uninstall"
    INSTALL_REQUIREMENTS = "install-requirements"
    DOWNLOAD = "download"


_WRITE_PREFIX: Final[dict[WriteOperation, tuple[str, ...]]] = {
    WriteOperation.INSTALL: ("install",),
    WriteOperation.UNINSTALL: ("uninstall", "-y"),
    WriteOperation.INSTALL_REQUIREMENTS: ("install", "-r"),
    WriteOperation.DOWNLOAD: ("download", "-d"),
}
_INDEXED_WRITES: Final[frozenset[WriteOperation]] = frozenset(
    {WriteOperation.INSTALL, WriteOperation.INSTALL_REQUIREMENTS, WriteOperation.DOWNLOAD}
)

ReadResult = list[PackageRecord] | PackageDetail | list[PackageDetail]


class PipManager:
    """Resolve, install and drive pip for one configuration snapshot.

    Executables are resolved again on every call so that a manager built from
    an activated snapshot always targets that environment. The manager holds
    no other state; concurrent calls against the same environment are not
    serialised.
    """

    def __init__(
        self,
        config: PipConfig | None = None,
        *,
        runner: CommandRunner = run_command,
        family: OSFamily | None = None,
        downloader: Downloader | None = None,
    ) -> None:
        """Initialise the manager.

        Args:
            config: Configuration snapshot; defaults to :class:`PipConfig` defaults.
            runner: Command runner, replaceable in tests.
            family: OS family override; detected when omitted.
            downloader: Bootstrap-script downloader override.
        """

        self._config = config or PipConfig()
        self._runner = runner
        self._family = family
        self._downloader = downloader

    @property
    def config(self) -> PipConfig:
        return self._config

    @property
    def family(self) -> OSFamily:
        return self._family or detect_os_family()

    def with_config(self, config: PipConfig) -> PipManager:
        """Return a manager sharing collaborators but using ``config``."""

        return PipManager(config, runner=self._runner, family=self._family, downloader=self._downloader)

    def activated(self, venv_path: Path | str) -> PipManager:
        """Return a manager targeting the environment at ``venv_path``."""

        return self.with_config(activate_environment(self._config, venv_path))

    def deactivated(self) -> PipManager:
        return self.with_config(deactivate_environment(self._config))

    def new_context(self) -> ExecutionContext:
        """Return an execution context bounded by ``config.timeout``."""

        return ExecutionContext(self._config.timeout)

    def resolve_tool(self) -> ExecutableRef | None:
        return resolve_tool(self._config, self.family)

    def resolve_runtime(self) -> ExecutableRef | None:
        return resolve_runtime(self._config, self.family)

    def _require_tool(self) -> ExecutableRef:
        ref = self.resolve_tool()
        if ref is None:
            raise tool_not_installed()
        return ref

    def _require_runtime(self) -> ExecutableRef:
        ref = self.resolve_runtime()
        if ref is None:
            raise runtime_not_found()
        return ref

    def _config_options(self) -> list[str]:
        config = self._config
        options: list[str] = []
        if config.cache_dir:
            options.extend(("--cache-dir", config.cache_dir))
        for host in config.trusted_hosts:
            options.extend(("--trusted-host", host))
        options.extend(("--retries", str(config.retries)))
        for key, value in config.extra_options.items():
            options.extend((f"--{key}", value) if value else (f"--{key}",))
        return options

    def _index_options(self, args: Sequence[str]) -> list[str]:
        if self._config.default_index and not _INDEX_FLAGS.intersection(args):
            return ["--index-url", self._config.default_index]
        return []

    def _execute(
        self,
        ref: ExecutableRef,
        args: Sequence[str],
        *,
        where: str,
        context: ExecutionContext | None = None,
        refine: Callable[[PipError], PipError] | None = None,
    ) -> CommandResult:
        try:
            result = self._runner(
                ref,
                args,
                env=self._config.environment,
                context=context or self.new_context(),
            )
            return check_command(result)
        except PipError as exc:
            error = refine(exc) if refine is not None else exc
            raise report_error(error, where) from error.cause

    def is_installed(self, *, context: ExecutionContext | None = None) -> bool:
        """Return ``True`` when pip resolves and ``pip --version`` succeeds.

        Raises:
            PipError: ``timeout`` when ``context`` is cancelled or expires.
        """

        ref = self.resolve_tool()
        if ref is None:
            LOGGER.debug("pip executable not found")
            return False
        try:
            result = self._runner(
                ref,
                ["--version"],
                env=self._config.environment,
                context=context or self.new_context(),
            )
        except PipError as exc:
            if exc.kind is ErrorKind.TIMEOUT:
                raise report_error(exc, "is-installed") from exc.cause
            LOGGER.debug("pip --version failed: %s", exc.message)
            return False
        if not result.succeeded:
            LOGGER.debug("pip --version exited with %s", result.exit_code)
        return result.succeeded

    def install(self, *, context: ExecutionContext | None = None) -> InstallReport:
        """Install pip with the strategies for the current platform.

        Returns:
            InstallReport: Report of the strategies evaluated.

        Raises:
            PipError: ``tool_not_installed`` when every strategy failed,
                ``unsupported_platform`` on unknown systems, ``timeout`` on
                cancellation.
        """

        strategy_context = StrategyContext(
            config=self._config,
            runtime=self.resolve_runtime(),
            execution=context or self.new_context(),
            runner=self._runner,
            downloader=self._downloader,
            family=self.family,
        )
        try:
            return install_pip(strategy_context, resolver=partial(resolve_runtime, family=strategy_context.family))
        except PipError as exc:
            raise report_error(exc, "install") from exc.cause

    def get_version(self, *, context: ExecutionContext | None = None) -> str:
        """Return the installed pip version, e.g. ``"24.0"``."""

        result = self._execute(self._require_tool(), ["--version"], where="get-version", context=context)
        return parse_version_output(result.output)

    def python_version(self, *, context: ExecutionContext | None = None) -> str:
        """Return the version of the resolved interpreter."""

        result = self._execute(self._require_runtime(), ["--version"], where="python-version", context=context)
        return parse_python_version(result.output)

    def run_read(
        self,
        kind: ReadOperation,
        args: Sequence[str] = (),
        *,
        context: ExecutionContext | None = None,
    ) -> ReadResult:
        """Run a read operation and interpret its output.

        Args:
            kind: Operation to run.
            args: Extra arguments; for ``SHOW`` these are the package names.
            context: Cancellation context; one bounded by ``config.timeout`` by default.

        Returns:
            ReadResult: Records for ``LIST``/``FREEZE``; a detail for ``SHOW``
            with one name, a list of details for several names.

        Raises:
            PipError: ``invalid_specification`` for ``SHOW`` without names,
                ``package_not_found`` when pip reports an unknown package,
                otherwise the classified command failure.
        """

        ref = self._require_tool()
        options = self._config_options()
        if kind is ReadOperation.LIST:
            result = self._execute(ref, ["list", "--format=json", *args, *options], where="list", context=context)
            return parse_list_output(result.output)
        if kind is ReadOperation.FREEZE:
            result = self._execute(ref, ["freeze", *args, *options], where="freeze", context=context)
            return parse_freeze_output(result.output)

        names = [name.strip() for name in args if name.strip()]
        if not names:
            raise invalid_specification("package name cannot be empty")
        result = self._execute(
            ref,
            ["show", *names, *options],
            where="show",
            context=context,
            refine=lambda error: _package_not_found(error, names),
        )
        if len(names) == 1:
            return parse_show_output(result.output)
        return parse_show_many(result.output)

    def run_write(
        self,
        kind: WriteOperation,
        args: Sequence[str],
        *,
        context: ExecutionContext | None = None,
    ) -> CommandResult:
        """Run a write operation and return its result when it succeeded.

        Raises:
            PipError: ``invalid_specification`` for empty arguments, otherwise
                the classified command failure.
        """

        if not args or not str(args[0]).strip():
            raise invalid_specification(f"{kind.value} requires at least one argument")
        argv = [*_WRITE_PREFIX[kind], *args]
        if kind in _INDEXED_WRITES:
            argv.extend(self._index_options(args))
        argv.extend(self._config_options())
        return self._execute(self._require_tool(), argv, where=kind.value, context=context)

    def install_package(self, spec: PackageSpec, *, context: ExecutionContext | None = None) -> CommandResult:
        if not spec.name:
            raise invalid_specification("package name cannot be empty")
        LOGGER.info("Installing package: %s", spec.name)
        return self.run_write(WriteOperation.INSTALL, spec.install_args(), context=context)

    def uninstall_package(self, name: str, *, context: ExecutionContext | None = None) -> CommandResult:
        if not name.strip():
            raise invalid_specification("package name cannot be empty")
        LOGGER.info("Uninstalling package: %s", name)
        return self.run_write(WriteOperation.UNINSTALL, [name.strip()], context=context)

    def list_packages(self, *, context: ExecutionContext | None = None) -> list[PackageRecord]:
        return _records(self.run_read(ReadOperation.LIST, context=context))

    def freeze_packages(self, *, context: ExecutionContext | None = None) -> list[PackageRecord]:
        return _records(self.run_read(ReadOperation.FREEZE, context=context))

    def show_package(self, name: str, *, context: ExecutionContext | None = None) -> PackageDetail:
        if not name.strip():
            raise invalid_specification("package name cannot be empty")
        detail = self.run_read(ReadOperation.SHOW, [name], context=context)
        if not isinstance(detail, PackageDetail):
            raise TypeError("show with a single name must yield one detail")
        return detail

    def search_packages(self, query: str) -> list[PackageRecord]:
        """Always fails: the index no longer serves ``pip search``."""

        if not query.strip():
            raise invalid_specification("search query cannot be empty")
        LOGGER.debug("Searching packages: %s", query)
        raise PipError.create(ErrorKind.FEATURE_DISABLED, SEARCH_DISABLED_MESSAGE)

    def download_packages(
        self,
        destination: Path | str,
        names: Sequence[str],
        *,
        context: ExecutionContext | None = None,
    ) -> CommandResult:
        if not names:
            raise invalid_specification("download requires at least one package")
        return self.run_write(WriteOperation.DOWNLOAD, [str(destination), *names], context=context)

    def install_requirements(self, path: Path | str, *, context: ExecutionContext | None = None) -> CommandResult:
        """Install every requirement listed in ``path``.

        Raises:
            PipError: ``invalid_path`` for an empty path, ``file_not_found``
                when the file does not exist.
        """

        if not str(path).strip():
            raise PipError.create(ErrorKind.INVALID_PATH, "requirements file path cannot be empty")
        requirements = Path(path)
        if not requirements.is_file():
            raise PipError.create(
                ErrorKind.FILE_NOT_FOUND,
                f"requirements file not found: {requirements}",
                context={"path": str(requirements)},
            )
        LOGGER.info("Installing requirements from: %s", requirements)
        return self.run_write(WriteOperation.INSTALL_REQUIREMENTS, [str(requirements)], context=context)

    def generate_requirements(
        self,
        path: Path | str,
        *,
        context: ExecutionContext | None = None,
        now: datetime | None = None,
    ) -> Path:
        """Write the frozen package set to ``path`` and return it.

        Raises:
            PipError: ``invalid_path`` for an empty or unwritable path,
                ``permission_denied`` when the file cannot be written.
        """

        if not str(path).strip():
            raise PipError.create(ErrorKind.INVALID_PATH, "requirements file path cannot be empty")
        target = Path(path)
        LOGGER.info("Generating requirements file: %s", target)
        records = self.freeze_packages(context=context)
        timestamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
        lines = [REQUIREMENTS_HEADER, f"# Generated on: {timestamp}", ""]
        lines.extend(render_requirement(record) for record in records)
        try:
            target.write_text("\n".join(lines) + "\n", encoding="utf-8")
        except PermissionError as exc:
            raise PipError.create(ErrorKind.PERMISSION_DENIED, f"cannot write {target}: {exc}", cause=exc) from exc
        except OSError as exc:
            raise PipError.create(ErrorKind.INVALID_PATH, f"cannot write {target}: {exc}", cause=exc) from exc
        return target


def render_requirement(record: PackageRecord) -> str:
    """Return the requirements-file line for ``record``."""

    if not record.version:
        return record.name
    if record.version[0] in "=<>!~":
        return f"{record.name}{record.version}"
    return f"{record.name}=={record.version}"


def _records(result: ReadResult) -> list[PackageRecord]:
    if not isinstance(result, list):
        return []
    return [record for record in result if isinstance(record, PackageRecord)]


def _package_not_found(error: PipError, names: Sequence[str]) -> PipError:
    text = f"{error.output or ''}\n{error.context.get('output', '')}".lower()
    if error.kind is not ErrorKind.COMMAND_FAILED or PACKAGE_NOT_FOUND_MARKER not in text:
        return error
    return PipError.create(
        ErrorKind.PACKAGE_NOT_FOUND,
        f"package not found: {', '.join(names)}",
        command=error.command,
        output=error.output,
        exit_code=error.exit_code,
        context=error.context,
        cause=error,
    )


__all__ = [
    "PipManager",
    "ReadOperation",
    "ReadResult",
    "WriteOperation",
    "render_requirement",
]
