# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Configuration model, configuration sources, and environment activation."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Final, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ErrorKind, PipError
from .platform import pip_executable_name, python_executable_name, venv_bin_dir

GET_PIP_URL: Final[str] = "https://bootstrap.pypa.io/get-pip.py"
DEFAULT_TIMEOUT: Final[float] = 30.0
DEFAULT_RETRIES: Final[int] = 3
LOG_LEVELS: Final[frozenset[str]] = frozenset({"DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL"})

PYPROJECT_FILENAME: Final[str] = "pyproject.toml"
STANDALONE_FILENAME: Final[str] = "pipkit.toml"
PYPROJECT_TOOL_KEY: Final[str] = "tool"
PYPROJECT_SECTION_KEY: Final[str] = "pipkit"
ENV_PREFIX: Final[str] = "PIPKIT_"
VIRTUAL_ENV_KEY: Final[str] = "VIRTUAL_ENV"
PATH_KEY: Final[str] = "PATH"

_MAPPING_FIELDS: Final[frozenset[str]] = frozenset({"extra_options", "environment"})


class PipConfig(BaseModel):
    """Caller-owned settings threaded through every engine call.

    The model is frozen; activation and deactivation produce new snapshots
    rather than editing one shared instance.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    python_path: str | None = None
    pip_path: str | None = None
    default_index: str | None = None
    trusted_hosts: tuple[str, ...] = ()
    timeout: float | None = Field(default=DEFAULT_TIMEOUT, ge=0)
    network_timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    retries: int = Field(default=DEFAULT_RETRIES, ge=0)
    log_level: str = "INFO"
    cache_dir: str | None = None
    extra_options: dict[str, str] = Field(default_factory=dict)
    environment: dict[str, str] = Field(default_factory=dict)
    bootstrap_url: str = GET_PIP_URL

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> str:
        level = str(value).strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level '{value}'")
        return level

    @field_validator("trusted_hosts", mode="before")
    @classmethod
    def _coerce_hosts(cls, value: object) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            return tuple(host.strip() for host in value.split(",") if host.strip())
        if isinstance(value, Iterable):
            return tuple(str(host) for host in value)
        raise TypeError("trusted_hosts must be a string or a sequence of strings")

    @field_validator("extra_options", "environment", mode="before")
    @classmethod
    def _coerce_str_mapping(cls, value: object) -> dict[str, str]:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise TypeError("expected a mapping of strings")
        return {str(key): "" if entry is None else str(entry) for key, entry in value.items()}

    def updated(self, **changes: Any) -> PipConfig:
        """Return a validated copy of the configuration with ``changes`` applied."""

        return build_config({**self.model_dump(), **changes})


def build_config(data: Mapping[str, Any]) -> PipConfig:
    """Validate ``data`` into a :class:`PipConfig`.

    Raises:
        PipError: ``invalid_configuration`` when validation fails.
    """

    try:
        return PipConfig.model_validate(dict(data))
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}" for error in exc.errors()
        )
        raise PipError.create(
            ErrorKind.INVALID_CONFIGURATION,
            f"invalid configuration: {problems}",
            suggestions=("Review the [tool.pipkit] settings and PIPKIT_* environment variables",),
            cause=exc,
        ) from exc


class ConfigSource(Protocol):
    """Producer of a configuration fragment."""

    name: str

    def load(self) -> Mapping[str, Any]:
        """Return the fragment contributed by this source."""
        ...


class TomlConfigSource:
    """Load a configuration fragment from a standalone TOML document."""

    def __init__(self, path: Path, *, name: str | None = None) -> None:
        self._path = path
        self.name = name or str(path)

    def load(self) -> Mapping[str, Any]:
        if not self._path.is_file():
            return {}
        try:
            with self._path.open("rb") as handle:
                return tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise PipError.create(
                ErrorKind.INVALID_CONFIGURATION,
                f"could not parse {self._path}: {exc}",
                cause=exc,
            ) from exc


class PyProjectConfigSource(TomlConfigSource):
    """Read the ``[tool.pipkit]`` table from ``pyproject.toml``."""

    def load(self) -> Mapping[str, Any]:
        data = super().load()
        tool_section = data.get(PYPROJECT_TOOL_KEY)
        if not isinstance(tool_section, Mapping):
            return {}
        section = tool_section.get(PYPROJECT_SECTION_KEY)
        if not isinstance(section, Mapping):
            return {}
        return {key.replace("-", "_"): value for key, value in section.items()}


class EnvironmentConfigSource:
    """Read ``PIPKIT_*`` variables such as ``PIPKIT_PIP_PATH``."""

    name = "environment"

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = os.environ if env is None else env

    def load(self) -> Mapping[str, Any]:
        fragment: dict[str, Any] = {}
        for key, value in self._env.items():
            if not key.startswith(ENV_PREFIX):
                continue
            field = key[len(ENV_PREFIX) :].lower()
            if field in PipConfig.model_fields and field not in _MAPPING_FIELDS:
                fragment[field] = value
        return fragment


def default_sources(root: Path, env: Mapping[str, str] | None = None) -> list[ConfigSource]:
    """Return the configuration sources for ``root`` in increasing precedence."""

    return [
        PyProjectConfigSource(root / PYPROJECT_FILENAME),
        TomlConfigSource(root / STANDALONE_FILENAME),
        EnvironmentConfigSource(env),
    ]


def load_config(
    root: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    sources: Iterable[ConfigSource] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> PipConfig:
    """Merge configuration sources and explicit ``overrides`` into a config."""

    merged: dict[str, Any] = {}
    for source in sources if sources is not None else default_sources(root or Path.cwd(), env):
        merged = _merge(merged, source.load())
    if overrides:
        merged = _merge(merged, {key: value for key, value in overrides.items() if value is not None})
    return build_config(merged)


def _merge(base: Mapping[str, Any], fragment: Mapping[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in fragment.items():
        if key in _MAPPING_FIELDS and isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = {**result[key], **value}
        else:
            result[key] = value
    return result


def activate_environment(config: PipConfig, venv_path: Path | str, *, base_path: str | None = None) -> PipConfig:
    """Return a snapshot of ``config`` that targets the environment at ``venv_path``.

    Args:
        config: Snapshot to derive from; it is not modified.
        venv_path: Root directory of an existing isolated environment.
        base_path: Search path to extend; defaults to the process ``PATH``.

    Returns:
        PipConfig: New snapshot with interpreter/tool paths and overlay entries set.

    Raises:
        PipError: ``invalid_path`` for an empty path, ``environment_not_found``
            when the directory holds no interpreter.
    """

    if not str(venv_path).strip():
        raise PipError.create(ErrorKind.INVALID_PATH, "virtual environment path cannot be empty")
    root = Path(venv_path)
    bin_dir = venv_bin_dir(root)
    python = bin_dir / python_executable_name()
    if not python.exists():
        raise PipError.create(
            ErrorKind.ENVIRONMENT_NOT_FOUND,
            f"virtual environment not found or invalid: {root}",
            context={"path": str(root)},
        )
    search_path = os.environ.get(PATH_KEY, "") if base_path is None else base_path
    environment = dict(config.environment)
    environment[VIRTUAL_ENV_KEY] = str(root)
    environment[PATH_KEY] = str(bin_dir) + (os.pathsep + search_path if search_path else "")
    return config.updated(
        python_path=str(python),
        pip_path=str(bin_dir / pip_executable_name()),
        environment=environment,
    )


def deactivate_environment(config: PipConfig) -> PipConfig:
    """Return a snapshot of ``config`` with environment activation removed."""

    environment = {
        key: value for key, value in config.environment.items() if key not in {VIRTUAL_ENV_KEY, PATH_KEY}
    }
    return config.updated(python_path=None, pip_path=None, environment=environment)


def active_environment(config: PipConfig) -> Path | None:
    """Return the environment root recorded in ``config``, if any."""

    value = config.environment.get(VIRTUAL_ENV_KEY)
    return Path(value) if value else None


__all__ = [
    "ConfigSource",
    "EnvironmentConfigSource",
    "GET_PIP_URL",
    "PipConfig",
    "PyProjectConfigSource",
    "TomlConfigSource",
    "activate_environment",
    "active_environment",
    "build_config",
    "deactivate_environment",
    "default_sources",
    "load_config",
]
