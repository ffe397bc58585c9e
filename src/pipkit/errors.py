# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Classified error values surfaced at the engine boundary."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any, Final

DISPLAY_OUTPUT_LIMIT: Final[int] = 200


class ErrorKind(str, Enum):
    """Closed taxonomy of failures reported by the engine."""

    TOOL_NOT_INSTALLED = "tool_not_installed"
    RUNTIME_NOT_FOUND = "runtime_not_found"
    PACKAGE_NOT_FOUND = "package_not_found"
    ENVIRONMENT_NOT_FOUND = "environment_not_found"
    ENVIRONMENT_ALREADY_EXISTS = "environment_already_exists"
    INVALID_SPECIFICATION = "invalid_specification"
    COMMAND_FAILED = "command_failed"
    PERMISSION_DENIED = "permission_denied"
    NETWORK_ERROR = "network_error"
    UNSUPPORTED_PLATFORM = "unsupported_platform"
    FILE_NOT_FOUND = "file_not_found"
    INVALID_PATH = "invalid_path"
    FEATURE_DISABLED = "feature_disabled"
    TIMEOUT = "timeout"
    INVALID_CONFIGURATION = "invalid_configuration"


DEFAULT_SUGGESTIONS: Final[Mapping[ErrorKind, tuple[str, ...]]] = MappingProxyType(
    {
        ErrorKind.TOOL_NOT_INSTALLED: (
            "Install pip using your system package manager or download get-pip.py",
        ),
        ErrorKind.RUNTIME_NOT_FOUND: (
            "Install Python from https://python.org or use your system package manager",
        ),
        ErrorKind.PACKAGE_NOT_FOUND: ("Check the package name spelling and availability on PyPI",),
        ErrorKind.ENVIRONMENT_NOT_FOUND: ("Create the virtual environment before activating it",),
        ErrorKind.ENVIRONMENT_ALREADY_EXISTS: (
            "Use a different path or remove the existing environment",
        ),
        ErrorKind.INVALID_SPECIFICATION: ("Provide a valid package name",),
        ErrorKind.PERMISSION_DENIED: ("Run with elevated privileges or use a virtual environment",),
        ErrorKind.NETWORK_ERROR: ("Check your internet connection and try again",),
        ErrorKind.UNSUPPORTED_PLATFORM: (
            "This operation is not supported on your operating system",
        ),
        ErrorKind.FEATURE_DISABLED: ("This feature has been disabled or is not available",),
    }
)


class PipError(Exception):
    """Failure tagged with an :class:`ErrorKind` and a structured payload.

    Instances are treated as values: the ``with_*`` helpers return enriched
    copies and leave the receiver untouched, so an error handed to a caller
    never changes underneath it.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        command: str | None = None,
        output: str | None = None,
        exit_code: int = 0,
        suggestions: Iterable[str] = (),
        context: Mapping[str, str] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        """Initialise the error payload.

        Args:
            kind: Taxonomy entry describing the failure.
            message: Human readable summary.
            command: Rendered command line that failed, when applicable.
            output: Captured output, already truncated for display.
            exit_code: Process exit status (``-1`` when the process never started).
            suggestions: Ordered remediation hints.
            context: Free-form diagnostic key/value pairs.
            cause: Lower level exception that triggered the failure.
        """

        super().__init__(message)
        self.kind = kind
        self.message = message
        self.command = command
        self.output = output
        self.exit_code = exit_code
        self.suggestions: tuple[str, ...] = tuple(suggestions)
        self.context: Mapping[str, str] = MappingProxyType(dict(context or {}))
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    @classmethod
    def create(
        cls,
        kind: ErrorKind,
        message: str,
        *,
        suggestions: Iterable[str] = (),
        **details: Any,
    ) -> PipError:
        """Return an error for ``kind`` seeded with the kind's default suggestions."""

        return cls(kind, message, suggestions=(*DEFAULT_SUGGESTIONS.get(kind, ()), *suggestions), **details)

    def _replace(self, **changes: Any) -> PipError:
        fields: dict[str, Any] = {
            "command": self.command,
            "output": self.output,
            "exit_code": self.exit_code,
            "suggestions": self.suggestions,
            "context": self.context,
            "cause": self.cause,
        }
        fields.update(changes)
        return PipError(self.kind, self.message, **fields)

    def with_suggestions(self, *suggestions: str) -> PipError:
        """Return a copy with ``suggestions`` appended in order."""

        return self._replace(suggestions=(*self.suggestions, *suggestions))

    def with_context(self, values: Mapping[str, str] | None = None, /, **items: str) -> PipError:
        """Return a copy whose context also carries ``values`` and ``items``."""

        merged = dict(self.context)
        merged.update(values or {})
        merged.update(items)
        return self._replace(context=merged)

    def with_cause(self, cause: BaseException) -> PipError:
        """Return a copy wrapping ``cause``."""

        return self._replace(cause=cause)

    def render(self) -> str:
        """Return the single-line display form of the error."""

        parts = [f"[{self.kind.value}] {self.message}"]
        if self.command:
            parts.append(f"Command: {self.command}")
        if self.exit_code != 0:
            parts.append(f"Exit Code: {self.exit_code}")
        if self.output and len(self.output) < DISPLAY_OUTPUT_LIMIT:
            parts.append(f"Output: {self.output}")
        if self.suggestions:
            parts.append(f"Suggestions: {', '.join(self.suggestions)}")
        return " | ".join(parts)

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        return f"PipError(kind={self.kind.value!r}, message={self.message!r})"


class CommandCancelled(Exception):
    """Raised inside the runner when a command is stopped before it exits."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def is_kind(error: BaseException | None, kind: ErrorKind) -> bool:
    """Return ``True`` when ``error`` is a :class:`PipError` of ``kind``."""

    return isinstance(error, PipError) and error.kind is kind


def tool_not_installed(message: str = "pip is not installed") -> PipError:
    return PipError.create(ErrorKind.TOOL_NOT_INSTALLED, message)


def runtime_not_found(message: str = "Python interpreter not found") -> PipError:
    return PipError.create(ErrorKind.RUNTIME_NOT_FOUND, message)


def invalid_specification(message: str = "invalid package specification") -> PipError:
    return PipError.create(ErrorKind.INVALID_SPECIFICATION, message)


__all__ = [
    "DEFAULT_SUGGESTIONS",
    "CommandCancelled",
    "DISPLAY_OUTPUT_LIMIT",
    "ErrorKind",
    "PipError",
    "invalid_specification",
    "is_kind",
    "runtime_not_found",
    "tool_not_installed",
]
