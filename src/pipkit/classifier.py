# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Turn failing command output into classified, suggestion-annotated errors."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final

from .errors import CommandCancelled, ErrorKind, PipError

LOGGER = logging.getLogger(__name__)

LAUNCH_FAILED: Final[int] = -1
MAX_OUTPUT_CHARS: Final[int] = 2000
OUTPUT_CONTEXT_KEY: Final[str] = "output"


@dataclass(frozen=True, slots=True)
class Signature:
    """Substring patterns paired with the remediation they trigger.

    Patterns are matched case-insensitively; any match adds every suggestion.
    """

    name: str
    patterns: tuple[str, ...]
    suggestions: tuple[str, ...]

    def matches(self, lowered: str) -> bool:
        return any(pattern in lowered for pattern in self.patterns)


SIGNATURES: Final[tuple[Signature, ...]] = (
    Signature(
        name="permission",
        patterns=("permission denied",),
        suggestions=(
            "Try running with elevated privileges (sudo on Unix, Run as Administrator on Windows)",
            "Consider using a virtual environment to avoid permission issues",
        ),
    ),
    Signature(
        name="missing-pip-module",
        patterns=("no module named pip",),
        suggestions=(
            "Install pip using: python -m ensurepip --upgrade",
            "Or download get-pip.py and run: python get-pip.py",
        ),
    ),
    Signature(
        name="no-matching-version",
        patterns=("could not find a version",),
        suggestions=(
            "Check if the package name is spelled correctly",
            "Try searching for the package on PyPI: https://pypi.org",
            "Check if you need to specify a different Python version",
        ),
    ),
    Signature(
        name="network",
        patterns=("network", "connection"),
        suggestions=(
            "Check your internet connection",
            "Try using a different package index: --index-url",
            "Consider using a proxy if you're behind a corporate firewall",
        ),
    ),
    Signature(
        name="timeout",
        patterns=("timeout", "timed out"),
        suggestions=(
            "Increase timeout value: --timeout",
            "Try again later as the server might be temporarily unavailable",
        ),
    ),
    Signature(
        name="disk-space",
        patterns=("disk space", "no space"),
        suggestions=(
            "Free up disk space",
            "Clean pip cache: pip cache purge",
        ),
    ),
    Signature(
        name="already-satisfied",
        patterns=("requirement already satisfied",),
        suggestions=(
            "Use --upgrade flag to upgrade to the latest version",
            "Use --force-reinstall to reinstall the package",
        ),
    ),
)


def as_text(output: str | bytes | None) -> str:
    """Return ``output`` as text, replacing undecodable bytes."""

    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


def match_suggestions(text: str, signatures: Sequence[Signature] = SIGNATURES) -> list[str]:
    """Return suggestions for every signature found in ``text`` in table order."""

    lowered = text.lower()
    suggestions: list[str] = []
    for signature in signatures:
        if signature.matches(lowered):
            suggestions.extend(signature.suggestions)
    return suggestions


def _truncate(text: str) -> str:
    if len(text) <= MAX_OUTPUT_CHARS:
        return text
    return text[:MAX_OUTPUT_CHARS] + f"... [truncated {len(text) - MAX_OUTPUT_CHARS} chars]"


def classify(
    command: str | None,
    output: str | bytes | None,
    exit_code: int,
    cause: BaseException | None = None,
    *,
    signatures: Sequence[Signature] = SIGNATURES,
) -> PipError:
    """Build a :class:`PipError` describing a failed invocation.

    The structural class comes first: a cancelled command is a ``timeout``, a
    command that never started is a launch failure (``permission_denied`` when
    the OS refused to execute it), anything else is ``command_failed``. The
    launch diagnostic is scanned for launch failures; the captured output is
    scanned otherwise.

    Args:
        command: Rendered command line.
        output: Combined output of the process, as text or raw bytes.
        exit_code: Exit status, or ``-1`` when the process never started.
        cause: Exception raised while launching or waiting on the process.
        signatures: Signature table to scan.

    Returns:
        PipError: Classified error; never raises for any input.
    """

    text = as_text(output)
    context: dict[str, str] = {}
    if text:
        context[OUTPUT_CONTEXT_KEY] = text

    if isinstance(cause, CommandCancelled):
        kind = ErrorKind.TIMEOUT
        message = f"command {cause.reason}"
        context["reason"] = cause.reason
        scanned = text
    elif exit_code == LAUNCH_FAILED:
        kind = ErrorKind.PERMISSION_DENIED if isinstance(cause, PermissionError) else ErrorKind.COMMAND_FAILED
        diagnostic = str(cause) if cause is not None else "process could not be started"
        message = f"command could not be started: {diagnostic}"
        context["launch_error"] = diagnostic
        scanned = diagnostic
    else:
        kind = ErrorKind.COMMAND_FAILED
        message = (
            f"pip command failed: {cause}" if cause is not None else f"pip command failed with exit code {exit_code}"
        )
        scanned = text

    return PipError(
        kind,
        message,
        command=command,
        output=_truncate(text) if text else None,
        exit_code=exit_code,
        suggestions=match_suggestions(scanned, signatures),
        context=context,
        cause=cause,
    )


_LEVELS: Final[dict[ErrorKind, int]] = {
    ErrorKind.TOOL_NOT_INSTALLED: logging.ERROR,
    ErrorKind.RUNTIME_NOT_FOUND: logging.ERROR,
    ErrorKind.PERMISSION_DENIED: logging.ERROR,
    ErrorKind.NETWORK_ERROR: logging.WARNING,
    ErrorKind.TIMEOUT: logging.WARNING,
}

_LABELS: Final[dict[ErrorKind, str]] = {
    ErrorKind.TOOL_NOT_INSTALLED: "System dependency missing",
    ErrorKind.RUNTIME_NOT_FOUND: "System dependency missing",
    ErrorKind.PERMISSION_DENIED: "Permission error",
    ErrorKind.NETWORK_ERROR: "Network issue",
    ErrorKind.TIMEOUT: "Timeout",
}


def report_error(error: BaseException, where: str, logger: logging.Logger = LOGGER) -> PipError:
    """Log ``error`` for the operation ``where`` and return it as a :class:`PipError`.

    Foreign exceptions are wrapped as ``command_failed``.
    """

    if not isinstance(error, PipError):
        error = PipError(ErrorKind.COMMAND_FAILED, str(error), cause=error)
    level = _LEVELS.get(error.kind, logging.ERROR)
    label = _LABELS.get(error.kind, "Error")
    logger.log(level, "%s in %s: %s", label, where, error.message)
    if error.suggestions:
        logger.info("Suggestions: %s", "; ".join(error.suggestions))
    if error.command:
        logger.debug("Failed command: %s", error.command)
    if error.output:
        logger.debug("Command output: %s", error.output)
    return error


__all__ = [
    "LAUNCH_FAILED",
    "MAX_OUTPUT_CHARS",
    "SIGNATURES",
    "Signature",
    "as_text",
    "classify",
    "match_suggestions",
    "report_error",
]
