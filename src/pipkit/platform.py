# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Operating system detection and platform naming conventions."""

from __future__ import annotations

import platform
from enum import Enum
from pathlib import Path
from typing import Final

WINDOWS_BIN_DIR: Final[str] = "Scripts"
POSIX_BIN_DIR: Final[str] = "bin"


class OSFamily(str, Enum):
    """Operating system families with distinct installation conventions."""

    WINDOWS = "windows"
    MACOS = "darwin"
    LINUX = "linux"
    UNKNOWN = "unknown"

    @classmethod
    def from_system(cls, system: str) -> OSFamily:
        """Return the family for a ``platform.system()`` style name."""

        normalised = system.strip().lower()
        if normalised.startswith(("win", "cygwin", "msys")):
            return cls.WINDOWS
        if normalised in {"darwin", "macos"}:
            return cls.MACOS
        if normalised == "linux":
            return cls.LINUX
        return cls.UNKNOWN

    @property
    def is_windows(self) -> bool:
        return self is OSFamily.WINDOWS


def detect_os_family() -> OSFamily:
    """Return the :class:`OSFamily` of the running interpreter."""

    return OSFamily.from_system(platform.system())


def venv_bin_dir(venv_path: Path, family: OSFamily | None = None) -> Path:
    """Return the ``bin``/``Scripts`` directory inside ``venv_path``."""

    family = family or detect_os_family()
    return venv_path / (WINDOWS_BIN_DIR if family.is_windows else POSIX_BIN_DIR)


def python_executable_name(family: OSFamily | None = None) -> str:
    family = family or detect_os_family()
    return "python.exe" if family.is_windows else "python"


def pip_executable_name(family: OSFamily | None = None) -> str:
    family = family or detect_os_family()
    return "pip.exe" if family.is_windows else "pip"


__all__ = [
    "OSFamily",
    "detect_os_family",
    "pip_executable_name",
    "python_executable_name",
    "venv_bin_dir",
]
