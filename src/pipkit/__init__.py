# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Resolve, install, and drive ``pip`` on behalf of a calling application."""

from __future__ import annotations

from importlib import metadata

from .config import PipConfig, activate_environment, deactivate_environment, load_config
from .errors import ErrorKind, PipError, is_kind
from .interpret import PackageDetail, PackageRecord
from .manager import PipManager, ReadOperation, WriteOperation
from .models import PackageSpec
from .process import ExecutionContext

__all__ = [
    "ErrorKind",
    "ExecutionContext",
    "PackageDetail",
    "PackageRecord",
    "PackageSpec",
    "PipConfig",
    "PipError",
    "PipManager",
    "ReadOperation",
    "WriteOperation",
    "__version__",
    "activate_environment",
    "deactivate_environment",
    "is_kind",
    "load_config",
]

try:
    __version__ = metadata.version("pipkit")
except metadata.PackageNotFoundError:  # pragma: no cover - local development fallback
    __version__ = "0.0.0"
