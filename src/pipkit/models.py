# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Request and response models for package and environment operations."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

_OPERATOR_CHARS = "=<>!~"


class PackageSpec(BaseModel):
    """Package requested for installation.

    ``version`` is an opaque constraint appended verbatim (``">=1.0"``); a bare
    version such as ``"1.0"`` is pinned with ``==``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str = ""
    extras: tuple[str, ...] = ()
    index: str | None = None
    options: dict[str, str] = Field(default_factory=dict)
    editable: bool = False
    upgrade: bool = False
    force_reinstall: bool = False

    @field_validator("name", "version", mode="before")
    @classmethod
    def _strip(cls, value: object) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("extras", mode="before")
    @classmethod
    def _coerce_extras(cls, value: Sequence[str] | str | None) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(",")
        return tuple(entry.strip() for entry in value if entry and entry.strip())

    def requirement(self) -> str:
        """Return the requirement string, e.g. ``requests[socks]>=2.0``."""

        text = self.name
        if self.extras:
            text += f"[{','.join(self.extras)}]"
        if self.version:
            text += self.version if self.version[0] in _OPERATOR_CHARS else f"=={self.version}"
        return text

    def install_args(self) -> list[str]:
        """Return the ``pip install`` arguments describing this request."""

        args: list[str] = ["-e", self.requirement()] if self.editable else [self.requirement()]
        if self.upgrade:
            args.append("--upgrade")
        if self.force_reinstall:
            args.append("--force-reinstall")
        if self.index:
            args.extend(("--index-url", self.index))
        for key, value in self.options.items():
            args.extend((f"--{key}", value) if value else (f"--{key}",))
        return args


class VenvInfo(BaseModel):
    """Inspection result for an isolated environment."""

    model_config = ConfigDict(frozen=True)

    path: Path
    python_path: Path
    is_active: bool = False
    created_at: datetime | None = None
    python_version: str = ""


__all__ = ["PackageSpec", "VenvInfo"]
