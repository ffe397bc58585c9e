# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Parsers turning pip list/freeze/show output into structured records."""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from typing import Any, Final

from packaging.version import InvalidVersion, Version
from pydantic import BaseModel, ConfigDict, Field, field_validator

HEADER_TOKEN: Final[str] = "Package"
EDITABLE_TOKEN: Final[str] = "editable"
SHOW_SEPARATOR: Final[str] = "---"
EGG_FRAGMENT: Final[str] = "#egg="
EDITABLE_FLAGS: Final[tuple[str, ...]] = ("-e", "--editable")

_FREEZE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^([^=<>!~\s]+)\s*([=<>!~].+)?$")
_DIRECT_REFERENCE: Final[re.Pattern[str]] = re.compile(r"^([A-Za-z0-9][A-Za-z0-9._\-\[\],]*)\s+@\s+\S+")
_VERSION_PATTERN: Final[re.Pattern[str]] = re.compile(r"(\d+(?:\.\d+)+\S*)")


class PackageRecord(BaseModel):
    """Installed package as reported by ``pip list`` or ``pip freeze``."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str = ""
    location: str | None = None
    editable: bool = False
    installer: str | None = None

    @field_validator("name")
    @classmethod
    def _require_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("package name must not be empty")
        return stripped


class PackageDetail(BaseModel):
    """Single package as reported by ``pip show``."""

    name: str = ""
    version: str = ""
    summary: str = ""
    home_page: str = ""
    author: str = ""
    author_email: str = ""
    license: str = ""
    location: str = ""
    requires: list[str] = Field(default_factory=list)
    required_by: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.name


def parse_list_output(text: str) -> list[PackageRecord]:
    """Parse ``pip list`` output in either JSON or tabular form.

    JSON is tried first. When the text does not decode as a JSON array the
    whitespace-tabular layout is parsed instead.

    Args:
        text: Raw output of ``pip list`` (any ``--format``).

    Returns:
        list[PackageRecord]: Records in output order; empty for empty input.
    """

    if not text.strip():
        return []
    try:
        payload = json.loads(text)
    except ValueError:
        return list(_parse_list_table(text))
    if not isinstance(payload, list):
        return list(_parse_list_table(text))
    return list(_parse_list_json(payload))


def _parse_list_json(payload: list[Any]) -> Iterator[PackageRecord]:
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        editable_location = entry.get("editable_project_location")
        location = editable_location or entry.get("location")
        yield PackageRecord(
            name=name,
            version=str(entry.get("version") or ""),
            location=str(location) if location else None,
            editable=bool(editable_location),
            installer=entry.get("installer") if isinstance(entry.get("installer"), str) else None,
        )


def _is_table_noise(line: str) -> bool:
    return not line or line.startswith(HEADER_TOKEN) or line.startswith("-")


def _parse_list_table(text: str) -> Iterator[PackageRecord]:
    for raw in text.splitlines():
        line = raw.strip()
        if _is_table_noise(line):
            continue
        tokens = line.split()
        if len(tokens) < 2:
            continue
        location: str | None = None
        editable = False
        for token in tokens[2:]:
            if token == EDITABLE_TOKEN:
                editable = True
            elif "/" in token or "\\" in token:
                location = token
        yield PackageRecord(name=tokens[0], version=tokens[1], location=location, editable=editable)


def _editable_name(source: str) -> str:
    if EGG_FRAGMENT in source:
        fragment = source.split(EGG_FRAGMENT, 1)[1].split("&", 1)[0].strip()
        if fragment:
            return fragment
    tail = re.split(r"[\\/]", source.rstrip("/\\"))[-1]
    return tail or source


def _parse_freeze_line(line: str) -> PackageRecord | None:
    for flag in EDITABLE_FLAGS:
        if line == flag or line.startswith(flag + " ") or line.startswith(flag + "="):
            source = line[len(flag) :].lstrip(" =").strip()
            if not source:
                return None
            return PackageRecord(name=_editable_name(source), editable=True)
    if line.startswith("-"):
        return None

    direct = _DIRECT_REFERENCE.match(line)
    if direct:
        return PackageRecord(name=direct.group(1))

    match = _FREEZE_PATTERN.match(line)
    if match is None:
        return None
    version = (match.group(2) or "").strip()
    if version.startswith("==="):
        version = version[3:]
    elif version.startswith("=="):
        version = version[2:]
    return PackageRecord(name=match.group(1), version=version.strip())


def parse_freeze_output(text: str) -> list[PackageRecord]:
    """Parse ``pip freeze`` output.

    Args:
        text: Raw freeze output or a requirements file body.

    Returns:
        list[PackageRecord]: One record per requirement line. Editable lines
        carry ``editable=True`` and an empty version; directives, comments and
        malformed lines are skipped.
    """

    records: list[PackageRecord] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        record = _parse_freeze_line(line)
        if record is not None:
            records.append(record)
    return records


_SHOW_FIELDS: Final[dict[str, str]] = {
    "name": "name",
    "version": "version",
    "summary": "summary",
    "home-page": "home_page",
    "author": "author",
    "author-email": "author_email",
    "license": "license",
    "location": "location",
}
_LIST_FIELDS: Final[frozenset[str]] = frozenset({"requires", "required-by"})
_FILES_KEY: Final[str] = "files"


def _split_names(value: str) -> list[str]:
    return [token.strip() for token in value.replace("\n", ",").split(",") if token.strip()]


def _show_fields(text: str) -> Iterator[tuple[str, str]]:
    key: str | None = None
    lines: list[str] = []
    for raw in text.splitlines():
        if raw[:1].isspace():
            if key is not None and raw.strip():
                lines.append(raw.strip())
            continue
        if ":" not in raw:
            continue
        if key is not None:
            yield key, "\n".join(lines).strip()
        name, _, value = raw.partition(":")
        key = name.strip()
        lines = [value.strip()] if value.strip() else []
    if key is not None:
        yield key, "\n".join(lines).strip()


def parse_show_output(text: str) -> PackageDetail:
    """Parse the key/value report produced by ``pip show``.

    Indented lines continue the previous field. Keys are matched
    case-insensitively and anything unrecognised lands in ``metadata``.

    Args:
        text: Output describing a single package.

    Returns:
        PackageDetail: Parsed detail; empty when ``text`` holds no fields.
    """

    values: dict[str, Any] = {}
    metadata: dict[str, str] = {}
    for key, value in _show_fields(text):
        lowered = key.lower()
        if lowered in _SHOW_FIELDS:
            values[_SHOW_FIELDS[lowered]] = value
        elif lowered in _LIST_FIELDS:
            values[lowered.replace("-", "_")] = _split_names(value)
        elif lowered == _FILES_KEY:
            values["files"] = [entry.strip() for entry in value.splitlines() if entry.strip()]
        else:
            metadata[key] = value
    return PackageDetail(**values, metadata=metadata)


def parse_show_many(text: str) -> list[PackageDetail]:
    """Parse ``pip show a b ...`` output, whose blocks are separated by ``---``."""

    blocks: list[list[str]] = [[]]
    for raw in text.splitlines():
        if raw.strip() == SHOW_SEPARATOR:
            blocks.append([])
        else:
            blocks[-1].append(raw)
    details = [parse_show_output("\n".join(block)) for block in blocks]
    return [detail for detail in details if not detail.is_empty()]


def _first_version(text: str, prefix: str) -> str:
    stripped = text.strip()
    if not stripped:
        return ""
    first_line = stripped.splitlines()[0].strip()
    tokens = first_line.split()
    if len(tokens) >= 2 and tokens[0].lower() == prefix:
        candidate = tokens[1]
        try:
            Version(candidate)
        except InvalidVersion:
            match = _VERSION_PATTERN.search(candidate)
            return match.group(1) if match else candidate
        return candidate
    match = _VERSION_PATTERN.search(first_line)
    return match.group(1) if match else first_line


def parse_version_output(text: str) -> str:
    """Return ``X.Y.Z`` from ``pip X.Y.Z from /path (python 3.12)``.

    Falls back to the stripped first line when no version can be found.
    """

    return _first_version(text, "pip")


def parse_python_version(text: str) -> str:
    """Return ``X.Y.Z`` from ``Python X.Y.Z``."""

    return _first_version(text, "python")


__all__ = [
    "PackageDetail",
    "PackageRecord",
    "parse_freeze_output",
    "parse_list_output",
    "parse_python_version",
    "parse_show_many",
    "parse_show_output",
    "parse_version_output",
]
