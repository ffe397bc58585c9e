# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for pip output interpretation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pipkit.interpret import (
    PackageRecord,
    parse_freeze_output,
    parse_list_output,
    parse_python_version,
    parse_show_many,
    parse_show_output,
    parse_version_output,
)

SHOW_REQUESTS = """\
Name: requests
Version: 2.31.0
Summary: Python HTTP for Humans.
Home-page: https://requests.readthedocs.io
Author: Kenneth Reitz
Author-email: me@kennethreitz.org
License: Apache 2.0
Location: /usr/lib/python3/site-packages
Requires: certifi, charset-normalizer,
  idna, urllib3
Required-by:
Metadata-Version: 2.1
"""


def test_list_json_with_and_without_spaces() -> None:
    compact = parse_list_output('[{"name":"pip","version":"23.2.1"}]')
    spaced = parse_list_output('[ { "name" : "pip" , "version" : "23.2.1" } ]\n')

    assert compact == spaced == [PackageRecord(name="pip", version="23.2.1")]


def test_list_json_marks_editable_projects() -> None:
    records = parse_list_output(
        '[{"name": "demo", "version": "0.1", "editable_project_location": "/src/demo"},'
        ' {"version": "1.0"}]'
    )

    assert records == [PackageRecord(name="demo", version="0.1", location="/src/demo", editable=True)]


def test_list_table_skips_header_and_rule() -> None:
    text = "Package    Version\n---------- -------\nrequests   2.31.0\n\n"

    assert parse_list_output(text) == [PackageRecord(name="requests", version="2.31.0")]


def test_list_table_reads_location_and_editable_columns() -> None:
    text = (
        "Package Version Location                Installer\n"
        "------- ------- ----------------------- ---------\n"
        "demo    0.1     /home/user/src/demo     editable\n"
    )

    (record,) = parse_list_output(text)

    assert record.location == "/home/user/src/demo"
    assert record.editable


def test_list_empty_input() -> None:
    assert parse_list_output("") == []
    assert parse_list_output("   \n") == []


def test_freeze_pinned_and_ranged_lines() -> None:
    records = parse_freeze_output("requests==2.31.0\nflask>=2.0\nlegacy===1.0-custom\nbare\n")

    assert [(r.name, r.version) for r in records] == [
        ("requests", "2.31.0"),
        ("flask", ">=2.0"),
        ("legacy", "1.0-custom"),
        ("bare", ""),
    ]


def test_freeze_editable_path_uses_last_segment() -> None:
    (record,) = parse_freeze_output("-e /path/to/pkg\n")

    assert record == PackageRecord(name="pkg", editable=True)


def test_freeze_editable_prefers_egg_fragment() -> None:
    records = parse_freeze_output(
        "-e git+https://example.com/repo.git@abc#egg=mypkg\n"
        "--editable=git+https://example.com/other.git#egg=other&subdirectory=src\n"
    )

    assert [(r.name, r.editable) for r in records] == [("mypkg", True), ("other", True)]


def test_freeze_skips_comments_directives_and_keeps_direct_references() -> None:
    text = (
        "# Generated requirements file\n"
        "--index-url https://pypi.org/simple\n"
        "-r base.txt\n"
        "pkg @ file:///tmp/pkg-1.0.tar.gz\n"
    )

    assert parse_freeze_output(text) == [PackageRecord(name="pkg")]


def test_show_parses_known_fields_and_continuations() -> None:
    detail = parse_show_output(SHOW_REQUESTS)

    assert detail.name == "requests"
    assert detail.version == "2.31.0"
    assert detail.home_page == "https://requests.readthedocs.io"
    assert detail.author_email == "me@kennethreitz.org"
    assert detail.requires == ["certifi", "charset-normalizer", "idna", "urllib3"]
    assert detail.required_by == []
    assert detail.metadata == {"Metadata-Version": "2.1"}


def test_show_files_section() -> None:
    detail = parse_show_output("Name: tiny\nVersion: 1\nFiles:\n  tiny/__init__.py\n  tiny/core.py\n")

    assert detail.files == ["tiny/__init__.py", "tiny/core.py"]


def test_show_empty_output() -> None:
    detail = parse_show_output("")

    assert detail.is_empty()
    assert detail.requires == []


def test_show_many_splits_on_separator() -> None:
    details = parse_show_many("Name: a\nVersion: 1\n---\nName: b\nVersion: 2\n")

    assert [(d.name, d.version) for d in details] == [("a", "1"), ("b", "2")]


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("pip 23.2.1 from /usr/lib/python3/site-packages/pip (python 3.11)\n", "23.2.1"),
        ("pip 24.0\n", "24.0"),
        ("", ""),
        ("unexpected", "unexpected"),
    ],
)
def test_pip_version_parsing(text: str, expected: str) -> None:
    assert parse_version_output(text) == expected


def test_python_version_parsing() -> None:
    assert parse_python_version("Python 3.12.1\n") == "3.12.1"


def test_record_requires_name() -> None:
    with pytest.raises(ValidationError):
        PackageRecord(name="  ")
