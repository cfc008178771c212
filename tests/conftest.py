"""
Shared test fixtures and configuration.

Nothing here touches the network: artifacts are built in ``tmp_path``
and served through ``file://`` URLs.
"""

import hashlib
import io
import tarfile
import textwrap
import zipfile
from pathlib import Path
from typing import Callable

import pytest

from formulary.core.config.loader import parse_formula
from formulary.core.config.settings import Settings
from formulary.core.models.formula import Formula
from formulary.core.prefix import Prefix

TOOL_SCRIPT = textwrap.dedent("""\
    #!/bin/sh
    echo "tool 1.0"
    exit 0
""")

FAILING_SCRIPT = textwrap.dedent("""\
    #!/bin/sh
    echo "boom" >&2
    exit 3
""")

TOOL_FILES = {
    "tool-1.0/tool": TOOL_SCRIPT,
    "tool-1.0/templates/conventional.yml": "style: conventional\n",
    "tool-1.0/templates/default.yml": "style: default\n",
}


def sha256_of(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _write_archive(path: Path, files: dict[str, str | bytes]) -> Path:
    """Build a tar.gz / zip / raw artifact from ``{member_name: content}``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    name = path.name

    if name.endswith((".tar.gz", ".tgz")):
        with tarfile.open(path, "w:gz") as tf:
            for member, content in files.items():
                data = content.encode() if isinstance(content, str) else content
                info = tarfile.TarInfo(member)
                info.size = len(data)
                info.mode = 0o755 if data.startswith(b"#!") else 0o644
                tf.addfile(info, io.BytesIO(data))
    elif name.endswith(".zip"):
        with zipfile.ZipFile(path, "w") as zf:
            for member, content in files.items():
                zf.writestr(member, content)
    else:
        (content,) = files.values()
        path.write_bytes(content.encode() if isinstance(content, str) else content)

    return path


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[..., Path]:
    """Factory: ``make_archive("name.tar.gz", {member: content})``."""

    def _make(name: str, files: dict[str, str | bytes] | None = None) -> Path:
        return _write_archive(tmp_path / "artifacts" / name, files or TOOL_FILES)

    return _make


@pytest.fixture
def tool_archive(make_archive) -> Path:
    """A well-formed release archive with one top-level directory."""
    return make_archive("tool-1.0.tar.gz")


def formula_data(url: str, sha256: str, **overrides) -> dict:
    """Raw formula mapping as it would come out of YAML."""
    data = {
        "name": "tool",
        "version": "1.0",
        "desc": "A test tool",
        "homepage": "https://example.com/tool",
        "platforms": {
            "mac": {"url": url, "sha256": sha256},
            "linux": {"url": url, "sha256": sha256},
        },
        "install": [
            {"bin": "tool"},
            {"etc": "templates/conventional.yml", "dir": "tool"},
            {"etc": "templates/default.yml", "dir": "tool"},
        ],
        "test": {"command": "tool"},
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_formula(tool_archive: Path) -> Callable[..., Formula]:
    """Factory for a Formula pointing at ``tool_archive`` (overridable)."""

    def _make(archive: Path | None = None, **overrides) -> Formula:
        archive = archive or tool_archive
        data = formula_data(archive.as_uri(), sha256_of(archive), **overrides)
        return parse_formula(data)

    return _make


@pytest.fixture
def prefix(tmp_path: Path) -> Prefix:
    return Prefix.at(tmp_path / "prefix")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        prefix=tmp_path / "prefix",
        cache_dir=tmp_path / "cache",
        formula_paths=[tmp_path / "formulas"],
        download_retries=0,
    )


@pytest.fixture
def repo_root() -> Path:
    """Return the repository root directory."""
    return Path(__file__).parent.parent
