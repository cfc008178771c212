"""
L4 Execution — Archive extraction.

Unpacks a verified artifact into a staging directory. Supports
tar (plain, gz, xz, bz2), zip, and raw single-file binaries. Members
that would land outside the staging directory are refused.
"""

from __future__ import annotations

import logging
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import Any

from formulary.core.services.install.domain.paths import archive_member_ok

logger = logging.getLogger(__name__)

_TAR_SUFFIXES = (".tar.gz", ".tgz", ".tar.xz", ".txz", ".tar.bz2", ".tbz2", ".tar")
_ZIP_SUFFIXES = (".zip",)


def archive_type(filename: str) -> str:
    """Classify an artifact by file name: ``tar``, ``zip`` or ``raw``."""
    lower = filename.split("?", 1)[0].split("#", 1)[0].lower()
    if lower.endswith(_TAR_SUFFIXES):
        return "tar"
    if lower.endswith(_ZIP_SUFFIXES):
        return "zip"
    return "raw"


def _check_tar(tf: tarfile.TarFile) -> str | None:
    for member in tf.getmembers():
        if not archive_member_ok(member.name):
            return member.name
        if member.issym() or member.islnk():
            link = member.linkname
            if member.issym():
                # Symlink targets are relative to the member's directory
                link = str(Path(member.name).parent / link)
            if not archive_member_ok(link):
                return f"{member.name} -> {member.linkname}"
        if member.isdev():
            return member.name
    return None


def extract_archive(archive: Path, dest: Path, *, filename: str | None = None) -> dict[str, Any]:
    """Unpack *archive* into *dest*.

    Args:
        archive: Path to the downloaded (already verified) file.
        dest: Empty staging directory.
        filename: Artifact file name, used to pick the format and
            to name raw binaries (defaults to ``archive.name``).

    Returns:
        ``{"ok": True, "type": "tar", "files": N}`` or
        ``{"ok": False, "kind": "unsafe_archive", "error": "..."}``.
    """
    name = filename or archive.name
    kind = archive_type(name)
    dest.mkdir(parents=True, exist_ok=True)

    try:
        if kind == "tar":
            with tarfile.open(archive, "r:*") as tf:
                bad = _check_tar(tf)
                if bad:
                    return {
                        "ok": False,
                        "kind": "unsafe_archive",
                        "error": f"Archive member escapes the staging dir: {bad}",
                    }
                if hasattr(tarfile, "data_filter"):
                    tf.extractall(dest, filter="data")
                else:
                    tf.extractall(dest)
        elif kind == "zip":
            with zipfile.ZipFile(archive, "r") as zf:
                bad_names = [n for n in zf.namelist() if not archive_member_ok(n)]
                if bad_names:
                    return {
                        "ok": False,
                        "kind": "unsafe_archive",
                        "error": f"Archive member escapes the staging dir: {bad_names[0]}",
                    }
                zf.extractall(dest)
        else:
            shutil.copy2(archive, dest / name)
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as exc:
        return {"ok": False, "kind": "unsafe_archive", "error": f"Extract failed: {exc}"}

    count = sum(1 for p in dest.rglob("*") if p.is_file())
    logger.debug("Extracted %s (%s) → %s: %d files", name, kind, dest, count)
    return {"ok": True, "type": kind, "files": count}


def working_dir(dest: Path) -> Path:
    """Directory install-step sources resolve from.

    If the archive unpacked into exactly one top-level directory,
    sources resolve from inside it. Otherwise from *dest* itself. Either
    way ``..`` never climbs above *dest*.
    """
    entries = [p for p in dest.iterdir() if not p.name.startswith(".")]
    if len(entries) == 1 and entries[0].is_dir() and not entries[0].is_symlink():
        return entries[0]
    return dest
