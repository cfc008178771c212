"""
L1 Domain — Path containment.

Every path that comes from a formula or an archive is resolved
against a base directory and refused if it lands outside of it.
"""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath


class UnsafePathError(ValueError):
    """A path escapes its base directory."""


def is_within(base: Path, candidate: Path) -> bool:
    """True if *candidate* is *base* or lies underneath it (lexically)."""
    base_n = os.path.normpath(base)
    cand_n = os.path.normpath(candidate)
    return cand_n == base_n or cand_n.startswith(base_n.rstrip(os.sep) + os.sep)


def resolve_inside(root: Path, start: Path, relative: str) -> Path:
    """Resolve *relative* from *start*, refusing anything outside *root*.

    ``start`` may be a sub-directory of ``root`` so that ``..`` can
    climb back up to ``root``, but never past it. Symlinks are followed
    before the containment check.

    Raises:
        UnsafePathError: Absolute path, or the result escapes ``root``.
    """
    if PurePosixPath(relative).is_absolute() or Path(relative).is_absolute():
        raise UnsafePathError(f"absolute path not allowed: {relative}")

    candidate = Path(os.path.normpath(start / relative))
    if not is_within(root, candidate):
        raise UnsafePathError(f"path escapes the archive: {relative}")

    real_root = root.resolve()
    real = candidate.resolve()
    if not is_within(real_root, real):
        raise UnsafePathError(f"path escapes the archive via symlink: {relative}")

    return candidate


def archive_member_ok(name: str) -> bool:
    """True if an archive member name stays inside the extraction dir."""
    if not name or name.startswith(("/", "\\")) or (len(name) > 1 and name[1] == ":"):
        return False
    parts = PurePosixPath(name.replace("\\", "/")).parts
    depth = 0
    for part in parts:
        if part == "..":
            depth -= 1
            if depth < 0:
                return False
        elif part not in (".", ""):
            depth += 1
    return True
