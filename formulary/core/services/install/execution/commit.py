"""
L4 Execution — Commit a staged keg into the prefix.

Files are moved into place one by one with ``os.replace`` (atomic per
file, staging lives on the same filesystem as the prefix). Every file
that gets overwritten or removed is first moved into a backup dir, so
that a failure at any point can be rolled back to the exact previous
state.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from formulary.core.prefix import Prefix
from formulary.core.services.install.domain.rollback import generate_rollback
from formulary.core.services.install.execution.download import file_sha256

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = ".default"


def _mkdirs(path: Path, stop: Path, actions: list[dict]) -> None:
    """mkdir -p that records every directory it creates."""
    missing: list[Path] = []
    current = path
    while not current.exists() and current != stop and current != current.parent:
        missing.append(current)
        current = current.parent
    for d in reversed(missing):
        d.mkdir()
        actions.append({"created_dir": str(d)})


def _move_aside(target: Path, backup_root: Path, relative: str) -> Path:
    backup = backup_root / relative
    backup.parent.mkdir(parents=True, exist_ok=True)
    os.replace(target, backup)
    return backup


def _user_modified(target: Path, previous: dict[str, str], relative: str) -> bool:
    """True if an existing etc file is not the copy we installed last time."""
    return previous.get(relative) != file_sha256(target)


def commit_keg(
    keg: Path,
    prefix: Prefix,
    files: list[dict[str, Any]],
    *,
    backup_root: Path,
    previous: dict[str, str] | None = None,
    actions: list[dict] | None = None,
) -> dict[str, Any]:
    """Move staged files into the prefix.

    A pre-existing ``etc`` file that differs from the new one and was
    not written by the previous install of this formula is treated as
    user configuration: it is left alone and the new file is placed
    next to it as ``<name>.default``.

    Files listed in ``previous`` that the new install no longer ships
    are removed (unless they are user-modified ``etc`` files).

    Args:
        keg: Staged tree mirroring the prefix layout.
        prefix: Destination prefix.
        files: Staged files (``path``, ``kind``, ``sha256``).
        backup_root: Where replaced/removed files are parked.
        previous: ``{relative_path: sha256}`` from the previous receipt.
        actions: Caller-owned list that completed actions are appended to,
            so the caller can roll back even if the commit is interrupted.

    Returns:
        ``{"ok": True, "files": [...], "actions": [...]}`` or
        ``{"ok": False, "kind": "commit_failed", "error": "...", "actions": [...]}``.
        ``actions`` is what :func:`rollback_commit` needs on failure.
    """
    previous = previous or {}
    actions = [] if actions is None else actions
    placed: list[dict[str, Any]] = []

    try:
        for entry in files:
            relative = entry["path"]
            staged = keg / relative
            target = prefix.path(relative)
            record = dict(entry, preserved=False)

            if (
                entry["kind"] == "etc"
                and target.is_file()
                and file_sha256(target) != entry["sha256"]
                and _user_modified(target, previous, relative)
            ):
                relative = relative + DEFAULT_SUFFIX
                target = prefix.path(relative)
                record.update(path=relative, preserved=True)
                logger.info("Keeping modified %s, writing %s", entry["path"], relative)

            _mkdirs(target.parent, prefix.root, actions)

            backup = None
            if target.exists() or target.is_symlink():
                backup = str(_move_aside(target, backup_root, relative))
            os.replace(staged, target)
            actions.append({"target": str(target), "backup": backup})
            placed.append(record)
            logger.debug("Placed %s", target)

        shipped = {p["path"] for p in placed} | {p["path"] for p in files}
        for relative, sha in previous.items():
            if relative in shipped:
                continue
            target = prefix.path(relative)
            if not target.is_file():
                continue
            if relative.startswith("etc/") and file_sha256(target) != sha:
                logger.info("Leaving modified config %s in place", relative)
                continue
            backup = _move_aside(target, backup_root, relative)
            actions.append({"target": str(target), "backup": str(backup), "removed": True})
            logger.debug("Removed stale %s", target)

    except OSError as exc:
        return {
            "ok": False,
            "kind": "commit_failed",
            "error": f"Could not place files into {prefix.root}: {exc}",
            "actions": actions,
        }

    return {"ok": True, "files": placed, "actions": actions}


def rollback_commit(actions: list[dict]) -> list[str]:
    """Undo a partial or complete commit.

    Best effort: every undo step is attempted even if an earlier one
    fails.

    Returns:
        Error messages for undo steps that failed (empty on success).
    """
    errors: list[str] = []
    for undo in generate_rollback(actions):
        target = Path(undo["target"])
        try:
            if undo["op"] == "restore":
                os.replace(undo["backup"], target)
            elif undo["op"] == "remove":
                target.unlink(missing_ok=True)
            elif undo["op"] == "rmdir":
                if target.is_dir() and not any(target.iterdir()):
                    target.rmdir()
        except OSError as exc:
            logger.error("Rollback step %s %s failed: %s", undo["op"], target, exc)
            errors.append(f"{undo['op']} {target}: {exc}")

    if not errors:
        logger.info("Rolled back %d actions", len(actions))
    return errors
