"""
L1 Domain — Rollback plan generation (pure).

Derives undo actions from the commit actions that completed.
No I/O.
"""

from __future__ import annotations


def generate_rollback(completed: list[dict]) -> list[dict]:
    """Generate a rollback plan from completed commit actions (reverse order).

    Each completed action describes one file placed into the prefix::

        {"target": "/p/bin/tool", "backup": "/p/var/.../bin/tool"}   # replaced
        {"target": "/p/bin/tool", "backup": None}                    # created

        {"created_dir": "/p/etc/tool"}                               # mkdir

    A replaced file is restored from its backup; a created file is
    removed; a created directory is removed if it is empty again.

    Returns:
        Ordered list of undo dicts (reverse of execution order).
    """
    rollback: list[dict] = []
    for action in reversed(completed):
        created_dir = action.get("created_dir")
        if created_dir:
            rollback.append({"op": "rmdir", "target": created_dir})
            continue
        target = action.get("target")
        if not target:
            continue
        backup = action.get("backup")
        if backup:
            rollback.append({"op": "restore", "target": target, "backup": backup})
        else:
            rollback.append({"op": "remove", "target": target})
    return rollback
