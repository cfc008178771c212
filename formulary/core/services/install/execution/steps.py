"""
L4 Execution — Install steps.

Runs a formula's ordered install directives against the unpacked
archive and stages the results into a *keg*: a private directory that
mirrors the prefix layout (``bin/``, ``etc/``). Nothing here touches
the real prefix; the commit step does that.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Any

from formulary.core.models.formula import Formula, InstallStep
from formulary.core.services.install.domain.paths import UnsafePathError, resolve_inside
from formulary.core.services.install.execution.download import file_sha256

logger = logging.getLogger(__name__)


def _stage_step(step: InstallStep, root: Path, workdir: Path, keg: Path) -> dict[str, Any]:
    try:
        source = resolve_inside(root, workdir, step.source)
    except UnsafePathError as exc:
        return {"ok": False, "kind": "unsafe_archive", "error": str(exc)}

    if not source.is_file():
        return {
            "ok": False,
            "kind": "missing_file",
            "error": f"'{step.source}' not found in the unpacked archive",
        }

    target = keg / step.target
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, target)

    if step.kind == "bin":
        os.chmod(target, 0o755)
    else:
        os.chmod(target, 0o644)

    logger.debug("Staged %s → %s", step.source, step.target)
    return {
        "ok": True,
        "path": step.target,
        "kind": step.kind,
        "sha256": file_sha256(target),
    }


def run_install_steps(
    formula: Formula,
    *,
    root: Path,
    workdir: Path,
    keg: Path,
) -> dict[str, Any]:
    """Execute every install step of *formula* into *keg*.

    Args:
        formula: The formula being installed.
        root: Extraction directory; no source may resolve outside it.
        workdir: Directory sources are relative to (see ``working_dir``).
        keg: Staging directory mirroring the prefix layout.

    Returns:
        ``{"ok": True, "files": [{"path", "kind", "sha256"}, ...]}`` or
        the first failing step's error dict.
    """
    files: list[dict[str, Any]] = []
    for index, step in enumerate(formula.install):
        result = _stage_step(step, root, workdir, keg)
        if not result["ok"]:
            result["step"] = index
            return result
        files.append({k: result[k] for k in ("path", "kind", "sha256")})

    return {"ok": True, "files": files}
