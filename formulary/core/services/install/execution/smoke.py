"""
L4 Execution — Smoke test.

Runs the installed executable inside a throwaway directory. The
directory is created fresh, used as the working directory and
``HOME``, and deleted afterwards.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Any

from formulary.core.models.formula import Formula
from formulary.core.prefix import Prefix
from formulary.core.services.install.execution.subprocess_runner import run_subprocess

logger = logging.getLogger(__name__)


def run_smoke_test(formula: Formula, prefix: Prefix) -> dict[str, Any]:
    """Invoke the formula's test command from ``<prefix>/bin``.

    Success means exit code 0, plus ``expect_output`` appearing in
    stdout or stderr when the formula declares one.

    Returns:
        ``{"ok": True, "command": [...], "elapsed_ms": N}`` or
        ``{"ok": False, "kind": "test_failed", "error": "...", ...}``.
    """
    exe = prefix.bin / formula.test_command
    cmd = [str(exe), *formula.test.args]

    if not exe.is_file():
        return {
            "ok": False,
            "kind": "test_failed",
            "error": f"Executable not installed: {exe}",
            "command": cmd,
        }
    if not os.access(exe, os.X_OK):
        return {
            "ok": False,
            "kind": "test_failed",
            "error": f"Executable is not runnable: {exe}",
            "command": cmd,
        }

    logger.info("Smoke test: %s", " ".join(cmd))

    with tempfile.TemporaryDirectory(prefix=f"formulary-test-{formula.name}-") as tmp:
        result = run_subprocess(
            cmd,
            timeout=formula.test.timeout,
            cwd=tmp,
            env_overrides={"HOME": tmp},
        )

    result["command"] = cmd
    if not result["ok"]:
        result["kind"] = "test_failed"
        result["error"] = f"Smoke test failed: {result['error']}"
        return result

    expected = formula.test.expect_output
    if expected and expected not in result["stdout"] and expected not in result["stderr"]:
        return {
            **result,
            "ok": False,
            "kind": "test_failed",
            "error": f"Smoke test output did not contain {expected!r}",
        }

    return result
