"""
L4 Execution — Core subprocess runner.

The SINGLE PLACE where ``subprocess.run`` is called by the installer.
Logging, timeouts, and error shaping are centralised here.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from typing import Any

logger = logging.getLogger(__name__)

_TAIL = 2000


def run_subprocess(
    cmd: list[str],
    *,
    timeout: int = 120,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run a command and capture its output.

    Args:
        cmd: Command list for ``subprocess.run()``.
        timeout: Seconds before ``TimeoutExpired``.
        env_overrides: Extra env vars layered over ``os.environ``.
        cwd: Working directory for the command.

    Returns:
        ``{"ok": True, "returncode": 0, "stdout": "...", "stderr": "...",
        "elapsed_ms": N}`` on exit 0, ``{"ok": False, "error": "...", ...}``
        otherwise.
    """
    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)

    logger.debug("Running %s (cwd=%s, timeout=%ss)", cmd, cwd, timeout)

    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
        )
    except subprocess.TimeoutExpired:
        return {"ok": False, "error": f"Command timed out ({timeout}s)", "timed_out": True}
    except FileNotFoundError:
        return {"ok": False, "error": f"Executable not found: {cmd[0]}"}
    except PermissionError:
        return {"ok": False, "error": f"Executable not runnable: {cmd[0]}"}
    except OSError as e:
        logger.exception("Subprocess error: %s", cmd)
        return {"ok": False, "error": str(e)}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = result.stdout[-_TAIL:] if result.stdout else ""
    stderr = result.stderr[-_TAIL:] if result.stderr else ""

    if result.returncode == 0:
        return {
            "ok": True,
            "returncode": 0,
            "stdout": stdout,
            "stderr": stderr,
            "elapsed_ms": elapsed_ms,
        }

    return {
        "ok": False,
        "error": f"Command failed (exit {result.returncode})",
        "returncode": result.returncode,
        "stdout": stdout,
        "stderr": stderr,
        "elapsed_ms": elapsed_ms,
    }
