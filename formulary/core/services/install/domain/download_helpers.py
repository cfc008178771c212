"""
L1 Domain — Download helpers (pure).

Size formatting and cache naming. No I/O.
"""

from __future__ import annotations

import re

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._+-]")


def fmt_size(n: int | float) -> str:
    """Format byte count to human-readable string."""
    for unit in ("B", "KB", "MB", "GB"):
        if n < 1024:
            return f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} TB"


def cache_filename(sha256: str, filename: str) -> str:
    """Cache entry name for an artifact: ``<sha256>--<filename>``.

    Keyed by digest so two versions sharing a file name never collide,
    and a formula bump with a new checksum always refetches.
    """
    safe = _UNSAFE_CHARS.sub("_", filename) or "artifact"
    return f"{sha256}--{safe}"


def should_log_progress(downloaded: int, total: int, last_pct: int, step: int = 10) -> int | None:
    """Return the new percentage if it crossed the next ``step`` mark."""
    if total <= 0:
        return None
    pct = int(downloaded * 100 / total)
    if pct >= last_pct + step:
        return pct
    return None
