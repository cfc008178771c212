"""
Install receipt — what an install placed where.

Written last during an install, read by uninstall, test, and the
idempotency check. Serialized to
``<prefix>/var/formulary/receipts/<name>.json``.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class InstalledFile(BaseModel):
    """One file placed into the prefix."""

    path: str             # relative to the prefix, e.g. "bin/inkan"
    sha256: str
    kind: str = "bin"     # bin, etc
    preserved: bool = False  # etc file kept as-is; new copy written as .default


class InstallReceipt(BaseModel):
    """Root receipt model — one per installed formula."""

    schema_version: int = 1

    name: str
    version: str
    platform: str
    url: str
    sha256: str

    files: list[InstalledFile] = Field(default_factory=list)
    conflicts_with: list[str] = Field(default_factory=list)

    installed_at: str = Field(default_factory=_now_iso)
    tested_at: str | None = None
    smoke_test: str = "skipped"  # passed, failed, skipped

    def file_paths(self) -> list[str]:
        return [f.path for f in self.files]

    def mark_tested(self, passed: bool) -> None:
        self.smoke_test = "passed" if passed else "failed"
        self.tested_at = _now_iso()
