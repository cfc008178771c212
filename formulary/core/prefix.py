"""
Install prefix — the filesystem locations an install writes to.

Install and test callbacks receive a :class:`Prefix` explicitly
instead of reading a global install context.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Prefix:
    """Layout of an install prefix::

        <root>/bin/                         executables
        <root>/etc/                         configuration
        <root>/var/formulary/receipts/      one JSON receipt per formula
        <root>/var/formulary/staging/       in-flight installs
        <root>/var/formulary/audit.ndjson   operation history
    """

    root: Path

    @classmethod
    def at(cls, root: Path | str) -> Prefix:
        return cls(Path(root).expanduser().resolve())

    @property
    def bin(self) -> Path:
        return self.root / "bin"

    @property
    def etc(self) -> Path:
        return self.root / "etc"

    @property
    def var(self) -> Path:
        return self.root / "var" / "formulary"

    @property
    def receipts_dir(self) -> Path:
        return self.var / "receipts"

    @property
    def staging_dir(self) -> Path:
        return self.var / "staging"

    @property
    def audit_path(self) -> Path:
        return self.var / "audit.ndjson"

    def path(self, relative: str) -> Path:
        """Absolute path of a prefix-relative file."""
        return self.root / relative

    def ensure(self) -> None:
        """Create the prefix directories (idempotent)."""
        for d in (self.bin, self.etc, self.receipts_dir, self.staging_dir):
            d.mkdir(parents=True, exist_ok=True)
