"""
Status use case — what is installed in a prefix, and info on one formula.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from formulary.core.models.formula import Formula
from formulary.core.models.receipt import InstallReceipt
from formulary.core.prefix import Prefix
from formulary.core.services.install.execution.receipts import list_receipts, load_receipt
from formulary.core.services.install.orchestration.installer import find_conflicts, is_intact


@dataclass
class InstalledStatus:
    """Everything installed in one prefix."""

    prefix: Prefix
    receipts: list[InstallReceipt] = field(default_factory=list)
    broken: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "prefix": str(self.prefix.root),
            "installed": [
                {
                    "name": r.name,
                    "version": r.version,
                    "platform": r.platform,
                    "installed_at": r.installed_at,
                    "smoke_test": r.smoke_test,
                    "files": r.file_paths(),
                    "intact": r.name not in self.broken,
                }
                for r in self.receipts
            ],
        }


def installed_status(prefix: Prefix) -> InstalledStatus:
    """List every receipt in *prefix* and flag installs with missing files."""
    status = InstalledStatus(prefix=prefix, receipts=list_receipts(prefix))
    status.broken = [r.name for r in status.receipts if not is_intact(r, prefix)]
    return status


@dataclass
class FormulaInfo:
    """A formula's declared data plus its install state."""

    formula: Formula
    receipt: InstallReceipt | None = None
    intact: bool = False
    conflicts: list[str] = field(default_factory=list)

    @property
    def outdated(self) -> bool:
        return self.receipt is not None and self.receipt.version != self.formula.version

    def to_dict(self) -> dict:
        f = self.formula
        return {
            "name": f.name,
            "version": f.version,
            "desc": f.desc,
            "homepage": f.homepage,
            "platforms": {
                p.value: {"url": f.artifact_for(p).url, "sha256": a.sha256}
                for p, a in sorted(f.platforms.items())
            },
            "executables": f.executables,
            "install": [step.target for step in f.install],
            "conflicts_with": f.conflicts_with,
            "caveats": f.caveats,
            "installed": self.receipt is not None,
            "installed_version": self.receipt.version if self.receipt else None,
            "intact": self.intact,
            "outdated": self.outdated,
            "conflicts": self.conflicts,
        }


def formula_info(formula: Formula, prefix: Prefix) -> FormulaInfo:
    receipt = load_receipt(prefix, formula.name)
    return FormulaInfo(
        formula=formula,
        receipt=receipt,
        intact=receipt is not None and is_intact(receipt, prefix),
        conflicts=find_conflicts(formula, prefix),
    )
