"""
Formula check use case — validate a formula file and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from formulary.core.config.loader import FormulaError, find_formula_file, load_formula
from formulary.core.models.formula import Formula, Platform


@dataclass
class FormulaCheckResult:
    """Result of formula validation."""

    valid: bool = False
    formula: Formula | None = None
    formula_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "formula_path": str(self.formula_path) if self.formula_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "name": self.formula.name if self.formula else None,
            "version": self.formula.version if self.formula else None,
            "platforms": sorted(p.value for p in self.formula.platforms) if self.formula else [],
        }


def check_formula(ref: str, search_paths: list[Path] | None = None) -> FormulaCheckResult:
    """Validate a formula and report schema errors and soft warnings.

    Args:
        ref: Formula file path or name in the search path.
        search_paths: Directories searched for ``<name>.yml``.

    Returns:
        FormulaCheckResult with validation status and any issues.
    """
    result = FormulaCheckResult()

    path = find_formula_file(ref, search_paths)
    if path is None:
        result.errors.append(f"No formula named '{ref}' found.")
        return result
    result.formula_path = path

    try:
        formula = load_formula(path)
        result.formula = formula
    except FormulaError as e:
        result.errors.append(str(e))
        return result

    # Semantic checks
    if not formula.desc:
        result.warnings.append("No desc given.")
    if not formula.homepage:
        result.warnings.append("No homepage given.")

    missing = [p.value for p in Platform if p not in formula.platforms]
    if missing:
        result.warnings.append(f"No artifact for: {', '.join(missing)}")

    artifacts = {p: formula.artifact_for(p) for p in formula.platforms}

    for platform, artifact in sorted(artifacts.items()):
        if artifact.url.startswith("http://"):
            result.warnings.append(f"{platform.value}: URL is not HTTPS: {artifact.url}")
        if "{" in artifact.url or "}" in artifact.url:
            result.errors.append(f"{platform.value}: unknown placeholder in URL: {artifact.url}")

    urls = [a.url for a in artifacts.values()]
    digests = [a.sha256 for a in artifacts.values()]
    if len(set(digests)) < len(digests) and len(set(urls)) == len(urls):
        result.warnings.append(
            "Different artifacts share the same sha256; at least one checksum is probably wrong."
        )

    if formula.version not in " ".join(urls):
        result.warnings.append("Version does not appear in any artifact URL.")

    result.valid = len(result.errors) == 0
    return result
