"""
Formula loader — reads formula YAML files into domain models.

This is the primary entry point for loading formulas. It reads YAML,
expands the install-step shorthand, validates against the Pydantic
schema, and returns an immutable :class:`Formula`.

Install steps may be written in shorthand::

    install:
      - bin: inkan
      - etc: templates/default.yml
        dir: inkan

or in the long form (``kind`` / ``source`` / ``dest_dir``).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from formulary.core.models.formula import Formula

logger = logging.getLogger(__name__)

FORMULA_SUFFIXES = (".yml", ".yaml")


class FormulaError(Exception):
    """Raised when a formula file is missing or invalid."""


def find_formula_file(ref: str, search_paths: list[Path] | None = None) -> Path | None:
    """Resolve a formula reference to a file.

    ``ref`` is either a path to a YAML file or a bare formula name that
    is looked up as ``<name>.yml`` / ``<name>.yaml`` in each search
    path, in order.

    Returns:
        Path to the formula file, or None if not found.
    """
    direct = Path(ref).expanduser()
    if direct.suffix in FORMULA_SUFFIXES and direct.is_file():
        return direct

    if "/" in ref or direct.suffix in FORMULA_SUFFIXES:
        return None

    for base in search_paths or []:
        for suffix in FORMULA_SUFFIXES:
            candidate = Path(base).expanduser() / f"{ref}{suffix}"
            if candidate.is_file():
                return candidate

    return None


def _expand_step(raw: Any, index: int) -> dict[str, Any]:
    """Turn one shorthand install step into the long form."""
    if not isinstance(raw, dict):
        raise FormulaError(f"install[{index}]: expected a mapping, got {type(raw).__name__}")

    if "kind" in raw:
        return dict(raw)

    kinds = [k for k in ("bin", "etc") if k in raw]
    if len(kinds) != 1:
        raise FormulaError(f"install[{index}]: expected exactly one of 'bin' or 'etc'")

    kind = kinds[0]
    step: dict[str, Any] = {"kind": kind, "source": str(raw[kind])}
    if "dir" in raw:
        step["dest_dir"] = str(raw["dir"])
    if "as" in raw:
        step["rename"] = str(raw["as"])
    return step


def parse_formula(data: Any, *, default_name: str = "", origin: str = "<formula>") -> Formula:
    """Validate an already-parsed YAML document into a Formula.

    Raises:
        FormulaError: If the document does not describe a valid formula.
    """
    if not isinstance(data, dict):
        raise FormulaError(f"Expected a YAML mapping in {origin}, got {type(data).__name__}")

    # The YAML may wrap everything under a "formula" key or be flat
    if "formula" in data:
        data = data["formula"]
        if not isinstance(data, dict):
            raise FormulaError(
                f"Expected a mapping under 'formula' in {origin}, got {type(data).__name__}"
            )
    data = dict(data)

    if default_name and "name" not in data:
        data["name"] = default_name

    # YAML reads 1.10 as a float; versions are always strings
    if isinstance(data.get("version"), (int, float)) and not isinstance(data["version"], bool):
        data["version"] = str(data["version"])

    data["install"] = [_expand_step(s, i) for i, s in enumerate(data.get("install") or [])]

    test = data.get("test")
    if isinstance(test, str):
        data["test"] = {"command": test}

    try:
        formula = Formula.model_validate(data)
    except ValidationError as e:
        raise FormulaError(f"Invalid formula {origin}: {e}") from e

    return formula


def load_formula(path: Path) -> Formula:
    """Load and validate a formula file.

    The formula name defaults to the file stem.

    Raises:
        FormulaError: If the file is missing or invalid.
    """
    if not path.is_file():
        raise FormulaError(f"Formula file not found: {path}")

    logger.debug("Loading formula from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FormulaError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise FormulaError(f"Invalid YAML in {path}: {e}") from e

    formula = parse_formula(data, default_name=path.stem, origin=str(path))
    logger.info(
        "Loaded formula '%s' %s (%d platforms)",
        formula.name, formula.version, len(formula.platforms),
    )
    return formula


def resolve_formula(ref: str, search_paths: list[Path] | None = None) -> Formula:
    """Find and load a formula by path or name.

    Raises:
        FormulaError: If the formula cannot be found or is invalid.
    """
    path = find_formula_file(ref, search_paths)
    if path is None:
        where = ", ".join(str(p) for p in search_paths or []) or "(no search paths)"
        raise FormulaError(f"No formula named '{ref}' found in: {where}")
    return load_formula(path)
