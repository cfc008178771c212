"""
L5 Orchestration — Top-level install workflows.

These functions tie everything together: select the artifact, fetch
and verify it, stage the install steps, commit into the prefix, run
the smoke test, and record the outcome in the receipt and the audit
ledger. Any failure before the receipt is written rolls the prefix
back to exactly what it was.
"""

from __future__ import annotations

import logging
import shutil
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from formulary.core.config.settings import Settings
from formulary.core.models.formula import (
    Artifact,
    Formula,
    Platform,
    UnsupportedPlatformError,
)
from formulary.core.models.receipt import InstalledFile, InstallReceipt
from formulary.core.persistence.audit import AuditEntry, AuditWriter
from formulary.core.prefix import Prefix
from formulary.core.services.install.detection.platform import detect_platform
from formulary.core.services.install.execution.commit import commit_keg, rollback_commit
from formulary.core.services.install.execution.download import fetch_artifact, file_sha256
from formulary.core.services.install.execution.extract import extract_archive, working_dir
from formulary.core.services.install.execution.receipts import (
    delete_receipt,
    list_receipts,
    load_receipt,
    save_receipt,
)
from formulary.core.services.install.execution.smoke import run_smoke_test
from formulary.core.services.install.execution.steps import run_install_steps

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Outcome of one install / uninstall / test / fetch."""

    operation: str
    name: str
    version: str = ""
    platform: str = ""
    ok: bool = False
    status: str = ""               # installed, already_installed, uninstalled, ...
    error: str | None = None
    error_kind: str | None = None
    files: list[str] = field(default_factory=list)
    artifact_path: str | None = None
    cached: bool = False
    smoke_test: str = "skipped"
    duration_ms: int = 0
    caveats: str = ""

    def fail(self, kind: str, error: str) -> OperationResult:
        self.ok = False
        self.status = "failed"
        self.error_kind = kind
        self.error = error
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "name": self.name,
            "version": self.version,
            "platform": self.platform,
            "ok": self.ok,
            "status": self.status,
            "error": self.error,
            "error_kind": self.error_kind,
            "files": self.files,
            "artifact_path": self.artifact_path,
            "cached": self.cached,
            "smoke_test": self.smoke_test,
            "duration_ms": self.duration_ms,
            "caveats": self.caveats,
        }


def _audit(prefix: Prefix, result: OperationResult) -> None:
    AuditWriter(prefix.audit_path).write(AuditEntry(
        operation_type=result.operation,
        formula=result.name,
        version=result.version,
        platform=result.platform,
        status="ok" if result.ok else "failed",
        duration_ms=result.duration_ms,
        files=result.files,
        errors=[result.error] if result.error else [],
        context={"status": result.status, "smoke_test": result.smoke_test},
    ))


def _finish(prefix: Prefix, result: OperationResult, start: float) -> OperationResult:
    result.duration_ms = int((time.monotonic() - start) * 1000)
    _audit(prefix, result)
    if result.ok:
        logger.info("%s %s %s: %s", result.operation, result.name, result.version, result.status)
    else:
        logger.warning(
            "%s %s failed (%s): %s", result.operation, result.name, result.error_kind, result.error,
        )
    return result


def _select_platform(platform: Platform | str | None) -> Platform:
    if platform is None:
        return detect_platform()
    try:
        return Platform(platform)
    except ValueError:
        raise UnsupportedPlatformError(f"Unknown platform: {platform}") from None


def find_conflicts(formula: Formula, prefix: Prefix) -> list[str]:
    """Installed formulas that conflict with *formula*, in either direction."""
    conflicts = []
    for receipt in list_receipts(prefix):
        if receipt.name == formula.name:
            continue
        if receipt.name in formula.conflicts_with or formula.name in receipt.conflicts_with:
            conflicts.append(receipt.name)
    return conflicts


def is_intact(receipt: InstallReceipt, prefix: Prefix) -> bool:
    """True if every recorded file is still in place.

    Executables must match their recorded digest; config files only
    need to exist (the user is allowed to edit them).
    """
    for f in receipt.files:
        path = prefix.path(f.path)
        if not path.is_file():
            return False
        if f.kind == "bin" and file_sha256(path) != f.sha256:
            return False
    return True


# ── Fetch ───────────────────────────────────────────────────────


def fetch_formula(
    formula: Formula,
    settings: Settings,
    *,
    platform: Platform | str | None = None,
    backoff: float = 1.0,
) -> OperationResult:
    """Download and verify a formula's artifact without installing it."""
    result = OperationResult(operation="fetch", name=formula.name, version=formula.version)

    try:
        target = _select_platform(platform)
        artifact = formula.artifact_for(target)
    except UnsupportedPlatformError as exc:
        return result.fail("unsupported_platform", str(exc))
    result.platform = target.value

    fetched = fetch_artifact(
        artifact,
        settings.cache_path(),
        timeout=settings.download_timeout,
        retries=settings.download_retries,
        backoff=backoff,
    )
    if not fetched["ok"]:
        return result.fail(fetched["kind"], fetched["error"])

    result.ok = True
    result.status = "fetched"
    result.artifact_path = fetched["path"]
    result.cached = fetched["cached"]
    return result


# ── Install ─────────────────────────────────────────────────────


def install_formula(
    formula: Formula,
    prefix: Prefix,
    settings: Settings,
    *,
    platform: Platform | str | None = None,
    force: bool = False,
    run_test: bool | None = None,
    backoff: float = 1.0,
) -> OperationResult:
    """Install *formula* into *prefix*.

    Re-running after a successful install is a no-op (status
    ``already_installed``) unless ``force`` is set or files went
    missing. An install whose smoke test failed is re-tested rather
    than reported as already installed. A failure at any point before
    the receipt is written leaves the prefix exactly as it was.

    Args:
        formula: Formula to install.
        prefix: Destination prefix.
        settings: Cache location, download timeout and retries.
        platform: Override host platform detection.
        force: Reinstall even if the same version is installed.
        run_test: Run the smoke test (default: ``settings.run_smoke_test``).
        backoff: Base retry delay for downloads.

    Returns:
        OperationResult describing what happened.
    """
    start = time.monotonic()
    result = OperationResult(
        operation="install", name=formula.name, version=formula.version, caveats=formula.caveats,
    )
    if run_test is None:
        run_test = settings.run_smoke_test

    prefix.ensure()

    try:
        target = _select_platform(platform)
        artifact = formula.artifact_for(target)
    except UnsupportedPlatformError as exc:
        return _finish(prefix, result.fail("unsupported_platform", str(exc)), start)
    result.platform = target.value

    conflicts = find_conflicts(formula, prefix)
    if conflicts:
        return _finish(prefix, result.fail(
            "conflict",
            f"{formula.name} conflicts with installed formula(s): {', '.join(conflicts)}. "
            f"Uninstall them first.",
        ), start)

    existing = load_receipt(prefix, formula.name)
    if (
        existing is not None
        and not force
        and existing.version == formula.version
        and existing.sha256 == artifact.sha256
        and is_intact(existing, prefix)
    ):
        result.ok = True
        result.status = "already_installed"
        result.files = existing.file_paths()
        result.smoke_test = existing.smoke_test
        # An install that failed its smoke test is tested again
        if run_test and existing.smoke_test == "failed":
            _verify(formula, prefix, existing, result)
        return _finish(prefix, result, start)

    fetched = fetch_artifact(
        artifact,
        settings.cache_path(),
        timeout=settings.download_timeout,
        retries=settings.download_retries,
        backoff=backoff,
    )
    if not fetched["ok"]:
        return _finish(prefix, result.fail(fetched["kind"], fetched["error"]), start)
    result.artifact_path = fetched["path"]
    result.cached = fetched["cached"]

    staging = prefix.staging_dir / f"{formula.name}-{uuid.uuid4().hex[:8]}"
    actions: list[dict] = []
    receipt: InstallReceipt | None = None
    try:
        receipt = _stage_and_commit(
            formula, prefix, staging, Path(fetched["path"]), artifact,
            existing, actions, result,
        )
    except BaseException:
        # Interrupted (Ctrl-C, crash in a step): undo whatever landed
        rollback_commit(actions)
        raise
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    if receipt is None:
        return _finish(prefix, result, start)

    result.ok = True
    result.status = "reinstalled" if existing is not None else "installed"
    result.files = receipt.file_paths()

    if run_test:
        _verify(formula, prefix, receipt, result)

    return _finish(prefix, result, start)


def _verify(
    formula: Formula,
    prefix: Prefix,
    receipt: InstallReceipt,
    result: OperationResult,
) -> None:
    """Run the smoke test and record its outcome in the receipt and result."""
    tested = run_smoke_test(formula, prefix)
    receipt.mark_tested(tested["ok"])
    result.smoke_test = receipt.smoke_test
    _save_receipt_quietly(prefix, receipt)
    if not tested["ok"]:
        result.fail("test_failed", tested["error"])
        result.status = "installed_unverified"


def _stage_and_commit(
    formula: Formula,
    prefix: Prefix,
    staging: Path,
    archive: Path,
    artifact: Artifact,
    existing: InstallReceipt | None,
    actions: list[dict],
    result: OperationResult,
) -> InstallReceipt | None:
    """Extract, stage, commit, write receipt. Returns None on failure."""
    extract_dir = staging / "src"
    keg = staging / "keg"
    backups = staging / "backup"

    extracted = extract_archive(archive, extract_dir, filename=artifact.filename)
    if not extracted["ok"]:
        result.fail(extracted["kind"], extracted["error"])
        return None

    staged = run_install_steps(
        formula, root=extract_dir, workdir=working_dir(extract_dir), keg=keg,
    )
    if not staged["ok"]:
        result.fail(staged["kind"], staged["error"])
        return None

    previous = {f.path: f.sha256 for f in existing.files} if existing else {}
    committed = commit_keg(
        keg, prefix, staged["files"],
        backup_root=backups, previous=previous, actions=actions,
    )
    if not committed["ok"]:
        rollback_commit(actions)
        result.fail(committed["kind"], committed["error"])
        return None

    receipt = InstallReceipt(
        name=formula.name,
        version=formula.version,
        platform=result.platform,
        url=artifact.url,
        sha256=artifact.sha256,
        files=[InstalledFile(**f) for f in committed["files"]],
        conflicts_with=list(formula.conflicts_with),
    )
    try:
        save_receipt(prefix, receipt)
    except OSError as exc:
        rollback_commit(actions)
        result.fail("commit_failed", f"Could not write receipt: {exc}")
        return None

    return receipt


def _save_receipt_quietly(prefix: Prefix, receipt: InstallReceipt) -> None:
    try:
        save_receipt(prefix, receipt)
    except OSError as exc:
        logger.warning("Could not update receipt for %s: %s", receipt.name, exc)


# ── Test ────────────────────────────────────────────────────────


def run_formula_test(formula: Formula, prefix: Prefix) -> OperationResult:
    """Run the smoke test against an existing install."""
    start = time.monotonic()
    result = OperationResult(operation="test", name=formula.name, version=formula.version)

    receipt = load_receipt(prefix, formula.name)
    if receipt is None:
        return _finish(prefix, result.fail("not_installed", f"{formula.name} is not installed"), start)
    result.version = receipt.version
    result.platform = receipt.platform

    tested = run_smoke_test(formula, prefix)
    receipt.mark_tested(tested["ok"])
    result.smoke_test = receipt.smoke_test
    _save_receipt_quietly(prefix, receipt)

    if tested["ok"]:
        result.ok = True
        result.status = "passed"
    else:
        result.fail("test_failed", tested["error"])
    return _finish(prefix, result, start)


# ── Uninstall ───────────────────────────────────────────────────


def _prune_empty_dirs(path: Path, stop: Path) -> None:
    current = path
    while current != stop and current.is_dir() and not any(current.iterdir()):
        current.rmdir()
        current = current.parent


def uninstall_formula(name: str, prefix: Prefix) -> OperationResult:
    """Remove every file recorded in *name*'s receipt, then the receipt.

    Config files the user edited since install are kept.
    """
    start = time.monotonic()
    result = OperationResult(operation="uninstall", name=name)

    receipt = load_receipt(prefix, name)
    if receipt is None:
        return _finish(prefix, result.fail("not_installed", f"{name} is not installed"), start)
    result.version = receipt.version
    result.platform = receipt.platform

    kept: list[str] = []
    for f in receipt.files:
        path = prefix.path(f.path)
        if not path.is_file():
            continue
        if f.kind == "etc" and file_sha256(path) != f.sha256:
            kept.append(f.path)
            logger.info("Keeping modified config %s", f.path)
            continue
        path.unlink()
        result.files.append(f.path)
        _prune_empty_dirs(path.parent, prefix.etc if f.kind == "etc" else prefix.bin)

    delete_receipt(prefix, name)

    result.ok = True
    result.status = "uninstalled"
    if kept:
        result.caveats = "Kept modified config: " + ", ".join(kept)
    return _finish(prefix, result, start)
