"""
L4 Execution — Receipt persistence.

One JSON receipt per installed formula. Writes are atomic (write to a
temp file, then rename) so a crash mid-write never leaves a torn
receipt behind.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from pydantic import ValidationError

from formulary.core.models.receipt import InstallReceipt
from formulary.core.prefix import Prefix

logger = logging.getLogger(__name__)


def receipt_path(prefix: Prefix, name: str) -> Path:
    return prefix.receipts_dir / f"{name}.json"


def load_receipt(prefix: Prefix, name: str) -> InstallReceipt | None:
    """Load the receipt for *name*.

    Returns:
        The receipt, or None if the formula is not installed. A corrupt
        receipt is logged and treated as not installed.
    """
    path = receipt_path(prefix, name)
    if not path.is_file():
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return InstallReceipt.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("Cannot load receipt %s: %s", path, e)
        return None


def save_receipt(prefix: Prefix, receipt: InstallReceipt) -> Path:
    """Save a receipt (atomic write).

    Returns:
        Path of the written receipt.
    """
    path = receipt_path(prefix, receipt.name)
    path.parent.mkdir(parents=True, exist_ok=True)

    content = json.dumps(receipt.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    _fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".receipt_", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with open(_fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise

    logger.debug("Receipt saved to %s", path)
    return path


def delete_receipt(prefix: Prefix, name: str) -> bool:
    """Remove the receipt for *name*. Returns True if one existed."""
    path = receipt_path(prefix, name)
    if not path.is_file():
        return False
    path.unlink()
    return True


def list_receipts(prefix: Prefix) -> list[InstallReceipt]:
    """All readable receipts, sorted by formula name."""
    if not prefix.receipts_dir.is_dir():
        return []

    receipts = []
    for path in sorted(prefix.receipts_dir.glob("*.json")):
        receipt = load_receipt(prefix, path.stem)
        if receipt is not None:
            receipts.append(receipt)
    return receipts
