"""
Domain models — Pydantic types for the installer.

All models are re-exported here for convenient access:

    from formulary.core.models import Formula, Platform, InstallReceipt
"""

from formulary.core.models.formula import (
    Artifact,
    Formula,
    InstallStep,
    Platform,
    SmokeTest,
    UnsupportedPlatformError,
    is_sha256,
    normalize_sha256,
)
from formulary.core.models.receipt import InstalledFile, InstallReceipt

__all__ = [
    # formula.py
    "Artifact",
    "Formula",
    "InstallStep",
    "Platform",
    "SmokeTest",
    "UnsupportedPlatformError",
    "is_sha256",
    "normalize_sha256",
    # receipt.py
    "InstallReceipt",
    "InstalledFile",
]
