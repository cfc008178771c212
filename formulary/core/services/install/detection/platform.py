"""
L3 Detection — Host platform.

Read-only probes: which OS this is (selects the artifact) and which
CPU architecture (informational only).
"""

from __future__ import annotations

import platform as _platform

from formulary.core.models.formula import Platform, UnsupportedPlatformError

# platform.system() → formula platform key
_SYSTEM_MAP = {
    "Darwin": Platform.MAC,
    "Linux": Platform.LINUX,
}

# Normalise machine names across OSes
_ARCH_MAP = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}


def detect_platform(system: str | None = None) -> Platform:
    """Map the running OS to a formula platform.

    Args:
        system: Override for ``platform.system()`` (tests, cross-fetch).

    Raises:
        UnsupportedPlatformError: The OS is neither macOS nor Linux.
    """
    name = system if system is not None else _platform.system()
    try:
        return _SYSTEM_MAP[name]
    except KeyError:
        raise UnsupportedPlatformError(
            f"Unsupported operating system: {name or 'unknown'} "
            f"(supported: {', '.join(p.value for p in Platform)})"
        ) from None


def detect_arch(machine: str | None = None) -> str:
    """Return the normalised machine architecture, e.g. ``aarch64``."""
    raw = (machine if machine is not None else _platform.machine()).lower()
    return _ARCH_MAP.get(raw, raw)
