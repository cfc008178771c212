"""
L3 Detection — read-only host probes.
"""

from formulary.core.services.install.detection.platform import (  # noqa: F401
    detect_arch,
    detect_platform,
)
