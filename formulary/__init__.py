"""
formulary — manifest-driven binary installer.

Reads declarative formulas, fetches the prebuilt archive for the
current platform, verifies its SHA-256, places files into a prefix,
and runs a smoke test.
"""

__version__ = "0.1.0"
