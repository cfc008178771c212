"""
L4 Execution — Download and checksum verification.

Artifacts are fetched with ``urllib`` into a cache keyed by their
expected SHA-256, so a verified archive is never downloaded twice.
Partial downloads are resumed with an HTTP ``Range`` header.
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import os
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any

from formulary import __version__
from formulary.core.models.formula import Artifact, normalize_sha256
from formulary.core.services.install.domain.download_helpers import (
    cache_filename,
    fmt_size,
    should_log_progress,
)

logger = logging.getLogger(__name__)
progress_logger = logging.getLogger(f"{__name__}.progress")

_CHUNK = 8192
_USER_AGENT = f"formulary/{__version__}"


def file_sha256(path: Path) -> str:
    """Stream a file through SHA-256 and return the hex digest."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_checksum(path: Path, expected: str) -> bool:
    """Verify a file against an expected SHA-256 digest.

    ``expected`` may carry a ``sha256:`` prefix.

    Returns:
        True if the file's digest matches.
    """
    return file_sha256(path) == normalize_sha256(expected)


def _download_once(url: str, part: Path, timeout: int) -> int:
    """Download *url* into *part*, resuming if it already has bytes.

    Returns:
        Total bytes on disk after the download.
    """
    headers = {"User-Agent": _USER_AGENT}

    resume_offset = part.stat().st_size if part.exists() else 0
    if resume_offset > 0:
        headers["Range"] = f"bytes={resume_offset}-"
        logger.info("Partial file found: %s (%s), attempting resume", part, fmt_size(resume_offset))

    req = urllib.request.Request(url, headers=headers)
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        status = resp.getcode()
        length = int(resp.headers.get("Content-Length") or 0)
        if resume_offset > 0 and status == 206:
            mode = "ab"
            total = length + resume_offset
            logger.info("Resuming download from %s", fmt_size(resume_offset))
        else:
            # Server ignored the Range header (or fresh start)
            mode = "wb"
            total = length
            resume_offset = 0

        with open(part, mode) as f:
            downloaded = resume_offset
            last_pct = -10
            while True:
                chunk = resp.read(_CHUNK)
                if not chunk:
                    break
                f.write(chunk)
                downloaded += len(chunk)

                pct = should_log_progress(downloaded, total, last_pct)
                if pct is not None:
                    last_pct = pct
                    progress_logger.info(
                        "Download progress: %d%% (%s / %s)",
                        pct, fmt_size(downloaded), fmt_size(total),
                    )

    if total and downloaded < total:
        raise http.client.IncompleteRead(b"", total - downloaded)
    return downloaded


def _is_permanent(exc: Exception) -> bool:
    """Client errors (4xx) are not worth retrying; everything else is."""
    return isinstance(exc, urllib.error.HTTPError) and 400 <= exc.code < 500 and exc.code != 429


def _is_range_rejected(exc: Exception) -> bool:
    """416 Range Not Satisfiable: the resume offset is at or past the end."""
    return isinstance(exc, urllib.error.HTTPError) and exc.code == 416


def fetch_artifact(
    artifact: Artifact,
    cache_dir: Path,
    *,
    timeout: int = 60,
    retries: int = 3,
    backoff: float = 1.0,
) -> dict[str, Any]:
    """Fetch an artifact into the cache and verify its checksum.

    A cached file whose digest matches is reused without touching the
    network. A download whose digest does not match is deleted and
    reported as ``checksum_mismatch``; it is never retried.

    Args:
        artifact: URL + expected SHA-256.
        cache_dir: Download cache directory.
        timeout: Per-request timeout in seconds.
        retries: Extra attempts after the first transient failure.
        backoff: Base delay in seconds, doubled on each retry.

    Returns::

        {"ok": True, "path": "...", "sha256": "...", "size_bytes": N, "cached": False}
        or
        {"ok": False, "kind": "download_failed" | "checksum_mismatch", "error": "..."}
    """
    cache_dir.mkdir(parents=True, exist_ok=True)
    dest = cache_dir / cache_filename(artifact.sha256, artifact.filename)
    part = dest.with_name(dest.name + ".part")

    if dest.is_file():
        if verify_checksum(dest, artifact.sha256):
            logger.info("Using cached %s", dest.name)
            return {
                "ok": True,
                "path": str(dest),
                "sha256": artifact.sha256,
                "size_bytes": dest.stat().st_size,
                "cached": True,
            }
        logger.warning("Cached file %s is corrupt, refetching", dest)
        dest.unlink(missing_ok=True)

    logger.info("Downloading %s", artifact.url)

    attempt = 0
    while True:
        try:
            size = _download_once(artifact.url, part, timeout)
            break
        except (OSError, http.client.HTTPException) as exc:
            if _is_range_rejected(exc) and part.exists():
                # The partial file is already complete, or longer than the remote
                if verify_checksum(part, artifact.sha256):
                    size = part.stat().st_size
                    break
                logger.warning("Server rejected resume of %s, restarting download", part.name)
                part.unlink()
                continue
            if _is_permanent(exc) or attempt >= retries:
                part.unlink(missing_ok=True)
                return {
                    "ok": False,
                    "kind": "download_failed",
                    "error": f"Download failed for {artifact.url}: {exc}",
                }
            delay = backoff * (2 ** attempt)
            attempt += 1
            logger.warning(
                "Download attempt %d failed (%s), retrying in %.1fs", attempt, exc, delay,
            )
            if delay > 0:
                time.sleep(delay)

    actual = file_sha256(part)
    if actual != artifact.sha256:
        part.unlink(missing_ok=True)
        return {
            "ok": False,
            "kind": "checksum_mismatch",
            "error": (
                f"SHA256 mismatch for {artifact.filename}\n"
                f"Expected: {artifact.sha256}\n"
                f"Got:      {actual}"
            ),
            "expected_sha256": artifact.sha256,
            "actual_sha256": actual,
        }

    os.replace(part, dest)
    logger.info("Downloaded %s (%s)", dest.name, fmt_size(size))
    return {
        "ok": True,
        "path": str(dest),
        "sha256": actual,
        "size_bytes": size,
        "cached": False,
    }
