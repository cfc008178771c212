"""
Formula model — the declarative manifest for one installable tool.

Loaded from ``formulas/<name>.yml``, a formula names a tool, pins a
version, lists one prebuilt archive per platform, and declares the
install directives and the smoke test. Formulas are immutable: they
are read once per operation and never mutated.
"""

from __future__ import annotations

import re
from enum import StrEnum
from urllib.parse import unquote, urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_SHA256_RE = re.compile(r"^[0-9a-f]{64}$")
_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9._+-]*$")
_URL_SCHEMES = ("https://", "http://", "file://")


class UnsupportedPlatformError(Exception):
    """Raised when no artifact is declared for the requested platform."""


class Platform(StrEnum):
    """Operating systems a formula can ship an artifact for."""

    MAC = "mac"
    LINUX = "linux"


def normalize_sha256(value: str) -> str:
    """Strip an optional ``sha256:`` prefix and lower-case the digest."""
    return value.strip().lower().removeprefix("sha256:")


def is_sha256(value: str) -> bool:
    """True if *value* is a well-formed 64-char hex SHA-256 digest."""
    return bool(_SHA256_RE.match(normalize_sha256(value)))


class Artifact(BaseModel):
    """A downloadable archive plus its expected digest."""

    model_config = ConfigDict(frozen=True)

    url: str
    sha256: str

    @field_validator("url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        if not v.startswith(_URL_SCHEMES):
            raise ValueError(f"unsupported URL scheme: {v!r}")
        return v

    @field_validator("sha256")
    @classmethod
    def _check_sha256(cls, v: str) -> str:
        digest = normalize_sha256(v)
        if not _SHA256_RE.match(digest):
            raise ValueError(
                f"sha256 must be 64 hexadecimal characters, got {len(digest)}: {v!r}"
            )
        return digest

    @property
    def filename(self) -> str:
        """Last path component of the URL (the archive name), without query or fragment."""
        path = unquote(urlsplit(self.url).path)
        return path.rstrip("/").rsplit("/", 1)[-1] or "artifact"


class InstallStep(BaseModel):
    """One install directive.

    ``bin`` places an executable into ``<prefix>/bin``.
    ``etc`` copies a file into ``<prefix>/etc/<dest_dir>``.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    source: str
    dest_dir: str = ""
    rename: str = ""

    @field_validator("kind")
    @classmethod
    def _check_kind(cls, v: str) -> str:
        if v not in ("bin", "etc"):
            raise ValueError(f"install step kind must be 'bin' or 'etc', got {v!r}")
        return v

    @field_validator("dest_dir", "rename")
    @classmethod
    def _check_relative(cls, v: str) -> str:
        if v.startswith("/") or ".." in v.split("/"):
            raise ValueError(f"must be a relative path without '..': {v!r}")
        return v

    @property
    def target_name(self) -> str:
        """File name the source is placed under."""
        return self.rename or self.source.rstrip("/").rsplit("/", 1)[-1]

    @property
    def target(self) -> str:
        """Destination path relative to the prefix."""
        if self.kind == "bin":
            return f"bin/{self.target_name}"
        sub = self.dest_dir.strip("/")
        return f"etc/{sub}/{self.target_name}" if sub else f"etc/{self.target_name}"


class SmokeTest(BaseModel):
    """How to verify an install: run an executable, expect exit 0."""

    model_config = ConfigDict(frozen=True)

    command: str = ""
    args: list[str] = Field(default_factory=list)
    timeout: int = 30
    expect_output: str = ""


class Formula(BaseModel):
    """A package manifest — the unit the installer consumes.

    ``platforms`` maps each supported OS to exactly one artifact.
    URLs may contain ``{version}``, ``{name}`` and ``{platform}``
    placeholders; they are expanded by :meth:`artifact_for`.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    desc: str = ""
    homepage: str = ""

    platforms: dict[Platform, Artifact]
    install: list[InstallStep]
    test: SmokeTest = Field(default_factory=SmokeTest)

    conflicts_with: list[str] = Field(default_factory=list)
    caveats: str = ""

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not _NAME_RE.match(v):
            raise ValueError(f"invalid formula name: {v!r}")
        return v

    @field_validator("version")
    @classmethod
    def _check_version(cls, v: str) -> str:
        if not v or any(c.isspace() or c == "/" for c in v):
            raise ValueError(f"invalid version string: {v!r}")
        return v

    @model_validator(mode="after")
    def _check_shape(self) -> Formula:
        if not self.platforms:
            raise ValueError("formula must declare at least one platform artifact")
        if not any(step.kind == "bin" for step in self.install):
            raise ValueError("formula must install at least one executable (kind: bin)")
        targets = [step.target for step in self.install]
        dupes = sorted({t for t in targets if targets.count(t) > 1})
        if dupes:
            raise ValueError(f"duplicate install targets: {', '.join(dupes)}")
        if self.test.command and self.test.command not in self.executables:
            raise ValueError(
                f"test command {self.test.command!r} is not installed into bin/"
            )
        if self.name in self.conflicts_with:
            raise ValueError("formula cannot conflict with itself")
        return self

    # ── Queries ─────────────────────────────────────────────────

    @property
    def executables(self) -> list[str]:
        """Names placed into ``bin/``, in declaration order."""
        return [s.target_name for s in self.install if s.kind == "bin"]

    @property
    def test_command(self) -> str:
        """Executable the smoke test runs (defaults to the first one)."""
        return self.test.command or self.executables[0]

    def supports(self, platform: Platform) -> bool:
        return platform in self.platforms

    def artifact_for(self, platform: Platform) -> Artifact:
        """Select the artifact for *platform* with placeholders expanded.

        Raises:
            UnsupportedPlatformError: No artifact for this platform.
        """
        try:
            artifact = self.platforms.get(Platform(platform))
        except ValueError:
            artifact = None
        if artifact is None:
            supported = ", ".join(sorted(p.value for p in self.platforms))
            raise UnsupportedPlatformError(
                f"{self.name} has no artifact for {platform} (supported: {supported})"
            )
        url = artifact.url
        for key, value in (
            ("version", self.version),
            ("name", self.name),
            ("platform", str(platform)),
        ):
            url = url.replace(f"{{{key}}}", value)
        return Artifact(url=url, sha256=artifact.sha256)
