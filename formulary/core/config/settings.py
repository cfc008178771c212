"""
Installer settings — where things go and how downloads behave.

Resolved in precedence order:
    FORMULARY_* env vars  >  settings YAML file  >  defaults

The settings file defaults to ``~/.config/formulary/config.yml`` and
is optional.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = Path("~/.config/formulary/config.yml")

# env var → settings field
_ENV_FIELDS = {
    "FORMULARY_PREFIX": "prefix",
    "FORMULARY_CACHE_DIR": "cache_dir",
    "FORMULARY_FORMULA_PATH": "formula_paths",
    "FORMULARY_DOWNLOAD_TIMEOUT": "download_timeout",
    "FORMULARY_DOWNLOAD_RETRIES": "download_retries",
}


class ConfigError(Exception):
    """Raised when installer settings are invalid."""


class Settings(BaseModel):
    """Installer settings."""

    prefix: Path = Path("~/.local/formulary")
    cache_dir: Path = Path("~/.cache/formulary/downloads")
    formula_paths: list[Path] = Field(default_factory=lambda: [Path("formulas")])

    download_timeout: int = Field(default=60, gt=0)
    download_retries: int = Field(default=3, ge=0)
    run_smoke_test: bool = True

    def prefix_path(self) -> Path:
        return self.prefix.expanduser()

    def cache_path(self) -> Path:
        return self.cache_dir.expanduser()

    def search_paths(self) -> list[Path]:
        return [p.expanduser() for p in self.formula_paths]


def _env_overrides(environ: dict[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for var, field_name in _ENV_FIELDS.items():
        value = environ.get(var)
        if not value:
            continue
        if field_name == "formula_paths":
            overrides[field_name] = [p for p in value.split(os.pathsep) if p]
        else:
            overrides[field_name] = value
    return overrides


def load_settings(
    path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Load settings from file + environment.

    Args:
        path: Explicit settings file. A missing explicit file is an
            error; a missing default file is not.
        environ: Environment mapping (default: ``os.environ``).

    Raises:
        ConfigError: If the file or any value is invalid.
    """
    env = dict(os.environ if environ is None else environ)
    data: dict[str, object] = {}

    settings_file = path or DEFAULT_SETTINGS_FILE.expanduser()
    if settings_file.is_file():
        logger.debug("Loading settings from %s", settings_file)
        try:
            loaded = yaml.safe_load(settings_file.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read settings {settings_file}: {e}") from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(
                f"Expected a YAML mapping in {settings_file}, got {type(loaded).__name__}"
            )
        data.update(loaded)
    elif path is not None:
        raise ConfigError(f"Settings file not found: {path}")

    data.update(_env_overrides(env))

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e

    logger.debug("Settings: prefix=%s cache=%s", settings.prefix, settings.cache_dir)
    return settings
