"""
Settings loader — reads formulary.yml into a validated Settings model.

formulary.yml is searched for upward from the working directory, so
commands work from any subdirectory of a formula repository. Unlike
formula files, the settings file is optional: without one every value
takes its default, rooted at the working directory.

Relative paths in the file are resolved against the directory the file
lives in.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from formulary.core.errors import ConfigError

logger = logging.getLogger(__name__)

# Default config filename
SETTINGS_FILE = "formulary.yml"


class Timeouts(BaseModel):
    """Per-step bounds, in seconds."""

    fetch: float = 120.0       # source tarball download
    upstream: float = 15.0     # release listing
    build: float = 900.0       # toolchain invocation
    verify: float = 10.0       # post-install smoke test


class RetryPolicy(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=30.0, ge=0)
    max_delay: float = Field(default=3600.0, ge=0)


class Settings(BaseModel):
    """Everything configurable about a formula repository."""

    root: Path = Field(default_factory=Path.cwd)

    formula_dir: Path = Path("Formula")
    prefix: Path = Path(".formulary/bin")
    state_dir: Path = Path(".state")

    timeouts: Timeouts = Field(default_factory=Timeouts)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    jobs: int = Field(default=4, ge=1)
    keep_unverified: bool = False
    github_token_env: str = "GITHUB_TOKEN"

    def resolved(self, path: Path) -> Path:
        """Absolute form of a configured path."""
        return path if path.is_absolute() else (self.root / path).resolve()

    @property
    def formula_path(self) -> Path:
        return self.resolved(self.formula_dir)

    @property
    def prefix_path(self) -> Path:
        return self.resolved(self.prefix)

    @property
    def state_path(self) -> Path:
        return self.resolved(self.state_dir)

    @property
    def github_token(self) -> str | None:
        return os.environ.get(self.github_token_env) or None


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Search for formulary.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to formulary.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / SETTINGS_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_settings(path: Path | None = None) -> Settings:
    """Load and validate formulary.yml.

    Args:
        path: Explicit path to formulary.yml. If None, searches upward
            and falls back to defaults when nothing is found.

    Returns:
        Validated Settings model.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None:
        path = find_settings_file()
        if path is None:
            logger.debug("No %s found, using defaults", SETTINGS_FILE)
            return Settings()
    elif not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    data.setdefault("root", path.parent.resolve())

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.info("Loaded settings from %s (formulas in %s)", path, settings.formula_path)
    return settings
