"""
Configuration loader — reads docbuilder.yml into BuilderOptions.

This is the primary entry point for loading builder configuration.
It reads YAML, applies environment overrides, validates against the
Pydantic schema, and returns a typed options object.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, model_validator

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "docbuilder.yml"

# Environment variables that override file values
_ENV_OVERRIDES = {
    "DOCBUILDER_PREFIX": "prefix",
    "DOCBUILDER_TOOLCHAIN": "toolchain",
    "DOCBUILDER_WORKSPACE": "workspace_path",
}


class ConfigError(Exception):
    """Raised when builder configuration is invalid or missing."""


class BuilderOptions(BaseModel):
    """Everything the builder needs to know about its environment.

    Paths left unset are derived from ``prefix``.
    """

    prefix: Path = Path(".")
    destination: Path | None = None
    registry_index_path: Path | None = None
    database_path: Path | None = None
    workspace_path: Path | None = None

    toolchain: str = "nightly"
    sandbox_image: str = "rustops/crates-build-env"
    docs_base_url: str = "https://docs.rs"

    keep_build_directory: bool = False
    skip_if_exists: bool = False
    skip_if_log_exists: bool = False
    debug: bool = False

    @model_validator(mode="after")
    def _derive_paths(self) -> BuilderOptions:
        if self.destination is None:
            self.destination = self.prefix / "documentations"
        if self.registry_index_path is None:
            self.registry_index_path = self.prefix / "crates.io-index"
        if self.database_path is None:
            self.database_path = self.prefix / "docbuilder.db"
        if self.workspace_path is None:
            self.workspace_path = self.prefix / ".workspace"
        return self

    @classmethod
    def from_prefix(cls, prefix: Path) -> BuilderOptions:
        """Options with every path derived from ``prefix``."""
        return cls(prefix=prefix)

    @property
    def cache_path(self) -> Path:
        return self.prefix / "cache"

    @property
    def lock_path(self) -> Path:
        return self.prefix / "docbuilder.lock"

    def check_paths(self) -> None:
        """Fail fast when required directories are missing.

        Raises:
            ConfigError: If the destination or registry index is absent.
        """
        if not self.destination.exists():
            raise ConfigError(f"destination path '{self.destination}' does not exist")
        if not self.registry_index_path.exists():
            raise ConfigError(
                f"registry index path '{self.registry_index_path}' does not exist"
            )


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for docbuilder.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to docbuilder.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_options(path: Path | None = None) -> BuilderOptions:
    """Load and validate builder configuration.

    Args:
        path: Explicit path to docbuilder.yml. If None, uses
            ``DOCBUILDER_CONFIG`` or searches upward from the cwd.
            When no file is found, defaults rooted at the cwd apply.

    Returns:
        Validated BuilderOptions.

    Raises:
        ConfigError: If the file is unreadable or invalid.
    """
    if path is None and os.environ.get("DOCBUILDER_CONFIG"):
        path = Path(os.environ["DOCBUILDER_CONFIG"])
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
    if path is None:
        path = find_config_file()

    data: dict = {}
    if path is not None:
        data = _read_yaml(path)
        # Relative prefix is relative to the config file, not the cwd
        if "prefix" in data and not Path(data["prefix"]).is_absolute():
            data["prefix"] = str(path.parent / data["prefix"])
        data.setdefault("prefix", str(path.parent))
    else:
        logger.debug("No %s found, using defaults", CONFIG_FILE)
        data["prefix"] = str(Path.cwd())

    for env_var, key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data[key] = value

    try:
        options = BuilderOptions.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid builder configuration: {e}") from e

    logger.info("Loaded builder options (prefix=%s, toolchain=%s)", options.prefix, options.toolchain)
    return options


def _read_yaml(path: Path) -> dict:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading builder config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "docbuilder" key or be flat
    section = data.get("docbuilder", data)
    if not isinstance(section, dict):
        raise ConfigError(f"Expected 'docbuilder' to be a mapping in {path}")
    return dict(section)
