"""
Package metadata — per-package build overrides declared in Cargo.toml.

Packages customize their documentation build through the
``[package.metadata.docs.rs]`` table:

    [package.metadata.docs.rs]
    features = ["serde"]
    all-features = false
    no-default-features = true
    default-target = "x86_64-pc-windows-msvc"
    rustc-args = ["--cfg", "docsrs"]
    rustdoc-args = ["--cfg", "docsrs"]
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

MANIFEST_FILE = "Cargo.toml"


class PackageMetadata(BaseModel):
    """Build overrides read from the package's own manifest."""

    model_config = ConfigDict(populate_by_name=True)

    features: list[str] | None = None
    all_features: bool = Field(default=False, alias="all-features")
    no_default_features: bool = Field(default=False, alias="no-default-features")
    default_target: str | None = Field(default=None, alias="default-target")
    rustc_args: list[str] | None = Field(default=None, alias="rustc-args")
    rustdoc_args: list[str] | None = Field(default=None, alias="rustdoc-args")

    @classmethod
    def from_manifest(cls, manifest: dict) -> PackageMetadata:
        """Extract the docs.rs table from a parsed Cargo.toml."""
        table = manifest.get("package", {}).get("metadata", {}).get("docs", {}).get("rs", {})
        if not isinstance(table, dict):
            return cls()
        return cls.model_validate(table)

    @classmethod
    def from_source_dir(cls, source_dir: Path) -> PackageMetadata:
        """Read metadata from ``<source_dir>/Cargo.toml``.

        A missing manifest or a manifest without the docs.rs table
        yields the defaults.
        """
        path = source_dir / MANIFEST_FILE
        if not path.is_file():
            logger.debug("No %s in %s, using default metadata", MANIFEST_FILE, source_dir)
            return cls()
        manifest = tomllib.loads(path.read_text(encoding="utf-8"))
        return cls.from_manifest(manifest)
