"""
Cargo metadata reader — resolves a package's dependency graph.

Runs ``cargo metadata`` on the host with the managed toolchain. The
result feeds the release record and the cross-crate link flags.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from docbuilder.adapters.base import CommandError
from docbuilder.core.models.cargo import CargoMetadata
from docbuilder.core.services.toolchain import Toolchain

logger = logging.getLogger(__name__)


def load_cargo_metadata(toolchain: Toolchain, source_dir: Path) -> CargoMetadata:
    """Load ``cargo metadata`` for the package in ``source_dir``.

    Raises:
        CommandError: If cargo fails.
        ValueError: If cargo prints something that is not JSON.
    """
    output = toolchain.run_cargo(
        ["metadata", "--format-version", "1", "--manifest-path", str(source_dir / "Cargo.toml")],
        cwd=source_dir,
        timeout=10 * 60,
    )
    if not output.success:
        raise CommandError(output, "cargo metadata failed")

    try:
        data = json.loads("\n".join(output.stdout_lines))
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid JSON from cargo metadata in {source_dir}: {e}") from e

    metadata = CargoMetadata.from_json(data)
    logger.debug("Resolved %d dependencies for %s", len(metadata.root_dependencies()), source_dir)
    return metadata


def prepare_sources(toolchain: Toolchain, source_dir: Path) -> None:
    """Resolve and download dependencies on the host.

    Builds run without network access by default, so everything cargo
    needs must already be in the workspace's cargo home.

    Raises:
        CommandError: If the lockfile cannot be generated or a
            dependency cannot be fetched.
    """
    manifest = str(source_dir / "Cargo.toml")
    if not (source_dir / "Cargo.lock").is_file():
        output = toolchain.run_cargo(["generate-lockfile", "--manifest-path", manifest], cwd=source_dir, timeout=10 * 60)
        if not output.success:
            raise CommandError(output, "cargo generate-lockfile failed")
    output = toolchain.run_cargo(["fetch", "--manifest-path", manifest], cwd=source_dir, timeout=30 * 60)
    if not output.success:
        raise CommandError(output, "cargo fetch failed")
