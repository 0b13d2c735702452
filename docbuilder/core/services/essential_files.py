"""
Essential files refresher — republish the toolchain's shared doc assets.

Every rustdoc output references the same stylesheets, scripts and
fonts. Instead of storing them per release, they are extracted once per
toolchain version from a trivial package that always builds, and stored
at the root of the artifact store.

Versioned assets get the parsed toolchain version in their filename
(``rustdoc.css`` → ``rustdoc-<version>.css``) so pages built with an
older toolchain keep resolving the files they were built against.
"""

from __future__ import annotations

import logging
import shutil
import sqlite3
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from docbuilder.core.persistence.database import set_config
from docbuilder.core.persistence.storage import ArtifactStore
from docbuilder.core.services.executor import SandboxedBuildExecutor
from docbuilder.core.services.limits import limits_for
from docbuilder.core.services.toolchain import ToolchainManager
from docbuilder.core.services.workspace import BuildDirectory, Workspace

logger = logging.getLogger(__name__)

# An empty library crate; it always builds
DUMMY_CRATE_NAME = "acme-client"
DUMMY_CRATE_VERSION = "0.0.0"

TOOLCHAIN_VERSION_KEY = "rustc_version"


class EssentialFilesError(Exception):
    """The shared assets could not be rebuilt or copied."""


@dataclass(frozen=True)
class AssetFile:
    """One shared asset. Versioned assets carry the toolchain version."""

    base_name: str
    extension: str
    versioned: bool

    def file_name(self, version: str) -> str:
        if self.versioned:
            return f"{self.base_name}-{version}.{self.extension}"
        return f"{self.base_name}.{self.extension}"


ESSENTIAL_FILES: tuple[AssetFile, ...] = (
    AssetFile("brush", "svg", True),
    AssetFile("wheel", "svg", True),
    AssetFile("down-arrow", "svg", True),
    AssetFile("dark", "css", True),
    AssetFile("light", "css", True),
    AssetFile("main", "js", True),
    AssetFile("normalize", "css", True),
    AssetFile("rustdoc", "css", True),
    AssetFile("settings", "css", True),
    AssetFile("settings", "js", True),
    AssetFile("storage", "js", True),
    AssetFile("theme", "js", True),
    AssetFile("source-script", "js", True),
    AssetFile("noscript", "css", True),
    AssetFile("rust-logo", "png", True),
    AssetFile("FiraSans-Medium", "woff", False),
    AssetFile("FiraSans-Regular", "woff", False),
    AssetFile("SourceCodePro-Regular", "woff", False),
    AssetFile("SourceCodePro-Semibold", "woff", False),
    AssetFile("SourceSerifPro-Bold.ttf", "woff", False),
    AssetFile("SourceSerifPro-Regular.ttf", "woff", False),
    AssetFile("SourceSerifPro-It.ttf", "woff", False),
)


class EssentialFilesRefresher:
    """Builds the dummy crate and republishes its shared assets.

    Args:
        prepare: Host-side dependency preparation for fetched sources.
    """

    def __init__(
        self,
        toolchain_manager: ToolchainManager,
        workspace: Workspace,
        executor: SandboxedBuildExecutor,
        store: ArtifactStore,
        conn: sqlite3.Connection,
        prepare: Callable[[BuildDirectory], None] | None = None,
        manifest: tuple[AssetFile, ...] = ESSENTIAL_FILES,
    ):
        self._toolchains = toolchain_manager
        self._workspace = workspace
        self._executor = executor
        self._store = store
        self._conn = conn
        self._prepare = prepare
        self._manifest = manifest

    def refresh(self, version_line: str | None = None) -> list[str]:
        """Rebuild and store the essential files for the current toolchain.

        Args:
            version_line: The new version (accepted so the refresher can
                be used directly as the toolchain version-change hook).

        Returns:
            The stored asset filenames.

        Raises:
            EssentialFilesError: If the dummy build fails or a copy fails.
        """
        if version_line is not None:
            self._toolchains.version = version_line
        version = self._toolchains.parsed_version

        logger.info("building a dummy crate to get essential files")
        limits = limits_for(self._conn, DUMMY_CRATE_NAME)

        build = self._workspace.build_dir(f"essential-files-{version}")
        build.purge()
        try:
            self._workspace.fetch(DUMMY_CRATE_NAME, DUMMY_CRATE_VERSION, build)
            if self._prepare is not None:
                self._prepare(build)

            res = self._executor.execute(None, build, limits)
            if not res.successful:
                raise EssentialFilesError(
                    f"failed to build dummy crate for {self._toolchains.version}"
                )

            logger.info("copying essential files for %s", self._toolchains.version)
            source = build.doc_dir(res.target)
            with tempfile.TemporaryDirectory(prefix="essential-files") as tmp:
                dest = Path(tmp)
                for asset in self._manifest:
                    file_name = asset.file_name(version)
                    source_path = source / file_name
                    dest_path = dest / file_name
                    try:
                        shutil.copyfile(source_path, dest_path)
                    except OSError as e:
                        raise EssentialFilesError(
                            f"couldn't copy '{source_path}' to '{dest_path}': {e}"
                        ) from e

                stored = self._store.put_tree("", dest)

            set_config(self._conn, TOOLCHAIN_VERSION_KEY, self._toolchains.version)
        finally:
            build.purge()
            self._workspace.purge_from_cache(DUMMY_CRATE_NAME, DUMMY_CRATE_VERSION)

        return stored
