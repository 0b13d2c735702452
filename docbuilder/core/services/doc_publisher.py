"""
Doc publisher — moves generated documentation out of the build directory.

Two steps per release:

    publish()  <target_dir>/<target>/doc  →  <destination>/<name>/<version>[/<target>]
    upload()   <destination>/<name>/<version>  →  store: rustdoc/<name>/<version>/...

The target segment is omitted for the default target so the common
case resolves without a platform component in the URL.
"""

from __future__ import annotations

import logging
from pathlib import Path

from docbuilder.adapters.shell.filesystem import copy_doc_dir
from docbuilder.core.persistence.storage import ArtifactStore

logger = logging.getLogger(__name__)


def rustdoc_prefix(name: str, version: str) -> str:
    return f"rustdoc/{name}/{version}"


class DocPublisher:
    def __init__(self, destination: Path, store: ArtifactStore):
        self._destination = destination
        self._store = store

    def release_dir(self, name: str, version: str) -> Path:
        return self._destination / name / version

    def destination_for(self, name: str, version: str, target: str, is_default_target: bool) -> Path:
        dest = self.release_dir(name, version)
        if not is_default_target:
            dest = dest / target
        return dest

    def publish(
        self,
        target_dir: Path,
        name: str,
        version: str,
        target: str,
        is_default_target: bool,
        toolchain_version: str,
    ) -> Path:
        """Copy one target's documentation into the destination tree.

        Args:
            target_dir: The cargo target dir of the build.
            toolchain_version: Parsed toolchain version; shared assets
                carrying it are left to the essential files prefix.

        Returns:
            The directory the docs were copied to.
        """
        source = target_dir / target / "doc"
        dest = self.destination_for(name, version, target, is_default_target)
        logger.info("%s %s", source, dest)
        copy_doc_dir(source, dest, toolchain_version)
        return dest

    def upload(self, name: str, version: str) -> list[str]:
        """Persist every target's copied docs for the release into the store."""
        logger.debug("Adding documentation into database")
        return self._store.put_tree(rustdoc_prefix(name, version), self.release_dir(name, version))
