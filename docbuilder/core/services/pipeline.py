"""
Build pipeline — the per-job operation the queue worker drives.

build_package(name, version):

    skip?  ──yes──▶ False
      │
    ensure toolchain ─▶ limits ─▶ fetch ─▶ default-target build
                                              │
                          success ─▶ store sources under sources/<name>/<version>
                                              │
                          has docs ─▶ publish default ─▶ each target ─▶ upload
                                              │
                          record release + build
      │
    always: mark completed in the cache, purge build dir and fetched sources

The return value is the default-target build's success flag.
Infrastructure failures propagate to the caller. An optional heartbeat
callable is invoked between the long-running steps so the queue claim
of the job being built stays fresh.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable

from docbuilder.core.models.limits import BuildLimits
from docbuilder.core.persistence.completion_cache import CompletionCache
from docbuilder.core.persistence.database import add_build_into_database, add_package_into_database
from docbuilder.core.persistence.storage import ArtifactStore
from docbuilder.core.services.doc_publisher import DocPublisher
from docbuilder.core.services.executor import TARGETS, SandboxedBuildExecutor
from docbuilder.core.services.limits import limits_for
from docbuilder.core.services.toolchain import ToolchainManager
from docbuilder.core.services.workspace import BuildDirectory, Workspace

logger = logging.getLogger(__name__)

# Save the completion cache every N processed packages during build_world
CACHE_CHECKPOINT_EVERY = 10

Heartbeat = Callable[[], None]


def sources_prefix(name: str, version: str) -> str:
    return f"sources/{name}/{version}"


def _no_heartbeat() -> None:
    pass


class BuildPipeline:
    """Builds, publishes and records one package version at a time.

    Args:
        conn: Builder database connection.
        toolchain_manager: Brought up to date before every build.
        executor: Runs the sandboxed cargo invocations.
        workspace: Build directories and fetched sources.
        publisher: Copies generated docs out of the build directory.
        store: Receives source trees.
        cache: Skip decisions and the completion record.
        prepare: Host-side dependency preparation for fetched sources.
        targets: Additional platforms built after the default target.
        keep_build_directory: Leave the build directory on disk (debugging).
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        toolchain_manager: ToolchainManager,
        executor: SandboxedBuildExecutor,
        workspace: Workspace,
        publisher: DocPublisher,
        store: ArtifactStore,
        cache: CompletionCache,
        prepare: Callable[[BuildDirectory], None] | None = None,
        targets: Iterable[str] = TARGETS,
        keep_build_directory: bool = False,
    ):
        self._conn = conn
        self._toolchains = toolchain_manager
        self._executor = executor
        self._workspace = workspace
        self._publisher = publisher
        self._store = store
        self._cache = cache
        self._prepare = prepare
        self._targets = list(targets)
        self._keep_build_directory = keep_build_directory

    @property
    def cache(self) -> CompletionCache:
        return self._cache

    def build_package(
        self, name: str, version: str, heartbeat: Heartbeat | None = None
    ) -> bool:
        """Build, publish and record ``name`` ``version``.

        Args:
            heartbeat: Called before each long-running step.

        Returns:
            True if the default-target build succeeded. False if it
            failed or the package was skipped.
        """
        if not self._cache.should_build(name, version):
            logger.info("skipping %s %s (already built)", name, version)
            return False

        beat = heartbeat or _no_heartbeat
        build = self._workspace.build_dir(f"{name}-{version}")
        try:
            beat()
            self._toolchains.ensure_current()

            logger.info("building package %s %s", name, version)
            limits = limits_for(self._conn, name)

            build.purge()
            beat()
            self._workspace.fetch(name, version, build)
            if self._prepare is not None:
                self._prepare(build)

            return self._build_and_record(name, version, build, limits, beat)
        finally:
            self._cache.add_to_cache(name, version)
            if self._keep_build_directory:
                logger.info("keeping build directory %s", build.root)
            else:
                build.purge()
            self._workspace.purge_from_cache(name, version)

    def _build_and_record(
        self,
        name: str,
        version: str,
        build: BuildDirectory,
        limits: BuildLimits,
        beat: Heartbeat,
    ) -> bool:
        files: list[str] | None = None
        has_docs = False
        successful_targets: list[str] = []

        beat()
        res = self._executor.execute(None, build, limits)
        package = res.cargo_metadata.root()

        if res.successful:
            logger.debug("adding sources into database")
            files = self._store.put_tree(sources_prefix(name, version), build.source_dir)
            has_docs = (build.doc_dir(res.target) / package.library_name()).is_dir()

        if has_docs:
            logger.debug("adding documentation for the default target to the database")
            self._publish(build, name, version, res.target, is_default_target=True)
            successful_targets = self._build_other_targets(name, version, build, limits, beat)
            beat()
            self._publisher.upload(name, version)

        has_examples = (build.source_dir / "examples").is_dir()
        release_id = add_package_into_database(
            self._conn,
            package,
            build.source_dir,
            res,
            files,
            successful_targets,
            has_docs,
            has_examples,
        )
        add_build_into_database(self._conn, release_id, res)
        return res.successful

    def _build_other_targets(
        self,
        name: str,
        version: str,
        build: BuildDirectory,
        limits: BuildLimits,
        beat: Heartbeat,
    ) -> list[str]:
        successful = []
        for target in self._targets:
            logger.debug("building package %s %s for %s", name, version, target)
            beat()
            target_res = self._executor.execute(target, build, limits)
            if not target_res.successful:
                continue
            # cargo can exit cleanly without producing docs for a target
            if not build.doc_dir(target).is_dir():
                logger.debug("no documentation generated for %s", target)
                continue
            logger.debug("adding documentation for target %s to the database", target)
            self._publish(build, name, version, target, is_default_target=False)
            successful.append(target)
        return successful

    def _publish(
        self,
        build: BuildDirectory,
        name: str,
        version: str,
        target: str,
        is_default_target: bool,
    ) -> None:
        self._publisher.publish(
            build.target_dir,
            name,
            version,
            target,
            is_default_target,
            self._toolchains.parsed_version,
        )

    def build_world(self, packages: Iterable[tuple[str, str]]) -> int:
        """Build every (name, version) pair, logging individual failures.

        Returns:
            The number of packages whose default-target build succeeded.
        """
        processed = 0
        succeeded = 0
        for name, version in packages:
            try:
                status = self.build_package(name, version)
            except Exception as e:
                logger.warning("failed to build package %s %s: %s", name, version, e)
            else:
                processed += 1
                if status:
                    succeeded += 1
                if status and processed % CACHE_CHECKPOINT_EVERY == 0:
                    self.save_cache()
            self._cache.add_to_cache(name, version)

        self.save_cache()
        logger.info("build world finished: %d built, %d processed", succeeded, processed)
        return succeeded

    def save_cache(self) -> None:
        """Persist the completion cache; a failed write is only logged."""
        try:
            self._cache.save_cache()
        except OSError as e:
            logger.warning("failed to save the completion cache: %s", e)
