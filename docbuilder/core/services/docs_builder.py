"""
Docs builder — wires every component from BuilderOptions.

The CLI (and anything else that runs the builder) asks for a
DocsBuilder instead of constructing the pieces itself:

    options ─▶ database ─▶ queue, store, cache, lock
            ─▶ workspace ─▶ toolchain manager ─▶ executor
            ─▶ publisher, refresher, pipeline, enqueuer, worker

The toolchain manager calls the essential files refresher whenever
the detected version changes.
"""

from __future__ import annotations

import logging
import sqlite3

from docbuilder.adapters.base import Sandbox
from docbuilder.adapters.containers.docker import DockerSandbox
from docbuilder.core.config.loader import BuilderOptions
from docbuilder.core.persistence.build_queue import BuildQueue
from docbuilder.core.persistence.completion_cache import CompletionCache
from docbuilder.core.persistence.database import connect, get_config
from docbuilder.core.persistence.lock_file import QueueLock
from docbuilder.core.persistence.storage import ArtifactStore
from docbuilder.core.services.cargo_metadata import prepare_sources
from docbuilder.core.services.doc_publisher import DocPublisher
from docbuilder.core.services.enqueuer import IndexEnqueuer
from docbuilder.core.services.essential_files import TOOLCHAIN_VERSION_KEY, EssentialFilesRefresher
from docbuilder.core.services.executor import TARGETS, SandboxedBuildExecutor
from docbuilder.core.services.pipeline import BuildPipeline
from docbuilder.core.services.registry_index import RegistryIndex
from docbuilder.core.services.toolchain import Toolchain, ToolchainManager
from docbuilder.core.services.worker import QueueWorker
from docbuilder.core.services.workspace import BuildDirectory, Fetcher, Workspace

logger = logging.getLogger(__name__)


class DocsBuilder:
    """All builder components for one process.

    Args:
        options: Validated builder options.
        conn: Database connection (default: open ``options.database_path``).
        sandbox: Where builds run (default: docker).
        toolchain: Managed toolchain (default: ``options.toolchain`` in the workspace).
        fetcher: Crate downloader (default: the public registry).
        prepare_dependencies: Fetch dependencies on the host before building.
    """

    def __init__(
        self,
        options: BuilderOptions,
        conn: sqlite3.Connection | None = None,
        sandbox: Sandbox | None = None,
        toolchain: Toolchain | None = None,
        fetcher: Fetcher | None = None,
        prepare_dependencies: bool = True,
    ):
        self.options = options
        self.conn = conn or connect(options.database_path)

        self.queue = BuildQueue(self.conn)
        self.store = ArtifactStore(self.conn)
        self.lock = QueueLock(options.lock_path)
        self.cache = CompletionCache(
            options.cache_path,
            skip_if_log_exists=options.skip_if_log_exists,
            skip_if_exists=options.skip_if_exists,
        )

        self.workspace = Workspace(options.workspace_path, fetcher=fetcher)
        self.toolchain = toolchain or Toolchain(options.toolchain, self.workspace)
        self.toolchain_manager = ToolchainManager(
            self.toolchain,
            TARGETS,
            stored_version=lambda: get_config(self.conn, TOOLCHAIN_VERSION_KEY),
        )
        self.sandbox = sandbox or DockerSandbox(options.sandbox_image)
        self.executor = SandboxedBuildExecutor(
            self.toolchain_manager, self.sandbox, self.workspace, options.docs_base_url
        )

        prepare = self._prepare if prepare_dependencies else None
        self.refresher = EssentialFilesRefresher(
            self.toolchain_manager, self.workspace, self.executor, self.store, self.conn, prepare=prepare
        )
        self.toolchain_manager.on_version_change = self.refresher.refresh

        self.publisher = DocPublisher(options.destination, self.store)
        self.pipeline = BuildPipeline(
            self.conn,
            self.toolchain_manager,
            self.executor,
            self.workspace,
            self.publisher,
            self.store,
            self.cache,
            prepare=prepare,
            keep_build_directory=options.keep_build_directory,
        )

        self.index = RegistryIndex(options.registry_index_path)
        self.enqueuer = IndexEnqueuer(self.queue, self.index)
        self.worker = QueueWorker(self.queue, self.pipeline, self.lock)

    def _prepare(self, build: BuildDirectory) -> None:
        prepare_sources(self.toolchain, build.source_dir)

    def load_cache(self) -> None:
        """Read the completion cache (and recorded releases when needed)."""
        self.cache.load()
        if self.options.skip_if_exists:
            self.cache.load_database(self.conn)

    def start(self) -> None:
        """Startup checks shared by every building command.

        Raises:
            ConfigError: If required paths are missing.
        """
        self.options.check_paths()
        self.workspace.purge_all_build_dirs()
        self.load_cache()

    def add_essential_files(self) -> list[str]:
        """Install the toolchain and republish the shared assets."""
        self.toolchain_manager.on_version_change = None
        try:
            version = self.toolchain_manager.ensure_current()
        finally:
            self.toolchain_manager.on_version_change = self.refresher.refresh
        return self.refresher.refresh(version)

    def close(self) -> None:
        self.conn.close()
