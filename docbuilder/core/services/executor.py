"""
Sandboxed build executor — one ``cargo doc`` run for one target.

The executor turns (package sources, target, limits) into a sandboxed
cargo invocation and reports a BuildResult. Compiler errors and
timeouts are data (``successful=False``); only infrastructure failures
(metadata resolution, sandbox start-up) raise.

Target precedence:
    explicit argument  >  package default-target  >  DEFAULT_TARGET
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from docbuilder import __version__
from docbuilder.adapters.base import Mount, Sandbox, SandboxCommand
from docbuilder.core.models.build import BuildResult
from docbuilder.core.models.cargo import CargoMetadata
from docbuilder.core.models.limits import BuildLimits
from docbuilder.core.models.metadata import PackageMetadata
from docbuilder.core.observability.log_storage import LogStorage, capture
from docbuilder.core.observability.logging_config import SANDBOX_LOGGER
from docbuilder.core.services.cargo_metadata import load_cargo_metadata
from docbuilder.core.services.toolchain import ToolchainManager
from docbuilder.core.services.workspace import BuildDirectory, Workspace

logger = logging.getLogger(__name__)
output_logger = logging.getLogger(SANDBOX_LOGGER)

DEFAULT_TARGET = "x86_64-unknown-linux-gnu"
TARGETS = (
    "i686-apple-darwin",
    "i686-pc-windows-msvc",
    "i686-unknown-linux-gnu",
    "x86_64-apple-darwin",
    "x86_64-pc-windows-msvc",
    "x86_64-unknown-linux-gnu",
)

SANDBOX_ROOT = "/opt/docbuilder"
SANDBOX_WORKDIR = f"{SANDBOX_ROOT}/workdir"
SANDBOX_TARGET_DIR = f"{SANDBOX_ROOT}/target"
SANDBOX_CARGO_HOME = f"{SANDBOX_ROOT}/cargo-home"
SANDBOX_RUSTUP_HOME = f"{SANDBOX_ROOT}/rustup-home"

MetadataLoader = Callable[[Path], CargoMetadata]


class SandboxedBuildExecutor:
    """Runs documentation builds inside a sandbox.

    Args:
        toolchain_manager: Source of the toolchain name and version.
        sandbox: Where cargo runs.
        workspace: Provides the cargo/rustup homes mounted into the sandbox.
        docs_base_url: Base URL dependencies' docs are expected under.
        metadata_loader: Resolves the dependency graph of a source dir;
            defaults to running ``cargo metadata`` with the toolchain.
    """

    def __init__(
        self,
        toolchain_manager: ToolchainManager,
        sandbox: Sandbox,
        workspace: Workspace,
        docs_base_url: str = "https://docs.rs",
        metadata_loader: MetadataLoader | None = None,
    ):
        self._toolchains = toolchain_manager
        self._sandbox = sandbox
        self._workspace = workspace
        self._docs_base_url = docs_base_url.rstrip("/")
        self._metadata_loader = metadata_loader or (
            lambda source_dir: load_cargo_metadata(toolchain_manager.toolchain, source_dir)
        )

    def execute(self, target: str | None, build: BuildDirectory, limits: BuildLimits) -> BuildResult:
        """Build docs for ``target`` (None = the package's default)."""
        metadata = PackageMetadata.from_source_dir(build.source_dir)
        cargo_metadata = self._metadata_loader(build.source_dir)

        resolved_target = target or metadata.default_target or DEFAULT_TARGET

        rustdoc_flags = self.rustdoc_flags(metadata, cargo_metadata)
        cargo_args = self.cargo_args(resolved_target, metadata)
        rustc_flags = " ".join(metadata.rustc_args or [])

        command = SandboxCommand(
            argv=[f"{SANDBOX_CARGO_HOME}/bin/cargo", f"+{self._toolchains.toolchain.name}", *cargo_args],
            workdir=SANDBOX_WORKDIR,
            env={
                "RUSTFLAGS": rustc_flags,
                "RUSTDOCFLAGS": " ".join(rustdoc_flags),
                "CARGO_TARGET_DIR": SANDBOX_TARGET_DIR,
                "CARGO_HOME": SANDBOX_CARGO_HOME,
                "RUSTUP_HOME": SANDBOX_RUSTUP_HOME,
            },
            mounts=[
                Mount(host_path=build.source_dir, sandbox_path=SANDBOX_WORKDIR, read_only=True),
                Mount(host_path=build.target_dir, sandbox_path=SANDBOX_TARGET_DIR),
                Mount(host_path=self._workspace.cargo_home, sandbox_path=SANDBOX_CARGO_HOME, read_only=True),
                Mount(host_path=self._workspace.rustup_home, sandbox_path=SANDBOX_RUSTUP_HOME, read_only=True),
            ],
            memory_bytes=limits.memory_bytes,
            network_enabled=limits.network_enabled,
            timeout=limits.timeout,
            name=build.name,
        )

        storage = LogStorage(logging.INFO, max_size=limits.max_log_bytes)
        with capture(storage):
            output_logger.info("running `cargo %s`", " ".join(cargo_args))
            output = self._sandbox.run(command)

        if output.success:
            logger.info("build of %s for %s succeeded", build.name, resolved_target)
        else:
            logger.info(
                "build of %s for %s failed (%s)",
                build.name,
                resolved_target,
                "timed out" if output.timed_out else f"exit {output.returncode}",
            )

        return BuildResult(
            toolchain_version=self._toolchains.version or "",
            service_version=f"docbuilder {__version__}",
            build_log=str(storage),
            successful=output.success,
            target=resolved_target,
            cargo_metadata=cargo_metadata,
        )

    def rustdoc_flags(self, metadata: PackageMetadata, cargo_metadata: CargoMetadata) -> list[str]:
        """Flags passed to rustdoc through RUSTDOCFLAGS."""
        flags = [
            "-Z",
            "unstable-options",
            "--resource-suffix",
            f"-{self._toolchains.parsed_version}",
            "--static-root-path",
            "/",
            "--disable-per-crate-search",
        ]
        for dep in cargo_metadata.root_dependencies():
            flags.append("--extern-html-root-url")
            flags.append(f"{dep.module_name}={self._docs_base_url}/{dep.name}/{dep.version}")
        if metadata.rustdoc_args:
            flags.extend(metadata.rustdoc_args)
        return flags

    @staticmethod
    def cargo_args(target: str, metadata: PackageMetadata) -> list[str]:
        """Arguments to ``cargo`` for one documentation build."""
        args = ["doc", "--lib", "--no-deps", "--target", target]
        # --all-features already enables every listed feature
        if metadata.features and not metadata.all_features:
            args += ["--features", " ".join(metadata.features)]
        if metadata.all_features:
            args.append("--all-features")
        if metadata.no_default_features:
            args.append("--no-default-features")
        return args
