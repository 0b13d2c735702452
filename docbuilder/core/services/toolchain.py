"""
Toolchain manager — keeps the pinned rustup toolchain installed and current.

States:
    uninitialized  → nothing detected yet (version is None)
    installed      → toolchain and all targets present
    installed(V)   → version V detected after the last ensure_current()

ensure_current() runs before every build. It is a no-op apart from
rustup's own up-to-date checks unless the detected version changes, in
which case the version-change hook (the essential files refresher)
runs exactly once.

The manager is single-writer state: one instance per worker process,
passed explicitly to whatever needs the current version.
"""

from __future__ import annotations

import logging
import platform
import re
from collections.abc import Callable
from pathlib import Path

from docbuilder.adapters.base import CommandError
from docbuilder.adapters.shell.command import CommandRunner
from docbuilder.core.services.workspace import FetchError, Workspace, download_file

logger = logging.getLogger(__name__)

RUSTUP_INIT_URL = "https://static.rust-lang.org/rustup/dist/{triple}/rustup-init"
RUSTUP_TIMEOUT = 30 * 60
_MACHINE_ALIASES = {"amd64": "x86_64", "arm64": "aarch64"}

# rustc 1.10.0-nightly (57ef01513 2016-05-23)
_FULL_VERSION = re.compile(
    r"^(?:rustc )?(\d+\.\d+\.\d+)(\S*) \(([0-9a-f]+) (\d{4})-(\d{2})-(\d{2})\)$"
)
# 1.0 (abc)
_SHORT_VERSION = re.compile(r"^(?:rustc )?(\d+(?:\.\d+)*)(\S*) \(([0-9a-f]+)\)$")


class ToolchainError(Exception):
    """The toolchain could not be installed or its version not detected."""


def parse_rustc_version(line: str) -> str:
    """Turn a ``rustc --version`` line into a filename-safe token.

    ``rustc 1.10.0-nightly (57ef01513 2016-05-23)`` becomes
    ``20160523-1.10.0-nightly-57ef01513``; a dateless ``1.0 (abc)``
    becomes ``1.0-abc``.

    Raises:
        ToolchainError: If the line matches neither form.
    """
    line = line.strip()
    match = _FULL_VERSION.match(line)
    if match:
        version, suffix, commit, year, month, day = match.groups()
        return f"{year}{month}{day}-{version}{suffix}-{commit}"
    match = _SHORT_VERSION.match(line)
    if match:
        version, suffix, commit = match.groups()
        return f"{version}{suffix}-{commit}"
    raise ToolchainError(f"unable to parse rustc version: {line!r}")


def host_triple() -> str:
    """Linux target triple of this machine, used to pick rustup-init."""
    machine = platform.machine()
    return f"{_MACHINE_ALIASES.get(machine, machine)}-unknown-linux-gnu"


class Toolchain:
    """A rustup-managed toolchain living inside the workspace.

    rustup itself is installed into the workspace's cargo home, so the
    ``cargo``/``rustc``/``rustup`` proxies under ``cargo-home/bin`` are
    the ones the host and the sandbox (read-only mount) both run.

    Args:
        name: Toolchain name, e.g. ``nightly``.
        workspace: Provides the cargo and rustup homes.
        runner: Host command runner.
        downloader: Fetches rustup-init (``download_file`` by default).
    """

    def __init__(
        self,
        name: str,
        workspace: Workspace,
        runner: CommandRunner | None = None,
        downloader: Callable[[str, Path], None] | None = None,
    ):
        self.name = name
        self.workspace = workspace
        self._runner = runner or CommandRunner(base_env=self.env())
        self._download = downloader or download_file

    @property
    def bin_dir(self) -> Path:
        return self.workspace.cargo_home / "bin"

    def env(self) -> dict[str, str]:
        return {
            "RUSTUP_HOME": str(self.workspace.rustup_home),
            "CARGO_HOME": str(self.workspace.cargo_home),
        }

    def ensure_rustup(self) -> None:
        """Install rustup into the workspace unless it is already there.

        Raises:
            ToolchainError: If rustup-init cannot be downloaded or run.
        """
        if (self.bin_dir / "rustup").is_file():
            return

        url = RUSTUP_INIT_URL.format(triple=host_triple())
        installer = self.workspace.cache_dir / "rustup-init"
        logger.info("installing rustup into %s", self.workspace.cargo_home)
        try:
            self._download(url, installer)
            installer.chmod(0o755)
            self._runner.run_checked(
                [
                    str(installer),
                    "-y",
                    "--no-modify-path",
                    "--profile",
                    "minimal",
                    "--default-toolchain",
                    "none",
                ],
                env=self.env(),
                timeout=RUSTUP_TIMEOUT,
            )
        except (FetchError, CommandError, OSError) as e:
            raise ToolchainError(f"failed to install rustup: {e}") from e
        finally:
            installer.unlink(missing_ok=True)

    def install(self) -> None:
        self.ensure_rustup()
        self._rustup(["toolchain", "install", self.name, "--profile", "minimal"])

    def add_target(self, target: str) -> None:
        self._rustup(["target", "add", "--toolchain", self.name, target])

    def version_lines(self) -> list[str]:
        """Raw stdout of ``rustc --version``, every line kept."""
        output = self._runner.run_checked(
            [str(self.bin_dir / "rustc"), f"+{self.name}", "--version"], env=self.env()
        )
        return list(output.stdout_lines)

    def cargo(self, *args: str) -> list[str]:
        return [str(self.bin_dir / "cargo"), f"+{self.name}", *args]

    def run_cargo(self, args: list[str], cwd=None, timeout: float | None = None):
        return self._runner.run(self.cargo(*args), cwd=cwd, env=self.env(), timeout=timeout)

    def _rustup(self, args: list[str]) -> None:
        try:
            self._runner.run_checked(
                [str(self.bin_dir / "rustup"), *args], env=self.env(), timeout=RUSTUP_TIMEOUT
            )
        except CommandError as e:
            raise ToolchainError(f"rustup {' '.join(args)} failed: {e}") from e


class ToolchainManager:
    """Installs the toolchain and targets, tracks the detected version.

    Args:
        toolchain: The toolchain to manage.
        targets: Every target platform builds may request.
        on_version_change: Called with the new version line when the
            detected version differs from the previous one.
        stored_version: Returns the version the shared assets were last
            published for (persisted across restarts), or None.
    """

    def __init__(
        self,
        toolchain: Toolchain,
        targets: list[str] | tuple[str, ...],
        on_version_change: Callable[[str], None] | None = None,
        stored_version: Callable[[], str | None] | None = None,
    ):
        self.toolchain = toolchain
        self.targets = list(targets)
        self.on_version_change = on_version_change
        self.stored_version = stored_version
        self.version: str | None = None
        self.installed_targets: set[str] = set()

    @property
    def parsed_version(self) -> str:
        """Filename-safe form of the current version.

        Raises:
            ToolchainError: If no version has been detected yet.
        """
        if self.version is None:
            raise ToolchainError("toolchain version has not been detected yet")
        return parse_rustc_version(self.version)

    def detect_version(self) -> str:
        """Run ``rustc --version``; exactly one line of output is required.

        Raises:
            ToolchainError: On any other output.
            CommandError: If rustc cannot be run.
        """
        logger.info("detecting rustc's version...")
        lines = self.toolchain.version_lines()
        if len(lines) != 1:
            raise ToolchainError("invalid output returned by `rustc --version`")
        logger.info("found rustc %s", lines[0])
        return lines[0]

    def ensure_current(self) -> str:
        """Install/update the toolchain and targets; refresh assets on change.

        Returns:
            The detected version line.
        """
        # Detection failure here just means "not installed yet"
        try:
            previous = self.detect_version()
        except (ToolchainError, CommandError) as e:
            logger.debug("No previous toolchain version: %s", e)
            previous = None

        self.toolchain.install()
        for target in self.targets:
            self.toolchain.add_target(target)
            self.installed_targets.add(target)

        self.version = self.detect_version()

        published = self.stored_version() if self.stored_version else self.version
        if previous != self.version or published != self.version:
            logger.info("toolchain changed (%s → %s)", previous or published, self.version)
            if self.on_version_change is not None:
                self.on_version_change(self.version)

        return self.version
