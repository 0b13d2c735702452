"""
Workspace — on-disk home of the toolchain, build directories and the
fetched-source cache.

Layout::

    <workspace>/
        rustup-home/        managed toolchain (mounted read-only in builds)
        cargo-home/         rustup install (bin/ proxies) and cargo registry cache
        cache/              downloaded .crate archives
        builds/<name>/
            source/         extracted package sources
            target/         cargo target dir (docs land in target/<triple>/doc)

A build directory and its cached archive belong to one job at a time
and are purged on every exit path.
"""

from __future__ import annotations

import logging
import shutil
import tarfile
import tempfile
import urllib.error
import urllib.request
from collections.abc import Callable
from pathlib import Path

from docbuilder import __version__
from docbuilder.adapters.shell.filesystem import purge

logger = logging.getLogger(__name__)

USER_AGENT = f"docbuilder/{__version__}"
CRATES_DOWNLOAD_URL = "https://static.crates.io/crates/{name}/{name}-{version}.crate"

Fetcher = Callable[[str, str, Path], None]


class FetchError(Exception):
    """Package sources could not be downloaded or unpacked."""


def download_file(url: str, dest: Path, timeout: float = 60) -> None:
    """Download ``url`` into ``dest``; a partial file is removed on error."""
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    logger.debug("Downloading %s", url)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp, dest.open("wb") as out:
            shutil.copyfileobj(resp, out)
    except (urllib.error.URLError, OSError) as e:
        dest.unlink(missing_ok=True)
        raise FetchError(f"failed to download {url}: {e}") from e


def download_crate(name: str, version: str, dest: Path) -> None:
    """Download a .crate archive from the registry into ``dest``."""
    download_file(CRATES_DOWNLOAD_URL.format(name=name, version=version), dest)


class BuildDirectory:
    """Scratch space for building one package."""

    def __init__(self, root: Path):
        self.root = root

    @property
    def name(self) -> str:
        return self.root.name

    @property
    def source_dir(self) -> Path:
        return self.root / "source"

    @property
    def target_dir(self) -> Path:
        return self.root / "target"

    def doc_dir(self, target: str) -> Path:
        """Where ``cargo doc --target <target>`` writes its output."""
        return self.target_dir / target / "doc"

    def prepare(self) -> None:
        self.source_dir.mkdir(parents=True, exist_ok=True)
        self.target_dir.mkdir(parents=True, exist_ok=True)

    def purge(self) -> None:
        purge(self.root)


class Workspace:
    """Owns every directory the builder writes outside the prefix."""

    def __init__(self, root: Path, fetcher: Fetcher | None = None):
        self.root = root
        self._fetcher = fetcher or download_crate
        for sub in (self.builds_dir, self.cache_dir, self.cargo_home, self.rustup_home):
            sub.mkdir(parents=True, exist_ok=True)

    @property
    def builds_dir(self) -> Path:
        return self.root / "builds"

    @property
    def cache_dir(self) -> Path:
        return self.root / "cache"

    @property
    def cargo_home(self) -> Path:
        return self.root / "cargo-home"

    @property
    def rustup_home(self) -> Path:
        return self.root / "rustup-home"

    def build_dir(self, name: str) -> BuildDirectory:
        return BuildDirectory(self.builds_dir / name)

    def purge_all_build_dirs(self) -> None:
        """Remove leftovers of interrupted builds."""
        for entry in self.builds_dir.iterdir():
            purge(entry)

    def archive_path(self, name: str, version: str) -> Path:
        return self.cache_dir / f"{name}-{version}.crate"

    def fetch(self, name: str, version: str, build_dir: BuildDirectory) -> None:
        """Download (if not cached) and unpack sources into the build dir.

        Raises:
            FetchError: On download or extraction failure.
        """
        archive = self.archive_path(name, version)
        if not archive.is_file():
            self._fetcher(name, version, archive)

        purge(build_dir.source_dir)
        build_dir.root.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(dir=build_dir.root, prefix=".unpack-") as tmp:
            try:
                with tarfile.open(archive, "r:gz") as tar:
                    tar.extractall(tmp, filter="data")
            except (tarfile.TarError, OSError) as e:
                raise FetchError(f"failed to unpack {archive.name}: {e}") from e

            unpacked = Path(tmp) / f"{name}-{version}"
            if not unpacked.is_dir():
                raise FetchError(f"{archive.name} does not contain {name}-{version}/")
            unpacked.rename(build_dir.source_dir)

        build_dir.target_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("Fetched %s %s into %s", name, version, build_dir.source_dir)

    def purge_from_cache(self, name: str, version: str) -> None:
        purge(self.archive_path(name, version))
