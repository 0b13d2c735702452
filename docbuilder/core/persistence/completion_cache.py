"""
Completion cache — which (package, version) pairs were already processed.

The cache is advisory: it only feeds the skip decision for cold-start
runs such as ``build world``. Retry eligibility of queued jobs is
governed by the queue's attempt counter alone.

The file cache lives at ``<prefix>/cache`` with one ``name-version``
entry per line. Writes are atomic (write to temp file, then rename).
"""

from __future__ import annotations

import logging
import sqlite3
import tempfile
from pathlib import Path

from docbuilder.core.persistence.database import recorded_releases

logger = logging.getLogger(__name__)


def cache_key(name: str, version: str) -> str:
    return f"{name}-{version}"


class CompletionCache:
    """File-backed set of processed packages plus a database view.

    Args:
        path: Location of the cache file.
        skip_if_log_exists: Skip pairs present in the file cache.
        skip_if_exists: Skip pairs that already have a release row.
    """

    def __init__(self, path: Path, skip_if_log_exists: bool = False, skip_if_exists: bool = False):
        self._path = path
        self._skip_if_log_exists = skip_if_log_exists
        self._skip_if_exists = skip_if_exists
        self._entries: set[str] = set()
        self._db_entries: set[str] = set()

    @property
    def path(self) -> Path:
        return self._path

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def load(self) -> None:
        """Read the cache file. A missing file means an empty cache."""
        if not self._path.is_file():
            logger.info("No cache file at %s, starting fresh", self._path)
            return
        with self._path.open("r", encoding="utf-8") as f:
            self._entries.update(line.strip() for line in f if line.strip())
        logger.debug("Loaded %d cache entries from %s", len(self._entries), self._path)

    def load_database(self, conn: sqlite3.Connection) -> None:
        """Load recorded releases (only consulted with skip_if_exists)."""
        self._db_entries = {cache_key(name, version) for name, version in recorded_releases(conn)}

    def add_to_cache(self, name: str, version: str) -> None:
        self._entries.add(cache_key(name, version))

    def should_build(self, name: str, version: str) -> bool:
        """Skip decision for one package version."""
        key = cache_key(name, version)
        local = self._skip_if_log_exists and key in self._entries
        db = self._skip_if_exists and key in self._db_entries
        return not (local or db)

    def save_cache(self) -> None:
        """Write the cache file (atomic write).

        Raises:
            OSError: If the file cannot be written.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        content = "".join(f"{key}\n" for key in sorted(self._entries))

        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".cache_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with open(fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.replace(self._path)
            logger.debug("Cache saved to %s (%d entries)", self._path, len(self._entries))
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
