"""
Artifact store — blob storage for sources and generated documentation.

Files are stored in the ``files`` table keyed by their storage path
(``<prefix>/<relative path>``). Re-uploading a path replaces its
content.
"""

from __future__ import annotations

import logging
import mimetypes
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MIME = "application/octet-stream"

# Types the stdlib table misses or gets wrong for documentation trees
_MIME_OVERRIDES = {
    ".rs": "text/rust",
    ".toml": "text/toml",
    ".md": "text/markdown",
    ".woff": "application/font-woff",
    ".woff2": "font/woff2",
    ".js": "application/javascript",
}


def guess_mime(path: Path) -> str:
    override = _MIME_OVERRIDES.get(path.suffix.lower())
    if override:
        return override
    mime, _ = mimetypes.guess_type(path.name)
    return mime or DEFAULT_MIME


def storage_path(prefix: str, relative: str) -> str:
    return f"{prefix.rstrip('/')}/{relative}" if prefix else relative


class ArtifactStore:
    """Blob store backed by the builder database."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def put_tree(self, prefix: str, local_path: Path) -> list[str]:
        """Store every file under ``local_path`` beneath ``prefix``.

        An empty prefix stores files at the root of the store.

        Returns:
            The relative paths stored, sorted.

        Raises:
            FileNotFoundError: If ``local_path`` is not a directory.
        """
        if not local_path.is_dir():
            raise FileNotFoundError(f"cannot store '{local_path}': not a directory")

        now = datetime.now(UTC).isoformat()
        stored = []
        self._conn.execute("BEGIN")
        try:
            for file in sorted(p for p in local_path.rglob("*") if p.is_file()):
                relative = file.relative_to(local_path).as_posix()
                self._conn.execute(
                    "INSERT INTO files (path, mime, content, date_updated) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT (path) DO UPDATE SET mime = excluded.mime, "
                    "content = excluded.content, date_updated = excluded.date_updated",
                    (storage_path(prefix, relative), guess_mime(file), file.read_bytes(), now),
                )
                stored.append(relative)
            self._conn.execute("COMMIT")
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise

        logger.debug("Stored %d files under '%s'", len(stored), prefix)
        return stored

    def get(self, path: str) -> tuple[str, bytes] | None:
        """Return ``(mime, content)`` for a stored path."""
        row = self._conn.execute(
            "SELECT mime, content FROM files WHERE path = ?", (path,)
        ).fetchone()
        return (row["mime"], bytes(row["content"])) if row else None

    def exists(self, path: str) -> bool:
        return self._conn.execute(
            "SELECT 1 FROM files WHERE path = ?", (path,)
        ).fetchone() is not None

    def list_paths(self, prefix: str = "") -> list[str]:
        """Stored paths starting with ``prefix``."""
        rows = self._conn.execute(
            "SELECT path FROM files WHERE path LIKE ? ESCAPE '\\' ORDER BY path",
            (_like_prefix(prefix),),
        ).fetchall()
        return [row["path"] for row in rows]


def _like_prefix(prefix: str) -> str:
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped + "%"
