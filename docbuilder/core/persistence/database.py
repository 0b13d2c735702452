"""
Database — sqlite schema and the record functions the builder issues.

Tables:
    queue              build jobs (see build_queue.py)
    config             key/value settings, values JSON-encoded
    crates             one row per package name
    releases           one row per (package, version)
    builds             one row per recorded build of a release
    files              artifact store blobs (see storage.py)
    sandbox_overrides  per-package limit overrides (see limits.py)
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from docbuilder.core.models.build import BuildResult
from docbuilder.core.models.cargo import CargoPackage

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS queue (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT NOT NULL,
    version     TEXT NOT NULL,
    priority    INTEGER NOT NULL DEFAULT 0,
    attempt     INTEGER NOT NULL DEFAULT 0,
    claimed_by  TEXT,
    claimed_at  TEXT,
    date_added  TEXT NOT NULL,
    UNIQUE (name, version)
);

CREATE TABLE IF NOT EXISTS config (
    name   TEXT PRIMARY KEY,
    value  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS crates (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL UNIQUE,
    latest_version  TEXT
);

CREATE TABLE IF NOT EXISTS releases (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    crate_id          INTEGER NOT NULL REFERENCES crates (id),
    version           TEXT NOT NULL,
    release_time      TEXT NOT NULL,
    description       TEXT,
    license           TEXT,
    repository_url    TEXT,
    homepage_url      TEXT,
    documentation_url TEXT,
    authors           TEXT NOT NULL DEFAULT '[]',
    keywords          TEXT NOT NULL DEFAULT '[]',
    dependencies      TEXT NOT NULL DEFAULT '[]',
    features          TEXT NOT NULL DEFAULT '{}',
    target_name       TEXT,
    is_library        INTEGER NOT NULL DEFAULT 1,
    files             TEXT,
    doc_targets       TEXT NOT NULL DEFAULT '[]',
    default_target    TEXT,
    rustdoc_status    INTEGER NOT NULL DEFAULT 0,
    build_status      INTEGER NOT NULL DEFAULT 0,
    have_examples     INTEGER NOT NULL DEFAULT 0,
    UNIQUE (crate_id, version)
);

CREATE TABLE IF NOT EXISTS builds (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    rid                INTEGER NOT NULL REFERENCES releases (id),
    rustc_version      TEXT NOT NULL,
    docbuilder_version TEXT NOT NULL,
    build_status       INTEGER NOT NULL,
    build_time         TEXT NOT NULL,
    output             TEXT
);

CREATE TABLE IF NOT EXISTS files (
    path          TEXT PRIMARY KEY,
    mime          TEXT NOT NULL,
    content       BLOB NOT NULL,
    date_updated  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sandbox_overrides (
    crate_name        TEXT PRIMARY KEY,
    max_memory_bytes  INTEGER,
    timeout_seconds   REAL,
    network_enabled   INTEGER,
    max_log_bytes     INTEGER
);
"""


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def connect(path: Path | str) -> sqlite3.Connection:
    """Open the builder database and make sure the schema exists.

    ``isolation_level=None`` puts the connection in autocommit mode;
    multi-statement operations open explicit transactions.
    """
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=30, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    init_schema(conn)
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA)


# ── Config ──────────────────────────────────────────────────────


def set_config(conn: sqlite3.Connection, name: str, value: Any) -> None:
    """Upsert a config value (stored as JSON)."""
    conn.execute(
        "INSERT INTO config (name, value) VALUES (?, ?) "
        "ON CONFLICT (name) DO UPDATE SET value = excluded.value",
        (name, json.dumps(value)),
    )


def get_config(conn: sqlite3.Connection, name: str) -> Any | None:
    row = conn.execute("SELECT value FROM config WHERE name = ?", (name,)).fetchone()
    return json.loads(row["value"]) if row else None


# ── Releases & builds ───────────────────────────────────────────


def add_package_into_database(
    conn: sqlite3.Connection,
    package: CargoPackage,
    source_dir: Path,
    result: BuildResult,
    files: list[str] | None,
    doc_targets: list[str],
    has_docs: bool,
    has_examples: bool,
) -> int:
    """Record the crate and release rows for a build. Returns the release id.

    Re-recording an existing release updates it in place; the release
    id is stable.
    """
    dependencies = [
        [dep.name, dep.req, dep.kind or "normal"] for dep in package.dependencies
    ]
    target_name = package.library_name()

    conn.execute("BEGIN")
    try:
        crate_id = _get_or_create_crate(conn, package.name)
        params = {
            "crate_id": crate_id,
            "version": package.version,
            "release_time": _now_iso(),
            "description": package.description,
            "license": package.license,
            "repository_url": package.repository,
            "homepage_url": package.homepage,
            "documentation_url": package.documentation,
            "authors": json.dumps(package.authors),
            "keywords": json.dumps(package.keywords),
            "dependencies": json.dumps(dependencies),
            "features": json.dumps(package.features),
            "target_name": target_name,
            "is_library": int(package.is_library()),
            "files": json.dumps(files) if files is not None else None,
            "doc_targets": json.dumps(doc_targets),
            "default_target": result.target,
            "rustdoc_status": int(has_docs),
            "build_status": int(result.successful),
            "have_examples": int(has_examples),
        }
        columns = ", ".join(params)
        placeholders = ", ".join(f":{key}" for key in params)
        updates = ", ".join(
            f"{key} = excluded.{key}" for key in params if key not in ("crate_id", "version")
        )
        conn.execute(
            f"INSERT INTO releases ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT (crate_id, version) DO UPDATE SET {updates}",
            params,
        )
        row = conn.execute(
            "SELECT id FROM releases WHERE crate_id = ? AND version = ?",
            (crate_id, package.version),
        ).fetchone()
        _update_latest_version(conn, crate_id)
        conn.execute("COMMIT")
    except BaseException:
        conn.execute("ROLLBACK")
        raise

    logger.debug("Recorded release %s %s (id=%d, source=%s)", package.name, package.version, row["id"], source_dir)
    return row["id"]


def add_build_into_database(conn: sqlite3.Connection, release_id: int, result: BuildResult) -> int:
    """Record one build of a release. Returns the build id."""
    cursor = conn.execute(
        "INSERT INTO builds (rid, rustc_version, docbuilder_version, build_status, build_time, output) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (
            release_id,
            result.toolchain_version,
            result.service_version,
            int(result.successful),
            _now_iso(),
            result.build_log,
        ),
    )
    return cursor.lastrowid


def recorded_releases(conn: sqlite3.Connection) -> list[tuple[str, str]]:
    """Every (name, version) pair that has a release row."""
    rows = conn.execute(
        "SELECT crates.name, releases.version FROM crates "
        "JOIN releases ON crates.id = releases.crate_id"
    ).fetchall()
    return [(row[0], row[1]) for row in rows]


def _get_or_create_crate(conn: sqlite3.Connection, name: str) -> int:
    row = conn.execute("SELECT id FROM crates WHERE name = ?", (name,)).fetchone()
    if row:
        return row["id"]
    return conn.execute("INSERT INTO crates (name) VALUES (?)", (name,)).lastrowid


def _update_latest_version(conn: sqlite3.Connection, crate_id: int) -> None:
    rows = conn.execute("SELECT version FROM releases WHERE crate_id = ?", (crate_id,)).fetchall()
    versions = [row["version"] for row in rows]
    if versions:
        conn.execute(
            "UPDATE crates SET latest_version = ? WHERE id = ?",
            (max(versions, key=_version_key), crate_id),
        )


def _version_key(version: str) -> tuple:
    """Rough semver ordering: numeric core, pre-releases before releases."""
    core, _, pre = version.partition("-")
    parts = []
    for piece in core.split("+")[0].split("."):
        parts.append(int(piece) if piece.isdigit() else 0)
    return (tuple(parts), pre == "", pre)
