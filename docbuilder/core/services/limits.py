"""
Limits resolver — sandbox limits for one package.

Defaults apply to every package; a row in ``sandbox_overrides`` raises
(or lowers) individual limits for packages that need it.
"""

from __future__ import annotations

import logging
import sqlite3

from docbuilder.core.models.limits import BuildLimits

logger = logging.getLogger(__name__)


def limits_for(conn: sqlite3.Connection, name: str) -> BuildLimits:
    """Resolve the limits to build ``name`` with."""
    limits = BuildLimits()
    row = conn.execute(
        "SELECT max_memory_bytes, timeout_seconds, network_enabled, max_log_bytes "
        "FROM sandbox_overrides WHERE crate_name = ?",
        (name,),
    ).fetchone()
    if row is None:
        return limits

    overrides = {}
    if row["max_memory_bytes"] is not None:
        overrides["memory_bytes"] = row["max_memory_bytes"]
    if row["timeout_seconds"] is not None:
        overrides["timeout"] = row["timeout_seconds"]
    if row["network_enabled"] is not None:
        overrides["network_enabled"] = bool(row["network_enabled"])
    if row["max_log_bytes"] is not None:
        overrides["max_log_bytes"] = row["max_log_bytes"]

    logger.debug("Sandbox overrides for %s: %s", name, overrides)
    return limits.model_copy(update=overrides)


def set_override(
    conn: sqlite3.Connection,
    name: str,
    *,
    memory_bytes: int | None = None,
    timeout: float | None = None,
    network_enabled: bool | None = None,
    max_log_bytes: int | None = None,
) -> None:
    """Upsert the override row for ``name``."""
    conn.execute(
        "INSERT INTO sandbox_overrides "
        "(crate_name, max_memory_bytes, timeout_seconds, network_enabled, max_log_bytes) "
        "VALUES (?, ?, ?, ?, ?) "
        "ON CONFLICT (crate_name) DO UPDATE SET "
        "max_memory_bytes = excluded.max_memory_bytes, "
        "timeout_seconds = excluded.timeout_seconds, "
        "network_enabled = excluded.network_enabled, "
        "max_log_bytes = excluded.max_log_bytes",
        (
            name,
            memory_bytes,
            timeout,
            None if network_enabled is None else int(network_enabled),
            max_log_bytes,
        ),
    )
