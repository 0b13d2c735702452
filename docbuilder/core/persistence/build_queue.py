"""
Build queue — persistent, priority-ordered, retry-bounded job list.

Rows live in the ``queue`` table so they survive restarts and can be
shared by several worker processes.

Selection order:
    priority ASC, attempt ASC, id ASC   among rows with attempt < 5

Lifecycle:
    enqueue → select_next (claims the row) → record_success (row deleted)
                                           → record_failure (attempt += 1,
                                             claim released)

Rows that reach MAX_ATTEMPTS are never selected again but are kept for
inspection. A worker renews its claim with touch_claim() while it
builds; a claim not renewed for ``claim_ttl`` seconds expires so a
crashed worker does not strand its job.
"""

from __future__ import annotations

import logging
import os
import platform
import sqlite3
from datetime import UTC, datetime, timedelta

from docbuilder.core.models.queue import MAX_ATTEMPTS, QueueEntry

logger = logging.getLogger(__name__)

# Longer than one default build step; the worker renews it between steps
DEFAULT_CLAIM_TTL = 2 * 60 * 60.0

_COLUMNS = "id, name, version, priority, attempt"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class BuildQueue:
    """Build queue backed by the builder database.

    Args:
        conn: Autocommit sqlite connection (see database.connect).
        worker_id: Recorded on claimed rows. Defaults to host:pid.
        claim_ttl: Seconds after which another worker may take over a
            claimed row.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        worker_id: str | None = None,
        claim_ttl: float = DEFAULT_CLAIM_TTL,
    ):
        self._conn = conn
        self._worker_id = worker_id or f"{platform.node()}:{os.getpid()}"
        self._claim_ttl = claim_ttl

    @property
    def worker_id(self) -> str:
        return self._worker_id

    def enqueue(self, name: str, version: str, priority: int = 0) -> bool:
        """Add a job. Returns False if the job was already queued.

        Duplicates are ignored; any other database error propagates.
        """
        try:
            self._conn.execute(
                "INSERT INTO queue (name, version, priority, date_added) VALUES (?, ?, ?, ?)",
                (name, version, priority, _utcnow().isoformat()),
            )
        except sqlite3.IntegrityError:
            logger.debug("%s-%s is already queued", name, version)
            return False
        logger.debug("%s-%s added into build queue (priority=%d)", name, version, priority)
        return True

    def count_eligible(self) -> int:
        """Number of jobs that can still be selected."""
        row = self._conn.execute(
            "SELECT COUNT(*) FROM queue WHERE attempt < ?", (MAX_ATTEMPTS,)
        ).fetchone()
        return row[0]

    def select_next(self) -> QueueEntry | None:
        """Claim and return the next job, or None when nothing is eligible.

        The select and the claim happen in one write transaction, so two
        workers never walk away with the same row.
        """
        now = _utcnow()
        stale_before = (now - timedelta(seconds=self._claim_ttl)).isoformat()

        self._conn.execute("BEGIN IMMEDIATE")
        try:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM queue "
                "WHERE attempt < ? AND (claimed_at IS NULL OR claimed_at < ?) "
                "ORDER BY priority ASC, attempt ASC, id ASC "
                "LIMIT 1",
                (MAX_ATTEMPTS, stale_before),
            ).fetchone()
            if row is not None:
                self._conn.execute(
                    "UPDATE queue SET claimed_by = ?, claimed_at = ? WHERE id = ?",
                    (self._worker_id, now.isoformat(), row["id"]),
                )
            self._conn.execute("COMMIT")
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise

        if row is None:
            return None
        return QueueEntry(**dict(row))

    def touch_claim(self, entry_id: int) -> bool:
        """Renew this worker's claim on a job it is still building.

        Returns:
            False if the claim was lost: the row is gone, or another
            worker took it over after it expired.
        """
        cursor = self._conn.execute(
            "UPDATE queue SET claimed_at = ? WHERE id = ? AND claimed_by = ?",
            (_utcnow().isoformat(), entry_id, self._worker_id),
        )
        return cursor.rowcount == 1

    def record_success(self, entry_id: int) -> None:
        """Delete a finished job."""
        self._conn.execute("DELETE FROM queue WHERE id = ?", (entry_id,))

    def record_failure(self, entry_id: int) -> None:
        """Count a failed attempt and release the claim. Never deletes."""
        self._conn.execute(
            "UPDATE queue SET attempt = attempt + 1, claimed_by = NULL, claimed_at = NULL "
            "WHERE id = ?",
            (entry_id,),
        )

    def get(self, entry_id: int) -> QueueEntry | None:
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM queue WHERE id = ?", (entry_id,)
        ).fetchone()
        return QueueEntry(**dict(row)) if row else None

    def list_entries(self, include_quarantined: bool = True) -> list[QueueEntry]:
        """Full scan in selection order (quarantined rows last)."""
        where = "" if include_quarantined else f"WHERE attempt < {MAX_ATTEMPTS} "
        rows = self._conn.execute(
            f"SELECT {_COLUMNS} FROM queue {where}"
            f"ORDER BY attempt >= {MAX_ATTEMPTS}, priority ASC, attempt ASC, id ASC"
        ).fetchall()
        return [QueueEntry(**dict(row)) for row in rows]
