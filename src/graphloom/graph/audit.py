"""Migration run history queries.

Provides functions to query and summarize the ``migration_runs`` table of
a graph database for debugging and inspection.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@contextmanager
def _open_db(db_path: Path) -> Iterator[sqlite3.Connection]:
    """Open a read-only connection to the graph database.

    Raises:
        sqlite3.Error: If the database cannot be opened or is corrupted.
    """
    conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def query_runs(
    db_path: Path,
    *,
    status: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """Query recorded migration runs.

    Args:
        db_path: Path to the ``.db`` file.
        status: Filter by run status (e.g., "completed", "failed").
        limit: Maximum number of results.

    Returns:
        List of run dicts, most recent first. Empty if the database
        predates run recording.

    Raises:
        sqlite3.Error: If the database cannot be read.
    """
    with _open_db(db_path) as conn:
        has_table = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'migration_runs'"
        ).fetchone()
        if has_table is None:
            return []

        params: list[Any] = []
        where = ""
        if status is not None:
            where = " WHERE status = ?"
            params.append(status)
        params.append(limit)

        rows = conn.execute(
            "SELECT id, started_at, completed_at, status, nodes_renamed, "
            f"edges_rewritten, edges_removed, detail FROM migration_runs{where} "
            "ORDER BY id DESC LIMIT ?",
            params,
        ).fetchall()

        return [dict(row) for row in rows]


def run_summary(db_path: Path) -> dict[str, Any]:
    """Summarize migration runs by status.

    Args:
        db_path: Path to the ``.db`` file.

    Returns:
        Summary dict with total run count and per-status counts.

    Raises:
        sqlite3.Error: If the database cannot be read.
    """
    runs = query_runs(db_path, limit=-1)
    by_status: dict[str, int] = {}
    for run in runs:
        by_status[run["status"]] = by_status.get(run["status"], 0) + 1
    return {"total": len(runs), "by_status": by_status}
