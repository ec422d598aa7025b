"""Pre-migration backup of a graph database.

The migration is expected to run on a copy, never on the only copy of a
live store. backup_database() makes that copy with SQLite's online backup
API and checks that both files hold the same number of nodes and edges.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from graphloom.graph.errors import BackupVerificationError
from graphloom.graph.sqlite_store import SqliteGraphStore
from graphloom.observability.logging import get_logger

log = get_logger(__name__)


@dataclass
class BackupResult:
    """Paths and verified counts of a backup."""

    source: Path
    destination: Path
    nodes: int
    edges: int


def _counts(db_path: Path) -> tuple[int, int]:
    with SqliteGraphStore(db_path, read_only=True) as store:
        return store.node_count(), store.edge_count()


def backup_database(source: Path, destination: Path, *, overwrite: bool = False) -> BackupResult:
    """Copy *source* to *destination* and verify the copy.

    Args:
        source: Graph database to copy.
        destination: Path for the copy. Parent directories are created.
        overwrite: Replace an existing destination file.

    Returns:
        Verified counts of the copy.

    Raises:
        StoreConnectionError: If the source cannot be opened.
        FileExistsError: If *destination* exists and *overwrite* is False.
        BackupVerificationError: If node or edge counts differ.
    """
    if source.resolve() == destination.resolve():
        raise ValueError(f"Backup destination is the source itself: {source}")
    if destination.exists():
        if not overwrite:
            raise FileExistsError(f"Backup destination already exists: {destination}")
        destination.unlink()
        log.info("backup_replaced", destination=str(destination))

    with SqliteGraphStore(source, read_only=True) as store:
        store.backup_to(destination)
    log.info("backup_copied", source=str(source), destination=str(destination))

    source_counts = _counts(source)
    backup_counts = _counts(destination)
    log.debug("backup_counts", source=source_counts, backup=backup_counts)
    if source_counts != backup_counts:
        raise BackupVerificationError(source_counts=source_counts, backup_counts=backup_counts)

    log.info("backup_verified", nodes=source_counts[0], edges=source_counts[1])
    return BackupResult(
        source=source,
        destination=destination,
        nodes=source_counts[0],
        edges=source_counts[1],
    )
