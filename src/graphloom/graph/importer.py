"""JSON-to-SQLite graph import.

Loads a ``{"nodes": [...], "edges": [...]}`` document, as written by the
source-data importers or by ``SqliteGraphStore.to_dict()``, into a new
graph database.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from graphloom.graph.sqlite_store import SqliteGraphStore
from graphloom.observability.logging import get_logger

if TYPE_CHECKING:
    from pathlib import Path

log = get_logger(__name__)


def load_graph_json(json_path: Path, db_path: Path) -> SqliteGraphStore:
    """Import a graph JSON file into a SQLite database.

    Reads the JSON file, bulk-imports all nodes and edges in one
    transaction, and returns the open store.

    Args:
        json_path: Path to the source JSON file.
        db_path: Path for the new ``.db`` file. Must not exist yet.

    Returns:
        Open SqliteGraphStore populated with the imported data.

    Raises:
        FileNotFoundError: If json_path doesn't exist.
        FileExistsError: If db_path already exists.
        json.JSONDecodeError: If JSON is invalid.
        ValueError: If the document has no ``nodes`` list.
    """
    if db_path.exists():
        raise FileExistsError(f"Refusing to import into existing database: {db_path}")

    with json_path.open(encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict) or not isinstance(data.get("nodes"), list):
        raise ValueError(f"{json_path} is not a graph document (expected a 'nodes' list)")

    store = SqliteGraphStore.from_dict(data, db_path=db_path)
    log.info(
        "graph_imported",
        source=str(json_path),
        db=str(db_path),
        nodes=store.node_count(),
        edges=store.edge_count(),
    )
    return store
