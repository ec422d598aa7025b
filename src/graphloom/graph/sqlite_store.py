"""SQLite-backed property graph storage.

Nodes are JSON documents in ``nodes.body``; the node identifier is a
generated column extracted from ``$.id``. Edges reference node identifiers
through plain ``source``/``target`` text columns, with a JSON ``properties``
document carrying at least ``type``.

SqliteGraphStore opens the connection in autocommit mode and manages
transactions explicitly, so a whole migration step either commits or
rolls back as one unit. Bulk writes go through ``executemany``.
"""

from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, cast

from graphloom.graph.errors import StoreConnectionError

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS nodes (
    body TEXT,
    id   TEXT GENERATED ALWAYS AS (json_extract(body, '$.id')) VIRTUAL NOT NULL UNIQUE
);
CREATE INDEX IF NOT EXISTS id_idx ON nodes(id);

CREATE TABLE IF NOT EXISTS edges (
    source     TEXT,
    target     TEXT,
    properties TEXT,
    UNIQUE(source, target, properties) ON CONFLICT REPLACE
);
CREATE INDEX IF NOT EXISTS source_idx ON edges(source);
CREATE INDEX IF NOT EXISTS target_idx ON edges(target);

CREATE TABLE IF NOT EXISTS migration_runs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at      TEXT NOT NULL,
    completed_at    TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now')),
    status          TEXT NOT NULL,
    nodes_renamed   INTEGER DEFAULT 0,
    edges_rewritten INTEGER DEFAULT 0,
    edges_removed   INTEGER DEFAULT 0,
    detail          TEXT DEFAULT ''
);
"""

_NODE_COLUMNS = """\
    json_extract(body, '$.id') AS id,
    json_extract(body, '$.node_type') AS node_type,
    json_extract(body, '$.category') AS category,
    json_extract(body, '$.directive_id') AS directive_id,
    json_extract(body, '$.cda_version') AS cda_version,
    json_extract(body, '$.version') AS version,
    json_extract(body, '$.lexicon_version') AS lexicon_version,
    json_extract(body, '$.title') AS title,
    body"""

# NOT EXISTS (rather than NOT IN) so NULL endpoints count as dangling too.
_DANGLING_WHERE = """\
NOT EXISTS (SELECT 1 FROM nodes n WHERE n.id = edges.source)
   OR NOT EXISTS (SELECT 1 FROM nodes n WHERE n.id = edges.target)"""


class SqliteGraphStore:
    """SQLite-backed property graph store.

    Use :meth:`transaction` to group writes; nested transactions become
    savepoints. The store is assumed to be exclusively owned by the
    current process while a migration runs.
    """

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        *,
        must_exist: bool = False,
        read_only: bool = False,
        _conn: sqlite3.Connection | None = None,
    ) -> None:
        """Open or create a graph database.

        Args:
            db_path: Path to ``.db`` file, or ``":memory:"`` for in-memory.
            must_exist: Refuse to create a new file when *db_path* is missing.
            read_only: Open without write access and without touching the
                schema. The file must exist and contain the graph tables.
            _conn: Pre-existing connection (for testing). If provided,
                   *db_path* is ignored.

        Raises:
            StoreConnectionError: If the database cannot be opened or is not
                a graph database.
        """
        self._db_path: str = str(db_path) if _conn is None else ":memory:"
        self._read_only = read_only
        if (must_exist or read_only) and self._db_path != ":memory:":
            if not Path(self._db_path).is_file():
                raise StoreConnectionError(self._db_path, "file does not exist")
        try:
            if _conn is not None:
                self._conn = _conn
            elif read_only:
                uri = f"{Path(self._db_path).resolve().as_uri()}?mode=ro"
                self._conn = sqlite3.connect(uri, uri=True, isolation_level=None)
            else:
                self._conn = sqlite3.connect(
                    self._db_path,
                    isolation_level=None,  # autocommit; transactions are explicit
                )
            self._conn.row_factory = sqlite3.Row
            # Renames briefly orphan edges inside a transaction; integrity is
            # checked by the verifier, not by foreign keys.
            self._conn.execute("PRAGMA foreign_keys=OFF")
            if read_only:
                self._require_graph_tables()
            else:
                self._conn.execute("PRAGMA synchronous=NORMAL")
                self._conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise StoreConnectionError(self._db_path, str(e)) from e

        self._savepoint_depth = 0

    def _require_graph_tables(self) -> None:
        rows = self._conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name IN ('nodes', 'edges')"
        ).fetchall()
        if len(rows) != 2:
            self._conn.close()
            raise StoreConnectionError(self._db_path, "not a graph database (missing nodes/edges)")

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def read_only(self) -> bool:
        return self._read_only

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> SqliteGraphStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def backup_to(self, dest_path: Path) -> None:
        """Write a page-level snapshot of this graph to *dest_path*.

        Uses sqlite3 online backup; a failed copy leaves no file behind.

        Args:
            dest_path: Path for the backup file.
        """
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        dest = sqlite3.connect(str(dest_path))
        try:
            self._conn.backup(dest)
        except Exception:
            dest.close()
            # Remove partial file on failure
            if dest_path.exists():
                dest_path.unlink()
            raise
        else:
            dest.close()

    # -- Transactions ----------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._conn.in_transaction

    def begin(self) -> None:
        self._conn.execute("BEGIN IMMEDIATE")

    def commit(self) -> None:
        self._conn.execute("COMMIT")

    def rollback(self) -> None:
        self._conn.execute("ROLLBACK")

    _SAVEPOINT_RE = re.compile(r"^[A-Za-z0-9_]+$")

    @contextmanager
    def transaction(self, name: str = "txn") -> Iterator[SqliteGraphStore]:
        """Group writes into one all-or-nothing unit.

        The outermost call opens a real transaction; calls made while a
        transaction is open use a named savepoint instead. Any exception
        rolls the unit back and propagates.

        Args:
            name: Savepoint name for nested use (alphanumeric + underscores).

        Raises:
            ValueError: If *name* contains invalid characters.
        """
        if not self._SAVEPOINT_RE.match(name):
            msg = f"Invalid transaction name {name!r}: must be alphanumeric/underscores only"
            raise ValueError(msg)

        if not self._conn.in_transaction:
            self.begin()
            try:
                yield self
            except BaseException:
                self.rollback()
                raise
            self.commit()
            return

        self._savepoint_depth += 1
        savepoint = f"sp_{name}_{self._savepoint_depth}"
        self._conn.execute(f"SAVEPOINT {savepoint}")
        try:
            yield self
        except BaseException:
            self._conn.execute(f"ROLLBACK TO {savepoint}")
            self._conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            raise
        else:
            self._conn.execute(f"RELEASE SAVEPOINT {savepoint}")
        finally:
            self._savepoint_depth -= 1

    # -- Nodes -----------------------------------------------------------------

    def insert_node(self, body: dict[str, Any]) -> None:
        """Insert a node document. Raises sqlite3.IntegrityError on duplicate id."""
        self._conn.execute("INSERT INTO nodes (body) VALUES (?)", (json.dumps(body),))

    def get_node(self, node_id: str) -> dict[str, Any] | None:
        row = self._conn.execute("SELECT body FROM nodes WHERE id = ?", (node_id,)).fetchone()
        if row is None:
            return None
        return cast("dict[str, Any]", json.loads(row["body"]))

    def has_node(self, node_id: str) -> bool:
        row = self._conn.execute("SELECT 1 FROM nodes WHERE id = ?", (node_id,)).fetchone()
        return row is not None

    def iter_nodes(self) -> Iterator[dict[str, Any]]:
        """Yield every node with its commonly used fields extracted.

        Each row has ``id``, ``node_type``, ``category``, ``directive_id``,
        ``cda_version``, ``version``, ``lexicon_version``, ``title`` and the
        decoded ``body``.
        """
        cursor = self._conn.execute(f"SELECT\n{_NODE_COLUMNS}\nFROM nodes ORDER BY rowid")
        for row in cursor:
            node = dict(row)
            node["body"] = json.loads(row["body"]) if row["body"] else {}
            yield node

    def all_nodes(self) -> list[dict[str, Any]]:
        return list(self.iter_nodes())

    def all_node_ids(self) -> list[str]:
        rows = self._conn.execute("SELECT id FROM nodes ORDER BY rowid").fetchall()
        return [row["id"] for row in rows]

    def node_count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS cnt FROM nodes").fetchone()
        return row["cnt"]  # type: ignore[no-any-return]

    def rename_nodes(self, pairs: Sequence[tuple[str, str]]) -> int:
        """Rewrite the embedded ``$.id`` of nodes, matched by current id.

        Args:
            pairs: ``(old_id, new_id)`` pairs.

        Returns:
            Number of node rows updated. Pairs whose old id no longer
            exists update nothing.
        """
        if not pairs:
            return 0
        cursor = self._conn.executemany(
            "UPDATE nodes SET body = json_set(body, '$.id', ?) WHERE id = ?",
            [(new_id, old_id) for old_id, new_id in pairs],
        )
        return cursor.rowcount

    # -- Edges -----------------------------------------------------------------

    def insert_edge(
        self,
        source: str,
        target: str,
        properties: dict[str, Any] | None = None,
    ) -> None:
        self._conn.execute(
            "INSERT INTO edges (source, target, properties) VALUES (?, ?, ?)",
            (source, target, json.dumps(properties or {})),
        )

    def iter_edges(self) -> Iterator[dict[str, Any]]:
        """Yield every edge as ``rowid``, ``source``, ``target``, ``type``, ``properties``."""
        cursor = self._conn.execute(
            "SELECT rowid, source, target, properties, "
            "json_extract(properties, '$.type') AS edge_type "
            "FROM edges ORDER BY rowid"
        )
        for row in cursor:
            yield self._row_to_edge(row)

    def all_edges(self) -> list[dict[str, Any]]:
        return list(self.iter_edges())

    def edge_count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS cnt FROM edges").fetchone()
        return row["cnt"]  # type: ignore[no-any-return]

    def rewrite_edges(self, rows: Sequence[tuple[int, str, str]]) -> int:
        """Replace edge endpoints, matched by row id.

        Listed rows are first parked on a NULL source, which the UNIQUE
        constraint never matches, then given their final endpoints; the
        order of *rows* does not matter. Both passes run ``OR ABORT``
        instead of the table's REPLACE policy. Call inside :meth:`transaction`.

        Args:
            rows: ``(rowid, new_source, new_target)`` triples.

        Returns:
            Number of edge rows updated.

        Raises:
            sqlite3.IntegrityError: If a rewritten edge would duplicate
                another edge.
        """
        if not rows:
            return 0
        self._conn.executemany(
            "UPDATE OR ABORT edges SET source = NULL WHERE rowid = ?",
            [(rowid,) for rowid, _, _ in rows],
        )
        cursor = self._conn.executemany(
            "UPDATE OR ABORT edges SET source = ?, target = ? WHERE rowid = ?",
            [(source, target, rowid) for rowid, source, target in rows],
        )
        return cursor.rowcount

    def find_dangling_edges(self) -> list[dict[str, Any]]:
        """Return edges whose source or target is not a current node id."""
        rows = self._conn.execute(
            "SELECT rowid, source, target, properties, "
            "json_extract(properties, '$.type') AS edge_type "
            f"FROM edges WHERE {_DANGLING_WHERE} ORDER BY rowid"
        ).fetchall()
        return [self._row_to_edge(row) for row in rows]

    def count_dangling_edges(self) -> int:
        row = self._conn.execute(
            f"SELECT COUNT(*) AS cnt FROM edges WHERE {_DANGLING_WHERE}"
        ).fetchone()
        return row["cnt"]  # type: ignore[no-any-return]

    def delete_dangling_edges(self) -> list[dict[str, Any]]:
        """Delete edges with an unresolved endpoint and return what was removed."""
        dangling = self.find_dangling_edges()
        if dangling:
            self._conn.execute(f"DELETE FROM edges WHERE {_DANGLING_WHERE}")
        return dangling

    @staticmethod
    def _row_to_edge(row: sqlite3.Row) -> dict[str, Any]:
        properties = json.loads(row["properties"]) if row["properties"] else {}
        if not isinstance(properties, dict):
            properties = {"value": properties}
        return {
            "rowid": row["rowid"],
            "source": row["source"],
            "target": row["target"],
            "type": row["edge_type"],
            "properties": properties,
        }

    # -- Run history -----------------------------------------------------------

    def record_run(
        self,
        *,
        started_at: str,
        status: str,
        nodes_renamed: int = 0,
        edges_rewritten: int = 0,
        edges_removed: int = 0,
        detail: str = "",
    ) -> None:
        """Append a row to ``migration_runs``."""
        self._conn.execute(
            "INSERT INTO migration_runs "
            "(started_at, status, nodes_renamed, edges_rewritten, edges_removed, detail) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (started_at, status, nodes_renamed, edges_rewritten, edges_removed, detail),
        )

    # -- Serialization ---------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Export all nodes and edges in insertion order."""
        nodes = [
            json.loads(row["body"])
            for row in self._conn.execute("SELECT body FROM nodes ORDER BY rowid").fetchall()
        ]
        edges = [
            {
                "source": edge["source"],
                "target": edge["target"],
                "properties": edge["properties"],
            }
            for edge in self.all_edges()
        ]
        return {"nodes": nodes, "edges": edges}

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        db_path: str | Path = ":memory:",
    ) -> SqliteGraphStore:
        """Create a store from a nodes/edges document in one pass.

        Args:
            data: ``{"nodes": [body, ...], "edges": [{source, target, properties}, ...]}``.
            db_path: Where to create the database.

        Returns:
            The open store, holding every node and edge of *data*.
        """
        store = cls(db_path)

        with store.transaction():
            nodes = data.get("nodes", [])
            if nodes:
                store._conn.executemany(
                    "INSERT INTO nodes (body) VALUES (?)",
                    [(json.dumps(body),) for body in nodes],
                )

            edges = data.get("edges", [])
            if edges:
                store._conn.executemany(
                    "INSERT INTO edges (source, target, properties) VALUES (?, ?, ?)",
                    [
                        (
                            edge.get("source"),
                            edge.get("target"),
                            _encode_properties(edge.get("properties")),
                        )
                        for edge in edges
                    ],
                )

        return store


def _encode_properties(properties: Any) -> str:
    if properties is None:
        return "{}"
    if isinstance(properties, str):
        # Already serialized by the producer.
        return properties
    return json.dumps(properties)
