"""Apply a transformation map to the stored graph.

All three steps run inside one transaction:

1. Delete dangling edges (an endpoint that is not a current node id).
   This must precede the rename, which can only repair references to
   nodes that exist.
2. Rewrite node identifiers for every changed pair.
3. Rewrite edge endpoints through the map.

Any database error rolls the whole unit back and surfaces as
TransactionError, so node identifiers and edge references never drift
apart.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from graphloom.graph.errors import IdentifierCollisionError, TransactionError
from graphloom.observability.logging import get_logger

if TYPE_CHECKING:
    from graphloom.graph.sqlite_store import SqliteGraphStore
    from graphloom.migration.map_builder import TransformationMap

log = get_logger(__name__)

STAGE_CLEANUP = "cleanup"
STAGE_RENAME_NODES = "rename_nodes"
STAGE_REWRITE_EDGES = "rewrite_edges"

# Prefix for interim ids while a renaming chain is staged. Must survive
# json_set/json_extract unchanged, so it stays printable.
_STAGING_PREFIX = "__loom_staging_"


@dataclass
class MutationResult:
    """Outcome of :meth:`GraphMutator.apply`.

    Attributes:
        removed_edges: Dangling edges deleted during cleanup.
        nodes_renamed: Node rows whose identifier changed.
        edges_rewritten: Edge rows whose endpoints changed.
        dry_run: True when every change was rolled back on purpose.
    """

    removed_edges: list[dict[str, Any]] = field(default_factory=list)
    nodes_renamed: int = 0
    edges_rewritten: int = 0
    dry_run: bool = False

    @property
    def edges_removed(self) -> int:
        return len(self.removed_edges)


class _DryRunRollback(Exception):
    """Unwinds the mutation transaction after a dry run."""


class GraphMutator:
    """Writes a transformation map into a :class:`SqliteGraphStore`."""

    def __init__(self, store: SqliteGraphStore) -> None:
        self._store = store

    def apply(self, tmap: TransformationMap, *, dry_run: bool = False) -> MutationResult:
        """Clean up, rename nodes and rewrite edges as one transaction.

        Args:
            tmap: Map built for the current node set.
            dry_run: Perform every write, then roll back. The result
                reports what a real run would change.

        Returns:
            Counts of removed edges, renamed nodes and rewritten edges.

        Raises:
            IdentifierCollisionError: If the map is not injective. Nothing
                is written.
            TransactionError: If any write fails. Everything is rolled back.
        """
        if tmap.collisions:
            raise IdentifierCollisionError(collisions=dict(tmap.collisions))

        result = MutationResult(dry_run=dry_run)
        try:
            with self._store.transaction("mutation"):
                result.removed_edges = self._cleanup_dangling_edges()
                result.nodes_renamed = self._rename_nodes(tmap)
                result.edges_rewritten = self._rewrite_edges(tmap)
                if dry_run:
                    raise _DryRunRollback
        except _DryRunRollback:
            log.info("dry_run_rolled_back")
        except TransactionError:
            log.error("mutation_rolled_back")
            raise

        log.info(
            "mutation_applied" if not dry_run else "mutation_rehearsed",
            edges_removed=result.edges_removed,
            nodes_renamed=result.nodes_renamed,
            edges_rewritten=result.edges_rewritten,
        )
        return result

    # -- Steps -----------------------------------------------------------------

    def _cleanup_dangling_edges(self) -> list[dict[str, Any]]:
        try:
            removed = self._store.delete_dangling_edges()
        except sqlite3.Error as e:
            raise TransactionError(stage=STAGE_CLEANUP, reason=str(e)) from e

        if removed:
            log.info("dangling_edges_removed", count=len(removed))
            for edge in removed:
                log.debug(
                    "dangling_edge_removed",
                    source=edge["source"],
                    target=edge["target"],
                    edge_type=edge["type"],
                )
        else:
            log.info("no_dangling_edges")
        return removed

    def _rename_nodes(self, tmap: TransformationMap) -> int:
        pairs = tmap.changed_pairs()
        if not pairs:
            log.info("no_node_renames_needed")
            return 0

        old_ids = {old for old, _ in pairs}
        chained = any(new in old_ids for _, new in pairs)

        try:
            if chained:
                # A new id equals another pair's old id; park every node on a
                # unique interim id first so the UNIQUE id index never trips.
                prefix = self._staging_prefix()
                staged = [(old, f"{prefix}{i}") for i, (old, _) in enumerate(pairs)]
                self._store.rename_nodes(staged)
                renamed = self._store.rename_nodes(
                    [(interim, new) for (_, interim), (_, new) in zip(staged, pairs, strict=True)]
                )
            else:
                renamed = self._store.rename_nodes(pairs)
        except sqlite3.Error as e:
            raise TransactionError(
                stage=STAGE_RENAME_NODES,
                reason=str(e),
                identifier=self._find_blocked_rename(pairs),
            ) from e

        log.info("node_ids_updated", count=renamed, requested=len(pairs), chained=chained)
        return renamed

    def _staging_prefix(self) -> str:
        """Return a staging prefix no current node id starts with."""
        existing = self._store.all_node_ids()
        prefix = _STAGING_PREFIX
        while any(node_id.startswith(prefix) for node_id in existing):
            prefix = f"_{prefix}"
        return prefix

    def _find_blocked_rename(self, pairs: list[tuple[str, str]]) -> str | None:
        """Best-effort lookup of the old id whose rename hit an existing id."""
        try:
            for old, new in pairs:
                if self._store.has_node(old) and self._store.has_node(new):
                    return old
        except sqlite3.Error:
            return None
        return None

    def _rewrite_edges(self, tmap: TransformationMap) -> int:
        try:
            rows: list[tuple[int, str, str]] = []
            for edge in self._store.all_edges():
                source, target = edge["source"], edge["target"]
                new_source = tmap.get(source, source)
                new_target = tmap.get(target, target)
                if (new_source, new_target) != (source, target):
                    rows.append((edge["rowid"], new_source, new_target))

            if not rows:
                log.info("no_edge_updates_needed")
                return 0

            rewritten = self._store.rewrite_edges(rows)
        except sqlite3.Error as e:
            raise TransactionError(stage=STAGE_REWRITE_EDGES, reason=str(e)) from e

        log.info("edge_references_updated", count=rewritten)
        return rewritten
