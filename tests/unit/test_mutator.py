"""Tests for GraphMutator - transactional cleanup, rename and edge rewrite."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

import pytest

from graphloom.graph.errors import IdentifierCollisionError, TransactionError
from graphloom.graph.sqlite_store import SqliteGraphStore
from graphloom.migration.map_builder import TransformationMap
from graphloom.migration.mutator import STAGE_RENAME_NODES, STAGE_REWRITE_EDGES, GraphMutator

if TYPE_CHECKING:
    from typing import Any


def _sample_map() -> TransformationMap:
    return TransformationMap(
        mapping={
            "cda-61": "cda-61",
            "cip-1": "cda-61-cip-1",
            "cip-2": "cda-61-cip-2",
            "mentation": "cl-1.76-mentation",
        }
    )


def _edge_pairs(store: SqliteGraphStore) -> set[tuple[Any, Any]]:
    return {(e["source"], e["target"]) for e in store.all_edges()}


class TestApply:
    def test_cleanup_rename_rewrite(self, sample_store: SqliteGraphStore) -> None:
        result = GraphMutator(sample_store).apply(_sample_map())

        assert result.edges_removed == 1
        assert result.removed_edges[0]["target"] == "ghost-node"
        assert result.nodes_renamed == 3
        assert result.edges_rewritten == 3
        assert not result.dry_run

        assert sample_store.all_node_ids() == [
            "cda-61",
            "cda-61-cip-1",
            "cda-61-cip-2",
            "cl-1.76-mentation",
        ]
        assert _edge_pairs(sample_store) == {
            ("cda-61", "cda-61-cip-1"),
            ("cda-61", "cda-61-cip-2"),
            ("cda-61-cip-1", "cl-1.76-mentation"),
        }
        assert sample_store.count_dangling_edges() == 0

    def test_node_bodies_preserved(self, sample_store: SqliteGraphStore) -> None:
        GraphMutator(sample_store).apply(_sample_map())
        node = sample_store.get_node("cda-61-cip-1")
        assert node is not None
        assert node["title"] == "Start from the facts"
        assert node["directive_id"] == "CIP-1"

    def test_second_apply_is_noop(self, sample_store: SqliteGraphStore) -> None:
        mutator = GraphMutator(sample_store)
        mutator.apply(_sample_map())
        snapshot = sample_store.to_dict()

        identity = TransformationMap(mapping={i: i for i in sample_store.all_node_ids()})
        result = mutator.apply(identity)

        assert (result.edges_removed, result.nodes_renamed, result.edges_rewritten) == (0, 0, 0)
        assert sample_store.to_dict() == snapshot

    def test_unmapped_endpoints_left_alone(self) -> None:
        store = SqliteGraphStore.from_dict(
            {
                "nodes": [{"id": "a"}, {"id": "b"}],
                "edges": [{"source": "a", "target": "b", "properties": {"type": "t"}}],
            }
        )
        result = GraphMutator(store).apply(TransformationMap(mapping={"a": "x-a"}))
        assert result.edges_rewritten == 1
        assert _edge_pairs(store) == {("x-a", "b")}

    def test_renaming_chain_is_staged(self) -> None:
        """A new id equal to another node's old id does not trip UNIQUE."""
        store = SqliteGraphStore.from_dict(
            {
                "nodes": [{"id": "n-a", "v": 1}, {"id": "n-b", "v": 2}, {"id": "x"}],
                "edges": [
                    {"source": "n-a", "target": "n-b", "properties": {"type": "next"}},
                    {"source": "n-a", "target": "x", "properties": {"type": "t"}},
                    {"source": "n-b", "target": "x", "properties": {"type": "t"}},
                ],
            }
        )
        tmap = TransformationMap(mapping={"n-a": "n-b", "n-b": "n-c", "x": "x"})

        result = GraphMutator(store).apply(tmap)

        assert result.nodes_renamed == 2
        assert result.edges_rewritten == 3
        assert store.get_node("n-b") == {"id": "n-b", "v": 1}
        assert store.get_node("n-c") == {"id": "n-c", "v": 2}
        assert store.all_node_ids() == ["n-b", "n-c", "x"]
        assert _edge_pairs(store) == {("n-b", "n-c"), ("n-b", "x"), ("n-c", "x")}
        assert store.edge_count() == 3

    def test_swap_keeps_every_edge(self) -> None:
        store = SqliteGraphStore.from_dict(
            {
                "nodes": [{"id": "a", "v": 1}, {"id": "b", "v": 2}, {"id": "hub"}],
                "edges": [
                    {"source": "a", "target": "hub", "properties": {"type": "t"}},
                    {"source": "b", "target": "hub", "properties": {"type": "t"}},
                    {"source": "hub", "target": "a", "properties": {"type": "t"}},
                    {"source": "a", "target": "b", "properties": {"type": "t"}},
                    {"source": "b", "target": "a", "properties": {"type": "t"}},
                ],
            }
        )
        tmap = TransformationMap(mapping={"a": "b", "b": "a", "hub": "hub"})

        result = GraphMutator(store).apply(tmap)

        assert result.nodes_renamed == 2
        assert result.edges_rewritten == 5
        assert store.get_node("b") == {"id": "b", "v": 1}
        assert store.get_node("a") == {"id": "a", "v": 2}
        assert _edge_pairs(store) == {
            ("b", "hub"),
            ("a", "hub"),
            ("hub", "b"),
            ("b", "a"),
            ("a", "b"),
        }
        assert store.edge_count() == 5
        assert store.count_dangling_edges() == 0

    def test_staging_avoids_existing_ids(self) -> None:
        store = SqliteGraphStore.from_dict(
            {
                "nodes": [{"id": "n-a"}, {"id": "n-b"}, {"id": "__loom_staging_0"}],
                "edges": [],
            }
        )
        tmap = TransformationMap(
            mapping={"n-a": "n-b", "n-b": "n-c", "__loom_staging_0": "__loom_staging_0"}
        )

        result = GraphMutator(store).apply(tmap)

        assert result.nodes_renamed == 2
        assert store.all_node_ids() == ["n-b", "n-c", "__loom_staging_0"]

    def test_self_loop_rewritten_once(self) -> None:
        store = SqliteGraphStore.from_dict(
            {
                "nodes": [{"id": "a"}],
                "edges": [{"source": "a", "target": "a", "properties": {"type": "self"}}],
            }
        )
        result = GraphMutator(store).apply(TransformationMap(mapping={"a": "x-a"}))
        assert result.edges_rewritten == 1
        assert _edge_pairs(store) == {("x-a", "x-a")}


class TestRefusalAndRollback:
    def test_collisions_refused_before_writing(self, sample_store: SqliteGraphStore) -> None:
        before = sample_store.to_dict()
        tmap = _sample_map()
        tmap.collisions = {"cda-61-cip-1": ["cip-1", "cip-x"]}

        with pytest.raises(IdentifierCollisionError) as exc_info:
            GraphMutator(sample_store).apply(tmap)

        assert "cip-x" in exc_info.value.to_report()
        # Not even the dangling edge is removed
        assert sample_store.to_dict() == before

    def test_edge_failure_rolls_back_everything(
        self, sample_store: SqliteGraphStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        before = sample_store.to_dict()

        def fail(rows: object) -> int:
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(sample_store, "rewrite_edges", fail)

        with pytest.raises(TransactionError) as exc_info:
            GraphMutator(sample_store).apply(_sample_map())

        error = exc_info.value
        assert error.stage == STAGE_REWRITE_EDGES
        assert "disk I/O error" in str(error)
        assert isinstance(error.__cause__, sqlite3.OperationalError)
        assert sample_store.to_dict() == before
        assert not sample_store.in_transaction

    def test_rename_onto_unmapped_node_names_identifier(self) -> None:
        """A rename onto an id the map does not move fails with that old id."""
        store = SqliteGraphStore.from_dict({"nodes": [{"id": "a"}, {"id": "b"}], "edges": []})
        tmap = TransformationMap(mapping={"a": "b"})

        with pytest.raises(TransactionError) as exc_info:
            GraphMutator(store).apply(tmap)

        assert exc_info.value.stage == STAGE_RENAME_NODES
        assert exc_info.value.identifier == "a"
        assert store.all_node_ids() == ["a", "b"]


class TestDryRun:
    def test_dry_run_reports_and_rolls_back(self, sample_store: SqliteGraphStore) -> None:
        before = sample_store.to_dict()

        result = GraphMutator(sample_store).apply(_sample_map(), dry_run=True)

        assert result.dry_run
        assert result.edges_removed == 1
        assert result.nodes_renamed == 3
        assert result.edges_rewritten == 3
        assert sample_store.to_dict() == before
        assert not sample_store.in_transaction
