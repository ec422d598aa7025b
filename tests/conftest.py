"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest

from graphloom.graph.sqlite_store import SqliteGraphStore

# Small directive graph: one dataset root, two directives, one lexicon term,
# and one edge pointing at a node that was never imported.
SAMPLE_GRAPH: dict[str, Any] = {
    "nodes": [
        {"id": "cda-61", "node_type": "metadata", "title": "Directive Set 61"},
        {
            "id": "cip-1",
            "node_type": "directive",
            "category": "cip",
            "cda_version": "61",
            "directive_id": "CIP-1",
            "title": "Start from the facts",
        },
        {
            "id": "cip-2",
            "node_type": "directive",
            "category": "cip",
            "cda_version": "61",
            "directive_id": "CIP-2",
            "title": "Name the mechanism",
        },
        {
            "id": "mentation",
            "node_type": "lexicon-term",
            "lexicon_version": "1.76",
            "title": "Mentation",
        },
    ],
    "edges": [
        {"source": "cda-61", "target": "cip-1", "properties": {"type": "contains"}},
        {"source": "cda-61", "target": "cip-2", "properties": {"type": "contains"}},
        {"source": "cip-1", "target": "mentation", "properties": {"type": "uses_term"}},
        {"source": "cip-2", "target": "ghost-node", "properties": {"type": "uses_term"}},
    ],
}


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def sample_graph() -> dict[str, Any]:
    """Return a fresh copy of the sample graph document."""
    return copy.deepcopy(SAMPLE_GRAPH)


@pytest.fixture
def sample_store(sample_graph: dict[str, Any]) -> SqliteGraphStore:
    """In-memory store loaded with the sample graph."""
    return SqliteGraphStore.from_dict(sample_graph)


@pytest.fixture
def sample_db(tmp_path: Path, sample_graph: dict[str, Any]) -> Path:
    """On-disk database holding the sample graph, closed."""
    db_path = tmp_path / "graph.db"
    SqliteGraphStore.from_dict(sample_graph, db_path=db_path).close()
    return db_path
