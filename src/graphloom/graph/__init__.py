"""Graph package - JSON-in-SQLite property graph storage.

Nodes are JSON documents keyed by an embedded ``id``; edges reference node
identifiers through ``source``/``target`` with a JSON ``properties`` body.
"""

from graphloom.graph.errors import (
    BackupVerificationError,
    FormatComplianceError,
    IdentifierCollisionError,
    InvalidIdentifierError,
    MigrationError,
    ReferentialIntegrityError,
    StoreConnectionError,
    TransactionError,
)
from graphloom.graph.importer import load_graph_json
from graphloom.graph.models import (
    DirectiveNode,
    Edge,
    GraphNode,
    LexiconTermNode,
    MetadataNode,
    NodeKind,
    UnknownNode,
    parse_node,
)
from graphloom.graph.sqlite_store import SqliteGraphStore

__all__ = [
    "BackupVerificationError",
    "DirectiveNode",
    "Edge",
    "FormatComplianceError",
    "GraphNode",
    "IdentifierCollisionError",
    "InvalidIdentifierError",
    "LexiconTermNode",
    "MetadataNode",
    "MigrationError",
    "NodeKind",
    "ReferentialIntegrityError",
    "SqliteGraphStore",
    "StoreConnectionError",
    "TransactionError",
    "UnknownNode",
    "load_graph_json",
    "parse_node",
]
