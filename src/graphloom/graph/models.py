"""Typed views over stored node and edge rows.

Node documents are free-form JSON. At the migration boundary each row is
classified by its ``node_type`` into one of a closed set of variants that
carry only the fields their identifier rules need.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar


class NodeKind(StrEnum):
    """Closed set of node variants the migration understands."""

    METADATA = "metadata"
    DIRECTIVE = "directive"
    LEXICON_TERM = "lexicon-term"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class MetadataNode:
    """Dataset root (e.g. ``cda-61``); its id already encodes the version."""

    kind: ClassVar[NodeKind] = NodeKind.METADATA

    id: str | None
    node_type: str


@dataclass(frozen=True)
class DirectiveNode:
    """A directive scoped to a dataset version.

    Attributes:
        fingerprint: Stable digest of the node's other fields, used to
            derive a placeholder identifier when ``id`` is missing.
    """

    kind: ClassVar[NodeKind] = NodeKind.DIRECTIVE

    id: str | None
    node_type: str
    category: str | None = None
    version: str | None = None
    directive_id: str | None = None
    fingerprint: str = ""


@dataclass(frozen=True)
class LexiconTermNode:
    """A lexicon term, optionally pinned to a lexicon version."""

    kind: ClassVar[NodeKind] = NodeKind.LEXICON_TERM

    id: str | None
    node_type: str
    lexicon_version: str | None = None
    version: str | None = None


@dataclass(frozen=True)
class UnknownNode:
    """A node whose ``node_type`` has no identifier rule."""

    kind: ClassVar[NodeKind] = NodeKind.UNKNOWN

    id: str | None
    node_type: str


GraphNode = MetadataNode | DirectiveNode | LexiconTermNode | UnknownNode


@dataclass(frozen=True)
class Edge:
    """Directed relation between two node identifiers."""

    source: str | None
    target: str | None
    type: str | None = None
    rowid: int | None = None
    properties: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Edge:
        return cls(
            source=row.get("source"),
            target=row.get("target"),
            type=row.get("type"),
            rowid=row.get("rowid"),
            properties=row.get("properties") or {},
        )


def _as_version(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def fingerprint_body(body: dict[str, Any]) -> str:
    """Return a short stable digest of a node body, ignoring its id."""
    rest = {k: v for k, v in body.items() if k != "id"}
    encoded = json.dumps(rest, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha1(encoded, usedforsecurity=False).hexdigest()[:9]


def classify_node_type(node_type: str | None, type_aliases: dict[str, str]) -> NodeKind:
    """Map a stored ``node_type`` string to a :class:`NodeKind`."""
    kind = type_aliases.get(node_type or "")
    if kind is None:
        return NodeKind.UNKNOWN
    try:
        return NodeKind(kind)
    except ValueError:
        return NodeKind.UNKNOWN


def parse_node(row: dict[str, Any], type_aliases: dict[str, str]) -> GraphNode:
    """Build the typed variant for a node row from the store.

    Args:
        row: Row as returned by ``SqliteGraphStore.all_nodes()``.
        type_aliases: Stored ``node_type`` -> node kind table.
    """
    node_id = row.get("id")
    node_type = row.get("node_type") or ""
    body = row.get("body") or {}

    dataset_version = _as_version(row.get("cda_version")) or _as_version(row.get("version"))

    kind = classify_node_type(node_type, type_aliases)
    if kind is NodeKind.METADATA:
        return MetadataNode(id=node_id, node_type=node_type)
    if kind is NodeKind.DIRECTIVE:
        return DirectiveNode(
            id=node_id,
            node_type=node_type,
            category=row.get("category"),
            version=dataset_version,
            directive_id=row.get("directive_id"),
            fingerprint=fingerprint_body(body),
        )
    if kind is NodeKind.LEXICON_TERM:
        return LexiconTermNode(
            id=node_id,
            node_type=node_type,
            lexicon_version=_as_version(row.get("lexicon_version")),
            version=dataset_version,
        )
    return UnknownNode(id=node_id, node_type=node_type)
