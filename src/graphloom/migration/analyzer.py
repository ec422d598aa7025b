"""Identifier pattern analysis.

Read-only survey of a graph before migration: which node types exist,
what their identifiers look like, which categories they carry and how
edges are distributed. Pure graph analysis, no writes.
"""

from __future__ import annotations

from collections import Counter
from typing import Any

from pydantic import BaseModel, Field

from graphloom.observability.logging import get_logger

log = get_logger(__name__)

MAX_EXAMPLES = 3


class TypePattern(BaseModel):
    """Identifier summary for one ``node_type``."""

    count: int = 0
    examples: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)


class IdPatternReport(BaseModel):
    """Machine-readable result of :func:`analyze_ids`."""

    node_count: int
    edge_count: int
    patterns: dict[str, TypePattern] = Field(default_factory=dict)
    edge_types: dict[str, int] = Field(default_factory=dict)
    referenced_ids: int = 0

    def render(self) -> str:
        """Human-readable multi-line summary."""
        lines = [f"Found {self.node_count} nodes and {self.edge_count} edges", "", "ID patterns:"]
        for node_type, pattern in self.patterns.items():
            lines.append(f"  {node_type}: {pattern.count} nodes")
            lines.append(f"    Examples: {', '.join(pattern.examples)}")
            if pattern.categories:
                lines.append(f"    Categories: {', '.join(pattern.categories)}")
        if self.edge_types:
            lines.extend(["", "Edge types:"])
            for edge_type, count in self.edge_types.items():
                lines.append(f"  {edge_type}: {count} edges")
        lines.append(f"Unique node ids referenced by edges: {self.referenced_ids}")
        return "\n".join(lines)


def analyze_ids(
    nodes: list[dict[str, Any]],
    edges: list[dict[str, Any]] | None = None,
) -> IdPatternReport:
    """Group nodes by declared type and summarize their identifiers.

    Args:
        nodes: Node rows (``id``, ``node_type``, ``category`` ...) as
            returned by ``SqliteGraphStore.all_nodes()``.
        edges: Edge rows (``source``, ``target``, ``type``). Optional.

    Returns:
        Report with per-type count, up to three example ids, the distinct
        categories, and the edge type distribution.
    """
    edges = edges or []
    patterns: dict[str, TypePattern] = {}
    categories: dict[str, set[str]] = {}

    for node in nodes:
        node_type = node.get("node_type") or "(none)"
        pattern = patterns.setdefault(node_type, TypePattern())
        pattern.count += 1
        if len(pattern.examples) < MAX_EXAMPLES and node.get("id") is not None:
            pattern.examples.append(str(node["id"]))
        if node.get("category"):
            categories.setdefault(node_type, set()).add(str(node["category"]))

    for node_type, found in categories.items():
        patterns[node_type].categories = sorted(found)

    edge_types = Counter(edge.get("type") or "(untyped)" for edge in edges)
    referenced = {edge.get("source") for edge in edges} | {edge.get("target") for edge in edges}
    referenced.discard(None)

    report = IdPatternReport(
        node_count=len(nodes),
        edge_count=len(edges),
        patterns=patterns,
        edge_types=dict(edge_types.most_common()),
        referenced_ids=len(referenced),
    )
    log.info(
        "ids_analyzed",
        nodes=report.node_count,
        edges=report.edge_count,
        node_types=len(report.patterns),
    )
    return report
