"""Transformation map construction and completeness checking.

build_map() applies the identifier rules to every node and keeps only the
results that pass the naming grammar. check_completeness() cross-checks
the map against every identifier referenced by an edge.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from graphloom.graph.errors import InvalidIdentifierError
from graphloom.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from graphloom.graph.models import Edge, GraphNode
    from graphloom.migration.mapper import IdMapper, MappingWarning

log = get_logger(__name__)


@dataclass
class TransformationMap:
    """Old identifier -> new identifier for one migration run.

    Nodes whose new identifier failed validation have no entry; later
    stages treat them as unmapped.

    Attributes:
        mapping: Valid old -> new pairs, including unchanged ones.
        invalid: One error per node excluded from the map.
        warnings: Mapper diagnostics (placeholders, unknown types).
        collisions: New id -> the distinct old ids that would share it.
    """

    mapping: dict[str, str] = field(default_factory=dict)
    invalid: list[InvalidIdentifierError] = field(default_factory=list)
    warnings: list[MappingWarning] = field(default_factory=list)
    collisions: dict[str, list[str]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.mapping)

    def __contains__(self, old_id: object) -> bool:
        return old_id in self.mapping

    def __getitem__(self, old_id: str) -> str:
        return self.mapping[old_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self.mapping)

    def get(self, old_id: str | None, default: str | None = None) -> str | None:
        if old_id is None:
            return default
        return self.mapping.get(old_id, default)

    def changed_pairs(self) -> list[tuple[str, str]]:
        """Pairs whose identifier actually changes."""
        return [(old, new) for old, new in self.mapping.items() if old != new]

    @property
    def transformed(self) -> int:
        return sum(1 for old, new in self.mapping.items() if old != new)

    @property
    def unchanged(self) -> int:
        return sum(1 for old, new in self.mapping.items() if old == new)

    @property
    def invalid_count(self) -> int:
        return len(self.invalid)

    @property
    def is_injective(self) -> bool:
        return not self.collisions

    def stats(self) -> dict[str, int]:
        return {
            "transformed": self.transformed,
            "unchanged": self.unchanged,
            "invalid": self.invalid_count,
            "total": len(self.mapping),
        }


@dataclass
class CompletenessReport:
    """Edge references without a mapping entry.

    Attributes:
        total_references: Distinct identifiers referenced by edge endpoints.
        missing: Referenced identifiers with no map entry, sorted.
        null_endpoints: Edge endpoints that hold no identifier at all.
    """

    total_references: int
    missing: list[str] = field(default_factory=list)
    null_endpoints: int = 0

    @property
    def is_complete(self) -> bool:
        return not self.missing and not self.null_endpoints


def build_map(nodes: Iterable[GraphNode], mapper: IdMapper) -> TransformationMap:
    """Apply the identifier rules to every node.

    Nodes whose new identifier fails the grammar are left out of the map
    and recorded as :class:`InvalidIdentifierError`. Collisions are
    detected over the final identifier set, where excluded nodes keep
    their current id.

    Args:
        nodes: Typed node variants.
        mapper: Mapper holding the naming rules.

    Returns:
        The transformation map with its diagnostics.
    """
    mapper.reset_warnings()
    tmap = TransformationMap()
    final_ids: dict[str, list[str]] = defaultdict(list)

    for node in nodes:
        old_id = node.id if node.id is not None else ""
        new_id = mapper.transform(node)

        if not mapper.validate_new_id(new_id):
            error = InvalidIdentifierError(old_id=node.id, new_id=new_id, node_type=node.node_type)
            tmap.invalid.append(error)
            final_ids[old_id].append(old_id)
            log.warning("invalid_new_id", old_id=node.id, new_id=new_id, node_type=node.node_type)
            continue

        tmap.mapping[old_id] = new_id
        final_ids[new_id].append(old_id)

    tmap.warnings = list(mapper.warnings)
    tmap.collisions = {new: olds for new, olds in final_ids.items() if len(olds) > 1}
    if tmap.collisions:
        log.warning("id_collisions", count=len(tmap.collisions), new_ids=sorted(tmap.collisions))

    log.info("transformation_map_built", **tmap.stats())
    return tmap


def check_completeness(tmap: TransformationMap, edges: Iterable[Edge]) -> CompletenessReport:
    """Flag edge-referenced identifiers that have no map entry.

    Diagnostic only: the pipeline continues, but the result must reach
    the operator before mutation. Missing identifiers are either nodes
    that were never imported or invalid nodes left out of the map.
    """
    references: set[str] = set()
    null_endpoints = 0
    for edge in edges:
        for endpoint in (edge.source, edge.target):
            if endpoint is None:
                null_endpoints += 1
            else:
                references.add(endpoint)

    missing = sorted(ref for ref in references if ref not in tmap)
    report = CompletenessReport(
        total_references=len(references),
        missing=missing,
        null_endpoints=null_endpoints,
    )

    if report.is_complete:
        log.info("map_complete", references=report.total_references)
    else:
        log.warning(
            "map_incomplete",
            references=report.total_references,
            missing=len(missing),
            null_endpoints=null_endpoints,
            sample=missing[:10],
        )
    return report
