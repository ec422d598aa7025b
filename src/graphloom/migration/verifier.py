"""Post-migration integrity verification.

Two read-only checks, always both run:

- referential closure: no edge endpoint may point at a missing node
- format compliance: every node id must pass the naming grammar
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from graphloom.graph.errors import FormatComplianceError, ReferentialIntegrityError
from graphloom.observability.logging import get_logger

if TYPE_CHECKING:
    from graphloom.graph.sqlite_store import SqliteGraphStore
    from graphloom.migration.mapper import IdMapper

log = get_logger(__name__)

MAX_DANGLING_SAMPLES = 10


@dataclass
class VerificationReport:
    """Result of :meth:`IntegrityVerifier.check`.

    Attributes:
        node_count: Nodes inspected.
        edge_count: Edges inspected.
        dangling_count: Edges with an unresolved endpoint.
        dangling_samples: A few ``(source, target)`` pairs of those edges.
        format_failures: ``(id, node_type)`` for every non-conformant id.
    """

    node_count: int = 0
    edge_count: int = 0
    dangling_count: int = 0
    dangling_samples: list[tuple[str | None, str | None]] = field(default_factory=list)
    format_failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.dangling_count == 0 and not self.format_failures


class IntegrityVerifier:
    """Checks a migrated graph for dangling edges and malformed ids."""

    def __init__(self, store: SqliteGraphStore, mapper: IdMapper) -> None:
        self._store = store
        self._mapper = mapper

    def check(self) -> VerificationReport:
        """Run both checks and report, without raising."""
        report = VerificationReport(
            node_count=self._store.node_count(),
            edge_count=self._store.edge_count(),
        )

        dangling = self._store.find_dangling_edges()
        report.dangling_count = len(dangling)
        report.dangling_samples = [
            (edge["source"], edge["target"]) for edge in dangling[:MAX_DANGLING_SAMPLES]
        ]

        for node in self._store.all_nodes():
            if not self._mapper.validate_new_id(node["id"]):
                node_type = node["node_type"] or ""
                report.format_failures.append((node["id"], node_type))
                log.warning("invalid_id_format", node_id=node["id"], node_type=node_type)

        if report.ok:
            log.info("integrity_verified", nodes=report.node_count, edges=report.edge_count)
        else:
            log.error(
                "integrity_check_failed",
                dangling=report.dangling_count,
                invalid_ids=len(report.format_failures),
            )
        return report

    def verify(self) -> VerificationReport:
        """Run both checks, then raise on the first kind of violation.

        Raises:
            ReferentialIntegrityError: If any edge is dangling. Carries the
                grammar failures too.
            FormatComplianceError: If any node id fails the grammar.
        """
        report = self.check()
        if report.dangling_count:
            raise ReferentialIntegrityError(
                dangling_count=report.dangling_count,
                samples=report.dangling_samples,
                format_failures=report.format_failures,
            )
        if report.format_failures:
            raise FormatComplianceError(failures=report.format_failures)
        return report
