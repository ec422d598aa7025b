"""Identifier migration pipeline.

Stages run strictly in order, each consuming the previous one's output:

1. analyze      - summarize identifier patterns (read-only)
2. map          - compute and validate the old -> new map
3. completeness - cross-check edge references against the map
4. mutate       - dangling cleanup, node rename, edge rewrite (one transaction)
5. verify       - referential closure and grammar compliance
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from graphloom.config import MigrationConfig
from graphloom.graph.errors import MigrationError
from graphloom.graph.models import Edge, parse_node
from graphloom.migration.analyzer import IdPatternReport, analyze_ids
from graphloom.migration.map_builder import (
    CompletenessReport,
    TransformationMap,
    build_map,
    check_completeness,
)
from graphloom.migration.mapper import IdMapper
from graphloom.migration.mutator import GraphMutator, MutationResult
from graphloom.migration.verifier import IntegrityVerifier, VerificationReport
from graphloom.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from graphloom.graph.sqlite_store import SqliteGraphStore

log = get_logger(__name__)


@dataclass
class MigrationPlan:
    """Everything computed before the first write.

    Attributes:
        source_nodes: Node rows as they were before migration.
        analysis: Identifier pattern summary.
        tmap: Transformation map and its diagnostics.
        completeness: Edge references missing from the map.
    """

    source_nodes: list[dict[str, Any]]
    analysis: IdPatternReport
    tmap: TransformationMap
    completeness: CompletenessReport


@dataclass
class MigrationResult:
    """Outcome of :func:`run_migration`."""

    plan: MigrationPlan
    mutation: MutationResult = field(default_factory=MutationResult)
    verification: VerificationReport | None = None

    @property
    def dry_run(self) -> bool:
        return self.mutation.dry_run


def plan_migration(store: SqliteGraphStore, mapper: IdMapper) -> MigrationPlan:
    """Run the read-only stages: analyze, map, completeness."""
    node_rows = store.all_nodes()
    edge_rows = store.all_edges()

    analysis = analyze_ids(node_rows, edge_rows)

    aliases = mapper.config.type_aliases
    tmap = build_map((parse_node(row, aliases) for row in node_rows), mapper)
    completeness = check_completeness(tmap, (Edge.from_row(row) for row in edge_rows))

    return MigrationPlan(
        source_nodes=node_rows,
        analysis=analysis,
        tmap=tmap,
        completeness=completeness,
    )


def run_migration(
    store: SqliteGraphStore,
    config: MigrationConfig | None = None,
    *,
    dry_run: bool = False,
    on_plan: Callable[[MigrationPlan], None] | None = None,
) -> MigrationResult:
    """Migrate every node identifier in *store* and verify the result.

    Args:
        store: Writable graph store, exclusively owned for the run.
        config: Naming rules. Defaults plus environment overrides if None.
        dry_run: Rehearse the mutation and roll it back; verification is
            skipped and no run is recorded.
        on_plan: Called with the plan before any write, so diagnostics
            (missing references, invalid ids) reach the operator first.

    Returns:
        Plan, mutation counts and the verification report.

    Raises:
        IdentifierCollisionError: If the map is not injective.
        TransactionError: If a write fails (everything rolled back).
        ReferentialIntegrityError: If edges dangle after mutation.
        FormatComplianceError: If ids violate the grammar after mutation.
    """
    mapper = IdMapper(config or MigrationConfig.from_dict({}))
    started_at = datetime.now(UTC).isoformat()

    with structlog.contextvars.bound_contextvars(migration_started=started_at, dry_run=dry_run):
        log.info("migration_start", db=store.db_path)
        plan = plan_migration(store, mapper)
        if on_plan is not None:
            on_plan(plan)

        result = MigrationResult(plan=plan)
        try:
            result.mutation = GraphMutator(store).apply(plan.tmap, dry_run=dry_run)
            if not dry_run:
                result.verification = IntegrityVerifier(store, mapper).verify()
        except MigrationError as e:
            log.error("migration_failed", error=str(e), error_type=type(e).__name__)
            if not dry_run:
                _record(store, started_at, "failed", result.mutation, detail=str(e))
            raise

        if not dry_run:
            _record(store, started_at, "completed", result.mutation, detail=_detail(plan))
        log.info(
            "migration_complete",
            nodes_renamed=result.mutation.nodes_renamed,
            edges_rewritten=result.mutation.edges_rewritten,
            edges_removed=result.mutation.edges_removed,
        )
    return result


def _detail(plan: MigrationPlan) -> str:
    parts = [
        f"invalid={plan.tmap.invalid_count}",
        f"missing_refs={len(plan.completeness.missing)}",
        f"warnings={len(plan.tmap.warnings)}",
    ]
    return " ".join(parts)


def _record(
    store: SqliteGraphStore,
    started_at: str,
    status: str,
    mutation: MutationResult,
    detail: str = "",
) -> None:
    store.record_run(
        started_at=started_at,
        status=status,
        nodes_renamed=mutation.nodes_renamed,
        edges_rewritten=mutation.edges_rewritten,
        edges_removed=mutation.edges_removed,
        detail=detail,
    )
