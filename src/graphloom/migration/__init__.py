"""Identifier migration: analyze, map, mutate, verify.

See :mod:`graphloom.migration.pipeline` for the stage order.
"""

from graphloom.migration.analyzer import IdPatternReport, TypePattern, analyze_ids
from graphloom.migration.backup import BackupResult, backup_database
from graphloom.migration.map_builder import (
    CompletenessReport,
    TransformationMap,
    build_map,
    check_completeness,
)
from graphloom.migration.mapper import IdMapper, MappingWarning, transform_node
from graphloom.migration.mutator import GraphMutator, MutationResult
from graphloom.migration.pipeline import (
    MigrationPlan,
    MigrationResult,
    plan_migration,
    run_migration,
)
from graphloom.migration.report import (
    MappingRow,
    MappingSummary,
    build_mapping_rows,
    render_markdown,
    summarize_rows,
    write_csv,
    write_reports,
)
from graphloom.migration.verifier import IntegrityVerifier, VerificationReport

__all__ = [
    "BackupResult",
    "CompletenessReport",
    "GraphMutator",
    "IdMapper",
    "IdPatternReport",
    "IntegrityVerifier",
    "MappingRow",
    "MappingSummary",
    "MappingWarning",
    "MigrationPlan",
    "MigrationResult",
    "MutationResult",
    "TransformationMap",
    "TypePattern",
    "VerificationReport",
    "analyze_ids",
    "backup_database",
    "build_map",
    "build_mapping_rows",
    "check_completeness",
    "plan_migration",
    "render_markdown",
    "run_migration",
    "summarize_rows",
    "transform_node",
    "write_csv",
    "write_reports",
]
