"""Tests for migration error messages and reports."""

from __future__ import annotations

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


class TestErrorHierarchy:
    def test_all_are_migration_errors(self) -> None:
        errors = [
            StoreConnectionError("g.db", "locked"),
            InvalidIdentifierError(old_id="a", new_id="b"),
            IdentifierCollisionError(collisions={}),
            ReferentialIntegrityError(dangling_count=0),
            FormatComplianceError(),
            TransactionError(stage="cleanup", reason="x"),
            BackupVerificationError(source_counts=(1, 1), backup_counts=(0, 1)),
        ]
        assert all(isinstance(e, MigrationError) for e in errors)

    def test_store_connection_error_is_connection_error(self) -> None:
        error = StoreConnectionError("g.db", "unable to open database file")
        assert isinstance(error, ConnectionError)
        assert str(error) == "Cannot open graph store at g.db: unable to open database file"


class TestMessages:
    def test_invalid_identifier(self) -> None:
        error = InvalidIdentifierError(old_id="CIP 1", new_id="cda-61-CIP 1", node_type="directive")
        assert str(error) == "Invalid identifier generated for directive 'CIP 1': 'cda-61-CIP 1'"

    def test_transaction_error_names_stage_and_identifier(self) -> None:
        error = TransactionError(stage="rename_nodes", reason="UNIQUE failed", identifier="cip-1")
        assert str(error) == (
            "Mutation failed during rename_nodes (identifier 'cip-1'): "
            "UNIQUE failed; all changes rolled back"
        )

    def test_backup_mismatch(self) -> None:
        error = BackupVerificationError(source_counts=(4, 4), backup_counts=(3, 4))
        assert "source has 4 nodes / 4 edges" in str(error)
        assert "backup has 3 nodes / 4 edges" in str(error)


class TestReports:
    def test_base_report_is_message(self) -> None:
        assert TransactionError(stage="cleanup", reason="x").to_report() == str(
            TransactionError(stage="cleanup", reason="x")
        )

    def test_collision_report_truncates(self) -> None:
        collisions = {f"cda-61-c-{i:02d}": [f"c-{i}", f"x-{i}"] for i in range(12)}
        report = IdentifierCollisionError(collisions=collisions).to_report()
        lines = report.splitlines()
        assert lines[0] == "12 identifier collision(s) in transformation map:"
        assert lines[1] == "  - c-0, x-0 -> cda-61-c-00"
        assert lines[-1] == "  - ... and 2 more"

    def test_format_report_lists_failures(self) -> None:
        error = FormatComplianceError(failures=[("CIP 1", "directive")])
        assert error.to_report().splitlines() == [
            "Found 1 node(s) with invalid ID format:",
            "  - CIP 1 (directive)",
        ]
