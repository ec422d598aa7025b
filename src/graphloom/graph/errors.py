"""Migration error types with operator-facing reports.

These errors are raised when an identifier migration cannot keep the graph
consistent, similar to constraint violations in a relational database.

Each error type carries the identifiers involved and can format itself as
a short report for the operator (see :meth:`MigrationError.to_report`).
"""

from __future__ import annotations

from dataclasses import dataclass, field


class MigrationError(Exception):
    """Base class for identifier migration failures."""

    def to_report(self) -> str:
        """Format the error as a human-readable report."""
        return str(self)


class StoreConnectionError(MigrationError, ConnectionError):
    """Raised when the graph store cannot be opened.

    Fatal: the run aborts before any state is created.
    """

    def __init__(self, db_path: str, reason: str) -> None:
        self.db_path = db_path
        self.reason = reason
        super().__init__(f"Cannot open graph store at {db_path}: {reason}")


@dataclass
class InvalidIdentifierError(MigrationError):
    """Raised when a computed identifier fails the naming grammar.

    The node is excluded from the transformation map. Not fatal to the
    run, but every occurrence is counted and reported.

    Attributes:
        old_id: Identifier the node currently has.
        new_id: Candidate identifier that failed validation.
        node_type: Declared ``node_type`` of the node.
    """

    old_id: str | None
    new_id: str
    node_type: str = ""

    def __post_init__(self) -> None:
        super().__init__(
            f"Invalid identifier generated for {self.node_type or 'node'} "
            f"'{self.old_id}': '{self.new_id}'"
        )


@dataclass
class IdentifierCollisionError(MigrationError):
    """Raised when the transformation map is not injective.

    Attributes:
        collisions: New identifier -> the distinct old identifiers that
            would all end up with it.
    """

    collisions: dict[str, list[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(f"{len(self.collisions)} identifier collision(s) in transformation map")

    def to_report(self) -> str:
        lines = [str(self) + ":"]
        for new_id, old_ids in sorted(self.collisions.items())[:10]:
            lines.append(f"  - {', '.join(old_ids)} -> {new_id}")
        if len(self.collisions) > 10:
            lines.append(f"  - ... and {len(self.collisions) - 10} more")
        return "\n".join(lines)


@dataclass
class ReferentialIntegrityError(MigrationError):
    """Raised when edges reference missing nodes after mutation.

    Cleanup runs before the rewrite, so this signals a logic bug or a
    concurrent writer. The operator must investigate before re-running.

    Attributes:
        dangling_count: Number of edges with an unresolved endpoint.
        samples: Up to a handful of ``(source, target)`` pairs.
        format_failures: ``(id, node_type)`` pairs from the grammar check,
            which runs regardless so the report is complete.
    """

    dangling_count: int
    samples: list[tuple[str | None, str | None]] = field(default_factory=list)
    format_failures: list[tuple[str, str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__init__(f"Found {self.dangling_count} dangling edge(s)")

    def to_report(self) -> str:
        lines = [str(self) + ":"]
        for source, target in self.samples:
            lines.append(f"  - {source} -> {target}")
        if self.format_failures:
            lines.append(f"Also found {len(self.format_failures)} non-conformant identifier(s)")
        return "\n".join(lines)


@dataclass
class FormatComplianceError(MigrationError):
    """Raised when node identifiers violate the naming grammar after mutation.

    Attributes:
        failures: ``(id, node_type)`` for every non-conformant node.
    """

    failures: list[tuple[str, str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__init__(f"Found {len(self.failures)} node(s) with invalid ID format")

    def to_report(self) -> str:
        lines = [str(self) + ":"]
        for node_id, node_type in self.failures[:20]:
            lines.append(f"  - {node_id} ({node_type})")
        if len(self.failures) > 20:
            lines.append(f"  - ... and {len(self.failures) - 20} more")
        return "\n".join(lines)


@dataclass
class TransactionError(MigrationError):
    """Raised when a write fails inside the mutation transaction.

    The transaction is rolled back before this propagates; the underlying
    database error is chained as ``__cause__``.

    Attributes:
        stage: Mutation step that failed (cleanup, rename_nodes, rewrite_edges).
        reason: Message of the underlying error.
        identifier: Identifier being written when the failure occurred, if known.
    """

    stage: str
    reason: str
    identifier: str | None = None

    def __post_init__(self) -> None:
        msg = f"Mutation failed during {self.stage}"
        if self.identifier:
            msg += f" (identifier '{self.identifier}')"
        msg += f": {self.reason}; all changes rolled back"
        super().__init__(msg)


@dataclass
class BackupVerificationError(MigrationError):
    """Raised when a backup copy does not match its source.

    Attributes:
        source_counts: ``(nodes, edges)`` in the source store.
        backup_counts: ``(nodes, edges)`` in the copy.
    """

    source_counts: tuple[int, int]
    backup_counts: tuple[int, int]

    def __post_init__(self) -> None:
        super().__init__(
            f"Backup count mismatch: source has {self.source_counts[0]} nodes / "
            f"{self.source_counts[1]} edges, backup has {self.backup_counts[0]} nodes / "
            f"{self.backup_counts[1]} edges"
        )
