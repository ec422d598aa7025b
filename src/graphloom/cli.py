"""graphloom CLI - typer application entry point."""

from __future__ import annotations

import atexit
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from graphloom.config import MigrationConfigError, load_migration_config
from graphloom.graph import audit
from graphloom.graph.errors import (
    FormatComplianceError,
    MigrationError,
    ReferentialIntegrityError,
)
from graphloom.graph.importer import load_graph_json
from graphloom.graph.sqlite_store import SqliteGraphStore
from graphloom.migration.analyzer import analyze_ids
from graphloom.migration.backup import backup_database
from graphloom.migration.mapper import IdMapper
from graphloom.migration.pipeline import run_migration
from graphloom.migration.report import build_mapping_rows, write_reports
from graphloom.migration.verifier import IntegrityVerifier
from graphloom.observability import close_file_logging, configure_logging

if TYPE_CHECKING:
    from graphloom.config import MigrationConfig
    from graphloom.migration.analyzer import IdPatternReport
    from graphloom.migration.pipeline import MigrationPlan

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="loom",
    help="graphloom: identifier migration for JSON-in-SQLite property graphs.",
    no_args_is_help=True,
)
console = Console()

# Number of missing references / invalid ids listed before truncating
MAX_LISTED = 10

# Global state for logging flags (set by callback, used by commands)
_verbose: int = 0
_log_enabled: bool = False


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log: Annotated[
        bool,
        typer.Option(
            "--log",
            help="Enable file logging to logs/debug.jsonl next to the database.",
        ),
    ] = False,
) -> None:
    """graphloom: identifier migration for JSON-in-SQLite property graphs."""
    global _verbose, _log_enabled
    _verbose = verbose
    _log_enabled = log

    # Console logging now; file logging once the database path is known
    configure_logging(verbosity=verbose)


def _configure_db_logging(db_path: Path) -> None:
    """Configure file logging if --log flag was set.

    Args:
        db_path: Database the command operates on; logs go beside it.
    """
    if _log_enabled:
        configure_logging(
            verbosity=_verbose,
            log_to_file=True,
            log_dir=db_path.resolve().parent / "logs",
        )
        atexit.register(close_file_logging)


def _fail(error: Exception) -> typer.Exit:
    """Print an error report and return the exit to raise."""
    report = error.to_report() if isinstance(error, MigrationError) else str(error)
    console.print(f"[red]✗[/red] {type(error).__name__}")
    for line in report.splitlines():
        console.print(f"  {line}", markup=False, highlight=False)
    return typer.Exit(1)


def _open_store(db_path: Path, *, read_only: bool = False) -> SqliteGraphStore:
    try:
        return SqliteGraphStore(db_path, must_exist=True, read_only=read_only)
    except MigrationError as e:
        raise _fail(e) from e


@app.command()
def version() -> None:
    """Show version information."""
    from graphloom import __version__

    console.print(f"graphloom v{__version__}")


@app.command("import")
def import_graph(
    graph_json: Annotated[Path, typer.Argument(help="Graph JSON document to import.")],
    db: Annotated[Path, typer.Argument(help="Path for the new SQLite database.")],
) -> None:
    """Import a nodes/edges JSON document into a new graph database."""
    _configure_db_logging(db)
    try:
        store = load_graph_json(graph_json, db)
    except (OSError, ValueError) as e:
        raise _fail(e) from e

    with store:
        console.print(f"[green]✓[/green] Imported graph into [bold]{db}[/bold]")
        console.print(f"  Nodes: {store.node_count():,}")
        console.print(f"  Edges: {store.edge_count():,}")


def _pattern_table(report: IdPatternReport) -> Table:
    table = Table(title=f"ID Patterns ({report.node_count} nodes, {report.edge_count} edges)")
    table.add_column("Node Type", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Examples", style="dim")
    table.add_column("Categories")

    for node_type, pattern in report.patterns.items():
        table.add_row(
            node_type,
            str(pattern.count),
            ", ".join(pattern.examples),
            ", ".join(pattern.categories) or "-",
        )
    return table


@app.command()
def analyze(
    db: Annotated[Path, typer.Argument(help="Graph database to analyze.")],
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the report as JSON."),
    ] = False,
) -> None:
    """Summarize node identifier patterns (read-only)."""
    _configure_db_logging(db)
    with _open_store(db, read_only=True) as store:
        report = analyze_ids(store.all_nodes(), store.all_edges())

    if as_json:
        typer.echo(report.model_dump_json(indent=2))
        return

    console.print()
    console.print(_pattern_table(report))
    if report.edge_types:
        edges = Table(title="Edge Types")
        edges.add_column("Type", style="cyan")
        edges.add_column("Count", justify="right")
        for edge_type, count in report.edge_types.items():
            edges.add_row(edge_type, str(count))
        console.print(edges)
    console.print(f"Unique node ids referenced by edges: [bold]{report.referenced_ids}[/bold]")
    console.print()


@app.command()
def backup(
    source: Annotated[Path, typer.Argument(help="Graph database to copy.")],
    dest: Annotated[Path, typer.Argument(help="Destination file for the copy.")],
    overwrite: Annotated[
        bool,
        typer.Option("--overwrite", help="Replace an existing destination file."),
    ] = False,
) -> None:
    """Copy a graph database and verify the copy."""
    _configure_db_logging(source)
    try:
        result = backup_database(source, dest, overwrite=overwrite)
    except (MigrationError, OSError, ValueError) as e:
        raise _fail(e) from e

    console.print(f"[green]✓[/green] Backup written to [bold]{result.destination}[/bold]")
    console.print(f"  Nodes: {result.nodes:,}  Edges: {result.edges:,}")


def _show_plan(plan: MigrationPlan) -> None:
    """Print the diagnostics collected before any write."""
    tmap = plan.tmap
    stats = tmap.stats()
    console.print()
    console.print("[bold]Transformation map[/bold]")
    console.print(f"  To transform: {stats['transformed']}")
    console.print(f"  Unchanged: {stats['unchanged']}")
    console.print(f"  Invalid: {stats['invalid']}")

    for error in tmap.invalid[:MAX_LISTED]:
        console.print(f"  ! {error}", markup=False, highlight=False)
    if tmap.invalid_count > MAX_LISTED:
        console.print(f"  ... and {tmap.invalid_count - MAX_LISTED} more")

    for warning in tmap.warnings[:MAX_LISTED]:
        console.print(f"  ! {warning.message}", markup=False, highlight=False)
    if len(tmap.warnings) > MAX_LISTED:
        console.print(f"  ... and {len(tmap.warnings) - MAX_LISTED} more warnings")

    completeness = plan.completeness
    if completeness.is_complete:
        console.print(
            f"[green]✓[/green] All {completeness.total_references} edge references are mapped"
        )
    else:
        console.print(
            f"[yellow]![/yellow] {len(completeness.missing)} of "
            f"{completeness.total_references} edge references have no mapping"
        )
        for node_id in completeness.missing[:MAX_LISTED]:
            console.print(f"    - {node_id}", markup=False, highlight=False)
        if completeness.null_endpoints:
            console.print(f"    {completeness.null_endpoints} edge endpoint(s) hold no id")
    console.print()


def _write_mapping_reports(
    plan: MigrationPlan, config: MigrationConfig, report_dir: Path, *, include_csv: bool
) -> None:
    rows = build_mapping_rows(plan.source_nodes, plan.tmap, config.type_aliases)
    for path in write_reports(rows, report_dir, include_csv=include_csv):
        console.print(f"  Report: [cyan]{path}[/cyan]")


@app.command()
def migrate(
    db: Annotated[Path, typer.Argument(help="Graph database to migrate in place.")],
    backup_path: Annotated[
        Path | None,
        typer.Option("--backup", "-b", help="Back up the database here before migrating."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Rehearse every write, then roll back."),
    ] = False,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="YAML file with naming rules."),
    ] = None,
    report_dir: Annotated[
        Path | None,
        typer.Option("--report-dir", help="Write the ID mapping report into this directory."),
    ] = None,
    csv: Annotated[
        bool,
        typer.Option("--csv", help="Also write the mapping report as CSV."),
    ] = False,
) -> None:
    """Migrate every node identifier and verify the result."""
    _configure_db_logging(db)
    try:
        config = load_migration_config(config_file)
    except MigrationConfigError as e:
        raise _fail(e) from e

    if backup_path is not None:
        if dry_run:
            console.print("[dim]Dry run: skipping backup.[/dim]")
        else:
            try:
                saved = backup_database(db, backup_path)
            except (MigrationError, OSError, ValueError) as e:
                raise _fail(e) from e
            console.print(f"[green]✓[/green] Backup: [cyan]{saved.destination}[/cyan]")

    plans: list[MigrationPlan] = []

    def on_plan(plan: MigrationPlan) -> None:
        plans.append(plan)
        _show_plan(plan)

    with _open_store(db) as store:
        try:
            result = run_migration(store, config, dry_run=dry_run, on_plan=on_plan)
        except (ReferentialIntegrityError, FormatComplianceError) as e:
            # Raised after commit: the ids on disk already follow the plan
            if report_dir is not None and plans:
                _write_mapping_reports(plans[0], config, report_dir, include_csv=csv)
            raise _fail(e) from e
        except MigrationError as e:
            raise _fail(e) from e

    mutation = result.mutation
    label = "Dry run complete (rolled back)" if result.dry_run else "Migration complete"
    console.print(f"[green]✓[/green] [bold]{label}[/bold]")
    console.print(f"  Dangling edges removed: {mutation.edges_removed}")
    console.print(f"  Nodes renamed: {mutation.nodes_renamed}")
    console.print(f"  Edges rewritten: {mutation.edges_rewritten}")
    if result.verification is not None:
        verification = result.verification
        console.print(
            f"  Verified: {verification.node_count} nodes, {verification.edge_count} edges"
        )

    if report_dir is not None:
        _write_mapping_reports(result.plan, config, report_dir, include_csv=csv)


@app.command()
def verify(
    db: Annotated[Path, typer.Argument(help="Graph database to check.")],
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="YAML file with naming rules."),
    ] = None,
) -> None:
    """Check referential closure and identifier format (read-only)."""
    _configure_db_logging(db)
    try:
        config = load_migration_config(config_file)
    except MigrationConfigError as e:
        raise _fail(e) from e

    with _open_store(db, read_only=True) as store:
        try:
            report = IntegrityVerifier(store, IdMapper(config)).verify()
        except MigrationError as e:
            raise _fail(e) from e

    console.print(
        f"[green]✓[/green] {report.node_count} nodes and {report.edge_count} edges verified"
    )


@app.command()
def history(
    db: Annotated[Path, typer.Argument(help="Graph database to inspect.")],
    status: Annotated[
        str | None,
        typer.Option("--status", "-s", help="Only show runs with this status."),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of runs to show."),
    ] = 20,
) -> None:
    """Show recorded migration runs, newest first."""
    if not db.is_file():
        console.print(f"[red]Error:[/red] Database not found: {db}")
        raise typer.Exit(1)
    try:
        runs = audit.query_runs(db, status=status, limit=limit)
    except sqlite3.Error as e:
        raise _fail(e) from e

    if not runs:
        console.print("[dim]No migration runs recorded.[/dim]")
        return

    status_icons = {
        "completed": "[green]✓[/green] completed",
        "failed": "[red]✗[/red] failed",
    }

    table = Table(title=f"Migration History: {db.name}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Started", style="dim")
    table.add_column("Status", style="bold")
    table.add_column("Changes")
    table.add_column("Detail", style="dim")

    for run in runs:
        changes = (
            f"{run['nodes_renamed']} nodes, {run['edges_rewritten']} edges, "
            f"{run['edges_removed']} removed"
        )
        table.add_row(
            str(run["id"]),
            run["started_at"][:16].replace("T", " "),
            status_icons.get(run["status"], run["status"]),
            changes,
            run["detail"] or "",
        )

    console.print()
    console.print(table)
    console.print()
