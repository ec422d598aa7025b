"""Old -> new identifier mapping reports.

Builds one row per node, a summary with per-category change counts, and
renders them as Markdown and CSV for the operator.
"""

from __future__ import annotations

import csv
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from graphloom.graph.models import NodeKind, classify_node_type
from graphloom.observability.logging import get_logger

if TYPE_CHECKING:
    from pathlib import Path

    from graphloom.migration.map_builder import TransformationMap

log = get_logger(__name__)

NOT_FOUND = "NOT_FOUND"
TITLE_WIDTH = 50
CSV_FIELDS = ["Original ID", "Revised ID", "Node Type", "Category", "Title", "Changed"]

_KIND_ORDER = {NodeKind.METADATA: 0, NodeKind.DIRECTIVE: 1}


class MappingRow(BaseModel):
    """One node's identifier before and after migration."""

    original_id: str
    revised_id: str
    node_type: str = ""
    category: str | None = None
    title: str | None = None
    changed: bool


class CategoryCount(BaseModel):
    changed: int = 0
    total: int = 0


class MappingSummary(BaseModel):
    """Totals over a list of :class:`MappingRow`."""

    total: int = 0
    changed: int = 0
    unchanged: int = 0
    not_found: int = 0
    by_category: dict[str, CategoryCount] = Field(default_factory=dict)


def build_mapping_rows(
    nodes: list[dict[str, Any]],
    tmap: TransformationMap,
    type_aliases: dict[str, str] | None = None,
) -> list[MappingRow]:
    """Pair every source node with its revised identifier.

    Args:
        nodes: Node rows captured before mutation.
        tmap: Map used for the migration. Nodes absent from it (invalid
            ones) are reported as ``NOT_FOUND``.
        type_aliases: Used to list metadata first, then directives, then
            everything else.
    """
    aliases = type_aliases or {}

    def sort_key(node: dict[str, Any]) -> tuple[int, str, str]:
        kind = classify_node_type(node.get("node_type"), aliases)
        return (_KIND_ORDER.get(kind, 2), node.get("category") or "", str(node.get("id")))

    rows = []
    for node in sorted(nodes, key=sort_key):
        original = str(node.get("id"))
        revised = tmap.get(node.get("id")) or NOT_FOUND
        rows.append(
            MappingRow(
                original_id=original,
                revised_id=revised,
                node_type=node.get("node_type") or "",
                category=node.get("category"),
                title=node.get("title"),
                changed=revised != original,
            )
        )
    return rows


def summarize_rows(rows: list[MappingRow]) -> MappingSummary:
    summary = MappingSummary(total=len(rows))
    for row in rows:
        if row.revised_id == NOT_FOUND:
            summary.not_found += 1
        if row.changed:
            summary.changed += 1
        else:
            summary.unchanged += 1
        if row.category:
            count = summary.by_category.setdefault(row.category, CategoryCount())
            count.total += 1
            if row.changed:
                count.changed += 1
    summary.by_category = dict(sorted(summary.by_category.items()))
    return summary


def _short_title(title: str | None) -> str:
    if not title:
        return ""
    if len(title) > TITLE_WIDTH:
        return title[:TITLE_WIDTH] + "..."
    return title


def render_markdown(rows: list[MappingRow], generated_at: datetime | None = None) -> str:
    """Render the full mapping as a Markdown document."""
    summary = summarize_rows(rows)
    stamp = (generated_at or datetime.now(UTC)).isoformat()

    lines = [
        "# ID Mapping Report: Original -> Revised",
        "",
        f"Generated: {stamp}",
        "",
        "## Summary",
        "",
        "| Metric | Count |",
        "|--------|-------|",
        f"| Total Nodes | {summary.total} |",
        f"| Changed IDs | {summary.changed} |",
        f"| Unchanged IDs | {summary.unchanged} |",
        f"| Not Found | {summary.not_found} |",
    ]

    if summary.by_category:
        lines.extend(["", "## Changes by Category", "", "| Category | Changed | Total |"])
        lines.append("|----------|---------|-------|")
        for category, count in summary.by_category.items():
            lines.append(f"| {category} | {count.changed} | {count.total} |")

    lines.extend(
        [
            "",
            "## Complete ID Mapping",
            "",
            "| Original ID | Revised ID | Type | Category | Title | Changed |",
            "|-------------|------------|------|----------|-------|---------|",
        ]
    )
    for row in rows:
        title = _short_title(row.title).replace("|", "\\|")
        lines.append(
            f"| {row.original_id} | {row.revised_id} | {row.node_type} | "
            f"{row.category or ''} | {title} | {'yes' if row.changed else 'no'} |"
        )
    return "\n".join(lines) + "\n"


def write_csv(rows: list[MappingRow], path: Path) -> Path:
    """Write one CSV line per mapping row."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS, quoting=csv.QUOTE_ALL)
        writer.writeheader()
        for row in rows:
            writer.writerow(
                {
                    "Original ID": row.original_id,
                    "Revised ID": row.revised_id,
                    "Node Type": row.node_type,
                    "Category": row.category or "",
                    "Title": row.title or "",
                    "Changed": str(row.changed).lower(),
                }
            )
    return path


def write_reports(rows: list[MappingRow], out_dir: Path, *, include_csv: bool = False) -> list[Path]:
    """Write ``id-mapping-report.md`` (and optionally ``.csv``) into *out_dir*."""
    out_dir.mkdir(parents=True, exist_ok=True)
    md_path = out_dir / "id-mapping-report.md"
    md_path.write_text(render_markdown(rows), encoding="utf-8")
    written = [md_path]
    if include_csv:
        written.append(write_csv(rows, out_dir / "id-mapping-report.csv"))
    log.info("reports_written", paths=[str(p) for p in written])
    return written
