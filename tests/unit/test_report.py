"""Tests for the old -> new identifier mapping reports."""

from __future__ import annotations

import csv
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from graphloom.config import DEFAULT_TYPE_ALIASES
from graphloom.migration.map_builder import TransformationMap
from graphloom.migration.report import (
    CSV_FIELDS,
    NOT_FOUND,
    MappingRow,
    build_mapping_rows,
    render_markdown,
    summarize_rows,
    write_csv,
    write_reports,
)

if TYPE_CHECKING:
    from pathlib import Path

NODES: list[dict[str, Any]] = [
    {"id": "mentation", "node_type": "lexicon-term", "category": None, "title": "Mentation"},
    {"id": "oh-2", "node_type": "directive", "category": "oh", "title": "Second | pipe"},
    {"id": "cip-1", "node_type": "directive", "category": "cip", "title": "Facts"},
    {"id": "cda-61", "node_type": "metadata", "category": None, "title": "Root"},
    {"id": "Bad Id", "node_type": "directive", "category": "cip", "title": None},
]

TMAP = TransformationMap(
    mapping={
        "mentation": "cl-1.76-mentation",
        "oh-2": "cda-61-oh-2",
        "cip-1": "cda-61-cip-1",
        "cda-61": "cda-61",
    }
)


def _rows() -> list[MappingRow]:
    return build_mapping_rows(NODES, TMAP, DEFAULT_TYPE_ALIASES)


class TestBuildMappingRows:
    def test_order_metadata_directives_rest(self) -> None:
        assert [r.original_id for r in _rows()] == [
            "cda-61",
            "Bad Id",
            "cip-1",
            "oh-2",
            "mentation",
        ]

    def test_not_found_for_unmapped(self) -> None:
        row = next(r for r in _rows() if r.original_id == "Bad Id")
        assert row.revised_id == NOT_FOUND
        assert row.changed

    def test_unchanged_row(self) -> None:
        row = next(r for r in _rows() if r.original_id == "cda-61")
        assert row.revised_id == "cda-61"
        assert not row.changed


class TestSummarizeRows:
    def test_totals(self) -> None:
        summary = summarize_rows(_rows())
        assert summary.total == 5
        assert summary.changed == 4
        assert summary.unchanged == 1
        assert summary.not_found == 1

    def test_by_category(self) -> None:
        summary = summarize_rows(_rows())
        assert list(summary.by_category) == ["cip", "oh"]
        assert summary.by_category["cip"].total == 2
        assert summary.by_category["cip"].changed == 2


class TestRenderMarkdown:
    def test_sections(self) -> None:
        text = render_markdown(_rows(), generated_at=datetime(2026, 1, 2, tzinfo=UTC))
        assert text.startswith("# ID Mapping Report: Original -> Revised\n")
        assert "Generated: 2026-01-02T00:00:00+00:00" in text
        assert "| Changed IDs | 4 |" in text
        assert "| cip | 2 | 2 |" in text
        assert "| cip-1 | cda-61-cip-1 | directive | cip | Facts | yes |" in text

    def test_pipes_escaped_and_titles_shortened(self) -> None:
        rows = [
            MappingRow(original_id="a", revised_id="a", title="x" * 80, changed=False),
            *_rows(),
        ]
        text = render_markdown(rows)
        assert "Second \\| pipe" in text
        assert "x" * 50 + "..." in text
        assert "x" * 51 not in text


class TestWriteReports:
    def test_write_csv(self, tmp_path: Path) -> None:
        path = write_csv(_rows(), tmp_path / "out" / "map.csv")

        with path.open(encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            records = list(reader)

        assert reader.fieldnames == CSV_FIELDS
        assert records[0] == {
            "Original ID": "cda-61",
            "Revised ID": "cda-61",
            "Node Type": "metadata",
            "Category": "",
            "Title": "Root",
            "Changed": "false",
        }
        assert len(records) == 5
        assert '"Second | pipe"' in path.read_text(encoding="utf-8")

    def test_write_reports_markdown_only(self, tmp_path: Path) -> None:
        written = write_reports(_rows(), tmp_path)
        assert [p.name for p in written] == ["id-mapping-report.md"]

    def test_write_reports_with_csv(self, tmp_path: Path) -> None:
        written = write_reports(_rows(), tmp_path / "reports", include_csv=True)
        assert [p.name for p in written] == ["id-mapping-report.md", "id-mapping-report.csv"]
        assert all(p.exists() for p in written)
