"""Workbook ingestion: bytes → parsed sheets → per-sheet table analyses.

Usage::

    from planilla.pipeline import parse_workbook

    result = parse_workbook(data, file_name="certificado.xlsx")
    for analysis in result.analyses:
        print(analysis.sheet_name, analysis.best_target_table_id, analysis.match_score)

Each call is stateless.  Sheets with at most one row are dropped; an
unreadable workbook raises :class:`~planilla.xlsx_extractor.WorkbookReadError`
and nothing else in this path raises on data content.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from planilla.classify import SheetAnalysis, analyze_sheets
from planilla.config import (
    DEFAULT_HEADER_CONFIG,
    DEFAULT_MATCHING_CONFIG,
    HeaderDetectionConfig,
    MatchingConfig,
)
from planilla.heuristics import HeaderLayout, detect_header_row, rows_to_records
from planilla.schemas import DEFAULT_REGISTRY, SchemaRegistry
from planilla.xlsx_extractor import SheetGrid, read_workbook, resolve_merged_cells

log = logging.getLogger(__name__)


# ─── Result types ────────────────────────────────────────────────────────────


@dataclass
class RawSheet:
    """One parsed worksheet.

    Attributes:
        name: Sheet title, unique within the workbook.
        raw_rows: Grid after merge resolution; row 0 is sheet row 1.
        headers: One label per column, ``""`` for unlabeled columns.
        header_row_index: Last header row; data starts right after it.
        data_rows: One record per non-blank row after the header, keyed by
            header label (columns without a label are left out).
        total_rows: Row count including header and blank rows.
        header_layout: How the header region was built.
    """

    name: str
    raw_rows: list[list[Any]]
    headers: list[str]
    header_row_index: int
    data_rows: list[dict[str, Any]]
    total_rows: int
    header_layout: HeaderLayout = HeaderLayout.SINGLE

    @property
    def labeled_headers(self) -> list[str]:
        """Headers with a non-empty label, in column order."""
        return [h for h in self.headers if h]


@dataclass
class ParseResult:
    """Output of :func:`parse_workbook`.

    Attributes:
        sheets: Parsed sheets in workbook order (degenerate ones removed).
        analyses: One :class:`SheetAnalysis` per entry of *sheets*.
        file_name: Name passed by the caller, if any.
        skipped_sheets: Names of sheets dropped for having ≤ 1 row.
    """

    sheets: list[RawSheet]
    analyses: list[SheetAnalysis]
    file_name: str | None = None
    skipped_sheets: list[str] = field(default_factory=list)

    def sheet(self, name: str) -> RawSheet | None:
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        return None

    def analysis(self, sheet_name: str) -> SheetAnalysis | None:
        for analysis in self.analyses:
            if analysis.sheet_name == sheet_name:
                return analysis
        return None


# ─── Worksheet parser ────────────────────────────────────────────────────────


def parse_sheet(
    grid: SheetGrid,
    config: HeaderDetectionConfig = DEFAULT_HEADER_CONFIG,
) -> RawSheet:
    """Resolve merges, detect the header region and materialize records.

    The grid passed in is left unchanged; the sheet keeps its own copy.
    """
    rows = [list(row) for row in grid.rows]
    resolve_merged_cells(rows, grid.merges)

    detection = detect_header_row(rows, config)
    data_rows = rows_to_records(rows, detection.headers, detection.header_row_index)
    log.debug(
        "Sheet %r: %s header at row %d, %d data row(s)",
        grid.name, detection.layout.value, detection.header_row_index, len(data_rows),
    )
    return RawSheet(
        name=grid.name,
        raw_rows=rows,
        headers=detection.headers,
        header_row_index=detection.header_row_index,
        data_rows=data_rows,
        total_rows=len(rows),
        header_layout=detection.layout,
    )


def parse_sheets(
    grids: list[SheetGrid],
    config: HeaderDetectionConfig = DEFAULT_HEADER_CONFIG,
) -> tuple[list[RawSheet], list[str]]:
    """Parse every grid; return ``(sheets, skipped_names)``.

    Grids with at most one row carry no data below a header and are skipped.
    """
    sheets: list[RawSheet] = []
    skipped: list[str] = []
    for grid in grids:
        if len(grid.rows) <= 1:
            skipped.append(grid.name)
            continue
        sheets.append(parse_sheet(grid, config))
    return sheets, skipped


# ─── Workbook entry point ────────────────────────────────────────────────────


def parse_workbook(
    data: bytes,
    *,
    file_name: str | None = None,
    registry: SchemaRegistry = DEFAULT_REGISTRY,
    header_config: HeaderDetectionConfig = DEFAULT_HEADER_CONFIG,
    matching_config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> ParseResult:
    """Ingest a workbook and score every sheet against the registry.

    Args:
        data: Raw XLSX, XLS or CSV bytes.
        file_name: Original file name; its extension selects the reader.
        registry: Target tables to score against.
        header_config: Header detection weights.
        matching_config: Column and table acceptance thresholds.

    Returns:
        A :class:`ParseResult` with sheets and analyses in workbook order.

    Raises:
        WorkbookReadError: If *data* cannot be read as a workbook.
    """
    grids = read_workbook(data, file_name=file_name)
    sheets, skipped = parse_sheets(grids, header_config)
    analyses = analyze_sheets(sheets, registry=registry, config=matching_config)

    assigned = sum(1 for a in analyses if a.best_target_table_id)
    log.info(
        "Parsed %s: %d sheet(s), %d skipped, %d assigned to a target table",
        file_name or "workbook", len(sheets), len(skipped), assigned,
    )
    return ParseResult(
        sheets=sheets,
        analyses=analyses,
        file_name=file_name,
        skipped_sheets=skipped,
    )
