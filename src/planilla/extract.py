"""Extraction engine: a finalized mapping → typed output rows.

Three strategies, chosen by the table's ``extraction_mode``:

- ``vertical``: one output row per sheet data row; mapped cells are
  coerced to the column type and all-empty rows are dropped.
- ``horizontal``: the period columns of a single marker row are pivoted
  into a time series with a running cumulative total.
- ``record``: one document-level row assembled from manual values, fixed
  cell references and the first non-empty value under each mapped header.

Extraction is stateless; the cumulative total of a horizontal extraction
lives only for the duration of one call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from planilla.heuristics import find_marker_row, find_period_headers
from planilla.mapping import ColumnMapping
from planilla.schemas import TargetColumnDef, TargetTableDef
from planilla.values import coerce_value, is_blank, parse_percent_value, round2
from planilla.xlsx_extractor import a1_to_row_col

if TYPE_CHECKING:
    from planilla.pipeline import RawSheet

log = logging.getLogger(__name__)


@dataclass
class ExtractedTable:
    """Typed rows for one target table, extracted from one sheet.

    Attributes:
        target_table_id: Table the rows belong to.
        source_sheet_name: Sheet they were read from.
        mappings: The mapping set used.
        rows: Records keyed by target column key.
        row_count: Always ``len(rows)``.
    """

    target_table_id: str
    source_sheet_name: str
    mappings: list[ColumnMapping]
    rows: list[dict[str, Any]]
    row_count: int = field(init=False)

    def __post_init__(self) -> None:
        self.row_count = len(self.rows)

    def preview(self, limit: int = 40) -> list[dict[str, Any]]:
        """The first *limit* rows."""
        return self.rows[:limit]


def _mapped_columns(
    table: TargetTableDef,
    mappings: list[ColumnMapping],
) -> list[tuple[TargetColumnDef, str]]:
    """``(column, header)`` for every mapped column, in table order."""
    by_key = {m.target_column_key: m.source_header for m in mappings if m.is_mapped}
    return [(c, by_key[c.key]) for c in table.columns if c.key in by_key]


def _manual_constants(
    table: TargetTableDef,
    manual_values: dict[str, Any] | None,
    skip: set[str],
) -> dict[str, Any]:
    """Coerced manual values for columns not in *skip*, unknown keys ignored."""
    constants: dict[str, Any] = {}
    for column in table.columns:
        if column.key in skip or not manual_values:
            continue
        raw = manual_values.get(column.key)
        if not is_blank(raw):
            constants[column.key] = coerce_value(raw, column.type)
    return constants


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def extract_vertical(
    sheet: RawSheet,
    mappings: list[ColumnMapping],
    table: TargetTableDef,
    manual_values: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """One row per data row; rows whose mapped values are all empty are dropped.

    Manual values fill unmapped columns on every surviving row but never keep
    an otherwise empty row.
    """
    mapped = _mapped_columns(table, mappings)
    constants = _manual_constants(table, manual_values, {c.key for c, _ in mapped})

    rows: list[dict[str, Any]] = []
    for record in sheet.data_rows:
        values = {c.key: coerce_value(record.get(header), c.type) for c, header in mapped}
        if all(is_blank(v) for v in values.values()):
            continue
        values.update(constants)
        rows.append({c.key: values[c.key] for c in table.columns if c.key in values})
    return rows


def extract_horizontal(sheet: RawSheet, table: TargetTableDef) -> list[dict[str, Any]]:
    """Pivot the marker row's period columns into ``period / monthly / cumulative`` rows.

    Period columns keep their left-to-right order.  Without period columns
    or a marker row the result is empty.
    """
    spec = table.horizontal
    periods = find_period_headers(sheet.headers, spec.period_pattern)
    if not periods:
        log.debug("Sheet %r: no period columns", sheet.name)
        return []
    marker = find_marker_row(sheet.data_rows, spec.marker_terms)
    if marker is None:
        log.debug("Sheet %r: marker row %s not found", sheet.name, spec.marker_terms)
        return []

    rows: list[dict[str, Any]] = []
    cumulative = 0.0
    for header in periods:
        monthly = parse_percent_value(marker.get(header))
        cumulative += monthly
        rows.append({
            spec.period_key: header,
            spec.monthly_key: monthly,
            spec.cumulative_key: round2(cumulative),
        })
    return rows


def _identity_mappings(table: TargetTableDef) -> list[ColumnMapping]:
    """Each column fed by the pivot column of the same key."""
    return [ColumnMapping(c.key, c.key, 1.0) for c in table.columns]


def _cell_at(sheet: RawSheet, ref: str) -> Any:
    position = a1_to_row_col(ref)
    if position is None:
        return None
    row, col = position
    if row >= len(sheet.raw_rows) or col >= len(sheet.raw_rows[row]):
        return None
    return sheet.raw_rows[row][col]


def extract_record(
    sheet: RawSheet,
    mappings: list[ColumnMapping],
    table: TargetTableDef,
    manual_values: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """A single row: manual value, else ``cell_ref`` cell, else first non-empty mapped value.

    Returns ``[]`` when no column gets a value.
    """
    headers = {c.key: h for c, h in _mapped_columns(table, mappings)}
    manual_values = manual_values or {}

    row: dict[str, Any] = {}
    for column in table.columns:
        raw = manual_values.get(column.key)
        if is_blank(raw) and column.cell_ref:
            raw = _cell_at(sheet, column.cell_ref)
        if is_blank(raw) and column.key in headers:
            header = headers[column.key]
            raw = next(
                (r.get(header) for r in sheet.data_rows if not is_blank(r.get(header))),
                None,
            )
        row[column.key] = coerce_value(raw, column.type)

    if all(v is None for v in row.values()):
        return []
    return [row]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def apply_mappings(
    sheet: RawSheet,
    mappings: list[ColumnMapping],
    table: TargetTableDef,
    *,
    manual_values: dict[str, Any] | None = None,
) -> ExtractedTable:
    """Materialize *table* from *sheet* using *mappings*.

    Args:
        sheet: Parsed source sheet.
        mappings: One consistent mapping set for *table* (caller-managed).
            Horizontal extractions ignore it and report identity mappings
            (empty when nothing was extracted).
        table: Target table definition; its ``extraction_mode`` picks the
            strategy.
        manual_values: Optional ``{column_key: value}`` constants for
            columns without a source header (ignored in horizontal mode).

    Returns:
        An :class:`ExtractedTable`.  Never raises on cell content.
    """
    if table.extraction_mode == "horizontal":
        rows = extract_horizontal(sheet, table)
        mappings = _identity_mappings(table) if rows else []
    elif table.extraction_mode == "record":
        rows = extract_record(sheet, mappings, table, manual_values)
    else:
        rows = extract_vertical(sheet, mappings, table, manual_values)

    log.debug(
        "Extracted %d %s row(s) for %s from sheet %r",
        len(rows), table.extraction_mode, table.id, sheet.name,
    )
    return ExtractedTable(
        target_table_id=table.id,
        source_sheet_name=sheet.name,
        mappings=list(mappings),
        rows=rows,
    )
