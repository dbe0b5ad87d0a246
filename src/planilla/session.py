"""Caller-held state for one workbook import.

An :class:`ImportSession` ties parsed sheets to target tables and keeps the
mapping currently in force for each table.  It is immutable: every change
returns a new session, so the previous state (and which entries were built
automatically versus chosen by a person) is never lost.

Typical flow::

    session = ImportSession.start(parse_workbook(data, file_name=name))
    session = session.assign_sheet("pmc_items", "Certificado 3")
    session = session.override_column("pmc_items", "monto_presente", "IMPORTE MES")
    table = session.extract("pmc_items")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from planilla.classify import SheetAnalysis, pick_best_sheet
from planilla.config import DEFAULT_MATCHING_CONFIG, MatchingConfig
from planilla.extract import ExtractedTable, apply_mappings
from planilla.mapping import (
    ColumnMapping,
    build_mappings,
    mappings_from_selection,
    override_mapping,
)
from planilla.pipeline import ParseResult, RawSheet
from planilla.schemas import DEFAULT_REGISTRY, SchemaRegistry

log = logging.getLogger(__name__)


class SessionError(ValueError):
    """Raised when a session change names a sheet or column that does not exist."""


def _seed_assignments(
    sheets: list[RawSheet],
    analyses: list[SheetAnalysis],
    registry: SchemaRegistry,
    config: MatchingConfig,
) -> tuple[dict[str, str | None], dict[str, list[ColumnMapping]]]:
    assignments: dict[str, str | None] = {}
    mappings: dict[str, list[ColumnMapping]] = {}
    for table in registry:
        winner: SheetAnalysis | None = None
        for analysis in analyses:
            if analysis.best_target_table_id != table.id:
                continue
            if winner is None or analysis.match_score > winner.match_score:
                winner = analysis

        if winner is not None:
            assignments[table.id] = winner.sheet_name
            mappings[table.id] = list(winner.mappings)
            continue

        sheet = pick_best_sheet(sheets, table, config)
        if sheet is None:
            assignments[table.id] = None
            mappings[table.id] = []
        else:
            assignments[table.id] = sheet.name
            mappings[table.id] = build_mappings(sheet, table, config)
    return assignments, mappings


@dataclass(frozen=True)
class ImportSession:
    """Sheets, analyses and the per-table sheet/mapping state of one import.

    Attributes:
        sheets: Parsed sheets of the workbook.
        analyses: Sheet analyses, one per sheet.
        assignments: ``{table_id: sheet_name | None}`` for every registry table.
        mappings: ``{table_id: [ColumnMapping, ...]}`` currently in force.
        manual_values: ``{table_id: {column_key: value}}`` typed in by a person.
        registry: Target tables of this import.
        config: Matching thresholds used when mappings are rebuilt.
    """

    sheets: tuple[RawSheet, ...]
    analyses: tuple[SheetAnalysis, ...]
    assignments: dict[str, str | None]
    mappings: dict[str, list[ColumnMapping]]
    manual_values: dict[str, dict[str, Any]] = field(default_factory=dict)
    registry: SchemaRegistry = DEFAULT_REGISTRY
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG

    @classmethod
    def start(
        cls,
        result: ParseResult,
        *,
        registry: SchemaRegistry = DEFAULT_REGISTRY,
        config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
    ) -> ImportSession:
        """Seed a session from :func:`~planilla.pipeline.parse_workbook` output.

        A table picked by several sheets goes to the one with the highest
        match score (earliest on ties).  Tables no sheet picked get the
        sheet that scores best for them, if any clears the threshold.
        """
        assignments, mappings = _seed_assignments(
            result.sheets, result.analyses, registry, config,
        )
        return cls(
            sheets=tuple(result.sheets),
            analyses=tuple(result.analyses),
            assignments=assignments,
            mappings=mappings,
            registry=registry,
            config=config,
        )

    # ─── Lookups ──────────────────────────────────────────────────────────

    def sheet(self, name: str) -> RawSheet:
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        raise SessionError(f"Unknown sheet {name!r}")

    def sheet_for(self, table_id: str) -> RawSheet | None:
        """The sheet currently assigned to *table_id*, or None."""
        self.registry.get(table_id)
        name = self.assignments.get(table_id)
        return self.sheet(name) if name is not None else None

    def mappings_for(self, table_id: str) -> list[ColumnMapping]:
        self.registry.get(table_id)
        return list(self.mappings.get(table_id, []))

    def available_sheets(self) -> list[tuple[str, list[str], int]]:
        """``(name, labeled headers, data row count)`` for every sheet."""
        return [(s.name, s.labeled_headers, len(s.data_rows)) for s in self.sheets]

    def _require_sheet(self, table_id: str) -> RawSheet:
        sheet = self.sheet_for(table_id)
        if sheet is None:
            raise SessionError(f"No sheet assigned to table {table_id!r}")
        return sheet

    # ─── Changes (each returns a new session) ─────────────────────────────

    def assign_sheet(self, table_id: str, sheet_name: str | None) -> ImportSession:
        """Point *table_id* at another sheet (or none) and rebuild its mappings."""
        table = self.registry.get(table_id)
        if sheet_name is None:
            new_mappings: list[ColumnMapping] = []
        else:
            new_mappings = build_mappings(self.sheet(sheet_name), table, self.config)
        log.info("Table %s assigned to sheet %r", table_id, sheet_name)
        return replace(
            self,
            assignments={**self.assignments, table_id: sheet_name},
            mappings={**self.mappings, table_id: new_mappings},
        )

    def override_column(
        self,
        table_id: str,
        column_key: str,
        source_header: str | None,
    ) -> ImportSession:
        """Map one column of *table_id* to *source_header* (``None`` unmaps it)."""
        table = self.registry.get(table_id)
        if table.column(column_key) is None:
            raise SessionError(f"Table {table_id!r} has no column {column_key!r}")
        sheet = self._require_sheet(table_id)
        if source_header is not None and source_header not in sheet.labeled_headers:
            raise SessionError(f"Sheet {sheet.name!r} has no header {source_header!r}")

        current = self.mappings.get(table_id) or [ColumnMapping(c.key) for c in table.columns]
        if not any(m.target_column_key == column_key for m in current):
            current = current + [ColumnMapping(column_key)]
        updated = override_mapping(current, column_key, source_header)
        return replace(self, mappings={**self.mappings, table_id: updated})

    def select_columns(
        self,
        table_id: str,
        selection: dict[str, str | None],
    ) -> ImportSession:
        """Replace the whole mapping of *table_id* with an explicit selection."""
        table = self.registry.get(table_id)
        unknown = [k for k in selection if table.column(k) is None]
        if unknown:
            raise SessionError(f"Table {table_id!r} has no column(s) {', '.join(unknown)}")
        sheet = self._require_sheet(table_id)
        updated = mappings_from_selection(sheet, table, selection)
        return replace(self, mappings={**self.mappings, table_id: updated})

    def set_manual_value(self, table_id: str, column_key: str, value: Any) -> ImportSession:
        """Store a constant for *column_key*, used when the column has no header."""
        table = self.registry.get(table_id)
        if table.column(column_key) is None:
            raise SessionError(f"Table {table_id!r} has no column {column_key!r}")
        values = {**self.manual_values.get(table_id, {}), column_key: value}
        return replace(self, manual_values={**self.manual_values, table_id: values})

    # ─── Extraction ───────────────────────────────────────────────────────

    def extract(self, table_id: str) -> ExtractedTable:
        """Extract *table_id* from its assigned sheet with the mapping in force.

        Raises:
            SessionError: If no sheet is assigned to the table.
        """
        table = self.registry.get(table_id)
        sheet = self._require_sheet(table_id)
        return apply_mappings(
            sheet,
            self.mappings.get(table_id, []),
            table,
            manual_values=self.manual_values.get(table_id),
        )

    def extract_all(self) -> dict[str, ExtractedTable]:
        """Extract every table that has a sheet assigned."""
        return {
            table.id: self.extract(table.id)
            for table in self.registry
            if self.assignments.get(table.id) is not None
        }
