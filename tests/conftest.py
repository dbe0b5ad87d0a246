"""Shared fixtures: in-memory workbooks and parsed sheets.

Workbooks are built with openpyxl on the fly; nothing binary lives on disk.
"""

from __future__ import annotations

import io
from typing import Any, Callable

import pytest
from openpyxl import Workbook

from planilla.pipeline import RawSheet, parse_sheet
from planilla.xlsx_extractor import MergeRange, SheetGrid

# ---------------------------------------------------------------------------
# Sample certificate workbook
# ---------------------------------------------------------------------------

RESUMEN_HEADERS = [
    "Período",
    "N° Certificado",
    "Fecha Certificación",
    "Monto Certificado",
    "Avance Físico Acum. %",
    "Monto Acumulado",
]

RESUMEN_ROWS: list[list[Any]] = [
    ["CERTIFICADO MENSUAL DE OBRA"],
    [],
    RESUMEN_HEADERS,
    ["Marzo 2024", 3, "2024-03-31", 1500000.5, 45.5, 4500000],
]

ITEMS_HEADERS = [
    "Código Item",
    "Descripción",
    "Incidencia %",
    "Monto Rubro",
    "Avance Anterior %",
    "Avance Período %",
    "Avance Acumulado %",
    "Monto Anterior $",
    "Monto Presente $",
    "Monto Acumulado $",
]

ITEMS_ROWS: list[list[Any]] = (
    [ITEMS_HEADERS]
    + [
        [f"1.{i}", f"Rubro {i}", 8.5, 1000 * i, 10, 5, 15, 100 * i, 50 * i, 150 * i]
        for i in range(1, 7)
    ]
    + [[]]
    + [
        [f"1.{i}", f"Rubro {i}", 8.5, 1000 * i, 10, 5, 15, 100 * i, 50 * i, 150 * i]
        for i in range(7, 13)
    ]
)

CURVA_ROWS: list[list[Any]] = [
    ["Concepto", "MES 0", "MES 1", "MES 2"],
    ["Avance físico", "1%", "2%", "3%"],
    ["AVANCE MENSUAL", "0%", "2,5%", "3%"],
    ["AVANCE ACUMULADO", "0%", "2,5%", "5,5%"],
]

OBSERVACIONES_ROWS: list[list[Any]] = [
    ["Observaciones"],
    ["La obra avanza según lo previsto"],
    ["Firma del inspector"],
]

CERTIFICATE_SHEETS: list[tuple[str, list[list[Any]]]] = [
    ("Nota Cert", RESUMEN_ROWS),
    ("Certificado Items", ITEMS_ROWS),
    ("Plan Curva", CURVA_ROWS),
    ("Notas", [["Sin novedades"]]),
    ("Observaciones", OBSERVACIONES_ROWS),
]


def build_xlsx(
    sheets: list[tuple[str, list[list[Any]]]],
    merges: dict[str, list[str]] | None = None,
) -> bytes:
    """Serialize *sheets* (``[(name, rows)]``) to XLSX bytes."""
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets:
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(row)
        for ref in (merges or {}).get(name, []):
            ws.merge_cells(ref)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_xlsx() -> Callable[..., bytes]:
    return build_xlsx


@pytest.fixture
def certificate_xlsx() -> bytes:
    return build_xlsx(CERTIFICATE_SHEETS)


@pytest.fixture
def make_sheet() -> Callable[..., RawSheet]:
    """Parse a plain grid into a RawSheet: ``make_sheet(name, rows, merges=None)``."""

    def _make(
        name: str,
        rows: list[list[Any]],
        merges: list[MergeRange] | None = None,
    ) -> RawSheet:
        return parse_sheet(SheetGrid(name=name, rows=rows, merges=merges or []))

    return _make


@pytest.fixture
def items_sheet(make_sheet) -> RawSheet:
    grid = [["" if v is None else str(v) for v in row] for row in ITEMS_ROWS]
    return make_sheet("Certificado Items", grid)


@pytest.fixture
def curva_sheet(make_sheet) -> RawSheet:
    return make_sheet("Plan Curva", [list(r) for r in CURVA_ROWS])
