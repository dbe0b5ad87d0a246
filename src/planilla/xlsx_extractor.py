"""Workbook loading: bytes → per-sheet grids of display text + merge ranges.

- XLSX (Office 2007+): Uses openpyxl
- XLS (Office 97-2003): Uses xlrd
- CSV: Uses the standard csv module (one sheet named ``"CSV"``)

Grids are absolute: row 0 is sheet row 1 and column 0 is column A, so A1
references keep pointing at the right cell.  Merged regions are returned
separately and applied with :func:`resolve_merged_cells`, which the
worksheet parser runs before header detection.
"""

from __future__ import annotations

import csv
import io
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from planilla.normalize import cell_text, clean_cell_text

if TYPE_CHECKING:
    from openpyxl.worksheet.worksheet import Worksheet

log = logging.getLogger(__name__)

_ZIP_MAGIC = b"PK\x03\x04"
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

_A1_RE = re.compile(r"^([A-Z]+)(\d+)$")


class WorkbookReadError(Exception):
    """Raised when the bytes cannot be read as a workbook at all."""

    def __init__(self, message: str, file_name: str | None = None):
        super().__init__(message)
        self.file_name = file_name


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MergeRange:
    """A rectangular merged region, 0-based and inclusive on both ends."""

    start_row: int
    start_col: int
    end_row: int
    end_col: int


@dataclass
class SheetGrid:
    """One worksheet as loaded: display text per cell plus merged regions."""

    name: str
    rows: list[list[str]]
    merges: list[MergeRange] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Merged cell handling
# ---------------------------------------------------------------------------


def resolve_merged_cells(grid: list[list[Any]], merges: list[MergeRange]) -> list[list[Any]]:
    """Copy each merge's top-left value into every other cell of the merge.

    Modifies *grid* in place and returns it.  Merges whose top-left cell is
    empty (or outside the grid) are skipped.  Short rows are padded with
    ``""`` so the merge fits; rows beyond the grid are not created.
    Running it twice gives the same grid.
    """
    for merge in merges:
        if merge.start_row >= len(grid):
            continue
        top_row = grid[merge.start_row]
        if merge.start_col >= len(top_row):
            continue
        value = top_row[merge.start_col]
        if not cell_text(value):
            continue

        for ri in range(merge.start_row, min(merge.end_row, len(grid) - 1) + 1):
            row = grid[ri]
            if len(row) <= merge.end_col:
                row.extend([""] * (merge.end_col + 1 - len(row)))
            for ci in range(merge.start_col, merge.end_col + 1):
                row[ci] = value
    return grid


def a1_to_row_col(ref: str) -> tuple[int, int] | None:
    """Convert an A1 reference (``"J185"``) to a 0-based ``(row, col)``.

    Returns None for anything that is not a plain A1 reference.
    """
    match = _A1_RE.match(ref.strip().upper())
    if not match:
        return None
    letters, digits = match.groups()
    col = 0
    for ch in letters:
        col = col * 26 + (ord(ch) - 64)
    row = int(digits)
    if row < 1:
        return None
    return row - 1, col - 1


# ---------------------------------------------------------------------------
# Cell display text
# ---------------------------------------------------------------------------


def _number_text(value: float) -> str:
    """Render a number without float noise: ``5.0`` → ``"5"``, ``2.7400000001`` → ``"2.74"``.

    ``1e-05`` renders as ``"0.00001"``.
    """
    if not math.isfinite(value):
        return repr(value)
    value = round(value, 10)
    if value == int(value):
        return str(int(value))
    # fixed point, never exponent form
    return f"{value:.10f}".rstrip("0").rstrip(".")


def _display_text(value: Any, number_format: str | None = None) -> str:
    """Render a raw cell value as the text a reader of the sheet would see.

    Percent-formatted numbers become ``"2.74%"``; dates become ISO text.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, (int, float)):
        if number_format and "%" in number_format:
            return _number_text(value * 100) + "%"
        return _number_text(float(value)) if isinstance(value, float) else str(value)
    return clean_cell_text(str(value))


# ---------------------------------------------------------------------------
# Format readers
# ---------------------------------------------------------------------------


def _read_xlsx_sheet(ws: "Worksheet") -> SheetGrid:
    rows: list[list[str]] = []
    max_row = ws.max_row or 0
    max_col = ws.max_column or 0
    if max_row and max_col:
        for cells in ws.iter_rows(min_row=1, min_col=1, max_row=max_row, max_col=max_col):
            rows.append([
                _display_text(cell.value, getattr(cell, "number_format", None))
                for cell in cells
            ])

    merges = [
        MergeRange(
            start_row=mr.min_row - 1,
            start_col=mr.min_col - 1,
            end_row=mr.max_row - 1,
            end_col=mr.max_col - 1,
        )
        for mr in ws.merged_cells.ranges
    ]
    return SheetGrid(name=ws.title or "", rows=rows, merges=merges)


def _read_xlsx(data: bytes) -> list[SheetGrid]:
    from openpyxl import load_workbook

    # read_only mode does not expose merged_cells
    wb = load_workbook(io.BytesIO(data), read_only=False, data_only=True)
    try:
        return [_read_xlsx_sheet(wb[name]) for name in wb.sheetnames]
    finally:
        wb.close()


def _read_xls(data: bytes) -> list[SheetGrid]:
    import xlrd

    wb = xlrd.open_workbook(file_contents=data, formatting_info=True)
    result: list[SheetGrid] = []
    for ws in wb.sheets():
        rows: list[list[str]] = []
        for row_idx in range(ws.nrows):
            row_data: list[str] = []
            for col_idx in range(ws.ncols):
                cell = ws.cell(row_idx, col_idx)
                if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
                    row_data.append("")
                elif cell.ctype == xlrd.XL_CELL_DATE:
                    try:
                        row_data.append(_display_text(xlrd.xldate_as_datetime(cell.value, wb.datemode)))
                    except (xlrd.XLDateError, ValueError, OverflowError):
                        row_data.append(_number_text(cell.value))
                elif cell.ctype == xlrd.XL_CELL_NUMBER:
                    row_data.append(_number_text(cell.value))
                elif cell.ctype == xlrd.XL_CELL_BOOLEAN:
                    row_data.append("TRUE" if cell.value else "FALSE")
                else:
                    row_data.append(clean_cell_text(str(cell.value)))
            rows.append(row_data)

        # xlrd ranges are (rlo, rhi, clo, chi) with exclusive upper bounds
        merges = [
            MergeRange(rlo, clo, rhi - 1, chi - 1)
            for rlo, rhi, clo, chi in ws.merged_cells
        ]
        result.append(SheetGrid(name=ws.name, rows=rows, merges=merges))
    return result


def _read_csv(data: bytes) -> list[SheetGrid]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Excel "CSV" exports from Spanish-locale Windows are cp1252
        log.debug("CSV is not UTF-8, decoding as cp1252")
        text = data.decode("cp1252", errors="replace")
    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel
    rows = [[clean_cell_text(c) for c in row] for row in csv.reader(io.StringIO(text), dialect)]
    return [SheetGrid(name="CSV", rows=rows)]


def _detect_format(data: bytes, file_name: str | None) -> str | None:
    if file_name:
        suffix = Path(file_name).suffix.lower()
        if suffix in (".xlsx", ".xlsm"):
            return "xlsx"
        if suffix == ".xls":
            return "xls"
        if suffix == ".csv":
            return "csv"
    if data.startswith(_ZIP_MAGIC):
        return "xlsx"
    if data.startswith(_OLE2_MAGIC):
        return "xls"
    return None


_READERS = {
    "xlsx": _read_xlsx,
    "xls": _read_xls,
    "csv": _read_csv,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def read_workbook(data: bytes, *, file_name: str | None = None) -> list[SheetGrid]:
    """Load workbook bytes into one :class:`SheetGrid` per worksheet.

    Args:
        data: Raw file contents.
        file_name: Optional original file name; its extension picks the
            reader.  Without it the container is sniffed (zip → XLSX,
            OLE2 → XLS).

    Returns:
        Grids in workbook order, including empty ones.

    Raises:
        WorkbookReadError: If the format is unknown or the reader fails.
    """
    fmt = _detect_format(data, file_name)
    if fmt is None:
        raise WorkbookReadError(
            "Unsupported workbook format (expected XLSX, XLS or CSV)",
            file_name=file_name,
        )

    try:
        grids = _READERS[fmt](data)
    except Exception as exc:  # reader-specific failures all mean "unreadable"
        raise WorkbookReadError(
            f"Could not read {fmt.upper()} workbook: {exc}",
            file_name=file_name,
        ) from exc

    log.debug("Read %d sheet(s) from %s workbook", len(grids), fmt.upper())
    return grids
