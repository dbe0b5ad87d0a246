"""Header-region heuristics for human-authored worksheets.

A worksheet arrives as a plain grid with no schema: title rows, blank
spacer rows, merged group headers and locale-formatted numbers all mixed
together.  These heuristics decide which row(s) name the columns and turn
the rest of the grid into keyed records.

Heuristics included:
- HH1: Row header-ness scoring (distinct labels vs numbers vs blanks)
- HH2: Merged-cell artifact rejection (one label repeated across the row)
- HH3: Compound header layout (group row above or sub-header row below)
- HH4: Group-label forward-fill and per-column join
- HH5: Duplicate header disambiguation (``"X"``, ``"X (2)"``, ...)
- HH6: Period columns and marker row of horizontal progress curves
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from planilla.config import DEFAULT_HEADER_CONFIG, HeaderDetectionConfig
from planilla.normalize import cell_text, normalize_text

log = logging.getLogger(__name__)

# Digits with separators, currency, percent, parentheses and signs only
_NUMERIC_LIKE_RE = re.compile(r"^[\d.,$ %()-]+$")


# ---------------------------------------------------------------------------
# HH1 / HH2: Row scoring
# ---------------------------------------------------------------------------


class CellKind(Enum):
    """Coarse classification of a cell for header scoring."""

    EMPTY = "empty"
    NUMERIC = "numeric"
    STRING = "string"


def classify_cell(value: Any) -> CellKind:
    """HH1: Classify a raw cell as EMPTY, NUMERIC-looking or STRING."""
    text = cell_text(value)
    if not text:
        return CellKind.EMPTY
    if _NUMERIC_LIKE_RE.match(text):
        return CellKind.NUMERIC
    return CellKind.STRING


def score_row(
    row: list[Any],
    config: HeaderDetectionConfig = DEFAULT_HEADER_CONFIG,
) -> float:
    """HH1: Score how much *row* looks like a header row.

    Rewards many distinct textual labels, penalizes numeric-looking and
    empty cells.  Returns 0 for rows with fewer than
    ``config.min_string_cells`` textual cells, and for rows where every
    textual cell carries the same label (HH2: a merged cell spread across
    the row, not a real header).
    """
    if not row:
        return 0.0

    string_cells = 0
    numeric_cells = 0
    empty_cells = 0
    distinct: set[str] = set()

    for value in row:
        kind = classify_cell(value)
        if kind is CellKind.EMPTY:
            empty_cells += 1
        elif kind is CellKind.NUMERIC:
            numeric_cells += 1
        else:
            string_cells += 1
            distinct.add(cell_text(value).lower())

    if string_cells < config.min_string_cells:
        return 0.0
    # HH2
    if len(distinct) == 1 and string_cells > 2:
        return 0.0

    total = len(row)
    return (
        len(distinct) / total * config.distinct_weight
        - numeric_cells / total * config.numeric_penalty
        - empty_cells / total * config.empty_penalty
        + len(distinct) * config.distinct_bonus
    )


# ---------------------------------------------------------------------------
# HH3: Header layout
# ---------------------------------------------------------------------------


class HeaderLayout(Enum):
    """Shape of the header region around the best-scoring row."""

    SINGLE = "single"  # best row alone
    GROUP_ABOVE_SUB = "group_above_sub"  # row above is the group row
    GROUP_BELOW_SUB = "group_below_sub"  # best row is the group row, row below the sub-headers
    FALLBACK = "fallback"  # no row scored; first non-empty row verbatim


@dataclass
class HeaderDetection:
    """Result of header detection on one grid.

    Attributes:
        headers: One label per column ("" for unlabeled columns).
        header_row_index: Index of the last header row; data starts after it.
        layout: Which layout was chosen.
        score: Score of the best row (0 for the fallback).
    """

    headers: list[str]
    header_row_index: int
    layout: HeaderLayout = HeaderLayout.SINGLE
    score: float = 0.0


def choose_header_layout(
    best_score: float,
    prev_score: float,
    next_score: float,
    config: HeaderDetectionConfig = DEFAULT_HEADER_CONFIG,
) -> HeaderLayout:
    """HH3: Decide whether the best row is part of a two-row header.

    The row above wins when it scores at all and reaches
    ``group_above_ratio`` of the best score.  Otherwise the row below wins
    when it scores strictly more than ``sub_below_ratio`` of the best score.
    """
    if prev_score > 0 and prev_score >= best_score * config.group_above_ratio:
        return HeaderLayout.GROUP_ABOVE_SUB
    if next_score > best_score * config.sub_below_ratio:
        return HeaderLayout.GROUP_BELOW_SUB
    return HeaderLayout.SINGLE


# ---------------------------------------------------------------------------
# HH4 / HH5: Compound header construction
# ---------------------------------------------------------------------------


def forward_fill(row: list[Any], width: int) -> list[str]:
    """HH4: Propagate the last non-empty label rightwards across empty cells.

    Models a merged group header (``"AVANCE FISICO"`` over two sub-columns)
    whose value only sits in its first cell.
    """
    filled: list[str] = []
    last = ""
    for ci in range(width):
        text = cell_text(row[ci]) if ci < len(row) else ""
        if text:
            last = text
        filled.append(last)
    return filled


def join_compound_headers(group_row: list[Any], sub_row: list[Any]) -> list[str]:
    """HH4: Join a group row and a sub-header row into one label per column.

    The group row is forward-filled first.  Labels are joined as
    ``"{group} {sub}"`` when both are present and differ; otherwise the
    non-empty one is kept.
    """
    width = max(len(group_row), len(sub_row))
    groups = forward_fill(group_row, width)
    headers: list[str] = []
    for ci in range(width):
        top = groups[ci]
        bottom = cell_text(sub_row[ci]) if ci < len(sub_row) else ""
        if top and bottom and top != bottom:
            headers.append(f"{top} {bottom}")
        else:
            headers.append(top or bottom)
    return headers


def dedupe_headers(headers: list[str]) -> list[str]:
    """HH5: Suffix repeated labels with ``" (2)"``, ``" (3)"``... in order.

    Empty labels are left alone.
    """
    seen: dict[str, int] = {}
    result: list[str] = []
    for header in headers:
        if not header:
            result.append(header)
            continue
        count = seen.get(header, 0)
        seen[header] = count + 1
        result.append(f"{header} ({count + 1})" if count else header)
    return result


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _first_non_empty_row(raw_rows: list[list[Any]]) -> int | None:
    for ri, row in enumerate(raw_rows):
        if any(cell_text(c) for c in row or []):
            return ri
    return None


def detect_header_row(
    raw_rows: list[list[Any]],
    config: HeaderDetectionConfig = DEFAULT_HEADER_CONFIG,
) -> HeaderDetection:
    """Find the header region of a grid.

    Scans the first ``config.scan_limit`` rows for the best :func:`score_row`
    (earliest row wins ties).  When nothing scores, the first row with any
    non-empty cell is used verbatim.  Otherwise :func:`choose_header_layout`
    decides between a single header row and a joined two-row header; joined
    headers are deduplicated.

    Args:
        raw_rows: Worksheet grid, merged regions already resolved.
        config: Scoring weights and layout thresholds.

    Returns:
        A :class:`HeaderDetection`.  Never raises; an empty grid yields no
        headers and index 0.
    """
    best_score = 0.0
    best_idx = 0
    for ri, row in enumerate(raw_rows[: config.scan_limit]):
        score = score_row(row, config)
        if score > best_score:
            best_score = score
            best_idx = ri

    if best_score == 0:
        first = _first_non_empty_row(raw_rows)
        if first is None:
            log.debug("No non-empty row found; sheet has no headers")
            return HeaderDetection(headers=[], header_row_index=0, layout=HeaderLayout.FALLBACK)
        log.debug("No header-like row; falling back to row %d", first)
        return HeaderDetection(
            headers=[cell_text(c) for c in raw_rows[first]],
            header_row_index=first,
            layout=HeaderLayout.FALLBACK,
        )

    primary = raw_rows[best_idx]
    prev_row = raw_rows[best_idx - 1] if best_idx > 0 else None
    next_row = raw_rows[best_idx + 1] if best_idx + 1 < len(raw_rows) else None
    prev_score = score_row(prev_row, config) if prev_row else 0.0
    next_score = score_row(next_row, config) if next_row else 0.0

    layout = choose_header_layout(best_score, prev_score, next_score, config)
    log.debug(
        "Header row %d scored %.1f (above %.1f, below %.1f): %s",
        best_idx, best_score, prev_score, next_score, layout.value,
    )

    if layout is HeaderLayout.GROUP_ABOVE_SUB:
        headers = dedupe_headers(join_compound_headers(prev_row, primary))
        return HeaderDetection(headers, best_idx, layout, best_score)
    if layout is HeaderLayout.GROUP_BELOW_SUB:
        headers = dedupe_headers(join_compound_headers(primary, next_row))
        return HeaderDetection(headers, best_idx + 1, layout, best_score)
    return HeaderDetection(
        headers=[cell_text(c) for c in primary],
        header_row_index=best_idx,
        layout=layout,
        score=best_score,
    )


def rows_to_records(
    raw_rows: list[list[Any]],
    headers: list[str],
    header_row_index: int,
) -> list[dict[str, Any]]:
    """Turn the rows after the header region into header-keyed records.

    Rows whose cells are all empty after trimming are skipped.  Columns with
    an empty header are left out of the record; cells missing from a short
    (ragged) row become ``None``.
    """
    records: list[dict[str, Any]] = []
    for row in raw_rows[header_row_index + 1:]:
        if not row or not any(cell_text(c) for c in row):
            continue
        record: dict[str, Any] = {}
        for ci, header in enumerate(headers):
            if header:
                record[header] = row[ci] if ci < len(row) else None
        records.append(record)
    return records


# ---------------------------------------------------------------------------
# HH6: Horizontal (time-series) sheets
# ---------------------------------------------------------------------------


def find_period_headers(headers: list[str], pattern: str = r"mes\s*\d+") -> list[str]:
    """HH6: Headers naming a period column (``"MES 0"``, ``"Mes 12"``...), left to right."""
    period_re = re.compile(pattern, re.IGNORECASE)
    return [h for h in headers if h and period_re.search(h)]


def find_marker_row(
    data_rows: list[dict[str, Any]],
    terms: tuple[str, ...] = ("avance", "mensual"),
) -> dict[str, Any] | None:
    """HH6: First record whose joined, normalized cell text contains every term."""
    wanted = [normalize_text(t) for t in terms]
    for record in data_rows:
        joined = " ".join(normalize_text(cell_text(v)) for v in record.values())
        if all(term in joined for term in wanted):
            return record
    return None
