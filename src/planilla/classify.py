"""Sheet classification: which target table does a worksheet hold?

Two levels of scoring, both in ``[0, 1]`` and both total (they never raise
and degrade to 0 when nothing matches):

1. :func:`score_header_vs_column` compares one spreadsheet header with one
   target column (exact label, exact key, then keyword overlap).
2. :func:`score_sheet_vs_table` averages the best header score of every
   target column and adds the table's sheet-name and row-count bonuses.

:func:`analyze_sheet` picks the best table for a sheet and, when it clears
``MatchingConfig.table_accept``, builds its initial column mappings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from planilla.config import DEFAULT_MATCHING_CONFIG, MatchingConfig
from planilla.normalize import normalize_text
from planilla.schemas import DEFAULT_REGISTRY, SchemaRegistry, TargetColumnDef, TargetTableDef

if TYPE_CHECKING:
    from planilla.mapping import ColumnMapping
    from planilla.pipeline import RawSheet

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Header ↔ column
# ---------------------------------------------------------------------------


def _keyword_matches(keyword: str, header_words: set[str], norm_header: str) -> bool:
    """True if *keyword* is inside, or contains, one header word (or the whole header).

    Keywords are normalized like headers, so a symbol-only keyword such as
    ``"%"`` becomes ``""`` and matches any non-empty header.
    """
    norm_kw = normalize_text(keyword)
    for word in header_words:
        if norm_kw in word or word in norm_kw:
            return True
    return norm_kw in norm_header


def score_header_vs_column(
    header: str,
    column: TargetColumnDef,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> float:
    """Confidence in ``[0, 1]`` that *header* names *column*.

    Comparison is case-, whitespace-, punctuation- and accent-insensitive.

    - normalized header == normalized label → ``label_exact_score`` (1.0)
    - normalized header == key with ``_`` as spaces → ``key_exact_score`` (0.95)
    - otherwise ``overlap`` = share of the column's keywords matching a header
      word of 2+ characters (either contains the other) or the whole header;
      ``overlap >= 0.6`` → ``0.7 + overlap * 0.2``, else ``overlap * 0.6``

    Examples:
        >>> col = TargetColumnDef("nro_certificado", "N° Certificado", "int")
        >>> score_header_vs_column("n°  CERTIFICADO", col)
        1.0
        >>> score_header_vs_column("Nro. Certificado", col)
        0.95
    """
    norm_header = normalize_text(header or "")
    if not norm_header:
        return 0.0
    if norm_header == normalize_text(column.label):
        return config.label_exact_score
    if norm_header == normalize_text(column.key.replace("_", " ")):
        return config.key_exact_score

    if not column.keywords:
        return 0.0
    header_words = {w for w in norm_header.split(" ") if len(w) > 1}
    matching = sum(
        1 for kw in column.keywords if _keyword_matches(kw, header_words, norm_header)
    )
    if matching == 0:
        return 0.0

    overlap = matching / len(column.keywords)
    if overlap >= config.keyword_overlap_high:
        return config.high_overlap_base + overlap * config.high_overlap_slope
    return overlap * config.low_overlap_slope


# ---------------------------------------------------------------------------
# Sheet ↔ table
# ---------------------------------------------------------------------------


def column_coverage(
    headers: list[str],
    table: TargetTableDef,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> float:
    """Average, over the table's columns, of the best score any header reaches."""
    if not table.columns:
        return 0.0
    labeled = [h for h in headers if h]
    total = 0.0
    for column in table.columns:
        best = 0.0
        for header in labeled:
            score = score_header_vs_column(header, column, config)
            if score > best:
                best = score
        total += best
    return total / len(table.columns)


def score_sheet_vs_table(
    sheet: RawSheet,
    table: TargetTableDef,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> float:
    """Confidence in ``[0, 1]`` that *sheet* holds *table*.

    Header coverage plus the table's sheet-name bonus (last matching rule)
    plus its row-count bonus (counted on data rows), clamped to 1.0.
    """
    coverage = column_coverage(sheet.headers, table, config)
    name_bonus = table.name_bonus(sheet.name)
    row_bonus = table.row_bonus(len(sheet.data_rows))
    return min(1.0, coverage + name_bonus + row_bonus)


# ---------------------------------------------------------------------------
# Sheet analysis
# ---------------------------------------------------------------------------


@dataclass
class SheetAnalysis:
    """Result of scoring one sheet against every table of a registry.

    Attributes:
        sheet_name: Name of the analyzed sheet.
        best_target_table_id: Winning table, or None below the threshold.
        match_score: Score of the best table (reported even when unassigned).
        mappings: Initial column mappings for the winning table; empty when
            unassigned.
        table_scores: Score per table id, in registry order.
    """

    sheet_name: str
    best_target_table_id: str | None
    match_score: float
    mappings: list[ColumnMapping] = field(default_factory=list)
    table_scores: dict[str, float] = field(default_factory=dict)

    @property
    def is_assigned(self) -> bool:
        return self.best_target_table_id is not None


def select_best_table(
    table_scores: dict[str, float],
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> tuple[str | None, float]:
    """Pick the highest-scoring table id, earliest on ties.

    Returns ``(table_id, score)``; ``table_id`` is None when the best score
    is below ``config.table_accept`` (a score equal to it is accepted).
    """
    best_id: str | None = None
    best_score = 0.0
    for table_id, score in table_scores.items():
        if score > best_score:
            best_id = table_id
            best_score = score
    if best_score < config.table_accept:
        return None, best_score
    return best_id, best_score


def analyze_sheet(
    sheet: RawSheet,
    *,
    registry: SchemaRegistry = DEFAULT_REGISTRY,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> SheetAnalysis:
    """Score *sheet* against every table and build mappings for the winner."""
    from planilla.mapping import build_mappings

    table_scores = {t.id: score_sheet_vs_table(sheet, t, config) for t in registry}
    log.debug(
        "Sheet %r scores: %s",
        sheet.name, ", ".join(f"{tid}={s:.3f}" for tid, s in table_scores.items()),
    )

    best_id, best_score = select_best_table(table_scores, config)
    if best_id is None:
        log.info("Sheet %r left unassigned (best score %.3f)", sheet.name, best_score)
        return SheetAnalysis(
            sheet_name=sheet.name,
            best_target_table_id=None,
            match_score=best_score,
            table_scores=table_scores,
        )

    log.info("Sheet %r assigned to %s (score %.3f)", sheet.name, best_id, best_score)
    return SheetAnalysis(
        sheet_name=sheet.name,
        best_target_table_id=best_id,
        match_score=best_score,
        mappings=build_mappings(sheet, registry.get(best_id), config),
        table_scores=table_scores,
    )


def analyze_sheets(
    sheets: list[RawSheet],
    *,
    registry: SchemaRegistry = DEFAULT_REGISTRY,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> list[SheetAnalysis]:
    """:func:`analyze_sheet` for every sheet, in order."""
    return [analyze_sheet(s, registry=registry, config=config) for s in sheets]


def pick_best_sheet(
    sheets: list[RawSheet],
    table: TargetTableDef,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> RawSheet | None:
    """The sheet that best holds *table* (earliest on ties), or None below threshold."""
    best: RawSheet | None = None
    best_score = 0.0
    for sheet in sheets:
        score = score_sheet_vs_table(sheet, table, config)
        if score > best_score:
            best = sheet
            best_score = score
    if best is None or best_score < config.table_accept:
        return None
    return best
