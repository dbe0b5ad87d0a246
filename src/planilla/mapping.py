"""Column mappings between one sheet and one target table.

:func:`build_mappings` is the automatic, greedy assignment.  The other
helpers exist for the human correcting it: overrides are copy-on-write and
tagged ``origin="user"`` so re-runs can tell them apart from ``"auto"``
entries.  Every mapping list keeps one entry per target column, in table
order, and never uses the same source header twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Literal

from rapidfuzz import fuzz

from planilla.classify import score_header_vs_column
from planilla.config import DEFAULT_MATCHING_CONFIG, MatchingConfig
from planilla.normalize import normalize_text
from planilla.schemas import TargetColumnDef, TargetTableDef

if TYPE_CHECKING:
    from planilla.pipeline import RawSheet

log = logging.getLogger(__name__)

MappingOrigin = Literal["auto", "user"]


@dataclass(frozen=True)
class ColumnMapping:
    """Assignment of one target column to a source header.

    Attributes:
        target_column_key: Key of the target column.
        source_header: Sheet header feeding the column, or None if unmapped.
        confidence: ``0..1``; 0 when unmapped.
        origin: ``"auto"`` (built by the matcher) or ``"user"`` (override).
    """

    target_column_key: str
    source_header: str | None = None
    confidence: float = 0.0
    origin: MappingOrigin = "auto"

    @property
    def is_mapped(self) -> bool:
        return self.source_header is not None


# ---------------------------------------------------------------------------
# Automatic mapping
# ---------------------------------------------------------------------------


def build_mappings(
    sheet: RawSheet,
    table: TargetTableDef,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> list[ColumnMapping]:
    """Greedily assign each target column its best unused sheet header.

    Columns are visited in table order, so earlier columns claim ambiguous
    headers first; among equal scores the leftmost header wins.  A header
    is accepted when it scores at least ``config.column_accept`` and is
    then consumed.  Deterministic: the same inputs give the same list.

    Horizontal tables go through the same pass; their identity mapping is
    attached by the extraction, not here.
    """
    used: set[str] = set()
    mappings: list[ColumnMapping] = []
    for column in table.columns:
        best_header: str | None = None
        best_score = 0.0
        for header in sheet.labeled_headers:
            if header in used:
                continue
            score = score_header_vs_column(header, column, config)
            if score > best_score:
                best_header = header
                best_score = score

        if best_header is not None and best_score >= config.column_accept:
            used.add(best_header)
            mappings.append(ColumnMapping(column.key, best_header, best_score))
            log.debug("%s.%s ← %r (%.3f)", table.id, column.key, best_header, best_score)
        else:
            mappings.append(ColumnMapping(column.key))
            log.debug("%s.%s unmapped (best %.3f)", table.id, column.key, best_score)
    return mappings


# ---------------------------------------------------------------------------
# Human corrections
# ---------------------------------------------------------------------------


def override_mapping(
    mappings: list[ColumnMapping],
    column_key: str,
    source_header: str | None,
    confidence: float = 1.0,
) -> list[ColumnMapping]:
    """Return a copy of *mappings* with *column_key* pointed at *source_header*.

    The entry is tagged ``origin="user"``; ``None`` unmaps the column.  Any
    other entry holding the same header is unmapped so the header stays
    used at most once.  *mappings* itself is not modified.

    Raises:
        KeyError: If no entry has *column_key*.
    """
    if not any(m.target_column_key == column_key for m in mappings):
        raise KeyError(column_key)

    result: list[ColumnMapping] = []
    for m in mappings:
        if m.target_column_key == column_key:
            result.append(ColumnMapping(
                column_key,
                source_header,
                confidence if source_header is not None else 0.0,
                "user",
            ))
        elif source_header is not None and m.source_header == source_header:
            result.append(replace(m, source_header=None, confidence=0.0))
        else:
            result.append(m)
    return result


def mappings_from_selection(
    sheet: RawSheet,
    table: TargetTableDef,
    selection: dict[str, str | None],
) -> list[ColumnMapping]:
    """Build user mappings from an explicit ``{column_key: header}`` selection.

    A header present in the sheet maps with confidence 1.0.  Missing keys,
    ``None``, unknown headers and headers already taken by an earlier column
    leave the column unmapped.
    """
    available = set(sheet.labeled_headers)
    used: set[str] = set()
    mappings: list[ColumnMapping] = []
    for column in table.columns:
        header = selection.get(column.key)
        if header is not None and header in available and header not in used:
            used.add(header)
            mappings.append(ColumnMapping(column.key, header, 1.0, "user"))
        else:
            mappings.append(ColumnMapping(column.key, origin="user"))
    return mappings


def suggest_headers(
    sheet: RawSheet,
    column: TargetColumnDef,
    limit: int = 5,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> list[tuple[str, float]]:
    """Rank sheet headers as candidates for *column*, best first.

    Each header gets the higher of its keyword score and its fuzzy
    similarity (``fuzz.token_set_ratio`` on normalized text, scaled to 0..1)
    to the column label or key.  Headers scoring 0 are left out.
    """
    targets = [normalize_text(column.label), normalize_text(column.key.replace("_", " "))]
    ranked: list[tuple[str, float]] = []
    for header in sheet.labeled_headers:
        norm = normalize_text(header)
        fuzzy = max(fuzz.token_set_ratio(norm, t) for t in targets) / 100 if norm else 0.0
        score = max(score_header_vs_column(header, column, config), fuzzy)
        if score > 0:
            ranked.append((header, round(score, 4)))
    ranked.sort(key=lambda item: item[1], reverse=True)
    return ranked[:limit]
