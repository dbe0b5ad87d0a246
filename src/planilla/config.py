"""Tunable constants for header detection and column/table matching.

Every threshold and weight used by the heuristics lives here so it can be
tuned and tested without touching control flow.  Both configs are immutable;
pass a modified copy (``dataclasses.replace``) where a different policy is
needed.
"""

from __future__ import annotations

from dataclasses import dataclass, fields


def _from_dict(cls, data: dict):
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(
            f"Unknown {cls.__name__} option(s): {', '.join(sorted(unknown))}"
        )
    return cls(**data)


@dataclass(frozen=True)
class HeaderDetectionConfig:
    """Weights for :func:`planilla.heuristics.score_row` and header layout choice.

    Attributes:
        scan_limit: Only the first N rows are candidates for the header.
        min_string_cells: Rows with fewer textual cells score 0.
        distinct_weight: Reward for the ratio of distinct labels to row width.
        numeric_penalty: Penalty for the ratio of numeric-looking cells.
        empty_penalty: Penalty for the ratio of empty cells.
        distinct_bonus: Flat bonus per distinct label.
        group_above_ratio: The row above the best row is a group header when
            it scores at least this fraction of the best score.
        sub_below_ratio: The row below the best row is a sub-header when it
            scores more than this fraction of the best score.
    """

    scan_limit: int = 25
    min_string_cells: int = 3
    distinct_weight: float = 100.0
    numeric_penalty: float = 50.0
    empty_penalty: float = 20.0
    distinct_bonus: float = 3.0
    group_above_ratio: float = 0.2
    sub_below_ratio: float = 0.4

    @classmethod
    def from_dict(cls, data: dict) -> HeaderDetectionConfig:
        return _from_dict(cls, data)


@dataclass(frozen=True)
class MatchingConfig:
    """Thresholds for header↔column and sheet↔table scoring.

    Attributes:
        column_accept: Minimum header score for the mapping builder to
            assign a header to a target column.
        table_accept: Minimum sheet score for a sheet to be assigned to its
            best target table (inclusive).
        keyword_overlap_high: Keyword overlap at or above which a header is
            scored on the high band.
        label_exact_score: Score for an exact (normalized) label match.
        key_exact_score: Score for an exact (normalized) key match.
        high_overlap_base: High band score is ``base + overlap * slope``.
        high_overlap_slope: See ``high_overlap_base``.
        low_overlap_slope: Low band score is ``overlap * slope``.
    """

    column_accept: float = 0.15
    table_accept: float = 0.2
    keyword_overlap_high: float = 0.6
    label_exact_score: float = 1.0
    key_exact_score: float = 0.95
    high_overlap_base: float = 0.7
    high_overlap_slope: float = 0.2
    low_overlap_slope: float = 0.6

    @classmethod
    def from_dict(cls, data: dict) -> MatchingConfig:
        return _from_dict(cls, data)


DEFAULT_HEADER_CONFIG = HeaderDetectionConfig()
DEFAULT_MATCHING_CONFIG = MatchingConfig()
