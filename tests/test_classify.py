"""Tests for header↔column and sheet↔table scoring.

Covers:
A. score_header_vs_column: exact matches, keyword bands, normalization
B. score_sheet_vs_table: coverage, bonuses, clamping
C. Table selection and the acceptance threshold
D. pick_best_sheet

Run with: pytest tests/test_classify.py -v
"""

from __future__ import annotations

import pytest

from planilla.classify import (
    analyze_sheet,
    column_coverage,
    pick_best_sheet,
    score_header_vs_column,
    score_sheet_vs_table,
    select_best_table,
)
from planilla.config import MatchingConfig
from planilla.schemas import (
    DEFAULT_REGISTRY,
    SchemaRegistry,
    SheetNameRule,
    TargetColumnDef,
    TargetTableDef,
)


def _col(*keywords: str, key: str = "campo_x", label: str = "Campo X") -> TargetColumnDef:
    return TargetColumnDef(key=key, label=label, type="text", keywords=keywords)


# =========================================================================
# A. Header ↔ column
# =========================================================================


class TestScoreHeaderVsColumn:
    """score_header_vs_column()."""

    def test_exact_label(self) -> None:
        col = DEFAULT_REGISTRY.get("pmc_resumen").column("monto_certificado")
        assert score_header_vs_column("Monto Certificado", col) == 1.0

    def test_normalization_invariance(self) -> None:
        col = DEFAULT_REGISTRY.get("pmc_resumen").column("monto_certificado")
        scores = {
            score_header_vs_column(h, col)
            for h in ("Monto Certificado", "MONTO  CERTIFICADO", "montó certificadó")
        }
        assert scores == {1.0}

    def test_invariance_on_keyword_band(self) -> None:
        col = DEFAULT_REGISTRY.get("pmc_items").column("monto_presente")
        a = score_header_vs_column("Importe Presente Cert.", col)
        b = score_header_vs_column("IMPORTE   PRÉSENTE  CERT", col)
        assert a == b > 0

    def test_exact_key(self) -> None:
        col = DEFAULT_REGISTRY.get("pmc_resumen").column("nro_certificado")
        assert score_header_vs_column("Nro. Certificado", col) == 0.95

    def test_high_overlap_band(self) -> None:
        col = DEFAULT_REGISTRY.get("pmc_items").column("avance_acumulado_pct")
        # acumulado (contains "acum"), acum, avance, total, % → 5/5
        assert score_header_vs_column("Avance Acum. Total", col) == pytest.approx(0.9)

    def test_overlap_threshold_inclusive(self) -> None:
        col = _col("alfa", "beta", "gama", "delta", "epsilon")
        # 3/5 = 0.6 → high band
        assert score_header_vs_column("alfa beta gama", col) == pytest.approx(0.7 + 0.6 * 0.2)

    def test_low_overlap_band(self) -> None:
        col = _col("alfa", "beta", "gama", "delta")
        assert score_header_vs_column("alfa informe", col) == pytest.approx(0.25 * 0.6)

    def test_keyword_inside_header_word(self) -> None:
        col = _col("cert")
        assert score_header_vs_column("Certificación", col) == pytest.approx(0.9)

    def test_header_word_inside_keyword(self) -> None:
        col = _col("certificado")
        assert score_header_vs_column("Cert", col) == pytest.approx(0.9)

    def test_single_char_words_ignored(self) -> None:
        col = _col("abc")
        assert score_header_vs_column("a b", col) == 0.0

    def test_symbol_only_keyword_matches_any_header(self) -> None:
        col = _col("%")
        assert score_header_vs_column("Descripción", col) == pytest.approx(0.9)

    def test_no_match(self) -> None:
        col = _col("fecha", "date")
        assert score_header_vs_column("Monto", col) == 0.0

    def test_empty_header(self) -> None:
        col = _col("fecha")
        assert score_header_vs_column("", col) == 0.0
        assert score_header_vs_column(" - ", col) == 0.0

    def test_no_keywords(self) -> None:
        assert score_header_vs_column("Fecha", _col()) == 0.0

    def test_custom_config(self) -> None:
        col = DEFAULT_REGISTRY.get("pmc_resumen").column("nro_certificado")
        config = MatchingConfig(key_exact_score=0.8)
        assert score_header_vs_column("nro certificado", col, config) == 0.8


# =========================================================================
# B. Sheet ↔ table
# =========================================================================


class TestScoreSheetVsTable:
    def test_exact_headers_clamped(self, items_sheet) -> None:
        table = DEFAULT_REGISTRY.get("pmc_items")
        assert column_coverage(items_sheet.headers, table) == 1.0
        assert score_sheet_vs_table(items_sheet, table) == 1.0

    def test_bonus_added(self, make_sheet) -> None:
        table = TargetTableDef(
            "t", "T",
            (_col("alfa"),),
            name_rules=(SheetNameRule(all_of=("datos",), bonus=0.05),),
        )
        sheet = make_sheet("Datos 2024", [["alfa uno", "B", "C"], ["1", "2", "3"]])
        assert score_sheet_vs_table(sheet, table) == pytest.approx(0.95)

    def test_sum_clamped_to_one(self, make_sheet) -> None:
        table = TargetTableDef(
            "t", "T",
            (_col("alfa"),),
            name_rules=(SheetNameRule(all_of=("datos",), bonus=0.3),),
        )
        sheet = make_sheet("Datos", [["alfa uno", "B", "C"], ["1", "2", "3"]])
        assert score_sheet_vs_table(sheet, table) == 1.0

    def test_curva_sheet_prefers_curva(self, curva_sheet) -> None:
        scores = {t.id: score_sheet_vs_table(curva_sheet, t) for t in DEFAULT_REGISTRY}
        assert max(scores, key=scores.get) == "curva_plan"
        assert scores["curva_plan"] == pytest.approx(0.5)

    def test_table_without_columns(self, items_sheet) -> None:
        assert score_sheet_vs_table(items_sheet, TargetTableDef("t", "T", ())) == 0.0


# =========================================================================
# C. Selection and threshold
# =========================================================================


class TestSelectBestTable:
    """select_best_table(): 0.2 is accepted, anything below is not."""

    def test_exact_threshold_assigned(self) -> None:
        assert select_best_table({"a": 0.2}) == ("a", 0.2)

    def test_below_threshold_unassigned(self) -> None:
        assert select_best_table({"a": 0.1999999}) == (None, 0.1999999)

    def test_earliest_wins_ties(self) -> None:
        assert select_best_table({"a": 0.5, "b": 0.5})[0] == "a"

    def test_all_zero(self) -> None:
        assert select_best_table({"a": 0.0, "b": 0.0}) == (None, 0.0)

    def test_empty(self) -> None:
        assert select_best_table({}) == (None, 0.0)


class TestAnalyzeSheet:
    """analyze_sheet() with an injected registry."""

    @staticmethod
    def _registry(bonus: float) -> SchemaRegistry:
        table = TargetTableDef(
            "t", "T",
            (_col("zeta"),),
            name_rules=(SheetNameRule(all_of=("datos",), bonus=bonus),),
        )
        return SchemaRegistry((table,))

    def test_boundary_score_assigned(self, make_sheet) -> None:
        sheet = make_sheet("Datos", [["Alfa", "Beta", "Gama"], ["1", "2", "3"]])
        analysis = analyze_sheet(sheet, registry=self._registry(0.2))
        assert analysis.best_target_table_id == "t"
        assert analysis.match_score == 0.2
        assert analysis.is_assigned
        assert [m.target_column_key for m in analysis.mappings] == ["campo_x"]

    def test_just_below_boundary_unassigned(self, make_sheet) -> None:
        sheet = make_sheet("Datos", [["Alfa", "Beta", "Gama"], ["1", "2", "3"]])
        analysis = analyze_sheet(sheet, registry=self._registry(0.199))
        assert analysis.best_target_table_id is None
        assert analysis.match_score == pytest.approx(0.199)
        assert analysis.mappings == []

    def test_table_scores_reported(self, items_sheet) -> None:
        analysis = analyze_sheet(items_sheet)
        assert list(analysis.table_scores) == ["pmc_resumen", "pmc_items", "curva_plan"]
        assert analysis.best_target_table_id == "pmc_items"
        assert analysis.match_score == 1.0


# =========================================================================
# D. pick_best_sheet
# =========================================================================


class TestPickBestSheet:
    def test_picks_matching_sheet(self, items_sheet, curva_sheet) -> None:
        table = DEFAULT_REGISTRY.get("pmc_items")
        assert pick_best_sheet([curva_sheet, items_sheet], table) is items_sheet

    def test_none_below_threshold(self, make_sheet) -> None:
        sheet = make_sheet("Hoja1", [["Alfa", "Beta", "Gama"], ["1", "2", "3"]])
        table = TargetTableDef("t", "T", (_col("zeta"),))
        assert pick_best_sheet([sheet], table) is None

    def test_no_sheets(self) -> None:
        assert pick_best_sheet([], DEFAULT_REGISTRY.get("pmc_items")) is None
