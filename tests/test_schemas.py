"""Tests for the target schema registry and matching configuration."""

from __future__ import annotations

import json

import pytest

from planilla.config import HeaderDetectionConfig, MatchingConfig
from planilla.schemas import (
    DEFAULT_REGISTRY,
    HorizontalSpec,
    RowCountBand,
    SchemaRegistry,
    SheetNameRule,
    TargetColumnDef,
    TargetTableDef,
    UnknownTableError,
    list_target_tables,
    load_registry,
)


class TestDefaultRegistry:
    def test_table_ids_in_order(self) -> None:
        assert [t.id for t in list_target_tables()] == ["pmc_resumen", "pmc_items", "curva_plan"]

    def test_extraction_modes(self) -> None:
        assert DEFAULT_REGISTRY.get("pmc_items").extraction_mode == "vertical"
        assert DEFAULT_REGISTRY.get("curva_plan").extraction_mode == "horizontal"

    def test_column_lookup(self) -> None:
        col = DEFAULT_REGISTRY.get("pmc_resumen").column("nro_certificado")
        assert col.type == "int"
        assert col.keywords[0] == "nro"
        assert DEFAULT_REGISTRY.get("pmc_resumen").column("nope") is None

    def test_unknown_table(self) -> None:
        with pytest.raises(UnknownTableError):
            DEFAULT_REGISTRY.get("missing")
        with pytest.raises(KeyError):
            DEFAULT_REGISTRY.get("missing")

    def test_contains_and_len(self) -> None:
        assert "pmc_items" in DEFAULT_REGISTRY
        assert "missing" not in DEFAULT_REGISTRY
        assert len(DEFAULT_REGISTRY) == 3

    def test_immutable(self) -> None:
        with pytest.raises(AttributeError):
            DEFAULT_REGISTRY.tables = ()


class TestBonuses:
    """Sheet-name rules (last match wins) and row-count bands."""

    def test_resumen_last_rule_wins(self) -> None:
        table = DEFAULT_REGISTRY.get("pmc_resumen")
        assert table.name_bonus("Nota Cert") == 0.3
        assert table.name_bonus("Nota Cert Desac") == 0.1
        assert table.name_bonus("Hoja1") == 0.0

    def test_items_excludes_desacopio(self) -> None:
        table = DEFAULT_REGISTRY.get("pmc_items")
        assert table.name_bonus("Certificación") == 0.3
        assert table.name_bonus("CERTIF. DESAC.") == 0.0

    def test_curva_needs_both_fragments(self) -> None:
        table = DEFAULT_REGISTRY.get("curva_plan")
        assert table.name_bonus("Plan Curva Inversiones") == 0.3
        assert table.name_bonus("Plan de trabajo") == 0.0

    def test_row_bands(self) -> None:
        assert DEFAULT_REGISTRY.get("pmc_resumen").row_bonus(5) == 0.05
        assert DEFAULT_REGISTRY.get("pmc_resumen").row_bonus(6) == 0.0
        assert DEFAULT_REGISTRY.get("pmc_items").row_bonus(11) == 0.05
        assert DEFAULT_REGISTRY.get("pmc_items").row_bonus(10) == 0.0
        assert DEFAULT_REGISTRY.get("curva_plan").row_bonus(6) == 0.05

    def test_band_open_bounds(self) -> None:
        band = RowCountBand(bonus=0.1)
        assert band.matches(0)
        assert band.matches(10_000)


class TestValidation:
    def test_unknown_column_type(self) -> None:
        with pytest.raises(ValueError):
            TargetColumnDef("x", "X", "currency")

    def test_unknown_mode(self) -> None:
        with pytest.raises(ValueError):
            TargetTableDef("t", "T", (), extraction_mode="diagonal")

    def test_duplicate_column_keys(self) -> None:
        col = TargetColumnDef("x", "X")
        with pytest.raises(ValueError):
            TargetTableDef("t", "T", (col, col))

    def test_duplicate_table_ids(self) -> None:
        table = TargetTableDef("t", "T", ())
        with pytest.raises(ValueError):
            SchemaRegistry((table, table))


class TestLoading:
    """Registries declared as JSON."""

    DATA = {
        "tables": [
            {
                "id": "gastos",
                "label": "Gastos",
                "columns": [
                    {"key": "concepto", "label": "Concepto", "keywords": ["concepto", "detalle"]},
                    {"key": "importe", "label": "Importe", "type": "numeric", "required": True},
                    {"key": "obra", "label": "Obra", "cell_ref": "B2"},
                ],
                "name_rules": [{"all_of": ["gasto"], "bonus": 0.25}],
                "row_band": {"min_rows": 2, "bonus": 0.05},
            },
            {
                "id": "curva",
                "label": "Curva",
                "extraction_mode": "horizontal",
                "columns": [{"key": "mes", "label": "Mes"}],
                "horizontal": {"period_key": "mes", "marker_terms": ["real"]},
            },
        ]
    }

    def test_from_dict(self) -> None:
        registry = SchemaRegistry.from_dict(self.DATA)
        gastos = registry.get("gastos")
        assert gastos.column("concepto").keywords == ("concepto", "detalle")
        assert gastos.column("importe").required is True
        assert gastos.column("obra").cell_ref == "B2"
        assert gastos.name_rules == (SheetNameRule(all_of=("gasto",), bonus=0.25),)
        assert gastos.row_band == RowCountBand(bonus=0.05, min_rows=2)
        assert gastos.horizontal == HorizontalSpec()

        curva = registry.get("curva")
        assert curva.horizontal.period_key == "mes"
        assert curva.horizontal.marker_terms == ("real",)

    def test_load_registry(self, tmp_path) -> None:
        path = tmp_path / "registry.json"
        path.write_text(json.dumps(self.DATA), encoding="utf-8")
        assert [t.id for t in load_registry(path)] == ["gastos", "curva"]


class TestConfig:
    def test_from_dict(self) -> None:
        assert MatchingConfig.from_dict({"table_accept": 0.3}).table_accept == 0.3
        assert HeaderDetectionConfig.from_dict({}).scan_limit == 25

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValueError, match="table_acept"):
            MatchingConfig.from_dict({"table_acept": 0.3})
