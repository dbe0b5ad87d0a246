"""Target table definitions: the shapes the engine tries to populate.

A :class:`SchemaRegistry` is an immutable value.  Every public function
that needs one takes it through a ``registry=`` keyword and defaults to
:data:`DEFAULT_REGISTRY`, which holds the three construction-certificate
tables (monthly summary, per-item breakdown and the investment curve).

Registries can also be declared in JSON::

    {
        "tables": [
            {
                "id": "pmc_items",
                "label": "PMC Items",
                "description": "...",
                "extraction_mode": "vertical",
                "name_rules": [{"all_of": ["certif"], "none_of": ["desac"], "bonus": 0.3}],
                "row_band": {"min_rows": 11, "bonus": 0.05},
                "columns": [
                    {"key": "item_code", "label": "Código Item", "type": "text",
                     "keywords": ["item", "codigo", "cod", "rubro"]}
                ]
            }
        ]
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Literal

from planilla.normalize import normalize_text
from planilla.values import COLUMN_TYPES

ExtractionMode = Literal["vertical", "horizontal", "record"]

EXTRACTION_MODES: tuple[str, ...] = ("vertical", "horizontal", "record")


class UnknownTableError(KeyError):
    """Raised when a table id is not part of the registry."""


# ─── Data classes ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TargetColumnDef:
    """One column of a target table.

    Attributes:
        key: Stable snake_case identifier, used as the output record key.
        label: Human display label.
        type: ``"text"``, ``"numeric"``, ``"date"`` or ``"int"``.
        keywords: Matching tokens for the column scorer, in order.
        required: Advisory; reported by validation, never enforced.
        cell_ref: Optional A1 reference read first in ``record`` mode.
    """

    key: str
    label: str
    type: str = "text"
    keywords: tuple[str, ...] = ()
    required: bool = False
    cell_ref: str | None = None

    def __post_init__(self) -> None:
        if self.type not in COLUMN_TYPES:
            raise ValueError(f"Column {self.key!r}: unknown type {self.type!r}")

    @classmethod
    def from_dict(cls, data: dict) -> TargetColumnDef:
        return cls(
            key=data["key"],
            label=data.get("label", data["key"]),
            type=data.get("type", "text"),
            keywords=tuple(data.get("keywords", ())),
            required=bool(data.get("required", False)),
            cell_ref=data.get("cell_ref"),
        )


@dataclass(frozen=True)
class SheetNameRule:
    """Sheet-name bonus: applies when the normalized sheet name contains
    every ``all_of`` fragment and none of the ``none_of`` fragments."""

    all_of: tuple[str, ...]
    bonus: float
    none_of: tuple[str, ...] = ()

    def matches(self, sheet_name: str) -> bool:
        name = normalize_text(sheet_name)
        return all(frag in name for frag in self.all_of) and not any(
            frag in name for frag in self.none_of
        )

    @classmethod
    def from_dict(cls, data: dict) -> SheetNameRule:
        return cls(
            all_of=tuple(data["all_of"]),
            bonus=float(data["bonus"]),
            none_of=tuple(data.get("none_of", ())),
        )


@dataclass(frozen=True)
class RowCountBand:
    """Row-count plausibility bonus for sheets with ``min_rows..max_rows``
    data rows (either bound may be open)."""

    bonus: float
    min_rows: int | None = None
    max_rows: int | None = None

    def matches(self, row_count: int) -> bool:
        if self.min_rows is not None and row_count < self.min_rows:
            return False
        if self.max_rows is not None and row_count > self.max_rows:
            return False
        return True

    @classmethod
    def from_dict(cls, data: dict) -> RowCountBand:
        return cls(
            bonus=float(data["bonus"]),
            min_rows=data.get("min_rows"),
            max_rows=data.get("max_rows"),
        )


@dataclass(frozen=True)
class HorizontalSpec:
    """How a horizontal (time-series) table is pivoted out of one marker row.

    Attributes:
        period_key: Output column receiving the month header text.
        monthly_key: Output column receiving the parsed monthly percentage.
        cumulative_key: Output column receiving the running total.
        period_pattern: Case-insensitive regex identifying month headers.
        marker_terms: Normalized terms that must all appear in the marker row.
    """

    period_key: str = "periodo"
    monthly_key: str = "avance_mensual_pct"
    cumulative_key: str = "avance_acumulado_pct"
    period_pattern: str = r"mes\s*\d+"
    marker_terms: tuple[str, ...] = ("avance", "mensual")

    @classmethod
    def from_dict(cls, data: dict) -> HorizontalSpec:
        kwargs = dict(data)
        if "marker_terms" in kwargs:
            kwargs["marker_terms"] = tuple(kwargs["marker_terms"])
        return cls(**kwargs)


@dataclass(frozen=True)
class TargetTableDef:
    """A target table shape.

    Attributes:
        id: Registry-unique identifier.
        label: Human display label.
        columns: Ordered column definitions; earlier columns claim ambiguous
            headers first when mappings are built.
        extraction_mode: ``"vertical"`` (default), ``"horizontal"`` or
            ``"record"``.
        description: Free text for the caller's UI.
        name_rules: Sheet-name bonuses; the last matching rule decides.
        row_band: Optional row-count plausibility bonus.
        horizontal: Pivot roles for ``"horizontal"`` extraction.
    """

    id: str
    label: str
    columns: tuple[TargetColumnDef, ...]
    extraction_mode: str = "vertical"
    description: str = ""
    name_rules: tuple[SheetNameRule, ...] = ()
    row_band: RowCountBand | None = None
    horizontal: HorizontalSpec = field(default_factory=HorizontalSpec)

    def __post_init__(self) -> None:
        if self.extraction_mode not in EXTRACTION_MODES:
            raise ValueError(
                f"Table {self.id!r}: unknown extraction mode {self.extraction_mode!r}"
            )
        keys = [c.key for c in self.columns]
        if len(keys) != len(set(keys)):
            raise ValueError(f"Table {self.id!r}: duplicate column keys")

    def column(self, key: str) -> TargetColumnDef | None:
        """Return the column with *key*, or None."""
        for col in self.columns:
            if col.key == key:
                return col
        return None

    def name_bonus(self, sheet_name: str) -> float:
        bonus = 0.0
        for rule in self.name_rules:
            if rule.matches(sheet_name):
                bonus = rule.bonus
        return bonus

    def row_bonus(self, row_count: int) -> float:
        if self.row_band is not None and self.row_band.matches(row_count):
            return self.row_band.bonus
        return 0.0

    @classmethod
    def from_dict(cls, data: dict) -> TargetTableDef:
        row_band = data.get("row_band")
        horizontal = data.get("horizontal")
        return cls(
            id=data["id"],
            label=data.get("label", data["id"]),
            description=data.get("description", ""),
            extraction_mode=data.get("extraction_mode", "vertical"),
            columns=tuple(TargetColumnDef.from_dict(c) for c in data["columns"]),
            name_rules=tuple(SheetNameRule.from_dict(r) for r in data.get("name_rules", ())),
            row_band=RowCountBand.from_dict(row_band) if row_band else None,
            horizontal=HorizontalSpec.from_dict(horizontal) if horizontal else HorizontalSpec(),
        )


@dataclass(frozen=True)
class SchemaRegistry:
    """Immutable, ordered catalog of target tables.

    Order matters: when two tables score the same for a sheet, the one
    declared first wins.
    """

    tables: tuple[TargetTableDef, ...]

    def __post_init__(self) -> None:
        ids = [t.id for t in self.tables]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate table ids in registry")

    def __iter__(self) -> Iterator[TargetTableDef]:
        return iter(self.tables)

    def __len__(self) -> int:
        return len(self.tables)

    def __contains__(self, table_id: object) -> bool:
        return any(t.id == table_id for t in self.tables)

    def get(self, table_id: str) -> TargetTableDef:
        """Return the table with *table_id*.

        Raises:
            UnknownTableError: If no such table is registered.
        """
        for table in self.tables:
            if table.id == table_id:
                return table
        raise UnknownTableError(table_id)

    @classmethod
    def from_dict(cls, data: dict) -> SchemaRegistry:
        return cls(tables=tuple(TargetTableDef.from_dict(t) for t in data["tables"]))


# ─── Built-in registry ───────────────────────────────────────────────────────


def _col(key: str, label: str, type: str, *keywords: str) -> TargetColumnDef:
    return TargetColumnDef(key=key, label=label, type=type, keywords=keywords)


PMC_RESUMEN = TargetTableDef(
    id="pmc_resumen",
    label="PMC Resumen",
    description="Resumen mensual del certificado: período, monto, avance acumulado.",
    columns=(
        _col("periodo", "Período", "text", "periodo", "mes", "month", "correspondiente"),
        _col("nro_certificado", "N° Certificado", "int", "nro", "numero", "certificado", "cert", "n°"),
        _col("fecha_certificacion", "Fecha Certificación", "date", "fecha", "certificacion", "date"),
        _col("monto_certificado", "Monto Certificado", "numeric",
             "monto", "importe", "certificado", "pres", "presente", "cert"),
        _col("avance_fisico_acumulado_pct", "Avance Físico Acum. %", "numeric",
             "avance", "fisico", "acumulado", "acum", "pct", "%"),
        _col("monto_acumulado", "Monto Acumulado", "numeric", "monto", "acumulado", "total", "cert"),
    ),
    # "cert desac" is declared last so it overrides "nota cert"
    name_rules=(
        SheetNameRule(all_of=("nota cert",), bonus=0.3),
        SheetNameRule(all_of=("cert desac",), bonus=0.1),
    ),
    row_band=RowCountBand(bonus=0.05, max_rows=5),
)

PMC_ITEMS = TargetTableDef(
    id="pmc_items",
    label="PMC Items",
    description="Desglose por rubro/item del certificado con avances e importes.",
    columns=(
        _col("item_code", "Código Item", "text", "item", "codigo", "cod", "rubro"),
        _col("descripcion", "Descripción", "text", "descripcion", "rubro", "concepto", "detalle"),
        _col("incidencia_pct", "Incidencia %", "numeric", "incidencia", "incd", "inc", "%"),
        _col("monto_rubro", "Monto Rubro", "numeric", "total", "rubro", "$", "monto"),
        _col("avance_anterior_pct", "Avance Anterior %", "numeric", "anterior", "ant", "avance", "prev", "%"),
        _col("avance_periodo_pct", "Avance Período %", "numeric", "presente", "periodo", "avance", "mes", "%"),
        _col("avance_acumulado_pct", "Avance Acumulado %", "numeric", "acumulado", "acum", "avance", "total", "%"),
        _col("monto_anterior", "Monto Anterior $", "numeric", "anterior", "ant", "cert", "importe", "$"),
        _col("monto_presente", "Monto Presente $", "numeric", "presente", "pres", "cert", "importe", "$"),
        _col("monto_acumulado", "Monto Acumulado $", "numeric", "total", "acumulado", "cert", "importe", "$"),
    ),
    name_rules=(SheetNameRule(all_of=("certif",), none_of=("desac",), bonus=0.3),),
    row_band=RowCountBand(bonus=0.05, min_rows=11),
)

CURVA_PLAN = TargetTableDef(
    id="curva_plan",
    label="Curva Plan",
    description=(
        "Curva de inversiones con avance mensual y acumulado "
        "(extracción horizontal desde fila AVANCE MENSUAL)."
    ),
    extraction_mode="horizontal",
    columns=(
        _col("periodo", "Período", "text", "mes", "periodo", "month"),
        _col("avance_mensual_pct", "Avance Mensual %", "numeric", "avance", "mensual", "%"),
        _col("avance_acumulado_pct", "Avance Acumulado %", "numeric", "acumulado", "financiero", "%"),
    ),
    name_rules=(SheetNameRule(all_of=("plan", "curv"), bonus=0.3),),
    row_band=RowCountBand(bonus=0.05, min_rows=6),
)

DEFAULT_REGISTRY = SchemaRegistry(tables=(PMC_RESUMEN, PMC_ITEMS, CURVA_PLAN))


# ─── Public helpers ──────────────────────────────────────────────────────────


def list_target_tables(registry: SchemaRegistry = DEFAULT_REGISTRY) -> list[TargetTableDef]:
    """Enumerate the registry's tables in declaration order."""
    return list(registry.tables)


def load_registry(path: str | Path) -> SchemaRegistry:
    """Load a :class:`SchemaRegistry` from a JSON file (see module docstring)."""
    with open(path, encoding="utf-8") as f:
        return SchemaRegistry.from_dict(json.load(f))
