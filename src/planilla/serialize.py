"""Output adapters for :class:`~planilla.extract.ExtractedTable`.

Rows can be written as plain records, CSV, TSV, Parquet, pandas DataFrames
and polars DataFrames.  All adapters order columns by the target table
definition and fill columns a row does not carry with nulls.

Usage::

    from planilla.serialize import to_csv, to_pandas, to_records, validate_rows

    records = to_records(extracted, table)
    csv_str = to_csv(extracted, table)
    df = to_pandas(extracted, table)
    report = validate_rows(extracted, table)
    for finding in report.findings:
        print(finding.row_index, finding.column_name, finding.message)

A numeric or int column still holding text that coercion could not parse
is written as text (``object`` in pandas, ``Utf8`` in polars, ``string`` in
Parquet) so that text is not lost.

Validation is advisory: rows are never dropped or changed, and nothing in
this module raises on cell content.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, ValidationError, create_model

from planilla.extract import ExtractedTable
from planilla.schemas import TargetTableDef

if TYPE_CHECKING:
    import pandas as pd
    import polars as pl


# ─── Type mappings ────────────────────────────────────────────────────────────

# Column type -> Python type for Pydantic validation
_PYTHON_TYPE_MAP: dict[str, type] = {
    "text": str,
    "numeric": float,
    "int": int,
    "date": str,  # dates stay text
}

# Column type -> pandas nullable dtype
_PANDAS_DTYPE_MAP: dict[str, str] = {
    "text": "string",
    "numeric": "Float64",
    "int": "Int64",
    "date": "string",
}

# Column type -> polars dtype (as string for lazy import)
_POLARS_DTYPE_MAP: dict[str, str] = {
    "text": "Utf8",
    "numeric": "Float64",
    "int": "Int64",
    "date": "Utf8",
}

# Column type -> pyarrow type factory name
_ARROW_TYPE_MAP: dict[str, str] = {
    "text": "string",
    "numeric": "float64",
    "int": "int64",
    "date": "string",
}


# ─── Validation results ──────────────────────────────────────────────────────


@dataclass
class ValidationFinding:
    """A single value validation finding.

    Attributes:
        row_index: Index into ``ExtractedTable.rows``.
        column_name: Target column key.
        value: The extracted value as text (``""`` for missing values).
        message: Human-readable description.
        severity: ``"warning"`` (default) or ``"error"``.
    """

    row_index: int
    column_name: str
    value: str
    message: str
    severity: str = "warning"


@dataclass
class ValidationReport:
    """Advisory validation of one extracted table.

    Attributes:
        table_id: Target table id.
        total_rows: Rows checked.
        valid_count: Rows without findings.
        invalid_count: Rows with at least one finding.
        findings: Individual findings, in row order.
    """

    table_id: str
    total_rows: int = 0
    valid_count: int = 0
    invalid_count: int = 0
    findings: list[ValidationFinding] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.findings


# ─── Internal helpers ─────────────────────────────────────────────────────────


def _build_validator_model(table: TargetTableDef) -> type[BaseModel]:
    """Dynamically create a strict Pydantic model for the rows of *table*.

    All fields are optional; required columns are checked separately so a
    missing value is reported rather than rejected.
    """
    fields: dict[str, tuple[type, Any]] = {}
    for col in table.columns:
        py_type = _PYTHON_TYPE_MAP.get(col.type, str)
        fields[col.key] = (py_type | None, None)

    return create_model(
        "RowValidator",
        __config__=ConfigDict(strict=True, extra="ignore"),
        **fields,
    )


def _column_order(table: TargetTableDef, extracted: ExtractedTable) -> list[str]:
    """Table columns first, then any extra keys found in the rows."""
    cols = [c.key for c in table.columns]
    for row in extracted.rows:
        for key in row:
            if key not in cols:
                cols.append(key)
    return cols


def _text_columns(
    table: TargetTableDef,
    records: list[dict[str, Any]],
    cols: list[str],
) -> set[str]:
    """Columns to write as text: text/date columns, extra keys, typed columns holding text."""
    typed = {c.key: c.type for c in table.columns}
    return {
        key for key in cols
        if typed.get(key, "text") in ("text", "date")
        or any(isinstance(r.get(key), str) for r in records)
    }


def _columnar(records: list[dict[str, Any]], cols: list[str], text_cols: set[str]) -> dict[str, list]:
    """Records → ``{column: values}``, stringifying non-null values of text columns."""
    data: dict[str, list] = {c: [] for c in cols}
    for rec in records:
        for c in cols:
            value = rec.get(c)
            if c in text_cols and value is not None:
                value = str(value)
            data[c].append(value)
    return data


def _delimited(
    extracted: ExtractedTable,
    table: TargetTableDef,
    delimiter: str,
    path: str | Path | None,
) -> str | None:
    records = to_records(extracted, table)
    output = io.StringIO()
    writer = csv.DictWriter(
        output, fieldnames=_column_order(table, extracted), delimiter=delimiter,
        extrasaction="ignore",
    )
    writer.writeheader()
    writer.writerows(records)
    text = output.getvalue()

    if path is not None:
        Path(path).write_text(text, encoding="utf-8")
        return None
    return text


# ─── Public API ───────────────────────────────────────────────────────────────


def to_records(extracted: ExtractedTable, table: TargetTableDef) -> list[dict[str, Any]]:
    """Rows as plain dicts with every table column present, in table order.

    Columns a row does not carry are filled with ``None``.
    """
    cols = _column_order(table, extracted)
    return [{c: row.get(c) for c in cols} for row in extracted.rows]


def to_csv(
    extracted: ExtractedTable,
    table: TargetTableDef,
    *,
    path: str | Path | None = None,
) -> str | None:
    """Serialize rows to CSV (nulls as empty fields).

    Args:
        extracted: Output of :func:`~planilla.extract.apply_mappings`.
        table: Target table for column ordering.
        path: If provided, write to this file path and return None.
            If None, return CSV as a string.

    Returns:
        CSV string if ``path`` is None, otherwise None.
    """
    return _delimited(extracted, table, ",", path)


def to_tsv(
    extracted: ExtractedTable,
    table: TargetTableDef,
    *,
    path: str | Path | None = None,
) -> str | None:
    """Serialize rows to TSV; same contract as :func:`to_csv`."""
    return _delimited(extracted, table, "\t", path)


def to_parquet(extracted: ExtractedTable, table: TargetTableDef, path: str | Path) -> None:
    """Write rows to a Parquet file with a typed ``pyarrow`` schema.

    Requires ``pyarrow`` (``pip install planilla[parquet]``).
    """
    try:
        import pyarrow as pa
        import pyarrow.parquet as pq
    except ImportError as e:
        raise ImportError(
            "pyarrow is required for Parquet export. "
            "Install it with: pip install pyarrow "
            "or: pip install planilla[parquet]"
        ) from e

    records = to_records(extracted, table)
    cols = _column_order(table, extracted)
    text_cols = _text_columns(table, records, cols)

    typed = {c.key: c.type for c in table.columns}
    pa_fields = []
    for c in cols:
        type_name = "string" if c in text_cols else _ARROW_TYPE_MAP.get(typed.get(c, "text"), "string")
        pa_fields.append(pa.field(c, getattr(pa, type_name)()))

    arrow_table = pa.table(_columnar(records, cols, text_cols), schema=pa.schema(pa_fields))
    pq.write_table(arrow_table, str(path))


def to_pandas(extracted: ExtractedTable, table: TargetTableDef) -> pd.DataFrame:
    """Rows as a pandas DataFrame with nullable dtypes.

    ``numeric`` → ``Float64``, ``int`` → ``Int64``, ``text``/``date`` →
    ``string``.  A numeric or int column still holding un-parsed text keeps
    the ``object`` dtype so that text is not lost.
    """
    import pandas as pd

    cols = _column_order(table, extracted)
    df = pd.DataFrame(to_records(extracted, table), columns=cols)

    for col in table.columns:
        dtype = _PANDAS_DTYPE_MAP.get(col.type, "string")
        if dtype in ("Float64", "Int64") and any(
            isinstance(v, str) for v in df[col.key] if v is not None
        ):
            continue
        df[col.key] = df[col.key].astype(dtype)

    return df


def to_polars(extracted: ExtractedTable, table: TargetTableDef) -> pl.DataFrame:
    """Rows as a polars DataFrame typed per column.

    ``numeric`` → ``Float64``, ``int`` → ``Int64``, ``text``/``date`` →
    ``Utf8``; a numeric or int column holding un-parsed text becomes ``Utf8``.

    Requires ``polars`` (``pip install planilla[dataframes]``).
    """
    try:
        import polars as pl
    except ImportError as e:
        raise ImportError(
            "polars is required for DataFrame export. "
            "Install it with: pip install polars "
            "or: pip install planilla[dataframes]"
        ) from e

    records = to_records(extracted, table)
    cols = _column_order(table, extracted)
    text_cols = _text_columns(table, records, cols)

    pl_type_map = {"Utf8": pl.Utf8, "Int64": pl.Int64, "Float64": pl.Float64}
    typed = {c.key: c.type for c in table.columns}
    pl_schema: dict[str, pl.DataType] = {}
    for c in cols:
        dtype_name = "Utf8" if c in text_cols else _POLARS_DTYPE_MAP.get(typed.get(c, "text"), "Utf8")
        pl_schema[c] = pl_type_map[dtype_name]

    return pl.DataFrame(_columnar(records, cols, text_cols), schema=pl_schema)


def validate_rows(extracted: ExtractedTable, table: TargetTableDef) -> ValidationReport:
    """Check rows against the declared column types and required flags.

    Reports required columns left empty and values whose Python type does
    not match the column type (typically text a numeric coercion kept).
    """
    validator = _build_validator_model(table)
    required = [c.key for c in table.columns if c.required]

    findings: list[ValidationFinding] = []
    rows_with_issues: set[int] = set()

    for idx, row in enumerate(extracted.rows):
        for key in required:
            if row.get(key) is None:
                findings.append(ValidationFinding(
                    row_index=idx,
                    column_name=key,
                    value="",
                    message="Required value is missing",
                ))
                rows_with_issues.add(idx)

        try:
            validator(**row)
        except ValidationError as e:
            for error in e.errors():
                loc = error.get("loc", ())
                key = str(loc[0]) if loc else ""
                col = table.column(key)
                expected = col.type if col is not None else "?"
                findings.append(ValidationFinding(
                    row_index=idx,
                    column_name=key,
                    value=str(row.get(key)),
                    message=f"Expected {expected} value: {error.get('msg', '')}",
                ))
            rows_with_issues.add(idx)

    total = len(extracted.rows)
    return ValidationReport(
        table_id=extracted.target_table_id,
        total_rows=total,
        valid_count=total - len(rows_with_issues),
        invalid_count=len(rows_with_issues),
        findings=findings,
    )
