"""planilla: Infer tables in human-authored spreadsheets and reconcile their columns."""

from planilla.classify import (
    SheetAnalysis,
    analyze_sheet,
    analyze_sheets,
    pick_best_sheet,
    score_header_vs_column,
    score_sheet_vs_table,
)
from planilla.config import (
    DEFAULT_HEADER_CONFIG,
    DEFAULT_MATCHING_CONFIG,
    HeaderDetectionConfig,
    MatchingConfig,
)
from planilla.extract import ExtractedTable, apply_mappings
from planilla.heuristics import HeaderDetection, HeaderLayout, detect_header_row, score_row
from planilla.mapping import (
    ColumnMapping,
    build_mappings,
    mappings_from_selection,
    override_mapping,
    suggest_headers,
)
from planilla.pipeline import ParseResult, RawSheet, parse_sheet, parse_workbook
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
from planilla.session import ImportSession, SessionError
from planilla.values import coerce_value, parse_percent_value
from planilla.xlsx_extractor import (
    MergeRange,
    SheetGrid,
    WorkbookReadError,
    read_workbook,
    resolve_merged_cells,
)


# Output adapters (lazy import keeps pandas and pydantic off the parse path)
def to_records(*args, **kwargs):
    """Rows of an ExtractedTable as plain dicts in table column order."""
    from planilla.serialize import to_records as _to_records
    return _to_records(*args, **kwargs)

def to_csv(*args, **kwargs):
    """Serialize an ExtractedTable to CSV."""
    from planilla.serialize import to_csv as _to_csv
    return _to_csv(*args, **kwargs)

def to_tsv(*args, **kwargs):
    """Serialize an ExtractedTable to TSV."""
    from planilla.serialize import to_tsv as _to_tsv
    return _to_tsv(*args, **kwargs)

def to_parquet(*args, **kwargs):
    """Write an ExtractedTable to a Parquet file (requires pyarrow)."""
    from planilla.serialize import to_parquet as _to_parquet
    return _to_parquet(*args, **kwargs)

def to_pandas(*args, **kwargs):
    """Rows of an ExtractedTable as a pandas DataFrame with nullable dtypes."""
    from planilla.serialize import to_pandas as _to_pandas
    return _to_pandas(*args, **kwargs)

def to_polars(*args, **kwargs):
    """Rows of an ExtractedTable as a polars DataFrame (requires polars)."""
    from planilla.serialize import to_polars as _to_polars
    return _to_polars(*args, **kwargs)

def validate_rows(*args, **kwargs):
    """Advisory type / required-value check of an ExtractedTable."""
    from planilla.serialize import validate_rows as _validate
    return _validate(*args, **kwargs)


__all__ = [
    # Configuration
    "DEFAULT_HEADER_CONFIG",
    "DEFAULT_MATCHING_CONFIG",
    "HeaderDetectionConfig",
    "MatchingConfig",
    # Schemas
    "DEFAULT_REGISTRY",
    "HorizontalSpec",
    "RowCountBand",
    "SchemaRegistry",
    "SheetNameRule",
    "TargetColumnDef",
    "TargetTableDef",
    "UnknownTableError",
    "list_target_tables",
    "load_registry",
    # Loading and parsing
    "MergeRange",
    "SheetGrid",
    "WorkbookReadError",
    "read_workbook",
    "resolve_merged_cells",
    "HeaderDetection",
    "HeaderLayout",
    "detect_header_row",
    "score_row",
    "ParseResult",
    "RawSheet",
    "parse_sheet",
    "parse_workbook",
    # Matching
    "SheetAnalysis",
    "analyze_sheet",
    "analyze_sheets",
    "pick_best_sheet",
    "score_header_vs_column",
    "score_sheet_vs_table",
    "ColumnMapping",
    "build_mappings",
    "mappings_from_selection",
    "override_mapping",
    "suggest_headers",
    # Extraction
    "ExtractedTable",
    "apply_mappings",
    "ImportSession",
    "SessionError",
    "coerce_value",
    "parse_percent_value",
    # Output
    "to_records",
    "to_csv",
    "to_tsv",
    "to_parquet",
    "to_pandas",
    "to_polars",
    "validate_rows",
]
