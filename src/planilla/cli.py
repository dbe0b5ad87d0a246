"""Click CLI for planilla: inspect, extract."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, replace
from pathlib import Path

import click

from planilla.pipeline import ParseResult, parse_workbook
from planilla.schemas import DEFAULT_REGISTRY, SchemaRegistry, UnknownTableError, load_registry
from planilla.serialize import to_csv, to_records, to_tsv
from planilla.session import ImportSession, SessionError
from planilla.xlsx_extractor import WorkbookReadError


def _parse_file(path: str, registry: SchemaRegistry) -> ParseResult:
    file_path = Path(path)
    try:
        return parse_workbook(file_path.read_bytes(), file_name=file_path.name, registry=registry)
    except WorkbookReadError as e:
        raise click.ClickException(str(e)) from e


def _parse_map_option(values: tuple[str, ...]) -> list[tuple[str, str | None]]:
    overrides: list[tuple[str, str | None]] = []
    for value in values:
        key, sep, header = value.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected key=header, got {value!r}", param_hint="--map")
        overrides.append((key.strip(), header.strip() or None))
    return overrides


@click.group()
@click.option("--registry", "registry_path", default=None, type=click.Path(exists=True, dir_okay=False),
              help="JSON file with target table definitions (default: built-in tables)")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, registry_path: str | None, verbose: bool) -> None:
    """Planilla: spreadsheet table inference and column reconciliation."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = load_registry(registry_path) if registry_path else DEFAULT_REGISTRY


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Emit the analyses as JSON")
@click.pass_obj
def inspect(registry: SchemaRegistry, file: str, as_json: bool) -> None:
    """Show each sheet's header row, data rows and best target table."""
    result = _parse_file(file, registry)

    if as_json:
        payload = []
        for sheet, analysis in zip(result.sheets, result.analyses):
            payload.append({
                "sheet_name": sheet.name,
                "headers": sheet.labeled_headers,
                "header_row_index": sheet.header_row_index,
                "data_rows": len(sheet.data_rows),
                "best_target_table_id": analysis.best_target_table_id,
                "match_score": round(analysis.match_score, 4),
                "mappings": [asdict(m) for m in analysis.mappings],
            })
        click.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    for sheet, analysis in zip(result.sheets, result.analyses):
        target = analysis.best_target_table_id or "-"
        click.echo(
            f"{sheet.name}\theader row {sheet.header_row_index + 1}\t"
            f"{len(sheet.data_rows)} rows\t{target}\t{analysis.match_score:.2f}"
        )
    for name in result.skipped_sheets:
        click.echo(f"{name}\tskipped (empty)")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--table", "table_id", required=True, help="Target table id")
@click.option("--sheet", "sheet_name", default=None, help="Sheet to read (default: best match)")
@click.option("--map", "map_values", multiple=True, metavar="KEY=HEADER",
              help="Map a column to a sheet header; an empty header unmaps it (repeatable)")
@click.option("--limit", default=None, type=click.IntRange(min=0), help="Emit at most N rows")
@click.option("--format", "output_format", type=click.Choice(["json", "csv", "tsv"]), default="json",
              show_default=True, help="Output format")
@click.pass_obj
def extract(
    registry: SchemaRegistry,
    file: str,
    table_id: str,
    sheet_name: str | None,
    map_values: tuple[str, ...],
    limit: int | None,
    output_format: str,
) -> None:
    """Extract one target table as JSON rows (or CSV / TSV)."""
    if table_id not in registry:
        raise click.BadParameter(f"unknown table {table_id!r}", param_hint="--table")
    overrides = _parse_map_option(map_values)

    result = _parse_file(file, registry)
    session = ImportSession.start(result, registry=registry)
    try:
        if sheet_name is not None:
            session = session.assign_sheet(table_id, sheet_name)
        for key, header in overrides:
            session = session.override_column(table_id, key, header)
        extracted = session.extract(table_id)
    except (SessionError, UnknownTableError) as e:
        raise click.ClickException(str(e)) from e

    table = registry.get(table_id)
    if output_format != "json":
        if limit is not None:
            extracted = replace(extracted, rows=extracted.rows[:limit])
        writer = to_csv if output_format == "csv" else to_tsv
        click.echo(writer(extracted, table), nl=False)
        return

    rows = to_records(extracted, table)
    if limit is not None:
        rows = rows[:limit]
    click.echo(json.dumps({
        "table": extracted.target_table_id,
        "sheet": extracted.source_sheet_name,
        "row_count": extracted.row_count,
        "mappings": [asdict(m) for m in extracted.mappings],
        "rows": rows,
    }, ensure_ascii=False, indent=2, default=str))
