"""Tests for the planilla command line (inspect, extract).

Run with: pytest tests/test_cli.py -v
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from planilla.cli import main


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def workbook(tmp_path: Path, certificate_xlsx: bytes) -> Path:
    path = tmp_path / "certificado.xlsx"
    path.write_bytes(certificate_xlsx)
    return path


class TestInspect:
    def test_text_summary(self, runner: CliRunner, workbook: Path) -> None:
        result = runner.invoke(main, ["inspect", str(workbook)])
        assert result.exit_code == 0, result.output
        lines = result.stdout.splitlines()
        assert lines[0].startswith("Nota Cert\theader row 3\t1 rows\tpmc_resumen\t")
        assert lines[1].startswith("Certificado Items\theader row 1\t12 rows\tpmc_items\t1.00")
        assert "Observaciones" in lines[3] and "\t-\t" in lines[3]
        assert lines[-1] == "Notas\tskipped (empty)"

    def test_json(self, runner: CliRunner, workbook: Path) -> None:
        result = runner.invoke(main, ["inspect", str(workbook), "--json"])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert [p["sheet_name"] for p in payload] == [
            "Nota Cert", "Certificado Items", "Plan Curva", "Observaciones",
        ]
        items = payload[1]
        assert items["best_target_table_id"] == "pmc_items"
        assert items["data_rows"] == 12
        assert items["mappings"][0] == {
            "target_column_key": "item_code",
            "source_header": "Código Item",
            "confidence": 1.0,
            "origin": "auto",
        }
        assert payload[3]["best_target_table_id"] is None

    def test_corrupt_file(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "roto.xlsx"
        path.write_bytes(b"not a workbook")
        result = runner.invoke(main, ["inspect", str(path)])
        assert result.exit_code == 1


class TestExtract:
    def test_items(self, runner: CliRunner, workbook: Path) -> None:
        result = runner.invoke(main, ["extract", str(workbook), "--table", "pmc_items"])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["table"] == "pmc_items"
        assert payload["sheet"] == "Certificado Items"
        assert payload["row_count"] == 12
        assert payload["rows"][0]["monto_presente"] == 50.0

    def test_limit(self, runner: CliRunner, workbook: Path) -> None:
        result = runner.invoke(main, ["extract", str(workbook), "--table", "pmc_items", "--limit", "2"])
        payload = json.loads(result.stdout)
        assert len(payload["rows"]) == 2
        assert payload["row_count"] == 12

    def test_curve(self, runner: CliRunner, workbook: Path) -> None:
        result = runner.invoke(main, ["extract", str(workbook), "--table", "curva_plan"])
        rows = json.loads(result.stdout)["rows"]
        assert [r["periodo"] for r in rows] == ["MES 0", "MES 1", "MES 2"]
        assert [r["avance_acumulado_pct"] for r in rows] == [0, 2.5, 5.5]

    def test_map_overrides(self, runner: CliRunner, workbook: Path) -> None:
        result = runner.invoke(main, [
            "extract", str(workbook), "--table", "pmc_items",
            "--map", "monto_presente=Monto Anterior $",
            "--map", "descripcion=",
        ])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        first = payload["rows"][0]
        assert first["monto_presente"] == 100.0
        assert first["monto_anterior"] is None
        assert first["descripcion"] is None
        origins = {m["target_column_key"]: m["origin"] for m in payload["mappings"]}
        assert origins["monto_presente"] == "user"

    def test_malformed_map(self, runner: CliRunner, workbook: Path) -> None:
        result = runner.invoke(main, ["extract", str(workbook), "--table", "pmc_items", "--map", "oops"])
        assert result.exit_code == 2

    def test_unknown_table(self, runner: CliRunner, workbook: Path) -> None:
        result = runner.invoke(main, ["extract", str(workbook), "--table", "nope"])
        assert result.exit_code == 2

    def test_unknown_sheet(self, runner: CliRunner, workbook: Path) -> None:
        result = runner.invoke(main, ["extract", str(workbook), "--table", "pmc_items", "--sheet", "Nope"])
        assert result.exit_code == 1
        assert "Nope" in result.output

    def test_unknown_header(self, runner: CliRunner, workbook: Path) -> None:
        result = runner.invoke(main, [
            "extract", str(workbook), "--table", "pmc_items", "--map", "descripcion=Zzz",
        ])
        assert result.exit_code == 1

    def test_custom_registry(self, runner: CliRunner, workbook: Path, tmp_path: Path) -> None:
        registry = tmp_path / "registry.json"
        registry.write_text(json.dumps({
            "tables": [{
                "id": "codigos",
                "label": "Códigos",
                "columns": [{"key": "codigo", "label": "Código Item"}],
            }],
        }), encoding="utf-8")
        result = runner.invoke(main, [
            "--registry", str(registry), "extract", str(workbook), "--table", "codigos",
        ])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["sheet"] == "Certificado Items"
        assert payload["rows"][0] == {"codigo": "1.1"}

    def test_csv_format(self, runner: CliRunner, workbook: Path) -> None:
        result = runner.invoke(main, [
            "extract", str(workbook), "--table", "pmc_items", "--format", "csv", "--limit", "1",
        ])
        assert result.exit_code == 0, result.output
        lines = result.stdout.splitlines()
        assert lines[0].startswith("item_code,descripcion,incidencia_pct")
        assert lines[1].startswith("1.1,Rubro 1,8.5,1000.0")
        assert len(lines) == 2
