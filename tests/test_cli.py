"""Command-line entry points."""
import json

import fitz
from typer.testing import CliRunner

from conftest import make_pdf
from peachhaus.cli import app

runner = CliRunner()


def _pdf(tmp_path):
    path = tmp_path / "lease.pdf"
    path.write_bytes(make_pdf(widgets=[("Tenant Name", fitz.PDF_WIDGET_TYPE_TEXT, (100, 100, 300, 120))]))
    return path


def test_extract_lists_fields(tmp_path):
    result = runner.invoke(app, ["extract", str(_pdf(tmp_path))])
    assert result.exit_code == 0, result.output
    assert "Fields (1)" in result.output
    assert "No signer (guest) signature field found" in result.output


def test_fill_writes_flattened_pdf(tmp_path):
    pdf = _pdf(tmp_path)
    values = tmp_path / "values.json"
    values.write_text(json.dumps({"tenant_name": "Jane Guest"}))
    out = tmp_path / "filled.pdf"

    result = runner.invoke(app, ["fill", str(pdf), str(values), "--out", str(out)])
    assert result.exit_code == 0, result.output
    assert "Wrote 1 values" in result.output
    doc = fitz.open(str(out))
    try:
        assert "Jane Guest" in doc[0].get_text()
    finally:
        doc.close()


def test_fill_reports_unknown_fields(tmp_path):
    values = tmp_path / "values.json"
    values.write_text(json.dumps({"not_a_field": "x"}))
    result = runner.invoke(app, ["fill", str(_pdf(tmp_path)), str(values)])
    assert result.exit_code == 1
    assert "Unknown field: not_a_field" in result.output


def test_cleanup_on_empty_database():
    result = runner.invoke(app, ["cleanup"])
    assert result.exit_code == 0, result.output
    assert "Expenses deleted: 0" in result.output


def test_gmail_health_not_connected():
    result = runner.invoke(app, ["gmail-health"])
    assert result.exit_code == 0
    assert "not_connected" in result.output
