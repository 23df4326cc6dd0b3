"""Field extraction, semantic labeling and flattening."""
import fitz
import pytest

from conftest import make_pdf
from peachhaus.errors import ExtractionError
from peachhaus.fields.extractor import CHECKBOX_GLYPHS, _IdRegistry, extract_fields, extract_text_fields
from peachhaus.fields.flatten import flatten
from peachhaus.fields.semantics import (
    detect_document_type,
    find_semantics,
    humanize_field_name,
    sanitize_api_id,
)
from peachhaus.fields.session import FillSession
from peachhaus.models import DocumentType, FieldType, FilledBy


# ── Semantics ────────────────────────────────────────────────────────────────

def test_semantics_match_widget_names():
    assert find_semantics("TenantSignature").api_id == "tenant_signature"
    assert find_semantics("Lease_Start_Date").api_id == "lease_start_date"
    assert find_semantics("owner_sign", FieldType.SIGNATURE).filled_by is FilledBy.ADMIN


def test_signature_widgets_only_match_signature_entries():
    assert find_semantics("tenant_name", FieldType.SIGNATURE) is None


def test_name_helpers():
    assert sanitize_api_id("Tenant Name (Print)") == "tenant_name_print"
    assert humanize_field_name("tenantName") == "Tenant Name"
    assert humanize_field_name("") == "Field"


def test_document_type_detection():
    lines = ["PROPERTY MANAGEMENT AGREEMENT", "The management fee shall be 18%"]
    assert detect_document_type(lines) is DocumentType.MANAGEMENT_AGREEMENT
    assert detect_document_type(["Grocery list"]) is DocumentType.OTHER


# ── Extraction ───────────────────────────────────────────────────────────────

def test_widget_fields():
    pdf = make_pdf(widgets=[
        ("Tenant Name", fitz.PDF_WIDGET_TYPE_TEXT, (100, 100, 300, 120)),
        ("Lease Start Date", fitz.PDF_WIDGET_TYPE_TEXT, (100, 140, 300, 160)),
        ("Pets Allowed", fitz.PDF_WIDGET_TYPE_CHECKBOX, (100, 180, 112, 192), fitz.PDF_FIELD_IS_REQUIRED),
    ])
    result = extract_fields(pdf)
    by_id = {f.api_id: f for f in result.fields}

    assert result.has_acroform
    assert result.total_pages == 1
    assert set(by_id) == {"tenant_name", "lease_start_date", "pets_allowed"}
    assert by_id["lease_start_date"].type is FieldType.DATE
    assert by_id["pets_allowed"].type is FieldType.CHECKBOX
    assert by_id["pets_allowed"].required

    name = by_id["tenant_name"]
    assert name.filled_by is FilledBy.ADMIN
    assert name.x == pytest.approx(100 / 612 * 100, abs=0.01)
    assert name.y == pytest.approx(100 / 792 * 100, abs=0.01)
    assert name.width == pytest.approx(200 / 612 * 100, abs=0.01)
    assert "No signer (guest) signature field found" in result.warnings


def test_text_fallback_uses_underline_runs_and_role_labels():
    pdf = make_pdf(lines=[
        "PROPERTY MANAGEMENT AGREEMENT",
        "The owner agrees to the management fee below.",
        "Tenant Name: ____________________",
        "OWNER:",
        "MANAGER:",
    ])
    result = extract_fields(pdf)
    by_id = {f.api_id: f for f in result.fields}

    assert not result.has_acroform
    assert result.document_type is DocumentType.MANAGEMENT_AGREEMENT
    assert by_id["tenant_name"].type is FieldType.TEXT
    assert by_id["owner_signature"].filled_by is FilledBy.GUEST
    assert by_id["manager_signature"].filled_by is FilledBy.ADMIN
    assert result.warnings == []
    for f in result.fields:
        assert 0 <= f.x <= 100 and 0 <= f.y <= 100
        assert f.x + f.width <= 100.01 and f.y + f.height <= 100.01


def test_radio_widgets_group_by_field_name():
    doc = fitz.open()
    page = doc.new_page(width=612, height=792)
    for i, y in enumerate((100, 130)):
        w = fitz.Widget()
        w.field_name = "Package"
        w.field_type = fitz.PDF_WIDGET_TYPE_RADIOBUTTON
        w.rect = fitz.Rect(100, y, 112, y + 12)
        w.field_value = i == 0
        page.add_widget(w)
    w = fitz.Widget()
    w.field_name = "Pets Allowed"
    w.field_type = fitz.PDF_WIDGET_TYPE_CHECKBOX
    w.rect = fitz.Rect(100, 180, 112, 192)
    page.add_widget(w)
    pdf = doc.tobytes()
    doc.close()

    fields = extract_fields(pdf).fields
    radios = [f for f in fields if f.type is FieldType.RADIO]
    assert len(radios) == 2
    assert {f.group_name for f in radios} == {"Package"}
    assert len({f.api_id for f in radios}) == 2
    assert all(f.original_name == "Package" for f in radios)
    assert [f.group_name for f in fields if f.type is FieldType.CHECKBOX] == [None]


def test_duplicate_labels_get_page_index_suffix():
    pdf = make_pdf(lines=["Tenant Name: ____________", "Tenant Name: ____________"])
    ids = [f.api_id for f in extract_fields(pdf).fields]
    assert ids[0] == "tenant_name"
    assert ids[1] == "tenant_name_1_1"


def test_blank_pdf_yields_no_fields_and_a_warning():
    result = extract_fields(make_pdf(pages=2))
    assert result.fields == []
    assert result.total_pages == 2
    assert any("no fields extracted" in w for w in result.warnings)


def test_garbage_input_is_rejected():
    with pytest.raises(ExtractionError):
        extract_fields(b"this is not a pdf")


# ── Flatten ──────────────────────────────────────────────────────────────────

def test_flatten_writes_values_and_removes_widgets(tmp_path):
    pdf = make_pdf(widgets=[
        ("Tenant Name", fitz.PDF_WIDGET_TYPE_TEXT, (100, 100, 300, 120)),
        ("Pets Allowed", fitz.PDF_WIDGET_TYPE_CHECKBOX, (100, 180, 112, 192)),
    ])
    fields = extract_fields(pdf).fields
    s = FillSession(fields, document_id="lease-1")
    s.set_value("tenant_name", "Jane Guest", "admin")
    s.set_value("pets_allowed", True, "admin")

    out = flatten(pdf, s.finalize(), tmp_path / "out" / "lease.pdf")
    assert out.exists()
    doc = fitz.open(str(out))
    try:
        page = doc[0]
        assert "Jane Guest" in page.get_text()
        assert list(page.widgets()) == []
    finally:
        doc.close()


# ── Text layout heuristics ───────────────────────────────────────────────────

def _line(text, y, x=72, advance=6, size=11):
    """A text line as the layout pass reads it, one box per character."""
    chars = [{"c": ch, "bbox": (x + i * advance, y, x + (i + 1) * advance, y + size)}
             for i, ch in enumerate(text)]
    return {"text": text, "chars": chars, "bbox": (x, y, x + len(text) * advance, y + size)}


@pytest.fixture
def blank_page():
    doc = fitz.open()
    yield doc.new_page(width=612, height=792)
    doc.close()


@pytest.mark.parametrize("glyph", list(CHECKBOX_GLYPHS))
def test_checkbox_glyphs_become_checkboxes(blank_page, glyph):
    lines = [_line(f"{glyph} I agree to the house rules", y=200)]
    (field,) = extract_text_fields(blank_page, 1, _IdRegistry(), lines=lines)

    assert field.api_id == "i_agree_to_the_house_rules"
    assert field.type is FieldType.CHECKBOX
    assert field.label == "I agree to the house rules"
    assert field.group_name is None
    # the box sits on the glyph itself
    assert field.x == pytest.approx(72 / 612 * 100, abs=0.01)
    assert field.y == pytest.approx(200 / 792 * 100, abs=0.01)
    assert field.width == pytest.approx(6 / 612 * 100, abs=0.01)


def test_package_rows_become_one_radio_group(blank_page):
    lines = [
        _line("☐ 15% Full Management Package", y=200),
        _line("□ 20% Premium Package", y=230),
        _line("☐ 15% Full Management Package (repeated)", y=260),
        _line("☐ I agree to the house rules", y=290),
        _line("☐", y=320),
    ]
    fields = extract_text_fields(blank_page, 1, _IdRegistry(), lines=lines)
    by_id = {f.api_id: f for f in fields}

    assert list(by_id) == ["package_15", "package_20", "i_agree_to_the_house_rules"]
    for api_id in ("package_15", "package_20"):
        assert by_id[api_id].type is FieldType.RADIO
        assert by_id[api_id].group_name == "package_selection"
        assert by_id[api_id].required
        assert by_id[api_id].filled_by is FilledBy.ADMIN
    assert by_id["package_20"].label == "20% Package"
    assert by_id["i_agree_to_the_house_rules"].type is FieldType.CHECKBOX
