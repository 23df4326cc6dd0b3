"""PDF field extraction with PyMuPDF.

Two sources of field rectangles, both read from the PDF itself:

1. Form widgets (AcroForm annotations) give exact rectangles.
2. Pages without widgets fall back to text-layout evidence: underscore
   blanks after a label, checkbox glyphs, package percentage rows and
   standalone role labels (``OWNER:``). Every rectangle comes from the
   characters on the page.

Nothing is ever placed at a guessed default position. A document with
neither widgets nor text evidence yields no fields and a warning.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import fitz  # PyMuPDF

from peachhaus.errors import ExtractionError
from peachhaus.fields.semantics import (
    detect_document_type,
    find_semantics,
    find_semantics_from_label,
    humanize_field_name,
    sanitize_api_id,
)
from peachhaus.models import ExtractionResult, FieldType, FilledBy, FormField

log = logging.getLogger(__name__)

# ── Patterns ─────────────────────────────────────────────────────────────────

UNDERLINE_RUN = re.compile(r"_{4,}")
CHECKBOX_GLYPHS = "☐□◯○◻▢"
PACKAGE_PCT = re.compile(r"(\d{1,2})\s*%")
ROLE_LABEL = re.compile(r"^(OWNER|TENANT|LANDLORD|MANAGER|HOST|GUEST|AGENT)\s*:?\s*$", re.I)

ADMIN_ROLES = {"landlord", "manager", "host", "agent"}


# ── Geometry ─────────────────────────────────────────────────────────────────

def _to_percent(rect, page_rect) -> tuple[float, float, float, float]:
    """Convert a rect in points to page percentages, clipped to the page."""
    r = fitz.Rect(rect) & page_rect
    pw, ph = page_rect.width, page_rect.height
    x = (r.x0 - page_rect.x0) / pw * 100
    y = (r.y0 - page_rect.y0) / ph * 100
    w = r.width / pw * 100
    h = r.height / ph * 100
    return round(x, 2), round(y, 2), round(w, 2), round(h, 2)


def _union(bboxes) -> fitz.Rect:
    r = fitz.Rect(bboxes[0])
    for b in bboxes[1:]:
        r |= fitz.Rect(b)
    return r


class _IdRegistry:
    """Hands out unique api_ids; a collision gets a ``_{page}_{index}`` suffix."""

    def __init__(self):
        self.used: set[str] = set()

    def claim(self, api_id: str, page: int, index: int) -> str:
        if api_id in self.used:
            api_id = f"{api_id}_{page}_{index}"
        self.used.add(api_id)
        return api_id


# ── Widgets ──────────────────────────────────────────────────────────────────

def _widget_type(widget) -> FieldType | None:
    ft = widget.field_type
    if ft == fitz.PDF_WIDGET_TYPE_SIGNATURE:
        return FieldType.SIGNATURE
    if ft == fitz.PDF_WIDGET_TYPE_CHECKBOX:
        return FieldType.CHECKBOX
    if ft == fitz.PDF_WIDGET_TYPE_RADIOBUTTON:
        return FieldType.RADIO
    if ft in (fitz.PDF_WIDGET_TYPE_TEXT, fitz.PDF_WIDGET_TYPE_COMBOBOX, fitz.PDF_WIDGET_TYPE_LISTBOX):
        name = (widget.field_name or "").lower()
        if "date" in name:
            return FieldType.DATE
        if "email" in name:
            return FieldType.EMAIL
        if "phone" in name:
            return FieldType.PHONE
        return FieldType.TEXT
    return None  # push buttons carry no value


def extract_widget_fields(page, page_num: int, ids: _IdRegistry, start_index: int = 0) -> list[FormField]:
    """Extract form widgets from a page."""
    fields = []
    for widget in page.widgets():
        ftype = _widget_type(widget)
        if ftype is None:
            continue
        name = widget.field_name or ""
        sem = find_semantics(name, ftype)

        group = None
        if ftype is FieldType.RADIO:
            group = name or f"radio_p{page_num}"
            on_state = widget.on_state()
            base = sanitize_api_id(f"{group}_{on_state}") if on_state not in (None, True, False) else ""
            api_id = base or sanitize_api_id(group) or f"field_p{page_num}_{start_index + len(fields)}"
            label = humanize_field_name(str(on_state)) if isinstance(on_state, str) else humanize_field_name(name)
        else:
            api_id = (sem.api_id if sem else "") or sanitize_api_id(name) or f"field_p{page_num}_{start_index + len(fields)}"
            label = sem.label if sem else humanize_field_name(name)

        api_id = ids.claim(api_id, page_num, start_index + len(fields))
        x, y, w, h = _to_percent(widget.rect, page.rect)
        required = bool(widget.field_flags & fitz.PDF_FIELD_IS_REQUIRED)

        fields.append(FormField(
            api_id=api_id,
            label=label,
            type=sem.type if sem and ftype not in (FieldType.CHECKBOX, FieldType.RADIO) else ftype,
            page=page_num,
            x=x, y=y, width=w, height=h,
            filled_by=sem.filled_by if sem else FilledBy.ADMIN,
            category=sem.category if sem else "other",
            required=(sem.required if sem else False) or required,
            group_name=group,
            original_name=name,
            description=widget.field_label or "",
        ))
    return fields


# ── Text layout fallback ─────────────────────────────────────────────────────

def _page_lines(page) -> list[dict]:
    """Collect text lines with per-character boxes."""
    lines = []
    raw = page.get_text("rawdict", flags=fitz.TEXT_PRESERVE_WHITESPACE)
    for block in raw["blocks"]:
        if block["type"] != 0:
            continue
        for line in block.get("lines", []):
            chars = [ch for span in line.get("spans", []) for ch in span.get("chars", [])]
            text = "".join(ch["c"] for ch in chars)
            if text.strip():
                lines.append({"text": text, "chars": chars, "bbox": line["bbox"]})
    return lines


def _underline_fields(line, page, page_num, ids, start_index) -> list[FormField]:
    fields = []
    text = line["text"]
    prev_end = 0
    for m in UNDERLINE_RUN.finditer(text):
        label_text = text[prev_end:m.start()].strip().rstrip(":").strip()
        prev_end = m.end()
        if not label_text:
            continue
        sem = find_semantics_from_label(label_text)
        rect = _union([line["chars"][i]["bbox"] for i in range(m.start(), m.end())])
        # Underscore glyph boxes are short; give the blank the line's full height
        rect.y0 = min(rect.y0, line["bbox"][1])
        rect.y1 = max(rect.y1, line["bbox"][3])
        x, y, w, h = _to_percent(rect, page.rect)
        index = start_index + len(fields)
        api_id = ids.claim((sem.api_id if sem else sanitize_api_id(label_text)) or f"field_p{page_num}_{index}",
                           page_num, index)
        fields.append(FormField(
            api_id=api_id,
            label=sem.label if sem else humanize_field_name(label_text),
            type=sem.type if sem else FieldType.TEXT,
            page=page_num,
            x=x, y=y, width=w, height=h,
            filled_by=sem.filled_by if sem else FilledBy.ADMIN,
            category=sem.category if sem else "other",
            required=sem.required if sem else False,
            original_name=label_text,
        ))
    return fields


def _checkbox_field(line, page, page_num, ids, start_index) -> FormField | None:
    text = line["text"]
    pos = next((i for i, ch in enumerate(text) if ch in CHECKBOX_GLYPHS), None)
    if pos is None:
        return None
    after = text[pos + 1:].strip()
    if not after:
        return None
    x, y, w, h = _to_percent(line["chars"][pos]["bbox"], page.rect)
    index = start_index

    pkg = PACKAGE_PCT.search(after)
    if pkg:
        api_id = f"package_{pkg.group(1)}"
        if api_id in ids.used:
            return None
        ids.claim(api_id, page_num, index)
        return FormField(
            api_id=api_id, label=f"{pkg.group(1)}% Package", type=FieldType.RADIO,
            page=page_num, x=x, y=y, width=w, height=h,
            filled_by=FilledBy.ADMIN, category="package", required=True,
            group_name="package_selection", original_name=after[:50],
        )

    api_id = sanitize_api_id(after[:30]) or f"checkbox_{page_num}_{index}"
    if api_id in ids.used:
        return None
    ids.claim(api_id, page_num, index)
    return FormField(
        api_id=api_id, label=after[:50], type=FieldType.CHECKBOX,
        page=page_num, x=x, y=y, width=w, height=h,
        filled_by=FilledBy.ADMIN, category="acknowledgment", original_name=after[:50],
    )


def _role_signature_field(line, page, page_num, ids, start_index) -> FormField | None:
    m = ROLE_LABEL.match(line["text"].strip())
    if not m:
        return None
    role = m.group(1).lower()
    if role == "owner":
        # In management agreements the owner is the signing client
        api_id, label, filled_by = "owner_signature", "Owner Signature", FilledBy.GUEST
    elif role in ADMIN_ROLES:
        api_id, label, filled_by = f"{role}_signature", f"{role.capitalize()} Signature", FilledBy.ADMIN
    elif role == "tenant":
        api_id, label, filled_by = "tenant_signature", "Tenant Signature", FilledBy.GUEST
    else:
        api_id, label, filled_by = "guest_signature", "Guest Signature", FilledBy.GUEST
    if api_id in ids.used:
        return None
    ids.claim(api_id, page_num, start_index)
    x, y, w, h = _to_percent(line["bbox"], page.rect)
    return FormField(
        api_id=api_id, label=label, type=FieldType.SIGNATURE, page=page_num,
        x=x, y=y, width=w, height=h, filled_by=filled_by,
        category="signature", required=True, original_name=line["text"].strip(),
    )


def extract_text_fields(page, page_num: int, ids: _IdRegistry, start_index: int = 0,
                        lines: list[dict] | None = None) -> list[FormField]:
    """Detect fields on a page without widgets from its text layout."""
    fields: list[FormField] = []
    for line in lines if lines is not None else _page_lines(page):
        if UNDERLINE_RUN.search(line["text"]):
            fields.extend(_underline_fields(line, page, page_num, ids, start_index + len(fields)))
        cb = _checkbox_field(line, page, page_num, ids, start_index + len(fields))
        if cb:
            fields.append(cb)
        sig = _role_signature_field(line, page, page_num, ids, start_index + len(fields))
        if sig:
            fields.append(sig)
    return fields


# ── Document level ───────────────────────────────────────────────────────────

def _open(source: str | Path | bytes) -> fitz.Document:
    try:
        if isinstance(source, (bytes, bytearray)):
            return fitz.open(stream=bytes(source), filetype="pdf")
        return fitz.open(str(source))
    except (RuntimeError, ValueError, FileNotFoundError) as e:
        raise ExtractionError(f"Could not open PDF: {e}") from e


def signature_warnings(fields: list[FormField]) -> list[str]:
    """Report missing signer-side or admin-side signature fields."""
    warnings = []
    sigs = [f for f in fields if f.type is FieldType.SIGNATURE]
    if not any(f.filled_by is FilledBy.GUEST for f in sigs):
        warnings.append("No signer (guest) signature field found")
    if not any(f.filled_by is FilledBy.ADMIN for f in sigs):
        warnings.append("No admin signature field found")
    return warnings


def extract_fields(source: str | Path | bytes) -> ExtractionResult:
    """Extract all fields from a PDF given as a path or raw bytes."""
    doc = _open(source)
    if not doc.is_pdf:
        doc.close()
        raise ExtractionError("Input is not a PDF")

    result = ExtractionResult(total_pages=len(doc))
    ids = _IdRegistry()
    try:
        for pno in range(len(doc)):
            page = doc[pno]
            page_num = pno + 1
            lines = _page_lines(page)
            result.text_lines.extend(ln["text"].strip() for ln in lines)

            widget_fields = extract_widget_fields(page, page_num, ids, len(result.fields))
            if widget_fields:
                result.has_acroform = True
                result.fields.extend(widget_fields)
            else:
                result.fields.extend(extract_text_fields(page, page_num, ids, len(result.fields), lines))
    finally:
        doc.close()

    result.document_type = detect_document_type(result.text_lines)
    if not result.fields:
        result.warnings.append("No form widgets or fillable text patterns found; no fields extracted")
    else:
        result.warnings.extend(signature_warnings(result.fields))

    log.info("Extracted %d fields from %d pages (acroform=%s, type=%s)",
             len(result.fields), result.total_pages, result.has_acroform, result.document_type.value)
    return result
