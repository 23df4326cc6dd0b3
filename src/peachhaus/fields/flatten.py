"""Flatten finalized field values onto a PDF.

Writes text, dates, check marks and signature images at each field's
rectangle, removes the interactive widgets and saves a new file. The
flattened PDF is the persistent output of a fill session.
"""

from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path

import fitz  # PyMuPDF

from peachhaus.errors import InvalidFieldValue
from peachhaus.models import FieldType, FinalizedDocument, FormField

log = logging.getLogger(__name__)

INK = (0.05, 0.05, 0.35)
MAX_FONT = 11.0
MIN_FONT = 4.0


def field_rect(field: FormField, page) -> fitz.Rect:
    """Page-percentage coordinates back to points."""
    pr = page.rect
    x0 = pr.x0 + field.x / 100 * pr.width
    y0 = pr.y0 + field.y / 100 * pr.height
    return fitz.Rect(x0, y0, x0 + field.width / 100 * pr.width, y0 + field.height / 100 * pr.height)


def decode_data_url(value: str) -> bytes | None:
    """Image bytes from a ``data:image/...;base64,`` URL, else None."""
    if not value.startswith("data:image/"):
        return None
    _, _, payload = value.partition(",")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidFieldValue("Signature image is not valid base64") from e


def signature_image(value: str) -> bytes | None:
    """Decoded image of a signature data URL, or None for a typed signature.

    Raises InvalidFieldValue unless PyMuPDF can read the image.
    """
    image = decode_data_url(value)
    if image is None:
        return None
    if not image:
        raise InvalidFieldValue("Signature image is empty")
    try:
        fitz.Pixmap(image)
    except Exception as e:
        raise InvalidFieldValue("Signature image could not be read") from e
    return image


def _fit_text(page, rect: fitz.Rect, text: str, fontname: str = "helv"):
    """Shrink the font until the text fits the box."""
    size = min(MAX_FONT, max(rect.height * 0.75, MIN_FONT))
    while size >= MIN_FONT:
        rc = page.insert_textbox(rect, text, fontsize=size, fontname=fontname, color=INK)
        if rc >= 0:
            return
        size -= 0.5
    # Box too small for any readable size: write on the baseline instead
    page.insert_text((rect.x0 + 1, rect.y1 - 1), text, fontsize=MIN_FONT, fontname=fontname, color=INK)


def _draw_check(page, rect: fitz.Rect):
    inset = min(rect.width, rect.height) * 0.2
    r = fitz.Rect(rect.x0 + inset, rect.y0 + inset, rect.x1 - inset, rect.y1 - inset)
    page.draw_line(r.tl, r.br, color=INK, width=1.2)
    page.draw_line(r.bl, r.tr, color=INK, width=1.2)


def draw_value(page, field: FormField, value) -> None:
    rect = field_rect(field, page)
    if field.type in (FieldType.CHECKBOX, FieldType.RADIO):
        if value is True:
            _draw_check(page, rect)
        return
    if field.type is FieldType.SIGNATURE:
        image = signature_image(value)
        if image is not None:
            page.insert_image(rect, stream=image, keep_proportion=True)
        else:
            _fit_text(page, rect, str(value), fontname="tiit")  # typed signature
        return
    _fit_text(page, rect, str(value))


def flatten(source_pdf: str | Path | bytes, document: FinalizedDocument,
            output_path: str | Path) -> Path:
    """Write the finalized values onto a copy of ``source_pdf``."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if isinstance(source_pdf, (bytes, bytearray)):
        doc = fitz.open(stream=bytes(source_pdf), filetype="pdf")
    else:
        doc = fitz.open(str(source_pdf))

    written = 0
    try:
        for page in doc:
            for widget in list(page.widgets()):
                page.delete_widget(widget)
        for field in document.fields:
            if field.api_id not in document.values:
                continue
            if field.page < 1 or field.page > doc.page_count:
                log.warning("Field %s points at missing page %d", field.api_id, field.page)
                continue
            draw_value(doc[field.page - 1], field, document.values[field.api_id])
            written += 1
        doc.save(str(output_path), garbage=3, deflate=True)
    finally:
        doc.close()

    log.info("Flattened %d values into %s", written, output_path)
    return output_path
