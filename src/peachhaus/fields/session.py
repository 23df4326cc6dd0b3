"""Fill session: the owned value map for one in-progress document fill.

Field values never live on the fields or their renderers. The session
holds a single ``values`` dict keyed by ``api_id`` and is the one place
that enforces write permission, radio-group exclusion, required fields
and finalization.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterable

from peachhaus.errors import (
    FieldPermissionError,
    InvalidFieldValue,
    MissingRequiredFields,
    SessionClosed,
    UnknownField,
)
from peachhaus.fields.flatten import signature_image
from peachhaus.models import FieldType, FilledBy, FinalizedDocument, FormField

log = logging.getLogger(__name__)

DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m-%d-%Y", "%m/%d/%y", "%B %d, %Y", "%b %d, %Y")
TRUTHY = {"true", "yes", "on", "1", "x"}
FALSY = {"false", "no", "off", "0", ""}


def is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def to_iso_date(value: date | datetime | str) -> str:
    """Normalize a picked or typed date to ``yyyy-MM-dd``."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        text = value.strip()
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date().isoformat()
            except ValueError:
                continue
        try:
            return datetime.fromisoformat(text).date().isoformat()
        except ValueError:
            pass
    raise InvalidFieldValue(f"Not a date: {value!r}")


def _coerce(field: FormField, value: Any) -> Any:
    if value is None:
        return None
    if field.type in (FieldType.CHECKBOX, FieldType.RADIO):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in TRUTHY | FALSY:
            return value.strip().lower() in TRUTHY
        raise InvalidFieldValue(f"{field.api_id} expects true/false, got {value!r}")
    if field.type is FieldType.DATE:
        if isinstance(value, str) and not value.strip():
            return ""
        return to_iso_date(value)
    if field.type is FieldType.SIGNATURE:
        if not isinstance(value, str):
            raise InvalidFieldValue(f"{field.api_id} expects a signature image or typed name")
        signature_image(value)
        return value
    if not isinstance(value, str):
        return str(value)
    return value


class FillSession:
    """In-memory value map for one signing or editing visit.

    ``initial_values`` (admin pre-fill, saved drafts) are loaded without a
    permission check; every later write goes through :meth:`set_value`.
    """

    def __init__(self, fields: Iterable[FormField], initial_values: dict[str, Any] | None = None,
                 document_id: str = ""):
        self.document_id = document_id
        self.fields: dict[str, FormField] = {f.api_id: f for f in fields}
        self.values: dict[str, Any] = {}
        self.closed = False
        for api_id, value in (initial_values or {}).items():
            if api_id in self.fields:
                self._apply(self.fields[api_id], value)

    # ── Writes ──

    def field(self, api_id: str) -> FormField:
        try:
            return self.fields[api_id]
        except KeyError:
            raise UnknownField(api_id) from None

    def set_value(self, api_id: str, value: Any, role: FilledBy | str) -> Any:
        """Write one value; returns the stored (normalized) value."""
        if self.closed:
            raise SessionClosed("Session already finalized")
        field = self.field(api_id)
        role = FilledBy(role)
        if field.filled_by is not role:
            raise FieldPermissionError(api_id, field.filled_by.value, role.value)
        return self._apply(field, value)

    def update(self, values: dict[str, Any], role: FilledBy | str):
        for api_id, value in values.items():
            self.set_value(api_id, value, role)

    def _apply(self, field: FormField, value: Any) -> Any:
        value = _coerce(field, value)
        if field.type is FieldType.RADIO and value is True and field.group_name:
            for sibling in self.group(field.group_name):
                if sibling.api_id != field.api_id:
                    self.values[sibling.api_id] = False
        self.values[field.api_id] = value
        return value

    # ── Reads ──

    def get(self, api_id: str, default: Any = None) -> Any:
        return self.values.get(api_id, default)

    def group(self, group_name: str) -> list[FormField]:
        return [f for f in self.fields.values() if f.group_name == group_name]

    def selected(self, group_name: str) -> str | None:
        for f in self.group(group_name):
            if self.values.get(f.api_id) is True:
                return f.api_id
        return None

    def missing_required(self) -> list[str]:
        missing = []
        seen_groups = set()
        for f in self.fields.values():
            if not f.required:
                continue
            if f.type is FieldType.RADIO and f.group_name:
                if f.group_name in seen_groups:
                    continue
                seen_groups.add(f.group_name)
                if self.selected(f.group_name) is None:
                    missing.append(f.group_name)
                continue
            if is_empty(self.values.get(f.api_id)):
                missing.append(f.api_id)
        return missing

    # ── Finalization ──

    def finalize(self) -> FinalizedDocument:
        """Close the session and hand back the filled snapshot.

        Raises MissingRequiredFields while any required field is empty;
        the session stays open so the signer can finish.
        """
        if self.closed:
            raise SessionClosed("Session already finalized")
        missing = self.missing_required()
        if missing:
            raise MissingRequiredFields(missing)
        snapshot = FinalizedDocument(
            document_id=self.document_id,
            fields=list(self.fields.values()),
            values={k: v for k, v in self.values.items() if not is_empty(v)},
        )
        self.values.clear()
        self.closed = True
        log.info("Finalized document %s with %d values", self.document_id or "-", len(snapshot.values))
        return snapshot
