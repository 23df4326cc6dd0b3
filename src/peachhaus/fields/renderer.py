"""Inline field renderer: per-field interaction state machine.

States::

    pending --focus--> active --commit/blur--> completed | pending
    completed --focus--> active
    any --read-only--> read_only   (terminal)

A renderer never stores a value. It reads from and writes to the owning
:class:`~peachhaus.fields.session.FillSession`, so ``pending`` versus
``completed`` is always derived from the session. Only the read-only flag,
the focus flag and the date picker flag are renderer state.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel

from peachhaus.errors import FieldReadOnly, InvalidTransition
from peachhaus.fields.session import FillSession, is_empty, to_iso_date
from peachhaus.models import FieldState, FieldType, FilledBy, FormField, SignatureCaptureRequest

ADDRESS_HINT = re.compile(r"address|street|mailing", re.I)
COMMIT_KEYS = {"Enter", "Tab"}
TEXT_TYPES = {FieldType.TEXT, FieldType.EMAIL, FieldType.PHONE}


class FieldView(BaseModel):
    """What a viewer needs to draw one field."""

    api_id: str
    state: FieldState
    affordance: str
    x: float
    y: float
    width: float
    height: float
    display_value: Any = None
    required: bool = False
    show_required_marker: bool = False
    picker_open: bool = False
    label: str = ""


def wants_address_autocomplete(field: FormField) -> bool:
    if field.type not in TEXT_TYPES or field.type is FieldType.EMAIL:
        return False
    text = f"{field.label} {field.api_id}"
    if "email" in text.lower():
        return False
    return bool(ADDRESS_HINT.search(text))


class FieldRenderer:
    def __init__(self, field: FormField, session: FillSession,
                 role: FilledBy | str = FilledBy.GUEST, read_only: bool = False):
        self.field = field
        self.session = session
        self.role = FilledBy(role)
        self._read_only = read_only or field.filled_by is not self.role
        self._active = False
        self.picker_open = False

    # ── State ──

    @property
    def value(self) -> Any:
        return self.session.get(self.field.api_id)

    @property
    def state(self) -> FieldState:
        if self._read_only:
            return FieldState.READ_ONLY
        if self._active:
            return FieldState.ACTIVE
        return FieldState.PENDING if is_empty(self.value) else FieldState.COMPLETED

    def set_read_only(self):
        self._read_only = True
        self._active = False
        self.picker_open = False

    def _require_editable(self):
        if self._read_only:
            raise FieldReadOnly(self.field.api_id)

    def _require_active(self, action: str):
        self._require_editable()
        if not self._active:
            raise InvalidTransition(f"{action} on {self.field.api_id} requires the field to be active")

    def _write(self, value: Any) -> Any:
        return self.session.set_value(self.field.api_id, value, self.role)

    # ── Interactions ──

    def click(self) -> SignatureCaptureRequest | None:
        """Handle a user click.

        Checkbox and radio toggle immediately. A signature field becomes
        active and returns a capture request for the caller to fulfil.
        """
        self._require_editable()
        ftype = self.field.type
        if ftype in (FieldType.CHECKBOX, FieldType.RADIO):
            self._write(not bool(self.value))
            return None
        self._active = True
        if ftype is FieldType.SIGNATURE:
            return SignatureCaptureRequest(
                api_id=self.field.api_id, label=self.field.label, signer_role=self.role,
            )
        if ftype is FieldType.DATE:
            self.picker_open = True
        return None

    focus = click

    def type_text(self, text: str):
        self._require_active("Typing")
        if self.field.type not in TEXT_TYPES:
            raise InvalidTransition(f"{self.field.api_id} does not accept typed text")
        self._write(text)

    def key(self, key: str):
        """Enter or Tab commits and blurs a text input; other keys are ignored."""
        self._require_active("Key press")
        if key in COMMIT_KEYS and self.field.type in TEXT_TYPES:
            self.blur()

    def pick_date(self, value) -> str:
        """Commit a date from the picker; stores ``yyyy-MM-dd`` and closes it."""
        self._require_active("Picking a date")
        if self.field.type is not FieldType.DATE:
            raise InvalidTransition(f"{self.field.api_id} is not a date field")
        stored = self._write(to_iso_date(value))
        self.picker_open = False
        self._active = False
        return stored

    def capture_signature(self, data_url: str):
        self._require_active("Signature capture")
        if self.field.type is not FieldType.SIGNATURE:
            raise InvalidTransition(f"{self.field.api_id} is not a signature field")
        self._write(data_url)
        self._active = False

    def blur(self):
        """Leave the active state; the session decides completed vs pending."""
        if self._read_only:
            return
        self._active = False
        self.picker_open = False

    commit = blur

    # ── Rendering ──

    def affordance(self) -> str:
        ftype = self.field.type
        if self._read_only:
            if ftype is FieldType.SIGNATURE and isinstance(self.value, str) and self.value:
                return "signature_image"
            return "lock"
        if ftype is FieldType.SIGNATURE:
            return "signature_image" if not is_empty(self.value) else "signature_pad"
        if ftype is FieldType.DATE:
            return "calendar"
        if ftype is FieldType.CHECKBOX:
            return "checkbox"
        if ftype is FieldType.RADIO:
            return "radio"
        return "address_autocomplete" if wants_address_autocomplete(self.field) else "input"

    def render(self, scale: float = 1.0) -> FieldView:
        x, y, w, h = self.field.box(scale)
        state = self.state
        return FieldView(
            api_id=self.field.api_id,
            state=state,
            affordance=self.affordance(),
            x=x, y=y, width=w, height=h,
            display_value=self.value,
            required=self.field.required,
            show_required_marker=self.field.required and state is not FieldState.COMPLETED,
            picker_open=self.picker_open,
            label=self.field.label,
        )


def build_renderers(session: FillSession, role: FilledBy | str,
                    read_only: bool = False) -> dict[str, FieldRenderer]:
    """One renderer per session field, all sharing the session's value map."""
    return {
        api_id: FieldRenderer(field, session, role=role, read_only=read_only)
        for api_id, field in session.fields.items()
    }
