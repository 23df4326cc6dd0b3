"""Core data models for document fields, extraction results and signing."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class FieldType(str, Enum):
    TEXT = "text"
    DATE = "date"
    EMAIL = "email"
    PHONE = "phone"
    SIGNATURE = "signature"
    CHECKBOX = "checkbox"
    RADIO = "radio"


class FilledBy(str, Enum):
    ADMIN = "admin"
    GUEST = "guest"


class FieldState(str, Enum):
    READ_ONLY = "read_only"
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class DocumentType(str, Enum):
    RENTAL_AGREEMENT = "rental_agreement"
    MANAGEMENT_AGREEMENT = "management_agreement"
    INNKEEPER_AGREEMENT = "innkeeper_agreement"
    CO_HOSTING = "co_hosting"
    OTHER = "other"


class SignerType(str, Enum):
    OWNER = "owner"
    SECOND_OWNER = "second_owner"
    MANAGER = "manager"


# Legacy values seen in stored templates
_FIELD_TYPE_ALIASES = {"textarea": "text"}
_FILLED_BY_ALIASES = {"tenant": "guest", "owner": "guest", "manager": "admin"}


# ---------------------------------------------------------------------------
# Form field
# ---------------------------------------------------------------------------

class FormField(BaseModel):
    """One fillable region on a rendered page.

    Coordinates are percentages of the page (origin top-left); a viewer
    multiplies them by its own page size and zoom ``scale``.
    """

    api_id: str
    label: str = ""
    type: FieldType = FieldType.TEXT
    page: int = 1
    x: float
    y: float
    width: float
    height: float
    filled_by: FilledBy = FilledBy.GUEST
    required: bool = False
    group_name: str | None = None
    category: str = "other"
    original_name: str = ""
    description: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _fold_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _FIELD_TYPE_ALIASES.get(v.lower(), v.lower())
        return v

    @field_validator("filled_by", mode="before")
    @classmethod
    def _fold_role(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _FILLED_BY_ALIASES.get(v.lower(), v.lower())
        return v

    @property
    def id(self) -> str:
        return self.api_id

    def box(self, scale: float = 1.0) -> tuple[float, float, float, float]:
        return (self.x * scale, self.y * scale, self.width * scale, self.height * scale)


class ExtractionResult(BaseModel):
    fields: list[FormField] = Field(default_factory=list)
    text_lines: list[str] = Field(default_factory=list)
    total_pages: int = 0
    has_acroform: bool = False
    document_type: DocumentType = DocumentType.OTHER
    warnings: list[str] = Field(default_factory=list)


class FinalizedDocument(BaseModel):
    """Snapshot produced when a fill session closes."""

    document_id: str = ""
    fields: list[FormField]
    values: dict[str, Any]
    finalized_at: datetime = Field(default_factory=datetime.now)


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------

class Signer(BaseModel):
    name: str
    email: str
    type: SignerType = SignerType.OWNER
    order: int = 1


class SignatureCaptureRequest(BaseModel):
    """Emitted when a signature field is clicked; the caller collects the image."""

    api_id: str
    label: str = ""
    signer_role: FilledBy = FilledBy.GUEST
