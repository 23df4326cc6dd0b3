"""Exception hierarchy shared by the field layer, integrations and handlers."""

from __future__ import annotations


class PeachHausError(Exception):
    """Base class for all application errors."""

    status_code = 500


# ---------------------------------------------------------------------------
# Field layer
# ---------------------------------------------------------------------------

class FieldError(PeachHausError):
    status_code = 400


class UnknownField(FieldError):
    def __init__(self, api_id: str):
        super().__init__(f"Unknown field: {api_id}")
        self.api_id = api_id


class FieldReadOnly(FieldError):
    def __init__(self, api_id: str):
        super().__init__(f"Field is read-only: {api_id}")
        self.api_id = api_id


class FieldPermissionError(FieldError):
    status_code = 403

    def __init__(self, api_id: str, filled_by: str, role: str):
        super().__init__(f"Field {api_id} is filled by {filled_by}, not {role}")
        self.api_id = api_id


class InvalidFieldValue(FieldError):
    pass


class InvalidTransition(FieldError):
    pass


class SessionClosed(FieldError):
    status_code = 409


class MissingRequiredFields(FieldError):
    status_code = 422

    def __init__(self, missing: list[str]):
        shown = ", ".join(missing[:3])
        more = f" and {len(missing) - 3} more" if len(missing) > 3 else ""
        noun = "field" if len(missing) == 1 else "fields"
        super().__init__(f"missing required {noun}: {shown}{more}")
        self.missing = missing


class ExtractionError(PeachHausError):
    status_code = 422


# ---------------------------------------------------------------------------
# Integrations / handlers
# ---------------------------------------------------------------------------

class IntegrationError(PeachHausError):
    status_code = 502

    def __init__(self, provider: str, message: str, status: int | None = None):
        detail = f"{provider}: {message}"
        if status is not None:
            detail += f" (HTTP {status})"
        super().__init__(detail)
        self.provider = provider
        self.status = status


class NotConfigured(IntegrationError):
    status_code = 503

    def __init__(self, provider: str):
        super().__init__(provider, "credentials not configured")


class HandlerError(PeachHausError):
    """Raised inside a handler to return ``{"error": message}`` with a status."""

    def __init__(self, status: int, message: str, **extra):
        super().__init__(message)
        self.status_code = status
        self.extra = extra


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------

class SigningError(PeachHausError):
    status_code = 400


class ConsentRequired(SigningError):
    def __init__(self):
        super().__init__("You must agree to sign electronically")


class InvalidSigningToken(SigningError):
    status_code = 404

    def __init__(self):
        super().__init__("Invalid signing link")


class AlreadySigned(SigningError):
    def __init__(self):
        super().__init__("You have already signed this document")


class SigningTokenExpired(SigningError):
    status_code = 410

    def __init__(self):
        super().__init__("This signing link has expired")


class DocumentNotFound(SigningError):
    status_code = 404

    def __init__(self, document_id: str):
        super().__init__(f"Document not found: {document_id}")
