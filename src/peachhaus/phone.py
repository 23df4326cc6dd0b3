"""Phone number normalization and the caller lookup cache."""

from __future__ import annotations

import re
from dataclasses import dataclass

_NON_DIGIT = re.compile(r"\D")


def normalize_phone(phone: str | None) -> str | None:
    """Return the last 10 digits of ``phone``, or None if fewer than 10 remain."""
    if not phone:
        return None
    last10 = _NON_DIGIT.sub("", phone)[-10:]
    return last10 if len(last10) == 10 else None


def to_e164(phone: str) -> str:
    """Format a US number for SMS providers (``+1XXXXXXXXXX``)."""
    digits = _NON_DIGIT.sub("", phone)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return phone if phone.startswith("+") else f"+{digits}"


@dataclass
class Contact:
    kind: str  # "owner" or "lead"
    id: str
    name: str
    email: str = ""


class PhoneLookupCache:
    """Maps normalized phone numbers to owners and leads.

    Owners win over leads sharing the same number. Inputs that do not
    normalize to 10 digits never match.
    """

    def __init__(self):
        self._by_phone: dict[str, Contact] = {}
        self._by_email: dict[str, Contact] = {}

    @classmethod
    def load(cls, c) -> "PhoneLookupCache":
        cache = cls()
        for r in c.execute("SELECT id, name, phone, email FROM property_owners"):
            cache.add(Contact("owner", r["id"], r["name"] or "", r["email"] or ""), r["phone"])
        for r in c.execute("SELECT id, name, phone, email FROM leads"):
            cache.add(Contact("lead", r["id"], r["name"] or "", r["email"] or ""), r["phone"])
        return cache

    def add(self, contact: Contact, phone: str | None):
        key = normalize_phone(phone)
        if key and key not in self._by_phone:
            self._by_phone[key] = contact
        if contact.email:
            self._by_email.setdefault(contact.email.lower(), contact)

    def lookup(self, phone: str | None) -> Contact | None:
        key = normalize_phone(phone)
        if key is None:
            return None
        return self._by_phone.get(key)

    def lookup_email(self, email: str | None) -> Contact | None:
        if not email:
            return None
        return self._by_email.get(email.strip().lower())

    def __len__(self):
        return len(self._by_phone)
