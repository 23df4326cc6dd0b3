"""Semantic labeling of PDF fields.

Loads the YAML pattern table and maps raw PDF field names (or the label
text next to a blank) to a stable ``api_id``, a human label, the field
type, who fills it and whether it is required.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

import yaml

from peachhaus.models import DocumentType, FieldType, FilledBy

SEMANTICS_FILE = Path(__file__).with_name("semantics.yaml")


@dataclass
class FieldSemantic:
    api_id: str
    label: str
    type: FieldType
    filled_by: FilledBy
    category: str
    required: bool = False
    patterns: list[re.Pattern] = field(default_factory=list)

    def matches(self, text: str) -> bool:
        return any(p.search(text) for p in self.patterns)


def load_semantics(path: str | Path = SEMANTICS_FILE) -> dict:
    """Load the semantics YAML file."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache(maxsize=1)
def semantic_table() -> tuple[FieldSemantic, ...]:
    data = load_semantics()
    table = []
    for entry in data.get("fields", []):
        table.append(FieldSemantic(
            api_id=entry["api_id"],
            label=entry["label"],
            type=FieldType(entry["type"]),
            filled_by=FilledBy(entry["filled_by"]),
            category=entry.get("category", "other"),
            required=bool(entry.get("required", False)),
            patterns=[re.compile(p, re.I) for p in entry.get("patterns", [])],
        ))
    return tuple(table)


@lru_cache(maxsize=1)
def _document_type_rules() -> dict:
    return load_semantics().get("document_types", {})


def find_semantics(field_name: str, field_type: FieldType | None = None) -> FieldSemantic | None:
    """Find the first semantic entry matching a widget name.

    A widget known to be a signature only matches signature entries.
    """
    if not field_name:
        return None
    normalized = re.sub(r"[_\-.]", " ", field_name.lower())
    for sem in semantic_table():
        if sem.matches(normalized) or sem.matches(field_name):
            if field_type is FieldType.SIGNATURE and sem.type is not FieldType.SIGNATURE:
                continue
            return sem
    return None


def find_semantics_from_label(label: str) -> FieldSemantic | None:
    normalized = label.lower()
    for sem in semantic_table():
        if sem.matches(normalized) or sem.matches(label):
            return sem
    return None


def sanitize_api_id(name: str) -> str:
    """``"Tenant Name (Print)"`` -> ``"tenant_name_print"``, capped at 50 chars."""
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")[:50]


def humanize_field_name(name: str) -> str:
    text = re.sub(r"[_\-.]", " ", name)
    text = re.sub(r"([a-z])([A-Z])", r"\1 \2", text)
    text = re.sub(r"\b\w", lambda m: m.group(0).upper(), text).strip()
    return text or "Field"


def detect_document_type(text_lines: list[str]) -> DocumentType:
    all_text = " ".join(t.lower() for t in text_lines)
    for name, rule in _document_type_rules().items():
        score = sum(1 for phrase in rule.get("phrases", []) if phrase in all_text)
        if score >= rule.get("min_score", 1):
            return DocumentType(name)
    return DocumentType.OTHER
