"""Answer values and field lookups for incoming form responses.

Form builders emit answer values in several shapes depending on the field
type and on which branch of the form the respondent saw: plain strings,
lists of choice-option ids, option objects, numbers. Every raw value is
resolved once into an :class:`AnswerValue` when the payload is ingested, so
the extractor and the classifier work over one representation.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping

EMAIL_INPUT_TYPE = "INPUT_EMAIL"


class ValueKind(str, enum.Enum):
    EMPTY = "empty"
    TEXT = "text"
    CHOICES = "choices"
    OBJECT = "object"
    SCALAR = "scalar"


def _scalar_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


@dataclass(frozen=True, slots=True)
class AnswerValue:
    """A raw answer value tagged with its shape.

    ``choices`` holds the human-readable option texts when the field shipped
    an options list and the raw ids could be resolved against it.
    """

    kind: ValueKind
    raw: Any = None
    choices: tuple[str, ...] = ()

    @classmethod
    def from_raw(cls, raw: Any, options: Mapping[str, str] | None = None) -> "AnswerValue":
        if raw is None:
            return cls(ValueKind.EMPTY)
        if isinstance(raw, str):
            kind = ValueKind.TEXT
        elif isinstance(raw, (list, tuple)):
            kind = ValueKind.CHOICES
            raw = list(raw)
        elif isinstance(raw, dict):
            kind = ValueKind.OBJECT
        else:
            kind = ValueKind.SCALAR

        choices: tuple[str, ...] = ()
        if options:
            ids = raw if kind == ValueKind.CHOICES else [raw]
            resolved = [options[str(i)] for i in ids if not isinstance(i, (dict, list)) and str(i) in options]
            choices = tuple(resolved)
        return cls(kind, raw, choices)

    @property
    def is_empty(self) -> bool:
        return self.kind == ValueKind.EMPTY

    @property
    def is_blank(self) -> bool:
        """True for missing values and values that carry nothing (``""``, ``[]``)."""
        if self.kind == ValueKind.EMPTY:
            return True
        if self.kind in (ValueKind.CHOICES, ValueKind.OBJECT):
            return len(self.raw) == 0
        return self.normalized().strip() == ""

    def text(self) -> str | None:
        """The value when it is a plain string, otherwise None."""
        return self.raw if self.kind == ValueKind.TEXT else None

    def normalized(self) -> str:
        if self.kind == ValueKind.TEXT:
            return self.raw
        if self.kind == ValueKind.CHOICES:
            return _scalar_text(self.raw[0]) if self.raw else ""
        if self.kind == ValueKind.OBJECT:
            return _scalar_text(self.raw.get("id"))
        return _scalar_text(self.raw)

    def display(self) -> Any:
        """Value as stored: resolved option text(s) when available, else raw."""
        if not self.choices:
            return self.raw
        if self.kind == ValueKind.CHOICES:
            return list(self.choices)
        return self.choices[0]


@dataclass(frozen=True, slots=True)
class AnswerField:
    key: str
    label: str
    type: str
    value: AnswerValue


@dataclass(frozen=True, slots=True)
class FormSubmission:
    """A form response normalized from the webhook payload."""

    response_id: str
    fields: tuple[AnswerField, ...] = ()
    respondent_id: str | None = None
    form_id: str = ""
    form_name: str = ""
    submitted_at: datetime | None = None
    created_at: datetime | None = None
    event_id: str = ""

    def get_field(self, key: str) -> AnswerField | None:
        for f in self.fields:
            if f.key == key:
                return f
        return None


def extract_email(fields: Iterable[AnswerField]) -> str | None:
    """Return the respondent's email, trimmed and lower-cased.

    The first field that looks like an email field (input type, key or label)
    and carries a non-blank string wins.
    """
    for f in fields:
        looks_like_email = (
            f.type == EMAIL_INPUT_TYPE
            or "email" in (f.key or "").lower()
            or "email" in (f.label or "").lower()
        )
        if not looks_like_email:
            continue
        s = f.value.text()
        if s is not None and s.strip():
            return s.strip().lower()
    return None


def find_attention_field(fields: Iterable[AnswerField], field_id: str, label_hint: str) -> AnswerField | None:
    # Branching forms repeat the question; only the branch shown has a value.
    hint = (label_hint or "").strip().lower()
    for f in fields:
        if f.value.is_empty:
            continue
        if field_id and f.key == field_id:
            return f
        if hint and hint in (f.label or "").lower():
            return f
    return None


def find_attention_answer(fields: Iterable[AnswerField], field_id: str, label_hint: str) -> str | None:
    f = find_attention_field(fields, field_id, label_hint)
    return f.value.normalized() if f is not None else None


def fields_to_answers(fields: Iterable[AnswerField]) -> dict[str, dict]:
    """Answers document for storage, keyed by field key."""
    out: dict[str, dict] = {}
    for f in fields:
        entry: dict[str, Any] = {"title": f.label, "type": f.type, "value": f.value.display()}
        if f.value.choices:
            entry["raw_value"] = f.value.raw
        out[f.key] = entry
    return out
