"""Submission classifier.

This module holds *all* classification rules in one place.

Rules form a totally ordered chain; the first rule that returns a verdict
wins and the rest are skipped. Each rule reads only the submission, the
policy and the duplicate lookup, so the order is a policy choice: cheap and
decisive checks first.

    timing -> honeypot -> duplicate -> attention -> valid

The timing and honeypot rules are off unless their hidden form fields are
configured; by default bot protection is left to the form provider.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Optional

from app.core.config import Settings
from app.db.models.submission import Classification
from app.utils.fields import FormSubmission, extract_email, find_attention_field


DuplicateLookup = Callable[[str], bool]


@dataclass(frozen=True, slots=True)
class ClassifierPolicy:
    attention_field_id: str = "attention_check"
    attention_label: str = "if you read this"
    attention_answer: str = "1"
    attention_phrase: str = "option 1"
    # False: a response without an answered attention question passes.
    attention_required: bool = False
    honeypot_field_id: str = ""
    loaded_at_field_id: str = ""
    min_seconds: float = 10.0

    @classmethod
    def from_settings(cls, s: Settings) -> "ClassifierPolicy":
        return cls(
            attention_field_id=s.ATTENTION_CHECK_FIELD_ID,
            attention_label=s.ATTENTION_CHECK_LABEL,
            attention_answer=s.ATTENTION_CHECK_ANSWER,
            attention_phrase=s.ATTENTION_CHECK_PHRASE,
            attention_required=s.ATTENTION_CHECK_REQUIRED,
            honeypot_field_id=s.HONEYPOT_FIELD_ID,
            loaded_at_field_id=s.FORM_LOADED_AT_FIELD_ID,
            min_seconds=s.MIN_SUBMISSION_SECONDS,
        )


@dataclass(frozen=True, slots=True)
class Verdict:
    classification: Classification
    reason: str
    elapsed_seconds: float | None = None


RuleCheck = Callable[[FormSubmission, ClassifierPolicy, DuplicateLookup], Optional[Verdict]]


@dataclass(frozen=True, slots=True)
class Rule:
    """One row of the decision table."""

    name: str
    check: RuleCheck


# ---- Helpers ----


def _parse_instant(raw: str) -> datetime | None:
    s = (raw or "").strip()
    if not s:
        return None
    try:
        n = float(s)
    except ValueError:
        try:
            dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    # Browsers report Date.now() in milliseconds.
    if n > 1e11:
        n = n / 1000.0
    return datetime.fromtimestamp(n, tz=timezone.utc)


def measure_elapsed(submission: FormSubmission, policy: ClassifierPolicy) -> float | None:
    """Seconds between form load and submit, when both instants are known."""
    if not policy.loaded_at_field_id or submission.submitted_at is None:
        return None
    f = submission.get_field(policy.loaded_at_field_id)
    if f is None or f.value.is_blank:
        return None
    loaded_at = _parse_instant(f.value.normalized())
    if loaded_at is None:
        return None
    submitted_at = submission.submitted_at
    if submitted_at.tzinfo is None:
        submitted_at = submitted_at.replace(tzinfo=timezone.utc)
    return round((submitted_at - loaded_at).total_seconds(), 3)


def attention_passed(submission: FormSubmission, policy: ClassifierPolicy) -> bool | None:
    """True/False when an answered attention question exists, None otherwise."""
    f = find_attention_field(submission.fields, policy.attention_field_id, policy.attention_label)
    if f is None:
        return None

    candidates = [f.value.normalized(), *f.value.choices]
    token = policy.attention_answer
    phrase = (policy.attention_phrase or "").lower()
    for c in candidates:
        if token and (c == token or token in c):
            return True
        if phrase and phrase in c.lower():
            return True
    return False


# ---- Rules ----


def _check_timing(submission: FormSubmission, policy: ClassifierPolicy, is_duplicate: DuplicateLookup) -> Verdict | None:
    elapsed = measure_elapsed(submission, policy)
    if elapsed is None or elapsed >= policy.min_seconds:
        return None
    return Verdict(
        Classification.BOT,
        f"Submitted {elapsed:.1f}s after form load (minimum {policy.min_seconds:g}s)",
    )


def _check_honeypot(submission: FormSubmission, policy: ClassifierPolicy, is_duplicate: DuplicateLookup) -> Verdict | None:
    if not policy.honeypot_field_id:
        return None
    f = submission.get_field(policy.honeypot_field_id)
    if f is None or f.value.is_blank:
        return None
    return Verdict(Classification.BOT, "Hidden honeypot field was filled in")


def _check_duplicate(submission: FormSubmission, policy: ClassifierPolicy, is_duplicate: DuplicateLookup) -> Verdict | None:
    email = extract_email(submission.fields)
    if email and is_duplicate(email):
        return Verdict(Classification.DUPLICATE, "Duplicate email submission detected")
    return None


def _check_attention(submission: FormSubmission, policy: ClassifierPolicy, is_duplicate: DuplicateLookup) -> Verdict | None:
    passed = attention_passed(submission, policy)
    if passed is None:
        if policy.attention_required:
            return Verdict(Classification.ATTENTION_FAIL, "Attention check question was not answered")
        return None
    if not passed:
        return Verdict(Classification.ATTENTION_FAIL, "Failed attention check question")
    return None


RULES: tuple[Rule, ...] = (
    Rule("timing", _check_timing),
    Rule("honeypot", _check_honeypot),
    Rule("duplicate", _check_duplicate),
    Rule("attention", _check_attention),
)


def classify(
    submission: FormSubmission,
    policy: ClassifierPolicy,
    is_duplicate: DuplicateLookup,
    rules: tuple[Rule, ...] = RULES,
) -> Verdict:
    """Run the decision table; the first rule with a verdict wins."""
    elapsed = measure_elapsed(submission, policy)
    for rule in rules:
        verdict = rule.check(submission, policy, is_duplicate)
        if verdict is not None:
            return replace(verdict, elapsed_seconds=elapsed)
    return Verdict(Classification.VALID, "All validation checks passed", elapsed)
