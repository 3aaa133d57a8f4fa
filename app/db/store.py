from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models.submission import Classification, EmailType, Submission


logger = logging.getLogger("survey_rewards.store")


class SubmissionStore:
    """Reads and writes classified submissions over one DB session.

    Every write commits; callers treat each call as one unit of work.
    """

    def __init__(self, db: Session):
        self.db = db

    def email_exists(self, email: str) -> bool:
        e = (email or "").strip().lower()
        if not e:
            return False
        return self.db.query(Submission.id).filter(func.lower(Submission.email) == e).first() is not None

    def get(self, submission_id: uuid.UUID, *, for_update: bool = False) -> Submission | None:
        q = self.db.query(Submission).filter(Submission.id == submission_id)
        if for_update:
            # Row lock on PostgreSQL; ignored by SQLite. Reload attributes of an
            # already loaded instance.
            q = q.with_for_update().populate_existing()
        return q.first()

    def by_response_id(self, response_id: str) -> Submission | None:
        return self.db.query(Submission).filter(Submission.tally_response_id == response_id).first()

    def by_email(self, email: str) -> Submission | None:
        e = (email or "").strip().lower()
        return self.db.query(Submission).filter(func.lower(Submission.email) == e).first()

    def insert(
        self,
        *,
        email: str,
        response_id: str,
        answers: dict,
        classification: Classification,
        reason: str | None = None,
        elapsed_seconds: float | None = None,
    ) -> tuple[Submission, bool]:
        """Insert a submission; returns (row, created).

        A unique-constraint collision (same response id redelivered, or the
        same email inserted concurrently) returns the existing row with
        ``created=False``.
        """
        row = Submission(
            email=email.strip().lower(),
            tally_response_id=response_id,
            answers=answers or {},
            classification=classification,
            classification_reason=reason,
            submission_time_seconds=elapsed_seconds,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.by_response_id(response_id) or self.by_email(email)
            if existing is None:
                raise
            logger.info(
                "Submission already stored response_id=%s existing_id=%s", response_id, existing.id
            )
            return existing, False

        self.db.refresh(row)
        logger.info(
            "Submission stored id=%s response_id=%s classification=%s",
            row.id, response_id, row.classification.value,
        )
        return row, True

    def attach_reward(self, row: Submission, promo_code: str, *, email_sent: bool) -> Submission:
        row.promo_code = promo_code
        row.email_sent = bool(email_sent)
        row.email_type = EmailType.REWARD
        self.db.commit()
        self.db.refresh(row)
        return row

    def mark_reward_sent(self, row: Submission) -> Submission:
        row.email_sent = True
        row.email_type = EmailType.REWARD
        self.db.commit()
        self.db.refresh(row)
        return row

    def mark_abuse_notified(self, row: Submission) -> Submission:
        row.email_sent = True
        row.email_type = EmailType.ABUSE
        self.db.commit()
        self.db.refresh(row)
        return row

    def pending_rewards(self, limit: int = 500, older_than: datetime | None = None) -> list[Submission]:
        """Valid rows still missing a code or a delivered reward email."""
        q = self.db.query(Submission).filter(
            Submission.classification == Classification.VALID,
            Submission.email_sent.is_(False),
        )
        if older_than is not None:
            q = q.filter(Submission.created_at <= older_than)
        return (
            q
            .order_by(Submission.created_at.asc())
            .limit(limit)
            .all()
        )
