from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Enum, Float, String, Text, Uuid, false, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Classification(str, enum.Enum):
    VALID = "valid"
    DUPLICATE = "duplicate"
    BOT = "bot"
    ATTENTION_FAIL = "attention_fail"


class EmailType(str, enum.Enum):
    REWARD = "reward"
    ABUSE = "abuse"


def _values(enum_cls) -> list[str]:
    return [m.value for m in enum_cls]


AnswersJSON = JSON().with_variant(JSONB(), "postgresql")


class Submission(Base):
    """One classified survey response.

    Created once by the form webhook with its classification already decided,
    then updated once with reward or abuse-notification metadata.
    """

    __tablename__ = "submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Stored lower-cased; one row per email.
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    # Tally responseId; redelivered webhooks collide here.
    tally_response_id: Mapped[str] = mapped_column(String(255), unique=True)

    answers: Mapped[dict] = mapped_column(AnswersJSON, default=dict)

    classification: Mapped[Classification] = mapped_column(
        Enum(Classification, name="submission_classification", native_enum=False, values_callable=_values),
        index=True,
    )
    classification_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    promo_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    email_sent: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false(), index=True)
    email_type: Mapped[EmailType | None] = mapped_column(
        Enum(EmailType, name="submission_email_type", native_enum=False, values_callable=_values),
        nullable=True,
    )

    submission_time_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @property
    def is_rewarded(self) -> bool:
        return bool(self.promo_code) or bool(self.email_sent)
