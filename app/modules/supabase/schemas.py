from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

INSERT_EVENT = "INSERT"


class SubmissionRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: uuid.UUID
    email: str = ""
    classification: str = ""
    promo_code: str | None = None
    email_sent: bool | None = None

    @property
    def already_processed(self) -> bool:
        return bool(self.promo_code) or bool(self.email_sent)


class DatabaseWebhookPayload(BaseModel):
    """Database webhook body: ``{type, table, schema, record, old_record}``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    table: str
    # "schema" would shadow a BaseModel attribute.
    schema_name: str = Field(default="", alias="schema")
    # Parsed only after the event is known to concern the submissions table.
    record: dict[str, Any] | None = None
    old_record: Any = None

    def submission_record(self) -> SubmissionRecord:
        return SubmissionRecord.model_validate(self.record)
