from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.utils.fields import AnswerField, AnswerValue, FormSubmission

FORM_RESPONSE_EVENT = "FORM_RESPONSE"


class TallyModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TallyOption(TallyModel):
    id: str
    text: str = ""


class TallyField(TallyModel):
    key: str
    label: str | None = None
    type: str = ""
    value: Any = None
    options: list[TallyOption] | None = None

    def to_answer(self) -> AnswerField:
        options = {o.id: o.text for o in self.options or [] if o.text}
        return AnswerField(
            key=self.key,
            label=self.label or "",
            type=self.type or "",
            value=AnswerValue.from_raw(self.value, options or None),
        )


class TallyResponseData(TallyModel):
    response_id: str = Field(alias="responseId")
    respondent_id: str | None = Field(default=None, alias="respondentId")
    form_id: str = Field(default="", alias="formId")
    form_name: str = Field(default="", alias="formName")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    fields: list[TallyField] = Field(default_factory=list)


class TallyWebhookPayload(TallyModel):
    event_id: str = Field(default="", alias="eventId")
    event_type: str = Field(default=FORM_RESPONSE_EVENT, alias="eventType")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    # Parsed only for FORM_RESPONSE events.
    data: dict[str, Any] | None = None

    def to_submission(self) -> FormSubmission:
        d = TallyResponseData.model_validate(self.data)
        return FormSubmission(
            response_id=d.response_id,
            respondent_id=d.respondent_id,
            form_id=d.form_id,
            form_name=d.form_name,
            # The event timestamp is the submit instant; fall back to the response's.
            submitted_at=self.created_at or d.created_at,
            created_at=d.created_at,
            event_id=self.event_id,
            fields=tuple(f.to_answer() for f in d.fields),
        )
