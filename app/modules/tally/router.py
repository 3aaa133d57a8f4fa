"""Form webhook: receives Tally responses, classifies them and dispatches.

- valid: stored; the database insert webhook takes over the reward flow
- duplicate / bot: dropped (logged only)
- attention_fail: stored, then the abuse notice is emailed
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import JSONResponse

from app.core.classifier import ClassifierPolicy, classify
from app.core.config import settings
from app.core.deps import get_notifier, get_policy, get_store, read_body
from app.core.security import verify_tally_signature
from app.db.models.submission import Classification
from app.db.store import SubmissionStore
from app.modules.tally.schemas import FORM_RESPONSE_EVENT, TallyWebhookPayload
from app.utils.fields import extract_email, fields_to_answers
from app.utils.notify import Notifier

logger = logging.getLogger("survey_rewards.webhook.tally")

router = APIRouter(prefix="/api/webhook/tally", tags=["webhooks"])


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get("")
def liveness():
    return {
        "status": "healthy",
        "endpoint": "tally-webhook",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("")
def receive_form_response(
    request: Request,
    body: bytes = Depends(read_body),
    store: SubmissionStore = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
    policy: ClassifierPolicy = Depends(get_policy),
):
    if not verify_tally_signature(body, request.headers.get("tally-signature"), settings.TALLY_SIGNING_SECRET):
        logger.warning("Rejected form webhook with bad signature")
        return _error("Invalid signature", 401)

    try:
        payload = TallyWebhookPayload.model_validate_json(body)
    except ValidationError as exc:
        logger.error("Unparseable form webhook payload: %s", exc.errors(include_url=False)[:3])
        return _error("Invalid payload", 500)

    if payload.event_type != FORM_RESPONSE_EVENT:
        logger.info("Ignoring form event type=%s event_id=%s", payload.event_type, payload.event_id)
        return {"success": True, "message": "Event ignored"}

    try:
        submission = payload.to_submission()
    except ValidationError as exc:
        logger.error("Unparseable form response data: %s", exc.errors(include_url=False)[:3])
        return _error("Invalid payload", 500)

    logger.info(
        "Form response received response_id=%s form_id=%s fields=%d",
        submission.response_id, submission.form_id, len(submission.fields),
    )

    email = extract_email(submission.fields)
    if not email:
        logger.warning("No email found in response_id=%s", submission.response_id)
        return _error("No email found", 400)

    try:
        verdict = classify(submission, policy, store.email_exists)
        logger.info(
            "Classified response_id=%s email=%s classification=%s reason=%s",
            submission.response_id, email, verdict.classification.value, verdict.reason,
        )

        classification = verdict.classification
        if classification in (Classification.VALID, Classification.ATTENTION_FAIL):
            row, created = store.insert(
                email=email,
                response_id=submission.response_id,
                answers=fields_to_answers(submission.fields),
                classification=classification,
                reason=verdict.reason,
                elapsed_seconds=verdict.elapsed_seconds,
            )
            if not created:
                # Redelivery or a concurrent submission from the same email.
                classification = Classification.DUPLICATE
            elif classification == Classification.ATTENTION_FAIL:
                result = notifier.send_abuse(email)
                if result.success:
                    store.mark_abuse_notified(row)
                else:
                    logger.error("Abuse email to %s failed: %s", email, result.error)
        else:
            logger.info(
                "Dropped %s response_id=%s email=%s",
                classification.value, submission.response_id, email,
            )
    except SQLAlchemyError:
        logger.exception("Persistence failed for response_id=%s", submission.response_id)
        return _error("Internal server error", 500)

    return {"success": True, "classification": classification.value}
