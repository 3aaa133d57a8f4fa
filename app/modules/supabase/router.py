"""Database insert webhook: issues the reward for a newly stored valid submission.

Flow: promo code (Stripe) -> reward email (Mailgun) -> row update. The row is
updated with the code even when the email fails, so an operator can resend
it later (``python -m app.scripts.resend_rewards``).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import stripe
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import JSONResponse

from app.core.config import settings
from app.core.deps import get_notifier, get_reward_issuer, get_store, read_body
from app.core.security import verify_shared_secret
from app.db.models.submission import Classification, Submission
from app.db.store import SubmissionStore
from app.modules.supabase.schemas import INSERT_EVENT, DatabaseWebhookPayload
from app.utils.notify import Notifier
from app.utils.rewards import RewardIssuer

logger = logging.getLogger("survey_rewards.webhook.supabase")

router = APIRouter(prefix="/api/webhook/supabase", tags=["webhooks"])

SECRET_HEADER = "x-webhook-secret"


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _ignored(message: str) -> dict:
    return {"success": True, "message": message}


@router.get("")
def liveness():
    return {
        "status": "healthy",
        "endpoint": "supabase-webhook",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("")
def receive_insert_event(
    request: Request,
    body: bytes = Depends(read_body),
    store: SubmissionStore = Depends(get_store),
    issuer: RewardIssuer = Depends(get_reward_issuer),
    notifier: Notifier = Depends(get_notifier),
):
    if not verify_shared_secret(request.headers.get(SECRET_HEADER), settings.SUPABASE_WEBHOOK_SECRET):
        logger.warning("Rejected database webhook with bad secret")
        return _error("Invalid webhook secret", 401)

    try:
        payload = DatabaseWebhookPayload.model_validate_json(body)
    except ValidationError as exc:
        logger.error("Unparseable database webhook payload: %s", exc.errors(include_url=False)[:3])
        return _error("Invalid payload", 500)

    logger.info("Database event type=%s table=%s", payload.type, payload.table)

    if payload.type != INSERT_EVENT or payload.table != Submission.__tablename__ or payload.record is None:
        return _ignored("Event ignored")

    try:
        record = payload.submission_record()
    except ValidationError as exc:
        logger.error("Unparseable submission record: %s", exc.errors(include_url=False)[:3])
        return _error("Invalid payload", 500)

    if record.classification != Classification.VALID.value:
        logger.info("Ignoring non-valid submission id=%s", record.id)
        return _ignored("Non-valid submission ignored")

    if record.already_processed:
        logger.info("Reward already processed for id=%s", record.id)
        return _ignored("Already processed")

    try:
        # Redelivered events carry the original insert snapshot; trust the row.
        row = store.get(record.id, for_update=True)
        if row is None:
            logger.warning("Submission id=%s not found", record.id)
            return _ignored("Submission not found")
        if row.classification != Classification.VALID:
            return _ignored("Non-valid submission ignored")
        if row.is_rewarded:
            logger.info("Reward already processed for id=%s", row.id)
            return _ignored("Already processed")

        try:
            promo_code = issuer.issue_code(row.email)
        except (stripe.StripeError, RuntimeError):
            logger.exception("Promo code issuance failed for id=%s", row.id)
            return _error("Internal server error", 500)

        result = notifier.send_reward(row.email, promo_code)
        if not result.success:
            logger.error("Reward email to %s failed: %s", row.email, result.error)

        store.attach_reward(row, promo_code, email_sent=result.success)
    except SQLAlchemyError:
        logger.exception("Persistence failed for submission id=%s", record.id)
        return _error("Internal server error", 500)

    logger.info("Reward flow completed id=%s code=%s email_sent=%s", row.id, promo_code, result.success)
    return {"success": True, "promoCode": promo_code, "emailSent": result.success}
