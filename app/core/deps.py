"""Process-wide adapter handles for the webhook routes.

Each handle is built on first use and reused afterwards. Routes receive
them through ``Depends`` so tests can swap them via
``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.classifier import ClassifierPolicy
from app.core.config import settings
from app.db.session import get_db
from app.db.store import SubmissionStore
from app.utils.email_templates import EmailRenderer
from app.utils.notify import Notifier
from app.utils.rewards import RewardIssuer

_issuer: Optional[RewardIssuer] = None
_notifier: Optional[Notifier] = None
_policy: Optional[ClassifierPolicy] = None


def get_reward_issuer() -> RewardIssuer:
    global _issuer
    if _issuer is None:
        _issuer = RewardIssuer(
            api_key=settings.STRIPE_SECRET_KEY,
            coupon_id=settings.STRIPE_COUPON_ID,
            prefix=settings.PROMO_CODE_PREFIX,
        )
    return _issuer


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = Notifier(
            api_key=settings.MAILGUN_API_KEY,
            domain=settings.MAILGUN_DOMAIN,
            from_email=settings.from_email(),
            renderer=EmailRenderer(
                brand_name=settings.BRAND_NAME,
                app_url=settings.APP_URL,
                support_url=settings.SUPPORT_URL,
                reward_description=settings.REWARD_DESCRIPTION,
            ),
            api_base=settings.MAILGUN_API_BASE,
            timeout=settings.MAILGUN_TIMEOUT_SECONDS,
        )
    return _notifier


def get_policy() -> ClassifierPolicy:
    global _policy
    if _policy is None:
        _policy = ClassifierPolicy.from_settings(settings)
    return _policy


def get_store(db: Session = Depends(get_db)) -> SubmissionStore:
    return SubmissionStore(db)


async def read_body(request: Request) -> bytes:
    # Raw bytes for signature checks; the routes themselves stay sync.
    return await request.body()
