"""One-time promotion codes for rewarded respondents (Stripe)."""

from __future__ import annotations

import logging
import secrets
import string
from typing import Any, Optional

import stripe

logger = logging.getLogger("survey_rewards.rewards")

_ALPHABET = string.ascii_uppercase + string.digits

CODE_SUFFIX_LENGTH = 6
RETRY_SUFFIX_LENGTH = 8


def make_code(prefix: str, length: int) -> str:
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(length))
    return f"{prefix}-{suffix}" if prefix else suffix


def is_code_collision(exc: stripe.InvalidRequestError) -> bool:
    if getattr(exc, "code", None) == "resource_already_exists":
        return True
    return getattr(exc, "param", None) == "code"


class RewardIssuer:
    """Registers single-redemption promotion codes against one coupon.

    The Stripe client is created on first use and reused afterwards.
    """

    def __init__(self, api_key: str, coupon_id: str, prefix: str = "SURVEY", client: Any = None):
        self.api_key = api_key
        self.coupon_id = coupon_id
        self.prefix = prefix
        self._client: Optional[Any] = client

    def _get_client(self):
        if self._client is not None:
            return self._client
        if not self.api_key:
            raise RuntimeError("Missing STRIPE_SECRET_KEY")
        self._client = stripe.StripeClient(self.api_key)
        return self._client

    def _coupon(self) -> str:
        if not self.coupon_id:
            raise RuntimeError("Missing STRIPE_COUPON_ID")
        return self.coupon_id

    def _create(self, code: str, email: str) -> str:
        promo = self._get_client().promotion_codes.create(
            params={
                "coupon": self._coupon(),
                "code": code,
                "max_redemptions": 1,
                "metadata": {
                    "email": email,
                    "source": "survey_reward",
                    "created_by": "survey-rewards",
                },
            }
        )
        return promo.code

    def issue_code(self, email: str) -> str:
        """Mint a code for ``email``; a code collision is retried once with a longer suffix."""
        code = make_code(self.prefix, CODE_SUFFIX_LENGTH)
        try:
            issued = self._create(code, email)
        except stripe.InvalidRequestError as exc:
            if not is_code_collision(exc):
                raise
            logger.warning("Promo code collision code=%s, retrying once", code)
            issued = self._create(make_code(self.prefix, RETRY_SUFFIX_LENGTH), email)
        logger.info("Promo code issued code=%s email=%s", issued, email)
        return issued

    def coupon_is_valid(self) -> bool:
        try:
            coupon = self._get_client().coupons.retrieve(self._coupon())
        except (stripe.StripeError, RuntimeError) as exc:
            logger.error("Coupon lookup failed coupon=%s: %s", self.coupon_id, exc)
            return False
        return bool(coupon.valid)
