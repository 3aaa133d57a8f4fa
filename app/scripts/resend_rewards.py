"""Finish rewards the insert webhook could not complete.

For every valid submission whose reward email was never delivered:

1) no promo code yet (webhook missed or Stripe failed): lock the row, re-check
   it and issue one
2) send the reward email and record the outcome on the row

Rows younger than ``--min-age`` seconds are left to the insert webhook.

Run:
  python -m app.scripts.resend_rewards [--dry-run] [--limit N] [--min-age SECONDS]
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime, timedelta, timezone

import stripe
from sqlalchemy.orm import Session

from app.core.deps import get_notifier, get_reward_issuer
from app.db.session import SessionLocal
from app.db.store import SubmissionStore
from app.utils.notify import Notifier
from app.utils.rewards import RewardIssuer

logger = logging.getLogger("survey_rewards.scripts.resend_rewards")

DEFAULT_MIN_AGE_SECONDS = 300


def resend_pending(
    store: SubmissionStore,
    issuer: RewardIssuer,
    notifier: Notifier,
    *,
    limit: int = 500,
    dry_run: bool = False,
    min_age_seconds: float = 0,
) -> dict[str, int]:
    stats = {"pending": 0, "issued": 0, "sent": 0, "skipped": 0, "failed": 0}
    older_than = None
    if min_age_seconds > 0:
        older_than = datetime.now(timezone.utc) - timedelta(seconds=min_age_seconds)

    for row in store.pending_rewards(limit=limit, older_than=older_than):
        stats["pending"] += 1
        if dry_run:
            logger.info("Would process id=%s email=%s promo_code=%s", row.id, row.email, row.promo_code)
            continue

        code = row.promo_code
        if not code:
            # The insert webhook may be handling this row right now.
            row_id = row.id
            row = store.get(row_id, for_update=True)
            if row is None or row.email_sent:
                logger.info("Skipping id=%s, completed meanwhile", row_id)
                store.db.rollback()
                stats["skipped"] += 1
                continue
            code = row.promo_code

        if not code:
            try:
                code = issuer.issue_code(row.email)
            except stripe.StripeError as exc:
                logger.error("Could not issue code for id=%s: %s", row.id, exc)
                store.db.rollback()
                stats["failed"] += 1
                continue
            store.attach_reward(row, code, email_sent=False)
            stats["issued"] += 1

        result = notifier.send_reward(row.email, code)
        if not result.success:
            logger.error("Reward email to %s failed again: %s", row.email, result.error)
            stats["failed"] += 1
            continue
        store.mark_reward_sent(row)
        stats["sent"] += 1
    return stats


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--dry-run", action="store_true", help="only list pending submissions")
    parser.add_argument("--limit", type=int, default=500)
    parser.add_argument(
        "--min-age",
        type=float,
        default=DEFAULT_MIN_AGE_SECONDS,
        help="skip submissions newer than this many seconds",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    issuer = get_reward_issuer()
    if not args.dry_run and not issuer.coupon_is_valid():
        logger.error("Coupon %s is missing or no longer valid; aborting", issuer.coupon_id)
        return 1

    db: Session = SessionLocal()
    try:
        stats = resend_pending(
            SubmissionStore(db),
            issuer,
            get_notifier(),
            limit=args.limit,
            dry_run=args.dry_run,
            min_age_seconds=args.min_age,
        )
    finally:
        db.close()

    logger.info("Done: %s", stats)
    return 1 if stats["failed"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
