"""Operator script that finishes incomplete rewards."""

from datetime import datetime, timezone

import stripe

from app.db.models.submission import Classification
from app.db.store import SubmissionStore
from app.scripts.resend_rewards import resend_pending


def _stored(store, email, response_id, classification=Classification.VALID):
    row, _ = store.insert(email=email, response_id=response_id, answers={}, classification=classification)
    return row


class TestResendPending:
    def test_issues_missing_codes_and_sends(self, store, issuer, notifier):
        no_code = _stored(store, "a@x.com", "r1")
        unsent = _stored(store, "b@x.com", "r2")
        store.attach_reward(unsent, "SURVEY-KEEP", email_sent=False)
        _stored(store, "c@x.com", "r3", Classification.ATTENTION_FAIL)

        stats = resend_pending(store, issuer, notifier)
        assert stats == {"pending": 2, "issued": 1, "sent": 2, "skipped": 0, "failed": 0}

        assert no_code.promo_code == "SURVEY-TEST01"
        assert no_code.email_sent is True
        assert unsent.promo_code == "SURVEY-KEEP"
        assert unsent.email_sent is True
        assert ("reward", "b@x.com", "SURVEY-KEEP") in notifier.sent
        assert store.pending_rewards() == []

    def test_dry_run_changes_nothing(self, store, issuer, notifier):
        row = _stored(store, "a@x.com", "r1")
        stats = resend_pending(store, issuer, notifier, dry_run=True)
        assert stats == {"pending": 1, "issued": 0, "sent": 0, "skipped": 0, "failed": 0}
        assert issuer.issued == []
        assert notifier.sent == []
        assert row.promo_code is None

    def test_email_failure_keeps_row_pending(self, store, issuer, notifier):
        notifier.succeed = False
        row = _stored(store, "a@x.com", "r1")
        stats = resend_pending(store, issuer, notifier)
        assert stats == {"pending": 1, "issued": 1, "sent": 0, "skipped": 0, "failed": 1}
        assert row.promo_code == "SURVEY-TEST01"
        assert row.email_sent is False

        # The next run reuses the stored code.
        notifier.succeed = True
        stats = resend_pending(store, issuer, notifier)
        assert stats == {"pending": 1, "issued": 0, "sent": 1, "skipped": 0, "failed": 0}
        assert len(issuer.issued) == 1

    def test_stripe_failure_is_counted(self, store, issuer, notifier):
        issuer.error = stripe.APIConnectionError("Stripe is unreachable")
        _stored(store, "a@x.com", "r1")
        stats = resend_pending(store, issuer, notifier)
        assert stats == {"pending": 1, "issued": 0, "sent": 0, "skipped": 0, "failed": 1}
        assert notifier.sent == []

    def test_limit(self, store, issuer, notifier):
        _stored(store, "a@x.com", "r1")
        _stored(store, "b@x.com", "r2")
        stats = resend_pending(store, issuer, notifier, limit=1)
        assert stats["pending"] == 1


class WebhookFinishesFirstStore(SubmissionStore):
    """Completes the reward from another session just before the row is locked."""

    def __init__(self, db, other):
        super().__init__(db)
        self.other = other

    def get(self, submission_id, *, for_update=False):
        if for_update:
            row = self.other.get(submission_id)
            self.other.attach_reward(row, "SURVEY-HOOK01", email_sent=True)
        return super().get(submission_id, for_update=for_update)


class TestConcurrentWebhook:
    def test_fresh_rows_are_left_to_the_webhook(self, store, issuer, notifier):
        _stored(store, "a@x.com", "r1")
        stats = resend_pending(store, issuer, notifier, min_age_seconds=3600)
        assert stats["pending"] == 0
        assert issuer.issued == []

    def test_old_rows_are_picked_up(self, store, issuer, notifier):
        row = _stored(store, "a@x.com", "r1")
        row.created_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
        store.db.commit()
        _stored(store, "b@x.com", "r2")

        stats = resend_pending(store, issuer, notifier, min_age_seconds=3600)
        assert stats["pending"] == 1
        assert stats["sent"] == 1
        assert issuer.issued == [("a@x.com", "SURVEY-TEST01")]

    def test_row_completed_meanwhile_is_not_minted_again(self, session_factory, issuer, notifier):
        db, other_db = session_factory(), session_factory()
        try:
            store = WebhookFinishesFirstStore(db, SubmissionStore(other_db))
            _stored(store, "a@x.com", "r1")

            stats = resend_pending(store, issuer, notifier)
            assert stats == {"pending": 1, "issued": 0, "sent": 0, "skipped": 1, "failed": 0}
            assert issuer.issued == []
            assert notifier.sent == []
        finally:
            db.close()
            other_db.close()
