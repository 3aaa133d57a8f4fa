import os

# Settings are read at import time; keep tests off any real database or provider.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ["TALLY_SIGNING_SECRET"] = ""
os.environ["SUPABASE_WEBHOOK_SECRET"] = ""
os.environ["HONEYPOT_FIELD_ID"] = ""
os.environ["FORM_LOADED_AT_FIELD_ID"] = ""
os.environ["ATTENTION_CHECK_REQUIRED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.deps import get_notifier, get_policy, get_reward_issuer
from app.db.base import Base
from app.db.session import get_db
from app.db.store import SubmissionStore
from app.main import app
from app.utils.notify import NotificationResult


class FakeIssuer:
    """Stands in for RewardIssuer; hands out predictable codes."""

    def __init__(self):
        self.issued = []
        self.error = None

    def issue_code(self, email):
        if self.error is not None:
            raise self.error
        code = f"SURVEY-TEST{len(self.issued) + 1:02d}"
        self.issued.append((email, code))
        return code


class FakeNotifier:
    """Stands in for Notifier; records every send."""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.sent = []

    def _result(self):
        if self.succeed:
            return NotificationResult(success=True, message_id=f"<msg-{len(self.sent)}@mg>")
        return NotificationResult(success=False, error="Mailgun responded 500")

    def send_reward(self, email, promo_code):
        self.sent.append(("reward", email, promo_code))
        return self._result()

    def send_abuse(self, email):
        self.sent.append(("abuse", email, None))
        return self._result()


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def store(db):
    return SubmissionStore(db)


@pytest.fixture()
def issuer():
    return FakeIssuer()


@pytest.fixture()
def notifier():
    return FakeNotifier()


@pytest.fixture()
def client(session_factory, issuer, notifier):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_reward_issuer] = lambda: issuer
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def use_policy():
    """Swap the classifier policy for one test."""

    def _use(policy):
        app.dependency_overrides[get_policy] = lambda: policy

    yield _use
    app.dependency_overrides.pop(get_policy, None)


@pytest.fixture()
def make_payload():
    """Build a Tally FORM_RESPONSE webhook body."""

    def _make(
        email="a@x.com",
        attention="1",
        response_id="resp-1",
        extra_fields=(),
        event_type="FORM_RESPONSE",
        created_at="2026-10-17T10:00:30.000Z",
    ):
        fields = []
        if email is not None:
            fields.append({"key": "question_email", "label": "Your email", "type": "INPUT_EMAIL", "value": email})
        fields.append({"key": "question_rating", "label": "How do you like it?", "type": "RATING", "value": 4})
        if attention is not None:
            fields.append(
                {
                    "key": "attention_check",
                    "label": "If you read this, type 1",
                    "type": "INPUT_TEXT",
                    "value": attention,
                }
            )
        fields.extend(extra_fields)
        return {
            "eventId": f"evt-{response_id}",
            "eventType": event_type,
            "createdAt": created_at,
            "data": {
                "responseId": response_id,
                "respondentId": "resp-user-1",
                "formId": "form-1",
                "formName": "Product survey",
                "createdAt": created_at,
                "fields": fields,
            },
        }

    return _make


@pytest.fixture()
def insert_event():
    """Build a database INSERT webhook body for a stored row."""

    def _make(row, event_type="INSERT", table="submissions", **record_overrides):
        record = {
            "id": str(row.id),
            "email": row.email,
            "classification": row.classification.value,
            "promo_code": row.promo_code,
            "email_sent": row.email_sent,
        }
        record.update(record_overrides)
        return {"type": event_type, "table": table, "schema": "public", "record": record, "old_record": None}

    return _make
