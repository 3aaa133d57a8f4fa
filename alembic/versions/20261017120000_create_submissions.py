"""create submissions

Revision ID: 20261017120000
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = "20261017120000"
down_revision = None
branch_labels = None
depends_on = None


UPDATED_AT_FUNCTION = """
CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
  NEW.updated_at = NOW();
  RETURN NEW;
END;
$$ language 'plpgsql';
"""

UPDATED_AT_TRIGGER = """
CREATE TRIGGER update_submissions_updated_at
  BEFORE UPDATE ON submissions
  FOR EACH ROW
  EXECUTE FUNCTION update_updated_at_column();
"""


def upgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)
    is_pg = bind.dialect.name == "postgresql"

    if "submissions" not in insp.get_table_names():
        answers_type = sa.JSON()
        if is_pg:
            from sqlalchemy.dialects.postgresql import JSONB

            answers_type = JSONB()

        op.create_table(
            "submissions",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("tally_response_id", sa.String(length=255), nullable=False),
            sa.Column("answers", answers_type, nullable=False, server_default=sa.text("'{}'")),
            sa.Column("classification", sa.String(length=14), nullable=False),
            sa.Column("classification_reason", sa.Text(), nullable=True),
            sa.Column("promo_code", sa.String(length=64), nullable=True),
            sa.Column("email_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("email_type", sa.String(length=6), nullable=True),
            sa.Column("submission_time_seconds", sa.Float(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint("tally_response_id", name="uq_submissions_tally_response_id"),
            sa.CheckConstraint(
                "classification IN ('valid', 'bot', 'attention_fail')",
                name="ck_submissions_classification",
            ),
            sa.CheckConstraint(
                "email_type IS NULL OR email_type IN ('reward', 'abuse')",
                name="ck_submissions_email_type",
            ),
        )

    # Indexes (idempotent)
    def has_index(table: str, name: str) -> bool:
        try:
            return any(i.get("name") == name for i in insp.get_indexes(table))
        except Exception:
            return False

    for name, cols, unique in [
        # One row per email closes the duplicate-check race.
        ("ix_submissions_email", ["email"], True),
        ("ix_submissions_classification", ["classification"], False),
        ("ix_submissions_email_sent", ["email_sent"], False),
    ]:
        if not has_index("submissions", name):
            op.create_index(name, "submissions", cols, unique=unique)

    if is_pg:
        op.execute(UPDATED_AT_FUNCTION)
        op.execute("DROP TRIGGER IF EXISTS update_submissions_updated_at ON submissions;")
        op.execute(UPDATED_AT_TRIGGER)


def downgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)
    if bind.dialect.name == "postgresql":
        op.execute("DROP TRIGGER IF EXISTS update_submissions_updated_at ON submissions;")
        op.execute("DROP FUNCTION IF EXISTS update_updated_at_column();")
    if "submissions" in insp.get_table_names():
        op.drop_table("submissions")
