# Import all models so SQLAlchemy metadata is fully populated on startup.
from app.db.models.submission import Classification, EmailType, Submission


__all__ = [
    "Classification",
    "EmailType",
    "Submission",
]
