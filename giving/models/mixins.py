# giving/models/mixins.py
"""Shared SQLAlchemy mixins and column helpers."""

import uuid as _uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, event
from sqlalchemy.dialects import postgresql

from giving.extensions import db


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are timezone-less, values are always UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(_uuid.uuid4())


# Portable: JSON on SQLite, JSONB on Postgres
JSONType = JSON().with_variant(postgresql.JSONB(), "postgresql")


class TimestampMixin:
    """Adds created_at and updated_at columns with auto-refresh behavior."""

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @staticmethod
    def _set_updated_at(mapper, connection, target):
        target.updated_at = utcnow()

    @classmethod
    def __declare_last__(cls):
        event.listen(cls, "before_update", cls._set_updated_at)
