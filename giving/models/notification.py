from __future__ import annotations

from typing import Any, Dict, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from giving.extensions import db

from .mixins import JSONType, TimestampMixin, new_id


class Notification(db.Model, TimestampMixin):
    """In-app notification row written for donors."""

    __tablename__ = "notifications"
    __table_args__ = (sa.Index("ix_notifications_user_read", "user_id", "is_read"),)

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    type: Mapped[str] = mapped_column(sa.String(32), nullable=False, default="donation")
    trigger: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)

    title_fr: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    title_en: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    body_fr: Mapped[str] = mapped_column(sa.Text, nullable=False)
    body_en: Mapped[str] = mapped_column(sa.Text, nullable=False)

    data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    is_read: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Notification {self.trigger} user={self.user_id}>"
