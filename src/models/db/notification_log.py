"""Notification Log Database Model."""

from datetime import UTC, datetime

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import ForeignKey, Index
from sqlalchemy.sql.sqltypes import DateTime, Integer, String

from src.models.db.base import Base

__all__ = ["NotificationLog"]


class NotificationLog(Base):
    """Titles a user has already been notified about."""

    __tablename__ = "notification_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("user.id", ondelete="CASCADE")
    )
    title: Mapped[str] = mapped_column(String)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("ix_notification_log_user_title", "user_id", "title", unique=True),
    )
