"""Pending Diff Item Database Model."""

from datetime import UTC, datetime

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql.sqltypes import JSON, Boolean, DateTime, Enum, Integer, String

from src.models.db.base import Base
from src.models.watchlist import ContentKind, FeedChannel

__all__ = ["PendingDiffItem"]


class PendingDiffItem(Base):
    """A diff feed observation waiting to be matched against stored items."""

    __tablename__ = "pending_diff_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    source: Mapped[FeedChannel] = mapped_column(Enum(FeedChannel), index=True)

    title: Mapped[str] = mapped_column(String)
    type: Mapped[ContentKind] = mapped_column(Enum(ContentKind))
    thumb: Mapped[str | None] = mapped_column(String, nullable=True)
    guids: Mapped[list[str]] = mapped_column(JSON, default=list)
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)

    routed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True
    )
