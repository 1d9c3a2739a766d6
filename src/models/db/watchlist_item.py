"""Watchlist Item Database Model."""

from datetime import UTC, datetime

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import ForeignKey, Index
from sqlalchemy.sql.sqltypes import JSON, DateTime, Enum, Integer, String

from src.models.db.base import Base
from src.models.watchlist import ContentKind, ItemStatus, WatchlistEntry

__all__ = ["WatchlistItem"]


class WatchlistItem(Base):
    """One piece of content on one user's watchlist.

    ``key`` holds the content identity key, so the unique index over
    ``(user_id, key)`` enforces one row per user and content.
    """

    __tablename__ = "watchlist_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True
    )
    key: Mapped[str] = mapped_column(String, index=True)

    title: Mapped[str | None] = mapped_column(String, nullable=True)
    type: Mapped[ContentKind | None] = mapped_column(
        Enum(ContentKind), nullable=True
    )
    thumb: Mapped[str | None] = mapped_column(String, nullable=True)
    guids: Mapped[list[str]] = mapped_column(JSON, default=list)
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)
    status: Mapped[ItemStatus] = mapped_column(
        Enum(ItemStatus), default=ItemStatus.PENDING, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("ix_watchlist_item_user_key", "user_id", "key", unique=True),
    )

    @property
    def has_metadata(self) -> bool:
        """Whether the row carries enough metadata to be copied to another user."""
        return bool(self.title) and self.type is not None

    def to_entry(self) -> WatchlistEntry:
        """Convert the row to an immutable entry."""
        return WatchlistEntry(
            key=self.key,
            title=self.title or "",
            kind=self.type or ContentKind.MOVIE,
            guids=tuple(self.guids or ()),
            genres=tuple(self.genres or ()),
            thumb=self.thumb,
            user_id=self.user_id,
        )
