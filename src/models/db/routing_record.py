"""Routing Record Database Model."""

from datetime import UTC, datetime

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import ForeignKey
from sqlalchemy.sql.sqltypes import JSON, DateTime, Enum, Integer, String

from src.models.db.base import Base
from src.models.watchlist import ContentKind

__all__ = ["RoutingRecord"]


class RoutingRecord(Base):
    """A content submission made to an acquisition backend.

    Submissions made from the diff feed fast path have no known owner and are
    stored with a NULL ``user_id`` until they are attributed.
    """

    __tablename__ = "routing_record"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("user.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    key: Mapped[str] = mapped_column(String, index=True)
    title: Mapped[str] = mapped_column(String)
    type: Mapped[ContentKind] = mapped_column(Enum(ContentKind))
    guids: Mapped[list[str]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    attributed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
