"""User Database Model."""

from datetime import UTC, datetime

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql.sqltypes import Boolean, DateTime, Integer, String

from src.models.db.base import Base

__all__ = ["User"]


class User(Base):
    """A watchlist owner: the primary account or one of its friends."""

    __tablename__ = "user"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, unique=True, index=True)
    watchlist_id: Mapped[str | None] = mapped_column(
        String, nullable=True, index=True
    )

    can_sync: Mapped[bool] = mapped_column(Boolean, default=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        """Return a short description of the user."""
        return (
            f"<User id={self.id} name={self.name!r} primary={self.is_primary} "
            f"can_sync={self.can_sync}>"
        )
