"""Housekeeping Model Module."""

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql.sqltypes import String

from src.models.db.base import Base

__all__ = ["Housekeeping"]


class Housekeeping(Base):
    """Key/value bookkeeping, such as the last successful sync time."""

    __tablename__ = "house_keeping"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str | None] = mapped_column(String, nullable=True)
