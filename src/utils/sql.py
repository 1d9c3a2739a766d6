"""Reusable SQL utility functions."""

from typing import Any

from sqlalchemy.orm.base import Mapped
from sqlalchemy.sql import column, exists, false, func, select
from sqlalchemy.sql.elements import ColumnElement

__all__ = ["json_array_contains"]


def json_array_contains(field: Mapped, values: list[Any]) -> ColumnElement[bool]:
    """Check whether a JSON array column shares at least one value with a list.

    Uses SQLite's json_each table-valued function, correlated to the outer row.

    Args:
        field (Mapped): SQLAlchemy mapped field representing a JSON array column
        values (list[Any]): Values to look for within the JSON array

    Returns:
        ColumnElement[bool]: SQL condition that evaluates to True if any value
                                is found
    """
    if not values:
        return false()

    return exists(
        select(1).select_from(func.json_each(field)).where(column("value").in_(values))
    )
