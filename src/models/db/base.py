"""Base Model Module."""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic.main import IncEx
from sqlalchemy.orm import DeclarativeBase

from src.exceptions import UnsupportedModeError


def generic_serialize(obj: Any) -> Any:
    """Convert a column value to a JSON-serializable format.

    Args:
        obj: The object to convert.

    Returns:
        A JSON-serializable representation of the object.
    """
    if obj is None:
        return None
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


class Base(DeclarativeBase):
    """Base class for all database models."""

    def model_dump(
        self,
        *,
        mode: Literal["json", "python"] | str = "python",
        include: IncEx | None = None,
        exclude: IncEx | None = None,
        exclude_none: bool = False,
    ) -> dict[str, Any]:
        """Dump the loaded column values to a dictionary.

        Imitates the behavior of Pydantic's model_dump method.

        Raises:
            UnsupportedModeError: If ``mode`` is neither "python" nor "json".
        """
        inc = set(include) if include and not isinstance(include, dict) else include
        exc = set(exclude) if exclude and not isinstance(exclude, dict) else exclude

        result: dict[str, Any] = {}
        for column in self.__table__.columns:
            k = column.key
            if k not in self.__dict__:
                continue
            v = self.__dict__[k]
            if exclude_none and v is None:
                continue
            if inc and k not in inc:
                continue
            if exc and k in exc:
                continue
            result[k] = v

        if mode == "python":
            return result
        if mode == "json":
            return json.loads(json.dumps(result, default=generic_serialize))
        raise UnsupportedModeError(f"Unsupported mode: {mode}")
