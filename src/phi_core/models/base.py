"""Base model classes for database models."""

import enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type

from sqlalchemy import Column, DateTime, Enum
from sqlalchemy.orm import declarative_base

Base: Any = declarative_base()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC; naive values are taken as UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def enum_column(enum_class: Type[enum.Enum], **kwargs: Any) -> Column:
    """Column storing an enum by value as portable VARCHAR."""
    return Column(
        Enum(
            enum_class,
            native_enum=False,
            length=32,
            values_callable=lambda members: [m.value for m in members],
        ),
        **kwargs,
    )


class TimestampMixin:
    """Mixin for adding timestamp fields to models."""

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class RowMixin:
    """Plain-dict conversion for handing rows across the service boundary."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary of raw column values."""
        result = {}
        for column in self.__table__.columns:  # type: ignore[attr-defined]
            value = getattr(self, column.name)
            if isinstance(value, enum.Enum):
                value = value.value
            result[column.name] = value
        return result
