from __future__ import annotations

from datetime import datetime
from enum import Enum

import sqlalchemy as sa
from sqlalchemy import JSON, DateTime, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def enum_column_type(enum_cls: type[Enum], name: str) -> sa.Enum:
    """Persist enum *values* (not member names), matching what the API and CLI print."""

    return sa.Enum(
        enum_cls,
        name=name,
        values_callable=lambda cls: [e.value for e in cls],
        length=32,
    )


JsonColumnType = JSON().with_variant(JSONB, "postgresql")
