from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from duel_ledger.db.base import Base, JsonColumnType, TimestampMixin, enum_column_type
from duel_ledger.db.enums import ModeFamilyEnum


class FeedMatch(Base, TimestampMixin):
    """A match seen in the activity feed. Read-only input for detail ingestion."""

    __tablename__ = "feed_matches"

    match_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    family: Mapped[ModeFamilyEnum] = mapped_column(
        enum_column_type(ModeFamilyEnum, "modefamilyenum"), nullable=False
    )
    played_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    mode_label: Mapped[str | None] = mapped_column(String(64), nullable=True)  # e.g. "TeamDuels"

    raw: Mapped[dict[str, Any] | None] = mapped_column(JsonColumnType, nullable=True)

    __table_args__ = (
        Index("ix_feed_matches_played_at", "played_at"),
        Index("ix_feed_matches_family_played_at", "family", "played_at"),
    )
