from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from duel_ledger.db.base import Base, JsonColumnType


def round_key(match_id: str, round_number: int) -> str:
    return f"{match_id}:{round_number}"


class Round(Base):
    __tablename__ = "rounds"

    id: Mapped[str] = mapped_column(String(80), primary_key=True)  # "{match_id}:{round_number}"

    match_id: Mapped[str] = mapped_column(
        ForeignKey("game_details.match_id", ondelete="CASCADE"), nullable=False
    )
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)

    true_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    true_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    true_country: Mapped[str | None] = mapped_column(String(2), nullable=True)

    damage_multiplier: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_healing_round: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)

    # self minus opponent, head-to-head only
    health_diff_after: Mapped[int | None] = mapped_column(Integer, nullable=True)

    raw: Mapped[dict[str, Any] | None] = mapped_column(JsonColumnType, nullable=True)

    players: Mapped[list[RoundPlayer]] = relationship(
        back_populates="round",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RoundPlayer.id",
    )

    __table_args__ = (Index("ix_rounds_match_round", "match_id", "round_number"),)


from duel_ledger.db.models.details.round_player import RoundPlayer  # noqa: E402
