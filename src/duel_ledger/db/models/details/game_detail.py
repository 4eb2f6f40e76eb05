from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from duel_ledger.db.base import Base, JsonColumnType, TimestampMixin, enum_column_type
from duel_ledger.db.enums import DetailStatusEnum, ModeFamilyEnum, MovementModeEnum


class GameDetail(Base, TimestampMixin):
    __tablename__ = "game_details"

    match_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    status: Mapped[DetailStatusEnum] = mapped_column(
        enum_column_type(DetailStatusEnum, "detailstatusenum"), nullable=False
    )
    fetched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    endpoint: Mapped[str | None] = mapped_column(String(255), nullable=True)

    family: Mapped[ModeFamilyEnum] = mapped_column(
        enum_column_type(ModeFamilyEnum, "modefamilyenum"), nullable=False
    )
    mode_label: Mapped[str | None] = mapped_column(String(64), nullable=True)

    map_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    map_slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_rated: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    total_rounds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    damage_multiplier_rounds: Mapped[list[int]] = mapped_column(
        JsonColumnType, nullable=False, default=list
    )
    healing_rounds: Mapped[list[int]] = mapped_column(JsonColumnType, nullable=False, default=list)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    movement_mode: Mapped[MovementModeEnum | None] = mapped_column(
        enum_column_type(MovementModeEnum, "movementmodeenum"), nullable=True
    )
    winning_team_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Map metadata fields the payload did not carry, re-checked on a slow cadence.
    missing_fields: Mapped[list[str] | None] = mapped_column(JsonColumnType, nullable=True)
    missing_fields_checked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    raw: Mapped[dict[str, Any] | None] = mapped_column(JsonColumnType, nullable=True)

    players: Mapped[list[DetailPlayer]] = relationship(
        back_populates="detail",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DetailPlayer.id",
    )

    __table_args__ = (Index("ix_game_details_status_fetched_at", "status", "fetched_at"),)


from duel_ledger.db.models.details.detail_player import DetailPlayer  # noqa: E402
