from __future__ import annotations

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from duel_ledger.db.base import Base, enum_column_type
from duel_ledger.db.enums import RoleEnum


class DetailPlayer(Base):
    """Per-match identity and outcome of one participant, keyed by canonical role."""

    __tablename__ = "detail_players"

    id: Mapped[int] = mapped_column(primary_key=True)

    match_id: Mapped[str] = mapped_column(
        ForeignKey("game_details.match_id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[RoleEnum] = mapped_column(enum_column_type(RoleEnum, "roleenum"), nullable=False)

    player_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    team_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    nick: Mapped[str | None] = mapped_column(String(120), nullable=True)
    country_code: Mapped[str | None] = mapped_column(String(2), nullable=True)

    rating_before: Mapped[float | None] = mapped_column(Float, nullable=True)
    rating_after: Mapped[float | None] = mapped_column(Float, nullable=True)

    victory: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    final_health: Mapped[int | None] = mapped_column(Integer, nullable=True)

    detail: Mapped[GameDetail] = relationship(back_populates="players")

    __table_args__ = (UniqueConstraint("match_id", "role", name="uq_detail_players_match_role"),)


from duel_ledger.db.models.details.game_detail import GameDetail  # noqa: E402
