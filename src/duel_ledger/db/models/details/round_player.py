from __future__ import annotations

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from duel_ledger.db.base import Base, enum_column_type
from duel_ledger.db.enums import RoleEnum


class RoundPlayer(Base):
    __tablename__ = "round_players"

    id: Mapped[int] = mapped_column(primary_key=True)

    round_id: Mapped[str] = mapped_column(
        ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False
    )
    match_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role: Mapped[RoleEnum] = mapped_column(enum_column_type(RoleEnum, "roleenum"), nullable=False)

    player_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    team_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    guess_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    guess_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    guess_country: Mapped[str | None] = mapped_column(String(2), nullable=True)

    distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    health_after: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_best_guess: Mapped[bool | None] = mapped_column(Boolean, nullable=True)  # team matches

    round: Mapped[Round] = relationship(back_populates="players")

    __table_args__ = (UniqueConstraint("round_id", "role", name="uq_round_players_round_role"),)


from duel_ledger.db.models.details.round import Round  # noqa: E402
