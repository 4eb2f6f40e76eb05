"""Initial schema: feed matches, game details, rounds, meta

Revision ID: 3f9c2a7d1b40
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f9c2a7d1b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

mode_family = postgresql.ENUM(
    "duels", "team_duels", "other", name="modefamilyenum", create_type=False
)
detail_status = postgresql.ENUM(
    "missing", "ok", "error", name="detailstatusenum", create_type=False
)
role = postgresql.ENUM(
    "self", "mate", "opponent", "opponent_mate", name="roleenum", create_type=False
)
movement_mode = postgresql.ENUM(
    "moving", "no move", "nmpz", name="movementmodeenum", create_type=False
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in (mode_family, detail_status, role, movement_mode):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "feed_matches",
        sa.Column("match_id", sa.String(length=64), nullable=False),
        sa.Column("family", mode_family, nullable=False),
        sa.Column("played_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("mode_label", sa.String(length=64), nullable=True),
        sa.Column("raw", JSON_TYPE, nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("match_id"),
    )
    op.create_index("ix_feed_matches_played_at", "feed_matches", ["played_at"], unique=False)
    op.create_index(
        "ix_feed_matches_family_played_at",
        "feed_matches",
        ["family", "played_at"],
        unique=False,
    )

    op.create_table(
        "game_details",
        sa.Column("match_id", sa.String(length=64), nullable=False),
        sa.Column("status", detail_status, nullable=False),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("endpoint", sa.String(length=255), nullable=True),
        sa.Column("family", mode_family, nullable=False),
        sa.Column("mode_label", sa.String(length=64), nullable=True),
        sa.Column("map_name", sa.String(length=255), nullable=True),
        sa.Column("map_slug", sa.String(length=255), nullable=True),
        sa.Column("is_rated", sa.Boolean(), nullable=True),
        sa.Column("total_rounds", sa.Integer(), nullable=True),
        sa.Column("damage_multiplier_rounds", JSON_TYPE, nullable=False),
        sa.Column("healing_rounds", JSON_TYPE, nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("movement_mode", movement_mode, nullable=True),
        sa.Column("winning_team_id", sa.String(length=64), nullable=True),
        sa.Column("missing_fields", JSON_TYPE, nullable=True),
        sa.Column("missing_fields_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("raw", JSON_TYPE, nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("match_id"),
    )
    op.create_index(
        "ix_game_details_status_fetched_at",
        "game_details",
        ["status", "fetched_at"],
        unique=False,
    )

    op.create_table(
        "detail_players",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.String(length=64), nullable=False),
        sa.Column("role", role, nullable=False),
        sa.Column("player_id", sa.String(length=64), nullable=True),
        sa.Column("team_id", sa.String(length=64), nullable=True),
        sa.Column("nick", sa.String(length=120), nullable=True),
        sa.Column("country_code", sa.String(length=2), nullable=True),
        sa.Column("rating_before", sa.Float(), nullable=True),
        sa.Column("rating_after", sa.Float(), nullable=True),
        sa.Column("victory", sa.Boolean(), nullable=True),
        sa.Column("final_health", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["match_id"], ["game_details.match_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("match_id", "role", name="uq_detail_players_match_role"),
    )
    op.create_index("ix_detail_players_match_id", "detail_players", ["match_id"], unique=False)

    op.create_table(
        "rounds",
        sa.Column("id", sa.String(length=80), nullable=False),
        sa.Column("match_id", sa.String(length=64), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("true_lat", sa.Float(), nullable=True),
        sa.Column("true_lng", sa.Float(), nullable=True),
        sa.Column("true_country", sa.String(length=2), nullable=True),
        sa.Column("damage_multiplier", sa.Float(), nullable=True),
        sa.Column("is_healing_round", sa.Boolean(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.Column("health_diff_after", sa.Integer(), nullable=True),
        sa.Column("raw", JSON_TYPE, nullable=True),
        sa.ForeignKeyConstraint(["match_id"], ["game_details.match_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rounds_match_round", "rounds", ["match_id", "round_number"], unique=False)

    op.create_table(
        "round_players",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("round_id", sa.String(length=80), nullable=False),
        sa.Column("match_id", sa.String(length=64), nullable=False),
        sa.Column("role", role, nullable=False),
        sa.Column("player_id", sa.String(length=64), nullable=True),
        sa.Column("team_id", sa.String(length=64), nullable=True),
        sa.Column("guess_lat", sa.Float(), nullable=True),
        sa.Column("guess_lng", sa.Float(), nullable=True),
        sa.Column("guess_country", sa.String(length=2), nullable=True),
        sa.Column("distance_km", sa.Float(), nullable=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("health_after", sa.Integer(), nullable=True),
        sa.Column("is_best_guess", sa.Boolean(), nullable=True),
        sa.ForeignKeyConstraint(["round_id"], ["rounds.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("round_id", "role", name="uq_round_players_round_role"),
    )
    op.create_index("ix_round_players_match_id", "round_players", ["match_id"], unique=False)

    op.create_table(
        "meta",
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("value", JSON_TYPE, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    op.drop_table("meta")
    op.drop_index("ix_round_players_match_id", table_name="round_players")
    op.drop_table("round_players")
    op.drop_index("ix_rounds_match_round", table_name="rounds")
    op.drop_table("rounds")
    op.drop_index("ix_detail_players_match_id", table_name="detail_players")
    op.drop_table("detail_players")
    op.drop_index("ix_game_details_status_fetched_at", table_name="game_details")
    op.drop_table("game_details")
    op.drop_index("ix_feed_matches_family_played_at", table_name="feed_matches")
    op.drop_index("ix_feed_matches_played_at", table_name="feed_matches")
    op.drop_table("feed_matches")

    bind = op.get_bind()
    for enum_type in (movement_mode, role, detail_status, mode_family):
        enum_type.drop(bind, checkfirst=True)
