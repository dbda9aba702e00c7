"""Initial schema: users, seasons, tournaments, ratings, matches, rating events

Revision ID: 5b1e0c7d2a90
Revises:
Create Date: 2026-10-18 12:00:00.000000+00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# Revision identifiers, used by Alembic.
revision: str = "5b1e0c7d2a90"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=5), nullable=False),
        sa.Column("auth_user_id", sa.String(length=64), nullable=False),
        sa.Column("username", sa.String(length=20), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("auth_user_id"),
        sa.UniqueConstraint("username"),
    )

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("auth_user_id", sa.String(length=64), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.CheckConstraint("role IN ('admin', 'player')", name="ck_user_roles_role"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("auth_user_id", "role", name="uq_user_roles_user_role"),
    )

    op.create_table(
        "seasons",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("start_at", sa.DateTime(), nullable=False),
        sa.Column("end_at", sa.DateTime(), nullable=True),
        sa.Column("k_factor", sa.Integer(), nullable=True),
        sa.CheckConstraint("status IN ('active', 'finalized')", name="ck_seasons_status"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_seasons_status_start", "seasons", ["status", "start_at"])

    op.create_table(
        "player_season_ratings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=5), nullable=False),
        sa.Column("season_id", sa.String(length=36), nullable=False),
        sa.Column("rating_current", sa.Integer(), nullable=False),
        sa.Column("matches_played", sa.Integer(), nullable=False),
        sa.Column("first_reached_current_rating_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("rating_current >= 1000", name="ck_rating_floor"),
        sa.CheckConstraint("matches_played >= 0", name="ck_matches_played_non_negative"),
        sa.ForeignKeyConstraint(["season_id"], ["seasons.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "season_id", name="uq_player_season_ratings_user_season"),
    )
    op.create_index(
        "idx_player_season_ratings_leaderboard",
        "player_season_ratings",
        ["season_id", "rating_current"],
    )

    op.create_table(
        "tournaments",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("season_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("challonge_url", sa.Text(), nullable=False),
        sa.Column("challonge_slug", sa.String(length=255), nullable=True),
        sa.Column("state", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("state IN ('registered', 'rated')", name="ck_tournaments_state"),
        sa.ForeignKeyConstraint(["season_id"], ["seasons.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_tournaments_season_created", "tournaments", ["season_id", "created_at"])

    op.create_table(
        "tournament_players",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=5), nullable=False),
        sa.Column("challonge_participant_id", sa.Integer(), nullable=True),
        sa.Column("challonge_display_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournaments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tournament_id", "user_id", name="uq_tournament_players_tournament_user"),
    )

    op.create_table(
        "matches",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("tournament_id", sa.String(length=36), nullable=False),
        sa.Column("challonge_match_id", sa.Integer(), nullable=False),
        sa.Column("p1_user_id", sa.String(length=5), nullable=False),
        sa.Column("p2_user_id", sa.String(length=5), nullable=False),
        sa.Column("winner_user_id", sa.String(length=5), nullable=False),
        sa.Column("scores_csv", sa.Text(), nullable=False),
        sa.Column("winner_points", sa.Integer(), nullable=False),
        sa.Column("loser_points", sa.Integer(), nullable=False),
        sa.Column("score_diff", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournaments.id"]),
        sa.ForeignKeyConstraint(["p1_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["p2_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["winner_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_matches_tournament", "matches", ["tournament_id"])

    op.create_table(
        "rating_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("season_id", sa.String(length=36), nullable=False),
        sa.Column("match_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=5), nullable=False),
        sa.Column("rating_before", sa.Integer(), nullable=False),
        sa.Column("rating_after", sa.Integer(), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("k_factor", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["season_id"], ["seasons.id"]),
        sa.ForeignKeyConstraint(["match_id"], ["matches.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_rating_events_match", "rating_events", ["match_id"])
    op.create_index(
        "idx_rating_events_season_user",
        "rating_events",
        ["season_id", "user_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_rating_events_season_user", table_name="rating_events")
    op.drop_index("idx_rating_events_match", table_name="rating_events")
    op.drop_table("rating_events")
    op.drop_index("idx_matches_tournament", table_name="matches")
    op.drop_table("matches")
    op.drop_table("tournament_players")
    op.drop_index("idx_tournaments_season_created", table_name="tournaments")
    op.drop_table("tournaments")
    op.drop_index("idx_player_season_ratings_leaderboard", table_name="player_season_ratings")
    op.drop_table("player_season_ratings")
    op.drop_index("idx_seasons_status_start", table_name="seasons")
    op.drop_table("seasons")
    op.drop_table("user_roles")
    op.drop_table("users")
