"""Audience ingestion schema: creators, audience members, interaction events.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # Create enum types
    op.execute(
        "CREATE TYPE audience_member_type AS ENUM "
        "('anonymous', 'email', 'sms', 'spotify', 'customer')"
    )
    op.execute("CREATE TYPE audience_intent_level AS ENUM ('low', 'medium', 'high')")
    op.execute(
        "CREATE TYPE audience_device_type AS ENUM ('mobile', 'desktop', 'tablet', 'unknown')"
    )
    op.execute("CREATE TYPE interaction_action_type AS ENUM ('listen', 'social', 'tip', 'other')")

    # Creators
    op.create_table(
        "creators",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_creators")),
        sa.UniqueConstraint("username", name=op.f("uq_creators_username")),
    )

    # Audience members
    op.create_table(
        "audience_members",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("creator_id", sa.UUID(), nullable=False),
        sa.Column(
            "member_type",
            postgresql.ENUM(name="audience_member_type", create_type=False),
            nullable=False,
            server_default="anonymous",
        ),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("fingerprint", sa.String(64), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("visit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("engagement_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "intent_level",
            postgresql.ENUM(name="audience_intent_level", create_type=False),
            nullable=False,
            server_default="low",
        ),
        sa.Column("recent_actions", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("referrer_history", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("geo_city", sa.Text(), nullable=True),
        sa.Column("geo_country", sa.Text(), nullable=True),
        sa.Column(
            "device_type",
            postgresql.ENUM(name="audience_device_type", create_type=False),
            nullable=False,
            server_default="unknown",
        ),
        sa.Column("spotify_connected", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audience_members")),
        sa.ForeignKeyConstraint(
            ["creator_id"],
            ["creators.id"],
            name=op.f("fk_audience_members_creator_id_creators"),
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "creator_id",
            "fingerprint",
            name="uq_audience_members_creator_fingerprint",
        ),
        sa.CheckConstraint(
            "visit_count >= 0",
            name=op.f("ck_audience_members_visit_count_non_negative"),
        ),
        sa.CheckConstraint(
            "engagement_score >= 0",
            name=op.f("ck_audience_members_engagement_score_non_negative"),
        ),
    )
    op.create_index(
        op.f("ix_audience_members_creator_id"), "audience_members", ["creator_id"]
    )
    op.create_index(
        op.f("ix_audience_members_last_seen_at"), "audience_members", ["last_seen_at"]
    )

    # Interaction events
    op.create_table(
        "interaction_events",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("creator_id", sa.UUID(), nullable=False),
        sa.Column("link_id", sa.UUID(), nullable=True),
        sa.Column(
            "action_type",
            postgresql.ENUM(name="interaction_action_type", create_type=False),
            nullable=False,
        ),
        sa.Column("ip_address", sa.Text(), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("referrer", sa.Text(), nullable=True),
        sa.Column("geo_city", sa.Text(), nullable=True),
        sa.Column("geo_country", sa.Text(), nullable=True),
        sa.Column("device_type", sa.String(32), nullable=True),
        sa.Column("os", sa.String(64), nullable=True),
        sa.Column("browser", sa.String(64), nullable=True),
        sa.Column("is_bot", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("audience_member_id", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_interaction_events")),
        sa.ForeignKeyConstraint(
            ["creator_id"],
            ["creators.id"],
            name=op.f("fk_interaction_events_creator_id_creators"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["audience_member_id"],
            ["audience_members.id"],
            name=op.f("fk_interaction_events_audience_member_id_audience_members"),
            ondelete="SET NULL",
        ),
    )
    op.create_index(
        "ix_interaction_events_creator_created",
        "interaction_events",
        ["creator_id", "created_at"],
    )
    op.create_index(
        op.f("ix_interaction_events_audience_member_id"),
        "interaction_events",
        ["audience_member_id"],
    )


def downgrade() -> None:
    op.drop_table("interaction_events")
    op.drop_table("audience_members")
    op.drop_table("creators")

    op.execute("DROP TYPE IF EXISTS interaction_action_type")
    op.execute("DROP TYPE IF EXISTS audience_device_type")
    op.execute("DROP TYPE IF EXISTS audience_intent_level")
    op.execute("DROP TYPE IF EXISTS audience_member_type")
