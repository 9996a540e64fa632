"""create event store tables

Revision ID: 0001_create_event_store_tables
Revises: 
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_create_event_store_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=True),
        sa.Column("registered_at", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_registered_at"), "users", ["registered_at"], unique=False)

    op.create_table(
        "player_sessions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("player_id", sa.String(length=64), nullable=False),
        sa.Column("start_time", sa.BigInteger(), nullable=False),
        sa.Column("end_time", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_player_sessions_player_id"), "player_sessions", ["player_id"], unique=False)
    op.create_index(op.f("ix_player_sessions_start_time"), "player_sessions", ["start_time"], unique=False)
    op.create_index("ix_player_sessions_player_start", "player_sessions", ["player_id", "start_time"], unique=False)

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("product_type", sa.String(length=64), nullable=False),
        sa.Column("product_id", sa.String(length=128), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", "refunded", name="purchase_status"),
            nullable=False,
        ),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_purchases_user_id"), "purchases", ["user_id"], unique=False)
    op.create_index(op.f("ix_purchases_created_at"), "purchases", ["created_at"], unique=False)
    op.create_index(
        "ix_purchases_user_status_created",
        "purchases",
        ["user_id", "status", "created_at"],
        unique=False,
    )

    op.create_table(
        "player_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("player_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_player_events_player_id"), "player_events", ["player_id"], unique=False)
    op.create_index(op.f("ix_player_events_event_type"), "player_events", ["event_type"], unique=False)
    op.create_index(op.f("ix_player_events_timestamp"), "player_events", ["timestamp"], unique=False)
    op.create_index("ix_player_events_type_timestamp", "player_events", ["event_type", "timestamp"], unique=False)

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("tier", sa.String(length=64), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "cancelled", "expired", name="subscription_status"),
            nullable=False,
        ),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.BigInteger(), nullable=False),
        sa.Column("expires_at", sa.BigInteger(), nullable=False),
        sa.Column("cancelled_at", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_subscriptions_user_id"), "subscriptions", ["user_id"], unique=False)
    op.create_index(op.f("ix_subscriptions_created_at"), "subscriptions", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_subscriptions_created_at"), table_name="subscriptions")
    op.drop_index(op.f("ix_subscriptions_user_id"), table_name="subscriptions")
    op.drop_table("subscriptions")

    op.drop_index("ix_player_events_type_timestamp", table_name="player_events")
    op.drop_index(op.f("ix_player_events_timestamp"), table_name="player_events")
    op.drop_index(op.f("ix_player_events_event_type"), table_name="player_events")
    op.drop_index(op.f("ix_player_events_player_id"), table_name="player_events")
    op.drop_table("player_events")

    op.drop_index("ix_purchases_user_status_created", table_name="purchases")
    op.drop_index(op.f("ix_purchases_created_at"), table_name="purchases")
    op.drop_index(op.f("ix_purchases_user_id"), table_name="purchases")
    op.drop_table("purchases")
    sa.Enum(name="purchase_status").drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_player_sessions_player_start", table_name="player_sessions")
    op.drop_index(op.f("ix_player_sessions_start_time"), table_name="player_sessions")
    op.drop_index(op.f("ix_player_sessions_player_id"), table_name="player_sessions")
    op.drop_table("player_sessions")

    op.drop_index(op.f("ix_users_registered_at"), table_name="users")
    op.drop_table("users")
    sa.Enum(name="subscription_status").drop(op.get_bind(), checkfirst=True)
