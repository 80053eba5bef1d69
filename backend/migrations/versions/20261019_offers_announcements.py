"""Offers, offer claims and announcements

Revision ID: 20261019_offers_announcements
Revises: 20261018_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_offers_announcements"
down_revision = "20261018_initial"
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "offers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("offer_type", sa.String(32), nullable=False, server_default="discount"),
        sa.Column("discount_type", sa.String(16), nullable=False, server_default="percentage"),
        sa.Column("discount_value", sa.Integer(), nullable=False),
        sa.Column("minimum_order_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("maximum_discount_cents", sa.Integer(), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("discount_value >= 0", name="ck_offers_discount_value_non_negative"),
        sa.CheckConstraint("used_count >= 0", name="ck_offers_used_count_non_negative"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_offers_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("offers", schema=None) as batch_op:
        batch_op.create_index("ix_offers_code", ["code"], unique=False)
        batch_op.create_index("ix_offers_active_ends", ["is_active", "ends_at"], unique=False)

    op.create_table(
        "offer_claims",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("offer_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["offer_id"], ["offers.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("offer_id", "user_id", name="uq_offer_claims_offer_user"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("offer_claims", schema=None) as batch_op:
        batch_op.create_index("ix_offer_claims_offer_id", ["offer_id"], unique=False)
        batch_op.create_index("ix_offer_claims_user_id", ["user_id"], unique=False)

    op.create_table(
        "announcements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("announcement_type", sa.String(16), nullable=False, server_default="info"),
        sa.Column("priority", sa.String(16), nullable=False, server_default="medium"),
        sa.Column("priority_rank", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("target_audience", sa.String(16), nullable=False, server_default="all"),
        sa.Column("display_location", sa.String(16), nullable=False, server_default="top"),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("views", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("clicks", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("announcements", schema=None) as batch_op:
        batch_op.create_index(
            "ix_announcements_active_window", ["is_active", "starts_at", "ends_at"], unique=False
        )


def downgrade():
    for table in ("announcements", "offer_claims", "offers"):
        op.drop_table(table)
