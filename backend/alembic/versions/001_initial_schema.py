"""Initial How Sitter schema

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates users, sitter_profiles, properties (+ amenities, images,
       saved_properties), arrangements and messages.
How:   PostgreSQL-specific: gen_random_uuid() defaults, TIMESTAMPTZ, and an
       exclusion constraint (btree_gist) that rejects overlapping
       pending/confirmed/active arrangements of the same property. Date
       ranges are closed '[]', so a stay ending on day D conflicts with one
       starting on day D.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # ── users / sitter_profiles ───────────────────────────────────────────
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(255), nullable=False, comment="Login identifier, stored lower-cased"),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, comment="homeowner, sitter or admin"),
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column("verified", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("role IN ('homeowner', 'sitter', 'admin')", name="ck_users_role"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "sitter_profiles",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("rating", sa.Numeric(3, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("total_reviews", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("experience_years", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("credentials", sa.Text(), nullable=True),
        sa.Column("languages", sa.String(255), nullable=True),
        sa.Column("is_available", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id"),
    )

    # ── properties and satellites ─────────────────────────────────────────
    op.create_table(
        "properties",
        _uuid_pk(),
        sa.Column("homeowner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("type", sa.String(50), server_default=sa.text("'house'"), nullable=False),
        sa.Column("bedrooms", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("bathrooms", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("square_feet", sa.Integer(), nullable=True),
        sa.Column("rules", sa.Text(), server_default=sa.text("''"), nullable=False),
        sa.Column("website_url", sa.String(500), nullable=True),
        sa.Column("virtual_tour_url", sa.String(500), nullable=True),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("city", sa.String(100), nullable=False),
        sa.Column("country", sa.String(100), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("price_per_month", sa.Numeric(10, 2), nullable=False),
        sa.Column("security_deposit", sa.Numeric(10, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("min_stay_days", sa.Integer(), server_default=sa.text("30"), nullable=False),
        sa.Column("max_stay_days", sa.Integer(), server_default=sa.text("365"), nullable=False),
        sa.Column("availability_start", sa.Date(), nullable=True),
        sa.Column("availability_end", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["homeowner_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('available', 'occupied', 'maintenance', 'pending', 'unavailable')",
            name="ck_properties_status",
        ),
        sa.CheckConstraint("min_stay_days <= max_stay_days", name="ck_properties_stay_bounds"),
    )
    op.create_index(
        "idx_properties_status_created", "properties", ["status", sa.text("created_at DESC")]
    )
    op.create_index("idx_properties_homeowner", "properties", ["homeowner_id"])
    op.create_index("idx_properties_city", "properties", ["city"])
    op.create_index("idx_properties_lat_lng", "properties", ["latitude", "longitude"])

    op.create_table(
        "property_amenities",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("property_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amenity", sa.String(100), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("property_id", "amenity", name="uq_property_amenity"),
    )
    op.create_index("idx_property_amenities_amenity", "property_amenities", ["amenity"])

    op.create_table(
        "property_images",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("property_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("image_url", sa.String(500), nullable=False),
        sa.Column("is_primary", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("display_order", sa.Integer(), server_default=sa.text("0"), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "idx_property_images_property_order", "property_images", ["property_id", "display_order"]
    )

    op.create_table(
        "saved_properties",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("property_id", postgresql.UUID(as_uuid=True), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "property_id", name="uq_saved_property"),
    )

    # ── arrangements / messages ───────────────────────────────────────────
    op.create_table(
        "arrangements",
        _uuid_pk(),
        sa.Column("property_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("sitter_id", postgresql.UUID(as_uuid=True), nullable=False,
                  comment="User id of the sitter (role='sitter')"),
        sa.Column("homeowner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("security_deposit", sa.Numeric(10, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("house_rules", sa.Text(), nullable=True),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["sitter_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["homeowner_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("start_date < end_date", name="ck_arrangements_dates"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'active', 'completed', 'cancelled')",
            name="ck_arrangements_status",
        ),
    )
    op.create_index("idx_arrangements_property_status", "arrangements", ["property_id", "status"])
    op.create_index("idx_arrangements_sitter", "arrangements", ["sitter_id"])
    op.create_index("idx_arrangements_homeowner", "arrangements", ["homeowner_id"])

    op.execute(
        """
        ALTER TABLE arrangements
        ADD CONSTRAINT ex_arrangements_no_overlap
        EXCLUDE USING gist (
            property_id WITH =,
            daterange(start_date, end_date, '[]') WITH &&
        )
        WHERE (status IN ('pending', 'confirmed', 'active'))
        """
    )

    op.create_table(
        "messages",
        _uuid_pk(),
        sa.Column("arrangement_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sender_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("receiver_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["arrangement_id"], ["arrangements.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["receiver_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "idx_messages_arrangement_created", "messages", ["arrangement_id", "created_at"]
    )


def downgrade() -> None:
    """Drops every table. Destructive: all data is lost."""
    op.drop_index("idx_messages_arrangement_created", table_name="messages")
    op.drop_table("messages")
    op.execute("ALTER TABLE arrangements DROP CONSTRAINT IF EXISTS ex_arrangements_no_overlap")
    op.drop_index("idx_arrangements_homeowner", table_name="arrangements")
    op.drop_index("idx_arrangements_sitter", table_name="arrangements")
    op.drop_index("idx_arrangements_property_status", table_name="arrangements")
    op.drop_table("arrangements")
    op.drop_table("saved_properties")
    op.drop_index("idx_property_images_property_order", table_name="property_images")
    op.drop_table("property_images")
    op.drop_index("idx_property_amenities_amenity", table_name="property_amenities")
    op.drop_table("property_amenities")
    op.drop_index("idx_properties_lat_lng", table_name="properties")
    op.drop_index("idx_properties_city", table_name="properties")
    op.drop_index("idx_properties_homeowner", table_name="properties")
    op.drop_index("idx_properties_status_created", table_name="properties")
    op.drop_table("properties")
    op.drop_table("sitter_profiles")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
