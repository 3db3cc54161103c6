"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2025-01-06

Creates all initial tables for Deden stays:
- Users (wallet identity)
- Stays
- Bookings with payment lock and receipt data
- Activity log
- Used transaction hashes (replay guard)
"""

from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all database tables."""

    # ==================== USERS ====================
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("wallet_address", sa.String(42), unique=True, index=True),
        sa.Column("email", sa.String(255), unique=True, index=True),
        sa.Column("display_name", sa.String(100)),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("role", sa.String(20), nullable=False, server_default="GUEST"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== STAYS ====================
    op.create_table(
        "stays",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("stay_id", sa.String(100), unique=True, nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("location", sa.String(200), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price_usdc", sa.Numeric(18, 6), nullable=False),
        sa.Column("price_usdt", sa.Numeric(18, 6), nullable=False),
        sa.Column("slots_total", sa.Integer, server_default="0"),
        sa.Column("allow_waitlist", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== BOOKINGS ====================
    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", sa.String(120), unique=True, nullable=False, index=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("stay_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("stays.id"), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="WAITLISTED", index=True),
        sa.Column("guest_name", sa.String(100)),
        sa.Column("guest_email", sa.String(255)),
        sa.Column("opt_in_guest_list", sa.Boolean, server_default=sa.false()),
        sa.Column("selected_room_name", sa.String(100)),
        sa.Column("selected_room_price_usdc", sa.Numeric(18, 6)),
        sa.Column("selected_room_price_usdt", sa.Numeric(18, 6)),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        # Payment lock
        sa.Column("payment_token", sa.String(10)),
        sa.Column("payment_amount", sa.Numeric(38, 18)),
        sa.Column("amount_base_units", sa.String(78)),
        sa.Column("chain_id", sa.Integer),
        # Transaction
        sa.Column("tx_hash", sa.String(66), index=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("block_number", sa.BigInteger),
        sa.Column("sender_address", sa.String(42)),
        sa.Column("receiver_address", sa.String(42)),
        sa.Column("gas_used", sa.String(78)),
        sa.Column("total_paid", sa.Numeric(38, 18)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "stay_id", name="uq_bookings_user_stay"),
        # Payment group is all-null or all-set
        sa.CheckConstraint(
            "(payment_token IS NULL AND payment_amount IS NULL AND amount_base_units IS NULL AND chain_id IS NULL)"
            " OR (payment_token IS NOT NULL AND payment_amount IS NOT NULL"
            " AND amount_base_units IS NOT NULL AND chain_id IS NOT NULL)",
            name="ck_bookings_payment_group",
        ),
    )

    # ==================== ACTIVITY LOG ====================
    op.create_table(
        "activity_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), index=True),
        sa.Column("action", sa.String(50), nullable=False, index=True),
        sa.Column("entity", sa.String(30), nullable=False, server_default="booking"),
        sa.Column("details", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )

    # ==================== REPLAY GUARD ====================
    op.create_table(
        "used_transaction_hashes",
        sa.Column("tx_hash", sa.String(66), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("chain_id", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Drop all database tables in reverse order."""
    op.drop_table("used_transaction_hashes")
    op.drop_table("activity_logs")
    op.drop_table("bookings")
    op.drop_table("stays")
    op.drop_table("users")
