"""Initial schema: inventory_items table matching db.py.

Revision ID: 001
Revises: (none)
Create Date: 2026-10-06
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- inventory_items ---
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("input", JSONB(), nullable=False),
        sa.Column("attributes", JSONB(), nullable=True),
        sa.Column("market_analysis", JSONB(), nullable=True),
        sa.Column("strategies", JSONB(), nullable=True),
        sa.Column("total_sustainability_impact", JSONB(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'attributes_extracted', 'market_analyzed', "
            "'completed', 'failed')",
            name="ck_inventory_items_status",
        ),
    )
    op.create_index("idx_inventory_items_status", "inventory_items", ["status"])


def downgrade() -> None:
    op.drop_index("idx_inventory_items_status", table_name="inventory_items")
    op.drop_table("inventory_items")
