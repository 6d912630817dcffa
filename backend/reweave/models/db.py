"""SQLAlchemy ORM model for the item record.

The schema is owned here and in the Alembic migrations; the runtime store
(persistence/postgres.py) talks to the same table through asyncpg. Nested
pipeline outputs are JSONB blobs shaped like the contract models.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

ITEM_STATUSES = ("pending", "attributes_extracted", "market_analyzed", "completed", "failed")


class Base(DeclarativeBase):
    pass


class InventoryItemRow(Base):
    __tablename__ = "inventory_items"
    __table_args__ = (
        Index("idx_inventory_items_status", "status"),
        CheckConstraint(
            "status IN ({})".format(", ".join(f"'{s}'" for s in ITEM_STATUSES)),
            name="ck_inventory_items_status",
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    input: Mapped[dict] = mapped_column(JSONB, nullable=False)
    attributes: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    market_analysis: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    strategies: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    total_sustainability_impact: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
