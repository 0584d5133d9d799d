import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from stocktrack.database import Base, utcnow


class InventoryItem(Base):
    """On-hand quantity for one SKU in one bin."""

    __tablename__ = "inventories"
    __table_args__ = (
        UniqueConstraint("sku_id", "bin", name="uq_inventories_sku_bin"),
        CheckConstraint("quantity >= 0", name="ck_inventories_quantity_non_negative"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    sku_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    bin: Mapped[str] = mapped_column(String, nullable=False, default="DEFAULT", index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
