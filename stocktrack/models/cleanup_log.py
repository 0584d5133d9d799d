import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stocktrack.database import Base, utcnow


class CleanupStatus(str, PyEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CleanupLog(Base):
    __tablename__ = "cleanuplogs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    cleanup_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    items_removed: Mapped[int] = mapped_column(Integer, default=0)
    actual_items_removed: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String, default=CleanupStatus.PENDING.value, index=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    execution_time_ms: Mapped[int] = mapped_column(Integer, default=0)

    removed_items: Mapped[list["CleanupLogItem"]] = relationship(
        "CleanupLogItem", back_populates="cleanup_log", cascade="all, delete-orphan"
    )


class CleanupLogItem(Base):
    __tablename__ = "cleanuplog_items"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    cleanup_log_id: Mapped[str] = mapped_column(String, ForeignKey("cleanuplogs.id"), nullable=False)
    sku_id: Mapped[str] = mapped_column(String, nullable=False)
    bin: Mapped[str] = mapped_column(String, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    days_inactive: Mapped[int] = mapped_column(Integer, nullable=False)

    cleanup_log: Mapped["CleanupLog"] = relationship("CleanupLog", back_populates="removed_items")
