import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stocktrack.database import Base


class AuditAction(str, PyEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    STOCK_INCREASE = "STOCK_INCREASE"
    STOCK_DECREASE = "STOCK_DECREASE"
    BATCH_STOCK_DECREASE = "BATCH_STOCK_DECREASE"
    BATCH_DELETE = "BATCH_DELETE"
    INBOUND_CREATED = "INBOUND_CREATED"


class AuditCollection(str, PyEnum):
    INVENTORY = "Inventory"
    INSET = "Inset"
    OUTSET = "Outset"


class AuditLog(Base):
    """Append-only record of every ledger mutation."""

    __tablename__ = "auditlogs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    action_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    collection_name: Mapped[str] = mapped_column(String, nullable=False)
    document_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    changes: Mapped[dict] = mapped_column(JSON, default=dict)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    user_name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
