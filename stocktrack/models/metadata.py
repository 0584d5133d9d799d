import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stocktrack.database import Base


class MetadataMixin:
    """Named lookup value with soft delete."""

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())


class Bin(MetadataMixin, Base):
    __tablename__ = "bins"


class ProductSize(MetadataMixin, Base):
    __tablename__ = "sizes"


class Color(MetadataMixin, Base):
    __tablename__ = "colors"


class Pack(MetadataMixin, Base):
    __tablename__ = "packs"


class ProductCategory(MetadataMixin, Base):
    __tablename__ = "categories"
