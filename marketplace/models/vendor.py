"""Vendor (seller) model"""
from __future__ import annotations

from sqlalchemy import String, Integer, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from typing import TYPE_CHECKING
from marketplace.database import Base
from marketplace.core.datetime_utils import utc_now

if TYPE_CHECKING:
    from marketplace.models.product import Product


class Vendor(Base):
    __tablename__ = "vendors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    # Relationships
    products: Mapped[list["Product"]] = relationship("Product", back_populates="vendor")

    def __repr__(self):
        return f"<Vendor(id={self.id}, name={self.name})>"
