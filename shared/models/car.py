from sqlalchemy import Column, String, Numeric, Integer, Boolean, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime
from uuid import uuid4

from shared.database.base import Base


class Car(Base):
    """A car listed for lease."""

    __tablename__ = "cars"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # Descriptive fields
    brand = Column(String(100), nullable=False)
    model_name = Column(String(100), nullable=False)
    year = Column(Integer, nullable=True)

    # Pricing
    price_per_day = Column(
        Numeric(10, 2),
        nullable=False,
    )

    # Lease availability; written only through conditional updates
    available = Column(
        Boolean,
        nullable=False,
        default=True,
        index=True,
    )

    created_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )

    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    __table_args__ = (
        Index("idx_car_brand_model", "brand", "model_name"),
    )

    def __repr__(self):
        return f"<Car(id={self.id}, model={self.brand} {self.model_name}, available={self.available})>"
