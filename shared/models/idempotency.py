from sqlalchemy import (
    Column, String, DateTime, Index, JSON
)
from datetime import datetime

from shared.database.base import Base


class IdempotencyKey(Base):
    """Processed-operation marker, e.g. a webhook event already reconciled."""

    __tablename__ = "idempotency_keys"

    # "{payment_intent_id}:{event_type}" for webhook events
    key = Column(
        String(255),
        primary_key=True,
    )

    operation = Column(
        String(100),
        nullable=False,
        index=True,
    )

    # Outcome recorded for the operation
    result_payload = Column(
        JSON,
        nullable=True,
    )

    expires_at = Column(
        DateTime,
        nullable=False,
        index=True,
    )

    created_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )

    __table_args__ = (
        Index("idx_operation_created", "operation", "created_at"),
    )

    def __repr__(self):
        return f"<IdempotencyKey(key={self.key}, operation={self.operation})>"
