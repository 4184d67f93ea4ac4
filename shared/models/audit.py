from sqlalchemy import Column, String, Text, DateTime, Index, Integer
from sqlalchemy.dialects.postgresql import UUID, BIGINT
from datetime import datetime

from shared.database.base import Base


class AuditEntry(Base):
    """Append-only admin activity log."""

    __tablename__ = "audit_log"

    # Use Integer for SQLite compatibility, BIGINT for PostgreSQL
    id = Column(
        Integer().with_variant(BIGINT(), "postgresql"),
        primary_key=True,
        autoincrement=True,
    )

    action = Column(
        String(100),
        nullable=False,
        index=True,
    )

    user_id = Column(
        String(255),
        nullable=False,
        index=True,
    )

    # No foreign keys: entries outlive deleted leases
    lease_id = Column(
        UUID(as_uuid=True),
        nullable=True,
        index=True,
    )

    car_id = Column(
        UUID(as_uuid=True),
        nullable=True,
    )

    description = Column(
        Text,
        nullable=False,
    )

    created_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )

    __table_args__ = (
        Index("idx_audit_lease_created", "lease_id", "created_at"),
        Index("idx_audit_action_created", "action", "created_at"),
    )

    def __repr__(self):
        return f"<AuditEntry(id={self.id}, action={self.action}, lease_id={self.lease_id})>"
