"""Admin activity queries over the audit log."""

import csv
import json
import logging
from datetime import datetime
from io import StringIO
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from shared.audit import format_date
from shared.models.audit import AuditEntry
from shared.repositories.audit import AuditRepository

logger = logging.getLogger(__name__)

EXPORT_FIELDS = ["id", "action", "user_id", "lease_id", "car_id", "description", "date", "created_at"]


def entry_to_dict(entry: AuditEntry) -> Dict[str, Any]:
    """Dashboard row for an audit entry."""
    return {
        "id": entry.id,
        "action": entry.action,
        "user_id": entry.user_id,
        "lease_id": str(entry.lease_id) if entry.lease_id else None,
        "car_id": str(entry.car_id) if entry.car_id else None,
        "description": entry.description,
        "date": format_date(entry.created_at),
        "created_at": entry.created_at.isoformat(),
    }


class AuditQueryService:
    """Read side of the admin activity log."""

    def __init__(self, db_session: AsyncSession):
        self.session = db_session
        self.repo = AuditRepository(db_session)

    async def get_recent_activity(
        self,
        action: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AuditEntry]:
        """
        Newest activity first.

        Args:
            action: Only entries of this action
            start_date: Only entries at or after this time
            end_date: Only entries at or before this time
            skip: Pagination offset
            limit: Pagination limit
        """
        entries = await self.repo.get_recent(action=action, skip=skip, limit=limit)

        if start_date:
            entries = [e for e in entries if e.created_at >= start_date]
        if end_date:
            entries = [e for e in entries if e.created_at <= end_date]

        return entries

    async def get_lease_audit_trail(
        self,
        lease_id: UUID,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AuditEntry]:
        """Every entry for a lease, oldest first."""
        return await self.repo.get_lease_history(lease_id, skip=skip, limit=limit)

    async def get_activity_summary(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Entry counts by action and by day."""
        entries = await self.repo.get_recent(skip=0, limit=100000)

        if start_date:
            entries = [e for e in entries if e.created_at >= start_date]
        if end_date:
            entries = [e for e in entries if e.created_at <= end_date]

        by_action: Dict[str, int] = {}
        by_date: Dict[str, int] = {}
        for entry in entries:
            by_action[entry.action] = by_action.get(entry.action, 0) + 1
            day = entry.created_at.date().isoformat()
            by_date[day] = by_date.get(day, 0) + 1

        logger.info(f"Summarised {len(entries)} audit entries")

        return {
            "period_start": start_date.isoformat() if start_date else None,
            "period_end": end_date.isoformat() if end_date else None,
            "total_entries": len(entries),
            "entries_by_action": by_action,
            "entries_by_date": dict(sorted(by_date.items())),
        }

    async def export_lease_audit_trail(self, lease_id: UUID, format: str = "json") -> str:
        """
        Export a lease's audit trail as JSON or CSV.

        Raises:
            ValueError: If the format is not json or csv
        """
        if format not in ("json", "csv"):
            raise ValueError(f"Unsupported format: {format}")

        entries = await self.repo.get_lease_history(lease_id, skip=0, limit=10000)
        rows = [entry_to_dict(entry) for entry in entries]

        if format == "json":
            result = json.dumps(rows, indent=2)
        else:
            output = StringIO()
            writer = csv.DictWriter(output, fieldnames=EXPORT_FIELDS)
            writer.writeheader()
            writer.writerows(rows)
            result = output.getvalue()

        logger.info(f"Exported {len(rows)} audit entries for lease {lease_id} as {format}")

        return result
