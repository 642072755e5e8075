"""Audit Service - recording, querying and exporting the change history"""
import csv
import json
import logging
from collections import Counter
from datetime import datetime, timedelta
from io import StringIO
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from domain.entities import AuditLogEntry
from domain.enums import AuditAction
from domain.repositories import AuditLogRepository

logger = logging.getLogger(__name__)

EXPORT_FIELDS = [
    "id",
    "table_name",
    "record_id",
    "action",
    "user_id",
    "user_email",
    "timestamp",
    "changed_fields",
    "ip_address",
    "user_agent",
]

EXPORT_HEADERS = {
    "id": "ID",
    "table_name": "Table Name",
    "record_id": "Record ID",
    "action": "Action",
    "user_id": "User ID",
    "user_email": "User Email",
    "timestamp": "Timestamp",
    "changed_fields": "Changed Fields",
    "ip_address": "IP Address",
    "user_agent": "User Agent",
    "old_values": "Old Values",
    "new_values": "New Values",
}


class AuditFilters(BaseModel):
    table_name: Optional[str] = None
    record_id: Optional[str] = None
    user_id: Optional[str] = None
    action: Optional[AuditAction] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None


class AuditIntegrityResult(BaseModel):
    total_logs: int
    valid_logs: int
    invalid_logs: int
    integrity_percentage: float
    invalid_ids: List[str] = []


class AuditService:
    """Service for audit trail use cases"""

    def __init__(self, repository: AuditLogRepository):
        self.repository = repository

    async def record(
        self,
        table_name: str,
        record_id: str,
        action: AuditAction,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> AuditLogEntry:
        entry = AuditLogEntry.create(
            table_name=table_name,
            record_id=record_id,
            action=action,
            user_id=user_id,
            user_email=user_email,
            old_values=old_values,
            new_values=new_values,
            ip_address=ip_address,
            user_agent=user_agent
        )
        logger.debug(f"Audit {action.value} on {table_name}/{record_id} by {user_email or user_id}")
        return await self.repository.save(entry)

    # ==================== QUERIES ====================
    async def get_audit_logs(
        self,
        filters: Optional[AuditFilters] = None,
        page: int = 1,
        limit: int = 50
    ) -> Tuple[List[AuditLogEntry], int]:
        """Filtered logs, newest first, with the total match count"""
        if page < 1:
            raise ValueError("Page must be 1 or greater")
        if limit < 1:
            raise ValueError("Limit must be 1 or greater")

        logs = await self._find(filters or AuditFilters())
        offset = (page - 1) * limit
        return logs[offset:offset + limit], len(logs)

    async def get_entity_history(self, table_name: str, record_id: str) -> List[AuditLogEntry]:
        """All changes to one record, oldest first"""
        logs = await self._find(AuditFilters(table_name=table_name, record_id=record_id))
        return list(reversed(logs))

    async def export_audit_logs(
        self,
        filters: Optional[AuditFilters] = None,
        export_format: str = "csv",
        fields: Optional[List[str]] = None,
        include_values: bool = False
    ) -> str:
        if export_format not in ("csv", "json"):
            raise ValueError("Export format must be 'csv' or 'json'")

        available = EXPORT_FIELDS + (["old_values", "new_values"] if include_values else [])
        selected = fields or available
        unknown = [f for f in selected if f not in available]
        if unknown:
            raise ValueError(f"Unknown export fields: {', '.join(unknown)}")

        logs = await self._find(filters or AuditFilters())
        logger.info(f"📊 Exporting {len(logs)} audit logs as {export_format}")

        if export_format == "json":
            rows = [{field: self._export_value(log, field, as_text=False) for field in selected} for log in logs]
            return json.dumps(rows, default=str, indent=2)

        output = StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL)
        writer.writerow([EXPORT_HEADERS[field] for field in selected])
        for log in logs:
            writer.writerow([self._export_value(log, field, as_text=True) for field in selected])
        return output.getvalue()

    async def get_audit_statistics(self, table_name: Optional[str] = None, days: int = 30) -> Dict[str, Any]:
        date_from = datetime.utcnow() - timedelta(days=days)
        logs = await self._find(AuditFilters(table_name=table_name, date_from=date_from))

        action_breakdown = {action.value: 0 for action in AuditAction}
        users: Dict[str, Dict[str, Any]] = {}
        daily = Counter()

        for log in logs:
            action_breakdown[log.action.value] += 1

            user_key = log.user_id or "system"
            if user_key not in users:
                users[user_key] = {"user_id": user_key, "user_email": log.user_email, "count": 0}
            users[user_key]["count"] += 1

            daily[log.timestamp.date().isoformat()] += 1

        return {
            "total_logs": len(logs),
            "action_breakdown": action_breakdown,
            "user_activity": sorted(users.values(), key=lambda u: u["count"], reverse=True),
            "daily_activity": [{"date": d, "count": c} for d, c in sorted(daily.items())],
        }

    # ==================== INTEGRITY & RETENTION ====================
    async def verify_integrity(self, table_name: Optional[str] = None) -> AuditIntegrityResult:
        logs = await self._find(AuditFilters(table_name=table_name))
        invalid = [str(log.id) for log in logs if not log.is_intact()]
        total = len(logs)
        valid = total - len(invalid)

        if invalid:
            logger.warning(f"⚠️ {len(invalid)} audit log(s) failed integrity verification")

        return AuditIntegrityResult(
            total_logs=total,
            valid_logs=valid,
            invalid_logs=len(invalid),
            integrity_percentage=round(valid / total * 100, 2) if total else 100.0,
            invalid_ids=invalid
        )

    async def cleanup_old_logs(self, retention_days: int) -> int:
        """Permanently delete logs older than the retention window"""
        if retention_days < 1:
            raise ValueError("Retention must be at least 1 day")

        cutoff = datetime.utcnow() - timedelta(days=retention_days)
        logs = await self.repository.find_all()
        expired = [log.id for log in logs if log.timestamp < cutoff]
        deleted = await self.repository.delete_many(expired)
        logger.info(f"Deleted {deleted} audit logs older than {retention_days} days")
        return deleted

    # ==================== PRIVATE ====================
    async def _find(self, filters: AuditFilters) -> List[AuditLogEntry]:
        logs = await self.repository.find_all()
        matched = [log for log in logs if self._matches(log, filters)]
        # equal timestamps fall back to reverse insertion order
        return sorted(reversed(matched), key=lambda log: log.timestamp, reverse=True)

    @staticmethod
    def _matches(log: AuditLogEntry, filters: AuditFilters) -> bool:
        if filters.table_name and log.table_name != filters.table_name:
            return False
        if filters.record_id and log.record_id != filters.record_id:
            return False
        if filters.user_id and log.user_id != filters.user_id:
            return False
        if filters.action and log.action != filters.action:
            return False
        if filters.date_from and log.timestamp < filters.date_from:
            return False
        if filters.date_to and log.timestamp > filters.date_to:
            return False
        if filters.search:
            needle = filters.search.lower()
            haystack = " ".join([log.user_email or "", log.record_id, log.table_name]).lower()
            if needle not in haystack:
                return False
        return True

    @staticmethod
    def _export_value(log: AuditLogEntry, field: str, as_text: bool):
        value = getattr(log, field)
        if field == "changed_fields":
            return ";".join(value) if as_text else value
        if field in ("old_values", "new_values"):
            if not as_text:
                return value
            return json.dumps(value, default=str) if value else ""
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, AuditAction):
            return value.value
        if value is None:
            return ""
        return str(value)
