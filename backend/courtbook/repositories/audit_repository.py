# backend/courtbook/repositories/audit_repository.py
"""
Repository helpers for audit log persistence and querying.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.audit_log import AuditLog


class AuditRepository:
    """Persist and query audit trail entries."""

    def __init__(self, db: Session):
        self.db = db

    def write(self, audit: AuditLog) -> None:
        """Persist a new audit row inside the active transaction."""
        self.db.add(audit)
        self.db.flush()

    def list_for_record(
        self, table_name: str, record_id: str, *, action: Optional[str] = None
    ) -> list[AuditLog]:
        """Rows for one record, oldest first."""
        stmt = select(AuditLog).where(
            AuditLog.table_name == table_name, AuditLog.record_id == record_id
        )
        if action:
            stmt = stmt.where(AuditLog.action == action)
        stmt = stmt.order_by(AuditLog.occurred_at.asc(), AuditLog.id.asc())
        return list(self.db.scalars(stmt))
