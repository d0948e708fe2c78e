# backend/courtbook/models/audit_log.py
"""
Audit trail for changes to bookings, recurring bookings and payments.

Rows are append-only; writing one must never be required for the primary
operation to succeed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import Column, DateTime, Index, String
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    table_name = Column(String(50), nullable=False)
    record_id = Column(String(64), nullable=False)
    action = Column(String(10), nullable=False)  # create | update | delete
    actor_id = Column(String(26), nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    occurred_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
    )

    __table_args__ = (Index("ix_audit_logs_record", "table_name", "record_id"),)

    @classmethod
    def from_change(
        cls,
        table_name: str,
        record_id: str,
        action: str,
        actor_id: str | None,
        old_values: Mapping[str, Any] | None,
        new_values: Mapping[str, Any] | None,
    ) -> "AuditLog":
        """Build an AuditLog row from shallow copies of the before/after snapshots."""
        return cls(
            table_name=table_name,
            record_id=record_id,
            action=action,
            actor_id=actor_id,
            old_values=dict(old_values) if old_values is not None else None,
            new_values=dict(new_values) if new_values is not None else None,
        )
