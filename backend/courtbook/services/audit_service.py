"""Service for writing best-effort audit log entries."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
import logging
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.audit_log import AuditLog
from ..repositories.factory import RepositoryFactory

logger = logging.getLogger(__name__)


class AuditService:
    """
    Create and persist audit entries for booking-adjacent tables.

    Each write runs in its own savepoint. Any failure is logged and
    discarded so the caller's operation carries on unaffected.
    """

    def __init__(self, db: Session, *, enabled: Optional[bool] = None):
        self.db = db
        self.enabled = settings.audit_enabled if enabled is None else enabled
        self.repository = RepositoryFactory.create_audit_repository(db)

    def log_create(
        self, table_name: str, record_id: str, actor_id: Optional[str], values: Mapping[str, Any]
    ) -> Optional[AuditLog]:
        return self._write(table_name, record_id, "create", actor_id, None, values)

    def log_update(
        self,
        table_name: str,
        record_id: str,
        actor_id: Optional[str],
        old_values: Mapping[str, Any],
        new_values: Mapping[str, Any],
    ) -> Optional[AuditLog]:
        return self._write(table_name, record_id, "update", actor_id, old_values, new_values)

    def log_delete(
        self, table_name: str, record_id: str, actor_id: Optional[str], values: Mapping[str, Any]
    ) -> Optional[AuditLog]:
        return self._write(table_name, record_id, "delete", actor_id, values, None)

    def _write(
        self,
        table_name: str,
        record_id: str,
        action: str,
        actor_id: Optional[str],
        old_values: Optional[Mapping[str, Any]],
        new_values: Optional[Mapping[str, Any]],
    ) -> Optional[AuditLog]:
        if not self.enabled:
            return None
        try:
            entry = AuditLog.from_change(
                table_name,
                record_id,
                action,
                actor_id,
                _normalize_mapping(old_values),
                _normalize_mapping(new_values),
            )
            with self.db.begin_nested():
                self.repository.write(entry)
            return entry
        except Exception as exc:
            logger.warning(
                "Audit log write failed for %s %s (%s): %s", table_name, record_id, action, exc
            )
            return None


def _normalize_mapping(values: Optional[Mapping[str, Any]]) -> Optional[dict[str, Any]]:
    if values is None:
        return None
    return {key: _normalize_value(value) for key, value in values.items()}


def _normalize_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_value(v) for v in value]
    return value
