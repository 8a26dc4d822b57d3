"""
Audit Logging Module.

This module records who performed each workflow mutation, for compliance
and for reconstructing what happened to an employee's workflow.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models import AuditRecord

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Append-only logger for audit events.

    Persists audit records as JSON Lines in daily files when an audit
    directory is configured, otherwise keeps them in memory.
    """

    def __init__(self, audit_dir: Optional[str] = None):
        """
        Initialize the audit logger.

        Args:
            audit_dir: Directory to store audit logs, None for in-memory only
        """
        self.audit_dir = Path(audit_dir) if audit_dir else None
        self._records: List[AuditRecord] = []
        self._lock = threading.Lock()

        if self.audit_dir:
            self.audit_dir.mkdir(parents=True, exist_ok=True)

    def record(
        self,
        actor: str,
        action: str,
        instance_id: Optional[str] = None,
        step_id: Optional[str] = None,
        exception_id: Optional[str] = None,
        employee_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Build and log an audit record, returning its id."""
        return self.log_event(AuditRecord(
            actor=actor,
            action=action,
            instance_id=instance_id,
            step_id=step_id,
            exception_id=exception_id,
            employee_id=employee_id,
            details=details or {},
        ))

    def log_event(self, record: AuditRecord) -> str:
        """
        Log an audit event.

        Args:
            record: The audit record to log

        Returns:
            The record ID
        """
        with self._lock:
            if self.audit_dir is None:
                self._records.append(record)
            else:
                date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
                log_file = self.audit_dir / f"audit_{date_str}.jsonl"
                try:
                    with open(log_file, "a", encoding="utf-8") as f:
                        f.write(json.dumps(record.model_dump(mode="json")) + "\n")
                except OSError as e:
                    logger.error(f"Failed to log audit event: {e}")
                    raise

        logger.debug(f"Audit {record.action} by {record.actor} on {record.instance_id}")
        return record.id

    def get_events(
        self,
        instance_id: Optional[str] = None,
        actor: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditRecord]:
        """
        Retrieve audit events, most recent first.

        Args:
            instance_id: Filter by workflow instance
            actor: Filter by actor
            limit: Maximum number of records to return

        Returns:
            List of matching AuditRecords
        """
        results = []
        for record in self._iter_recent():
            if len(results) >= limit:
                break
            if instance_id and record.instance_id != instance_id:
                continue
            if actor and record.actor != actor:
                continue
            results.append(record)
        return results

    def _iter_recent(self):
        if self.audit_dir is None:
            with self._lock:
                records = list(self._records)
            yield from reversed(records)
            return

        for log_file in sorted(self.audit_dir.glob("audit_*.jsonl"), reverse=True):
            with open(log_file, encoding="utf-8") as f:
                lines = f.readlines()
            for line in reversed(lines):
                try:
                    yield AuditRecord(**json.loads(line))
                except (ValueError, TypeError) as e:
                    logger.warning(f"Failed to parse audit record in {log_file}: {e}")
