"""
Workflow Repository for the Lifecycle Workflow Engine.

Stores workflow instances together with the steps, integration attempts and
exceptions they own. All mutation goes through per-instance transactions so
a step transition and the recomputation it triggers commit together.
"""

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from ..errors import ExceptionNotFound, InstanceNotFound, TransactionConflict
from ..models import InstanceRecord

logger = logging.getLogger(__name__)


class WorkflowRepository:
    """
    Transactional store of InstanceRecords.

    Committed records are never mutated in place: a transaction works on a
    deep copy and swaps it in on success, so readers always see a consistent
    snapshot and a failed operation leaves the stored record untouched.
    Transactions on the same instance are serialised by a per-instance lock;
    different instances never block each other.
    """

    def __init__(self, storage_path: Optional[Union[str, Path]] = None, lock_timeout: float = 10.0):
        """
        Initialize the repository.

        Args:
            storage_path: Path to store workflow state as JSON.
                          If None, state is kept in memory only.
            lock_timeout: Seconds to wait for an instance lock before
                          raising TransactionConflict
        """
        self.storage_path = Path(storage_path) if storage_path else None
        self.lock_timeout = lock_timeout
        self._records: Dict[str, InstanceRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._exception_index: Dict[str, str] = {}
        self._registry_lock = threading.Lock()
        self._persist_lock = threading.Lock()
        self._held = threading.local()

        if self.storage_path:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_state()

        logger.info(
            f"Initialized WorkflowRepository with {'persistent' if self.storage_path else 'in-memory'} storage"
        )

    def add(self, record: InstanceRecord) -> InstanceRecord:
        """Insert a new instance record."""
        instance_id = record.instance.id
        with self._registry_lock:
            if instance_id in self._records:
                raise ValueError(f"Workflow instance {instance_id} already exists")
            self._locks[instance_id] = threading.Lock()

        stored = record.model_copy(deep=True)
        try:
            self._commit(instance_id, stored)
        except Exception:
            with self._registry_lock:
                self._locks.pop(instance_id, None)
            raise

        logger.info(f"Stored workflow instance {instance_id} for employee {record.instance.employee_id}")
        return stored.model_copy(deep=True)

    def get(self, instance_id: str) -> InstanceRecord:
        """Return a snapshot of an instance record."""
        record = self._records.get(instance_id)
        if record is None:
            raise InstanceNotFound(instance_id)
        return record.model_copy(deep=True)

    def exists(self, instance_id: str) -> bool:
        return instance_id in self._records

    def list(self) -> List[InstanceRecord]:
        """Snapshots of all instance records."""
        return [record.model_copy(deep=True) for record in list(self._records.values())]

    def instance_id_for_exception(self, exception_id: str) -> str:
        instance_id = self._exception_index.get(exception_id)
        if instance_id is None:
            raise ExceptionNotFound(exception_id)
        return instance_id

    @contextmanager
    def transaction(self, instance_id: str) -> Iterator[InstanceRecord]:
        """
        Open a transaction on one instance.

        Yields a working copy of the record. Changes are committed when the
        block exits normally and discarded if it raises.

        Raises:
            InstanceNotFound: if the instance does not exist
            TransactionConflict: if the instance lock could not be acquired
        """
        held = self._held_ids()
        if instance_id in held:
            raise RuntimeError(f"Nested transaction on workflow instance {instance_id}")

        lock = self._locks.get(instance_id)
        if lock is None:
            raise InstanceNotFound(instance_id)
        if not lock.acquire(timeout=self.lock_timeout):
            logger.warning(f"Timed out waiting for lock on workflow instance {instance_id}")
            raise TransactionConflict(instance_id)

        held.add(instance_id)
        try:
            current = self._records.get(instance_id)
            if current is None:
                raise InstanceNotFound(instance_id)
            working = current.model_copy(deep=True)
            yield working
            working.version = current.version + 1
            self._commit(instance_id, working.model_copy(deep=True))
        finally:
            held.discard(instance_id)
            lock.release()

    def delete(self, instance_id: str) -> bool:
        """Delete an instance and everything it owns."""
        lock = self._locks.get(instance_id)
        if lock is None:
            return False
        if not lock.acquire(timeout=self.lock_timeout):
            raise TransactionConflict(instance_id)
        try:
            with self._persist_lock:
                record = self._records.pop(instance_id, None)
                if record is None:
                    return False
                for exception in record.exceptions:
                    self._exception_index.pop(exception.id, None)
                self._save_state(self._records)
        finally:
            lock.release()

        with self._registry_lock:
            self._locks.pop(instance_id, None)
        logger.info(f"Deleted workflow instance {instance_id}")
        return True

    def _held_ids(self) -> set:
        if not hasattr(self._held, "ids"):
            self._held.ids = set()
        return self._held.ids

    def _commit(self, instance_id: str, record: InstanceRecord):
        with self._persist_lock:
            if self.storage_path:
                pending = dict(self._records)
                pending[instance_id] = record
                self._save_state(pending)
            self._records[instance_id] = record
            for exception in record.exceptions:
                self._exception_index[exception.id] = instance_id

    def _save_state(self, records: Dict[str, InstanceRecord]):
        """Write all records to persistent storage; raises on failure."""
        if not self.storage_path:
            return

        state_data = {
            "records": {
                instance_id: record.model_dump(mode="json") for instance_id, record in records.items()
            },
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }

        tmp_path = self.storage_path.with_suffix(self.storage_path.suffix + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(state_data, f, indent=2)
            tmp_path.replace(self.storage_path)
        except OSError as e:
            logger.error(f"Failed to save workflow state to {self.storage_path}: {e}")
            raise

    def _load_state(self):
        """Load records from persistent storage."""
        if not self.storage_path or not self.storage_path.exists():
            return

        with open(self.storage_path, encoding="utf-8") as f:
            state_data = json.load(f)

        for instance_id, record_data in state_data.get("records", {}).items():
            record = InstanceRecord.model_validate(record_data)
            self._records[instance_id] = record
            self._locks[instance_id] = threading.Lock()
            for exception in record.exceptions:
                self._exception_index[exception.id] = instance_id

        logger.info(f"Loaded {len(self._records)} workflow instances from {self.storage_path}")
