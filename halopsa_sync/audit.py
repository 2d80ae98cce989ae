"""
Sync Audit Log

One AuditLog record per synchronization attempt, success or failure.

Writes go through a bounded queue drained by a background thread so a slow
or broken entity store never delays or masks the sync result. This module
never raises: if an entry cannot be queued or written, it is logged locally
with its full contents and dropped.

Usage:
    audit = AuditLogger(store)
    audit.record('push_project', 'Project', 'p1', 'success', 'Updated ticket #42')
"""

import json
import logging
import queue
import threading
from typing import Optional, Union

from .db import EntityStore
from .models import AuditLogEntry, SyncOutcome

logger = logging.getLogger(__name__)

_STOP = object()


class AuditLogger:
    """Best-effort writer of AuditLog records."""

    def __init__(self, store: EntityStore, max_queue: int = 1000, synchronous: bool = False):
        self.store = store
        self.synchronous = synchronous
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue)
        self._worker: Optional[threading.Thread] = None
        self._worker_lock = threading.Lock()

    def record(
        self,
        operation: str,
        entity_type: str,
        entity_id,
        outcome: Union[SyncOutcome, str],
        details=None,
    ) -> AuditLogEntry:
        """Queue an audit entry for `halopsa_sync_<operation>`."""
        if isinstance(outcome, SyncOutcome):
            outcome = outcome.value
        if details is not None and not isinstance(details, str):
            details = json.dumps(details, default=str)

        entry = AuditLogEntry(
            action=f"halopsa_sync_{operation}",
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            outcome=outcome,
            details=details or '',
        )

        if self.synchronous:
            self._write(entry)
            return entry

        self._ensure_worker()
        try:
            self._queue.put_nowait(entry)
        except queue.Full:
            logger.warning(f"Audit queue full, dropping entry: {entry.to_record()}")
        return entry

    def _write(self, entry: AuditLogEntry) -> None:
        try:
            self.store.create('AuditLog', entry.to_record())
        except Exception as e:
            logger.warning(f"Failed to write audit log ({e}): {entry.to_record()}")

    def _ensure_worker(self) -> None:
        with self._worker_lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(
                    target=self._run, name='halopsa-audit-writer', daemon=True
                )
                self._worker.start()

    def _run(self) -> None:
        while True:
            entry = self._queue.get()
            try:
                if entry is _STOP:
                    return
                self._write(entry)
            finally:
                self._queue.task_done()

    def flush(self, timeout: Optional[float] = 5.0) -> bool:
        """Wait until every queued entry has been written (or dropped).

        Returns False if the queue did not drain within `timeout` seconds.
        """
        if self.synchronous:
            return True
        done = threading.Event()

        def _join():
            self._queue.join()
            done.set()

        threading.Thread(target=_join, daemon=True).start()
        return done.wait(timeout)

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Drain the queue and stop the writer thread."""
        if self._worker is None or not self._worker.is_alive():
            return
        self.flush(timeout)
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("Audit queue full while stopping writer thread")
            return
        self._worker.join(timeout)
