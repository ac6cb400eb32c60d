"""
Local Task Ledger — JSON-file-backed list of task records.

The whole array is rewritten after every mutation (write-through).
The HTTP handler thread and the poller thread share one ledger, so all
access goes through a re-entrant lock.

Task lifecycle: created → processing → completed | failed
"""

import os
import json
import time
import logging
import threading
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

STATUS_CREATED = "created"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
VALID_STATUSES = [STATUS_CREATED, STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED]

SOURCE_LOCAL = "local"
SOURCE_CHAIN = "chain"

SLA_SECONDS = 120


def utc_now():
    return datetime.now(timezone.utc).isoformat()


def sla_remaining_seconds(task, now=None, sla_seconds=SLA_SECONDS):
    """Seconds left on the task's SLA, clamped at 0."""
    created_at = datetime.fromisoformat(task["createdAt"])
    now = now or datetime.now(timezone.utc)
    elapsed = (now - created_at).total_seconds()
    return max(0.0, sla_seconds - elapsed)


class TaskLedger:
    def __init__(self, path):
        self.path = path
        self._lock = threading.RLock()
        self._tasks = self._load()

    # === Persistence ===

    def _load(self):
        """Load tasks from disk; start empty when the file is missing or unreadable."""
        try:
            if os.path.exists(self.path):
                with open(self.path, 'r') as f:
                    data = json.load(f)
                if isinstance(data, list):
                    return data
                logger.error("ledger file is not a JSON array, starting fresh | path=%s", self.path)
        except (json.JSONDecodeError, IOError) as e:
            logger.error("Failed to load tasks: %s", e)
        return []

    def save(self):
        """Rewrite the ledger file in full."""
        with self._lock:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(self._tasks, f, indent=2)

    # === Queries ===

    def _find(self, task_id):
        task_id = str(task_id)
        for task in self._tasks:
            if task["id"] == task_id:
                return task
        return None

    def all(self):
        with self._lock:
            return [dict(t) for t in self._tasks]

    def get(self, task_id):
        with self._lock:
            task = self._find(task_id)
            return dict(task) if task else None

    def pending(self):
        """Tasks waiting for the pipeline, in insertion order."""
        with self._lock:
            return [dict(t) for t in self._tasks
                    if t["status"] == STATUS_CREATED and not t.get("isProcessing")]

    # === Mutations ===

    def _new_id(self):
        task_id = str(int(time.time() * 1000))
        suffix = 1
        while self._find(task_id):
            task_id = f"{int(time.time() * 1000)}-{suffix}"
            suffix += 1
        return task_id

    def create(self, description, claimed=False):
        """
        Add a locally originated task.
        With claimed=True the task is stored already in processing, so no
        poller can pick it up before the caller runs it.
        """
        with self._lock:
            now = utc_now()
            task = {
                "id": self._new_id(),
                "description": description,
                "status": STATUS_PROCESSING if claimed else STATUS_CREATED,
                "source": SOURCE_LOCAL,
                "createdAt": now,
                "isProcessing": claimed,
            }
            if claimed:
                task["startedAt"] = now
            self._tasks.append(task)
            self.save()
            logger.info("task created | id=%s", task["id"])
            return dict(task)

    def add_chain_task(self, task_id, description, snapshot=None):
        """Record a task discovered on chain. Existing records are left untouched."""
        with self._lock:
            existing = self._find(task_id)
            if existing:
                return dict(existing)
            task = {
                "id": str(task_id),
                "description": description,
                "status": STATUS_CREATED,
                "source": SOURCE_CHAIN,
                "createdAt": utc_now(),
                "isProcessing": False,
                "chain": snapshot or {},
            }
            self._tasks.append(task)
            self.save()
            return dict(task)

    def claim(self, task_id):
        """
        Atomically move a created task to processing.
        Returns the claimed record, or None if it is unknown, already held or finished.
        """
        with self._lock:
            task = self._find(task_id)
            if task is None or task["status"] != STATUS_CREATED or task.get("isProcessing"):
                return None
            task["isProcessing"] = True
            task["status"] = STATUS_PROCESSING
            task["startedAt"] = utc_now()
            self.save()
            return dict(task)

    def _require_processing(self, task_id):
        task = self._find(task_id)
        if task is None:
            raise KeyError(f"unknown task {task_id}")
        if task["status"] != STATUS_PROCESSING:
            raise ValueError(f"task {task_id} is {task['status']}, not {STATUS_PROCESSING}")
        return task

    def record_transaction(self, task_id, step, tx_hash, block_number):
        with self._lock:
            task = self._require_processing(task_id)
            task.setdefault("transactions", {})[step] = {"hash": tx_hash, "block": block_number}
            self.save()

    def complete(self, task_id, result, cid, storage):
        with self._lock:
            task = self._require_processing(task_id)
            task["status"] = STATUS_COMPLETED
            task["result"] = result
            task["ipfsHash"] = cid
            task["storage"] = storage
            task["completedAt"] = utc_now()
            task["isProcessing"] = False
            self.save()
            return dict(task)

    def fail(self, task_id, error):
        with self._lock:
            task = self._require_processing(task_id)
            task["status"] = STATUS_FAILED
            task["error"] = error
            task["failedAt"] = utc_now()
            task["isProcessing"] = False
            self.save()
            return dict(task)
