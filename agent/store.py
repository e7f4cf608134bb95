# store.py — Insight persistence contract
"""
store.py — Insight Store

The persistence collaborator for insights. Uniqueness per (user, dataset)
is the store's job: insert_if_absent either stores the record or raises
DuplicateInsightError, atomically.
"""

from __future__ import annotations

import threading
from typing import Any


# =============================================================================
# EXCEPTIONS
# =============================================================================

class DuplicateInsightError(Exception):
    """Raised when an insight already exists for (user, dataset)."""

    def __init__(self, user_id: str, dataset_id: str):
        super().__init__(f"Insight already exists for dataset {dataset_id}")
        self.user_id = user_id
        self.dataset_id = dataset_id


class InsightNotFoundError(LookupError):
    """Raised when no insight exists for (user, dataset)."""
    pass


# =============================================================================
# STORE CONTRACT
# =============================================================================

class InsightStore:
    """Interface implemented by persistence backends."""

    def find(self, user_id: str, dataset_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    def insert_if_absent(self, record: dict[str, Any]) -> dict[str, Any]:
        """
        Store `record` keyed by its userId/fileId.

        Raises:
            DuplicateInsightError: A record already exists for the pair
        """
        raise NotImplementedError

    def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    def delete(self, user_id: str, dataset_id: str) -> None:
        raise NotImplementedError

    def get(self, user_id: str, dataset_id: str) -> dict[str, Any]:
        """
        Like find(), but a missing record is an error.

        Raises:
            InsightNotFoundError: No insight for the pair
        """
        record = self.find(user_id, dataset_id)
        if record is None:
            raise InsightNotFoundError("No insights found for this file")
        return record


class InMemoryInsightStore(InsightStore):
    """Dict-backed store; the lock makes insert_if_absent atomic."""

    def __init__(self):
        self._records: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def find(self, user_id: str, dataset_id: str) -> dict[str, Any] | None:
        with self._lock:
            return self._records.get((user_id, dataset_id))

    def insert_if_absent(self, record: dict[str, Any]) -> dict[str, Any]:
        key = (record["userId"], record["fileId"])
        with self._lock:
            if key in self._records:
                raise DuplicateInsightError(*key)
            self._records[key] = record
        return record

    def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        with self._lock:
            records = [r for (owner, _), r in self._records.items() if owner == user_id]
        # newest first
        return sorted(records, key=lambda r: r.get("generatedAt", ""), reverse=True)

    def delete(self, user_id: str, dataset_id: str) -> None:
        with self._lock:
            if self._records.pop((user_id, dataset_id), None) is None:
                raise InsightNotFoundError("No insights found for this file")

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
