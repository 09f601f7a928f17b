"""
Storage contract for sync state plus an in-memory backend.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from ..models.conflict import ConflictRecord, ConflictStatus
from ..models.cursor import SyncCursor
from ..models.mapping import IdMapping

logger = logging.getLogger(__name__)


def cursor_key(source_object: str, target_object: str) -> str:
    """Storage key for the cursor of an object pair."""
    return f"cursor:{source_object}:{target_object}"


class SyncStorage(ABC):
    """
    Persistence for id mappings, cursors and conflicts.

    Implementations raise StorageError on any backend failure.
    """

    # Id mappings

    @abstractmethod
    def save_id_mapping(self, mapping: IdMapping) -> None:
        pass

    @abstractmethod
    def get_mapping_by_source_id(self, object: str, source_id: str) -> Optional[IdMapping]:
        pass

    @abstractmethod
    def get_mapping_by_target_id(self, object: str, target_id: str) -> Optional[IdMapping]:
        pass

    @abstractmethod
    def delete_mapping(self, source_object: str, source_id: str) -> bool:
        """Delete a mapping by its source side. Returns False if absent."""
        pass

    @abstractmethod
    def list_id_mappings(self, source_object: Optional[str] = None) -> List[IdMapping]:
        pass

    # Cursors

    @abstractmethod
    def save_cursor(self, key: str, cursor: SyncCursor) -> None:
        pass

    @abstractmethod
    def get_cursor(self, key: str) -> Optional[SyncCursor]:
        pass

    @abstractmethod
    def delete_cursor(self, key: str) -> bool:
        pass

    # Conflicts

    @abstractmethod
    def save_conflict(self, conflict: ConflictRecord) -> None:
        pass

    @abstractmethod
    def get_conflict(self, conflict_id: str) -> Optional[ConflictRecord]:
        pass

    @abstractmethod
    def list_conflicts(self, status: Optional[ConflictStatus] = None, limit: int = 100) -> List[ConflictRecord]:
        pass

    @abstractmethod
    def find_pending_conflict(self, source_object: str, source_record_id: str) -> Optional[ConflictRecord]:
        """Pending conflict for a linked pair, keyed by its source side."""
        pass


class MemoryStorage(SyncStorage):
    """In-memory storage for tests and local runs."""

    def __init__(self):
        self._by_source: Dict[Tuple[str, str], IdMapping] = {}
        self._by_target: Dict[Tuple[str, str], IdMapping] = {}
        self._cursors: Dict[str, str] = {}
        self._conflicts: Dict[str, ConflictRecord] = {}
        self._lock = threading.Lock()

    def save_id_mapping(self, mapping: IdMapping) -> None:
        with self._lock:
            self._by_source[(mapping.source_object, mapping.source_id)] = mapping
            self._by_target[(mapping.target_object, mapping.target_id)] = mapping

    def get_mapping_by_source_id(self, object: str, source_id: str) -> Optional[IdMapping]:
        with self._lock:
            return self._by_source.get((object, source_id))

    def get_mapping_by_target_id(self, object: str, target_id: str) -> Optional[IdMapping]:
        with self._lock:
            return self._by_target.get((object, target_id))

    def delete_mapping(self, source_object: str, source_id: str) -> bool:
        with self._lock:
            mapping = self._by_source.pop((source_object, source_id), None)
            if mapping is None:
                return False
            self._by_target.pop((mapping.target_object, mapping.target_id), None)
            return True

    def list_id_mappings(self, source_object: Optional[str] = None) -> List[IdMapping]:
        with self._lock:
            return [m for m in self._by_source.values() if source_object is None or m.source_object == source_object]

    def save_cursor(self, key: str, cursor: SyncCursor) -> None:
        # Stored serialized so callers never share a mutable cursor
        with self._lock:
            self._cursors[key] = cursor.to_json()

    def get_cursor(self, key: str) -> Optional[SyncCursor]:
        with self._lock:
            data = self._cursors.get(key)
        return SyncCursor.from_json(data) if data is not None else None

    def delete_cursor(self, key: str) -> bool:
        with self._lock:
            return self._cursors.pop(key, None) is not None

    def save_conflict(self, conflict: ConflictRecord) -> None:
        with self._lock:
            self._conflicts[conflict.id] = conflict.model_copy(deep=True)

    def get_conflict(self, conflict_id: str) -> Optional[ConflictRecord]:
        with self._lock:
            conflict = self._conflicts.get(conflict_id)
            return conflict.model_copy(deep=True) if conflict else None

    def list_conflicts(self, status: Optional[ConflictStatus] = None, limit: int = 100) -> List[ConflictRecord]:
        with self._lock:
            conflicts = [c for c in self._conflicts.values() if status is None or c.status == status]
        conflicts.sort(key=lambda c: c.detected_at)
        return [c.model_copy(deep=True) for c in conflicts[:limit]]

    def find_pending_conflict(self, source_object: str, source_record_id: str) -> Optional[ConflictRecord]:
        with self._lock:
            for conflict in self._conflicts.values():
                if (conflict.is_pending and conflict.source_object == source_object
                        and conflict.source_record_id == source_record_id):
                    return conflict.model_copy(deep=True)
        return None
