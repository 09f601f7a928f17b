"""
Cross-system id resolution for linked records and relationship fields.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from ..exceptions import DuplicateMappingError, ReferenceNotFoundError
from ..models.mapping import IdMapping, SyncDirection

logger = logging.getLogger(__name__)

IdKey = Tuple[str, str]


class ReferenceResolver:
    """
    In-memory bijection between source and target record ids.

    Two plain dicts keyed by ``(object, id)``, one per direction, updated
    together under a lock. Persistence belongs to the storage layer.
    """

    def __init__(self, mappings: Optional[Iterable[IdMapping]] = None):
        self._source_to_target: Dict[IdKey, IdMapping] = {}
        self._target_to_source: Dict[IdKey, IdMapping] = {}
        self._lock = threading.RLock()
        if mappings:
            self.load(mappings)

    def __len__(self) -> int:
        with self._lock:
            return len(self._source_to_target)

    def load(self, mappings: Iterable[IdMapping]) -> int:
        """
        Bulk hydrate from storage.

        Returns:
            Number of mappings added
        """
        count = 0
        with self._lock:
            for mapping in mappings:
                if self._add(mapping):
                    count += 1
        logger.debug(f"Loaded {count} id mappings")
        return count

    def add_mapping(self, mapping: IdMapping) -> None:
        with self._lock:
            self._add(mapping)

    def _add(self, mapping: IdMapping) -> bool:
        source_key = (mapping.source_object, mapping.source_id)
        target_key = (mapping.target_object, mapping.target_id)

        existing_source = self._source_to_target.get(source_key)
        existing_target = self._target_to_source.get(target_key)
        if existing_source == mapping and existing_target == mapping:
            return False
        if existing_source is not None:
            raise DuplicateMappingError(
                f"{mapping.source_object}/{mapping.source_id} is already linked to "
                f"{existing_source.target_object}/{existing_source.target_id}"
            )
        if existing_target is not None:
            raise DuplicateMappingError(
                f"{mapping.target_object}/{mapping.target_id} is already linked to "
                f"{existing_target.source_object}/{existing_target.source_id}"
            )

        self._source_to_target[source_key] = mapping
        self._target_to_source[target_key] = mapping
        return True

    def remove_mapping(self, mapping: IdMapping) -> bool:
        """Unlink a record pair. Returns False if it was not linked."""
        with self._lock:
            source_key = (mapping.source_object, mapping.source_id)
            target_key = (mapping.target_object, mapping.target_id)
            if self._source_to_target.get(source_key) != mapping:
                return False
            del self._source_to_target[source_key]
            self._target_to_source.pop(target_key, None)
            return True

    def get_mapping(self, direction: SyncDirection, object: str, record_id: str) -> Optional[IdMapping]:
        """Look up the full mapping for a record on the origin side of ``direction``."""
        key = (object, record_id)
        with self._lock:
            if direction == SyncDirection.SOURCE_TO_TARGET:
                return self._source_to_target.get(key)
            if direction == SyncDirection.TARGET_TO_SOURCE:
                return self._target_to_source.get(key)
        raise ValueError(f"Cannot resolve ids for direction {direction}")

    def resolve(self, direction: SyncDirection, object: str, record_id: str) -> Optional[str]:
        """Translate an id to the other system, or None if unmapped."""
        mapping = self.get_mapping(direction, object, record_id)
        if mapping is None:
            return None
        if direction == SyncDirection.SOURCE_TO_TARGET:
            return mapping.target_id
        return mapping.source_id

    def require_resolve(self, direction: SyncDirection, object: str, record_id: str) -> str:
        resolved = self.resolve(direction, object, record_id)
        if resolved is None:
            raise ReferenceNotFoundError(object, record_id)
        return resolved

    def has_mapping(self, direction: SyncDirection, object: str, record_id: str) -> bool:
        return self.get_mapping(direction, object, record_id) is not None

    def mappings(self) -> List[IdMapping]:
        """Snapshot of every mapping, for persistence."""
        with self._lock:
            return list(self._source_to_target.values())
