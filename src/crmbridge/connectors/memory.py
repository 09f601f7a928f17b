"""
In-memory connector for local runs and tests.
"""

import copy
import itertools
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import RecordNotFoundError
from ..models.cursor import utcnow
from ..models.sync import Record
from .base import BaseConnector, ConnectorCapability

logger = logging.getLogger(__name__)


def _deep_merge(target: Dict[str, Any], patch: Dict[str, Any]) -> None:
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


class InMemoryConnector(BaseConnector):
    """
    Keeps records in process memory.

    Deletes leave a tombstone so incremental reads report them. Failures can
    be queued per operation with ``fail_next`` to exercise error paths.
    """

    service_name = "memory"

    def __init__(
        self,
        name: str = "memory",
        id_prefix: str = "rec_",
        clock: Optional[Callable[[], datetime]] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.service_name = name
        self.id_prefix = id_prefix
        self.clock = clock or utcnow
        self._records: Dict[str, Dict[str, Record]] = {}
        self._counter = itertools.count(1)
        self._failures: Dict[str, List[Exception]] = {}
        self._lock = threading.Lock()
        self.calls: List[tuple] = []

    def _validate_credentials(self) -> None:
        pass

    def get_capabilities(self) -> ConnectorCapability:
        return ConnectorCapability(can_read=True, can_write=True, can_delete=True,
                                   supports_multi_value=True, supports_currency_objects=True,
                                   supports_picklists=True)

    def test_connection(self) -> bool:
        return True

    # Test helpers

    def fail_next(self, operation: str, error: Exception, times: int = 1) -> None:
        """Queue ``error`` to be raised by the next ``times`` calls to ``operation``."""
        self._failures.setdefault(operation, []).extend([error] * times)

    def _maybe_fail(self, operation: str) -> None:
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)

    def put(
        self,
        object: str,
        data: Dict[str, Any],
        record_id: Optional[str] = None,
        modified_at: Optional[datetime] = None,
        field_modified_at: Optional[Dict[str, datetime]] = None,
    ) -> Record:
        """Insert or replace a record directly, bypassing the write path."""
        with self._lock:
            stamp = modified_at or self.clock()
            record = Record(
                id=record_id or f"{self.id_prefix}{next(self._counter)}",
                object=object,
                data=copy.deepcopy(data),
                modified_at=stamp,
                field_modified_at=field_modified_at or {key: stamp for key in data},
            )
            self._records.setdefault(object, {})[record.id] = record
            return record

    def records(self, object: str) -> List[Record]:
        return [r for r in self._records.get(object, {}).values() if not r.deleted]

    # Connector contract

    def _get_record(self, object: str, record_id: str) -> Record:
        self.calls.append(("get", object, record_id))
        self._maybe_fail("get")
        record = self._records.get(object, {}).get(record_id)
        if record is None or record.deleted:
            raise RecordNotFoundError(object, record_id)
        return record.model_copy(deep=True)

    def _list_changed_since(self, object: str, since: datetime) -> List[Record]:
        self.calls.append(("list", object, since))
        self._maybe_fail("list")
        return [
            r.model_copy(deep=True)
            for r in self._records.get(object, {}).values()
            if r.modified_at is None or r.modified_at >= since
        ]

    def _create_record(self, object: str, data: Dict[str, Any]) -> str:
        self.calls.append(("create", object, data))
        self._maybe_fail("create")
        record = self.put(object, data)
        logger.debug(f"Created {object}/{record.id} in {self.service_name}")
        return record.id

    def _update_record(self, object: str, record_id: str, data: Dict[str, Any]) -> None:
        self.calls.append(("update", object, record_id, data))
        self._maybe_fail("update")
        with self._lock:
            record = self._records.get(object, {}).get(record_id)
            if record is None or record.deleted:
                raise RecordNotFoundError(object, record_id)
            _deep_merge(record.data, data)
            now = self.clock()
            record.modified_at = now
            for key in data:
                record.field_modified_at[key] = now

    def _delete_record(self, object: str, record_id: str) -> None:
        self.calls.append(("delete", object, record_id))
        self._maybe_fail("delete")
        with self._lock:
            record = self._records.get(object, {}).get(record_id)
            if record is None or record.deleted:
                raise RecordNotFoundError(object, record_id)
            record.deleted = True
            record.modified_at = self.clock()

    def delete(self, object: str, record_id: str) -> None:
        """Tombstone a record directly, as if deleted by a user."""
        self._delete_record(object, record_id)
