"""
Sync cursor models for incremental sync.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, Field

CURSOR_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ObjectCursor(BaseModel):
    """Cursor for a specific object type."""
    object: str = Field(..., description="Object identifier, e.g. 'companies' or 'Account'")
    last_sync: datetime = Field(default_factory=utcnow, description="Modification time of the last processed record")
    last_record_id: Optional[str] = Field(None, description="Id of the last processed record")
    last_batch_count: int = Field(0, description="Records processed in the last pass")

    @classmethod
    def new(cls, object: str) -> "ObjectCursor":
        return cls(object=object)

    def update(self, last_record_id: Optional[str], batch_count: int, last_sync: Optional[datetime] = None) -> None:
        """Record the outcome of a pass."""
        self.last_sync = last_sync or utcnow()
        self.last_record_id = last_record_id
        self.last_batch_count = batch_count


class SyncCursor(BaseModel):
    """
    Resumable high-water mark for a pair of objects.

    ``timestamp`` is a watermark over the most recent per-object update and
    ``seed`` is where objects without an entry start reading from.
    """
    timestamp: datetime = Field(default_factory=utcnow)
    objects: Dict[str, ObjectCursor] = Field(default_factory=dict)
    version: int = CURSOR_VERSION
    seed: Optional[datetime] = None

    @classmethod
    def now(cls) -> "SyncCursor":
        now = utcnow()
        return cls(timestamp=now, seed=now)

    @classmethod
    def from_timestamp(cls, timestamp: datetime) -> "SyncCursor":
        return cls(timestamp=timestamp, seed=timestamp)

    def get_object_cursor(self, object: str) -> Optional[ObjectCursor]:
        return self.objects.get(object)

    def update_object_cursor(self, cursor: ObjectCursor) -> None:
        self.objects[cursor.object] = cursor
        self.timestamp = utcnow()

    def advance(self) -> None:
        self.timestamp = utcnow()

    def since(self, object: str) -> datetime:
        """Lower bound for the next incremental fetch of ``object``."""
        object_cursor = self.objects.get(object)
        if object_cursor is not None:
            return object_cursor.last_sync
        return self.seed or self.timestamp

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "SyncCursor":
        return cls.model_validate_json(data)
