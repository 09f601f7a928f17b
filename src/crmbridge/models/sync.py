"""
Models for remote records and sync pass results.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .cursor import SyncCursor, utcnow
from .mapping import SyncDirection


class Record(BaseModel):
    """A record as returned by a connector."""
    id: str
    object: str
    data: Dict[str, Any] = Field(default_factory=dict)
    modified_at: Optional[datetime] = None
    field_modified_at: Dict[str, datetime] = Field(default_factory=dict)
    deleted: bool = False

    def field_timestamp(self, path: str) -> Optional[datetime]:
        """Last modification of a field path.

        Falls back to the top-level attribute, then to the record timestamp.
        """
        if path in self.field_modified_at:
            return self.field_modified_at[path]
        root = path.split(".", 1)[0].split("[", 1)[0]
        return self.field_modified_at.get(root) or self.modified_at


class PassState(str, Enum):
    """States a one-way pass moves through."""
    IDLE = "idle"
    FETCHING_CHANGES = "fetching_changes"
    TRANSFORMING = "transforming"
    RESOLVING_REFERENCES = "resolving_references"
    DETECTING_CONFLICTS = "detecting_conflicts"
    WRITING = "writing"
    ADVANCING_CURSOR = "advancing_cursor"


class PassStatus(str, Enum):
    """Status of a completed pass."""
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RecordOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    UNCHANGED = "unchanged"
    CONFLICTED = "conflicted"
    SKIPPED = "skipped"
    FAILED = "failed"


class RecordError(BaseModel):
    """A per-record failure surfaced to operators."""
    record_id: Optional[str] = None
    stage: PassState
    message: str
    retryable: bool = False


class PassResult(BaseModel):
    """Summary of one sync pass."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_object: str
    target_object: str
    direction: SyncDirection
    status: PassStatus = PassStatus.RUNNING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    processed: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    skipped: int = 0
    conflicted: int = 0
    errored: int = 0
    errors: List[RecordError] = Field(default_factory=list)
    cursor: Optional[SyncCursor] = None

    def record_error(self, error: RecordError) -> None:
        self.errored += 1
        self.errors.append(error)

    def mark_completed(self, cursor: SyncCursor) -> None:
        self.cursor = cursor
        self.completed_at = utcnow()
        self.status = PassStatus.COMPLETED_WITH_ERRORS if self.errored else PassStatus.COMPLETED

    def mark_failed(self, message: str, stage: PassState) -> None:
        self.record_error(RecordError(stage=stage, message=message, retryable=True))
        self.completed_at = utcnow()
        self.status = PassStatus.FAILED

    def mark_cancelled(self) -> None:
        self.completed_at = utcnow()
        self.status = PassStatus.CANCELLED

    def merge(self, other: "PassResult") -> "PassResult":
        """Sum two one-way results into a bidirectional one."""
        statuses = {self.status, other.status}
        if PassStatus.CANCELLED in statuses:
            status = PassStatus.CANCELLED
        elif PassStatus.FAILED in statuses:
            status = PassStatus.FAILED
        elif PassStatus.COMPLETED_WITH_ERRORS in statuses:
            status = PassStatus.COMPLETED_WITH_ERRORS
        else:
            status = PassStatus.COMPLETED

        return PassResult(
            source_object=self.source_object,
            target_object=self.target_object,
            direction=SyncDirection.BIDIRECTIONAL,
            status=status,
            started_at=min(self.started_at, other.started_at),
            completed_at=other.completed_at or self.completed_at,
            processed=self.processed + other.processed,
            created=self.created + other.created,
            updated=self.updated + other.updated,
            deleted=self.deleted + other.deleted,
            unchanged=self.unchanged + other.unchanged,
            skipped=self.skipped + other.skipped,
            conflicted=self.conflicted + other.conflicted,
            errored=self.errored + other.errored,
            errors=self.errors + other.errors,
            cursor=other.cursor or self.cursor,
        )

    @property
    def execution_time_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the pass."""
        return {
            "id": self.id,
            "pair": f"{self.source_object} <-> {self.target_object}",
            "direction": self.direction.value,
            "status": self.status.value,
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "conflicted": self.conflicted,
            "errored": self.errored,
            "error_messages": [e.message for e in self.errors],
            "execution_time_seconds": self.execution_time_seconds,
        }
