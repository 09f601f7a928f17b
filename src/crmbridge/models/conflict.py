"""
Conflict models for records that diverged on both sides.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .cursor import utcnow
from .mapping import SyncDirection


class ConflictStrategy(str, Enum):
    """How the engine adjudicates a detected conflict."""
    LAST_WRITE = "last_write"
    SOURCE_WINS = "source_wins"
    TARGET_WINS = "target_wins"
    MERGE = "merge"
    MANUAL = "manual"


class ConflictStatus(str, Enum):
    PENDING = "pending"
    AUTO_RESOLVED = "auto_resolved"
    MANUALLY_RESOLVED = "manually_resolved"
    SKIPPED = "skipped"


class ConflictWinner(str, Enum):
    SOURCE = "source"
    TARGET = "target"
    MERGED = "merged"
    NEITHER = "neither"


class ConflictDecision(str, Enum):
    """Operator decision for a pending conflict."""
    SOURCE = "source"
    TARGET = "target"
    MERGE = "merge"
    SKIP = "skip"


class FieldConflict(BaseModel):
    """Conflict in a specific field."""
    source_field: str
    target_field: str
    source_value: Any = None
    target_value: Any = None
    source_modified_at: Optional[datetime] = None
    target_modified_at: Optional[datetime] = None


class ConflictResolutionResult(BaseModel):
    """How a conflict was resolved."""
    winner: ConflictWinner
    resolved_at: datetime = Field(default_factory=utcnow)
    resolved_by: str = "system"
    notes: Optional[str] = None


class ConflictRecord(BaseModel):
    """A linked record pair whose field values disagree."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_object: str
    source_record_id: str
    target_object: str
    target_record_id: str
    source_data: Dict[str, Any] = Field(default_factory=dict)
    target_data: Dict[str, Any] = Field(default_factory=dict)
    conflicting_fields: List[FieldConflict] = Field(default_factory=list)
    detected_at: datetime = Field(default_factory=utcnow)
    status: ConflictStatus = ConflictStatus.PENDING
    resolution: Optional[ConflictResolutionResult] = None
    direction: Optional[SyncDirection] = Field(None, description="Pass that detected the conflict")

    @property
    def is_pending(self) -> bool:
        return self.status == ConflictStatus.PENDING

    def to_firestore(self) -> Dict[str, Any]:
        """Convert to Firestore document format."""
        return self.model_dump(mode="json")

    @classmethod
    def from_firestore(cls, doc_id: str, data: Dict[str, Any]) -> "ConflictRecord":
        data["id"] = doc_id
        return cls.model_validate(data)
