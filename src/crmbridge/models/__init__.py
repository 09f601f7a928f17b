"""
Models for the CRM bridge.
"""

from .mapping import (
    SyncDirection,
    FieldSyncDirection,
    TransformKind,
    DirectTransform,
    ExtractFirstTransform,
    ExtractNestedTransform,
    MapValueTransform,
    CurrencyToNumberTransform,
    CountryCodeToNameTransform,
    EmployeeRangeToNumberTransform,
    CustomTransform,
    FieldMapping,
    ReferenceMapping,
    ObjectMapping,
    IdMapping,
)
from .defaults import DEFAULT_MAPPINGS, build_default_mappings, get_default_mapping
from .cursor import SyncCursor, ObjectCursor
from .conflict import (
    ConflictStrategy,
    ConflictStatus,
    ConflictWinner,
    ConflictDecision,
    FieldConflict,
    ConflictResolutionResult,
    ConflictRecord,
)
from .sync import Record, PassState, PassStatus, RecordOutcome, RecordError, PassResult
from .config import ServiceConnection, SyncSettings

__all__ = [
    # Mapping config
    "SyncDirection",
    "FieldSyncDirection",
    "TransformKind",
    "DirectTransform",
    "ExtractFirstTransform",
    "ExtractNestedTransform",
    "MapValueTransform",
    "CurrencyToNumberTransform",
    "CountryCodeToNameTransform",
    "EmployeeRangeToNumberTransform",
    "CustomTransform",
    "FieldMapping",
    "ReferenceMapping",
    "ObjectMapping",
    "IdMapping",
    "DEFAULT_MAPPINGS",
    "build_default_mappings",
    "get_default_mapping",

    # Cursor
    "SyncCursor",
    "ObjectCursor",

    # Conflicts
    "ConflictStrategy",
    "ConflictStatus",
    "ConflictWinner",
    "ConflictDecision",
    "FieldConflict",
    "ConflictResolutionResult",
    "ConflictRecord",

    # Passes
    "Record",
    "PassState",
    "PassStatus",
    "RecordOutcome",
    "RecordError",
    "PassResult",

    # Settings
    "ServiceConnection",
    "SyncSettings",
]
