"""
Conflict detection and resolution for linked records.
"""

import copy
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from ..exceptions import ConflictAlreadyResolvedError, ConflictRequiresManualResolution
from ..models.conflict import (
    ConflictRecord,
    ConflictResolutionResult,
    ConflictStatus,
    ConflictStrategy,
    ConflictWinner,
    FieldConflict,
)
from ..models.cursor import utcnow
from .transforms import set_path

logger = logging.getLogger(__name__)


def _latest(timestamps: Iterable[Optional[datetime]]) -> Optional[datetime]:
    present = [t for t in timestamps if t is not None]
    return max(present) if present else None


def _newer_side(source_at: Optional[datetime], target_at: Optional[datetime]) -> ConflictWinner:
    # Ties and missing timestamps on both sides go to the source.
    if source_at is not None and target_at is not None:
        return ConflictWinner.TARGET if target_at > source_at else ConflictWinner.SOURCE
    if target_at is not None:
        return ConflictWinner.TARGET
    return ConflictWinner.SOURCE


class ConflictResolver:
    """
    Adjudicates field-level disagreements between the two systems.

    Example:
        resolver = ConflictResolver(ConflictStrategy.LAST_WRITE)
        if resolver.detect(source_value, target_value):
            result = resolver.resolve(conflict)
    """

    def __init__(self, strategy: ConflictStrategy = ConflictStrategy.LAST_WRITE):
        self.strategy = strategy

    @staticmethod
    def detect(source_value: Any, target_value: Any) -> bool:
        """Exact structural inequality. No fuzzy matching."""
        return source_value != target_value

    def resolve(self, conflict: ConflictRecord) -> ConflictResolutionResult:
        """
        Resolve a conflict using the configured strategy.

        Args:
            conflict: Conflict to resolve

        Returns:
            Resolution naming the winning side

        Raises:
            ConflictRequiresManualResolution: If the strategy is MANUAL
        """
        if self.strategy == ConflictStrategy.LAST_WRITE:
            return self._resolve_last_write(conflict)
        elif self.strategy == ConflictStrategy.SOURCE_WINS:
            return ConflictResolutionResult(winner=ConflictWinner.SOURCE, notes="Source wins strategy")
        elif self.strategy == ConflictStrategy.TARGET_WINS:
            return ConflictResolutionResult(winner=ConflictWinner.TARGET, notes="Target wins strategy")
        elif self.strategy == ConflictStrategy.MERGE:
            return ConflictResolutionResult(winner=ConflictWinner.MERGED, notes="Field-level merge strategy")
        elif self.strategy == ConflictStrategy.MANUAL:
            raise ConflictRequiresManualResolution(conflict.source_object, conflict.source_record_id)
        raise ValueError(f"Unknown conflict strategy: {self.strategy}")

    def _resolve_last_write(self, conflict: ConflictRecord) -> ConflictResolutionResult:
        source_latest = _latest(f.source_modified_at for f in conflict.conflicting_fields)
        target_latest = _latest(f.target_modified_at for f in conflict.conflicting_fields)
        winner = _newer_side(source_latest, target_latest)
        return ConflictResolutionResult(winner=winner, notes="Last write wins strategy")

    @staticmethod
    def field_winner(field_conflict: FieldConflict) -> ConflictWinner:
        """Per-field last-write-wins."""
        return _newer_side(field_conflict.source_modified_at, field_conflict.target_modified_at)

    def merge_values(self, conflict: ConflictRecord) -> Dict[str, Any]:
        """
        Field-level last-write-wins merge.

        Starts from the source data and, for every conflicting field where
        the target is newer, takes the target's value.
        """
        merged = copy.deepcopy(conflict.source_data)
        for field_conflict in conflict.conflicting_fields:
            if self.field_winner(field_conflict) == ConflictWinner.TARGET:
                set_path(merged, field_conflict.source_field, copy.deepcopy(field_conflict.target_value))
        return merged

    @staticmethod
    def apply_resolution(
        conflict: ConflictRecord,
        result: ConflictResolutionResult,
        status: ConflictStatus = ConflictStatus.AUTO_RESOLVED,
    ) -> ConflictRecord:
        """Move a pending conflict to its final status. Happens exactly once."""
        if not conflict.is_pending:
            raise ConflictAlreadyResolvedError(f"Conflict {conflict.id} is already {conflict.status.value}")
        if status == ConflictStatus.PENDING:
            raise ValueError("Cannot resolve a conflict back to pending")

        conflict.status = status
        conflict.resolution = result
        logger.info(
            f"Conflict {conflict.id} on {conflict.source_object}/{conflict.source_record_id} "
            f"{status.value}: winner={result.winner.value}"
        )
        return conflict


def skipped_resolution(resolved_by: str, notes: Optional[str] = None) -> ConflictResolutionResult:
    return ConflictResolutionResult(
        winner=ConflictWinner.NEITHER,
        resolved_at=utcnow(),
        resolved_by=resolved_by,
        notes=notes,
    )
