"""
Main sync engine that orchestrates incremental passes between the two systems.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from ..connectors import get_connector
from ..connectors.base import BaseConnector
from ..exceptions import (
    ConfigurationError,
    ConflictAlreadyResolvedError,
    ConflictNotFoundError,
    ConflictRequiresManualResolution,
    ConnectorError,
    DuplicateMappingError,
    MissingRequiredFieldError,
    PassAlreadyRunningError,
    RateLimitedError,
    RecordNotFoundError,
    ReferenceNotFoundError,
    ReferenceResolutionError,
    StorageError,
    TransformationError,
)
from ..models.config import SyncSettings
from ..models.conflict import (
    ConflictDecision,
    ConflictRecord,
    ConflictResolutionResult,
    ConflictStatus,
    ConflictWinner,
    FieldConflict,
)
from ..models.cursor import ObjectCursor, SyncCursor, utcnow
from ..models.defaults import DEFAULT_MAPPINGS
from ..models.mapping import IdMapping, ObjectMapping, SyncDirection
from ..models.sync import PassResult, PassState, PassStatus, Record, RecordError, RecordOutcome
from ..services import create_storage
from ..services.storage import SyncStorage, cursor_key
from ..core.validation import validate_mappings
from .batch import BatchProcessor, BatchResult
from .conflicts import ConflictResolver, skipped_resolution
from .locks import PassLocks
from .references import ReferenceResolver
from .transforms import TransformPipeline, get_path, set_path

logger = logging.getLogger(__name__)

FORWARD = SyncDirection.SOURCE_TO_TARGET
REVERSE = SyncDirection.TARGET_TO_SOURCE

# Per-record failures. Anything else raised while processing a chunk is
# treated as a chunk failure.
RECORD_ERRORS = (TransformationError, ReferenceResolutionError, ConnectorError)


class Difference(NamedTuple):
    """A mapped field whose payload value differs from the destination."""
    source_field: str
    target_field: str
    dest_path: str
    new_value: Any
    current_value: Any


class _PassRun:
    """Mutable state of one one-way pass."""

    def __init__(
        self,
        mapping: ObjectMapping,
        direction: SyncDirection,
        origin: BaseConnector,
        destination: BaseConnector,
        cursor: SyncCursor,
        cancel_event: Optional[threading.Event],
    ):
        self.mapping = mapping
        self.direction = direction
        self.forward = direction == FORWARD
        self.origin = origin
        self.destination = destination
        self.origin_object = mapping.source_object if self.forward else mapping.target_object
        self.dest_object = mapping.target_object if self.forward else mapping.source_object
        self.cursor = cursor
        self.since = cursor.since(self.origin_object)
        self.cancel_event = cancel_event
        self.state = PassState.IDLE
        self.result = PassResult(
            source_object=mapping.source_object,
            target_object=mapping.target_object,
            direction=direction,
        )
        # Watermark over the contiguous prefix of finished records
        self.last_record: Optional[Record] = None
        self.blocked = False
        self.cancelled = False
        self.chunk_position = 0

    @property
    def label(self) -> str:
        return f"{self.origin_object} -> {self.dest_object}"

    def enter(self, state: PassState) -> None:
        self.state = state
        logger.debug(f"[{self.label}] {state.value}")

    def cancel_requested(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def finish(self, record: Record, retryable: bool = False) -> None:
        """Mark a record as handled and move the watermark when allowed."""
        self.result.processed += 1
        if retryable:
            self.blocked = True
        elif not self.blocked:
            self.last_record = record


class SyncEngine:
    """
    Runs incremental sync passes for object pairs.

    Example:
        engine = SyncEngine(attio, salesforce, MemoryStorage())
        result = engine.run_pass("companies", "Account")
        print(result.get_summary())
    """

    def __init__(
        self,
        source_connector: BaseConnector,
        target_connector: BaseConnector,
        storage: SyncStorage,
        mappings: Mapping[str, ObjectMapping] = DEFAULT_MAPPINGS,
        settings: Optional[SyncSettings] = None,
        pipeline: Optional[TransformPipeline] = None,
        resolver: Optional[ReferenceResolver] = None,
        conflict_resolver: Optional[ConflictResolver] = None,
        locks: Optional[PassLocks] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the sync engine.

        Args:
            source_connector: Connector for the source system
            target_connector: Connector for the target system
            storage: Persistence for id mappings, cursors and conflicts
            mappings: Object mappings keyed by source object
            settings: Sync settings; mapping overrides in settings win over ``mappings``
            pipeline: Transform pipeline
            resolver: Reference resolver shared across passes
            conflict_resolver: Conflict resolver, defaults to the configured strategy
            locks: Pass locks shared with other engines on the same storage
            sleep: Used for retry backoff

        Raises:
            ConfigurationError: If the mappings are invalid
        """
        self.source = source_connector
        self.target = target_connector
        self.storage = storage
        self.settings = settings or SyncSettings()

        # Private copies; edits to engine.mappings must not reach DEFAULT_MAPPINGS or the settings
        merged = {key: mapping.model_copy(deep=True) for key, mapping in mappings.items()}
        merged.update({key: mapping.model_copy(deep=True) for key, mapping in self.settings.mappings.items()})
        validate_mappings(merged.values())
        self.mappings: Dict[str, ObjectMapping] = merged

        self.pipeline = pipeline or TransformPipeline()
        self.resolver = resolver or ReferenceResolver()
        self.conflict_resolver = conflict_resolver or ConflictResolver(self.settings.conflict_strategy)
        self.locks = locks or PassLocks()
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: SyncSettings, storage: Optional[SyncStorage] = None) -> "SyncEngine":
        """Build connectors and storage from settings."""
        source = get_connector(settings.source.service_type, **settings.source.get_connector_config())
        target = get_connector(settings.target.service_type, **settings.target.get_connector_config())
        return cls(source, target, storage or create_storage(settings), settings=settings)

    # Mappings and cursors

    def get_mapping(self, source_object: str, target_object: str) -> ObjectMapping:
        mapping = self.mappings.get(source_object)
        if mapping is None or mapping.target_object != target_object:
            raise ConfigurationError(f"No mapping configured for {source_object} -> {target_object}")
        return mapping

    def get_cursor(self, source_object: str, target_object: str) -> Optional[SyncCursor]:
        return self.storage.get_cursor(cursor_key(source_object, target_object))

    def reset_cursor(self, source_object: str, target_object: str) -> bool:
        """Forget the stored cursor so the next pass starts from the lookback window."""
        self.get_mapping(source_object, target_object)
        deleted = self.storage.delete_cursor(cursor_key(source_object, target_object))
        logger.info(f"Reset cursor for {source_object} <-> {target_object}: {'deleted' if deleted else 'none stored'}")
        return deleted

    def _initial_cursor(self) -> SyncCursor:
        return SyncCursor.from_timestamp(utcnow() - timedelta(hours=self.settings.lookback_hours))

    def _hydrate(self) -> None:
        """Load stored id mappings into the resolver."""
        for id_mapping in self.storage.list_id_mappings():
            try:
                self.resolver.add_mapping(id_mapping)
            except DuplicateMappingError as e:
                logger.warning(f"Ignoring stored id mapping: {e}")

    # Remote calls

    def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Call a connector method, retrying rate limits and transient failures."""
        attempts = self.settings.max_attempts
        for attempt in range(attempts):
            try:
                return fn(*args)
            except ConnectorError as e:
                if not e.retryable or attempt == attempts - 1:
                    raise
                if isinstance(e, RateLimitedError):
                    delay = e.retry_after
                else:
                    delay = self.settings.backoff_seconds * 2 ** attempt
                logger.warning(f"{fn.__name__} failed ({e}), retrying in {delay}s ({attempt + 1}/{attempts})")
                self._sleep(delay)

    # Passes

    def run_pass(
        self,
        source_object: str,
        target_object: str,
        direction: Optional[Union[SyncDirection, str]] = None,
        cursor: Optional[SyncCursor] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PassResult:
        """
        Run one sync pass for an object pair.

        Args:
            source_object: Source object, e.g. 'companies'
            target_object: Target object, e.g. 'Account'
            direction: Pass direction, defaults to the configured one
            cursor: Start from this cursor instead of the stored one
            cancel_event: When set, the pass stops before the next record

        Returns:
            PassResult with counts, errors and the new cursor

        Raises:
            ConfigurationError: If the pair has no mapping or it is disabled
            PassAlreadyRunningError: If a pass for the pair is in flight
        """
        mapping = self.get_mapping(source_object, target_object)
        if not mapping.enabled:
            raise ConfigurationError(f"Mapping {mapping.key} is disabled")
        direction = SyncDirection(direction) if direction else self.settings.direction
        key = cursor_key(source_object, target_object)

        with self.locks.hold(source_object, target_object):
            logger.info(f"Starting {direction.value} pass for {source_object} <-> {target_object}")
            try:
                self._hydrate()
                if cursor is None:
                    cursor = self.storage.get_cursor(key)
            except StorageError as e:
                logger.error(f"Storage unavailable for {mapping.key}: {e}")
                result = PassResult(source_object=source_object, target_object=target_object, direction=direction)
                result.mark_failed(str(e), PassState.IDLE)
                return result

            cursor = cursor.model_copy(deep=True) if cursor is not None else self._initial_cursor()

            combined: Optional[PassResult] = None
            for one_way in direction.passes():
                result = self._run_one_way(mapping, one_way, cursor, key, cancel_event)
                if result.status in (PassStatus.COMPLETED, PassStatus.COMPLETED_WITH_ERRORS):
                    cursor = result.cursor
                combined = result if combined is None else combined.merge(result)
                if result.status == PassStatus.CANCELLED:
                    break

        logger.info(f"Pass for {source_object} <-> {target_object} finished: {combined.get_summary()}")
        return combined

    def _run_one_way(
        self,
        mapping: ObjectMapping,
        direction: SyncDirection,
        cursor: SyncCursor,
        key: str,
        cancel_event: Optional[threading.Event],
    ) -> PassResult:
        if direction == FORWARD:
            run = _PassRun(mapping, direction, self.source, self.target, cursor, cancel_event)
        else:
            run = _PassRun(mapping, direction, self.target, self.source, cursor, cancel_event)
        result = run.result

        run.enter(PassState.FETCHING_CHANGES)
        try:
            records = self._call(run.origin.list_changed_since, run.origin_object, run.since)
        except ConnectorError as e:
            logger.error(f"[{run.label}] Fetching changes failed: {e}")
            result.mark_failed(f"Fetching changes failed: {e}", PassState.FETCHING_CHANGES)
            return result
        logger.info(f"[{run.label}] {len(records)} changed records since {run.since.isoformat()}")

        processor = BatchProcessor(self.settings.batch_size)
        try:
            processor.process(
                records,
                lambda chunk: self._process_chunk(run, chunk),
                on_chunk_error=lambda chunk, e: self._fail_rest_of_chunk(run, chunk, e),
            )
            if run.cancelled:
                logger.warning(f"[{run.label}] Pass cancelled after {result.processed} records")
                result.mark_cancelled()
                return result

            run.enter(PassState.ADVANCING_CURSOR)
            advanced = self._advance_cursor(run)
            self.storage.save_cursor(key, advanced)
        except StorageError as e:
            logger.error(f"[{run.label}] Storage failure, aborting pass: {e}")
            result.mark_failed(f"Storage failure: {e}", run.state)
            return result

        run.enter(PassState.IDLE)
        result.mark_completed(advanced)
        return result

    def _advance_cursor(self, run: _PassRun) -> SyncCursor:
        advanced = run.cursor.model_copy(deep=True)
        last = run.last_record
        if last is None:
            advanced.advance()
            return advanced

        object_cursor = advanced.get_object_cursor(run.origin_object) or ObjectCursor.new(run.origin_object)
        object_cursor.update(last.id, run.result.processed, last_sync=last.modified_at or run.since)
        advanced.update_object_cursor(object_cursor)
        return advanced

    def _process_chunk(self, run: _PassRun, chunk: Sequence[Record]) -> BatchResult:
        batch = BatchResult()
        run.chunk_position = 0
        for record in chunk:
            if run.cancelled or run.cancel_requested():
                run.cancelled = True
                break

            try:
                outcome = self._sync_record(run, record)
            except StorageError:
                raise
            except RECORD_ERRORS as e:
                retryable = isinstance(e, ConnectorError) and e.retryable
                logger.warning(f"[{run.label}] {record.id} failed during {run.state.value}: {e}")
                run.result.record_error(RecordError(
                    record_id=record.id, stage=run.state, message=str(e), retryable=retryable
                ))
                run.finish(record, retryable=retryable)
                batch.merge(BatchResult.failure(str(e)))
            else:
                self._count(run.result, outcome)
                run.finish(record)
                batch.merge(BatchResult.success())
            run.chunk_position += 1
        return batch

    def _fail_rest_of_chunk(self, run: _PassRun, chunk: Sequence[Record], error: Exception) -> BatchResult:
        """Unexpected chunk failure: the unfinished records stay retryable."""
        batch = BatchResult()
        for record in chunk[run.chunk_position:]:
            run.result.record_error(RecordError(
                record_id=record.id, stage=run.state, message=f"Chunk failed: {error}", retryable=True
            ))
            run.finish(record, retryable=True)
            batch.merge(BatchResult.failure(str(error)))
        return batch

    @staticmethod
    def _count(result: PassResult, outcome: RecordOutcome) -> None:
        if outcome == RecordOutcome.CREATED:
            result.created += 1
        elif outcome == RecordOutcome.UPDATED:
            result.updated += 1
        elif outcome == RecordOutcome.DELETED:
            result.deleted += 1
        elif outcome == RecordOutcome.UNCHANGED:
            result.unchanged += 1
        elif outcome == RecordOutcome.SKIPPED:
            result.skipped += 1

    # Per-record pipeline

    def _sync_record(self, run: _PassRun, record: Record) -> RecordOutcome:
        if record.deleted:
            return self._sync_deletion(run, record)

        run.enter(PassState.TRANSFORMING)
        payload = self.pipeline.convert(record.data, run.mapping, run.direction)

        run.enter(PassState.RESOLVING_REFERENCES)
        self._resolve_references(run.mapping, run.direction, record.data, payload)

        run.enter(PassState.DETECTING_CONFLICTS)
        link = self.resolver.get_mapping(run.direction, run.origin_object, record.id)
        existing: Optional[Record] = None
        if link is not None:
            # A pair waiting on an operator is left alone in both directions
            held = self.storage.find_pending_conflict(link.source_object, link.source_id)
            if held is not None:
                logger.info(f"[{run.label}] {record.id} is held by pending conflict {held.id}, skipping")
                return RecordOutcome.SKIPPED

            dest_id = link.target_id if run.forward else link.source_id
            try:
                existing = self._call(run.destination.get_record, run.dest_object, dest_id)
            except RecordNotFoundError:
                logger.warning(f"[{run.label}] {run.dest_object}/{dest_id} is gone, recreating from {record.id}")
                self._unlink(link)
                link = None

        if existing is None:
            run.enter(PassState.WRITING)
            new_id = self._call(run.destination.create_record, run.dest_object, payload)
            self._link(run, record.id, new_id)
            logger.debug(f"[{run.label}] Created {run.dest_object}/{new_id} from {record.id}")
            return RecordOutcome.CREATED

        differences = self._differences(run, payload, existing)
        if not differences:
            return RecordOutcome.UNCHANGED

        if self._is_conflict(record, existing):
            return self._handle_conflict(run, record, existing, differences)

        run.enter(PassState.WRITING)
        self._call(run.destination.update_record, run.dest_object, existing.id, self._patch(differences))
        return RecordOutcome.UPDATED

    def _sync_deletion(self, run: _PassRun, record: Record) -> RecordOutcome:
        link = self.resolver.get_mapping(run.direction, run.origin_object, record.id)
        if link is None:
            return RecordOutcome.SKIPPED

        run.enter(PassState.WRITING)
        dest_id = link.target_id if run.forward else link.source_id
        if run.destination.get_capabilities().can_delete:
            try:
                self._call(run.destination.delete_record, run.dest_object, dest_id)
            except RecordNotFoundError:
                logger.debug(f"[{run.label}] {run.dest_object}/{dest_id} already deleted")
        else:
            logger.warning(f"[{run.label}] Destination cannot delete records, unlinking {run.dest_object}/{dest_id}")
        self._unlink(link)
        return RecordOutcome.DELETED

    def _resolve_references(
        self,
        mapping: ObjectMapping,
        direction: SyncDirection,
        data: Dict[str, Any],
        payload: Dict[str, Any],
    ) -> None:
        """Translate relationship ids into the destination id space, in place."""
        forward = direction == FORWARD
        for reference in mapping.references_for(direction):
            origin_path = reference.source_field if forward else reference.target_field
            dest_path = reference.target_field if forward else reference.source_field
            foreign_object = reference.source_object if forward else reference.target_object

            foreign_id = get_path(data, origin_path)
            if foreign_id is None:
                if reference.required:
                    raise MissingRequiredFieldError(origin_path)
                continue

            resolved = self.resolver.resolve(direction, foreign_object, str(foreign_id))
            if resolved is None:
                if reference.required:
                    raise ReferenceNotFoundError(foreign_object, str(foreign_id))
                logger.warning(f"Dropping {origin_path}: {foreign_object}/{foreign_id} is not synced yet")
                continue
            set_path(payload, dest_path, resolved)

    def _differences(self, run: _PassRun, payload: Dict[str, Any], existing: Record) -> List[Difference]:
        pairs: List[Tuple[str, str]] = [(f.source_field, f.target_field) for f in run.mapping.fields_for(run.direction)]
        pairs += [(r.source_field, r.target_field) for r in run.mapping.references_for(run.direction)]

        differences = []
        for source_field, target_field in pairs:
            dest_path = target_field if run.forward else source_field
            new_value = get_path(payload, dest_path)
            if new_value is None:
                continue
            current_value = get_path(existing.data, dest_path)
            if self.conflict_resolver.detect(new_value, current_value):
                differences.append(Difference(source_field, target_field, dest_path, new_value, current_value))
        return differences

    @staticmethod
    def _is_conflict(record: Record, existing: Record) -> bool:
        # Only a destination change newer than the origin change is at risk of being overwritten
        if existing.modified_at is None or record.modified_at is None:
            return False
        return existing.modified_at > record.modified_at

    @staticmethod
    def _patch(differences: Sequence[Difference]) -> Dict[str, Any]:
        patch: Dict[str, Any] = {}
        for difference in differences:
            set_path(patch, difference.dest_path, difference.new_value)
        return patch

    def _handle_conflict(
        self,
        run: _PassRun,
        record: Record,
        existing: Record,
        differences: List[Difference],
    ) -> RecordOutcome:
        source_record, target_record = (record, existing) if run.forward else (existing, record)
        conflict = ConflictRecord(
            source_object=run.mapping.source_object,
            source_record_id=source_record.id,
            target_object=run.mapping.target_object,
            target_record_id=target_record.id,
            source_data=source_record.data,
            target_data=target_record.data,
            conflicting_fields=[
                FieldConflict(
                    source_field=d.source_field,
                    target_field=d.target_field,
                    source_value=get_path(source_record.data, d.source_field),
                    target_value=get_path(target_record.data, d.target_field),
                    source_modified_at=source_record.field_timestamp(d.source_field),
                    target_modified_at=target_record.field_timestamp(d.target_field),
                )
                for d in differences
            ],
            direction=run.direction,
        )
        run.result.conflicted += 1

        try:
            resolution = self.conflict_resolver.resolve(conflict)
        except ConflictRequiresManualResolution as e:
            self.storage.save_conflict(conflict)
            logger.warning(f"[{run.label}] {e} (conflict {conflict.id})")
            return RecordOutcome.CONFLICTED

        self.conflict_resolver.apply_resolution(conflict, resolution)
        self.storage.save_conflict(conflict)

        origin_side = ConflictWinner.SOURCE if run.forward else ConflictWinner.TARGET
        if resolution.winner == ConflictWinner.MERGED:
            winning = [
                d for d, field_conflict in zip(differences, conflict.conflicting_fields)
                if self.conflict_resolver.field_winner(field_conflict) == origin_side
            ]
        elif resolution.winner == origin_side:
            winning = differences
        else:
            winning = []

        run.enter(PassState.WRITING)
        if not winning:
            logger.info(f"[{run.label}] Conflict on {record.id} resolved for the destination, skipping write")
            return RecordOutcome.SKIPPED
        self._call(run.destination.update_record, run.dest_object, existing.id, self._patch(winning))
        return RecordOutcome.UPDATED

    def _link(self, run: _PassRun, origin_id: str, dest_id: str) -> None:
        source_id, target_id = (origin_id, dest_id) if run.forward else (dest_id, origin_id)
        id_mapping = IdMapping(
            source_object=run.mapping.source_object,
            source_id=source_id,
            target_object=run.mapping.target_object,
            target_id=target_id,
        )
        self.storage.save_id_mapping(id_mapping)
        self.resolver.add_mapping(id_mapping)

    def _unlink(self, id_mapping: IdMapping) -> None:
        self.storage.delete_mapping(id_mapping.source_object, id_mapping.source_id)
        self.resolver.remove_mapping(id_mapping)

    # Whole-system operations

    def _waves(self, mappings: List[ObjectMapping]) -> List[List[ObjectMapping]]:
        """Group mappings so each runs after the mappings its references point at."""
        by_source = {m.source_object: m for m in mappings}
        levels: Dict[str, int] = {}

        def level(mapping: ObjectMapping, seen: Tuple[str, ...] = ()) -> int:
            if mapping.source_object in levels:
                return levels[mapping.source_object]
            deps = [
                by_source[r.source_object] for r in mapping.references
                if r.source_object in by_source
                and r.source_object != mapping.source_object
                and r.source_object not in seen
            ]
            value = 1 + max((level(d, seen + (mapping.source_object,)) for d in deps), default=-1)
            levels[mapping.source_object] = value
            return value

        waves: Dict[int, List[ObjectMapping]] = {}
        for mapping in mappings:
            waves.setdefault(level(mapping), []).append(mapping)
        return [waves[n] for n in sorted(waves)]

    def run_all(
        self,
        direction: Optional[Union[SyncDirection, str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[PassResult]:
        """
        Run a pass for every enabled mapping.

        Independent mappings run concurrently. Pairs that already have a pass
        in flight are skipped.
        """
        enabled = [m for m in self.mappings.values() if m.enabled]
        results: List[PassResult] = []

        with ThreadPoolExecutor(max_workers=self.settings.max_concurrent_objects) as pool:
            for wave in self._waves(enabled):
                futures = [
                    (m, pool.submit(self.run_pass, m.source_object, m.target_object, direction, None, cancel_event))
                    for m in wave
                ]
                for mapping, future in futures:
                    try:
                        results.append(future.result())
                    except PassAlreadyRunningError as e:
                        logger.warning(f"Skipping {mapping.key}: {e}")

        return results

    # Conflicts

    def list_pending_conflicts(self, limit: int = 100) -> List[ConflictRecord]:
        return self.storage.list_conflicts(ConflictStatus.PENDING, limit=limit)

    def get_conflict(self, conflict_id: str) -> ConflictRecord:
        conflict = self.storage.get_conflict(conflict_id)
        if conflict is None:
            raise ConflictNotFoundError(f"Conflict not found: {conflict_id}")
        return conflict

    def resolve_conflict(
        self,
        conflict_id: str,
        decision: Union[ConflictDecision, str],
        resolved_by: str = "operator",
        notes: Optional[str] = None,
    ) -> ConflictRecord:
        """
        Apply an operator decision to a pending conflict.

        Args:
            conflict_id: Conflict to resolve
            decision: source, target, merge or skip
            resolved_by: Who made the decision
            notes: Free-form notes stored on the resolution

        Returns:
            The resolved conflict

        Raises:
            ConflictNotFoundError: If no such conflict exists
            ConflictAlreadyResolvedError: If it is no longer pending
            ConnectorError: If writing the winning values fails; the conflict stays pending
        """
        decision = ConflictDecision(decision)
        conflict = self.get_conflict(conflict_id)
        if not conflict.is_pending:
            raise ConflictAlreadyResolvedError(f"Conflict {conflict_id} is already {conflict.status.value}")

        mapping = self.get_mapping(conflict.source_object, conflict.target_object)

        with self.locks.hold(conflict.source_object, conflict.target_object):
            self._hydrate()
            if decision == ConflictDecision.SKIP:
                result = skipped_resolution(resolved_by, notes)
                status = ConflictStatus.SKIPPED
            else:
                winner = self._apply_decision(mapping, conflict, decision)
                result = ConflictResolutionResult(winner=winner, resolved_by=resolved_by, notes=notes)
                status = ConflictStatus.MANUALLY_RESOLVED

            self.conflict_resolver.apply_resolution(conflict, result, status)
            self.storage.save_conflict(conflict)
        return conflict

    def _apply_decision(
        self,
        mapping: ObjectMapping,
        conflict: ConflictRecord,
        decision: ConflictDecision,
    ) -> ConflictWinner:
        if decision == ConflictDecision.SOURCE:
            payload = self._build_payload(mapping, FORWARD, conflict.source_data)
            self._call(self.target.update_record, conflict.target_object, conflict.target_record_id, payload)
            return ConflictWinner.SOURCE
        if decision == ConflictDecision.TARGET:
            payload = self._build_payload(mapping, REVERSE, conflict.target_data)
            self._call(self.source.update_record, conflict.source_object, conflict.source_record_id, payload)
            return ConflictWinner.TARGET

        # Source-winning fields go to the target; target-winning fields are
        # read back out of the merged source document.
        merged = self.conflict_resolver.merge_values(conflict)
        to_target = self._build_payload(mapping, FORWARD, conflict.source_data)
        target_patch: Dict[str, Any] = {}
        source_patch: Dict[str, Any] = {}
        for field_conflict in conflict.conflicting_fields:
            if self.conflict_resolver.field_winner(field_conflict) == ConflictWinner.TARGET:
                value = self._to_source_value(mapping, field_conflict, get_path(merged, field_conflict.source_field))
                if value is not None:
                    set_path(source_patch, field_conflict.source_field, value)
            else:
                value = get_path(to_target, field_conflict.target_field)
                if value is not None:
                    set_path(target_patch, field_conflict.target_field, value)

        if target_patch:
            self._call(self.target.update_record, conflict.target_object, conflict.target_record_id, target_patch)
        if source_patch:
            self._call(self.source.update_record, conflict.source_object, conflict.source_record_id, source_patch)
        return ConflictWinner.MERGED

    def _to_source_value(self, mapping: ObjectMapping, field_conflict: FieldConflict, value: Any) -> Any:
        """Express a target-side value in the source schema, or None if the field never flows back."""
        if value is None:
            return None
        for field in mapping.fields_for(REVERSE):
            if field.source_field == field_conflict.source_field and field.target_field == field_conflict.target_field:
                return self.pipeline.reverse_transform(value, field.transform)
        for reference in mapping.references_for(REVERSE):
            if reference.source_field == field_conflict.source_field:
                return self.resolver.require_resolve(REVERSE, reference.target_object, str(value))
        return None

    def _build_payload(self, mapping: ObjectMapping, direction: SyncDirection, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = self.pipeline.convert(data, mapping, direction)
        self._resolve_references(mapping, direction, data, payload)
        return payload
