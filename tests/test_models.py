"""Tests for cursor, record, result and mapping models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from crmbridge.models.cursor import ObjectCursor, SyncCursor
from crmbridge.models.defaults import DEFAULT_MAPPINGS, get_default_mapping
from crmbridge.models.mapping import (
    FieldSyncDirection,
    MapValueTransform,
    ObjectMapping,
    SyncDirection,
)
from crmbridge.models.sync import PassResult, PassState, PassStatus, Record, RecordError

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _make_result(**overrides) -> PassResult:
    defaults = {
        "source_object": "companies",
        "target_object": "Account",
        "direction": SyncDirection.SOURCE_TO_TARGET,
    }
    defaults.update(overrides)
    return PassResult(**defaults)


class TestSyncCursor:
    """Resumable high-water marks."""

    def test_json_round_trip(self):
        cursor = SyncCursor.from_timestamp(T0)
        object_cursor = ObjectCursor.new("companies")
        object_cursor.update("att_9", 12, last_sync=T0 + timedelta(minutes=3))
        cursor.update_object_cursor(object_cursor)

        restored = SyncCursor.from_json(cursor.to_json())
        assert restored == cursor
        assert restored.get_object_cursor("companies").last_record_id == "att_9"

    def test_since_prefers_object_entry(self):
        cursor = SyncCursor.from_timestamp(T0)
        object_cursor = ObjectCursor.new("companies")
        object_cursor.update("att_1", 1, last_sync=T0 + timedelta(hours=1))
        cursor.update_object_cursor(object_cursor)

        assert cursor.since("companies") == T0 + timedelta(hours=1)
        assert cursor.since("Account") == T0

    def test_timestamp_moves_on_update(self):
        cursor = SyncCursor.from_timestamp(T0)
        cursor.update_object_cursor(ObjectCursor.new("companies"))
        assert cursor.timestamp > T0
        assert cursor.seed == T0

    def test_since_without_seed_uses_timestamp(self):
        cursor = SyncCursor(timestamp=T0)
        assert cursor.since("companies") == T0


class TestRecord:
    def test_field_timestamp_fallbacks(self):
        record = Record(
            id="att_1",
            object="companies",
            modified_at=T0,
            field_modified_at={"name": T0 + timedelta(minutes=1), "primary_location": T0 + timedelta(minutes=2)},
        )
        assert record.field_timestamp("name") == T0 + timedelta(minutes=1)
        assert record.field_timestamp("primary_location.locality") == T0 + timedelta(minutes=2)
        assert record.field_timestamp("domains[0]") == T0


class TestPassResult:
    """Counting and merging pass results."""

    def test_completed_with_errors(self):
        result = _make_result()
        result.record_error(RecordError(record_id="att_1", stage=PassState.TRANSFORMING, message="bad"))
        result.mark_completed(SyncCursor.from_timestamp(T0))
        assert result.status == PassStatus.COMPLETED_WITH_ERRORS
        assert result.errored == 1

    def test_merge_sums_counts(self):
        forward = _make_result(created=2, processed=2, status=PassStatus.COMPLETED)
        reverse = _make_result(direction=SyncDirection.TARGET_TO_SOURCE, updated=1, processed=3,
                               unchanged=2, status=PassStatus.COMPLETED)
        merged = forward.merge(reverse)
        assert merged.direction == SyncDirection.BIDIRECTIONAL
        assert merged.processed == 5
        assert merged.created == 2
        assert merged.updated == 1
        assert merged.status == PassStatus.COMPLETED

    def test_merge_keeps_worst_status(self):
        failed = _make_result(status=PassStatus.FAILED)
        ok = _make_result(status=PassStatus.COMPLETED)
        assert ok.merge(failed).status == PassStatus.FAILED

    def test_summary(self):
        result = _make_result()
        result.mark_failed("Fetching changes failed: down", PassState.FETCHING_CHANGES)
        summary = result.get_summary()
        assert summary["status"] == "failed"
        assert summary["pair"] == "companies <-> Account"
        assert summary["error_messages"] == ["Fetching changes failed: down"]


class TestMappings:
    """Mapping models and the default table."""

    def test_direction_passes(self):
        assert SyncDirection.BIDIRECTIONAL.passes() == [
            SyncDirection.SOURCE_TO_TARGET, SyncDirection.TARGET_TO_SOURCE
        ]
        assert SyncDirection.TARGET_TO_SOURCE.passes() == [SyncDirection.TARGET_TO_SOURCE]

    def test_field_direction_allows(self):
        assert FieldSyncDirection.BIDIRECTIONAL.allows(SyncDirection.TARGET_TO_SOURCE)
        assert FieldSyncDirection.SOURCE_TO_TARGET.allows(SyncDirection.SOURCE_TO_TARGET)
        assert not FieldSyncDirection.SOURCE_TO_TARGET.allows(SyncDirection.TARGET_TO_SOURCE)
        assert not FieldSyncDirection.NONE.allows(SyncDirection.SOURCE_TO_TARGET)

    def test_transform_discriminator(self):
        mapping = ObjectMapping.model_validate({
            "source_object": "deals",
            "target_object": "Opportunity",
            "fields": [{"source_field": "status", "target_field": "StageName",
                        "transform": {"kind": "map_value", "mappings": {"won": "Closed Won"}}}],
        })
        assert isinstance(mapping.fields[0].transform, MapValueTransform)

    def test_unknown_transform_kind_rejected(self):
        with pytest.raises(ValidationError):
            ObjectMapping.model_validate({
                "source_object": "deals",
                "target_object": "Opportunity",
                "fields": [{"source_field": "a", "target_field": "A", "transform": {"kind": "uppercase"}}],
            })

    def test_default_table(self):
        assert set(DEFAULT_MAPPINGS) == {"companies", "people", "deals"}
        assert DEFAULT_MAPPINGS["people"].target_object == "Contact"
        with pytest.raises(TypeError):
            DEFAULT_MAPPINGS["tasks"] = DEFAULT_MAPPINGS["deals"]

    def test_get_default_mapping_returns_copy(self):
        mapping = get_default_mapping("companies", "Account")
        mapping.enabled = False
        assert DEFAULT_MAPPINGS["companies"].enabled is True
        assert get_default_mapping("companies", "Contact") is None

    def test_fields_for_direction(self):
        companies = DEFAULT_MAPPINGS["companies"]
        reverse = [f.target_field for f in companies.fields_for(SyncDirection.TARGET_TO_SOURCE)]
        assert "NumberOfEmployees" not in reverse
        assert "Name" in reverse
