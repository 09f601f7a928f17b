"""Tests for chunked batch processing and pass locks."""

import pytest

from crmbridge.engine.batch import BatchProcessor, BatchResult
from crmbridge.engine.locks import PassLocks
from crmbridge.exceptions import PassAlreadyRunningError, StorageError


def _count_all(chunk):
    result = BatchResult()
    for _ in chunk:
        result.merge(BatchResult.success())
    return result


class TestBatchProcessor:
    """Chunks run in order and fail independently."""

    def test_rejects_non_positive_batch_size(self):
        with pytest.raises(ValueError):
            BatchProcessor(0)

    def test_chunks(self):
        assert BatchProcessor(2).chunks([1, 2, 3, 4, 5]) == [[1, 2], [3, 4], [5]]

    def test_empty_input(self):
        result = BatchProcessor(10).process([], _count_all)
        assert result.processed == 0
        assert result.success_rate == 100.0

    def test_failed_chunk_does_not_stop_the_rest(self):
        seen = []

        def processor(chunk):
            seen.append(list(chunk))
            if 3 in chunk:
                raise RuntimeError("boom")
            return _count_all(chunk)

        result = BatchProcessor(2).process([1, 2, 3, 4, 5], processor)
        assert seen == [[1, 2], [3, 4], [5]]
        assert result.succeeded == 3
        assert result.failed == 2
        assert result.errors == ["boom"]

    def test_chunk_error_callback(self):
        failed = []

        def on_error(chunk, error):
            failed.append((list(chunk), str(error)))
            return BatchResult(processed=len(chunk), failed=len(chunk))

        def processor(chunk):
            raise RuntimeError("nope")

        result = BatchProcessor(3).process([1, 2], processor, on_chunk_error=on_error)
        assert failed == [([1, 2], "nope")]
        assert result.failed == 2

    def test_storage_errors_abort(self):
        def processor(chunk):
            raise StorageError("firestore down")

        with pytest.raises(StorageError):
            BatchProcessor(2).process([1, 2, 3], processor)


class TestPassLocks:
    """One pass per object pair at a time."""

    def test_second_hold_rejected(self):
        locks = PassLocks()
        with locks.hold("companies", "Account"):
            assert locks.is_running("companies", "Account")
            with pytest.raises(PassAlreadyRunningError) as exc_info:
                with locks.hold("companies", "Account"):
                    pass
            assert exc_info.value.source_object == "companies"
        assert not locks.is_running("companies", "Account")

    def test_different_pairs_do_not_block(self):
        locks = PassLocks()
        with locks.hold("companies", "Account"):
            with locks.hold("people", "Contact"):
                assert locks.is_running("people", "Contact")

    def test_released_on_error(self):
        locks = PassLocks()
        with pytest.raises(RuntimeError):
            with locks.hold("companies", "Account"):
                raise RuntimeError("pass crashed")
        assert not locks.is_running("companies", "Account")
