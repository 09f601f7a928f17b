"""
Batch processing for large record sets.
"""

import logging
from typing import Callable, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, Field

from ..exceptions import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BatchResult(BaseModel):
    """Result of processing one or more chunks."""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)

    @classmethod
    def success(cls) -> "BatchResult":
        return cls(processed=1, succeeded=1)

    @classmethod
    def failure(cls, error: str) -> "BatchResult":
        return cls(processed=1, failed=1, errors=[error])

    def merge(self, other: "BatchResult") -> None:
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.errors.extend(other.errors)

    @property
    def success_rate(self) -> float:
        if self.processed == 0:
            return 100.0
        return self.succeeded / self.processed * 100.0


class BatchProcessor:
    """
    Splits items into chunks and isolates chunk failures.

    A chunk that raises is counted as failed and the next chunk still runs.
    Exceptions listed in ``fatal`` abort processing.
    """

    def __init__(self, batch_size: int = 100, fatal: Tuple[Type[BaseException], ...] = (StorageError,)):
        if batch_size <= 0:
            raise ValueError("Batch size must be greater than 0")
        self.batch_size = batch_size
        self.fatal = fatal

    def chunks(self, items: Sequence[T]) -> List[Sequence[T]]:
        return [items[i:i + self.batch_size] for i in range(0, len(items), self.batch_size)]

    def process(
        self,
        items: Sequence[T],
        processor: Callable[[Sequence[T]], BatchResult],
        on_chunk_error: Optional[Callable[[Sequence[T], Exception], BatchResult]] = None,
    ) -> BatchResult:
        """
        Process items chunk by chunk.

        Args:
            items: Items to process
            processor: Called once per chunk
            on_chunk_error: Called with the chunk and the exception when a chunk fails

        Returns:
            Merged result over all chunks
        """
        total = BatchResult()
        chunks = self.chunks(items)

        for number, chunk in enumerate(chunks, start=1):
            try:
                result = processor(chunk)
            except self.fatal:
                raise
            except Exception as e:
                logger.error(f"Chunk {number}/{len(chunks)} failed: {e}")
                if on_chunk_error is not None:
                    result = on_chunk_error(chunk, e)
                else:
                    result = BatchResult(processed=len(chunk), failed=len(chunk), errors=[str(e)])
            total.merge(result)

        return total
