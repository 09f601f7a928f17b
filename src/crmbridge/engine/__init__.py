"""
Sync engine and the components it consults per record.
"""

from .sync import SyncEngine
from .transforms import TransformPipeline, COUNTRY_CODES
from .references import ReferenceResolver
from .conflicts import ConflictResolver
from .batch import BatchProcessor, BatchResult
from .locks import PassLocks

__all__ = [
    "SyncEngine",
    "TransformPipeline",
    "COUNTRY_CODES",
    "ReferenceResolver",
    "ConflictResolver",
    "BatchProcessor",
    "BatchResult",
    "PassLocks",
]
