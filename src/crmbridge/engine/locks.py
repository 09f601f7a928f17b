"""
Single-flight guard so only one pass runs per object pair.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Tuple

from ..exceptions import PassAlreadyRunningError

logger = logging.getLogger(__name__)


class PassLocks:
    """Keyed non-blocking locks, one per (source_object, target_object) pair."""

    def __init__(self):
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, pair: Tuple[str, str]) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(pair)
            if lock is None:
                lock = self._locks[pair] = threading.Lock()
            return lock

    def is_running(self, source_object: str, target_object: str) -> bool:
        return self._lock_for((source_object, target_object)).locked()

    @contextmanager
    def hold(self, source_object: str, target_object: str) -> Iterator[None]:
        """
        Hold the pair lock for the duration of the block.

        Raises:
            PassAlreadyRunningError: If another pass holds the lock
        """
        lock = self._lock_for((source_object, target_object))
        if not lock.acquire(blocking=False):
            raise PassAlreadyRunningError(source_object, target_object)
        logger.debug(f"Acquired pass lock for {source_object} <-> {target_object}")
        try:
            yield
        finally:
            lock.release()
