"""
Storage services for the CRM bridge.
"""

from .storage import SyncStorage, MemoryStorage, cursor_key
from .firestore import FirestoreStorage
from ..exceptions import ConfigurationError
from ..models.config import SyncSettings

__all__ = [
    "SyncStorage",
    "MemoryStorage",
    "FirestoreStorage",
    "cursor_key",
    "create_storage",
]


def create_storage(settings: SyncSettings) -> SyncStorage:
    """Create the storage backend named in settings."""
    if settings.storage_backend == "memory":
        return MemoryStorage()
    if settings.storage_backend == "firestore":
        return FirestoreStorage(project_id=settings.firestore_project)
    raise ConfigurationError(f"Unknown storage backend: {settings.storage_backend}")
