"""
Firestore storage for id mappings, sync cursors and conflicts.
"""

import logging
from typing import Any, List, Optional
from urllib.parse import quote

from google.cloud import firestore
from google.auth import default

from ..exceptions import StorageError
from ..models.conflict import ConflictRecord, ConflictStatus
from ..models.cursor import SyncCursor
from ..models.mapping import IdMapping
from .storage import SyncStorage

logger = logging.getLogger(__name__)


def _mapping_doc_id(object: str, record_id: str) -> str:
    # Firestore document ids cannot contain slashes; quoting keeps distinct ids distinct
    return f"{quote(object, safe='')}:{quote(record_id, safe='')}"


class FirestoreStorage(SyncStorage):
    """
    Sync state persisted in Firestore.

    Every backend failure is re-raised as StorageError so the engine aborts
    the pass instead of continuing with unknown mapping or cursor state.
    """

    def __init__(self, project_id: Optional[str] = None, client: Optional[Any] = None):
        """
        Initialize Firestore storage.

        Args:
            project_id: Google Cloud project ID. If None, uses default from environment.
            client: Pre-built Firestore client
        """
        try:
            if client is not None:
                self.db = client
            elif project_id:
                self.db = firestore.Client(project=project_id)
            else:
                # Use application default credentials
                credentials, project = default()
                self.db = firestore.Client(project=project, credentials=credentials)
        except Exception as e:
            logger.error(f"Failed to initialize Firestore: {e}")
            raise StorageError(f"Failed to initialize Firestore: {e}") from e

        self.mappings_collection = "id_mappings"
        self.cursors_collection = "sync_cursors"
        self.conflicts_collection = "sync_conflicts"

        logger.info(f"Firestore storage initialized for project: {getattr(self.db, 'project', project_id)}")

    # Id mappings

    def save_id_mapping(self, mapping: IdMapping) -> None:
        try:
            doc_ref = self.db.collection(self.mappings_collection).document(
                _mapping_doc_id(mapping.source_object, mapping.source_id)
            )
            doc_ref.set(mapping.model_dump())
            logger.debug(f"Saved id mapping {mapping.source_object}/{mapping.source_id} -> {mapping.target_id}")
        except Exception as e:
            logger.error(f"Failed to save id mapping {mapping.source_object}/{mapping.source_id}: {e}")
            raise StorageError(f"Failed to save id mapping: {e}") from e

    def get_mapping_by_source_id(self, object: str, source_id: str) -> Optional[IdMapping]:
        try:
            doc = self.db.collection(self.mappings_collection).document(_mapping_doc_id(object, source_id)).get()
            if doc.exists:
                return IdMapping.model_validate(doc.to_dict())
            return None
        except Exception as e:
            logger.error(f"Failed to get id mapping {object}/{source_id}: {e}")
            raise StorageError(f"Failed to get id mapping: {e}") from e

    def get_mapping_by_target_id(self, object: str, target_id: str) -> Optional[IdMapping]:
        try:
            query = (
                self.db.collection(self.mappings_collection)
                .where("target_object", "==", object)
                .where("target_id", "==", target_id)
                .limit(1)
            )
            for doc in query.stream():
                return IdMapping.model_validate(doc.to_dict())
            return None
        except Exception as e:
            logger.error(f"Failed to get id mapping for {object}/{target_id}: {e}")
            raise StorageError(f"Failed to get id mapping: {e}") from e

    def delete_mapping(self, source_object: str, source_id: str) -> bool:
        try:
            doc_ref = self.db.collection(self.mappings_collection).document(_mapping_doc_id(source_object, source_id))
            doc = doc_ref.get()

            if doc.exists:
                doc_ref.delete()
                logger.info(f"Deleted id mapping: {source_object}/{source_id}")
                return True
            return False
        except Exception as e:
            logger.error(f"Failed to delete id mapping {source_object}/{source_id}: {e}")
            raise StorageError(f"Failed to delete id mapping: {e}") from e

    def list_id_mappings(self, source_object: Optional[str] = None) -> List[IdMapping]:
        try:
            query = self.db.collection(self.mappings_collection)
            if source_object:
                query = query.where("source_object", "==", source_object)
            return [IdMapping.model_validate(doc.to_dict()) for doc in query.stream()]
        except Exception as e:
            logger.error(f"Failed to list id mappings: {e}")
            raise StorageError(f"Failed to list id mappings: {e}") from e

    # Cursors

    def save_cursor(self, key: str, cursor: SyncCursor) -> None:
        try:
            self.db.collection(self.cursors_collection).document(key).set(cursor.model_dump(mode="json"))
            logger.debug(f"Saved cursor {key}")
        except Exception as e:
            logger.error(f"Failed to save cursor {key}: {e}")
            raise StorageError(f"Failed to save cursor: {e}") from e

    def get_cursor(self, key: str) -> Optional[SyncCursor]:
        try:
            doc = self.db.collection(self.cursors_collection).document(key).get()
            if doc.exists:
                return SyncCursor.model_validate(doc.to_dict())
            return None
        except Exception as e:
            logger.error(f"Failed to get cursor {key}: {e}")
            raise StorageError(f"Failed to get cursor: {e}") from e

    def delete_cursor(self, key: str) -> bool:
        try:
            doc_ref = self.db.collection(self.cursors_collection).document(key)
            if doc_ref.get().exists:
                doc_ref.delete()
                return True
            return False
        except Exception as e:
            logger.error(f"Failed to delete cursor {key}: {e}")
            raise StorageError(f"Failed to delete cursor: {e}") from e

    # Conflicts

    def save_conflict(self, conflict: ConflictRecord) -> None:
        try:
            self.db.collection(self.conflicts_collection).document(conflict.id).set(conflict.to_firestore())
            logger.debug(f"Saved conflict {conflict.id} ({conflict.status.value})")
        except Exception as e:
            logger.error(f"Failed to save conflict {conflict.id}: {e}")
            raise StorageError(f"Failed to save conflict: {e}") from e

    def get_conflict(self, conflict_id: str) -> Optional[ConflictRecord]:
        try:
            doc = self.db.collection(self.conflicts_collection).document(conflict_id).get()
            if doc.exists:
                return ConflictRecord.from_firestore(conflict_id, doc.to_dict())
            return None
        except Exception as e:
            logger.error(f"Failed to get conflict {conflict_id}: {e}")
            raise StorageError(f"Failed to get conflict: {e}") from e

    def list_conflicts(self, status: Optional[ConflictStatus] = None, limit: int = 100) -> List[ConflictRecord]:
        try:
            query = self.db.collection(self.conflicts_collection)
            if status is not None:
                query = query.where("status", "==", status.value)
            query = query.order_by("detected_at").limit(limit)
            return [ConflictRecord.from_firestore(doc.id, doc.to_dict()) for doc in query.stream()]
        except Exception as e:
            logger.error(f"Failed to list conflicts: {e}")
            raise StorageError(f"Failed to list conflicts: {e}") from e

    def find_pending_conflict(self, source_object: str, source_record_id: str) -> Optional[ConflictRecord]:
        try:
            query = (
                self.db.collection(self.conflicts_collection)
                .where("source_object", "==", source_object)
                .where("source_record_id", "==", source_record_id)
                .where("status", "==", ConflictStatus.PENDING.value)
                .limit(1)
            )
            for doc in query.stream():
                return ConflictRecord.from_firestore(doc.id, doc.to_dict())
            return None
        except Exception as e:
            logger.error(f"Failed to find pending conflict for {source_object}/{source_record_id}: {e}")
            raise StorageError(f"Failed to find pending conflict: {e}") from e
