"""
Base connector class for the two remote record stores.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from pydantic import BaseModel

from ..models.sync import Record

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ConnectorCapability(BaseModel):
    """Defines what operations and value shapes a connector supports."""
    can_read: bool = True
    can_write: bool = True
    can_delete: bool = False
    supports_multi_value: bool = False
    supports_currency_objects: bool = False
    supports_picklists: bool = False


def sort_by_modification(records: List[Record]) -> List[Record]:
    """Ascending by modification time, record id as tie-break."""
    return sorted(records, key=lambda r: (r.modified_at or _EPOCH, r.id))


class BaseConnector(ABC):
    """
    Abstract base class for connectors.

    Every method may raise RateLimitedError, TransientConnectorError or
    another ConnectorError. Subclasses implement the underscored methods.
    """

    service_name = "base"

    def __init__(self, credentials: Optional[Dict[str, Any]] = None, base_url: Optional[str] = None, **kwargs):
        """
        Initialize the connector.

        Args:
            credentials: Authentication credentials
            base_url: Base URL for the API
            **kwargs: Additional configuration parameters
        """
        self.credentials = credentials or {}
        self.base_url = base_url
        self.config = kwargs
        logger.info(f"Initialized {self.__class__.__name__} connector")

    @abstractmethod
    def _validate_credentials(self) -> None:
        """Validate that required credentials are provided."""
        pass

    @abstractmethod
    def get_capabilities(self) -> ConnectorCapability:
        """Return what operations this connector supports."""
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Test if the connector can successfully connect to the service."""
        pass

    # Record operations

    def get_record(self, object: str, record_id: str) -> Record:
        """Fetch a single record. Raises RecordNotFoundError when absent."""
        return self._get_record(object, record_id)

    def list_changed_since(self, object: str, since: datetime) -> List[Record]:
        """
        Records of ``object`` modified at or after ``since``.

        Args:
            object: Object name on this system
            since: Inclusive lower bound

        Returns:
            Records in ascending modification order
        """
        if not self.get_capabilities().can_read:
            raise NotImplementedError(f"{self.__class__.__name__} does not support reading records")
        return sort_by_modification(self._list_changed_since(object, since))

    def create_record(self, object: str, data: Dict[str, Any]) -> str:
        """Create a record and return its id."""
        if not self.get_capabilities().can_write:
            raise NotImplementedError(f"{self.__class__.__name__} does not support writing records")
        return self._create_record(object, data)

    def update_record(self, object: str, record_id: str, data: Dict[str, Any]) -> None:
        if not self.get_capabilities().can_write:
            raise NotImplementedError(f"{self.__class__.__name__} does not support writing records")
        self._update_record(object, record_id, data)

    def delete_record(self, object: str, record_id: str) -> None:
        if not self.get_capabilities().can_delete:
            raise NotImplementedError(f"{self.__class__.__name__} does not support deleting records")
        self._delete_record(object, record_id)

    @abstractmethod
    def _get_record(self, object: str, record_id: str) -> Record:
        pass

    @abstractmethod
    def _list_changed_since(self, object: str, since: datetime) -> List[Record]:
        pass

    @abstractmethod
    def _create_record(self, object: str, data: Dict[str, Any]) -> str:
        pass

    @abstractmethod
    def _update_record(self, object: str, record_id: str, data: Dict[str, Any]) -> None:
        pass

    def _delete_record(self, object: str, record_id: str) -> None:
        raise NotImplementedError()
