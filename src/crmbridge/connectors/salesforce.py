"""
Salesforce connector for reading and writing sObjects.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from ..exceptions import ConfigurationError, SalesforceAPIError
from ..integrations.http import parse_timestamp
from ..integrations.salesforce.client import DEFAULT_API_VERSION, SalesforceClient
from ..models.defaults import DEFAULT_MAPPINGS
from ..models.mapping import ObjectMapping
from ..models.sync import Record
from .base import BaseConnector, ConnectorCapability

logger = logging.getLogger(__name__)

SYSTEM_FIELDS = ("Id", "LastModifiedDate", "IsDeleted", "attributes")


def select_fields(mappings: Mapping[str, ObjectMapping]) -> Dict[str, List[str]]:
    """Fields to SELECT per sObject, derived from the object mappings."""
    fields: Dict[str, List[str]] = {}
    for mapping in mappings.values():
        names = [f.target_field for f in mapping.fields] + [r.target_field for r in mapping.references]
        roots = [name.split(".", 1)[0].split("[", 1)[0] for name in names]
        fields[mapping.target_object] = list(dict.fromkeys(roots))
    return fields


def flatten_record(sobject_type: str, raw: Dict[str, Any]) -> Record:
    """Convert an sObject JSON body into a Record."""
    data = {k: v for k, v in raw.items() if k not in SYSTEM_FIELDS}
    return Record(
        id=raw["Id"],
        object=sobject_type,
        data=data,
        modified_at=parse_timestamp(raw.get("LastModifiedDate")),
        deleted=bool(raw.get("IsDeleted", False)),
    )


class SalesforceConnector(BaseConnector):
    """
    Salesforce REST connector.

    Incremental reads use queryAll so deletions come back as tombstones.
    Values are flat scalars; there are no per-field timestamps.
    """

    service_name = "salesforce"

    def __init__(self, credentials: Optional[Dict[str, Any]] = None, base_url: Optional[str] = None,
                 api_version: str = DEFAULT_API_VERSION, fields: Optional[Dict[str, List[str]]] = None,
                 client: Optional[SalesforceClient] = None, **kwargs):
        super().__init__(credentials=credentials, base_url=base_url, **kwargs)
        self.fields = fields or select_fields(DEFAULT_MAPPINGS)
        if client is None:
            self._validate_credentials()
            client = SalesforceClient(
                access_token=self.credentials["access_token"],
                instance_url=self.base_url,
                api_version=api_version,
            )
        self.client = client

    def _validate_credentials(self) -> None:
        """Validate that an access token and instance URL are provided."""
        if not self.credentials.get("access_token"):
            raise ConfigurationError("Salesforce connector requires 'access_token' in credentials")
        if not self.base_url:
            raise ConfigurationError("Salesforce connector requires the instance URL as base_url")

    def get_capabilities(self) -> ConnectorCapability:
        return ConnectorCapability(can_read=True, can_write=True, can_delete=True)

    def test_connection(self) -> bool:
        try:
            self.client.test_connection()
            return True
        except SalesforceAPIError as e:
            logger.error(f"Salesforce connection test failed: {e}")
            return False

    def _get_record(self, object: str, record_id: str) -> Record:
        return flatten_record(object, self.client.get_record(object, record_id))

    def _list_changed_since(self, object: str, since: datetime) -> List[Record]:
        raw_records = self.client.get_changes_since(object, since, self.fields.get(object, []))
        logger.info(f"Retrieved {len(raw_records)} changed {object} records from Salesforce")
        return [flatten_record(object, raw) for raw in raw_records]

    def _create_record(self, object: str, data: Dict[str, Any]) -> str:
        return self.client.create_record(object, data)

    def _update_record(self, object: str, record_id: str, data: Dict[str, Any]) -> None:
        self.client.update_record(object, record_id, data)

    def _delete_record(self, object: str, record_id: str) -> None:
        self.client.delete_record(object, record_id)
