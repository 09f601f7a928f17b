"""Salesforce REST API client for sObject operations."""

import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from ...exceptions import ConfigurationError, SalesforceAPIError
from ..http import build_session, send

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "v59.0"


def soql_datetime(value: datetime) -> str:
    """Format a datetime as a SOQL literal."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class SalesforceClient:
    """Client for interacting with the Salesforce REST API."""

    def __init__(self, access_token: str, instance_url: str, api_version: str = DEFAULT_API_VERSION,
                 timeout: float = 30.0):
        """Initialize the Salesforce client.

        Args:
            access_token: OAuth access token
            instance_url: Org instance URL, e.g. https://example.my.salesforce.com
            api_version: REST API version
            timeout: Request timeout in seconds
        """
        self.access_token = access_token
        self.instance_url = instance_url.rstrip('/')
        self.api_version = api_version
        self.timeout = timeout
        self.session = build_session({'Authorization': f'Bearer {self.access_token}'})

    def api_url(self, path: str) -> str:
        return f"{self.instance_url}/services/data/{self.api_version}/{path}"

    def _make_request(self, method: str, url: str, params: Optional[Dict[str, Any]] = None,
                      data: Optional[Dict[str, Any]] = None, record: Optional[tuple] = None) -> Any:
        return send(self.session, "salesforce", method, url, SalesforceAPIError,
                    params=params, data=data, timeout=self.timeout, record=record)

    def test_connection(self) -> Dict[str, Any]:
        """List the org's API limits."""
        return self._make_request('GET', self.api_url("limits"))

    def get_record(self, sobject_type: str, record_id: str) -> Dict[str, Any]:
        return self._make_request('GET', self.api_url(f"sobjects/{sobject_type}/{record_id}"),
                                  record=(sobject_type, record_id))

    def query(self, soql: str, include_deleted: bool = False) -> List[Dict[str, Any]]:
        """Run a SOQL query and follow nextRecordsUrl to the end.

        Args:
            soql: Query text
            include_deleted: Use queryAll so deleted records are returned with IsDeleted set

        Returns:
            All result records
        """
        endpoint = "queryAll" if include_deleted else "query"
        data = self._make_request('GET', self.api_url(endpoint), params={"q": soql})
        records = list(data.get("records", []))
        while not data.get("done", True) and data.get("nextRecordsUrl"):
            data = self._make_request('GET', f"{self.instance_url}{data['nextRecordsUrl']}")
            records.extend(data.get("records", []))
        return records

    def get_changes_since(self, sobject_type: str, since: datetime, fields: Sequence[str]) -> List[Dict[str, Any]]:
        """Records modified at or after ``since``, deleted ones included, oldest first."""
        select = ", ".join(dict.fromkeys(["Id", "LastModifiedDate", "IsDeleted", *fields]))
        soql = (
            f"SELECT {select} FROM {sobject_type} "
            f"WHERE LastModifiedDate >= {soql_datetime(since)} "
            f"ORDER BY LastModifiedDate ASC, Id ASC"
        )
        logger.debug(f"SOQL: {soql}")
        return self.query(soql, include_deleted=True)

    def create_record(self, sobject_type: str, data: Dict[str, Any]) -> str:
        result = self._make_request('POST', self.api_url(f"sobjects/{sobject_type}"), data=data)
        if not result or not result.get("success", False):
            raise SalesforceAPIError(f"Create {sobject_type} failed: {result}")
        return result["id"]

    def update_record(self, sobject_type: str, record_id: str, data: Dict[str, Any]) -> None:
        self._make_request('PATCH', self.api_url(f"sobjects/{sobject_type}/{record_id}"), data=data,
                           record=(sobject_type, record_id))

    def delete_record(self, sobject_type: str, record_id: str) -> None:
        self._make_request('DELETE', self.api_url(f"sobjects/{sobject_type}/{record_id}"),
                           record=(sobject_type, record_id))


def create_salesforce_client_from_env() -> SalesforceClient:
    """Create a Salesforce client using environment variables.

    Returns:
        Configured SalesforceClient instance

    Raises:
        ConfigurationError: If required environment variables are missing
    """
    access_token = os.getenv('SALESFORCE_ACCESS_TOKEN')
    instance_url = os.getenv('SALESFORCE_INSTANCE_URL')
    if not access_token or not instance_url:
        raise ConfigurationError("SALESFORCE_ACCESS_TOKEN and SALESFORCE_INSTANCE_URL environment variables are required")

    api_version = os.getenv('SALESFORCE_API_VERSION', DEFAULT_API_VERSION)

    return SalesforceClient(access_token=access_token, instance_url=instance_url, api_version=api_version)
