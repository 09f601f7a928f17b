"""Attio API client for record operations."""

import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ...exceptions import AttioAPIError, ConfigurationError
from ..http import build_session, send

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.attio.com"
QUERY_PAGE_SIZE = 500


class AttioClient:
    """Client for interacting with the Attio v2 REST API."""

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, timeout: float = 30.0):
        """Initialize the Attio client.

        Args:
            api_key: Attio API key
            base_url: Base URL for the Attio API
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = build_session({'Authorization': f'Bearer {self.api_key}'})

    def _make_request(self, method: str, endpoint: str, params: Optional[Dict[str, Any]] = None,
                      data: Optional[Dict[str, Any]] = None, record: Optional[tuple] = None) -> Any:
        return send(self.session, "attio", method, f"{self.base_url}{endpoint}", AttioAPIError,
                    params=params, data=data, timeout=self.timeout, record=record)

    def test_connection(self) -> Dict[str, Any]:
        """Identify the token's workspace."""
        return self._make_request('GET', '/v2/self')

    def get_record(self, object: str, record_id: str) -> Dict[str, Any]:
        data = self._make_request('GET', f'/v2/objects/{object}/records/{record_id}', record=(object, record_id))
        return data["data"]

    def query_records(self, object: str, body: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Run a records query, following offset pagination to the end.

        Args:
            object: Object slug, e.g. 'companies'
            body: Query body with filter and sorts

        Returns:
            All matching raw records
        """
        records: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page_body = {**body, "limit": QUERY_PAGE_SIZE, "offset": offset}
            data = self._make_request('POST', f'/v2/objects/{object}/records/query', data=page_body)
            page = data.get("data", [])
            records.extend(page)
            if len(page) < QUERY_PAGE_SIZE:
                break
            offset += QUERY_PAGE_SIZE
        logger.debug(f"Attio query on {object} returned {len(records)} records")
        return records

    def get_changes_since(self, object: str, since: datetime) -> List[Dict[str, Any]]:
        """Records updated at or after ``since``, oldest first."""
        body = {
            "filter": {"updated_at": {"$gte": since.astimezone(timezone.utc).isoformat()}},
            "sorts": [{"attribute": "updated_at", "direction": "asc"}],
        }
        return self.query_records(object, body)

    def create_record(self, object: str, values: Dict[str, Any]) -> Dict[str, Any]:
        data = self._make_request('POST', f'/v2/objects/{object}/records', data={"data": {"values": values}})
        return data["data"]

    def update_record(self, object: str, record_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        data = self._make_request('PATCH', f'/v2/objects/{object}/records/{record_id}',
                                  data={"data": {"values": values}}, record=(object, record_id))
        return data["data"]

    def delete_record(self, object: str, record_id: str) -> None:
        self._make_request('DELETE', f'/v2/objects/{object}/records/{record_id}', record=(object, record_id))


def create_attio_client_from_env() -> AttioClient:
    """Create an Attio client using environment variables.

    Returns:
        Configured AttioClient instance

    Raises:
        ConfigurationError: If required environment variables are missing
    """
    api_key = os.getenv('ATTIO_API_KEY')
    if not api_key:
        raise ConfigurationError("ATTIO_API_KEY environment variable is required")

    base_url = os.getenv('ATTIO_BASE_URL', DEFAULT_BASE_URL)

    return AttioClient(api_key=api_key, base_url=base_url)
