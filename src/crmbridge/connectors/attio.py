"""
Attio connector for reading and writing CRM records.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..exceptions import AttioAPIError, ConfigurationError
from ..integrations.attio.client import DEFAULT_BASE_URL, AttioClient
from ..integrations.http import parse_timestamp
from ..models.sync import Record
from .base import BaseConnector, ConnectorCapability

logger = logging.getLogger(__name__)

# Attributes that hold several values even when only one is set
MULTI_VALUE_ATTRIBUTES = frozenset({
    "domains",
    "email_addresses",
    "phone_numbers",
    "categories",
    "associated_people",
    "team",
})

# Record-reference attributes and the object their ids belong to
REFERENCE_OBJECTS = {
    "company": "companies",
    "associated_company": "companies",
    "associated_people": "people",
}

LOCATION_KEYS = ("line_1", "line_2", "locality", "region", "postcode", "country_code")
NAME_KEYS = ("first_name", "last_name", "full_name")


def flatten_value(item: Dict[str, Any]) -> Any:
    """Reduce one Attio value item to a plain value."""
    if "target_record_id" in item:
        return {"target_object": item.get("target_object"), "target_record_id": item["target_record_id"]}
    if "domain" in item:
        return item["domain"]
    if "email_address" in item:
        return {"email_address": item["email_address"]}
    if "phone_number" in item or "original_phone_number" in item:
        return {"phone_number": item.get("phone_number") or item.get("original_phone_number")}
    if "currency_value" in item:
        return {"currency_value": item["currency_value"], "currency_code": item.get("currency_code")}
    if "option" in item:
        option = item["option"]
        return option.get("title") if isinstance(option, dict) else option
    if "status" in item:
        status = item["status"]
        return status.get("title") if isinstance(status, dict) else status
    if any(key in item for key in NAME_KEYS):
        return {key: item.get(key) for key in NAME_KEYS}
    if any(key in item for key in LOCATION_KEYS):
        return {key: item.get(key) for key in LOCATION_KEYS}
    return item.get("value")


def flatten_record(object: str, raw: Dict[str, Any]) -> Record:
    """Convert a raw Attio record into a Record with plain values."""
    data: Dict[str, Any] = {}
    field_modified_at: Dict[str, datetime] = {}

    for attribute, items in (raw.get("values") or {}).items():
        active = [i for i in items if i.get("active_until") is None]
        values = [flatten_value(i) for i in active]
        if attribute in MULTI_VALUE_ATTRIBUTES:
            data[attribute] = values
        elif values:
            data[attribute] = values[0]

        stamps = [parse_timestamp(i.get("active_from")) for i in active if i.get("active_from")]
        if stamps:
            field_modified_at[attribute] = max(stamps)

    record_id = raw.get("id", {})
    modified_at = (
        parse_timestamp(raw.get("updated_at"))
        or max(field_modified_at.values(), default=None)
        or parse_timestamp(raw.get("created_at"))
    )
    return Record(
        id=record_id.get("record_id") if isinstance(record_id, dict) else str(record_id),
        object=object,
        data=data,
        modified_at=modified_at,
        field_modified_at=field_modified_at,
    )


def _with_target_object(attribute: str, value: Any) -> Any:
    if isinstance(value, dict) and "target_record_id" in value and not value.get("target_object"):
        return {"target_object": REFERENCE_OBJECTS.get(attribute), "target_record_id": value["target_record_id"]}
    return value


def to_attio_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a flat payload for the Attio write API."""
    values: Dict[str, Any] = {}
    for attribute, value in data.items():
        if isinstance(value, list):
            value = [_with_target_object(attribute, v) for v in value]
        else:
            value = _with_target_object(attribute, value)
            if attribute in MULTI_VALUE_ATTRIBUTES or (isinstance(value, dict) and "target_record_id" in value):
                value = [value]
        values[attribute] = value
    return values


class AttioConnector(BaseConnector):
    """
    Attio API connector for companies, people and deals.

    Multi-value attributes become lists, everything else its first active
    value. Attio does not report deletions, so no tombstones are produced.
    """

    service_name = "attio"

    def __init__(self, credentials: Optional[Dict[str, Any]] = None, base_url: Optional[str] = None,
                 client: Optional[AttioClient] = None, **kwargs):
        super().__init__(credentials=credentials, base_url=base_url or DEFAULT_BASE_URL, **kwargs)
        if client is None:
            self._validate_credentials()
            client = AttioClient(api_key=self.credentials["api_key"], base_url=self.base_url)
        self.client = client

    def _validate_credentials(self) -> None:
        """Validate that API key is provided."""
        if not self.credentials.get("api_key"):
            raise ConfigurationError("Attio connector requires 'api_key' in credentials")

    def get_capabilities(self) -> ConnectorCapability:
        return ConnectorCapability(
            can_read=True,
            can_write=True,
            can_delete=True,
            supports_multi_value=True,
            supports_currency_objects=True,
            supports_picklists=True,
        )

    def test_connection(self) -> bool:
        try:
            self.client.test_connection()
            return True
        except AttioAPIError as e:
            logger.error(f"Attio connection test failed: {e}")
            return False

    def _get_record(self, object: str, record_id: str) -> Record:
        return flatten_record(object, self.client.get_record(object, record_id))

    def _list_changed_since(self, object: str, since: datetime) -> List[Record]:
        raw_records = self.client.get_changes_since(object, since)
        logger.info(f"Retrieved {len(raw_records)} changed {object} from Attio")
        return [flatten_record(object, raw) for raw in raw_records]

    def _create_record(self, object: str, data: Dict[str, Any]) -> str:
        created = self.client.create_record(object, to_attio_values(data))
        return flatten_record(object, created).id

    def _update_record(self, object: str, record_id: str, data: Dict[str, Any]) -> None:
        self.client.update_record(object, record_id, to_attio_values(data))

    def _delete_record(self, object: str, record_id: str) -> None:
        self.client.delete_record(object, record_id)
