"""Tests for the Attio and Salesforce connectors and their HTTP clients.

HTTP is mocked at the requests.Session level; no network access.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from crmbridge.connectors import (
    AttioConnector,
    InMemoryConnector,
    SalesforceConnector,
    get_connector,
)
from crmbridge.connectors import attio as attio_module
from crmbridge.connectors import salesforce as salesforce_module
from crmbridge.exceptions import (
    AttioAPIError,
    ConfigurationError,
    RateLimitedError,
    RecordNotFoundError,
    SalesforceAPIError,
    TransientConnectorError,
    ValidationRejectedError,
)
from crmbridge.integrations.attio.client import AttioClient
from crmbridge.integrations.http import parse_retry_after, parse_timestamp, send
from crmbridge.integrations.salesforce.client import SalesforceClient, soql_datetime
from crmbridge.models.defaults import DEFAULT_MAPPINGS


# ── Helpers ──────────────────────────────────────────────────────────────────


def _make_response(status=200, body=None, headers=None, text=""):
    response = MagicMock()
    response.status_code = status
    response.headers = headers or {}
    response.content = b"" if body is None else b"{}"
    response.json.return_value = body
    response.text = text
    return response


def _make_session(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    return session


def _make_attio_record(**overrides):
    defaults = {
        "id": {"workspace_id": "ws_1", "object_id": "obj_1", "record_id": "att_1"},
        "created_at": "2024-05-01T09:00:00.000000000Z",
        "values": {
            "name": [{"value": "Acme", "active_from": "2024-05-01T10:00:00.000Z", "active_until": None}],
            "domains": [
                {"domain": "acme.com", "root_domain": "acme.com", "active_from": "2024-05-01T09:00:00Z",
                 "active_until": None},
                {"domain": "old-acme.com", "root_domain": "old-acme.com", "active_from": "2023-01-01T00:00:00Z",
                 "active_until": "2024-01-01T00:00:00Z"},
            ],
            "employee_range": [{"option": {"id": {}, "title": "11-50"}, "active_from": "2024-05-01T09:00:00Z",
                                "active_until": None}],
            "primary_location": [{"line_1": None, "locality": "Austin", "region": "TX", "postcode": "78701",
                                  "country_code": "US", "active_from": "2024-05-02T08:30:00Z",
                                  "active_until": None}],
            "description": [],
        },
    }
    defaults.update(overrides)
    return defaults


# ── HTTP plumbing ────────────────────────────────────────────────────────────


class TestSend:
    """Mapping HTTP failures onto connector errors."""

    def _send(self, session, **kwargs):
        return send(session, "attio", "GET", "https://api.attio.com/v2/self", AttioAPIError, **kwargs)

    def test_ok_returns_json(self):
        assert self._send(_make_session(_make_response(body={"data": 1}))) == {"data": 1}

    def test_empty_body_returns_none(self):
        assert self._send(_make_session(_make_response(status=204))) is None

    def test_rate_limited(self):
        session = _make_session(_make_response(status=429, body={}, headers={"Retry-After": "7"}))
        with pytest.raises(RateLimitedError) as exc_info:
            self._send(session)
        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.retryable

    def test_server_error_is_transient(self):
        with pytest.raises(TransientConnectorError):
            self._send(_make_session(_make_response(status=503, body={})))

    def test_timeout_is_transient(self):
        session = MagicMock()
        session.request.side_effect = requests.exceptions.Timeout("read timed out")
        with pytest.raises(TransientConnectorError):
            self._send(session)

    def test_not_found_for_record(self):
        with pytest.raises(RecordNotFoundError):
            self._send(_make_session(_make_response(status=404, body={})), record=("companies", "att_1"))

    def test_not_found_without_record(self):
        with pytest.raises(AttioAPIError):
            self._send(_make_session(_make_response(status=404, body={})))

    def test_validation_rejected(self):
        with pytest.raises(ValidationRejectedError):
            self._send(_make_session(_make_response(status=422, body={"message": "bad value"})))

    def test_forbidden_uses_error_class(self):
        with pytest.raises(AttioAPIError) as exc_info:
            self._send(_make_session(_make_response(status=403, body={"message": "no scope"})))
        assert not exc_info.value.retryable

    def test_other_request_errors(self):
        session = MagicMock()
        session.request.side_effect = requests.exceptions.InvalidURL("bad url")
        with pytest.raises(AttioAPIError):
            self._send(session)


class TestParsing:
    @pytest.mark.parametrize("value, expected", [
        (None, 1.0),
        ("3", 3.0),
        ("Wed, 21 Oct 2015 07:28:00 GMT", 1.0),
        ("-5", 0.0),
    ])
    def test_parse_retry_after(self, value, expected):
        assert parse_retry_after(value) == expected

    def test_parse_timestamp_variants(self):
        expected = datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)
        assert parse_timestamp("2024-05-01T10:00:00.123456789Z") == expected
        assert parse_timestamp("2024-05-01T10:00:00.123456+0000") == expected
        assert parse_timestamp("2024-05-01T12:00:00.123456+02:00") == expected
        assert parse_timestamp("") is None

    def test_soql_datetime(self):
        value = datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)
        assert soql_datetime(value) == "2024-05-01T10:00:00.123Z"


# ── Attio ────────────────────────────────────────────────────────────────────


class TestAttioFlatten:
    """Attio value items become plain values."""

    def test_flatten_record(self):
        record = attio_module.flatten_record("companies", _make_attio_record())
        assert record.id == "att_1"
        assert record.data["name"] == "Acme"
        assert record.data["domains"] == ["acme.com"]
        assert record.data["employee_range"] == "11-50"
        assert record.data["primary_location"]["country_code"] == "US"
        assert "description" not in record.data

    def test_modified_at_is_latest_active_value(self):
        record = attio_module.flatten_record("companies", _make_attio_record())
        assert record.modified_at == datetime(2024, 5, 2, 8, 30, tzinfo=timezone.utc)
        assert record.field_timestamp("name") == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_reference_values(self):
        raw = _make_attio_record(values={
            "company": [{"target_object": "companies", "target_record_id": "att_1", "active_until": None}],
        })
        record = attio_module.flatten_record("people", raw)
        assert record.data["company"] == {"target_object": "companies", "target_record_id": "att_1"}

    def test_to_attio_values(self):
        values = attio_module.to_attio_values({
            "name": "Acme",
            "domains": "acme.com",
            "company": {"target_record_id": "att_1"},
        })
        assert values == {
            "name": "Acme",
            "domains": ["acme.com"],
            "company": [{"target_object": "companies", "target_record_id": "att_1"}],
        }


class TestAttioConnector:
    """Connector calls through AttioClient with a mocked session."""

    def _make_connector(self, *responses):
        client = AttioClient(api_key="test_key")
        client.session = _make_session(*responses)
        return AttioConnector(credentials={"api_key": "test_key"}, client=client), client.session

    def test_requires_api_key(self):
        with pytest.raises(ConfigurationError):
            AttioConnector(credentials={})

    def test_list_changed_since_queries_updated_at(self):
        connector, session = self._make_connector(_make_response(body={"data": [_make_attio_record()]}))
        since = datetime(2024, 5, 1, tzinfo=timezone.utc)

        records = connector.list_changed_since("companies", since)

        assert [r.id for r in records] == ["att_1"]
        method, url = session.request.call_args.args
        assert method == "POST"
        assert url == "https://api.attio.com/v2/objects/companies/records/query"
        body = session.request.call_args.kwargs["json"]
        assert body["filter"] == {"updated_at": {"$gte": "2024-05-01T00:00:00+00:00"}}
        assert body["offset"] == 0

    def test_create_record_returns_id(self):
        connector, session = self._make_connector(_make_response(body={"data": _make_attio_record()}))
        assert connector.create_record("companies", {"name": "Acme"}) == "att_1"
        assert session.request.call_args.kwargs["json"] == {"data": {"values": {"name": "Acme"}}}

    def test_get_missing_record(self):
        connector, _ = self._make_connector(_make_response(status=404, body={}))
        with pytest.raises(RecordNotFoundError):
            connector.get_record("companies", "att_404")

    def test_connection_failure_returns_false(self):
        connector, _ = self._make_connector(_make_response(status=401, body={"message": "bad key"}))
        assert connector.test_connection() is False


# ── Salesforce ───────────────────────────────────────────────────────────────


class TestSalesforceConnector:
    """Connector calls through SalesforceClient with a mocked session."""

    def _make_connector(self, *responses):
        client = SalesforceClient(access_token="token", instance_url="https://example.my.salesforce.com")
        client.session = _make_session(*responses)
        connector = SalesforceConnector(
            credentials={"access_token": "token"},
            base_url="https://example.my.salesforce.com",
            client=client,
        )
        return connector, client.session

    def test_requires_instance_url(self):
        with pytest.raises(ConfigurationError):
            SalesforceConnector(credentials={"access_token": "token"})

    def test_select_fields_from_mappings(self):
        fields = salesforce_module.select_fields(DEFAULT_MAPPINGS)
        assert "NumberOfEmployees" in fields["Account"]
        assert "AccountId" in fields["Contact"]

    def test_flatten_tombstone(self):
        record = salesforce_module.flatten_record("Account", {
            "attributes": {"type": "Account"},
            "Id": "001A",
            "Name": "Acme",
            "LastModifiedDate": "2024-05-01T10:00:00.000+0000",
            "IsDeleted": True,
        })
        assert record.deleted
        assert record.data == {"Name": "Acme"}
        assert record.modified_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_list_changed_since_follows_pages(self):
        page_one = {
            "done": False,
            "nextRecordsUrl": "/services/data/v59.0/query/01g-2000",
            "records": [{"Id": "001A", "Name": "Acme", "LastModifiedDate": "2024-05-01T10:00:00.000+0000"}],
        }
        page_two = {
            "done": True,
            "records": [{"Id": "001B", "Name": "Beta", "LastModifiedDate": "2024-05-01T11:00:00.000+0000"}],
        }
        connector, session = self._make_connector(_make_response(body=page_one), _make_response(body=page_two))

        records = connector.list_changed_since("Account", datetime(2024, 5, 1, tzinfo=timezone.utc))

        assert [r.id for r in records] == ["001A", "001B"]
        first_call, second_call = session.request.call_args_list
        assert first_call.args[1].endswith("/services/data/v59.0/queryAll")
        soql = first_call.kwargs["params"]["q"]
        assert soql.startswith("SELECT Id, LastModifiedDate, IsDeleted, Name")
        assert "WHERE LastModifiedDate >= 2024-05-01T00:00:00.000Z" in soql
        assert second_call.args[1] == "https://example.my.salesforce.com/services/data/v59.0/query/01g-2000"

    def test_create_record(self):
        connector, _ = self._make_connector(_make_response(body={"id": "001A", "success": True, "errors": []}))
        assert connector.create_record("Account", {"Name": "Acme"}) == "001A"

    def test_create_record_failure(self):
        connector, _ = self._make_connector(_make_response(body={"success": False, "errors": ["dup"]}))
        with pytest.raises(SalesforceAPIError):
            connector.create_record("Account", {"Name": "Acme"})

    def test_update_uses_patch(self):
        connector, session = self._make_connector(_make_response(status=204))
        connector.update_record("Account", "001A", {"Name": "Acme Inc"})
        method, url = session.request.call_args.args
        assert method == "PATCH"
        assert url.endswith("/sobjects/Account/001A")


# ── Registry ─────────────────────────────────────────────────────────────────


class TestRegistry:
    def test_get_memory_connector(self):
        assert isinstance(get_connector("memory", credentials={}, base_url=None), InMemoryConnector)

    def test_unknown_service(self):
        with pytest.raises(ConfigurationError):
            get_connector("hubspot")
