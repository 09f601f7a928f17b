"""Tests for the field transformation pipeline.

Covers:
- Dot path reading and writing
- Each transform kind, including the lossy ones
- Whole-record conversion in both directions using the default mappings
"""

import pytest

from crmbridge.engine.transforms import TransformPipeline, get_path, parse_path, set_path
from crmbridge.exceptions import (
    ConfigurationError,
    EmptySequenceError,
    ExpectedCurrencyShapeError,
    FieldNotFoundError,
    MissingRequiredFieldError,
    UnsupportedTransformError,
)
from crmbridge.models.defaults import DEFAULT_MAPPINGS, DEAL_STATUS_TO_STAGE
from crmbridge.models.mapping import (
    CountryCodeToNameTransform,
    CustomTransform,
    DirectTransform,
    ExtractNestedTransform,
    FieldMapping,
    MapValueTransform,
    ObjectMapping,
    SyncDirection,
)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _make_mapping(**overrides) -> ObjectMapping:
    defaults = {
        "source_object": "companies",
        "target_object": "Account",
        "fields": [FieldMapping(source_field="name", target_field="Name", required=True)],
    }
    defaults.update(overrides)
    return ObjectMapping(**defaults)


@pytest.fixture
def pipeline() -> TransformPipeline:
    return TransformPipeline()


# ── Paths ────────────────────────────────────────────────────────────────────


class TestPaths:
    """Dot paths with optional list indexes."""

    def test_parse_path_with_index(self):
        assert parse_path("emails[0].email") == [("emails", 0), ("email", None)]

    def test_parse_empty_path(self):
        assert parse_path("") == []

    def test_parse_invalid_segment(self):
        with pytest.raises(ConfigurationError):
            parse_path("emails[x]")

    def test_get_path_missing_returns_none(self):
        data = {"primary_location": {"locality": "Berlin"}}
        assert get_path(data, "primary_location.locality") == "Berlin"
        assert get_path(data, "primary_location.region") is None
        assert get_path(data, "phone_numbers[0].phone_number") is None

    def test_get_path_out_of_range_index(self):
        assert get_path({"domains": []}, "domains[0]") is None

    def test_set_path_creates_intermediates(self):
        data = {}
        set_path(data, "primary_location.locality", "Paris")
        set_path(data, "email_addresses[0].email_address", "a@b.co")
        assert data == {
            "primary_location": {"locality": "Paris"},
            "email_addresses": [{"email_address": "a@b.co"}],
        }

    def test_set_empty_path_rejected(self):
        with pytest.raises(ConfigurationError):
            set_path({}, "", 1)


# ── Single-value transforms ──────────────────────────────────────────────────


class TestEmployeeRange:
    """Employee ranges collapse to a single headcount."""

    @pytest.mark.parametrize("value, expected", [
        ("11-50", 30),
        ("1-10", 5),
        ("500+", 500),
        ("250", 250),
        (42, 42),
        ("garbage", 0),
        ("1-2-3", 0),
        (None, 0),
    ])
    def test_employee_range(self, pipeline, value, expected):
        assert pipeline.employee_range_to_number(value) == expected


class TestValueTransforms:
    """The remaining transform kinds."""

    def test_direct_passes_through(self, pipeline):
        assert pipeline.transform({"a": 1}, DirectTransform()) == {"a": 1}

    def test_extract_first(self, pipeline):
        assert pipeline.extract_first(["acme.com", "acme.io"]) == "acme.com"
        assert pipeline.extract_first("acme.com") == "acme.com"

    def test_extract_first_empty_list(self, pipeline):
        with pytest.raises(EmptySequenceError):
            pipeline.extract_first([])

    def test_extract_nested(self, pipeline):
        value = {"owner": {"emails": ["a@b.co"]}}
        assert pipeline.transform(value, ExtractNestedTransform(path="owner.emails[0]")) == "a@b.co"

    def test_extract_nested_empty_path_returns_value(self, pipeline):
        assert pipeline.transform({"x": 1}, ExtractNestedTransform(path="")) == {"x": 1}

    def test_extract_nested_missing_segment(self, pipeline):
        with pytest.raises(FieldNotFoundError) as exc_info:
            pipeline.extract_nested({"owner": {}}, "owner.email")
        assert exc_info.value.segment == "email"

    def test_map_value_hit_and_miss(self, pipeline):
        kind = MapValueTransform(mappings=DEAL_STATUS_TO_STAGE)
        assert pipeline.transform("won", kind) == "Closed Won"
        assert pipeline.transform("abandoned", kind) == "abandoned"

    def test_map_value_numbers_use_string_keys(self, pipeline):
        assert pipeline.map_value(3, {"3": "three"}) == "three"

    def test_currency_to_number(self, pipeline):
        assert pipeline.currency_to_number(1200.5) == 1200.5
        assert pipeline.currency_to_number({"currency_value": 99, "currency_code": "USD"}) == 99
        assert pipeline.currency_to_number({"amount": 7}) == 7

    def test_currency_wrong_shape(self, pipeline):
        with pytest.raises(ExpectedCurrencyShapeError):
            pipeline.currency_to_number("lots")

    def test_country_code_to_name(self, pipeline):
        assert pipeline.country_code_to_name("us") == "United States"
        assert pipeline.country_code_to_name("ZZ") == "ZZ"
        assert pipeline.country_code_to_name(None) is None

    def test_custom_transform_is_never_executed(self, pipeline):
        with pytest.raises(UnsupportedTransformError):
            pipeline.transform("x", CustomTransform(function_name="slugify"))

    def test_reverse_country_name(self, pipeline):
        assert pipeline.reverse_transform("Germany", CountryCodeToNameTransform()) == "DE"
        assert pipeline.reverse_transform("Atlantis", CountryCodeToNameTransform()) == "Atlantis"

    def test_reverse_map_value(self, pipeline):
        kind = MapValueTransform(mappings=DEAL_STATUS_TO_STAGE)
        assert pipeline.reverse_transform("Closed Lost", kind) == "lost"


# ── Record conversion ────────────────────────────────────────────────────────


class TestConvert:
    """Whole-record conversion with the default mappings."""

    def test_company_to_account(self, pipeline):
        data = {"name": "Acme", "domains": ["acme.com"], "employee_range": "11-50"}
        payload = pipeline.source_to_target(data, DEFAULT_MAPPINGS["companies"])
        assert payload == {"Name": "Acme", "Website": "acme.com", "NumberOfEmployees": 30}

    def test_company_location_and_revenue(self, pipeline):
        data = {
            "name": "Acme",
            "primary_location": {"locality": "Austin", "region": "TX", "country_code": "US", "postcode": "78701"},
            "estimated_arr_usd": {"currency_value": 5000000, "currency_code": "USD"},
        }
        payload = pipeline.source_to_target(data, DEFAULT_MAPPINGS["companies"])
        assert payload["BillingCity"] == "Austin"
        assert payload["BillingCountry"] == "United States"
        assert payload["AnnualRevenue"] == 5000000

    def test_person_to_contact(self, pipeline):
        data = {
            "name": {"first_name": "Ada", "last_name": "Lovelace", "full_name": "Ada Lovelace"},
            "email_addresses": [{"email_address": "ada@example.com"}],
            "job_title": "Analyst",
        }
        payload = pipeline.source_to_target(data, DEFAULT_MAPPINGS["people"])
        assert payload == {"FirstName": "Ada", "LastName": "Lovelace", "Email": "ada@example.com", "Title": "Analyst"}

    def test_account_to_company_skips_one_way_fields(self, pipeline):
        data = {"Name": "Acme", "Website": "acme.com", "NumberOfEmployees": 30, "BillingCountry": "France"}
        payload = pipeline.target_to_source(data, DEFAULT_MAPPINGS["companies"])
        assert payload == {"name": "Acme", "primary_location": {"country_code": "FR"}}

    def test_missing_required_field(self, pipeline):
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            pipeline.source_to_target({"domains": ["acme.com"]}, DEFAULT_MAPPINGS["companies"])
        assert exc_info.value.field == "name"

    def test_empty_domains_fails_record(self, pipeline):
        with pytest.raises(EmptySequenceError):
            pipeline.source_to_target({"name": "Acme", "domains": []}, DEFAULT_MAPPINGS["companies"])

    def test_fields_follow_declaration_order(self, pipeline):
        mapping = _make_mapping(fields=[
            FieldMapping(source_field="b", target_field="B"),
            FieldMapping(source_field="a", target_field="A"),
        ])
        assert list(pipeline.source_to_target({"a": 1, "b": 2}, mapping)) == ["B", "A"]

    def test_bidirectional_direction_rejected(self, pipeline):
        with pytest.raises(ValueError):
            pipeline.convert({"name": "Acme"}, _make_mapping(), SyncDirection.BIDIRECTIONAL)

    def test_disabled_mapping_rejected(self, pipeline):
        with pytest.raises(ConfigurationError):
            pipeline.source_to_target({"name": "Acme"}, _make_mapping(enabled=False))
