"""Tests for environment configuration and startup validation."""

import json

import pytest

from crmbridge.core.config import get_required_env, load_mapping_overrides, load_settings
from crmbridge.core.validation import validate_mappings, validate_object_mapping, validate_settings
from crmbridge.exceptions import ConfigurationError
from crmbridge.models.config import ServiceConnection, SyncSettings
from crmbridge.models.conflict import ConflictStrategy
from crmbridge.models.defaults import DEFAULT_MAPPINGS
from crmbridge.models.mapping import (
    FieldMapping,
    FieldSyncDirection,
    ObjectMapping,
    SyncDirection,
)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _make_settings(**overrides) -> SyncSettings:
    defaults = {
        "source": ServiceConnection(service_type="attio", credentials={"api_key": "key"},
                                    base_url="https://api.attio.com"),
        "target": ServiceConnection(service_type="salesforce", credentials={"access_token": "token"},
                                    base_url="https://example.my.salesforce.com"),
    }
    defaults.update(overrides)
    return SyncSettings(**defaults)


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("ATTIO_API_KEY", "attio-key")
    monkeypatch.setenv("SALESFORCE_ACCESS_TOKEN", "sf-token")
    monkeypatch.setenv("SALESFORCE_INSTANCE_URL", "https://example.my.salesforce.com")
    for name in ("DIRECTION", "BATCH_SIZE", "CONFLICT_STRATEGY", "STORAGE", "MAPPINGS_FILE",
                 "SOURCE_TYPE", "TARGET_TYPE", "MAX_ATTEMPTS", "LOOKBACK_HOURS"):
        monkeypatch.delenv(f"CRMBRIDGE_{name}", raising=False)
    return monkeypatch


class TestLoadSettings:
    """Settings built from CRMBRIDGE_* and service variables."""

    def test_defaults(self, env):
        settings = load_settings()
        assert settings.direction == SyncDirection.BIDIRECTIONAL
        assert settings.batch_size == 100
        assert settings.conflict_strategy == ConflictStrategy.LAST_WRITE
        assert settings.source.credentials == {"api_key": "attio-key"}
        assert settings.target.base_url == "https://example.my.salesforce.com"

    def test_overrides(self, env):
        env.setenv("CRMBRIDGE_DIRECTION", "source_to_target")
        env.setenv("CRMBRIDGE_BATCH_SIZE", "250")
        env.setenv("CRMBRIDGE_CONFLICT_STRATEGY", "manual")

        settings = load_settings()

        assert settings.direction == SyncDirection.SOURCE_TO_TARGET
        assert settings.batch_size == 250
        assert settings.conflict_strategy == ConflictStrategy.MANUAL

    def test_non_numeric_batch_size(self, env):
        env.setenv("CRMBRIDGE_BATCH_SIZE", "lots")
        with pytest.raises(ConfigurationError):
            load_settings()

    def test_unknown_strategy(self, env):
        env.setenv("CRMBRIDGE_CONFLICT_STRATEGY", "coin_flip")
        with pytest.raises(ConfigurationError):
            load_settings()

    def test_missing_api_key(self, env):
        env.delenv("ATTIO_API_KEY")
        with pytest.raises(ConfigurationError, match="api_key"):
            load_settings()

    def test_memory_services_need_no_credentials(self, env):
        env.delenv("ATTIO_API_KEY")
        env.setenv("CRMBRIDGE_SOURCE_TYPE", "memory")
        env.setenv("CRMBRIDGE_TARGET_TYPE", "memory")
        assert load_settings().source.service_type == "memory"

    def test_mapping_file(self, env, tmp_path):
        mapping = DEFAULT_MAPPINGS["companies"].model_copy(update={"enabled": False})
        path = tmp_path / "mappings.json"
        path.write_text(json.dumps({"companies": mapping.model_dump(mode="json")}))
        env.setenv("CRMBRIDGE_MAPPINGS_FILE", str(path))

        settings = load_settings()

        assert settings.mappings["companies"].enabled is False

    def test_required_env(self, env):
        assert get_required_env("ATTIO_API_KEY") == "attio-key"
        env.delenv("ATTIO_API_KEY")
        with pytest.raises(ConfigurationError):
            get_required_env("ATTIO_API_KEY")


class TestMappingOverrides:
    def test_unreadable_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_mapping_overrides(str(tmp_path / "missing.json"))

    def test_invalid_mapping(self, tmp_path):
        path = tmp_path / "mappings.json"
        path.write_text(json.dumps({"companies": {"source_object": "companies"}}))
        with pytest.raises(ConfigurationError):
            load_mapping_overrides(str(path))


class TestValidateSettings:
    """Startup checks that run before anything connects."""

    def test_valid(self):
        validate_settings(_make_settings())

    @pytest.mark.parametrize("overrides", [
        {"batch_size": 0},
        {"batch_size": 10001},
        {"max_attempts": 0},
        {"backoff_seconds": -1},
        {"max_concurrent_objects": 0},
        {"lookback_hours": -1},
        {"storage_backend": "redis"},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigurationError):
            validate_settings(_make_settings(**overrides))

    def test_plain_http_rejected(self):
        settings = _make_settings(source=ServiceConnection(
            service_type="attio", credentials={"api_key": "key"}, base_url="http://api.attio.com"
        ))
        with pytest.raises(ConfigurationError, match="https"):
            validate_settings(settings)

    def test_unknown_service_type(self):
        with pytest.raises(ConfigurationError):
            validate_settings(_make_settings(target=ServiceConnection(service_type="hubspot")))


class TestValidateMappings:
    """Each pass direction writes every destination path at most once."""

    def test_defaults_are_valid(self):
        validate_mappings(DEFAULT_MAPPINGS.values())

    def test_duplicate_target_field(self):
        mapping = ObjectMapping(source_object="companies", target_object="Account", fields=[
            FieldMapping(source_field="name", target_field="Name"),
            FieldMapping(source_field="legal_name", target_field="Name"),
        ])
        with pytest.raises(ConfigurationError, match="Name"):
            validate_object_mapping(mapping)

    def test_duplicate_target_allowed_when_one_is_reverse_only(self):
        mapping = ObjectMapping(source_object="companies", target_object="Account", fields=[
            FieldMapping(source_field="name", target_field="Name"),
            FieldMapping(source_field="legal_name", target_field="Name",
                         direction=FieldSyncDirection.TARGET_TO_SOURCE),
        ])
        validate_object_mapping(mapping)

    def test_duplicate_source_field_on_reverse(self):
        mapping = ObjectMapping(source_object="companies", target_object="Account", fields=[
            FieldMapping(source_field="name", target_field="Name"),
            FieldMapping(source_field="name", target_field="Legal_Name__c"),
        ])
        with pytest.raises(ConfigurationError, match="source field"):
            validate_object_mapping(mapping)

    def test_empty_path(self):
        mapping = ObjectMapping(source_object="companies", target_object="Account", fields=[
            FieldMapping(source_field="", target_field="Name"),
        ])
        with pytest.raises(ConfigurationError):
            validate_object_mapping(mapping)

    def test_duplicate_pair(self):
        mapping = DEFAULT_MAPPINGS["companies"]
        with pytest.raises(ConfigurationError, match="Duplicate"):
            validate_mappings([mapping, mapping])
