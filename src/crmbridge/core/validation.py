"""
Startup validation for settings and object mappings.
"""

import logging
from typing import Iterable, Set

from ..exceptions import ConfigurationError
from ..models.config import ServiceConnection, SyncSettings
from ..models.mapping import FieldSyncDirection, ObjectMapping, SyncDirection

logger = logging.getLogger(__name__)

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 10000
STORAGE_BACKENDS = ("memory", "firestore")

# Credential keys each connector type needs before it can be built
REQUIRED_CREDENTIALS = {
    "attio": ("api_key",),
    "salesforce": ("access_token",),
    "memory": (),
}


def _validate_connection(role: str, connection: ServiceConnection) -> None:
    service_type = connection.service_type
    if service_type not in REQUIRED_CREDENTIALS:
        raise ConfigurationError(f"Unknown {role} service type: {service_type}")

    for key in REQUIRED_CREDENTIALS[service_type]:
        if not connection.credentials.get(key):
            raise ConfigurationError(f"{role.capitalize()} {service_type} credential '{key}' is empty")

    if service_type != "memory":
        if not connection.base_url:
            raise ConfigurationError(f"{role.capitalize()} {service_type} base URL is required")
        if not connection.base_url.startswith("https://"):
            raise ConfigurationError(f"{role.capitalize()} base URL must use https: {connection.base_url}")


def validate_settings(settings: SyncSettings) -> None:
    """
    Validate process settings before anything connects.

    Raises:
        ConfigurationError: On the first invalid value
    """
    if not MIN_BATCH_SIZE <= settings.batch_size <= MAX_BATCH_SIZE:
        raise ConfigurationError(
            f"Batch size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}, got {settings.batch_size}"
        )
    if settings.max_attempts < 1:
        raise ConfigurationError("max_attempts must be at least 1")
    if settings.backoff_seconds < 0:
        raise ConfigurationError("backoff_seconds cannot be negative")
    if settings.max_concurrent_objects < 1:
        raise ConfigurationError("max_concurrent_objects must be at least 1")
    if settings.lookback_hours < 0:
        raise ConfigurationError("lookback_hours cannot be negative")

    if settings.storage_backend not in STORAGE_BACKENDS:
        raise ConfigurationError(f"Unknown storage backend: {settings.storage_backend}")

    _validate_connection("source", settings.source)
    _validate_connection("target", settings.target)

    validate_mappings(settings.mappings.values())
    logger.debug("Settings validated")


def _check_unique(paths: Iterable[str], what: str, mapping: ObjectMapping) -> None:
    seen: Set[str] = set()
    for path in paths:
        if path in seen:
            raise ConfigurationError(f"Mapping {mapping.key} writes {what} '{path}' more than once")
        seen.add(path)


def validate_object_mapping(mapping: ObjectMapping) -> None:
    """
    Check a single object mapping.

    Each pass direction must write every destination path at most once.
    Custom transforms are accepted here and fail per record at runtime.

    Raises:
        ConfigurationError: If the mapping is ambiguous
    """
    if not mapping.source_object or not mapping.target_object:
        raise ConfigurationError("Object mappings need both a source and a target object")

    forward = SyncDirection.SOURCE_TO_TARGET
    reverse = SyncDirection.TARGET_TO_SOURCE

    _check_unique(
        [f.target_field for f in mapping.fields_for(forward)]
        + [r.target_field for r in mapping.references_for(forward)],
        "target field",
        mapping,
    )
    _check_unique(
        [f.source_field for f in mapping.fields_for(reverse)]
        + [r.source_field for r in mapping.references_for(reverse)],
        "source field",
        mapping,
    )

    for field in mapping.fields:
        if not field.source_field or not field.target_field:
            raise ConfigurationError(f"Mapping {mapping.key} has a field with an empty path")
        if field.direction == FieldSyncDirection.NONE:
            logger.debug(f"Field {field.source_field} on {mapping.key} is never synced")


def validate_mappings(mappings: Iterable[ObjectMapping]) -> None:
    """Validate every mapping and reject duplicate object pairs."""
    seen: Set[str] = set()
    for mapping in mappings:
        validate_object_mapping(mapping)
        if mapping.key in seen:
            raise ConfigurationError(f"Duplicate mapping for {mapping.key}")
        seen.add(mapping.key)
