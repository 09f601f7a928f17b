"""Configuration management for the CRM bridge."""

import json
import os
import logging
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from ..models.config import ServiceConnection, SyncSettings
from ..models.mapping import ObjectMapping
from .validation import validate_settings

ENV_PREFIX = "CRMBRIDGE_"


def setup_logging(level: str = "INFO") -> None:
    """Set up logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def load_environment(env_file: Optional[str] = None) -> None:
    """Load environment variables from .env file.

    Args:
        env_file: Path to .env file. If None, looks for .env in current directory.
    """
    env_path = Path(env_file) if env_file else Path('.env')

    if env_path.exists():
        load_dotenv(env_path)
        logging.info(f"Loaded environment from {env_path}")
    else:
        logging.warning(f"No .env file found at {env_path}")


def get_required_env(key: str) -> str:
    """Get a required environment variable.

    Raises:
        ConfigurationError: If the environment variable is not set
    """
    value = os.getenv(key)
    if not value:
        raise ConfigurationError(f"Required environment variable {key} is not set")
    return value


def get_optional_env(key: str, default: str = "") -> str:
    """Get an optional environment variable."""
    return os.getenv(key, default)


def _setting(name: str, default: str) -> str:
    return get_optional_env(f"{ENV_PREFIX}{name}", default)


def load_mapping_overrides(path: str) -> Dict[str, ObjectMapping]:
    """Load object mapping overrides from a JSON file keyed by source object."""
    try:
        with open(path) as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot read mapping file {path}: {e}") from e

    try:
        return {key: ObjectMapping.model_validate(value) for key, value in raw.items()}
    except ValidationError as e:
        raise ConfigurationError(f"Invalid mapping file {path}: {e}") from e


def load_settings(env_file: Optional[str] = None) -> SyncSettings:
    """Build and validate SyncSettings from the environment.

    Args:
        env_file: Optional .env file to load first

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If a value is missing or invalid
    """
    if env_file:
        load_environment(env_file)

    source = ServiceConnection(
        service_type=_setting("SOURCE_TYPE", "attio"),
        credentials={"api_key": get_optional_env("ATTIO_API_KEY")},
        base_url=get_optional_env("ATTIO_BASE_URL", "https://api.attio.com"),
    )
    target = ServiceConnection(
        service_type=_setting("TARGET_TYPE", "salesforce"),
        credentials={"access_token": get_optional_env("SALESFORCE_ACCESS_TOKEN")},
        base_url=get_optional_env("SALESFORCE_INSTANCE_URL") or None,
        api_version=get_optional_env("SALESFORCE_API_VERSION", "v59.0"),
    )

    mappings_file = _setting("MAPPINGS_FILE", "")
    try:
        settings = SyncSettings(
            direction=_setting("DIRECTION", "bidirectional"),
            batch_size=int(_setting("BATCH_SIZE", "100")),
            conflict_strategy=_setting("CONFLICT_STRATEGY", "last_write"),
            lookback_hours=int(_setting("LOOKBACK_HOURS", "24")),
            max_attempts=int(_setting("MAX_ATTEMPTS", "3")),
            backoff_seconds=float(_setting("BACKOFF_SECONDS", "1.0")),
            max_concurrent_objects=int(_setting("MAX_CONCURRENT_OBJECTS", "4")),
            storage_backend=_setting("STORAGE", "memory"),
            firestore_project=get_optional_env("GOOGLE_CLOUD_PROJECT") or None,
            source=source,
            target=target,
            mappings=load_mapping_overrides(mappings_file) if mappings_file else {},
        )
    except (ValueError, ValidationError) as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e

    validate_settings(settings)
    return settings
