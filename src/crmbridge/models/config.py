"""
Configuration models for sync operations.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .conflict import ConflictStrategy
from .mapping import ObjectMapping, SyncDirection


class ServiceConnection(BaseModel):
    """Configuration for connecting to a remote system."""
    service_type: str = Field(..., description="Type of service (attio, salesforce, memory)")
    credentials: Dict[str, str] = Field(default_factory=dict, description="Service authentication credentials")
    base_url: Optional[str] = Field(None, description="Base URL for the service API")

    class Config:
        extra = "allow"  # Allow additional service-specific config

    def get_connector_config(self) -> Dict[str, Any]:
        """Keyword arguments for the connector constructor."""
        return {
            "credentials": self.credentials,
            "base_url": self.base_url,
            **{k: v for k, v in self.model_dump().items()
               if k not in ["service_type", "credentials", "base_url"]}
        }


class SyncSettings(BaseModel):
    """Process-wide sync settings, usually loaded from the environment."""
    direction: SyncDirection = Field(SyncDirection.BIDIRECTIONAL, description="Default pass direction")
    batch_size: int = Field(100, description="Records per chunk")
    conflict_strategy: ConflictStrategy = Field(ConflictStrategy.LAST_WRITE, description="How conflicts are adjudicated")
    lookback_hours: int = Field(24, description="How far back a brand new cursor starts")
    max_attempts: int = Field(3, description="Attempts per remote call for retryable failures")
    backoff_seconds: float = Field(1.0, description="Base for exponential backoff without a server hint")
    max_concurrent_objects: int = Field(4, description="Object pairs synced in parallel by run_all")

    storage_backend: str = Field("memory", description="memory or firestore")
    firestore_project: Optional[str] = Field(None, description="Google Cloud project for Firestore")

    source: ServiceConnection = Field(
        default_factory=lambda: ServiceConnection(service_type="attio", base_url="https://api.attio.com")
    )
    target: ServiceConnection = Field(
        default_factory=lambda: ServiceConnection(service_type="salesforce")
    )

    mappings: Dict[str, ObjectMapping] = Field(default_factory=dict, description="Overrides keyed by source object")
