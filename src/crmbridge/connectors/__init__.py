"""
Connector framework for the CRM bridge.

This package contains the connectors for the two record stores plus an
in-memory connector for local runs and tests.
"""

from .base import BaseConnector, ConnectorCapability
from .attio import AttioConnector
from .salesforce import SalesforceConnector
from .memory import InMemoryConnector
from ..exceptions import ConfigurationError

__all__ = [
    "BaseConnector",
    "ConnectorCapability",
    "AttioConnector",
    "SalesforceConnector",
    "InMemoryConnector",
    "CONNECTOR_REGISTRY",
    "get_connector",
]

# Connector registry for dynamic loading
CONNECTOR_REGISTRY = {
    "attio": AttioConnector,
    "salesforce": SalesforceConnector,
    "memory": InMemoryConnector,
}


def get_connector(service_type: str, **config) -> BaseConnector:
    """Create a connector instance by service type."""
    if service_type not in CONNECTOR_REGISTRY:
        raise ConfigurationError(f"Unknown service type: {service_type}")
    return CONNECTOR_REGISTRY[service_type](**config)
