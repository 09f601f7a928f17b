"""
Custom exceptions for the CRM bridge.
"""

from typing import Optional


class CrmBridgeError(Exception):
    """Base exception for all application-specific errors."""
    pass


class ConfigurationError(CrmBridgeError):
    """Error related to mapping, settings or environment configuration."""
    pass


class ExecutionError(CrmBridgeError):
    """Error during sync pass orchestration."""
    pass


class PassAlreadyRunningError(ExecutionError):
    """Another pass for the same object pair is already in flight."""

    def __init__(self, source_object: str, target_object: str):
        self.source_object = source_object
        self.target_object = target_object
        super().__init__(f"A sync pass for {source_object} <-> {target_object} is already running")


class StorageError(CrmBridgeError):
    """Persistence failure. Aborts the current pass."""
    pass


# Transform errors

class TransformationError(CrmBridgeError):
    """Error during data transformation."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Transform error for field '{field}': {message}")


class EmptySequenceError(TransformationError):
    """ExtractFirst was given an empty sequence."""

    def __init__(self, field: str = "array"):
        super().__init__(field, "Sequence is empty")


class FieldNotFoundError(TransformationError):
    """A path segment was missing while walking a nested structure."""

    def __init__(self, segment: str, path: Optional[str] = None):
        self.segment = segment
        super().__init__(path or segment, f"Field '{segment}' not found")


class ExpectedCurrencyShapeError(TransformationError):
    """CurrencyToNumber was given something that is neither a number nor a currency object."""

    def __init__(self, field: str = "currency"):
        super().__init__(field, "Expected a number or an object with a numeric value/currency_value/amount")


class MissingRequiredFieldError(TransformationError):
    """A required mapped field resolved to nothing."""

    def __init__(self, field: str):
        super().__init__(field, "Required field resolved to nothing")


class UnsupportedTransformError(TransformationError):
    """Custom transforms are reserved and not executable."""

    def __init__(self, function_name: str):
        super().__init__(function_name, "Custom transforms are not implemented")


# Reference errors

class ReferenceResolutionError(CrmBridgeError):
    """Error related to cross-system id mappings."""
    pass


class ReferenceNotFoundError(ReferenceResolutionError):
    """No id mapping exists for the requested record."""

    def __init__(self, object_type: str, record_id: str):
        self.object_type = object_type
        self.record_id = record_id
        super().__init__(f"ID mapping not found for {object_type}/{record_id}")


class DuplicateMappingError(ReferenceResolutionError):
    """Adding the mapping would break the one-to-one id bijection."""
    pass


# Conflict errors

class ConflictError(CrmBridgeError):
    """Base class for conflict handling errors."""
    pass


class ConflictRequiresManualResolution(ConflictError):
    """The configured strategy defers the conflict to an operator."""

    def __init__(self, object_type: str, record_id: str):
        self.object_type = object_type
        self.record_id = record_id
        super().__init__(f"Conflict detected for {object_type}/{record_id}: manual resolution required")


class ConflictNotFoundError(ConflictError):
    """No conflict record exists with the given id."""
    pass


class ConflictAlreadyResolvedError(ConflictError):
    """Conflict records leave the pending state exactly once."""
    pass


# Connector errors

class ConnectorError(CrmBridgeError):
    """Error related to a remote system connector."""

    retryable = False


class RateLimitedError(ConnectorError):
    """The remote system asked us to back off."""

    retryable = True

    def __init__(self, service: str, retry_after: float):
        self.service = service
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for {service}, retry after {retry_after}s")


class TransientConnectorError(ConnectorError):
    """Timeout, connection reset or 5xx that may succeed on retry."""

    retryable = True


class RecordNotFoundError(ConnectorError):
    """The remote record does not exist."""

    def __init__(self, object_type: str, record_id: str):
        self.object_type = object_type
        self.record_id = record_id
        super().__init__(f"{object_type} record not found: {record_id}")


class ValidationRejectedError(ConnectorError):
    """The remote system rejected the payload."""
    pass


class AttioAPIError(ConnectorError):
    """Exception raised for Attio API errors."""
    pass


class SalesforceAPIError(ConnectorError):
    """Exception raised for Salesforce API errors."""
    pass
