"""
Field transformation pipeline for mapping records between the two systems.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import (
    ConfigurationError,
    EmptySequenceError,
    ExpectedCurrencyShapeError,
    FieldNotFoundError,
    MissingRequiredFieldError,
    UnsupportedTransformError,
)
from ..models.mapping import (
    CountryCodeToNameTransform,
    CurrencyToNumberTransform,
    CustomTransform,
    DirectTransform,
    EmployeeRangeToNumberTransform,
    ExtractFirstTransform,
    ExtractNestedTransform,
    FieldMapping,
    MapValueTransform,
    ObjectMapping,
    SyncDirection,
)

logger = logging.getLogger(__name__)

CURRENCY_KEYS = ("value", "currency_value", "amount")

COUNTRY_CODES: Dict[str, str] = {
    "US": "United States",
    "GB": "United Kingdom",
    "CA": "Canada",
    "AU": "Australia",
    "DE": "Germany",
    "FR": "France",
    "JP": "Japan",
    "CN": "China",
    "IN": "India",
    "BR": "Brazil",
    "MX": "Mexico",
    "ES": "Spain",
    "IT": "Italy",
    "NL": "Netherlands",
    "SE": "Sweden",
    "NO": "Norway",
    "DK": "Denmark",
    "FI": "Finland",
    "SG": "Singapore",
    "HK": "Hong Kong",
    "KR": "South Korea",
    "NZ": "New Zealand",
    "IE": "Ireland",
    "CH": "Switzerland",
    "AT": "Austria",
    "BE": "Belgium",
    "PL": "Poland",
    "PT": "Portugal",
    "IL": "Israel",
    "AE": "United Arab Emirates",
}

_SEGMENT_RE = re.compile(r"^(?P<name>[^\[\]]*)(?:\[(?P<index>\d+)\])?$")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_path(path: str) -> List[Tuple[str, Optional[int]]]:
    """
    Split a dot path into (name, index) segments.

    ``"emails[0].email"`` becomes ``[("emails", 0), ("email", None)]``.
    """
    if not path:
        return []

    segments = []
    for part in path.split("."):
        match = _SEGMENT_RE.match(part)
        if not match:
            raise ConfigurationError(f"Invalid path segment '{part}' in '{path}'")
        index = match.group("index")
        segments.append((match.group("name"), int(index) if index is not None else None))
    return segments


def _step(current: Any, name: str, index: Optional[int]) -> Tuple[bool, Any]:
    if name:
        if not isinstance(current, dict) or name not in current:
            return False, None
        current = current[name]
    if index is not None:
        if not isinstance(current, (list, tuple)) or index >= len(current):
            return False, None
        current = current[index]
    return True, current


def get_path(data: Any, path: str) -> Any:
    """Resolve a dot path, returning None when any segment is missing."""
    current = data
    for name, index in parse_path(path):
        found, current = _step(current, name, index)
        if not found:
            return None
    return current


def set_path(data: Dict[str, Any], path: str, value: Any) -> None:
    """Write ``value`` at a dot path, creating intermediate dicts and lists."""
    segments = parse_path(path)
    if not segments:
        raise ConfigurationError("Cannot write to an empty path")

    current: Any = data
    for position, (name, index) in enumerate(segments):
        last = position == len(segments) - 1
        if index is None:
            if last:
                current[name] = value
            else:
                child = current.get(name)
                if not isinstance(child, dict):
                    child = current[name] = {}
                current = child
            continue

        items = current.get(name)
        if not isinstance(items, list):
            items = current[name] = []
        while len(items) <= index:
            items.append(None if last else {})
        if last:
            items[index] = value
        else:
            if not isinstance(items[index], dict):
                items[index] = {}
            current = items[index]


class TransformPipeline:
    """
    Applies field transforms and converts whole records between schemas.
    """

    def __init__(self, country_codes: Optional[Dict[str, str]] = None):
        self.country_codes = {k.upper(): v for k, v in (country_codes or COUNTRY_CODES).items()}
        self._country_names = {v.lower(): k for k, v in self.country_codes.items()}

    # Single-value transforms

    def transform(self, value: Any, kind: Any) -> Any:
        """
        Apply a transformation to a value.

        Args:
            value: The value to transform
            kind: One of the TransformKind models

        Returns:
            Transformed value

        Raises:
            TransformationError: If the value has the wrong shape for the transform
        """
        if isinstance(kind, DirectTransform):
            return value
        elif isinstance(kind, ExtractFirstTransform):
            return self.extract_first(value)
        elif isinstance(kind, ExtractNestedTransform):
            return self.extract_nested(value, kind.path)
        elif isinstance(kind, MapValueTransform):
            return self.map_value(value, kind.mappings)
        elif isinstance(kind, CurrencyToNumberTransform):
            return self.currency_to_number(value)
        elif isinstance(kind, CountryCodeToNameTransform):
            return self.country_code_to_name(value)
        elif isinstance(kind, EmployeeRangeToNumberTransform):
            return self.employee_range_to_number(value)
        elif isinstance(kind, CustomTransform):
            raise UnsupportedTransformError(kind.function_name)
        raise UnsupportedTransformError(type(kind).__name__)

    def reverse_transform(self, value: Any, kind: Any) -> Any:
        """Best-effort inverse used when writing target values back to the source."""
        if isinstance(kind, MapValueTransform):
            inverse: Dict[str, str] = {}
            for key, mapped in kind.mappings.items():
                inverse.setdefault(mapped, key)
            return self.map_value(value, inverse)
        elif isinstance(kind, CountryCodeToNameTransform):
            if isinstance(value, str):
                return self._country_names.get(value.lower(), value)
            return value
        elif isinstance(kind, ExtractFirstTransform):
            if isinstance(value, list):
                return value
            return [value]
        elif isinstance(kind, CustomTransform):
            raise UnsupportedTransformError(kind.function_name)
        return value

    @staticmethod
    def extract_first(value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            if not value:
                raise EmptySequenceError()
            return value[0]
        return value

    @staticmethod
    def extract_nested(value: Any, path: str) -> Any:
        current = value
        for name, index in parse_path(path):
            found, current = _step(current, name, index)
            if not found:
                segment = f"{name}[{index}]" if index is not None else name
                raise FieldNotFoundError(segment, path)
        return current

    @staticmethod
    def map_value(value: Any, mappings: Dict[str, str]) -> Any:
        if isinstance(value, str):
            key = value
        elif _is_number(value):
            key = str(value)
        else:
            return value
        return mappings.get(key, value)

    @staticmethod
    def currency_to_number(value: Any) -> Any:
        if _is_number(value):
            return value
        if isinstance(value, dict):
            for key in CURRENCY_KEYS:
                if _is_number(value.get(key)):
                    return value[key]
        raise ExpectedCurrencyShapeError()

    def country_code_to_name(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        return self.country_codes.get(value.upper(), value)

    @staticmethod
    def employee_range_to_number(value: Any) -> int:
        """
        Convert an employee range to a single number.

        "11-50" gives the midpoint 30, "500+" gives 500 and a bare number
        string gives itself. Anything unparsable gives 0 so headcount
        fields are always present.
        """
        if _is_number(value):
            return int(value)
        if not isinstance(value, str):
            return 0

        text = value.strip()
        try:
            if text.endswith("+"):
                return int(text[:-1].strip())
            if "-" in text:
                parts = text.split("-")
                if len(parts) != 2:
                    return 0
                low, high = int(parts[0].strip()), int(parts[1].strip())
                return (low + high) // 2
            return int(text)
        except ValueError:
            logger.debug(f"Unparsable employee range '{value}', defaulting to 0")
            return 0

    # Whole-record conversion

    def source_to_target(self, data: Dict[str, Any], mapping: ObjectMapping) -> Dict[str, Any]:
        """Convert a source record's data to the target schema."""
        return self.convert(data, mapping, SyncDirection.SOURCE_TO_TARGET)

    def target_to_source(self, data: Dict[str, Any], mapping: ObjectMapping) -> Dict[str, Any]:
        """Convert a target record's data to the source schema."""
        return self.convert(data, mapping, SyncDirection.TARGET_TO_SOURCE)

    def convert(self, data: Dict[str, Any], mapping: ObjectMapping, direction: SyncDirection) -> Dict[str, Any]:
        """
        Convert record data for a one-way pass.

        Args:
            data: Record data in the origin schema
            mapping: Object mapping for the pair
            direction: SOURCE_TO_TARGET or TARGET_TO_SOURCE

        Returns:
            Record data in the destination schema, fields in declaration order

        Raises:
            TransformationError: If a transform fails or a required field is missing
        """
        if direction == SyncDirection.BIDIRECTIONAL:
            raise ValueError("convert() needs a one-way direction")
        if not mapping.enabled:
            raise ConfigurationError(f"Mapping {mapping.key} is disabled")

        forward = direction == SyncDirection.SOURCE_TO_TARGET
        result: Dict[str, Any] = {}

        for field in mapping.fields_for(direction):
            read_path, write_path = self._paths(field, forward)
            value = get_path(data, read_path)

            if value is None:
                if field.required:
                    raise MissingRequiredFieldError(read_path)
                logger.debug(f"Skipping {read_path}: not present on record")
                continue

            if forward:
                transformed = self.transform(value, field.transform)
            else:
                transformed = self.reverse_transform(value, field.transform)

            if transformed is None:
                if field.required:
                    raise MissingRequiredFieldError(read_path)
                continue

            set_path(result, write_path, transformed)

        return result

    @staticmethod
    def _paths(field: FieldMapping, forward: bool) -> Tuple[str, str]:
        if forward:
            return field.source_field, field.target_field
        return field.target_field, field.source_field
