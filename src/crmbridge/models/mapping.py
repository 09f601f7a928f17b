"""
Declarative mapping models between source and target objects.
"""

from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class SyncDirection(str, Enum):
    """Direction of a sync pass."""
    SOURCE_TO_TARGET = "source_to_target"
    TARGET_TO_SOURCE = "target_to_source"
    BIDIRECTIONAL = "bidirectional"

    def passes(self) -> List["SyncDirection"]:
        """Expand into the one-way passes to run, in order."""
        if self is SyncDirection.BIDIRECTIONAL:
            return [SyncDirection.SOURCE_TO_TARGET, SyncDirection.TARGET_TO_SOURCE]
        return [self]


class FieldSyncDirection(str, Enum):
    """Sync direction for a specific field."""
    BIDIRECTIONAL = "bidirectional"
    SOURCE_TO_TARGET = "source_to_target"
    TARGET_TO_SOURCE = "target_to_source"
    NONE = "none"

    def allows(self, direction: SyncDirection) -> bool:
        """Whether a field with this setting is applied during a one-way pass."""
        if self is FieldSyncDirection.NONE:
            return False
        if self is FieldSyncDirection.BIDIRECTIONAL:
            return True
        return self.value == direction.value


# Transform kinds. Each kind is its own model so the set is closed and
# every consumer can branch on isinstance.

class DirectTransform(BaseModel):
    kind: Literal["direct"] = "direct"


class ExtractFirstTransform(BaseModel):
    kind: Literal["extract_first"] = "extract_first"


class ExtractNestedTransform(BaseModel):
    kind: Literal["extract_nested"] = "extract_nested"
    path: str = ""


class MapValueTransform(BaseModel):
    kind: Literal["map_value"] = "map_value"
    mappings: Dict[str, str] = Field(default_factory=dict)


class CurrencyToNumberTransform(BaseModel):
    kind: Literal["currency_to_number"] = "currency_to_number"


class CountryCodeToNameTransform(BaseModel):
    kind: Literal["country_code_to_name"] = "country_code_to_name"


class EmployeeRangeToNumberTransform(BaseModel):
    kind: Literal["employee_range_to_number"] = "employee_range_to_number"


class CustomTransform(BaseModel):
    """Reserved escape hatch. Never executed."""
    kind: Literal["custom"] = "custom"
    function_name: str


TransformKind = Annotated[
    Union[
        DirectTransform,
        ExtractFirstTransform,
        ExtractNestedTransform,
        MapValueTransform,
        CurrencyToNumberTransform,
        CountryCodeToNameTransform,
        EmployeeRangeToNumberTransform,
        CustomTransform,
    ],
    Field(discriminator="kind"),
]


class FieldMapping(BaseModel):
    """Maps a field on the source object to a field on the target object."""
    source_field: str = Field(..., description="Source attribute path, e.g. 'primary_location.locality'")
    target_field: str = Field(..., description="Target field path, e.g. 'BillingCity'")
    transform: TransformKind = Field(default_factory=DirectTransform, description="Transform applied source -> target")
    required: bool = Field(False, description="Fail the record when this field resolves to nothing")
    direction: FieldSyncDirection = Field(FieldSyncDirection.BIDIRECTIONAL, description="Which passes apply this field")


class ReferenceMapping(BaseModel):
    """A relationship field holding a foreign record id that must be translated."""
    source_field: str = Field(..., description="Path to the referenced source record id")
    target_field: str = Field(..., description="Path to the referenced target record id")
    source_object: str = Field(..., description="Source object the id belongs to")
    target_object: str = Field(..., description="Target object the id belongs to")
    required: bool = False
    direction: FieldSyncDirection = FieldSyncDirection.BIDIRECTIONAL


class ObjectMapping(BaseModel):
    """Mapping between a source object and a target object."""
    source_object: str = Field(..., description="Source object slug, e.g. 'companies'")
    target_object: str = Field(..., description="Target object API name, e.g. 'Account'")
    enabled: bool = True
    fields: List[FieldMapping] = Field(default_factory=list)
    references: List[ReferenceMapping] = Field(default_factory=list)
    status_value_mapping: Dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.source_object}:{self.target_object}"

    def fields_for(self, direction: SyncDirection) -> List[FieldMapping]:
        """Field mappings applied by a one-way pass, in declaration order."""
        return [f for f in self.fields if f.direction.allows(direction)]

    def references_for(self, direction: SyncDirection) -> List[ReferenceMapping]:
        return [r for r in self.references if r.direction.allows(direction)]

    def get_field(self, source_field: str) -> Optional[FieldMapping]:
        for field in self.fields:
            if field.source_field == source_field:
                return field
        return None


class IdMapping(BaseModel):
    """One-to-one link between a source record and a target record."""
    model_config = {"frozen": True}

    source_object: str
    source_id: str
    target_object: str
    target_id: str
