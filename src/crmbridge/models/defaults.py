"""
Default object mappings between the CRM (source) and sales-ops (target) systems.

The table is built once at import time and exposed read-only. Callers that
need different mappings pass their own to the SyncEngine constructor.
"""

from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .mapping import (
    CountryCodeToNameTransform,
    CurrencyToNumberTransform,
    DirectTransform,
    EmployeeRangeToNumberTransform,
    ExtractFirstTransform,
    FieldMapping,
    FieldSyncDirection,
    MapValueTransform,
    ObjectMapping,
    ReferenceMapping,
)

ONE_WAY = FieldSyncDirection.SOURCE_TO_TARGET

DEAL_STATUS_TO_STAGE: Dict[str, str] = {
    "open": "Prospecting",
    "qualified": "Qualification",
    "in_progress": "Proposal/Price Quote",
    "negotiation": "Negotiation/Review",
    "won": "Closed Won",
    "lost": "Closed Lost",
}


def _company_mapping() -> ObjectMapping:
    return ObjectMapping(
        source_object="companies",
        target_object="Account",
        fields=[
            FieldMapping(source_field="name", target_field="Name", required=True),
            FieldMapping(source_field="domains", target_field="Website",
                         transform=ExtractFirstTransform(), direction=ONE_WAY),
            FieldMapping(source_field="description", target_field="Description"),
            FieldMapping(source_field="primary_location.locality", target_field="BillingCity"),
            FieldMapping(source_field="primary_location.region", target_field="BillingState"),
            FieldMapping(source_field="primary_location.country_code", target_field="BillingCountry",
                         transform=CountryCodeToNameTransform()),
            FieldMapping(source_field="primary_location.postcode", target_field="BillingPostalCode"),
            FieldMapping(source_field="categories[0]", target_field="Industry",
                         transform=MapValueTransform(), direction=ONE_WAY),
            # Ranges and currency objects collapse to numbers and cannot be rebuilt
            FieldMapping(source_field="employee_range", target_field="NumberOfEmployees",
                         transform=EmployeeRangeToNumberTransform(), direction=ONE_WAY),
            FieldMapping(source_field="estimated_arr_usd", target_field="AnnualRevenue",
                         transform=CurrencyToNumberTransform(), direction=ONE_WAY),
        ],
    )


def _person_mapping() -> ObjectMapping:
    return ObjectMapping(
        source_object="people",
        target_object="Contact",
        fields=[
            FieldMapping(source_field="name.first_name", target_field="FirstName"),
            FieldMapping(source_field="name.last_name", target_field="LastName", required=True),
            FieldMapping(source_field="email_addresses[0].email_address", target_field="Email"),
            FieldMapping(source_field="phone_numbers[0].phone_number", target_field="Phone"),
            FieldMapping(source_field="job_title", target_field="Title"),
            FieldMapping(source_field="primary_location.locality", target_field="MailingCity"),
            FieldMapping(source_field="primary_location.region", target_field="MailingState"),
            FieldMapping(source_field="primary_location.country_code", target_field="MailingCountry",
                         transform=CountryCodeToNameTransform()),
        ],
        references=[
            ReferenceMapping(source_field="company.target_record_id", target_field="AccountId",
                             source_object="companies", target_object="Account"),
        ],
    )


def _deal_mapping() -> ObjectMapping:
    return ObjectMapping(
        source_object="deals",
        target_object="Opportunity",
        fields=[
            FieldMapping(source_field="name", target_field="Name", required=True),
            FieldMapping(source_field="value", target_field="Amount",
                         transform=CurrencyToNumberTransform(), direction=ONE_WAY),
            FieldMapping(source_field="expected_close_date", target_field="CloseDate"),
            FieldMapping(source_field="status", target_field="StageName",
                         transform=MapValueTransform(mappings=DEAL_STATUS_TO_STAGE)),
            FieldMapping(source_field="probability", target_field="Probability"),
        ],
        references=[
            ReferenceMapping(source_field="associated_company.target_record_id", target_field="AccountId",
                             source_object="companies", target_object="Account"),
            ReferenceMapping(source_field="associated_people[0].target_record_id", target_field="ContactId",
                             source_object="people", target_object="Contact",
                             direction=ONE_WAY),
        ],
        status_value_mapping=DEAL_STATUS_TO_STAGE,
    )


def build_default_mappings() -> Mapping[str, ObjectMapping]:
    """Build the read-only default mapping table keyed by source object."""
    mappings = {m.source_object: m for m in (_company_mapping(), _person_mapping(), _deal_mapping())}
    return MappingProxyType(mappings)


DEFAULT_MAPPINGS: Mapping[str, ObjectMapping] = build_default_mappings()


def get_default_mapping(source_object: str, target_object: str) -> Optional[ObjectMapping]:
    """Return a private copy of a default mapping, or None if the pair is unknown."""
    mapping = DEFAULT_MAPPINGS.get(source_object)
    if mapping is None or mapping.target_object != target_object:
        return None
    return mapping.model_copy(deep=True)
