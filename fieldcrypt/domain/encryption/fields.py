"""Sensitive field definitions per entity category."""
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Tuple, Union

from fieldcrypt.domain.encryption.field_encryption import FieldEncryption
from fieldcrypt.domain.encryption.models import SensitiveDataField


class SensitiveFieldSet(str, Enum):
    USER_DATA = "USER_DATA"
    PROJECT_DATA = "PROJECT_DATA"
    VBA_DATA = "VBA_DATA"
    DOCUMENT_DATA = "DOCUMENT_DATA"


SENSITIVE_FIELDS: Mapping[SensitiveFieldSet, Tuple[str, ...]] = MappingProxyType({
    SensitiveFieldSet.USER_DATA: (
        "email",
        "phone_number",
        "ssn",
        "tax_id",
        "bank_account",
        "credit_card",
        "personal_notes",
    ),
    SensitiveFieldSet.PROJECT_DATA: (
        "contractor_contact",
        "owner_contact",
        "financial_details",
        "confidential_notes",
        "contractor_license",
        "insurance_details",
    ),
    SensitiveFieldSet.VBA_DATA: (
        "inspector_notes",
        "compliance_details",
        "violation_details",
        "financial_impact",
        "legal_notes",
    ),
    SensitiveFieldSet.DOCUMENT_DATA: (
        "confidential_content",
        "legal_text",
        "financial_data",
        "personal_information",
    ),
})


def fields_for(field_set: Union[SensitiveFieldSet, str]) -> Tuple[str, ...]:
    """Look up a field set by enum member or name (e.g. "USER_DATA")."""
    try:
        return SENSITIVE_FIELDS[SensitiveFieldSet(field_set)]
    except ValueError:
        raise KeyError(f"Unknown sensitive field set: {field_set}") from None


def encrypt_sensitive_data(
    encryption: FieldEncryption,
    data: Mapping[str, Any],
    field_set: Union[SensitiveFieldSet, str],
) -> Dict[str, Any]:
    return encryption.encrypt_fields(data, fields_for(field_set))


def decrypt_sensitive_data(
    encryption: FieldEncryption,
    data: Mapping[str, Any],
    field_set: Union[SensitiveFieldSet, str],
) -> Dict[str, Any]:
    return encryption.decrypt_fields(data, fields_for(field_set))


def validate_sensitive_data(data: Mapping[str, Any], descriptors: Iterable[SensitiveDataField]) -> None:
    """Check plaintext values against their descriptors before encryption.

    Raises:
        ValueError: listing every field that does not conform.
    """
    problems = [p for p in (d.check(data.get(d.field_name)) for d in descriptors) if p]
    if problems:
        raise ValueError("; ".join(problems))
