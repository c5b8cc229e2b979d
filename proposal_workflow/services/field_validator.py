"""Field Validator - synchronous per-field rules for client info."""

import re
from typing import Callable, Dict, Mapping, Optional, Tuple

NAME_PATTERN = re.compile(r"^[a-zA-Z\s.'-]+$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[0-9\s+()-]+$")
MIN_PHONE_DIGITS = 7
MIN_VALIDITY_DAYS = 1
MAX_VALIDITY_DAYS = 365

REQUIRED_FIELDS: Tuple[str, ...] = (
    "clientName",
    "clientEmail",
    "clientPhone",
    "clientCompany",
    "clientAddress",
    "proposalDate",
)

FIELD_LABELS: Dict[str, str] = {
    "clientName": "Client name",
    "clientEmail": "Email",
    "clientPhone": "Phone number",
    "clientCompany": "Company name",
    "clientAddress": "Address",
    "proposalDate": "Proposal date",
}


def _required(field: str, value: str) -> Optional[str]:
    if not value:
        return f"{FIELD_LABELS.get(field, field)} is required."
    return None


def _validate_name(value: str) -> Optional[str]:
    if len(value) < 2:
        return "Client name must be at least 2 characters."
    if not NAME_PATTERN.match(value):
        return "Client name can only contain letters, spaces, periods, apostrophes and hyphens."
    return None


def _validate_email(value: str) -> Optional[str]:
    if not EMAIL_PATTERN.match(value):
        return "Please enter a valid email address."
    return None


def _validate_phone(value: str) -> Optional[str]:
    if not PHONE_PATTERN.match(value):
        return "Phone number can only contain digits, spaces and + ( ) -."
    digits = sum(1 for c in value if c.isdigit())
    if digits < MIN_PHONE_DIGITS:
        return f"Phone number must have at least {MIN_PHONE_DIGITS} digits."
    return None


def _validate_company(value: str) -> Optional[str]:
    if len(value) < 2:
        return "Company name must be at least 2 characters."
    return None


def _validate_address(value: str) -> Optional[str]:
    if len(value) < 5:
        return "Address must be at least 5 characters."
    return None


def _validate_validity_days(value: str) -> Optional[str]:
    if not value.isdigit() or not MIN_VALIDITY_DAYS <= int(value) <= MAX_VALIDITY_DAYS:
        return f"Validity must be between {MIN_VALIDITY_DAYS} and {MAX_VALIDITY_DAYS} days."
    return None


_RULES: Dict[str, Callable[[str], Optional[str]]] = {
    "clientName": _validate_name,
    "clientEmail": _validate_email,
    "clientPhone": _validate_phone,
    "clientCompany": _validate_company,
    "clientAddress": _validate_address,
    "validityDays": _validate_validity_days,
}


def validate_field(field: str, value: Optional[str]) -> Optional[str]:
    """
    Validate a single field.

    Fields without rules always pass. Required fields fail when empty
    or whitespace-only; surrounding whitespace is ignored by the rules.

    Returns:
        Error message, or None when the value is valid
    """
    text = str(value).strip() if value is not None else ""
    if field in REQUIRED_FIELDS:
        error = _required(field, text)
        if error:
            return error
    elif not text:
        return None
    rule = _RULES.get(field)
    return rule(text) if rule else None


def merge_field_error(
    errors: Mapping[str, str],
    field: str,
    value: Optional[str]
) -> Dict[str, str]:
    """Re-validate one changed field and merge the result into a copy of the error map."""
    merged = dict(errors)
    error = validate_field(field, value)
    if error:
        merged[field] = error
    else:
        merged.pop(field, None)
    return merged


def validate_all(form_data: Mapping[str, Optional[str]]) -> Dict[str, str]:
    """Validate every required field plus any optional field that has a rule."""
    errors: Dict[str, str] = {}
    optional = [f for f in form_data if f in _RULES and f not in REQUIRED_FIELDS]
    for field in list(REQUIRED_FIELDS) + optional:
        error = validate_field(field, form_data.get(field))
        if error:
            errors[field] = error
    return errors


def is_advanceable(form_data: Mapping[str, Optional[str]], errors: Mapping[str, str]) -> bool:
    """True when no required field has an error and none is empty."""
    if any(field in errors for field in REQUIRED_FIELDS):
        return False
    return all((form_data.get(field) or "").strip() for field in REQUIRED_FIELDS)
