"""Parsing and normalization of the OCR model's reply.

The model answers in free text that should contain a JSON object. The
object's keys are spelled however the model likes ("Last Name",
"surname", "zip_code"), so they are folded onto the canonical field
names used by the rest of the service.
"""

import json
import re
from typing import Any

from id_scanner.errors import ApiError
from id_scanner.utils.logger import get_logger

logger = get_logger(__name__)

CANONICAL_FIELDS: tuple[str, ...] = (
    "id",
    "lastName",
    "firstName",
    "middleInitial",
    "addressStreet",
    "addressCity",
    "addressState",
    "addressZip",
    "sex",
    "dob",
)

FIELD_ALIASES: dict[str, str] = {
    "id": "id",
    "id_number": "id",
    "identification": "id",
    "identification_number": "id",
    "license": "id",
    "license_number": "id",
    "last_name": "lastName",
    "surname": "lastName",
    "family_name": "lastName",
    "first_name": "firstName",
    "given_name": "firstName",
    "middle_initial": "middleInitial",
    "middle_name": "middleInitial",
    "address_street": "addressStreet",
    "street": "addressStreet",
    "address": "addressStreet",
    "address_city": "addressCity",
    "city": "addressCity",
    "address_state": "addressState",
    "state": "addressState",
    "address_zip": "addressZip",
    "zip": "addressZip",
    "zipcode": "addressZip",
    "zip_code": "addressZip",
    "postal_code": "addressZip",
    "sex": "sex",
    "gender": "sex",
    "dob": "dob",
    "date_of_birth": "dob",
    "birth_date": "dob",
}

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SEPARATOR_RE = re.compile(r"[\s\-]+")
_NON_DIGIT_RE = re.compile(r"\D")


def extract_json_object(text: str) -> dict[str, Any]:
    """Pull the first ``{...}`` block out of a model reply and parse it.

    The match is greedy, so it spans from the first opening brace to the
    last closing brace in the text.

    Args:
        text: Raw text returned by the model.

    Returns:
        The parsed JSON object.

    Raises:
        ApiError: With status 500 if no object is present or it does not
            parse as a JSON object.
    """
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        raise ApiError("Could not parse OCR response", 500)

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ApiError("Failed to parse OCR JSON response", 500) from exc

    if not isinstance(data, dict):
        raise ApiError("Failed to parse OCR JSON response", 500)
    return data


def canonical_key(key: str) -> str | None:
    """Map a key as spelled by the model to a canonical field name.

    ``"Last Name"``, ``"last-name"`` and ``"lastName"`` all resolve to
    ``"lastName"``. Unknown keys return ``None``.
    """
    folded = _CAMEL_BOUNDARY_RE.sub("_", key.strip())
    folded = _SEPARATOR_RE.sub("_", folded).lower()
    return FIELD_ALIASES.get(folded)


def clean_value(field: str, value: Any) -> str:
    """Apply the per-field cleanup rules to a raw extracted value."""
    text = str(value).strip()
    if field == "middleInitial":
        return text.upper()[:1]
    if field == "sex":
        return "M" if text.lower().startswith("m") else "F"
    if field == "addressZip":
        return _NON_DIGIT_RE.sub("", text)[:5]
    return text


def normalize_extracted_data(data: dict[str, Any]) -> dict[str, str]:
    """Rename model keys to canonical fields and clean their values.

    Keys that do not map to a known field and falsy values are dropped.
    When two keys map to the same field, the later one wins.

    Args:
        data: JSON object parsed from the model reply.

    Returns:
        Mapping of canonical field name to cleaned string value.
    """
    normalized: dict[str, str] = {}
    for key, value in data.items():
        field = canonical_key(str(key))
        if field is None:
            logger.debug("Ignoring unrecognized OCR field %r", key)
            continue
        if not value:
            continue
        cleaned = clean_value(field, value)
        if cleaned:
            normalized[field] = cleaned
    return normalized


def parse_ocr_reply(text: str) -> dict[str, str]:
    """Extract and normalize identity fields from a model reply."""
    return normalize_extracted_data(extract_json_object(text))
