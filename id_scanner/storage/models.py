"""Identity record document model.

Defines the stored shape of a scanned identity document, its field-level
validation rules, the pre-save hook that maintains modification metadata,
and the search filter used by the query endpoints.
"""

import re
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")
DOB_RE = re.compile(r"^(\d{4}-\d{2}-\d{2}|\d{2}/\d{2}/\d{4})$")
MIDDLE_INITIAL_RE = re.compile(r"^[A-Z]$")

SEX_VALUES: dict[str, str] = {
    "m": "M",
    "f": "F",
    "male": "Male",
    "female": "Female",
}

# Changing any of these after creation marks the record as manually edited.
TRACKED_FIELDS: frozenset[str] = frozenset(
    {"external_id", "last_name", "first_name", "address_street"}
)

IDENTITY_FIELDS: tuple[str, ...] = (
    "external_id",
    "last_name",
    "first_name",
    "middle_initial",
    "address_street",
    "address_city",
    "address_state",
    "address_zip",
    "sex",
    "dob",
    "confidence",
)

SEARCH_FIELDS: tuple[str, ...] = ("id", "lastName", "firstName")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IdentityRecord(BaseModel):
    """A saved identity document.

    Field names are snake_case in Python and camelCase in MongoDB and
    JSON. ``external_id`` is the number printed on the document and is
    stored as ``id``; ``record_id`` is the MongoDB ``_id`` and is never
    written as a field.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    record_id: str | None = Field(default=None, exclude=True)

    external_id: str | None = Field(default=None, alias="id", max_length=50)
    last_name: str = Field(max_length=100)
    first_name: str = Field(max_length=100)
    middle_initial: str | None = Field(default=None, max_length=1)

    address_street: str | None = Field(default=None, max_length=200)
    address_city: str | None = Field(default=None, max_length=100)
    address_state: str | None = Field(default=None, max_length=50)
    address_zip: str | None = Field(default=None, max_length=20)

    sex: Literal["M", "F", "Male", "Female"] | None = None
    dob: str | None = None

    confidence: float | None = Field(default=None, ge=0, le=1)
    source_file_name: str | None = Field(default=None, max_length=255)
    extracted_at: datetime = Field(default_factory=utcnow)
    last_modified: datetime = Field(default_factory=utcnow)
    is_manually_edited: bool = False

    @field_validator(
        "external_id",
        "middle_initial",
        "address_street",
        "address_city",
        "address_state",
        "address_zip",
        "sex",
        "dob",
        "source_file_name",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("last_name")
    @classmethod
    def _last_name_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Last name is required")
        return value

    @field_validator("first_name")
    @classmethod
    def _first_name_required(cls, value: str) -> str:
        if not value:
            raise ValueError("First name is required")
        return value

    @field_validator("middle_initial", mode="before")
    @classmethod
    def _uppercase_middle_initial(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("middle_initial")
    @classmethod
    def _single_letter(cls, value: str | None) -> str | None:
        if value is not None and not MIDDLE_INITIAL_RE.match(value):
            raise ValueError("Middle initial must be a single letter")
        return value

    @field_validator("address_zip")
    @classmethod
    def _zip_format(cls, value: str | None) -> str | None:
        if value is not None and not ZIP_RE.match(value):
            raise ValueError("Invalid ZIP code format")
        return value

    @field_validator("sex", mode="before")
    @classmethod
    def _canonical_sex(cls, value: Any) -> Any:
        if isinstance(value, str):
            return SEX_VALUES.get(value.strip().lower(), value)
        return value

    @field_validator("dob")
    @classmethod
    def _dob_format(cls, value: str | None) -> str | None:
        if value is not None and not DOB_RE.match(value):
            raise ValueError("Invalid date format. Use YYYY-MM-DD or MM/DD/YYYY")
        return value

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "IdentityRecord":
        """Build a record from a raw MongoDB document."""
        data = {k: v for k, v in document.items() if k not in ("_id", "__v")}
        return cls.model_validate({**data, "record_id": str(document["_id"])})

    def to_document(self) -> dict[str, Any]:
        """Return the MongoDB representation, without ``_id``."""
        return self.model_dump(by_alias=True)

    def before_save(self, changed_fields: set[str] | frozenset[str] = frozenset()) -> None:
        """Refresh modification metadata ahead of a write.

        Args:
            changed_fields: Python names of the fields altered since the
                record was last stored. Empty for a new record.
        """
        self.last_modified = utcnow()
        if changed_fields & TRACKED_FIELDS:
            self.is_manually_edited = True

    def identity_data(self) -> dict[str, Any]:
        """Return the extracted identity fields keyed by their JSON names."""
        return self.model_dump(by_alias=True, include=set(IDENTITY_FIELDS))

    def metadata(self) -> dict[str, Any]:
        """Return bookkeeping fields keyed by their JSON names."""
        return self.model_dump(
            by_alias=True,
            include={
                "source_file_name",
                "extracted_at",
                "last_modified",
                "is_manually_edited",
            },
        )


def search_filter(term: str) -> dict[str, Any]:
    """Build a case-insensitive substring filter over id and name fields.

    The term is matched literally; regex metacharacters are escaped.
    """
    pattern = re.escape(term)
    return {
        "$or": [
            {field: {"$regex": pattern, "$options": "i"}} for field in SEARCH_FIELDS
        ]
    }
