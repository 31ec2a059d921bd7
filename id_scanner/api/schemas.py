"""Pydantic request/response schemas for the FastAPI endpoints.

JSON bodies use camelCase keys; Python attributes are snake_case.
"""

from datetime import datetime
from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from id_scanner.storage.models import IdentityRecord


class Sex(StrEnum):
    """Accepted spellings of the sex field."""

    M = "M"
    F = "F"
    MALE = "Male"
    FEMALE = "Female"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


Name = Annotated[str, Field(max_length=100)]


class _IdentityFields(CamelModel):
    external_id: str | None = Field(default=None, alias="id")
    middle_initial: str | None = Field(default=None, max_length=1)
    address_street: str | None = Field(default=None, max_length=200)
    address_city: str | None = Field(default=None, max_length=100)
    address_state: str | None = Field(default=None, max_length=50)
    address_zip: str | None = Field(default=None, max_length=20)
    sex: Sex | None = None
    dob: str | None = None
    confidence: float | None = Field(default=None, ge=0, le=1)
    source_file_name: str | None = Field(default=None, max_length=255)


class IdentityPayload(_IdentityFields):
    """Request body for saving a reviewed identity record."""

    last_name: Name
    first_name: Name

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


class IdentityUpdate(_IdentityFields):
    """Request body for correcting a saved record; every field optional."""

    last_name: Name | None = None
    first_name: Name | None = None


class ExtractedData(CamelModel):
    """Identity fields of a saved record."""

    external_id: str | None = Field(default=None, alias="id")
    last_name: str
    first_name: str
    middle_initial: str | None = None
    address_street: str | None = None
    address_city: str | None = None
    address_state: str | None = None
    address_zip: str | None = None
    sex: str | None = None
    dob: str | None = None
    confidence: float | None = None


class RecordMetadata(CamelModel):
    """Bookkeeping fields of a saved record."""

    source_file_name: str | None = None
    extracted_at: datetime
    last_modified: datetime
    is_manually_edited: bool


class RecordResponse(CamelModel):
    """A saved record as returned by the API."""

    id: str
    extracted_data: ExtractedData
    metadata: RecordMetadata

    @classmethod
    def from_record(cls, record: IdentityRecord) -> "RecordResponse":
        return cls(
            id=record.record_id or "",
            extracted_data=ExtractedData.model_validate(record.identity_data()),
            metadata=RecordMetadata.model_validate(record.metadata()),
        )


class SaveResponse(CamelModel):
    """Response for a successful save or update."""

    success: bool = True
    message: str
    data: RecordResponse


class RecordDetailResponse(CamelModel):
    """Response wrapping a single record."""

    success: bool = True
    data: RecordResponse


class Pagination(CamelModel):
    """Paging information for record listings."""

    current_page: int
    total_pages: int
    total_records: int
    has_more: bool


class RecordListResponse(CamelModel):
    """Response for the paginated record listing."""

    success: bool = True
    data: list[RecordResponse]
    pagination: Pagination


class SearchResponse(CamelModel):
    """Response for record search."""

    success: bool = True
    data: list[RecordResponse]


class UploadData(CamelModel):
    """Result of OCR on an uploaded ID image."""

    extracted_data: dict[str, str]
    file_name: str
    file_size: int
    mime_type: str


class UploadResponse(CamelModel):
    """Response for the upload-and-extract endpoint."""

    success: bool = True
    data: UploadData


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    database_available: bool
