"""Persistence operations for identity records.

Wraps a MongoDB collection and translates driver and validation errors
into :class:`~id_scanner.errors.ApiError` with the matching HTTP status.
"""

from collections.abc import Iterator
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import ValidationError
from pymongo import DESCENDING
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from id_scanner.errors import ApiError, describe_validation_errors
from id_scanner.utils.logger import get_logger

from .models import IdentityRecord, search_filter

logger = get_logger(__name__)

_SERVER_MANAGED = frozenset(
    {
        "_id",
        "record_id",
        "extracted_at",
        "extractedAt",
        "last_modified",
        "lastModified",
        "is_manually_edited",
        "isManuallyEdited",
    }
)

# error locations use the JSON field names whichever way data was passed in
_FIELD_ALIASES: dict[str, str] = {
    name: field.alias or name for name, field in IdentityRecord.model_fields.items()
}


def _object_id(record_id: str) -> ObjectId:
    try:
        return ObjectId(record_id)
    except (InvalidId, TypeError) as exc:
        raise ApiError("Invalid data format", 400) from exc


def _aliased_loc(error: dict[str, Any]) -> dict[str, Any]:
    loc = error.get("loc", ())
    if loc and loc[0] in _FIELD_ALIASES:
        loc = (_FIELD_ALIASES[loc[0]], *loc[1:])
    return {**error, "loc": loc}


def _build_record(data: dict[str, Any]) -> IdentityRecord:
    try:
        return IdentityRecord.model_validate(data)
    except ValidationError as exc:
        errors = [_aliased_loc(e) for e in exc.errors()]
        raise ApiError(
            f"Database validation error: {describe_validation_errors(errors)}", 400
        ) from exc


class IdentityRepository:
    """CRUD-style access to the identity records collection.

    Records are never deleted.

    Args:
        collection: MongoDB collection holding the records.
    """

    def __init__(self, collection: Collection) -> None:
        self.collection = collection

    def create(self, data: dict[str, Any]) -> IdentityRecord:
        """Validate and insert a new record.

        Args:
            data: Record fields keyed by Python name or JSON alias.
                Server-managed timestamps and the edit flag are
                overwritten.

        Returns:
            The stored record with ``record_id`` populated.

        Raises:
            ApiError: 400 on validation failure, 409 on duplicate key.
        """
        fields = {k: v for k, v in data.items() if k not in _SERVER_MANAGED}
        return self.save(_build_record(fields))

    def save(self, record: IdentityRecord) -> IdentityRecord:
        """Insert a new record after running the pre-save hook."""
        record.before_save()
        try:
            result = self.collection.insert_one(record.to_document())
        except DuplicateKeyError as exc:
            raise ApiError("Duplicate entry found", 409) from exc

        record.record_id = str(result.inserted_id)
        logger.info("Saved identity record %s", record.record_id)
        return record

    def get(self, record_id: str) -> IdentityRecord | None:
        document = self.collection.find_one({"_id": _object_id(record_id)})
        if document is None:
            return None
        return IdentityRecord.from_document(document)

    def list_page(self, page: int, limit: int) -> tuple[list[IdentityRecord], int]:
        """Return one page of records, newest first, and the total count.

        Args:
            page: 1-based page number.
            limit: Page size.
        """
        cursor = (
            self.collection.find()
            .sort("extractedAt", DESCENDING)
            .skip((page - 1) * limit)
            .limit(limit)
        )
        records = [IdentityRecord.from_document(doc) for doc in cursor]
        total = self.collection.count_documents({})
        return records, total

    def iter_all(self) -> Iterator[IdentityRecord]:
        """Yield every record, newest first."""
        for document in self.collection.find().sort("extractedAt", DESCENDING):
            yield IdentityRecord.from_document(document)

    def search(self, term: str) -> list[IdentityRecord]:
        """Find records whose id or name contains ``term``, ignoring case."""
        cursor = self.collection.find(search_filter(term)).sort(
            "extractedAt", DESCENDING
        )
        return [IdentityRecord.from_document(doc) for doc in cursor]

    def update(self, record_id: str, changes: dict[str, Any]) -> IdentityRecord | None:
        """Apply corrections to a stored record.

        Args:
            record_id: Hex ObjectId of the record.
            changes: Fields to change, keyed by Python name.

        Returns:
            The updated record, or ``None`` if no record has that id.

        Raises:
            ApiError: 400 if the result fails validation, 409 on
                duplicate key.
        """
        current = self.get(record_id)
        if current is None:
            return None

        updated = _build_record(
            {**current.model_dump(), **changes, "record_id": current.record_id}
        )
        changed = {
            name for name in changes if getattr(updated, name) != getattr(current, name)
        }
        updated.before_save(changed)

        document = updated.to_document()
        try:
            self.collection.update_one(
                {"_id": _object_id(record_id)}, {"$set": document}
            )
        except DuplicateKeyError as exc:
            raise ApiError("Duplicate entry found", 409) from exc

        logger.info(
            "Updated identity record %s (fields: %s)",
            record_id,
            ", ".join(sorted(changed)) or "none",
        )
        return updated
