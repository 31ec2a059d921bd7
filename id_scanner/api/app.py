"""FastAPI application for the ID scanner service.

Provides REST endpoints to upload an ID image for OCR, save the reviewed
fields, and list, search, fetch, and correct saved records.
"""

import math
import re
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, FastAPI, File, Query, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from id_scanner import __version__
from id_scanner.errors import ApiError, describe_validation_errors
from id_scanner.ocr.anthropic_client import AnthropicOCRClient
from id_scanner.ocr.conversion import ConversionError, convert_for_ocr
from id_scanner.storage.database import Database
from id_scanner.storage.repository import IdentityRepository
from id_scanner.utils.config import AppConfig, load_config
from id_scanner.utils.logger import get_logger

from .schemas import (
    HealthResponse,
    IdentityPayload,
    IdentityUpdate,
    Pagination,
    RecordDetailResponse,
    RecordListResponse,
    RecordResponse,
    SaveResponse,
    SearchResponse,
    UploadData,
    UploadResponse,
)
from .uploads import read_upload, stored_upload

logger = get_logger(__name__)

_OBJECT_ID_RE = re.compile(r"[0-9a-fA-F]{24}")
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MIN_SEARCH_LENGTH = 2


@lru_cache
def get_config() -> AppConfig:
    """Return the process-wide configuration, loaded on first use."""
    return load_config()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    config = get_config()
    database = Database(config.database)
    try:
        database.connect()
    except Exception:
        logger.exception("Failed to connect to MongoDB")
        raise
    app.state.database = database
    app.state.ocr_client = AnthropicOCRClient(config.ocr)
    try:
        yield
    finally:
        app.state.ocr_client.close()
        database.close()


app = FastAPI(
    title="ID Scanner API",
    description="Extract identity fields from ID photos and store reviewed records",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_repository(
    database: Annotated[Database, Depends(get_database)],
) -> IdentityRepository:
    return IdentityRepository(database.records)


def get_ocr_client(request: Request) -> AnthropicOCRClient:
    return request.app.state.ocr_client


ConfigDep = Annotated[AppConfig, Depends(get_config)]
RepositoryDep = Annotated[IdentityRepository, Depends(get_repository)]
OCRClientDep = Annotated[AnthropicOCRClient, Depends(get_ocr_client)]


# --- error handling -------------------------------------------------------


def _error_response(
    request: Request, status_code: int, message: str, exc: Exception | None = None
) -> JSONResponse:
    """Log an error with request context and render the error envelope."""
    context = f"{request.method} {request.url.path}"
    file_name = getattr(request.state, "upload_file_name", None)
    if file_name:
        context = f"{context} (file: {file_name})"
    if status_code >= 500:
        logger.error("%s failed with %d: %s", context, status_code, message, exc_info=exc)
    else:
        logger.warning("%s failed with %d: %s", context, status_code, message)

    error: dict[str, object] = {"message": message}
    if exc is not None and get_config().server.is_development:
        error["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
        details: dict[str, object] = {
            "type": type(exc).__name__,
            "args": [str(a) for a in exc.args],
        }
        if isinstance(exc, ApiError):
            details["status"] = exc.status
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.message, exc)


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    message = f"Validation Error: {describe_validation_errors(exc.errors())}"
    return _error_response(request, status.HTTP_400_BAD_REQUEST, message, exc)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return _error_response(request, exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        str(exc) or "Internal Server Error",
        exc,
    )


# --- helpers --------------------------------------------------------------


def _positive_int(value: str | None, default: int) -> int:
    """Parse a query value as a positive int, falling back to ``default``."""
    try:
        number = int(value) if value is not None else default
    except ValueError:
        return default
    return number if number >= 1 else default


def _check_record_id(record_id: str) -> None:
    if not _OBJECT_ID_RE.fullmatch(record_id):
        raise ApiError("Invalid ID format", status.HTTP_400_BAD_REQUEST)


# --- routes ---------------------------------------------------------------


@app.get("/health", response_model=HealthResponse)
def health_check(
    database: Annotated[Database, Depends(get_database)],
) -> HealthResponse:
    """Return service status and database reachability."""
    available = database.ping()
    return HealthResponse(
        status="healthy" if available else "degraded",
        version=__version__,
        database_available=available,
    )


@app.post("/api/id/upload", response_model=UploadResponse)
async def upload_and_extract(
    request: Request,
    config: ConfigDep,
    ocr_client: OCRClientDep,
    id_image: Annotated[UploadFile | None, File(alias="idImage")] = None,
) -> UploadResponse:
    """Run OCR on an uploaded ID image and return the extracted fields.

    The upload is stored only for the duration of the request. HEIC and
    PDF uploads are converted to an image format the OCR model accepts.
    """
    if id_image is None:
        raise ApiError("No file uploaded", status.HTTP_400_BAD_REQUEST)

    file_name = id_image.filename or "upload"
    request.state.upload_file_name = file_name
    content = await read_upload(id_image, config.upload)
    mime_type = id_image.content_type or ""

    with stored_upload(content, file_name, mime_type, config.upload) as upload:
        try:
            upload.path = await run_in_threadpool(
                convert_for_ocr,
                upload.path,
                mime_type,
                config.ocr.heic_jpeg_quality,
                config.ocr.pdf_dpi,
            )
        except ConversionError as exc:
            raise ApiError(str(exc), status.HTTP_400_BAD_REQUEST) from exc

        extracted = await run_in_threadpool(
            ocr_client.extract_text_from_image, upload.path
        )

    return UploadResponse(
        data=UploadData(
            extracted_data=extracted,
            file_name=file_name,
            file_size=len(content),
            mime_type=mime_type,
        )
    )


@app.post(
    "/api/id/save",
    response_model=SaveResponse,
    status_code=status.HTTP_201_CREATED,
)
def save_record(payload: IdentityPayload, repository: RepositoryDep) -> SaveResponse:
    """Persist reviewed identity fields as a new record."""
    record = repository.create(payload.model_dump())
    return SaveResponse(
        message="ID data saved successfully",
        data=RecordResponse.from_record(record),
    )


@app.get("/api/id", response_model=RecordListResponse)
def list_records(
    repository: RepositoryDep,
    page: Annotated[str | None, Query()] = None,
    limit: Annotated[str | None, Query()] = None,
) -> RecordListResponse:
    """List saved records, newest first, one page at a time."""
    page_number = _positive_int(page, DEFAULT_PAGE)
    page_size = _positive_int(limit, DEFAULT_LIMIT)

    records, total = repository.list_page(page_number, page_size)
    return RecordListResponse(
        data=[RecordResponse.from_record(r) for r in records],
        pagination=Pagination(
            current_page=page_number,
            total_pages=math.ceil(total / page_size),
            total_records=total,
            has_more=page_number * page_size < total,
        ),
    )


@app.get("/api/id/search", response_model=SearchResponse)
def search_records(
    repository: RepositoryDep,
    q: Annotated[str | None, Query()] = None,
) -> SearchResponse:
    """Find records whose id, first name, or last name contains ``q``."""
    term = (q or "").strip()
    if len(term) < MIN_SEARCH_LENGTH:
        raise ApiError(
            "Search term must be at least 2 characters long",
            status.HTTP_400_BAD_REQUEST,
        )

    records = repository.search(term)
    return SearchResponse(data=[RecordResponse.from_record(r) for r in records])


@app.get("/api/id/{record_id}", response_model=RecordDetailResponse)
def get_record(record_id: str, repository: RepositoryDep) -> RecordDetailResponse:
    """Fetch one saved record by its 24-character hex id."""
    _check_record_id(record_id)
    record = repository.get(record_id)
    if record is None:
        raise ApiError("ID data not found", status.HTTP_404_NOT_FOUND)
    return RecordDetailResponse(data=RecordResponse.from_record(record))


@app.patch("/api/id/{record_id}", response_model=SaveResponse)
def update_record(
    record_id: str, payload: IdentityUpdate, repository: RepositoryDep
) -> SaveResponse:
    """Apply corrections to a saved record."""
    _check_record_id(record_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise ApiError("No fields to update", status.HTTP_400_BAD_REQUEST)

    record = repository.update(record_id, changes)
    if record is None:
        raise ApiError("ID data not found", status.HTTP_404_NOT_FOUND)
    return SaveResponse(
        message="ID data updated successfully",
        data=RecordResponse.from_record(record),
    )
