"""Shared test fixtures for the ID scanner test suite."""

import io
from collections.abc import Iterator
from pathlib import Path

import mongomock
import pytest
from fastapi.testclient import TestClient
from PIL import Image
from pymongo.collection import Collection

from id_scanner.api.app import app, get_config, get_database, get_ocr_client, get_repository
from id_scanner.storage.database import Database, ensure_indexes
from id_scanner.storage.repository import IdentityRepository
from id_scanner.utils.config import AppConfig, DatabaseConfig, UploadConfig


class FakeOCRClient:
    """Stands in for the Anthropic client; records the paths it was given."""

    def __init__(self, result: dict[str, str] | None = None, error: Exception | None = None) -> None:
        self.result = result if result is not None else {"lastName": "DOE", "firstName": "JANE"}
        self.error = error
        self.seen_paths: list[Path] = []
        self.existed: list[bool] = []

    def extract_text_from_image(self, image_path: Path) -> dict[str, str]:
        self.seen_paths.append(image_path)
        self.existed.append(image_path.exists())
        if self.error is not None:
            raise self.error
        return dict(self.result)


def make_image_bytes(fmt: str = "PNG") -> bytes:
    """Create a small solid-colour image encoded as ``fmt``."""
    img = Image.new("RGB", (64, 40), color=(200, 180, 160))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG")


@pytest.fixture
def test_config(tmp_path: Path) -> AppConfig:
    """Configuration pointing uploads at a temporary directory."""
    return AppConfig(
        upload=UploadConfig(upload_dir=str(tmp_path / "uploads"), max_file_size=1024 * 1024),
        database=DatabaseConfig(database_name="test-db", collection_name="records"),
    )


@pytest.fixture
def mongo_client() -> mongomock.MongoClient:
    return mongomock.MongoClient()


@pytest.fixture
def collection(mongo_client: mongomock.MongoClient) -> Collection:
    records = mongo_client["test-db"]["records"]
    ensure_indexes(records)
    return records


@pytest.fixture
def repository(collection: Collection) -> IdentityRepository:
    return IdentityRepository(collection)


@pytest.fixture
def ocr_client() -> FakeOCRClient:
    return FakeOCRClient()


@pytest.fixture
def client(
    test_config: AppConfig,
    repository: IdentityRepository,
    ocr_client: FakeOCRClient,
    mongo_client: mongomock.MongoClient,
) -> Iterator[TestClient]:
    """API test client wired to in-memory storage and a fake OCR client."""
    database = Database(test_config.database, client=mongo_client)
    app.dependency_overrides[get_config] = lambda: test_config
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_ocr_client] = lambda: ocr_client
    app.dependency_overrides[get_database] = lambda: database
    yield TestClient(app)
    app.dependency_overrides.clear()
