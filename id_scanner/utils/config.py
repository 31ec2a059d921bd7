"""Configuration management for the ID scanner service.

Loads and validates YAML configuration with sensible defaults for the
HTTP server, upload handling, the OCR service, and MongoDB storage.
Selected values can be overridden through environment variables.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("configs/config.yaml")


class ServerConfig(BaseModel):
    """Configuration for the HTTP server."""

    host: str = "0.0.0.0"
    port: int = 3001
    environment: str = "production"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


class UploadConfig(BaseModel):
    """Configuration for incoming file uploads."""

    upload_dir: str = "uploads"
    max_file_size: int = 10 * 1024 * 1024
    allowed_mime_types: list[str] = Field(
        default_factory=lambda: [
            "image/jpeg",
            "image/jpg",
            "image/png",
            "application/pdf",
            "image/heic",
        ]
    )


class OCRConfig(BaseModel):
    """Configuration for the hosted OCR model."""

    api_key: str = ""
    model: str = "claude-3-opus-20240229"
    max_tokens: int = 1024
    heic_jpeg_quality: int = 90
    pdf_dpi: int = 200


class DatabaseConfig(BaseModel):
    """Configuration for MongoDB storage."""

    uri: str = "mongodb://localhost:27017/id-photo-ocr"
    database_name: str = "id-photo-ocr"
    collection_name: str = "id_records"
    server_selection_timeout_ms: int = 5000


class AppConfig(BaseModel):
    """Top-level application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    log_level: str = "INFO"


# env var -> (section, key); section None means a top-level key
_ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "ANTHROPIC_API_KEY": ("ocr", "api_key"),
    "ANTHROPIC_MODEL": ("ocr", "model"),
    "MONGODB_URI": ("database", "uri"),
    "MONGODB_DATABASE": ("database", "database_name"),
    "MAX_FILE_SIZE": ("upload", "max_file_size"),
    "UPLOAD_DIR": ("upload", "upload_dir"),
    "APP_ENV": ("server", "environment"),
    "PORT": ("server", "port"),
    "LOG_LEVEL": (None, "log_level"),
}


def _apply_env_overrides(raw: dict) -> dict:
    """Merge environment variable overrides into raw config data.

    Args:
        raw: Configuration dictionary parsed from YAML.

    Returns:
        The same dictionary with overrides applied.
    """
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if not value:
            continue
        if section is None:
            raw[key] = value
        else:
            target = raw.get(section) or {}
            target[key] = value
            raw[section] = target
        logger.debug("Config override from %s", env_name)
    return raw


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file and the environment.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH

    raw: dict = {}
    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.info("No config file found at %s, using defaults", path)

    return AppConfig(**_apply_env_overrides(raw))
