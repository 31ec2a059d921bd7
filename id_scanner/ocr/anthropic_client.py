"""OCR of identity documents through the Anthropic Messages API.

Sends a base64-encoded image together with a fixed extraction prompt and
turns the model's free-text answer into normalized identity fields.
"""

import base64
from pathlib import Path

import anthropic

from id_scanner.errors import ApiError
from id_scanner.utils.config import OCRConfig
from id_scanner.utils.logger import get_logger

from .normalize import parse_ocr_reply

logger = get_logger(__name__)

OCR_PROMPT = """
Please extract text from this ID document and organize it into the following fields.
If a field is not present or cannot be read, omit it rather than guessing.

Required fields to extract:
- ID Number: Any identification number shown on the document
- Last Name: Person's family name/surname
- First Name: Person's given name
- Middle Initial: Middle name initial (if present)
- Address Street: Street address line
- Address City: City name
- Address State: State/Province name
- Address Zip: ZIP/Postal code
- Sex: Gender (M/F/Male/Female)
- DOB: Date of birth (in YYYY-MM-DD format if possible)

Please respond with a JSON object containing only these fields.
Be precise and extract exactly what's written on the document.
If text is unclear or missing, do not include that field in your response.
"""

MEDIA_TYPES: dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


def media_type_for(image_path: Path) -> str | None:
    """Return the OCR media type for a file extension, or ``None``."""
    return MEDIA_TYPES.get(image_path.suffix.lower())


def map_api_error(exc: anthropic.APIError) -> ApiError:
    """Translate an Anthropic SDK error into a service error.

    Args:
        exc: Error raised by the SDK.

    Returns:
        ApiError with the status the client should see.
    """
    status = getattr(exc, "status_code", None)
    if status == 401:
        logger.error("Invalid Anthropic API key")
        return ApiError(
            "OCR service temporarily unavailable. Please try again later.", 503
        )
    if status == 429:
        return ApiError(
            "OCR service rate limit exceeded. Please try again later.", 503
        )
    if status is not None and status >= 500:
        return ApiError("OCR service temporarily unavailable", 503)
    return ApiError(
        "OCR service temporarily unavailable. Please try again later.", 503
    )


class AnthropicOCRClient:
    """Extracts identity fields from document images with a hosted model.

    Args:
        config: OCR section of the application configuration.
        client: Preconfigured SDK client. Built lazily from ``config``
            when omitted.
    """

    def __init__(
        self, config: OCRConfig, client: anthropic.Anthropic | None = None
    ) -> None:
        self.config = config
        self._client = client

    @property
    def client(self) -> anthropic.Anthropic:
        if self._client is None:
            if not self.config.api_key:
                raise ApiError("OCR service is not configured", 500)
            self._client = anthropic.Anthropic(api_key=self.config.api_key)
        return self._client

    def close(self) -> None:
        """Release the SDK client's connection pool, if one was opened."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def _build_messages(self, media_type: str, image_data: str) -> list[dict]:
        return [
            {
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": media_type,
                            "data": image_data,
                        },
                    },
                    {"type": "text", "text": OCR_PROMPT},
                ],
            }
        ]

    def extract_text_from_image(self, image_path: Path) -> dict[str, str]:
        """Run OCR on an image and return its normalized identity fields.

        Args:
            image_path: Path to a JPEG, PNG, or WebP image.

        Returns:
            Canonical field name to value; unreadable fields are absent.

        Raises:
            ApiError: 400 for unsupported image formats, 500 for unusable
                model replies or a missing API key, 503 for upstream
                failures.
        """
        media_type = media_type_for(image_path)
        if media_type is None:
            raise ApiError("Unsupported file format for OCR", 400)

        image_data = base64.standard_b64encode(image_path.read_bytes()).decode("ascii")

        try:
            response = self.client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                messages=self._build_messages(media_type, image_data),
            )
        except anthropic.APIError as exc:
            logger.error("Anthropic OCR request failed: %s", exc)
            raise map_api_error(exc) from exc

        if not response.content or response.content[0].type != "text":
            raise ApiError("Invalid response format from OCR service", 500)

        extracted = parse_ocr_reply(response.content[0].text)
        logger.info(
            "Extracted %d fields from %s", len(extracted), image_path.name
        )
        return extracted
