"""Conversion of uploads the OCR model cannot read directly.

HEIC photos (the iPhone default) are re-encoded as JPEG, and PDF scans
are rendered to a PNG of their first page. Each conversion writes the new
file next to the source and removes the source.
"""

from pathlib import Path

import pillow_heif
from pdf2image import convert_from_path
from PIL import Image

from id_scanner.utils.logger import get_logger

logger = get_logger(__name__)

pillow_heif.register_heif_opener()

HEIC_MIME_TYPES = frozenset({"image/heic", "image/heif"})
PDF_MIME_TYPE = "application/pdf"


class ConversionError(RuntimeError):
    """Raised when an upload cannot be converted to an OCR-ready image."""


def _output_path(source: Path, suffix: str) -> Path:
    """Return a path for the converted image that never equals ``source``."""
    target = source.with_suffix(suffix)
    if target == source:
        target = source.with_name(f"{source.stem}-converted{suffix}")
    return target


def convert_heic_to_jpeg(heic_path: Path, quality: int = 90) -> Path:
    """Re-encode a HEIC image as JPEG.

    Args:
        heic_path: Path to the HEIC file. Removed on success.
        quality: JPEG quality, 1-95.

    Returns:
        Path to the written ``.jpg`` file.

    Raises:
        ConversionError: If the image cannot be decoded or written.
    """
    jpeg_path = _output_path(heic_path, ".jpg")
    try:
        with Image.open(heic_path) as image:
            image.convert("RGB").save(jpeg_path, format="JPEG", quality=quality)
    except Exception as exc:
        raise ConversionError(f"Failed to convert HEIC file: {exc}") from exc

    heic_path.unlink(missing_ok=True)
    logger.info("Converted HEIC upload %s to %s", heic_path.name, jpeg_path.name)
    return jpeg_path


def convert_pdf_to_png(pdf_path: Path, dpi: int = 200) -> Path:
    """Render the first page of a PDF to PNG.

    Args:
        pdf_path: Path to the PDF file. Removed on success.
        dpi: Rendering resolution.

    Returns:
        Path to the written ``.png`` file.

    Raises:
        ConversionError: If the PDF has no pages or rendering fails.
    """
    png_path = _output_path(pdf_path, ".png")
    try:
        pages = convert_from_path(str(pdf_path), dpi=dpi, first_page=1, last_page=1)
    except Exception as exc:
        raise ConversionError(f"Failed to convert PDF file: {exc}") from exc

    if not pages:
        raise ConversionError("Failed to convert PDF file: document has no pages")

    pages[0].save(png_path, format="PNG")
    pdf_path.unlink(missing_ok=True)
    logger.info("Rendered PDF upload %s to %s", pdf_path.name, png_path.name)
    return png_path


def convert_for_ocr(
    path: Path, mime_type: str, jpeg_quality: int = 90, pdf_dpi: int = 200
) -> Path:
    """Convert an upload if its format needs it, else return it unchanged.

    Args:
        path: Path to the stored upload.
        mime_type: MIME type reported by the client.
        jpeg_quality: JPEG quality used for HEIC conversion.
        pdf_dpi: Resolution used for PDF rendering.

    Returns:
        Path to an image the OCR client can send.
    """
    if mime_type in HEIC_MIME_TYPES:
        return convert_heic_to_jpeg(path, quality=jpeg_quality)
    if mime_type == PDF_MIME_TYPE:
        return convert_pdf_to_png(path, dpi=pdf_dpi)
    return path
