"""Tests for HEIC and PDF conversion of uploads."""

from pathlib import Path
from unittest.mock import patch

import pytest
from PIL import Image

from id_scanner.ocr.conversion import (
    ConversionError,
    convert_for_ocr,
    convert_heic_to_jpeg,
    convert_pdf_to_png,
)


class TestConvertHeicToJpeg:
    """Tests for HEIC re-encoding."""

    def test_writes_jpeg_and_removes_source(self, tmp_path: Path, png_bytes: bytes) -> None:
        # Pillow sniffs the format from content, so any decodable image works
        source = tmp_path / "photo.heic"
        source.write_bytes(png_bytes)

        result = convert_heic_to_jpeg(source)

        assert result == tmp_path / "photo.jpg"
        assert not source.exists()
        with Image.open(result) as image:
            assert image.format == "JPEG"
            assert image.size == (64, 40)

    def test_undecodable_file(self, tmp_path: Path) -> None:
        source = tmp_path / "broken.heic"
        source.write_bytes(b"not an image")
        with pytest.raises(ConversionError, match="Failed to convert HEIC file"):
            convert_heic_to_jpeg(source)
        assert source.exists()

    def test_jpg_named_source_is_not_overwritten(
        self, tmp_path: Path, png_bytes: bytes
    ) -> None:
        source = tmp_path / "photo.jpg"
        source.write_bytes(png_bytes)

        result = convert_heic_to_jpeg(source)

        assert result == tmp_path / "photo-converted.jpg"
        assert result.exists()
        assert not source.exists()


class TestConvertPdfToPng:
    """Tests for first-page PDF rendering."""

    @patch("id_scanner.ocr.conversion.convert_from_path")
    def test_renders_first_page(self, mock_convert, tmp_path: Path) -> None:
        source = tmp_path / "scan.pdf"
        source.write_bytes(b"%PDF-1.4")
        mock_convert.return_value = [Image.new("RGB", (30, 20), "white")]

        result = convert_pdf_to_png(source, dpi=150)

        assert result == tmp_path / "scan.png"
        assert result.exists()
        assert not source.exists()
        mock_convert.assert_called_once_with(
            str(source), dpi=150, first_page=1, last_page=1
        )

    @patch("id_scanner.ocr.conversion.convert_from_path")
    def test_empty_pdf(self, mock_convert, tmp_path: Path) -> None:
        source = tmp_path / "empty.pdf"
        source.write_bytes(b"%PDF-1.4")
        mock_convert.return_value = []
        with pytest.raises(ConversionError, match="no pages"):
            convert_pdf_to_png(source)

    @patch("id_scanner.ocr.conversion.convert_from_path")
    def test_png_named_source_is_not_overwritten(
        self, mock_convert, tmp_path: Path
    ) -> None:
        source = tmp_path / "scan.png"
        source.write_bytes(b"%PDF-1.4")
        mock_convert.return_value = [Image.new("RGB", (30, 20), "white")]

        result = convert_pdf_to_png(source)

        assert result == tmp_path / "scan-converted.png"
        assert result.exists()
        assert not source.exists()

    @patch("id_scanner.ocr.conversion.convert_from_path")
    def test_renderer_failure(self, mock_convert, tmp_path: Path) -> None:
        source = tmp_path / "bad.pdf"
        source.write_bytes(b"garbage")
        mock_convert.side_effect = RuntimeError("poppler not installed")
        with pytest.raises(ConversionError, match="poppler not installed"):
            convert_pdf_to_png(source)


class TestConvertForOcr:
    """Tests for MIME-type dispatch."""

    def test_jpeg_passes_through(self, tmp_path: Path, jpeg_bytes: bytes) -> None:
        source = tmp_path / "id.jpg"
        source.write_bytes(jpeg_bytes)
        assert convert_for_ocr(source, "image/jpeg") == source
        assert source.exists()

    def test_heic_is_converted(self, tmp_path: Path, png_bytes: bytes) -> None:
        source = tmp_path / "id.heic"
        source.write_bytes(png_bytes)
        assert convert_for_ocr(source, "image/heic").suffix == ".jpg"

    @patch("id_scanner.ocr.conversion.convert_pdf_to_png")
    def test_pdf_is_rendered(self, mock_render, tmp_path: Path) -> None:
        source = tmp_path / "id.pdf"
        mock_render.return_value = tmp_path / "id.png"
        assert convert_for_ocr(source, "application/pdf", pdf_dpi=100) == tmp_path / "id.png"
        mock_render.assert_called_once_with(source, dpi=100)
