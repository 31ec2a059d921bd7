"""Command-line interface for local OCR runs and record export.

Provides subcommands to extract fields from an ID image on disk, export
saved records to CSV, and start the API server.
"""

import argparse
import csv
import json
import mimetypes
import sys
from collections.abc import Iterable
from pathlib import Path

from id_scanner.api.uploads import check_upload, stored_upload
from id_scanner.errors import ApiError
from id_scanner.main import serve
from id_scanner.ocr.anthropic_client import AnthropicOCRClient
from id_scanner.ocr.conversion import ConversionError, convert_for_ocr
from id_scanner.storage.database import Database
from id_scanner.storage.models import IdentityRecord
from id_scanner.storage.repository import IdentityRepository
from id_scanner.utils.config import AppConfig, load_config
from id_scanner.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

# mimetypes does not know these on every platform
_EXTRA_MIME_TYPES = {".heic": "image/heic", ".heif": "image/heif"}

CSV_COLUMNS = [
    "recordId",
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
    "confidence",
    "sourceFileName",
    "extractedAt",
    "lastModified",
    "isManuallyEdited",
]


def guess_mime_type(path: Path) -> str:
    """Guess an image's MIME type from its extension."""
    suffix = path.suffix.lower()
    if suffix in _EXTRA_MIME_TYPES:
        return _EXTRA_MIME_TYPES[suffix]
    return mimetypes.guess_type(path.name)[0] or "application/octet-stream"


def extract_file(file_path: Path, config: AppConfig) -> dict[str, object]:
    """Run OCR on a local ID image without touching the original file.

    Args:
        file_path: Image to process.
        config: Application configuration.

    Returns:
        Dictionary with the extracted fields and file details.
    """
    content = file_path.read_bytes()
    mime_type = guess_mime_type(file_path)
    check_upload(file_path.name, mime_type, len(content), config.upload)

    client = AnthropicOCRClient(config.ocr)
    try:
        with stored_upload(content, file_path.name, mime_type, config.upload) as upload:
            upload.path = convert_for_ocr(
                upload.path, mime_type, config.ocr.heic_jpeg_quality, config.ocr.pdf_dpi
            )
            extracted = client.extract_text_from_image(upload.path)
    finally:
        client.close()

    return {
        "extractedData": extracted,
        "fileName": file_path.name,
        "fileSize": len(content),
        "mimeType": mime_type,
    }


def record_row(record: IdentityRecord) -> dict[str, object]:
    """Flatten a record into a CSV row keyed by ``CSV_COLUMNS``."""
    row: dict[str, object] = record.model_dump(mode="json", by_alias=True)
    row["recordId"] = record.record_id
    return row


def write_csv(records: Iterable[IdentityRecord], output_path: Path) -> int:
    """Write records to a CSV file.

    Args:
        records: Records to export.
        output_path: Path for the output CSV file.

    Returns:
        Number of rows written.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        for record in records:
            writer.writerow(record_row(record))
            count += 1
    return count


def export_records(output_path: Path, config: AppConfig) -> int:
    """Export every saved record, newest first, to CSV."""
    database = Database(config.database)
    try:
        repository = IdentityRepository(database.records)
        count = write_csv(repository.iter_all(), output_path)
    finally:
        database.close()
    logger.info("Exported %d records to %s", count, output_path)
    return count


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="ID Scanner command-line tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="Path to config YAML"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    extract_parser = subparsers.add_parser("extract", help="Run OCR on an ID image")
    extract_parser.add_argument("file", type=Path, help="ID image to process")
    extract_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    export_parser = subparsers.add_parser("export", help="Export saved records to CSV")
    export_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("records.csv"),
        help="Output CSV file (default: records.csv)",
    )

    subparsers.add_parser("serve", help="Start the API server")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            result = extract_file(args.file, config)
        except (ApiError, ConversionError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        output_str = json.dumps(result, indent=2)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    elif args.command == "export":
        count = export_records(args.output, config)
        print(f"Exported {count} records to {args.output}")
    elif args.command == "serve":
        serve(config)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
