from __future__ import annotations

import argparse
import asyncio
import logging
import mimetypes
from dataclasses import replace
from pathlib import Path

import uvicorn

from app.config import Settings, load_dotenv
from app.csv_export import encode_csv, export_filename, format_invoice_csv
from app.extraction_service import InvoiceProcessingError, build_extractor
from app.logger import configure_logging
from app.validation import evaluate_record
from app.web import create_web_app

logger = logging.getLogger(__name__)


def run_serve(settings: Settings) -> int:
    app = create_web_app(settings)
    logger.info("Serving on http://%s:%d model=%s", settings.host, settings.port, settings.gemini_model)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    return 0


def run_extract(settings: Settings, file_path: str, out_path: str | None = None) -> int:
    source = Path(file_path)
    if not source.is_file():
        logger.error("File not found: %s", source)
        return 2

    mime_type = mimetypes.guess_type(source.name)[0] or "application/octet-stream"
    extractor = build_extractor(settings)
    try:
        record = asyncio.run(extractor.extract(source.read_bytes(), mime_type))
    except InvoiceProcessingError as exc:
        logger.error("Extraction failed code=%s error=%s", exc.code, exc)
        return 1

    for warning in evaluate_record(record):
        logger.warning("Check %s: %s", warning["code"], warning["message"])

    target = Path(out_path) if out_path else Path(export_filename(prefix=settings.export_filename_prefix))
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(encode_csv(format_invoice_csv(record)))
    logger.info("Wrote %d item(s) to %s", len(record.items), target)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Invoice extraction to spreadsheet-ready CSV")
    parser.add_argument("--env-file", default=".env", help="Optional dotenv file to load first")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the browser front-end")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    extract = subparsers.add_parser("extract", help="Extract one local file and write the CSV export")
    extract.add_argument("file", help="Invoice image or PDF")
    extract.add_argument("--out", default=None, help="CSV path (defaults to invoice_extract_<date>.csv)")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    load_dotenv(args.env_file)
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    if args.command == "serve":
        if args.host or args.port:
            settings = replace(settings, host=args.host or settings.host, port=args.port or settings.port)
        return run_serve(settings)
    if args.command == "extract":
        return run_extract(settings, args.file, args.out)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
