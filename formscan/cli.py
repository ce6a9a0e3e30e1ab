"""Command-line interface for normalizing, extracting and submitting forms.

Provides subcommands for single documents, folders of documents exported
to CSV, normalized previews, and listing the configured document types.
"""

import argparse
import csv
import json
import sys
import time
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from formscan.extraction.field_rules import load_field_config
from formscan.extraction.rule_extractor import RuleExtractor
from formscan.ocr.factory import build_options, build_recognizer
from formscan.ocr.recognizer import ProgressEvent
from formscan.pipeline.orchestrator import PipelineOrchestrator
from formscan.preprocessing.pipeline import normalize
from formscan.submission.client import SubmissionClient
from formscan.utils.config import AppConfig, NormalizationConfig, load_config
from formscan.utils.exceptions import FormScanError, SubmissionError
from formscan.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.tiff", "*.tif", "*.bmp")
_META_COLUMNS = [
    "filename",
    "status",
    "doc_type",
    "processing_time_s",
    "fields_found",
    "error",
]


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all supported image files in a directory.

    Args:
        input_dir: Directory to scan.

    Returns:
        Sorted list of image paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def _normalization_config(
    config: AppConfig, args: argparse.Namespace
) -> NormalizationConfig:
    """Apply command-line overrides to the configured normalization flags."""
    overrides: dict[str, object] = {}
    if getattr(args, "max_width", None) is not None:
        overrides["max_width"] = args.max_width
    if getattr(args, "no_gray", False):
        overrides["to_gray"] = False
    if getattr(args, "no_binarize", False):
        overrides["binarize"] = False
    if getattr(args, "sharpen", False):
        overrides["sharpen"] = True
    return NormalizationConfig.model_validate(
        config.normalization.model_dump() | overrides
    )


def _build_orchestrator(config: AppConfig, verbose: bool) -> PipelineOrchestrator:
    extractor = RuleExtractor(load_field_config(config.extraction.rules_path))
    orchestrator = PipelineOrchestrator(extractor)
    if verbose:
        orchestrator.progress.subscribe(_print_progress)
    return orchestrator


def _print_progress(event: ProgressEvent) -> None:
    print(f"  {event.stage}... {event.progress:.0%}", file=sys.stderr)


def extract_single(
    file_path: Path,
    config: AppConfig,
    doc_type: str,
    normalization: NormalizationConfig | None = None,
    submit_url: str | None = None,
    verbose: bool = False,
) -> dict[str, Any]:
    """Process a single image and return the structured record.

    Args:
        file_path: Image to process.
        config: Application configuration.
        doc_type: Document type selecting the field rules.
        normalization: Normalization flags; the configured ones when omitted.
        submit_url: Endpoint to submit the record to, if any.
        verbose: Print recognizer progress to stderr.

    Returns:
        Dictionary with filename, doc type, fields and raw text, plus the
        submission status when submitted. A rejected submission is recorded
        with its error instead of raising, so the record is not lost.
    """
    orchestrator = _build_orchestrator(config, verbose)
    result = orchestrator.run(
        file_path.read_bytes(),
        build_recognizer(config.recognition),
        doc_type,
        normalization=normalization or config.normalization,
        options=build_options(config.recognition),
        source_name=file_path.name,
    )

    output: dict[str, Any] = {
        "filename": file_path.name,
        "docType": result.resolved_doc_type,
        "fields": result.fields,
        "rawText": result.raw_text,
    }

    if submit_url:
        client = SubmissionClient(submit_url, timeout=config.submission.timeout)
        try:
            submission = orchestrator.submit(client)
        except SubmissionError as exc:
            output["submission"] = {"status_code": exc.status_code, "error": str(exc)}
        else:
            output["submission"] = {"status_code": submission.status_code}

    return output


def process_folder(
    input_dir: Path,
    output_csv: Path,
    config: AppConfig,
    doc_type: str,
    normalization: NormalizationConfig | None = None,
    verbose: bool = False,
) -> dict[str, int]:
    """Process all images in a folder and export extracted fields to CSV.

    Each file runs through its own pipeline; a failed file is recorded
    in the CSV and does not stop the batch.

    Args:
        input_dir: Directory containing images.
        output_csv: Path for the output CSV file.
        config: Application configuration.
        doc_type: Document type selecting the field rules.
        normalization: Normalization flags; the configured ones when omitted.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    files = _find_documents(input_dir)
    if not files:
        logger.warning("No documents found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d documents to process", len(files))

    results: list[dict[str, object]] = []
    successful = 0
    failed = 0

    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")

        start_time = time.time()
        try:
            record = extract_single(file_path, config, doc_type, normalization)
            fields = record["fields"]
            row: dict[str, object] = {
                "filename": file_path.name,
                "status": "success",
                "doc_type": record["docType"],
                "processing_time_s": round(time.time() - start_time, 2),
                "fields_found": len(fields),
                "error": None,
            }
            row.update(fields)
            results.append(row)
            successful += 1
        except FormScanError as exc:
            logger.error("Failed to process %s: %s", file_path.name, exc)
            results.append(
                {
                    "filename": file_path.name,
                    "status": "failed",
                    "error": str(exc),
                }
            )
            failed += 1

    _write_csv(results, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {"total": len(files), "successful": successful, "failed": failed}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(results: list[dict[str, object]], output_path: Path) -> None:
    """Write extraction results to a CSV file.

    Args:
        results: List of result dictionaries.
        output_path: Path for the output CSV file.
    """
    if not results:
        return

    all_keys: set[str] = set()
    for r in results:
        all_keys.update(r.keys())

    field_columns = sorted(all_keys - set(_META_COLUMNS))
    columns = [c for c in _META_COLUMNS if c in all_keys] + field_columns

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(results)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def normalize_file(
    file_path: Path, output: Path, normalization: NormalizationConfig
) -> int | None:
    """Write the normalized PNG of an image for inspection.

    Returns:
        The Otsu threshold used, or ``None`` without binarization.
    """
    normalized = normalize(file_path.read_bytes(), normalization)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(normalized.png_bytes)
    return normalized.threshold


def _add_normalization_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--max-width", type=int, help="Maximum output width")
    parser.add_argument("--no-gray", action="store_true", help="Skip grayscale")
    parser.add_argument(
        "--no-binarize", action="store_true", help="Skip Otsu binarization"
    )
    parser.add_argument("--sharpen", action="store_true", help="Apply sharpening")


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    load_dotenv()
    config = load_config()
    doc_types = list(load_field_config(config.extraction.rules_path))

    parser = argparse.ArgumentParser(
        description="Document form OCR and field extraction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--engine",
        choices=["tesseract", "remote"],
        help="Recognizer to use (default: from config)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    single_parser = subparsers.add_parser("extract", help="Process a single image")
    single_parser.add_argument("file", type=Path, help="Image file to process")
    single_parser.add_argument(
        "-t",
        "--type",
        choices=doc_types,
        default=config.extraction.default_doc_type,
        dest="doc_type",
        help=f"Document type (default: {config.extraction.default_doc_type})",
    )
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")
    single_parser.add_argument("--submit", metavar="URL", help="Submit to endpoint")
    single_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show OCR progress"
    )
    _add_normalization_args(single_parser)

    batch_parser = subparsers.add_parser("batch", help="Process a folder of images")
    batch_parser.add_argument("input_dir", type=Path, help="Input directory")
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument(
        "-t",
        "--type",
        choices=doc_types,
        default=config.extraction.default_doc_type,
        dest="doc_type",
        help=f"Document type (default: {config.extraction.default_doc_type})",
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )
    _add_normalization_args(batch_parser)

    norm_parser = subparsers.add_parser("normalize", help="Write a normalized image")
    norm_parser.add_argument("file", type=Path, help="Image file to normalize")
    norm_parser.add_argument(
        "-o", "--output", type=Path, required=True, help="Output PNG file"
    )
    _add_normalization_args(norm_parser)

    subparsers.add_parser("doc-types", help="List document types and fields")

    args = parser.parse_args(argv)

    setup_logging(config.log_level)
    if args.engine:
        config.recognition.engine = args.engine

    normalization = config.normalization
    if args.command in ("extract", "batch", "normalize"):
        try:
            normalization = _normalization_config(config, args)
        except ValidationError as exc:
            parser.error(f"invalid normalization option: {exc.errors()[0]['msg']}")

    if args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        submit_url = args.submit or config.submission.endpoint_url
        try:
            result = extract_single(
                args.file,
                config,
                args.doc_type,
                normalization,
                submit_url=submit_url,
                verbose=args.verbose,
            )
        except FormScanError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        output_str = json.dumps(result, indent=2)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)
        submission = result.get("submission", {})
        if "error" in submission:
            print(f"Error: {submission['error']}", file=sys.stderr)
            sys.exit(1)
    elif args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(
            args.input_dir,
            args.output,
            config,
            args.doc_type,
            normalization,
            args.verbose,
        )
    elif args.command == "normalize":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            threshold = normalize_file(args.file, args.output, normalization)
        except FormScanError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        suffix = f" (threshold {threshold})" if threshold is not None else ""
        print(f"Normalized image written to {args.output}{suffix}")
    elif args.command == "doc-types":
        field_config = load_field_config(config.extraction.rules_path)
        for name, rules in field_config.items():
            print(name)
            for rule in rules:
                print(f"  {rule.key:<18} {rule.label} ({rule.capture_strategy})")
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
