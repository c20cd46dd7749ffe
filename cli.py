import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from config.settings import PipelineOptions, PreprocessingLevel
from models.receipt import OcrLine
from ocr import EngineError, OCREngineType
from ocr.line_normalizer import split_text_lines
from services.receipt_service import ReceiptService
from utils.image_validator import ImageValidationError, validate_image
from utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID_INPUT = 2
EXIT_ENGINE_FAILURE = 3


def read_file(path: str) -> bytes:
    """Read a file, exiting with the input-failure code if it is missing."""
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as e:
        print(f"Error: cannot read {path}: {e.strerror}", file=sys.stderr)
        sys.exit(EXIT_INVALID_INPUT)


def emit(data: Dict[str, Any], output: Optional[str] = None) -> None:
    """Write JSON to stdout or to ``output``."""
    text = json.dumps(data, indent=2, default=str)
    if output:
        with open(output, 'w') as f:
            f.write(text + '\n')
        logger.info(f"Wrote result to {output}")
    else:
        print(text)


def build_options(args: argparse.Namespace) -> PipelineOptions:
    """Environment defaults overridden by command line flags."""
    options = PipelineOptions.from_env()
    overrides = {}
    if getattr(args, 'level', None):
        overrides['preprocessing_level'] = PreprocessingLevel(args.level)
    if getattr(args, 'no_validate', False):
        overrides['validate_image'] = False
    if getattr(args, 'no_preprocess', False):
        overrides['preprocess'] = False
    if getattr(args, 'allow_low_quality', False):
        overrides['allow_low_quality'] = True
    if getattr(args, 'lang', None):
        overrides['language'] = args.lang
    if getattr(args, 'psm', None) is not None:
        overrides['page_segmentation_mode'] = args.psm
    return options.model_copy(update=overrides)


def cmd_process(args: argparse.Namespace) -> int:
    image_bytes = read_file(args.image)
    options = build_options(args)
    try:
        with ReceiptService(options=options, engine_type=args.engine,
                            debug_mode=args.debug_images) as service:
            result = service.process_image(image_bytes)
    except ImageValidationError as e:
        print(str(e), file=sys.stderr)
        return EXIT_INVALID_INPUT
    except EngineError as e:
        print(f"Recognition failed (retryable): {str(e)}", file=sys.stderr)
        return EXIT_ENGINE_FAILURE

    data = result.to_dict()
    if not args.include_lines:
        data.pop('ocr_lines', None)
    emit(data, args.output)
    return EXIT_OK


def cmd_validate(args: argparse.Namespace) -> int:
    image_bytes = read_file(args.image)
    options = build_options(args)
    result = validate_image(image_bytes, options.validation)
    emit(result.to_dict(), args.output)
    return EXIT_OK if result.is_valid else EXIT_INVALID_INPUT


def cmd_parse_text(args: argparse.Namespace) -> int:
    raw = read_file(args.file)
    text = raw.decode('utf-8', errors='replace')
    lines: List[OcrLine] = split_text_lines(text, args.confidence)

    options = build_options(args)
    service = ReceiptService(engine=None, options=options)
    result = service.analyze_lines(lines)
    emit(result.to_dict(), args.output)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Receipt understanding pipeline")
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-dir", default="logs", help="Directory for log files")
    parser.add_argument("--log-to-file", action="store_true", help="Also write logs to files")
    parser.add_argument("--log-json", action="store_true", help="Emit console logs as JSON")

    subparsers = parser.add_subparsers(dest="command", required=True)

    process = subparsers.add_parser("process", help="Process a receipt image")
    process.add_argument("image", help="Path to a JPEG, PNG or WebP receipt image")
    process.add_argument("--engine", choices=[e.value for e in OCREngineType], default=None,
                         help="Recognition engine (defaults to OCR_ENGINE or tesseract)")
    process.add_argument("--level", choices=[level.value for level in PreprocessingLevel],
                         help="Preprocessing level")
    process.add_argument("--no-validate", action="store_true", help="Skip the image quality gate")
    process.add_argument("--no-preprocess", action="store_true", help="Send the original image to the engine")
    process.add_argument("--allow-low-quality", action="store_true",
                         help="Continue when the image fails quality checks")
    process.add_argument("--lang", default=None, help="Recognition language (e.g. eng)")
    process.add_argument("--psm", type=int, default=None, help="Page segmentation mode")
    process.add_argument("--include-lines", action="store_true", help="Include recognized lines in output")
    process.add_argument("--debug-images", action="store_true", help="Save intermediate preprocessing images")
    process.add_argument("--output", "-o", default=None, help="Write JSON result to a file")
    process.set_defaults(func=cmd_process)

    validate = subparsers.add_parser("validate", help="Check image quality only")
    validate.add_argument("image", help="Path to an image")
    validate.add_argument("--output", "-o", default=None, help="Write JSON result to a file")
    validate.set_defaults(func=cmd_validate)

    parse_text = subparsers.add_parser("parse-text", help="Parse recognized text from a file")
    parse_text.add_argument("file", help="Text file with one recognized line per line")
    parse_text.add_argument("--confidence", type=float, default=0.9,
                            help="Confidence assigned to every line (0-1)")
    parse_text.add_argument("--output", "-o", default=None, help="Write JSON result to a file")
    parse_text.set_defaults(func=cmd_parse_text)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI function."""
    parser = build_parser()
    args = parser.parse_args(argv)

    load_dotenv(args.env_file)
    setup_logging(log_dir=args.log_dir, debug_mode=args.debug,
                  log_to_file=args.log_to_file, json_format=args.log_json)

    if getattr(args, 'confidence', None) is not None and not 0.0 <= args.confidence <= 1.0:
        parser.error("--confidence must be between 0 and 1")

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
