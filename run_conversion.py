#!/usr/bin/env python3
"""
Command-line entry point for C++ to C# structural conversion.

Converts every header and implementation file under an input directory and
writes one C# file per output unit, then a JSON run report.

Usage:
    python run_conversion.py --input-dir ./legacy/src
    python run_conversion.py --input-dir ./legacy/src --output-dir ./out/cs --namespace Legacy.Core
    python run_conversion.py --input-dir ./legacy/src --config conversion.yaml --fail-fast
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Optional

from dotenv import load_dotenv

from conversion.converter import ConversionReport, convert_directory_report
from core.conversion_config import (
    ConfigValidationError,
    ConversionConfig,
    load_conversion_config,
)
from core.run_artifacts import write_run_report
from core.structured_logging import configure_structured_logging, set_run_id

logger = logging.getLogger(__name__)


def _final_status(report: ConversionReport) -> str:
    stats = report.stats
    if report.all_failed:
        return "failed"
    if stats.files_failed > 0:
        return "partial_success"
    return "success"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        description="C++ header/source to C# structural converter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python run_conversion.py --input-dir ./src\n"
            "  python run_conversion.py --input-dir ./src --output-dir ./cs --namespace Legacy\n"
        ),
    )
    parser.add_argument(
        "--input-dir",
        required=True,
        help="Directory holding the C++ headers and sources to convert.",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Output directory. Default: $CPP2CS_OUTPUT_DIR or <input-dir>/converted",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Optional YAML/JSON conversion settings file.",
    )
    parser.add_argument(
        "--namespace",
        default=None,
        help="C# namespace written to every generated file.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Parallel parse workers.",
    )
    parser.add_argument(
        "--report-dir",
        default=None,
        help="Directory for the JSON run report. Default: output/conversion_reports",
    )
    parser.add_argument(
        "--fail-fast",
        action="store_false",
        dest="continue_on_error",
        default=None,
        help="Abort on the first file that cannot be read or parsed.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Log at DEBUG level, including unrecognized-syntax diagnostics.",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ConversionConfig:
    """Load the settings file and apply command-line overrides."""
    config = load_conversion_config(args.config)
    if args.workers is not None and args.workers < 1:
        raise ConfigValidationError("--workers must be a positive integer")
    return config.with_overrides(
        namespace=args.namespace,
        max_workers=args.workers,
        report_dir=args.report_dir,
        continue_on_error=args.continue_on_error,
    )


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the converter."""
    # CPP2CS_OUTPUT_DIR may come from a .env file
    load_dotenv()
    args = parse_args(argv)
    configure_structured_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    run_id = set_run_id()

    logger.info("*" * 80)
    logger.info(" C++ to C# Structural Conversion")
    logger.info("*" * 80)

    run_report: dict[str, Any] = {
        "run_id": run_id,
        "pipeline": "conversion",
        "input_dir": args.input_dir,
        "status": "failed",
    }
    report_dir = args.report_dir
    try:
        config = build_config(args)
        report_dir = config.report_dir
        result = convert_directory_report(args.input_dir, args.output_dir, config)
        run_report.update(result.to_dict())
        run_report["status"] = _final_status(result)
        logger.info(f"Output directory : {result.output_path}")
        logger.info(f"Final stats      : {result.stats}")
    except ConfigValidationError as e:
        run_report["error"] = str(e)
        logger.error(f"Configuration error: {e}")
    except FileNotFoundError as e:
        run_report["error"] = str(e)
        logger.error(f"File error: {e}")
    except Exception as e:
        run_report["error"] = str(e)
        logger.error(f"Conversion failed: {e}", exc_info=True)

    report_path = write_run_report(run_report, run_id, output_dir=report_dir or ConversionConfig().report_dir)
    logger.info("Run report written: %s", report_path)
    if run_report["status"] == "failed":
        sys.exit(1)


if __name__ == "__main__":
    main()
