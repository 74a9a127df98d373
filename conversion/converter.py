"""
High-level conversion orchestration.

Discovers headers and sources, parses them in parallel, merges every unit at
a single barrier, then renders and writes one C# file per output unit.
"""

import contextvars
import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from conversion.config import (
    DEFAULT_NAMESPACE,
    DIAG_IO_FAILURE,
    DIAG_PARSE_FAILURE,
    DIAG_UNRECOGNIZED_SYNTAX,
    HEADER_EXTENSIONS,
    OUTPUT_EXTENSION,
    SKIP_DIRECTORIES,
    SOURCE_EXTENSIONS,
)
from conversion.generator import CsGenerator
from conversion.header_parser import parse_header_unit
from conversion.merger import MergeResult, merge_units
from conversion.models import Diagnostic, HeaderParseError, HeaderUnit, SourceUnit
from conversion.source_parser import parse_source_file
from conversion.type_converter import TypeConverter
from core.conversion_config import ConversionConfig, resolve_output_dir
from core.structured_logging import phase_scope

logger = logging.getLogger(__name__)

_Unit = TypeVar("_Unit", HeaderUnit, SourceUnit)


class ConversionStats:
    """Statistics for a conversion run."""

    def __init__(self):
        self.files_processed = 0
        self.files_failed = 0
        self.classes_converted = 0
        self.files_written = 0
        self.parse_errors = 0
        self.diagnostics = 0

    def to_dict(self) -> Dict[str, int]:
        """Convert stats to dictionary."""
        return {
            "files_processed": self.files_processed,
            "files_failed": self.files_failed,
            "classes_converted": self.classes_converted,
            "files_written": self.files_written,
            "parse_errors": self.parse_errors,
            "diagnostics": self.diagnostics,
        }

    def __str__(self) -> str:
        return (
            f"ConversionStats(processed={self.files_processed}, "
            f"failed={self.files_failed}, "
            f"classes={self.classes_converted}, "
            f"written={self.files_written}, "
            f"parse_errors={self.parse_errors}, "
            f"diagnostics={self.diagnostics})"
        )


class ConversionReport:
    """Outcome of one conversion run.

    Attributes:
        stats: Counters for the run.
        diagnostics: Every diagnostic in file, then discovery order.
        generated_files: Absolute paths of the written ``.cs`` files.
        output_path: Root directory the files were written under.
    """

    def __init__(self, output_path: str):
        self.stats = ConversionStats()
        self.diagnostics: List[Diagnostic] = []
        self.generated_files: List[str] = []
        self.output_path = output_path

    @property
    def all_failed(self) -> bool:
        total = self.stats.files_processed + self.stats.files_failed
        return total > 0 and self.stats.files_processed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output_path": self.output_path,
            "stats": self.stats.to_dict(),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "generated_files": list(self.generated_files),
        }


def discover_files(directory: str) -> Tuple[List[str], List[str]]:
    """Recursively discover headers and sources in a directory.

    Hidden directories and build/output directories are skipped.

    Args:
        directory: Root directory to search.

    Returns:
        Sorted lists of absolute header paths and source paths.
    """
    headers: List[str] = []
    sources: List[str] = []
    directory = os.path.abspath(directory)

    for root, dirs, files in os.walk(directory):
        dirs[:] = [d for d in dirs if not d.startswith(".") and d not in SKIP_DIRECTORIES]
        for filename in files:
            ext = os.path.splitext(filename)[1].lower()
            if ext in HEADER_EXTENSIONS:
                headers.append(os.path.join(root, filename))
            elif ext in SOURCE_EXTENSIONS:
                sources.append(os.path.join(root, filename))

    headers.sort()
    sources.sort()
    logger.info(f"Discovered {len(headers)} headers and {len(sources)} sources in {directory}")
    return headers, sources


def _collect_result(
    path: str,
    future: "Future[_Unit]",
    report: ConversionReport,
    continue_on_error: bool,
) -> Optional[_Unit]:
    """Collect one parse result, recording a failure on the report."""
    stats = report.stats
    try:
        unit = future.result()
        stats.files_processed += 1
        return unit

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        report.diagnostics.append(Diagnostic(DIAG_IO_FAILURE, f"File not found: {e}", path))
        stats.files_failed += 1
        if not continue_on_error:
            raise

    except UnicodeDecodeError as e:
        logger.error(f"Cannot decode {path}: {e}")
        report.diagnostics.append(Diagnostic(DIAG_IO_FAILURE, f"Cannot decode file: {e}", path))
        stats.files_failed += 1
        if not continue_on_error:
            raise

    except OSError as e:
        logger.error(f"Error reading {path}: {e}")
        report.diagnostics.append(Diagnostic(DIAG_IO_FAILURE, f"Read error: {e}", path))
        stats.files_failed += 1
        if not continue_on_error:
            raise

    except HeaderParseError as e:
        logger.error(f"Cannot parse {e.path or path} at line {e.line}: {e}")
        report.diagnostics.append(Diagnostic(DIAG_PARSE_FAILURE, str(e), e.path or path, e.line))
        stats.files_failed += 1
        if not continue_on_error:
            raise

    except ValueError as e:
        logger.error(f"Invalid file {path}: {e}")
        report.diagnostics.append(Diagnostic(DIAG_PARSE_FAILURE, str(e), path))
        stats.files_failed += 1
        if not continue_on_error:
            raise

    except Exception as e:
        logger.error(f"Unexpected error processing {path}: {e}", exc_info=True)
        report.diagnostics.append(Diagnostic(DIAG_PARSE_FAILURE, f"Unexpected error: {e}", path))
        stats.files_failed += 1
        if not continue_on_error:
            raise

    return None


def _parse_all(
    paths: Sequence[str],
    parse: Callable[[str], _Unit],
    report: ConversionReport,
    config: ConversionConfig,
) -> List[_Unit]:
    """Parse files on a thread pool and gather results in path order."""
    if not paths:
        return []

    units: List[_Unit] = []
    workers = max(1, min(config.max_workers, len(paths)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        # Each task runs in a copy of the caller context so logs keep the run id
        futures = [pool.submit(contextvars.copy_context().run, parse, path) for path in paths]
        for path, future in zip(paths, futures):
            unit = _collect_result(path, future, report, config.continue_on_error)
            if unit is not None:
                units.append(unit)
    return units


def _log_diagnostics(diagnostics: Sequence[Diagnostic]) -> None:
    for diagnostic in diagnostics:
        if diagnostic.kind == DIAG_UNRECOGNIZED_SYNTAX:
            logger.debug("%s", diagnostic)
        else:
            logger.warning("%s", diagnostic)


def _common_root(paths: Sequence[str]) -> str:
    directories = [os.path.dirname(os.path.abspath(p)) for p in paths]
    if not directories:
        return os.getcwd()
    return os.path.commonpath(directories)


def _write_outputs(
    merged: MergeResult,
    generator: CsGenerator,
    input_root: str,
    output_path: str,
    report: ConversionReport,
) -> None:
    """Render every merged header and write its units under ``output_path``."""
    written: Dict[str, str] = {}
    rendered: List[Tuple[str, str]] = []

    with phase_scope("generate"):
        for header in merged.headers:
            if not header.classes and not header.structs and not header.unit.fragments:
                logger.debug("Header %s has no classes or structs; nothing to emit", header.unit.path)
                continue
            relative_dir = os.path.relpath(os.path.dirname(header.unit.path), input_root)
            target_dir = os.path.normpath(os.path.join(output_path, relative_dir))
            for stem, text in generator.generate_unit_outputs(header).items():
                target = os.path.join(target_dir, stem + OUTPUT_EXTENSION)
                if target in written:
                    renamed = os.path.join(target_dir, f"{stem}_{header.stem}{OUTPUT_EXTENSION}")
                    logger.warning(
                        "Output %s already produced by %s; writing %s instead",
                        target,
                        written[target],
                        renamed,
                    )
                    target = renamed
                written[target] = header.unit.path
                rendered.append((target, text))
            report.stats.classes_converted += len(header.classes)

    with phase_scope("write"):
        for target, text in rendered:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "w", encoding="utf-8", newline="\n") as f:
                f.write(text)
            report.generated_files.append(target)
            report.stats.files_written += 1
            logger.debug("Wrote %s", target)


def convert_files(
    header_files: Sequence[str],
    source_files: Sequence[str],
    output_path: str,
    config: Optional[ConversionConfig] = None,
    input_root: Optional[str] = None,
) -> ConversionReport:
    """Convert an explicit set of headers and sources.

    Args:
        header_files: Header paths.
        source_files: Implementation file paths.
        output_path: Root directory for the generated files.
        config: Conversion settings; defaults when omitted.
        input_root: Directory the output layout mirrors. Defaults to the
            common directory of the headers.

    Returns:
        The run's ``ConversionReport``.

    Raises:
        OSError, HeaderParseError: When a file fails and
            ``config.continue_on_error`` is False.
    """
    config = config or ConversionConfig()
    output_path = os.path.abspath(output_path)
    report = ConversionReport(output_path)
    headers = sorted(os.path.abspath(p) for p in header_files)
    sources = sorted(os.path.abspath(p) for p in source_files)
    input_root = os.path.abspath(input_root) if input_root else _common_root(headers)

    with phase_scope("parse"):
        header_units = _parse_all(headers, parse_header_unit, report, config)
        source_units = _parse_all(sources, parse_source_file, report, config)
    for unit in header_units:
        report.diagnostics.extend(unit.diagnostics)
    for unit in source_units:
        report.diagnostics.extend(unit.diagnostics)
        report.stats.parse_errors += unit.parse_error_count

    with phase_scope("merge"):
        merged = merge_units(header_units, source_units)
    report.diagnostics.extend(merged.diagnostics)
    _log_diagnostics(report.diagnostics)

    generator = CsGenerator(
        namespace=config.namespace or DEFAULT_NAMESPACE,
        type_converter=TypeConverter(config.type_mappings),
    )
    _write_outputs(merged, generator, input_root, output_path, report)

    report.stats.diagnostics = len(report.diagnostics)
    logger.info(f"Conversion complete: {report.stats}")
    return report


def convert_directory_report(
    input_path: str,
    output_path: Optional[str] = None,
    config: Optional[ConversionConfig] = None,
) -> ConversionReport:
    """Convert every header and source under a directory.

    The output directory is ``output_path``, else ``config.output_dir``,
    else the ``CPP2CS_OUTPUT_DIR`` environment variable, else
    ``<input_path>/converted``.

    Raises:
        FileNotFoundError: If ``input_path`` is not a directory.
    """
    config = config or ConversionConfig()
    input_path = os.path.abspath(input_path)
    if not os.path.isdir(input_path):
        raise FileNotFoundError(f"Input directory not found: {input_path}")

    output_path = resolve_output_dir(input_path, output_path or config.output_dir)
    with phase_scope("discover"):
        headers, sources = discover_files(input_path)
    return convert_files(headers, sources, output_path, config, input_root=input_path)


def convert_directory(
    input_path: str,
    output_path: Optional[str] = None,
    config: Optional[ConversionConfig] = None,
) -> str:
    """Convert a C++ directory tree to C# and return the output directory.

    Example:
        >>> out = convert_directory("legacy/src")
        >>> sorted(os.listdir(out))
        ['CSample.cpp.cs', 'CSample.cs']
    """
    return convert_directory_report(input_path, output_path, config).output_path
