"""Core shared utilities: conversion settings, run logging and reports."""

from core.structured_logging import (
    configure_structured_logging,
    get_phase,
    get_run_id,
    phase_scope,
    set_run_id,
)
from core.conversion_config import (
    ConfigValidationError,
    ConversionConfig,
    load_conversion_config,
    resolve_output_dir,
)
from core.run_artifacts import write_run_report

__all__ = [
    "configure_structured_logging",
    "get_phase",
    "get_run_id",
    "phase_scope",
    "set_run_id",
    "ConfigValidationError",
    "ConversionConfig",
    "load_conversion_config",
    "resolve_output_dir",
    "write_run_report",
]
