"""Conversion settings contract.

Loads the optional YAML/JSON settings file consumed by the conversion
pipeline and resolves the output directory.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

OUTPUT_DIR_ENV_VAR = "CPP2CS_OUTPUT_DIR"
DEFAULT_OUTPUT_SUBDIR = "converted"
DEFAULT_REPORT_DIR = "output/conversion_reports"
DEFAULT_CONTINUE_ON_ERROR = True
DEFAULT_MAX_WORKERS = 4

_KNOWN_KEYS = {
    "namespace",
    "output_dir",
    "type_mappings",
    "continue_on_error",
    "max_workers",
    "report_dir",
}


class ConfigValidationError(RuntimeError):
    """Raised when a conversion settings file is invalid."""


@dataclass(frozen=True)
class ConversionConfig:
    """Settings for one conversion run.

    A ``namespace`` of ``None`` keeps the generator default.
    """

    namespace: Optional[str] = None
    output_dir: Optional[str] = None
    type_mappings: dict[str, str] = field(default_factory=dict)
    continue_on_error: bool = DEFAULT_CONTINUE_ON_ERROR
    max_workers: int = DEFAULT_MAX_WORKERS
    report_dir: str = DEFAULT_REPORT_DIR

    def with_overrides(self, **overrides: Any) -> "ConversionConfig":
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)


def _expect_dict(payload: Any, ctx: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ConfigValidationError(f"{ctx} must be an object")
    return payload


def _load_config_payload(path: str) -> dict[str, Any]:
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigValidationError(f"Conversion config not found: {config_path}")

    text = config_path.read_text(encoding="utf-8")
    try:
        if config_path.suffix.lower() == ".json":
            payload = json.loads(text)
        else:
            payload = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigValidationError(f"Failed to parse conversion config {config_path}: {exc}") from exc

    if payload is None:
        return {}
    return _expect_dict(payload, "conversion config")


def _type_mappings(raw: Any) -> dict[str, str]:
    mappings = _expect_dict(raw, "type_mappings")
    result: dict[str, str] = {}
    for source, target in mappings.items():
        if not isinstance(target, str) or not str(source).strip() or not target.strip():
            raise ConfigValidationError(f"type_mappings entry '{source}' must map to a non-empty string")
        result[str(source)] = target
    return result


def load_conversion_config(path: Optional[str] = None) -> ConversionConfig:
    """Load conversion settings from a YAML or JSON file.

    Args:
        path: Settings file path. ``None`` returns the defaults.

    Returns:
        Validated ``ConversionConfig``.

    Raises:
        ConfigValidationError: If the file is missing, unparsable, or holds
            values of the wrong type.
    """
    if path is None:
        return ConversionConfig()

    payload = _load_config_payload(path)
    unknown = sorted(set(payload) - _KNOWN_KEYS)
    if unknown:
        logger.warning("Ignoring unknown conversion config keys: %s", ", ".join(unknown))

    namespace = payload.get("namespace")
    if namespace is not None and (not isinstance(namespace, str) or not namespace.strip()):
        raise ConfigValidationError("namespace must be a non-empty string")

    output_dir = payload.get("output_dir")
    if output_dir is not None and not isinstance(output_dir, str):
        raise ConfigValidationError("output_dir must be a string")

    continue_on_error = payload.get("continue_on_error", DEFAULT_CONTINUE_ON_ERROR)
    if not isinstance(continue_on_error, bool):
        raise ConfigValidationError("continue_on_error must be a boolean")

    max_workers = payload.get("max_workers", DEFAULT_MAX_WORKERS)
    if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
        raise ConfigValidationError("max_workers must be a positive integer")

    report_dir = payload.get("report_dir", DEFAULT_REPORT_DIR)
    if not isinstance(report_dir, str) or not report_dir.strip():
        raise ConfigValidationError("report_dir must be a non-empty string")

    return ConversionConfig(
        namespace=namespace.strip() if namespace else None,
        output_dir=output_dir,
        type_mappings=_type_mappings(payload.get("type_mappings") or {}),
        continue_on_error=continue_on_error,
        max_workers=max_workers,
        report_dir=report_dir,
    )


def resolve_output_dir(input_path: str, output_path: Optional[str] = None) -> str:
    """Resolve the output directory: argument, then env var, then default."""
    if output_path:
        return os.path.abspath(output_path)
    env_value = os.getenv(OUTPUT_DIR_ENV_VAR)
    if env_value and env_value.strip():
        return os.path.abspath(env_value.strip())
    return os.path.join(os.path.abspath(input_path), DEFAULT_OUTPUT_SUBDIR)
