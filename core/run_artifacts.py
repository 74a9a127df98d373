"""JSON report written at the end of every conversion run."""

from __future__ import annotations

import json
import os
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Iterable

from core.conversion_config import DEFAULT_REPORT_DIR


def count_diagnostic_kinds(diagnostics: Iterable[dict[str, Any]]) -> dict[str, int]:
    """Diagnostic totals per ``kind``, sorted by kind name."""
    counts = Counter(d.get("kind", "unknown") for d in diagnostics)
    return dict(sorted(counts.items()))


def write_run_report(
    report: dict[str, Any],
    run_id: str,
    output_dir: str = DEFAULT_REPORT_DIR,
) -> str:
    """Write ``conversion_<run_id>.json`` under ``output_dir`` and return its path.

    ``run_id`` and ``timestamp_utc`` are filled in unless the report already
    has them, and a report listing diagnostics also gets per-kind totals
    under ``diagnostic_counts``. Keys are sorted so two reports of the same
    input differ only in run id and timestamp.
    """
    os.makedirs(output_dir, exist_ok=True)
    payload = dict(report)
    payload.setdefault("run_id", run_id)
    payload.setdefault("timestamp_utc", datetime.now(timezone.utc).isoformat())
    if "diagnostics" in payload:
        payload["diagnostic_counts"] = count_diagnostic_kinds(payload["diagnostics"])

    path = os.path.join(output_dir, f"conversion_{run_id}.json")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True)
    return path
