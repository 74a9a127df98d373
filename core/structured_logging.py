"""Structured logging helpers with conversion run context.

Every record carries the run id of the conversion and the pipeline phase
(``discover``, ``parse``, ``merge``, ``generate``, ``write``) it was emitted in.
"""

from __future__ import annotations

import contextvars
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)

PIPELINE_PHASES = ("discover", "parse", "merge", "generate", "write")

_RUN_ID_VAR: contextvars.ContextVar[str] = contextvars.ContextVar(
    "run_id", default="-"
)
_PHASE_VAR: contextvars.ContextVar[str] = contextvars.ContextVar(
    "phase", default="-"
)

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | run_id=%(run_id)s | phase=%(phase)s | "
    "%(name)s | %(message)s"
)


class _RunContextFilter(logging.Filter):
    """Inject run and phase fields into all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _RUN_ID_VAR.get("-")
        record.phase = _PHASE_VAR.get("-")
        return True


def _ensure_filter_on_root_handlers() -> None:
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if not any(isinstance(f, _RunContextFilter) for f in handler.filters):
            handler.addFilter(_RunContextFilter())


def configure_structured_logging(level: int = logging.INFO) -> None:
    """Configure root logging format with run/phase context."""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    else:
        root_logger.setLevel(level)
        formatter = logging.Formatter(LOG_FORMAT)
        for handler in root_logger.handlers:
            handler.setFormatter(formatter)
    _ensure_filter_on_root_handlers()


def set_run_id(run_id: str | None = None) -> str:
    """Set or generate the conversion run ID."""
    value = run_id or uuid.uuid4().hex[:12]
    _RUN_ID_VAR.set(value)
    return value


def get_run_id() -> str:
    """Get the current conversion run ID."""
    return _RUN_ID_VAR.get("-")


def get_phase() -> str:
    """Get the pipeline phase of the current context."""
    return _PHASE_VAR.get("-")


@contextmanager
def phase_scope(phase: str) -> Iterator[None]:
    """Set the pipeline phase for logs emitted inside the block.

    The elapsed time of the phase is logged at DEBUG on exit.
    """
    if phase not in PIPELINE_PHASES:
        logger.debug("Entering non-standard phase %s", phase)
    token = _PHASE_VAR.set(phase)
    started = time.perf_counter()
    try:
        yield
    finally:
        logger.debug("Phase %s finished in %.3fs", phase, time.perf_counter() - started)
        _PHASE_VAR.reset(token)
