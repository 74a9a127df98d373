"""Tests for run/phase context on log records."""

import contextvars
import logging
import unittest

from core.structured_logging import (
    _RunContextFilter,
    get_phase,
    get_run_id,
    phase_scope,
    set_run_id,
)


class TestStructuredLogging(unittest.TestCase):
    def test_set_run_id_generates(self) -> None:
        ctx = contextvars.copy_context()
        run_id = ctx.run(set_run_id)
        self.assertEqual(len(run_id), 12)
        self.assertEqual(ctx.run(get_run_id), run_id)

    def test_set_run_id_explicit(self) -> None:
        ctx = contextvars.copy_context()
        self.assertEqual(ctx.run(set_run_id, "run-1"), "run-1")
        self.assertEqual(ctx.run(get_run_id), "run-1")

    def test_phase_scope_resets(self) -> None:
        self.assertEqual(get_phase(), "-")
        with phase_scope("parse"):
            self.assertEqual(get_phase(), "parse")
            with phase_scope("merge"):
                self.assertEqual(get_phase(), "merge")
            self.assertEqual(get_phase(), "parse")
        self.assertEqual(get_phase(), "-")

    def test_phase_scope_resets_on_error(self) -> None:
        with self.assertRaises(RuntimeError):
            with phase_scope("write"):
                raise RuntimeError("boom")
        self.assertEqual(get_phase(), "-")

    def test_filter_injects_context(self) -> None:
        def emit() -> logging.LogRecord:
            set_run_id("run-9")
            record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
            with phase_scope("generate"):
                _RunContextFilter().filter(record)
            return record

        record = contextvars.copy_context().run(emit)
        self.assertEqual(record.run_id, "run-9")
        self.assertEqual(record.phase, "generate")


if __name__ == "__main__":
    unittest.main()
