"""
Tests for stage timing and leak instrumentation.
"""

import logging
from unittest.mock import patch

import numpy as np

from lumen_human.profiler import MemoryGuard, PerformanceProfiler


class TestPerformanceProfiler:
    def test_stage_records_integer_milliseconds(self):
        profiler = PerformanceProfiler()

        with patch("lumen_human.profiler.time.perf_counter", side_effect=[1.0, 1.0255]):
            with profiler.stage("face"):
                pass

        assert profiler.report == {"face": 25}

    def test_stages_accumulate(self):
        profiler = PerformanceProfiler()
        profiler.add("emotion", 0.010)
        profiler.add("emotion", 0.0151)

        assert profiler.report["emotion"] == 25

    def test_stage_recorded_on_error(self):
        profiler = PerformanceProfiler()

        try:
            with profiler.stage("body"):
                raise ValueError("boom")
        except ValueError:
            pass

        assert "body" in profiler.report
        assert profiler.report["body"] >= 0

    def test_report_is_a_copy(self):
        profiler = PerformanceProfiler()
        profiler.add("image", 0.002)

        profiler.report["image"] = 100
        assert profiler.report["image"] == 2


class TestMemoryGuard:
    def test_disabled_guard_is_silent(self, engine, caplog):
        guard = MemoryGuard(engine, enabled=False)
        engine.tensor([1])

        with caplog.at_level(logging.WARNING):
            assert guard.check("image") == 0
        assert caplog.records == []

    def test_logs_delta(self, engine, caplog):
        guard = MemoryGuard(engine, enabled=True)
        t = engine.tensor(np.zeros(3))

        with caplog.at_level(logging.WARNING, logger="lumen_human.profiler"):
            assert guard.check("image") == 1
            t.dispose()
            assert guard.check("dispose") == -1
            assert guard.check("idle") == 0

        messages = [r.getMessage() for r in caplog.records]
        assert len(messages) == 2
        assert "+1 at image" in messages[0]
        assert "-1 at dispose" in messages[1]
