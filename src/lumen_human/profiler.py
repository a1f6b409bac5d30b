"""
Per-stage timing and live-tensor leak checks.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager

from .engine import TensorEngine
from .results import PerfReport

logger = logging.getLogger(__name__)


class PerformanceProfiler:
    """Accumulate integer-millisecond stage durations for one call."""

    def __init__(self) -> None:
        self._report: PerfReport = {}

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.add(name, time.perf_counter() - start)

    def add(self, name: str, seconds: float) -> None:
        self._report[name] = self._report.get(name, 0) + int(seconds * 1000)

    @property
    def report(self) -> PerfReport:
        return dict(self._report)


class MemoryGuard:
    """Log when the engine's live tensor count changes across a boundary.

    Disabled guards do nothing. A guard never raises.
    """

    def __init__(self, engine: TensorEngine, enabled: bool = False):
        self.engine = engine
        self.enabled = enabled
        self._baseline = engine.num_tensors if enabled else 0

    def check(self, label: str) -> int:
        """Compare against the previous checkpoint and move the baseline.

        Returns:
            int: The delta in live tensors since the previous checkpoint.
        """
        if not self.enabled:
            return 0
        current = self.engine.num_tensors
        delta = current - self._baseline
        if delta != 0:
            logger.warning("Live tensors changed by %+d at %s (now %d)", delta, label, current)
        self._baseline = current
        return delta


__all__ = ["MemoryGuard", "PerformanceProfiler"]
