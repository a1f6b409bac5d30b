"""
Detection Orchestrator for Lumen Human.

``Human`` drives one detection per ``detect`` call: it resolves the effective
configuration, aligns the compute backend, makes sure every enabled model is
loaded, normalizes the input into the canonical frame and runs the enabled
capabilities over it:

- the face branch: face detector, then for every face its age and gender,
  its emotion and its iris distance, each face crop disposed as soon as its
  predictions are done
- the body and hand branches, run one after the other or concurrently
  depending on the ``concurrent`` (``async``) option

Every tensor the orchestrator owns (the canonical frame and the face crops)
is released on every exit path. With ``scoped`` enabled, the call also runs
inside a tensor arena that reclaims anything left undisposed.

Usage:
    human = Human({"backend": "cpu", "body": {"enabled": False}})
    human.runtime.registry.register_loader(Capability.FACE, load_face_detector)
    result = await human.detect("photo.jpg", {"videoOptimized": False})
"""

from __future__ import annotations

import asyncio
import logging
import math
import sys
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping, Sequence
from contextlib import ExitStack
from importlib.metadata import PackageNotFoundError, version
from typing import Any

import onnxruntime as ort

from .capabilities import Capability, FaceCandidate
from .config import DEFAULT_CONFIG, HumanConfig, merge_config, resolve
from .engine import Tensor, TensorEngine
from .exceptions import BackendNotFoundError, InvalidInputError
from .profiler import MemoryGuard, PerformanceProfiler
from .registry import is_enabled
from .results import DetectionResult, ErrorResult, FaceResult
from .runtime import RuntimeContext

logger = logging.getLogger(__name__)

try:
    __version__ = version("lumen-human")
except PackageNotFoundError:
    __version__ = "0.0.0"

# Average human iris diameter in millimetres.
IRIS_DIAMETER_MM = 11.7

Branch = Callable[[], Awaitable[list[Any]]]


def iris_distance(annotations: Mapping[str, Sequence[Sequence[float]]]) -> float:
    """Estimate the iris-derived distance metric from the eye iris landmarks.

    Each iris group holds five points; the horizontal span of an eye is the
    x distance between point 3 and point 1. The larger span of both eyes is
    used, and the result is truncated to two decimals.

    Returns:
        float: ``11.7 / span`` truncated, or 0.0 when no span is measurable.
    """
    left = annotations.get("left_eye_iris")
    right = annotations.get("right_eye_iris")
    if left is None or right is None or len(left) < 4 or len(right) < 4:
        return 0.0
    span = max(left[3][0] - left[1][0], right[3][0] - right[1][0])
    if span <= 0:
        return 0.0
    return math.trunc(100 * IRIS_DIAMETER_MM / span) / 100


class ExecutionStrategy(ABC):
    """How the independent body and hand branches are scheduled."""

    @abstractmethod
    async def run(self, branches: Sequence[Branch]) -> list[list[Any]]:
        """Run every branch and return their results in branch order."""


class SequentialStrategy(ExecutionStrategy):
    async def run(self, branches: Sequence[Branch]) -> list[list[Any]]:
        return [await branch() for branch in branches]


class ConcurrentStrategy(ExecutionStrategy):
    """Start all branches at once and wait for all of them.

    Every branch is awaited to completion even when one fails, so no branch
    is still reading the frame when the caller disposes it. The first
    failure is then re-raised.
    """

    async def run(self, branches: Sequence[Branch]) -> list[list[Any]]:
        results = await asyncio.gather(*(branch() for branch in branches), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)


def select_strategy(config: HumanConfig) -> ExecutionStrategy:
    return ConcurrentStrategy() if config.concurrent else SequentialStrategy()


class Human:
    """Multi-model detection pipeline over a single visual input.

    Attributes:
        version: Installed package version.
        config: Instance-level defaults that every call's overrides merge onto.
        runtime: Engine, backend manager, model registry and normalizer
            shared by all calls of this instance.
        state: Label of the stage currently running, for diagnostics only.
    """

    def __init__(
        self,
        user_config: Mapping[str, Any] | HumanConfig | None = None,
        runtime: RuntimeContext | None = None,
        check_sanity: bool = True,
        analyze_memory_leaks: bool = False,
    ):
        self.version = __version__
        self.config = merge_config(DEFAULT_CONFIG, user_config)
        self.runtime = runtime or RuntimeContext()
        self.check_sanity = check_sanity
        self.analyze_memory_leaks = analyze_memory_leaks
        self.state = "idle"
        self._first_run = True
        self._profile_data: dict[str, Any] = {}

    @property
    def engine(self) -> TensorEngine:
        return self.runtime.engine

    def _sanity_check(self, image: Any) -> str | None:
        if image is None:
            return "input is not defined"
        if self.engine.flags["IS_HEADLESS"] and not isinstance(image, Tensor):
            return "input must be a tensor"
        try:
            self.engine.get_backend()
        except BackendNotFoundError:
            return "backend not loaded"
        return None

    def _log_first_run(self, config: HumanConfig) -> None:
        log = logger.info if config.console else logger.debug
        log("version: %s", self.version)
        log("python: %s, onnxruntime: %s", sys.version.split()[0], ort.__version__)
        log("configuration: %s", config.model_dump(by_alias=True))
        log("flags: %s", self.engine.flags)
        self._first_run = False

    async def load(self, user_config: Mapping[str, Any] | HumanConfig | None = None) -> None:
        """Pre-warm the backend and every enabled model.

        Raises:
            BackendNotFoundError: If the configured backend is unavailable.
            ModelLoadingError: If an enabled model cannot be loaded.
        """
        config = resolve(self.config, user_config)
        await self.runtime.backend.ensure(config)
        if self._first_run:
            self._log_first_run(config)
        await self.runtime.registry.ensure_all(config)

    def profile(self) -> dict[str, Any]:
        """Latest profiling data, empty unless the ``profile`` option is on."""
        return dict(self._profile_data)

    async def detect(
        self,
        image: Any,
        user_config: Mapping[str, Any] | HumanConfig | None = None,
    ) -> DetectionResult | ErrorResult:
        """Run every enabled capability over one input.

        Args:
            image: A ``Tensor``, PIL image, NumPy array, encoded image bytes
                or an image file path.
            user_config: Per-call overrides merged onto ``self.config``.

        Returns:
            DetectionResult, or ErrorResult when the input fails validation.

        Raises:
            ConfigError: On invalid overrides or an unavailable backend.
            ModelLoadingError: If an enabled model cannot be loaded.
            InferenceError: If a model fails during inference.
        """
        start = time.perf_counter()
        profiler = PerformanceProfiler()
        try:
            self.state = "config"
            config = resolve(self.config, user_config)

            self.state = "check"
            if self.check_sanity:
                error = self._sanity_check(image)
                if error is not None:
                    logger.warning("Sanity check failed: %s", error)
                    return ErrorResult(error)

            self.state = "backend"
            with profiler.stage("backend"):
                await self.runtime.backend.ensure(config)
            if self._first_run:
                self._log_first_run(config)

            self.state = "load"
            with profiler.stage("load"):
                await self.runtime.registry.ensure_all(config)

            with ExitStack() as stack:
                if config.scoped:
                    stack.enter_context(self.engine.scope())
                result = await self._run_pipeline(image, config, profiler)
        finally:
            self.state = "idle"

        if isinstance(result, DetectionResult):
            profiler.add("total", time.perf_counter() - start)
            result.performance = profiler.report
            if config.profile:
                self._profile_data = {
                    "performance": result.performance,
                    "memory": self.engine.memory(),
                }
            else:
                self._profile_data = {}
        return result

    async def _run_pipeline(
        self, image: Any, config: HumanConfig, profiler: PerformanceProfiler
    ) -> DetectionResult | ErrorResult:
        guard = MemoryGuard(self.engine, self.analyze_memory_leaks)
        try:
            with profiler.stage("image"):
                normalized = self.runtime.normalizer.normalize(image, config)
        except InvalidInputError as e:
            logger.warning("Invalid input: %s", e)
            return ErrorResult(str(e))
        guard.check("image")

        frame = normalized.tensor
        try:
            faces, skipped = await self._detect_faces(frame, config, profiler)
            guard.check("face")

            body, hand = await select_strategy(config).run(
                [
                    lambda: self._run_branch(Capability.BODY, frame, config, profiler),
                    lambda: self._run_branch(Capability.HAND, frame, config, profiler),
                ]
            )
            guard.check("body/hand")
        finally:
            frame.dispose()
        guard.check("dispose")

        return DetectionResult(
            face=faces,
            body=body,
            hand=hand,
            preview=normalized.preview,
            skipped_faces=skipped,
        )

    async def _detect_faces(
        self, frame: Tensor, config: HumanConfig, profiler: PerformanceProfiler
    ) -> tuple[list[FaceResult], int]:
        registry = self.runtime.registry
        detector = registry.get(Capability.FACE)
        if detector is None or not is_enabled(Capability.FACE, config):
            return [], 0

        self.state = "run:face"
        with profiler.stage("face"):
            candidates: list[FaceCandidate] = list(await detector.predict(frame, config))

        age_model = registry.get(Capability.AGE) if is_enabled(Capability.AGE, config) else None
        gender_model = (
            registry.get(Capability.GENDER) if is_enabled(Capability.GENDER, config) else None
        )
        emotion_model = (
            registry.get(Capability.EMOTION) if is_enabled(Capability.EMOTION, config) else None
        )

        faces: list[FaceResult] = []
        skipped = 0
        try:
            for candidate in candidates:
                crop = candidate.image
                if crop is None or crop.is_disposed:
                    logger.warning("Face crop missing or already disposed, skipping face")
                    skipped += 1
                    continue

                age = None
                gender = None
                self.state = "run:agegender"
                with profiler.stage("agegender"):
                    if age_model is not None:
                        age = await age_model.predict(crop, config)
                    if gender_model is not None:
                        gender = await gender_model.predict(crop, config)

                emotion = []
                self.state = "run:emotion"
                with profiler.stage("emotion"):
                    if emotion_model is not None:
                        emotion = await emotion_model.predict(crop, config)

                crop.dispose()

                faces.append(
                    FaceResult(
                        confidence=candidate.confidence,
                        box=tuple(candidate.box),
                        mesh=list(candidate.mesh),
                        annotations=dict(candidate.annotations),
                        age=age,
                        gender=gender.gender if gender is not None else None,
                        gender_confidence=gender.confidence if gender is not None else None,
                        emotion=list(emotion),
                        iris=iris_distance(candidate.annotations),
                    )
                )
        finally:
            for candidate in candidates:
                if candidate.image is not None:
                    candidate.image.dispose()
        return faces, skipped

    async def _run_branch(
        self,
        capability: Capability,
        frame: Tensor,
        config: HumanConfig,
        profiler: PerformanceProfiler,
    ) -> list[Any]:
        model = self.runtime.registry.get(capability)
        if model is None or not is_enabled(capability, config):
            return []
        self.state = f"run:{capability.value}"
        with profiler.stage(capability.value):
            return list(await model.predict(frame, config))


__all__ = [
    "ConcurrentStrategy",
    "ExecutionStrategy",
    "Human",
    "SequentialStrategy",
    "iris_distance",
    "select_strategy",
]
