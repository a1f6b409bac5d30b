"""
Pytest configuration and shared fixtures for Lumen Human tests.

Provides a CPU-only tensor engine, a runtime without entry-point discovery,
and fake capability models that record their calls, so the orchestrator can
be exercised without any model files.
"""

import asyncio
from unittest.mock import Mock

import numpy as np
import pytest

from lumen_human.capabilities import Capability, CapabilityModel, FaceCandidate
from lumen_human.engine import TensorEngine
from lumen_human.human import Human
from lumen_human.results import EmotionScore, GenderPrediction
from lumen_human.runtime import RuntimeContext


def iris_group(x_left, x_right, y=0.0):
    """Five iris points (bottom, left, top, right, center) with the given x span."""
    center = (x_left + x_right) / 2
    return [(center, y + 1, 0.0), (x_left, y, 0.0), (center, y - 1, 0.0), (x_right, y, 0.0), (center, y, 0.0)]


class FakeModel(CapabilityModel):
    """Base for fake models: records every call and the config it saw."""

    def __init__(self, result=None, delay=0.0, events=None, error=None):
        self.result = result
        self.delay = delay
        self.events = events
        self.error = error
        self.calls = 0
        self.configs = []

    async def predict(self, image, config):
        self.calls += 1
        self.configs.append(config)
        name = self.capability.value
        if self.events is not None:
            self.events.append(f"{name}:start")
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.events is not None:
            self.events.append(f"{name}:end")
        if self.error is not None:
            raise self.error
        return self.output(image, config)

    def output(self, image, config):
        return self.result


class FakeFaceDetector(FakeModel):
    """Emits one candidate per entry in ``faces``, each with its own crop tensor."""

    capability = Capability.FACE

    def __init__(self, faces=None, **kwargs):
        super().__init__(**kwargs)
        self.faces = faces if faces is not None else [{}]
        self.candidates = []

    def output(self, image, config):
        candidates = []
        for i, spec in enumerate(self.faces):
            crop = None
            if spec.get("crop", True):
                crop = image.engine.tensor(np.full((1, 16, 16, 3), 0.5, dtype=np.float32))
                if spec.get("disposed", False):
                    crop.dispose()
            candidates.append(
                FaceCandidate(
                    confidence=spec.get("confidence", 0.9),
                    box=(10.0 * i, 10.0, 20.0, 20.0),
                    mesh=[(1.0, 2.0, 3.0)],
                    annotations=spec.get("annotations", {}),
                    image=crop,
                )
            )
        self.candidates.extend(candidates)
        return candidates


class FakeAgeModel(FakeModel):
    capability = Capability.AGE


class FakeGenderModel(FakeModel):
    capability = Capability.GENDER


class FakeEmotionModel(FakeModel):
    capability = Capability.EMOTION


class FakeBodyModel(FakeModel):
    capability = Capability.BODY


class FakeHandModel(FakeModel):
    capability = Capability.HAND


class LeakyBodyModel(FakeBodyModel):
    """Allocates a tensor per call and never disposes it."""

    def output(self, image, config):
        image.engine.tensor(np.zeros((4, 4), dtype=np.float32))
        return [{"score": 0.5}]


def make_loader(model, counter=None, delay=0.0):
    """Async loader returning ``model``; ``counter`` is a Mock tracking calls."""
    counter = counter if counter is not None else Mock()

    async def loader(config, engine):
        counter(config, engine)
        if delay:
            await asyncio.sleep(delay)
        return model

    loader.counter = counter
    return loader


@pytest.fixture
def engine():
    """Tensor engine that only sees the CPU execution provider."""
    return TensorEngine(provider_probe=lambda: ["CPUExecutionProvider"])


@pytest.fixture
def gpu_engine():
    """Tensor engine that sees CUDA and CPU execution providers."""
    return TensorEngine(provider_probe=lambda: ["CUDAExecutionProvider", "CPUExecutionProvider"])


@pytest.fixture
def runtime(engine):
    return RuntimeContext(engine=engine, discover_loaders=False)


@pytest.fixture
def models():
    """One fake model per capability."""
    return {
        Capability.FACE: FakeFaceDetector(),
        Capability.AGE: FakeAgeModel(result=25.0),
        Capability.GENDER: FakeGenderModel(result=GenderPrediction(gender="female", confidence=0.9)),
        Capability.EMOTION: FakeEmotionModel(result=[EmotionScore(emotion="happy", score=0.9)]),
        Capability.BODY: FakeBodyModel(result=[{"score": 0.8}]),
        Capability.HAND: FakeHandModel(result=[{"confidence": 0.7}]),
    }


@pytest.fixture
def human(runtime, models):
    """Orchestrator wired to the fake models."""
    for capability, model in models.items():
        runtime.registry.register_loader(capability, make_loader(model))
    return Human(runtime=runtime)


@pytest.fixture
def sample_image():
    """A 48x64 RGB frame with reproducible content."""
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, (48, 64, 3), dtype=np.uint8)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Add markers to tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
