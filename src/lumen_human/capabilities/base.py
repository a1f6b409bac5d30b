"""
Capability contract for Lumen Human models.

Every model the orchestrator drives is a ``CapabilityModel``: it is created
by an async loader ``loader(config, engine) -> model`` and exposes a single
async ``predict(image, config)`` entry point. The orchestrator never looks
inside a model.

Return types by capability:
    FACE     list[FaceCandidate]
    BODY     list of body-pose predictions (plain data)
    HAND     list of hand-pose predictions (plain data)
    AGE      float | None
    GENDER   GenderPrediction
    EMOTION  list[EmotionScore]
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from ..engine import Tensor, TensorEngine

if TYPE_CHECKING:
    from ..config import HumanConfig


class Capability(str, Enum):
    """Independently loadable inference functions."""

    FACE = "face"
    BODY = "body"
    HAND = "hand"
    AGE = "age"
    GENDER = "gender"
    EMOTION = "emotion"


@dataclass
class FaceCandidate:
    """A face found by the face detector, before the per-face sub-stages.

    Attributes:
        confidence: Detection confidence.
        box: Bounding box as (x, y, width, height).
        mesh: Landmark mesh points.
        annotations: Named landmark groups. Iris groups hold five points
            ordered (bottom, left, top, right, center).
        image: Cropped face tensor (1, h, w, 3) with values in [0, 1]. The
            orchestrator owns it once returned and disposes it.
    """

    confidence: float
    box: tuple[float, ...]
    mesh: list[tuple[float, ...]] = field(default_factory=list)
    annotations: dict[str, list[tuple[float, ...]]] = field(default_factory=dict)
    image: Tensor | None = None


class CapabilityModel(ABC):
    """A loaded model instance, shared read-only by concurrent calls."""

    capability: ClassVar[Capability]

    @abstractmethod
    async def predict(self, image: Tensor, config: HumanConfig) -> Any:
        """Run inference on a tensor without taking ownership of it."""


CapabilityLoader = Callable[["HumanConfig", TensorEngine], Awaitable[CapabilityModel]]


__all__ = [
    "Capability",
    "CapabilityLoader",
    "CapabilityModel",
    "FaceCandidate",
]
