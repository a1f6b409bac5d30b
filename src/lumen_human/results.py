"""
Detection result types for Lumen Human.

Everything reachable from a ``DetectionResult`` is plain Python data
extracted before the tensors it came from were disposed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from PIL import Image

PerfReport = dict[str, int]


@dataclass(frozen=True)
class GenderPrediction:
    """Gender regressor output; ``gender`` is None below the confidence floor."""

    gender: str | None = None
    confidence: float | None = None


@dataclass(frozen=True)
class EmotionScore:
    emotion: str
    score: float

    def as_dict(self) -> dict[str, object]:
        return {"emotion": self.emotion, "score": self.score}


@dataclass
class FaceResult:
    """One detected face with its derived predictions.

    Attributes:
        confidence: Face detector confidence.
        box: Bounding box as (x, y, width, height) in frame pixels.
        mesh: Landmark mesh points as (x, y, z).
        annotations: Named landmark groups (e.g. "left_eye_iris").
        age: Predicted age in years, None when age prediction is disabled.
        gender: "female", "male" or None.
        gender_confidence: Confidence of the gender prediction.
        emotion: Emotion scores above the configured floor, best first.
        iris: Estimated iris-derived distance metric, 0 when unmeasurable.
    """

    confidence: float
    box: tuple[float, ...]
    mesh: list[tuple[float, ...]] = field(default_factory=list)
    annotations: dict[str, list[tuple[float, ...]]] = field(default_factory=dict)
    age: float | None = None
    gender: str | None = None
    gender_confidence: float | None = None
    emotion: list[EmotionScore] = field(default_factory=list)
    iris: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "confidence": self.confidence,
            "box": list(self.box),
            "mesh": [list(point) for point in self.mesh],
            "annotations": {
                name: [list(point) for point in points]
                for name, points in self.annotations.items()
            },
            "age": self.age,
            "gender": self.gender,
            "gender_confidence": self.gender_confidence,
            "emotion": [score.as_dict() for score in self.emotion],
            "iris": self.iris,
        }


@dataclass
class DetectionResult:
    """Unified output of one detect call."""

    face: list[FaceResult] = field(default_factory=list)
    body: list[Any] = field(default_factory=list)
    hand: list[Any] = field(default_factory=list)
    performance: PerfReport = field(default_factory=dict)
    preview: Image.Image | None = None
    skipped_faces: int = 0

    def as_dict(self) -> dict[str, Any]:
        """JSON-safe dict; the preview surface is reported by size only."""
        return {
            "face": [face.as_dict() for face in self.face],
            "body": [_plain(item) for item in self.body],
            "hand": [_plain(item) for item in self.hand],
            "performance": dict(self.performance),
            "preview": list(self.preview.size) if self.preview is not None else None,
            "skipped_faces": self.skipped_faces,
        }


@dataclass(frozen=True)
class ErrorResult:
    """Returned instead of a DetectionResult when the input fails validation."""

    error: str

    def as_dict(self) -> dict[str, str]:
        return {"error": self.error}


def _plain(item: Any) -> Any:
    as_dict = getattr(item, "as_dict", None)
    return as_dict() if callable(as_dict) else item


__all__ = [
    "PerfReport",
    "GenderPrediction",
    "EmotionScore",
    "FaceResult",
    "DetectionResult",
    "ErrorResult",
]
