"""
Lumen Human - multi-model human detection pipeline.

Runs face, body and hand models plus the derived age, gender, emotion and
iris metrics over one image, on an ONNX Runtime compute backend.
"""

from .capabilities import Capability, CapabilityModel, FaceCandidate
from .config import DEFAULT_CONFIG, HumanConfig, load_config, merge_config, resolve
from .engine import BackendSpec, Tensor, TensorEngine
from .exceptions import (
    BackendNotFoundError,
    ConfigError,
    HumanError,
    InferenceError,
    InvalidInputError,
    ModelLoadingError,
    TensorDisposedError,
)
from .human import Human, __version__
from .results import DetectionResult, EmotionScore, ErrorResult, FaceResult, GenderPrediction
from .runtime import RuntimeContext

__all__ = [
    "__version__",
    "Human",
    "RuntimeContext",
    "HumanConfig",
    "DEFAULT_CONFIG",
    "merge_config",
    "resolve",
    "load_config",
    "BackendSpec",
    "Tensor",
    "TensorEngine",
    "Capability",
    "CapabilityModel",
    "FaceCandidate",
    "DetectionResult",
    "ErrorResult",
    "FaceResult",
    "EmotionScore",
    "GenderPrediction",
    "HumanError",
    "ConfigError",
    "BackendNotFoundError",
    "ModelLoadingError",
    "InvalidInputError",
    "InferenceError",
    "TensorDisposedError",
]
