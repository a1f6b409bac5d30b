"""
Configuration Models and Resolver

@requires: Optional override mappings (Python dicts or YAML files)
@returns: Frozen HumanConfig snapshots, one per detect call
@errors: ConfigError

The configuration is a typed tree of pydantic option models. Overrides are
applied with ``merge_config``, a recursive combinator over that tree:

- nested sections merge recursively
- array-valued options concatenate across layers
- scalar options from the latest layer win

Override mappings may use either the snake_case field names or the camelCase
names common in existing configuration files (``skipFrames``, ``videoOptimized``,
``async``, ``return``).
"""

from __future__ import annotations

from collections.abc import Mapping
from functools import reduce
from pathlib import Path
from typing import Any, TypeVar, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigError


class _Options(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        protected_namespaces=(),
    )


class FilterOptions(_Options):
    """Input resizing and image filter chain applied before detection."""

    enabled: bool = False
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)
    return_: bool = Field(default=False, alias="return")
    brightness: float = 0.0  # range -1 .. 1
    contrast: float = 0.0  # range -1 .. 1
    sharpness: float = 0.0  # range 0 .. 1
    blur: float = 0.0  # blur radius in pixels
    saturation: float = 0.0  # range -1 .. 1
    hue: float = 0.0  # rotation in degrees
    negative: bool = False
    sepia: bool = False
    vintage: bool = False
    kodachrome: bool = False
    technicolor: bool = False
    polaroid: bool = False
    pixelate: int = Field(default=0, ge=0)  # block size in pixels


class FaceDetectorOptions(_Options):
    enabled: bool = True
    model_path: str = Field(default="models/blazeface.onnx", alias="modelPath")
    input_size: int = Field(default=256, alias="inputSize")
    max_faces: int = Field(default=10, alias="maxFaces")
    skip_frames: int = Field(default=10, ge=0, alias="skipFrames")
    min_confidence: float = Field(default=0.5, alias="minConfidence")
    iou_threshold: float = Field(default=0.3, alias="iouThreshold")
    score_threshold: float = Field(default=0.7, alias="scoreThreshold")


class MeshOptions(_Options):
    enabled: bool = True
    model_path: str = Field(default="models/facemesh.onnx", alias="modelPath")
    input_size: int = Field(default=192, alias="inputSize")


class IrisOptions(_Options):
    enabled: bool = True
    model_path: str = Field(default="models/iris.onnx", alias="modelPath")
    input_size: int = Field(default=64, alias="inputSize")


class AgeOptions(_Options):
    enabled: bool = True
    model_path: str = Field(default="models/ssrnet-age.onnx", alias="modelPath")
    input_size: int = Field(default=64, alias="inputSize")
    skip_frames: int = Field(default=10, ge=0, alias="skipFrames")


class GenderOptions(_Options):
    enabled: bool = True
    model_path: str = Field(default="models/ssrnet-gender.onnx", alias="modelPath")
    input_size: int = Field(default=64, alias="inputSize")
    min_confidence: float = Field(default=0.8, alias="minConfidence")
    skip_frames: int = Field(default=10, ge=0, alias="skipFrames")


class EmotionOptions(_Options):
    enabled: bool = True
    model_path: str = Field(default="models/emotion-mini.onnx", alias="modelPath")
    input_size: int = Field(default=64, alias="inputSize")
    min_confidence: float = Field(default=0.5, alias="minConfidence")
    skip_frames: int = Field(default=10, ge=0, alias="skipFrames")


class FaceOptions(_Options):
    enabled: bool = True
    detector: FaceDetectorOptions = Field(default_factory=FaceDetectorOptions)
    mesh: MeshOptions = Field(default_factory=MeshOptions)
    iris: IrisOptions = Field(default_factory=IrisOptions)
    age: AgeOptions = Field(default_factory=AgeOptions)
    gender: GenderOptions = Field(default_factory=GenderOptions)
    emotion: EmotionOptions = Field(default_factory=EmotionOptions)


class BodyOptions(_Options):
    enabled: bool = True
    model_path: str = Field(default="models/posenet.onnx", alias="modelPath")
    skip_frames: int = Field(default=0, ge=0, alias="skipFrames")
    input_resolution: int = Field(default=257, alias="inputResolution")
    output_stride: int = Field(default=16, alias="outputStride")
    max_detections: int = Field(default=10, alias="maxDetections")
    score_threshold: float = Field(default=0.7, alias="scoreThreshold")
    nms_radius: int = Field(default=20, alias="nmsRadius")


class HandOptions(_Options):
    enabled: bool = True
    detector_model_path: str = Field(default="models/handdetect.onnx", alias="detectorModelPath")
    skeleton_model_path: str = Field(default="models/handskeleton.onnx", alias="skeletonModelPath")
    skip_frames: int = Field(default=10, ge=0, alias="skipFrames")
    input_size: int = Field(default=256, alias="inputSize")
    min_confidence: float = Field(default=0.5, alias="minConfidence")
    iou_threshold: float = Field(default=0.3, alias="iouThreshold")
    score_threshold: float = Field(default=0.7, alias="scoreThreshold")
    enlarge_factor: float = Field(default=1.65, alias="enlargeFactor")
    max_hands: int = Field(default=10, alias="maxHands")


class HumanConfig(_Options):
    """Effective configuration for one detect call.

    Attributes:
        backend: Compute backend name (see ``engine.BUILTIN_BACKENDS``).
        providers: Extra ONNX Runtime execution providers appended after the
            backend's own provider when sessions are created.
        console: Log pipeline progress at INFO instead of DEBUG.
        profile: Keep the latest performance report for ``Human.profile()``.
        deallocate: Release device buffers eagerly on GPU backends.
        scoped: Run each call inside a tensor arena that reclaims leftovers.
        video_optimized: Allow models to reuse results across frames. When
            off, every frame-skip count is forced to zero.
        concurrent: Run the body and hand branches concurrently.
    """

    backend: str = "cpu"
    providers: tuple[str, ...] = ()
    console: bool = False
    profile: bool = False
    deallocate: bool = False
    scoped: bool = False
    video_optimized: bool = Field(default=True, alias="videoOptimized")
    concurrent: bool = Field(default=False, alias="async")
    filter: FilterOptions = Field(default_factory=FilterOptions)
    face: FaceOptions = Field(default_factory=FaceOptions)
    body: BodyOptions = Field(default_factory=BodyOptions)
    hand: HandOptions = Field(default_factory=HandOptions)


DEFAULT_CONFIG = HumanConfig()

# Applied on top of the user layer for single-shot input, where results of a
# previous frame must never be reused.
NON_VIDEO_OVERRIDE: dict[str, Any] = {
    "face": {
        "detector": {"skip_frames": 0},
        "age": {"skip_frames": 0},
        "gender": {"skip_frames": 0},
        "emotion": {"skip_frames": 0},
    },
    "hand": {"skip_frames": 0},
}

Override = Union[Mapping[str, Any], BaseModel, None]
M = TypeVar("M", bound=BaseModel)


def _field_name(model_cls: type[BaseModel], key: str) -> str:
    fields = model_cls.model_fields
    if key in fields:
        return key
    for name, info in fields.items():
        if info.alias == key:
            return name
    raise ConfigError(f"Unknown option '{key}' for {model_cls.__name__}")


def _as_mapping(layer: Override) -> Mapping[str, Any]:
    if layer is None:
        return {}
    if isinstance(layer, BaseModel):
        return layer.model_dump(exclude_unset=True)
    if isinstance(layer, Mapping):
        return layer
    raise ConfigError(f"Configuration layer must be a mapping, got {type(layer).__name__}")


def _merge_model(base: M, override: Mapping[str, Any]) -> M:
    cls = type(base)
    values = {name: getattr(base, name) for name in cls.model_fields}
    for key, value in override.items():
        name = _field_name(cls, key)
        current = values[name]
        if isinstance(current, BaseModel) and isinstance(value, (Mapping, BaseModel)):
            values[name] = _merge_model(current, _as_mapping(value))
        elif isinstance(current, (list, tuple)) and isinstance(value, (list, tuple)):
            values[name] = (*current, *value)
        else:
            values[name] = value
    try:
        return cls.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid {cls.__name__} options: {e}") from e


def merge_config(base: HumanConfig | Override, *overrides: Override) -> HumanConfig:
    """Deep-merge override layers onto a base configuration, left to right.

    Args:
        base: Base configuration; a mapping or None is merged onto the defaults.
        *overrides: Override layers. None layers are treated as empty.

    Returns:
        HumanConfig: A new frozen configuration. No input is modified.

    Raises:
        ConfigError: On unknown options or values that fail validation.
    """
    if not isinstance(base, HumanConfig):
        base = _merge_model(DEFAULT_CONFIG, _as_mapping(base))
    return reduce(lambda acc, layer: _merge_model(acc, _as_mapping(layer)), overrides, base)


def resolve(
    defaults: HumanConfig | Override,
    user_config: Override = None,
    video_optimized: bool | None = None,
) -> HumanConfig:
    """Produce the effective configuration for one call.

    Layers are defaults < user overrides < ``NON_VIDEO_OVERRIDE``, the last
    one applied only when video optimization is disabled. ``video_optimized``
    takes precedence over the merged ``video_optimized`` option when given.
    """
    config = merge_config(defaults, user_config)
    if video_optimized is not None:
        config = merge_config(config, {"video_optimized": video_optimized})
    if not config.video_optimized:
        config = merge_config(config, NON_VIDEO_OVERRIDE)
    return config


def load_config(config_path: str | Path) -> dict[str, Any]:
    """
    Read an override mapping from a YAML file.

    @requires: YAML file whose top level is a mapping (or empty)
    @returns: Plain dict suitable as a ``merge_config`` layer
    @errors: ConfigError
    """
    path = Path(config_path).expanduser()
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping at top level")
    return data


__all__ = [
    "FilterOptions",
    "FaceDetectorOptions",
    "MeshOptions",
    "IrisOptions",
    "AgeOptions",
    "GenderOptions",
    "EmotionOptions",
    "FaceOptions",
    "BodyOptions",
    "HandOptions",
    "HumanConfig",
    "DEFAULT_CONFIG",
    "NON_VIDEO_OVERRIDE",
    "merge_config",
    "resolve",
    "load_config",
]
