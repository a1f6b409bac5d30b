"""
Runtime context shared by the calls of one orchestrator.

A ``RuntimeContext`` bundles the state that outlives a single ``detect``
call: the tensor engine, the backend manager driving it, the model registry
and the input normalizer with its cached surfaces. Each ``Human`` holds one;
pass the same context to several orchestrators to share loaded models.
Replacing the active backend resets the registry, so models reload on the
new provider chain.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .backend import BackendManager
from .engine import TensorEngine
from .image import InputNormalizer
from .registry import ModelRegistry


@dataclass
class RuntimeContext:
    engine: TensorEngine = field(default_factory=TensorEngine)
    backend: BackendManager = field(init=False)
    registry: ModelRegistry = field(init=False)
    normalizer: InputNormalizer = field(init=False)
    discover_loaders: bool = True

    def __post_init__(self) -> None:
        self.registry = ModelRegistry(self.engine, discover=self.discover_loaders)
        self.backend = BackendManager(self.engine, on_switch=self.registry.reset)
        self.normalizer = InputNormalizer(self.engine)


__all__ = ["RuntimeContext"]
