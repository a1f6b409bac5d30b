"""
Model Registry for Lumen Human.

Holds at most one loaded ``CapabilityModel`` per ``Capability``. Models are
loaded lazily, the first time a capability is requested while enabled, and
exactly once per registry until ``reset`` invalidates them.

Loaders come from three places, later ones overriding earlier ones:
- the built-in ONNX Runtime loaders (age, gender, emotion)
- installed packages exposing the ``lumen_human.capabilities`` entry-point
  group, where each entry point name is a capability value
- explicit ``register_loader`` calls

Usage:
    registry = ModelRegistry(engine)
    registry.register_loader(Capability.FACE, load_face_detector)
    await registry.ensure_all(config)
    face = registry.get(Capability.FACE)
"""

from __future__ import annotations

import asyncio
import logging
import time
from importlib.metadata import entry_points

from .capabilities import BUILTIN_LOADERS, Capability, CapabilityLoader, CapabilityModel
from .config import HumanConfig
from .engine import TensorEngine
from .exceptions import ModelLoadingError

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "lumen_human.capabilities"

# Capabilities that operate on face crops and need the face detector.
FACE_DEPENDENT = frozenset({Capability.AGE, Capability.GENDER, Capability.EMOTION})


def is_enabled(capability: Capability, config: HumanConfig) -> bool:
    """Whether a capability is enabled in the effective configuration."""
    face = config.face
    if capability in FACE_DEPENDENT:
        return face.enabled and getattr(face, capability.value).enabled
    if capability is Capability.FACE:
        return face.enabled
    if capability is Capability.BODY:
        return config.body.enabled
    return config.hand.enabled


def discover_loaders() -> dict[Capability, CapabilityLoader]:
    """Collect capability loaders advertised by installed packages."""
    loaders: dict[Capability, CapabilityLoader] = {}
    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            capability = Capability(ep.name)
        except ValueError:
            logger.warning("Ignoring entry point '%s': unknown capability", ep.name)
            continue
        loaders[capability] = ep.load()
        logger.debug("Discovered %s loader from %s", capability.value, ep.value)
    return loaders


class ModelRegistry:
    """Lazy, exactly-once model loading shared by all calls of one runtime."""

    def __init__(
        self,
        engine: TensorEngine,
        loaders: dict[Capability, CapabilityLoader] | None = None,
        discover: bool = True,
    ):
        self.engine = engine
        self._loaders: dict[Capability, CapabilityLoader] = dict(BUILTIN_LOADERS)
        if discover:
            self._loaders.update(discover_loaders())
        if loaders:
            self._loaders.update(loaders)
        self._models: dict[Capability, CapabilityModel] = {}
        self._locks: dict[Capability, asyncio.Lock] = {c: asyncio.Lock() for c in Capability}

    def register_loader(self, capability: Capability, loader: CapabilityLoader) -> None:
        """Install or replace the loader for a capability.

        An already loaded model is kept until ``reset`` is called.
        """
        self._loaders[capability] = loader

    def is_loaded(self, capability: Capability) -> bool:
        return capability in self._models

    def get(self, capability: Capability) -> CapabilityModel | None:
        return self._models.get(capability)

    def reset(self, capability: Capability | None = None) -> None:
        """Forget loaded models so the next request loads them again."""
        if capability is None:
            self._models.clear()
        else:
            self._models.pop(capability, None)

    async def ensure_loaded(
        self, capability: Capability, config: HumanConfig
    ) -> CapabilityModel | None:
        """Load a capability if it is enabled and not loaded yet.

        Returns:
            The loaded model, or None when the capability is disabled.

        Raises:
            ModelLoadingError: If no loader is registered or the loader fails.
                Failures are not retried; the slot stays unloaded.
        """
        if not is_enabled(capability, config):
            return None
        model = self._models.get(capability)
        if model is not None:
            return model

        async with self._locks[capability]:
            model = self._models.get(capability)
            if model is not None:
                return model

            loader = self._loaders.get(capability)
            if loader is None:
                raise ModelLoadingError(
                    f"No loader registered for capability '{capability.value}'. "
                    f"Install a package providing the '{ENTRY_POINT_GROUP}' entry point "
                    f"or call register_loader()."
                )

            log = logger.info if config.console else logger.debug
            start = time.time()
            try:
                model = await loader(config, self.engine)
            except ModelLoadingError:
                raise
            except Exception as e:
                raise ModelLoadingError(f"Failed to load {capability.value} model: {e}") from e

            self._models[capability] = model
            log("Loaded %s model in %.2fs", capability.value, time.time() - start)
            return model

    async def ensure_all(self, config: HumanConfig) -> None:
        """Load every enabled capability, in declaration order."""
        for capability in Capability:
            await self.ensure_loaded(capability, config)


__all__ = [
    "ENTRY_POINT_GROUP",
    "FACE_DEPENDENT",
    "ModelRegistry",
    "discover_loaders",
    "is_enabled",
]
