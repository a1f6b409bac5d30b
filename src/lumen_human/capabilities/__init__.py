from .base import Capability, CapabilityLoader, CapabilityModel, FaceCandidate
from .emotion import EmotionModel, load_emotion
from .ssrnet import AgeModel, GenderModel, load_age, load_gender

# Face, body and hand models are external; they come from entry points or
# ModelRegistry.register_loader.
BUILTIN_LOADERS: dict[Capability, CapabilityLoader] = {
    Capability.AGE: load_age,
    Capability.GENDER: load_gender,
    Capability.EMOTION: load_emotion,
}

__all__ = [
    "Capability",
    "CapabilityLoader",
    "CapabilityModel",
    "FaceCandidate",
    "AgeModel",
    "GenderModel",
    "EmotionModel",
    "BUILTIN_LOADERS",
]
