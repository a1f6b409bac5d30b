"""
Emotion classifier operating on grayscale face crops.
"""

from __future__ import annotations

import math

import numpy as np

from ..config import HumanConfig
from ..engine import Tensor, TensorEngine
from ..results import EmotionScore
from .base import Capability
from .onnxrt import OnnxCapabilityModel

EMOTION_LABELS = ("angry", "disgust", "fear", "happy", "sad", "surprise", "neutral")

# ITU-R 601 luma weights
RGB_TO_GRAY = np.array([0.2989, 0.5870, 0.1140], dtype=np.float32)


class EmotionModel(OnnxCapabilityModel):
    capability = Capability.EMOTION

    async def predict(self, image: Tensor, config: HumanConfig) -> list[EmotionScore]:
        options = config.face.emotion
        if self._reuse_last(options.skip_frames):
            return self._last

        gray = self._resize_face(image) @ RGB_TO_GRAY
        batch = ((gray - 0.5) * 2)[np.newaxis, :, :, np.newaxis].astype(np.float32)
        scores = (await self._run(batch)).reshape(-1)

        result = [
            EmotionScore(emotion=label, score=min(0.99, math.trunc(100 * float(score)) / 100))
            for label, score in zip(EMOTION_LABELS, scores)
            if score > options.min_confidence
        ]
        result.sort(key=lambda s: s.score, reverse=True)
        self._last = result
        return result


async def load_emotion(config: HumanConfig, engine: TensorEngine) -> EmotionModel:
    options = config.face.emotion
    return await EmotionModel.load(options.model_path, options.input_size, engine, config.providers)


__all__ = ["EMOTION_LABELS", "EmotionModel", "load_emotion"]
