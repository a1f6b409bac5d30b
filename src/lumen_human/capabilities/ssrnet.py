"""
SSR-Net style age and gender regressors.

Both take the cropped face scaled back to 0-255 and emit a single value: the
age in years, or a gender score where values at or below 0.5 mean female.
"""

from __future__ import annotations

import math

import numpy as np

from ..config import HumanConfig
from ..engine import Tensor, TensorEngine
from ..results import GenderPrediction
from .base import Capability
from .onnxrt import OnnxCapabilityModel


class AgeModel(OnnxCapabilityModel):
    capability = Capability.AGE

    async def predict(self, image: Tensor, config: HumanConfig) -> float | None:
        if self._reuse_last(config.face.age.skip_frames):
            return self._last

        batch = (self._resize_face(image) * 255.0)[np.newaxis].astype(np.float32)
        output = await self._run(batch)
        age = math.trunc(10 * float(output.reshape(-1)[0])) / 10
        self._last = age
        return age


class GenderModel(OnnxCapabilityModel):
    capability = Capability.GENDER

    async def predict(self, image: Tensor, config: HumanConfig) -> GenderPrediction:
        options = config.face.gender
        if self._reuse_last(options.skip_frames):
            return self._last

        batch = (self._resize_face(image) * 255.0)[np.newaxis].astype(np.float32)
        output = await self._run(batch)
        score = float(output.reshape(-1)[0])
        confidence = math.trunc(abs(1.9 * 100 * (score - 0.5))) / 100
        if confidence > options.min_confidence:
            prediction = GenderPrediction(
                gender="female" if score <= 0.5 else "male",
                confidence=min(0.99, confidence),
            )
        else:
            prediction = GenderPrediction()
        self._last = prediction
        return prediction


async def load_age(config: HumanConfig, engine: TensorEngine) -> AgeModel:
    options = config.face.age
    return await AgeModel.load(options.model_path, options.input_size, engine, config.providers)


async def load_gender(config: HumanConfig, engine: TensorEngine) -> GenderModel:
    options = config.face.gender
    return await GenderModel.load(options.model_path, options.input_size, engine, config.providers)


__all__ = ["AgeModel", "GenderModel", "load_age", "load_gender"]
