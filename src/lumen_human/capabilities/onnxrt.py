"""
ONNX Runtime base for face-crop capability models.

Sessions are created on the engine's active execution-provider chain and run
in a worker thread so the event loop keeps serving other calls. Each model
keeps a frame-skip cache: after a real inference, the next ``skip_frames``
calls return the previous result.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import cv2
import numpy as np
import numpy.typing as npt
import onnxruntime as ort

from ..engine import Tensor, TensorEngine
from ..exceptions import InferenceError, ModelLoadingError
from .base import CapabilityModel

logger = logging.getLogger(__name__)


class OnnxCapabilityModel(CapabilityModel):
    """Single-session model operating on cropped face tensors."""

    def __init__(self, session: ort.InferenceSession, input_size: int):
        self._session = session
        self._input_name: str = session.get_inputs()[0].name
        self.input_size = input_size
        self._frame = sys.maxsize
        self._last: Any = None

    @classmethod
    async def load(
        cls,
        model_path: str,
        input_size: int,
        engine: TensorEngine,
        extra_providers: Sequence[str] = (),
    ):
        path = Path(model_path).expanduser()
        if not path.exists():
            raise ModelLoadingError(f"{cls.__name__} model not found: {path}")

        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        if engine.flags["DELETE_THRESHOLD"] == 0:
            sess_options.enable_cpu_mem_arena = False
        providers = engine.session_providers(extra_providers)

        start = time.time()
        try:
            session = await asyncio.to_thread(
                ort.InferenceSession, str(path), sess_options, providers=providers
            )
        except Exception as e:
            raise ModelLoadingError(f"Failed to load {cls.__name__} from {path}: {e}") from e

        logger.info(
            "%s ready in %.2fs (providers=%s)",
            cls.__name__,
            time.time() - start,
            ",".join(p if isinstance(p, str) else p[0] for p in providers),
        )
        return cls(session, input_size)

    def _reuse_last(self, skip_frames: int) -> bool:
        if self._last is not None and self._frame < skip_frames:
            self._frame += 1
            return True
        self._frame = 0
        return False

    def _resize_face(self, face: Tensor) -> npt.NDArray[np.float32]:
        crop = face.data[0].astype(np.float32)
        return cv2.resize(
            crop, (self.input_size, self.input_size), interpolation=cv2.INTER_LINEAR
        )

    async def _run(self, batch: npt.NDArray[np.float32]) -> npt.NDArray[Any]:
        try:
            outputs = await asyncio.to_thread(
                self._session.run, None, {self._input_name: batch}
            )
        except Exception as e:
            raise InferenceError(f"{type(self).__name__} inference failed: {e}") from e
        return np.asarray(outputs[0])


__all__ = ["OnnxCapabilityModel"]
