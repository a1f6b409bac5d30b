"""
Input normalization for Lumen Human.

Turns any supported input into the canonical frame fed to every model: a
float32 tensor of shape (1, height, width, 3) with values in 0-255.

Accepted inputs:
- ``Tensor``: cloned, the caller keeps ownership of the original
- ``PIL.Image.Image``
- NumPy arrays shaped (H, W), (H, W, 1), (H, W, 3) or (H, W, 4) in 0-255
- encoded image bytes (JPEG, PNG, ...)
- a filesystem path to an image file

Image sources are rendered onto a cached intake surface, optionally run
through the filter chain onto a cached output surface, and read back into a
tensor. Both surfaces are reallocated only when the target size changes.
``normalize`` never suspends, so concurrent calls on one event loop cannot
interleave on the shared surfaces.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
from PIL import Image, UnidentifiedImageError

from .config import FilterOptions, HumanConfig
from .engine import Tensor, TensorEngine
from .exceptions import InvalidInputError
from .filters import ImageFilterChain

logger = logging.getLogger(__name__)


@dataclass
class NormalizedInput:
    """Canonical frame plus the optional filtered preview surface."""

    tensor: Tensor
    preview: Image.Image | None = None


def _array_to_image(array: np.ndarray) -> Image.Image:
    if array.ndim == 3 and array.shape[2] == 1:
        array = array[:, :, 0]
    if array.ndim not in (2, 3) or (array.ndim == 3 and array.shape[2] not in (3, 4)):
        raise InvalidInputError(f"Unsupported array shape for an image: {array.shape}")
    if array.dtype != np.uint8:
        array = np.clip(array, 0, 255).astype(np.uint8)
    return Image.fromarray(array)


def to_image(source: Any) -> Image.Image:
    """Decode a supported image source into an RGB PIL image.

    Raises:
        InvalidInputError: If the source kind is unsupported or cannot be decoded.
    """
    if isinstance(source, Image.Image):
        image = source
    elif isinstance(source, np.ndarray):
        image = _array_to_image(source)
    elif isinstance(source, (bytes, bytearray, memoryview)):
        if not source:
            raise InvalidInputError("Image bytes cannot be empty")
        try:
            image = Image.open(io.BytesIO(bytes(source)))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidInputError(f"Cannot decode image bytes: {e}") from e
    elif isinstance(source, (str, Path)):
        try:
            image = Image.open(source)
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidInputError(f"Cannot open image file {source}: {e}") from e
    else:
        raise InvalidInputError(f"Unsupported input type: {type(source).__name__}")

    if image.width <= 0 or image.height <= 0:
        raise InvalidInputError(f"Image has no pixels: {image.size}")
    return image if image.mode == "RGB" else image.convert("RGB")


def target_size(width: int, height: int, options: FilterOptions) -> tuple[int, int]:
    """Target surface size; keeps the aspect ratio when only one side is configured."""
    target_width, target_height = width, height
    if options.width > 0:
        target_width = options.width
    elif options.height > 0:
        target_width = int(width * (options.height / height))
    if options.height > 0:
        target_height = options.height
    elif options.width > 0:
        target_height = int(height * (options.width / width))
    return max(1, target_width), max(1, target_height)


class InputNormalizer:
    """Convert heterogeneous inputs into canonical frames."""

    def __init__(self, engine: TensorEngine):
        self.engine = engine
        self._in_surface: Image.Image | None = None
        self._out_surface: Image.Image | None = None
        self._fx: ImageFilterChain | None = None

    def normalize(self, image: Any, config: HumanConfig) -> NormalizedInput:
        if isinstance(image, Tensor):
            return NormalizedInput(tensor=image.clone())

        source = to_image(image)
        width, height = target_size(source.width, source.height, config.filter)

        surface = self._intake_surface(width, height)
        if source.size != surface.size:
            source = source.resize(surface.size, Image.Resampling.BILINEAR)
        surface.paste(source)

        output = surface
        if config.filter.enabled:
            output = self._apply_filters(surface, config.filter)

        pixels = self._from_pixels(output)
        casted = pixels.to_float()
        tensor = casted.expand_dims(0)
        pixels.dispose()
        casted.dispose()

        preview = output.copy() if config.filter.return_ else None
        return NormalizedInput(tensor=tensor, preview=preview)

    def _intake_surface(self, width: int, height: int) -> Image.Image:
        if self._in_surface is None or self._in_surface.size != (width, height):
            logger.debug("Allocating intake surface %dx%d", width, height)
            self._in_surface = Image.new("RGB", (width, height))
        return self._in_surface

    def _apply_filters(self, surface: Image.Image, options: FilterOptions) -> Image.Image:
        if self._fx is None or self._out_surface is None or self._out_surface.size != surface.size:
            logger.debug("Allocating filter surface %dx%d", *surface.size)
            self._out_surface = Image.new("RGB", surface.size)
            self._fx = ImageFilterChain(self._out_surface)

        fx = self._fx
        fx.reset()
        fx.add_filter("brightness", options.brightness)  # chain is never empty
        if options.contrast != 0:
            fx.add_filter("contrast", options.contrast)
        if options.sharpness != 0:
            fx.add_filter("sharpen", options.sharpness)
        if options.blur != 0:
            fx.add_filter("blur", options.blur)
        if options.saturation != 0:
            fx.add_filter("saturation", options.saturation)
        if options.hue != 0:
            fx.add_filter("hue", options.hue)
        if options.negative:
            fx.add_filter("negative")
        if options.sepia:
            fx.add_filter("sepia")
        if options.vintage:
            fx.add_filter("brownie")
        if options.kodachrome:
            fx.add_filter("kodachrome")
        if options.technicolor:
            fx.add_filter("technicolor")
        if options.polaroid:
            fx.add_filter("polaroid")
        if options.pixelate != 0:
            fx.add_filter("pixelate", options.pixelate)
        return fx.apply(surface)

    def _from_pixels(self, surface: Image.Image) -> Tensor:
        self.engine.get_backend()
        spec = self.engine.backend
        if spec is not None and spec.direct_pixels:
            return self.engine.tensor(np.asarray(surface))

        # No direct pixel path on this backend: read back through a scratch surface.
        scratch = Image.new("RGB", surface.size)
        scratch.paste(surface)
        return self.engine.tensor(np.array(scratch))


__all__ = ["InputNormalizer", "NormalizedInput", "target_size", "to_image"]
