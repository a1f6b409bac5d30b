"""
Image filter engine.

A stateful filter chain bound to one output surface. Filters are queued with
``add_filter`` and run in order by ``apply``, which renders the result onto the
bound surface. Colour filters are 4x5 RGBA colour matrices (offsets in 0-255
pixel units); sharpen, blur and pixelate are spatial filters.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import Any

import cv2
import numpy as np
import numpy.typing as npt
from PIL import Image

Pixels = npt.NDArray[np.float32]

# fmt: off
SEPIA = (
    0.393, 0.7689999, 0.18899999, 0, 0,
    0.349, 0.6859999, 0.16799999, 0, 0,
    0.272, 0.5339999, 0.13099999, 0, 0,
    0, 0, 0, 1, 0,
)
BROWNIE = (
    0.5997023498159715, 0.34553243048391263, -0.2708298674538042, 0, 47.43192855600873,
    -0.037703249837783157, 0.8609577587992641, 0.15059552388459913, 0, -36.96841498319127,
    0.24113635128153335, -0.07441037908422492, 0.44972182064877153, 0, -7.562075277591283,
    0, 0, 0, 1, 0,
)
KODACHROME = (
    1.1285582396593525, -0.3967382283601348, -0.03992559172921793, 0, 63.72958762196502,
    -0.16404339962244616, 1.0835251566291304, -0.05498805115633132, 0, 24.732407896706203,
    -0.16786010706155763, -0.5603416277695248, 1.6014850761964943, 0, 35.62982807460946,
    0, 0, 0, 1, 0,
)
TECHNICOLOR = (
    1.9125277891456083, -0.8545344976951645, -0.09155508482755585, 0, 11.793603434377337,
    -0.3087833385928097, 1.7658908555458428, -0.10601743074722245, 0, -70.35205161461398,
    -0.231103377548616, -0.7501899197440212, 1.847597816108189, 0, 30.950940869491138,
    0, 0, 0, 1, 0,
)
POLAROID = (
    1.438, -0.062, -0.062, 0, 0,
    -0.122, 1.378, -0.122, 0, 0,
    -0.016, -0.016, 1.483, 0, 0,
    0, 0, 0, 1, 0,
)
# fmt: on


def color_matrix(pixels: Pixels, matrix: tuple[float, ...] | list[float]) -> Pixels:
    """Apply a 4x5 RGBA colour matrix to RGB pixels (alpha row is ignored)."""
    m = np.asarray(matrix, dtype=np.float32).reshape(4, 5)
    return pixels @ m[:3, :3].T + m[:3, 4]


def brightness(pixels: Pixels, amount: float = 0.0) -> Pixels:
    b = amount + 1
    return color_matrix(pixels, (b, 0, 0, 0, 0, 0, b, 0, 0, 0, 0, 0, b, 0, 0, 0, 0, 0, 1, 0))


def contrast(pixels: Pixels, amount: float = 0.0) -> Pixels:
    v = amount + 1
    o = -128 * (v - 1)
    return color_matrix(pixels, (v, 0, 0, 0, o, 0, v, 0, 0, o, 0, 0, v, 0, o, 0, 0, 0, 1, 0))


def saturation(pixels: Pixels, amount: float = 0.0) -> Pixels:
    x = amount * 2 / 3 + 1
    y = (x - 1) * -0.5
    return color_matrix(pixels, (x, y, y, 0, 0, y, x, y, 0, 0, y, y, x, 0, 0, 0, 0, 0, 1, 0))


def hue(pixels: Pixels, degrees: float = 0.0) -> Pixels:
    rotation = degrees / 180 * math.pi
    cos = math.cos(rotation)
    sin = math.sin(rotation)
    lum_r, lum_g, lum_b = 0.213, 0.715, 0.072
    return color_matrix(
        pixels,
        (
            lum_r + cos * (1 - lum_r) + sin * (-lum_r),
            lum_g + cos * (-lum_g) + sin * (-lum_g),
            lum_b + cos * (-lum_b) + sin * (1 - lum_b),
            0,
            0,
            lum_r + cos * (-lum_r) + sin * 0.143,
            lum_g + cos * (1 - lum_g) + sin * 0.140,
            lum_b + cos * (-lum_b) + sin * (-0.283),
            0,
            0,
            lum_r + cos * (-lum_r) + sin * (-(1 - lum_r)),
            lum_g + cos * (-lum_g) + sin * lum_g,
            lum_b + cos * (1 - lum_b) + sin * lum_b,
            0,
            0,
            0, 0, 0, 1, 0,
        ),
    )


def negative(pixels: Pixels) -> Pixels:
    return contrast(pixels, -2)


def sharpen(pixels: Pixels, amount: float = 0.0) -> Pixels:
    a = amount
    kernel = np.array([[0, -a, 0], [-a, 1 + 4 * a, -a], [0, -a, 0]], dtype=np.float32)
    return cv2.filter2D(pixels, -1, kernel)


def blur(pixels: Pixels, size: float = 0.0) -> Pixels:
    if size <= 0:
        return pixels
    return cv2.GaussianBlur(pixels, (0, 0), sigmaX=size / 2)


def pixelate(pixels: Pixels, size: float = 0.0) -> Pixels:
    block = int(size)
    if block <= 1:
        return pixels
    h, w = pixels.shape[:2]
    small = cv2.resize(
        pixels, (max(1, w // block), max(1, h // block)), interpolation=cv2.INTER_AREA
    )
    return cv2.resize(small, (w, h), interpolation=cv2.INTER_NEAREST)


FILTERS: dict[str, Callable[..., Pixels]] = {
    "brightness": brightness,
    "contrast": contrast,
    "saturation": saturation,
    "hue": hue,
    "negative": negative,
    "sepia": lambda p: color_matrix(p, SEPIA),
    "brownie": lambda p: color_matrix(p, BROWNIE),
    "kodachrome": lambda p: color_matrix(p, KODACHROME),
    "technicolor": lambda p: color_matrix(p, TECHNICOLOR),
    "polaroid": lambda p: color_matrix(p, POLAROID),
    "sharpen": sharpen,
    "blur": blur,
    "pixelate": pixelate,
}


class ImageFilterChain:
    """Reusable filter chain rendering onto a single output surface.

    Example:
        ```python
        fx = ImageFilterChain(Image.new("RGB", (640, 480)))
        fx.add_filter("brightness", 0.2)
        fx.add_filter("sepia")
        preview = fx.apply(source_image)
        ```
    """

    def __init__(self, surface: Image.Image):
        self.surface = surface
        self._chain: list[tuple[str, tuple[Any, ...]]] = []

    @property
    def filters(self) -> list[str]:
        return [name for name, _ in self._chain]

    def reset(self) -> None:
        self._chain.clear()

    def add_filter(self, name: str, *args: Any) -> None:
        if name not in FILTERS:
            raise ValueError(f"Unknown filter '{name}'. Available filters: {sorted(FILTERS)}")
        self._chain.append((name, args))

    def apply(self, source: Image.Image) -> Image.Image:
        pixels: Pixels = np.asarray(source.convert("RGB"), dtype=np.float32)
        for name, args in self._chain:
            pixels = FILTERS[name](pixels, *args)

        result = Image.fromarray(np.clip(pixels, 0, 255).astype(np.uint8))
        if result.size != self.surface.size:
            result = result.resize(self.surface.size, Image.Resampling.BILINEAR)
        self.surface.paste(result)
        return self.surface


__all__ = ["ImageFilterChain", "FILTERS", "color_matrix"]
