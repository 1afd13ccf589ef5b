# pharmacheck/infra/vision/pillow_inspector.py
"""
Capture-quality proxies for the heuristic scorer.

These numbers say how usable a photo is (resolution, sharpness, saturated
highlights) and are a placeholder until a real packaging/vision model is
plugged in behind the ImageInspector port. They do not judge authenticity.
"""
from __future__ import annotations

import io

import numpy as np
from PIL import Image

from pharmacheck.domain.entities import ImageFeatures
from pharmacheck.domain.models import ProductImage
from pharmacheck.domain.ports import ImageInspector

KNOWN_FORMATS = {"JPEG", "PNG", "WEBP"}
BLUR_VARIANCE = 50.0
ANALYSIS_SIDE = 512


def laplacian_variance(gray: np.ndarray) -> float:
    """Variance of a 4-neighbour Laplacian; low values mean a blurry photo."""
    g = gray.astype(np.float32)
    if g.shape[0] < 3 or g.shape[1] < 3:
        return 0.0
    lap = (
        g[1:-1, :-2] + g[1:-1, 2:] + g[:-2, 1:-1] + g[2:, 1:-1]
        - 4.0 * g[1:-1, 1:-1]
    )
    return float(lap.var())


def quality_score(width: int, height: int, sharpness: float) -> float:
    side = min(width, height)
    if side >= 1000:
        q = 0.9
    elif side >= 600:
        q = 0.8
    elif side >= 300:
        q = 0.65
    else:
        q = 0.45
    if sharpness < BLUR_VARIANCE:
        q -= 0.15
    return max(0.0, q)


def layout_score(width: int, height: int, fmt: str | None) -> float:
    ratio = width / height if height else 0.0
    s = 0.8 if 0.4 <= ratio <= 2.5 else 0.6
    if (fmt or "").upper() in KNOWN_FORMATS:
        s += 0.1
    return min(s, 0.9)


def hologram_score(rgb: np.ndarray) -> float:
    """Share of bright, strongly saturated pixels: the kind of highlight foil/holograms leave."""
    arr = rgb.astype(np.float32) / 255.0
    mx = arr.max(axis=2)
    mn = arr.min(axis=2)
    sat = np.where(mx > 0, (mx - mn) / np.maximum(mx, 1e-6), 0.0)
    frac = float(((mx > 0.8) & (sat > 0.5)).mean())
    if frac > 0.02:
        return 0.7
    if frac > 0.005:
        return 0.6
    return 0.5


class PillowImageInspector(ImageInspector):
    def inspect(self, image: ProductImage) -> ImageFeatures:
        # raises PIL.UnidentifiedImageError on non-images; the scorer counts that as unreadable
        with Image.open(io.BytesIO(image.data)) as im:
            fmt = im.format
            width, height = im.size
            rgb = im.convert("RGB")
            rgb.thumbnail((ANALYSIS_SIDE, ANALYSIS_SIDE))
            arr = np.asarray(rgb)
        gray = arr.mean(axis=2)
        return ImageFeatures(
            quality=quality_score(width, height, laplacian_variance(gray)),
            layout=layout_score(width, height, fmt),
            hologram=hologram_score(arr),
        )
