"""
Shutter - Change Detector
Normalized pixel difference between two snapshots of the same scene
"""

import logging
from typing import Optional

import numpy as np
from PIL import Image

from shutter_models import NormalizedRect

logger = logging.getLogger(__name__)

# Both images are resampled to this size before comparison, so cost does not
# depend on the source resolution and small scale mismatches are tolerated.
CANONICAL_SIZE = (100, 100)


def _canonical_pixels(image: Image.Image) -> np.ndarray:
    """Resample to the canonical size in 8-bit RGB."""
    if image.mode != "RGB":
        image = image.convert("RGB")
    resized = image.resize(CANONICAL_SIZE, Image.Resampling.BILINEAR)
    return np.asarray(resized, dtype=np.int16)


def image_difference(a: Image.Image, b: Image.Image) -> float:
    """
    Compute the diff score of two bitmaps

    Returns:
        Mean absolute per-channel difference divided by 255, in [0.0, 1.0].
        0.0 for identical images, 1.0 for all-black vs all-white.
    """
    arr_a = _canonical_pixels(a)
    arr_b = _canonical_pixels(b)

    diff = np.abs(arr_a - arr_b)
    score = float(np.mean(diff)) / 255.0

    return min(1.0, max(0.0, score))


def crop_normalized(image: Image.Image, sub_rect: Optional[NormalizedRect]) -> Optional[Image.Image]:
    """
    Crop an image by a normalized sub-rectangle

    Returns:
        The cropped image, the image itself when sub_rect is None,
        or None when the crop has zero pixel area.
    """
    if sub_rect is None:
        return image

    left, top, right, bottom = sub_rect.clamped_edges()
    box = (
        int(round(left * image.width)),
        int(round(top * image.height)),
        int(round(right * image.width)),
        int(round(bottom * image.height)),
    )

    if box[2] <= box[0] or box[3] <= box[1]:
        logger.debug(f"[ChangeDetector] Sub-rect {sub_rect} is empty for {image.size}")
        return None

    return image.crop(box)
