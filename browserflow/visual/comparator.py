"""
Pixel-level image comparison.

Images are decoded with Pillow, alpha-blended onto white and converted to the
YIQ colour space with numpy. A pixel mismatches when its weighted YIQ
distance ``0.5053·ΔY² + 0.299·ΔI² + 0.1957·ΔQ²`` exceeds
``35215 · threshold²`` (the colour-delta metric of pixelmatch, without its
anti-aliasing detection). ``35215`` is the largest possible delta, so
``threshold`` is a fraction of full-scale difference.

Comparison is advisory: images that cannot be decoded produce a non-match
with ``diff_percent == 0`` instead of an exception.
"""

from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image

from ..core.config import Config
from ..core.exceptions import ValidationError
from ..core.logging_config import get_logger
from .models import ComparisonResult

logger = get_logger(__name__)

MAX_YIQ_DELTA = 35215.0
DEFAULT_THRESHOLD = 0.1
DIFF_COLOR = (255, 0, 0)
# Unchanged pixels are drawn as grey luma faded toward white
DIFF_BACKGROUND_ALPHA = 0.1


def _to_yiq(image: Image.Image) -> np.ndarray:
    rgba = np.asarray(image.convert("RGBA"), dtype=np.float64)
    alpha = rgba[..., 3:4] / 255.0
    rgb = 255.0 + (rgba[..., :3] - 255.0) * alpha
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]

    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return np.stack([y, i, q], axis=-1)


def _color_delta(yiq_a: np.ndarray, yiq_b: np.ndarray) -> np.ndarray:
    d = yiq_a - yiq_b
    return 0.5053 * d[..., 0] ** 2 + 0.299 * d[..., 1] ** 2 + 0.1957 * d[..., 2] ** 2


def _render_diff(yiq_a: np.ndarray, mismatch: np.ndarray) -> Image.Image:
    luma = 255.0 + (yiq_a[..., 0] - 255.0) * DIFF_BACKGROUND_ALPHA
    canvas = np.repeat(luma[..., np.newaxis], 3, axis=-1)
    canvas[mismatch] = DIFF_COLOR
    return Image.fromarray(np.clip(canvas, 0, 255).round().astype(np.uint8))


def _validate_threshold(threshold: float) -> float:
    if not 0.0 <= threshold <= 1.0:
        raise ValidationError(
            f"Comparison threshold must be between 0 and 1, got {threshold}",
            validation_type="threshold",
        )
    return threshold


def compare_images(
    path_a: Path,
    path_b: Path,
    threshold: float = DEFAULT_THRESHOLD,
    generate_diff: bool = True,
    diff_path: Optional[Path] = None,
) -> ComparisonResult:
    """
    Compare two images pixel by pixel.

    Args:
        path_a: First image (usually the baseline)
        path_b: Second image (usually the actual screenshot)
        threshold: Per-pixel colour difference tolerance in [0, 1]
        generate_diff: Whether to write a diff image on mismatch
        diff_path: Where to write the diff image

    Returns:
        ComparisonResult; dimension mismatch reports 100% difference,
        undecodable input reports a non-match with 0%

    Raises:
        ValidationError: If threshold is outside [0, 1]
    """
    _validate_threshold(threshold)

    try:
        with Image.open(path_a) as image_a, Image.open(path_b) as image_b:
            if image_a.size != image_b.size:
                logger.debug(
                    f"Image dimensions differ: {image_a.size} vs {image_b.size}",
                    extra={"metadata": {"path_a": str(path_a), "path_b": str(path_b)}},
                )
                return ComparisonResult(match=False, diff_percent=100.0)
            yiq_a = _to_yiq(image_a)
            yiq_b = _to_yiq(image_b)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        logger.debug(f"Could not decode images for comparison: {e}")
        return ComparisonResult(match=False, diff_percent=0.0)

    total_pixels = yiq_a.shape[0] * yiq_a.shape[1]
    if total_pixels == 0:
        return ComparisonResult(match=True, diff_percent=0.0)

    mismatch = _color_delta(yiq_a, yiq_b) > MAX_YIQ_DELTA * threshold * threshold
    mismatched_pixels = int(np.count_nonzero(mismatch))
    diff_percent = mismatched_pixels / total_pixels * 100.0
    match = mismatched_pixels == 0

    if match or not generate_diff or diff_path is None:
        return ComparisonResult(match=match, diff_percent=diff_percent)

    diff_path = Path(diff_path)
    try:
        diff_path.parent.mkdir(parents=True, exist_ok=True)
        _render_diff(yiq_a, mismatch).save(diff_path, format="PNG")
    except OSError as e:
        logger.warning(f"Could not write diff image {diff_path}: {e}")
        return ComparisonResult(match=match, diff_percent=diff_percent)

    return ComparisonResult(match=match, diff_percent=diff_percent, diff_path=str(diff_path))


class ImageComparator:
    """Compares images with a fixed threshold and diff policy."""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD, generate_diff: bool = True):
        self.threshold = _validate_threshold(threshold)
        self.generate_diff = generate_diff

    @classmethod
    def from_config(cls, config: Config) -> "ImageComparator":
        return cls(threshold=config.diff_threshold, generate_diff=config.generate_diffs)

    def compare(
        self, path_a: Path, path_b: Path, diff_path: Optional[Path] = None
    ) -> ComparisonResult:
        return compare_images(
            path_a,
            path_b,
            threshold=self.threshold,
            generate_diff=self.generate_diff,
            diff_path=diff_path,
        )
