"""Detail magnitude maps for focus stacking.

The canonical measure is the absolute value of the level's luminance. For
Laplacian levels this is the band-pass response; for the base level it is
plain brightness. A smoothed local-energy alternative is available as well.
"""

from __future__ import annotations

import cv2
import numpy as np

from .config import DetailMeasure


def level_luminance(level: np.ndarray) -> np.ndarray:
    """Single-channel float32 view of a pyramid level."""
    level = level.astype(np.float32, copy=False)
    if level.ndim == 3 and level.shape[2] == 3:
        return cv2.cvtColor(level, cv2.COLOR_RGB2GRAY)
    if level.ndim == 3:
        return level[:, :, 0]
    return level


def compute_detail_magnitude(level: np.ndarray, measure: DetailMeasure = "abs") -> np.ndarray:
    """Compute the per-pixel detail magnitude of one pyramid level.

    Args:
        level: Pyramid level (H, W) or (H, W, 3), possibly negative.
        measure: "abs" for |luminance|, "energy" for GaussianBlur(luminance^2).

    Returns:
        (H, W) float32 map. Non-finite entries are set to -inf so they never
        win the selection.
    """
    gray = level_luminance(level)

    if measure == "energy":
        magnitude = cv2.GaussianBlur(gray * gray, (3, 3), 0)
    elif measure == "abs":
        magnitude = np.abs(gray)
    else:
        raise ValueError(f"Unknown detail measure: {measure!r}")

    magnitude = magnitude.astype(np.float32, copy=True)
    magnitude[~np.isfinite(magnitude)] = -np.inf
    return magnitude


def compute_sharpness_maps(
    level_images: list[np.ndarray],
    measure: DetailMeasure = "abs",
) -> list[np.ndarray]:
    """Detail magnitude maps for the same level drawn from every frame."""
    return [compute_detail_magnitude(level, measure) for level in level_images]
