"""Gaussian/Laplacian pyramid utilities for focus stacking.

References:
    Burt & Adelson (1983): The Laplacian Pyramid as a Compact Image Code.
"""

from __future__ import annotations

import logging
import math
import os

import cv2
import numpy as np

from .errors import NumericFault

logger = logging.getLogger(__name__)


def pyramid_level_sizes(width: int, height: int, levels: int) -> list[tuple[int, int]]:
    """(w, h) of every Gaussian level: level k is ceil(W / 2^k) x ceil(H / 2^k)."""
    return [(math.ceil(width / 2**k), math.ceil(height / 2**k)) for k in range(levels + 1)]


def check_finite(array: np.ndarray, what: str) -> None:
    """Raise NumericFault if ``array`` holds NaN or Inf."""
    if not np.all(np.isfinite(array)):
        raise NumericFault(f"Non-finite values in {what}")


def build_gaussian_pyramid(image: np.ndarray, max_levels: int) -> list[np.ndarray]:
    """Build a float32 Gaussian pyramid [G0, G1, ..., Gmax]."""
    gaussian_pyramid = [image.astype(np.float32)]
    for _ in range(max_levels):
        # pyrDown's default size is ((w + 1) // 2, (h + 1) // 2)
        gaussian_next = cv2.pyrDown(gaussian_pyramid[-1])
        gaussian_pyramid.append(gaussian_next)

    return gaussian_pyramid


def build_laplacian_pyramid(gaussian_pyramid: list[np.ndarray]) -> tuple[list[np.ndarray], np.ndarray]:
    """Build a Laplacian pyramid from a Gaussian pyramid.

    Returns:
        The L band-pass levels and the coarsest Gaussian level (base).
    """
    laplacian_pyramid = []
    num_levels = len(gaussian_pyramid)

    for k in range(num_levels - 1):
        gauss_k = gaussian_pyramid[k]
        gauss_k_plus_1 = gaussian_pyramid[k + 1]

        # Exact target size: halving is not always even
        gauss_k_plus_1_up = cv2.pyrUp(gauss_k_plus_1, dstsize=(gauss_k.shape[1], gauss_k.shape[0]))

        laplacian = gauss_k - gauss_k_plus_1_up
        laplacian_pyramid.append(laplacian)

    return laplacian_pyramid, gaussian_pyramid[-1]


def _to_bgr_u8(level: np.ndarray, offset: float = 0.0) -> np.ndarray:
    level_u8 = np.clip(level + offset, 0, 255).astype(np.uint8)
    if level_u8.ndim == 3 and level_u8.shape[2] == 3:
        level_u8 = cv2.cvtColor(level_u8, cv2.COLOR_RGB2BGR)
    return level_u8


def _dump_pyramids(pyramids: list[list[np.ndarray]], out_dir: str, offset: float = 0.0) -> None:
    """Write every level as out_dir/image_NNN/level_KK.png."""
    for i, pyramid in enumerate(pyramids):
        image_dir = os.path.join(out_dir, f"image_{i:03d}")
        os.makedirs(image_dir, exist_ok=True)
        for k, level in enumerate(pyramid):
            cv2.imwrite(os.path.join(image_dir, f"level_{k:02d}.png"), _to_bgr_u8(level, offset))
    logger.debug("Pyramid levels written to %s", out_dir)


def build_pyramids_stack(
    images: list[np.ndarray],
    levels: int,
    gaussian_pyramid_dir: str | None = None,
    laplacian_pyramid_dir: str | None = None,
) -> tuple[list[list[np.ndarray]], list[list[np.ndarray]], list[np.ndarray]]:
    """Build Gaussian/Laplacian pyramids for each image in a stack.

    Returns:
        (gaussian_pyramids, laplacian_pyramids, top_gaussians), one entry per image.
    """
    top_gaussians = []
    gaussian_pyramids = []
    laplacian_pyramids = []

    for image in images:
        gaussian_pyramid = build_gaussian_pyramid(image, levels)
        laplacian_pyramid, top_gaussian = build_laplacian_pyramid(gaussian_pyramid)

        top_gaussians.append(top_gaussian)
        gaussian_pyramids.append(gaussian_pyramid)
        laplacian_pyramids.append(laplacian_pyramid)

    if gaussian_pyramid_dir is not None:
        _dump_pyramids(gaussian_pyramids, gaussian_pyramid_dir)
    if laplacian_pyramid_dir is not None:
        # band-pass levels are centred on zero
        _dump_pyramids(laplacian_pyramids, laplacian_pyramid_dir, offset=128)

    return gaussian_pyramids, laplacian_pyramids, top_gaussians
