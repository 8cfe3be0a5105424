"""Fusion + reconstruction utilities for focus stacking.

This module fuses every Laplacian pyramid level (and the base Gaussian level)
by per-pixel maximum detail selection, then collapses the fused pyramid back
into the final all-in-focus image.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import cv2
import numpy as np

from .config import DetailMeasure
from .errors import NumericFault
from .mask import select_winners
from .sharpness import compute_sharpness_maps

logger = logging.getLogger(__name__)


def composite_level(level_images: list[np.ndarray], winners: np.ndarray) -> np.ndarray:
    """Copy every channel of the winning frame's level at each pixel."""
    fused = np.zeros_like(level_images[0], dtype=np.float32)
    for i, level in enumerate(level_images):
        selected = winners == i
        fused[selected] = level[selected]
    return fused


def fuse_level(level_images: list[np.ndarray], measure: DetailMeasure = "abs") -> np.ndarray:
    """Fuse the same pyramid level drawn from every frame.

    Args:
        level_images: One level per frame, identical shapes.
        measure: Detail magnitude used for the selection.

    Returns:
        The fused level, same shape as the inputs, float32.
    """
    if len(level_images) == 0:
        raise ValueError("Need at least one level image to fuse")

    shape = level_images[0].shape
    for i, level in enumerate(level_images):
        if level.shape != shape:
            raise ValueError(f"Level image {i} has shape {level.shape}, expected {shape}")

    magnitudes = compute_sharpness_maps(level_images, measure)
    winners = select_winners(magnitudes)
    return composite_level(level_images, winners)


def fuse_pyramids(
    laplacian_pyramids: list[list[np.ndarray]],
    top_gaussians: list[np.ndarray],
    measure: DetailMeasure = "abs",
    workers: int = 1,
) -> tuple[list[np.ndarray], np.ndarray]:
    """Fuse all Laplacian levels and the base level across frames.

    Args:
        laplacian_pyramids: Laplacian pyramids for all images.
        top_gaussians: Coarsest Gaussian level of every image.
        measure: Detail magnitude used for the selection.
        workers: Threads used to fuse levels concurrently.

    Returns:
        (fused Laplacian levels, fused base level).
    """
    num_images = len(laplacian_pyramids)
    if num_images == 0 or len(top_gaussians) != num_images:
        raise ValueError("Need one Laplacian pyramid and one base level per image")

    num_levels = len(laplacian_pyramids[0])
    # Levels 0..L-1 are Laplacian, slot L is the base
    level_inputs = [[laplacian_pyramids[i][k] for i in range(num_images)] for k in range(num_levels)]
    level_inputs.append(list(top_gaussians))

    fused: list[np.ndarray | None] = [None] * len(level_inputs)

    def run(k: int) -> None:
        fused[k] = fuse_level(level_inputs[k], measure)

    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            for future in [executor.submit(run, k) for k in range(len(level_inputs))]:
                future.result()
    else:
        for k in range(len(level_inputs)):
            run(k)

    return fused[:num_levels], fused[num_levels]


def reconstruct_from_pyramid(fused_laplacian: list[np.ndarray], fused_top: np.ndarray) -> np.ndarray:
    """Reconstruct the final image from a fused Laplacian pyramid.

    Args:
        fused_laplacian: Fused Laplacian pyramid levels, finest first.
        fused_top: Fused top-level Gaussian image.

    Returns:
        Reconstructed float32 image at level 0 resolution (not clipped).
    """
    image = fused_top.astype(np.float32)
    for band in reversed(fused_laplacian):
        # expand to the band's exact size, then add the detail back
        image = cv2.pyrUp(image, dstsize=(band.shape[1], band.shape[0])) + band.astype(np.float32)
    return image


def to_uint8(image: np.ndarray) -> np.ndarray:
    """Round to nearest and saturate into [0, 255]."""
    if not np.all(np.isfinite(image)):
        raise NumericFault("Reconstructed image contains non-finite values")
    return np.clip(np.rint(image), 0, 255).astype(np.uint8)


def fuse_pyramids_and_reconstruct(
    laplacian_pyramids: list[list[np.ndarray]],
    top_gaussians: list[np.ndarray],
    measure: DetailMeasure = "abs",
    workers: int = 1,
) -> np.ndarray:
    """Fuse pyramids and reconstruct the final uint8 image."""
    fused_laplacian, fused_top = fuse_pyramids(laplacian_pyramids, top_gaussians, measure, workers)
    return to_uint8(reconstruct_from_pyramid(fused_laplacian, fused_top))
