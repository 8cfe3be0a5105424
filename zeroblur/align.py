"""Burst alignment using ECC maximization (affine warp).

Every frame is registered to the middle frame of the burst. The ECC
optimization runs on downscaled luminance copies to bound its cost; the
resulting transform is lifted back to full resolution and applied as an
inverse warp. A frame that cannot be aligned is passed through unaligned.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Sequence

import cv2
import numpy as np

from .config import StackConfig
from .errors import AlignmentError, EmptyInputError, NumericFault

logger = logging.getLogger(__name__)

# |det| of the linear part below this is treated as a collapsed transform
MIN_DETERMINANT = 1e-6


@dataclass
class AlignmentResult:
    """Result of aligning a single frame."""

    index: int
    image: np.ndarray
    success: bool
    # 2x3 full-resolution transform (reference -> source coordinates)
    matrix: np.ndarray | None = None
    error_message: str = ""


def select_reference_index(num_frames: int) -> int:
    """Index of the reference frame: the middle of the burst."""
    if num_frames <= 0:
        raise EmptyInputError("Cannot select a reference from an empty burst")
    return num_frames // 2


def to_luminance(image: np.ndarray) -> np.ndarray:
    """Convert an RGB image to a single channel; single channel passes through."""
    if image.ndim == 3 and image.shape[2] > 1:
        return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    if image.ndim == 3:
        return image[:, :, 0]
    return image


def compute_align_scale(width: int, height: int, max_dim: int, clamp: bool = True) -> float:
    """Scale factor that brings the longest side to ``max_dim``."""
    scale = max_dim / max(width, height)
    if clamp:
        scale = min(scale, 1.0)
    return scale


def downscale_for_alignment(gray: np.ndarray, size: tuple[int, int]) -> np.ndarray:
    """Resample a luminance image to ``size`` (w, h) with area interpolation."""
    if (gray.shape[1], gray.shape[0]) == size:
        return gray
    return cv2.resize(gray, size, interpolation=cv2.INTER_AREA)


def find_transform(
    reference_gray: np.ndarray,
    frame_gray: np.ndarray,
    max_iterations: int = 50,
    epsilon: float = 1e-3,
    gauss_filter_size: int = 5,
) -> np.ndarray:
    """Estimate the affine warp that maps ``reference_gray`` onto ``frame_gray``.

    Raises:
        AlignmentError: Degenerate input or ECC failure.
        NumericFault: Non-finite or singular transform.
    """
    for name, gray in (("reference", reference_gray), ("frame", frame_gray)):
        if float(np.std(gray)) == 0.0:
            raise AlignmentError(f"{name} image has no intensity variation")

    warp_matrix = np.eye(2, 3, dtype=np.float32)
    criteria = (cv2.TERM_CRITERIA_EPS | cv2.TERM_CRITERIA_COUNT, max_iterations, epsilon)

    try:
        _, warp_matrix = cv2.findTransformECC(
            reference_gray, frame_gray, warp_matrix, cv2.MOTION_AFFINE, criteria, None, gauss_filter_size
        )
    except cv2.error as e:
        raise AlignmentError(f"ECC failed: {e}") from e

    if not np.all(np.isfinite(warp_matrix)):
        raise NumericFault("ECC returned a non-finite transform")
    if abs(float(np.linalg.det(warp_matrix[:, :2]))) < MIN_DETERMINANT:
        raise NumericFault("ECC returned a singular transform")

    return warp_matrix


def scale_transform(matrix: np.ndarray, scale: float) -> np.ndarray:
    """Lift a transform estimated at ``scale`` back to full resolution.

    Only the translation column depends on the pixel grid; the linear part is
    invariant under isotropic scaling.
    """
    scaled = matrix.astype(np.float32, copy=True)
    scaled[0, 2] /= scale
    scaled[1, 2] /= scale
    return scaled


def warp_to_reference(image: np.ndarray, matrix: np.ndarray, size: tuple[int, int]) -> np.ndarray:
    """Sample ``image`` through ``matrix`` into a ``size`` (w, h) output."""
    return cv2.warpAffine(
        image,
        matrix,
        size,
        flags=cv2.INTER_LINEAR + cv2.WARP_INVERSE_MAP,
        borderMode=cv2.BORDER_REPLICATE,
    )


def check_same_shape(frames: Sequence[np.ndarray]) -> None:
    """Raise ValueError unless every frame has the shape of the first one."""
    for i, frame in enumerate(frames):
        if frame.shape != frames[0].shape:
            raise ValueError(f"Frame {i} has shape {frame.shape}, expected {frames[0].shape}")


def align_frame(
    index: int,
    frame: np.ndarray,
    reference_small: np.ndarray,
    scale: float,
    config: StackConfig,
) -> AlignmentResult:
    """Align one frame to the (downscaled) reference luminance.

    Failures are not raised: the original frame is returned with
    ``success=False``.
    """
    height, width = frame.shape[:2]
    small_size = (reference_small.shape[1], reference_small.shape[0])

    try:
        frame_small = downscale_for_alignment(to_luminance(frame), small_size)
        warp_matrix = find_transform(
            reference_small,
            frame_small,
            max_iterations=config.ecc_max_iterations,
            epsilon=config.ecc_epsilon,
            gauss_filter_size=config.ecc_gauss_filter_size,
        )
        warp_matrix = scale_transform(warp_matrix, scale)
        aligned = warp_to_reference(frame, warp_matrix, (width, height))
    except (AlignmentError, NumericFault) as e:
        logger.warning("Alignment failed for frame %d, keeping original: %s", index, e)
        return AlignmentResult(index=index, image=frame.copy(), success=False, error_message=str(e))

    logger.debug("Frame %d transform:\n%s", index, warp_matrix)
    return AlignmentResult(index=index, image=aligned, success=True, matrix=warp_matrix)


def align_frames(
    frames: Sequence[np.ndarray],
    config: StackConfig | None = None,
    progress: Callable[[str], None] | None = None,
) -> list[AlignmentResult]:
    """Align every frame of a burst to its middle frame.

    Args:
        frames: Equally-sized images (H, W) or (H, W, 3).
        config: Pipeline configuration (alignment size, ECC criteria, workers).
        progress: Optional sink for human-readable progress messages.

    Returns:
        One ``AlignmentResult`` per input frame, in input order. The reference
        slot holds an unchanged copy with the identity transform.
    """
    if config is None:
        config = StackConfig()
    if len(frames) == 0:
        raise EmptyInputError("No frames to align")

    ref_index = select_reference_index(len(frames))
    reference = frames[ref_index]
    height, width = reference.shape[:2]

    check_same_shape(frames)

    scale = compute_align_scale(width, height, config.align_max_dim, clamp=config.clamp_align_scale)
    small_size = (max(1, round(width * scale)), max(1, round(height * scale)))
    reference_small = downscale_for_alignment(to_luminance(reference), small_size)
    logger.debug("Alignment scale %.4f, working size %s", scale, small_size)

    # One slot per frame; each worker writes only its own index
    results: list[AlignmentResult | None] = [None] * len(frames)
    results[ref_index] = AlignmentResult(
        index=ref_index,
        image=reference.copy(),
        success=True,
        matrix=np.eye(2, 3, dtype=np.float32),
    )

    def run(i: int) -> None:
        if progress is not None:
            progress(f"Aligning image {i + 1} to reference {ref_index + 1}...")
        result = align_frame(i, frames[i], reference_small, scale, config)
        results[i] = result
        if progress is not None:
            if result.success:
                progress(f"Aligned image {i + 1}")
            else:
                progress(f"ECC failed for image {i + 1}, using original. Error: {result.error_message}")

    pending = [i for i in range(len(frames)) if i != ref_index]
    if config.workers > 1 and len(pending) > 1:
        with ThreadPoolExecutor(max_workers=config.workers) as executor:
            futures = [executor.submit(run, i) for i in pending]
            for future in as_completed(futures):
                future.result()
    else:
        for i in pending:
            run(i)

    return results
