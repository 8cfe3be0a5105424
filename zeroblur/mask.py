"""Decision masks for focus stacking.

For one pyramid level, the mask holds the index of the frame whose detail
magnitude is largest at each pixel. Selection is hard and purely per pixel;
ties go to the lowest frame index so the output is deterministic.
"""

from __future__ import annotations

import numpy as np


def select_winners(magnitudes: list[np.ndarray]) -> np.ndarray:
    """Build the winner-index map for one level.

    Args:
        magnitudes: One (H, W) magnitude map per frame, all the same shape.

    Returns:
        (H, W) int32 array of winning frame indices.
    """
    if len(magnitudes) == 0:
        raise ValueError("Need at least one magnitude map")

    running_max = np.array(magnitudes[0], dtype=np.float32, copy=True)
    winners = np.zeros(running_max.shape, dtype=np.int32)

    for i in range(1, len(magnitudes)):
        magnitude = magnitudes[i]
        if magnitude.shape != running_max.shape:
            raise ValueError(
                f"Magnitude map {i} has shape {magnitude.shape}, expected {running_max.shape}"
            )
        # strictly greater: equal magnitudes keep the earlier frame
        better = magnitude > running_max
        running_max[better] = magnitude[better]
        winners[better] = i

    return winners

