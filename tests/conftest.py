"""
Pytest configuration and fixtures.
"""

import cv2
import numpy as np
import pytest


@pytest.fixture
def textured_rgb():
    """Create a smooth random texture, RGB uint8."""
    def _create(height=128, width=128, seed=0, sigma=2.0):
        rng = np.random.default_rng(seed)
        noise = rng.uniform(0, 255, (height, width)).astype(np.float32)
        smooth = cv2.GaussianBlur(noise, (0, 0), sigma)
        smooth = cv2.normalize(smooth, None, 20, 235, cv2.NORM_MINMAX)
        gray = smooth.astype(np.uint8)
        return np.dstack([gray, gray, gray])

    return _create


@pytest.fixture
def solid_gray_stack():
    """Create N identical solid gray frames."""
    def _create(n=3, height=64, width=64, value=128):
        return [np.full((height, width, 3), value, dtype=np.uint8) for _ in range(n)]

    return _create


@pytest.fixture
def sharp_square_stack():
    """Burst whose middle frame holds a sharp square; the others are blurred copies."""
    def _create(height=64, width=64, background=60, foreground=200, sigma=3.0):
        sharp = np.full((height, width, 3), background, dtype=np.uint8)
        sharp[20:44, 20:44] = foreground
        blurred = cv2.GaussianBlur(sharp, (0, 0), sigma)
        return [blurred.copy(), sharp, blurred.copy()]

    return _create
