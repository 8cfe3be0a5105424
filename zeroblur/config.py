"""Configuration for the focus stacking pipeline.

Every tunable of the pipeline lives here so that runs are reproducible and
tests can sweep level counts or alignment sizes without touching module state.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal


DetailMeasure = Literal["abs", "energy"]


@dataclass
class StackConfig:
    """Parameters for one focus stacking run."""

    # --- Pyramid ---
    levels: int = 5
    """Number of Laplacian levels L (the Gaussian pyramid has L+1 levels)."""

    # --- Alignment ---
    align: bool = True
    """Align frames to the reference before fusion."""

    align_max_dim: int = 1000
    """Target for the longest side of the luminance copies used by ECC."""

    clamp_align_scale: bool = True
    """Never upscale the alignment working copy (scale factor <= 1.0)."""

    ecc_max_iterations: int = 50
    """ECC iteration cap."""

    ecc_epsilon: float = 1e-3
    """ECC convergence threshold."""

    ecc_gauss_filter_size: int = 5
    """Gaussian pre-filter size applied by ECC (odd)."""

    # --- Fusion ---
    detail_measure: DetailMeasure = "abs"
    """Per-pixel detail magnitude: 'abs' (|luminance|) or 'energy' (blurred square)."""

    workers: int = 1
    """Threads used for per-frame alignment and per-level fusion."""

    # --- Output ---
    jpeg_quality: int = 100
    """JPEG quality of the written result (1-100)."""

    output_prefix: str = "ZeroBlur"
    """Filename prefix of the written result."""

    debug_dir: Path | None = None
    """If set, Gaussian/Laplacian pyramids are dumped here for inspection."""

    def __post_init__(self) -> None:
        if self.levels < 1:
            raise ValueError(f"levels must be >= 1, got {self.levels}")
        if self.align_max_dim < 1:
            raise ValueError(f"align_max_dim must be >= 1, got {self.align_max_dim}")
        if self.ecc_max_iterations < 1:
            raise ValueError(f"ecc_max_iterations must be >= 1, got {self.ecc_max_iterations}")
        if self.ecc_epsilon <= 0:
            raise ValueError(f"ecc_epsilon must be > 0, got {self.ecc_epsilon}")
        if self.ecc_gauss_filter_size < 1 or self.ecc_gauss_filter_size % 2 == 0:
            raise ValueError(
                f"ecc_gauss_filter_size must be a positive odd integer, got {self.ecc_gauss_filter_size}"
            )
        if self.detail_measure not in ("abs", "energy"):
            raise ValueError(f"Unknown detail_measure: {self.detail_measure!r}")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError(f"jpeg_quality must be in [1, 100], got {self.jpeg_quality}")
        if self.debug_dir is not None:
            self.debug_dir = Path(self.debug_dir)
