"""Focus stacking pipeline.

Runs the stages in order, recording progress on an explicit state machine:

    IDLE -> LOADING -> ALIGNING -> PYRAMID_BUILDING -> FUSING -> RECONSTRUCTING -> DONE

``ABORTED`` is terminal and reachable from any stage once no usable frame is
left. ``LOADING`` is owned by the caller (see :mod:`zeroblur.preprocess`);
:meth:`FocusStacker.stack` starts from decoded frames.

Example
-------
>>> from zeroblur import FocusStacker, StackConfig
>>> stacker = FocusStacker(StackConfig(levels=5), log_callback=print)
>>> result = stacker.stack(frames)
>>> if result.success:
...     save(result.image)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

import numpy as np

from .align import AlignmentResult, align_frames, check_same_shape, select_reference_index
from .config import StackConfig
from .errors import EmptyInputError, FocusStackError, NumericFault
from .fusion import fuse_pyramids, reconstruct_from_pyramid, to_uint8
from .pyramids import build_pyramids_stack, check_finite

logger = logging.getLogger(__name__)

LogCallback = Callable[[str], None]


class PipelineStage(Enum):
    """Stages of one stacking run."""

    IDLE = "idle"
    LOADING = "loading"
    ALIGNING = "aligning"
    PYRAMID_BUILDING = "pyramid_building"
    FUSING = "fusing"
    RECONSTRUCTING = "reconstructing"
    DONE = "done"
    ABORTED = "aborted"


_NEXT_STAGES = {
    PipelineStage.IDLE: {PipelineStage.LOADING, PipelineStage.ALIGNING},
    PipelineStage.LOADING: {PipelineStage.ALIGNING},
    PipelineStage.ALIGNING: {PipelineStage.PYRAMID_BUILDING},
    PipelineStage.PYRAMID_BUILDING: {PipelineStage.FUSING},
    PipelineStage.FUSING: {PipelineStage.RECONSTRUCTING},
    PipelineStage.RECONSTRUCTING: {PipelineStage.DONE},
    PipelineStage.DONE: set(),
    PipelineStage.ABORTED: set(),
}


@dataclass
class StackResult:
    """Outcome of one stacking run."""

    image: np.ndarray | None
    reference_index: int | None
    stage: PipelineStage
    alignments: list[AlignmentResult] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    error_message: str = ""

    @property
    def success(self) -> bool:
        return self.stage is PipelineStage.DONE and self.image is not None

    @property
    def n_aligned(self) -> int:
        return sum(1 for a in self.alignments if a.success)


class FocusStacker:
    """Align, decompose, fuse and collapse a focus burst."""

    def __init__(self, config: StackConfig | None = None, log_callback: LogCallback | None = None) -> None:
        self.config = config or StackConfig()
        self.log_callback = log_callback
        self.stage = PipelineStage.IDLE
        self.reference_index: int | None = None
        self._messages: list[str] = []

    def log(self, message: str) -> None:
        """Send a progress message to the logger and the diagnostics sink."""
        logger.info(message)
        self._messages.append(message)
        if self.log_callback is not None:
            try:
                self.log_callback(message)
            except Exception:
                logger.exception("Log callback failed for message: %s", message)

    def _advance(self, stage: PipelineStage) -> None:
        if stage is not PipelineStage.ABORTED and stage not in _NEXT_STAGES[self.stage]:
            raise RuntimeError(f"Invalid stage transition {self.stage.value} -> {stage.value}")
        logger.debug("Stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    def begin_loading(self) -> None:
        """Mark that the caller is decoding inputs for this run."""
        self._advance(PipelineStage.LOADING)

    def abort(self, reason: str) -> StackResult:
        """Move to ABORTED and return an empty result."""
        self._advance(PipelineStage.ABORTED)
        self.log(reason)
        return StackResult(
            image=None,
            reference_index=self.reference_index,
            stage=self.stage,
            messages=list(self._messages),
            error_message=reason,
        )

    def stack(self, frames: Sequence[np.ndarray]) -> StackResult:
        """Run alignment, pyramid building, fusion and reconstruction.

        Args:
            frames: Decoded, equally-sized images. The frame at ``len // 2``
                is the reference.

        Returns:
            A ``StackResult``; ``image`` is None when the run aborted.
        """
        if self.stage not in (PipelineStage.IDLE, PipelineStage.LOADING):
            raise RuntimeError("FocusStacker instances run a single pipeline")

        config = self.config
        self.log(f"Starting focus stacking with {len(frames)} images (Laplacian Pyramid)")

        try:
            self.reference_index = select_reference_index(len(frames))
        except EmptyInputError:
            return self.abort("No images to process")

        # --- Alignment ---
        self._advance(PipelineStage.ALIGNING)
        try:
            check_same_shape(frames)
            if config.align:
                self.log("Aligning images using ECC...")
                alignments = align_frames(frames, config, progress=self.log)
            else:
                self.log("Alignment disabled, using frames as given")
                alignments = [
                    AlignmentResult(index=i, image=np.array(frame, copy=True), success=True)
                    for i, frame in enumerate(frames)
                ]
        except ValueError as e:
            return self.abort(f"Error: {e}")

        n_failed = sum(1 for a in alignments if not a.success)
        if n_failed:
            logger.warning("%d of %d frames kept unaligned", n_failed, len(alignments))

        # --- Pyramids ---
        self._advance(PipelineStage.PYRAMID_BUILDING)
        self.log("Building Gaussian Pyramids...")
        debug_dir = config.debug_dir
        gaussian_pyrs, laplacian_pyrs, top_gaussians = build_pyramids_stack(
            [a.image for a in alignments],
            config.levels,
            gaussian_pyramid_dir=str(debug_dir / "gaussian_pyramids") if debug_dir else None,
            laplacian_pyramid_dir=str(debug_dir / "laplacian_pyramids") if debug_dir else None,
        )
        self.log("Building Laplacian Pyramids...")

        usable = []
        for i, gaussian_pyr in enumerate(gaussian_pyrs):
            try:
                for k, level in enumerate(gaussian_pyr):
                    check_finite(level, f"frame {i} Gaussian level {k}")
            except NumericFault as e:
                logger.warning("Dropping frame %d from fusion: %s", i, e)
                continue
            usable.append(i)

        if not usable:
            return self._aborted_with(alignments, "No usable frames left after pyramid building")

        # --- Fusion ---
        self._advance(PipelineStage.FUSING)
        self.log("Fusing Pyramids...")
        fused_laplacian, fused_top = fuse_pyramids(
            [laplacian_pyrs[i] for i in usable],
            [top_gaussians[i] for i in usable],
            measure=config.detail_measure,
            workers=config.workers,
        )

        # --- Reconstruction ---
        self._advance(PipelineStage.RECONSTRUCTING)
        self.log("Collapsing Pyramid...")
        try:
            image = to_uint8(reconstruct_from_pyramid(fused_laplacian, fused_top))
        except FocusStackError as e:
            return self._aborted_with(alignments, f"Error: {e}")

        self._advance(PipelineStage.DONE)
        self.log("Focus stacking complete")
        return StackResult(
            image=image,
            reference_index=self.reference_index,
            stage=self.stage,
            alignments=alignments,
            messages=list(self._messages),
        )

    def _aborted_with(self, alignments: list[AlignmentResult], reason: str) -> StackResult:
        result = self.abort(reason)
        result.alignments = alignments
        return result


def focus_stack(
    frames: Sequence[np.ndarray],
    config: StackConfig | None = None,
    log_callback: LogCallback | None = None,
) -> StackResult:
    """Stack a decoded burst with a fresh :class:`FocusStacker`."""
    return FocusStacker(config, log_callback).stack(frames)
