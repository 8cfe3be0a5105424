"""Focus stacking input utilities.

This module decodes a burst from encoded byte streams or files into RGB
``uint8`` arrays and makes sure every frame has the same spatial size. Frames
that fail to decode are skipped; the caller only gets an error when nothing
decodes at all.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

import cv2
import numpy as np

from .errors import DecodeError, NoValidFrameError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".tif", ".tiff", ".bmp", ".webp")


@dataclass
class DecodedStack:
    """Decoded frames and the sources they came from (index-aligned)."""

    frames: list[np.ndarray] = field(default_factory=list)
    sources: list[str | Path] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.frames)


def decode_image(data: bytes) -> np.ndarray:
    """Decode an encoded image into an (H, W, 3) uint8 array in RGB order."""
    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR) if buffer.size else None
    if image is None or image.size == 0:
        raise DecodeError("Could not decode image data")
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def load_image(path: str | Path) -> np.ndarray:
    """Read and decode one image file."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise DecodeError(f"Could not read {path}: {e}") from e
    try:
        return decode_image(data)
    except DecodeError as e:
        raise DecodeError(f"Could not decode {path}") from e


def list_image_files(folder_path: str | Path, extensions: Sequence[str] = IMAGE_EXTENSIONS) -> list[Path]:
    """List image files in a folder, sorted by name."""
    wanted = {ext.lower() for ext in extensions}
    return sorted(
        Path(folder_path) / name
        for name in os.listdir(folder_path)
        if os.path.splitext(name)[1].lower() in wanted
    )


def load_image_stack(
    sources: Sequence[str | Path | bytes],
    progress: Callable[[str], None] | None = None,
) -> DecodedStack:
    """Decode a burst, skipping inputs that fail.

    Args:
        sources: File paths, or raw encoded bytes.
        progress: Optional sink for human-readable progress messages.

    Returns:
        The decoded frames with their sources. Byte inputs are recorded as
        ``"<bytes #i>"``.

    Raises:
        NoValidFrameError: If no input decodes.
    """
    def report(message: str) -> None:
        if progress is not None:
            progress(message)
        else:
            logger.info(message)

    stack = DecodedStack()
    for index, source in enumerate(sources):
        report(f"Loading image {index + 1}...")
        try:
            if isinstance(source, (bytes, bytearray)):
                frame = decode_image(bytes(source))
                label: str | Path = f"<bytes #{index}>"
            else:
                frame = load_image(source)
                label = source
        except DecodeError as e:
            logger.warning("Skipping input %d: %s", index, e)
            if progress is not None:
                progress(f"Failed to decode image {index}")
            continue
        stack.frames.append(frame)
        stack.sources.append(label)

    if not stack.frames:
        raise NoValidFrameError("No valid images loaded")

    stack.frames = ensure_same_size(stack.frames)
    return stack


def ensure_same_size(frames: Sequence[np.ndarray]) -> list[np.ndarray]:
    """Resize all frames to match the first frame's size."""
    if len(frames) == 0:
        return []

    target_shape = frames[0].shape
    resized = []
    for index, frame in enumerate(frames):
        if frame.shape[:2] != target_shape[:2]:
            logger.warning(
                "Frame %d has size %s, resizing to %s",
                index, frame.shape[:2], target_shape[:2],
            )
            frame = cv2.resize(frame, (target_shape[1], target_shape[0]), interpolation=cv2.INTER_AREA)
        resized.append(frame)

    return resized
