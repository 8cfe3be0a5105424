"""Writing stacked results and carrying over the reference frame's metadata.

The output name is derived from the burst's capture time
(``ZeroBlur_YYYYmmdd_HHMMSS.jpg``). Descriptive EXIF tags (camera, exposure,
date and GPS) are copied from the reference frame's original file; a metadata
failure is logged and never prevents the image from being written.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

import numpy as np
from PIL import ExifTags, Image

logger = logging.getLogger(__name__)

# Tags copied from IFD0
BASE_TAGS = (
    ExifTags.Base.DateTime,
    ExifTags.Base.Make,
    ExifTags.Base.Model,
)

# Tags copied from the Exif sub-IFD
EXIF_IFD_TAGS = (
    ExifTags.Base.ApertureValue,
    ExifTags.Base.ExposureTime,
    ExifTags.Base.Flash,
    ExifTags.Base.FocalLength,
    ExifTags.Base.ISOSpeedRatings,
    ExifTags.Base.WhiteBalance,
)


def output_filename(capture_time: datetime, prefix: str = "ZeroBlur", suffix: str = ".jpg") -> str:
    """Deterministic result name for a burst captured at ``capture_time``."""
    return f"{prefix}_{capture_time.strftime('%Y%m%d_%H%M%S')}{suffix}"


def extract_exif(source: str | Path) -> bytes | None:
    """Collect the transplantable EXIF subset of ``source``.

    Returns:
        Encoded EXIF block, or None if the source has none of the tags.
    """
    with Image.open(source) as img:
        src_exif = img.getexif()
        exif_ifd = src_exif.get_ifd(ExifTags.IFD.Exif)
        gps_ifd = src_exif.get_ifd(ExifTags.IFD.GPSInfo)

        new_exif = Image.Exif()
        for tag in BASE_TAGS:
            if tag in src_exif:
                new_exif[tag] = src_exif[tag]

        copied_exif_ifd = {tag: exif_ifd[tag] for tag in EXIF_IFD_TAGS if tag in exif_ifd}
        if copied_exif_ifd:
            new_exif[ExifTags.IFD.Exif] = copied_exif_ifd
        if gps_ifd:
            new_exif[ExifTags.IFD.GPSInfo] = dict(gps_ifd)

    if len(new_exif) == 0:
        return None
    return new_exif.tobytes()


def save_result(
    image: np.ndarray,
    capture_time: datetime,
    output_dir: str | Path,
    prefix: str = "ZeroBlur",
    quality: int = 100,
    exif: bytes | None = None,
) -> Path:
    """Write an RGB uint8 image as JPEG under a capture-time name.

    Returns:
        Path to the written file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / output_filename(capture_time, prefix)

    params = {"quality": quality}
    if exif:
        params["exif"] = exif

    Image.fromarray(image).save(path, format="JPEG", **params)
    logger.info("Saved fused image to %s", path)
    return path


def save_with_metadata(
    image: np.ndarray,
    capture_time: datetime,
    output_dir: str | Path,
    reference_source: str | Path | None,
    prefix: str = "ZeroBlur",
    quality: int = 100,
) -> Path:
    """Write the result, transplanting EXIF from ``reference_source`` when possible."""
    exif = None
    if reference_source is not None:
        try:
            exif = extract_exif(reference_source)
        except (OSError, ValueError, SyntaxError) as e:
            logger.error("Failed to copy EXIF from %s: %s", reference_source, e)
    return save_result(image, capture_time, output_dir, prefix=prefix, quality=quality, exif=exif)
