"""Focus stacking CLI entry point.

Usage (from the repo root)::

    python -m zeroblur burst/ -o outputs/
    python -m zeroblur IMG_001.jpg IMG_002.jpg IMG_003.jpg --levels 6 --workers 4
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Sequence

from . import __version__
from .config import StackConfig
from .errors import NoValidFrameError
from .persistence import save_with_metadata
from .pipeline import FocusStacker
from .preprocess import list_image_files, load_image_stack

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%H:%M:%S",
    )


def expand_inputs(inputs: Sequence[str | Path]) -> list[Path]:
    """Turn a mix of files and directories into an ordered list of image files."""
    paths: list[Path] = []
    for item in inputs:
        item = Path(item)
        if item.is_dir():
            paths.extend(list_image_files(item))
        else:
            paths.append(item)
    return paths


def run_focus_stacking(
    *,
    inputs: Sequence[str | Path],
    output_dir: Path,
    config: StackConfig | None = None,
    capture_time: datetime | None = None,
    log_callback: Callable[[str], None] | None = None,
) -> Path | None:
    """Run the focus stacking pipeline on a burst of image files.

    Args:
        inputs: Image files and/or directories holding one burst.
        output_dir: Output directory where the fused image will be written.
        config: Pipeline configuration.
        capture_time: Burst start time used to name the output. Defaults to
            the modification time of the first input.
        log_callback: Optional sink for progress messages.

    Returns:
        Path to the written fused image, or None if no result was produced.
    """
    config = config or StackConfig()
    paths = expand_inputs(inputs)
    stacker = FocusStacker(config, log_callback=log_callback)

    if not paths:
        stacker.abort("No images to process")
        return None

    stacker.begin_loading()
    try:
        decoded = load_image_stack(paths, progress=stacker.log)
    except NoValidFrameError as e:
        stacker.abort(str(e))
        return None

    result = stacker.stack(decoded.frames)
    if not result.success:
        logger.error("Focus stacking failed: %s", result.error_message)
        return None

    if capture_time is None:
        capture_time = datetime.fromtimestamp(Path(decoded.sources[0]).stat().st_mtime)

    reference_source = decoded.sources[result.reference_index]
    stacker.log("Saving result...")
    try:
        return save_with_metadata(
            result.image,
            capture_time,
            output_dir,
            reference_source=reference_source,
            prefix=config.output_prefix,
            quality=config.jpeg_quality,
        )
    except OSError as e:
        logger.error("Could not write result to %s: %s", output_dir, e)
        stacker.log(f"Failed to save stacked image: {e}")
        return None


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="zeroblur",
        description="Merge a focus burst into one image with extended depth of field.",
    )
    parser.add_argument("inputs", nargs="+", help="Image files or directories of one burst")
    parser.add_argument("-o", "--output", default="outputs", help="Output directory (default: outputs)")
    parser.add_argument("--levels", type=int, default=5, help="Pyramid levels (default: 5)")
    parser.add_argument(
        "--align-max-dim",
        type=int,
        default=1000,
        help="Longest side of the images used for alignment (default: 1000)",
    )
    parser.add_argument(
        "--no-clamp-scale",
        action="store_true",
        help="Allow upscaling small images for alignment",
    )
    parser.add_argument("--no-align", action="store_true", help="Skip alignment")
    parser.add_argument("--workers", type=int, default=1, help="Worker threads (default: 1)")
    parser.add_argument(
        "--measure",
        choices=["abs", "energy"],
        default="abs",
        help="Detail measure used for selection (default: abs)",
    )
    parser.add_argument("--quality", type=int, default=100, help="JPEG quality (default: 100)")
    parser.add_argument("--prefix", default="ZeroBlur", help="Output filename prefix")
    parser.add_argument("--debug-dir", default=None, help="Dump pyramids to this directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point; returns the process exit status."""
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = StackConfig(
            levels=args.levels,
            align=not args.no_align,
            align_max_dim=args.align_max_dim,
            clamp_align_scale=not args.no_clamp_scale,
            detail_measure=args.measure,
            workers=args.workers,
            jpeg_quality=args.quality,
            output_prefix=args.prefix,
            debug_dir=args.debug_dir,
        )
    except ValueError as e:
        parser.error(str(e))

    output_path = run_focus_stacking(inputs=args.inputs, output_dir=Path(args.output), config=config)
    if output_path is None:
        return 1
    print(output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
