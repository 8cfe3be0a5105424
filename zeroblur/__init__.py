"""
zeroblur - focus stacking by ECC alignment and Laplacian pyramid fusion.

Merges a burst of images shot at different focus distances into one image
with extended depth of field.

Example
-------
>>> from zeroblur import StackConfig, focus_stack, load_image_stack
>>> decoded = load_image_stack(["IMG_001.jpg", "IMG_002.jpg", "IMG_003.jpg"])
>>> result = focus_stack(decoded.frames, StackConfig(levels=5))
>>> reference = decoded.sources[result.reference_index]
"""

__version__ = "0.1.0"

from .config import StackConfig
from .errors import (
    AlignmentError,
    DecodeError,
    EmptyInputError,
    FocusStackError,
    NoValidFrameError,
    NumericFault,
)

# Alignment
from .align import (
    AlignmentResult,
    align_frame,
    align_frames,
    compute_align_scale,
    find_transform,
    scale_transform,
    select_reference_index,
    to_luminance,
    warp_to_reference,
)

# Pyramids
from .pyramids import (
    build_gaussian_pyramid,
    build_laplacian_pyramid,
    build_pyramids_stack,
    pyramid_level_sizes,
)

# Fusion / reconstruction
from .sharpness import compute_detail_magnitude
from .mask import select_winners
from .fusion import (
    composite_level,
    fuse_level,
    fuse_pyramids,
    fuse_pyramids_and_reconstruct,
    reconstruct_from_pyramid,
    to_uint8,
)

# Pipeline
from .pipeline import FocusStacker, PipelineStage, StackResult, focus_stack

# I/O collaborators
from .preprocess import DecodedStack, decode_image, load_image, load_image_stack
from .persistence import extract_exif, output_filename, save_result, save_with_metadata

__all__ = [
    "__version__",
    # Config / errors
    "StackConfig",
    "FocusStackError",
    "DecodeError",
    "AlignmentError",
    "EmptyInputError",
    "NoValidFrameError",
    "NumericFault",
    # Alignment
    "AlignmentResult",
    "align_frame",
    "align_frames",
    "compute_align_scale",
    "find_transform",
    "scale_transform",
    "select_reference_index",
    "to_luminance",
    "warp_to_reference",
    # Pyramids
    "build_gaussian_pyramid",
    "build_laplacian_pyramid",
    "build_pyramids_stack",
    "pyramid_level_sizes",
    # Fusion
    "compute_detail_magnitude",
    "select_winners",
    "composite_level",
    "fuse_level",
    "fuse_pyramids",
    "fuse_pyramids_and_reconstruct",
    "reconstruct_from_pyramid",
    "to_uint8",
    # Pipeline
    "FocusStacker",
    "PipelineStage",
    "StackResult",
    "focus_stack",
    # I/O
    "DecodedStack",
    "decode_image",
    "load_image",
    "load_image_stack",
    "extract_exif",
    "output_filename",
    "save_result",
    "save_with_metadata",
]
