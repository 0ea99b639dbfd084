"""
Blade (keypoint target) detection helpers built around a single-shot network.

Pre-processing (letterbox), decoding of the raw (1, N, 4 + C + 2K) output,
class-agnostic NMS and mapping back to source pixels are plain NumPy/OpenCV;
the network itself runs behind a backend in `blade_kit.backends`.
"""

from .errors import BladeKitError, DecodeError, EmptyInputError, GeometryError, InferenceError
from .types import CLASS_NAMES, HIDDEN_LABELS, Candidates, Detection, Keypoint, Point, TensorLayout
from .letterbox import LetterboxParams, letterbox, project_point
from .decode import CandidateDecoder, DecoderConfig
from .nms import NMSConfig, box_iou, nms
from .remap import remap_candidates, unletterbox_coords
from .postprocess import BladePostConfig, BladePostprocessor
from .runtime import (
    BladeDetector,
    DetectionResult,
    DetectorConfig,
    DetectStatus,
    ModelSpec,
    anchor_count,
    find_project_root,
    load_detector,
    resolve_path,
)
from .metadata import class_names_tuple, load_class_names
from .visualize import draw_blades

__all__ = [
    "BladeKitError",
    "DecodeError",
    "EmptyInputError",
    "GeometryError",
    "InferenceError",
    "CLASS_NAMES",
    "HIDDEN_LABELS",
    "Candidates",
    "Detection",
    "Keypoint",
    "Point",
    "TensorLayout",
    "LetterboxParams",
    "letterbox",
    "project_point",
    "CandidateDecoder",
    "DecoderConfig",
    "NMSConfig",
    "box_iou",
    "nms",
    "remap_candidates",
    "unletterbox_coords",
    "BladePostConfig",
    "BladePostprocessor",
    "BladeDetector",
    "DetectionResult",
    "DetectorConfig",
    "DetectStatus",
    "ModelSpec",
    "anchor_count",
    "find_project_root",
    "load_detector",
    "resolve_path",
    "class_names_tuple",
    "load_class_names",
    "draw_blades",
]
