from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from .errors import EmptyInputError
from .letterbox import LetterboxParams, letterbox
from .postprocess import BladePostConfig, BladePostprocessor
from .types import CANVAS_SIZE, CLASS_NAMES, HIDDEN_LABELS, NUM_KEYPOINTS, Detection


PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", ".git"),
) -> Path:
    """
    Best-effort project root discovery, so relative model paths such as
    `Models/blade.onnx` resolve the same way from any working directory.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against `root` if provided, else the project root.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


def _clamp_unit(name: str, value: float) -> float:
    value = float(value)
    clamped = min(1.0, max(0.0, value))
    if clamped != value:
        logger.warning("%s=%s is outside [0, 1]; using %s", name, value, clamped)
    return clamped


class DetectorConfig:
    """
    Thresholds that may change between calls.

    Setters never fail: out-of-range values are clamped to [0, 1]. A change is
    picked up by the next `detect()` call only.
    """

    def __init__(self, conf_threshold: float = 0.5, iou_threshold: float = 0.4):
        self._lock = threading.Lock()
        self._conf = _clamp_unit("conf_threshold", conf_threshold)
        self._iou = _clamp_unit("iou_threshold", iou_threshold)

    @property
    def conf_threshold(self) -> float:
        return self._conf

    @conf_threshold.setter
    def conf_threshold(self, value: float) -> None:
        value = _clamp_unit("conf_threshold", value)
        with self._lock:
            self._conf = value

    @property
    def iou_threshold(self) -> float:
        return self._iou

    @iou_threshold.setter
    def iou_threshold(self, value: float) -> None:
        value = _clamp_unit("iou_threshold", value)
        with self._lock:
            self._iou = value

    def snapshot(self) -> Tuple[float, float]:
        with self._lock:
            return self._conf, self._iou

    def __repr__(self) -> str:
        conf, iou = self.snapshot()
        return f"DetectorConfig(conf_threshold={conf}, iou_threshold={iou})"


def anchor_count(canvas_size: int, strides: Sequence[int] = (8, 16, 32)) -> int:
    """Candidate slots N of a stride-8/16/32 head, e.g. 8400 for a 640 canvas."""

    if canvas_size < 32 or canvas_size % 32 != 0:
        raise ValueError(f"canvas size must be a positive multiple of 32, got {canvas_size}")
    return sum((canvas_size // s) ** 2 for s in strides)


@dataclass(frozen=True)
class ModelSpec:
    """
    Fixed properties of one blade model export.
    """

    canvas_size: int = CANVAS_SIZE
    class_names: Tuple[str, ...] = CLASS_NAMES
    num_keypoints: int = NUM_KEYPOINTS
    pad_color: Tuple[int, int, int] = (114, 114, 114)
    # The canvas is fed in the source channel order (BGR for OpenCV frames).
    bgr_to_rgb: bool = False
    num_candidates: Optional[int] = 8400
    hidden_labels: Tuple[str, ...] = HIDDEN_LABELS


@dataclass(frozen=True)
class PreprocessResult:
    blob: np.ndarray
    orig_size: Tuple[int, int]
    params: LetterboxParams


class DetectStatus(str, enum.Enum):
    OK = "ok"
    EMPTY_INPUT = "empty_input"
    INFERENCE_FAILED = "inference_failed"


@dataclass(frozen=True)
class DetectionResult:
    """
    Outcome of one `detect()` call. `detections` is in selection order
    (descending confidence after suppression).
    """

    detections: Tuple[Detection, ...] = ()
    status: DetectStatus = DetectStatus.OK
    error: Optional[str] = None
    image_size: Optional[Tuple[int, int]] = None

    @property
    def ok(self) -> bool:
        return self.status is DetectStatus.OK

    @property
    def count(self) -> int:
        return len(self.detections)

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(d.label for d in self.detections)

    def __iter__(self):
        return iter(self.detections)

    def __len__(self) -> int:
        return len(self.detections)


def _is_empty_image(image: object) -> bool:
    if image is None or not hasattr(image, "shape"):
        return True
    shape = getattr(image, "shape")
    return len(shape) < 2 or shape[0] == 0 or shape[1] == 0 or getattr(image, "size", 0) == 0


class BladeDetector:
    """
    Pipeline: letterbox -> inference -> decode -> NMS -> map back to source image.

    Expects BGR images (OpenCV-style) as `np.ndarray` and returns a
    `DetectionResult` in original image coordinates. All per-call state lives
    in local values, so the detector itself holds nothing but its inference
    callable and configuration.
    """

    def __init__(
        self,
        infer_fn: Callable[[np.ndarray], np.ndarray],
        *,
        backend: Optional[object] = None,
        backend_name: Optional[str] = None,
        config: Optional[DetectorConfig] = None,
        model: ModelSpec = ModelSpec(),
    ):
        self._infer_fn = infer_fn
        self.backend = backend
        self.backend_name = backend_name
        self.config = config if config is not None else DetectorConfig()
        self.model = model
        self.post = BladePostprocessor(
            BladePostConfig(
                class_names=model.class_names,
                num_keypoints=model.num_keypoints,
                canvas_size=model.canvas_size,
                num_candidates=model.num_candidates,
            )
        )

    @property
    def class_names(self) -> Tuple[str, ...]:
        return self.model.class_names

    def set_conf_threshold(self, value: float) -> None:
        self.config.conf_threshold = value

    def set_iou_threshold(self, value: float) -> None:
        self.config.iou_threshold = value

    def preprocess(self, image_bgr: np.ndarray) -> PreprocessResult:
        if _is_empty_image(image_bgr):
            raise EmptyInputError("Empty image.")
        if image_bgr.ndim == 2:
            image_bgr = cv2.cvtColor(image_bgr, cv2.COLOR_GRAY2BGR)
        elif image_bgr.ndim == 3 and image_bgr.shape[2] == 4:
            image_bgr = cv2.cvtColor(image_bgr, cv2.COLOR_BGRA2BGR)
        if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
            raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

        orig_h, orig_w = image_bgr.shape[:2]
        img, params = letterbox(image_bgr, canvas_size=self.model.canvas_size, color=self.model.pad_color)

        if self.model.bgr_to_rgb:
            img = img[:, :, ::-1]
        # normalize, HWC -> CHW, add batch
        blob = img.astype(np.float32) / 255.0
        blob = np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...])

        return PreprocessResult(blob=blob, orig_size=(orig_w, orig_h), params=params)

    def detect(self, image_bgr: np.ndarray) -> DetectionResult:
        conf, iou = self.config.snapshot()

        try:
            prep = self.preprocess(image_bgr)
        except EmptyInputError:
            logger.warning("Empty image passed to detect(); skipping inference")
            return DetectionResult(status=DetectStatus.EMPTY_INPUT, error="empty input")

        try:
            preds = self._infer_fn(prep.blob)
        except Exception as exc:
            logger.exception("Inference failed")
            return DetectionResult(
                status=DetectStatus.INFERENCE_FAILED,
                error=f"{type(exc).__name__}: {exc}",
                image_size=prep.orig_size,
            )

        detections = self.post.process(preds, prep.params, conf_threshold=conf, iou_threshold=iou)
        return DetectionResult(detections=tuple(detections), image_size=prep.orig_size)

    def __call__(self, image_bgr: np.ndarray) -> DetectionResult:
        return self.detect(image_bgr)


def infer_backend_name(model_path: PathLike) -> str:
    suffix = Path(model_path).suffix.lower()
    if suffix == ".onnx":
        return "onnxruntime"
    if suffix in {".torchscript", ".ts", ".pt"}:
        return "torchscript"
    raise ValueError(f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly.")


def load_detector(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    config: Optional[DetectorConfig] = None,
    model: ModelSpec = ModelSpec(),
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    onnx_output_name: Optional[str] = None,
    torch_device: str = "cuda",
    torch_half: bool = False,
    torch_output_index: int = 0,
) -> BladeDetector:
    """
    Create a detector for a model on disk. The inference session is built once
    here; failure to build it on every candidate device raises `InferenceError`.

        detector = load_detector("Models/blade.onnx")

    Args:
        model_path: path to the model file; relative paths resolve against project root by default
        backend: "onnxruntime" or "torchscript", or None to infer from extension
        root: base directory for resolving relative model paths ("auto" uses best-effort project root)
    """

    resolved = resolve_path(model_path, root=root)
    chosen = (backend or infer_backend_name(resolved)).lower()

    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import (
            DEFAULT_PREFERRED_PROVIDERS,
            OnnxRuntimeBackend,
            OnnxRuntimeBackendConfig,
        )

        ort_backend = OnnxRuntimeBackend(
            resolved,
            OnnxRuntimeBackendConfig(
                providers=onnx_providers if onnx_providers is not None else DEFAULT_PREFERRED_PROVIDERS,
                input_name=onnx_input_name,
                output_name=onnx_output_name,
            ),
        )
        return BladeDetector(
            ort_backend.infer,
            backend=ort_backend,
            backend_name="onnxruntime",
            config=config,
            model=model,
        )

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        ts_backend = TorchScriptBackend(
            resolved,
            TorchScriptBackendConfig(device=torch_device, half=torch_half, output_index=torch_output_index),
        )
        return BladeDetector(
            ts_backend.infer,
            backend=ts_backend,
            backend_name="torchscript",
            config=config,
            model=model,
        )

    raise ValueError(f"Unsupported backend: {backend!r}")
