from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from .decode import CandidateDecoder, DecoderConfig
from .letterbox import LetterboxParams
from .nms import NMSConfig, nms
from .remap import remap_candidates
from .types import CLASS_NAMES, Candidates, Detection, TensorLayout


@dataclass
class BladePostConfig:
    """
    Thresholds are read once per `process()` call.
    """

    conf_threshold: float = 0.5
    iou_threshold: float = 0.4
    max_detections: Optional[int] = None
    class_names: Tuple[str, ...] = CLASS_NAMES
    num_keypoints: int = 4
    canvas_size: int = 640
    num_candidates: Optional[int] = 8400
    channels_first: Optional[bool] = None
    layout: TensorLayout = field(init=False)

    def __post_init__(self) -> None:
        self.layout = TensorLayout(num_classes=len(self.class_names), num_keypoints=self.num_keypoints)


class BladePostprocessor:
    """
    Post-process for keypoint blade exports:

    Raw output per image is (1, N, 4 + C + 2K):
        [cx, cy, w, h, class_scores..., kx0, ky0, ..., kx3, ky3]

    Steps: decode + confidence filter -> class-agnostic NMS -> map back to the
    source image through the letterbox parameters of the same call.
    """

    def __init__(self, cfg: BladePostConfig):
        self.cfg = cfg
        self.decoder = CandidateDecoder(
            DecoderConfig(
                layout=cfg.layout,
                canvas_size=cfg.canvas_size,
                num_candidates=cfg.num_candidates,
                channels_first=cfg.channels_first,
            )
        )

    def process(
        self,
        preds: np.ndarray,
        params: LetterboxParams,
        conf_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> List[Detection]:
        """
        Args:
            preds: raw model output for a single image
            params: letterbox geometry used to build the model input
            conf_threshold / iou_threshold: override the configured values
        """

        conf = self.cfg.conf_threshold if conf_threshold is None else conf_threshold
        iou = self.cfg.iou_threshold if iou_threshold is None else iou_threshold

        cands = self.decoder.decode(preds, conf)
        if len(cands) == 0:
            return []

        kept = self.suppress(cands, iou)
        return remap_candidates(kept, params, self.cfg.class_names)

    def suppress(self, cands: Candidates, iou_threshold: float) -> Candidates:
        keep_idx = nms(
            cands.boxes,
            cands.scores,
            NMSConfig(iou_threshold=iou_threshold, max_detections=self.cfg.max_detections),
        )
        return cands.take(keep_idx)
