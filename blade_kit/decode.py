from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import DecodeError
from .types import Candidates, TensorLayout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecoderConfig:
    """
    canvas_size: keypoints outside [0, canvas_size] on either axis are absent.
    num_candidates: expected N; None accepts any N.
    channels_first: True for (1, F, N) exports, False for (1, N, F), None to
        detect it from which axis equals F.
    """

    layout: TensorLayout = TensorLayout()
    canvas_size: int = 640
    num_candidates: Optional[int] = 8400
    channels_first: Optional[bool] = None


class CandidateDecoder:
    """
    Turns the raw (1, N, F) tensor into confidence-filtered canvas-space candidates.

    Class selection is argmax over the C class scores; on equal scores the lowest
    class index wins. The max class score is the candidate's confidence and the
    only filtering criterion.
    """

    def __init__(self, cfg: DecoderConfig = DecoderConfig()):
        self.cfg = cfg

    def rows(self, preds: np.ndarray) -> np.ndarray:
        """Validate `preds` and return it as an (N, F) float array."""

        p = np.asarray(preds)
        f = self.cfg.layout.num_features

        if p.ndim == 3:
            if p.shape[0] != 1:
                raise DecodeError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
            p = p[0]
        if p.ndim != 2:
            raise DecodeError(f"Expected output shape (1, N, {f}), got {np.asarray(preds).shape}")

        channels_first = self.cfg.channels_first
        if channels_first is None:
            channels_first = p.shape[0] == f and p.shape[1] != f
        if channels_first:
            p = p.T

        if p.shape[1] != f:
            raise DecodeError(
                f"Expected {f} features per candidate "
                f"(4 box + {self.cfg.layout.num_classes} classes + 2x{self.cfg.layout.num_keypoints} keypoints), "
                f"got shape {np.asarray(preds).shape}"
            )
        n = self.cfg.num_candidates
        if n is not None and p.shape[0] != n:
            raise DecodeError(f"Expected {n} candidate slots, got {p.shape[0]} (shape {np.asarray(preds).shape})")

        return p.astype(np.float32, copy=False)

    def decode(self, preds: np.ndarray, conf_threshold: float) -> Candidates:
        layout = self.cfg.layout
        p = self.rows(preds)
        if p.shape[0] == 0:
            return Candidates.empty(layout.num_keypoints)

        class_scores = p[:, layout.score_start : layout.keypoint_start]
        class_ids = np.argmax(class_scores, axis=1)
        scores = class_scores[np.arange(class_scores.shape[0]), class_ids]

        box_cols = p[:, layout.box_start : layout.box_start + layout.box_len]
        # Rows with a non-finite box or score are unusable.
        keep = (scores >= conf_threshold) & np.isfinite(scores) & np.isfinite(box_cols).all(axis=1)
        if not np.any(keep):
            return Candidates.empty(layout.num_keypoints)
        p, scores, class_ids = p[keep], scores[keep], class_ids[keep]

        # cxcywh -> xyxy
        cx, cy, w, h = p[:, layout.box_start : layout.box_start + layout.box_len].T
        x1 = cx - w / 2
        y1 = cy - h / 2
        boxes = np.stack([x1, y1, x1 + w, y1 + h], axis=1)

        kpts = p[:, layout.keypoint_start : layout.num_features].reshape(-1, layout.num_keypoints, 2)
        s = float(self.cfg.canvas_size)
        valid = np.all(np.isfinite(kpts) & (kpts >= 0.0) & (kpts <= s), axis=2)

        logger.debug("decoded %d/%d candidates above conf=%.3f", int(keep.sum()), keep.size, conf_threshold)
        return Candidates(
            boxes=boxes.astype(np.float32),
            scores=scores.astype(np.float32),
            class_ids=class_ids.astype(np.int64),
            keypoints=kpts.astype(np.float32),
            keypoint_valid=valid,
        )
