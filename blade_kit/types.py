from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple

import numpy as np


# Class labels emitted by the blade model, in tensor order.
CLASS_NAMES: Tuple[str, ...] = ("RR", "RW", "BR", "BW")
# The *W classes are decoy ("wrong") blades and are never drawn.
HIDDEN_LABELS: Tuple[str, ...] = ("RW", "BW")
NUM_KEYPOINTS = 4
CANVAS_SIZE = 640


class Point(NamedTuple):
    x: float
    y: float


# A keypoint slot is either a Point or None (absent).
Keypoint = Optional[Point]


@dataclass(frozen=True)
class TensorLayout:
    """
    Offsets of one candidate row in the raw output tensor.

    Row layout (length F = 4 + C + 2K):
        [cx, cy, w, h, score_0 .. score_{C-1}, kx_0, ky_0, .. kx_{K-1}, ky_{K-1}]
    """

    num_classes: int = len(CLASS_NAMES)
    num_keypoints: int = NUM_KEYPOINTS

    box_start: int = 0
    box_len: int = 4

    @property
    def score_start(self) -> int:
        return self.box_start + self.box_len

    @property
    def keypoint_start(self) -> int:
        return self.score_start + self.num_classes

    @property
    def num_features(self) -> int:
        return self.keypoint_start + 2 * self.num_keypoints


@dataclass(frozen=True)
class Detection:
    """
    One blade in source-image pixel coordinates.

    `keypoints` always has one slot per model keypoint; absent slots are None.
    """

    x: float
    y: float
    width: float
    height: float
    score: float
    class_id: int
    label: str
    keypoints: Tuple[Keypoint, ...] = ()

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x2, self.y2

    def as_xywh(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height

    @property
    def valid_keypoints(self) -> Tuple[Point, ...]:
        return tuple(k for k in self.keypoints if k is not None)

    @property
    def has_all_keypoints(self) -> bool:
        return bool(self.keypoints) and all(k is not None for k in self.keypoints)


@dataclass(frozen=True)
class Candidates:
    """
    Decoded, confidence-filtered candidates in canvas space (aligned by index).

    boxes:          (M, 4) corner form [x1, y1, x2, y2]
    scores:         (M,)
    class_ids:      (M,)
    keypoints:      (M, K, 2)
    keypoint_valid: (M, K) bool; False marks an absent keypoint, whose
                    coordinates in `keypoints` carry no meaning.
    """

    boxes: np.ndarray
    scores: np.ndarray
    class_ids: np.ndarray
    keypoints: np.ndarray
    keypoint_valid: np.ndarray

    def __len__(self) -> int:
        return int(self.scores.shape[0])

    def take(self, idx: np.ndarray) -> "Candidates":
        return Candidates(
            boxes=self.boxes[idx],
            scores=self.scores[idx],
            class_ids=self.class_ids[idx],
            keypoints=self.keypoints[idx],
            keypoint_valid=self.keypoint_valid[idx],
        )

    @classmethod
    def empty(cls, num_keypoints: int = NUM_KEYPOINTS) -> "Candidates":
        return cls(
            boxes=np.zeros((0, 4), dtype=np.float32),
            scores=np.zeros((0,), dtype=np.float32),
            class_ids=np.zeros((0,), dtype=np.int64),
            keypoints=np.zeros((0, num_keypoints, 2), dtype=np.float32),
            keypoint_valid=np.zeros((0, num_keypoints), dtype=bool),
        )
