from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass
class NMSConfig:
    iou_threshold: float = 0.4
    # None keeps every survivor.
    max_detections: Optional[int] = None


def box_iou(box: np.ndarray, others: np.ndarray) -> np.ndarray:
    """
    IoU of one xyxy box against (M, 4) xyxy boxes.
    A pair where either box has zero area has IoU 0.
    """

    others = np.asarray(others, dtype=np.float64).reshape(-1, 4)
    x1, y1, x2, y2 = (float(v) for v in box)
    area = max(0.0, x2 - x1) * max(0.0, y2 - y1)
    areas = np.maximum(0.0, others[:, 2] - others[:, 0]) * np.maximum(0.0, others[:, 3] - others[:, 1])

    xx1 = np.maximum(x1, others[:, 0])
    yy1 = np.maximum(y1, others[:, 1])
    xx2 = np.minimum(x2, others[:, 2])
    yy2 = np.minimum(y2, others[:, 3])
    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    union = area + areas - inter

    iou = np.zeros(others.shape[0], dtype=np.float64)
    ok = (area > 0.0) & (areas > 0.0) & (union > 0.0)
    iou[ok] = inter[ok] / union[ok]
    return iou


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy class-agnostic NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).

    Returns indices of kept boxes in selection order (descending score; equal
    scores keep their input order). A box is dropped when its IoU with a kept
    box is strictly greater than `cfg.iou_threshold`.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    order = np.argsort(-np.asarray(scores, dtype=np.float64), kind="stable")
    keep = []

    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = order[0]
        keep.append(i)

        iou = box_iou(boxes[i], boxes[order[1:]])
        inds = np.where(iou <= cfg.iou_threshold)[0]
        order = order[inds + 1]

    return np.array(keep, dtype=np.int64)
