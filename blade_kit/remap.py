from __future__ import annotations

from typing import List, Tuple

import numpy as np

from .errors import GeometryError
from .letterbox import LetterboxParams
from .types import Candidates, Detection, Point


def _axis_scale(params: LetterboxParams) -> Tuple[float, float]:
    dw, dh = params.pad
    s = params.canvas_size
    src_w, src_h = params.source_size
    denom_x = s - 2 * dw
    denom_y = s - 2 * dh
    if denom_x <= 0 or denom_y <= 0:
        raise GeometryError(
            f"Degenerate letterbox: canvas {s} with pad {params.pad} leaves no image area "
            f"for source {params.source_size}."
        )
    return src_w / denom_x, src_h / denom_y


def unletterbox_coords(xy: np.ndarray, params: LetterboxParams) -> np.ndarray:
    """
    Map canvas coordinates (..., 2) back to source pixels and clamp them to
    [0, width] x [0, height].
    """

    sx, sy = _axis_scale(params)
    dw, dh = params.pad
    src_w, src_h = params.source_size

    out = np.array(xy, dtype=np.float64, copy=True)
    out[..., 0] = np.clip((out[..., 0] - dw) * sx, 0.0, src_w)
    out[..., 1] = np.clip((out[..., 1] - dh) * sy, 0.0, src_h)
    return out


def remap_candidates(
    cands: Candidates,
    params: LetterboxParams,
    class_names: Tuple[str, ...],
) -> List[Detection]:
    """
    Build source-space Detections from kept canvas candidates, preserving order.
    Absent keypoints stay None.
    """

    if len(cands) == 0:
        return []

    corners = unletterbox_coords(cands.boxes.reshape(-1, 2, 2), params)
    kpts = unletterbox_coords(cands.keypoints, params)

    detections: List[Detection] = []
    for i in range(len(cands)):
        (x1, y1), (x2, y2) = corners[i]
        keypoints = tuple(
            Point(float(kx), float(ky)) if valid else None
            for (kx, ky), valid in zip(kpts[i], cands.keypoint_valid[i])
        )
        cls_id = int(cands.class_ids[i])
        detections.append(
            Detection(
                x=float(x1),
                y=float(y1),
                width=max(0.0, float(x2 - x1)),
                height=max(0.0, float(y2 - y1)),
                score=float(cands.scores[i]),
                class_id=cls_id,
                label=class_names[cls_id] if 0 <= cls_id < len(class_names) else str(cls_id),
                keypoints=keypoints,
            )
        )
    return detections
