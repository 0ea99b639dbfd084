from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple

import cv2
import numpy as np

from .types import HIDDEN_LABELS, Detection

BOX_COLOR: Tuple[int, int, int] = (0, 255, 0)
QUAD_COLOR: Tuple[int, int, int] = (255, 0, 255)
STATUS_COLOR: Tuple[int, int, int] = (0, 0, 255)
ROI_COLOR: Tuple[int, int, int] = (255, 0, 0)
PREVIEW_COLOR: Tuple[int, int, int] = (0, 255, 255)

# Per keypoint slot (BGR): green, blue, red, cyan.
KEYPOINT_COLORS: Tuple[Tuple[int, int, int], ...] = (
    (0, 255, 0),
    (255, 0, 0),
    (0, 0, 255),
    (255, 255, 0),
)
KEYPOINT_NAMES: Tuple[str, ...] = ("kpt0", "kpt1", "kpt2", "kpt3")



def format_label(det: Detection) -> str:
    return f"{det.label}: {int(det.score * 100)}%"


def draw_blades(
    image_bgr: np.ndarray,
    detections: Iterable[Detection],
    *,
    hidden_labels: Sequence[str] = HIDDEN_LABELS,
    box_thickness: int = 2,
    font_scale: float = 0.5,
    status_text: Optional[str] = None,
) -> np.ndarray:
    """
    Draw boxes, labels, keypoints and the keypoint quadrilateral on a copy of
    an OpenCV BGR image and return the copy.

    Detections whose label is in `hidden_labels` (the decoy "wrong" blades)
    are skipped. The quadrilateral is drawn only when all four keypoints are
    present. `status_text`, if given, is written as a red banner (used when a
    frame could not be processed).
    """

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    out = image_bgr.copy()
    hidden = set(hidden_labels)

    for det in detections:
        if det.label in hidden:
            continue

        x1, y1, x2, y2 = (int(v) for v in det.as_xyxy())
        cv2.rectangle(out, (x1, y1), (x2, y2), BOX_COLOR, thickness=box_thickness)
        cv2.putText(
            out,
            format_label(det),
            (x1, y1 - 10),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            BOX_COLOR,
            2,
        )

        for j, kpt in enumerate(det.keypoints[: len(KEYPOINT_COLORS)]):
            if kpt is None:
                continue
            px, py = int(kpt.x), int(kpt.y)
            cv2.circle(out, (px, py), 5, KEYPOINT_COLORS[j], -1)
            cv2.putText(out, KEYPOINT_NAMES[j], (px + 7, py - 7), cv2.FONT_HERSHEY_SIMPLEX, 0.4, KEYPOINT_COLORS[j], 1)

        if len(det.keypoints) == 4 and det.has_all_keypoints:
            pts = np.array([[int(k.x), int(k.y)] for k in det.keypoints], dtype=np.int32).reshape(-1, 1, 2)
            cv2.polylines(out, [pts], True, QUAD_COLOR, 2)

    if status_text:
        cv2.putText(out, status_text, (50, 50), cv2.FONT_HERSHEY_SIMPLEX, 1.0, STATUS_COLOR, 2)

    return out


def binarize(image_bgr: np.ndarray) -> np.ndarray:
    """Otsu-thresholded grayscale of the frame, returned as a 3-channel BGR image."""

    gray = cv2.cvtColor(image_bgr, cv2.COLOR_BGR2GRAY)
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY | cv2.THRESH_OTSU)
    return cv2.cvtColor(binary, cv2.COLOR_GRAY2BGR)


def center_roi(frame_size: Tuple[int, int], roi_size: Tuple[int, int]) -> Optional[Tuple[int, int, int, int]]:
    """
    (x, y, w, h) of a `roi_size` rectangle centered in a (w, h) frame,
    intersected with the frame. None when the intersection is empty.
    """

    fw, fh = frame_size
    rw, rh = roi_size
    x = max(0, fw // 2 - rw // 2)
    y = max(0, fh // 2 - rh // 2)
    w = min(x + rw, fw) - x
    h = min(y + rh, fh) - y
    if w <= 0 or h <= 0:
        return None
    return x, y, w, h


def draw_roi_preview(image_bgr: np.ndarray, roi_size: Tuple[int, int] = (640, 640)) -> np.ndarray:
    """
    Outline the centered ROI and paste a scaled copy of it into the top-left
    corner (at most 300 px or a third of the frame wide).
    """

    out = image_bgr.copy()
    fh, fw = out.shape[:2]
    roi = center_roi((fw, fh), roi_size)
    if roi is None:
        return out

    x, y, w, h = roi
    cv2.rectangle(out, (x, y), (x + w, y + h), ROI_COLOR, 2)

    scaled_w = min(300, fw // 3)
    scaled_h = int(h * (scaled_w / w))
    if scaled_w <= 0 or scaled_h <= 0:
        return out
    # The preview only goes in when it fits strictly inside the frame.
    if 10 + scaled_w >= fw or 10 + scaled_h >= fh:
        return out

    crop = image_bgr[y : y + h, x : x + w]
    out[10 : 10 + scaled_h, 10 : 10 + scaled_w] = cv2.resize(crop, (scaled_w, scaled_h))
    cv2.rectangle(out, (10, 10), (10 + scaled_w, 10 + scaled_h), PREVIEW_COLOR, 2)
    cv2.putText(out, "ROI Preview", (15, 35), cv2.FONT_HERSHEY_SIMPLEX, 0.7, PREVIEW_COLOR, 2)
    return out
