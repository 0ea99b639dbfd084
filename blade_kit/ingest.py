from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np


IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".bmp", ".tif", ".tiff", ".webp"}


@dataclass(frozen=True)
class CaptureInfo:
    fps: Optional[float]
    width: Optional[int]
    height: Optional[int]
    frame_count: Optional[int]


def read_image(path: str) -> np.ndarray:
    img = cv2.imread(path)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {path}")
    return img


def open_capture(*, video: Optional[str] = None, webcam: Optional[int] = None) -> cv2.VideoCapture:
    if (video is None) == (webcam is None):
        raise ValueError("Exactly one of video/webcam must be provided.")

    cap = cv2.VideoCapture(video) if video is not None else cv2.VideoCapture(int(webcam))
    if not cap.isOpened():
        raise RuntimeError(f"Failed to open video source: {video if video is not None else webcam}")
    return cap


def get_capture_info(cap: cv2.VideoCapture) -> CaptureInfo:
    fps = cap.get(cv2.CAP_PROP_FPS)
    fps_val = float(fps) if fps and fps > 0 else None

    w = cap.get(cv2.CAP_PROP_FRAME_WIDTH)
    h = cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
    n = cap.get(cv2.CAP_PROP_FRAME_COUNT)

    return CaptureInfo(
        fps=fps_val,
        width=int(w) if w and w > 0 else None,
        height=int(h) if h and h > 0 else None,
        frame_count=int(n) if n and n > 0 else None,
    )
