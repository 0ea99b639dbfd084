from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from .errors import EmptyInputError, GeometryError


@dataclass(frozen=True)
class LetterboxParams:
    """
    Geometry of one letterbox call.

    pad is (dw, dh) per side at sub-pixel precision; the border actually
    inserted uses the rounded offsets, but inversion uses these values.
    """

    canvas_size: int
    source_size: Tuple[int, int]  # (w, h)
    ratio: float
    resized_size: Tuple[int, int]  # (w, h)
    pad: Tuple[float, float]


def letterbox(
    image: np.ndarray,
    canvas_size: int = 640,
    color: Tuple[int, int, int] = (114, 114, 114),
) -> Tuple[np.ndarray, LetterboxParams]:
    """
    Resize `image` into a `canvas_size` square keeping aspect ratio, centering it
    with constant-color padding.

    Returns:
        padded: (canvas_size, canvas_size, C) image
        params: LetterboxParams used later to map canvas coordinates back
    """

    if image is None or not hasattr(image, "shape") or image.ndim < 2:
        raise EmptyInputError("letterbox() needs a NumPy image array.")

    h, w = image.shape[:2]
    if w <= 0 or h <= 0 or image.size == 0:
        raise EmptyInputError(f"Cannot letterbox an empty image (shape {image.shape}).")

    r = min(canvas_size / w, canvas_size / h)
    resized_w, resized_h = int(round(w * r)), int(round(h * r))
    if resized_w < 1 or resized_h < 1:
        raise GeometryError(
            f"Source {w}x{h} scales to {resized_w}x{resized_h} in a {canvas_size} canvas; nothing left to detect on."
        )
    dw = (canvas_size - resized_w) / 2
    dh = (canvas_size - resized_h) / 2

    if (w, h) != (resized_w, resized_h):
        image = cv2.resize(image, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    top, bottom = int(round(dh - 0.1)), int(round(dh + 0.1))
    left, right = int(round(dw - 0.1)), int(round(dw + 0.1))
    padded = cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)

    params = LetterboxParams(
        canvas_size=int(canvas_size),
        source_size=(int(w), int(h)),
        ratio=float(r),
        resized_size=(resized_w, resized_h),
        pad=(float(dw), float(dh)),
    )
    return padded, params


def project_point(x: float, y: float, params: LetterboxParams) -> Tuple[float, float]:
    """Map a source-image point into canvas space (inverse of `remap.unletterbox_coords`)."""

    dw, dh = params.pad
    src_w, src_h = params.source_size
    s = params.canvas_size
    return (
        x * (s - 2 * dw) / src_w + dw,
        y * (s - 2 * dh) / src_h + dh,
    )
