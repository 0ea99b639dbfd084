from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np
from tqdm import tqdm

from .ingest import get_capture_info, open_capture, read_image
from .reporting import FrameReport, write_report
from .runtime import BladeDetector, DetectionResult, DetectStatus
from .visualize import binarize, draw_blades, draw_roi_preview

logger = logging.getLogger(__name__)

WINDOW_NAME = "blades"


class DisplayMode(str, enum.Enum):
    """What the runner renders for each frame. Only DETECT runs the detector."""

    DETECT = "detect"
    ORIGINAL = "original"
    BINARY = "binary"
    ROI = "roi"


@dataclass(frozen=True)
class RunOptions:
    out: Optional[Path] = None
    export: Optional[Path] = None
    show: bool = False
    every: int = 1
    max_frames: int = 0
    progress: bool = True
    mode: DisplayMode = DisplayMode.DETECT
    roi_size: Tuple[int, int] = (640, 640)

    def __post_init__(self) -> None:
        if self.every < 1:
            raise ValueError("every must be >= 1")
        if self.max_frames < 0:
            raise ValueError("max_frames must be >= 0")
        if self.roi_size[0] < 1 or self.roi_size[1] < 1:
            raise ValueError("roi_size must be >= 1 on both axes")
        # Accept plain strings such as "binary".
        object.__setattr__(self, "mode", DisplayMode(self.mode))


@dataclass(frozen=True)
class RunSummary:
    frames_read: int
    frames_processed: int
    detections: int
    failed_frames: int
    reports: Sequence[FrameReport]


def _status_text(result: DetectionResult) -> Optional[str]:
    if result.status is DetectStatus.INFERENCE_FAILED:
        return "Detector error"
    return None


def render_result(detector: BladeDetector, image: np.ndarray, result: DetectionResult) -> np.ndarray:
    return draw_blades(
        image,
        result.detections,
        hidden_labels=detector.model.hidden_labels,
        status_text=_status_text(result),
    )


def process_frame(
    detector: BladeDetector,
    frame: np.ndarray,
    opts: RunOptions,
) -> Tuple[np.ndarray, Optional[DetectionResult]]:
    """
    Render one frame in `opts.mode`. The DetectionResult is None for the
    modes that do not detect.
    """

    if opts.mode is DisplayMode.DETECT:
        result = detector.detect(frame)
        return render_result(detector, frame, result), result
    if opts.mode is DisplayMode.BINARY:
        return binarize(frame), None
    if opts.mode is DisplayMode.ROI:
        return draw_roi_preview(frame, opts.roi_size), None
    return frame.copy(), None


def run_image(detector: BladeDetector, image_path: str, opts: RunOptions) -> RunSummary:
    img = read_image(image_path)
    vis, result = process_frame(detector, img, opts)

    if opts.out is not None:
        opts.out.parent.mkdir(parents=True, exist_ok=True)
        if not cv2.imwrite(str(opts.out), vis):
            raise RuntimeError(f"Failed to write output image: {opts.out}")

    reports: List[FrameReport] = []
    if result is not None:
        reports.append(
            FrameReport(
                source=image_path,
                image_size=result.image_size,
                detections=result.detections,
                status=result.status.value,
            )
        )
    if opts.export is not None:
        write_report(opts.export, reports)

    if opts.show:
        cv2.imshow(WINDOW_NAME, vis)
        cv2.waitKey(0)
        cv2.destroyAllWindows()

    return RunSummary(
        frames_read=1,
        frames_processed=1,
        detections=result.count if result is not None else 0,
        failed_frames=1 if result is not None and not result.ok else 0,
        reports=reports,
    )


def run_stream(
    detector: BladeDetector,
    opts: RunOptions,
    *,
    video: Optional[str] = None,
    webcam: Optional[int] = None,
) -> RunSummary:
    """
    Process every `opts.every`-th frame of a video file or webcam in
    `opts.mode`, optionally writing the rendered video and a per-frame export
    (detect mode only).
    """

    cap = open_capture(video=video, webcam=webcam)
    info = get_capture_info(cap)
    source = video if video is not None else f"webcam:{webcam}"
    logger.info("Opened %s (%sx%s @ %s fps)", source, info.width, info.height, info.fps)

    total = info.frame_count if video is not None else None
    if total is not None and opts.max_frames:
        total = min(total, opts.max_frames * opts.every)
    bar = tqdm(total=total, unit="frame", disable=not opts.progress)

    writer = None
    reports: List[FrameReport] = []
    frame_idx = 0
    processed = 0
    n_dets = 0
    failed = 0

    try:
        while True:
            ok, frame = cap.read()
            if not ok or frame is None:
                break

            frame_idx += 1
            bar.update(1)
            if (frame_idx - 1) % opts.every != 0:
                continue

            vis, result = process_frame(detector, frame, opts)
            if result is not None:
                n_dets += result.count
                if not result.ok:
                    failed += 1
                bar.set_postfix(blades=result.count)

            if result is not None and opts.export is not None:
                reports.append(
                    FrameReport(
                        source=source,
                        image_size=result.image_size,
                        detections=result.detections,
                        frame_index=frame_idx - 1,
                        status=result.status.value,
                    )
                )

            if opts.out is not None and writer is None:
                fps = info.fps or 30.0
                h, w = vis.shape[:2]
                opts.out.parent.mkdir(parents=True, exist_ok=True)
                fourcc = cv2.VideoWriter_fourcc(*"mp4v")
                writer = cv2.VideoWriter(str(opts.out), fourcc, fps / opts.every, (w, h))
                if not writer.isOpened():
                    raise RuntimeError(f"Failed to open video writer: {opts.out}")

            if writer is not None:
                writer.write(vis)

            if opts.show:
                cv2.imshow(WINDOW_NAME, vis)
                key = cv2.waitKey(1) & 0xFF
                if key in (27, ord("q")):
                    break

            processed += 1
            if opts.max_frames and processed >= opts.max_frames:
                break

    finally:
        bar.close()
        cap.release()
        if writer is not None:
            writer.release()
        if opts.show:
            cv2.destroyAllWindows()

    if opts.export is not None:
        write_report(opts.export, reports)

    return RunSummary(
        frames_read=frame_idx,
        frames_processed=processed,
        detections=n_dets,
        failed_frames=failed,
        reports=reports,
    )
