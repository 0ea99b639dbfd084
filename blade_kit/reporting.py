"""
Export of detection results.

Two formats: a JSON document with one record per detection, and the plain-text
report (header + one line per blade) the desktop tool used to save.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .types import Detection


@dataclass(frozen=True)
class FrameReport:
    source: str
    image_size: Optional[Tuple[int, int]]
    detections: Tuple[Detection, ...]
    frame_index: Optional[int] = None
    status: str = "ok"


def detection_to_dict(det: Detection) -> Dict[str, Any]:
    return {
        "label": det.label,
        "class_id": det.class_id,
        "confidence": det.score,
        "x": det.x,
        "y": det.y,
        "width": det.width,
        "height": det.height,
        # Absent keypoints are exported as null.
        "keypoints": [None if k is None else [k.x, k.y] for k in det.keypoints],
    }


def frame_report_to_dict(report: FrameReport) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "source": report.source,
        "status": report.status,
        "count": len(report.detections),
        "detections": [detection_to_dict(d) for d in report.detections],
    }
    if report.image_size is not None:
        payload["width"], payload["height"] = report.image_size
    if report.frame_index is not None:
        payload["frame_index"] = report.frame_index
    return payload


def format_detection_line(det: Detection) -> str:
    return (
        f"{det.label}: {int(det.score * 100)}% "
        f"[{int(det.x)}, {int(det.y)}, {int(det.width)}, {int(det.height)}]"
    )


def format_text_report(report: FrameReport, now: Optional[datetime] = None) -> str:
    dt = now or datetime.now()
    rule = "=" * 50
    lines: List[str] = [
        "Blade detection results",
        rule,
        f"Time: {dt.strftime('%Y-%m-%d %H:%M:%S')}",
        f"File: {report.source}",
    ]
    if report.image_size is not None:
        lines.append(f"Resolution: {report.image_size[0]}x{report.image_size[1]}")
    if report.frame_index is not None:
        lines.append(f"Frame: {report.frame_index}")
    lines.append("")
    lines.append(f"Detected {len(report.detections)} target(s)")
    lines.append(rule)
    lines.append("")
    lines.extend(format_detection_line(d) for d in report.detections)
    return "\n".join(lines) + "\n"


def write_json_report(path: Path, reports: Iterable[FrameReport]) -> Path:
    frames = [frame_report_to_dict(r) for r in reports]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"frames": frames}, indent=2), encoding="utf-8")
    return path


def write_text_report(path: Path, reports: Sequence[FrameReport], now: Optional[datetime] = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(format_text_report(r, now=now) for r in reports), encoding="utf-8")
    return path


def write_report(path: Path, reports: Sequence[FrameReport], now: Optional[datetime] = None) -> Path:
    """Pick the format from the file suffix (.json, anything else is text)."""

    if path.suffix.lower() == ".json":
        return write_json_report(path, reports)
    return write_text_report(path, reports, now=now)
