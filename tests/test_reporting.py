import json
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from blade_kit.reporting import FrameReport, format_text_report, write_report
from blade_kit.types import Detection, Point


DET = Detection(
    x=900.4,
    y=480.2,
    width=120.0,
    height=119.6,
    score=0.912,
    class_id=0,
    label="RR",
    keypoints=(Point(900.0, 480.0), None, Point(1020.0, 600.0), None),
)


class TestReporting(unittest.TestCase):
    def test_text_report(self) -> None:
        report = FrameReport(source="Media/buff.png", image_size=(1920, 1080), detections=(DET,))
        text = format_text_report(report, now=datetime(2024, 5, 1, 12, 30, 0))
        lines = text.splitlines()
        self.assertIn("Time: 2024-05-01 12:30:00", lines)
        self.assertIn("File: Media/buff.png", lines)
        self.assertIn("Resolution: 1920x1080", lines)
        self.assertIn("Detected 1 target(s)", lines)
        self.assertEqual(lines[-1], "RR: 91% [900, 480, 120, 119]")

    def test_json_report(self) -> None:
        reports = [
            FrameReport(source="clip.mp4", image_size=(1920, 1080), detections=(DET,), frame_index=0),
            FrameReport(source="clip.mp4", image_size=None, detections=(), frame_index=5, status="inference_failed"),
        ]
        with tempfile.TemporaryDirectory() as tmp:
            path = write_report(Path(tmp) / "out" / "results.json", reports)
            payload = json.loads(path.read_text(encoding="utf-8"))

        first, second = payload["frames"]
        self.assertEqual(first["count"], 1)
        self.assertEqual(first["width"], 1920)
        det = first["detections"][0]
        self.assertEqual(det["label"], "RR")
        self.assertEqual(det["keypoints"][1], None)
        self.assertEqual(det["keypoints"][2], [1020.0, 600.0])
        self.assertEqual(second["status"], "inference_failed")
        self.assertNotIn("width", second)

    def test_suffix_selects_text(self) -> None:
        report = FrameReport(source="a.png", image_size=(10, 10), detections=())
        with tempfile.TemporaryDirectory() as tmp:
            path = write_report(Path(tmp) / "results.txt", [report])
            self.assertIn("Detected 0 target(s)", path.read_text(encoding="utf-8"))


if __name__ == "__main__":
    unittest.main()
