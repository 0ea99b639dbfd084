import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import cv2
import numpy as np

from blade_kit.runner import DisplayMode, RunOptions, process_frame, run_image, run_stream
from blade_kit.runtime import BladeDetector


def _stub_infer(blob):
    preds = np.zeros((1, 8400, 16), dtype=np.float32)
    preds[0, 0] = [320, 320, 40, 40, 0.9, 0, 0, 0, 300, 300, 340, 300, 340, 340, 300, 340]
    return preds


class TestRunner(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.detector = BladeDetector(_stub_infer)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_run_image_writes_outputs(self) -> None:
        src = self.tmp / "frame.png"
        cv2.imwrite(str(src), np.zeros((360, 640, 3), dtype=np.uint8))
        opts = RunOptions(out=self.tmp / "vis" / "frame.png", export=self.tmp / "frame.json", progress=False)

        summary = run_image(self.detector, str(src), opts)

        self.assertEqual(summary.detections, 1)
        self.assertTrue(opts.out.exists())
        payload = json.loads(opts.export.read_text(encoding="utf-8"))
        self.assertEqual(payload["frames"][0]["detections"][0]["label"], "RR")

    def test_run_image_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            run_image(self.detector, str(self.tmp / "nope.png"), RunOptions(progress=False))

    def test_run_stream_every_nth_frame(self) -> None:
        video = self.tmp / "clip.avi"
        writer = cv2.VideoWriter(str(video), cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (160, 120))
        if not writer.isOpened():
            self.skipTest("MJPG writer not available in this OpenCV build")
        for _ in range(6):
            writer.write(np.zeros((120, 160, 3), dtype=np.uint8))
        writer.release()

        opts = RunOptions(export=self.tmp / "clip.txt", every=2, progress=False)
        summary = run_stream(self.detector, opts, video=str(video))

        self.assertEqual(summary.frames_read, 6)
        self.assertEqual(summary.frames_processed, 3)
        self.assertEqual(summary.detections, 3)
        self.assertEqual([r.frame_index for r in summary.reports], [0, 2, 4])
        self.assertIn("Frame: 4", opts.export.read_text(encoding="utf-8"))

    def test_options_validation(self) -> None:
        with self.assertRaises(ValueError):
            RunOptions(every=0)
        with self.assertRaises(ValueError):
            RunOptions(max_frames=-1)
        with self.assertRaises(ValueError):
            RunOptions(roi_size=(0, 640))
        with self.assertRaises(ValueError):
            RunOptions(mode="sepia")

    def test_mode_accepts_plain_string(self) -> None:
        self.assertIs(RunOptions(mode="binary").mode, DisplayMode.BINARY)
        self.assertIs(RunOptions().mode, DisplayMode.DETECT)

    def test_non_detect_modes_skip_inference(self) -> None:
        infer = mock.Mock(side_effect=_stub_infer)
        detector = BladeDetector(infer)
        frame = np.full((360, 640, 3), 200, dtype=np.uint8)
        frame[:, :320] = 10

        for mode in (DisplayMode.ORIGINAL, DisplayMode.BINARY, DisplayMode.ROI):
            vis, result = process_frame(detector, frame, RunOptions(mode=mode, roi_size=(200, 200)))
            self.assertIsNone(result, msg=mode.value)
            self.assertEqual(vis.shape, frame.shape, msg=mode.value)
            self.assertIsNot(vis, frame, msg=mode.value)
        infer.assert_not_called()

        vis, result = process_frame(detector, frame, RunOptions())
        self.assertEqual(result.count, 1)
        infer.assert_called_once()

    def test_run_image_original_mode_exports_no_frames(self) -> None:
        src = self.tmp / "frame.png"
        cv2.imwrite(str(src), np.zeros((360, 640, 3), dtype=np.uint8))
        opts = RunOptions(out=self.tmp / "orig.png", export=self.tmp / "frame.json", mode="original", progress=False)

        summary = run_image(self.detector, str(src), opts)

        self.assertEqual(summary.detections, 0)
        self.assertEqual(list(summary.reports), [])
        self.assertTrue(opts.out.exists())
        self.assertEqual(json.loads(opts.export.read_text(encoding="utf-8")), {"frames": []})


if __name__ == "__main__":
    unittest.main()
