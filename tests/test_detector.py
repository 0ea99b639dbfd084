import unittest

import numpy as np

from blade_kit.errors import DecodeError, GeometryError
from blade_kit.runtime import BladeDetector, DetectorConfig, DetectStatus, ModelSpec, anchor_count


N_SLOTS = 8400


def _row(cx, cy, w, h, scores, kpts):
    return [cx, cy, w, h, *scores, *[v for k in kpts for v in k]]


class StubInference:
    """Returns a fixed raw tensor and records the blobs it was given."""

    def __init__(self, rows, n_slots=N_SLOTS):
        preds = np.zeros((1, n_slots, 16), dtype=np.float32)
        if rows:
            preds[0, : len(rows)] = np.array(rows, dtype=np.float32)
        self.preds = preds
        self.calls = []

    def __call__(self, blob):
        self.calls.append(blob)
        return self.preds


class TestBladeDetector(unittest.TestCase):
    def test_scenario_1080p(self) -> None:
        kpts = [(300, 300), (340, 300), (340, 340), (300, 340)]
        stub = StubInference([_row(320, 320, 40, 40, [0.9, 0.05, 0.0, 0.0], kpts)])
        detector = BladeDetector(stub)

        result = detector.detect(np.zeros((1080, 1920, 3), dtype=np.uint8))

        self.assertEqual(result.status, DetectStatus.OK)
        self.assertEqual(result.image_size, (1920, 1080))
        self.assertEqual(result.count, 1)
        det = result.detections[0]
        self.assertEqual(det.label, "RR")
        self.assertAlmostEqual(det.x, 900, delta=1)
        self.assertAlmostEqual(det.y, 480, delta=1)
        self.assertAlmostEqual(det.width, 120, delta=1)
        self.assertAlmostEqual(det.height, 120, delta=1)
        self.assertTrue(det.has_all_keypoints)
        self.assertAlmostEqual(det.keypoints[0].x, 900, delta=1)
        self.assertAlmostEqual(det.keypoints[0].y, 480, delta=1)

    def test_blob_contract(self) -> None:
        stub = StubInference([])
        BladeDetector(stub).detect(np.full((480, 640, 3), 255, dtype=np.uint8))
        (blob,) = stub.calls
        self.assertEqual(blob.shape, (1, 3, 640, 640))
        self.assertEqual(blob.dtype, np.float32)
        self.assertGreaterEqual(float(blob.min()), 0.0)
        self.assertLessEqual(float(blob.max()), 1.0)
        self.assertAlmostEqual(float(blob[0, 0, 320, 320]), 1.0)
        self.assertAlmostEqual(float(blob[0, 0, 0, 0]), 114 / 255, places=6)

    def test_bgr_to_rgb_swaps_channels(self) -> None:
        img = np.zeros((64, 64, 3), dtype=np.uint8)
        img[:, :, 0] = 255  # blue in BGR
        stub = StubInference([])
        BladeDetector(stub, model=ModelSpec(bgr_to_rgb=True)).detect(img)
        blob = stub.calls[0]
        self.assertAlmostEqual(float(blob[0, 2, 320, 320]), 1.0)
        self.assertAlmostEqual(float(blob[0, 0, 320, 320]), 0.0)

    def test_grayscale_input_is_accepted(self) -> None:
        stub = StubInference([])
        result = BladeDetector(stub).detect(np.zeros((100, 200), dtype=np.uint8))
        self.assertTrue(result.ok)
        self.assertEqual(stub.calls[0].shape, (1, 3, 640, 640))

    def test_empty_input_skips_inference(self) -> None:
        stub = StubInference([])
        detector = BladeDetector(stub)
        for img in (None, np.zeros((0, 0, 3), dtype=np.uint8), np.zeros((10, 0, 3), dtype=np.uint8)):
            result = detector.detect(img)
            self.assertEqual(result.status, DetectStatus.EMPTY_INPUT)
            self.assertEqual(result.detections, ())
        self.assertEqual(stub.calls, [])

    def test_non_finite_box_never_reaches_output(self) -> None:
        kpts = [(300, 300), (340, 300), (340, 340), (300, 340)]
        rows = [
            _row(np.nan, 320, 40, 40, [0.9, 0, 0, 0], kpts),
            _row(100, 100, 20, 20, [0.6, 0, 0, 0], [(np.inf, 1), (1, 1), (1, 1), (1, 1)]),
        ]
        result = BladeDetector(StubInference(rows)).detect(np.zeros((1080, 1920, 3), dtype=np.uint8))
        self.assertEqual(result.count, 1)
        det = result.detections[0]
        self.assertAlmostEqual(det.score, 0.6, places=5)
        self.assertTrue(all(np.isfinite(v) for v in det.as_xyxy()))
        self.assertIsNone(det.keypoints[0])

    def test_sliver_image_raises_geometry_error(self) -> None:
        stub = StubInference([])
        with self.assertRaises(GeometryError):
            BladeDetector(stub).detect(np.zeros((1, 10000, 3), dtype=np.uint8))
        self.assertEqual(stub.calls, [])

    def test_smaller_input_size(self) -> None:
        kpts = [(150, 150), (170, 150), (170, 170), (150, 170)]
        stub = StubInference([_row(160, 160, 20, 20, [0.9, 0.0, 0.0, 0.0], kpts)], n_slots=anchor_count(320))
        detector = BladeDetector(stub, model=ModelSpec(canvas_size=320, num_candidates=anchor_count(320)))

        result = detector.detect(np.zeros((640, 640, 3), dtype=np.uint8))

        self.assertEqual(stub.calls[0].shape, (1, 3, 320, 320))
        self.assertEqual(result.count, 1)
        det = result.detections[0]
        self.assertEqual((det.x, det.y, det.width, det.height), (300, 300, 40, 40))

    def test_inference_failure_is_reported(self) -> None:
        def broken(blob):
            raise RuntimeError("device lost")

        with self.assertLogs("blade_kit.runtime", level="ERROR"):
            result = BladeDetector(broken).detect(np.zeros((10, 10, 3), dtype=np.uint8))
        self.assertEqual(result.status, DetectStatus.INFERENCE_FAILED)
        self.assertIn("device lost", result.error)
        self.assertEqual(result.detections, ())

    def test_malformed_output_raises_decode_error(self) -> None:
        detector = BladeDetector(lambda blob: np.zeros((1, 100, 16), dtype=np.float32))
        with self.assertRaises(DecodeError):
            detector.detect(np.zeros((10, 10, 3), dtype=np.uint8))

    def test_suppression_and_order(self) -> None:
        kpts = [(1, 1)] * 4
        rows = [
            _row(60, 60, 100, 100, [0.0, 0.8, 0.0, 0.0], kpts),  # overlaps the 0.9 box, IoU ~0.68
            _row(50, 50, 100, 100, [0.9, 0.0, 0.0, 0.0], kpts),
            _row(400, 400, 50, 50, [0.0, 0.0, 0.0, 0.7], kpts),
            _row(500, 100, 50, 50, [0.0, 0.0, 0.3, 0.0], kpts),  # below conf
        ]
        result = BladeDetector(StubInference(rows)).detect(np.zeros((640, 640, 3), dtype=np.uint8))
        self.assertEqual(result.labels, ("RR", "BW"))
        scores = [d.score for d in result]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_threshold_change_applies_to_next_call(self) -> None:
        kpts = [(1, 1)] * 4
        stub = StubInference([_row(100, 100, 20, 20, [0.6, 0, 0, 0], kpts)])
        detector = BladeDetector(stub)
        img = np.zeros((640, 640, 3), dtype=np.uint8)

        self.assertEqual(detector.detect(img).count, 1)
        detector.set_conf_threshold(0.7)
        self.assertEqual(detector.detect(img).count, 0)
        detector.config.conf_threshold = 0.55
        self.assertEqual(detector.detect(img).count, 1)

    def test_all_coordinates_inside_image(self) -> None:
        rng = np.random.default_rng(3)
        rows = []
        for _ in range(200):
            cx, cy = rng.uniform(-100, 740, size=2)
            w, h = rng.uniform(1, 300, size=2)
            scores = rng.uniform(0, 1, size=4)
            kpts = [tuple(rng.uniform(-50, 690, size=2)) for _ in range(4)]
            rows.append(_row(cx, cy, w, h, scores, kpts))
        detector = BladeDetector(StubInference(rows), config=DetectorConfig(conf_threshold=0.2, iou_threshold=0.5))
        result = detector.detect(np.zeros((300, 1000, 3), dtype=np.uint8))
        self.assertGreater(result.count, 0)
        for det in result:
            x1, y1, x2, y2 = det.as_xyxy()
            self.assertTrue(0 <= x1 <= x2 <= 1000)
            self.assertTrue(0 <= y1 <= y2 <= 300)
            for kpt in det.valid_keypoints:
                self.assertTrue(0 <= kpt.x <= 1000)
                self.assertTrue(0 <= kpt.y <= 300)


class TestDetectorConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        cfg = DetectorConfig()
        self.assertEqual(cfg.snapshot(), (0.5, 0.4))

    def test_out_of_range_values_are_clamped(self) -> None:
        cfg = DetectorConfig()
        with self.assertLogs("blade_kit.runtime", level="WARNING"):
            cfg.conf_threshold = 1.5
        with self.assertLogs("blade_kit.runtime", level="WARNING"):
            cfg.iou_threshold = -0.2
        self.assertEqual(cfg.snapshot(), (1.0, 0.0))


class TestAnchorCount(unittest.TestCase):
    def test_known_sizes(self) -> None:
        self.assertEqual(anchor_count(640), 8400)
        self.assertEqual(anchor_count(320), 2100)
        self.assertEqual(anchor_count(1280), 33600)

    def test_rejects_sizes_off_the_stride_grid(self) -> None:
        for size in (0, 16, 100, 650):
            with self.assertRaises(ValueError, msg=str(size)):
                anchor_count(size)


if __name__ == "__main__":
    unittest.main()
