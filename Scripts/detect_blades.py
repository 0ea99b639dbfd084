from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from blade_kit import DetectorConfig, ModelSpec, anchor_count, class_names_tuple, load_class_names, load_detector
from blade_kit.ingest import IMAGE_SUFFIXES
from blade_kit.run_config import apply_run_config, collect_cli_dests, load_run_config
from blade_kit.runner import DisplayMode, RunOptions, run_image, run_stream


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Detect blades (box + 4 keypoints) in an image, video or webcam stream.")
    parser.add_argument("--config", default=None, help="Optional JSON run config; CLI flags override its values.")
    src = parser.add_mutually_exclusive_group()
    src.add_argument("--image", default=None, help="Path to an input image.")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")
    parser.add_argument("--model", default="Models/blade.onnx", help="Path to the blade model (.onnx/.torchscript).")
    parser.add_argument("--metadata", default=None, help="Optional metadata.yaml with a names: mapping.")
    parser.add_argument("--conf", type=float, default=0.5, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=0.4, help="IoU threshold for NMS.")
    parser.add_argument("--imgsz", type=int, default=640, help="Square network input size (multiple of 32).")
    parser.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")
    parser.add_argument("--device", default="cuda", help="Preferred TorchScript device; falls back to cpu.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated preferred ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--rgb", action="store_true", help="Feed the model RGB instead of BGR.")
    parser.add_argument("--show", action="store_true", help="Show a window with visualized detections.")
    parser.add_argument("--out", default=None, help="Optional output path (image or video) for the visualization.")
    parser.add_argument("--export", default=None, help="Optional results export (.json or .txt).")
    parser.add_argument("--every", type=int, default=1, help="Process every Nth frame for video/webcam.")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N processed frames (0 = no limit).")
    parser.add_argument(
        "--mode",
        default=DisplayMode.DETECT.value,
        choices=[m.value for m in DisplayMode],
        help="What to render: detections, the original frame, an Otsu binary view or the center ROI.",
    )
    parser.add_argument("--roi-size", type=int, default=640, help="Side of the square center ROI for --mode roi.")
    parser.add_argument("--no-progress", dest="progress", action="store_false", help="Disable the progress bar.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...).")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.config:
        payload = load_run_config(Path(args.config))
        apply_run_config(args=args, payload=payload, cli_dests=collect_cli_dests(parser, argv), parser=parser)

    logging.basicConfig(level=str(args.log_level).upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if sum(x is not None for x in (args.image, args.video, args.webcam)) != 1:
        parser.error("exactly one of --image/--video/--webcam is required")
    try:
        num_candidates = anchor_count(int(args.imgsz))
    except ValueError as exc:
        parser.error(f"--imgsz: {exc}")
    if str(args.mode) not in {m.value for m in DisplayMode}:
        parser.error(f"--mode must be one of {[m.value for m in DisplayMode]}")

    class_names = class_names_tuple(load_class_names(args.metadata)) if args.metadata else ModelSpec().class_names
    onnx_providers = None
    if args.onnx_providers:
        onnx_providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]

    detector = load_detector(
        model_path=args.model,
        backend=args.backend,
        config=DetectorConfig(conf_threshold=args.conf, iou_threshold=args.iou),
        model=ModelSpec(
            canvas_size=int(args.imgsz),
            class_names=class_names,
            bgr_to_rgb=bool(args.rgb),
            num_candidates=num_candidates,
        ),
        onnx_providers=onnx_providers,
        torch_device=args.device,
    )

    opts = RunOptions(
        out=Path(args.out) if args.out else None,
        export=Path(args.export) if args.export else None,
        show=bool(args.show),
        every=int(args.every),
        max_frames=int(args.max_frames),
        progress=bool(args.progress),
        mode=DisplayMode(args.mode),
        roi_size=(int(args.roi_size), int(args.roi_size)),
    )

    if args.image is not None:
        if Path(args.image).suffix.lower() not in IMAGE_SUFFIXES:
            logging.getLogger(__name__).warning("Unrecognized image extension: %s", args.image)
        summary = run_image(detector, args.image, opts)
        for report in summary.reports:
            for det in report.detections:
                print(f"{det.label} {det.score:.3f} {det.as_xywh()}")
    else:
        summary = run_stream(detector, opts, video=args.video, webcam=args.webcam)

    print(
        f"frames={summary.frames_processed}/{summary.frames_read} "
        f"blades={summary.detections} failed={summary.failed_frames}"
    )
    if opts.out is not None:
        print(f"wrote {opts.out}")
    if opts.export is not None:
        print(f"wrote {opts.export}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
