from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Dict, Sequence


STR_KEYS = {"image", "video", "model", "metadata", "backend", "device", "out", "export", "onnx_providers", "log_level", "mode"}
INT_KEYS = {"webcam", "imgsz", "every", "max_frames", "roi_size"}
FLOAT_KEYS = {"conf", "iou"}
BOOL_KEYS = {"show", "rgb", "progress"}


def load_run_config(path: Path) -> Dict[str, object]:
    if not path.exists():
        raise FileNotFoundError(f"Run config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid run config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Run config must be a JSON object")
    return payload


def collect_cli_dests(parser: argparse.ArgumentParser, argv: Sequence[str]) -> set[str]:
    """Dests of the options explicitly present in `argv`."""

    dests: set[str] = set()
    for opt, action in parser._option_string_actions.items():
        for arg in argv:
            if arg == opt or arg.startswith(f"{opt}="):
                dests.add(action.dest)
                break
    return dests


def apply_run_config(
    *,
    args: argparse.Namespace,
    payload: Dict[str, object],
    cli_dests: set[str],
    parser: argparse.ArgumentParser,
) -> None:
    """
    Copy run-config values onto `args`, except where the same option was
    given on the command line.
    """

    allowed = {action.dest for action in parser._actions if action.dest != "help"}
    if "config" in payload:
        raise ValueError("run config must not include the 'config' key")
    unknown = sorted(k for k in payload.keys() if k not in allowed)
    if unknown:
        raise ValueError(f"Unknown run config keys: {unknown}")
    sources = [k for k in ("image", "video", "webcam") if payload.get(k) not in (None, "")]
    if len(sources) > 1:
        raise ValueError("run config must set only one of image/video/webcam")
    # A source given on the command line replaces the config's source.
    cli_has_source = any(k in cli_dests for k in ("image", "video", "webcam"))

    for key, value in payload.items():
        if key in cli_dests or value is None:
            continue
        if cli_has_source and key in ("image", "video", "webcam"):
            continue
        if key == "onnx_providers" and isinstance(value, list):
            if not value or not all(isinstance(v, str) and v.strip() for v in value):
                raise ValueError("onnx_providers must be a non-empty list of strings")
            setattr(args, key, ",".join(v.strip() for v in value))
            continue
        if key in STR_KEYS:
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{key} must be a non-empty string")
            setattr(args, key, value)
            continue
        if key in BOOL_KEYS:
            if not isinstance(value, bool):
                raise ValueError(f"{key} must be a boolean")
            setattr(args, key, value)
            continue
        if key in INT_KEYS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{key} must be an integer")
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(f"{key} must be an integer")
            setattr(args, key, int(value))
            continue
        if key in FLOAT_KEYS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{key} must be a number")
            setattr(args, key, float(value))
            continue
        raise ValueError(f"Unsupported run config key: {key}")
