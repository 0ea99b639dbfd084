from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np

from ..errors import InferenceError

PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    Configuration for TorchScript inference.

    - device: preferred device; "cuda" falls back to "cpu" if it cannot be used
    - half: cast input to float16 (only if the model expects it)
    - output_index: if the model returns multiple outputs, select this index
    """

    device: str = "cuda"
    half: bool = False
    output_index: int = 0


class TorchScriptBackend:
    """
    TorchScript backend using `torch.jit.load`.

    Doesn't require model class code, unlike raw .pt weight checkpoints.
    """

    def __init__(self, model_path: PathLike, cfg: TorchScriptBackendConfig = TorchScriptBackendConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        self._torch = torch
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        self.half = cfg.half
        self.output_index = cfg.output_index
        self.device, self.model = self._load(cfg.device)

    def _load(self, preferred: str):
        torch = self._torch
        candidates = [preferred] if preferred == "cpu" else [preferred, "cpu"]
        last_exc = None
        for name in candidates:
            device = torch.device(name)
            if device.type == "cuda" and not torch.cuda.is_available():
                logger.info("CUDA not available; skipping device %s", name)
                continue
            try:
                model = torch.jit.load(str(self.model_path), map_location=device)
            except Exception as exc:
                logger.warning("Could not load %s on %s (%s)", self.model_path.name, name, exc)
                last_exc = exc
                continue
            model.eval()
            logger.info("Model %s loaded on %s", self.model_path.name, device)
            return device, model
        raise InferenceError(f"Failed to load TorchScript model {self.model_path}: {last_exc}") from last_exc

    def infer(self, blob: np.ndarray) -> np.ndarray:
        torch = self._torch
        x = torch.as_tensor(blob, device=self.device)
        if self.half:
            x = x.half()
        else:
            x = x.float()
        x = x.contiguous()

        with torch.no_grad():
            y = self.model(x)

        if isinstance(y, (tuple, list)):
            y = y[self.output_index]

        if hasattr(y, "detach"):
            y = y.detach()
        return y.float().to("cpu").numpy()
