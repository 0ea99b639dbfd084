from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np
import onnxruntime as ort

from ..errors import InferenceError

PathLike = Union[str, Path]

logger = logging.getLogger(__name__)

DEFAULT_PREFERRED_PROVIDERS = ("CUDAExecutionProvider", "CPUExecutionProvider")
FALLBACK_PROVIDER = "CPUExecutionProvider"


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: preferred ORT execution providers, in priority order; entries not
      available in this onnxruntime build are skipped
    - input_name/output_name: override auto-selected I/O names if needed
    """

    providers: Optional[Sequence[str]] = DEFAULT_PREFERRED_PROVIDERS
    input_name: Optional[str] = None
    output_name: Optional[str] = None


class OnnxRuntimeBackend:
    """
    ONNX Runtime backend.

    Session creation first tries the preferred providers and, if that fails,
    retries on the CPU provider alone. Expects an NCHW float32 blob shaped
    (1, 3, S, S); returns the primary output as a NumPy array.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        available = set(ort.get_available_providers())
        preferred = [p for p in (cfg.providers or ()) if p in available]
        self.session = self._create_session(preferred)

        self.input_name = cfg.input_name or self.session.get_inputs()[0].name
        self.output_name = cfg.output_name or self.session.get_outputs()[0].name

    def _create_session(self, preferred: Sequence[str]) -> "ort.InferenceSession":
        sess_opts = ort.SessionOptions()
        if preferred and list(preferred) != [FALLBACK_PROVIDER]:
            try:
                session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=list(preferred))
                logger.info("Model %s loaded with providers %s", self.model_path.name, session.get_providers())
                return session
            except Exception as exc:
                logger.warning("Could not load %s with %s (%s); falling back to CPU", self.model_path.name, preferred, exc)

        try:
            session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=[FALLBACK_PROVIDER])
        except Exception as exc:
            raise InferenceError(f"Failed to load ONNX model {self.model_path}: {exc}") from exc
        logger.info("Model %s loaded on CPU", self.model_path.name)
        return session

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    def infer(self, blob: np.ndarray, extra_inputs: Optional[Dict[str, Any]] = None) -> np.ndarray:
        inputs: Dict[str, Any] = {self.input_name: blob}
        if extra_inputs:
            inputs.update(extra_inputs)
        outputs = self.session.run([self.output_name], inputs)
        return outputs[0]
