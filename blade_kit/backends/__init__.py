"""
Inference backends for blade_kit.

Backends are kept in a separate module so core functionality (pre/post-processing)
stays lightweight and can be used without installing inference runtimes. Each
backend is constructed once from a model path and exposes `infer(blob)`.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np


class InferenceSession(Protocol):
    def infer(self, blob: np.ndarray) -> np.ndarray:
        """Run the model on a (1, 3, S, S) float32 blob and return the raw (1, N, F) output."""
        ...


__all__ = ["InferenceSession"]
