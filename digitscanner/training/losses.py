"""Cross-entropy cost used to monitor training."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ..core.matrix import Matrix, ShapeError

EPS = 1e-12


def cross_entropy(output: Matrix, target: Matrix) -> float:
    """Return ``-sum(y ln a + (1 - y) ln(1 - a))`` for one sample."""

    if output.shape != target.shape:
        raise ShapeError(f"cross_entropy: output {output.shape} vs target {target.shape}")
    a = np.clip(output.to_array(), EPS, 1.0 - EPS)
    y = target.to_array()
    return float(-np.sum(y * np.log(a) + (1.0 - y) * np.log(1.0 - a)))


def mean_cross_entropy(outputs: Sequence[Matrix], targets: Sequence[Matrix]) -> float:
    if len(outputs) != len(targets):
        raise ValueError(f"Got {len(outputs)} outputs but {len(targets)} targets")
    if not outputs:
        raise ValueError("mean_cross_entropy needs at least one sample")
    return float(np.mean([cross_entropy(a, y) for a, y in zip(outputs, targets)]))


__all__ = ["cross_entropy", "mean_cross_entropy"]
