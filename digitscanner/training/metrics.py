"""Metric helpers for the training driver."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ..core.matrix import Matrix


def predict_label(output: Matrix) -> int:
    """Index of the largest output activation; ties go to the lowest index."""

    return output.argmax()


def accuracy(predicted: Sequence[int], labels: Sequence[int]) -> float:
    """Fraction of ``predicted`` equal to ``labels`` (1.0 means 100 %)."""

    if len(predicted) != len(labels):
        raise ValueError(f"Got {len(predicted)} predictions but {len(labels)} labels")
    if not len(labels):
        raise ValueError("accuracy needs at least one sample")
    pred = np.asarray(predicted, dtype=np.int64)
    true = np.asarray(labels, dtype=np.int64)
    return float(np.mean(pred == true))


__all__ = ["accuracy", "predict_label"]
