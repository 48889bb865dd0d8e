"""Activation utilities for DigitScanner."""

from __future__ import annotations

import numpy as np

from .types import Array


def sigmoid(x: Array, out: Array | None = None) -> Array:
    """Return ``1 / (1 + exp(-x))`` elementwise, optionally writing into ``out``."""

    if out is None:
        out = np.empty_like(x)
    # Large negative inputs overflow ``exp`` to ``inf`` which still yields 0.
    with np.errstate(over="ignore"):
        np.negative(x, out=out)
        np.exp(out, out=out)
    out += 1.0
    np.reciprocal(out, out=out)
    return out

