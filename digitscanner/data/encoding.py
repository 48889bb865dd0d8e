"""Conversion of raw dataset records into network matrices."""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np

from ..core.matrix import DEFAULT_DTYPE, Matrix
from ..core.types import Array

PIXEL_SCALE = 256.0
NUM_CLASSES = 10


def encode_image(pixels: Array | Sequence[int], dtype: np.dtype | type = DEFAULT_DTYPE) -> Matrix:
    """Return a column matrix of ``pixel / 256``, which lies in [0, 1)."""

    values = np.asarray(pixels, dtype=np.float64).reshape(-1, 1) / PIXEL_SCALE
    return Matrix.from_array(values, dtype=dtype)


def one_hot(
    label: int, num_classes: int = NUM_CLASSES, dtype: np.dtype | type = DEFAULT_DTYPE
) -> Matrix:
    """Return a ``num_classes × 1`` target with 1.0 at ``label``."""

    label = int(label)
    if not 0 <= label < num_classes:
        raise ValueError(f"Label {label} outside [0, {num_classes})")
    target = Matrix(num_classes, 1, dtype=dtype)
    target[label, 0] = 1.0
    return target


def decode_label(target: Matrix) -> int:
    return target.argmax()


def encode_records(
    images: Array,
    labels: Array,
    num_classes: int = NUM_CLASSES,
    dtype: np.dtype | type = DEFAULT_DTYPE,
) -> Tuple[List[Matrix], List[Matrix]]:
    """Encode parallel image/label arrays into input and one-hot target matrices."""

    if len(images) != len(labels):
        raise ValueError(f"Got {len(images)} images but {len(labels)} labels")
    inputs = [encode_image(image, dtype=dtype) for image in images]
    targets = [one_hot(label, num_classes, dtype=dtype) for label in labels]
    return inputs, targets


__all__ = ["NUM_CLASSES", "PIXEL_SCALE", "decode_label", "encode_image", "encode_records", "one_hot"]
