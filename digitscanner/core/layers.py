"""Layer variants of a fully-connected network.

A network keeps its layers in a flat list; fully-connected layers refer to
their predecessor by index into that list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import numpy as np

from .matrix import DEFAULT_DTYPE, Matrix, ShapeError


@dataclass(frozen=True)
class InputLayer:
    """First layer of a network: a node count and no parameters."""

    nb_nodes: int

    def __post_init__(self) -> None:
        if self.nb_nodes <= 0:
            raise ValueError(f"Layer node count must be positive, got {self.nb_nodes}")


@dataclass
class FullyConnectedLayer:
    """Layer with a ``nb_nodes × previous_nb_nodes`` weight matrix and a bias column."""

    nb_nodes: int
    previous: int
    W: Matrix
    B: Matrix

    def __post_init__(self) -> None:
        if self.nb_nodes <= 0:
            raise ValueError(f"Layer node count must be positive, got {self.nb_nodes}")
        if self.previous < 0:
            raise ValueError(f"Previous layer index must be >= 0, got {self.previous}")
        if self.W.I != self.nb_nodes:
            raise ShapeError(f"Weights have {self.W.I} rows for a {self.nb_nodes}-node layer")
        if self.B.shape != (self.nb_nodes, 1):
            raise ShapeError(f"Biases must be {self.nb_nodes}x1, got {self.B.shape}")

    @classmethod
    def create(
        cls,
        nb_nodes: int,
        previous: int,
        previous_nb_nodes: int,
        dtype: np.dtype | type = DEFAULT_DTYPE,
    ) -> "FullyConnectedLayer":
        return cls(
            nb_nodes=nb_nodes,
            previous=previous,
            W=Matrix(nb_nodes, previous_nb_nodes, dtype=dtype),
            B=Matrix(nb_nodes, 1, dtype=dtype),
        )

    def get_weights(self) -> Matrix:
        """Return a view over the weights."""

        return self.W.view()

    def get_biases(self) -> Matrix:
        """Return a view over the biases."""

        return self.B.view()


Layer = Union[InputLayer, FullyConnectedLayer]

__all__ = ["FullyConnectedLayer", "InputLayer", "Layer"]
