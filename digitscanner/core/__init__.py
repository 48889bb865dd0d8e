"""Core numerical primitives for DigitScanner."""

from . import activations, layers, matrix, network, parallel, types

__all__ = ["activations", "layers", "matrix", "network", "parallel", "types"]
