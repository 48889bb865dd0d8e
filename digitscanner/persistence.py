"""
persistence.py
~~~~~~~~~~~~~~

Plain-text model files.

Layout (whitespace separated)::

    <number of layers>
    <nodes layer 0> <nodes layer 1> ... <nodes layer L>
    <W1 row 0>
    ...
    <W1 last row>
    <B1 values>
    ... one block per fully-connected layer

Values are written with 17 significant digits so float64 parameters survive
a save/load round trip unchanged.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, List

import numpy as np

from .core.matrix import DEFAULT_DTYPE, Matrix
from .core.network import FNN

logger = logging.getLogger(__name__)


class ModelFileError(RuntimeError):
    """Raised when a model file is missing or malformed."""


def _format_row(values: np.ndarray) -> str:
    return " ".join(f"{float(v):.17g}" for v in values)


def save_network(network: FNN, path: str | Path) -> Path:
    """Write ``network`` to ``path``, creating parent directories."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines: List[str] = [str(len(network.layers)), " ".join(str(n) for n in network.layers)]
    for layer in network.fully_connected_layers():
        for row in layer.W.to_array():
            lines.append(_format_row(row))
        lines.append(_format_row(layer.B.to_array()[:, 0]))
    path.write_text("\n".join(lines) + "\n")
    logger.info("Saved %s network to %s", "-".join(map(str, network.layers)), path)
    return path


def _tokens(path: Path) -> Iterator[str]:
    try:
        text = path.read_text()
    except FileNotFoundError:
        raise ModelFileError(f"Model file not found: {path}") from None
    except OSError as exc:
        raise ModelFileError(f"Cannot read model file {path}: {exc}") from exc
    return iter(text.split())


def _next_int(tokens: Iterator[str], what: str, path: Path) -> int:
    try:
        token = next(tokens)
    except StopIteration:
        raise ModelFileError(f"{path}: unexpected end of file while reading {what}") from None
    try:
        return int(token)
    except ValueError:
        raise ModelFileError(f"{path}: expected an integer for {what}, got {token!r}") from None


def _next_values(tokens: Iterator[str], count: int, what: str, path: Path) -> np.ndarray:
    values = np.empty(count, dtype=np.float64)
    for k in range(count):
        try:
            token = next(tokens)
        except StopIteration:
            raise ModelFileError(
                f"{path}: unexpected end of file while reading {what} ({k}/{count} values)"
            ) from None
        try:
            values[k] = float(token)
        except ValueError:
            raise ModelFileError(f"{path}: invalid number {token!r} in {what}") from None
    return values


def load_network(
    path: str | Path,
    *,
    dtype: np.dtype | type = DEFAULT_DTYPE,
    max_threads: int = 1,
) -> FNN:
    """Read a network previously written by :func:`save_network`."""

    path = Path(path)
    tokens = _tokens(path)
    nb_layers = _next_int(tokens, "the layer count", path)
    if nb_layers < 2:
        raise ModelFileError(f"{path}: a network needs at least 2 layers, got {nb_layers}")
    layers = [_next_int(tokens, f"the node count of layer {i}", path) for i in range(nb_layers)]
    if any(n <= 0 for n in layers):
        raise ModelFileError(f"{path}: node counts must be positive, got {layers}")

    network = FNN(layers, dtype=dtype, max_threads=max_threads, initialize=False)
    for i in range(nb_layers - 1):
        rows, cols = layers[i + 1], layers[i]
        W = _next_values(tokens, rows * cols, f"weights of layer {i + 1}", path)
        B = _next_values(tokens, rows, f"biases of layer {i + 1}", path)
        network.set_parameters(
            i,
            Matrix.from_array(W.reshape(rows, cols)),
            Matrix.from_array(B.reshape(rows, 1)),
        )
    leftover = next(tokens, None)
    if leftover is not None:
        raise ModelFileError(f"{path}: unexpected trailing data starting with {leftover!r}")
    logger.info("Loaded %s network from %s", "-".join(map(str, layers)), path)
    return network


__all__ = ["ModelFileError", "load_network", "save_network"]
