"""Fully-connected feedforward network trained with mini-batch SGD.

The network is described by its node counts ``[n0, n1, ..., nL]``.  Layer 0
is an :class:`~digitscanner.core.layers.InputLayer`; every following layer is
a :class:`~digitscanner.core.layers.FullyConnectedLayer` computing
``a = sigmoid(W · a_prev + B)``.

Training minimises the cross-entropy cost

    C = -[ y ln(a) + (1 - y) ln(1 - a) ]

Paired with sigmoid outputs its derivative with respect to the output
pre-activation is simply ``a - y``: the sigmoid'(z) term cancels, which is
what keeps learning fast when the output is badly wrong.  For the earlier
layers the error is propagated backwards as

    D(k) = [ W(k+1)^T · D(k+1) ] ⊙ A(k+1) ⊙ (1 - A(k+1))
    NCW(k) = D(k) · A(k)^T
    NCB(k) = D(k)

where ``A`` are the activations recorded by the forward pass and ``⊙`` is the
Hadamard product.  The sigmoid derivative is evaluated on the stored
activations, never on the pre-activations.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Sequence

import numpy as np

from .layers import FullyConnectedLayer, InputLayer, Layer
from .matrix import DEFAULT_DTYPE, Matrix, ShapeError
from .parallel import GradientPool
from .types import Batch, Gradients, ModelDescription

logger = logging.getLogger(__name__)


def make_batches(
    inputs: Sequence[Matrix], targets: Sequence[Matrix], batch_len: int
) -> List[Batch]:
    """Split samples into consecutive batches; the last one may be shorter."""

    if len(inputs) != len(targets):
        raise ValueError(
            f"Got {len(inputs)} inputs but {len(targets)} targets"
        )
    if batch_len <= 0:
        raise ValueError(f"batch_len must be positive, got {batch_len}")
    batches: List[Batch] = []
    for start in range(0, len(inputs), batch_len):
        end = start + batch_len
        batches.append(Batch(inputs=list(inputs[start:end]), targets=list(targets[start:end])))
    return batches


class FNN:
    """Feedforward neural network owning an input layer and its fully-connected layers."""

    def __init__(
        self,
        layers: Sequence[int],
        *,
        dtype: np.dtype | type = DEFAULT_DTYPE,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
        max_threads: int = 1,
        initialize: bool = True,
    ) -> None:
        layers = [int(n) for n in layers]
        if len(layers) < 2:
            raise ValueError("A network needs an input layer and at least one fully-connected layer")
        if any(n <= 0 for n in layers):
            raise ValueError(f"Layer node counts must be positive, got {layers}")
        if max_threads < 1:
            raise ValueError(f"max_threads must be >= 1, got {max_threads}")
        self._layers = layers
        self.dtype = np.dtype(dtype)
        self._rng = rng if rng is not None else np.random.default_rng(seed)
        self.max_threads = int(max_threads)
        self._pool: GradientPool | None = None

        self._arena: List[Layer] = [InputLayer(layers[0])]
        for index in range(1, len(layers)):
            layer = FullyConnectedLayer.create(
                layers[index],
                previous=index - 1,
                previous_nb_nodes=self._arena[index - 1].nb_nodes,
                dtype=self.dtype,
            )
            self._arena.append(layer)
            if initialize:
                self.random_init(layer)
        self._check_chain()

    # ------------------------------------------------------------------
    # Structure

    @property
    def layers(self) -> List[int]:
        return list(self._layers)

    @property
    def nb_fully_connected_layers(self) -> int:
        return len(self._arena) - 1

    @property
    def input_layer(self) -> InputLayer:
        return self._arena[0]  # type: ignore[return-value]

    def layer(self, index: int) -> Layer:
        return self._arena[index]

    def fully_connected_layer(self, i: int) -> FullyConnectedLayer:
        if not 0 <= i < self.nb_fully_connected_layers:
            raise IndexError(f"No fully-connected layer {i}")
        return self._arena[i + 1]  # type: ignore[return-value]

    def fully_connected_layers(self) -> List[FullyConnectedLayer]:
        return self._arena[1:]  # type: ignore[return-value]

    def previous_layer(self, layer: FullyConnectedLayer) -> Layer:
        return self._arena[layer.previous]

    def describe(self) -> ModelDescription:
        return ModelDescription(layer_dims=self.layers)

    def parameter_count(self) -> int:
        return self.describe().parameter_count

    def _check_chain(self) -> None:
        for index, layer in enumerate(self.fully_connected_layers(), start=1):
            previous = self.previous_layer(layer)
            if layer.previous != index - 1:
                raise ValueError(f"Layer {index} does not follow layer {index - 1}")
            if layer.W.shape != (layer.nb_nodes, previous.nb_nodes):
                raise ShapeError(
                    f"Layer {index} weights are {layer.W.shape}, "
                    f"expected {(layer.nb_nodes, previous.nb_nodes)}"
                )
            if layer.B.shape != (layer.nb_nodes, 1):
                raise ShapeError(f"Layer {index} biases are {layer.B.shape}")

    def set_parameters(self, i: int, W: Matrix, B: Matrix) -> None:
        """Copy ``W`` and ``B`` into fully-connected layer ``i``."""

        layer = self.fully_connected_layer(i)
        if W.shape != layer.W.shape:
            raise ShapeError(f"Layer {i} expects weights {layer.W.shape}, got {W.shape}")
        if B.shape != layer.B.shape:
            raise ShapeError(f"Layer {i} expects biases {layer.B.shape}, got {B.shape}")
        layer.W.assign(W.to_array())
        layer.B.assign(B.to_array())

    def random_init(self, layer: FullyConnectedLayer) -> None:
        """Draw weights from N(0, 1/sqrt(fan_in)) and biases from N(0, 1)."""

        previous = self.previous_layer(layer)
        W = layer.get_weights()
        B = layer.get_biases()
        W.assign(self._rng.normal(0.0, 1.0 / np.sqrt(previous.nb_nodes), size=W.shape))
        B.assign(self._rng.normal(0.0, 1.0, size=B.shape))
        W.free()
        B.free()

    # ------------------------------------------------------------------
    # Forward pass

    def _check_input(self, X: Matrix) -> None:
        expected = (self._layers[0], 1)
        if X.shape != expected:
            raise ShapeError(f"Input must be {expected[0]}x1, got {X.I}x{X.J}")

    def _activate(self, layer: FullyConnectedLayer, previous: Matrix) -> Matrix:
        a = layer.W.clone()
        a *= previous
        a += layer.B
        return a.sigmoid()

    def feedforward(self, X: Matrix) -> Matrix:
        """Return the output activation for ``X``; only two activations are alive at once."""

        self._check_input(X)
        previous = X
        for i, layer in enumerate(self.fully_connected_layers()):
            a = self._activate(layer, previous)
            if i > 0:
                previous.free()
            previous = a
        return previous

    def feedforward_with_trace(self, X: Matrix) -> List[Matrix]:
        """Return every activation, starting with a copy of ``X``."""

        self._check_input(X)
        activations = [X.clone()]
        for layer in self.fully_connected_layers():
            activations.append(self._activate(layer, activations[-1]))
        return activations

    # ------------------------------------------------------------------
    # Training

    def backpropagation(self, X: Matrix, Y: Matrix) -> Gradients:
        """Return the cross-entropy gradients of every layer for one sample."""

        L = self.nb_fully_connected_layers
        if Y.shape != (self._layers[-1], 1):
            raise ShapeError(f"Target must be {self._layers[-1]}x1, got {Y.I}x{Y.J}")
        activations = self.feedforward_with_trace(X)
        nabla_W: List[Matrix] = [None] * L  # type: ignore[list-item]
        nabla_B: List[Matrix] = [None] * L  # type: ignore[list-item]

        D = activations[L].clone()
        D -= Y
        At = activations[L - 1].transpose()
        NCW = D.clone()
        NCW *= At
        At.free()
        nabla_W[L - 1] = NCW
        nabla_B[L - 1] = D
        activations[L].free()

        for i in range(L - 2, -1, -1):
            Wt = self.fully_connected_layer(i + 1).W.transpose()
            Wt *= D
            D = Wt
            A = activations[i + 1]
            SP = Matrix(A.I, 1, fill=1.0, dtype=A.dtype)
            SP -= A
            SP.hadamard(A)
            D.hadamard(SP)
            SP.free()
            At = activations[i].transpose()
            NCW = D.clone()
            NCW *= At
            At.free()
            nabla_W[i] = NCW
            nabla_B[i] = D
            activations[i + 1].free()

        activations[0].free()
        return Gradients(nabla_W=nabla_W, nabla_B=nabla_B)

    def _gradient_pool(self) -> GradientPool:
        if self._pool is None:
            self._pool = GradientPool(self.max_threads)
        return self._pool

    def _batch_gradients(
        self, inputs: Sequence[Matrix], targets: Sequence[Matrix]
    ) -> List[Gradients]:
        if self.max_threads > 1 and len(inputs) > 1:
            return self._gradient_pool().map(self.backpropagation, inputs, targets)
        return [self.backpropagation(x, y) for x, y in zip(inputs, targets)]

    def sgd_batch(
        self,
        batch_input: Sequence[Matrix],
        batch_output: Sequence[Matrix],
        training_set_len: int,
        batch_len: int,
        eta: float,
        alpha: float,
    ) -> None:
        """Apply one averaged, weight-decayed update computed over a whole batch."""

        if len(batch_input) != len(batch_output):
            raise ValueError(
                f"Got {len(batch_input)} inputs but {len(batch_output)} targets"
            )
        if batch_len <= 0 or batch_len != len(batch_input):
            raise ValueError(
                f"batch_len={batch_len} does not match the {len(batch_input)} samples given"
            )
        if training_set_len <= 0:
            raise ValueError(f"training_set_len must be positive, got {training_set_len}")

        nabla_W: List[Matrix] = []
        nabla_B: List[Matrix] = []
        for i in range(self.nb_fully_connected_layers):
            nabla_W.append(Matrix(self._layers[i + 1], self._layers[i], fill=0.0, dtype=self.dtype))
            nabla_B.append(Matrix(self._layers[i + 1], 1, fill=0.0, dtype=self.dtype))

        # Fan-out reads parameters only; accumulation below runs in sample order.
        for delta in self._batch_gradients(batch_input, batch_output):
            for j in range(self.nb_fully_connected_layers):
                nabla_W[j] += delta.nabla_W[j]
                nabla_B[j] += delta.nabla_B[j]
            delta.free()

        decay = 1.0 - (alpha * eta) / float(training_set_len)
        for i, layer in enumerate(self.fully_connected_layers()):
            nabla_W[i] *= eta / float(batch_len)
            nabla_B[i] *= eta / float(batch_len)
            layer.W *= decay
            layer.W -= nabla_W[i]
            layer.B -= nabla_B[i]
            nabla_W[i].free()
            nabla_B[i].free()

    SGD_batch = sgd_batch

    def sgd(
        self,
        training_input: Sequence[Matrix],
        training_output: Sequence[Matrix],
        epochs: int,
        batch_len: int,
        eta: float,
        alpha: float,
        *,
        on_epoch: Callable[[int], None] | None = None,
    ) -> int:
        """Run ``epochs`` passes of mini-batch SGD; batches keep their order every epoch.

        Returns the number of batches per epoch.
        """

        if epochs < 0:
            raise ValueError(f"epochs must be >= 0, got {epochs}")
        batches = make_batches(training_input, training_output, batch_len)
        training_set_len = len(training_input)
        for epoch in range(1, epochs + 1):
            for batch in batches:
                self.sgd_batch(
                    batch.inputs, batch.targets, training_set_len, len(batch), eta, alpha
                )
            logger.debug("Epoch %d/%d done (%d batches)", epoch, epochs, len(batches))
            if on_epoch is not None:
                on_epoch(epoch)
        return len(batches)

    # ------------------------------------------------------------------
    # Resources

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    def __enter__(self) -> "FNN":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["FNN", "make_batches"]
