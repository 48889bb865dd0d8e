"""Training and testing driver around :class:`~digitscanner.core.network.FNN`."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Sequence, Tuple

import numpy as np

from ..core.matrix import DEFAULT_DTYPE, Matrix
from ..core.network import FNN, make_batches
from ..core.types import TrainingReport
from ..data.encoding import NUM_CLASSES, encode_records
from ..data.idx import read_window
from .losses import cross_entropy
from .metrics import accuracy, predict_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainingConfig:
    """Dataset window and hyper-parameters of one training run."""

    nb_images: int = 60000
    nb_images_to_skip: int = 0
    epochs: int = 30
    batch_len: int = 10
    eta: float = 0.5
    alpha: float = 5.0

    def __post_init__(self) -> None:
        if self.nb_images <= 0:
            raise ValueError(f"nb_images must be positive, got {self.nb_images}")
        if self.nb_images_to_skip < 0:
            raise ValueError(f"nb_images_to_skip must be >= 0, got {self.nb_images_to_skip}")
        if self.epochs < 0:
            raise ValueError(f"epochs must be >= 0, got {self.epochs}")
        if self.batch_len <= 0:
            raise ValueError(f"batch_len must be positive, got {self.batch_len}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "TrainingConfig":
        return cls(
            nb_images=int(data.get("nb_images", cls.nb_images)),
            nb_images_to_skip=int(data.get("nb_images_to_skip", cls.nb_images_to_skip)),
            epochs=int(data.get("epochs", cls.epochs)),
            batch_len=int(data.get("batch_len", cls.batch_len)),
            eta=float(data.get("eta", cls.eta)),
            alpha=float(data.get("alpha", cls.alpha)),
        )


@dataclass(frozen=True)
class TestConfig:
    """Dataset window of one test run."""

    __test__ = False  # not a pytest test class

    nb_images: int = 10000
    nb_images_to_skip: int = 0

    def __post_init__(self) -> None:
        if self.nb_images <= 0:
            raise ValueError(f"nb_images must be positive, got {self.nb_images}")
        if self.nb_images_to_skip < 0:
            raise ValueError(f"nb_images_to_skip must be >= 0, got {self.nb_images_to_skip}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "TestConfig":
        return cls(
            nb_images=int(data.get("nb_images", cls.nb_images)),
            nb_images_to_skip=int(data.get("nb_images_to_skip", cls.nb_images_to_skip)),
        )


def load_samples(
    images_path: str | Path,
    labels_path: str | Path,
    nb_images: int,
    nb_images_to_skip: int = 0,
    *,
    num_classes: int = NUM_CLASSES,
    dtype: np.dtype | type = DEFAULT_DTYPE,
) -> Tuple[List[Matrix], List[Matrix], List[int]]:
    """Read a dataset window and encode it as input/target matrices plus raw labels."""

    pixels, labels = read_window(images_path, labels_path, nb_images, nb_images_to_skip)
    inputs, targets = encode_records(pixels, labels, num_classes=num_classes, dtype=dtype)
    return inputs, targets, [int(label) for label in labels]


class Trainer:
    """Run training and evaluation on encoded samples, reporting to callbacks.

    Callbacks are objects with an ``on_epoch(epoch, metrics)`` method or plain
    callables with the same signature.
    """

    def __init__(self, network: FNN, callbacks: Sequence[object] | None = None) -> None:
        self.network = network
        self.callbacks = list(callbacks or [])

    def train(
        self,
        inputs: Sequence[Matrix],
        targets: Sequence[Matrix],
        *,
        epochs: int,
        batch_len: int,
        eta: float,
        alpha: float,
        monitor: bool = True,
    ) -> TrainingReport:
        """Train for ``epochs`` epochs; batches are never reshuffled between epochs."""

        if not inputs:
            raise ValueError("Cannot train on an empty dataset")
        report = TrainingReport(
            epochs=epochs, batches_per_epoch=len(make_batches(inputs, targets, batch_len))
        )
        logger.info(
            "Training %s on %d samples: %d epochs, batch %d, eta=%g, alpha=%g",
            self.network.layers, len(inputs), epochs, batch_len, eta, alpha,
        )

        def _after_epoch(epoch: int) -> None:
            if not monitor:
                return
            metrics = self.evaluate(inputs, targets)
            report.history.append({"epoch": float(epoch), **metrics})
            logger.info(
                "epoch %d: loss=%.6f accuracy=%.4f", epoch, metrics["loss"], metrics["accuracy"]
            )
            self._emit_epoch(epoch, metrics)

        _after_epoch(0)
        self.network.sgd(inputs, targets, epochs, batch_len, eta, alpha, on_epoch=_after_epoch)
        return report

    def predict(self, inputs: Sequence[Matrix]) -> List[int]:
        predictions: List[int] = []
        for x in inputs:
            y = self.network.feedforward(x)
            predictions.append(predict_label(y))
            y.free()
        return predictions

    def test(self, inputs: Sequence[Matrix], labels: Sequence[int]) -> float:
        """Return the fraction of samples whose argmax prediction matches the label."""

        score = accuracy(self.predict(inputs), labels)
        logger.info("Tested on %d samples: %.2f %%", len(labels), 100.0 * score)
        return score

    def evaluate(self, inputs: Sequence[Matrix], targets: Sequence[Matrix]) -> dict[str, float]:
        losses: List[float] = []
        predicted: List[int] = []
        labels: List[int] = []
        for x, t in zip(inputs, targets):
            y = self.network.feedforward(x)
            losses.append(cross_entropy(y, t))
            predicted.append(predict_label(y))
            labels.append(t.argmax())
            y.free()
        return {"loss": float(np.mean(losses)), "accuracy": accuracy(predicted, labels)}

    def _emit_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        for callback in self.callbacks:
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(epoch, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(epoch, metrics)


__all__ = ["TestConfig", "Trainer", "TrainingConfig", "load_samples", "make_batches"]
