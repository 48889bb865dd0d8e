"""High level handle used by the command line: one network plus a drawing scratchpad."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence, Tuple

import numpy as np

from .core.matrix import DEFAULT_DTYPE, Matrix
from .core.network import FNN
from .core.types import TrainingReport
from .data.cache import TEST_IMAGES, TEST_LABELS, TRAIN_IMAGES, TRAIN_LABELS
from .data.encoding import NUM_CLASSES, encode_image
from .persistence import load_network, save_network
from .training.metrics import predict_label
from .training.trainer import TestConfig, Trainer, TrainingConfig, load_samples

logger = logging.getLogger(__name__)

CANVAS_SIZE = 28


class Scratchpad:
    """Grayscale canvas a digit is drawn on, one pixel at a time."""

    def __init__(self, size: int = CANVAS_SIZE) -> None:
        self.size = int(size)
        self.pixels = np.zeros((self.size, self.size), dtype=np.uint8)

    def scan(self, i: int, j: int, value: float) -> None:
        """Darken pixel (i, j) to ``value``; pixels never get lighter until reset."""

        if not (0 <= i < self.size and 0 <= j < self.size):
            raise IndexError(f"Pixel ({i}, {j}) outside the {self.size}x{self.size} canvas")
        value = int(np.clip(value, 0, 255))
        if value > self.pixels[i, j]:
            self.pixels[i, j] = value

    def reset(self) -> None:
        self.pixels.fill(0)

    def as_input(self, dtype: np.dtype | type = DEFAULT_DTYPE) -> Matrix:
        return encode_image(self.pixels.ravel(), dtype=dtype)


class DigitScanner:
    """Create, train, test, save and load a network; guess drawn digits."""

    def __init__(
        self,
        layers: Sequence[int] | None = None,
        *,
        max_threads: int = 1,
        dtype: np.dtype | type = DEFAULT_DTYPE,
        seed: int | None = None,
    ) -> None:
        self.max_threads = int(max_threads)
        self.dtype = np.dtype(dtype)
        self.seed = seed
        self.network: FNN | None = None
        self.scratchpad = Scratchpad()
        if layers is not None:
            self.set_layers(layers)

    def _require_network(self) -> FNN:
        if self.network is None:
            raise RuntimeError("No network: call set_layers() or load() first")
        return self.network

    def set_layers(self, layers: Sequence[int]) -> FNN:
        self.close()
        self.network = FNN(layers, dtype=self.dtype, seed=self.seed, max_threads=self.max_threads)
        logger.info("Created network %s", self.network.layers)
        return self.network

    def load(self, path: str | Path) -> FNN:
        network = load_network(path, dtype=self.dtype, max_threads=self.max_threads)
        self.close()
        self.network = network
        return network

    def save(self, path: str | Path) -> Path:
        return save_network(self._require_network(), path)

    def train(
        self,
        mnist_dir: str | Path,
        config: TrainingConfig,
        *,
        callbacks: Sequence[object] = (),
        monitor: bool = False,
    ) -> TrainingReport:
        """Train on ``config.nb_images`` training records after skipping ``config.nb_images_to_skip``."""

        network = self._require_network()
        mnist_dir = Path(mnist_dir)
        inputs, targets, _ = load_samples(
            mnist_dir / TRAIN_IMAGES,
            mnist_dir / TRAIN_LABELS,
            config.nb_images,
            config.nb_images_to_skip,
            num_classes=network.layers[-1],
            dtype=self.dtype,
        )
        trainer = Trainer(network, callbacks=callbacks)
        return trainer.train(
            inputs,
            targets,
            epochs=config.epochs,
            batch_len=config.batch_len,
            eta=config.eta,
            alpha=config.alpha,
            monitor=monitor,
        )

    def test(self, mnist_dir: str | Path, config: TestConfig) -> float:
        """Return the accuracy on a window of the test records."""

        network = self._require_network()
        mnist_dir = Path(mnist_dir)
        inputs, _, labels = load_samples(
            mnist_dir / TEST_IMAGES,
            mnist_dir / TEST_LABELS,
            config.nb_images,
            config.nb_images_to_skip,
            num_classes=max(network.layers[-1], NUM_CLASSES),
            dtype=self.dtype,
        )
        return Trainer(network).test(inputs, labels)

    # ------------------------------------------------------------------
    # Scratchpad

    def scan(self, i: int, j: int, value: float) -> None:
        self.scratchpad.scan(i, j, value)

    def reset(self) -> None:
        self.scratchpad.reset()

    def guess(self) -> Tuple[int, Matrix]:
        """Return the predicted digit for the scratchpad and the raw output."""

        network = self._require_network()
        output = network.feedforward(self.scratchpad.as_input(self.dtype))
        digit = predict_label(output)
        logger.info("Guessed %d", digit)
        return digit, output

    def close(self) -> None:
        if self.network is not None:
            self.network.close()


__all__ = ["CANVAS_SIZE", "DigitScanner", "Scratchpad"]
