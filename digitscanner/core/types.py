"""Core typing contracts for DigitScanner."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, NamedTuple

import numpy as np

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .matrix import Matrix

Array = np.ndarray


@dataclass(frozen=True)
class Batch:
    """A single mini-batch of encoded samples."""

    inputs: List["Matrix"]
    targets: List["Matrix"]

    def __len__(self) -> int:
        return len(self.inputs)


class Gradients(NamedTuple):
    """Per-layer parameter gradients, ordered from first to last layer."""

    nabla_W: List["Matrix"]
    nabla_B: List["Matrix"]

    def free(self) -> None:
        for matrix in (*self.nabla_W, *self.nabla_B):
            matrix.free()


@dataclass(frozen=True)
class ModelDescription:
    """Description of the feed-forward network architecture."""

    layer_dims: List[int]

    @property
    def parameter_count(self) -> int:
        dims = self.layer_dims
        return int(sum(dims[i + 1] * (dims[i] + 1) for i in range(len(dims) - 1)))


@dataclass
class TrainingReport:
    """Summary returned by :meth:`digitscanner.training.trainer.Trainer.train`."""

    epochs: int
    batches_per_epoch: int
    history: List[Dict[str, float]] = field(default_factory=list)

    @property
    def final(self) -> Dict[str, float]:
        return dict(self.history[-1]) if self.history else {}


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :func:`digitscanner.training.presets.run_from_config`."""

    test_accuracy: float | None
    epochs: int
    metrics_path: str = ""
    manifest_path: str = ""
    model_path: str = ""
    elapsed_seconds: float = 0.0
