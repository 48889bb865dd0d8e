"""Training and evaluation driver."""

from .losses import cross_entropy, mean_cross_entropy
from .metrics import accuracy, predict_label
from .trainer import TestConfig, Trainer, TrainingConfig, load_samples, make_batches

__all__ = [
    "TestConfig",
    "Trainer",
    "TrainingConfig",
    "accuracy",
    "cross_entropy",
    "load_samples",
    "make_batches",
    "mean_cross_entropy",
    "predict_label",
]
