"""DigitScanner public API."""

__version__ = "1.0.0"

from .core.matrix import Matrix, ShapeError  # noqa: E402
from .core.network import FNN  # noqa: E402
from .data.idx import DatasetError  # noqa: E402
from .persistence import ModelFileError, load_network, save_network  # noqa: E402
from .scanner import DigitScanner  # noqa: E402
from .training.trainer import TestConfig, Trainer, TrainingConfig  # noqa: E402

__all__ = [
    "DatasetError",
    "DigitScanner",
    "FNN",
    "Matrix",
    "ModelFileError",
    "ShapeError",
    "TestConfig",
    "Trainer",
    "TrainingConfig",
    "__version__",
    "load_network",
    "save_network",
]
