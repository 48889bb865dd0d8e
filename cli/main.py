"""Command line entry point for DigitScanner: create, train, test and save networks."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Iterable

from digitscanner.core.matrix import ShapeError
from digitscanner.data.cache import CacheError
from digitscanner.data.idx import DatasetError
from digitscanner.persistence import ModelFileError
from digitscanner.training import presets as run_presets

_RUN_ERRORS = (
    DatasetError,
    ModelFileError,
    CacheError,
    ShapeError,
    ValueError,
    KeyError,
    RuntimeError,
    OSError,
)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    preset_names = sorted(run_presets.presets().keys())
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--preset", choices=preset_names, help="Preset configuration to start from")
    parser.add_argument("--config", type=Path, help="Optional JSON/YAML config override")
    parser.add_argument(
        "--list-presets", action="store_true", help="List available presets and exit"
    )

    model = parser.add_argument_group("network")
    model.add_argument(
        "--layers", type=int, nargs="+", help="Node counts, input layer first (e.g. 784 30 10)"
    )
    model.add_argument("--fnnin", type=Path, help="Load the network from this model file")
    model.add_argument("--fnnout", type=Path, help="Save the network to this model file")
    model.add_argument("--threads", type=int, help="Worker threads for batch gradients")
    model.add_argument("--seed", type=int, help="Seed for the random initialisation")
    model.add_argument(
        "--dtype", choices=["float32", "float64", "longdouble"], help="Floating point precision"
    )

    data = parser.add_argument_group("dataset")
    data.add_argument("--mnist", type=Path, help="Directory holding the four MNIST IDX files")
    data.add_argument(
        "--offline",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Use the synthetic offline fixture instead of downloading MNIST",
    )

    train = parser.add_argument_group("training")
    train.add_argument("--train", action="store_true", help="Train the network")
    train.add_argument("--train-imgnb", type=int, help="Number of training images")
    train.add_argument("--train-imgskip", type=int, help="Training images to skip first")
    train.add_argument("--train-epochs", type=int, help="Number of epochs")
    train.add_argument("--train-batch-len", type=int, help="Mini-batch length")
    train.add_argument("--train-eta", type=float, help="Learning rate")
    train.add_argument("--train-alpha", type=float, help="Weight decay coefficient")

    test = parser.add_argument_group("testing")
    test.add_argument("--test", action="store_true", help="Test the network")
    test.add_argument("--test-imgnb", type=int, help="Number of test images")
    test.add_argument("--test-imgskip", type=int, help="Test images to skip first")

    parser.add_argument("--run-dir", type=Path, help="Write metrics and a manifest here")
    parser.add_argument(
        "--enable-plots", action="store_true", help="Save a training curve in the run dir"
    )
    parser.add_argument("--time", action="store_true", help="Print the elapsed time")
    parser.add_argument(
        "--dump-config", type=Path, help="Dump the resolved config to a JSON file"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def _set(config: dict, section: str, key: str, value: object) -> None:
    if value is not None:
        config.setdefault(section, {})[key] = value


def build_config(args: argparse.Namespace) -> dict:
    """Resolve preset, config file and flags into one run config."""

    config: dict = run_presets.load_preset(args.preset) if args.preset else {}
    if args.config:
        config = run_presets.merge_config(config, run_presets.read_config_file(args.config))
    config = json.loads(json.dumps(config))

    if args.layers:
        _set(config, "model", "layers", list(args.layers))
    _set(config, "model", "fnnin", str(args.fnnin) if args.fnnin else None)
    _set(config, "model", "fnnout", str(args.fnnout) if args.fnnout else None)
    _set(config, "model", "threads", args.threads)
    _set(config, "model", "seed", args.seed)
    _set(config, "model", "dtype", args.dtype)

    _set(config, "data", "mnist_dir", str(args.mnist) if args.mnist else None)
    _set(config, "data", "offline", args.offline)

    # --train/--test switch a phase on; the other flags only tune enabled phases.
    if args.train:
        config.setdefault("train", {})
    if args.test:
        config.setdefault("test", {})
    if "train" in config:
        _set(config, "train", "nb_images", args.train_imgnb)
        _set(config, "train", "nb_images_to_skip", args.train_imgskip)
        _set(config, "train", "epochs", args.train_epochs)
        _set(config, "train", "batch_len", args.train_batch_len)
        _set(config, "train", "eta", args.train_eta)
        _set(config, "train", "alpha", args.train_alpha)
    if "test" in config:
        _set(config, "test", "nb_images", args.test_imgnb)
        _set(config, "test", "nb_images_to_skip", args.test_imgskip)

    _set(config, "run", "run_dir", str(args.run_dir) if args.run_dir else None)
    if args.enable_plots:
        _set(config, "run", "enable_plots", True)
    return config


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_presets:
        for name in sorted(run_presets.presets().keys()):
            print(name)
        raise SystemExit(0)

    try:
        config = build_config(args)
    except (OSError, TypeError, ValueError) as exc:
        raise SystemExit(f"error: cannot read config: {exc}") from None

    if args.dump_config:
        args.dump_config.parent.mkdir(parents=True, exist_ok=True)
        args.dump_config.write_text(json.dumps(config, indent=2))

    try:
        result = run_presets.run_from_config(config)
    except _RUN_ERRORS as exc:
        raise SystemExit(f"error: {exc}") from None

    if result.test_accuracy is not None:
        print(f"{100.0 * result.test_accuracy:.2f} %")
    if args.time:
        print(f"{result.elapsed_seconds:.3f} s")


if __name__ == "__main__":
    main()
