"""Run configurations: built-in presets, preset files and config overrides."""

from __future__ import annotations

import json
import logging
import time
from copy import deepcopy
from pathlib import Path
from typing import Dict, Mapping

import numpy as np
import yaml

from ..core.types import RunResult
from ..data.cache import CacheManifest, default_cache_dir, fetch_mnist
from ..reporting.artifacts import write_manifest
from ..reporting.metrics import CsvSink, JsonlSink
from ..reporting.plots import PlotAdapter
from ..scanner import DigitScanner
from .trainer import TestConfig, TrainingConfig

logger = logging.getLogger(__name__)

_PRESETS: Dict[str, Mapping[str, object]] = {
    "mnist-784-30-10": {
        "model": {"layers": [784, 30, 10], "seed": 0},
        "data": {"offline": False},
        "train": {
            "nb_images": 60000,
            "nb_images_to_skip": 0,
            "epochs": 30,
            "batch_len": 10,
            "eta": 0.5,
            "alpha": 5.0,
        },
        "test": {"nb_images": 10000, "nb_images_to_skip": 0},
    },
    "mnist-784-100-10": {
        "model": {"layers": [784, 100, 10], "seed": 0},
        "data": {"offline": False},
        "train": {
            "nb_images": 60000,
            "nb_images_to_skip": 0,
            "epochs": 60,
            "batch_len": 10,
            "eta": 0.1,
            "alpha": 5.0,
        },
        "test": {"nb_images": 10000, "nb_images_to_skip": 0},
    },
    "offline-smoke": {
        "model": {"layers": [784, 16, 10], "seed": 0},
        "data": {"offline": True},
        "train": {
            "nb_images": 500,
            "nb_images_to_skip": 0,
            "epochs": 3,
            "batch_len": 10,
            "eta": 0.5,
            "alpha": 0.1,
        },
        "test": {"nb_images": 100, "nb_images_to_skip": 0},
        "run": {"run_dir": "runs/offline-smoke", "enable_plots": False},
    },
}

_PRESET_DIR = Path(__file__).resolve().parents[2] / "configs" / "presets"
_FILE_PRESETS_CACHE: Dict[str, Mapping[str, object]] | None = None

_DTYPES = {"float32": np.float32, "float64": np.float64, "longdouble": np.longdouble}


def read_config_file(path: str | Path) -> Mapping[str, object]:
    """Load a YAML or JSON mapping from ``path``."""

    path = Path(path)
    text = path.read_text()
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        data = yaml.safe_load(text) or {}
    elif suffix == ".json":
        data = json.loads(text or "{}")
    else:
        raise ValueError(f"Unsupported config file type: {path.suffix}")
    if not isinstance(data, Mapping):
        raise TypeError(f"Config {path.name} must decode to a mapping")
    return data


def _file_presets() -> Dict[str, Mapping[str, object]]:
    global _FILE_PRESETS_CACHE
    if _FILE_PRESETS_CACHE is None:
        found: Dict[str, Mapping[str, object]] = {}
        if _PRESET_DIR.exists():
            for file in sorted(_PRESET_DIR.iterdir()):
                if file.suffix.lower() not in {".yaml", ".yml", ".json"}:
                    continue
                data = read_config_file(file)
                if "model" not in data:
                    raise KeyError(f"Preset {file.name} is missing the 'model' section")
                found[file.stem] = json.loads(json.dumps(data))
        _FILE_PRESETS_CACHE = found
    return {name: deepcopy(cfg) for name, cfg in _FILE_PRESETS_CACHE.items()}


def presets() -> Mapping[str, Mapping[str, object]]:
    combined: Dict[str, Mapping[str, object]] = {}
    combined.update({name: deepcopy(cfg) for name, cfg in _PRESETS.items()})
    combined.update(_file_presets())
    return combined


def load_preset(name: str) -> Dict[str, object]:
    file_presets = _file_presets()
    if name in file_presets:
        return dict(file_presets[name])
    try:
        return deepcopy(dict(_PRESETS[name]))
    except KeyError:
        raise KeyError(f"Unknown preset: {name}") from None


def merge_config(base: Dict[str, object], override: Mapping[str, object]) -> Dict[str, object]:
    """Recursively merge ``override`` into ``base`` and return ``base``."""

    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), Mapping):
            base[key] = merge_config(dict(base[key]), value)  # type: ignore[arg-type]
        else:
            base[key] = deepcopy(value)
    return base


def _resolve_dtype(name: object) -> type:
    try:
        return _DTYPES[str(name)]
    except KeyError:
        raise ValueError(f"Unsupported dtype {name!r}; choose one of {sorted(_DTYPES)}") from None


def _resolve_mnist_dir(data_cfg: Mapping[str, object]) -> tuple[Path, Mapping[str, object]]:
    if data_cfg.get("mnist_dir"):
        directory = Path(str(data_cfg["mnist_dir"]))
        return directory, {"mode": "local", "local_path": str(directory)}
    offline = data_cfg.get("offline")
    manifest = CacheManifest(Path(str(data_cfg.get("cache_dir") or default_cache_dir())))
    directory = fetch_mnist(
        manifest.cache_dir,
        offline=None if offline is None else bool(offline),
        manifest=manifest,
    )
    return directory, dict(manifest.get("mnist") or {})


def run_from_config(config: Mapping[str, object]) -> RunResult:
    """Build or load a network, then train, test and save it as ``config`` asks."""

    model_cfg = dict(config.get("model") or {})  # type: ignore[arg-type]
    data_cfg = dict(config.get("data") or {})  # type: ignore[arg-type]
    run_cfg = dict(config.get("run") or {})  # type: ignore[arg-type]
    train_section = config.get("train")
    test_section = config.get("test")
    # An empty section still enables its phase with the default window and hyper-parameters.
    train_cfg = (
        TrainingConfig.from_mapping(train_section)  # type: ignore[arg-type]
        if train_section is not None
        else None
    )
    test_cfg = (
        TestConfig.from_mapping(test_section)  # type: ignore[arg-type]
        if test_section is not None
        else None
    )

    scanner = DigitScanner(
        max_threads=int(model_cfg.get("threads", 1)),
        dtype=_resolve_dtype(model_cfg.get("dtype", "float64")),
        seed=model_cfg.get("seed"),  # type: ignore[arg-type]
    )
    if model_cfg.get("fnnin"):
        scanner.load(str(model_cfg["fnnin"]))
    elif model_cfg.get("layers"):
        scanner.set_layers([int(n) for n in model_cfg["layers"]])  # type: ignore[union-attr]
    else:
        raise KeyError("The model section needs either 'layers' or 'fnnin'")

    run_dir = Path(str(run_cfg["run_dir"])) if run_cfg.get("run_dir") else None
    callbacks: list[object] = []
    plots: PlotAdapter | None = None
    metrics_path = ""
    if run_dir is not None:
        seed = model_cfg.get("seed")
        jsonl = JsonlSink(run_dir / "metrics.jsonl", split="train", seed=seed)  # type: ignore[arg-type]
        plots = PlotAdapter(run_dir, enable_plots=bool(run_cfg.get("enable_plots", False)))
        callbacks = [jsonl, CsvSink(run_dir / "metrics.csv", split="train"), plots]
        metrics_path = str(jsonl.path)

    provenance: Mapping[str, object] = {}
    mnist_dir: Path | None = None
    if train_cfg is not None or test_cfg is not None:
        mnist_dir, provenance = _resolve_mnist_dir(data_cfg)

    results: Dict[str, object] = {"layers": scanner.network.layers}  # type: ignore[union-attr]
    try:
        begin = time.perf_counter()
        if train_cfg is not None and mnist_dir is not None:
            report = scanner.train(
                mnist_dir, train_cfg, callbacks=callbacks, monitor=run_dir is not None
            )
            results["train"] = report.final
        accuracy: float | None = None
        if test_cfg is not None and mnist_dir is not None:
            accuracy = scanner.test(mnist_dir, test_cfg)
            results["test_accuracy"] = accuracy
        results["elapsed_seconds"] = round(time.perf_counter() - begin, 3)

        model_path = ""
        if model_cfg.get("fnnout"):
            model_path = str(scanner.save(str(model_cfg["fnnout"])))
            results["model_path"] = model_path
    finally:
        scanner.close()

    manifest_path = ""
    if run_dir is not None:
        if plots is not None:
            plots.close()
        manifest_path = write_manifest(
            run_dir / "manifest.json",
            config=json.loads(json.dumps(config, default=str)),
            dataset_provenance=provenance,
            results=results,
        )

    return RunResult(
        test_accuracy=accuracy,
        epochs=train_cfg.epochs if train_cfg is not None else 0,
        metrics_path=metrics_path,
        manifest_path=manifest_path,
        model_path=model_path,
        elapsed_seconds=float(results["elapsed_seconds"]),
    )


__all__ = ["load_preset", "merge_config", "presets", "read_config_file", "run_from_config"]
