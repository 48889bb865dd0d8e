"""Run manifest written next to the metrics of a training run."""

from __future__ import annotations

import hashlib
import json
import platform
import time
from pathlib import Path
from typing import Dict, Mapping

import numpy as np

from .. import __version__


def _model_digest(model_path: object) -> Dict[str, str]:
    if not model_path:
        return {}
    path = Path(str(model_path))
    if not path.exists():
        return {}
    return {"path": str(path), "sha256": hashlib.sha256(path.read_bytes()).hexdigest()}


def write_manifest(
    path: str | Path,
    *,
    config: Mapping[str, object],
    dataset_provenance: Mapping[str, object],
    results: Mapping[str, object] | None = None,
) -> str:
    """Record the resolved config, dataset origin, results and saved model of a run.

    ``results`` may hold a ``model_path`` entry; the model file is then
    fingerprinted so a manifest identifies exactly which parameters it
    describes.
    """

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    results = dict(results or {})
    manifest = {
        "generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "config": config,
        "dataset": dict(dataset_provenance),
        "results": results,
        "model": _model_digest(results.get("model_path")),
        "environment": {
            "digitscanner": __version__,
            "python": platform.python_version(),
            "numpy": np.__version__,
        },
    }
    path.write_text(json.dumps(manifest, indent=2, sort_keys=True, default=str))
    return str(path)


__all__ = ["write_manifest"]
