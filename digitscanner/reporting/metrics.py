"""Per-epoch metric sinks used as :class:`~digitscanner.training.trainer.Trainer` callbacks."""

from __future__ import annotations

import csv
import json
import time
from pathlib import Path
from typing import Dict, List, Mapping


class _EpochSink:
    """Turn ``(epoch, metrics)`` callbacks into flat records.

    Every record carries the epoch, the split, the wall time since the sink
    was created and the numeric metrics; non-numeric values are dropped.
    The target file is truncated on creation so one sink equals one run.
    """

    def __init__(self, path: str | Path, *, split: str = "train") -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self.split = split
        self.records: List[Dict[str, object]] = []
        self._started = time.perf_counter()

    def _record(self, epoch: int, metrics: Mapping[str, float]) -> Dict[str, object]:
        record: Dict[str, object] = {
            "epoch": int(epoch),
            "split": self.split,
            "elapsed": round(time.perf_counter() - self._started, 6),
        }
        for key, value in metrics.items():
            if key != "epoch" and isinstance(value, (int, float)):
                record[key] = float(value)
        return record

    def _append(self, record: Dict[str, object]) -> None:
        raise NotImplementedError

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        record = self._record(epoch, metrics)
        self.records.append(record)
        self._append(record)

    __call__ = on_epoch


class JsonlSink(_EpochSink):
    """One JSON object per epoch, tagged with the initialisation seed."""

    def __init__(self, path: str | Path, *, split: str = "train", seed: int | None = None) -> None:
        super().__init__(path, split=split)
        self.seed = seed

    def _append(self, record: Dict[str, object]) -> None:
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps({**record, "seed": self.seed}, sort_keys=True) + "\n")


class CsvSink(_EpochSink):
    """CSV table whose columns are fixed by the first epoch written."""

    def __init__(self, path: str | Path, *, split: str = "train") -> None:
        super().__init__(path, split=split)
        self._fieldnames: List[str] | None = None

    def _append(self, record: Dict[str, object]) -> None:
        if self._fieldnames is None:
            self._fieldnames = sorted(record)
        with self.path.open("a", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=self._fieldnames, extrasaction="ignore")
            if handle.tell() == 0:
                writer.writeheader()
            writer.writerow(record)


__all__ = ["CsvSink", "JsonlSink"]
