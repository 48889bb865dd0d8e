"""Offline-first cache for the MNIST IDX files."""

from __future__ import annotations

import gzip
import hashlib
import json
import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, MutableMapping

import numpy as np

from .idx import write_images, write_labels

logger = logging.getLogger(__name__)


def default_cache_dir() -> Path:
    """Cache root, honouring $DIGITSCANNER_CACHE_DIR at call time."""

    return Path(
        os.environ.get("DIGITSCANNER_CACHE_DIR") or Path.home() / ".cache" / "digitscanner"
    )


MANIFEST_NAME = "manifest.json"

TRAIN_IMAGES = "train-images.idx3-ubyte"
TRAIN_LABELS = "train-labels.idx1-ubyte"
TEST_IMAGES = "t10k-images.idx3-ubyte"
TEST_LABELS = "t10k-labels.idx1-ubyte"

# Canonical local name -> upstream archive name.
MNIST_FILES = {
    TRAIN_IMAGES: "train-images-idx3-ubyte.gz",
    TRAIN_LABELS: "train-labels-idx1-ubyte.gz",
    TEST_IMAGES: "t10k-images-idx3-ubyte.gz",
    TEST_LABELS: "t10k-labels-idx1-ubyte.gz",
}
MNIST_MIRRORS = (
    "https://ossci-datasets.s3.amazonaws.com/mnist/",
    "https://storage.googleapis.com/cvdf-datasets/mnist/",
)

FIXTURE_TRAIN_SIZE = 600
FIXTURE_TEST_SIZE = 100


class CacheError(RuntimeError):
    """Raised when dataset files cannot be fetched or built."""


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(8192), b""):
            digest.update(chunk)
    return digest.hexdigest()


@dataclass
class CacheManifest:
    """Track cached files and where they came from."""

    cache_dir: Path = field(default_factory=default_cache_dir)
    data: MutableMapping[str, Mapping[str, object]] = field(
        init=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        self.cache_dir = Path(self.cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._path = self.cache_dir / MANIFEST_NAME
        if self._path.exists():
            try:
                self.data = json.loads(self._path.read_text())
            except json.JSONDecodeError:
                logger.warning("Ignoring corrupt cache manifest %s", self._path)
                self.data = {}
        else:
            self.data = {}

    def record(self, name: str, metadata: Mapping[str, object]) -> None:
        snapshot = dict(metadata)
        snapshot.setdefault(
            "recorded_at", time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        )
        self.data[name] = snapshot
        self._path.write_text(json.dumps(self.data, indent=2, sort_keys=True))

    def get(self, name: str) -> Mapping[str, object] | None:
        return self.data.get(name)


def _fixture_split(count: int, offset: int) -> tuple[np.ndarray, np.ndarray]:
    # Built from integer sequences only so the bytes never depend on the
    # NumPy RNG implementation.
    index = np.arange(count, dtype=np.int64) + offset
    labels = (index % 10).astype(np.uint8)
    images = np.zeros((count, 28, 28), dtype=np.int64)
    texture = (np.arange(28 * 28, dtype=np.int64).reshape(28, 28) * 7) % 23
    for n, label in enumerate(labels):
        top = 2 + 2 * int(label)
        strength = 180 + (int(index[n]) * 13) % 60
        images[n, top : top + 4, 4:24] = strength
        images[n] += (texture + int(index[n])) % 23
    return np.clip(images, 0, 255).astype(np.uint8), labels


def build_fixture(directory: str | Path) -> Path:
    """Write a deterministic MNIST-shaped dataset into ``directory``.

    Each digit class is a horizontal bar at a class-specific height over a
    faint texture, which a small network learns in a few epochs.
    """

    directory = Path(directory)
    train_x, train_y = _fixture_split(FIXTURE_TRAIN_SIZE, 0)
    test_x, test_y = _fixture_split(FIXTURE_TEST_SIZE, FIXTURE_TRAIN_SIZE)
    write_images(directory / TRAIN_IMAGES, train_x)
    write_labels(directory / TRAIN_LABELS, train_y)
    write_images(directory / TEST_IMAGES, test_x)
    write_labels(directory / TEST_LABELS, test_y)
    return directory


def _has_all_files(directory: Path) -> bool:
    return all((directory / name).exists() for name in MNIST_FILES)


def _download(url: str, target: Path) -> Path:
    import urllib.request

    target.parent.mkdir(parents=True, exist_ok=True)
    partial = target.with_suffix(target.suffix + ".part")
    with urllib.request.urlopen(url) as response, gzip.GzipFile(fileobj=response) as archive:
        with partial.open("wb") as handle:
            shutil.copyfileobj(archive, handle)
    partial.replace(target)
    return target


def fetch_mnist(
    cache_dir: str | Path | None = None,
    *,
    offline: bool | None = None,
    mirrors: Iterable[str] | None = None,
    retries: int = 2,
    manifest: CacheManifest | None = None,
) -> Path:
    """Return a directory holding the four MNIST IDX files.

    In offline mode (the default unless ``DIGITSCANNER_DATA_OFFLINE=0``) a
    synthetic fixture is built; otherwise the real files are downloaded and
    decompressed into the cache.
    """

    cache_dir = Path(cache_dir or default_cache_dir())
    manifest = manifest or CacheManifest(cache_dir)
    if offline is None:
        offline = str(os.environ.get("DIGITSCANNER_DATA_OFFLINE", "1")) == "1"

    if offline:
        directory = cache_dir / "offline" / "mnist"
        if not _has_all_files(directory):
            logger.info("Building offline MNIST fixture in %s", directory)
            build_fixture(directory)
        manifest.record("mnist", _make_record(directory, source="fixture", mode="offline"))
        return directory

    directory = cache_dir / "mnist"
    if _has_all_files(directory):
        manifest.record("mnist", _make_record(directory, source="cache", mode="cache"))
        return directory

    sources = list(mirrors or MNIST_MIRRORS)
    for local_name, remote_name in MNIST_FILES.items():
        target = directory / local_name
        if target.exists():
            continue
        last_error: Exception | None = None
        for base in sources:
            for attempt in range(retries + 1):
                try:
                    logger.info("Downloading %s from %s", remote_name, base)
                    _download(base + remote_name, target)
                    break
                except OSError as exc:
                    last_error = exc
                    logger.warning("Download of %s failed (attempt %d): %s", remote_name, attempt + 1, exc)
                    if attempt < retries:
                        time.sleep(min(2**attempt, 5))
            if target.exists():
                break
        if not target.exists():
            raise CacheError(f"Failed to fetch {remote_name}: {last_error}")

    manifest.record("mnist", _make_record(directory, source=sources[0], mode="download"))
    return directory


def _make_record(directory: Path, *, source: str, mode: str) -> Mapping[str, object]:
    return {
        "name": "mnist",
        "source": source,
        "local_path": str(directory),
        "mode": mode,
        "checksums": {name: _sha256(directory / name) for name in MNIST_FILES},
    }


__all__ = [
    "CacheError",
    "CacheManifest",
    "MNIST_FILES",
    "TEST_IMAGES",
    "TEST_LABELS",
    "TRAIN_IMAGES",
    "TRAIN_LABELS",
    "build_fixture",
    "default_cache_dir",
    "fetch_mnist",
]
