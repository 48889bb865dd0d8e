"""Reader for the IDX file format used by the MNIST dataset.

Images and labels live in two parallel files.  Each starts with a big-endian
header (16 bytes for images: magic, count, rows, cols; 8 bytes for labels:
magic, count) followed by fixed-length records.
"""

from __future__ import annotations

import gzip
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Tuple

import numpy as np

logger = logging.getLogger(__name__)

IMAGE_MAGIC = 0x00000803
LABEL_MAGIC = 0x00000801
IMAGE_HEADER_LEN = 16
LABEL_HEADER_LEN = 8
LABEL_LEN = 1


class DatasetError(RuntimeError):
    """Raised when a dataset file is missing, truncated or malformed."""


@dataclass(frozen=True)
class IdxHeader:
    magic: int
    count: int
    dims: Tuple[int, ...] = ()

    @property
    def header_len(self) -> int:
        return 8 + 4 * len(self.dims)

    @property
    def record_len(self) -> int:
        size = 1
        for dim in self.dims:
            size *= dim
        return size


def _open(path: Path) -> BinaryIO:
    if not path.exists():
        raise DatasetError(f"Dataset file not found: {path}")
    if path.suffix == ".gz":
        return gzip.open(path, "rb")  # type: ignore[return-value]
    return path.open("rb")


def read_header(path: str | Path) -> IdxHeader:
    """Parse and validate the header of an IDX image or label file."""

    path = Path(path)
    with _open(path) as handle:
        head = handle.read(8)
        if len(head) < 8:
            raise DatasetError(f"{path} is too short to hold an IDX header")
        magic, count = struct.unpack(">II", head)
        if magic == LABEL_MAGIC:
            return IdxHeader(magic=magic, count=count)
        if magic == IMAGE_MAGIC:
            rest = handle.read(8)
            if len(rest) < 8:
                raise DatasetError(f"{path} has a truncated image header")
            rows, cols = struct.unpack(">II", rest)
            return IdxHeader(magic=magic, count=count, dims=(rows, cols))
    raise DatasetError(f"{path} has unknown IDX magic number 0x{magic:08x}")


class RecordReader:
    """Sequential reader of fixed-length records after a header.

    Usage::

        with RecordReader(path, IMAGE_HEADER_LEN, 784) as reader:
            reader.skip(100)
            images = reader.read(10)
    """

    def __init__(self, path: str | Path, header_len: int, record_len: int) -> None:
        if record_len <= 0:
            raise ValueError(f"record_len must be positive, got {record_len}")
        self.path = Path(path)
        self.header_len = int(header_len)
        self.record_len = int(record_len)
        self._handle: BinaryIO | None = None

    def __enter__(self) -> "RecordReader":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def open(self) -> None:
        self._handle = _open(self.path)
        header = self._handle.read(self.header_len)
        if len(header) < self.header_len:
            self.close()
            raise DatasetError(f"{self.path} is shorter than its {self.header_len}-byte header")

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def _read_exact(self, nbytes: int, what: str) -> bytes:
        if self._handle is None:
            raise RuntimeError("RecordReader is not open")
        data = self._handle.read(nbytes)
        if len(data) != nbytes:
            raise DatasetError(
                f"{self.path} is truncated: wanted {nbytes} bytes while {what}, got {len(data)}"
            )
        return data

    def skip(self, n: int) -> None:
        """Skip ``n`` records."""

        if n < 0:
            raise ValueError(f"Cannot skip a negative number of records: {n}")
        if n:
            self._read_exact(n * self.record_len, f"skipping {n} records")

    def read(self, n: int) -> np.ndarray:
        """Return the next ``n`` records as a ``(n, record_len)`` uint8 array."""

        if n < 0:
            raise ValueError(f"Cannot read a negative number of records: {n}")
        data = self._read_exact(n * self.record_len, f"reading {n} records")
        return np.frombuffer(data, dtype=np.uint8).reshape(n, self.record_len).copy()


def read_window(
    images_path: str | Path,
    labels_path: str | Path,
    count: int,
    skip: int = 0,
) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``count`` image/label records after skipping the first ``skip``.

    Either the full window is returned or :class:`DatasetError` is raised.
    """

    if count < 0 or skip < 0:
        raise ValueError(f"count and skip must be >= 0, got count={count}, skip={skip}")
    image_header = read_header(images_path)
    label_header = read_header(labels_path)
    if image_header.magic != IMAGE_MAGIC:
        raise DatasetError(f"{images_path} is not an IDX image file")
    if label_header.magic != LABEL_MAGIC:
        raise DatasetError(f"{labels_path} is not an IDX label file")
    for header, path in ((image_header, images_path), (label_header, labels_path)):
        if skip + count > header.count:
            raise DatasetError(
                f"{path} holds {header.count} records, cannot read {count} after skipping {skip}"
            )

    with RecordReader(images_path, IMAGE_HEADER_LEN, image_header.record_len) as images, \
            RecordReader(labels_path, LABEL_HEADER_LEN, LABEL_LEN) as labels:
        images.skip(skip)
        labels.skip(skip)
        pixels = images.read(count)
        targets = labels.read(count).reshape(-1)
    logger.debug("Read %d records (skipped %d) from %s", count, skip, images_path)
    return pixels, targets


def write_images(path: str | Path, images: np.ndarray) -> Path:
    """Write ``(n, rows, cols)`` uint8 images as an IDX file."""

    path = Path(path)
    images = np.asarray(images, dtype=np.uint8)
    if images.ndim != 3:
        raise ValueError(f"images must be (n, rows, cols), got shape {images.shape}")
    n, rows, cols = images.shape
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as handle:
        handle.write(struct.pack(">IIII", IMAGE_MAGIC, n, rows, cols))
        handle.write(images.tobytes())
    return path


def write_labels(path: str | Path, labels: np.ndarray) -> Path:
    """Write uint8 labels as an IDX file."""

    path = Path(path)
    labels = np.asarray(labels, dtype=np.uint8).reshape(-1)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as handle:
        handle.write(struct.pack(">II", LABEL_MAGIC, labels.size))
        handle.write(labels.tobytes())
    return path


__all__ = [
    "DatasetError",
    "IMAGE_HEADER_LEN",
    "IMAGE_MAGIC",
    "IdxHeader",
    "LABEL_HEADER_LEN",
    "LABEL_MAGIC",
    "RecordReader",
    "read_header",
    "read_window",
    "write_images",
    "write_labels",
]
