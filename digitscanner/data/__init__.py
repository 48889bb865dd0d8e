"""Dataset readers, encoders and the MNIST cache."""

from .cache import CacheError, CacheManifest, build_fixture, fetch_mnist
from .encoding import decode_label, encode_image, encode_records, one_hot
from .idx import DatasetError, RecordReader, read_header, read_window

__all__ = [
    "CacheError",
    "CacheManifest",
    "DatasetError",
    "RecordReader",
    "build_fixture",
    "decode_label",
    "encode_image",
    "encode_records",
    "fetch_mnist",
    "one_hot",
    "read_header",
    "read_window",
]
