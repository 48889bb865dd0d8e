"""Dense 2-D matrix with explicit ownership and in-place arithmetic.

A :class:`Matrix` either *owns* its storage (created directly, through
:meth:`Matrix.clone` or :meth:`Matrix.from_array`) or is a *view* over the
storage of another matrix (created through :meth:`Matrix.view`).  Views are
used to hand out weight and bias references without copying; writes through
a view are visible in the source.  A view is only valid while the source keeps
the same storage: operations that change the source's shape (matrix product,
transpose) or :meth:`free` leave existing views pointing at the old buffer.

Every binary operation checks operand shapes and raises :class:`ShapeError`
on mismatch rather than broadcasting.
"""

from __future__ import annotations

from numbers import Real
from typing import Iterator, Tuple

import numpy as np

from .activations import sigmoid as _sigmoid
from .types import Array

DEFAULT_DTYPE = np.float64


class ShapeError(ValueError):
    """Raised when operand shapes are incompatible for an operation."""


class Matrix:
    """I×J dense matrix of floating point values."""

    __slots__ = ("_data", "_owns_data")

    def __init__(
        self,
        I: int,
        J: int,
        fill: float | None = None,
        dtype: np.dtype | type = DEFAULT_DTYPE,
    ) -> None:
        if int(I) <= 0 or int(J) <= 0:
            raise ValueError(f"Matrix dimensions must be positive, got {I}x{J}")
        dtype = np.dtype(dtype)
        if dtype.kind != "f":
            raise TypeError(f"Matrix requires a floating point dtype, got {dtype}")
        if fill is None:
            self._data: Array | None = np.zeros((int(I), int(J)), dtype=dtype)
        else:
            self._data = np.full((int(I), int(J)), fill, dtype=dtype)
        self._owns_data = True

    # ------------------------------------------------------------------
    # Construction

    @classmethod
    def _wrap(cls, data: Array, *, owns_data: bool) -> "Matrix":
        matrix = cls.__new__(cls)
        matrix._data = data
        matrix._owns_data = owns_data
        return matrix

    @classmethod
    def from_array(cls, array: Array, dtype: np.dtype | type | None = None) -> "Matrix":
        """Return an owning matrix holding a copy of ``array``.

        One dimensional input becomes a column vector.
        """

        data = np.array(array, dtype=dtype if dtype is not None else DEFAULT_DTYPE, copy=True)
        if data.ndim == 1:
            data = data.reshape(-1, 1)
        if data.ndim != 2 or data.size == 0:
            raise ShapeError(f"Matrix data must be a non-empty 2-D array, got shape {data.shape}")
        if data.dtype.kind != "f":
            raise TypeError(f"Matrix requires a floating point dtype, got {data.dtype}")
        return cls._wrap(np.ascontiguousarray(data), owns_data=True)

    def clone(self) -> "Matrix":
        """Return a deep copy owning new storage."""

        return Matrix._wrap(self._storage().copy(), owns_data=True)

    def view(self) -> "Matrix":
        """Return a non-owning matrix sharing this matrix's storage."""

        return Matrix._wrap(self._storage(), owns_data=False)

    def free(self) -> None:
        """Release the storage.

        Freeing a view only detaches the view; the source is unaffected.
        """

        self._data = None

    # ------------------------------------------------------------------
    # Introspection

    def _storage(self) -> Array:
        if self._data is None:
            raise ValueError("Matrix has been freed")
        return self._data

    @property
    def I(self) -> int:  # noqa: E743 - row count, mirrors the maths notation
        return int(self._storage().shape[0])

    @property
    def J(self) -> int:
        return int(self._storage().shape[1])

    @property
    def shape(self) -> Tuple[int, int]:
        data = self._storage()
        return int(data.shape[0]), int(data.shape[1])

    @property
    def dtype(self) -> np.dtype:
        return self._storage().dtype

    @property
    def owns_data(self) -> bool:
        return self._owns_data

    @property
    def is_freed(self) -> bool:
        return self._data is None

    def to_array(self) -> Array:
        """Return a copy of the values as a NumPy array."""

        return self._storage().copy()

    def __array__(self, dtype=None, copy=None) -> Array:
        """Copy unless ``copy=False``, which shares the storage or raises."""

        data = self._storage()
        if dtype is not None and np.dtype(dtype) != data.dtype:
            if copy is False:
                raise ValueError(f"Cannot convert {data.dtype} matrix to {dtype} without a copy")
            return data.astype(dtype)
        return data if copy is False else data.copy()

    def __iter__(self) -> Iterator[float]:
        return iter(self._storage().ravel().tolist())

    def __len__(self) -> int:
        return int(self._storage().size)

    def __repr__(self) -> str:
        if self._data is None:
            return "Matrix(<freed>)"
        kind = "owned" if self._owns_data else "view"
        return f"Matrix({self.I}x{self.J}, {self.dtype}, {kind})"

    # ------------------------------------------------------------------
    # Element access

    def _check_index(self, key: Tuple[int, int]) -> Tuple[int, int]:
        try:
            i, j = key
        except (TypeError, ValueError):
            raise IndexError("Matrix indices must be an (row, col) pair") from None
        I, J = self.shape
        if not (0 <= i < I and 0 <= j < J):
            raise IndexError(f"Index ({i}, {j}) out of range for {I}x{J} matrix")
        return int(i), int(j)

    def __getitem__(self, key: Tuple[int, int]) -> float:
        i, j = self._check_index(key)
        return float(self._storage()[i, j])

    def __setitem__(self, key: Tuple[int, int], value: float) -> None:
        i, j = self._check_index(key)
        self._storage()[i, j] = value

    # ------------------------------------------------------------------
    # In-place arithmetic

    def _require_same_shape(self, other: "Matrix", op: str) -> Array:
        if not isinstance(other, Matrix):
            raise TypeError(f"{op} expects a Matrix operand, got {type(other).__name__}")
        if self.shape != other.shape:
            raise ShapeError(f"{op}: shape {self.shape} incompatible with {other.shape}")
        return other._storage()

    def __iadd__(self, other: "Matrix") -> "Matrix":
        rhs = self._require_same_shape(other, "add")
        self._storage().__iadd__(rhs)
        return self

    def __isub__(self, other: "Matrix") -> "Matrix":
        rhs = self._require_same_shape(other, "subtract")
        self._storage().__isub__(rhs)
        return self

    def __imul__(self, other: "Matrix | float") -> "Matrix":
        """Scale by a scalar, or replace with the matrix product ``self · other``."""

        if isinstance(other, Matrix):
            self._data = self._product(other)
            return self
        if isinstance(other, (Real, np.floating, np.integer)):
            self._storage().__imul__(other)
            return self
        return NotImplemented

    def hadamard(self, other: "Matrix") -> "Matrix":
        """Elementwise product, in place."""

        rhs = self._require_same_shape(other, "hadamard")
        self._storage().__imul__(rhs)
        return self

    def self_transpose(self) -> "Matrix":
        """Transpose in place; the shape becomes J×I."""

        self._data = np.ascontiguousarray(self._storage().T)
        return self

    def sigmoid(self) -> "Matrix":
        """Apply the logistic function elementwise, in place."""

        data = self._storage()
        _sigmoid(data, out=data)
        return self

    def fill(self, value: float) -> "Matrix":
        self._storage().fill(value)
        return self

    def assign(self, values: Array) -> "Matrix":
        """Copy ``values`` into the existing storage; shapes must match."""

        data = self._storage()
        values = np.asarray(values)
        if values.ndim == 1 and data.shape[1] == 1:
            values = values.reshape(-1, 1)
        if values.shape != data.shape:
            raise ShapeError(f"assign: shape {data.shape} incompatible with {values.shape}")
        np.copyto(data, values, casting="same_kind")
        return self

    # ------------------------------------------------------------------
    # Non-mutating helpers

    def _product(self, other: "Matrix") -> Array:
        if self.J != other.I:
            raise ShapeError(
                f"product: left is {self.I}x{self.J} but right is {other.I}x{other.J}"
            )
        return self._storage() @ other._storage()

    def __matmul__(self, other: "Matrix") -> "Matrix":
        if not isinstance(other, Matrix):
            return NotImplemented
        return Matrix._wrap(self._product(other), owns_data=True)

    def transpose(self) -> "Matrix":
        return Matrix._wrap(np.ascontiguousarray(self._storage().T), owns_data=True)

    def argmax(self) -> int:
        """Return the row index of the largest value of a column vector.

        Ties resolve to the lowest index.
        """

        if self.J != 1:
            raise ShapeError(f"argmax expects a column vector, got {self.I}x{self.J}")
        return int(np.argmax(self._storage()[:, 0]))

    def allclose(self, other: "Matrix", *, atol: float = 1e-12, rtol: float = 0.0) -> bool:
        if not isinstance(other, Matrix) or self.shape != other.shape:
            return False
        return bool(np.allclose(self._storage(), other._storage(), atol=atol, rtol=rtol))


__all__ = ["DEFAULT_DTYPE", "Matrix", "ShapeError"]
