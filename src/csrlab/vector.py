"""
CSR Vector: fixed-length dense vector used by the matrix kernels.

Wraps a contiguous numpy array whose length is fixed at construction.
Indexing is bounds-checked (negative indices are rejected rather than
wrapped around).

Usage:
    from csrlab import Vector, dot
    a = Vector.from_values([1, 2, 3])
    b = Vector.from_values([4, 5, 6])
    dot(a, b)   # 32
    a + b       # Vector([5, 7, 9])

Author: Carmen Esteban
"""

import numbers

import numpy as np

from csrlab.errors import InvalidSize, IndexOutOfRange, LengthMismatch, InvalidDtype


_DTYPES = {
    'float64': np.float64, 'd': np.float64, 'float': np.float64,
    'float32': np.float32, 'f': np.float32,
    'int64': np.int64, 'int': np.int64,
}


def resolve_dtype(dtype):
    """Map a dtype spec ('float64', 'f', np.float32, ...) to a numpy type."""
    if dtype is None:
        return np.float64
    if isinstance(dtype, str):
        if dtype not in _DTYPES:
            raise ValueError(f"Unsupported dtype '{dtype}'")
        return _DTYPES[dtype]
    np_dtype = np.dtype(dtype).type
    if np_dtype not in (np.float64, np.float32, np.int64):
        raise ValueError(f"Unsupported dtype {np.dtype(dtype).name}")
    return np_dtype


def infer_dtype(arr):
    """int input maps to int64, float32 stays float32, anything else is float64."""
    if np.issubdtype(arr.dtype, np.integer) or arr.dtype == np.bool_:
        return np.int64
    if arr.dtype == np.float32:
        return np.float32
    return np.float64


class Vector:
    """
    Dense vector of fixed length.

    Parameters
    ----------
    size : int
        Number of elements, must be positive. Elements start at zero.
    dtype : str or numpy dtype
        'float64' (default), 'float32' or 'int64'.
    """

    def __init__(self, size, dtype='float64'):
        if isinstance(size, bool) or not isinstance(size, numbers.Integral):
            raise InvalidSize(f"Vector size must be an integer, got {size!r}")
        if size <= 0:
            raise InvalidSize(f"Vector size must be positive, got {size}")
        self._data = np.zeros(int(size), dtype=resolve_dtype(dtype))

    @classmethod
    def from_values(cls, values, dtype=None):
        """Build a vector holding a copy of ``values``.

        If dtype is None, int input stays int64 and anything else
        becomes float64 (float32 arrays keep float32).
        """
        arr = np.asarray(values)
        if arr.ndim != 1:
            raise InvalidSize(f"Expected a 1-D sequence, got shape {arr.shape}")
        if dtype is None:
            dtype = infer_dtype(arr)
        vec = cls(len(arr), dtype=dtype)
        vec._data[:] = arr
        return vec

    def _check_index(self, i):
        if isinstance(i, bool) or not isinstance(i, numbers.Integral):
            raise IndexOutOfRange(f"Vector index must be an integer, got {i!r}")
        if i < 0 or i >= len(self._data):
            raise IndexOutOfRange(
                f"Index {i} out of range for vector of length {len(self._data)}")

    def get(self, i):
        self._check_index(i)
        return self._data[i]

    def set(self, i, value):
        self._check_index(i)
        self._data[i] = value

    __getitem__ = get
    __setitem__ = set

    def _check_same_length(self, other):
        if len(other) != len(self):
            raise LengthMismatch(
                f"Vector lengths differ: {len(self)} vs {len(other)}")

    def __add__(self, other):
        self._check_same_length(other)
        return Vector.from_values(self._data + other._data)

    def __iadd__(self, other):
        """In-place sum; the dtype is fixed, so float into int is rejected (use +)."""
        self._check_same_length(other)
        if not np.can_cast(other.dtype, self.dtype, casting='same_kind'):
            raise InvalidDtype(
                f"Cannot add {other.dtype} into a {self.dtype} vector in place")
        self._data += other._data
        return self

    def dot(self, other):
        """Sum of element-wise products."""
        self._check_same_length(other)
        return np.dot(self._data, other._data)

    def norm(self):
        """Euclidean norm."""
        return float(np.sqrt(self.dot(self)))

    def fill(self, value):
        self._data.fill(value)

    def copy(self):
        return Vector.from_values(self._data, dtype=self._data.dtype)

    @property
    def data(self):
        """The underlying numpy array (writes go through to the vector)."""
        return self._data

    @property
    def dtype(self):
        return self._data.dtype

    def __len__(self):
        return len(self._data)

    def __iter__(self):
        return iter(self._data.tolist())

    def __repr__(self):
        return f"Vector({self._data.tolist()})"


def dot(a, b):
    """
    Inner product of two vectors of equal length.

    Parameters
    ----------
    a, b : Vector

    Returns
    -------
    scalar
        sum(a[i] * b[i]).
    """
    return a.dot(b)
