"""
CSR Matrix: square sparse matrix with a one-way construction protocol.

A matrix is either built from an existing CSR triple (closed immediately)
or incrementally:

    A = SparseMatrix(3)          # state "open"
    A.set(0, 0, 4.0)             # diagonal first in every row
    A.set(0, 1, -1.0)
    A.set(1, 1, 4.0)
    A.set(2, 2, 4.0)
    A.close()                    # state "closed", pattern frozen

While open, each row is an insertion-ordered {column: value} mapping, so
repeated (i, j) overwrites the stored value instead of adding a second
entry. close() flattens the rows into row_ptr/col_ind/val. After that only
stored values can change (get_mut / A[i, j] = v).

Relaxation kernels (jacobi_step, sor_step, ssor_step) read the diagonal
as the first stored entry of each row. close() and from_csr() check this
convention unless require_diagonal=False.

Author: Carmen Esteban
"""

import numbers
import sys

import numpy as np
from scipy import sparse

from csrlab import fast as _fast
from csrlab.errors import (
    InvalidDimension, InvalidState, IndexOutOfRange, LengthMismatch,
    UnpatternedCellWrite, MissingDiagonal, InvalidPattern, InvalidDtype,
)
from csrlab.vector import Vector, dot, resolve_dtype, infer_dtype


OPEN = "open"
CLOSED = "closed"


def _first_misplaced_diagonal(row_ptr, col_ind):
    """Return the first non-empty row whose first column is not its own index."""
    rows = np.flatnonzero(np.diff(row_ptr) > 0)
    if len(rows) == 0:
        return None
    bad = rows[col_ind[row_ptr[rows]] != rows]
    return int(bad[0]) if len(bad) else None


def _is_index(i):
    return isinstance(i, numbers.Integral) and not isinstance(i, bool)


class Entry:
    """Mutable handle to one stored cell of a closed matrix."""

    __slots__ = ("row", "col", "_val", "_pos")

    def __init__(self, val, pos, row, col):
        self.row = row
        self.col = col
        self._val = val
        self._pos = pos

    @property
    def value(self):
        return self._val[self._pos]

    @value.setter
    def value(self, v):
        self._val[self._pos] = v

    def __repr__(self):
        return f"Entry(({self.row}, {self.col}), value={self.value})"


class SparseMatrix:
    """
    Square sparse matrix in compressed sparse row (CSR) form.

    Parameters
    ----------
    nrow : int
        Number of rows (and columns). Must be positive.
    dtype : str or numpy dtype
        'float64' (default), 'float32' or 'int64'.
    verbose : bool
        Print a warning for every empty row found when the pattern
        is closed. Default True.

    Examples
    --------
    >>> A = SparseMatrix(3)
    >>> for i in range(3):
    ...     A.set(i, i, 1.0)
    >>> A.close()
    >>> x = Vector.from_values([2.0, 3.0, 4.0])
    >>> y = Vector(3)
    >>> A.multiply(x, y, 1.0)
    >>> y
    Vector([2.0, 3.0, 4.0])
    """

    def __init__(self, nrow, dtype='float64', verbose=True):
        if not _is_index(nrow) or nrow <= 0:
            raise InvalidDimension(f"Row count must be a positive integer, got {nrow!r}")
        self.nrow = int(nrow)
        self.verbose = verbose
        self._np_dtype = resolve_dtype(dtype)
        self.state = OPEN

        # Pattern under construction: one {col: value} dict per row,
        # plus per-row entry counts (offsets are their cumulative sum)
        self._rows = [{} for _ in range(self.nrow)]
        self._row_counts = np.zeros(self.nrow, dtype=np.int64)
        self._nnz = 0

        self._row_ptr = np.zeros(self.nrow + 1, dtype=np.int64)
        self._col_ind = np.empty(0, dtype=np.int64)
        self._val = np.empty(0, dtype=self._np_dtype)
        self._empty_rows = []

    # ============================================================
    # Construction
    # ============================================================

    @classmethod
    def from_csr(cls, row_ptr, col_ind, val, dtype=None, verbose=True,
                 require_diagonal=True):
        """
        Build a closed matrix from an existing CSR triple.

        Parameters
        ----------
        row_ptr : array-like of int
            Row offsets, length nrow + 1, starting at 0 and non-decreasing.
        col_ind : array-like of int
            Column index of each stored entry, each in [0, nrow).
        val : array-like
            Value of each stored entry, same length as col_ind.
        dtype : str or numpy dtype, optional
            Storage dtype. If None, inferred from val.
        verbose : bool
            Print a warning for every empty row.
        require_diagonal : bool
            Check that every non-empty row stores its diagonal first.

        Returns
        -------
        SparseMatrix
            A closed matrix holding copies of the input arrays.
        """
        row_ptr = np.asarray(row_ptr)
        col_ind = np.asarray(col_ind)
        val = np.asarray(val)

        if row_ptr.ndim != 1 or len(row_ptr) < 2:
            raise InvalidDimension(
                f"row_ptr needs at least 2 offsets, got shape {row_ptr.shape}")
        nrow = len(row_ptr) - 1
        if col_ind.ndim != 1 or val.ndim != 1 or len(col_ind) != len(val):
            raise LengthMismatch(
                f"col_ind and val differ: {col_ind.shape} vs {val.shape}")
        if row_ptr[0] != 0:
            raise InvalidPattern(f"row_ptr[0] must be 0, got {row_ptr[0]}")
        if np.any(np.diff(row_ptr) < 0):
            raise InvalidPattern("row_ptr must be non-decreasing")
        if row_ptr[-1] != len(col_ind):
            raise InvalidPattern(
                f"row_ptr[{nrow}] = {row_ptr[-1]} but {len(col_ind)} entries stored")
        if len(col_ind) and (col_ind.min() < 0 or col_ind.max() >= nrow):
            raise IndexOutOfRange(f"Column indices must lie in [0, {nrow})")

        if dtype is None:
            dtype = infer_dtype(val)
        matrix = cls(nrow, dtype=dtype, verbose=verbose)
        matrix._row_ptr = row_ptr.astype(np.int64)
        matrix._col_ind = col_ind.astype(np.int64)
        matrix._val = val.astype(matrix._np_dtype)
        matrix._nnz = len(col_ind)

        if require_diagonal:
            matrix._check_diagonal_first(matrix._row_ptr, matrix._col_ind)
        matrix._freeze()
        return matrix

    @classmethod
    def from_scipy(cls, A, dtype=None, verbose=True, require_diagonal=True):
        """
        Build a closed matrix from a square scipy sparse matrix or dense array.

        Columns are sorted within each row, then each row is rotated to
        put its diagonal entry first (other entries keep their order).
        Explicitly stored zeros are kept as part of the pattern.
        """
        A_sp = A.tocsr(copy=True) if sparse.issparse(A) else sparse.csr_matrix(A)
        m, n = A_sp.shape
        if m != n:
            raise InvalidDimension(f"Matrix must be square, got {m} x {n}")
        A_sp.sort_indices()

        indptr = A_sp.indptr
        indices = A_sp.indices
        data = A_sp.data
        for i in range(m):
            beg, end = indptr[i], indptr[i + 1]
            hits = np.flatnonzero(indices[beg:end] == i)
            if len(hits) and hits[0] > 0:
                k = beg + hits[0]
                indices[beg:k + 1] = np.roll(indices[beg:k + 1], 1)
                data[beg:k + 1] = np.roll(data[beg:k + 1], 1)

        return cls.from_csr(indptr, indices, data, dtype=dtype,
                            verbose=verbose, require_diagonal=require_diagonal)

    def set(self, i, j, value):
        """
        Store ``value`` at (i, j) while the pattern is open.

        Rows are expected in ascending order, with the diagonal inserted
        first in each row. Setting the same (i, j) twice overwrites the
        value and keeps the entry's original position in the row.

        ``value`` is converted to the matrix dtype on insertion; for an
        int64 matrix a float value is truncated toward zero (2.7 -> 2).
        """
        if self.state != OPEN:
            raise InvalidState("Sparsity pattern is closed; use get_mut() to change values")
        self._check_row(i)
        if not _is_index(j) or j < 0 or j >= self.nrow:
            raise IndexOutOfRange(f"Column {j!r} out of range for {self.nrow} columns")

        row = self._rows[i]
        if j not in row:
            self._nnz += 1
            self._row_counts[i] += 1
        row[int(j)] = self._np_dtype(value)

    def _offsets(self):
        """Current row offsets; built from the per-row counts while open."""
        if self.state == OPEN:
            row_ptr = np.zeros(self.nrow + 1, dtype=np.int64)
            np.cumsum(self._row_counts, out=row_ptr[1:])
            return row_ptr
        return self._row_ptr

    def close(self, require_diagonal=True):
        """
        Freeze the sparsity pattern and build the CSR arrays.

        Empty rows are kept (row_ptr[k] == row_ptr[k + 1]) and reported
        once each when verbose is on.

        Parameters
        ----------
        require_diagonal : bool
            Check that every non-empty row stored its diagonal first.
            On failure MissingDiagonal is raised and the matrix stays open.
        """
        if self.state != OPEN:
            raise InvalidState("Sparsity pattern is already closed")

        col_ind = np.empty(self._nnz, dtype=np.int64)
        val = np.empty(self._nnz, dtype=self._np_dtype)
        pos = 0
        for row in self._rows:
            for j, v in row.items():
                col_ind[pos] = j
                val[pos] = v
                pos += 1

        row_ptr = self._offsets()
        if require_diagonal:
            self._check_diagonal_first(row_ptr, col_ind)

        self._row_ptr = row_ptr
        self._col_ind = col_ind
        self._val = val
        self._freeze()

    def _check_diagonal_first(self, row_ptr, col_ind):
        bad = _first_misplaced_diagonal(row_ptr, col_ind)
        if bad is not None:
            first = col_ind[row_ptr[bad]]
            raise MissingDiagonal(
                f"Row {bad} stores column {first} first; the diagonal entry "
                f"must be the first entry of each row")

    def _freeze(self):
        self._rows = None
        self._row_counts = None
        self.state = CLOSED
        self._empty_rows = np.flatnonzero(np.diff(self._row_ptr) == 0).tolist()
        if self.verbose and self._empty_rows:
            for k in self._empty_rows:
                print(f"  [CSR] Warning: row {k} is empty")
            sys.stdout.flush()

    # ============================================================
    # Element access
    # ============================================================

    def _check_row(self, i):
        if not _is_index(i) or i < 0 or i >= self.nrow:
            raise IndexOutOfRange(f"Row {i!r} out of range for {self.nrow} rows")

    def _find(self, i, j):
        """Storage position of the first stored (i, j), or -1."""
        beg, end = self._row_ptr[i], self._row_ptr[i + 1]
        hits = np.flatnonzero(self._col_ind[beg:end] == j)
        return int(beg + hits[0]) if len(hits) else -1

    def get(self, i, j):
        """
        Value at (i, j), or zero when (i, j) is outside the pattern.

        Only the row index is range-checked; an unknown column
        (including j >= nrow) reads as zero.
        """
        self._check_row(i)
        if self.state == OPEN:
            return self._np_dtype(self._rows[i].get(j, 0))
        pos = self._find(i, j)
        return self._val[pos] if pos >= 0 else self._np_dtype(0)

    def get_mut(self, i, j):
        """
        Writable handle to the stored cell (i, j) of a closed matrix.

        Raises UnpatternedCellWrite if (i, j) is not part of the
        sparsity pattern; the pattern is never extended after close().
        While the matrix is open this raises InvalidState; rewrite a
        value then by calling set(i, j, value) again.
        """
        if self.state != CLOSED:
            raise InvalidState("get_mut() requires a closed matrix; call close() first")
        self._check_row(i)
        pos = self._find(i, j)
        if pos < 0:
            raise UnpatternedCellWrite(
                f"Element ({i}, {j}) is not part of the sparsity pattern")
        return Entry(self._val, pos, i, j)

    def __getitem__(self, key):
        i, j = key
        return self.get(i, j)

    def __setitem__(self, key, value):
        i, j = key
        self.get_mut(i, j).value = value

    def diag(self, i):
        """First stored entry of row i (the diagonal by construction convention)."""
        self._check_row(i)
        if self.state == OPEN:
            row = self._rows[i]
            if not row:
                raise MissingDiagonal(f"Row {i} is empty")
            return next(iter(row.values()))
        beg, end = self._row_ptr[i], self._row_ptr[i + 1]
        if beg == end:
            raise MissingDiagonal(f"Row {i} is empty")
        return self._val[beg]

    # ============================================================
    # Kernels
    # ============================================================

    def _check_closed(self, op):
        if self.state != CLOSED:
            raise InvalidState(f"{op}() requires a closed matrix; call close() first")

    def multiply(self, x, y, scalar=1):
        """
        Compute y = scalar * (A @ x).

        Parameters
        ----------
        x : Vector
            Input, length nrow. Not modified.
        y : Vector
            Output, length nrow. Fully overwritten.
        scalar : number
            Scale factor applied after the product.
        """
        self._check_closed('multiply')
        if len(x) != self.nrow or len(y) != self.nrow:
            raise LengthMismatch(
                f"multiply() needs vectors of length {self.nrow}, "
                f"got x={len(x)}, y={len(y)}")
        out = np.empty(self.nrow, dtype=np.result_type(self._val.dtype, x.dtype))
        _fast.csr_matvec(self._row_ptr, self._col_ind, self._val, x.data, out)
        y.data[:] = scalar * out

    def _check_relax(self, op, x, rhs):
        self._check_closed(op)
        if len(x) != self.nrow or len(rhs) != self.nrow:
            raise LengthMismatch(
                f"{op}() needs vectors of length {self.nrow}, "
                f"got x={len(x)}, rhs={len(rhs)}")
        if not np.issubdtype(x.dtype, np.floating):
            raise InvalidDtype(f"{op}() needs a floating-point x, got {x.dtype}")
        if self._empty_rows:
            raise MissingDiagonal(
                f"Row {self._empty_rows[0]} is empty; relaxation needs a "
                f"diagonal entry in every row")

    def _relax_operands(self, x, rhs):
        # Kernels run in x's precision
        val = self._val if self._val.dtype == x.dtype else self._val.astype(x.dtype)
        return val, rhs.data.astype(x.dtype, copy=False)

    def jacobi_step(self, x, rhs):
        """
        One Jacobi iteration, updating x in place.

        r = rhs - A @ x, then x[i] += r[i] / diag(i) for every row.

        Returns
        -------
        float
            Euclidean norm of the residual before the update.
        """
        self._check_relax('jacobi_step', x, rhs)
        r = Vector(self.nrow, dtype=x.dtype)
        self.multiply(x, r, -1)  # r = -A*x
        r += rhs
        _fast.jacobi_update(self._row_ptr, self._val, x.data, r.data)
        return float(np.sqrt(dot(r, r)))

    def sor_step(self, x, rhs, omega):
        """
        One ascending SOR sweep, updating x in place.

        Each row uses the values of x already updated in this sweep.
        With omega = 1 this is a Gauss-Seidel sweep.

        Returns
        -------
        float
            sqrt of the sum of squared row residuals seen during the sweep.
        """
        self._check_relax('sor_step', x, rhs)
        val, b = self._relax_operands(x, rhs)
        res = _fast.relax_sweep(self._row_ptr, self._col_ind, val, x.data, b,
                                x.dtype.type(omega), False)
        return float(np.sqrt(res))

    def ssor_step(self, x, rhs, omega):
        """
        One symmetric SOR step: a forward sweep then a backward sweep.

        Returns
        -------
        float
            Residual norm accumulated during the backward sweep.
        """
        self._check_relax('ssor_step', x, rhs)
        val, b = self._relax_operands(x, rhs)
        omg = x.dtype.type(omega)
        _fast.relax_sweep(self._row_ptr, self._col_ind, val, x.data, b, omg, False)
        res = _fast.relax_sweep(self._row_ptr, self._col_ind, val, x.data, b, omg, True)
        return float(np.sqrt(res))

    # ============================================================
    # Inspection and conversion
    # ============================================================

    @property
    def shape(self):
        return (self.nrow, self.nrow)

    @property
    def nnz(self):
        return self._nnz

    @property
    def dtype(self):
        return np.dtype(self._np_dtype)

    @property
    def is_closed(self):
        return self.state == CLOSED

    @property
    def row_ptr(self):
        """Row offsets. While open, cumulative counts of the rows set so far."""
        return self._readonly(self._offsets())

    @property
    def col_ind(self):
        self._check_closed('col_ind')
        return self._readonly(self._col_ind)

    @property
    def val(self):
        self._check_closed('val')
        return self._readonly(self._val)

    @staticmethod
    def _readonly(arr):
        view = arr.view()
        view.flags.writeable = False
        return view

    def info(self):
        """
        Summarize structure and memory use.

        Returns
        -------
        dict
            shape, nnz, density, empty_rows, state, ram_bytes,
            dense_would_be_bytes, compression.
        """
        n = self.nrow
        itemsize = np.dtype(self._np_dtype).itemsize
        row_ptr = self._offsets()
        ram = row_ptr.nbytes + self._nnz * (8 + itemsize)
        dense = n * n * itemsize
        return {
            "shape": (n, n),
            "nnz": self._nnz,
            "density": round(self._nnz / (n * n), 6),
            "empty_rows": np.flatnonzero(np.diff(row_ptr) == 0).tolist(),
            "state": self.state,
            "ram_bytes": ram,
            "dense_would_be_bytes": dense,
            "compression": round(dense / max(ram, 1), 1),
        }

    def to_scipy(self):
        """Copy into a scipy.sparse.csr_matrix."""
        self._check_closed('to_scipy')
        return sparse.csr_matrix(
            (self._val.copy(), self._col_ind.copy(), self._row_ptr.copy()),
            shape=self.shape,
        )

    def to_dense(self):
        """Dense numpy array; a repeated (i, j) reads as its first stored value, like get()."""
        self._check_closed('to_dense')
        out = np.zeros(self.shape, dtype=self._np_dtype)
        rows = np.repeat(np.arange(self.nrow), np.diff(self._row_ptr))
        for d in range(self._nnz - 1, -1, -1):
            out[rows[d], self._col_ind[d]] = self._val[d]
        return out

    def __repr__(self):
        return (f"SparseMatrix(nrow={self.nrow:,}, "
                f"nnz={self._nnz:,}, "
                f"dtype={np.dtype(self._np_dtype).name}, "
                f"state={self.state})")
