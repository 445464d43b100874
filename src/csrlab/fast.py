"""
CSR Fast: Numba JIT-compiled kernels for the row-major hot loops.

All kernels work on raw numpy arrays (row_ptr, col_ind, val) so that the
SparseMatrix wrapper can do validation in Python and hand the traversal to
compiled code.

Kernels use the numpy error model: dividing by a zero diagonal gives
inf/nan instead of raising ZeroDivisionError.

Author: Carmen Esteban
"""

import numpy as np
from numba import njit


# ============================================================
# Matrix-vector product
# ============================================================

@njit(cache=True, error_model='numpy')
def csr_matvec(row_ptr, col_ind, val, x, out):
    """Compute out = A @ x over the stored entries only.

    Parameters
    ----------
    row_ptr : 1D int64 array
        Row offsets, length nrow + 1.
    col_ind : 1D int64 array
        Column index of each stored entry.
    val : 1D array
        Value of each stored entry.
    x : 1D array
        Input vector, length nrow.
    out : 1D array
        Output vector, length nrow. Overwritten.
    """
    n = len(row_ptr) - 1
    for i in range(n):
        out[i] = 0
        for d in range(row_ptr[i], row_ptr[i + 1]):
            out[i] += val[d] * x[col_ind[d]]


# ============================================================
# Relaxation kernels
# ============================================================

@njit(cache=True, error_model='numpy')
def jacobi_update(row_ptr, val, x, r):
    """x[i] += r[i] / diag(i), where diag(i) is the first entry of row i."""
    n = len(row_ptr) - 1
    for i in range(n):
        x[i] += r[i] / val[row_ptr[i]]


@njit(cache=True, error_model='numpy')
def relax_sweep(row_ptr, col_ind, val, x, rhs, omega, reverse):
    """One in-place SOR sweep.

    Rows are visited in ascending order, or descending when ``reverse``
    is set. Each row uses the values of x already updated in this sweep.

    Returns
    -------
    float
        Sum of squared pre-update row residuals.
    """
    n = len(row_ptr) - 1
    res = 0.0
    for k in range(n):
        i = n - 1 - k if reverse else k
        r = rhs[i]
        for d in range(row_ptr[i], row_ptr[i + 1]):
            r -= val[d] * x[col_ind[d]]
        x[i] += omega * r / val[row_ptr[i]]
        res += r * r
    return res


def warmup(dtype=np.float64):
    """Trigger JIT compilation with a 1x1 system of the given dtype.

    Call this once before timing anything, to keep compilation out of
    the first real step.
    """
    row_ptr = np.array([0, 1], dtype=np.int64)
    col_ind = np.array([0], dtype=np.int64)
    val = np.ones(1, dtype=dtype)
    x = np.zeros(1, dtype=dtype)
    rhs = np.ones(1, dtype=dtype)
    out = np.zeros(1, dtype=dtype)
    csr_matvec(row_ptr, col_ind, val, x, out)
    jacobi_update(row_ptr, val, x, rhs)
    relax_sweep(row_ptr, col_ind, val, x, rhs, 1.0, False)
