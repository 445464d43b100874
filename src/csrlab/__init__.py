"""
csrlab - Compressed Sparse Row matrices with relaxation kernels
===============================================================

Square CSR matrices built row by row (or from an existing CSR triple),
dense-vector products and one-step Jacobi / SOR / SSOR kernels for
approximately solving A x = b. Callers drive the iteration themselves.

Quick start:
    from csrlab import SparseMatrix, Vector

    A = SparseMatrix(3)
    A.set(0, 0, 4.0); A.set(0, 1, -1.0)
    A.set(1, 1, 4.0); A.set(1, 0, -1.0); A.set(1, 2, -1.0)
    A.set(2, 2, 4.0); A.set(2, 1, -1.0)
    A.close()

    b = Vector.from_values([3.0, 2.0, 3.0])
    x = Vector(3)
    while A.sor_step(x, b, omega=1.2) > 1e-10:
        pass

Author: Carmen Esteban
License: MIT
"""

__version__ = "0.1.0"
__author__ = "Carmen Esteban"

from csrlab.errors import (
    CSRError, InvalidSize, InvalidDimension, InvalidState, IndexOutOfRange,
    LengthMismatch, UnpatternedCellWrite, MissingDiagonal, InvalidPattern,
    InvalidDtype,
)
from csrlab.vector import Vector, dot
from csrlab.matrix import SparseMatrix, Entry, OPEN, CLOSED
from csrlab import fast

__all__ = [
    "SparseMatrix", "Entry", "Vector", "dot", "OPEN", "CLOSED", "fast",
    "CSRError", "InvalidSize", "InvalidDimension", "InvalidState",
    "IndexOutOfRange", "LengthMismatch", "UnpatternedCellWrite",
    "MissingDiagonal", "InvalidPattern", "InvalidDtype",
]
