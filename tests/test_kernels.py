"""Tests for multiply and the Jacobi / SOR / SSOR relaxation kernels."""
import numpy as np
from scipy import sparse
import pytest

from csrlab import SparseMatrix, Vector, fast
from csrlab.errors import InvalidState, LengthMismatch, MissingDiagonal


def build_identity(n):
    A = SparseMatrix(n)
    for i in range(n):
        A.set(i, i, 1.0)
    A.close()
    return A


def build_2x2():
    """[[2, 1], [1, 2]], diagonal inserted first in every row."""
    A = SparseMatrix(2)
    A.set(0, 0, 2.0)
    A.set(0, 1, 1.0)
    A.set(1, 1, 2.0)
    A.set(1, 0, 1.0)
    A.close()
    return A


def diagonally_dominant(n, seed=0):
    """Random sparse matrix with a strongly dominant diagonal."""
    rng = np.random.default_rng(seed)
    S = sparse.random(n, n, density=0.2, format="csr", random_state=rng)
    S.setdiag(0.0)
    S.eliminate_zeros()
    row_sums = np.asarray(abs(S).sum(axis=1)).ravel()
    S = S + sparse.diags(row_sums + 1.0)
    return S.tocsr()


def run_to_convergence(step, x, tol=1e-9, max_iter=2000):
    for it in range(max_iter):
        if step(x) < tol:
            return it
    raise AssertionError("did not converge")


# ============================================================
# multiply
# ============================================================

class TestMultiply:

    def test_identity(self):
        A = build_identity(3)
        x = Vector.from_values([2.0, 3.0, 4.0])
        y = Vector(3)
        A.multiply(x, y, 1.0)
        assert list(y) == [2.0, 3.0, 4.0]
        assert list(x) == [2.0, 3.0, 4.0]

    def test_scalar_and_overwrite(self):
        A = build_2x2()
        x = Vector.from_values([1.0, 1.0])
        y = Vector.from_values([100.0, 100.0])
        A.multiply(x, y, -2.0)
        assert list(y) == [-6.0, -6.0]

    def test_default_scalar(self):
        A = build_2x2()
        x = Vector.from_values([1.0, 2.0])
        y = Vector(2)
        A.multiply(x, y)
        assert list(y) == [4.0, 5.0]

    def test_matches_scipy(self):
        S = diagonally_dominant(30)
        A = SparseMatrix.from_scipy(S)
        xs = np.linspace(-1.0, 1.0, 30)
        x = Vector.from_values(xs)
        y = Vector(30)
        A.multiply(x, y, 0.5)
        assert np.allclose(y.data, 0.5 * (S @ xs))

    def test_integer_matrix(self):
        A = SparseMatrix.from_csr([0, 2, 3], [0, 1, 1], [2, 1, 3])
        x = Vector.from_values([1, 2])
        y = Vector(2, dtype='int64')
        A.multiply(x, y, 1)
        assert list(y) == [4, 6]

    def test_empty_row_gives_zero(self):
        A = SparseMatrix(3, verbose=False)
        A.set(0, 0, 1.0)
        A.set(2, 2, 1.0)
        A.close()
        y = Vector.from_values([9.0, 9.0, 9.0])
        A.multiply(Vector.from_values([1.0, 1.0, 1.0]), y)
        assert list(y) == [1.0, 0.0, 1.0]

    def test_length_mismatch_leaves_output(self):
        A = build_identity(3)
        y = Vector.from_values([7.0, 7.0, 7.0])
        with pytest.raises(LengthMismatch):
            A.multiply(Vector(2), y, 1.0)
        assert list(y) == [7.0, 7.0, 7.0]

        y_short = Vector.from_values([7.0, 7.0])
        with pytest.raises(LengthMismatch):
            A.multiply(Vector(3), y_short, 1.0)
        assert list(y_short) == [7.0, 7.0]

    def test_requires_closed(self):
        A = SparseMatrix(2)
        A.set(0, 0, 1.0)
        with pytest.raises(InvalidState):
            A.multiply(Vector(2), Vector(2))

    def test_sees_values_written_after_close(self):
        A = build_identity(2)
        A[1, 1] = 3.0
        y = Vector(2)
        A.multiply(Vector.from_values([1.0, 1.0]), y)
        assert list(y) == [1.0, 3.0]


# ============================================================
# Jacobi
# ============================================================

class TestJacobi:

    def test_identity_one_step(self):
        A = build_identity(3)
        x = Vector(3)
        rhs = Vector.from_values([2.0, 3.0, 4.0])
        res = A.jacobi_step(x, rhs)
        assert list(x) == [2.0, 3.0, 4.0]
        assert res == pytest.approx(np.sqrt(29.0))
        # already solved
        assert A.jacobi_step(x, rhs) == pytest.approx(0.0)

    def test_uses_old_iterate_for_every_row(self):
        A = build_2x2()
        x = Vector(2)
        rhs = Vector.from_values([3.0, 3.0])
        res = A.jacobi_step(x, rhs)
        assert list(x) == [1.5, 1.5]
        assert res == pytest.approx(np.sqrt(18.0))

    def test_integer_rhs(self):
        A = build_identity(2)
        x = Vector(2)
        A.jacobi_step(x, Vector.from_values([1, 2]))
        assert list(x) == [1.0, 2.0]

    def test_converges(self):
        S = diagonally_dominant(25, seed=1)
        A = SparseMatrix.from_scipy(S)
        x_true = np.arange(25, dtype=float)
        rhs = Vector.from_values(S @ x_true)
        x = Vector(25)
        run_to_convergence(lambda v: A.jacobi_step(v, rhs), x)
        assert np.allclose(x.data, x_true, atol=1e-7)

    def test_zero_diagonal_is_not_finite(self):
        A = SparseMatrix.from_csr([0, 1], [0], [0.0])
        x = Vector(1)
        A.jacobi_step(x, Vector.from_values([1.0]))
        assert not np.isfinite(x[0])

    def test_integer_x_rejected(self):
        A = build_identity(2)
        with pytest.raises(TypeError):
            A.jacobi_step(Vector(2, dtype='int64'), Vector(2))

    def test_empty_row_rejected(self):
        A = SparseMatrix(2, verbose=False)
        A.set(0, 0, 1.0)
        A.close()
        x = Vector(2)
        with pytest.raises(MissingDiagonal):
            A.jacobi_step(x, Vector(2))
        assert list(x) == [0.0, 0.0]

    def test_length_mismatch(self):
        A = build_identity(3)
        x = Vector(3)
        with pytest.raises(LengthMismatch):
            A.jacobi_step(x, Vector(2))
        assert list(x) == [0.0, 0.0, 0.0]


# ============================================================
# SOR / SSOR
# ============================================================

class TestSOR:

    def test_one_sweep_by_hand(self):
        A = build_2x2()
        x = Vector(2)
        rhs = Vector.from_values([3.0, 3.0])
        res = A.sor_step(x, rhs, 1.0)
        # row 0: r = 3, x0 = 1.5; row 1: r = 3 - 1.5 = 1.5, x1 = 0.75
        assert list(x) == [1.5, 0.75]
        assert res == pytest.approx(np.sqrt(9.0 + 2.25))

    def test_relaxation_factor(self):
        A = build_2x2()
        x = Vector(2)
        rhs = Vector.from_values([3.0, 3.0])
        A.sor_step(x, rhs, 0.5)
        # row 0: x0 = 0.5 * 3 / 2 = 0.75; row 1: r = 3 - 0.75 = 2.25, x1 = 0.5625
        assert x[0] == pytest.approx(0.75)
        assert x[1] == pytest.approx(0.5625)

    def test_identity_solves_in_one_sweep(self):
        A = build_identity(3)
        x = Vector(3)
        rhs = Vector.from_values([2.0, 3.0, 4.0])
        assert A.sor_step(x, rhs, 1.0) == pytest.approx(np.sqrt(29.0))
        assert list(x) == [2.0, 3.0, 4.0]

    def test_same_fixed_point_as_jacobi(self):
        S = diagonally_dominant(20, seed=2)
        A = SparseMatrix.from_scipy(S)
        rhs = Vector.from_values(np.linspace(1.0, 2.0, 20))

        x_j = Vector(20)
        x_s = Vector(20)
        run_to_convergence(lambda v: A.jacobi_step(v, rhs), x_j)
        run_to_convergence(lambda v: A.sor_step(v, rhs, 1.0), x_s)
        assert np.allclose(x_j.data, x_s.data, atol=1e-7)
        assert np.allclose(S @ x_s.data, rhs.data, atol=1e-7)

    def test_over_relaxation_converges(self):
        S = diagonally_dominant(20, seed=3)
        A = SparseMatrix.from_scipy(S)
        x_true = np.ones(20)
        rhs = Vector.from_values(S @ x_true)
        x = Vector(20)
        run_to_convergence(lambda v: A.sor_step(v, rhs, 1.2), x)
        assert np.allclose(x.data, x_true, atol=1e-7)

    def test_float32(self):
        A = SparseMatrix.from_scipy(diagonally_dominant(10, seed=4), dtype='float32')
        x = Vector(10, dtype='float32')
        rhs = Vector.from_values(np.ones(10, dtype=np.float32))
        for _ in range(200):
            res = A.sor_step(x, rhs, 1.0)
        assert x.dtype == np.float32
        assert res < 1e-4


class TestSSOR:

    def test_one_step_by_hand(self):
        A = build_2x2()
        x = Vector(2)
        rhs = Vector.from_values([3.0, 3.0])
        res = A.ssor_step(x, rhs, 1.0)
        # forward: x = [1.5, 0.75]
        # backward row 1: r = 3 - (1.5 + 1.5) = 0
        # backward row 0: r = 3 - (3.0 + 0.75) = -0.75, x0 = 1.125
        assert list(x) == [1.125, 0.75]
        assert res == pytest.approx(0.75)

    def test_converges(self):
        S = diagonally_dominant(20, seed=5)
        A = SparseMatrix.from_scipy(S)
        x_true = np.linspace(-1.0, 1.0, 20)
        rhs = Vector.from_values(S @ x_true)
        x = Vector(20)
        run_to_convergence(lambda v: A.ssor_step(v, rhs, 1.1), x)
        assert np.allclose(x.data, x_true, atol=1e-7)

    def test_requires_closed(self):
        A = SparseMatrix(1)
        A.set(0, 0, 1.0)
        with pytest.raises(InvalidState):
            A.ssor_step(Vector(1), Vector(1), 1.0)


def test_warmup():
    fast.warmup()
    fast.warmup(np.float32)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
