"""
Tests for parallel_sn.solvers module.
"""
import numpy as np
import pytest
from scipy.sparse import csr_matrix, diags

from parallel_sn.errors import ConfigurationError, SolverFailure
from parallel_sn.solvers import DirectSolver, KrylovSolver, make_linear_solver


def _laplacian(n):
    return diags([-1.0, 2.5, -1.0], [-1, 0, 1], shape=(n, n)).tocsr()


def _advection(n):
    return diags([-1.0, 3.0, -0.5], [-1, 0, 1], shape=(n, n)).tocsr()


class TestDirectSolver:
    def test_solves_system(self, rng):
        A = _advection(20)
        b = rng.random(20)
        x = np.zeros(20)
        solver = DirectSolver()
        solver.initialize([A])
        solver.solve(0, A, b, x)
        np.testing.assert_allclose(A @ x, b, atol=1e-12)

    def test_factor_reused_until_initialize(self):
        A = _laplacian(5)
        solver = DirectSolver()
        solver.initialize([A])
        solver.solve(0, A, np.ones(5), np.zeros(5))
        lu = solver._factors[0]
        solver.solve(0, A, np.ones(5), np.zeros(5))
        assert solver._factors[0] is lu
        solver.initialize([A])
        assert solver._factors == {}

    def test_singular_matrix_raises(self):
        A = csr_matrix(np.array([[1.0, 2.0], [2.0, 4.0]]))
        solver = DirectSolver()
        solver.initialize([A])
        with pytest.raises(SolverFailure) as exc_info:
            solver.solve(0, A, np.ones(2), np.zeros(2))
        assert exc_info.value.component == 0


class TestKrylovSolver:
    @pytest.mark.parametrize("method,preconditioner", [
        ('gmres', 'ilu'), ('gmres', 'jacobi'), ('bicgstab', 'ilu'), ('cg', 'none'),
    ])
    def test_solves_system(self, method, preconditioner, rng):
        A = _laplacian(30)
        b = rng.random(30)
        x = np.zeros(30)
        solver = KrylovSolver(method, preconditioner, rtol=1e-12, maxiter=500)
        solver.initialize([A])
        solver.solve(0, A, b, x)
        np.testing.assert_allclose(A @ x, b, atol=1e-9)

    def test_zero_rhs_gives_zero(self):
        A = _laplacian(4)
        solver = KrylovSolver()
        solver.initialize([A])
        x = np.ones(4)
        solver.solve(0, A, np.zeros(4), x)
        np.testing.assert_array_equal(x, 0.0)

    def test_iteration_cap_raises(self, rng):
        A = _advection(200)
        solver = KrylovSolver('bicgstab', None, rtol=1e-14, maxiter=1)
        solver.initialize([A])
        with pytest.raises(SolverFailure):
            solver.solve(0, A, rng.random(200), np.zeros(200))

    def test_unknown_preconditioner_raises(self):
        with pytest.raises(ConfigurationError):
            KrylovSolver('gmres', 'amg')


class TestFactory:
    def test_names(self):
        assert isinstance(make_linear_solver('direct'), DirectSolver)
        assert make_linear_solver('GMRES').method == 'gmres'

    def test_unknown_raises(self):
        with pytest.raises(ConfigurationError):
            make_linear_solver('minres')
