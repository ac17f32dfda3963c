"""
Per-component linear solvers.

The Equation hands its assembled matrices to ``initialize`` after every
bilinear assembly and then calls ``solve(component, A, b, x)`` for each
component of a group; ``x`` is both the initial guess and the output.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np
from scipy.sparse import diags
from scipy.sparse.linalg import LinearOperator, bicgstab, cg, gmres, spilu, splu

from .constants import (
    LINEAR_SOLVER_RTOL, LINEAR_SOLVER_MAXITER,
)
from .errors import ConfigurationError, SolverFailure


class LinearSolver(ABC):
    """Solves A_k x_k = b_k for the components of an Equation."""

    name = 'base'

    @abstractmethod
    def initialize(self, matrices: List):
        """Receive freshly assembled matrices; drop anything derived from older ones."""
        pass

    @abstractmethod
    def solve(self, component: int, A, b: np.ndarray, x: np.ndarray) -> np.ndarray:
        pass


class DirectSolver(LinearSolver):
    """Sparse LU; each component is factorized on first use and reused."""

    name = 'direct'

    def __init__(self):
        self._factors = {}

    def initialize(self, matrices):
        self._factors = {}

    def solve(self, component, A, b, x):
        lu = self._factors.get(component)
        if lu is None:
            try:
                lu = splu(A.tocsc())
            except RuntimeError as exc:
                raise SolverFailure(component, -1, f"LU factorization failed for "
                                                   f"component {component}: {exc}") from exc
            self._factors[component] = lu
        x[:] = lu.solve(b)
        if not np.all(np.isfinite(x)):
            raise SolverFailure(component, -1)
        return x


_KRYLOV_METHODS = {
    'gmres': gmres,
    'bicgstab': bicgstab,
    'cg': cg,
}

PRECONDITIONERS = ('ilu', 'jacobi', 'none')


class KrylovSolver(LinearSolver):
    """Preconditioned Krylov iteration (GMRES, BiCGSTAB or CG).

    Args:
        method: 'gmres', 'bicgstab' or 'cg' (CG only for symmetric forms, e.g. EP)
        preconditioner: 'ilu', 'jacobi' or None; built per component in initialize()
        rtol: relative residual tolerance
        maxiter: iteration cap per solve
    """

    def __init__(self, method: str = 'gmres', preconditioner: Optional[str] = 'ilu',
                 rtol: float = LINEAR_SOLVER_RTOL, maxiter: int = LINEAR_SOLVER_MAXITER):
        if method not in _KRYLOV_METHODS:
            raise ConfigurationError(
                f"Unknown Krylov method: {method}. Choose from: {sorted(_KRYLOV_METHODS)}"
            )
        preconditioner = 'none' if preconditioner is None else preconditioner.lower()
        if preconditioner not in PRECONDITIONERS:
            raise ConfigurationError(
                f"Unknown preconditioner: {preconditioner}. Choose from: {PRECONDITIONERS}"
            )
        self.name = method
        self.method = method
        self.preconditioner = preconditioner
        self.rtol = rtol
        self.maxiter = maxiter
        self._preconditioners = []

    def initialize(self, matrices):
        self._preconditioners = [self._build_preconditioner(A) for A in matrices]

    def _build_preconditioner(self, A):
        if self.preconditioner == 'none':
            return None
        if self.preconditioner == 'jacobi':
            diagonal = A.diagonal()
            diagonal = np.where(diagonal != 0.0, diagonal, 1.0)
            return diags(1.0 / diagonal)
        ilu = spilu(A.tocsc())
        return LinearOperator(A.shape, matvec=ilu.solve)

    def solve(self, component, A, b, x):
        if not np.any(b):
            x[:] = 0.0
            return x
        M = self._preconditioners[component] if self._preconditioners else None
        solution, info = _KRYLOV_METHODS[self.method](
            A, b, x0=x, rtol=self.rtol, atol=0.0, maxiter=self.maxiter, M=M,
        )
        if info != 0:
            raise SolverFailure(component, info)
        x[:] = solution
        return x


def make_linear_solver(name: str = 'direct', preconditioner: Optional[str] = 'ilu',
                       rtol: float = LINEAR_SOLVER_RTOL,
                       maxiter: int = LINEAR_SOLVER_MAXITER) -> LinearSolver:
    """Build a linear solver by name: 'direct', 'gmres', 'bicgstab' or 'cg'."""
    name = name.lower()
    if name == 'direct':
        return DirectSolver()
    if name in _KRYLOV_METHODS:
        return KrylovSolver(name, preconditioner, rtol, maxiter)
    raise ConfigurationError(
        f"Unknown linear solver: {name}. Choose from: direct, {', '.join(sorted(_KRYLOV_METHODS))}"
    )
