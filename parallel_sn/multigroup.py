"""
In-group source iteration and Gauss-Seidel multigroup iteration.

Groups are swept fast to thermal (g = 0 .. G-1). Without upscattering a
single sweep is exact; otherwise sweeps repeat until the largest relative
change of any group moment drops below the tolerance.

Relative change of a moment:  ||phi_new - phi_old||_1 / ||phi_new||_1
"""
from dataclasses import dataclass, field
from typing import List

import numpy as np

from .constants import IG_TOL, MAX_IG_ITERATIONS, MG_TOL, MAX_MG_SWEEPS
from .errors import ConfigurationError, NonConvergence


def relative_change(new: np.ndarray, old: np.ndarray) -> float:
    """Relative L1 change; 0 when both are zero."""
    norm = float(np.sum(np.abs(new)))
    diff = float(np.sum(np.abs(new - old)))
    if norm == 0.0:
        return 0.0 if diff == 0.0 else np.inf
    return diff / norm


@dataclass
class InGroupResult:
    converged: bool
    iterations: int
    error: float


@dataclass
class MultigroupResult:
    """Outcome of one multigroup iteration."""
    converged: bool
    sweeps: int
    error: float
    ingroup_iterations: List[int] = field(default_factory=list)

    def to_dict(self):
        return {
            'converged': self.converged,
            'sweeps': self.sweeps,
            'error': float(self.error),
            'ingroup_iterations': list(self.ingroup_iterations),
        }


class InGroupIterator:
    """Source iteration on the within-group scattering (and lagged reflection).

    Args:
        tol: relative L1 change of the group moment at which iteration stops
        max_iterations: iteration cap
    """

    def __init__(self, tol: float = IG_TOL, max_iterations: int = MAX_IG_ITERATIONS,
                 verbose: bool = False):
        if tol <= 0.0 or max_iterations < 1:
            raise ConfigurationError("in-group tolerance and iteration cap must be positive")
        self.tol = tol
        self.max_iterations = max_iterations
        self.verbose = verbose

    def iterate(self, equation, sflxes: List[np.ndarray], g: int) -> InGroupResult:
        """Solve group g, updating ``sflxes[g]`` in place."""
        coupled = equation.has_in_group_coupling(g)
        error = np.inf
        for iteration in range(1, self.max_iterations + 1):
            equation.assemble_linear_form(sflxes, g)
            equation.solve_in_group(g)
            new = equation.updated_moment(g)
            error = relative_change(new, sflxes[g])
            sflxes[g] = new
            if not coupled or error <= self.tol:
                return InGroupResult(True, iteration, error)

        if self.verbose:
            equation.backend.log(
                f"    group {g}: in-group iteration stopped after "
                f"{self.max_iterations} iterations (err={error:.3e})"
            )
        return InGroupResult(False, self.max_iterations, error)


class MultigroupIterator:
    """Gauss-Seidel sweeps over energy groups.

    Args:
        ingroup: InGroupIterator for each group solve
        tol: largest relative moment change per sweep at which iteration stops
        max_sweeps: sweep cap
        raise_on_failure: raise NonConvergence instead of returning
            converged=False
    """

    def __init__(self, ingroup: InGroupIterator = None, tol: float = MG_TOL,
                 max_sweeps: int = MAX_MG_SWEEPS, raise_on_failure: bool = False,
                 verbose: bool = False):
        if tol <= 0.0 or max_sweeps < 1:
            raise ConfigurationError("multigroup tolerance and sweep cap must be positive")
        self.ingroup = ingroup or InGroupIterator(verbose=verbose)
        self.tol = tol
        self.max_sweeps = max_sweeps
        self.raise_on_failure = raise_on_failure
        self.verbose = verbose

    def iterate(self, equation, sflxes: List[np.ndarray]) -> MultigroupResult:
        """Update every group moment in ``sflxes`` in place."""
        ingroup_iterations = []
        error = np.inf

        for sweep in range(1, self.max_sweeps + 1):
            previous = [np.array(s) for s in sflxes]
            ingroup_converged = True
            for g in range(equation.n_groups):
                result = self.ingroup.iterate(equation, sflxes, g)
                ingroup_iterations.append(result.iterations)
                ingroup_converged = ingroup_converged and result.converged

            error = max(relative_change(sflxes[g], previous[g])
                        for g in range(equation.n_groups))
            if not equation.has_upscatter or error <= self.tol:
                result = MultigroupResult(ingroup_converged, sweep, error, ingroup_iterations)
                return self._finish(equation, result)

        result = MultigroupResult(False, self.max_sweeps, error, ingroup_iterations)
        return self._finish(equation, result)

    def _finish(self, equation, result: MultigroupResult) -> MultigroupResult:
        if result.converged:
            return result
        message = (f"multigroup iteration not converged after {result.sweeps} sweep(s) "
                   f"(err={result.error:.3e}, tol={self.tol:.1e})")
        if self.verbose:
            equation.backend.log(f"  WARNING: {message}")
        if self.raise_on_failure:
            raise NonConvergence(message, result.sweeps, {'err_mg': result.error})
        return result
