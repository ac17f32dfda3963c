"""
k-Eigenvalue Power Iteration Solver

Deterministic power iteration around the multigroup solve:
1. Initialize unit scalar fluxes, k = k_init, F = fission source
2. For each outer iteration:
   a. Scale the fission transfer by 1/k
   b. Assemble the fission source from the previous moments
   c. Multigroup iteration (with NDA: one transport sweep, closure
      update, then the low-order multigroup solve supplies the moments)
   d. k_new = k_old * F_new / F_old
   e. err_k = |k_new - k_old| / k_new,  err_phi = relative L1 change
   f. Shannon entropy of the cellwise fission source
3. Stop when err_k and err_phi are both below tolerance; exceeding the
   iteration cap raises NonConvergence with the last errors and k.
"""
import time
from dataclasses import dataclass
from typing import List

import numpy as np

from .constants import ERR_K_TOL, ERR_PHI_TOL, MAX_EIGEN_ITERATIONS, K_INIT
from .entropy import EntropyMonitor
from .errors import ConfigurationError, NonConvergence
from .multigroup import MultigroupIterator, MultigroupResult
from .tallies import cell_average_flux, group_integrated_flux


def total_relative_change(new: List[np.ndarray], old: List[np.ndarray]) -> float:
    """sum_g ||new_g - old_g||_1 / sum_g ||new_g||_1"""
    diff = sum(float(np.sum(np.abs(n - o))) for n, o in zip(new, old))
    norm = sum(float(np.sum(np.abs(n))) for n in new)
    if norm == 0.0:
        return 0.0 if diff == 0.0 else np.inf
    return diff / norm


@dataclass
class EigenvalueResult:
    """Complete results from a k-eigenvalue calculation."""
    keff: float
    n_iterations: int
    keff_history: List[float]
    err_k_history: List[float]
    err_phi_history: List[float]
    entropy_history: List[float]
    scalar_flux: List[np.ndarray]   # per group [n_dofs]
    cell_flux: np.ndarray           # [n_cells, G] cell-averaged
    group_flux: np.ndarray          # [G] integrated over the domain
    entropy_converged: bool
    cell_centers: np.ndarray        # [n_cells, dim]
    total_time: float               # seconds
    backend_name: str
    formulation: str
    discretization: str
    nda: bool
    n_groups: int
    n_directions: int
    n_dofs: int
    n_cells: int

    def summary(self):
        """Print human-readable summary."""
        model = self.formulation.upper() + (" + NDA" if self.nda else "")
        print("=" * 60)
        print(f"  k-Eigenvalue Result ({self.backend_name})")
        print("=" * 60)
        print(f"  k_eff = {self.keff:.6f}")
        print(f"  Model: {model} / {self.discretization.upper()}")
        print(f"  Outer iterations: {self.n_iterations}")
        if self.n_iterations:
            print(f"  Final err_k = {self.err_k_history[-1]:.3e}, "
                  f"err_phi = {self.err_phi_history[-1]:.3e}")
        if self.entropy_history:
            print(f"  Shannon entropy: {self.entropy_history[-1]:.4f} "
                  f"({'stationary' if self.entropy_converged else 'not stationary'})")
        print(f"  Groups: {self.n_groups}, directions: {self.n_directions}")
        for g, flux in enumerate(self.group_flux):
            print(f"  Group {g}: integrated flux = {flux:.6e}")
        print(f"  Cells: {self.n_cells:,}, dofs per component: {self.n_dofs:,}")
        print(f"  Wall time: {self.total_time:.1f} s")
        print("=" * 60)

    def to_dict(self):
        """Convert to JSON-serializable dict."""
        return {
            'keff': float(self.keff),
            'n_iterations': self.n_iterations,
            'keff_history': [float(k) for k in self.keff_history],
            'err_k_history': [float(e) for e in self.err_k_history],
            'err_phi_history': [float(e) for e in self.err_phi_history],
            'entropy_history': [float(h) for h in self.entropy_history],
            'cell_flux': self.cell_flux.tolist(),
            'group_flux': self.group_flux.tolist(),
            'entropy_converged': bool(self.entropy_converged),
            'cell_centers': self.cell_centers.tolist(),
            'total_time': float(self.total_time),
            'backend_name': self.backend_name,
            'formulation': self.formulation,
            'discretization': self.discretization,
            'nda': self.nda,
            'n_groups': self.n_groups,
            'n_directions': self.n_directions,
            'n_dofs': self.n_dofs,
            'n_cells': self.n_cells,
        }


class PowerIteration:
    """k-eigenvalue power iteration driver.

    Args:
        equation: high-order (angular) Equation; owns the eigenvalue estimate
        mg_iterator: MultigroupIterator for the high-order equation. With NDA
            this is usually a single in-group pass and a single sweep.
        lo_equation: NDA low-order Equation, or None
        lo_mg_iterator: MultigroupIterator for the low-order equation
        err_k_tol, err_phi_tol: outer convergence tolerances
        max_iterations: outer iteration cap
        k_init: initial eigenvalue guess
        fatal_mg_nonconvergence: abort with NonConvergence when a multigroup
            solve does not converge
    """

    def __init__(
        self,
        equation,
        mg_iterator: MultigroupIterator = None,
        lo_equation=None,
        lo_mg_iterator: MultigroupIterator = None,
        err_k_tol: float = ERR_K_TOL,
        err_phi_tol: float = ERR_PHI_TOL,
        max_iterations: int = MAX_EIGEN_ITERATIONS,
        k_init: float = K_INIT,
        fatal_mg_nonconvergence: bool = False,
        verbose: bool = True,
    ):
        if not equation.is_eigen:
            raise ConfigurationError("power iteration needs an eigenvalue equation")
        if not k_init > 0.0:
            raise ConfigurationError(f"k_init must be positive, got {k_init}")
        self.equation = equation
        self.mg_iterator = mg_iterator or MultigroupIterator()
        self.lo_equation = lo_equation
        self.lo_mg_iterator = lo_mg_iterator or MultigroupIterator()
        self.err_k_tol = err_k_tol
        self.err_phi_tol = err_phi_tol
        self.max_iterations = max_iterations
        self.k_init = k_init
        self.fatal_mg_nonconvergence = fatal_mg_nonconvergence
        self.verbose = verbose

    def _log(self, message):
        if self.verbose:
            self.equation.backend.log(message)

    def _outer_solve(self, sflxes, previous, keff) -> MultigroupResult:
        eq = self.equation
        eq.scale_fission_transfer(keff)
        eq.assemble_fixed_linear_form(previous)
        result = self.mg_iterator.iterate(eq, sflxes)

        lo = self.lo_equation
        if lo is not None:
            lo.formulation.update_closure(eq)
            lo.assemble_bilinear_form()
            lo.scale_fission_transfer(keff)
            lo.assemble_fixed_linear_form(previous)
            result = self.lo_mg_iterator.iterate(lo, sflxes)

        if not result.converged and self.fatal_mg_nonconvergence:
            raise NonConvergence(
                f"multigroup iteration did not converge inside power iteration "
                f"(err={result.error:.3e})",
                result.sweeps, {'err_mg': result.error}, keff=keff,
            )
        return result

    def solve(self) -> EigenvalueResult:
        """Run the full k-eigenvalue calculation.

        Returns:
            EigenvalueResult with histories and the converged flux
        """
        eq = self.equation
        backend = eq.backend
        n_groups = eq.n_groups

        sflxes = [None] * n_groups
        eq.initialize_system_matrices_vectors(sflxes)
        if self.lo_equation is not None:
            self.lo_equation.initialize_system_matrices_vectors([None] * n_groups)

        if self.verbose:
            self._log("Starting k-eigenvalue calculation")
            self._log(f"  Backend: {backend.get_name()}")
            self._log(f"  Formulation: {eq.formulation.name}"
                      f"{' + nda' if self.lo_equation is not None else ''}")
            self._log(f"  Groups: {n_groups}, directions: {eq.formulation.n_directions}, "
                      f"dofs: {eq.n_dofs:,}")
            self._log("")

        t_start = time.time()
        eq.assemble_bilinear_form()
        if self.lo_equation is not None:
            self.lo_equation.assemble_bilinear_form()

        entropy_monitor = EntropyMonitor(eq.mesh)
        keff = self.k_init
        fission = eq.estimate_fission_source(sflxes)
        if fission <= 0.0:
            raise ConfigurationError("problem has no fission source")

        keff_history, err_k_history, err_phi_history = [], [], []
        err_k = err_phi = np.inf
        iteration = 0
        while True:
            iteration += 1
            if iteration > self.max_iterations:
                raise NonConvergence(
                    f"power iteration not converged after {self.max_iterations} iterations "
                    f"(err_k={err_k:.3e}, err_phi={err_phi:.3e})",
                    self.max_iterations, {'err_k': err_k, 'err_phi': err_phi}, keff=keff,
                )

            previous = [np.array(s) for s in sflxes]
            keff_prev, fission_prev = keff, fission

            self._outer_solve(sflxes, previous, keff_prev)

            fission = eq.estimate_fission_source(sflxes)
            keff = keff_prev * fission / fission_prev
            err_k = abs(keff - keff_prev) / abs(keff)
            err_phi = total_relative_change(sflxes, previous)
            entropy = entropy_monitor.compute(eq.fission_source_distribution(sflxes))

            keff_history.append(keff)
            err_k_history.append(err_k)
            err_phi_history.append(err_phi)

            self._log(f"PI iter: {iteration:4d}, k: {keff:.8f}, err_k: {err_k:.3e}, "
                      f"err_phi: {err_phi:.3e}, H: {entropy:.4f}")

            if err_k <= self.err_k_tol and err_phi <= self.err_phi_tol:
                break

        total_time = time.time() - t_start

        result = EigenvalueResult(
            keff=keff,
            n_iterations=iteration,
            keff_history=keff_history,
            err_k_history=err_k_history,
            err_phi_history=err_phi_history,
            entropy_history=entropy_monitor.history,
            scalar_flux=[np.array(s) for s in sflxes],
            cell_flux=cell_average_flux(eq.dof_handler, sflxes),
            group_flux=group_integrated_flux(eq.dof_handler, sflxes),
            entropy_converged=entropy_monitor.is_converged,
            cell_centers=eq.mesh.cell_centers,
            total_time=total_time,
            backend_name=backend.get_name(),
            formulation=eq.formulation.name,
            discretization=eq.dof_handler.discretization,
            nda=self.lo_equation is not None,
            n_groups=n_groups,
            n_directions=eq.formulation.n_directions,
            n_dofs=eq.n_dofs,
            n_cells=eq.mesh.n_cells,
        )

        if self.verbose:
            print()
            result.summary()

        return result
