"""
Fixed-source driver.

Without acceleration: assemble the external source once and run the
multigroup iteration to convergence.

With NDA the outer loop alternates a transport sweep (closure source) and
the low-order multigroup solve until the relative L1 change of the moments
drops below ``err_phi_tol``.
"""
import time
from dataclasses import dataclass
from typing import List

import numpy as np

from .constants import ERR_PHI_TOL, MAX_EIGEN_ITERATIONS
from .eigenvalue import total_relative_change
from .errors import ConfigurationError, NonConvergence
from .multigroup import MultigroupIterator
from .tallies import cell_average_flux, cell_reaction_rate, group_integrated_flux


@dataclass
class FixedSourceResult:
    """Results of a fixed-source calculation."""
    converged: bool
    n_iterations: int               # outer iterations (1 without NDA)
    mg_sweeps: int
    err_phi_history: List[float]
    scalar_flux: List[np.ndarray]
    cell_flux: np.ndarray           # [n_cells, G]
    group_flux: np.ndarray          # [G]
    absorption_rate: np.ndarray     # [n_cells]
    cell_centers: np.ndarray
    total_time: float
    backend_name: str
    formulation: str
    discretization: str
    nda: bool

    def summary(self):
        model = self.formulation.upper() + (" + NDA" if self.nda else "")
        print("=" * 60)
        print(f"  Fixed-Source Result ({self.backend_name})")
        print("=" * 60)
        print(f"  Model: {model} / {self.discretization.upper()}")
        print(f"  Converged: {'yes' if self.converged else 'NO'}")
        print(f"  Outer iterations: {self.n_iterations}, multigroup sweeps: {self.mg_sweeps}")
        for g in range(self.cell_flux.shape[1]):
            print(f"  Group {g}: mean cell flux = {np.mean(self.cell_flux[:, g]):.6e}, "
                  f"integrated = {self.group_flux[g]:.6e}")
        print(f"  Total absorption rate: {np.sum(self.absorption_rate):.6e}")
        print(f"  Wall time: {self.total_time:.1f} s")
        print("=" * 60)

    def to_dict(self):
        return {
            'converged': self.converged,
            'n_iterations': self.n_iterations,
            'mg_sweeps': self.mg_sweeps,
            'err_phi_history': [float(e) for e in self.err_phi_history],
            'cell_flux': self.cell_flux.tolist(),
            'group_flux': self.group_flux.tolist(),
            'absorption_rate': self.absorption_rate.tolist(),
            'cell_centers': self.cell_centers.tolist(),
            'total_time': float(self.total_time),
            'backend_name': self.backend_name,
            'formulation': self.formulation,
            'discretization': self.discretization,
            'nda': self.nda,
        }


class FixedSourceIteration:
    """Fixed-source solve, optionally NDA-accelerated."""

    def __init__(self, equation, mg_iterator: MultigroupIterator = None,
                 lo_equation=None, lo_mg_iterator: MultigroupIterator = None,
                 err_phi_tol: float = ERR_PHI_TOL,
                 max_iterations: int = MAX_EIGEN_ITERATIONS, verbose: bool = True):
        if equation.is_eigen:
            raise ConfigurationError("fixed-source iteration needs a fixed-source equation")
        self.equation = equation
        self.mg_iterator = mg_iterator or MultigroupIterator()
        self.lo_equation = lo_equation
        self.lo_mg_iterator = lo_mg_iterator or MultigroupIterator()
        self.err_phi_tol = err_phi_tol
        self.max_iterations = max_iterations
        self.verbose = verbose

    def solve(self) -> FixedSourceResult:
        eq = self.equation
        lo = self.lo_equation
        backend = eq.backend
        t_start = time.time()

        sflxes = [None] * eq.n_groups
        eq.initialize_system_matrices_vectors(sflxes)
        eq.assemble_bilinear_form()
        eq.assemble_fixed_linear_form(sflxes)
        if lo is not None:
            lo.initialize_system_matrices_vectors([None] * eq.n_groups)
            lo.assemble_fixed_linear_form(sflxes)

        err_phi_history = []
        mg_sweeps = 0
        if lo is None:
            mg = self.mg_iterator.iterate(eq, sflxes)
            converged, n_iterations, mg_sweeps = mg.converged, 1, mg.sweeps
        else:
            converged = False
            n_iterations = 0
            while not converged:
                n_iterations += 1
                if n_iterations > self.max_iterations:
                    raise NonConvergence(
                        f"NDA fixed-source iteration not converged after "
                        f"{self.max_iterations} iterations",
                        self.max_iterations, {'err_phi': err_phi_history[-1]},
                    )
                previous = [np.array(s) for s in sflxes]
                self.mg_iterator.iterate(eq, sflxes)
                lo.formulation.update_closure(eq)
                lo.assemble_bilinear_form()
                mg = self.lo_mg_iterator.iterate(lo, sflxes)
                mg_sweeps += mg.sweeps
                err_phi = total_relative_change(sflxes, previous)
                err_phi_history.append(err_phi)
                if self.verbose:
                    backend.log(f"NDA iter: {n_iterations:4d}, err_phi: {err_phi:.3e}")
                converged = err_phi <= self.err_phi_tol

        result = FixedSourceResult(
            converged=converged,
            n_iterations=n_iterations,
            mg_sweeps=mg_sweeps,
            err_phi_history=err_phi_history,
            scalar_flux=[np.array(s) for s in sflxes],
            cell_flux=cell_average_flux(eq.dof_handler, sflxes),
            group_flux=group_integrated_flux(eq.dof_handler, sflxes),
            absorption_rate=cell_reaction_rate(eq.dof_handler, eq.formulation.materials,
                                               sflxes, 'absorption'),
            cell_centers=eq.mesh.cell_centers,
            total_time=time.time() - t_start,
            backend_name=backend.get_name(),
            formulation=eq.formulation.name,
            discretization=eq.dof_handler.discretization,
            nda=lo is not None,
        )
        if self.verbose:
            print()
            result.summary()
        return result
