"""
TransportProblem: builds mesh, materials, quadrature, equations and
iterators from a ProblemConfig and runs the calculation.
"""
from typing import Optional, Union

from .backends import AssemblyBackend, get_backend
from .config import ProblemConfig
from .constants import CFEM
from .eigenvalue import EigenvalueResult, PowerIteration
from .equation import Equation
from .fe import LagrangeElement
from .fixed_source import FixedSourceIteration, FixedSourceResult
from .formulations import NDA, make_formulation
from .materials import MaterialLibrary
from .mesh import BoundaryConditions, DoFHandler, generate_mesh
from .multigroup import InGroupIterator, MultigroupIterator
from .quadrature import make_quadrature
from .solvers import make_linear_solver


class TransportProblem:
    """One configured calculation.

    Args:
        config: ProblemConfig
        backend: AssemblyBackend; defaults to get_backend('auto', config.n_workers).
            A backend created here is closed by close().
    """

    def __init__(self, config: ProblemConfig, backend: Optional[AssemblyBackend] = None,
                 verbose: bool = True):
        self.config = config.validate()
        self.verbose = verbose
        dim = config.dimension

        self.materials = MaterialLibrary.from_dict(config.materials)
        self.mesh = generate_mesh(config.domain_upper, config.n_cells,
                                  config.material_layout, config.uniform_refinements)
        self.materials.check_layout(self.mesh.material_ids)
        self.bcs = BoundaryConditions.from_dict(config.boundary_conditions,
                                                config.incident_flux, dim,
                                                self.materials.n_groups)
        self.quadrature = make_quadrature(config.quadrature, config.quadrature_order,
                                          self.materials.n_groups, dim,
                                          self.bcs.reflective_map(), config.n_azimuthal)
        self.element = LagrangeElement(config.fe_degree, dim)
        self.dof_handler = DoFHandler(self.mesh, self.element, config.discretization)

        self._owns_backend = backend is None
        self.backend = backend or get_backend('auto', config.n_workers)

        formulation = make_formulation(config.transport_model, self.quadrature,
                                       self.materials, self.bcs, self.element, config.eigen)
        self.equation = Equation('ho', formulation, self.dof_handler, self.backend,
                                 self._make_solver(), verbose)

        self.lo_equation = None
        if config.nda:
            lo_formulation = NDA(self.quadrature, self.materials, self.bcs, self.element,
                                 config.eigen, mesh=self.mesh)
            lo_dofs = DoFHandler(self.mesh, self.element, CFEM)
            self.lo_equation = Equation('nda', lo_formulation, lo_dofs, self.backend,
                                        self._make_solver(), verbose)

    def _make_solver(self):
        c = self.config
        return make_linear_solver(c.linear_solver, c.preconditioner,
                                  c.linear_solver_rtol, c.linear_solver_maxiter)

    def _make_iterators(self):
        c = self.config
        mg = MultigroupIterator(
            InGroupIterator(c.ig_tol, c.max_ig_iterations, self.verbose),
            c.mg_tol, c.max_mg_sweeps, verbose=self.verbose,
        )
        if self.lo_equation is None:
            return mg, None
        # high-order pass under NDA: one transport solve per group
        ho_pass = MultigroupIterator(InGroupIterator(c.ig_tol, 1), c.mg_tol, 1)
        return ho_pass, mg

    def run(self) -> Union[EigenvalueResult, FixedSourceResult]:
        c = self.config
        mg, lo_mg = self._make_iterators()
        if c.eigen:
            solver = PowerIteration(
                self.equation, mg, self.lo_equation, lo_mg,
                err_k_tol=c.err_k_tol, err_phi_tol=c.err_phi_tol,
                max_iterations=c.max_eigen_iterations, k_init=c.k_init,
                fatal_mg_nonconvergence=c.fatal_mg_nonconvergence,
                verbose=self.verbose,
            )
        else:
            solver = FixedSourceIteration(
                self.equation, mg, self.lo_equation, lo_mg,
                err_phi_tol=c.err_phi_tol, max_iterations=c.max_eigen_iterations,
                verbose=self.verbose,
            )
        return solver.solve()

    def close(self):
        if self._owns_backend:
            self.backend.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def run_problem(config: Union[ProblemConfig, dict], backend=None, verbose=True):
    """Build and run a problem from a config object or dict."""
    if isinstance(config, dict):
        config = ProblemConfig.from_dict(config)
    with TransportProblem(config, backend, verbose) as problem:
        return problem.run()
