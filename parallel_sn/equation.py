"""
Equation: the finite element assembly engine for one transport model.

Holds one linear system per component k = (direction, group):

  matrices[k]    sparse CSR, rebuilt by assemble_bilinear_form
  aflx[k]        solution (angular flux, or scalar flux for NDA)
  fixed_rhs[k]   fission / external source, once per outer iteration
  rhs[k]         fixed_rhs + scattering + boundary inflow, once per solve

Assembly passes run over the backend's owned-cell partitions through the
module-level worker functions below; each returns COO triplets or partial
vectors that the driver merges (the finalize step). Interior faces are
integrated by the cell with the smaller index so faces on partition borders
are counted once.

The formulation, dof handler, backend and linear solver are borrowed; they
must outlive the Equation.
"""
import time
from typing import List

import numpy as np

from .assembly import CooBuffer, scatter_add, triplets_to_csr
from .errors import ConfigurationError


# ===================================================================
# Worker functions (module-level so the process pool can pickle them)
# ===================================================================

def _cell_phis(fv, sflxes, dofs):
    """Every group's moment at the cell quadrature points, [G, n_q]."""
    return np.array([fv.shape_values @ sflx[dofs] for sflx in sflxes])


def _assemble_bilinear_chunk(args):
    """Volume and boundary blocks of every component on the owned cells."""
    formulation, dof_handler, cells = args
    mesh = dof_handler.mesh
    element = dof_handler.element
    nd = dof_handler.dofs_per_cell
    buffers = [CooBuffer(len(cells) * nd * nd) for _ in range(formulation.n_components)]

    for cell in cells:
        fv = element.reinit(mesh.cell_size(cell))
        mat_id = mesh.material_id(cell)
        dofs = dof_handler.cell_dofs(cell)
        faces = mesh.boundary_faces(cell)
        pre = formulation.pre_assemble_cell(cell, fv)
        for g in range(formulation.n_groups):
            for i_dir in range(formulation.n_directions):
                local = formulation.integrate_cell_bilinear_form(cell, fv, mat_id, g, i_dir, pre)
                for face in faces:
                    boundary = formulation.integrate_boundary_bilinear_form(
                        cell, fv, face, mesh.boundary_id(cell, face), mat_id, g, i_dir)
                    if boundary is not None:
                        local = local + boundary
                buffers[formulation.component_index(i_dir, g)].add_block(dofs, dofs, local)

    return [buf.arrays() for buf in buffers]


def _assemble_interface_chunk(args):
    """Interior-face coupling blocks (DFEM) for faces owned by these cells."""
    formulation, dof_handler, cells = args
    mesh = dof_handler.mesh
    element = dof_handler.element
    nd = dof_handler.dofs_per_cell
    buffers = [CooBuffer(4 * len(cells) * mesh.dim * nd * nd)
               for _ in range(formulation.n_components)]

    for cell in cells:
        fv = element.reinit(mesh.cell_size(cell))
        mat_id = mesh.material_id(cell)
        dofs = dof_handler.cell_dofs(cell)
        for face in range(mesh.n_faces):
            neighbor = mesh.neighbor(cell, face)
            if neighbor < 0 or neighbor < cell:
                continue
            fv_nei = element.reinit(mesh.cell_size(neighbor))
            nei_mat_id = mesh.material_id(neighbor)
            nei_dofs = dof_handler.cell_dofs(neighbor)
            for g in range(formulation.n_groups):
                for i_dir in range(formulation.n_directions):
                    vi_ui, vi_ue, ve_ui, ve_ue = formulation.integrate_interface_bilinear_form(
                        cell, neighbor, face, fv, fv_nei, mat_id, nei_mat_id, g, i_dir)
                    buf = buffers[formulation.component_index(i_dir, g)]
                    buf.add_block(dofs, dofs, vi_ui)
                    buf.add_block(dofs, nei_dofs, vi_ue)
                    buf.add_block(nei_dofs, dofs, ve_ui)
                    buf.add_block(nei_dofs, nei_dofs, ve_ue)

    return [buf.arrays() for buf in buffers]


def _assemble_linear_chunk(args):
    """Scattering and boundary-inflow right-hand sides of group g, [n_dir, n_dofs]."""
    formulation, dof_handler, cells, g, sflxes, group_aflxes = args
    mesh = dof_handler.mesh
    element = dof_handler.element
    partial = np.zeros((formulation.n_directions, dof_handler.n_dofs))

    for cell in cells:
        fv = element.reinit(mesh.cell_size(cell))
        mat_id = mesh.material_id(cell)
        dofs = dof_handler.cell_dofs(cell)
        faces = mesh.boundary_faces(cell)
        cell_phis = _cell_phis(fv, sflxes, dofs)
        cell_aflxes = group_aflxes[:, dofs]
        for i_dir in range(formulation.n_directions):
            local = np.zeros(len(dofs))
            scattering = formulation.integrate_scattering_linear_form(
                cell, fv, mat_id, cell_phis, g, i_dir)
            if scattering is not None:
                local += scattering
            for face in faces:
                inflow = formulation.integrate_boundary_linear_form(
                    cell, fv, face, mesh.boundary_id(cell, face), mat_id, g, i_dir, cell_aflxes)
                if inflow is not None:
                    local += inflow
            scatter_add(partial[i_dir], dofs, local)

    return partial


def _assemble_fixed_chunk(args):
    """Fixed (fission or external) right-hand sides of every component, [n_comp, n_dofs]."""
    formulation, dof_handler, cells, sflxes = args
    mesh = dof_handler.mesh
    element = dof_handler.element
    partial = np.zeros((formulation.n_components, dof_handler.n_dofs))

    for cell in cells:
        fv = element.reinit(mesh.cell_size(cell))
        mat_id = mesh.material_id(cell)
        dofs = dof_handler.cell_dofs(cell)
        cell_phis = _cell_phis(fv, sflxes, dofs)
        for g in range(formulation.n_groups):
            for i_dir in range(formulation.n_directions):
                local = formulation.integrate_cell_fixed_linear_form(
                    cell, fv, mat_id, cell_phis, g, i_dir)
                if local is not None:
                    scatter_add(partial[formulation.component_index(i_dir, g)], dofs, local)

    return partial


def _fission_source_chunk(args):
    """Fission source integral of every owned cell."""
    formulation, dof_handler, cells, sflxes = args
    mesh = dof_handler.mesh
    element = dof_handler.element
    values = np.zeros(len(cells))

    for i, cell in enumerate(cells):
        mat_id = mesh.material_id(cell)
        if not formulation.materials.is_fissile[mat_id]:
            continue
        fv = element.reinit(mesh.cell_size(cell))
        cell_phis = _cell_phis(fv, sflxes, dof_handler.cell_dofs(cell))
        values[i] = formulation.cell_fission_source(cell, fv, mat_id, cell_phis)

    return values


# ===================================================================
# Equation
# ===================================================================

class Equation:
    """Assembly engine and per-component linear systems.

    Args:
        name: label used in log lines ('ho', 'nda', ...)
        formulation: Formulation supplying the cell and face integrals
        dof_handler: DoFHandler (CFEM or DFEM)
        backend: AssemblyBackend that runs the partitioned passes
        linear_solver: LinearSolver for the per-component systems
    """

    def __init__(self, name, formulation, dof_handler, backend, linear_solver, verbose=False):
        if formulation.element.dim != dof_handler.element.dim or \
                formulation.element.degree != dof_handler.element.degree:
            raise ConfigurationError("formulation and dof handler use different elements")
        if not dof_handler.is_continuous and not formulation.supports_dfem:
            raise ConfigurationError(
                f"{formulation.name} formulation does not support "
                f"discontinuous (DFEM) interface terms"
            )
        self.name = name
        self.formulation = formulation
        self.dof_handler = dof_handler
        self.backend = backend
        self.linear_solver = linear_solver
        self.verbose = verbose

        self.n_groups = formulation.n_groups
        self.n_components = formulation.n_components
        self.n_dofs = dof_handler.n_dofs
        self._partitions = backend.partition(dof_handler.mesh)

        self.matrices = []
        self.aflx = []
        self.rhs = []
        self.fixed_rhs = []

    # ------------------------------------------------------------------
    # Collaborator views
    # ------------------------------------------------------------------

    @property
    def mesh(self):
        return self.dof_handler.mesh

    @property
    def element(self):
        return self.dof_handler.element

    @property
    def quadrature(self):
        return self.formulation.aq

    @property
    def is_eigen(self) -> bool:
        return self.formulation.is_eigen

    def _tasks(self, *extra):
        return [(self.formulation, self.dof_handler, cells) + extra for cells in self._partitions]

    def _log(self, message):
        if self.verbose:
            self.backend.log(f"  [{self.name}] {message}")

    def _check_moments(self, sflxes):
        if len(sflxes) != self.n_groups:
            raise ConfigurationError(
                f"expected {self.n_groups} group moments, got {len(sflxes)}"
            )
        for g, sflx in enumerate(sflxes):
            if sflx is None or len(sflx) != self.n_dofs:
                raise ConfigurationError(
                    f"moment of group {g} must have {self.n_dofs} entries"
                )

    def _require_eigen(self, operation):
        if not self.is_eigen:
            raise ConfigurationError(f"{operation} is only defined for eigenvalue problems")

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize_system_matrices_vectors(self, sflxes: List):
        """Allocate the component vectors and reset ``sflxes`` to unit vectors."""
        if len(sflxes) != self.n_groups:
            raise ConfigurationError(
                f"expected {self.n_groups} group moments, got {len(sflxes)}"
            )
        for g in range(self.n_groups):
            sflxes[g] = np.ones(self.n_dofs)
        self.matrices = [None] * self.n_components
        self.aflx = [np.ones(self.n_dofs) for _ in range(self.n_components)]
        self.rhs = [np.zeros(self.n_dofs) for _ in range(self.n_components)]
        self.fixed_rhs = [np.zeros(self.n_dofs) for _ in range(self.n_components)]

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def assemble_bilinear_form(self):
        """Assemble and finalize every component matrix, then hand them to the solver."""
        t_start = time.time()
        partials = self.backend.map(_assemble_bilinear_chunk, self._tasks())

        if not self.dof_handler.is_continuous:
            partials = partials + self.backend.map(_assemble_interface_chunk, self._tasks())

        self.matrices = [
            triplets_to_csr([partial[k] for partial in partials], self.n_dofs)
            for k in range(self.n_components)
        ]
        self.linear_solver.initialize(self.matrices)
        self._log(f"assembled {self.n_components} matrices "
                  f"({self.n_dofs} dofs each) in {time.time() - t_start:.2f} s")

    def assemble_fixed_linear_form(self, sflxes_prev: List[np.ndarray]):
        """Integrate the fixed source (scaled fission or external) of every component."""
        self._check_moments(sflxes_prev)
        partials = self.backend.map(_assemble_fixed_chunk, self._tasks(list(sflxes_prev)))
        fixed = self.backend.allreduce_sum(partials)
        for k in range(self.n_components):
            self.fixed_rhs[k] = np.array(fixed[k])

    def assemble_linear_form(self, sflxes: List[np.ndarray], g: int):
        """rhs = fixed_rhs + scattering + boundary inflow for every component of group g."""
        self._check_moments(sflxes)
        group_aflxes = self.group_angular_fluxes(g)
        partials = self.backend.map(
            _assemble_linear_chunk, self._tasks(g, list(sflxes), group_aflxes))
        total = self.backend.allreduce_sum(partials)
        for i_dir in range(self.formulation.n_directions):
            k = self.component_index(i_dir, g)
            self.rhs[k] = self.fixed_rhs[k] + total[i_dir]

    # ------------------------------------------------------------------
    # Solve and moments
    # ------------------------------------------------------------------

    def solve_in_group(self, g: int):
        """Solve every component of group g in place (SolverFailure propagates)."""
        for i_dir in range(self.formulation.n_directions):
            k = self.component_index(i_dir, g)
            self.linear_solver.solve(k, self.matrices[k], self.rhs[k], self.aflx[k])

    def group_angular_fluxes(self, g: int) -> np.ndarray:
        """Current solutions of group g, [n_directions, n_dofs]."""
        return np.array([self.aflx[self.component_index(i_dir, g)]
                         for i_dir in range(self.formulation.n_directions)])

    def generate_group_moment(self, g: int) -> np.ndarray:
        """Scalar flux of group g: sum_d w_d * aflx[k(d, g)]."""
        if not self.formulation.owns_directions:
            raise ConfigurationError(
                f"{self.formulation.name} formulation has no directional solutions "
                f"to take moments of"
            )
        return self.quadrature.weights @ self.group_angular_fluxes(g)

    def generate_moments(self, sflxes: List) -> List[np.ndarray]:
        """Overwrite ``sflxes`` with fresh moments; returns the previous ones."""
        if len(sflxes) != self.n_groups:
            raise ConfigurationError(
                f"expected {self.n_groups} group moments, got {len(sflxes)}"
            )
        previous = [None if s is None else np.array(s) for s in sflxes]
        for g in range(self.n_groups):
            sflxes[g] = self.generate_group_moment(g)
        return previous

    def updated_moment(self, g: int) -> np.ndarray:
        """Group-g scalar flux after a solve, for either kind of formulation."""
        if self.formulation.owns_directions:
            return self.generate_group_moment(g)
        return self.aflx[self.component_index(0, g)].copy()

    # ------------------------------------------------------------------
    # Fission
    # ------------------------------------------------------------------

    def estimate_fission_source(self, sflxes: List[np.ndarray]) -> float:
        """Global fission source, reduced over all workers."""
        self._require_eigen("fission source estimation")
        self._check_moments(sflxes)
        partials = self.backend.map(_fission_source_chunk, self._tasks(list(sflxes)))
        return float(self.backend.allreduce_sum([float(np.sum(p)) for p in partials]))

    def fission_source_distribution(self, sflxes: List[np.ndarray]) -> np.ndarray:
        """Fission source integral per cell, in cell order."""
        self._require_eigen("fission source distribution")
        self._check_moments(sflxes)
        partials = self.backend.map(_fission_source_chunk, self._tasks(list(sflxes)))
        return np.concatenate(partials)

    def scale_fission_transfer(self, keff: float):
        self._require_eigen("fission transfer scaling")
        self.formulation.scale_fission_transfer(keff)

    # ------------------------------------------------------------------
    # Component and iteration helpers
    # ------------------------------------------------------------------

    def component_index(self, i_dir: int, g: int) -> int:
        return self.formulation.component_index(i_dir, g)

    def component_group(self, k: int) -> int:
        return self.formulation.component_group(k)

    def component_direction(self, k: int) -> int:
        return self.formulation.component_direction(k)

    def reflected_direction(self, boundary_id: int, i_dir: int) -> int:
        return self.quadrature.reflected_direction(boundary_id, i_dir)

    def has_in_group_coupling(self, g: int) -> bool:
        return self.formulation.has_in_group_coupling(g)

    @property
    def has_upscatter(self) -> bool:
        return self.formulation.materials.has_upscatter

    def __repr__(self):
        return (f"Equation({self.name!r}, {self.formulation.name}, "
                f"components={self.n_components}, n_dofs={self.n_dofs})")
