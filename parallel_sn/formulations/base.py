"""
Formulation capability set.

A formulation supplies the local integrals of one transport model; the
Equation owns the loops, the scatter and the global systems. Every
integrator receives the cell index first so formulations with cell-wise
data (the NDA closure) can look it up.

Local blocks are [n_dofs_per_cell, n_dofs_per_cell] arrays with rows
indexed by the test function and columns by the trial function; local
vectors are [n_dofs_per_cell]. ``None`` means "no contribution".
"""
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from ..constants import FOUR_PI
from ..errors import ConfigurationError


class Formulation(ABC):
    """Strategy object for one weak form.

    Parameters
    ----------
    quadrature : AngularQuadrature
    materials : MaterialLibrary
    bcs : BoundaryConditions
    element : LagrangeElement
    is_eigen : bool
        Eigenvalue problems carry a scaled fission transfer; fixed-source
        problems integrate the external source instead.
    """

    name = 'base'
    supports_dfem = False
    owns_directions = True
    per_steradian = True

    def __init__(self, quadrature, materials, bcs, element, is_eigen: bool = True):
        if quadrature.n_groups != materials.n_groups:
            raise ConfigurationError(
                f"quadrature has {quadrature.n_groups} groups, "
                f"materials have {materials.n_groups}"
            )
        if quadrature.dim != element.dim or bcs.dim != element.dim:
            raise ConfigurationError("quadrature, element and boundaries disagree on dimension")
        self.aq = quadrature
        self.materials = materials
        self.bcs = bcs
        self.element = element
        self.is_eigen = bool(is_eigen)
        self.n_groups = materials.n_groups

        scale = 1.0 / FOUR_PI if self.per_steradian else 1.0
        self._source_scale = scale
        self.sigma_s = materials.sigma_s * scale
        self.q = materials.q * scale
        self.fission_transfer_scaled = None
        if self.is_eigen:
            self.scale_fission_transfer(1.0)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def n_directions(self) -> int:
        return self.aq.n_dir

    @property
    def n_components(self) -> int:
        return self.n_directions * self.n_groups

    def component_index(self, i_dir: int, g: int) -> int:
        return self.aq.component_index(i_dir, g)

    def component_direction(self, k: int) -> int:
        return self.aq.component_direction(k)

    def component_group(self, k: int) -> int:
        return self.aq.component_group(k)

    # ------------------------------------------------------------------
    # Bilinear forms
    # ------------------------------------------------------------------

    def pre_assemble_cell(self, cell: int, fv):
        """Direction-independent data shared by all components of a cell."""
        return None

    @abstractmethod
    def integrate_cell_bilinear_form(self, cell: int, fv, mat_id: int, g: int,
                                     i_dir: int, pre) -> np.ndarray:
        """Volume block of component (i_dir, g) on one cell."""
        pass

    def integrate_boundary_bilinear_form(self, cell: int, fv, face: int, boundary_id: int,
                                         mat_id: int, g: int, i_dir: int) -> Optional[np.ndarray]:
        return None

    def integrate_interface_bilinear_form(self, cell: int, neighbor: int, face: int, fv, fv_neighbor,
                                          mat_id: int, neighbor_mat_id: int, g: int, i_dir: int):
        """Return (vi_ui, vi_ue, ve_ui, ve_ue) for an interior face."""
        raise ConfigurationError(
            f"{self.name} formulation does not support discontinuous (DFEM) interface terms"
        )

    # ------------------------------------------------------------------
    # Linear forms
    # ------------------------------------------------------------------

    def integrate_scattering_linear_form(self, cell: int, fv, mat_id: int, cell_phis: np.ndarray,
                                         g: int, i_dir: int) -> Optional[np.ndarray]:
        """``cell_phis`` holds every group's moment at the cell quadrature points [G, n_q]."""
        return None

    def integrate_boundary_linear_form(self, cell: int, fv, face: int, boundary_id: int, mat_id: int,
                                       g: int, i_dir: int,
                                       cell_aflxes: np.ndarray) -> Optional[np.ndarray]:
        """``cell_aflxes`` holds the current group-g solutions at the cell dofs [n_dir, n_dofs]."""
        return None

    def integrate_cell_fixed_linear_form(self, cell: int, fv, mat_id: int, cell_phis: np.ndarray,
                                         g: int, i_dir: int) -> Optional[np.ndarray]:
        return None

    def fixed_source_at_points(self, mat_id: int, cell_phis: np.ndarray, g: int) -> np.ndarray:
        """Scaled fission source (eigen) or external source (fixed) at the points."""
        if self.is_eigen:
            return self.fission_transfer_scaled[mat_id, :, g] @ cell_phis
        return np.full(cell_phis.shape[1], self.q[mat_id, g])

    # ------------------------------------------------------------------
    # Fission
    # ------------------------------------------------------------------

    def cell_fission_source(self, cell: int, fv, mat_id: int, cell_phis: np.ndarray) -> float:
        """Integral of sum_g nu_sigma_f * phi_g over the cell."""
        if not self.materials.is_fissile[mat_id]:
            return 0.0
        density = self.materials.nu_sigma_f[mat_id] @ cell_phis
        return float(np.dot(fv.JxW, density))

    def scale_fission_transfer(self, keff: float):
        """Scale the fission transfer by 1/k; non-fissile materials get zeros."""
        if not self.is_eigen:
            raise ConfigurationError("fission transfer is only defined for eigenvalue problems")
        if not keff > 0.0:
            raise ConfigurationError(f"keff must be positive, got {keff}")
        fissile = self.materials.is_fissile[:, None, None]
        raw = self.materials.fission_transfer * self._source_scale
        self.fission_transfer_scaled = np.where(fissile, raw / keff, 0.0)

    # ------------------------------------------------------------------
    # Iteration structure
    # ------------------------------------------------------------------

    def has_in_group_coupling(self, g: int) -> bool:
        """Whether the group-g right-hand side depends on the group-g solution."""
        return bool(np.any(self.materials.sigma_s[:, g, g] > 0.0))

    def __getstate__(self):
        state = self.__dict__.copy()
        state.pop('_pre_cache', None)
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._pre_cache = {}

    def __repr__(self):
        return f"{type(self).__name__}(n_groups={self.n_groups}, n_dir={self.n_directions})"


class AngularFormulation(Formulation):
    """Shared pieces of the second-order angular-flux forms.

    Both SAAF and even-parity assemble, per direction,

      (Omega.grad v, 1/sigma_t Omega.grad psi) + (v, sigma_t psi)

    so the streaming block of every direction and the mass block are
    pre-assembled once per distinct cell shape.
    """

    def __init__(self, quadrature, materials, bcs, element, is_eigen: bool = True):
        super().__init__(quadrature, materials, bcs, element, is_eigen)
        self._pre_cache = {}

    def pre_assemble_cell(self, cell, fv):
        key = tuple(fv.h.tolist())
        pre = self._pre_cache.get(key)
        if pre is None:
            # [n_dir, n_q, n_dofs]: Omega . grad N at every point
            omega_grad = np.einsum('qad,nd->nqa', fv.shape_grads, self.aq.directions)
            streaming = np.einsum('q,nqa,nqb->nab', fv.JxW, omega_grad, omega_grad)
            mass = np.einsum('q,qa,qb->ab', fv.JxW, fv.shape_values, fv.shape_values)
            pre = (streaming, mass)
            self._pre_cache[key] = pre
        return pre

    def integrate_cell_bilinear_form(self, cell, fv, mat_id, g, i_dir, pre):
        streaming, mass = pre
        sigma_t = self.materials.sigma_t[mat_id, g]
        return streaming[i_dir] / sigma_t + sigma_t * mass

    def source_test_functions(self, fv, mat_id: int, g: int, i_dir: int) -> np.ndarray:
        """Test functions applied to volumetric sources, [n_q, n_dofs]."""
        return fv.shape_values

    def _integrate_source(self, fv, mat_id, g, i_dir, source_q):
        test = self.source_test_functions(fv, mat_id, g, i_dir)
        return test.T @ (fv.JxW * source_q)

    def integrate_scattering_linear_form(self, cell, fv, mat_id, cell_phis, g, i_dir):
        source_q = self.sigma_s[mat_id, :, g] @ cell_phis
        return self._integrate_source(fv, mat_id, g, i_dir, source_q)

    def integrate_cell_fixed_linear_form(self, cell, fv, mat_id, cell_phis, g, i_dir):
        source_q = self.fixed_source_at_points(mat_id, cell_phis, g)
        return self._integrate_source(fv, mat_id, g, i_dir, source_q)

    def angular_flux_at_points(self, mat_id: int, g: int, psi: np.ndarray,
                               grad_psi: np.ndarray) -> np.ndarray:
        """Full angular flux [n_dir, n_pts] from the solved unknowns and their gradients."""
        return psi

    @staticmethod
    def face_mass(fv, face: int) -> np.ndarray:
        values = fv.face_shape_values[face]
        return np.einsum('q,qa,qb->ab', fv.face_JxW[face], values, values)
