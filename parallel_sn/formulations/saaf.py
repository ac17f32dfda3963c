"""
Self-adjoint angular flux (SAAF) formulation, continuous elements only.

Weak form per direction Omega and group g:

  (Omega.grad v, 1/sigma_t Omega.grad psi) + (v, sigma_t psi)
    + <v, Omega.n psi>_{Omega.n > 0}
  = (v + 1/sigma_t Omega.grad v, Q) + <v, |Omega.n| psi_in>_{Omega.n < 0}

with Q the per-steradian scattering plus fixed (fission or external)
source. On reflective boundaries psi_in is the current solution of the
reflected direction, lagged to the right-hand side; on incident boundaries
it is the prescribed isotropic flux.
"""
import numpy as np

from ..constants import REFLECTIVE, INCIDENT
from .base import AngularFormulation


class SAAF(AngularFormulation):

    name = 'saaf'
    supports_dfem = False

    def source_test_functions(self, fv, mat_id, g, i_dir):
        omega_grad = fv.shape_grads @ self.aq.directions[i_dir]
        return fv.shape_values + omega_grad * self.materials.inv_sigma_t[mat_id, g]

    def integrate_boundary_bilinear_form(self, cell, fv, face, boundary_id, mat_id, g, i_dir):
        omega_n = float(np.dot(self.aq.directions[i_dir], fv.face_normals[face]))
        if omega_n <= 0.0:
            return None
        return omega_n * self.face_mass(fv, face)

    def integrate_boundary_linear_form(self, cell, fv, face, boundary_id, mat_id, g, i_dir,
                                       cell_aflxes):
        omega_n = float(np.dot(self.aq.directions[i_dir], fv.face_normals[face]))
        if omega_n >= 0.0:
            return None
        kind = self.bcs.kind(boundary_id)
        values = fv.face_shape_values[face]
        if kind == REFLECTIVE:
            r_dir = self.aq.reflected_direction(boundary_id, i_dir)
            psi_in = values @ cell_aflxes[r_dir]
        elif kind == INCIDENT:
            psi_in = np.full(len(fv.face_JxW[face]), self.bcs.incident_flux(boundary_id, g))
        else:
            return None
        return values.T @ (fv.face_JxW[face] * abs(omega_n) * psi_in)

    def has_in_group_coupling(self, g):
        # reflected inflow is lagged, so reflective problems iterate in-group
        return super().has_in_group_coupling(g) or self.bcs.any_reflective
