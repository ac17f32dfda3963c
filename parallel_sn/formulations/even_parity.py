"""
Even-parity (EP) formulation, continuous or discontinuous elements.

  (Omega.grad v, 1/sigma_t Omega.grad psi+) + (v, sigma_t psi+)
    + <v, |Omega.n| psi+>_{vacuum, incident}
  = (v, Q) + <v, |Omega.n| psi_in>_{incident}

Reflective boundaries are natural (the odd parity vanishes) and add no
terms. The odd parity is recovered pointwise as

  psi- = -1/sigma_t Omega.grad psi+

For DFEM the streaming operator -div(D_Omega grad psi+) with
D_Omega = Omega Omega^T / sigma_t is coupled across interior faces by the
symmetric interior penalty method:

  - <{D_Omega grad u . n}, [v]> - <[u], {D_Omega grad v . n}> + <kappa [u], [v]>

  kappa = max(c p(p+1)/2 (D_K/h_K + D_E/h_E), |Omega.n| / 2),
  D = (Omega.n)^2 / sigma_t
"""
import numpy as np

from ..constants import REFLECTIVE, INCIDENT, IP_PENALTY_FACTOR
from .base import AngularFormulation


class EvenParity(AngularFormulation):

    name = 'ep'
    supports_dfem = True

    def __init__(self, quadrature, materials, bcs, element, is_eigen=True,
                 penalty_factor=IP_PENALTY_FACTOR):
        super().__init__(quadrature, materials, bcs, element, is_eigen)
        self.penalty_factor = float(penalty_factor)

    def integrate_boundary_bilinear_form(self, cell, fv, face, boundary_id, mat_id, g, i_dir):
        if self.bcs.kind(boundary_id) == REFLECTIVE:
            return None
        omega_n = float(np.dot(self.aq.directions[i_dir], fv.face_normals[face]))
        return abs(omega_n) * self.face_mass(fv, face)

    def integrate_boundary_linear_form(self, cell, fv, face, boundary_id, mat_id, g, i_dir,
                                       cell_aflxes):
        if self.bcs.kind(boundary_id) != INCIDENT:
            return None
        omega_n = float(np.dot(self.aq.directions[i_dir], fv.face_normals[face]))
        psi_in = self.bcs.incident_flux(boundary_id, g)
        return fv.face_shape_values[face].T @ (fv.face_JxW[face] * abs(omega_n) * psi_in)

    def integrate_interface_bilinear_form(self, cell, neighbor, face, fv, fv_neighbor,
                                          mat_id, neighbor_mat_id, g, i_dir):
        omega = self.aq.directions[i_dir]
        normal = fv.face_normals[face]
        omega_n = float(np.dot(omega, normal))
        neighbor_face = face ^ 1
        axis = face // 2

        inv_sigma_t = self.materials.inv_sigma_t[mat_id, g]
        inv_sigma_t_nei = self.materials.inv_sigma_t[neighbor_mat_id, g]

        v_i = fv.face_shape_values[face]
        v_e = fv_neighbor.face_shape_values[neighbor_face]
        # normal flux D_Omega grad N . n_K on each side
        f_i = inv_sigma_t * omega_n * (fv.face_shape_grads[face] @ omega)
        f_e = inv_sigma_t_nei * omega_n * (fv_neighbor.face_shape_grads[neighbor_face] @ omega)
        jxw = fv.face_JxW[face]

        p = self.element.degree
        d_i = omega_n * omega_n * inv_sigma_t
        d_e = omega_n * omega_n * inv_sigma_t_nei
        kappa = max(
            self.penalty_factor * p * (p + 1) / 2.0 * (d_i / fv.h[axis] + d_e / fv_neighbor.h[axis]),
            0.5 * abs(omega_n),
        )

        def block(v_a, f_a, s_a, v_b, f_b, s_b):
            return (kappa * s_a * s_b * np.einsum('q,qa,qb->ab', jxw, v_a, v_b)
                    - 0.5 * s_a * np.einsum('q,qa,qb->ab', jxw, v_a, f_b)
                    - 0.5 * s_b * np.einsum('q,qa,qb->ab', jxw, f_a, v_b))

        vi_ui = block(v_i, f_i, 1.0, v_i, f_i, 1.0)
        vi_ue = block(v_i, f_i, 1.0, v_e, f_e, -1.0)
        ve_ui = block(v_e, f_e, -1.0, v_i, f_i, 1.0)
        ve_ue = block(v_e, f_e, -1.0, v_e, f_e, -1.0)
        return vi_ui, vi_ue, ve_ui, ve_ue

    def angular_flux_at_points(self, mat_id, g, psi, grad_psi):
        omega_grad = np.einsum('nqd,nd->nq', grad_psi, self.aq.directions)
        return psi - self.materials.inv_sigma_t[mat_id, g] * omega_grad
