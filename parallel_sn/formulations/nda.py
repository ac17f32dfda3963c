"""
Nonlinear diffusion acceleration (NDA): the low-order scalar-flux equation.

One component per group, continuous elements:

  (grad v, D grad phi) - (grad v, D_hat phi) + (v, (sigma_t - sigma_s,gg) phi)
    + <v, kappa phi>_{vacuum, incident}
  = (v, sum_{g' != g} sigma_s,g'g phi_g' + S_fixed) + <v, J_in>_{incident}

The closure is computed from a high-order angular solution:

  D_hat = (J_HO + D grad phi_HO) / phi_HO        kappa = J+_HO / phi_HO

so that the low-order current -D grad phi + D_hat phi reproduces the
transport current. Until the first closure update the equation is plain
diffusion with Marshak boundaries (kappa = 1/2, inflow 2 J_in).
"""
import numpy as np

from ..constants import REFLECTIVE, INCIDENT, MARSHAK_KAPPA, MIN_CLOSURE_FLUX
from ..errors import ConfigurationError
from .base import Formulation


class NDA(Formulation):

    name = 'nda'
    supports_dfem = False
    owns_directions = False
    per_steradian = False

    def __init__(self, quadrature, materials, bcs, element, is_eigen=True, mesh=None):
        super().__init__(quadrature, materials, bcs, element, is_eigen)
        if mesh is None:
            raise ConfigurationError("NDA needs the mesh to hold its closure")
        self.mesh = mesh
        self._pre_cache = {}
        self._drift = None   # [G, n_cells, n_q, dim]
        self._kappa = None   # [G, n_cells, n_faces, n_fq]

        # partial current of a unit isotropic inflow per boundary
        self._incoming_weight = {}
        for bid in range(2 * element.dim):
            normal = np.zeros(element.dim)
            normal[bid // 2] = -1.0 if bid % 2 == 0 else 1.0
            omega_n = self.aq.directions @ normal
            inward = omega_n < 0.0
            self._incoming_weight[bid] = float(np.sum(self.aq.weights[inward] * -omega_n[inward]))

    # ------------------------------------------------------------------
    # Components: one per group
    # ------------------------------------------------------------------

    @property
    def n_directions(self):
        return 1

    def component_index(self, i_dir, g):
        return g

    def component_direction(self, k):
        return 0

    def component_group(self, k):
        return k

    @property
    def closure_ready(self) -> bool:
        return self._drift is not None

    # ------------------------------------------------------------------
    # Bilinear forms
    # ------------------------------------------------------------------

    def pre_assemble_cell(self, cell, fv):
        key = tuple(fv.h.tolist())
        pre = self._pre_cache.get(key)
        if pre is None:
            stiffness = np.einsum('q,qad,qbd->ab', fv.JxW, fv.shape_grads, fv.shape_grads)
            mass = np.einsum('q,qa,qb->ab', fv.JxW, fv.shape_values, fv.shape_values)
            pre = (stiffness, mass)
            self._pre_cache[key] = pre
        return pre

    def integrate_cell_bilinear_form(self, cell, fv, mat_id, g, i_dir, pre):
        stiffness, mass = pre
        mats = self.materials
        removal = mats.sigma_t[mat_id, g] - mats.sigma_s[mat_id, g, g]
        local = mats.diffusion_coef[mat_id, g] * stiffness + removal * mass
        if self._drift is not None:
            drift = self._drift[g, cell]
            local = local - np.einsum('q,qad,qd,qb->ab',
                                      fv.JxW, fv.shape_grads, drift, fv.shape_values)
        return local

    def integrate_boundary_bilinear_form(self, cell, fv, face, boundary_id, mat_id, g, i_dir):
        if self.bcs.kind(boundary_id) == REFLECTIVE:
            return None
        values = fv.face_shape_values[face]
        if self._kappa is None:
            kappa = np.full(len(fv.face_JxW[face]), MARSHAK_KAPPA)
        else:
            kappa = self._kappa[g, cell, face]
        return np.einsum('q,qa,qb->ab', fv.face_JxW[face] * kappa, values, values)

    # ------------------------------------------------------------------
    # Linear forms
    # ------------------------------------------------------------------

    def integrate_scattering_linear_form(self, cell, fv, mat_id, cell_phis, g, i_dir):
        transfer = self.sigma_s[mat_id, :, g].copy()
        transfer[g] = 0.0   # self-scatter sits in the removal term
        return fv.shape_values.T @ (fv.JxW * (transfer @ cell_phis))

    def integrate_cell_fixed_linear_form(self, cell, fv, mat_id, cell_phis, g, i_dir):
        source_q = self.fixed_source_at_points(mat_id, cell_phis, g)
        return fv.shape_values.T @ (fv.JxW * source_q)

    def integrate_boundary_linear_form(self, cell, fv, face, boundary_id, mat_id, g, i_dir,
                                       cell_aflxes):
        if self.bcs.kind(boundary_id) != INCIDENT:
            return None
        j_in = self.bcs.incident_flux(boundary_id, g) * self._incoming_weight[boundary_id]
        if self._kappa is None:
            j_in *= 2.0
        return fv.face_shape_values[face].T @ (fv.face_JxW[face] * j_in)

    def has_in_group_coupling(self, g):
        return False

    # ------------------------------------------------------------------
    # Closure
    # ------------------------------------------------------------------

    def update_closure(self, ho_equation):
        """Recompute D_hat and kappa from the high-order angular solutions."""
        ho = ho_equation.formulation
        if not ho.owns_directions:
            raise ConfigurationError("NDA closure needs an angular high-order equation")
        if not ho_equation.dof_handler.is_continuous:
            raise ConfigurationError("NDA closure needs a continuous (CFEM) high-order equation")
        if ho_equation.element.degree != self.element.degree:
            raise ConfigurationError("NDA and high-order equations must share the element degree")

        mesh = self.mesh
        dim = self.element.dim
        weights = self.aq.weights
        directions = self.aq.directions
        n_q = len(self.element.ref_weights)
        n_fq = len(self.element.ref_face_weights[0])

        drift = np.zeros((self.n_groups, mesh.n_cells, n_q, dim))
        kappa = np.full((self.n_groups, mesh.n_cells, mesh.n_faces, n_fq), MARSHAK_KAPPA)

        for g in range(self.n_groups):
            psi_all = ho_equation.group_angular_fluxes(g)    # [n_dir, n_dofs]
            for cell in range(mesh.n_cells):
                fv = self.element.reinit(mesh.cell_size(cell))
                mat_id = mesh.material_id(cell)
                psi = psi_all[:, ho_equation.dof_handler.cell_dofs(cell)]

                psi_q = psi @ fv.shape_values.T
                grad_psi = np.einsum('qad,na->nqd', fv.shape_grads, psi)
                phi = weights @ psi_q
                grad_phi = np.einsum('n,nqd->qd', weights, grad_psi)
                full = ho.angular_flux_at_points(mat_id, g, psi_q, grad_psi)
                current = np.einsum('n,nd,nq->qd', weights, directions, full)

                ok = phi > MIN_CLOSURE_FLUX
                coef = self.materials.diffusion_coef[mat_id, g]
                drift[g, cell, ok] = (current[ok] + coef * grad_phi[ok]) / phi[ok, None]

                for face in mesh.boundary_faces(cell):
                    if self.bcs.is_reflective(face):
                        continue
                    psi_f = psi @ fv.face_shape_values[face].T
                    grad_f = np.einsum('qad,na->nqd', fv.face_shape_grads[face], psi)
                    full_f = ho.angular_flux_at_points(mat_id, g, psi_f, grad_f)
                    omega_n = directions @ fv.face_normals[face]
                    out = omega_n > 0.0
                    j_plus = (weights[out] * omega_n[out]) @ full_f[out]
                    phi_f = weights @ psi_f
                    kappa[g, cell, face] = np.where(
                        phi_f > MIN_CLOSURE_FLUX,
                        j_plus / np.maximum(phi_f, MIN_CLOSURE_FLUX),
                        MARSHAK_KAPPA,
                    )

        self._drift = drift
        self._kappa = kappa

    def reset_closure(self):
        self._drift = None
        self._kappa = None
