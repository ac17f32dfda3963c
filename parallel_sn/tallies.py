"""
Flux tallies on the finite element solution.

Cell-averaged flux:
  phi_avg[c, g] = (1 / V_c) * sum_q JxW_q * phi_g(x_q)

Reaction rates use the same quadrature with the cell's cross section:
  R[c] = sum_g Sigma[m(c), g] * phi_avg[c, g] * V_c
"""
from typing import List

import numpy as np

from .errors import ConfigurationError


def cell_integrated_flux(dof_handler, sflxes: List[np.ndarray]) -> np.ndarray:
    """Flux integrated over every cell, [n_cells, G]."""
    mesh = dof_handler.mesh
    element = dof_handler.element
    result = np.zeros((mesh.n_cells, len(sflxes)))
    for cell in range(mesh.n_cells):
        fv = element.reinit(mesh.cell_size(cell))
        dofs = dof_handler.cell_dofs(cell)
        for g, sflx in enumerate(sflxes):
            result[cell, g] = np.dot(fv.JxW, fv.shape_values @ sflx[dofs])
    return result


def cell_average_flux(dof_handler, sflxes: List[np.ndarray]) -> np.ndarray:
    """Volume-averaged flux per cell, [n_cells, G]."""
    mesh = dof_handler.mesh
    volumes = np.prod(mesh.cell_sizes, axis=1)
    return cell_integrated_flux(dof_handler, sflxes) / volumes[:, None]


def group_integrated_flux(dof_handler, sflxes: List[np.ndarray]) -> np.ndarray:
    """Flux integrated over the whole domain, [G]."""
    return cell_integrated_flux(dof_handler, sflxes).sum(axis=0)


def cell_reaction_rate(dof_handler, materials, sflxes: List[np.ndarray],
                       reaction: str = 'absorption') -> np.ndarray:
    """Reaction rate per cell for 'absorption', 'fission' (nu-weighted) or 'total'."""
    if reaction == 'absorption':
        xs = materials.sigma_t - materials.sigma_s.sum(axis=2)
    elif reaction == 'fission':
        xs = materials.nu_sigma_f
    elif reaction == 'total':
        xs = materials.sigma_t
    else:
        raise ConfigurationError(f"Unknown reaction: {reaction}. Choose from: absorption, fission, total")
    integrated = cell_integrated_flux(dof_handler, sflxes)
    mat_ids = dof_handler.mesh.material_ids
    return np.sum(xs[mat_ids] * integrated, axis=1)
