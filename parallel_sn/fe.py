"""
Tensor-product Lagrange elements on axis-aligned cells.

Reference cell [0, 1]^dim with equispaced nodes; local dof numbering

  i = a + (p + 1) * b          a: x-node index, b: y-node index

Integration uses Gauss-Legendre with p + 1 points per axis, which is exact
for the mass and streaming blocks of the transport operators on constant
material cells.

Faces are numbered like the mesh boundaries: face f lies on axis f // 2 at
reference coordinate f % 2, with outward normal -e_axis (even f) or +e_axis
(odd f). Face quadrature points run along the remaining axis in increasing
coordinate order, so two cells sharing a face see the same point sequence.

Physical values on a cell with sizes h = (hx[, hy]):

  grad N = grad_ref N / h          JxW = w_ref * prod(h)
"""
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np

from .errors import ConfigurationError


def gauss_legendre_unit(n_points: int) -> Tuple[np.ndarray, np.ndarray]:
    """Gauss-Legendre points and weights mapped from [-1, 1] to [0, 1]."""
    xi, w = np.polynomial.legendre.leggauss(n_points)
    return 0.5 * (xi + 1.0), 0.5 * w


def lagrange_basis_1d(nodes: np.ndarray, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Values and derivatives of the 1D Lagrange polynomials on ``nodes``.

    Returns
    -------
    values, derivs : ndarray [len(x), len(nodes)]
    """
    x = np.atleast_1d(np.asarray(x, dtype=np.float64))
    n = len(nodes)
    values = np.ones((len(x), n))
    derivs = np.zeros((len(x), n))
    for i in range(n):
        others = [j for j in range(n) if j != i]
        denom = np.prod([nodes[i] - nodes[j] for j in others])
        for j in others:
            values[:, i] *= (x - nodes[j])
        values[:, i] /= denom
        for m in others:
            term = np.ones(len(x))
            for j in others:
                if j != m:
                    term *= (x - nodes[j])
            derivs[:, i] += term
        derivs[:, i] /= denom
    return values, derivs


@dataclass
class CellValues:
    """Shape data of one cell shape, in physical units."""
    h: np.ndarray                       # [dim] cell sizes
    shape_values: np.ndarray            # [n_q, n_dofs]
    shape_grads: np.ndarray             # [n_q, n_dofs, dim]
    JxW: np.ndarray                     # [n_q]
    face_shape_values: List[np.ndarray]  # per face [n_fq, n_dofs]
    face_shape_grads: List[np.ndarray]   # per face [n_fq, n_dofs, dim]
    face_JxW: List[np.ndarray]           # per face [n_fq]
    face_normals: List[np.ndarray]       # per face [dim]

    @property
    def volume(self) -> float:
        return float(np.prod(self.h))

    @property
    def n_q_points(self) -> int:
        return len(self.JxW)


class LagrangeElement:
    """Degree-p tensor Lagrange element in 1D or 2D.

    ``reinit(h)`` returns the physical :class:`CellValues`; results are
    cached per distinct cell shape.
    """

    def __init__(self, degree: int, dim: int):
        if degree < 1:
            raise ConfigurationError(f"finite element degree must be >= 1, got {degree}")
        if dim not in (1, 2):
            raise ConfigurationError(f"only 1D and 2D elements are supported, got {dim}D")
        self.degree = int(degree)
        self.dim = int(dim)
        self.n_nodes_1d = self.degree + 1
        self.dofs_per_cell = self.n_nodes_1d ** self.dim
        self.n_faces = 2 * self.dim

        self.nodes_1d = np.linspace(0.0, 1.0, self.n_nodes_1d)
        self.q_points_1d, self.q_weights_1d = gauss_legendre_unit(self.n_nodes_1d)

        self._build_reference_cell()
        self._build_reference_faces()
        self._cache: Dict[Tuple[float, ...], CellValues] = {}

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def _tensor_values(self, x_pts, y_pts=None):
        """Shape values and reference gradients at tensor points."""
        vx, dx = lagrange_basis_1d(self.nodes_1d, x_pts)
        if self.dim == 1:
            return vx.copy(), dx[:, :, None].copy()

        vy, dy = lagrange_basis_1d(self.nodes_1d, y_pts)
        # points paired one-to-one: vx[q], vy[q]
        n_pts = vx.shape[0]
        n1 = self.n_nodes_1d
        values = np.empty((n_pts, self.dofs_per_cell))
        grads = np.empty((n_pts, self.dofs_per_cell, 2))
        for b in range(n1):
            for a in range(n1):
                i = a + n1 * b
                values[:, i] = vx[:, a] * vy[:, b]
                grads[:, i, 0] = dx[:, a] * vy[:, b]
                grads[:, i, 1] = vx[:, a] * dy[:, b]
        return values, grads

    def _build_reference_cell(self):
        xq, wq = self.q_points_1d, self.q_weights_1d
        if self.dim == 1:
            self.ref_points = xq.reshape(-1, 1)
            self.ref_weights = wq.copy()
            self.ref_values, self.ref_grads = self._tensor_values(xq)
            return
        # q = qx + n_q1 * qy
        px = np.tile(xq, len(xq))
        py = np.repeat(xq, len(xq))
        self.ref_points = np.column_stack([px, py])
        self.ref_weights = np.tile(wq, len(wq)) * np.repeat(wq, len(wq))
        self.ref_values, self.ref_grads = self._tensor_values(px, py)

    def _build_reference_faces(self):
        self.ref_face_values = []
        self.ref_face_grads = []
        self.ref_face_weights = []
        self.ref_face_normals = []
        for f in range(self.n_faces):
            axis, side = divmod(f, 2)
            normal = np.zeros(self.dim)
            normal[axis] = 1.0 if side == 1 else -1.0
            self.ref_face_normals.append(normal)
            if self.dim == 1:
                values, grads = self._tensor_values(np.array([float(side)]))
                weights = np.ones(1)
            else:
                along = self.q_points_1d
                fixed = np.full(len(along), float(side))
                if axis == 0:
                    values, grads = self._tensor_values(fixed, along)
                else:
                    values, grads = self._tensor_values(along, fixed)
                weights = self.q_weights_1d.copy()
            self.ref_face_values.append(values)
            self.ref_face_grads.append(grads)
            self.ref_face_weights.append(weights)

    # ------------------------------------------------------------------
    # Physical cell values
    # ------------------------------------------------------------------

    def reinit(self, h) -> CellValues:
        h = np.asarray(h, dtype=np.float64).reshape(self.dim)
        key = tuple(float(v) for v in h)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        face_grads = []
        face_jxw = []
        for f in range(self.n_faces):
            axis = f // 2
            face_grads.append(self.ref_face_grads[f] / h)
            # face measure: product of the tangential sizes
            face_jxw.append(self.ref_face_weights[f] * np.prod(np.delete(h, axis)))

        values = CellValues(
            h=h,
            shape_values=self.ref_values,
            shape_grads=self.ref_grads / h,
            JxW=self.ref_weights * np.prod(h),
            face_shape_values=self.ref_face_values,
            face_shape_grads=face_grads,
            face_JxW=face_jxw,
            face_normals=self.ref_face_normals,
        )
        self._cache[key] = values
        return values

    def __getstate__(self):
        state = self.__dict__.copy()
        state['_cache'] = {}
        return state

    def __repr__(self):
        return f"LagrangeElement(degree={self.degree}, dim={self.dim})"
