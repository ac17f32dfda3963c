"""
Angular quadrature sets and (direction, group) component indexing.

Every set integrates over the full sphere: weights sum to 4*pi regardless of
spatial dimension.

  1D slab : Gauss-Legendre cosines mu_i in (-1, 1), w_i = 2*pi * w_GL
  2D XY   : product of Gauss-Legendre polar cosines (upper hemisphere) and
            equally spaced azimuthal angles; directions are stored as their
            (x, y) projection and the weights carry the lower hemisphere

Component index:  k = g * n_dir + i_dir

Reflection at a boundary with outward normal n:

  Omega_r = Omega - 2 (Omega . n) n

The lookup tables are built once at construction and are read-only
afterwards.
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import numpy as np

from .constants import DIRECTION_MATCH_TOL
from .errors import ConfigurationError, InvalidBoundaryQuery


def boundary_normal(boundary_id: int, dim: int) -> np.ndarray:
    """Outward unit normal of boundary ``boundary_id`` (xmin=0, xmax=1, ...)."""
    if not 0 <= boundary_id < 2 * dim:
        raise ConfigurationError(
            f"boundary id {boundary_id} does not exist in {dim}D"
        )
    normal = np.zeros(dim)
    normal[boundary_id // 2] = -1.0 if boundary_id % 2 == 0 else 1.0
    return normal


def _frozen(array):
    array = np.ascontiguousarray(array)
    array.setflags(write=False)
    return array


class AngularQuadrature(ABC):
    """Discrete directions, weights, and component / reflection lookups.

    Args:
        order: quadrature order (even, >= 2)
        n_groups: number of energy groups
        reflective_bc: dict {boundary_id: bool}; reflected directions are
            tabulated only for boundaries flagged True
    """

    name = 'base'
    dim = 0

    def __init__(self, order: int, n_groups: int,
                 reflective_bc: Optional[Dict[int, bool]] = None):
        if order < 2 or order % 2 != 0:
            raise ConfigurationError(
                f"angular quadrature order must be even and >= 2, got {order}"
            )
        if n_groups < 1:
            raise ConfigurationError(f"n_groups must be >= 1, got {n_groups}")
        self.order = int(order)
        self.n_groups = int(n_groups)

        directions, weights = self._produce_angular_quad()
        self.directions = _frozen(np.asarray(directions, dtype=np.float64))
        self.weights = _frozen(np.asarray(weights, dtype=np.float64))
        self.n_dir = len(self.weights)

        self._initialize_component_index()
        self._initialize_reflective_directions(reflective_bc or {})

    # ------------------------------------------------------------------
    # Quadrature construction
    # ------------------------------------------------------------------

    @abstractmethod
    def _produce_angular_quad(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (directions [n_dir, dim], weights [n_dir])."""

    def _initialize_component_index(self):
        index = np.arange(self.n_groups * self.n_dir, dtype=np.int64)
        self._component_index = _frozen(index.reshape(self.n_groups, self.n_dir).T)
        inverse = np.empty((self.n_total_vars, 2), dtype=np.int64)
        for g in range(self.n_groups):
            for i_dir in range(self.n_dir):
                inverse[self._component_index[i_dir, g]] = (i_dir, g)
        self._inverse_component_index = _frozen(inverse)

    def _initialize_reflective_directions(self, reflective_bc):
        n_boundaries = 2 * self.dim
        is_reflective = np.zeros(n_boundaries, dtype=bool)
        reflected = np.full((n_boundaries, self.n_dir), -1, dtype=np.int64)

        for boundary_id, flag in reflective_bc.items():
            normal = boundary_normal(int(boundary_id), self.dim)
            if not flag:
                continue
            is_reflective[boundary_id] = True
            for i_dir, omega in enumerate(self.directions):
                omega_r = omega - 2.0 * np.dot(omega, normal) * normal
                distance = np.max(np.abs(self.directions - omega_r), axis=1)
                match = int(np.argmin(distance))
                if distance[match] > DIRECTION_MATCH_TOL:
                    raise ConfigurationError(
                        f"{self.name} quadrature has no reflection of direction "
                        f"{i_dir} about boundary {boundary_id}"
                    )
                reflected[boundary_id, i_dir] = match

        self._is_reflective = _frozen(is_reflective)
        self._reflective_direction_index = _frozen(reflected)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def n_total_vars(self) -> int:
        return self.n_dir * self.n_groups

    @property
    def total_weight(self) -> float:
        return float(np.sum(self.weights))

    def component_index(self, i_dir: int, g: int) -> int:
        if not (0 <= i_dir < self.n_dir and 0 <= g < self.n_groups):
            raise ConfigurationError(
                f"(direction {i_dir}, group {g}) outside {self.n_dir} directions "
                f"x {self.n_groups} groups"
            )
        return int(self._component_index[i_dir, g])

    def _check_component(self, k):
        if not 0 <= k < self.n_total_vars:
            raise ConfigurationError(
                f"component {k} outside [0, {self.n_total_vars})"
            )

    def component_direction(self, k: int) -> int:
        self._check_component(k)
        return int(self._inverse_component_index[k, 0])

    def component_group(self, k: int) -> int:
        self._check_component(k)
        return int(self._inverse_component_index[k, 1])

    def inverse_component(self, k: int) -> Tuple[int, int]:
        self._check_component(k)
        i_dir, g = self._inverse_component_index[k]
        return int(i_dir), int(g)

    def is_reflective(self, boundary_id: int) -> bool:
        return 0 <= boundary_id < len(self._is_reflective) and \
            bool(self._is_reflective[boundary_id])

    def reflected_direction(self, boundary_id: int, i_dir: int) -> int:
        """Direction index paired with ``i_dir`` by reflection at a boundary.

        Raises:
            InvalidBoundaryQuery: the boundary is not flagged reflective
        """
        if not self.is_reflective(boundary_id):
            raise InvalidBoundaryQuery(boundary_id)
        return int(self._reflective_direction_index[boundary_id, i_dir])

    def __repr__(self):
        return (f"{type(self).__name__}(order={self.order}, n_dir={self.n_dir}, "
                f"n_groups={self.n_groups})")


class GaussLegendreQuadrature(AngularQuadrature):
    """S_N Gauss-Legendre set for 1D slab geometry."""

    name = 'gauss_legendre'
    dim = 1

    def _produce_angular_quad(self):
        mu, w = np.polynomial.legendre.leggauss(self.order)
        return mu.reshape(-1, 1), 2.0 * np.pi * w


class ProductQuadrature(AngularQuadrature):
    """Gauss-Legendre x equal-weight azimuthal product set for 2D XY.

    Azimuthal angles are offset by half a step, so reflections about both
    axes map the set onto itself whenever ``n_azimuthal`` is even.
    """

    name = 'product'
    dim = 2

    def __init__(self, order: int, n_groups: int,
                 reflective_bc: Optional[Dict[int, bool]] = None,
                 n_azimuthal: Optional[int] = None):
        n_azimuthal = 2 * order if n_azimuthal is None else int(n_azimuthal)
        if n_azimuthal < 2 or n_azimuthal % 2 != 0:
            raise ConfigurationError(
                f"n_azimuthal must be even and >= 2, got {n_azimuthal}"
            )
        self.n_azimuthal = n_azimuthal
        super().__init__(order, n_groups, reflective_bc)

    def _produce_angular_quad(self):
        mu, w_polar = np.polynomial.legendre.leggauss(self.order)
        upper = mu > 0.0
        mu, w_polar = mu[upper], w_polar[upper]
        d_phi = 2.0 * np.pi / self.n_azimuthal
        phi = (np.arange(self.n_azimuthal) + 0.5) * d_phi

        directions = []
        weights = []
        for m, wp in zip(mu, w_polar):
            sin_theta = np.sqrt(1.0 - m * m)
            for p in phi:
                directions.append((sin_theta * np.cos(p), sin_theta * np.sin(p)))
                # factor 2: lower hemisphere folded onto the XY projection
                weights.append(2.0 * wp * d_phi)
        return np.array(directions), np.array(weights)


QUADRATURES = {
    GaussLegendreQuadrature.name: GaussLegendreQuadrature,
    ProductQuadrature.name: ProductQuadrature,
}


def make_quadrature(name: str, order: int, n_groups: int, dim: int,
                    reflective_bc: Optional[Dict[int, bool]] = None,
                    n_azimuthal: Optional[int] = None) -> AngularQuadrature:
    """Build an angular quadrature by name ('auto' picks by dimension)."""
    if name == 'auto':
        name = GaussLegendreQuadrature.name if dim == 1 else ProductQuadrature.name
    if name not in QUADRATURES:
        raise ConfigurationError(
            f"unknown angular quadrature '{name}'. Choose from: {sorted(QUADRATURES)}"
        )
    cls = QUADRATURES[name]
    if cls.dim != dim:
        raise ConfigurationError(f"{name} quadrature is for {cls.dim}D, not {dim}D")
    if cls is ProductQuadrature:
        return cls(order, n_groups, reflective_bc, n_azimuthal=n_azimuthal)
    return cls(order, n_groups, reflective_bc)
