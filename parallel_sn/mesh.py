"""
Structured Cartesian meshes, boundary conditions and degree-of-freedom maps.

Cells are numbered  c = ix + nx * iy  and faces follow the boundary-id
convention (xmin=0, xmax=1, ymin=2, ymax=3); the neighbor across face f
sees the shared face as f ^ 1.

Degrees of freedom:
  CFEM - nodes shared between cells; global node I + (nx*p + 1) * J with
         I = ix*p + a, J = iy*p + b
  DFEM - every cell owns its dofs; global dof c * dofs_per_cell + i
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from .constants import (
    BOUNDARY_NAMES, BOUNDARY_KINDS, VACUUM, REFLECTIVE, INCIDENT,
    CFEM, DISCRETIZATIONS,
)
from .errors import ConfigurationError
from .fe import LagrangeElement


# ===================================================================
# Mesh topology
# ===================================================================

class CartesianMesh:
    """Tensor-product mesh of axis-aligned cells in 1D or 2D.

    Parameters
    ----------
    x_edges : array_like
        Cell edges along x (increasing).
    y_edges : array_like, optional
        Cell edges along y; omit for a 1D slab.
    material_ids : array_like of int, optional
        Material id per cell in cell order (default all 0).
    """

    def __init__(self, x_edges, y_edges=None, material_ids=None):
        self.x_edges = np.asarray(x_edges, dtype=np.float64)
        self.y_edges = None if y_edges is None else np.asarray(y_edges, dtype=np.float64)
        for edges in (self.x_edges, self.y_edges):
            if edges is None:
                continue
            if len(edges) < 2 or np.any(np.diff(edges) <= 0.0):
                raise ConfigurationError("cell edges must be strictly increasing")

        self.dim = 1 if self.y_edges is None else 2
        self.nx = len(self.x_edges) - 1
        self.ny = 1 if self.dim == 1 else len(self.y_edges) - 1
        self.n_cells = self.nx * self.ny
        self.n_faces = 2 * self.dim

        if material_ids is None:
            material_ids = np.zeros(self.n_cells, dtype=np.int64)
        self.material_ids = np.asarray(material_ids, dtype=np.int64).ravel()
        if len(self.material_ids) != self.n_cells:
            raise ConfigurationError(
                f"{len(self.material_ids)} material ids for {self.n_cells} cells"
            )

        self._build_topology()

    def _build_topology(self):
        ix = np.arange(self.n_cells) % self.nx
        iy = np.arange(self.n_cells) // self.nx
        self.cell_ix = ix
        self.cell_iy = iy

        hx = np.diff(self.x_edges)[ix]
        if self.dim == 1:
            self.cell_sizes = hx.reshape(-1, 1)
            self.cell_centers = (self.x_edges[ix] + 0.5 * hx).reshape(-1, 1)
        else:
            hy = np.diff(self.y_edges)[iy]
            self.cell_sizes = np.column_stack([hx, hy])
            self.cell_centers = np.column_stack([
                self.x_edges[ix] + 0.5 * hx,
                self.y_edges[iy] + 0.5 * hy,
            ])

        neighbors = np.full((self.n_cells, self.n_faces), -1, dtype=np.int64)
        c = np.arange(self.n_cells)
        neighbors[:, 0] = np.where(ix > 0, c - 1, -1)
        neighbors[:, 1] = np.where(ix < self.nx - 1, c + 1, -1)
        if self.dim == 2:
            neighbors[:, 2] = np.where(iy > 0, c - self.nx, -1)
            neighbors[:, 3] = np.where(iy < self.ny - 1, c + self.nx, -1)
        self.neighbors = neighbors
        self.at_boundary = np.any(neighbors < 0, axis=1)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def cell_size(self, cell: int) -> np.ndarray:
        return self.cell_sizes[cell]

    def cell_volume(self, cell: int) -> float:
        return float(np.prod(self.cell_sizes[cell]))

    def material_id(self, cell: int) -> int:
        return int(self.material_ids[cell])

    def neighbor(self, cell: int, face: int) -> int:
        """Neighbor across ``face``, or -1 on the domain boundary."""
        return int(self.neighbors[cell, face])

    def boundary_id(self, cell: int, face: int) -> int:
        """Boundary id of ``face``, or -1 for an interior face."""
        return face if self.neighbors[cell, face] < 0 else -1

    def boundary_faces(self, cell: int) -> List[int]:
        """Faces of ``cell`` on the domain boundary (face == boundary id)."""
        return [f for f in range(self.n_faces) if self.neighbors[cell, f] < 0]

    def partition(self, n_parts: int) -> List[np.ndarray]:
        """Split cells into contiguous, disjoint owned subsets."""
        n_parts = max(1, min(int(n_parts), self.n_cells))
        return np.array_split(np.arange(self.n_cells, dtype=np.int64), n_parts)

    @property
    def domain_upper(self) -> np.ndarray:
        upper = [self.x_edges[-1]]
        if self.dim == 2:
            upper.append(self.y_edges[-1])
        return np.array(upper)

    def __repr__(self):
        shape = f"{self.nx}" if self.dim == 1 else f"{self.nx}x{self.ny}"
        return f"CartesianMesh({self.dim}D, {shape} cells)"


def generate_mesh(domain_upper: Sequence[float], n_cells: Sequence[int],
                  material_layout=None, uniform_refinements: int = 0) -> CartesianMesh:
    """Build a mesh from a coarse material layout and refine it uniformly.

    Parameters
    ----------
    domain_upper : sequence of float
        Domain extent per axis; the lower corner is the origin.
    n_cells : sequence of int
        Coarse cells per axis.
    material_layout : list, optional
        1D: list of ``n_cells[0]`` material ids.
        2D: list of ``n_cells[1]`` rows (ymin row first), each with
        ``n_cells[0]`` ids. Default: material 0 everywhere.
    uniform_refinements : int
        Each refinement halves every cell along every axis; sub-cells inherit
        the coarse cell's material.
    """
    dim = len(domain_upper)
    if dim not in (1, 2) or len(n_cells) != dim:
        raise ConfigurationError(
            f"domain_upper and n_cells must both have 1 or 2 entries, "
            f"got {len(domain_upper)} and {len(n_cells)}"
        )
    if any(n < 1 for n in n_cells):
        raise ConfigurationError(f"n_cells must be positive, got {list(n_cells)}")
    if uniform_refinements < 0:
        raise ConfigurationError("uniform_refinements must be >= 0")

    coarse_shape = tuple(int(n) for n in reversed(n_cells))   # (ny, nx) or (nx,)
    if material_layout is None:
        coarse = np.zeros(coarse_shape, dtype=np.int64)
    else:
        coarse = np.asarray(material_layout, dtype=np.int64)
        if coarse.shape != coarse_shape:
            raise ConfigurationError(
                f"material layout shape {coarse.shape} does not match {coarse_shape}"
            )

    factor = 2 ** int(uniform_refinements)
    fine = coarse
    for axis in range(dim):
        fine = np.repeat(fine, factor, axis=axis)

    x_edges = np.linspace(0.0, float(domain_upper[0]), n_cells[0] * factor + 1)
    y_edges = None
    if dim == 2:
        y_edges = np.linspace(0.0, float(domain_upper[1]), n_cells[1] * factor + 1)
    return CartesianMesh(x_edges, y_edges, fine.ravel())


# ===================================================================
# Boundary conditions
# ===================================================================

def _boundary_id(key, dim: int) -> int:
    names = {name: bid for bid, name in BOUNDARY_NAMES.items()}
    bid = names[key] if key in names else int(key)
    if not 0 <= bid < 2 * dim:
        raise ConfigurationError(f"boundary '{key}' does not exist in {dim}D")
    return bid


@dataclass
class BoundaryConditions:
    """Boundary treatment per boundary id.

    ``incident`` holds the isotropic incoming angular flux per group for
    boundaries of kind 'incident'.
    """
    dim: int
    n_groups: int
    kinds: Dict[int, str] = field(default_factory=dict)
    incident: Dict[int, np.ndarray] = field(default_factory=dict)

    def __post_init__(self):
        for bid in range(2 * self.dim):
            self.kinds.setdefault(bid, VACUUM)
        for bid, kind in self.kinds.items():
            if kind not in BOUNDARY_KINDS:
                raise ConfigurationError(
                    f"unknown boundary kind '{kind}'. Choose from: {BOUNDARY_KINDS}"
                )
            if kind == INCIDENT:
                if bid not in self.incident:
                    raise ConfigurationError(f"incident boundary {bid} has no incident flux")
                values = np.asarray(self.incident[bid], dtype=np.float64).ravel()
                if len(values) != self.n_groups:
                    raise ConfigurationError(
                        f"incident flux on boundary {bid} needs {self.n_groups} groups"
                    )
                self.incident[bid] = values

    @classmethod
    def from_dict(cls, kinds: Dict, incident: Optional[Dict], dim: int,
                  n_groups: int) -> 'BoundaryConditions':
        """Build from name- or id-keyed dicts, e.g. {'xmin': 'reflective'}."""
        kinds = {_boundary_id(k, dim): v for k, v in (kinds or {}).items()}
        incident = {_boundary_id(k, dim): v for k, v in (incident or {}).items()}
        return cls(dim=dim, n_groups=n_groups, kinds=kinds, incident=incident)

    def kind(self, boundary_id: int) -> str:
        return self.kinds[boundary_id]

    def is_reflective(self, boundary_id: int) -> bool:
        return self.kinds[boundary_id] == REFLECTIVE

    @property
    def any_reflective(self) -> bool:
        return any(kind == REFLECTIVE for kind in self.kinds.values())

    def reflective_map(self) -> Dict[int, bool]:
        return {bid: kind == REFLECTIVE for bid, kind in self.kinds.items()}

    def incident_flux(self, boundary_id: int, g: int) -> float:
        if self.kinds[boundary_id] != INCIDENT:
            return 0.0
        return float(self.incident[boundary_id][g])


# ===================================================================
# Degrees of freedom
# ===================================================================

class DoFHandler:
    """Maps cells to global dof indices for a given element and discretization."""

    def __init__(self, mesh: CartesianMesh, element: LagrangeElement,
                 discretization: str = CFEM):
        if discretization not in DISCRETIZATIONS:
            raise ConfigurationError(
                f"unknown discretization '{discretization}'. Choose from: {DISCRETIZATIONS}"
            )
        if element.dim != mesh.dim:
            raise ConfigurationError(
                f"{element.dim}D element on a {mesh.dim}D mesh"
            )
        self.mesh = mesh
        self.element = element
        self.discretization = discretization
        self.dofs_per_cell = element.dofs_per_cell
        self._distribute_dofs()

    def _distribute_dofs(self):
        mesh = self.mesh
        nd = self.dofs_per_cell
        cells = np.arange(mesh.n_cells, dtype=np.int64)

        if self.discretization != CFEM:
            self.cell_dof_table = cells[:, None] * nd + np.arange(nd, dtype=np.int64)
            self.n_dofs = mesh.n_cells * nd
            return

        p = self.element.degree
        n1 = p + 1
        local = np.arange(nd, dtype=np.int64)
        a = local % n1
        b = local // n1
        I = mesh.cell_ix[:, None] * p + a[None, :]
        if mesh.dim == 1:
            self.cell_dof_table = I
            self.n_dofs = mesh.nx * p + 1
        else:
            J = mesh.cell_iy[:, None] * p + b[None, :]
            row = mesh.nx * p + 1
            self.cell_dof_table = I + row * J
            self.n_dofs = row * (mesh.ny * p + 1)

    @property
    def is_continuous(self) -> bool:
        return self.discretization == CFEM

    def cell_dofs(self, cell: int) -> np.ndarray:
        return self.cell_dof_table[cell]

    def __repr__(self):
        return (f"DoFHandler({self.discretization}, p={self.element.degree}, "
                f"n_dofs={self.n_dofs})")
