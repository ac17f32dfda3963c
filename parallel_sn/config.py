"""
Problem configuration.

A ProblemConfig is a flat dataclass mirroring the JSON input file:

{
  "domain_upper": [10.0],
  "n_cells": [20],
  "boundary_conditions": {"xmin": "reflective", "xmax": "vacuum"},
  "transport_model": "saaf",
  "quadrature_order": 8,
  "materials": {
    "fuel": {"id": 0, "sigma_t": [1.0], "sigma_s": [[0.5]],
             "nu_sigma_f": [0.6], "chi": [1.0]}
  }
}

Defaults come from constants.py; ``validate`` raises ConfigurationError.
"""
import json
from dataclasses import dataclass, field, fields, asdict
from typing import Dict, List, Optional

from .constants import (
    BOUNDARY_NAMES, BOUNDARY_KINDS, INCIDENT, CFEM, DFEM, DISCRETIZATIONS,
    ERR_K_TOL, ERR_PHI_TOL, MAX_EIGEN_ITERATIONS,
    MG_TOL, MAX_MG_SWEEPS, IG_TOL, MAX_IG_ITERATIONS, K_INIT,
    LINEAR_SOLVER, PRECONDITIONER, LINEAR_SOLVER_RTOL, LINEAR_SOLVER_MAXITER,
)
from .errors import ConfigurationError

TRANSPORT_MODEL_NAMES = ('saaf', 'ep')
QUADRATURE_NAMES = ('auto', 'gauss_legendre', 'product')
LINEAR_SOLVER_NAMES = ('direct', 'gmres', 'bicgstab', 'cg')


@dataclass
class ProblemConfig:
    """All inputs of one transport calculation."""

    # Geometry
    domain_upper: List[float] = field(default_factory=lambda: [10.0])
    n_cells: List[int] = field(default_factory=lambda: [10])
    material_layout: Optional[list] = None
    uniform_refinements: int = 0
    boundary_conditions: Dict[str, str] = field(default_factory=dict)
    incident_flux: Dict[str, List[float]] = field(default_factory=dict)

    # Discretization
    transport_model: str = 'saaf'
    discretization: str = CFEM
    fe_degree: int = 1
    quadrature: str = 'auto'
    quadrature_order: int = 4
    n_azimuthal: Optional[int] = None

    # Problem type
    eigen: bool = True
    nda: bool = False

    # Iteration control
    err_k_tol: float = ERR_K_TOL
    err_phi_tol: float = ERR_PHI_TOL
    max_eigen_iterations: int = MAX_EIGEN_ITERATIONS
    mg_tol: float = MG_TOL
    max_mg_sweeps: int = MAX_MG_SWEEPS
    ig_tol: float = IG_TOL
    max_ig_iterations: int = MAX_IG_ITERATIONS
    k_init: float = K_INIT
    fatal_mg_nonconvergence: bool = False

    # Linear algebra and parallelism
    linear_solver: str = LINEAR_SOLVER
    preconditioner: Optional[str] = PRECONDITIONER
    linear_solver_rtol: float = LINEAR_SOLVER_RTOL
    linear_solver_maxiter: int = LINEAR_SOLVER_MAXITER
    n_workers: int = 1

    materials: Dict[str, dict] = field(default_factory=dict)

    @property
    def dimension(self) -> int:
        return len(self.domain_upper)

    def validate(self):
        """Check value ranges and cross-field consistency."""
        dim = self.dimension
        if dim not in (1, 2):
            raise ConfigurationError(f"only 1D and 2D problems are supported, got {dim}D")
        if len(self.n_cells) != dim:
            raise ConfigurationError("n_cells must have one entry per dimension")
        if any(x <= 0.0 for x in self.domain_upper):
            raise ConfigurationError("domain_upper must be positive")

        valid_names = {BOUNDARY_NAMES[b] for b in range(2 * dim)}
        for name, kind in self.boundary_conditions.items():
            if name not in valid_names:
                raise ConfigurationError(f"unknown boundary '{name}' for a {dim}D problem")
            if kind not in BOUNDARY_KINDS:
                raise ConfigurationError(
                    f"unknown boundary kind '{kind}'. Choose from: {BOUNDARY_KINDS}"
                )
            if kind == INCIDENT and name not in self.incident_flux:
                raise ConfigurationError(f"incident boundary '{name}' needs incident_flux")

        if self.transport_model not in TRANSPORT_MODEL_NAMES:
            raise ConfigurationError(
                f"unknown transport model '{self.transport_model}'. "
                f"Choose from: {TRANSPORT_MODEL_NAMES}"
            )
        if self.discretization not in DISCRETIZATIONS:
            raise ConfigurationError(
                f"unknown discretization '{self.discretization}'. Choose from: {DISCRETIZATIONS}"
            )
        if self.transport_model == 'saaf' and self.discretization == DFEM:
            raise ConfigurationError("SAAF is only available with continuous elements (cfem)")
        if self.nda and self.discretization != CFEM:
            raise ConfigurationError("NDA needs a continuous (cfem) high-order equation")
        if self.fe_degree < 1:
            raise ConfigurationError("fe_degree must be >= 1")
        if self.quadrature not in QUADRATURE_NAMES:
            raise ConfigurationError(
                f"unknown quadrature '{self.quadrature}'. Choose from: {QUADRATURE_NAMES}"
            )
        if self.linear_solver not in LINEAR_SOLVER_NAMES:
            raise ConfigurationError(
                f"unknown linear solver '{self.linear_solver}'. Choose from: {LINEAR_SOLVER_NAMES}"
            )

        for name in ('err_k_tol', 'err_phi_tol', 'mg_tol', 'ig_tol',
                     'linear_solver_rtol', 'k_init'):
            if not getattr(self, name) > 0.0:
                raise ConfigurationError(f"{name} must be positive")
        for name in ('max_eigen_iterations', 'max_mg_sweeps', 'max_ig_iterations',
                     'linear_solver_maxiter', 'n_workers'):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1")
        if self.uniform_refinements < 0:
            raise ConfigurationError("uniform_refinements must be >= 0")
        if not self.materials:
            raise ConfigurationError("no materials defined")
        return self

    @classmethod
    def from_dict(cls, data: dict) -> 'ProblemConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"unknown configuration keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_json(cls, path: str) -> 'ProblemConfig':
        with open(path) as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> dict:
        return asdict(self)
