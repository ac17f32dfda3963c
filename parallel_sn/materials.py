"""
Multigroup macroscopic material data.

Conventions:
  sigma_s[g_from, g_to]                 isotropic scattering transfer
  fission_transfer[g_in, g_out] = chi[g_out] * nu_sigma_f[g_in]
  q[g]                                  isotropic external source density

Angular formulations work with per-steradian forms (divided by 4*pi).
Groups are ordered fast to thermal; scattering from g_from into a lower
index g_to < g_from is upscattering.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from .errors import ConfigurationError


# ===================================================================
# Material dataclass
# ===================================================================

@dataclass
class Material:
    """Macroscopic multigroup cross sections of one material."""

    name: str
    mat_id: int
    sigma_t: np.ndarray            # [G] total
    sigma_s: np.ndarray            # [G, G] scattering g_from -> g_to
    nu_sigma_f: np.ndarray = None  # [G] production
    chi: np.ndarray = None         # [G] fission spectrum
    q: np.ndarray = None           # [G] external source density
    diffusion_coef: np.ndarray = None  # [G], default 1 / (3 sigma_t)

    def __post_init__(self):
        self.sigma_t = np.atleast_1d(np.asarray(self.sigma_t, dtype=np.float64))
        n_groups = len(self.sigma_t)
        self.sigma_s = np.asarray(self.sigma_s, dtype=np.float64).reshape(n_groups, n_groups)

        zeros = np.zeros(n_groups)
        self.nu_sigma_f = zeros.copy() if self.nu_sigma_f is None else \
            np.atleast_1d(np.asarray(self.nu_sigma_f, dtype=np.float64))
        self.chi = zeros.copy() if self.chi is None else \
            np.atleast_1d(np.asarray(self.chi, dtype=np.float64))
        self.q = zeros.copy() if self.q is None else \
            np.atleast_1d(np.asarray(self.q, dtype=np.float64))
        if self.diffusion_coef is None:
            self.diffusion_coef = 1.0 / (3.0 * self.sigma_t)
        else:
            self.diffusion_coef = np.atleast_1d(np.asarray(self.diffusion_coef, dtype=np.float64))

        for label in ('nu_sigma_f', 'chi', 'q', 'diffusion_coef'):
            if len(getattr(self, label)) != n_groups:
                raise ConfigurationError(
                    f"material '{self.name}': {label} must have {n_groups} groups"
                )
        if np.any(self.sigma_t <= 0.0):
            raise ConfigurationError(f"material '{self.name}': sigma_t must be positive")
        if np.any(self.sigma_s < 0.0) or np.any(self.nu_sigma_f < 0.0) or np.any(self.chi < 0.0):
            raise ConfigurationError(f"material '{self.name}': negative cross section")
        if np.any(self.sigma_s.sum(axis=1) > self.sigma_t * (1.0 + 1e-12)):
            raise ConfigurationError(
                f"material '{self.name}': scattering exceeds total cross section"
            )

    @property
    def n_groups(self) -> int:
        return len(self.sigma_t)

    @property
    def sigma_a(self) -> np.ndarray:
        return self.sigma_t - self.sigma_s.sum(axis=1)

    @property
    def is_fissile(self) -> bool:
        return bool(np.any(self.nu_sigma_f > 0.0))

    @property
    def fission_transfer(self) -> np.ndarray:
        """[g_in, g_out] production into g_out per unit flux in g_in."""
        return np.outer(self.nu_sigma_f, self.chi)

    @classmethod
    def from_dict(cls, name: str, data: dict) -> 'Material':
        if 'id' not in data:
            raise ConfigurationError(f"material '{name}' has no 'id'")
        return cls(
            name=name,
            mat_id=int(data['id']),
            sigma_t=data['sigma_t'],
            sigma_s=data.get('sigma_s', np.zeros((len(data['sigma_t']),) * 2)),
            nu_sigma_f=data.get('nu_sigma_f'),
            chi=data.get('chi'),
            q=data.get('q'),
            diffusion_coef=data.get('diffusion_coef'),
        )

    def to_dict(self) -> dict:
        return {
            'id': self.mat_id,
            'sigma_t': self.sigma_t.tolist(),
            'sigma_s': self.sigma_s.tolist(),
            'nu_sigma_f': self.nu_sigma_f.tolist(),
            'chi': self.chi.tolist(),
            'q': self.q.tolist(),
            'diffusion_coef': self.diffusion_coef.tolist(),
        }


# ===================================================================
# Material library (stacked arrays indexed by material id)
# ===================================================================

class MaterialLibrary:
    """All materials of a problem, stacked into arrays indexed [mat_id, ...]."""

    def __init__(self, materials: List[Material]):
        if not materials:
            raise ConfigurationError("at least one material is required")
        by_id = {}
        for mat in materials:
            if mat.mat_id in by_id:
                raise ConfigurationError(f"duplicate material id {mat.mat_id}")
            by_id[mat.mat_id] = mat
        if sorted(by_id) != list(range(len(by_id))):
            raise ConfigurationError(
                f"material ids must be 0..{len(by_id) - 1}, got {sorted(by_id)}"
            )
        n_groups = {mat.n_groups for mat in materials}
        if len(n_groups) != 1:
            raise ConfigurationError(f"materials disagree on group count: {sorted(n_groups)}")

        self.materials = [by_id[i] for i in range(len(by_id))]
        self.n_groups = n_groups.pop()
        self.n_materials = len(self.materials)

        self.sigma_t = np.array([m.sigma_t for m in self.materials])
        self.inv_sigma_t = 1.0 / self.sigma_t
        self.sigma_s = np.array([m.sigma_s for m in self.materials])
        self.nu_sigma_f = np.array([m.nu_sigma_f for m in self.materials])
        self.chi = np.array([m.chi for m in self.materials])
        self.q = np.array([m.q for m in self.materials])
        self.diffusion_coef = np.array([m.diffusion_coef for m in self.materials])
        self.is_fissile = np.array([m.is_fissile for m in self.materials])
        self.fission_transfer = np.array([m.fission_transfer for m in self.materials])

    def __getitem__(self, mat_id: int) -> Material:
        return self.materials[mat_id]

    def __len__(self):
        return self.n_materials

    @property
    def has_fission(self) -> bool:
        return bool(np.any(self.is_fissile))

    @property
    def has_upscatter(self) -> bool:
        # strictly lower triangle of sigma_s[g_from, g_to]
        return bool(np.any(np.tril(self.sigma_s, k=-1) > 0.0))

    def check_layout(self, material_ids: np.ndarray):
        unknown = set(np.unique(material_ids).tolist()) - set(range(self.n_materials))
        if unknown:
            raise ConfigurationError(f"mesh uses undefined material ids {sorted(unknown)}")

    @classmethod
    def from_dict(cls, data: Dict[str, dict]) -> 'MaterialLibrary':
        """Build from {name: {'id': ..., 'sigma_t': [...], ...}}."""
        return cls([Material.from_dict(name, props) for name, props in data.items()])

    @classmethod
    def from_json(cls, path: str) -> 'MaterialLibrary':
        with open(path) as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, dict]:
        return {m.name: m.to_dict() for m in self.materials}


# ===================================================================
# Builders for common test materials
# ===================================================================

def build_one_group_fuel(mat_id: int = 0, sigma_t: float = 1.0, sigma_s: float = 0.5,
                         nu_sigma_f: float = 0.6) -> Material:
    """One-group multiplying medium; k_inf = nu_sigma_f / (sigma_t - sigma_s)."""
    return Material(
        name='fuel_1g', mat_id=mat_id,
        sigma_t=[sigma_t], sigma_s=[[sigma_s]],
        nu_sigma_f=[nu_sigma_f], chi=[1.0],
    )


def build_two_group_fuel(mat_id: int = 0) -> Material:
    """Two-group fuel with downscatter only; k_inf = 1.125."""
    return Material(
        name='fuel_2g', mat_id=mat_id,
        sigma_t=[1.0, 2.0],
        sigma_s=[[0.6, 0.3],
                 [0.0, 1.4]],
        nu_sigma_f=[0.05, 0.8],
        chi=[1.0, 0.0],
    )


def build_two_group_upscatter_fuel(mat_id: int = 0) -> Material:
    """Two-group fuel with thermal upscattering."""
    return Material(
        name='fuel_2g_up', mat_id=mat_id,
        sigma_t=[1.0, 2.0],
        sigma_s=[[0.6, 0.3],
                 [0.1, 1.3]],
        nu_sigma_f=[0.05, 0.8],
        chi=[1.0, 0.0],
    )


def build_absorber(mat_id: int = 0, n_groups: int = 1, sigma_t: float = 1.0,
                   scattering_ratio: float = 0.0, source: Optional[float] = None) -> Material:
    """Non-fissile medium with in-group scattering and optional flat source."""
    sigma_s = np.diag(np.full(n_groups, scattering_ratio * sigma_t))
    q = None if source is None else np.full(n_groups, source)
    return Material(
        name='absorber', mat_id=mat_id,
        sigma_t=np.full(n_groups, sigma_t), sigma_s=sigma_s, q=q,
    )
