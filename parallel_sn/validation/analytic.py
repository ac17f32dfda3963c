"""
Compare solver results against infinite-medium analytic references.

A homogeneous slab with reflective boundaries on every side behaves as an
infinite medium, whose flux spectrum solves

  (diag(sigma_t) - sigma_s^T) phi = chi

and whose multiplication factor is  k_inf = nu_sigma_f . phi.

Reference for the default two-group fuel:
  phi = [2.5, 1.25],  k_inf = 1.125
"""
import json
import os
from typing import Optional

import numpy as np

from ..materials import Material, build_two_group_fuel


def infinite_medium_flux(material: Material) -> np.ndarray:
    """Spectrum of the infinite medium driven by chi (fission source of 1)."""
    removal = np.diag(material.sigma_t) - material.sigma_s.T
    return np.linalg.solve(removal, material.chi)


def infinite_medium_keff(material: Material) -> float:
    """k_inf = nu_sigma_f . (diag(sigma_t) - sigma_s^T)^-1 chi"""
    return float(material.nu_sigma_f @ infinite_medium_flux(material))


def _reflective_slab_config(material: Material, transport_model: str, discretization: str,
                            nda: bool, n_workers: int) -> dict:
    return {
        'domain_upper': [5.0],
        'n_cells': [10],
        'boundary_conditions': {'xmin': 'reflective', 'xmax': 'reflective'},
        'transport_model': transport_model,
        'discretization': discretization,
        'quadrature_order': 4,
        'nda': nda,
        'n_workers': n_workers,
        'err_k_tol': 1e-8,
        'err_phi_tol': 1e-7,
        'materials': {material.name: material.to_dict()},
    }


VALIDATION_CASES = (
    ('saaf', 'cfem', False),
    ('ep', 'cfem', False),
    ('ep', 'dfem', False),
    ('saaf', 'cfem', True),
)


def run_validation(n_workers: int = 1, output_path: Optional[str] = None,
                   tolerance: float = 1e-5) -> int:
    """Run every formulation on a reflective slab and compare with k_inf.

    Returns:
        exit status: 0 when every case is within the relative tolerance
    """
    from ..problem import run_problem

    material = build_two_group_fuel()
    ref_keff = infinite_medium_keff(material)

    print("=" * 70)
    print("  Infinite-Medium Validation")
    print("=" * 70)
    print(f"\n  Analytic reference: k_inf = {ref_keff:.6f}\n")

    rows = []
    status = 0
    for model, discretization, nda in VALIDATION_CASES:
        config = _reflective_slab_config(material, model, discretization, nda, n_workers)
        result = run_problem(config, verbose=False)
        rel = abs(result.keff - ref_keff) / ref_keff
        passed = rel <= tolerance
        status = status if passed else 1
        label = f"{model.upper()}{' + NDA' if nda else ''} / {discretization.upper()}"
        print(f"  {label:<22} k = {result.keff:.6f}  rel = {rel:.2e}  "
              f"iters = {result.n_iterations:3d}  {'PASS' if passed else 'FAIL'}")
        rows.append({
            'case': label,
            'keff': result.keff,
            'relative_error': rel,
            'n_iterations': result.n_iterations,
            'passed': passed,
        })

    print()
    print(f"  RESULT: {'PASS' if status == 0 else 'FAIL'}")
    print("=" * 70)

    if output_path:
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
        with open(output_path, 'w') as f:
            json.dump({'reference_keff': ref_keff, 'cases': rows}, f, indent=2)
        print(f"\n  Validation report saved to {output_path}")

    return status
