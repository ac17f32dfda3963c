"""
Shared pytest fixtures for parallel_sn test suite.
"""
import numpy as np
import pytest

from parallel_sn.backends.serial import SerialBackend
from parallel_sn.equation import Equation
from parallel_sn.fe import LagrangeElement
from parallel_sn.formulations import NDA, make_formulation
from parallel_sn.materials import (
    MaterialLibrary, build_one_group_fuel, build_two_group_fuel,
    build_two_group_upscatter_fuel,
)
from parallel_sn.mesh import BoundaryConditions, DoFHandler, generate_mesh
from parallel_sn.quadrature import make_quadrature
from parallel_sn.solvers import make_linear_solver


@pytest.fixture
def serial_backend():
    """Single-process backend."""
    return SerialBackend()


@pytest.fixture
def fuel_1g():
    """One-group fuel library, k_inf = 1.2."""
    return MaterialLibrary([build_one_group_fuel()])


@pytest.fixture
def fuel_2g():
    """Two-group downscatter fuel library, k_inf = 1.125."""
    return MaterialLibrary([build_two_group_fuel()])


@pytest.fixture
def fuel_2g_up():
    """Two-group fuel library with upscattering."""
    return MaterialLibrary([build_two_group_upscatter_fuel()])


@pytest.fixture
def slab_mesh():
    """5 cm slab, 10 cells."""
    return generate_mesh([5.0], [10])


@pytest.fixture
def square_mesh():
    """2 x 2 cm square, 3 x 3 cells."""
    return generate_mesh([2.0, 2.0], [3, 3])


def _reflective(dim):
    return {bid: 'reflective' for bid in range(2 * dim)}


@pytest.fixture
def make_equation(serial_backend):
    """Factory: build an Equation on a mesh with the given settings."""

    def _make(materials, mesh, kinds=None, model='saaf', discretization='cfem',
              degree=1, order=4, is_eigen=True, incident=None, solver='direct',
              backend=None, reflective=False):
        dim = mesh.dim
        if reflective:
            kinds = _reflective(dim)
        bcs = BoundaryConditions.from_dict(kinds or {}, incident or {}, dim,
                                           materials.n_groups)
        aq = make_quadrature('auto', order, materials.n_groups, dim, bcs.reflective_map())
        element = LagrangeElement(degree, dim)
        if model == 'nda':
            formulation = NDA(aq, materials, bcs, element, is_eigen, mesh=mesh)
        else:
            formulation = make_formulation(model, aq, materials, bcs, element, is_eigen)
        dof_handler = DoFHandler(mesh, element, discretization)
        return Equation(model, formulation, dof_handler, backend or serial_backend,
                        make_linear_solver(solver))

    return _make


@pytest.fixture
def slab_config():
    """Factory: problem dict for a 1D slab of the given material."""

    def _config(material, **overrides):
        config = {
            'domain_upper': [5.0],
            'n_cells': [10],
            'boundary_conditions': {'xmin': 'reflective', 'xmax': 'reflective'},
            'quadrature_order': 4,
            'err_k_tol': 1e-8,
            'err_phi_tol': 1e-7,
            'materials': {material.name: material.to_dict()},
        }
        config.update(overrides)
        return config

    return _config


def assert_rel_close(value, reference, rtol):
    """Relative comparison with a readable message."""
    rel = abs(value - reference) / abs(reference)
    assert rel <= rtol, f"{value:.8f} vs {reference:.8f} (rel {rel:.2e} > {rtol:.1e})"


@pytest.fixture
def rel_close():
    return assert_rel_close


@pytest.fixture
def rng():
    """Numpy Generator with fixed seed for reproducible tests."""
    return np.random.default_rng(42)
