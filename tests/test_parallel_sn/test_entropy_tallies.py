"""
Tests for parallel_sn.entropy and parallel_sn.tallies modules.
"""
import numpy as np
import pytest

from parallel_sn.entropy import EntropyMonitor
from parallel_sn.errors import ConfigurationError
from parallel_sn.fe import LagrangeElement
from parallel_sn.materials import MaterialLibrary, build_absorber, build_one_group_fuel
from parallel_sn.mesh import DoFHandler, generate_mesh
from parallel_sn.tallies import (
    cell_average_flux, cell_integrated_flux, cell_reaction_rate, group_integrated_flux,
)


class TestEntropyMonitor:
    def test_uniform_source_maximum(self):
        mesh = generate_mesh([1.0, 1.0], [4, 4])
        monitor = EntropyMonitor(mesh, n_x=2, n_y=2)
        assert monitor.compute(np.ones(mesh.n_cells)) == pytest.approx(np.log(4))
        assert monitor.max_entropy == pytest.approx(np.log(4))

    def test_point_source_zero(self, slab_mesh):
        monitor = EntropyMonitor(slab_mesh)
        source = np.zeros(slab_mesh.n_cells)
        source[3] = 1.0
        assert monitor.compute(source) == pytest.approx(0.0)

    def test_zero_source_recorded(self, slab_mesh):
        monitor = EntropyMonitor(slab_mesh)
        assert monitor.compute(np.zeros(slab_mesh.n_cells)) == 0.0
        assert monitor.history == [0.0]

    def test_bins_capped_by_mesh(self):
        mesh = generate_mesh([1.0], [3])
        monitor = EntropyMonitor(mesh)
        assert monitor.n_x == 3
        assert monitor.n_y == 1

    def test_convergence_heuristic(self, slab_mesh):
        monitor = EntropyMonitor(slab_mesh)
        for _ in range(19):
            monitor.compute(np.ones(slab_mesh.n_cells))
        assert not monitor.is_converged
        monitor.compute(np.ones(slab_mesh.n_cells))
        assert monitor.is_converged


@pytest.fixture
def flat_flux():
    mesh = generate_mesh([4.0, 2.0], [2, 2], [[0, 1], [0, 1]])
    dofs = DoFHandler(mesh, LagrangeElement(1, 2))
    return dofs, [np.ones(dofs.n_dofs)]


class TestTallies:
    def test_cell_average_of_constant(self, flat_flux):
        dofs, sflxes = flat_flux
        np.testing.assert_allclose(cell_average_flux(dofs, sflxes), 1.0)

    def test_cell_integral_is_volume(self, flat_flux):
        dofs, sflxes = flat_flux
        np.testing.assert_allclose(cell_integrated_flux(dofs, sflxes)[:, 0], 2.0)
        np.testing.assert_allclose(group_integrated_flux(dofs, sflxes), [8.0])

    def test_linear_flux_average(self):
        mesh = generate_mesh([2.0], [2])
        dofs = DoFHandler(mesh, LagrangeElement(1, 1))
        phi = np.array([0.0, 1.0, 2.0])
        np.testing.assert_allclose(cell_average_flux(dofs, [phi])[:, 0], [0.5, 1.5])

    def test_reaction_rates(self, flat_flux):
        dofs, sflxes = flat_flux
        lib = MaterialLibrary([build_one_group_fuel(0), build_absorber(1, sigma_t=3.0)])
        absorption = cell_reaction_rate(dofs, lib, sflxes, 'absorption')
        # fuel sigma_a = 0.5, absorber sigma_a = 3.0; cell volume 2
        np.testing.assert_allclose(absorption, [1.0, 6.0, 1.0, 6.0])
        fission = cell_reaction_rate(dofs, lib, sflxes, 'fission')
        np.testing.assert_allclose(fission, [1.2, 0.0, 1.2, 0.0])

    def test_unknown_reaction_raises(self, flat_flux):
        dofs, sflxes = flat_flux
        with pytest.raises(ConfigurationError):
            cell_reaction_rate(dofs, MaterialLibrary([build_absorber()]), sflxes, 'capture')
