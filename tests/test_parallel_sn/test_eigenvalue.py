"""
Tests for parallel_sn.eigenvalue and parallel_sn.fixed_source modules.
"""
import json

import numpy as np
import pytest

from parallel_sn.eigenvalue import EigenvalueResult, PowerIteration, total_relative_change
from parallel_sn.errors import ConfigurationError, NonConvergence
from parallel_sn.fixed_source import FixedSourceIteration, FixedSourceResult
from parallel_sn.materials import build_absorber, build_one_group_fuel, build_two_group_fuel
from parallel_sn.problem import run_problem


VACUUM_SLAB = {'xmin': 'vacuum', 'xmax': 'vacuum'}


@pytest.fixture
def reflective_2g_result(slab_config):
    """Two-group SAAF k-eigenvalue on a reflective slab."""
    return run_problem(slab_config(build_two_group_fuel()), verbose=False)


class TestInfiniteMedium:
    def test_one_group_keff(self, slab_config, rel_close):
        result = run_problem(slab_config(build_one_group_fuel()), verbose=False)
        rel_close(result.keff, 1.2, 1e-6)

    @pytest.mark.parametrize("model,discretization,nda", [
        ('saaf', 'cfem', False),
        ('ep', 'cfem', False),
        ('ep', 'dfem', False),
        ('saaf', 'cfem', True),
        ('ep', 'cfem', True),
    ])
    def test_two_group_keff(self, slab_config, rel_close, model, discretization, nda):
        config = slab_config(build_two_group_fuel(), transport_model=model,
                             discretization=discretization, nda=nda)
        result = run_problem(config, verbose=False)
        rel_close(result.keff, 1.125, 1e-5)

    def test_two_group_spectrum(self, reflective_2g_result):
        flux = reflective_2g_result.cell_flux
        np.testing.assert_allclose(flux[:, 1] / flux[:, 0], 0.5, rtol=1e-5)

    def test_2d_keff(self, rel_close):
        material = build_two_group_fuel()
        config = {
            'domain_upper': [2.0, 2.0],
            'n_cells': [2, 2],
            'boundary_conditions': {b: 'reflective' for b in ('xmin', 'xmax', 'ymin', 'ymax')},
            'quadrature_order': 2,
            'err_k_tol': 1e-8,
            'err_phi_tol': 1e-7,
            'materials': {material.name: material.to_dict()},
        }
        result = run_problem(config, verbose=False)
        rel_close(result.keff, 1.125, 1e-5)
        assert result.cell_centers.shape == (4, 2)


class TestResult:
    def test_is_eigenvalue_result(self, reflective_2g_result):
        assert isinstance(reflective_2g_result, EigenvalueResult)

    def test_history_lengths(self, reflective_2g_result):
        r = reflective_2g_result
        assert len(r.keff_history) == r.n_iterations
        assert len(r.err_k_history) == r.n_iterations
        assert len(r.err_phi_history) == r.n_iterations
        assert len(r.entropy_history) == r.n_iterations
        assert r.keff == r.keff_history[-1]

    def test_final_errors_within_tolerance(self, reflective_2g_result):
        assert reflective_2g_result.err_k_history[-1] <= 1e-8
        assert reflective_2g_result.err_phi_history[-1] <= 1e-7

    def test_flat_source_has_maximum_entropy(self, reflective_2g_result):
        assert reflective_2g_result.entropy_history[-1] == pytest.approx(np.log(10), rel=1e-6)

    def test_group_flux_follows_downscatter_balance(self, reflective_2g_result):
        # sigma_a,1 phi_1 = sigma_s,0->1 phi_0  ->  phi_0 / phi_1 = 0.6 / 0.3
        group_flux = reflective_2g_result.group_flux
        assert group_flux.shape == (2,)
        assert group_flux[0] / group_flux[1] == pytest.approx(2.0, rel=1e-6)

    def test_flat_entropy_reported_stationary_once_history_is_long(self, reflective_2g_result):
        r = reflective_2g_result
        assert r.entropy_converged == (r.n_iterations >= 20)

    def test_to_dict_is_json_serializable(self, reflective_2g_result):
        d = reflective_2g_result.to_dict()
        text = json.dumps(d)
        assert json.loads(text)['keff'] == pytest.approx(reflective_2g_result.keff)
        assert d['n_groups'] == 2
        assert d['n_directions'] == 4
        assert len(d['group_flux']) == 2
        assert isinstance(d['entropy_converged'], bool)

    def test_summary_prints(self, reflective_2g_result, capsys):
        reflective_2g_result.summary()
        out = capsys.readouterr().out
        assert 'k_eff' in out
        assert 'SAAF' in out


class TestFiniteSlab:
    def test_leakage_lowers_keff(self, slab_config):
        config = slab_config(build_two_group_fuel(), boundary_conditions=VACUUM_SLAB)
        result = run_problem(config, verbose=False)
        assert 0.0 < result.keff < 1.125

    def test_flux_peaks_in_center(self, slab_config):
        config = slab_config(build_two_group_fuel(), boundary_conditions=VACUUM_SLAB)
        flux = run_problem(config, verbose=False).cell_flux[:, 0]
        assert flux[4] > flux[0]
        np.testing.assert_allclose(flux, flux[::-1], rtol=1e-6)

    def test_models_agree(self, slab_config):
        keffs = {}
        for model, discretization in (('saaf', 'cfem'), ('ep', 'cfem'), ('ep', 'dfem')):
            config = slab_config(build_two_group_fuel(), boundary_conditions=VACUUM_SLAB,
                                 transport_model=model, discretization=discretization,
                                 n_cells=[20])
            keffs[(model, discretization)] = run_problem(config, verbose=False).keff
        reference = keffs[('saaf', 'cfem')]
        for keff in keffs.values():
            assert abs(keff - reference) / reference < 3e-2

    def test_nda_matches_transport(self, slab_config):
        base = slab_config(build_two_group_fuel(), boundary_conditions=VACUUM_SLAB)
        ho = run_problem(base, verbose=False).keff
        accelerated = run_problem(dict(base, nda=True), verbose=False)
        assert accelerated.nda
        assert abs(accelerated.keff - ho) / ho < 2e-2


class TestPowerIterationErrors:
    def test_iteration_cap_raises(self, slab_config):
        config = slab_config(build_one_group_fuel(), max_eigen_iterations=1)
        with pytest.raises(NonConvergence) as exc_info:
            run_problem(config, verbose=False)
        err = exc_info.value
        assert err.iterations == 1
        assert set(err.errors) == {'err_k', 'err_phi'}
        assert err.keff is not None

    def test_needs_eigen_equation(self, make_equation, fuel_1g, slab_mesh):
        eq = make_equation(fuel_1g, slab_mesh, is_eigen=False)
        with pytest.raises(ConfigurationError):
            PowerIteration(eq)

    def test_rejects_nonpositive_k_init(self, make_equation, fuel_1g, slab_mesh):
        eq = make_equation(fuel_1g, slab_mesh)
        with pytest.raises(ConfigurationError):
            PowerIteration(eq, k_init=0.0)

    def test_no_fission_raises(self, slab_config):
        with pytest.raises(ConfigurationError):
            run_problem(slab_config(build_absorber(scattering_ratio=0.5)), verbose=False)

    def test_total_relative_change(self):
        new = [np.array([2.0, 2.0]), np.array([1.0])]
        old = [np.array([1.0, 2.0]), np.array([1.0])]
        assert total_relative_change(new, old) == pytest.approx(0.2)


class TestFixedSource:
    def test_reflective_medium(self, slab_config):
        config = slab_config(build_absorber(scattering_ratio=0.5, source=1.0), eigen=False,
                             ig_tol=1e-12)
        result = run_problem(config, verbose=False)
        assert isinstance(result, FixedSourceResult)
        assert result.converged
        np.testing.assert_allclose(result.cell_flux[:, 0], 2.0, rtol=1e-7)

    def test_nda_matches_transport(self, slab_config):
        base = slab_config(build_absorber(scattering_ratio=0.9, source=1.0), eigen=False,
                           boundary_conditions=VACUUM_SLAB)
        ho = run_problem(base, verbose=False)
        accelerated = run_problem(dict(base, nda=True), verbose=False)
        assert accelerated.n_iterations > 1
        assert accelerated.err_phi_history[-1] <= 1e-7
        np.testing.assert_allclose(accelerated.cell_flux, ho.cell_flux, rtol=5e-2)

    def test_needs_fixed_source_equation(self, make_equation, fuel_1g, slab_mesh):
        eq = make_equation(fuel_1g, slab_mesh)
        with pytest.raises(ConfigurationError):
            FixedSourceIteration(eq)

    def test_to_dict(self, slab_config):
        config = slab_config(build_absorber(source=1.0), eigen=False)
        d = run_problem(config, verbose=False).to_dict()
        assert d['mg_sweeps'] == 1
        assert len(d['cell_flux']) == 10
        # phi = q / sigma_a = 1 on a reflective slab of length 5
        np.testing.assert_allclose(d['group_flux'], [5.0], rtol=1e-5)
        np.testing.assert_allclose(d['absorption_rate'], 0.5, rtol=1e-5)
