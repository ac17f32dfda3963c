"""
Tests for parallel_sn.quadrature module.
"""
import numpy as np
import pytest

from parallel_sn.constants import FOUR_PI
from parallel_sn.errors import ConfigurationError, InvalidBoundaryQuery
from parallel_sn.quadrature import (
    GaussLegendreQuadrature, ProductQuadrature, boundary_normal, make_quadrature,
)


class TestGaussLegendre:
    @pytest.mark.parametrize("order", [2, 4, 8, 16])
    def test_weights_sum_to_four_pi(self, order):
        aq = GaussLegendreQuadrature(order, 1)
        assert aq.total_weight == pytest.approx(FOUR_PI, rel=1e-12)

    def test_directions_symmetric(self):
        aq = GaussLegendreQuadrature(8, 1)
        mu = np.sort(aq.directions[:, 0])
        np.testing.assert_allclose(mu, -mu[::-1], atol=1e-14)

    def test_second_moment_exact(self):
        aq = GaussLegendreQuadrature(4, 1)
        # integral of mu^2 over the sphere = 4 pi / 3
        assert np.dot(aq.weights, aq.directions[:, 0] ** 2) == pytest.approx(FOUR_PI / 3)

    @pytest.mark.parametrize("order", [0, 3, -2])
    def test_bad_order_raises(self, order):
        with pytest.raises(ConfigurationError):
            GaussLegendreQuadrature(order, 1)

    def test_zero_groups_raises(self):
        with pytest.raises(ConfigurationError):
            GaussLegendreQuadrature(4, 0)

    def test_tables_read_only(self):
        aq = GaussLegendreQuadrature(4, 1)
        with pytest.raises(ValueError):
            aq.weights[0] = 1.0


class TestProductQuadrature:
    def test_direction_count(self):
        aq = ProductQuadrature(4, 1)
        # 2 upper-hemisphere polar cosines x 8 azimuthal angles
        assert aq.n_dir == 16

    def test_custom_azimuthal_count(self):
        aq = ProductQuadrature(4, 1, n_azimuthal=4)
        assert aq.n_dir == 8

    def test_weights_sum_to_four_pi(self):
        aq = ProductQuadrature(6, 2)
        assert aq.total_weight == pytest.approx(FOUR_PI, rel=1e-12)

    def test_projected_directions_inside_unit_disc(self):
        aq = ProductQuadrature(4, 1)
        assert np.all(np.linalg.norm(aq.directions, axis=1) < 1.0)

    def test_odd_azimuthal_raises(self):
        with pytest.raises(ConfigurationError):
            ProductQuadrature(4, 1, n_azimuthal=5)


class TestComponentIndex:
    def test_layout_group_major(self):
        aq = GaussLegendreQuadrature(4, 3)
        for g in range(3):
            for i_dir in range(4):
                assert aq.component_index(i_dir, g) == g * 4 + i_dir

    def test_bijection(self):
        aq = ProductQuadrature(2, 3)
        assert aq.n_total_vars == aq.n_dir * 3
        seen = set()
        for k in range(aq.n_total_vars):
            i_dir, g = aq.inverse_component(k)
            assert aq.component_index(i_dir, g) == k
            assert aq.component_direction(k) == i_dir
            assert aq.component_group(k) == g
            seen.add((i_dir, g))
        assert len(seen) == aq.n_total_vars

    @pytest.mark.parametrize("i_dir,g", [(-1, 0), (0, -1), (4, 0), (0, 2)])
    def test_invalid_pair_raises(self, i_dir, g):
        aq = GaussLegendreQuadrature(4, 2)
        with pytest.raises(ConfigurationError):
            aq.component_index(i_dir, g)

    @pytest.mark.parametrize("k", [-1, 8])
    def test_invalid_component_raises(self, k):
        aq = GaussLegendreQuadrature(4, 2)
        with pytest.raises(ConfigurationError):
            aq.inverse_component(k)
        with pytest.raises(ConfigurationError):
            aq.component_direction(k)
        with pytest.raises(ConfigurationError):
            aq.component_group(k)


class TestReflection:
    def test_slab_reflection_flips_mu(self):
        aq = GaussLegendreQuadrature(8, 1, {0: True, 1: True})
        for bid in (0, 1):
            for i_dir in range(aq.n_dir):
                r = aq.reflected_direction(bid, i_dir)
                assert aq.directions[r, 0] == pytest.approx(-aq.directions[i_dir, 0])

    def test_reflection_is_involution(self):
        aq = ProductQuadrature(4, 1, {b: True for b in range(4)})
        for bid in range(4):
            for i_dir in range(aq.n_dir):
                r = aq.reflected_direction(bid, i_dir)
                assert aq.reflected_direction(bid, r) == i_dir

    def test_product_reflection_about_x_boundary(self):
        aq = ProductQuadrature(4, 1, {1: True})
        for i_dir, omega in enumerate(aq.directions):
            reflected = aq.directions[aq.reflected_direction(1, i_dir)]
            np.testing.assert_allclose(reflected, [-omega[0], omega[1]], atol=1e-12)

    def test_non_reflective_boundary_query_raises(self):
        aq = GaussLegendreQuadrature(4, 1, {0: True, 1: False})
        assert aq.is_reflective(0)
        assert not aq.is_reflective(1)
        with pytest.raises(InvalidBoundaryQuery) as exc_info:
            aq.reflected_direction(1, 0)
        assert exc_info.value.boundary_id == 1

    def test_invalid_boundary_query_is_lookup_error(self):
        aq = GaussLegendreQuadrature(4, 1)
        with pytest.raises(LookupError):
            aq.reflected_direction(0, 0)

    def test_unknown_boundary_id_raises(self):
        with pytest.raises(ConfigurationError):
            GaussLegendreQuadrature(4, 1, {2: True})


class TestFactory:
    def test_auto_by_dimension(self):
        assert isinstance(make_quadrature('auto', 4, 1, 1), GaussLegendreQuadrature)
        assert isinstance(make_quadrature('auto', 4, 1, 2), ProductQuadrature)

    def test_dimension_mismatch_raises(self):
        with pytest.raises(ConfigurationError):
            make_quadrature('gauss_legendre', 4, 1, 2)

    def test_unknown_name_raises(self):
        with pytest.raises(ConfigurationError):
            make_quadrature('level_symmetric', 4, 1, 2)

    def test_boundary_normals(self):
        np.testing.assert_array_equal(boundary_normal(0, 1), [-1.0])
        np.testing.assert_array_equal(boundary_normal(3, 2), [0.0, 1.0])
        with pytest.raises(ConfigurationError):
            boundary_normal(2, 1)
