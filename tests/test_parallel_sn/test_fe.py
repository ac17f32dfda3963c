"""
Tests for parallel_sn.fe module.
"""
import numpy as np
import pytest

from parallel_sn.errors import ConfigurationError
from parallel_sn.fe import LagrangeElement, gauss_legendre_unit, lagrange_basis_1d


class TestReferenceRules:
    def test_gauss_exact_for_cubic(self):
        x, w = gauss_legendre_unit(2)
        assert np.dot(w, x ** 3) == pytest.approx(0.25)

    def test_lagrange_kronecker_property(self):
        nodes = np.linspace(0.0, 1.0, 4)
        values, _ = lagrange_basis_1d(nodes, nodes)
        np.testing.assert_allclose(values, np.eye(4), atol=1e-12)

    def test_lagrange_derivative_linear(self):
        values, derivs = lagrange_basis_1d(np.array([0.0, 1.0]), np.array([0.3]))
        np.testing.assert_allclose(values, [[0.7, 0.3]])
        np.testing.assert_allclose(derivs, [[-1.0, 1.0]])


@pytest.mark.parametrize("degree,dim", [(1, 1), (2, 1), (1, 2), (2, 2)])
class TestLagrangeElement:
    def test_dofs_per_cell(self, degree, dim):
        element = LagrangeElement(degree, dim)
        assert element.dofs_per_cell == (degree + 1) ** dim

    def test_partition_of_unity(self, degree, dim):
        fv = LagrangeElement(degree, dim).reinit([0.5] * dim)
        np.testing.assert_allclose(fv.shape_values.sum(axis=1), 1.0, atol=1e-12)
        np.testing.assert_allclose(fv.shape_grads.sum(axis=1), 0.0, atol=1e-10)

    def test_jxw_sums_to_volume(self, degree, dim):
        h = [0.5, 2.0][:dim]
        fv = LagrangeElement(degree, dim).reinit(h)
        assert fv.JxW.sum() == pytest.approx(np.prod(h))
        assert fv.volume == pytest.approx(np.prod(h))

    def test_face_shape_values_sum_to_one(self, degree, dim):
        fv = LagrangeElement(degree, dim).reinit([1.0] * dim)
        for values in fv.face_shape_values:
            np.testing.assert_allclose(values.sum(axis=1), 1.0, atol=1e-12)


class TestCellValues:
    def test_face_measure_2d(self):
        fv = LagrangeElement(1, 2).reinit([2.0, 3.0])
        # x faces span hy, y faces span hx
        assert fv.face_JxW[0].sum() == pytest.approx(3.0)
        assert fv.face_JxW[3].sum() == pytest.approx(2.0)

    def test_face_normals_outward(self):
        fv = LagrangeElement(1, 2).reinit([1.0, 1.0])
        np.testing.assert_array_equal(fv.face_normals[0], [-1.0, 0.0])
        np.testing.assert_array_equal(fv.face_normals[3], [0.0, 1.0])

    def test_1d_face_values_pick_endpoint_node(self):
        fv = LagrangeElement(1, 1).reinit([1.0])
        np.testing.assert_allclose(fv.face_shape_values[0], [[1.0, 0.0]])
        np.testing.assert_allclose(fv.face_shape_values[1], [[0.0, 1.0]])

    def test_gradient_scaled_by_cell_size(self):
        fv = LagrangeElement(1, 1).reinit([0.25])
        np.testing.assert_allclose(fv.shape_grads[0, :, 0], [-4.0, 4.0])

    def test_reinit_is_cached(self):
        element = LagrangeElement(1, 2)
        assert element.reinit([1.0, 2.0]) is element.reinit([1.0, 2.0])

    def test_bad_degree_raises(self):
        with pytest.raises(ConfigurationError):
            LagrangeElement(0, 1)

    def test_bad_dimension_raises(self):
        with pytest.raises(ConfigurationError):
            LagrangeElement(1, 3)
