"""
Tests for parallel_sn.mesh module.
"""
import numpy as np
import pytest

from parallel_sn.errors import ConfigurationError
from parallel_sn.fe import LagrangeElement
from parallel_sn.mesh import BoundaryConditions, CartesianMesh, DoFHandler, generate_mesh


class TestCartesianMesh:
    def test_slab_topology(self, slab_mesh):
        assert slab_mesh.dim == 1
        assert slab_mesh.n_cells == 10
        assert slab_mesh.neighbor(0, 0) == -1
        assert slab_mesh.neighbor(0, 1) == 1
        assert slab_mesh.boundary_id(9, 1) == 1
        assert slab_mesh.boundary_id(4, 1) == -1
        assert slab_mesh.cell_size(3)[0] == pytest.approx(0.5)

    def test_square_cell_numbering(self, square_mesh):
        nx = square_mesh.nx
        c = 1 + nx * 1   # center cell
        assert square_mesh.neighbor(c, 0) == c - 1
        assert square_mesh.neighbor(c, 1) == c + 1
        assert square_mesh.neighbor(c, 2) == c - nx
        assert square_mesh.neighbor(c, 3) == c + nx
        assert not square_mesh.at_boundary[c]

    def test_shared_face_seen_from_both_sides(self, square_mesh):
        for cell in range(square_mesh.n_cells):
            for face in range(square_mesh.n_faces):
                neighbor = square_mesh.neighbor(cell, face)
                if neighbor >= 0:
                    assert square_mesh.neighbor(neighbor, face ^ 1) == cell

    def test_boundary_faces(self, square_mesh):
        assert square_mesh.boundary_faces(0) == [0, 2]
        assert square_mesh.boundary_faces(8) == [1, 3]

    def test_cell_centers(self, square_mesh):
        np.testing.assert_allclose(square_mesh.cell_centers[0], [1.0 / 3.0, 1.0 / 3.0])

    def test_non_increasing_edges_raise(self):
        with pytest.raises(ConfigurationError):
            CartesianMesh([0.0, 1.0, 1.0])

    def test_partition_disjoint_cover(self, square_mesh):
        parts = square_mesh.partition(4)
        assert len(parts) == 4
        merged = np.concatenate(parts)
        np.testing.assert_array_equal(np.sort(merged), np.arange(square_mesh.n_cells))

    def test_partition_capped_by_cells(self):
        mesh = generate_mesh([1.0], [2])
        assert len(mesh.partition(8)) == 2


class TestGenerateMesh:
    def test_layout_rows_from_ymin(self):
        mesh = generate_mesh([2.0, 2.0], [2, 2], [[0, 1], [2, 3]])
        assert list(mesh.material_ids) == [0, 1, 2, 3]
        # cell 1 is (ix=1, iy=0)
        assert mesh.cell_centers[1, 0] > mesh.cell_centers[1, 1]

    def test_refinement_inherits_material(self):
        mesh = generate_mesh([4.0], [2], [0, 1], uniform_refinements=2)
        assert mesh.n_cells == 8
        assert list(mesh.material_ids) == [0, 0, 0, 0, 1, 1, 1, 1]

    def test_refinement_2d(self):
        mesh = generate_mesh([1.0, 1.0], [2, 1], [[0, 1]], uniform_refinements=1)
        assert (mesh.nx, mesh.ny) == (4, 2)
        assert list(mesh.material_ids) == [0, 0, 1, 1, 0, 0, 1, 1]

    def test_layout_shape_mismatch_raises(self):
        with pytest.raises(ConfigurationError):
            generate_mesh([1.0, 1.0], [2, 3], [[0, 0], [0, 0]])

    def test_three_dimensions_rejected(self):
        with pytest.raises(ConfigurationError):
            generate_mesh([1.0, 1.0, 1.0], [1, 1, 1])


class TestBoundaryConditions:
    def test_default_vacuum(self):
        bcs = BoundaryConditions(dim=2, n_groups=1)
        assert all(bcs.kind(b) == 'vacuum' for b in range(4))
        assert not bcs.any_reflective

    def test_from_names(self):
        bcs = BoundaryConditions.from_dict({'xmin': 'reflective', 'ymax': 'incident'},
                                           {'ymax': [2.0]}, 2, 1)
        assert bcs.is_reflective(0)
        assert bcs.reflective_map() == {0: True, 1: False, 2: False, 3: False}
        assert bcs.incident_flux(3, 0) == pytest.approx(2.0)
        assert bcs.incident_flux(1, 0) == 0.0

    def test_incident_without_flux_raises(self):
        with pytest.raises(ConfigurationError):
            BoundaryConditions.from_dict({'xmin': 'incident'}, {}, 1, 1)

    def test_incident_group_count_checked(self):
        with pytest.raises(ConfigurationError):
            BoundaryConditions.from_dict({'xmin': 'incident'}, {'xmin': [1.0]}, 1, 2)

    def test_unknown_kind_raises(self):
        with pytest.raises(ConfigurationError):
            BoundaryConditions.from_dict({'xmin': 'periodic'}, {}, 1, 1)

    def test_boundary_outside_dimension_raises(self):
        with pytest.raises(ConfigurationError):
            BoundaryConditions.from_dict({'ymin': 'vacuum'}, {}, 1, 1)


class TestDoFHandler:
    def test_cfem_1d_shares_nodes(self, slab_mesh):
        dofs = DoFHandler(slab_mesh, LagrangeElement(2, 1), 'cfem')
        assert dofs.n_dofs == 10 * 2 + 1
        assert dofs.cell_dofs(0)[-1] == dofs.cell_dofs(1)[0]

    def test_cfem_2d_count(self, square_mesh):
        dofs = DoFHandler(square_mesh, LagrangeElement(2, 2), 'cfem')
        assert dofs.n_dofs == 7 * 7

    def test_cfem_2d_shared_edge(self, square_mesh):
        dofs = DoFHandler(square_mesh, LagrangeElement(1, 2), 'cfem')
        left = dofs.cell_dofs(0)
        right = dofs.cell_dofs(1)
        # local dofs 1, 3 (x=1 side) of the left cell are 0, 2 of the right cell
        assert left[1] == right[0]
        assert left[3] == right[2]

    def test_dfem_owns_dofs(self, square_mesh):
        dofs = DoFHandler(square_mesh, LagrangeElement(1, 2), 'dfem')
        assert dofs.n_dofs == 9 * 4
        assert not dofs.is_continuous
        assert len(np.unique(dofs.cell_dof_table)) == dofs.n_dofs

    def test_dimension_mismatch_raises(self, slab_mesh):
        with pytest.raises(ConfigurationError):
            DoFHandler(slab_mesh, LagrangeElement(1, 2))

    def test_unknown_discretization_raises(self, slab_mesh):
        with pytest.raises(ConfigurationError):
            DoFHandler(slab_mesh, LagrangeElement(1, 1), 'hdg')
