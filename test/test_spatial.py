"""Tests for BVH construction and point location."""

import pytest
import torch

from torch_sfem.core import BVH, NOT_FOUND, TreeSearch, WalkSearch

from conftest import (
    reference_triangle_mesh,
    two_triangle_mesh,
    unit_cube_mesh,
    unit_interval_mesh,
    unit_square_mesh,
)


class TestBVH:
    """Tests for BVH construction and candidate queries."""

    def test_root_box_is_mesh_range(self, square_mesh):
        bvh = BVH.from_mesh(square_mesh)
        assert torch.allclose(bvh.node_aabb_min[0], square_mesh.range[0])
        assert torch.allclose(bvh.node_aabb_max[0], square_mesh.range[1])

    def test_leaves_partition_cells(self, cube_mesh):
        bvh = BVH.from_mesh(cube_mesh, leaf_size=3)
        leaves = bvh.node_left_child < 0
        assert int(bvh.node_count[leaves].sum()) == cube_mesh.n_cells
        assert torch.all(bvh.node_count[leaves] <= 3)
        assert sorted(bvh.cell_order.tolist()) == list(range(cube_mesh.n_cells))

    def test_single_cell(self):
        bvh = BVH.from_mesh(reference_triangle_mesh())
        assert bvh.n_nodes == 1
        assert bvh.node_count[0] == 1

    def test_candidates_contain_owner(self, square_mesh):
        centroids = square_mesh.geometry.centroids()
        candidates = BVH.from_mesh(square_mesh, leaf_size=2).find_candidate_cells(centroids)
        for cell, cand in enumerate(candidates):
            assert cell in cand.tolist()

    def test_far_point_has_no_candidates(self, square_mesh):
        bvh = BVH.from_mesh(square_mesh)
        (cand,) = bvh.find_candidate_cells(torch.tensor([[5.0, 5.0]], dtype=torch.float64))
        assert cand.numel() == 0

    def test_invalid_leaf_size(self, square_mesh):
        with pytest.raises(ValueError):
            BVH.from_mesh(square_mesh, leaf_size=0)


class TestTreeSearch:
    """BVH-accelerated point location through the mesh API."""

    @pytest.mark.parametrize(
        "builder",
        [
            lambda: unit_interval_mesh(6),
            lambda: unit_square_mesh(4),
            lambda: unit_cube_mesh(2),
        ],
    )
    def test_locate_centroids(self, builder):
        mesh = builder()
        located = mesh.locate(mesh.geometry.centroids())
        assert torch.equal(located, torch.arange(mesh.n_cells))

    def test_single_point_returns_int(self):
        mesh = two_triangle_mesh()
        assert mesh.locate(torch.tensor([0.9, 0.9])) == 1
        assert mesh.locate([0.1, 0.1]) == 0

    def test_outside_point(self, square_mesh):
        assert square_mesh.locate(torch.tensor([1.5, 0.5])) == NOT_FOUND
        out = square_mesh.locate(torch.tensor([[0.5, 0.5], [-1.0, 0.0]]))
        assert out[1].item() == NOT_FOUND
        assert out[0].item() != NOT_FOUND

    def test_shared_edge_tie_break(self):
        mesh = two_triangle_mesh()
        point = torch.tensor([0.5, 0.5])
        assert mesh.all_locate(point) == [0, 1]
        assert mesh.locate(point) == 0

    def test_node_patch(self):
        mesh = unit_square_mesh(3)
        for v in range(mesh.n_nodes):
            expected = sorted(
                torch.nonzero((mesh.cells == v).any(dim=1)).flatten().tolist()
            )
            assert mesh.node_patch(v) == expected

    def test_node_patch_3d(self, cube_mesh):
        center = int(torch.nonzero((cube_mesh.nodes == 0.5).all(dim=1))[0])
        ### The center of a 2x2x2 Kuhn cube belongs to every tetrahedron that uses it
        expected = sorted(torch.nonzero((cube_mesh.cells == center).any(dim=1)).flatten().tolist())
        assert cube_mesh.node_patch(center) == expected

    def test_policy_is_cached(self, square_mesh):
        assert square_mesh.location_policy is square_mesh.location_policy

    def test_candidate_cap_falls_back_to_walk(self):
        mesh = unit_square_mesh(4)
        search = TreeSearch(mesh, leaf_size=1, max_candidates=1)
        located = search.locate(mesh.geometry.centroids())
        assert torch.equal(located, torch.arange(mesh.n_cells))

    def test_embedded_mesh_rejected(self):
        surface, _, _ = unit_cube_mesh(1).surface()
        with pytest.raises(ValueError, match="full dimension"):
            surface.locate(torch.tensor([0.5, 0.5, 0.0]))

    def test_wrong_point_dimension(self, square_mesh):
        with pytest.raises(ValueError):
            square_mesh.locate(torch.tensor([0.5, 0.5, 0.5]))


class TestWalkSearch:
    """Adjacency walk location on convex meshes."""

    def test_matches_tree_search(self, square_mesh):
        walk = WalkSearch(square_mesh)
        points = torch.rand(20, 2, dtype=torch.float64, generator=torch.Generator().manual_seed(0))
        walked = walk.locate(points, seed=0)
        for point, cell in zip(points, walked.tolist()):
            assert cell in square_mesh.all_locate(point)

    def test_walk_from_any_seed(self, cube_mesh):
        walk = WalkSearch(cube_mesh)
        target = cube_mesh.geometry.centroids()[7]
        for seed in range(cube_mesh.n_cells):
            assert walk.walk(target, seed=seed) == 7

    def test_walk_exits_mesh(self, square_mesh):
        walk = WalkSearch(square_mesh)
        assert walk.locate(torch.tensor([2.0, 0.5])) == NOT_FOUND
