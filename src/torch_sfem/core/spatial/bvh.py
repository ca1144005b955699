"""Bounding Volume Hierarchy (BVH) over mesh cells.

The BVH is stored as flat tensors rather than a pointer-based tree. Internal
nodes have exactly two children; leaves hold a contiguous range of a
permutation of the cell ids, so candidate sets of up to `leaf_size` cells are
returned per leaf. Queries prune subtrees whose bounding box does not contain
the point, giving O(log C) candidate search instead of O(C).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import torch
from tensordict import tensorclass

if TYPE_CHECKING:
    from ..mesh.mesh import SimplicialMesh


@tensorclass
class BVH:
    """Bounding Volume Hierarchy for point-in-cell candidate search.

    Attributes:
        node_aabb_min: (n_nodes, m) minimum corner of each node's box.
        node_aabb_max: (n_nodes, m) maximum corner of each node's box.
        node_left_child: (n_nodes,) left child index, -1 for leaves.
        node_right_child: (n_nodes,) right child index, -1 for leaves.
        node_start: (n_nodes,) start of the leaf range in `cell_order`.
        node_count: (n_nodes,) number of cells of a leaf, 0 for internal nodes.
        cell_order: (n_cells,) cell ids permuted so that leaves are contiguous.

    Example:
        >>> bvh = BVH.from_mesh(mesh)
        >>> candidates = bvh.find_candidate_cells(torch.tensor([[0.5, 0.5]]))
    """

    node_aabb_min: torch.Tensor
    node_aabb_max: torch.Tensor
    node_left_child: torch.Tensor
    node_right_child: torch.Tensor
    node_start: torch.Tensor
    node_count: torch.Tensor
    cell_order: torch.Tensor

    @property
    def n_nodes(self) -> int:
        """Number of nodes in the BVH."""
        return self.node_aabb_min.shape[0]

    @property
    def n_spatial_dims(self) -> int:
        """Dimensionality of the spatial space."""
        return self.node_aabb_min.shape[1]

    @classmethod
    def from_mesh(cls, mesh: SimplicialMesh, leaf_size: int = 4) -> "BVH":
        """Construct a BVH over the cells of a mesh.

        Top-down construction: split at the median centroid along the axis of
        largest extent until a node holds at most `leaf_size` cells.

        Args:
            mesh: the mesh to index.
            leaf_size: maximum number of cells stored in a leaf.

        Returns:
            Constructed BVH ready for queries.
        """
        if leaf_size < 1:
            raise ValueError(f"leaf_size must be >= 1, got {leaf_size}")

        device = mesh.nodes.device
        cell_vertices = mesh.nodes[mesh.cells]  # (C, n+1, m)
        cell_aabb_min = cell_vertices.min(dim=1).values
        cell_aabb_max = cell_vertices.max(dim=1).values
        cell_centroids = cell_vertices.mean(dim=1)

        n_cells = mesh.n_cells
        max_nodes = max(2 * n_cells - 1, 1)
        node_aabb_min = torch.zeros((max_nodes, mesh.embed_dim), dtype=mesh.nodes.dtype, device=device)
        node_aabb_max = torch.zeros_like(node_aabb_min)
        node_left_child = torch.full((max_nodes,), -1, dtype=torch.long, device=device)
        node_right_child = torch.full((max_nodes,), -1, dtype=torch.long, device=device)
        node_start = torch.zeros((max_nodes,), dtype=torch.long, device=device)
        node_count = torch.zeros((max_nodes,), dtype=torch.long, device=device)
        cell_order = torch.arange(n_cells, dtype=torch.long, device=device)

        node_counter = 0
        # Explicit stack of (node index, start, end) into cell_order.
        stack = []
        if n_cells > 0:
            stack.append((0, 0, n_cells))
            node_counter = 1

        while stack:
            node_idx, start, end = stack.pop()
            indices = cell_order[start:end]

            node_aabb_min[node_idx] = cell_aabb_min[indices].min(dim=0).values
            node_aabb_max[node_idx] = cell_aabb_max[indices].max(dim=0).values

            if end - start <= leaf_size:
                node_start[node_idx] = start
                node_count[node_idx] = end - start
                continue

            extent = node_aabb_max[node_idx] - node_aabb_min[node_idx]
            split_axis = int(extent.argmax().item())

            # Stable sort keeps construction deterministic on ties.
            order = torch.argsort(cell_centroids[indices, split_axis], stable=True)
            cell_order[start:end] = indices[order]
            mid = start + (end - start) // 2

            left, right = node_counter, node_counter + 1
            node_counter += 2
            node_left_child[node_idx] = left
            node_right_child[node_idx] = right
            stack.append((right, mid, end))
            stack.append((left, start, mid))

        n_used = node_counter
        return cls(
            node_aabb_min=node_aabb_min[:n_used],
            node_aabb_max=node_aabb_max[:n_used],
            node_left_child=node_left_child[:n_used],
            node_right_child=node_right_child[:n_used],
            node_start=node_start[:n_used],
            node_count=node_count[:n_used],
            cell_order=cell_order,
        )

    def find_candidate_cells(
        self,
        query_points: torch.Tensor,
        max_candidates_per_point: int | None = None,
        aabb_tolerance: float = 1e-9,
    ) -> list[torch.Tensor]:
        """Find cells whose bounding box contains each query point.

        Uses iterative traversal with an explicit stack.

        Args:
            query_points: (n_queries, m) points.
            max_candidates_per_point: optional cap on the number of candidates
                collected per point.
            aabb_tolerance: slack applied to every box, so that points on a
                box face are not pruned by rounding.

        Returns:
            List of n_queries sorted int64 tensors of candidate cell ids.
        """
        lo = (self.node_aabb_min - aabb_tolerance).tolist()
        hi = (self.node_aabb_max + aabb_tolerance).tolist()
        left = self.node_left_child.tolist()
        right = self.node_right_child.tolist()
        start = self.node_start.tolist()
        count = self.node_count.tolist()
        order = self.cell_order.tolist()
        device = self.cell_order.device

        candidates = []
        for point in query_points.tolist():
            found: list[int] = []
            stack = [0] if self.n_nodes > 0 and order else []

            while stack:
                if max_candidates_per_point is not None and len(found) >= max_candidates_per_point:
                    break
                node = stack.pop()
                if any(x < a or x > b for x, a, b in zip(point, lo[node], hi[node])):
                    continue
                if left[node] < 0:
                    found.extend(order[start[node] : start[node] + count[node]])
                else:
                    stack.append(right[node])
                    stack.append(left[node])

            found.sort()
            candidates.append(torch.tensor(found, dtype=torch.long, device=device))

        return candidates
