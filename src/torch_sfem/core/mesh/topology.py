"""Combinatorial topology of simplicial meshes.

Derives, from a cell-to-vertex table, the unique sub-entities of the mesh and
the way cells are glued together:

    - facets: (D-1)-dimensional sub-entities, i.e. vertices of an interval
      mesh, edges of a triangle mesh, faces of a tetrahedral mesh;
    - neighbors: neighbors[c, i] is the cell across the facet opposite to the
      i-th vertex of cell c, or -1 if that facet is on the boundary;
    - edges: 1-dimensional sub-entities (the facets in 2D, the cells in 1D,
      extracted from faces in 3D) and the set of cells insisting on each edge.

A sub-entity is identified by the sorted tuple of its vertex ids, so that two
cells sharing it produce the same key regardless of orientation. Unique
sub-entities are numbered in order of first occurrence when cells are scanned
in index order, so the result is a pure function of the input tables.
"""

from __future__ import annotations

import logging
from itertools import combinations
from typing import NamedTuple, Optional

import torch
from torch import Tensor

from ..constants import NOT_FOUND
from ..ops.index import row as row_module
from .adjacency import Adjacency

logger = logging.getLogger(__name__)


class MeshTopology(NamedTuple):
    """Immutable sub-entity tables of a simplicial mesh with C cells."""

    facets: Tensor  # (F, D) sorted vertex ids
    facet_to_cells: Tensor  # (F, 2), second column -1 on boundary facets
    cell_to_facets: Tensor  # (C, D+1), column j follows the facet pattern
    boundary_facets: Tensor  # (F,) bool
    neighbors: Tensor  # (C, D+1), -1 = no neighbor across facet opposite vertex i
    edges: Tensor  # (E, 2) sorted vertex ids
    cell_to_edges: Tensor  # (C, n_edges_per_cell)
    edge_to_cells: Adjacency  # ragged, cells insisting on each edge
    boundary_edges: Tensor  # (E,) bool
    face_to_edges: Optional[Tensor]  # (F, 3), tetrahedral meshes only


def facet_pattern(local_dim: int) -> list[tuple[int, ...]]:
    """Local vertex indices of each facet of the reference simplex.

    Args:
        local_dim (int): simplex dimension D.

    Returns:
        List of D+1 sorted D-tuples, in `combinations` order.
    """
    return list(combinations(range(local_dim + 1), local_dim))


def opposite_vertices(local_dim: int) -> list[int]:
    """Local vertex omitted by each entry of `facet_pattern(local_dim)`."""
    vertices = set(range(local_dim + 1))
    return [(vertices - set(f)).pop() for f in facet_pattern(local_dim)]


def edge_pattern(n_vertices: int) -> list[tuple[int, int]]:
    """Local vertex pairs forming the edges of a simplex with n vertices."""
    return list(combinations(range(n_vertices), 2))


def _validate_cells(cells: Tensor, n_nodes: int) -> None:
    if cells.ndim != 2:
        raise ValueError(f"cells must be a 2D tensor, got {cells.ndim}D")
    local_dim = cells.shape[1] - 1
    if local_dim not in (1, 2, 3):
        raise ValueError(
            f"cells must have 2, 3 or 4 columns (interval, triangle, tetrahedron), "
            f"got {cells.shape[1]}"
        )
    if cells.dtype.is_floating_point or cells.dtype == torch.bool:
        raise TypeError(f"cells must be an integer tensor, got {cells.dtype}")
    if cells.numel() == 0:
        return

    lo = int(cells.min().item())
    hi = int(cells.max().item())
    if lo < 0 or hi >= n_nodes:
        bad = torch.nonzero((cells < 0) | (cells >= n_nodes), as_tuple=False)[0]
        raise ValueError(
            f"cell {int(bad[0])} references vertex {int(cells[bad[0], bad[1]])} "
            f"outside [0, {n_nodes})"
        )

    sorted_cells, _ = cells.sort(dim=1)
    repeated = (sorted_cells[:, 1:] == sorted_cells[:, :-1]).any(dim=1)
    if repeated.any():
        bad = int(torch.nonzero(repeated, as_tuple=False)[0, 0])
        raise ValueError(f"cell {bad} has repeated vertices: {cells[bad].tolist()}")


def _sorted_sub_entities(cells: Tensor, pattern: list[tuple[int, ...]]) -> Tensor:
    """Gather sub-entity vertex rows for every cell, sorted within rows.

    Returns:
        (C * len(pattern), k) tensor, cell-major then pattern order.
    """
    idx = torch.tensor(pattern, dtype=torch.long, device=cells.device)
    sub = cells[:, idx]  # (C, P, k)
    sub, _ = sub.sort(dim=-1)
    return sub.reshape(-1, idx.shape[1]).contiguous()


@torch.no_grad()
def build_topology(
    cells: Tensor,
    boundary_nodes: Tensor,
    n_nodes: int,
) -> MeshTopology:
    """Build the full sub-entity topology of a simplicial mesh.

    Args:
        cells (Tensor): (C, D+1) integer tensor of 0-based vertex ids, D in {1, 2, 3}.
        boundary_nodes (Tensor): (n_nodes,) bool, True for boundary vertices.
        n_nodes (int): number of mesh vertices.

    Returns:
        MeshTopology with facet, neighbor and edge tables.

    Raises:
        ValueError: on malformed connectivity (bad shape, out-of-range or
            repeated vertex ids) or if a facet is shared by more than two cells.
    """
    _validate_cells(cells, n_nodes)
    cells = cells.to(torch.long).contiguous()
    device = cells.device
    n_cells, n_vertices = cells.shape
    local_dim = n_vertices - 1

    # Facets, deduplicated on sorted vertex keys.
    candidates = _sorted_sub_entities(cells, facet_pattern(local_dim))
    facets, inverse, counts = row_module.unique_rows_first_seen(candidates)
    n_facets = facets.shape[0]

    if (counts > 2).any():
        bad = int(torch.nonzero(counts > 2, as_tuple=False)[0, 0])
        raise ValueError(
            f"facet {facets[bad].tolist()} is shared by {int(counts[bad])} cells; "
            "a manifold mesh shares each facet among at most two cells"
        )

    cell_to_facets = inverse.view(n_cells, n_vertices)

    # First and second occurrence of every facet among candidates.
    positions = torch.arange(inverse.numel(), dtype=torch.long, device=device)
    first = torch.full((n_facets,), inverse.numel(), dtype=torch.long, device=device)
    first.scatter_reduce_(0, inverse, positions, reduce="amin", include_self=True)
    last = torch.full((n_facets,), -1, dtype=torch.long, device=device)
    last.scatter_reduce_(0, inverse, positions, reduce="amax", include_self=True)

    shared = counts == 2
    boundary_facets = ~shared

    facet_to_cells = torch.full((n_facets, 2), NOT_FOUND, dtype=torch.long, device=device)
    facet_to_cells[:, 0] = first // n_vertices
    facet_to_cells[shared, 1] = last[shared] // n_vertices

    # Two cells sharing a facet are neighbors across their opposite vertices.
    opposite = torch.tensor(opposite_vertices(local_dim), dtype=torch.long, device=device)
    neighbors = torch.full((n_cells, n_vertices), NOT_FOUND, dtype=torch.long, device=device)
    p1 = first[shared]
    p2 = last[shared]
    c1, j1 = p1 // n_vertices, p1 % n_vertices
    c2, j2 = p2 // n_vertices, p2 % n_vertices
    neighbors[c1, opposite[j1]] = c2
    neighbors[c2, opposite[j2]] = c1

    face_to_edges = None
    if local_dim == 1:
        edges, _ = cells.sort(dim=1)
        cell_to_edges = torch.arange(n_cells, dtype=torch.long, device=device).unsqueeze(1)
        edge_to_cells = Adjacency.from_pairs(
            cell_to_edges.flatten(), cell_to_edges.flatten(), n_cells
        )
        boundary_edges = torch.zeros(n_cells, dtype=torch.bool, device=device)

    elif local_dim == 2:
        edges = facets
        cell_to_edges = cell_to_facets
        n_edges = n_facets
        cell_ids = torch.arange(n_cells, dtype=torch.long, device=device)
        edge_to_cells = Adjacency.from_pairs(
            cell_to_edges.flatten(),
            cell_ids.repeat_interleave(n_vertices),
            n_edges,
        )
        boundary_edges = boundary_facets

    else:
        # Edges are extracted from faces, in face order.
        face_edges = _sorted_sub_entities(facets, edge_pattern(3))
        edges, edge_inverse, _ = row_module.unique_rows_first_seen(face_edges)
        n_edges = edges.shape[0]
        face_to_edges = edge_inverse.view(n_facets, 3)

        # An edge belongs to every cell whose faces contain it.
        cell_edge_ids = face_to_edges[cell_to_facets]  # (C, 4, 3)
        cell_ids = torch.arange(n_cells, dtype=torch.long, device=device)
        edge_to_cells = Adjacency.from_pairs(
            cell_edge_ids.flatten(),
            cell_ids.repeat_interleave(cell_edge_ids.shape[1] * cell_edge_ids.shape[2]),
            n_edges,
        )

        keys, perm = row_module.build_sorted_row_index(edges)
        cell_to_edges = row_module.lookup_row_indices(
            _sorted_sub_entities(cells, edge_pattern(n_vertices)), keys, perm
        ).view(n_cells, -1)

        # Conservative: an edge is on the boundary iff both endpoints are.
        boundary_edges = boundary_nodes[edges[:, 0]] & boundary_nodes[edges[:, 1]]

    logger.debug(
        "Built topology: %d cells, %d facets (%d on boundary), %d edges",
        n_cells,
        n_facets,
        int(boundary_facets.sum()),
        edges.shape[0],
    )

    return MeshTopology(
        facets=facets,
        facet_to_cells=facet_to_cells,
        cell_to_facets=cell_to_facets,
        boundary_facets=boundary_facets,
        neighbors=neighbors,
        edges=edges,
        cell_to_edges=cell_to_edges,
        edge_to_cells=edge_to_cells,
        boundary_edges=boundary_edges,
        face_to_edges=face_to_edges,
    )


__all__ = [
    "MeshTopology",
    "build_topology",
    "edge_pattern",
    "facet_pattern",
    "opposite_vertices",
]
