"""Point location policies over simplicial meshes.

Two strategies answer "which cell contains point p":

- TreeSearch: BVH candidate pruning followed by an exact barycentric sign
  test on the candidates. Ties (points on shared facets, edges or vertices)
  resolve to the smallest cell id; `all_locate` returns every cell.
- WalkSearch: starting from a seed cell, repeatedly cross the facet opposite
  to the most negative barycentric coordinate until the point is inside the
  current cell or the walk leaves the mesh.

Misses are reported with the NOT_FOUND sentinel, never raised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import torch
from torch import Tensor

from ..constants import DEFAULT_TOLERANCE, NOT_FOUND
from .bvh import BVH

if TYPE_CHECKING:
    from ..mesh.mesh import SimplicialMesh

logger = logging.getLogger(__name__)


def _as_points(points, mesh: SimplicialMesh) -> tuple[Tensor, bool]:
    """Return (P, m) points and whether a single point was given."""
    p = torch.as_tensor(points, dtype=mesh.nodes.dtype, device=mesh.nodes.device)
    single = p.ndim == 1
    if single:
        p = p.unsqueeze(0)
    if p.ndim != 2 or p.shape[1] != mesh.embed_dim:
        raise ValueError(
            f"points must have shape (P, {mesh.embed_dim}) or ({mesh.embed_dim},), "
            f"got {tuple(p.shape)}"
        )
    return p, single


def _check_locatable(mesh: SimplicialMesh) -> None:
    if mesh.local_dim != mesh.embed_dim:
        raise ValueError(
            "point location requires cells of full dimension, got "
            f"local_dim={mesh.local_dim}, embed_dim={mesh.embed_dim}"
        )


class WalkSearch:
    """Adjacency walk point location.

    Exact on convex domains; on non-convex domains the walk may exit through
    a boundary facet before reaching the target and report a miss.

    Args:
        mesh (SimplicialMesh): mesh to search.
        tolerance (float): barycentric sign tolerance.
    """

    def __init__(self, mesh: SimplicialMesh, tolerance: float = DEFAULT_TOLERANCE):
        _check_locatable(mesh)
        self.mesh = mesh
        self.tolerance = tolerance

    def walk(self, point: Tensor, seed: int = 0) -> int:
        """Locate a single (m,) point starting from cell `seed`."""
        mesh = self.mesh
        if mesh.n_cells == 0:
            return NOT_FOUND
        cell = int(seed)
        ids = torch.empty(1, dtype=torch.long, device=mesh.nodes.device)
        for _ in range(mesh.n_cells + 1):
            ids[0] = cell
            lam = mesh.geometry.to_reference(point.unsqueeze(0), ids)[0]
            k = int(torch.argmin(lam).item())
            if lam[k] >= -self.tolerance:
                return cell
            cell = int(mesh.neighbors[cell, k].item())
            if cell == NOT_FOUND:
                return NOT_FOUND
        return NOT_FOUND

    def locate(self, points, seed: int = 0):
        """Locate points; returns an int for one point, a LongTensor otherwise."""
        p, single = _as_points(points, self.mesh)
        out = torch.tensor(
            [self.walk(q, seed) for q in p], dtype=torch.long, device=p.device
        )
        return int(out[0]) if single else out


class TreeSearch:
    """BVH-accelerated point location.

    Args:
        mesh (SimplicialMesh): mesh to search.
        tolerance (float): barycentric sign tolerance.
        leaf_size (int): maximum number of cells per BVH leaf.
        max_candidates (int | None): cap on BVH candidates per point. When the
            cap is hit and no candidate contains the point, the search falls
            back to an adjacency walk seeded at the first candidate.
    """

    def __init__(
        self,
        mesh: SimplicialMesh,
        tolerance: float = DEFAULT_TOLERANCE,
        leaf_size: int = 4,
        max_candidates: Optional[int] = None,
    ):
        _check_locatable(mesh)
        self.mesh = mesh
        self.tolerance = tolerance
        self.max_candidates = max_candidates
        self.bvh = BVH.from_mesh(mesh, leaf_size=leaf_size)
        self._walk = WalkSearch(mesh, tolerance)
        logger.debug(
            "Built BVH with %d nodes over %d cells", self.bvh.n_nodes, mesh.n_cells
        )

    def _containing(self, points: Tensor) -> tuple[list[Tensor], list[Tensor]]:
        """Candidates and containment mask, per point."""
        candidates = self.bvh.find_candidate_cells(
            points,
            max_candidates_per_point=self.max_candidates,
        )
        counts = torch.tensor([c.numel() for c in candidates], dtype=torch.long)
        if int(counts.sum()) == 0:
            return candidates, [torch.zeros(0, dtype=torch.bool) for _ in candidates]

        cells = torch.cat(candidates)
        owner = torch.repeat_interleave(torch.arange(points.shape[0]), counts).to(points.device)
        lam = self.mesh.geometry.to_reference(points[owner], cells)
        inside = (lam >= -self.tolerance).all(dim=-1)
        return candidates, list(torch.split(inside, counts.tolist()))

    def locate(self, points):
        """First cell containing each point, NOT_FOUND when outside the mesh.

        Args:
            points: (m,) point or (P, m) points.

        Returns:
            int for a single point, (P,) LongTensor otherwise.
        """
        p, single = _as_points(points, self.mesh)
        candidates, inside = self._containing(p)

        result = []
        for i, (cand, mask) in enumerate(zip(candidates, inside)):
            hits = cand[mask]
            if hits.numel() > 0:
                result.append(int(hits.min()))
            elif (
                self.max_candidates is not None
                and cand.numel() >= self.max_candidates
            ):
                result.append(self._walk.walk(p[i], seed=int(cand[0])))
            else:
                result.append(NOT_FOUND)

        out = torch.tensor(result, dtype=torch.long, device=p.device)
        return int(out[0]) if single else out

    def all_locate(self, point) -> list[int]:
        """Every cell containing the point, sorted ascending.

        A point on a shared facet, edge or vertex returns all incident cells.
        """
        p, single = _as_points(point, self.mesh)
        if not single:
            raise ValueError("all_locate expects a single point")
        # No candidate cap here: every incident cell must be found.
        candidates = self.bvh.find_candidate_cells(p)[0]
        if candidates.numel() == 0:
            return []
        lam = self.mesh.geometry.to_reference(p.expand(candidates.numel(), -1), candidates)
        inside = (lam >= -self.tolerance).all(dim=-1)
        return sorted(candidates[inside].tolist())


__all__ = ["TreeSearch", "WalkSearch"]
