"""Affine geometry of the cells of a simplicial mesh.

Every cell T is the image of the reference simplex Δⁿ under

    F_T(ξ) = x_0 + J_T ξ,    J_T = [x_1 - x_0, ..., x_n - x_0]  (m × n).

Integration and point location need, per cell:
    - |det J_T| to scale reference integrals (Gram determinant
      sqrt(det(J_Tᵀ J_T)) for cells embedded in a higher-dimensional space);
    - J_T^{-T} to pull back reference gradients: ∇_x ψ = J_T^{-T} ∇_ξ ψ
      (pseudo-inverse transpose J_T (J_Tᵀ J_T)^{-1} when m > n);
    - the inverse map, giving barycentric coordinates of a physical point.

All three are computed for every cell in one batched pass and cached. Mesh
geometry never changes after construction, so the cache is never invalidated.
"""
# pylint: disable=invalid-name

from __future__ import annotations

import math
from typing import TYPE_CHECKING, NamedTuple, Optional

import torch
from torch import Tensor

if TYPE_CHECKING:
    from ..mesh.mesh import SimplicialMesh


class AffineMaps(NamedTuple):
    """Batched affine map data, one entry per cell."""

    J: Tensor  # (C, m, n)
    det: Tensor  # (C,) unsigned volume scaling
    inv_T: Tensor  # (C, m, n)


class SimplicialGeometry:
    """Per-cell affine maps of a mesh of n-simplices in ℝ^m.

    Args:
        nodes (Tensor): (N, m) vertex coordinates.
        cells (Tensor): (C, n+1) vertex ids of each cell.
        n (int): simplex dimension.

    Raises:
        ValueError: if n > m.
    """

    def __init__(self, nodes: Tensor, cells: Tensor, n: int):
        if n > nodes.shape[1]:
            raise ValueError(f"{n}-simplices cannot live in {nodes.shape[1]}D space")
        self.nodes = nodes
        self.cells = cells
        self.n = n
        self.m = nodes.shape[1]
        self._maps: Optional[AffineMaps] = None

    @classmethod
    def from_mesh(cls, mesh: SimplicialMesh) -> SimplicialGeometry:
        return cls(mesh.nodes, mesh.cells, mesh.local_dim)

    @property
    def n_cells(self) -> int:
        return self.cells.shape[0]

    def vertices(self, cells: Optional[Tensor] = None) -> Tensor:
        """(C, n+1, m) vertex coordinates, optionally of a subset of cells."""
        rows = self.cells if cells is None else self.cells[cells]
        return self.nodes[rows]

    # ------------------------------------------------------------------
    # Affine maps
    # ------------------------------------------------------------------

    @property
    def maps(self) -> AffineMaps:
        """Jacobians, scaling factors and pullbacks of all cells (cached)."""
        if self._maps is None:
            self._maps = self._build_maps()
        return self._maps

    def _build_maps(self) -> AffineMaps:
        x = self.vertices()
        J = (x[:, 1:, :] - x[:, :1, :]).transpose(1, 2)  # (C, m, n)

        if self.m == self.n:
            det = torch.linalg.det(J).abs()
            inv_T = torch.linalg.inv(J).transpose(1, 2)
        else:
            gram = J.transpose(1, 2) @ J  # (C, n, n)
            det = torch.linalg.det(gram).clamp_min(0.0).sqrt()
            inv_T = J @ torch.linalg.inv(gram)  # (C, m, n)

        return AffineMaps(J=J, det=det, inv_T=inv_T)

    def jacobians(self) -> Tensor:
        """(C, m, n) Jacobians J_T."""
        return self.maps.J

    def det_jacobians(self) -> Tensor:
        """(C,) unsigned |det J_T| (Gram determinant when m > n)."""
        return self.maps.det

    def inv_jacobians_T(self) -> Tensor:
        """(C, m, n) matrices with ∇_x ψ = J_T^{-T} ∇_ξ ψ."""
        return self.maps.inv_T

    def volume_scaling(self) -> Tensor:
        """(C,) factors such that ∫_T f ≈ |det J_T| Σ_q w_q f(x_q)."""
        return self.maps.det

    def measures(self) -> Tensor:
        """(C,) length / area / volume, |det J_T| / n!."""
        return self.maps.det / math.factorial(self.n)

    def centroids(self) -> Tensor:
        """(C, m) barycenters."""
        return self.vertices().mean(dim=1)

    # ------------------------------------------------------------------
    # Point maps
    # ------------------------------------------------------------------

    def to_physical(self, barycentric: Tensor, cells: Optional[Tensor] = None) -> Tensor:
        """Map barycentric reference points into cells.

        Args:
            barycentric (Tensor): (Q, n+1) barycentric coordinates.
            cells (Tensor | None): optional subset of cell ids.

        Returns:
            (C, Q, m) physical points.
        """
        x = self.vertices(cells)
        return torch.einsum("qk,ckm->cqm", barycentric.to(x.dtype), x)

    def to_reference(self, points: Tensor, cells: Tensor) -> Tensor:
        """Barycentric coordinates of each point in its paired cell.

        Embedded cells (m > n) are handled by orthogonal projection on the
        cell's affine hull.

        Args:
            points (Tensor): (P, m) physical points.
            cells (Tensor): (P,) cell id paired with each point.

        Returns:
            (P, n+1) barycentric coordinates summing to 1.
        """
        origin = self.nodes[self.cells[cells, 0]]  # (P, m)
        inv_T = self.maps.inv_T[cells]  # (P, m, n)
        # ξ = J^+ (x - x_0), J^+ = (J^{-T})ᵀ
        xi = torch.einsum("pmn,pm->pn", inv_T, points.to(origin.dtype) - origin)
        return torch.cat([1.0 - xi.sum(dim=-1, keepdim=True), xi], dim=-1)

    def to(self, *args, **kwargs) -> SimplicialGeometry:
        """Geometry of the same cells with coordinates moved/cast."""
        nodes = self.nodes.to(*args, **kwargs)
        return SimplicialGeometry(nodes, self.cells.to(nodes.device), self.n)

    def cpu(self) -> SimplicialGeometry:
        return self.to("cpu")


__all__ = ["AffineMaps", "SimplicialGeometry"]
