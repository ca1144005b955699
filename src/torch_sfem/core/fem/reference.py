"""Lagrange basis functions on the reference simplex.

Nodal basis functions of order 1 and 2 on the reference n-simplex Δⁿ,
evaluated in barycentric coordinates.

For the reference simplex Δⁿ with vertices at standard basis vectors:
    v_0 = origin, v_i = e_i for i=1..n

Barycentric coordinates λ = (λ_0, ..., λ_n) satisfy:
    - Σ λ_i = 1
    - λ_i(v_j) = δ_ij
    - x = Σ λ_i(x) v_i

Basis functions:
    - order 1: ψ_i = λ_i  (one per vertex)
    - order 2: ψ_i = λ_i (2 λ_i - 1) at vertices,
               ψ_ij = 4 λ_i λ_j at edge midpoints

Local ordering: vertices first, then edges in `combinations(range(n+1), 2)`
order. Gradients are given in reference (ξ) coordinates; the physical
gradient is J_T^{-T} ∇_ξ ψ.
"""
# pylint: disable=invalid-name

from __future__ import annotations

from itertools import combinations

import torch
from torch import Tensor


def barycentric_gradients_reference(
    n: int,
    device: torch.device | None = None,
    dtype: torch.dtype = torch.float64,
) -> Tensor:
    """Gradients of barycentric coordinates on the reference simplex.

    For Δⁿ with vertices v_0=origin, v_i=e_i, the gradient of λ_i in
    reference (ξ) coordinates is:
        ∇λ_0 = -ones, ∇λ_i = e_i for i=1..n.

    Args:
        n (int): simplex dimension.
        device (torch.device | None): device for tensors.
        dtype (torch.dtype): floating dtype.

    Returns:
        (n+1, n) tensor where row i is ∇λ_i in ℝⁿ.
    """
    grad_lambda = torch.zeros(n + 1, n, device=device, dtype=dtype)
    grad_lambda[0, :] = -1.0
    for i in range(1, n + 1):
        grad_lambda[i, i - 1] = 1.0
    return grad_lambda


class LagrangeBasis:
    """Continuous Lagrange basis of order 1 or 2 on the reference n-simplex.

    Args:
        n (int): simplex dimension (1, 2 or 3).
        order (int): polynomial order (1 or 2).

    Example:
        >>> basis = LagrangeBasis(2, order=1)
        >>> basis.n_basis
        3
    """

    def __init__(self, n: int, order: int = 1):
        if n not in (1, 2, 3):
            raise ValueError(f"n must be 1, 2 or 3, got {n}")
        if order not in (1, 2):
            raise ValueError(f"order must be 1 or 2, got {order}")
        self.n = n
        self.order = order
        self.local_edges = list(combinations(range(n + 1), 2))

    def __repr__(self) -> str:
        return f"LagrangeBasis(n={self.n}, order={self.order})"

    @property
    def n_basis(self) -> int:
        """Number of local basis functions per cell."""
        n_vertices = self.n + 1
        if self.order == 1:
            return n_vertices
        return n_vertices + len(self.local_edges)

    def eval(self, barycentric: Tensor) -> Tensor:
        """Evaluate all basis functions at barycentric points.

        Args:
            barycentric (Tensor): (Q, n+1) barycentric coordinates.

        Returns:
            (Q, n_basis) values.
        """
        lam = barycentric
        if self.order == 1:
            return lam.clone()
        vertex = lam * (2.0 * lam - 1.0)
        edge = torch.stack([4.0 * lam[:, i] * lam[:, j] for i, j in self.local_edges], dim=1)
        return torch.cat([vertex, edge], dim=1)

    def grad(self, barycentric: Tensor) -> Tensor:
        """Reference gradients of all basis functions at barycentric points.

        Args:
            barycentric (Tensor): (Q, n+1) barycentric coordinates.

        Returns:
            (Q, n_basis, n) gradients in reference coordinates.
        """
        lam = barycentric
        Q = lam.shape[0]
        grad_lambda = barycentric_gradients_reference(
            self.n, device=lam.device, dtype=lam.dtype
        )  # (n+1, n)

        if self.order == 1:
            return grad_lambda.unsqueeze(0).expand(Q, -1, -1).clone()

        # ∇[λ_i (2λ_i - 1)] = (4λ_i - 1) ∇λ_i
        vertex = (4.0 * lam - 1.0).unsqueeze(-1) * grad_lambda.unsqueeze(0)
        # ∇[4 λ_i λ_j] = 4 (λ_j ∇λ_i + λ_i ∇λ_j)
        edge = torch.stack(
            [
                4.0
                * (
                    lam[:, j : j + 1] * grad_lambda[i].unsqueeze(0)
                    + lam[:, i : i + 1] * grad_lambda[j].unsqueeze(0)
                )
                for i, j in self.local_edges
            ],
            dim=1,
        )
        return torch.cat([vertex, edge], dim=1)


__all__ = ["LagrangeBasis", "barycentric_gradients_reference"]
