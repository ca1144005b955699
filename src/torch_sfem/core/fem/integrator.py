"""Quadrature integrator over the cells of a simplicial mesh.

For a cell T with affine map F_T(ξ) = x_0 + J_T ξ, integrals are approximated
with a fixed reference rule (ξ_q, w_q):

    ∫_T f ≈ |det J_T| Σ_q w_q f(F_T(ξ_q)).

The integrand is given either as a callable, evaluated at the physical
quadrature points of each cell, or as a (C, Q) tensor of values already
tabulated at those points, in which case the affine map is skipped.
"""
# pylint: disable=invalid-name

from __future__ import annotations

from typing import Callable, Optional, Union

import torch
from torch import Tensor

from .geometry import SimplicialGeometry
from .quadrature import quadrature_simplex
from .reference import LagrangeBasis

Integrand = Union[float, Tensor, Callable[[Tensor], Tensor]]


class Integrator:
    """Fixed-rule quadrature on n-simplices.

    Args:
        n (int): simplex dimension of the cells to integrate over.
        degree (int): polynomial degree the rule must integrate exactly.

    Raises:
        ValueError: if no rule is tabulated for (n, degree).

    Example:
        >>> integrator = Integrator(2, degree=2)
        >>> areas = integrator.integrate(mesh.geometry, 1.0)
    """

    def __init__(self, n: int, degree: int = 2):
        self.n = n
        self.degree = degree
        self.points, self.weights = quadrature_simplex(n, degree)

    def __repr__(self) -> str:
        return f"Integrator(n={self.n}, degree={self.degree}, n_points={self.n_points})"

    @property
    def n_points(self) -> int:
        """Number of quadrature points Q."""
        return self.weights.shape[0]

    def rule(self, geometry: SimplicialGeometry) -> tuple[Tensor, Tensor]:
        """Reference points and weights cast to the geometry's device/dtype."""
        self._check(geometry)
        ref = geometry.nodes
        return (
            self.points.to(device=ref.device, dtype=ref.dtype),
            self.weights.to(device=ref.device, dtype=ref.dtype),
        )

    def _check(self, geometry: SimplicialGeometry) -> None:
        if geometry.n != self.n:
            raise ValueError(
                f"integrator is defined on {self.n}-simplices, got {geometry.n}-simplices"
            )

    def quadrature_points(
        self,
        geometry: SimplicialGeometry,
        cells: Optional[Tensor] = None,
    ) -> Tensor:
        """Physical quadrature points.

        Returns:
            (C, Q, m) points, C = number of selected cells.
        """
        bary, _ = self.rule(geometry)
        return geometry.to_physical(bary, cells)

    def _evaluate(
        self,
        geometry: SimplicialGeometry,
        f: Integrand,
        cells: Optional[Tensor],
        points: Optional[Tensor],
    ) -> Tensor:
        """Integrand values at the quadrature points, shape (C, Q)."""
        n_selected = geometry.n_cells if cells is None else cells.numel()
        ref = geometry.nodes

        if callable(f):
            x = self.quadrature_points(geometry, cells) if points is None else points
            values = torch.as_tensor(f(x), dtype=ref.dtype, device=ref.device)
        else:
            values = torch.as_tensor(f, dtype=ref.dtype, device=ref.device)
            # 0-d tensors are constants like Python numbers.
            if values.ndim != 0 and values.shape != (n_selected, self.n_points):
                raise ValueError(
                    f"tabulated integrand must have shape ({n_selected}, {self.n_points}), "
                    f"got {tuple(values.shape)}"
                )
        return torch.broadcast_to(values, (n_selected, self.n_points))

    def _sum(self, geometry: SimplicialGeometry, values: Tensor, cells: Optional[Tensor]) -> Tensor:
        _, w = self.rule(geometry)
        scale = geometry.volume_scaling()
        if cells is not None:
            scale = scale[cells]
        return scale * (values * w).sum(dim=-1)

    def integrate(
        self,
        geometry: SimplicialGeometry,
        f: Integrand,
        cells: Optional[Tensor] = None,
        points: Optional[Tensor] = None,
    ) -> Tensor:
        """Integrate f over each cell.

        Args:
            geometry (SimplicialGeometry): cell geometry.
            f: constant, callable of (C, Q, m) physical points returning
                (C, Q) values, or a (C, Q) tensor of tabulated values.
            cells (Tensor | None): restrict to these cell ids.
            points (Tensor | None): precomputed (C, Q, m) quadrature points.

        Returns:
            (C,) per-cell integrals.
        """
        values = self._evaluate(geometry, f, cells, points)
        return self._sum(geometry, values, cells)

    def integrate_basis(
        self,
        geometry: SimplicialGeometry,
        f: Integrand,
        basis: LagrangeBasis,
        i: int,
        cells: Optional[Tensor] = None,
        points: Optional[Tensor] = None,
    ) -> Tensor:
        """Per-cell ∫ f ψ_i for the i-th local basis function.

        Returns:
            (C,) per-cell integrals.
        """
        bary, _ = self.rule(geometry)
        psi = basis.eval(bary)[:, i]  # (Q,)
        values = self._evaluate(geometry, f, cells, points) * psi
        return self._sum(geometry, values, cells)

    def integrate_weak_form(
        self,
        geometry: SimplicialGeometry,
        weak_form: Callable[[Tensor], Tensor],
        cells: Optional[Tensor] = None,
        points: Optional[Tensor] = None,
    ) -> Tensor:
        """Per-cell integral of a weak form evaluated at physical points."""
        x = self.quadrature_points(geometry, cells) if points is None else points
        values = weak_form(x)
        return self._sum(geometry, values, cells)

    def integrate_mesh(self, geometry: SimplicialGeometry, f: Integrand) -> Tensor:
        """∫ f over the whole mesh, as a 0-d tensor."""
        return self.integrate(geometry, f).sum()


__all__ = ["Integrand", "Integrator"]
