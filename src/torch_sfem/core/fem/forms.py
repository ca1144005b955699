"""Bilinear forms for operator assembly.

A bilinear form a(u, v) is turned into a "weak form" once, before the
assembly loop: `form.integrate(ctx)` returns a callable `weak_form(x)` that
evaluates the integrand a(ψ_j, ψ_i) at the physical quadrature points x of a
batch of cells. The callable reads the current trial/test pair and per-cell
data from the shared `FormContext`, which the assembler updates in place
before each call.

Convention: ψ_j is the trial function, ψ_i the test function, and the
assembled entry is A[dof(i), dof(j)] = ∫ a(ψ_j, ψ_i).

Coefficients may be:
    - a Python scalar,
    - a constant tensor (vector b of shape (m,), matrix K of shape (m, m)),
    - a callable of physical points x of shape (C, Q, m), returning values of
      shape (C, Q), (C, Q, m) or (C, Q, m, m) respectively,
    - a tensor tabulated at the quadrature points of every mesh cell, of
      shape (n_cells, Q), (n_cells, Q, m) or (n_cells, Q, m, m). It is sliced
      to the cells of the current batch.
"""
# pylint: disable=invalid-name

from __future__ import annotations

from numbers import Number
from typing import Callable, Optional, Union

import torch
from torch import Tensor

Coefficient = Union[float, Tensor, Callable[[Tensor], Tensor]]
WeakForm = Callable[[Tensor], Tensor]


class FormContext:
    """Per-batch buffers read by weak forms.

    Attributes:
        n_cells (int): number of cells of the mesh.
        cells (Tensor): (C,) ids of the cells in the current batch.
        points (Tensor): (C, Q, m) physical quadrature points.
        inv_jacobians_T (Tensor): (C, m, n) pullback matrices.
        psi_i, psi_j (Tensor): (Q,) test / trial values at quadrature points.
        grad_i, grad_j (Tensor): (C, Q, m) physical test / trial gradients.
        u (Tensor | None): (C, Q) current solution at quadrature points.
        grad_u (Tensor | None): (C, Q, m) current solution gradient.
    """

    def __init__(self, n_cells: int = 0):
        self.n_cells = n_cells
        self.cells: Optional[Tensor] = None
        self.points: Optional[Tensor] = None
        self.inv_jacobians_T: Optional[Tensor] = None
        self.psi_i: Optional[Tensor] = None
        self.psi_j: Optional[Tensor] = None
        self.grad_i: Optional[Tensor] = None
        self.grad_j: Optional[Tensor] = None
        self.u: Optional[Tensor] = None
        self.grad_u: Optional[Tensor] = None


def evaluate_coefficient(
    value: Coefficient, x: Tensor, ctx: Optional[FormContext] = None
) -> Tensor | float:
    """Evaluate a coefficient at physical points x of shape (C, Q, m).

    Tensors whose leading shape is (ctx.n_cells, Q) are tabulated values and
    are restricted to `ctx.cells`.
    """
    if callable(value):
        return value(x)
    if isinstance(value, Number):
        return value
    value = torch.as_tensor(value, dtype=x.dtype, device=x.device)
    if (
        ctx is not None
        and ctx.cells is not None
        and value.ndim >= 2
        and value.shape[:2] == (ctx.n_cells, x.shape[-2])
    ):
        return value[ctx.cells]
    return value


def _batch_shape(x: Tensor) -> torch.Size:
    return x.shape[:-1]


class BilinearForm:
    """Base class of bilinear forms.

    Subclasses implement `evaluate(ctx, x)`.

    Attributes:
        symmetric (bool): a(u, v) == a(v, u); enables lower-triangle assembly.
        requires_solution (bool): the integrand depends on the current
            solution (non-linear forms).
    """

    symmetric: bool = True
    requires_solution: bool = False

    def evaluate(self, ctx: FormContext, x: Tensor) -> Tensor:
        raise NotImplementedError

    def integrate(self, ctx: FormContext) -> WeakForm:
        """Bind the form to a context, returning the weak form callable."""

        def weak_form(x: Tensor) -> Tensor:
            value = self.evaluate(ctx, x)
            return torch.broadcast_to(torch.as_tensor(value, dtype=x.dtype, device=x.device), _batch_shape(x))

        return weak_form

    def __add__(self, other: BilinearForm) -> BilinearForm:
        if not isinstance(other, BilinearForm):
            return NotImplemented
        return SumForm(self, other)

    def __mul__(self, scale: float) -> BilinearForm:
        if not isinstance(scale, Number):
            return NotImplemented
        return ScaledForm(self, float(scale))

    __rmul__ = __mul__

    def __neg__(self) -> BilinearForm:
        return ScaledForm(self, -1.0)

    def __sub__(self, other: BilinearForm) -> BilinearForm:
        if not isinstance(other, BilinearForm):
            return NotImplemented
        return SumForm(self, -other)


class SumForm(BilinearForm):
    def __init__(self, left: BilinearForm, right: BilinearForm):
        self.left = left
        self.right = right
        self.symmetric = left.symmetric and right.symmetric
        self.requires_solution = left.requires_solution or right.requires_solution

    def __repr__(self) -> str:
        return f"({self.left!r} + {self.right!r})"

    def evaluate(self, ctx: FormContext, x: Tensor) -> Tensor:
        return self.left.evaluate(ctx, x) + self.right.evaluate(ctx, x)


class ScaledForm(BilinearForm):
    def __init__(self, form: BilinearForm, scale: float):
        self.form = form
        self.scale = scale
        self.symmetric = form.symmetric
        self.requires_solution = form.requires_solution

    def __repr__(self) -> str:
        return f"{self.scale} * {self.form!r}"

    def evaluate(self, ctx: FormContext, x: Tensor) -> Tensor:
        return self.scale * self.form.evaluate(ctx, x)


class Mass(BilinearForm):
    """a(u, v) = ∫ u v."""

    def __repr__(self) -> str:
        return "Mass()"

    def evaluate(self, ctx: FormContext, x: Tensor) -> Tensor:
        return (ctx.psi_i * ctx.psi_j).expand(_batch_shape(x))


class Reaction(BilinearForm):
    """a(u, v) = ∫ c u v."""

    def __init__(self, c: Coefficient = 1.0):
        self.c = c

    def __repr__(self) -> str:
        return f"Reaction(c={self.c!r})"

    def evaluate(self, ctx: FormContext, x: Tensor) -> Tensor:
        return evaluate_coefficient(self.c, x, ctx) * ctx.psi_i * ctx.psi_j


class Diffusion(BilinearForm):
    """a(u, v) = ∫ (K ∇u) · ∇v.

    Args:
        K (Coefficient): scalar conductivity, constant (m, m) tensor, a
            callable returning (C, Q) scalars or (C, Q, m, m) tensors, or
            values tabulated on every cell. A 2D tensor of shape (m, m) is
            always read as a constant matrix. A constant non-symmetric matrix
            makes the form non-symmetric; other inputs are assumed symmetric.
    """

    def __init__(self, K: Coefficient = 1.0):
        self.K = K
        if isinstance(K, Tensor) and K.ndim == 2 and K.shape[0] == K.shape[1]:
            self.symmetric = bool(torch.allclose(K, K.T))

    def __repr__(self) -> str:
        return f"Diffusion(K={self.K!r})"

    def evaluate(self, ctx: FormContext, x: Tensor) -> Tensor:
        m = x.shape[-1]
        if isinstance(self.K, Tensor) and self.K.shape == (m, m):
            K = self.K.to(dtype=x.dtype, device=x.device)
            return torch.einsum("...m,mn,...n->...", ctx.grad_i, K, ctx.grad_j)

        K = evaluate_coefficient(self.K, x, ctx)
        if isinstance(K, Tensor) and K.shape == _batch_shape(x) + (m, m):
            return torch.einsum("...m,...mn,...n->...", ctx.grad_i, K, ctx.grad_j)
        return K * (ctx.grad_i * ctx.grad_j).sum(dim=-1)


class Advection(BilinearForm):
    """a(u, v) = ∫ (b · ∇u) v.

    Args:
        b (Coefficient): constant (m,) velocity, callable returning (C, Q, m),
            or (n_cells, Q, m) values tabulated on every cell.
    """

    symmetric = False

    def __init__(self, b: Coefficient):
        self.b = b

    def __repr__(self) -> str:
        return f"Advection(b={self.b!r})"

    def evaluate(self, ctx: FormContext, x: Tensor) -> Tensor:
        b = evaluate_coefficient(self.b, x, ctx)
        return (b * ctx.grad_j).sum(dim=-1) * ctx.psi_i


class NonLinearReaction(BilinearForm):
    """a(u; w, v) = ∫ h(u) w v, with u the current solution.

    Args:
        h (Callable[[Tensor], Tensor]): elementwise function of the solution
            values (C, Q).
    """

    requires_solution = True

    def __init__(self, h: Callable[[Tensor], Tensor]):
        self.h = h

    def __repr__(self) -> str:
        return f"NonLinearReaction(h={self.h!r})"

    def evaluate(self, ctx: FormContext, x: Tensor) -> Tensor:
        if ctx.u is None:
            raise ValueError("NonLinearReaction needs the current solution")
        return self.h(ctx.u) * ctx.psi_i * ctx.psi_j


__all__ = [
    "Advection",
    "BilinearForm",
    "Coefficient",
    "Diffusion",
    "FormContext",
    "Mass",
    "NonLinearReaction",
    "Reaction",
    "ScaledForm",
    "SumForm",
    "evaluate_coefficient",
    "WeakForm",
]
