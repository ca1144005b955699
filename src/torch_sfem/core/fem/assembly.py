"""Global assembly of finite element operators and forcing vectors.

For a bilinear form a and a Lagrange basis {ψ_i} the global matrix is

    A[dof(T, i), dof(T, j)] = Σ_T ∫_T a(ψ_j, ψ_i)

and the forcing vector is b[dof(T, i)] = Σ_T ∫_T f ψ_i.

Local contributions are computed for all cells at once, one (i, j) pair of
local basis functions at a time, and accumulated as COO triplets. A DOF is
shared by many cells, so the same (row, col) key appears many times:
duplicates are summed by `coalesce()`, never overwritten.

Symmetric forms only integrate the pairs with dof(i) >= dof(j); the upper
triangle is mirrored from the lower one.
"""
# pylint: disable=invalid-name

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import torch
from torch import Tensor

from .dofs import dof_table
from .forms import BilinearForm, FormContext
from .integrator import Integrand, Integrator
from .reference import LagrangeBasis

if TYPE_CHECKING:
    from ..mesh.mesh import SimplicialMesh

logger = logging.getLogger(__name__)


class Assembler:
    """Assemble operators and forcing terms on a mesh.

    Args:
        mesh (SimplicialMesh): the mesh.
        integrator (Integrator): quadrature rule, on `mesh.local_dim`-simplices.
        basis (LagrangeBasis): local basis.
        dofs (Tensor | None): (C, n_basis) global DOF table. Defaults to the
            Lagrange numbering of `dof_table`.
        n_dofs (int | None): total number of DOFs; defaults to max(dofs) + 1.
        solution (Tensor | None): (n_dofs,) current solution coefficients,
            required by forms with `requires_solution`. There is no implicit
            zero state: assembling such a form without a solution raises.

    Raises:
        ValueError: if the DOF table does not have one column per local basis
            function and one row per cell, or if the integrator, basis and
            mesh dimensions disagree.
    """

    def __init__(
        self,
        mesh: SimplicialMesh,
        integrator: Integrator,
        basis: LagrangeBasis,
        dofs: Optional[Tensor] = None,
        n_dofs: Optional[int] = None,
        solution: Optional[Tensor] = None,
    ):
        if integrator.n != mesh.local_dim or basis.n != mesh.local_dim:
            raise ValueError(
                f"integrator (n={integrator.n}) and basis (n={basis.n}) must match "
                f"the mesh dimension {mesh.local_dim}"
            )

        if dofs is None:
            dofs, default_n_dofs = dof_table(mesh, basis)
            n_dofs = default_n_dofs if n_dofs is None else n_dofs
        dofs = torch.as_tensor(dofs, device=mesh.nodes.device)
        if dofs.ndim != 2 or dofs.shape[1] != basis.n_basis:
            raise ValueError(
                f"DOF table must have {basis.n_basis} columns (one per local basis "
                f"function), got shape {tuple(dofs.shape)}"
            )
        if dofs.shape[0] != mesh.n_cells:
            raise ValueError(
                f"DOF table has {dofs.shape[0]} rows, mesh has {mesh.n_cells} cells"
            )
        dofs = dofs.to(torch.long)
        if n_dofs is None:
            n_dofs = int(dofs.max()) + 1 if dofs.numel() > 0 else 0
        if dofs.numel() > 0 and (int(dofs.min()) < 0 or int(dofs.max()) >= n_dofs):
            raise ValueError(f"DOF ids must lie in [0, {n_dofs})")

        self.mesh = mesh
        self.geometry = mesh.geometry
        self.integrator = integrator
        self.basis = basis
        self.dofs = dofs
        self.n_dofs = int(n_dofs)
        self.solution = solution

        # Reference tables, shared by every cell.
        bary, _ = integrator.rule(self.geometry)
        self._values = basis.eval(bary)  # (Q, n_basis)
        grads_ref = basis.grad(bary)  # (Q, n_basis, n)

        # Physical data, per cell.
        self._points = integrator.quadrature_points(self.geometry)  # (C, Q, m)
        self._inv_jacobians_T = self.geometry.inv_jacobians_T()  # (C, m, n)
        self._grads = torch.einsum(
            "cmn,qbn->cqbm", self._inv_jacobians_T, grads_ref
        )  # (C, Q, n_basis, m)

    @property
    def solution(self) -> Optional[Tensor]:
        return self._solution

    @solution.setter
    def solution(self, value: Optional[Tensor]) -> None:
        if value is not None:
            value = torch.as_tensor(
                value, dtype=self.mesh.nodes.dtype, device=self.mesh.nodes.device
            )
            if value.shape != (self.n_dofs,):
                raise ValueError(
                    f"solution must have shape ({self.n_dofs},), got {tuple(value.shape)}"
                )
        self._solution = value

    # ------------------------------------------------------------------
    # Context handling
    # ------------------------------------------------------------------

    def _context(self) -> FormContext:
        ctx = FormContext(self.mesh.n_cells)
        if self._solution is not None:
            coeffs = self._solution[self.dofs]  # (C, n_basis)
            self._u = torch.einsum("cb,qb->cq", coeffs, self._values)
            self._grad_u = torch.einsum("cb,cqbm->cqm", coeffs, self._grads)
        else:
            self._u = None
            self._grad_u = None
        return ctx

    def _select(self, ctx: FormContext, cells: Optional[Tensor]) -> None:
        """Point the context at a batch of cells (all cells if None)."""

        def take(t: Optional[Tensor]) -> Optional[Tensor]:
            if t is None or cells is None:
                return t
            return t[cells]

        ctx.cells = (
            torch.arange(self.mesh.n_cells, device=self.dofs.device) if cells is None else cells
        )
        ctx.points = take(self._points)
        ctx.inv_jacobians_T = take(self._inv_jacobians_T)
        ctx.u = take(self._u)
        ctx.grad_u = take(self._grad_u)

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def discretize_operator(
        self,
        op: BilinearForm,
        exploit_symmetry: bool = True,
    ) -> Tensor:
        """Assemble the global matrix of a bilinear form.

        Args:
            op (BilinearForm): the form.
            exploit_symmetry (bool): for symmetric forms, integrate only the
                lower triangle and mirror it. With False every (i, j) pair is
                integrated.

        Returns:
            (n_dofs, n_dofs) sparse CSR tensor.

        Raises:
            ValueError: if the form needs a solution and none was supplied.
        """
        if op.requires_solution and self._solution is None:
            raise ValueError(f"{op!r} depends on the solution; pass solution= to the Assembler")

        ctx = self._context()
        weak_form = op.integrate(ctx)
        symmetric = exploit_symmetry and op.symmetric
        n_basis = self.basis.n_basis

        rows, cols, vals = [], [], []
        for i in range(n_basis):
            for j in range(n_basis):
                cells = None
                if symmetric:
                    lower = self.dofs[:, i] >= self.dofs[:, j]
                    if not lower.any():
                        continue
                    if not lower.all():
                        cells = torch.nonzero(lower, as_tuple=False).flatten()

                self._select(ctx, cells)
                grads = self._grads if cells is None else self._grads[cells]
                ctx.psi_i = self._values[:, i]
                ctx.psi_j = self._values[:, j]
                ctx.grad_i = grads[:, :, i]
                ctx.grad_j = grads[:, :, j]

                local = self.integrator.integrate_weak_form(
                    self.geometry, weak_form, cells=cells, points=ctx.points
                )
                row = self.dofs[:, i] if cells is None else self.dofs[cells, i]
                col = self.dofs[:, j] if cells is None else self.dofs[cells, j]
                rows.append(row)
                cols.append(col)
                vals.append(local)

        dtype = self.mesh.nodes.dtype
        device = self.mesh.nodes.device
        if rows:
            row = torch.cat(rows)
            col = torch.cat(cols)
            val = torch.cat(vals)
        else:
            row = col = torch.zeros(0, dtype=torch.long, device=device)
            val = torch.zeros(0, dtype=dtype, device=device)

        if symmetric:
            off = row != col
            row, col, val = (
                torch.cat([row, col[off]]),
                torch.cat([col, row[off]]),
                torch.cat([val, val[off]]),
            )

        A = torch.sparse_coo_tensor(
            torch.stack([row, col]),
            val,
            size=(self.n_dofs, self.n_dofs),
        ).coalesce()

        logger.debug(
            "Assembled %r: %d triplets -> %d nonzeros (symmetric=%s)",
            op,
            val.numel(),
            A._nnz(),  # pylint: disable=protected-access
            symmetric,
        )
        return A.to_sparse_csr()

    # ------------------------------------------------------------------
    # Forcing
    # ------------------------------------------------------------------

    def discretize_forcing(self, f: Integrand) -> Tensor:
        """Assemble the load vector b_i = ∫ f ψ_i.

        Args:
            f: constant, callable of (C, Q, m) physical points, or (C, Q)
                tensor of values at the quadrature points.

        Returns:
            (n_dofs,) dense vector.
        """
        b = torch.zeros(self.n_dofs, dtype=self.mesh.nodes.dtype, device=self.mesh.nodes.device)
        for i in range(self.basis.n_basis):
            local = self.integrator.integrate_basis(
                self.geometry, f, self.basis, i, points=self._points
            )
            b.index_add_(0, self.dofs[:, i], local)
        return b


__all__ = ["Assembler"]
