"""Global degree-of-freedom numbering for Lagrange bases."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import torch
from torch import Tensor

from .reference import LagrangeBasis

if TYPE_CHECKING:
    from ..mesh.mesh import SimplicialMesh

logger = logging.getLogger(__name__)


def dof_table(mesh: SimplicialMesh, basis: LagrangeBasis) -> tuple[Tensor, int]:
    """Map each local basis function of each cell to a global DOF.

    Order 1 DOFs are the mesh vertices. Order 2 adds one DOF per edge,
    numbered `n_nodes + edge id`; local edge columns follow the edge order of
    `mesh.cell_to_edges`, which matches the basis' local edge order.

    Args:
        mesh (SimplicialMesh): the mesh.
        basis (LagrangeBasis): local basis, with `basis.n == mesh.local_dim`.

    Returns:
        dofs (Tensor): (C, n_basis) long tensor of global DOF ids.
        n_dofs (int): total number of DOFs.
    """
    if basis.n != mesh.local_dim:
        raise ValueError(
            f"basis is defined on {basis.n}-simplices, mesh cells are {mesh.local_dim}D"
        )

    if basis.order == 1:
        dofs, n_dofs = mesh.cells.clone(), mesh.n_nodes
    else:
        edge_dofs = mesh.n_nodes + mesh.cell_to_edges
        dofs = torch.cat([mesh.cells, edge_dofs], dim=1)
        n_dofs = mesh.n_nodes + mesh.n_edges

    logger.debug("Numbered %d DOFs for %r", n_dofs, basis)
    return dofs, n_dofs


__all__ = ["dof_table"]
