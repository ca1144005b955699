"""Finite elements on simplicial meshes.

Lagrange elements of order 1 and 2 on intervals, triangles and tetrahedra,
with quadrature-based assembly of sparse operators and load vectors.

Main components:
- SimplicialGeometry: affine simplex geometry (Jacobians, det, pullback).
- Quadrature rules on reference simplices (quadrature.py) and the
  Integrator that applies them over mesh cells.
- LagrangeBasis on the reference simplex (reference.py), DOF numbering.
- Bilinear forms (forms.py) and the Assembler (assembly.py).

Example usage:
    ```python
    from torch_sfem.core import SimplicialMesh
    from torch_sfem.core.fem import Assembler, Diffusion, Integrator, LagrangeBasis, Mass

    mesh = SimplicialMesh(nodes, cells, boundary_nodes)
    assembler = Assembler(mesh, Integrator(2, degree=2), LagrangeBasis(2, order=1))

    A = assembler.discretize_operator(Diffusion(1.0) + Mass())
    b = assembler.discretize_forcing(lambda x: torch.sin(x[..., 0]))
    ```
"""

from .assembly import Assembler
from .dofs import dof_table
from .forms import (
    Advection,
    BilinearForm,
    Diffusion,
    FormContext,
    Mass,
    NonLinearReaction,
    Reaction,
)
from .geometry import SimplicialGeometry
from .integrator import Integrator
from .quadrature import quadrature_simplex
from .reference import LagrangeBasis, barycentric_gradients_reference

__all__ = [
    "Advection",
    "Assembler",
    "BilinearForm",
    "Diffusion",
    "FormContext",
    "Integrator",
    "LagrangeBasis",
    "Mass",
    "NonLinearReaction",
    "Reaction",
    "SimplicialGeometry",
    "barycentric_gradients_reference",
    "dof_table",
    "quadrature_simplex",
]
