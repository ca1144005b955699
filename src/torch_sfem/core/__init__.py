""" Core modules """

from .constants import (
    ALL,
    BOUNDARY_ALL,
    CACHE_CELLS,
    DEFAULT_TOLERANCE,
    NOT_FOUND,
    UNMARKED,
)
from .fem import (
    Advection,
    Assembler,
    BilinearForm,
    Diffusion,
    Integrator,
    LagrangeBasis,
    Mass,
    NonLinearReaction,
    Reaction,
    SimplicialGeometry,
    dof_table,
    quadrature_simplex,
)
from .mesh import Adjacency, Cell, MeshTopology, SimplicialMesh, SubEntity, build_topology
from .ops.index import row
from .spatial import BVH, TreeSearch, WalkSearch

__all__ = [
    "ALL",
    "Adjacency",
    "Advection",
    "Assembler",
    "BOUNDARY_ALL",
    "BVH",
    "BilinearForm",
    "CACHE_CELLS",
    "Cell",
    "DEFAULT_TOLERANCE",
    "Diffusion",
    "Integrator",
    "LagrangeBasis",
    "Mass",
    "MeshTopology",
    "NOT_FOUND",
    "NonLinearReaction",
    "Reaction",
    "SimplicialGeometry",
    "SimplicialMesh",
    "SubEntity",
    "TreeSearch",
    "UNMARKED",
    "WalkSearch",
    "build_topology",
    "dof_table",
    "quadrature_simplex",
    "row",
]
