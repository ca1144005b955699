"""Simplicial finite element core on PyTorch tensors."""

from .core import (
    ALL,
    BOUNDARY_ALL,
    CACHE_CELLS,
    NOT_FOUND,
    UNMARKED,
    Advection,
    Assembler,
    BilinearForm,
    Diffusion,
    Integrator,
    LagrangeBasis,
    Mass,
    NonLinearReaction,
    Reaction,
    SimplicialMesh,
    TreeSearch,
    WalkSearch,
    dof_table,
    quadrature_simplex,
)
from .logging_config import setup_logging

__version__ = "0.1.0"

__all__ = [
    "ALL",
    "Advection",
    "Assembler",
    "BOUNDARY_ALL",
    "BilinearForm",
    "CACHE_CELLS",
    "Diffusion",
    "Integrator",
    "LagrangeBasis",
    "Mass",
    "NOT_FOUND",
    "NonLinearReaction",
    "Reaction",
    "SimplicialMesh",
    "TreeSearch",
    "UNMARKED",
    "WalkSearch",
    "dof_table",
    "quadrature_simplex",
    "setup_logging",
]
