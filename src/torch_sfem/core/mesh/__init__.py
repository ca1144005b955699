"""Simplicial meshes: topology, per-element views, markers."""

from .adjacency import Adjacency
from .mesh import SimplicialMesh
from .simplex import Cell, SubEntity
from .topology import MeshTopology, build_topology

__all__ = [
    "Adjacency",
    "Cell",
    "MeshTopology",
    "SimplicialMesh",
    "SubEntity",
    "build_topology",
]
