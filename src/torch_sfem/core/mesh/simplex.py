"""Per-element views over a simplicial mesh.

`Cell` exposes the geometry of a single top simplex (vertex coordinates,
affine map, measure, barycentric coordinates) and iteration over its
sub-entities. `SubEntity` is an edge or face of the mesh; it owns no data
beyond its id and reads everything else from the mesh tables.

These objects are light views: geometric quantities are slices of the
batched tensors cached by `SimplicialGeometry`.
"""
# pylint: disable=invalid-name

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator

import torch
from torch import Tensor

from ..constants import DEFAULT_TOLERANCE, NOT_FOUND, UNMARKED

if TYPE_CHECKING:
    from .mesh import SimplicialMesh


class SubEntity:
    """An edge or face of a mesh, identified by id within its table.

    Args:
        id (int): index in the edge or face table.
        mesh (SimplicialMesh): owning mesh.
        kind (str): "edge" or "face".
    """

    def __init__(self, id: int, mesh: SimplicialMesh, kind: str):  # pylint: disable=redefined-builtin
        if kind not in ("edge", "face"):
            raise ValueError(f"kind must be 'edge' or 'face', got {kind!r}")
        self.id = int(id)
        self.mesh = mesh
        self.kind = kind

    def __repr__(self) -> str:
        return f"SubEntity(kind={self.kind!r}, id={self.id}, node_ids={self.node_ids.tolist()})"

    @property
    def node_ids(self) -> Tensor:
        """Sorted vertex ids."""
        table = self.mesh.edges if self.kind == "edge" else self.mesh.faces
        return table[self.id]

    @property
    def nodes(self) -> Tensor:
        """(k, m) vertex coordinates."""
        return self.mesh.nodes[self.node_ids]

    def on_boundary(self) -> bool:
        if self.kind == "edge":
            return self.mesh.is_edge_on_boundary(self.id)
        return self.mesh.is_face_on_boundary(self.id)

    def adjacent_cells(self) -> list[int]:
        """Ids of the cells insisting on this sub-entity."""
        if self.kind == "edge":
            return self.mesh.edge_to_cells.neighbors_of(self.id).tolist()
        row = self.mesh.face_to_cells[self.id]
        return [int(c) for c in row.tolist() if c != NOT_FOUND]

    @property
    def marker(self) -> int:
        if self.mesh.local_dim not in (2, 3) or self.kind != self.mesh.boundary_kind:
            return UNMARKED
        return int(self.mesh.boundary_markers[self.id])

    @property
    def measure(self) -> float:
        """Length of an edge, area of a face."""
        x = self.nodes.to(torch.float64)
        J = (x[1:] - x[0]).T  # (m, k-1)
        gram = J.T @ J
        value = torch.linalg.det(gram).clamp_min(0.0).sqrt()
        if self.kind == "face":
            value = value / 2.0
        return float(value)

    def centroid(self) -> Tensor:
        return self.nodes.mean(dim=0)


class Cell:
    """A top simplex of the mesh (interval, triangle or tetrahedron).

    Args:
        id (int): cell index.
        mesh (SimplicialMesh): owning mesh.
    """

    def __init__(self, id: int, mesh: SimplicialMesh):  # pylint: disable=redefined-builtin
        self.id = int(id)
        self.mesh = mesh

    def __repr__(self) -> str:
        return f"Cell(id={self.id}, node_ids={self.node_ids.tolist()})"

    # ------------------------------------------------------------------
    # Vertices and geometry
    # ------------------------------------------------------------------

    @property
    def node_ids(self) -> Tensor:
        """(n+1,) vertex ids, in connectivity order."""
        return self.mesh.cells[self.id]

    @property
    def nodes(self) -> Tensor:
        """(n+1, m) vertex coordinates."""
        return self.mesh.nodes[self.node_ids]

    @property
    def J(self) -> Tensor:
        """(m, n) barycentric matrix [x_1 - x_0, ..., x_n - x_0]."""
        return self.mesh.geometry.jacobians()[self.id]

    @property
    def invJ(self) -> Tensor:
        """(n, m) inverse (pseudoinverse when embedded) of J."""
        return self.mesh.geometry.inv_jacobians_T()[self.id].T

    @property
    def measure(self) -> float:
        return float(self.mesh.geometry.measures()[self.id])

    @property
    def marker(self) -> int:
        return int(self.mesh.cells_markers[self.id])

    def centroid(self) -> Tensor:
        return self.nodes.mean(dim=0)

    def barycentric_coords(self, p: Tensor) -> Tensor:
        """(n+1,) barycentric coordinates of point p."""
        p = torch.as_tensor(p, dtype=self.mesh.nodes.dtype, device=self.mesh.nodes.device)
        cell = torch.tensor([self.id], device=p.device)
        return self.mesh.geometry.to_reference(p.reshape(1, -1), cell)[0]

    def contains(self, p: Tensor, tolerance: float = DEFAULT_TOLERANCE) -> bool:
        """Whether p lies in the closed cell (barycentric sign test)."""
        return bool((self.barycentric_coords(p) >= -tolerance).all())

    def circumcenter(self) -> Tensor:
        """Center of the circumscribed sphere (in the cell's affine hull)."""
        x = self.nodes.to(torch.float64)
        J = (x[1:] - x[0]).T  # (m, n)
        # Solve (J^T J) a = 1/2 diag(J^T J), center = x0 + J a.
        G = J.T @ J
        rhs = 0.5 * torch.diagonal(G)
        a = torch.linalg.solve(G, rhs)
        return (x[0] + J @ a).to(self.mesh.nodes.dtype)

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    @property
    def neighbors(self) -> Tensor:
        """(n+1,) neighbor across the facet opposite each vertex, -1 if none."""
        return self.mesh.neighbors[self.id]

    def on_boundary(self) -> bool:
        """Whether any facet of the cell is on the mesh boundary."""
        return bool((self.neighbors == NOT_FOUND).any())

    def edges(self) -> Iterator[SubEntity]:
        for e in self.mesh.cell_to_edges[self.id].tolist():
            yield SubEntity(e, self.mesh, "edge")

    def faces(self) -> Iterator[SubEntity]:
        if self.mesh.local_dim != 3:
            raise ValueError("faces() is defined for tetrahedral meshes only")
        for f in self.mesh.cell_to_faces[self.id].tolist():
            yield SubEntity(f, self.mesh, "face")

    def facets(self) -> Iterator[SubEntity]:
        """Boundary sub-entities of the cell: edges in 2D, faces in 3D."""
        if self.mesh.local_dim == 3:
            return self.faces()
        if self.mesh.local_dim == 2:
            return self.edges()
        raise ValueError("facets of an interval are vertices, use node_ids")
