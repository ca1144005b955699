"""Simplicial mesh: nodes, cells, derived topology, markers, point location.

A SimplicialMesh is built once from a node-coordinate matrix, a cell-to-vertex
table and a boundary-node flag array. Topology (facets, edges, neighbors,
boundary classification) is derived at construction and immutable afterwards.
Only markers can change after construction, with "highest marker wins"
semantics: a marker is raised by later calls but never lowered, unless the
caller explicitly asks for a full overwrite.

Point location is served by a lazily built, cached TreeSearch policy.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterator, Optional, Sequence

import torch
from torch import Tensor

from ..constants import (
    ALL,
    BOUNDARY_ALL,
    CACHE_CELLS,
    DEFAULT_TOLERANCE,
    UNMARKED,
)
from ..fem.geometry import SimplicialGeometry
from ..spatial.locate import TreeSearch
from .adjacency import Adjacency
from .simplex import Cell, SubEntity
from .topology import MeshTopology, build_topology

logger = logging.getLogger(__name__)


def _as_markers(markers, n: int, what: str, device=None) -> Tensor:
    m = torch.as_tensor(markers, dtype=torch.long, device=device)
    if m.ndim != 1 or m.numel() != n:
        raise ValueError(f"expected {n} {what} markers, got shape {tuple(m.shape)}")
    if (m < 0).any():
        raise ValueError(f"{what} markers must be non-negative")
    return m


class SimplicialMesh:
    """Interval, triangle or tetrahedral mesh embedded in ℝ^m.

    Args:
        nodes (Tensor): (N, m) vertex coordinates.
        cells (Tensor): (C, D+1) 0-based vertex ids, D in {1, 2, 3}, D <= m.
        boundary_nodes (Tensor): (N,) boundary flags (bool or 0/1 integers).
        flags (int): construction bitmask, see `constants.CACHE_CELLS`.
        tolerance (float): barycentric tolerance used by point location.

    Raises:
        ValueError: on inconsistent shapes or malformed connectivity. No
            partially built mesh is ever returned.
    """

    def __init__(
        self,
        nodes: Tensor,
        cells: Tensor,
        boundary_nodes: Tensor,
        flags: int = 0,
        tolerance: float = DEFAULT_TOLERANCE,
    ):
        nodes = torch.as_tensor(nodes)
        if not nodes.dtype.is_floating_point:
            nodes = nodes.to(torch.get_default_dtype())
        if nodes.ndim != 2:
            raise ValueError(f"nodes must be a 2D tensor, got {nodes.ndim}D")
        cells = torch.as_tensor(cells, device=nodes.device)
        boundary_nodes = torch.as_tensor(boundary_nodes, device=nodes.device).reshape(-1)
        if boundary_nodes.numel() != nodes.shape[0]:
            raise ValueError(
                f"boundary_nodes has {boundary_nodes.numel()} entries, "
                f"expected one per node ({nodes.shape[0]})"
            )
        if cells.ndim == 2 and cells.shape[1] - 1 > nodes.shape[1]:
            raise ValueError(
                f"cells of dimension {cells.shape[1] - 1} cannot be embedded "
                f"in {nodes.shape[1]}D space"
            )

        self._nodes = nodes.contiguous()
        self._boundary_nodes = boundary_nodes.to(torch.bool)
        self._topology: MeshTopology = build_topology(
            cells, self._boundary_nodes, nodes.shape[0]
        )
        self._cells = cells.to(torch.long).contiguous()
        self._flags = int(flags)
        self.tolerance = tolerance

        # Mesh bounding box, row 0 = min, row 1 = max.
        if nodes.shape[0] > 0:
            self._range = torch.stack([nodes.min(dim=0).values, nodes.max(dim=0).values])
        else:
            self._range = torch.zeros(2, nodes.shape[1], dtype=nodes.dtype, device=nodes.device)

        self.geometry = SimplicialGeometry(self._nodes, self._cells, self.local_dim)

        self._cells_markers = torch.full(
            (self.n_cells,), UNMARKED, dtype=torch.long, device=self._nodes.device
        )
        self._boundary_markers = torch.full(
            (self._topology.facets.shape[0],), UNMARKED, dtype=torch.long, device=self._nodes.device
        )

        self._cell_cache: Optional[list[Cell]] = None
        if self._flags & CACHE_CELLS:
            self._cell_cache = [Cell(i, self) for i in range(self.n_cells)]

        self._location_policy: Optional[TreeSearch] = None
        self._location_lock = threading.Lock()

        logger.debug(
            "Created %dD mesh in %dD space: %d nodes, %d cells",
            self.local_dim,
            self.embed_dim,
            self.n_nodes,
            self.n_cells,
        )

    def __repr__(self) -> str:
        return (
            f"SimplicialMesh(local_dim={self.local_dim}, embed_dim={self.embed_dim}, "
            f"n_nodes={self.n_nodes}, n_cells={self.n_cells})"
        )

    # ------------------------------------------------------------------
    # Sizes
    # ------------------------------------------------------------------

    @property
    def local_dim(self) -> int:
        """Dimension D of the cells."""
        return self._cells.shape[1] - 1

    @property
    def embed_dim(self) -> int:
        """Dimension m of the ambient space."""
        return self._nodes.shape[1]

    @property
    def n_nodes(self) -> int:
        return self._nodes.shape[0]

    @property
    def n_cells(self) -> int:
        return self._cells.shape[0]

    @property
    def n_facets(self) -> int:
        return self._topology.facets.shape[0]

    @property
    def n_edges(self) -> int:
        return self._topology.edges.shape[0]

    @property
    def n_faces(self) -> int:
        self._require_dim(3, "faces")
        return self.n_facets

    @property
    def n_boundary_nodes(self) -> int:
        return int(self._boundary_nodes.sum())

    @property
    def n_boundary_edges(self) -> int:
        return int(self._topology.boundary_edges.sum())

    @property
    def n_boundary_faces(self) -> int:
        self._require_dim(3, "faces")
        return int(self._topology.boundary_facets.sum())

    @property
    def flags(self) -> int:
        return self._flags

    @property
    def range(self) -> Tensor:
        """(2, m) bounding box, row 0 = min corner, row 1 = max corner."""
        return self._range

    def _require_dim(self, dim: int, what: str) -> None:
        if self.local_dim != dim:
            raise ValueError(f"{what} are defined for {dim}D meshes only, mesh is {self.local_dim}D")

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def node(self, i: int) -> Tensor:
        return self._nodes[i]

    @property
    def nodes(self) -> Tensor:
        """(N, m) vertex coordinates."""
        return self._nodes

    @property
    def cells(self) -> Tensor:
        """(C, D+1) cell-to-vertex table."""
        return self._cells

    @property
    def neighbors(self) -> Tensor:
        """(C, D+1) neighbor across the facet opposite each vertex, -1 if none."""
        return self._topology.neighbors

    @property
    def topology(self) -> MeshTopology:
        return self._topology

    @property
    def boundary_nodes(self) -> Tensor:
        """(N,) bool boundary flags."""
        return self._boundary_nodes

    def is_node_on_boundary(self, i: int) -> bool:
        return bool(self._boundary_nodes[i])

    @property
    def edges(self) -> Tensor:
        """(E, 2) sorted vertex ids of each edge."""
        return self._topology.edges

    @property
    def boundary_edges(self) -> Tensor:
        return self._topology.boundary_edges

    def is_edge_on_boundary(self, i: int) -> bool:
        return bool(self._topology.boundary_edges[i])

    @property
    def edge_to_cells(self) -> Adjacency:
        """Cells insisting on each edge (ragged)."""
        return self._topology.edge_to_cells

    @property
    def cell_to_edges(self) -> Tensor:
        return self._topology.cell_to_edges

    @property
    def facets(self) -> Tensor:
        """(F, D) sorted vertex ids of each facet."""
        return self._topology.facets

    @property
    def boundary_facets(self) -> Tensor:
        return self._topology.boundary_facets

    @property
    def facet_to_cells(self) -> Tensor:
        """(F, 2) adjacent cells of each facet, -1 in column 1 on the boundary."""
        return self._topology.facet_to_cells

    @property
    def faces(self) -> Tensor:
        self._require_dim(3, "faces")
        return self._topology.facets

    @property
    def boundary_faces(self) -> Tensor:
        self._require_dim(3, "faces")
        return self._topology.boundary_facets

    def is_face_on_boundary(self, i: int) -> bool:
        self._require_dim(3, "faces")
        return bool(self._topology.boundary_facets[i])

    @property
    def face_to_cells(self) -> Tensor:
        self._require_dim(3, "faces")
        return self._topology.facet_to_cells

    @property
    def cell_to_faces(self) -> Tensor:
        self._require_dim(3, "faces")
        return self._topology.cell_to_facets

    @property
    def face_to_edges(self) -> Tensor:
        self._require_dim(3, "faces")
        return self._topology.face_to_edges

    # ------------------------------------------------------------------
    # Cells and iteration
    # ------------------------------------------------------------------

    def cell(self, i: int) -> Cell:
        if self._cell_cache is not None:
            return self._cell_cache[i]
        return Cell(i, self)

    @property
    def cells_markers(self) -> Tensor:
        return self._cells_markers

    @property
    def boundary_kind(self) -> str:
        """Sub-entity kind forming the boundary: 'edge' in 2D, 'face' in 3D."""
        if self.local_dim == 2:
            return "edge"
        if self.local_dim == 3:
            return "face"
        raise ValueError("boundary sub-entities are defined for 2D and 3D meshes")

    @property
    def boundary_markers(self) -> Tensor:
        """Markers of boundary edges (2D) or faces (3D), indexed by facet id."""
        return self._boundary_markers

    @property
    def edges_markers(self) -> Tensor:
        self._require_dim(2, "edge markers")
        return self._boundary_markers

    @property
    def faces_markers(self) -> Tensor:
        self._require_dim(3, "face markers")
        return self._boundary_markers

    def iter_cells(self, marker: int = ALL) -> Iterator[Cell]:
        """Iterate cells, optionally only those carrying `marker`."""
        if marker != ALL and marker < 0 and marker != UNMARKED:
            raise ValueError(f"invalid cell marker filter {marker}")
        for i in range(self.n_cells):
            if marker == ALL or int(self._cells_markers[i]) == marker:
                yield self.cell(i)

    def __iter__(self) -> Iterator[Cell]:
        return self.iter_cells()

    def __len__(self) -> int:
        return self.n_cells

    def iter_boundary(self, marker: int = BOUNDARY_ALL) -> Iterator[SubEntity]:
        """Iterate boundary edges (2D) or faces (3D), optionally by marker."""
        kind = self.boundary_kind
        ids = torch.nonzero(self._topology.boundary_facets, as_tuple=False).flatten()
        for i in ids.tolist():
            if marker == BOUNDARY_ALL or int(self._boundary_markers[i]) == marker:
                yield SubEntity(i, self, kind)

    def iter_boundary_nodes(self) -> Iterator[int]:
        yield from torch.nonzero(self._boundary_nodes, as_tuple=False).flatten().tolist()

    def iter_edges(self) -> Iterator[SubEntity]:
        for i in range(self.n_edges):
            yield SubEntity(i, self, "edge")

    def iter_faces(self) -> Iterator[SubEntity]:
        self._require_dim(3, "faces")
        for i in range(self.n_facets):
            yield SubEntity(i, self, "face")

    # ------------------------------------------------------------------
    # Markers
    # ------------------------------------------------------------------

    def mark_cells(
        self,
        marker: Optional[int] = None,
        predicate: Optional[Callable[[Cell], bool]] = None,
        *,
        markers: Optional[Sequence[int] | Tensor] = None,
        overwrite: bool = False,
    ) -> None:
        """Tag cells, keeping the highest marker when tags collide.

        Call with either:
            - `marker` and a `predicate` over cells: tag cells where it holds;
            - `marker` alone: tag every cell;
            - `markers`: one non-negative marker per cell.

        Args:
            marker (int | None): non-negative tag.
            predicate (Callable[[Cell], bool] | None): selection predicate.
            markers (Sequence[int] | Tensor | None): per-cell tags.
            overwrite (bool): replace the marker array instead of merging
                (only with `markers`).
        """
        self._cells_markers = self._merge_markers(
            self._cells_markers,
            marker,
            predicate,
            markers,
            overwrite,
            candidates=range(self.n_cells),
            make=self.cell,
            what="cell",
        )

    def mark_boundary(
        self,
        marker: Optional[int] = None,
        predicate: Optional[Callable[[SubEntity], bool]] = None,
        *,
        markers: Optional[Sequence[int] | Tensor] = None,
        overwrite: bool = False,
    ) -> None:
        """Tag boundary edges (2D) or faces (3D), highest marker wins.

        Same calling conventions as `mark_cells`. With `marker` (and optional
        predicate) only boundary sub-entities are tagged; `markers` must give
        one value per edge (2D) or face (3D).
        """
        kind = self.boundary_kind
        boundary_ids = torch.nonzero(self._topology.boundary_facets, as_tuple=False).flatten()
        self._boundary_markers = self._merge_markers(
            self._boundary_markers,
            marker,
            predicate,
            markers,
            overwrite,
            candidates=boundary_ids.tolist(),
            make=lambda i: SubEntity(i, self, kind),
            what=kind,
        )

    @staticmethod
    def _merge_markers(
        current: Tensor,
        marker,
        predicate,
        markers,
        overwrite: bool,
        candidates,
        make,
        what: str,
    ) -> Tensor:
        if markers is not None:
            if marker is not None or predicate is not None:
                raise ValueError("pass either markers or marker/predicate, not both")
            new = _as_markers(markers, current.numel(), what, current.device)
            if overwrite:
                return new.clone()
            return torch.maximum(current, new)

        if marker is None:
            raise ValueError("marker is required when markers is not given")
        if overwrite:
            raise ValueError("overwrite is only supported with a full markers array")
        if marker < 0:
            raise ValueError(f"{what} markers must be non-negative, got {marker}")

        updated = current.clone()
        selected = [i for i in candidates if predicate is None or predicate(make(i))]
        if selected:
            idx = torch.tensor(selected, dtype=torch.long, device=current.device)
            updated[idx] = torch.clamp_min(updated[idx], marker)
        return updated

    # ------------------------------------------------------------------
    # Point location
    # ------------------------------------------------------------------

    @property
    def location_policy(self) -> TreeSearch:
        """Point location policy, built on first use and cached."""
        if self._location_policy is None:
            with self._location_lock:
                if self._location_policy is None:
                    self._location_policy = TreeSearch(self, tolerance=self.tolerance)
        return self._location_policy

    def locate(self, points):
        """Cell containing each point (NOT_FOUND outside the mesh).

        Args:
            points: (m,) point or (P, m) points.

        Returns:
            int for a single point, (P,) LongTensor otherwise.
        """
        return self.location_policy.locate(points)

    def all_locate(self, point) -> list[int]:
        """All cells containing the point, sorted ascending."""
        return self.location_policy.all_locate(point)

    def node_patch(self, i: int) -> list[int]:
        """Cells having node i as a vertex."""
        return self.location_policy.all_locate(self._nodes[i])

    # ------------------------------------------------------------------
    # Derived meshes
    # ------------------------------------------------------------------

    def surface(self) -> tuple[SimplicialMesh, dict[int, int], dict[int, int]]:
        """Boundary triangulation of a tetrahedral mesh.

        Returns:
            surface (SimplicialMesh): triangles embedded in 3D, one per
                boundary face, all of its nodes flagged as boundary.
            node_map (dict[int, int]): surface node id -> volume node id.
            cell_map (dict[int, int]): surface cell id -> volume cell owning
                the boundary face.
        """
        self._require_dim(3, "surfaces")
        face_ids = torch.nonzero(self._topology.boundary_facets, as_tuple=False).flatten()
        faces = self._topology.facets[face_ids]  # (B, 3)

        volume_nodes, local = torch.unique(faces.flatten(), return_inverse=True)
        surface_cells = local.view(-1, 3)
        surface = SimplicialMesh(
            self._nodes[volume_nodes],
            surface_cells,
            self._boundary_nodes[volume_nodes],
            flags=self._flags,
            tolerance=self.tolerance,
        )
        node_map = dict(enumerate(volume_nodes.tolist()))
        owners = self._topology.facet_to_cells[face_ids, 0]
        cell_map = dict(enumerate(owners.tolist()))
        return surface, node_map, cell_map

    # ------------------------------------------------------------------
    # Device movement
    # ------------------------------------------------------------------

    def to(self, *args, **kwargs) -> SimplicialMesh:
        """Return a copy of this mesh with node coordinates moved/cast."""
        nodes = self._nodes.to(*args, **kwargs)
        moved = SimplicialMesh(
            nodes,
            self._cells.to(nodes.device),
            self._boundary_nodes.to(nodes.device),
            flags=self._flags,
            tolerance=self.tolerance,
        )
        # pylint: disable=protected-access
        moved._cells_markers = self._cells_markers.to(nodes.device, copy=True)
        moved._boundary_markers = self._boundary_markers.to(nodes.device, copy=True)
        return moved

    def cpu(self) -> SimplicialMesh:
        return self.to("cpu")


__all__ = ["SimplicialMesh"]
