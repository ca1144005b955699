"""Pytest configuration and shared mesh builders for torch_sfem tests.

Builders are plain functions so that tests can call them with custom
resolutions; fixtures wrap the common cases.
"""

from itertools import permutations

import pytest
import torch

from torch_sfem.core import SimplicialMesh


### Mesh Builders (Standalone Functions) ###


def unit_interval_mesh(n: int = 4, **kwargs) -> SimplicialMesh:
    """[0, 1] split into n equal intervals."""
    nodes = torch.linspace(0.0, 1.0, n + 1, dtype=torch.float64).unsqueeze(1)
    cells = torch.stack([torch.arange(n), torch.arange(1, n + 1)], dim=1)
    boundary = torch.zeros(n + 1, dtype=torch.bool)
    boundary[[0, -1]] = True
    return SimplicialMesh(nodes, cells, boundary, **kwargs)


def unit_square_mesh(n: int = 2, **kwargs) -> SimplicialMesh:
    """Structured triangulation of [0, 1]^2, each square cut along its diagonal.

    Nodes are numbered row by row: node (i, j) has id i + (n + 1) * j.
    """
    t = torch.linspace(0.0, 1.0, n + 1, dtype=torch.float64)
    y, x = torch.meshgrid(t, t, indexing="ij")
    nodes = torch.stack([x.flatten(), y.flatten()], dim=1)

    cells = []
    for j in range(n):
        for i in range(n):
            v00 = i + (n + 1) * j
            v10 = v00 + 1
            v01 = v00 + (n + 1)
            v11 = v01 + 1
            cells.append([v00, v10, v11])
            cells.append([v00, v11, v01])
    cells = torch.tensor(cells, dtype=torch.long)

    boundary = (nodes == 0.0).any(dim=1) | (nodes == 1.0).any(dim=1)
    return SimplicialMesh(nodes, cells, boundary, **kwargs)


def unit_cube_mesh(n: int = 1, **kwargs) -> SimplicialMesh:
    """Kuhn triangulation of [0, 1]^3: six tetrahedra per sub-cube."""
    t = torch.linspace(0.0, 1.0, n + 1, dtype=torch.float64)
    z, y, x = torch.meshgrid(t, t, t, indexing="ij")
    nodes = torch.stack([x.flatten(), y.flatten(), z.flatten()], dim=1)

    def vid(i, j, k):
        return i + (n + 1) * (j + (n + 1) * k)

    cells = []
    for k in range(n):
        for j in range(n):
            for i in range(n):
                for perm in permutations(range(3)):
                    corner = [i, j, k]
                    tet = [vid(*corner)]
                    for axis in perm:
                        corner[axis] += 1
                        tet.append(vid(*corner))
                    cells.append(tet)
    cells = torch.tensor(cells, dtype=torch.long)

    boundary = (nodes == 0.0).any(dim=1) | (nodes == 1.0).any(dim=1)
    return SimplicialMesh(nodes, cells, boundary, **kwargs)


def reference_triangle_mesh(**kwargs) -> SimplicialMesh:
    """The unit right triangle (0,0), (1,0), (0,1)."""
    nodes = torch.tensor([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]], dtype=torch.float64)
    cells = torch.tensor([[0, 1, 2]])
    return SimplicialMesh(nodes, cells, torch.ones(3, dtype=torch.bool), **kwargs)


def reference_tetrahedron_mesh(**kwargs) -> SimplicialMesh:
    nodes = torch.tensor(
        [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]],
        dtype=torch.float64,
    )
    cells = torch.tensor([[0, 1, 2, 3]])
    return SimplicialMesh(nodes, cells, torch.ones(4, dtype=torch.bool), **kwargs)


def two_triangle_mesh(**kwargs) -> SimplicialMesh:
    """Unit square split along the (1, 0)-(0, 1) diagonal."""
    nodes = torch.tensor(
        [[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]], dtype=torch.float64
    )
    cells = torch.tensor([[0, 1, 2], [1, 3, 2]])
    return SimplicialMesh(nodes, cells, torch.ones(4, dtype=torch.bool), **kwargs)


def corner_surface_mesh(**kwargs) -> SimplicialMesh:
    """Three coordinate-plane triangles of the unit corner, embedded in 3D."""
    nodes = torch.tensor(
        [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]],
        dtype=torch.float64,
    )
    cells = torch.tensor([[0, 1, 2], [0, 1, 3], [0, 2, 3]])
    return SimplicialMesh(nodes, cells, torch.ones(4, dtype=torch.bool), **kwargs)


### Fixtures ###


@pytest.fixture
def square_mesh():
    return unit_square_mesh(4)


@pytest.fixture
def cube_mesh():
    return unit_cube_mesh(2)


@pytest.fixture
def interval_mesh():
    return unit_interval_mesh(4)
