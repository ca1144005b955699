"""Row deduplication and exact row lookup for simplex vertex tables.

Sub-entities of a mesh (edges, faces) are identified by the sorted tuple of
their vertex ids. This module provides the two primitives the topology
builder needs on such integer row tables:

- first-seen deduplication: unique rows numbered in order of their first
  occurrence, which is exactly the numbering produced by scanning cells one
  by one and inserting unseen keys in a hash map;
- exact lookup: map query rows to their index in a table of unique rows.

Lookups use a zero-copy NumPy structured view so whole rows are compared
lexicographically by `argsort` / `searchsorted` without Python loops.

Example
-------
    >>> import torch
    >>> from torch_sfem.core.ops.index.row import (
    ...     build_sorted_row_index,
    ...     lookup_row_indices,
    ...     unique_rows_first_seen,
    ... )
    >>> rows = torch.tensor([[1, 2], [0, 1], [1, 2], [0, 2]])
    >>> unique, inverse, counts = unique_rows_first_seen(rows)
    >>> unique
    tensor([[1, 2],
            [0, 1],
            [0, 2]])
    >>> inverse
    tensor([0, 1, 0, 2])
    >>> keys, perm = build_sorted_row_index(unique)
    >>> lookup_row_indices(torch.tensor([[0, 2], [1, 2]]), keys, perm)
    tensor([2, 0])

Notes
-----
- Rows are exact integer rows; floating point is not supported.
- Callers must sort each row beforehand when orientation should not matter.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
import torch
from torch import Tensor


def _np_struct_view_rows(a: np.ndarray) -> np.ndarray:
    """Zero-copy view of (n,w) numeric array as a 1D structured array of rows.

    Args:
        a: 2D contiguous NumPy array.

    Returns:
        1D structured array where each element is a row of a.
    """
    if a.ndim != 2:
        raise ValueError(f"expected 2D array, got {a.ndim}D")
    if not a.flags["C_CONTIGUOUS"]:
        raise ValueError("array must be C-contiguous for zero-copy structured view")
    w = a.shape[1]
    dt = np.dtype([(f"f{i}", a.dtype) for i in range(w)])
    return a.view(dt).reshape(-1)


def _as_numpy_rows(rows: Tensor) -> np.ndarray:
    return np.ascontiguousarray(rows.detach().to(torch.int64).cpu().numpy())


def unique_rows_first_seen(rows: Tensor) -> Tuple[Tensor, Tensor, Tensor]:
    """Deduplicate rows, numbering unique rows by first occurrence.

    Args:
        rows (Tensor): (n, w) integer tensor.

    Returns:
        unique (Tensor): (u, w) unique rows, row k is the k-th distinct row met
            when scanning `rows` top to bottom.
        inverse (Tensor): (n,) index of each input row in `unique`.
        counts (Tensor): (u,) number of occurrences of each unique row.
    """
    if rows.ndim != 2:
        raise ValueError(f"expected 2D tensor, got {rows.ndim}D")

    device = rows.device
    n = rows.shape[0]
    if n == 0:
        empty = torch.empty(0, dtype=torch.long, device=device)
        return rows.clone(), empty, empty.clone()

    unique, inverse, counts = torch.unique(
        rows,
        dim=0,
        return_inverse=True,
        return_counts=True,
    )
    n_unique = unique.shape[0]

    # Position of the first occurrence of every unique row.
    first = torch.full((n_unique,), n, dtype=torch.long, device=device)
    first.scatter_reduce_(
        0,
        inverse,
        torch.arange(n, dtype=torch.long, device=device),
        reduce="amin",
        include_self=True,
    )

    order = torch.argsort(first)
    rank = torch.empty_like(order)
    rank[order] = torch.arange(n_unique, dtype=torch.long, device=device)

    return unique[order], rank[inverse], counts[order]


def build_sorted_row_index(rows: Tensor) -> Tuple[np.ndarray, np.ndarray]:
    """Build sorted structured-row index for a row table.

    Args:
        rows (Tensor): (n, w) integer tensor.

    Returns:
        keys (np.ndarray): sorted structured-row keys.
        perm (np.ndarray): permutation mapping sorted positions to row indices.
    """
    keys = _np_struct_view_rows(_as_numpy_rows(rows))
    perm = np.argsort(keys, kind="mergesort")
    return keys[perm], perm


def lookup_row_indices(
    queries: Tensor,
    keys: np.ndarray,
    perm: np.ndarray,
) -> Tensor:
    """Exact query->row lookup by structured rows.

    Args:
        queries (Tensor): (m, w) integer tensor of rows to find.
        keys (np.ndarray): sorted keys from `build_sorted_row_index`.
        perm (np.ndarray): permutation from `build_sorted_row_index`.

    Returns:
        (m,) int64 tensor of row indices, on the device of `queries`.

    Raises:
        ValueError: if any query row is not present in the table.
    """
    if queries.shape[0] == 0:
        return torch.empty(0, dtype=torch.long, device=queries.device)

    if keys.size == 0:
        raise ValueError(f"{queries.shape[0]} rows not found in empty table")

    qkeys = _np_struct_view_rows(_as_numpy_rows(queries))

    pos = np.searchsorted(keys, qkeys)
    pos_clipped = np.minimum(pos, keys.size - 1)
    ok = (pos < keys.size) & (keys[pos_clipped] == qkeys)
    if not ok.all():
        bad = np.nonzero(~ok)[0]
        raise ValueError(
            f"{bad.size} rows not found in table (example idx={bad[0]})"
        )

    idx = perm[pos].astype(np.int64, copy=False)
    return torch.from_numpy(idx).to(queries.device)


__all__ = [
    "build_sorted_row_index",
    "lookup_row_indices",
    "unique_rows_first_seen",
]
