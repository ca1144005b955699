"""Ragged adjacency relationships stored with offset-indices encoding.

Used for relations whose arity is not fixed, such as edge-to-cells in a
tetrahedral mesh (an edge is shared by an arbitrary number of cells) or
node-to-cells.
"""

from __future__ import annotations

import torch
from tensordict import tensorclass


@tensorclass
class Adjacency:
    """Ragged adjacency list stored with offset-indices encoding.

    Attributes:
        offsets: (n_sources + 1,) int64. The i-th source's targets are
            indices[offsets[i]:offsets[i+1]].
        indices: (total_targets,) int64 flattened target ids.

    Example:
        >>> adj = Adjacency.from_pairs(
        ...     sources=torch.tensor([0, 0, 2]),
        ...     targets=torch.tensor([5, 3, 4]),
        ...     n_sources=3,
        ... )
        >>> adj.to_list()
        [[3, 5], [], [4]]
    """

    offsets: torch.Tensor  # shape: (n_sources + 1,), dtype: int64
    indices: torch.Tensor  # shape: (total_targets,), dtype: int64

    def __post_init__(self):
        if len(self.offsets) < 1:
            raise ValueError(
                f"Offsets must have length >= 1 (n_sources + 1), got {len(self.offsets)=}"
            )
        if self.offsets[0].item() != 0:
            raise ValueError(f"First offset must be 0, got {self.offsets[0].item()=}")
        if self.offsets[-1].item() != len(self.indices):
            raise ValueError(
                f"Last offset must equal len(indices), got "
                f"{self.offsets[-1].item()=} != {len(self.indices)=}"
            )

    @classmethod
    def from_pairs(
        cls,
        sources: torch.Tensor,
        targets: torch.Tensor,
        n_sources: int,
    ) -> "Adjacency":
        """Build an adjacency from (source, target) pairs.

        Duplicate pairs are dropped; targets of each source are sorted
        ascending, so the result does not depend on input order.

        Args:
            sources: (n_pairs,) int64 source ids in [0, n_sources).
            targets: (n_pairs,) int64 target ids.
            n_sources: number of sources (sources without pairs get empty lists).
        """
        device = sources.device
        if sources.numel() == 0:
            return cls(
                offsets=torch.zeros(n_sources + 1, dtype=torch.long, device=device),
                indices=torch.zeros(0, dtype=torch.long, device=device),
            )

        pairs = torch.unique(torch.stack([sources, targets], dim=1), dim=0)
        counts = torch.bincount(pairs[:, 0], minlength=n_sources)
        offsets = torch.zeros(n_sources + 1, dtype=torch.long, device=device)
        offsets[1:] = torch.cumsum(counts, dim=0)
        return cls(offsets=offsets, indices=pairs[:, 1].contiguous())

    def to_list(self) -> list[list[int]]:
        """Convert to a ragged list-of-lists."""
        offsets_np = self.offsets.cpu().numpy()
        indices_np = self.indices.cpu().numpy()
        return [
            indices_np[offsets_np[i] : offsets_np[i + 1]].tolist()
            for i in range(len(offsets_np) - 1)
        ]

    def neighbors_of(self, i: int) -> torch.Tensor:
        """Targets of source i."""
        start = int(self.offsets[i].item())
        end = int(self.offsets[i + 1].item())
        return self.indices[start:end]

    def counts(self) -> torch.Tensor:
        """(n_sources,) number of targets per source."""
        return self.offsets[1:] - self.offsets[:-1]

    @property
    def n_sources(self) -> int:
        """Number of sources."""
        return len(self.offsets) - 1
