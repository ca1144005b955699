"""Reserved marker values, sentinels and construction flags."""

# Marker of a cell/edge/face that was never tagged.
UNMARKED = -1

# Iteration filters matching any marker.
ALL = -2
BOUNDARY_ALL = -3

# Returned by point location when no cell contains the query point, and stored
# in the neighbor table when a cell has no neighbor across a facet.
NOT_FOUND = -1

# Construction flags (bitmask).
CACHE_CELLS = 1 << 0

# Barycentric sign tolerance used by point-in-simplex tests.
DEFAULT_TOLERANCE = 1e-10

__all__ = [
    "ALL",
    "BOUNDARY_ALL",
    "CACHE_CELLS",
    "DEFAULT_TOLERANCE",
    "NOT_FOUND",
    "UNMARKED",
]
