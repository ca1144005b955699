"""Spatial indexing and point location."""

from .bvh import BVH
from .locate import TreeSearch, WalkSearch

__all__ = ["BVH", "TreeSearch", "WalkSearch"]
