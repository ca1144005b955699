"""Quadrature rules on reference simplices.

Pre-tabulated symmetric quadrature rules on the reference n-simplex in
barycentric coordinates. Rules are stored as (points, weights) where points
are barycentric coordinates (λ_0, ..., λ_n) with Σ λ_i = 1, and weights sum to
the measure of the reference simplex, so that

    ∫_T f ≈ |det J_T| Σ_q w_q f(F_T(ξ_q)).

The degree of exactness is the maximum polynomial degree p such that the rule
integrates all polynomials of total degree ≤ p exactly.

Rules depend only on (n, degree), are defined in CPU float64 and are
device-agnostic; callers cast them to the target device/dtype.

Sources:
    - Interval rules: Gauss-Legendre mapped to [0, 1].
    - Triangle rules: Strang-Fix (degree 3) and Dunavant (degrees 4, 5).
    - Tetrahedron rules: Keast-type symmetric rules.

Coverage:
    - Intervals (n=1): degree ≤ 5
    - Triangles (n=2): degree ≤ 5
    - Tetrahedra (n=3): degree ≤ 3

Reference simplex conventions:
    - Δ¹: measure = 1
    - Δ²: measure = 1/2
    - Δ³: measure = 1/6
"""
# pylint: disable=invalid-name

from __future__ import annotations

import math
from itertools import permutations

import torch
from torch import Tensor


def _orbit(coords: tuple[float, ...]) -> list[tuple[float, ...]]:
    """Distinct permutations of a barycentric point, in first-seen order."""
    seen: list[tuple[float, ...]] = []
    for p in permutations(coords):
        if p not in seen:
            seen.append(p)
    return seen


def _rule(orbits: list[tuple[tuple[float, ...], float]]) -> tuple[Tensor, Tensor]:
    """Assemble a symmetric rule from (generator point, weight) orbits."""
    points: list[tuple[float, ...]] = []
    weights: list[float] = []
    for generator, weight in orbits:
        orbit = _orbit(generator)
        points.extend(orbit)
        weights.extend([weight] * len(orbit))
    return (
        torch.tensor(points, dtype=torch.float64),
        torch.tensor(weights, dtype=torch.float64),
    )


# ----------------------------------------------------------------------
# Intervals
# ----------------------------------------------------------------------


def _interval_gauss(n_points: int) -> tuple[Tensor, Tensor]:
    """n-point Gauss-Legendre rule on [0, 1], exact to degree 2n-1.

    Returns:
        points (n_points, 2): barycentric coordinates (1 - t, t).
        weights (n_points,): quadrature weights (sum = 1).
    """
    if n_points == 1:
        nodes, w = [0.0], [2.0]
    elif n_points == 2:
        s = 1.0 / math.sqrt(3.0)
        nodes, w = [-s, s], [1.0, 1.0]
    elif n_points == 3:
        s = math.sqrt(3.0 / 5.0)
        nodes, w = [-s, 0.0, s], [5.0 / 9.0, 8.0 / 9.0, 5.0 / 9.0]
    else:
        raise ValueError(f"No Gauss-Legendre rule with {n_points} points")

    t = torch.tensor([0.5 * (x + 1.0) for x in nodes], dtype=torch.float64)
    points = torch.stack([1.0 - t, t], dim=1)
    weights = torch.tensor([0.5 * x for x in w], dtype=torch.float64)
    return points, weights


# ----------------------------------------------------------------------
# Triangles
# ----------------------------------------------------------------------


def _triangle_degree1() -> tuple[Tensor, Tensor]:
    """1-point centroid rule on reference triangle.

    Exact for polynomials of total degree ≤ 1.
    """
    return _rule([((1.0 / 3.0, 1.0 / 3.0, 1.0 / 3.0), 0.5)])


def _triangle_degree2() -> tuple[Tensor, Tensor]:
    """3-point degree-2 quadrature on reference triangle.

    Classic symmetric 3-point rule with points at barycentric (2/3, 1/6, 1/6)
    and cyclic permutations. Equal weights of 1/6 each.

    Returns:
        points (3, 3): barycentric coordinates.
        weights (3,): quadrature weights (sum = 1/2).
    """
    return _rule([((2.0 / 3.0, 1.0 / 6.0, 1.0 / 6.0), 1.0 / 6.0)])


def _triangle_degree3() -> tuple[Tensor, Tensor]:
    """6-point degree-3 quadrature on reference triangle (Strang-Fix).

    All six permutations of (a, b, c) with equal weights of 1/12 each.

    Returns:
        points (6, 3): barycentric coordinates.
        weights (6,): quadrature weights (sum = 1/2).
    """
    a, b, c = 0.659027622374092, 0.231933368553031, 0.109039009072877
    return _rule([((a, b, c), 1.0 / 12.0)])


def _triangle_degree4() -> tuple[Tensor, Tensor]:
    """6-point degree-4 quadrature on reference triangle (Dunavant).

    Two orbits of type (1-2a, a, a).
    """
    a, wa = 0.445948490915965, 0.223381589678011
    b, wb = 0.091576213509771, 0.109951743655322
    return _rule(
        [
            ((1.0 - 2.0 * a, a, a), 0.5 * wa),
            ((1.0 - 2.0 * b, b, b), 0.5 * wb),
        ]
    )


def _triangle_degree5() -> tuple[Tensor, Tensor]:
    """7-point degree-5 quadrature on reference triangle (Dunavant).

    Centroid plus two orbits of type (1-2a, a, a).
    """
    a, wa = 0.470142064105115, 0.132394152788506
    b, wb = 0.101286507323456, 0.125939180544827
    return _rule(
        [
            ((1.0 / 3.0, 1.0 / 3.0, 1.0 / 3.0), 0.5 * 0.225),
            ((1.0 - 2.0 * a, a, a), 0.5 * wa),
            ((1.0 - 2.0 * b, b, b), 0.5 * wb),
        ]
    )


# ----------------------------------------------------------------------
# Tetrahedra
# ----------------------------------------------------------------------


def _tetrahedron_degree1() -> tuple[Tensor, Tensor]:
    """1-point centroid rule on reference tetrahedron."""
    return _rule([((0.25, 0.25, 0.25, 0.25), 1.0 / 6.0)])


def _tetrahedron_degree2() -> tuple[Tensor, Tensor]:
    """4-point degree-2 quadrature on reference tetrahedron.

    Points at (b, a, a, a) and permutations with
    a = (5 - √5) / 20, b = (5 + 3√5) / 20. Equal weights of 1/24.

    Returns:
        points (4, 4): barycentric coordinates.
        weights (4,): quadrature weights (sum = 1/6).
    """
    a = (5.0 - math.sqrt(5.0)) / 20.0
    b = (5.0 + 3.0 * math.sqrt(5.0)) / 20.0
    return _rule([((b, a, a, a), 1.0 / 24.0)])


def _tetrahedron_degree3() -> tuple[Tensor, Tensor]:
    """5-point degree-3 quadrature on reference tetrahedron.

    Centroid with negative weight -2/15 plus the (1/2, 1/6, 1/6, 1/6) orbit
    with weights 3/40.

    Returns:
        points (5, 4): barycentric coordinates.
        weights (5,): quadrature weights (sum = 1/6).
    """
    return _rule(
        [
            ((0.25, 0.25, 0.25, 0.25), -2.0 / 15.0),
            ((0.5, 1.0 / 6.0, 1.0 / 6.0, 1.0 / 6.0), 3.0 / 40.0),
        ]
    )


_TRIANGLE_RULES = {
    1: _triangle_degree1,
    2: _triangle_degree2,
    3: _triangle_degree3,
    4: _triangle_degree4,
    5: _triangle_degree5,
}

_TETRAHEDRON_RULES = {
    1: _tetrahedron_degree1,
    2: _tetrahedron_degree2,
    3: _tetrahedron_degree3,
}


def reference_measure(n: int) -> float:
    """Measure of the reference n-simplex, 1/n!."""
    return 1.0 / math.factorial(n)


def max_degree(n: int) -> int:
    """Highest degree of exactness tabulated for the n-simplex."""
    if n == 1:
        return 5
    if n == 2:
        return max(_TRIANGLE_RULES)
    if n == 3:
        return max(_TETRAHEDRON_RULES)
    raise ValueError(f"Quadrature not implemented for n={n}")


def quadrature_simplex(n: int, degree: int) -> tuple[Tensor, Tensor]:
    """Get quadrature rule on reference n-simplex.

    The returned rule is the cheapest tabulated one exact for `degree`.

    Args:
        n (int): simplex dimension (1=interval, 2=triangle, 3=tetrahedron).
        degree (int): desired polynomial degree of exactness (>= 0).

    Returns:
        points (Q, n+1): barycentric coordinates of Q quadrature points.
        weights (Q,): quadrature weights (sum = measure of reference simplex).

    Raises:
        ValueError: if no rule is available for (n, degree).
    """
    if degree < 0:
        raise ValueError(f"degree must be non-negative, got {degree}")
    degree = max(degree, 1)

    if n == 1:
        if degree > 5:
            raise ValueError(f"No interval quadrature rule for degree={degree}")
        # n Gauss points are exact to degree 2n - 1.
        return _interval_gauss((degree + 2) // 2)

    elif n == 2:
        if degree not in _TRIANGLE_RULES:
            raise ValueError(f"No triangle quadrature rule for degree={degree}")
        return _TRIANGLE_RULES[degree]()

    elif n == 3:
        if degree not in _TETRAHEDRON_RULES:
            raise ValueError(f"No tetrahedron quadrature rule for degree={degree}")
        return _TETRAHEDRON_RULES[degree]()

    else:
        raise ValueError(f"Quadrature not implemented for n={n}")


__all__ = [
    "max_degree",
    "quadrature_simplex",
    "reference_measure",
]
