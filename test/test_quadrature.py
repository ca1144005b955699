"""Tests for quadrature rules, reference bases and the integrator."""

import math
from itertools import product

import pytest
import torch

from torch_sfem.core.fem import Integrator, LagrangeBasis, dof_table, quadrature_simplex
from torch_sfem.core.fem.quadrature import max_degree, reference_measure

from conftest import (
    reference_tetrahedron_mesh,
    reference_triangle_mesh,
    unit_cube_mesh,
    unit_interval_mesh,
    unit_square_mesh,
)

RULES = [(n, d) for n in (1, 2, 3) for d in range(0, max_degree(n) + 1)]


def _exponents(n: int, degree: int):
    """All multi-indices of length n+1 with total degree <= degree."""
    return [a for a in product(range(degree + 1), repeat=n + 1) if sum(a) <= degree]


class TestQuadratureRules:
    """Tabulated rules on reference simplices."""

    @pytest.mark.parametrize("n,degree", RULES)
    def test_weights_sum_to_reference_measure(self, n, degree):
        points, weights = quadrature_simplex(n, degree)
        assert points.shape == (weights.shape[0], n + 1)
        assert float(weights.sum()) == pytest.approx(reference_measure(n), abs=1e-14)
        assert torch.allclose(points.sum(dim=1), torch.ones(points.shape[0], dtype=torch.float64))

    @pytest.mark.parametrize("n,degree", RULES)
    def test_exact_for_barycentric_monomials(self, n, degree):
        points, weights = quadrature_simplex(n, degree)
        for alpha in _exponents(n, degree):
            ### ∫ λ^α over the reference simplex = α! / (|α| + n)!
            exact = math.prod(math.factorial(a) for a in alpha) / math.factorial(sum(alpha) + n)
            values = torch.ones(points.shape[0], dtype=torch.float64)
            for k, a in enumerate(alpha):
                values = values * points[:, k] ** a
            approx = float((weights * values).sum())
            assert approx == pytest.approx(exact, rel=1e-10, abs=1e-13), alpha

    def test_unknown_rules(self):
        with pytest.raises(ValueError):
            quadrature_simplex(2, 6)
        with pytest.raises(ValueError):
            quadrature_simplex(3, 4)
        with pytest.raises(ValueError):
            quadrature_simplex(4, 1)
        with pytest.raises(ValueError):
            quadrature_simplex(2, -1)


class TestLagrangeBasis:
    """Reference P1 and P2 bases."""

    @pytest.mark.parametrize("n", [1, 2, 3])
    @pytest.mark.parametrize("order", [1, 2])
    def test_partition_of_unity(self, n, order):
        basis = LagrangeBasis(n, order)
        bary, _ = quadrature_simplex(n, 2)
        assert torch.allclose(basis.eval(bary).sum(dim=1), torch.ones(bary.shape[0], dtype=torch.float64))
        grads = basis.grad(bary)
        assert grads.shape == (bary.shape[0], basis.n_basis, n)
        assert torch.allclose(grads.sum(dim=1), torch.zeros(bary.shape[0], n, dtype=torch.float64))

    @pytest.mark.parametrize("n", [1, 2, 3])
    def test_p2_nodal(self, n):
        basis = LagrangeBasis(n, order=2)
        vertices = torch.eye(n + 1, dtype=torch.float64)
        midpoints = torch.stack([(vertices[i] + vertices[j]) / 2 for i, j in basis.local_edges])
        nodes = torch.cat([vertices, midpoints])
        assert torch.allclose(basis.eval(nodes), torch.eye(basis.n_basis, dtype=torch.float64))

    def test_p2_gradient_matches_autograd(self):
        basis = LagrangeBasis(2, order=2)
        xi = torch.tensor([0.2, 0.3], dtype=torch.float64)

        def values(x):
            bary = torch.cat([1.0 - x.sum().reshape(1), x]).unsqueeze(0)
            return basis.eval(bary)[0]

        jac = torch.autograd.functional.jacobian(values, xi)  # (n_basis, 2)
        bary = torch.cat([1.0 - xi.sum().reshape(1), xi]).unsqueeze(0)
        assert torch.allclose(basis.grad(bary)[0], jac)

    def test_invalid(self):
        with pytest.raises(ValueError):
            LagrangeBasis(2, order=3)
        with pytest.raises(ValueError):
            LagrangeBasis(4)


class TestDofTable:
    """Global DOF numbering."""

    def test_p1_is_connectivity(self, square_mesh):
        dofs, n_dofs = dof_table(square_mesh, LagrangeBasis(2, 1))
        assert torch.equal(dofs, square_mesh.cells)
        assert n_dofs == square_mesh.n_nodes

    def test_p2_edge_dofs(self, square_mesh):
        basis = LagrangeBasis(2, 2)
        dofs, n_dofs = dof_table(square_mesh, basis)
        assert dofs.shape == (square_mesh.n_cells, 6)
        assert n_dofs == square_mesh.n_nodes + square_mesh.n_edges
        ### Edge DOF column k belongs to the local edge (i, j) of the basis
        for c in range(square_mesh.n_cells):
            for k, (i, j) in enumerate(basis.local_edges):
                edge = int(dofs[c, 3 + k]) - square_mesh.n_nodes
                expected = sorted([int(square_mesh.cells[c, i]), int(square_mesh.cells[c, j])])
                assert square_mesh.edges[edge].tolist() == expected

    def test_dimension_mismatch(self, square_mesh):
        with pytest.raises(ValueError):
            dof_table(square_mesh, LagrangeBasis(3, 1))


class TestIntegrator:
    """Per-cell and mesh-wide integration."""

    def test_constant_integrand_gives_measure(self, square_mesh):
        integrator = Integrator(2, degree=1)
        per_cell = integrator.integrate(square_mesh.geometry, 3.0)
        assert torch.allclose(per_cell, 3.0 * square_mesh.geometry.measures())

    def test_zero_dim_tensor_is_constant(self, square_mesh):
        integrator = Integrator(2, degree=2)
        geometry = square_mesh.geometry
        assert torch.allclose(
            integrator.integrate(geometry, torch.tensor(2.0)),
            integrator.integrate(geometry, 2.0),
        )

    def test_callable_and_tabulated_modes_agree(self, square_mesh):
        integrator = Integrator(2, degree=3)
        geometry = square_mesh.geometry

        def f(x):
            return x[..., 0] ** 2 * x[..., 1]

        tabulated = f(integrator.quadrature_points(geometry))
        assert torch.allclose(
            integrator.integrate(geometry, f),
            integrator.integrate(geometry, tabulated),
        )

    def test_polynomial_over_square(self):
        mesh = unit_square_mesh(3)
        integrator = Integrator(2, degree=2)
        total = integrator.integrate_mesh(mesh.geometry, lambda x: x[..., 0] * x[..., 1])
        assert float(total) == pytest.approx(0.25)

    def test_polynomial_over_cube(self):
        mesh = unit_cube_mesh(2)
        integrator = Integrator(3, degree=2)
        total = integrator.integrate_mesh(mesh.geometry, lambda x: x[..., 0] * x[..., 2])
        assert float(total) == pytest.approx(0.25)

    def test_polynomial_over_interval(self):
        mesh = unit_interval_mesh(3)
        integrator = Integrator(1, degree=5)
        total = integrator.integrate_mesh(mesh.geometry, lambda x: x[..., 0] ** 5)
        assert float(total) == pytest.approx(1.0 / 6.0)

    def test_integrate_basis(self):
        geometry = reference_triangle_mesh().geometry
        integrator = Integrator(2, degree=2)
        basis = LagrangeBasis(2, 1)
        for i in range(3):
            value = integrator.integrate_basis(geometry, 1.0, basis, i)
            assert float(value[0]) == pytest.approx(1.0 / 6.0)

    def test_cell_subset(self, square_mesh):
        integrator = Integrator(2, degree=1)
        cells = torch.tensor([3, 0])
        values = integrator.integrate(square_mesh.geometry, 1.0, cells=cells)
        assert torch.allclose(values, square_mesh.geometry.measures()[cells])

    def test_tetrahedron_volume(self):
        integrator = Integrator(3, degree=1)
        assert float(integrator.integrate_mesh(reference_tetrahedron_mesh().geometry, 1.0)) == pytest.approx(1.0 / 6.0)

    def test_tabulated_shape_mismatch(self, square_mesh):
        integrator = Integrator(2, degree=2)
        with pytest.raises(ValueError):
            integrator.integrate(square_mesh.geometry, torch.ones(2, 2))

    def test_dimension_mismatch(self, square_mesh):
        with pytest.raises(ValueError):
            Integrator(3, degree=1).integrate(square_mesh.geometry, 1.0)
