"""Tests for row-index utilities, ragged adjacency and logging setup."""

import logging

import pytest
import torch

from torch_sfem import setup_logging
from torch_sfem.core import Adjacency, row


class TestRowIndex:
    """Tests for row deduplication and lookup."""

    def test_unique_rows_first_seen(self):
        rows = torch.tensor([[2, 3], [0, 1], [2, 3], [5, 4], [0, 1], [0, 1]])
        unique, inverse, counts = row.unique_rows_first_seen(rows)
        assert unique.tolist() == [[2, 3], [0, 1], [5, 4]]
        assert inverse.tolist() == [0, 1, 0, 2, 1, 1]
        assert counts.tolist() == [2, 3, 1]

    def test_unique_rows_empty(self):
        unique, inverse, counts = row.unique_rows_first_seen(torch.zeros(0, 2, dtype=torch.long))
        assert unique.shape == (0, 2)
        assert inverse.numel() == 0 and counts.numel() == 0

    def test_lookup(self):
        table = torch.tensor([[0, 1], [1, 2], [0, 2]])
        keys, perm = row.build_sorted_row_index(table)
        found = row.lookup_row_indices(torch.tensor([[0, 2], [0, 1], [1, 2]]), keys, perm)
        assert found.tolist() == [2, 0, 1]

    def test_lookup_missing(self):
        table = torch.tensor([[0, 1], [1, 2]])
        keys, perm = row.build_sorted_row_index(table)
        with pytest.raises(ValueError, match="not found"):
            row.lookup_row_indices(torch.tensor([[3, 4]]), keys, perm)


class TestAdjacency:
    """Tests for the ragged adjacency container."""

    def test_from_pairs(self):
        adj = Adjacency.from_pairs(
            sources=torch.tensor([0, 0, 2, 0]),
            targets=torch.tensor([5, 3, 4, 5]),
            n_sources=3,
        )
        assert adj.to_list() == [[3, 5], [], [4]]
        assert adj.counts().tolist() == [2, 0, 1]
        assert adj.neighbors_of(2).tolist() == [4]
        assert adj.n_sources == 3

    def test_empty(self):
        adj = Adjacency.from_pairs(
            torch.zeros(0, dtype=torch.long), torch.zeros(0, dtype=torch.long), 2
        )
        assert adj.to_list() == [[], []]

    def test_invalid_offsets(self):
        with pytest.raises(ValueError):
            Adjacency(offsets=torch.tensor([1, 2]), indices=torch.tensor([0, 1]))


class TestLogging:
    """Tests for the package logger configuration."""

    def test_setup_logging_is_idempotent(self, tmp_path):
        log_file = tmp_path / "sfem.log"
        setup_logging(logging.DEBUG, str(log_file))
        setup_logging(logging.DEBUG, str(log_file))
        logger = logging.getLogger("torch_sfem")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        logger.handlers.clear()

    def test_topology_build_is_logged(self, caplog):
        from conftest import unit_square_mesh

        with caplog.at_level(logging.DEBUG, logger="torch_sfem"):
            unit_square_mesh(2)
        assert any("Built topology" in record.getMessage() for record in caplog.records)
