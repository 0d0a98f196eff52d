"""Tests for velocity extrapolation and the solid boundary constraint."""

import numpy as np
import pytest

from liquidsim.datastructures import GridFields
from liquidsim.extrapolation import constrain_velocity, extrapolate, extrapolate_velocity
from liquidsim.interpolation import node_positions
from liquidsim.pressure import compute_pressure_weights


def single_valid_cell(n=41, centre=(20, 20), value=2.0):
    grid = np.zeros((n, n))
    valid = np.zeros((n, n), dtype=bool)
    grid[centre] = value
    valid[centre] = True
    return grid, valid


class TestExtrapolate:
    """Bounded relaxation from valid into invalid entries."""

    def test_reach_is_ten_cells(self):
        grid, valid = single_valid_cell()
        grid, valid, _, _ = extrapolate(grid, valid, np.zeros_like(grid), np.zeros_like(valid), passes=10)

        i, j = np.meshgrid(np.arange(41), np.arange(41), indexing="ij")
        distance = np.abs(i - 20) + np.abs(j - 20)

        assert np.all(valid[distance <= 10])
        assert np.allclose(grid[distance <= 10], 2.0)
        assert not np.any(valid[distance > 10])
        assert np.all(grid[distance > 10] == 0.0)
        assert not valid[32, 20] and grid[32, 20] == 0.0

    def test_one_pass_reads_snapshot(self):
        """A single pass only reaches the direct neighbours."""
        grid, valid = single_valid_cell(n=11, centre=(5, 5))
        grid, valid, _, _ = extrapolate(grid, valid, np.zeros_like(grid), np.zeros_like(valid), passes=1)
        assert np.count_nonzero(valid) == 5
        assert valid[4, 5] and valid[6, 5] and valid[5, 4] and valid[5, 6]

    def test_average_of_valid_neighbours(self):
        grid = np.zeros((5, 5))
        valid = np.zeros((5, 5), dtype=bool)
        grid[1, 2], valid[1, 2] = 1.0, True
        grid[3, 2], valid[3, 2] = 3.0, True
        grid, valid, _, _ = extrapolate(grid, valid, np.zeros_like(grid), np.zeros_like(valid), passes=1)
        assert grid[2, 2] == pytest.approx(2.0)

    def test_outer_ring_untouched(self):
        grid, valid = single_valid_cell(n=6, centre=(1, 1), value=4.0)
        grid, valid, _, _ = extrapolate(grid, valid, np.zeros_like(grid), np.zeros_like(valid), passes=10)
        assert not valid[0].any() and not valid[-1].any()
        assert not valid[:, 0].any() and not valid[:, -1].any()
        assert np.all(grid[0] == 0.0)

    def test_valid_entries_keep_their_value(self):
        grid, valid = single_valid_cell(n=9, centre=(4, 4), value=1.0)
        grid[4, 5], valid[4, 5] = 5.0, True
        grid, valid, _, _ = extrapolate(grid, valid, np.zeros_like(grid), np.zeros_like(valid), passes=3)
        assert grid[4, 4] == 1.0
        assert grid[4, 5] == 5.0

    def test_fields_extrapolated_independently(self):
        fields = GridFields.allocate(8, 8)
        fields.u[4, 4], fields.u_valid[4, 4] = 1.0, True
        fields.v[3, 3], fields.v_valid[3, 3] = -1.0, True
        extrapolate_velocity(fields, passes=2)
        assert fields.u[4, 6] == pytest.approx(1.0)
        assert fields.v[3, 5] == pytest.approx(-1.0)
        assert np.all(fields.u <= 1.0) and np.all(fields.v >= -1.0)


class TestConstrainVelocity:
    """Free-slip correction on fully blocked faces above a flat floor."""

    def make_fields(self, floor_boundary):
        ni = nj = 16
        dx = 1.0 / ni
        fields = GridFields.allocate(ni, nj)
        fields.nodal_solid_phi[:] = floor_boundary(node_positions(ni, nj, dx))
        compute_pressure_weights(fields.nodal_solid_phi, fields.u_weights, fields.v_weights)
        fields.u[:] = 1.0
        fields.v[:] = -1.0
        return fields, dx

    def test_normal_component_removed(self, floor_boundary):
        fields, dx = self.make_fields(floor_boundary)
        constrain_velocity(fields, dx)

        blocked_v = fields.v_weights == 0
        blocked_u = fields.u_weights == 0
        assert blocked_v.any() and blocked_u.any()
        assert np.allclose(fields.v[blocked_v], 0.0)
        assert np.allclose(fields.u[blocked_u], 1.0)

    def test_open_faces_unchanged(self, floor_boundary):
        fields, dx = self.make_fields(floor_boundary)
        constrain_velocity(fields, dx)
        open_v = fields.v_weights > 0
        assert np.all(fields.v[open_v] == -1.0)
        assert np.all(fields.u[fields.u_weights > 0] == 1.0)
