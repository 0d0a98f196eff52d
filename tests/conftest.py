"""Pytest configuration and fixtures for the liquid simulation tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture
def small_params():
    """Parameters for a small 16x16 grid without gravity."""
    from liquidsim.datastructures import Parameters

    return Parameters(ni=16, nj=16, width=1.0, gravity=0.0)


@pytest.fixture
def box_boundary():
    """Solid everywhere outside the square [0.1, 0.9]^2."""
    from liquidsim.geometry import create_boundary

    return create_boundary("box_container", lower=(0.1, 0.1), upper=(0.9, 0.9))


@pytest.fixture
def floor_boundary():
    """Solid below the line y = 0.3."""
    from liquidsim.geometry import HalfPlane

    return HalfPlane((0.0, 0.3), (0.0, 1.0))


@pytest.fixture
def box_fields(small_params, box_boundary):
    """16x16 grid fields with the box container sampled on the nodes."""
    from liquidsim.datastructures import GridFields
    from liquidsim.interpolation import node_positions

    fields = GridFields.allocate(small_params.ni, small_params.nj)
    fields.nodal_solid_phi[:] = box_boundary(node_positions(small_params.ni, small_params.nj, small_params.dx))
    return fields


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
