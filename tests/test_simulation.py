"""Tests for the simulation aggregate and its frame scheduler."""

import numpy as np
import pytest

from liquidsim import simulation as simulation_module
from liquidsim.datastructures import Parameters
from liquidsim.metrics import particle_statistics
from liquidsim.scenes import dam_break, still_pool
from liquidsim.simulation import FluidSimulation


class TestConfiguration:
    def test_defaults(self):
        sim = FluidSimulation()
        assert sim.ni == 32 and sim.nj == 32
        assert sim.dx == pytest.approx(1.0 / 32)
        assert sim.particle_radius == pytest.approx(sim.dx / np.sqrt(2.0))
        assert sim.fields.u.shape == (33, 32)
        assert sim.fields.v.shape == (32, 33)
        assert np.all(sim.fields.viscosity == 1.0)

    def test_kwargs_and_params(self):
        sim = FluidSimulation(ni=8, nj=4, width=2.0)
        assert sim.dx == pytest.approx(0.25)
        sim = FluidSimulation(Parameters(ni=8, nj=8))
        assert sim.ni == 8

    @pytest.mark.parametrize(
        "kwargs",
        [{"ni": 1}, {"nj": 0}, {"width": 0.0}, {"preconditioner": "ilu"}],
    )
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            FluidSimulation(**kwargs)

    def test_params_and_kwargs_together(self):
        with pytest.raises(ValueError):
            FluidSimulation(Parameters(), ni=8)

    def test_boundary_sampled_on_nodes(self, box_boundary):
        sim = FluidSimulation(ni=16, nj=16, boundary=box_boundary)
        assert sim.nodal_solid_phi[0, 0] < 0
        assert sim.nodal_solid_phi[8, 8] == pytest.approx(0.4)

    def test_callable_boundary(self):
        sim = FluidSimulation(ni=8, nj=8, boundary=lambda p: p[1] - 0.25)
        assert sim.nodal_solid_phi[3, 0] == pytest.approx(-0.25)
        assert sim.nodal_solid_phi[3, 8] == pytest.approx(0.75)


class TestSetup:
    def test_add_particle(self):
        sim = FluidSimulation(ni=8, nj=8)
        sim.add_particle([0.5, 0.5])
        sim.add_particles(np.array([[0.2, 0.2], [0.3, 0.3]]))
        assert sim.particles.shape == (3, 2)
        with pytest.raises(ValueError):
            sim.add_particle([0.5, 0.5, 0.5])
        with pytest.raises(ValueError):
            sim.add_particles(np.zeros((4, 3)))

    def test_set_viscosity(self):
        sim = FluidSimulation(ni=8, nj=8)
        sim.set_viscosity(0.5)
        assert np.all(sim.fields.viscosity == 0.5)
        field = np.linspace(0, 1, 64).reshape(8, 8)
        sim.set_viscosity(field)
        assert np.array_equal(sim.fields.viscosity, field)
        with pytest.raises(ValueError):
            sim.set_viscosity(np.ones((4, 4)))
        with pytest.raises(ValueError):
            sim.set_viscosity(-1.0)

    def test_set_velocity(self):
        sim = FluidSimulation(ni=8, nj=8)
        sim.set_velocity(u=np.ones((9, 8)))
        assert np.all(sim.u == 1.0)
        assert np.all(sim.v == 0.0)
        with pytest.raises(ValueError):
            sim.set_velocity(v=np.ones((9, 8)))

    def test_get_velocity(self):
        sim = FluidSimulation(ni=8, nj=8)
        sim.set_velocity(u=np.full((9, 8), 2.0), v=np.full((8, 9), -1.0))
        assert np.allclose(sim.get_velocity([0.5, 0.5]), [2.0, -1.0])


class TestCFL:
    def test_at_rest_is_unbounded(self):
        assert FluidSimulation(ni=8, nj=8).cfl() == float("inf")

    def test_bound_from_max_velocity(self):
        sim = FluidSimulation(ni=8, nj=8)
        sim.fields.v[3, 3] = -4.0
        sim.fields.u[2, 2] = 1.0
        assert sim.cfl() == pytest.approx(sim.dx / 4.0)

    def test_non_finite_velocity(self):
        sim = FluidSimulation(ni=8, nj=8)
        sim.fields.u[2, 2] = np.nan
        with pytest.raises(FloatingPointError):
            sim.cfl()
        with pytest.raises(FloatingPointError):
            sim.advance(0.01)


class TestAdvance:
    def test_rest_takes_one_substep(self, box_boundary):
        sim = FluidSimulation(ni=16, nj=16, gravity=0.0, boundary=box_boundary)
        sim.add_particle([0.5, 0.3])
        sim.advance(0.02)
        assert sim.metrics.substeps == 1
        assert sim.metrics.frames == 1
        assert sim.metrics.simulated_time == pytest.approx(0.02)
        assert len(sim.time_series) == 1
        assert sim.time_series.dt[0] == pytest.approx(0.02)

    def test_zero_duration(self):
        sim = FluidSimulation(ni=8, nj=8)
        sim.advance(0.0)
        assert sim.metrics.substeps == 0
        assert sim.metrics.frames == 1

    def test_negative_duration(self):
        with pytest.raises(ValueError):
            FluidSimulation(ni=8, nj=8).advance(-0.1)

    def test_substeps_respect_cfl_and_sum_to_frame(self, box_boundary):
        sim = FluidSimulation(ni=16, nj=16, gravity=0.0, viscosity=0.0, boundary=box_boundary)
        sim.add_particles(np.array([[0.5, 0.5]]))
        sim.set_velocity(u=np.full((17, 16), 2.0))
        sim.advance(0.1)
        assert sim.metrics.substeps >= 2
        assert sum(sim.time_series.dt) == pytest.approx(0.1)
        assert sim.time_series.dt[0] == pytest.approx(sim.dx / 2.0)

    def test_liquid_phi_rebuilt_from_particles(self, box_boundary):
        sim = FluidSimulation(ni=16, nj=16, gravity=0.0, boundary=box_boundary)
        sim.add_particle([(8 + 0.5) / 16, (8 + 0.5) / 16])
        sim.advance(0.01)
        assert sim.liquid_phi[8, 8] < 0
        assert sim.liquid_phi[2, 12] == pytest.approx(3 * sim.dx)

    def test_live_mlflow_logging(self, box_boundary, monkeypatch):
        logged = []
        monkeypatch.setattr(simulation_module.mlflow, "active_run", lambda: True)
        monkeypatch.setattr(
            simulation_module.mlflow, "log_metrics", lambda metrics, step=None: logged.append((step, metrics))
        )
        sim = FluidSimulation(ni=8, nj=8, gravity=0.0, boundary=box_boundary)
        sim.advance(0.01)
        sim.advance(0.01)
        assert [step for step, _ in logged] == [1, 2]
        assert "kinetic_energy" in logged[0][1]


class TestStillPool:
    """Liquid at rest without gravity stays at rest."""

    def test_velocity_stays_zero(self):
        sim = still_pool(ni=16, gravity=0.0)
        heights_before = sim.particles[:, 1].copy()
        for _ in range(5):
            sim.advance(0.01)
        assert np.max(np.abs(sim.u)) < 1e-10
        assert np.max(np.abs(sim.v)) < 1e-10
        # Only particles in the container corners can be nudged by the solid projection
        assert abs(sim.particles[:, 1].mean() - heights_before.mean()) < 0.05 * sim.dx
        assert sim.metrics.failed_pressure_solves == 0


class TestDamBreak:
    """Column of liquid collapsing under gravity inside a box."""

    @pytest.fixture(scope="class")
    def history(self):
        sim = dam_break(ni=16, viscosity=0.1)
        stats = [particle_statistics(sim.particles, sim.nodal_solid_phi, sim.dx)]
        for _ in range(50):
            sim.advance(0.005)
            stats.append(particle_statistics(sim.particles, sim.nodal_solid_phi, sim.dx))
        return sim, stats

    def test_ran_at_least_fifty_substeps(self, history):
        sim, _ = history
        assert sim.metrics.substeps >= 50
        assert sim.metrics.frames == 50
        assert len(sim.time_series) == sim.metrics.substeps

    def test_no_penetration(self, history):
        sim, stats = history
        assert min(s["min_solid_distance"] for s in stats[1:]) > -0.25 * sim.dx

    def test_mean_height_falls(self, history):
        sim, stats = history
        heights = np.array([s["mean_height"] for s in stats])
        assert heights[-1] < heights[0]
        assert np.all(np.diff(heights) <= 1e-3 * sim.dx)

    def test_particles_stay_in_domain(self, history):
        sim, _ = history
        assert np.all(np.isfinite(sim.particles))
        assert np.all((sim.particles > 0.0) & (sim.particles < 1.0))

    def test_velocities_finite(self, history):
        sim, _ = history
        assert np.all(np.isfinite(sim.u)) and np.all(np.isfinite(sim.v))
        assert sim.cfl() > 0
