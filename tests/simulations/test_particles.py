"""Tests for the particle-field simulations."""

import math

import numpy as np
import pytest

from complexsim.simulations.boids import Boids, BoidsConfig
from complexsim.simulations.galaxy import CORE_STARS, GalaxyConfig, GalaxySpiral
from complexsim.simulations.magnetic import (
    MagneticConfig,
    MagneticField,
    magnet_layout,
    magnetic_field,
)
from complexsim.simulations.nbody import NBodyConfig, NBodyGravity, pairwise_gravity
from complexsim.simulations.particle_attractor import ParticleAttractor, ParticleAttractorConfig
from complexsim.simulations.particles import (
    BoundaryPolicy,
    apply_box_boundary,
    clamp_norm,
    norms,
    normalize,
    sample_shell,
)
from complexsim.simulations.sph import SPHConfig, SPHFluid, sph_kernel, sph_kernel_gradient
from complexsim.simulations.vortex import (
    CORE_REPEAT,
    MAX_VELOCITY,
    VortexConfig,
    VortexTurbulence,
    vortex_layout,
)

DT = 1.0 / 60.0


def _run(sim, frames: int, dt: float = DT):
    for _ in range(frames):
        sim.step(dt)
    return sim


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

class TestVectorHelpers:
    def test_clamp_norm(self):
        v = np.array([[3.0, 4.0, 0.0], [0.3, 0.4, 0.0]])
        out = clamp_norm(v, 1.0)
        np.testing.assert_allclose(norms(out), [1.0, 0.5])

    def test_normalize_zero_row(self):
        out = normalize(np.array([[0.0, 0.0, 0.0], [0.0, 2.0, 0.0]]))
        np.testing.assert_array_equal(out, [[0, 0, 0], [0, 1, 0]])

    def test_reflect_boundary(self):
        pos = np.array([[6.0, 0.0, -7.0]])
        vel = np.array([[1.0, 1.0, -1.0]])
        apply_box_boundary(pos, vel, 5.0, BoundaryPolicy.REFLECT, damping=0.5)
        np.testing.assert_array_equal(pos, [[5.0, 0.0, -5.0]])
        np.testing.assert_array_equal(vel, [[-0.5, 1.0, 0.5]])

    def test_wrap_boundary(self):
        pos = np.array([[6.0, 0.0, -7.0]])
        vel = np.zeros((1, 3))
        apply_box_boundary(pos, vel, 5.0, BoundaryPolicy.WRAP)
        np.testing.assert_allclose(pos, [[-4.0, 0.0, 3.0]])

    def test_sample_shell_radius(self):
        rng = np.random.default_rng(0)
        pts = sample_shell(rng, 500, 5.0, 10.0)
        r = norms(pts)
        assert r.min() >= 5.0 - 1e-9
        assert r.max() <= 10.0 + 1e-9


# ---------------------------------------------------------------------------
# SPH
# ---------------------------------------------------------------------------

class TestSPH:
    def _fluid(self, **kwargs) -> SPHFluid:
        kwargs.setdefault("particle_count", 120)
        return SPHFluid(SPHConfig(**kwargs), seed=1)

    def test_kernel_support(self):
        r = np.array([0.0, 1.0, 2.0, 3.0])
        w = sph_kernel(r, 2.0)
        assert w[0] > w[1] > 0
        assert w[2] == 0.0
        assert w[3] == 0.0
        assert (sph_kernel_gradient(r[:2], 2.0) < 0).all()

    def test_particle_count(self):
        assert self._fluid(particle_count=77).get_points().shape == (77, 3)

    def test_stays_inside_box(self):
        sim = _run(self._fluid(), 60)
        half = sim.cfg.boundary_size / 2.0
        assert np.abs(sim.get_points()).max() <= half + 1e-4

    def test_wrap_policy(self):
        sim = _run(self._fluid(boundary="wrap"), 60)
        half = sim.cfg.boundary_size / 2.0
        assert np.abs(sim.get_points()).max() <= half + 1e-4
        assert sim.cfg.boundary is BoundaryPolicy.WRAP

    def test_unsupported_policy(self):
        with pytest.raises(ValueError):
            self._fluid().set_parameters(boundary="respawn")

    def test_density_floor(self):
        sim = _run(self._fluid(), 2)
        assert (sim.density >= sim.cfg.rest_density).all()

    def test_gravity_pulls_down(self):
        sim = self._fluid()
        y0 = sim.positions[:, 1].mean()
        _run(sim, 20)
        assert sim.positions[:, 1].mean() < y0

    def test_velocity_clamped(self):
        sim = _run(self._fluid(max_velocity=1.0), 10)
        assert norms(sim.velocities).max() <= 1.0 + 1e-9

    def test_zero_particles(self):
        sim = self._fluid(particle_count=0)
        sim.step(DT)
        assert sim.get_points().shape == (0, 3)

    def test_reset_matches_fresh(self):
        sim = _run(self._fluid(), 5)
        sim.reset()
        np.testing.assert_array_equal(sim.get_points(), self._fluid().get_points())

    def test_resize_respawns(self):
        sim = self._fluid()
        sim.set_parameters(particle_count=30)
        assert sim.get_points().shape == (30, 3)


# ---------------------------------------------------------------------------
# N-body
# ---------------------------------------------------------------------------

class TestNBody:
    def test_two_body_force(self):
        pos = np.array([[0.0, 0.0, 0.0], [3.0, 0.0, 0.0]])
        forces = pairwise_gravity(pos, np.array([2.0, 5.0]), 1.0, 0.5)
        # magnitude G m1 m2 / (r² + ε²) along d / sqrt(r² + ε²)
        expected = 2.0 * 5.0 / (9.0 + 0.25) * 3.0 / math.sqrt(9.25)
        assert forces[0, 0] == pytest.approx(expected)
        assert forces[1, 0] == pytest.approx(-expected)

    def test_forces_cancel(self):
        rng = np.random.default_rng(3)
        pos = rng.uniform(-10, 10, (40, 3))
        mass = rng.uniform(0.1, 5.0, 40)
        forces = pairwise_gravity(pos, mass, 1.0, 0.5)
        np.testing.assert_allclose(forces.sum(axis=0), 0.0, atol=1e-9)

    def test_coincident_bodies_finite(self):
        pos = np.zeros((3, 3))
        forces = pairwise_gravity(pos, np.ones(3), 1.0, 0.0)
        assert np.isfinite(forces).all()

    def test_momentum_conserved_without_fixed_center(self):
        sim = NBodyGravity(NBodyConfig(scenario="cluster", particle_count=30), seed=2)
        p0 = (sim.velocities * sim.masses[:, None]).sum(axis=0)
        _run(sim, 5)
        p1 = (sim.velocities * sim.masses[:, None]).sum(axis=0)
        np.testing.assert_allclose(p1, p0, atol=1e-6)

    def test_central_body_fixed(self):
        sim = _run(NBodyGravity(seed=0), 20)
        np.testing.assert_array_equal(sim.positions[0], [0.0, 0.0, 0.0])
        assert sim.masses[0] == sim.cfg.central_mass

    def test_body_count(self):
        sim = NBodyGravity(NBodyConfig(particle_count=25), seed=0)
        assert len(sim.positions) == 26

    def test_trails_bounded(self):
        sim = _run(NBodyGravity(NBodyConfig(particle_count=10, trail_length=7), seed=0), 20)
        assert all(len(t) <= 7 for t in sim.trails)
        expected = len(sim.positions) + sum(len(t) for t in sim.trails)
        assert sim.get_points().shape == (expected, 3)

    def test_hidden_trails(self):
        sim = _run(NBodyGravity(NBodyConfig(particle_count=10, show_trails=False), seed=0), 5)
        assert sim.get_points().shape == (11, 3)

    def test_seeded(self):
        a = _run(NBodyGravity(seed=4), 5).get_points()
        b = _run(NBodyGravity(seed=4), 5).get_points()
        c = _run(NBodyGravity(seed=5), 5).get_points()
        np.testing.assert_array_equal(a, b)
        assert not np.array_equal(a, c)

    def test_binary_preset(self):
        sim = NBodyGravity(seed=0)
        sim.apply_preset("binary_stars")
        assert len(sim.positions) == 32
        assert sim.masses[0] == 50.0

    def test_unknown_scenario(self):
        with pytest.raises(ValueError):
            NBodyConfig(scenario="spiral")

    def test_reflect_boundary(self):
        cfg = NBodyConfig(scenario="cluster", particle_count=20, boundary="reflect", boundary_size=20.0)
        sim = _run(NBodyGravity(cfg, seed=1), 30)
        assert np.abs(sim.positions).max() <= 10.0 + 1e-9


# ---------------------------------------------------------------------------
# Boids
# ---------------------------------------------------------------------------

class TestBoids:
    def test_speed_clamped(self):
        sim = _run(Boids(seed=0), 100)
        assert norms(sim.velocities).max() <= sim.cfg.max_speed + 1e-9

    def test_separation_pushes_apart(self):
        cfg = BoidsConfig(particle_count=2, alignment_strength=0.0, cohesion_strength=0.0)
        sim = Boids(cfg, seed=0)
        sim.positions = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
        sim.velocities = np.zeros((2, 3))
        sim.step(DT)
        assert sim.positions[1, 0] - sim.positions[0, 0] > 1.0

    def test_force_clamped(self):
        sim = Boids(seed=0)
        steer = clamp_norm(sim.steering(), sim.cfg.max_force)
        assert norms(steer).max() <= sim.cfg.max_force + 1e-12

    def test_containment_points_inward(self):
        sim = Boids(BoidsConfig(particle_count=1), seed=0)
        sim.positions = np.array([[29.0, 0.0, 0.0]])
        sim.velocities = np.zeros((1, 3))
        assert sim.steering()[0, 0] < 0

    def test_point_count(self):
        assert Boids(BoidsConfig(particle_count=13), seed=0).get_points().shape == (13, 3)


# ---------------------------------------------------------------------------
# Magnetic field
# ---------------------------------------------------------------------------

class TestMagnetic:
    @pytest.mark.parametrize("count", [1, 2, 3, 4])
    def test_layouts(self, count):
        poles, charges = magnet_layout(count, 100.0)
        assert len(poles) == count
        assert np.abs(charges).max() == 100.0

    def test_monopole_field_outward(self):
        field = magnetic_field(np.array([[5.0, 0.0, 0.0]]), np.zeros((1, 3)), np.array([100.0]), 1e9)
        assert field[0, 0] == pytest.approx(100.0 / 25.1 * 5.0 / np.sqrt(25.1))
        assert field[0, 1] == 0.0

    def test_field_clamped(self):
        field = magnetic_field(np.array([[0.5, 0.0, 0.0]]), np.zeros((1, 3)), np.array([100.0]), 2.0)
        assert norms(field)[0] == pytest.approx(2.0)

    def test_field_finite_at_pole(self):
        field = magnetic_field(np.zeros((1, 3)), np.zeros((1, 3)), np.array([100.0]), 50.0)
        assert np.isfinite(field).all()

    def test_respawn_keeps_particles_near(self):
        sim = MagneticField(MagneticConfig(particle_count=50, speed=3.0), seed=0)
        r = sim.cfg.spawn_radius
        for _ in range(200):
            sim.step(0.1)
            assert (np.einsum("ij,ij->i", sim.positions, sim.positions) <= 4 * r * r + 1e-9).all()

    def test_points_start_with_magnets(self):
        sim = _run(MagneticField(MagneticConfig(particle_count=10, trail_length=3), seed=0), 5)
        pts = sim.get_points()
        np.testing.assert_array_equal(pts[:2], sim.magnets.astype(np.float32))
        assert len(pts) == 2 + 10 + sum(len(t) for t in sim.trails)
        assert all(len(t) <= 3 for t in sim.trails)

    def test_magnet_count_change(self):
        sim = MagneticField(seed=0)
        sim.set_parameters(magnet_count=4)
        assert len(sim.magnets) == 4


# ---------------------------------------------------------------------------
# Vortex turbulence
# ---------------------------------------------------------------------------

class TestVortex:
    @pytest.mark.parametrize("count", [1, 2, 3, 4])
    def test_layouts(self, count):
        assert len(vortex_layout(count)) == count

    def test_velocity_clamped(self):
        sim = _run(VortexTurbulence(VortexConfig(particle_count=100), seed=0), 20)
        assert norms(sim.velocities).max() <= MAX_VELOCITY + 1e-9

    def test_cores_lead_points(self):
        sim = VortexTurbulence(VortexConfig(particle_count=10), seed=0)
        pts = sim.get_points()
        assert len(pts) == 3 * CORE_REPEAT + 10
        expected = np.repeat(sim.vortices[:1], CORE_REPEAT, axis=0).astype(np.float32)
        np.testing.assert_array_equal(pts[:CORE_REPEAT], expected)

    def test_particles_die_and_respawn(self):
        cfg = VortexConfig(particle_count=50, particle_life=0.001, spawn_rate=1.0)
        sim = VortexTurbulence(cfg, seed=0)
        _run(sim, 3, dt=0.1)
        assert len(sim.positions) == 50
        # Replacements start with a full life
        assert np.isclose(sim.life, 0.001).any()

    def test_lowering_count_trims_population(self):
        sim = VortexTurbulence(VortexConfig(particle_count=40), seed=2)
        keep = sim.positions[-15:].copy()
        sim.set_parameters(particle_count=15)
        assert len(sim.positions) == 15
        assert len(sim.velocities) == len(sim.life) == len(sim.trails) == 15
        np.testing.assert_array_equal(sim.positions, keep)
        sim.set_parameters(particle_count=0)
        assert sim.get_points().shape == (3 * CORE_REPEAT, 3)

    def test_population_never_exceeds_target(self):
        sim = VortexTurbulence(VortexConfig(particle_count=40, particle_life=0.01), seed=1)
        for _ in range(30):
            sim.step(0.1)
            assert len(sim.positions) <= 40
            assert len(sim.trails) == len(sim.positions) == len(sim.life)

    def test_seeded(self):
        a = _run(VortexTurbulence(seed=9), 3).get_points()
        b = _run(VortexTurbulence(seed=9), 3).get_points()
        np.testing.assert_array_equal(a, b)

    def test_reset_matches_fresh(self):
        sim = _run(VortexTurbulence(seed=9), 3)
        sim.reset()
        np.testing.assert_array_equal(sim.get_points(), VortexTurbulence(seed=9).get_points())


# ---------------------------------------------------------------------------
# Particle Lorenz attractor
# ---------------------------------------------------------------------------

class TestParticleAttractor:
    def test_starts_empty(self):
        sim = ParticleAttractor(seed=0)
        assert sim.get_points().shape == (0, 3)
        sim.step(0.0)
        assert len(sim.positions) == 0

    def test_spawn_rate_per_second(self):
        sim = ParticleAttractor(ParticleAttractorConfig(spawn_rate=5.0), seed=0)
        sim.step(0.1)
        assert len(sim.positions) == 0
        sim.step(0.1)
        assert len(sim.positions) == 1

    def test_population_capped(self):
        sim = ParticleAttractor(ParticleAttractorConfig(particle_count=7, spawn_rate=1000.0), seed=0)
        for _ in range(5):
            sim.step(0.1)
            assert len(sim.positions) <= 7
        assert len(sim.positions) == 7
        assert len(sim.trails) == len(sim.age) == 7

    def test_particles_expire(self):
        cfg = ParticleAttractorConfig(particle_count=5, spawn_rate=1000.0, particle_lifetime=0.25)
        sim = ParticleAttractor(cfg, seed=0)
        sim.step(0.1)
        assert len(sim.positions) == 5
        sim.set_parameters(spawn_rate=0.0)
        sim.step(0.1)
        assert len(sim.positions) == 5
        sim.step(0.1)
        assert len(sim.positions) == 0
        assert sim.get_points().shape == (0, 3)

    def test_points_include_trails(self):
        sim = _run(ParticleAttractor(ParticleAttractorConfig(spawn_rate=50.0), seed=0), 30)
        n = len(sim.positions)
        assert n > 0
        assert len(sim.get_points()) == n + sum(len(t) for t in sim.trails)
        assert all(len(t) <= 100 for t in sim.trails)
        sim.set_parameters(show_trails=False)
        assert len(sim.get_points()) == n

    def test_stays_on_the_attractor(self):
        sim = _run(ParticleAttractor(ParticleAttractorConfig(spawn_rate=20.0), seed=0), 200)
        assert np.isfinite(sim.positions).all()
        assert np.abs(sim.positions).max() < 100.0

    def test_lowering_count_trims_population(self):
        sim = _run(ParticleAttractor(ParticleAttractorConfig(spawn_rate=1000.0), seed=0), 3)
        sim.set_parameters(particle_count=10)
        assert len(sim.positions) == len(sim.trails) == len(sim.age) == 10

    def test_reset_matches_fresh(self):
        cfg = ParticleAttractorConfig(spawn_rate=30.0)
        sim = _run(ParticleAttractor(cfg, seed=4), 20)
        sim.reset()
        assert len(sim.positions) == 0
        np.testing.assert_array_equal(
            _run(sim, 20).get_points(), _run(ParticleAttractor(cfg, seed=4), 20).get_points()
        )


# ---------------------------------------------------------------------------
# Galaxy spiral
# ---------------------------------------------------------------------------

class TestGalaxy:
    def test_star_count(self):
        assert GalaxySpiral(seed=0).get_points().shape == (4 * 200 + CORE_STARS, 3)
        no_core = GalaxySpiral(GalaxyConfig(show_core=False), seed=0)
        assert len(no_core.get_points()) == 4 * 200

    def test_orbits_keep_their_radius(self):
        sim = GalaxySpiral(seed=0)
        before = np.hypot(sim.positions[:, 0], sim.positions[:, 1])
        _run(sim, 50)
        after = np.hypot(sim.positions[:, 0], sim.positions[:, 1])
        np.testing.assert_allclose(after, before, rtol=1e-9, atol=1e-9)

    def test_inner_stars_turn_faster(self):
        sim = GalaxySpiral(GalaxyConfig(show_core=False), seed=0)
        arm = sim.orbit_speed[:200]
        assert (np.diff(arm) <= 0).all()
        assert arm[0] > arm[-1]

    def test_velocities_are_tangential(self):
        sim = _run(GalaxySpiral(seed=0), 5)
        radial = (sim.positions[:, :2] * sim.velocities[:, :2]).sum(axis=1)
        np.testing.assert_allclose(radial, 0.0, atol=1e-9)

    def test_rotation_advances_angle(self):
        sim = GalaxySpiral(seed=0)
        start = sim.orbit_angle.copy()
        sim.step(0.1)
        np.testing.assert_allclose(sim.orbit_angle - start, sim.orbit_speed * 0.1)

    def test_layout_change_regenerates(self):
        sim = GalaxySpiral(seed=0)
        sim.set_parameters(num_arms=2)
        assert len(sim.get_points()) == 2 * 200 + CORE_STARS
        before = sim.get_points()
        sim.set_parameters(speed=2.0)
        np.testing.assert_array_equal(sim.get_points(), before)

    def test_invalid_radii(self):
        with pytest.raises(ValueError):
            GalaxyConfig(core_radius=10.0, max_radius=5.0)

    def test_reset_matches_fresh(self):
        sim = _run(GalaxySpiral(seed=3), 10)
        sim.reset()
        np.testing.assert_array_equal(sim.get_points(), GalaxySpiral(seed=3).get_points())
