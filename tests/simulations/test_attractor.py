"""Tests for the RK4 attractors."""

import math

import numpy as np
import pytest

from complexsim.simulations.attractor import (
    AizawaAttractor,
    ChenAttractor,
    DadrasAttractor,
    HalvorsenAttractor,
    LorenzAttractor,
    LorenzConfig,
    RosslerAttractor,
    RosslerConfig,
    ThomasAttractor,
    rk4_step,
)

ALL_ATTRACTORS = [
    LorenzAttractor,
    RosslerAttractor,
    AizawaAttractor,
    HalvorsenAttractor,
    DadrasAttractor,
    ThomasAttractor,
    ChenAttractor,
]

DT = 1.0 / 60.0


class TestRK4:
    def test_exponential_growth(self):
        x, y, z = rk4_step(lambda x, y, z: (x, 2 * y, -z), (1.0, 1.0, 1.0), 0.1)
        # RK4 matches the Taylor series of exp(h) through the h^4 term
        assert x == pytest.approx(1 + 0.1 + 0.1 ** 2 / 2 + 0.1 ** 3 / 6 + 0.1 ** 4 / 24, abs=1e-12)
        assert y == pytest.approx(math.exp(0.2), abs=1e-4)
        assert z == pytest.approx(math.exp(-0.1), abs=1e-6)

    def test_zero_step_is_identity(self):
        pos = (0.3, -1.2, 5.0)
        assert rk4_step(lambda x, y, z: (1.0, 1.0, 1.0), pos, 0.0) == pos


class TestLorenz:
    def test_deterministic(self):
        a = LorenzAttractor()
        b = LorenzAttractor()
        for dt in [DT, DT * 0.5, DT * 2, DT]:
            a.step(dt)
            b.step(dt)
        np.testing.assert_array_equal(a.get_points(), b.get_points())

    def test_substeps_per_call(self):
        sim = LorenzAttractor(LorenzConfig(substeps=5))
        sim.step(DT)
        sim.step(DT)
        assert sim.get_points().shape == (10, 3)

    def test_trail_bounded(self):
        sim = LorenzAttractor(LorenzConfig(trail_length=50))
        for _ in range(100):
            sim.step(DT)
            assert len(sim.get_points()) <= 50
        assert len(sim.get_points()) == 50

    def test_trail_length_change_keeps_newest(self):
        sim = LorenzAttractor(LorenzConfig(trail_length=100))
        for _ in range(20):
            sim.step(DT)
        newest = sim.get_points()[-1]
        sim.set_parameters(trail_length=10)
        pts = sim.get_points()
        assert len(pts) == 10
        np.testing.assert_array_equal(pts[-1], newest)

    def test_points_are_snapshot(self):
        sim = LorenzAttractor()
        sim.step(DT)
        pts = sim.get_points()
        pts[:] = 1e6
        assert sim.get_points().max() < 1e6

    def test_dtype(self):
        sim = LorenzAttractor()
        sim.step(DT)
        pts = sim.get_points()
        assert pts.dtype == np.float32
        assert pts.shape[1] == 3

    def test_non_positive_dt_is_noop(self):
        sim = LorenzAttractor()
        sim.step(0.0)
        sim.step(-1.0)
        assert sim.get_points().shape == (0, 3)

    def test_stays_bounded(self):
        sim = LorenzAttractor()
        for _ in range(500):
            sim.step(DT)
        assert np.abs(sim.get_points()).max() < 100.0

    def test_divergence_restarts_from_seed(self):
        # Far too large a step for RK4 on Lorenz: the state blows up.
        sim = LorenzAttractor(LorenzConfig(internal_dt=5.0, substeps=3))
        for _ in range(50):
            sim.step(DT)
            assert np.isfinite(sim.get_points()).all()
        assert all(math.isfinite(v) for v in sim.position)

    def test_reset_matches_fresh(self):
        sim = LorenzAttractor()
        for _ in range(30):
            sim.step(DT)
        sim.reset()
        fresh = LorenzAttractor()
        for s in (sim, fresh):
            for _ in range(5):
                s.step(DT)
        np.testing.assert_array_equal(sim.get_points(), fresh.get_points())

    def test_preset(self):
        sim = LorenzAttractor()
        sim.apply_preset("periodic")
        assert sim.cfg.rho == pytest.approx(99.96)

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            LorenzAttractor().apply_preset("butterfly")


class TestRossler:
    def test_warm_up_fills_trail(self):
        sim = RosslerAttractor()
        assert len(sim.get_points()) == sim.cfg.warmup_frames * sim.cfg.substeps

    def test_no_warm_up(self):
        sim = RosslerAttractor(RosslerConfig(warmup_frames=0))
        assert len(sim.get_points()) == 0


class TestFamilies:
    @pytest.mark.parametrize("cls", ALL_ATTRACTORS)
    def test_runs_finite(self, cls):
        sim = cls()
        for _ in range(200):
            sim.step(DT)
        pts = sim.get_points()
        assert len(pts) > 0
        assert np.isfinite(pts).all()

    @pytest.mark.parametrize("cls", ALL_ATTRACTORS)
    def test_default_seed_never_diverges(self, cls):
        sim = cls()
        start = len(sim.get_points())
        frames = 200
        for _ in range(frames):
            sim.step(DT)
        expected = min(start + frames * sim.cfg.substeps, sim.cfg.trail_length)
        assert len(sim.get_points()) == expected
        assert max(abs(v) for v in sim.position) < 1e4

    def test_chen_leaves_the_x_axis(self):
        sim = ChenAttractor()
        for _ in range(200):
            sim.step(DT)
        pts = sim.get_points()
        assert np.abs(pts[:, 1]).max() > 1.0
        assert np.abs(pts[:, 2]).max() > 1.0

    @pytest.mark.parametrize("cls", ALL_ATTRACTORS)
    def test_name(self, cls):
        assert cls().name.endswith("Attractor")

    def test_scale_applied(self):
        sim = AizawaAttractor()
        sim.step(DT)
        np.testing.assert_allclose(
            sim.get_points()[-1], np.array(sim.position) * sim.cfg.scale, rtol=1e-6
        )

    def test_thomas_symmetry(self):
        # The Thomas field is invariant under cyclic permutation of axes
        sim = ThomasAttractor()
        dx, dy, dz = sim.derivatives(0.3, -0.2, 0.7)
        ex, ey, ez = sim.derivatives(-0.2, 0.7, 0.3)
        assert (ex, ey, ez) == pytest.approx((dy, dz, dx))
