"""Tests for the escape-time fractals."""

import math

import numpy as np
import pytest

from complexsim.simulations.fractal import (
    ZOOM_MAX,
    ZOOM_MIN,
    BurningShip,
    BurningShipConfig,
    Julia,
    JuliaConfig,
    Mandelbrot,
    MandelbrotConfig,
    escape_values,
)


def _mandelbrot(**kwargs) -> Mandelbrot:
    return Mandelbrot(MandelbrotConfig(**kwargs))


# ---------------------------------------------------------------------------
# escape_values
# ---------------------------------------------------------------------------

class TestEscapeValues:
    @pytest.mark.parametrize("max_iter", [1, 10, 1000])
    def test_origin_never_escapes(self, max_iter):
        values, escaped = escape_values([0j], max_iterations=max_iter)
        assert not escaped[0]
        assert values[0] == max_iter

    def test_far_point_escapes_after_one_step(self):
        # z0 = 0 passes the first test; z1 = c = 3 fails it.
        values, escaped = escape_values([3 + 0j], smooth=False)
        assert escaped[0]
        assert values[0] == 1

    def test_shape_preserved(self):
        pts = np.zeros((3, 4), dtype=np.complex128)
        values, escaped = escape_values(pts)
        assert values.shape == (3, 4)
        assert escaped.shape == (3, 4)

    def test_smooth_count_is_continuous(self):
        # Real c > 1/4 escapes; the integer count jumps as c varies.
        c = np.linspace(0.3, 0.6, 3001)
        smooth, escaped = escape_values(c, max_iterations=500, escape_radius=1000.0)
        banded, _ = escape_values(c, max_iterations=500, escape_radius=1000.0, smooth=False)
        assert escaped.all()
        assert np.abs(np.diff(banded)).max() >= 1.0
        assert np.abs(np.diff(smooth)).max() < 0.1

    def test_julia_unit_disk(self):
        _, escaped = escape_values([0.5 + 0j, 3.0 + 0j], family="julia", c=0j)
        assert not escaped[0]
        assert escaped[1]

    def test_burning_ship_family(self):
        _, escaped = escape_values([0j, 1 + 0j], family="burning_ship")
        assert not escaped[0]
        assert escaped[1]

    def test_non_integer_power(self):
        _, escaped = escape_values([0j, 2 + 2j], power=3.0)
        assert not escaped[0]
        assert escaped[1]

    def test_unknown_family_raises(self):
        with pytest.raises(ValueError):
            escape_values([0j], family="newton")


# ---------------------------------------------------------------------------
# Mandelbrot rendering
# ---------------------------------------------------------------------------

class TestMandelbrot:
    def test_output_shape_and_dtype(self):
        buf = Mandelbrot().compute(32, 24)
        assert buf.shape == (24, 32, 3)
        assert buf.dtype == np.uint8

    def test_deterministic(self):
        a = Mandelbrot().compute(40, 30)
        b = Mandelbrot().compute(40, 30)
        c = Mandelbrot().compute(40, 30)
        np.testing.assert_array_equal(a, b)
        np.testing.assert_array_equal(b, c)

    def test_origin_pixel_is_black(self):
        # With center 0 and a 4x4 canvas, pixel (2, 2) maps to exactly c = 0.
        sim = _mandelbrot(center_x=0.0, center_y=0.0)
        values, escaped = sim.escape_field(4, 4)
        assert not escaped[2, 2]
        assert values[2, 2] == sim.cfg.max_iterations
        np.testing.assert_array_equal(sim.compute(4, 4)[2, 2], [0, 0, 0])

    def test_exterior_is_colored(self):
        buf = _mandelbrot(center_x=3.0, center_y=3.0, zoom=2.0).compute(8, 8)
        assert buf.max() > 0

    @pytest.mark.parametrize("size", [(0, 10), (10, 0), (0, 0), (-4, 5)])
    def test_degenerate_sizes(self, size):
        buf = Mandelbrot().compute(*size)
        assert buf.size == 0
        assert buf.ndim == 3

    def test_zero_iterations_is_black(self):
        buf = _mandelbrot(max_iterations=0).compute(8, 8)
        assert buf.max() == 0

    def test_escape_field_matches_escape_values(self):
        sim = _mandelbrot(center_x=0.0, center_y=0.0, max_iterations=50)
        values, escaped = sim.escape_field(4, 4)
        # Pixel (x=3, y=2): re = (3/4 - 0.5) * 4 = 1.0, im = 0
        expected, exp_escaped = escape_values([1 + 0j], max_iterations=50)
        assert escaped[2, 3] == exp_escaped[0]
        assert values[2, 3] == pytest.approx(expected[0])

    def test_invert_changes_exterior(self):
        plain = _mandelbrot().compute(16, 16)
        inverted = _mandelbrot(invert_colors=True).compute(16, 16)
        assert not np.array_equal(plain, inverted)


class TestNavigation:
    def test_pan_moves_center(self):
        sim = Mandelbrot()
        sim.pan(100, 0, 400, 200)
        assert sim.cfg.center_x == pytest.approx(-1.5)
        assert sim.cfg.center_y == pytest.approx(0.0)

    def test_pan_vertical_uses_aspect(self):
        sim = Mandelbrot()
        sim.pan(0, 50, 400, 200)
        # view_h = (4 / zoom) / aspect = 2
        assert sim.cfg.center_y == pytest.approx(-0.5)

    def test_zoom_is_multiplicative(self):
        sim = Mandelbrot()
        sim.zoom_by(1000)
        assert sim.cfg.zoom == pytest.approx(2.0)

    def test_zoom_clamped(self):
        sim = Mandelbrot()
        sim.zoom_by(1e12)
        assert sim.cfg.zoom == ZOOM_MAX
        sim.zoom_by(-999.9999)
        assert sim.cfg.zoom == ZOOM_MIN

    def test_preset(self):
        sim = Mandelbrot()
        sim.apply_preset("seahorse_valley")
        assert sim.cfg.center_x == pytest.approx(-0.75)
        assert sim.cfg.zoom == pytest.approx(100.0)

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            Mandelbrot().apply_preset("nowhere")

    def test_reset_restores_view(self):
        sim = Mandelbrot()
        sim.set_parameters(max_iterations=64)
        sim.pan(10, 10, 100, 100)
        sim.zoom_by(500)
        sim.reset()
        assert sim.cfg.center_x == pytest.approx(-0.5)
        assert sim.cfg.zoom == pytest.approx(1.0)
        assert sim.cfg.max_iterations == 64

    def test_pan_after_zero_zoom(self):
        sim = Mandelbrot()
        sim.set_parameters(zoom=0.0)
        assert sim.compute(8, 8).shape == (8, 8, 3)
        sim.pan(5, 5, 100, 100)
        # zoom is read through its lower clamp
        assert sim.cfg.center_x == pytest.approx(-0.5 - 5 * (4.0 / ZOOM_MIN) / 100)
        assert math.isfinite(sim.cfg.center_y)

    def test_zoom_by_recovers_from_zero_zoom(self):
        sim = Mandelbrot()
        sim.set_parameters(zoom=0.0)
        sim.zoom_by(0)
        assert sim.cfg.zoom == ZOOM_MIN

    def test_instances_do_not_share_config(self):
        cfg = MandelbrotConfig()
        a, b = Mandelbrot(cfg), Mandelbrot(cfg)
        a.pan(50, 0, 100, 100)
        a.zoom_by(1000)
        assert b.cfg.center_x == pytest.approx(-0.5)
        assert b.cfg.zoom == pytest.approx(1.0)
        assert cfg.center_x == pytest.approx(-0.5)


class TestAnimation:
    def test_color_cycling_shifts_palette(self):
        sim = _mandelbrot(color_cycling=True)
        before = sim.compute(24, 24)
        sim.advance(1.0)
        after = sim.compute(24, 24)
        assert not np.array_equal(before, after)

    def test_static_without_cycling(self):
        sim = Mandelbrot()
        before = sim.compute(24, 24)
        sim.advance(1.0)
        np.testing.assert_array_equal(before, sim.compute(24, 24))

    def test_julia_animation_walks_circle(self):
        sim = Julia(JuliaConfig(animate=True))
        sim.advance(1.0)
        r = sim.cfg.animation_radius
        assert sim.cfg.c_real == pytest.approx(r * math.cos(0.3))
        assert sim.cfg.c_imag == pytest.approx(r * math.sin(0.3))

    def test_julia_reset_restores_constant(self):
        sim = Julia(JuliaConfig(animate=True))
        sim.advance(2.0)
        sim.reset()
        assert sim.cfg.c_real == pytest.approx(-0.7)
        assert sim.cfg.c_imag == pytest.approx(0.27015)

    def test_julia_animation_leaves_shared_config_alone(self):
        cfg = JuliaConfig(animate=True)
        a, b = Julia(cfg), Julia(cfg)
        a.advance(1.0)
        assert b.cfg.c_real == pytest.approx(-0.7)
        assert cfg.c_real == pytest.approx(-0.7)


class TestOtherFamilies:
    def test_julia_output(self):
        buf = Julia().compute(20, 10)
        assert buf.shape == (10, 20, 3)

    def test_burning_ship_defaults(self):
        sim = BurningShip()
        assert sim.cfg.color_scheme == "fire"
        assert sim.cfg.zoom == pytest.approx(0.7)
        assert sim.compute(16, 16).shape == (16, 16, 3)

    def test_burning_ship_differs_from_mandelbrot(self):
        params = dict(center_x=-0.5, center_y=-0.6, zoom=0.7)
        ship = BurningShip(BurningShipConfig(**params)).escape_field(32, 32)[0]
        mandel = _mandelbrot(**params).escape_field(32, 32)[0]
        assert not np.array_equal(ship, mandel)


class TestParameters:
    def test_unknown_parameter_rejected(self):
        with pytest.raises(ValueError):
            Mandelbrot().set_parameters(colour="red")

    def test_unknown_color_scheme_rejected(self):
        with pytest.raises(ValueError):
            Mandelbrot().set_parameters(color_scheme="neon")

    def test_get_parameters_roundtrip(self):
        sim = Mandelbrot()
        sim.set_parameters(max_iterations=42)
        assert sim.get_parameters()["max_iterations"] == 42
