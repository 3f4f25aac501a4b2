"""Tests for the shared contracts, trail buffer and palettes."""

import numpy as np
import pytest

from complexsim.simulations.attractor import Attractor
from complexsim.simulations.automata import AutomatonSimulation
from complexsim.simulations.base import (
    BaseConfig,
    TrailBuffer,
    as_points,
    empty_buffer,
    empty_points,
)
from complexsim.simulations.colorgrade import (
    COLOR_SCHEMES,
    apply_palette,
    hsv_to_rgb,
    palette_float,
    to_image,
)
from complexsim.simulations.fractal import Mandelbrot, MandelbrotConfig
from complexsim.simulations.particles import ParticleSimulation, TrailedParticleSimulation


class TestTrailBuffer:
    def test_bounded(self):
        trail = TrailBuffer(5)
        for i in range(20):
            trail.push((i, 0, 0))
            assert len(trail) <= 5
        assert len(trail) == 5

    def test_oldest_first(self):
        trail = TrailBuffer(3)
        for i in range(5):
            trail.push((i, i, i))
        np.testing.assert_array_equal(trail.to_array()[:, 0], [2, 3, 4])

    def test_resize_keeps_newest(self):
        trail = TrailBuffer(10)
        for i in range(10):
            trail.push((i, 0, 0))
        trail.resize(4)
        assert trail.maxlen == 4
        np.testing.assert_array_equal(trail.to_array()[:, 0], [6, 7, 8, 9])

    def test_zero_capacity(self):
        trail = TrailBuffer(0)
        trail.push((1, 2, 3))
        assert len(trail) == 0
        assert trail.to_array().shape == (0, 3)

    def test_to_array_is_copy(self):
        trail = TrailBuffer(4)
        trail.push((1, 2, 3))
        arr = trail.to_array()
        arr[:] = 0
        assert tuple(trail)[0] == (1.0, 2.0, 3.0)


class TestEmptyResults:
    def test_empty_buffer_clamps_negative(self):
        buf = empty_buffer(-3, 4)
        assert buf.shape == (4, 0, 3)
        assert buf.dtype == np.uint8

    def test_empty_points(self):
        pts = empty_points()
        assert pts.shape == (0, 3)
        assert pts.dtype == np.float32

    def test_as_points_reshapes(self):
        pts = as_points([[1, 2, 3], [4, 5, 6]])
        assert pts.shape == (2, 3)
        assert as_points([]).shape == (0, 3)


class TestParameterBoundary:
    def test_full_config_replacement(self):
        sim = Mandelbrot()
        sim.set_parameters(MandelbrotConfig(max_iterations=7), zoom=3.0)
        assert sim.cfg.max_iterations == 7
        assert sim.cfg.zoom == 3.0

    def test_wrong_config_type(self):
        with pytest.raises(TypeError):
            Mandelbrot().set_parameters(BaseConfig())

    def test_unknown_names_listed(self):
        with pytest.raises(ValueError, match="bogus"):
            Mandelbrot().set_parameters(bogus=1)

    def test_config_is_replaced_not_mutated(self):
        cfg = MandelbrotConfig()
        sim = Mandelbrot(cfg)
        sim.set_parameters(max_iterations=5)
        assert cfg.max_iterations == 100


class TestAbstractBases:
    @pytest.mark.parametrize(
        "cls", [Attractor, AutomatonSimulation, ParticleSimulation, TrailedParticleSimulation]
    )
    def test_family_bases_cannot_be_built(self, cls):
        with pytest.raises(TypeError):
            cls()


class TestPalettes:
    @pytest.mark.parametrize("scheme", COLOR_SCHEMES)
    def test_every_scheme_maps(self, scheme):
        t = np.linspace(0, 1, 11)
        rgb = apply_palette(t, scheme)
        assert rgb.shape == (11, 3)
        assert rgb.dtype == np.uint8

    def test_grayscale_endpoints(self):
        rgb = apply_palette(np.array([0.0, 1.0]), "grayscale")
        np.testing.assert_array_equal(rgb, [[0, 0, 0], [255, 255, 255]])

    def test_invert(self):
        rgb = apply_palette(np.array([0.0]), "grayscale", invert=True)
        np.testing.assert_array_equal(rgb, [[255, 255, 255]])

    def test_rainbow_starts_red(self):
        rgb = apply_palette(np.array([0.0]), "rainbow")
        np.testing.assert_array_equal(rgb, [[255, 0, 0]])

    def test_nan_and_out_of_range(self):
        rgb = palette_float(np.array([np.nan, -1.0, 2.0]), "grayscale")
        np.testing.assert_allclose(rgb[:, 0], [0.0, 0.0, 1.0])

    def test_unknown_scheme(self):
        with pytest.raises(ValueError):
            palette_float(np.zeros(2), "sepia")

    def test_hsv_primary_colors(self):
        rgb = hsv_to_rgb(np.array([0.0, 1 / 3, 2 / 3]), 1.0, 1.0)
        np.testing.assert_array_equal(rgb, [[255, 0, 0], [0, 255, 0], [0, 0, 255]])

    def test_to_image(self):
        img = to_image(np.zeros((4, 6, 3), dtype=np.uint8))
        assert img.size == (6, 4)
        assert img.mode == "RGB"
