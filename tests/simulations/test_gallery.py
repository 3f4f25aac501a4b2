"""Tests for the simulation gallery and the headless CLI."""

import numpy as np
import pytest
from PIL import Image

from complexsim.simulations.base import PointCloudSimulation, RasterSimulation
from complexsim.simulations.cli import main, parse_overrides
from complexsim.simulations.fractal import Mandelbrot
from complexsim.simulations.gallery import (
    POINT_CLOUD_SIMULATIONS,
    RASTER_SIMULATIONS,
    Gallery,
    create_simulation,
    registered,
    run_frames,
)
from complexsim.simulations.particles import BoundaryPolicy


# ---------------------------------------------------------------------------
# Gallery
# ---------------------------------------------------------------------------

class TestRegistry:
    def test_every_simulation_listed(self):
        rows = registered()
        assert len(rows) == len(RASTER_SIMULATIONS) + len(POINT_CLOUD_SIMULATIONS)
        assert len({key for key, _, _ in rows}) == len(rows)

    def test_contracts(self):
        assert all(issubclass(cls, RasterSimulation) for cls in RASTER_SIMULATIONS.values())
        assert all(issubclass(cls, PointCloudSimulation) for cls in POINT_CLOUD_SIMULATIONS.values())

    def test_create_with_overrides(self):
        sim = create_simulation("mandelbrot", seed=0, max_iterations=12)
        assert isinstance(sim, Mandelbrot)
        assert sim.cfg.max_iterations == 12

    def test_create_unknown(self):
        with pytest.raises(KeyError):
            create_simulation("spirograph")

    def test_create_bad_parameter(self):
        with pytest.raises(ValueError):
            create_simulation("lorenz", wobble=1.0)


class TestGallery:
    def test_default_sizes(self, gallery):
        assert len(gallery.rasters) == len(RASTER_SIMULATIONS)
        assert len(gallery.point_clouds) == len(POINT_CLOUD_SIMULATIONS)
        assert len(gallery) == len(gallery.keys())

    def test_lookup_by_contract(self, gallery):
        assert isinstance(gallery.raster("mandelbrot"), Mandelbrot)
        assert gallery.point_cloud("lorenz").name == "Lorenz Attractor"
        with pytest.raises(KeyError):
            gallery.raster("lorenz")
        with pytest.raises(KeyError):
            gallery.point_cloud("nowhere")

    @pytest.mark.parametrize("index", range(len(RASTER_SIMULATIONS)))
    def test_raster_frames(self, gallery, frame_dt, index):
        frame = gallery.frame_raster(index, frame_dt, 16, 12)
        assert frame.shape == (12, 16, 3)
        assert frame.dtype == np.uint8

    @pytest.mark.parametrize("index", range(len(POINT_CLOUD_SIMULATIONS)))
    def test_point_cloud_frames(self, gallery, frame_dt, index):
        points = gallery.frame_point_cloud(index, frame_dt)
        assert points.ndim == 2 and points.shape[1] == 3
        assert points.dtype == np.float32
        assert np.isfinite(points).all()

    def test_points_are_copies(self, gallery, frame_dt):
        sim = gallery.point_cloud("boids")
        points = sim.get_points()
        points[:] = 1e6
        assert not np.array_equal(sim.get_points(), points)

    def test_duplicate_key(self):
        gallery = Gallery()
        gallery.add("m", Mandelbrot())
        with pytest.raises(ValueError):
            gallery.add("m", Mandelbrot())

    def test_rejects_non_simulation(self):
        with pytest.raises(TypeError):
            Gallery().add("x", object())


class TestRunFrames:
    def test_progress_and_count(self):
        calls = []
        sim = create_simulation("langton", seed=0)
        frames = list(run_frames(sim, 3, 0.1, 20, 10, progress_callback=lambda c, t: calls.append((c, t))))
        assert len(frames) == 3
        assert frames[-1].shape == (10, 20, 3)
        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_zero_frames(self):
        assert list(run_frames(create_simulation("lorenz"), 0, 0.1)) == []


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

class TestCli:
    def test_list(self, capsys):
        assert main(["list"]) == 0
        out = capsys.readouterr().out
        assert "mandelbrot" in out
        assert "point-cloud" in out

    def test_run_point_cloud(self, capsys):
        assert main(["run", "lorenz", "--frames", "5", "--seed", "1"]) == 0
        out = capsys.readouterr().out
        assert "Running Lorenz Attractor (point-cloud) for 5 frames" in out
        assert "Points: " in out
        assert "Bounds: " in out
        assert "Done!" in out

    def test_run_raster_snapshot(self, tmp_path, capsys):
        target = tmp_path / "life.png"
        code = main([
            "run", "life", "--frames", "3", "--width", "40", "--height", "30",
            "--snapshot", str(target),
        ])
        assert code == 0
        with Image.open(target) as img:
            assert img.size == (40, 30)
        assert "Snapshot:" in capsys.readouterr().out

    def test_typed_overrides(self, capsys):
        code = main([
            "run", "mandelbrot", "--frames", "1", "--width", "8", "--height", "8",
            "--set", "max_iterations=10", "--set", "smooth_coloring=false",
        ])
        assert code == 0
        out = capsys.readouterr().out
        assert "max_iterations = 10" in out
        assert "smooth_coloring = False" in out

    def test_unknown_simulation(self, capsys):
        assert main(["run", "spirograph"]) == 1
        assert "Unknown simulation" in capsys.readouterr().err

    def test_unknown_parameter(self, capsys):
        assert main(["run", "lorenz", "--set", "wobble=2"]) == 1
        assert "wobble" in capsys.readouterr().err

    def test_invalid_value(self, capsys):
        assert main(["run", "sph", "--set", "boundary=respawn"]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_snapshot_needs_raster(self, tmp_path, capsys):
        assert main(["run", "lorenz", "--snapshot", str(tmp_path / "x.png")]) == 1

    def test_malformed_assignment(self):
        with pytest.raises(SystemExit):
            main(["run", "lorenz", "--set", "novalue"])

    def test_parse_overrides_types(self):
        sim = create_simulation("sph", seed=0)
        overrides = parse_overrides(sim, [("boundary", "wrap"), ("particle_count", "40"), ("gravity", "1.5")])
        assert overrides == {"boundary": BoundaryPolicy.WRAP, "particle_count": 40, "gravity": 1.5}

    def test_parse_overrides_bad_bool(self):
        sim = create_simulation("mandelbrot")
        with pytest.raises(ValueError):
            parse_overrides(sim, [("smooth_coloring", "maybe")])

    def test_log_file(self, tmp_path, capsys):
        log_path = tmp_path / "run.log"
        code = main([
            "run", "lorenz", "--frames", "2",
            "--log-level", "DEBUG", "--log-file", str(log_path),
        ])
        assert code == 0
        assert "Logging initialized." in log_path.read_text(encoding="utf-8")
