"""
Escape-time fractals: Mandelbrot, Julia and Burning Ship.

Every pixel is iterated independently inside a Numba kernel that runs rows
in parallel (``prange``). Colouring uses the normalized iteration count so
bands blend smoothly across escape boundaries.
"""

import dataclasses
import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numba
import numpy as np

from complexsim.simulations.base import RasterConfig, RasterSimulation, empty_buffer
from complexsim.simulations.colorgrade import apply_palette

logger = logging.getLogger(__name__)

MANDELBROT = 0
JULIA = 1
BURNING_SHIP = 2

_FAMILIES = {"mandelbrot": MANDELBROT, "julia": JULIA, "burning_ship": BURNING_SHIP}

ZOOM_MIN = 0.1
ZOOM_MAX = 10000.0

# Guard for log() of values that underflow to zero
_TINY = 1e-300


# ---------------------------------------------------------------------------
# Numba kernels
# ---------------------------------------------------------------------------

@numba.njit(cache=True)
def _escape(zr, zi, cr, ci, family, power, max_iter, escape_sq, log_radius, smooth):
    """Iterate one point. Returns (iteration value, escaped)."""
    use_square = family == BURNING_SHIP or abs(power - 2.0) < 0.001
    for i in range(max_iter):
        mag_sq = zr * zr + zi * zi
        if mag_sq != mag_sq:
            # NaN from an overflowing power; treat as escaped at this step
            return float(i), True
        if mag_sq > escape_sq:
            if not smooth:
                return float(i), True
            log_zn = math.log(mag_sq) / 2.0
            nu = math.log(max(log_zn / log_radius, _TINY)) / math.log(2.0)
            value = i + 1.0 - nu
            if not math.isfinite(value):
                value = float(i)
            return max(value, 0.0), True

        if family == BURNING_SHIP:
            zr = abs(zr)
            zi = abs(zi)
        if use_square:
            new_zr = zr * zr - zi * zi + cr
            zi = 2.0 * zr * zi + ci
            zr = new_zr
        else:
            r = math.sqrt(mag_sq)
            if r == 0.0:
                zr = cr
                zi = ci
            else:
                rp = r ** power
                theta = math.atan2(zi, zr) * power
                zr = rp * math.cos(theta) + cr
                zi = rp * math.sin(theta) + ci
    return float(max_iter), False


@numba.njit(parallel=True, cache=True)
def _escape_grid_kernel(
    width,
    height,
    center_x,
    center_y,
    zoom,
    family,
    power,
    c_re,
    c_im,
    max_iter,
    escape_sq,
    log_radius,
    smooth,
    out_value,
    out_escaped,
):
    """Fill the (height, width) output arrays. Rows are independent."""
    aspect = width / height
    span = 4.0 / zoom
    for y in numba.prange(height):
        im = center_y + (y / height - 0.5) * span
        for x in range(width):
            re = center_x + (x / width - 0.5) * span * aspect
            if family == JULIA:
                value, escaped = _escape(
                    re, im, c_re, c_im, family, power, max_iter, escape_sq, log_radius, smooth
                )
            else:
                value, escaped = _escape(
                    0.0, 0.0, re, im, family, power, max_iter, escape_sq, log_radius, smooth
                )
            out_value[y, x] = value
            out_escaped[y, x] = escaped


@numba.njit(cache=True)
def _escape_points_kernel(
    z_re, z_im, c_re, c_im, family, power, max_iter, escape_sq, log_radius, smooth,
    out_value, out_escaped,
):
    for k in range(z_re.shape[0]):
        value, escaped = _escape(
            z_re[k], z_im[k], c_re[k], c_im[k], family, power,
            max_iter, escape_sq, log_radius, smooth,
        )
        out_value[k] = value
        out_escaped[k] = escaped


def _radius_terms(escape_radius: float) -> Tuple[float, float]:
    """(R², ln R), with R kept above 1 so ln R stays positive."""
    radius = max(float(escape_radius), 1.0 + 1e-6)
    return radius * radius, math.log(radius)


def escape_values(
    points,
    family: str = "mandelbrot",
    c: complex = 0j,
    max_iterations: int = 100,
    escape_radius: float = 2.0,
    power: float = 2.0,
    smooth: bool = True,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Evaluate the escape-time iteration for arbitrary complex points.

    For ``mandelbrot`` and ``burning_ship`` each point is the constant ``c``
    with ``z0 = 0``. For ``julia`` each point is ``z0`` and ``c`` is fixed.

    Returns:
        (values, escaped): float64 iteration values (``max_iterations`` for
        points that never escape) and a boolean escape mask, both shaped like
        ``points``.
    """
    if family not in _FAMILIES:
        raise ValueError(f"Unknown fractal family '{family}'. Choose from: {', '.join(_FAMILIES)}")
    pts = np.asarray(points, dtype=np.complex128)
    flat = pts.ravel()
    n = flat.shape[0]
    fam = _FAMILIES[family]
    if fam == JULIA:
        z_re, z_im = flat.real.copy(), flat.imag.copy()
        c_re = np.full(n, c.real)
        c_im = np.full(n, c.imag)
    else:
        z_re, z_im = np.zeros(n), np.zeros(n)
        c_re, c_im = flat.real.copy(), flat.imag.copy()

    escape_sq, log_radius = _radius_terms(escape_radius)
    values = np.empty(n, dtype=np.float64)
    escaped = np.empty(n, dtype=np.bool_)
    _escape_points_kernel(
        z_re, z_im, c_re, c_im, fam, float(power), max(int(max_iterations), 0),
        escape_sq, log_radius, bool(smooth), values, escaped,
    )
    return values.reshape(pts.shape), escaped.reshape(pts.shape)


# ---------------------------------------------------------------------------
# Configs
# ---------------------------------------------------------------------------

@dataclass
class EscapeTimeConfig(RasterConfig):
    max_iterations: int = 100
    center_x: float = -0.5
    center_y: float = 0.0
    zoom: float = 1.0
    power: float = 2.0
    escape_radius: float = 2.0
    smooth_coloring: bool = True


@dataclass
class MandelbrotConfig(EscapeTimeConfig):
    color_cycling: bool = False


@dataclass
class JuliaConfig(EscapeTimeConfig):
    center_x: float = 0.0
    color_scheme: str = "ultra"
    c_real: float = -0.7
    c_imag: float = 0.27015
    animate: bool = False
    animation_radius: float = 0.7885


@dataclass
class BurningShipConfig(EscapeTimeConfig):
    center_x: float = -0.5
    center_y: float = -0.6
    zoom: float = 0.7
    color_scheme: str = "fire"


# ---------------------------------------------------------------------------
# Simulations
# ---------------------------------------------------------------------------

class EscapeTimeFractal(RasterSimulation):
    """
    Shared escape-time renderer.

    ``compute`` is a pure function of the config and the canvas size; the
    only time-dependent state is whatever ``advance`` folds into the config.
    """

    family = MANDELBROT
    PRESETS: Dict[str, Dict[str, float]] = {}
    _view_fields: Tuple[str, ...] = ("center_x", "center_y", "zoom")

    def __init__(self, config: Optional[EscapeTimeConfig] = None, seed: Optional[int] = None):
        super().__init__(config or EscapeTimeConfig(), seed)
        self.cfg: EscapeTimeConfig = self.cfg
        self._initial_cfg = dataclasses.replace(self.cfg)

    def _julia_constant(self) -> Tuple[float, float]:
        return 0.0, 0.0

    def _view_zoom(self) -> float:
        return min(max(float(self.cfg.zoom), ZOOM_MIN), ZOOM_MAX)

    def _color_offset(self) -> float:
        return self.cfg.color_offset

    def escape_field(self, width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Raw iteration field for the canvas.

        Returns:
            (values, escaped): (height, width) float64 values and bool mask.
        """
        width, height = max(int(width), 0), max(int(height), 0)
        values = np.empty((height, width), dtype=np.float64)
        escaped = np.zeros((height, width), dtype=np.bool_)
        if width == 0 or height == 0:
            return values, escaped

        cfg = self.cfg
        c_re, c_im = self._julia_constant()
        escape_sq, log_radius = _radius_terms(cfg.escape_radius)
        _escape_grid_kernel(
            width,
            height,
            float(cfg.center_x),
            float(cfg.center_y),
            self._view_zoom(),
            self.family,
            float(cfg.power),
            float(c_re),
            float(c_im),
            max(int(cfg.max_iterations), 0),
            escape_sq,
            log_radius,
            bool(cfg.smooth_coloring),
            values,
            escaped,
        )
        return values, escaped

    def compute(self, width: int, height: int) -> np.ndarray:
        if width <= 0 or height <= 0:
            return empty_buffer(width, height)

        values, escaped = self.escape_field(width, height)
        max_iter = max(int(self.cfg.max_iterations), 1)
        t = (values / max_iter + self._color_offset()) % 1.0
        rgb = apply_palette(t, self.cfg.color_scheme, invert=self.cfg.invert_colors)
        rgb[~escaped] = 0
        return rgb

    # -- navigation ---------------------------------------------------------

    def pan(self, dx: float, dy: float, width: int, height: int):
        """Shift the view by a drag of (dx, dy) pixels on a width x height canvas."""
        if width <= 0 or height <= 0:
            return
        aspect = width / height
        view_w = 4.0 / self._view_zoom()
        view_h = view_w / aspect
        self.cfg.center_x -= dx * view_w / width
        self.cfg.center_y -= dy * view_h / height

    def zoom_by(self, delta: float):
        """Multiplicative zoom, e.g. from a scroll wheel delta."""
        zoom = self._view_zoom() * (1.0 + delta * 0.001)
        self.cfg.zoom = min(max(zoom, ZOOM_MIN), ZOOM_MAX)

    def apply_preset(self, name: str):
        """
        Load a named location.

        Raises:
            KeyError: unknown preset.
        """
        if name not in self.PRESETS:
            raise KeyError(f"Unknown preset '{name}' for {self.name}. Choose from: {', '.join(self.PRESETS)}")
        logger.debug("%s: preset %s", self.name, name)
        self.set_parameters(**self.PRESETS[name])

    def reset(self):
        """Restore the starting view; other parameters are kept."""
        super().reset()
        self.cfg = dataclasses.replace(
            self.cfg, **{name: getattr(self._initial_cfg, name) for name in self._view_fields}
        )


class Mandelbrot(EscapeTimeFractal):
    display_name = "Mandelbrot Set"
    family = MANDELBROT
    PRESETS = {
        "seahorse_valley": {"center_x": -0.75, "center_y": 0.1, "zoom": 100.0},
        "elephant_valley": {"center_x": 0.3, "center_y": 0.0, "zoom": 50.0},
        "double_spiral": {"center_x": -0.7269, "center_y": 0.1889, "zoom": 500.0},
        "mini_mandelbrot": {"center_x": -0.1011, "center_y": 0.9563, "zoom": 1000.0},
        "lightning": {"center_x": -0.7453, "center_y": 0.1127, "zoom": 5000.0},
    }

    def __init__(self, config: Optional[MandelbrotConfig] = None, seed: Optional[int] = None):
        super().__init__(config or MandelbrotConfig(), seed)
        self.cfg: MandelbrotConfig = self.cfg
        self._cycle_time = 0.0

    def _color_offset(self) -> float:
        if self.cfg.color_cycling:
            return self._cycle_time
        return self.cfg.color_offset

    def advance(self, dt: float):
        if self.cfg.color_cycling and dt > 0:
            self._cycle_time = (self._cycle_time + dt * 0.1) % 1.0

    def reset(self):
        super().reset()
        self._cycle_time = 0.0


class Julia(EscapeTimeFractal):
    display_name = "Julia Set"
    family = JULIA
    _view_fields = ("center_x", "center_y", "zoom", "c_real", "c_imag")
    PRESETS = {
        "dendrite": {"c_real": -0.4, "c_imag": 0.6},
        "san_marco": {"c_real": -0.75, "c_imag": 0.0},
        "siegel_disk": {"c_real": -0.391, "c_imag": -0.587},
        "douady_rabbit": {"c_real": -0.123, "c_imag": 0.745},
        "dragon": {"c_real": 0.285, "c_imag": 0.01},
    }

    def __init__(self, config: Optional[JuliaConfig] = None, seed: Optional[int] = None):
        super().__init__(config or JuliaConfig(), seed)
        self.cfg: JuliaConfig = self.cfg
        self._animation_time = 0.0

    def _julia_constant(self) -> Tuple[float, float]:
        return self.cfg.c_real, self.cfg.c_imag

    def advance(self, dt: float):
        """Walk ``c`` around a circle when animation is on."""
        if not self.cfg.animate or dt <= 0:
            return
        self._animation_time += dt * 0.3
        r = self.cfg.animation_radius
        self.cfg.c_real = r * math.cos(self._animation_time)
        self.cfg.c_imag = r * math.sin(self._animation_time)

    def reset(self):
        super().reset()
        self._animation_time = 0.0


class BurningShip(EscapeTimeFractal):
    display_name = "Burning Ship"
    family = BURNING_SHIP
    PRESETS = {
        "overview": {"center_x": -0.5, "center_y": -0.6, "zoom": 0.7},
        "main_ship": {"center_x": -1.75, "center_y": -0.03, "zoom": 100.0},
        "antenna": {"center_x": -1.762, "center_y": 0.028, "zoom": 500.0},
    }

    def __init__(self, config: Optional[BurningShipConfig] = None, seed: Optional[int] = None):
        super().__init__(config or BurningShipConfig(), seed)
        self.cfg: BurningShipConfig = self.cfg
