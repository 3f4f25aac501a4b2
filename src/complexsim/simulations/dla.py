"""
Diffusion-limited aggregation.

Each step releases one walker on a circle around the cluster. It takes
fixed-length random steps until it touches a stuck cell (8-neighbourhood)
and sticks, or wanders too far and is discarded. Stuck cells remember the
order they joined, which drives the colouring.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numba
import numpy as np

from complexsim.simulations.automata import AutomatonConfig, AutomatonSimulation
from complexsim.simulations.colorgrade import WHITE, apply_palette

logger = logging.getLogger(__name__)

EMPTY_CELL = -1
SEED_SHAPES = ("point", "line", "cross", "circle")
# Random-walk steps before a walker is abandoned
MAX_WALK = 10000
STEP_LENGTH = 2.0


@numba.njit(cache=True)
def _walk(grid, x, y, cx, cy, escape_radius, angles, coins, stickiness):
    """Random walk from (x, y). Returns the cell it sticks to, or (-1, -1)."""
    height, width = grid.shape
    escape_sq = escape_radius * escape_radius
    for i in range(angles.shape[0]):
        dx = x - cx
        dy = y - cy
        if dx * dx + dy * dy > escape_sq:
            return -1, -1
        ix = int(x)
        iy = int(y)
        if 0 < ix < width - 1 and 0 < iy < height - 1 and grid[iy, ix] < 0:
            touching = False
            for oy in range(-1, 2):
                for ox in range(-1, 2):
                    if (ox != 0 or oy != 0) and grid[iy + oy, ix + ox] >= 0:
                        touching = True
            if touching and coins[i] < stickiness:
                return ix, iy
        x = min(max(x + STEP_LENGTH * math.cos(angles[i]), 1.0), width - 2.0)
        y = min(max(y + STEP_LENGTH * math.sin(angles[i]), 1.0), height - 2.0)
    return -1, -1


@dataclass
class DLAConfig(AutomatonConfig):
    grid_width: int = 128
    grid_height: int = 128
    # Walkers released per second
    speed: float = 300.0
    # Growth stops once this many cells are stuck
    max_particles: int = 5000
    stickiness: float = 1.0
    # Release radius as a fraction of the half grid size
    spawn_radius_ratio: float = 0.8
    seed_shape: str = "point"
    color_by_age: bool = True
    color_scheme: str = "ocean"

    def __post_init__(self):
        super().__post_init__()
        if int(self.grid_width) < 3 or int(self.grid_height) < 3:
            raise ValueError(
                f"DLA needs a grid of at least 3x3, got {self.grid_width}x{self.grid_height}"
            )
        if self.seed_shape not in SEED_SHAPES:
            raise ValueError(f"Unknown seed shape '{self.seed_shape}'. Choose from: {', '.join(SEED_SHAPES)}")


class DiffusionLimitedAggregation(AutomatonSimulation):
    display_name = "Diffusion-Limited Aggregation"

    def __init__(self, config: Optional[DLAConfig] = None, seed: Optional[int] = None):
        super().__init__(config or DLAConfig(), seed)
        self.cfg: DLAConfig = self.cfg

    @property
    def center(self) -> Tuple[float, float]:
        h, w = self.grid.shape
        return w / 2.0, h / 2.0

    def _init_grid(self):
        self.grid = np.full(self.grid_shape, EMPTY_CELL, dtype=np.int32)
        h, w = self.grid_shape
        cx, cy = w // 2, h // 2
        shape = self.cfg.seed_shape
        if shape == "line":
            x0, x1 = max(cx - 20, 0), min(cx + 20, w)
            self.grid[cy, x0:x1] = 0
        elif shape == "cross":
            for i in range(10):
                for x, y in ((cx - i, cy), (cx + i, cy), (cx, cy - i), (cx, cy + i)):
                    if 0 <= x < w and 0 <= y < h:
                        self.grid[y, x] = 0
        elif shape == "circle":
            for deg in range(360):
                a = math.radians(deg)
                x = int(w / 2.0 + 15.0 * math.cos(a))
                y = int(h / 2.0 + 15.0 * math.sin(a))
                if 0 <= x < w and 0 <= y < h:
                    self.grid[y, x] = 0
        else:
            self.grid[cy, cx] = 0
        self.particles_stuck = int((self.grid >= 0).sum())
        self.max_radius = 1.0 if shape == "point" else 15.0
        logger.debug("%s: %s seed with %d cell(s)", self.name, shape, self.particles_stuck)

    def _on_config_change(self, previous):
        if self.cfg.seed_shape != previous.seed_shape:
            self.reset()

    @property
    def finished(self) -> bool:
        return self.particles_stuck >= self.cfg.max_particles

    def step(self):
        self._ensure_grid()
        if not self.finished:
            super().step()

    def _step(self):
        h, w = self.grid.shape
        cx, cy = self.center
        spawn_radius = max(self.max_radius + 10.0, self.cfg.spawn_radius_ratio * min(w, h) / 2.0)
        angle = self.rng.uniform(0.0, 2.0 * math.pi)
        x = min(max(cx + spawn_radius * math.cos(angle), 1.0), w - 2.0)
        y = min(max(cy + spawn_radius * math.sin(angle), 1.0), h - 2.0)

        angles = self.rng.uniform(0.0, 2.0 * math.pi, MAX_WALK)
        coins = self.rng.random(MAX_WALK)
        ix, iy = _walk(
            self.grid, x, y, cx, cy, 2.0 * spawn_radius, angles, coins, float(self.cfg.stickiness)
        )
        if ix < 0:
            return
        self.grid[iy, ix] = self.particles_stuck
        self.particles_stuck += 1
        self.max_radius = max(self.max_radius, math.hypot(ix - cx, iy - cy))

    def _cell_colors(self) -> np.ndarray:
        cfg = self.cfg
        stuck = self.grid >= 0
        colors = np.zeros(self.grid.shape + (3,), dtype=np.uint8)
        if cfg.color_by_age:
            t = self.grid[stuck] / float(max(cfg.max_particles, 1))
            colors[stuck] = apply_palette(t, cfg.color_scheme, cfg.invert_colors)
        else:
            colors[stuck] = WHITE
        return colors
