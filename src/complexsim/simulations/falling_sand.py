"""
Falling-sand toy physics.

Each step optionally pours a brush of material in at the top row, then
sweeps the grid bottom-up moving one cell at a time: sand falls (sinking
through water) or slides diagonally, water falls or spreads sideways, fire
burns down, drifts upwards and ignites adjacent wood. Stone and wood stay
put. The random choices are drawn from ``self.rng`` before the sweep.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numba
import numpy as np

from complexsim.simulations.automata import AutomatonConfig, AutomatonSimulation

logger = logging.getLogger(__name__)

EMPTY, SAND, WATER, STONE, FIRE, WOOD = range(6)
MATERIALS = {"sand": SAND, "water": WATER, "stone": STONE, "fire": FIRE, "wood": WOOD}
MATERIAL_COLORS = np.array(
    [
        (0, 0, 0),
        (194, 178, 128),
        (50, 100, 200),
        (100, 100, 100),
        (255, 200, 0),
        (139, 90, 43),
    ],
    dtype=np.uint8,
)
FIRE_TEMPERATURE = 100.0

# Slots in the per-cell coin array
_SIDE, _RISE, _IGNITE = 0, 1, 2
_COINS = 6


@numba.njit(cache=True)
def _swap(grid, temperature, y0, x0, y1, x1):
    m = grid[y0, x0]
    grid[y0, x0] = grid[y1, x1]
    grid[y1, x1] = m
    t = temperature[y0, x0]
    temperature[y0, x0] = temperature[y1, x1]
    temperature[y1, x1] = t


@numba.njit(cache=True)
def _sweep(grid, temperature, coins):
    height, width = grid.shape
    for y in range(height - 1, -1, -1):
        for x in range(width):
            m = grid[y, x]
            if m == SAND or m == WATER:
                if y >= height - 1:
                    continue
                below = grid[y + 1, x]
                if below == EMPTY or (m == SAND and below == WATER):
                    _swap(grid, temperature, y, x, y + 1, x)
                    continue
                nx = x - 1 if coins[y, x, _SIDE] < 0.5 else x + 1
                if nx < 0 or nx >= width:
                    continue
                if m == SAND:
                    target = grid[y + 1, nx]
                    if target == EMPTY or target == WATER:
                        _swap(grid, temperature, y, x, y + 1, nx)
                elif grid[y, nx] == EMPTY:
                    _swap(grid, temperature, y, x, y, nx)
            elif m == FIRE:
                temperature[y, x] -= 1.0
                if temperature[y, x] <= 0.0:
                    grid[y, x] = EMPTY
                    temperature[y, x] = 0.0
                    continue
                cy = y
                if y > 0 and grid[y - 1, x] == EMPTY and coins[y, x, _RISE] < 0.3:
                    _swap(grid, temperature, y, x, y - 1, x)
                    cy = y - 1
                # Left, right, above, below of where the flame now is
                for k in range(4):
                    if k == 0:
                        ny, nx = cy, x - 1
                    elif k == 1:
                        ny, nx = cy, x + 1
                    elif k == 2:
                        ny, nx = cy - 1, x
                    else:
                        ny, nx = cy + 1, x
                    if ny < 0 or ny >= height or nx < 0 or nx >= width:
                        continue
                    if grid[ny, nx] == WOOD and coins[y, x, _IGNITE + k] < 0.1:
                        grid[ny, nx] = FIRE
                        temperature[ny, nx] = FIRE_TEMPERATURE


@dataclass
class FallingSandConfig(AutomatonConfig):
    grid_width: int = 200
    grid_height: int = 150
    speed: float = 60.0
    material: str = "sand"
    brush_size: int = 3
    pour_chance: float = 0.3

    def __post_init__(self):
        super().__post_init__()
        if self.material not in MATERIALS:
            raise ValueError(f"Unknown material '{self.material}'. Choose from: {', '.join(MATERIALS)}")


class FallingSand(AutomatonSimulation):
    display_name = "Falling Sand"

    def __init__(self, config: Optional[FallingSandConfig] = None, seed: Optional[int] = None):
        super().__init__(config or FallingSandConfig(), seed)
        self.cfg: FallingSandConfig = self.cfg

    def _init_grid(self):
        self.grid = np.zeros(self.grid_shape, dtype=np.uint8)
        self.temperature = np.zeros(self.grid_shape, dtype=np.float32)

    def paint(self, x: int, y: int, material: str, size: int = 1):
        """
        Fill a ``size`` x ``size`` square centred on ``(x, y)``.

        Raises:
            KeyError: unknown material name (``"empty"`` erases).
        """
        self._ensure_grid()
        value = EMPTY if material == "empty" else MATERIALS[material]
        h, w = self.grid.shape
        x0 = max(int(x) - size // 2, 0)
        y0 = max(int(y) - size // 2, 0)
        x1 = min(x0 + size, w)
        y1 = min(y0 + size, h)
        if x0 >= x1 or y0 >= y1:
            return
        self.grid[y0:y1, x0:x1] = value
        self.temperature[y0:y1, x0:x1] = FIRE_TEMPERATURE if value == FIRE else 0.0

    def clear(self):
        self.grid[:] = EMPTY
        self.temperature[:] = 0.0

    def _pour(self):
        cfg = self.cfg
        if self.rng.random() >= cfg.pour_chance:
            return
        x = int(self.rng.integers(0, self.grid.shape[1]))
        size = max(int(cfg.brush_size), 1)
        # Top edge of the brush sits on row 0
        self.paint(x, size // 2, cfg.material, size)

    def _step(self):
        self._pour()
        coins = self.rng.random(self.grid.shape + (_COINS,))
        _sweep(self.grid, self.temperature, coins)

    def count(self, material: str) -> int:
        value = EMPTY if material == "empty" else MATERIALS[material]
        return int((self.grid == value).sum())

    def _cell_colors(self) -> np.ndarray:
        colors = MATERIAL_COLORS[self.grid]
        fire = self.grid == FIRE
        if fire.any():
            heat = np.minimum(self.temperature[fire] / FIRE_TEMPERATURE, 1.0)
            colors[fire, 1] = (200.0 * (1.0 - heat)).astype(np.uint8)
        return colors
