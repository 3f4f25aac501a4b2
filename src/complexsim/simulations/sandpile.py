"""
Abelian sandpile.

Grains are dropped one at a time. After every drop the pile relaxes to a
fixed point: any cell holding ``critical_mass`` or more grains loses that
many and passes one grain to each of its four neighbours. Grains pushed
past the border are lost, which guarantees the relaxation terminates.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numba
import numpy as np

from complexsim.simulations.automata import AutomatonConfig, AutomatonSimulation
from complexsim.simulations.colorgrade import apply_palette

logger = logging.getLogger(__name__)

DROP_MODES = ("center", "random", "spiral")
AVALANCHE_COLOR = (255, 255, 0)


@numba.njit(cache=True)
def _relax(grid, sites, critical):
    """Topple until no cell reaches ``critical``. Returns the number of topples."""
    height, width = grid.shape
    topples = 0
    unstable = True
    while unstable:
        unstable = False
        for y in range(height):
            for x in range(width):
                if grid[y, x] >= critical:
                    grid[y, x] -= critical
                    if x > 0:
                        grid[y, x - 1] += 1
                    if x < width - 1:
                        grid[y, x + 1] += 1
                    if y > 0:
                        grid[y - 1, x] += 1
                    if y < height - 1:
                        grid[y + 1, x] += 1
                    sites[y, x] = True
                    topples += 1
                    unstable = True
    return topples


def relax(grid: np.ndarray, critical_mass: int = 4, sites: Optional[np.ndarray] = None) -> int:
    """
    Relax ``grid`` in place to quiescence.

    Args:
        grid: int32 grain counts.
        critical_mass: Topple threshold, at least 4.
        sites: Optional bool array marking every cell that toppled.

    Returns:
        Number of individual topples.
    """
    if sites is None:
        sites = np.zeros(grid.shape, dtype=np.bool_)
    return int(_relax(grid, sites, np.int32(critical_mass)))


@dataclass
class SandpileConfig(AutomatonConfig):
    grid_width: int = 150
    grid_height: int = 150
    # Grains dropped per second
    speed: float = 10.0
    critical_mass: int = 4
    drop_mode: str = "center"
    show_avalanches: bool = True
    color_scheme: str = "fire"

    def __post_init__(self):
        super().__post_init__()
        if int(self.critical_mass) < 4:
            raise ValueError(f"critical_mass must be at least 4, got {self.critical_mass}")
        if self.drop_mode not in DROP_MODES:
            raise ValueError(f"Unknown drop mode '{self.drop_mode}'. Choose from: {', '.join(DROP_MODES)}")


class Sandpile(AutomatonSimulation):
    display_name = "Sandpile Model"

    def __init__(self, config: Optional[SandpileConfig] = None, seed: Optional[int] = None):
        super().__init__(config or SandpileConfig(), seed)
        self.cfg: SandpileConfig = self.cfg

    def _init_grid(self):
        self.grid = np.zeros(self.grid_shape, dtype=np.int32)
        self.avalanche_sites = np.zeros(self.grid_shape, dtype=np.bool_)
        self.total_drops = 0
        self.total_avalanches = 0

    def _on_config_change(self, previous):
        if self.cfg.critical_mass < previous.critical_mass and self.grid.shape == self.grid_shape:
            self._settle()

    def _drop_position(self) -> Tuple[int, int]:
        h, w = self.grid.shape
        mode = self.cfg.drop_mode
        if mode == "random":
            return int(self.rng.integers(0, w)), int(self.rng.integers(0, h))
        if mode == "spiral":
            t = self.total_drops * 0.1
            radius = min(t * 0.1, w / 3.0)
            angle = t * 0.5
            x = int(w // 2 + radius * math.cos(angle))
            y = int(h // 2 + radius * math.sin(angle))
            return min(max(x, 0), w - 1), min(max(y, 0), h - 1)
        return w // 2, h // 2

    def drop(self, x: int, y: int) -> int:
        """
        Add one grain at ``(x, y)`` and relax the pile.

        Returns:
            Number of topples in the resulting avalanche.

        Raises:
            ValueError: ``(x, y)`` lies outside the grid.
        """
        self._ensure_grid()
        h, w = self.grid.shape
        if not (0 <= x < w and 0 <= y < h):
            raise ValueError(f"Drop site ({x}, {y}) outside the {w}x{h} grid")
        self.grid[y, x] += 1
        self.total_drops += 1
        return self._settle()

    def _settle(self) -> int:
        self.avalanche_sites[:] = False
        topples = relax(self.grid, int(self.cfg.critical_mass), self.avalanche_sites)
        if topples:
            self.total_avalanches += 1
        return topples

    def _step(self):
        x, y = self._drop_position()
        self.drop(x, y)

    def stats(self) -> Dict[str, float]:
        rate = self.total_avalanches / self.total_drops if self.total_drops else 0.0
        return {
            "total_drops": self.total_drops,
            "total_avalanches": self.total_avalanches,
            "avalanche_rate": rate,
            "grains": int(self.grid.sum()),
        }

    def _cell_colors(self) -> np.ndarray:
        cfg = self.cfg
        t = np.clip(self.grid / float(cfg.critical_mass), 0.0, 1.0)
        colors = apply_palette(t, cfg.color_scheme, cfg.invert_colors)
        if cfg.show_avalanches:
            colors[self.avalanche_sites] = AVALANCHE_COLOR
        return colors
