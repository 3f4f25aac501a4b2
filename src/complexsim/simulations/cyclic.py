"""
Cyclic cellular automaton.

Each cell holds a state in ``[0, num_states)`` and advances to the next
state (mod K) when at least ``threshold`` neighbours already hold it.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from complexsim.simulations.automata import (
    AutomatonConfig,
    AutomatonSimulation,
    neighbourhood_offsets,
)
from complexsim.simulations.colorgrade import apply_palette

logger = logging.getLogger(__name__)

SEED_LAYOUTS = ("random", "spiral", "stripes", "corners")


def cyclic_step(grid: np.ndarray, num_states: int, threshold: int, neighborhood: str = "moore",
                out: Optional[np.ndarray] = None) -> np.ndarray:
    """One wrapped generation of the cyclic rule, written into ``out`` if given."""
    successor = (grid + 1) % num_states
    count = np.zeros(grid.shape, dtype=np.int32)
    for dx, dy in neighbourhood_offsets(neighborhood):
        # rolled[y, x] == grid[y + dy, x + dx]
        count += np.roll(grid, (-dy, -dx), axis=(0, 1)) == successor
    if out is None:
        out = np.empty_like(grid)
    np.copyto(out, np.where(count >= threshold, successor, grid))
    return out


@dataclass
class CyclicConfig(AutomatonConfig):
    grid_width: int = 200
    grid_height: int = 150
    num_states: int = 14
    threshold: int = 3
    neighborhood: str = "moore"
    seed_layout: str = "random"
    color_scheme: str = "rainbow"

    def __post_init__(self):
        super().__post_init__()
        neighbourhood_offsets(self.neighborhood)
        if not 2 <= int(self.num_states) <= 255:
            raise ValueError(f"num_states must be in [2, 255], got {self.num_states}")
        if self.seed_layout not in SEED_LAYOUTS:
            raise ValueError(
                f"Unknown seed layout '{self.seed_layout}'. Choose from: {', '.join(SEED_LAYOUTS)}"
            )


class CyclicAutomaton(AutomatonSimulation):
    display_name = "Cyclic Cellular Automaton"

    def __init__(self, config: Optional[CyclicConfig] = None, seed: Optional[int] = None):
        super().__init__(config or CyclicConfig(), seed)
        self.cfg: CyclicConfig = self.cfg

    def _init_grid(self):
        h, w = self.grid_shape
        k = int(self.cfg.num_states)
        self.grid = np.zeros((h, w), dtype=np.uint8)
        self._next = np.zeros((h, w), dtype=np.uint8)
        layout = self.cfg.seed_layout

        if layout == "random":
            self.grid[:] = self.rng.integers(0, k, (h, w))
        elif layout == "spiral":
            cx, cy = w // 2, h // 2
            for i in range(k):
                angle = i / k * 2.0 * np.pi
                x = int(cx + 10.0 * np.cos(angle))
                y = int(cy + 10.0 * np.sin(angle))
                if 0 <= x < w and 0 <= y < h:
                    self.grid[y, x] = i
        elif layout == "stripes":
            self.grid[:] = (np.arange(w) * k // w)[None, :]
        else:
            top = np.arange(h)[:, None] < h // 2
            left = np.arange(w)[None, :] < w // 2
            self.grid[:] = np.where(
                top,
                np.where(left, 0, k // 4),
                np.where(left, k // 2, k * 3 // 4),
            )

    def _on_config_change(self, previous):
        cfg = self.cfg
        if cfg.num_states != previous.num_states or cfg.seed_layout != previous.seed_layout:
            self.reset()

    def _step(self):
        cfg = self.cfg
        cyclic_step(self.grid, int(cfg.num_states), int(cfg.threshold), cfg.neighborhood, out=self._next)
        self.grid, self._next = self._next, self.grid

    def _cell_colors(self) -> np.ndarray:
        t = self.grid / float(self.cfg.num_states)
        t = (t + self.cfg.color_offset) % 1.0
        return apply_palette(t, self.cfg.color_scheme, self.cfg.invert_colors)
