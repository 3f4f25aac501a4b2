"""
Langton's Ant.

A single ant walks a boolean grid: it flips the cell under it, turns right
if that cell was set and left if it was clear, then moves one cell forward.
At the edges it either wraps or bounces back with its heading reversed.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from complexsim.simulations.automata import AutomatonConfig, AutomatonSimulation
from complexsim.simulations.colorgrade import WHITE, apply_palette

logger = logging.getLogger(__name__)

# Headings in clockwise order; y grows downwards
UP, RIGHT, DOWN, LEFT = range(4)
HEADINGS = ((0, -1), (1, 0), (0, 1), (-1, 0))
ANT_COLOR = (255, 0, 0)


@dataclass
class LangtonConfig(AutomatonConfig):
    grid_width: int = 200
    grid_height: int = 150
    speed: float = 100.0
    wrap_edges: bool = True
    show_ant: bool = True
    trail_color: bool = False
    color_scheme: str = "fire"


class LangtonsAnt(AutomatonSimulation):
    display_name = "Langton's Ant"

    def __init__(self, config: Optional[LangtonConfig] = None, seed: Optional[int] = None):
        super().__init__(config or LangtonConfig(), seed)
        self.cfg: LangtonConfig = self.cfg

    def _init_grid(self):
        h, w = self.grid_shape
        self.grid = np.zeros((h, w), dtype=bool)
        self.ant_x = w // 2
        self.ant_y = h // 2
        self.heading = UP

    @property
    def ant(self) -> Tuple[int, int]:
        return self.ant_x, self.ant_y

    def _step(self):
        h, w = self.grid.shape
        was_set = bool(self.grid[self.ant_y, self.ant_x])
        self.grid[self.ant_y, self.ant_x] = not was_set
        self.heading = (self.heading + (1 if was_set else 3)) % 4

        dx, dy = HEADINGS[self.heading]
        x, y = self.ant_x + dx, self.ant_y + dy
        if self.cfg.wrap_edges:
            x %= w
            y %= h
        else:
            if not 0 <= x < w:
                x = min(max(x, 0), w - 1)
                if self.heading in (LEFT, RIGHT):
                    self.heading = (self.heading + 2) % 4
            if not 0 <= y < h:
                y = min(max(y, 0), h - 1)
                if self.heading in (UP, DOWN):
                    self.heading = (self.heading + 2) % 4
        self.ant_x, self.ant_y = x, y

    def _cell_colors(self) -> np.ndarray:
        h, w = self.grid.shape
        colors = np.zeros((h, w, 3), dtype=np.uint8)
        if self.cfg.trail_color:
            t = (np.arange(w)[None, :] / w + np.arange(h)[:, None] / h) / 2.0
            gradient = apply_palette(t, self.cfg.color_scheme, self.cfg.invert_colors)
            colors[self.grid] = gradient[self.grid]
        else:
            colors[self.grid] = WHITE
        if self.cfg.show_ant:
            colors[self.ant_y, self.ant_x] = ANT_COLOR
        return colors
