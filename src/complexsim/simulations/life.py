"""
Game of Life and its B/S rule variants on a toroidal grid.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from complexsim.simulations.automata import AutomatonConfig, AutomatonSimulation, count_neighbors
from complexsim.simulations.colorgrade import hsv_to_rgb

logger = logging.getLogger(__name__)

# name -> (birth counts, survival counts)
RULES = {
    "conway": ({3}, {2, 3}),
    "highlife": ({3, 6}, {2, 3}),
    "seeds": ({2}, set()),
    "life_without_death": ({3}, set(range(9))),
    "day_and_night": ({3, 6, 7, 8}, {3, 4, 6, 7, 8}),
    "maze": ({3}, {1, 2, 3, 4, 5}),
}

# (dx, dy) cell offsets from the pattern anchor
PATTERNS = {
    "glider_gun": (
        (1, 5), (1, 6), (2, 5), (2, 6),
        (11, 5), (11, 6), (11, 7), (12, 4), (12, 8), (13, 3), (13, 9),
        (14, 3), (14, 9), (15, 6), (16, 4), (16, 8), (17, 5), (17, 6),
        (17, 7), (18, 6),
        (21, 3), (21, 4), (21, 5), (22, 3), (22, 4), (22, 5),
        (23, 2), (23, 6), (25, 1), (25, 2), (25, 6), (25, 7),
        (35, 3), (35, 4), (36, 3), (36, 4),
    ),
    "glider": ((1, 0), (2, 1), (0, 2), (1, 2), (2, 2)),
    "pulsar": (
        (2, 0), (3, 0), (4, 0), (8, 0), (9, 0), (10, 0),
        (0, 2), (5, 2), (7, 2), (12, 2),
        (0, 3), (5, 3), (7, 3), (12, 3),
        (0, 4), (5, 4), (7, 4), (12, 4),
        (2, 5), (3, 5), (4, 5), (8, 5), (9, 5), (10, 5),
        (2, 7), (3, 7), (4, 7), (8, 7), (9, 7), (10, 7),
        (0, 8), (5, 8), (7, 8), (12, 8),
        (0, 9), (5, 9), (7, 9), (12, 9),
        (0, 10), (5, 10), (7, 10), (12, 10),
        (2, 12), (3, 12), (4, 12), (8, 12), (9, 12), (10, 12),
    ),
    "pentadecathlon": (
        (0, 1), (1, 1), (2, 1), (3, 1), (4, 1), (5, 1), (6, 1), (7, 1),
        (0, 0), (2, 0), (5, 0), (7, 0),
        (0, 2), (2, 2), (5, 2), (7, 2),
    ),
    "lwss": ((1, 0), (4, 0), (0, 1), (0, 2), (4, 2), (0, 3), (1, 3), (2, 3), (3, 3)),
    "acorn": ((1, 0), (3, 1), (0, 2), (1, 2), (4, 2), (5, 2), (6, 2)),
}
START_LAYOUTS = tuple(PATTERNS) + ("random", "empty")

ALIVE_COLOR = (0, 255, 100)
AGE_CAP = 50


def rule_table(rule: str) -> np.ndarray:
    """
    ``(2, 9)`` bool lookup: ``table[alive, count]`` is the next state.

    Raises:
        ValueError: unknown rule.
    """
    try:
        birth, survive = RULES[rule]
    except KeyError:
        raise ValueError(f"Unknown rule '{rule}'. Choose from: {', '.join(RULES)}") from None
    table = np.zeros((2, 9), dtype=bool)
    table[0, sorted(birth)] = True
    table[1, sorted(survive)] = True
    return table


def next_generation(cells: np.ndarray, rule: str = "conway", wrap: bool = True) -> np.ndarray:
    """Apply a Life-family rule to a bool grid and return the next grid."""
    counts = count_neighbors(cells, "moore", wrap=wrap)
    return rule_table(rule)[cells.astype(np.intp), counts]


@dataclass
class LifeConfig(AutomatonConfig):
    rule: str = "conway"
    show_age: bool = False
    start_pattern: str = "glider_gun"

    def __post_init__(self):
        super().__post_init__()
        rule_table(self.rule)
        if self.start_pattern not in START_LAYOUTS:
            raise ValueError(
                f"Unknown start pattern '{self.start_pattern}'. Choose from: {', '.join(START_LAYOUTS)}"
            )


class GameOfLife(AutomatonSimulation):
    """Life-like automaton with per-cell age tracking."""

    display_name = "Conway's Game of Life"

    def __init__(self, config: Optional[LifeConfig] = None, seed: Optional[int] = None):
        super().__init__(config or LifeConfig(), seed)
        self.cfg: LifeConfig = self.cfg

    def _init_grid(self):
        self.grid = np.zeros(self.grid_shape, dtype=bool)
        self.age = np.zeros(self.grid_shape, dtype=np.uint32)
        layout = self.cfg.start_pattern
        if layout == "random":
            self.randomize()
        elif layout != "empty":
            self._place(layout)

    def _on_config_change(self, previous):
        if self.cfg.start_pattern != previous.start_pattern:
            self.reset()

    def _step(self):
        born = next_generation(self.grid, self.cfg.rule)
        self.age = np.where(born, np.where(self.grid, self.age + 1, 1), 0).astype(np.uint32)
        self.grid = born

    # -- editing --------------------------------------------------------------

    def _place(self, name: str):
        h, w = self.grid_shape
        if name == "glider_gun":
            x0, y0 = 10, 10
        else:
            x0, y0 = w // 2, h // 2
        for dx, dy in PATTERNS[name]:
            x, y = x0 + dx, y0 + dy
            if x < w and y < h:
                self.grid[y, x] = True
                self.age[y, x] = 1

    def add_pattern(self, name: str):
        """
        Clear the grid and stamp a named pattern.

        Raises:
            KeyError: unknown pattern.
        """
        if name not in PATTERNS:
            raise KeyError(f"Unknown pattern '{name}'. Choose from: {', '.join(PATTERNS)}")
        self._ensure_grid()
        self.clear()
        self._place(name)
        logger.debug("%s: placed %s", self.name, name)

    def randomize(self, density: float = 1.0 / 3.0):
        self.grid = self.rng.random(self.grid_shape) < density
        self.age = self.grid.astype(np.uint32)
        self.generation = 0

    def clear(self):
        self.grid[:] = False
        self.age[:] = 0
        self.generation = 0

    @property
    def live_cells(self) -> int:
        return int(self.grid.sum())

    # -- output ---------------------------------------------------------------

    def _cell_colors(self) -> np.ndarray:
        colors = np.zeros(self.grid.shape + (3,), dtype=np.uint8)
        if self.cfg.show_age:
            hue = np.minimum(self.age, AGE_CAP) / AGE_CAP * (240.0 / 360.0)
            colors[self.grid] = hsv_to_rgb(hue[self.grid], 0.8, 0.9)
        else:
            colors[self.grid] = ALIVE_COLOR
        return colors
