"""
Wolfram elementary cellular automata drawn row by row.

Row 0 is the seed; each step fills the next row from the one above using
the rule number's bit ``(left << 2) | (center << 1) | right``. Rows wrap at
the sides. Once the last row is filled the automaton stops.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from complexsim.simulations.automata import AutomatonConfig, AutomatonSimulation
from complexsim.simulations.colorgrade import WHITE

logger = logging.getLogger(__name__)

RULE_COLORS = {
    30: (255, 150, 0),
    90: (255, 100, 150),
    110: (100, 150, 255),
}


def apply_rule(row: np.ndarray, rule: int) -> np.ndarray:
    """Next generation of a single wrapped row."""
    row = np.asarray(row, dtype=np.uint8)
    left = np.roll(row, 1)
    right = np.roll(row, -1)
    index = (left << 2) | (row << 1) | right
    return ((int(rule) >> index) & 1).astype(bool)


@dataclass
class ElementaryConfig(AutomatonConfig):
    grid_width: int = 200
    # Number of rows in the history
    grid_height: int = 150
    rule: int = 30
    random_start: bool = False

    def __post_init__(self):
        super().__post_init__()
        if not 0 <= int(self.rule) <= 255:
            raise ValueError(f"Rule must be in [0, 255], got {self.rule}")


class ElementaryAutomaton(AutomatonSimulation):
    display_name = "Elementary Cellular Automaton"

    def __init__(self, config: Optional[ElementaryConfig] = None, seed: Optional[int] = None):
        super().__init__(config or ElementaryConfig(), seed)
        self.cfg: ElementaryConfig = self.cfg

    def _init_grid(self):
        rows, width = self.grid_shape
        self.grid = np.zeros((rows, width), dtype=bool)
        if self.cfg.random_start:
            self.grid[0] = self.rng.random(width) < 0.5
        else:
            self.grid[0, width // 2] = True
        self.current_row = 0

    def _on_config_change(self, previous):
        if self.cfg.rule != previous.rule or self.cfg.random_start != previous.random_start:
            self.reset()

    @property
    def finished(self) -> bool:
        return self.current_row + 1 >= self.grid.shape[0]

    def step(self):
        self._ensure_grid()
        if not self.finished:
            super().step()

    def _step(self):
        self.grid[self.current_row + 1] = apply_rule(self.grid[self.current_row], self.cfg.rule)
        self.current_row += 1

    def _cell_colors(self) -> np.ndarray:
        colors = np.zeros(self.grid.shape + (3,), dtype=np.uint8)
        colors[self.grid] = RULE_COLORS.get(int(self.cfg.rule), WHITE)
        return colors
