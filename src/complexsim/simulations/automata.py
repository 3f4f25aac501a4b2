"""
Shared machinery for grid automata.

Grids are ``(grid_height, grid_width)`` numpy arrays. Neighbour counts come
from convolving a 0/1 mask with a stencil; toroidal grids use
``mode="wrap"``. Every step builds a complete next grid from the current
one before it replaces it.
"""

import abc
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy import ndimage

from complexsim.simulations.base import RasterConfig, RasterSimulation, empty_buffer

logger = logging.getLogger(__name__)

NEIGHBORHOODS = {
    "von_neumann": ((0, -1), (1, 0), (0, 1), (-1, 0)),
    "moore": (
        (-1, -1), (0, -1), (1, -1),
        (-1, 0), (1, 0),
        (-1, 1), (0, 1), (1, 1),
    ),
    "extended": (
        (-1, -1), (0, -1), (1, -1),
        (-1, 0), (1, 0),
        (-1, 1), (0, 1), (1, 1),
        (0, -2), (2, 0), (0, 2), (-2, 0),
    ),
}

# Upper bound on discrete steps one advance() call may run
MAX_STEPS_PER_ADVANCE = 10000


def neighbourhood_offsets(name: str) -> Tuple[Tuple[int, int], ...]:
    """
    ``(dx, dy)`` offsets of a named neighbourhood.

    Raises:
        ValueError: unknown neighbourhood.
    """
    try:
        return NEIGHBORHOODS[name]
    except KeyError:
        raise ValueError(
            f"Unknown neighborhood '{name}'. Choose from: {', '.join(NEIGHBORHOODS)}"
        ) from None


def stencil(name: str) -> np.ndarray:
    """Integer convolution kernel with a 1 at every neighbour offset."""
    offsets = neighbourhood_offsets(name)
    r = max(max(abs(dx), abs(dy)) for dx, dy in offsets)
    kernel = np.zeros((2 * r + 1, 2 * r + 1), dtype=np.int32)
    for dx, dy in offsets:
        kernel[r + dy, r + dx] = 1
    return kernel


def count_neighbors(mask: np.ndarray, neighborhood: str = "moore", wrap: bool = True) -> np.ndarray:
    """
    Number of set neighbours around every cell.

    With ``wrap`` the grid is a torus, so a cell in the last column sees the
    first column. Otherwise cells beyond the border count as empty.
    """
    kernel = stencil(neighborhood)
    mode = "wrap" if wrap else "constant"
    return ndimage.convolve(np.asarray(mask, dtype=np.int32), kernel, mode=mode, cval=0)


def grid_to_canvas(cells: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Nearest-neighbour stretch of a per-cell array onto a canvas.

    Pixel ``(px, py)`` shows cell ``(px * grid_w // width, py * grid_h // height)``.
    Any trailing axes (e.g. RGB) are carried through.
    """
    gh, gw = cells.shape[:2]
    gx = np.arange(width) * gw // max(width, 1)
    gy = np.arange(height) * gh // max(height, 1)
    return cells[gy[:, None], gx[None, :]]


@dataclass
class AutomatonConfig(RasterConfig):
    grid_width: int = 120
    grid_height: int = 120
    # Discrete steps per second of host time
    speed: float = 10.0

    def __post_init__(self):
        super().__post_init__()
        if int(self.grid_width) < 1 or int(self.grid_height) < 1:
            raise ValueError(
                f"Grid dimensions must be positive, got {self.grid_width}x{self.grid_height}"
            )


class AutomatonSimulation(RasterSimulation):
    """
    Base class for raster automata.

    Subclasses implement ``_init_grid`` (allocate and seed the state for the
    current grid size), ``_step`` (one generation) and ``_cell_colors``
    (``(grid_height, grid_width, 3)`` uint8). Grid dimension changes are
    picked up lazily on the next ``step``, ``compute`` or ``reset``.
    """

    display_name = "Automaton"

    def __init__(self, config: Optional[AutomatonConfig] = None, seed: Optional[int] = None):
        super().__init__(config or AutomatonConfig(), seed)
        self.cfg: AutomatonConfig = self.cfg
        self.grid = np.zeros((0, 0))
        self.generation = 0
        self._accumulator = 0.0
        self._init_grid()

    @property
    def grid_shape(self) -> Tuple[int, int]:
        return int(self.cfg.grid_height), int(self.cfg.grid_width)

    @abc.abstractmethod
    def _init_grid(self):
        """Allocate and seed the grid for the current dimensions."""
        pass

    @abc.abstractmethod
    def _step(self):
        """Compute one generation."""
        pass

    @abc.abstractmethod
    def _cell_colors(self) -> np.ndarray:
        """(grid_height, grid_width, 3) uint8 colors of the current grid."""
        pass

    def _ensure_grid(self):
        if self.grid.shape[:2] != self.grid_shape:
            logger.debug(
                "%s: reallocating grid %s -> %s", self.name, self.grid.shape[:2], self.grid_shape
            )
            self.generation = 0
            self._init_grid()

    # -- time -----------------------------------------------------------------

    def step(self):
        """Run exactly one generation."""
        self._ensure_grid()
        self._step()
        self.generation += 1

    def advance(self, dt: float):
        """Accumulate ``dt * speed`` and run one step per whole unit."""
        if dt <= 0:
            return
        self._accumulator += dt * self.cfg.speed
        steps = int(self._accumulator)
        if steps <= 0:
            return
        self._accumulator -= steps
        if steps > MAX_STEPS_PER_ADVANCE:
            logger.debug("%s: capping %d pending steps", self.name, steps)
            steps = MAX_STEPS_PER_ADVANCE
        for _ in range(steps):
            self.step()

    # -- output ---------------------------------------------------------------

    def compute(self, width: int, height: int) -> np.ndarray:
        if width <= 0 or height <= 0:
            return empty_buffer(width, height)
        self._ensure_grid()
        return grid_to_canvas(self._cell_colors(), int(width), int(height))

    def reset(self):
        self._reseed()
        self._accumulator = 0.0
        self.generation = 0
        self._init_grid()
