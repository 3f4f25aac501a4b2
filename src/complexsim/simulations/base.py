"""
Base classes shared by every complexsim simulation.

Two contracts exist: ``RasterSimulation`` turns a canvas size into a pixel
buffer, ``PointCloudSimulation`` advances in time and reports 3D points.
Both keep their numeric parameters in a dataclass config (``self.cfg``) and
draw randomness only from ``self.rng``.
"""

import abc
import dataclasses
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Sequence

import numpy as np

from complexsim.simulations.colorgrade import COLOR_SCHEMES

logger = logging.getLogger(__name__)

# Guard for divisions by a distance or a norm
EPS = 1e-9


@dataclass
class BaseConfig:
    """Universal configuration for all simulations."""
    speed: float = 1.0


@dataclass
class RasterConfig(BaseConfig):
    """Colour controls shared by raster simulations."""
    color_scheme: str = "classic"
    color_offset: float = 0.0
    invert_colors: bool = False

    def __post_init__(self):
        if self.color_scheme not in COLOR_SCHEMES:
            raise ValueError(
                f"Unknown color scheme '{self.color_scheme}'. "
                f"Choose from: {', '.join(COLOR_SCHEMES)}"
            )


# ---------------------------------------------------------------------------
# Empty results
# ---------------------------------------------------------------------------

def empty_buffer(width: int, height: int) -> np.ndarray:
    """Black (height, width, 3) uint8 buffer. Negative sizes clamp to 0."""
    return np.zeros((max(int(height), 0), max(int(width), 0), 3), dtype=np.uint8)


def empty_points() -> np.ndarray:
    return np.zeros((0, 3), dtype=np.float32)


def as_points(points: Any) -> np.ndarray:
    """Copy anything point-like into a fresh (N, 3) float32 array."""
    arr = np.array(points, dtype=np.float32)
    if arr.size == 0:
        return empty_points()
    return arr.reshape(-1, 3)


# ---------------------------------------------------------------------------
# Trail buffer
# ---------------------------------------------------------------------------

class TrailBuffer:
    """
    Bounded FIFO of 3D points, oldest first.

    Pushing onto a full buffer drops the oldest point, so ``len(trail)``
    never exceeds ``maxlen``.
    """

    def __init__(self, maxlen: int):
        self._points: deque = deque(maxlen=max(int(maxlen), 0))

    @property
    def maxlen(self) -> int:
        return self._points.maxlen

    def push(self, point: Sequence[float]):
        if self._points.maxlen == 0:
            return
        self._points.append((float(point[0]), float(point[1]), float(point[2])))

    def resize(self, maxlen: int):
        """Change capacity, keeping the newest points."""
        maxlen = max(int(maxlen), 0)
        if maxlen != self._points.maxlen:
            self._points = deque(self._points, maxlen=maxlen)

    def clear(self):
        self._points.clear()

    def to_array(self) -> np.ndarray:
        if not self._points:
            return empty_points()
        return np.array(self._points, dtype=np.float32)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[tuple]:
        return iter(self._points)


# ---------------------------------------------------------------------------
# Simulation contracts
# ---------------------------------------------------------------------------

class Simulation(abc.ABC):
    """
    State and parameter handling common to both contracts.

    Subclasses set ``display_name`` and pass their own config default to
    ``super().__init__``.
    """

    display_name: str = "Simulation"

    def __init__(self, config: Optional[BaseConfig] = None, seed: Optional[int] = None):
        self.cfg = dataclasses.replace(config) if config is not None else BaseConfig()
        self.seed = seed
        self.rng = np.random.default_rng(seed)

    @property
    def name(self) -> str:
        return self.display_name

    def _reseed(self):
        self.rng = np.random.default_rng(self.seed)

    def get_parameters(self) -> Dict[str, Any]:
        return dataclasses.asdict(self.cfg)

    def set_parameters(self, config: Optional[BaseConfig] = None, **overrides: Any):
        """
        Replace the configuration and let the simulation react to it.

        Args:
            config: Complete replacement config of the same type as ``cfg``.
            **overrides: Individual fields applied on top of ``config`` (or of
                the current config when ``config`` is None).

        Raises:
            TypeError: ``config`` is not an instance of the current config type.
            ValueError: an override names an unknown parameter, or the new
                values fail the config's own validation.
        """
        if config is not None and not isinstance(config, type(self.cfg)):
            raise TypeError(
                f"{self.name} expects {type(self.cfg).__name__}, got {type(config).__name__}"
            )
        base = config if config is not None else self.cfg
        known = {f.name for f in dataclasses.fields(base)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown parameter(s) for {self.name}: {', '.join(unknown)}")

        previous = self.cfg
        self.cfg = dataclasses.replace(base, **overrides)
        logger.debug("%s parameters updated: %s", self.name, sorted(overrides) or "full config")
        self._on_config_change(previous)

    def _on_config_change(self, previous: BaseConfig):
        """Hook for reallocating state after ``set_parameters``."""

    @abc.abstractmethod
    def reset(self):
        """Return to the state of a fresh instance built with the same seed."""


class RasterSimulation(Simulation):
    """A simulation that renders into a (height, width, 3) uint8 buffer."""

    @abc.abstractmethod
    def compute(self, width: int, height: int) -> np.ndarray:
        """Render a fresh pixel buffer for the given canvas size."""

    def advance(self, dt: float):
        """Advance host-driven time. Static images ignore it."""

    def reset(self):
        self._reseed()


class PointCloudSimulation(Simulation):
    """A simulation that evolves over time and exposes 3D points."""

    @abc.abstractmethod
    def step(self, dt: float):
        """Advance the simulation by ``dt`` seconds of wall-clock time."""

    @abc.abstractmethod
    def get_points(self) -> np.ndarray:
        """Return a fresh (N, 3) float32 copy of the current points."""
