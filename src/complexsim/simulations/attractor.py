"""
Strange attractors integrated with classical RK4.

Each attractor follows one trajectory. Every ``step(dt)`` performs a fixed
number of RK4 substeps and pushes the scaled position onto a bounded trail,
which is what ``get_points`` returns (oldest first).

Families: Lorenz, Rössler, Aizawa, Halvorsen, Dadras, Thomas, Chen.
"""

import abc
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from complexsim.simulations.base import BaseConfig, PointCloudSimulation, TrailBuffer

logger = logging.getLogger(__name__)

Vec3 = Tuple[float, float, float]

# Frame delta the internal step sizes are tuned for
REFERENCE_DT = 1.0 / 60.0
# Longest frame delta honoured in one call (stalls are not replayed)
MAX_FRAME_DT = 0.1


def rk4_step(deriv: Callable[[float, float, float], Vec3], pos: Vec3, h: float) -> Vec3:
    """One classical Runge-Kutta step of size ``h``."""
    x, y, z = pos

    k1x, k1y, k1z = deriv(x, y, z)
    k2x, k2y, k2z = deriv(x + 0.5 * h * k1x, y + 0.5 * h * k1y, z + 0.5 * h * k1z)
    k3x, k3y, k3z = deriv(x + 0.5 * h * k2x, y + 0.5 * h * k2y, z + 0.5 * h * k2z)
    k4x, k4y, k4z = deriv(x + h * k3x, y + h * k3y, z + h * k3z)

    return (
        x + h * (k1x + 2.0 * k2x + 2.0 * k3x + k4x) / 6.0,
        y + h * (k1y + 2.0 * k2y + 2.0 * k3y + k4y) / 6.0,
        z + h * (k1z + 2.0 * k2z + 2.0 * k3z + k4z) / 6.0,
    )


def rk4_batch(deriv: Callable[[np.ndarray], np.ndarray], pts: np.ndarray, h: float) -> np.ndarray:
    """``rk4_step`` for an (N, 3) array of states; ``deriv`` maps (N, 3) to (N, 3)."""
    k1 = deriv(pts)
    k2 = deriv(pts + 0.5 * h * k1)
    k3 = deriv(pts + 0.5 * h * k2)
    k4 = deriv(pts + h * k3)
    return pts + h * (k1 + 2.0 * k2 + 2.0 * k3 + k4) / 6.0


def lorenz_rates(pts: np.ndarray, sigma: float, rho: float, beta: float) -> np.ndarray:
    x, y, z = pts[:, 0], pts[:, 1], pts[:, 2]
    return np.stack([sigma * (y - x), x * (rho - z) - y, x * y - beta * z], axis=1)


@dataclass
class AttractorConfig(BaseConfig):
    internal_dt: float = 0.005
    substeps: int = 5
    trail_length: int = 5000
    scale: float = 1.0
    start_x: float = 0.1
    start_y: float = 0.0
    start_z: float = 0.0
    # Frames integrated at construction and reset so the trail starts on the attractor
    warmup_frames: int = 0


class Attractor(PointCloudSimulation):
    """
    Base class for single-trajectory attractors.

    Subclasses implement ``derivatives`` and set ``PRESETS``.
    """

    display_name = "Attractor"
    PRESETS: Dict[str, Dict[str, float]] = {}

    def __init__(self, config: Optional[AttractorConfig] = None, seed: Optional[int] = None):
        super().__init__(config or AttractorConfig(), seed)
        self.cfg: AttractorConfig = self.cfg
        self.position: Vec3 = self._seed_position()
        self.trail = TrailBuffer(self.cfg.trail_length)
        self._warm_up()

    # -- dynamics -----------------------------------------------------------

    @abc.abstractmethod
    def derivatives(self, x: float, y: float, z: float) -> Vec3:
        """Time derivative of the state at (x, y, z)."""
        pass

    def _seed_position(self) -> Vec3:
        return (float(self.cfg.start_x), float(self.cfg.start_y), float(self.cfg.start_z))

    def _step_size(self, dt: float) -> float:
        frames = min(max(float(dt), 0.0), MAX_FRAME_DT) / REFERENCE_DT
        return self.cfg.internal_dt * self.cfg.speed * frames

    def _integrate(self, h: float):
        scale = self.cfg.scale
        for _ in range(max(int(self.cfg.substeps), 0)):
            nxt = rk4_step(self.derivatives, self.position, h)
            if not all(math.isfinite(v) and abs(v) < 1e12 for v in nxt):
                logger.debug("%s diverged at %s; restarting from seed", self.name, nxt)
                self.position = self._seed_position()
                self.trail.clear()
                return
            self.position = nxt
            self.trail.push((nxt[0] * scale, nxt[1] * scale, nxt[2] * scale))

    def _warm_up(self):
        h = self._step_size(REFERENCE_DT)
        for _ in range(max(int(self.cfg.warmup_frames), 0)):
            self._integrate(h)

    # -- contract -----------------------------------------------------------

    def step(self, dt: float):
        if dt <= 0:
            return
        self._integrate(self._step_size(dt))

    def get_points(self) -> np.ndarray:
        return self.trail.to_array()

    def reset(self):
        self._reseed()
        self.position = self._seed_position()
        self.trail = TrailBuffer(self.cfg.trail_length)
        self._warm_up()
        logger.debug("%s reset", self.name)

    def _on_config_change(self, previous: BaseConfig):
        self.trail.resize(self.cfg.trail_length)

    def apply_preset(self, name: str):
        """
        Load a named parameter set and restart the trajectory.

        Raises:
            KeyError: unknown preset.
        """
        if name not in self.PRESETS:
            raise KeyError(f"Unknown preset '{name}' for {self.name}. Choose from: {', '.join(self.PRESETS)}")
        self.set_parameters(**self.PRESETS[name])
        self.reset()


# ---------------------------------------------------------------------------
# Lorenz
# ---------------------------------------------------------------------------

@dataclass
class LorenzConfig(AttractorConfig):
    sigma: float = 10.0
    rho: float = 28.0
    beta: float = 8.0 / 3.0


class LorenzAttractor(Attractor):
    display_name = "Lorenz Attractor"
    PRESETS = {
        "classic": {"sigma": 10.0, "rho": 28.0, "beta": 8.0 / 3.0},
        "periodic": {"sigma": 10.0, "rho": 99.96, "beta": 8.0 / 3.0},
    }

    def __init__(self, config: Optional[LorenzConfig] = None, seed: Optional[int] = None):
        super().__init__(config or LorenzConfig(), seed)
        self.cfg: LorenzConfig = self.cfg

    def derivatives(self, x: float, y: float, z: float) -> Vec3:
        c = self.cfg
        return c.sigma * (y - x), x * (c.rho - z) - y, x * y - c.beta * z


# ---------------------------------------------------------------------------
# Rössler
# ---------------------------------------------------------------------------

@dataclass
class RosslerConfig(AttractorConfig):
    a: float = 0.2
    b: float = 0.2
    c: float = 5.7
    internal_dt: float = 0.02
    warmup_frames: int = 500


class RosslerAttractor(Attractor):
    display_name = "Rössler Attractor"
    PRESETS = {
        "classic": {"a": 0.2, "b": 0.2, "c": 5.7},
        "funnel": {"a": 0.1, "b": 0.1, "c": 14.0},
        "spiral": {"a": 0.2, "b": 0.2, "c": 9.0},
    }

    def __init__(self, config: Optional[RosslerConfig] = None, seed: Optional[int] = None):
        super().__init__(config or RosslerConfig(), seed)
        self.cfg: RosslerConfig = self.cfg

    def derivatives(self, x: float, y: float, z: float) -> Vec3:
        c = self.cfg
        return -y - z, x + c.a * y, c.b + z * (x - c.c)


# ---------------------------------------------------------------------------
# Aizawa
# ---------------------------------------------------------------------------

@dataclass
class AizawaConfig(AttractorConfig):
    a: float = 0.95
    b: float = 0.7
    c: float = 0.6
    d: float = 3.5
    e: float = 0.25
    f: float = 0.1
    internal_dt: float = 0.01
    substeps: int = 10
    scale: float = 50.0


class AizawaAttractor(Attractor):
    display_name = "Aizawa Attractor"

    def __init__(self, config: Optional[AizawaConfig] = None, seed: Optional[int] = None):
        super().__init__(config or AizawaConfig(), seed)
        self.cfg: AizawaConfig = self.cfg

    def derivatives(self, x: float, y: float, z: float) -> Vec3:
        c = self.cfg
        dx = (z - c.b) * x - c.d * y
        dy = c.d * x + (z - c.b) * y
        dz = c.c + c.a * z - z * z * z / 3.0 - (x * x + y * y) * (1.0 + c.e * z) + c.f * z * x * x * x
        return dx, dy, dz


# ---------------------------------------------------------------------------
# Halvorsen
# ---------------------------------------------------------------------------

@dataclass
class HalvorsenConfig(AttractorConfig):
    a: float = 1.89
    substeps: int = 10
    scale: float = 20.0
    start_x: float = -1.0


class HalvorsenAttractor(Attractor):
    display_name = "Halvorsen Attractor"

    def __init__(self, config: Optional[HalvorsenConfig] = None, seed: Optional[int] = None):
        super().__init__(config or HalvorsenConfig(), seed)
        self.cfg: HalvorsenConfig = self.cfg

    def derivatives(self, x: float, y: float, z: float) -> Vec3:
        a = self.cfg.a
        return (
            -a * x - 4.0 * y - 4.0 * z - y * y,
            -a * y - 4.0 * z - 4.0 * x - z * z,
            -a * z - 4.0 * x - 4.0 * y - x * x,
        )


# ---------------------------------------------------------------------------
# Dadras
# ---------------------------------------------------------------------------

@dataclass
class DadrasConfig(AttractorConfig):
    a: float = 3.0
    b: float = 2.7
    c: float = 1.7
    d: float = 2.0
    e: float = 9.0
    substeps: int = 10
    scale: float = 15.0
    start_y: float = 0.1
    start_z: float = 0.1


class DadrasAttractor(Attractor):
    display_name = "Dadras Attractor"

    def __init__(self, config: Optional[DadrasConfig] = None, seed: Optional[int] = None):
        super().__init__(config or DadrasConfig(), seed)
        self.cfg: DadrasConfig = self.cfg

    def derivatives(self, x: float, y: float, z: float) -> Vec3:
        c = self.cfg
        return (
            y - c.a * x + c.b * y * z,
            c.c * y - x * z + z,
            c.d * x * y - c.e * z,
        )


# ---------------------------------------------------------------------------
# Thomas
# ---------------------------------------------------------------------------

@dataclass
class ThomasConfig(AttractorConfig):
    b: float = 0.208186
    internal_dt: float = 0.1
    substeps: int = 10
    scale: float = 80.0


class ThomasAttractor(Attractor):
    """Thomas' cyclically symmetric attractor."""

    display_name = "Thomas Attractor"

    def __init__(self, config: Optional[ThomasConfig] = None, seed: Optional[int] = None):
        super().__init__(config or ThomasConfig(), seed)
        self.cfg: ThomasConfig = self.cfg

    def derivatives(self, x: float, y: float, z: float) -> Vec3:
        b = self.cfg.b
        return -b * x + math.sin(y), -b * y + math.sin(z), -b * z + math.sin(x)


# ---------------------------------------------------------------------------
# Chen
# ---------------------------------------------------------------------------

@dataclass
class ChenConfig(AttractorConfig):
    a: float = 5.0
    b: float = -10.0
    c: float = -0.38
    internal_dt: float = 0.003
    substeps: int = 10
    scale: float = 8.0
    # off the invariant x axis, where the flow is a pure exponential
    start_y: float = 0.1
    start_z: float = 0.1


class ChenAttractor(Attractor):
    display_name = "Chen Attractor"

    def __init__(self, config: Optional[ChenConfig] = None, seed: Optional[int] = None):
        super().__init__(config or ChenConfig(), seed)
        self.cfg: ChenConfig = self.cfg

    def derivatives(self, x: float, y: float, z: float) -> Vec3:
        c = self.cfg
        return c.a * x - y * z, c.b * y + x * z, c.c * z + x * y / 3.0
