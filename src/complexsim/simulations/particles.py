"""
Shared machinery for particle-field simulations.

Particles live in ``(N, 3)`` float arrays. Helpers here clamp vector
magnitudes, apply boundary policies and sample spawn positions; every
division by a length goes through ``EPS``.
"""

import abc
import enum
import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from complexsim.simulations.base import (
    EPS,
    BaseConfig,
    PointCloudSimulation,
    TrailBuffer,
    empty_points,
)

logger = logging.getLogger(__name__)

# Longest frame delta honoured in one call
MAX_FRAME_DT = 0.1


class BoundaryPolicy(str, enum.Enum):
    """What happens to a particle that leaves the domain."""
    WRAP = "wrap"
    REFLECT = "reflect"
    RESPAWN = "respawn"
    CONTAIN = "contain"
    NONE = "none"


def coerce_policy(value, allowed) -> BoundaryPolicy:
    """
    Validate a policy given as enum member or string.

    Raises:
        ValueError: unknown policy, or one this simulation does not support.
    """
    policy = BoundaryPolicy(value)
    if policy not in allowed:
        raise ValueError(
            f"Boundary policy '{policy.value}' not supported here. "
            f"Choose from: {', '.join(p.value for p in allowed)}"
        )
    return policy


# ---------------------------------------------------------------------------
# Vector helpers
# ---------------------------------------------------------------------------

def norms(vectors: np.ndarray) -> np.ndarray:
    return np.sqrt(np.einsum("ij,ij->i", vectors, vectors))


def normalize(vectors: np.ndarray) -> np.ndarray:
    """Unit vectors; zero rows stay zero."""
    n = norms(vectors)[:, None]
    return np.where(n > EPS, vectors / np.maximum(n, EPS), 0.0)


def clamp_norm(vectors: np.ndarray, max_norm: float) -> np.ndarray:
    """Scale down rows longer than ``max_norm``."""
    n = norms(vectors)[:, None]
    factor = np.where(n > max_norm, max_norm / np.maximum(n, EPS), 1.0)
    return vectors * factor


def sanitize(positions: np.ndarray, velocities: np.ndarray) -> np.ndarray:
    """
    Zero out non-finite rows in place.

    Returns:
        Boolean mask of the rows that were reset.
    """
    bad = ~(np.isfinite(positions).all(axis=1) & np.isfinite(velocities).all(axis=1))
    if bad.any():
        logger.debug("Resetting %d non-finite particle(s)", int(bad.sum()))
        positions[bad] = 0.0
        velocities[bad] = 0.0
    return bad


def apply_box_boundary(
    positions: np.ndarray,
    velocities: np.ndarray,
    half_extent: float,
    policy: BoundaryPolicy,
    damping: float = 1.0,
):
    """Keep particles inside the cube ``[-half_extent, half_extent]^3`` (in place)."""
    if policy == BoundaryPolicy.WRAP:
        span = 2.0 * half_extent
        if span > 0:
            positions[:] = (positions + half_extent) % span - half_extent
        else:
            positions[:] = 0.0
    elif policy == BoundaryPolicy.REFLECT:
        low = positions < -half_extent
        high = positions > half_extent
        hit = low | high
        positions[low] = -half_extent
        positions[high] = half_extent
        velocities[hit] *= -damping


# ---------------------------------------------------------------------------
# Spawning
# ---------------------------------------------------------------------------

def sample_shell(
    rng: np.random.Generator,
    n: int,
    r_min: float,
    r_max: float,
    max_elevation: float = np.pi / 2,
) -> np.ndarray:
    """
    Points with radius in ``[r_min, r_max]`` and elevation in
    ``[-max_elevation, max_elevation]`` above the xz-plane.
    """
    theta = rng.uniform(0.0, 2.0 * np.pi, n)
    phi = rng.uniform(-max_elevation, max_elevation, n)
    r = rng.uniform(r_min, max(r_max, r_min), n)
    return np.column_stack((
        r * np.cos(phi) * np.cos(theta),
        r * np.sin(phi),
        r * np.cos(phi) * np.sin(theta),
    ))


def random_directions(rng: np.random.Generator, n: int) -> np.ndarray:
    theta = rng.uniform(0.0, 2.0 * np.pi, n)
    cos_phi = rng.uniform(-1.0, 1.0, n)
    sin_phi = np.sqrt(1.0 - cos_phi ** 2)
    return np.column_stack((sin_phi * np.cos(theta), cos_phi, sin_phi * np.sin(theta)))


# ---------------------------------------------------------------------------
# Base simulation
# ---------------------------------------------------------------------------

@dataclass
class ParticleConfig(BaseConfig):
    particle_count: int = 100


class ParticleSimulation(PointCloudSimulation):
    """
    Base class holding ``positions`` and ``velocities``.

    Subclasses implement ``_spawn`` (fill the arrays from ``self.rng``) and
    ``_advance`` (one integration step of size ``h``).
    """

    display_name = "Particles"

    def __init__(self, config: Optional[ParticleConfig] = None, seed: Optional[int] = None):
        super().__init__(config or ParticleConfig(), seed)
        self.cfg: ParticleConfig = self.cfg
        self.positions = np.zeros((0, 3))
        self.velocities = np.zeros((0, 3))
        self._spawn()

    @abc.abstractmethod
    def _spawn(self):
        """Create the initial particle arrays."""
        pass

    @abc.abstractmethod
    def _advance(self, h: float):
        """Integrate one substep of size ``h``."""
        pass

    def _time_scale(self) -> float:
        return 1.0

    def step(self, dt: float):
        if dt <= 0 or len(self.positions) == 0:
            return
        h = min(float(dt), MAX_FRAME_DT) * self.cfg.speed * self._time_scale()
        self._advance(h)
        sanitize(self.positions, self.velocities)

    def get_points(self) -> np.ndarray:
        if len(self.positions) == 0:
            return empty_points()
        return self.positions.astype(np.float32)

    def reset(self):
        self._reseed()
        self._spawn()
        logger.debug("%s reset with %d particles", self.name, len(self.positions))


class TrailedParticleSimulation(ParticleSimulation):
    """Particle simulation with one bounded trail per particle."""

    def __init__(self, config: Optional[ParticleConfig] = None, seed: Optional[int] = None):
        self.trails: List[TrailBuffer] = []
        super().__init__(config, seed)

    def _trail_length(self) -> int:
        return int(getattr(self.cfg, "trail_length", 0))

    def _show_trails(self) -> bool:
        return bool(getattr(self.cfg, "show_trails", True))

    def _new_trails(self, n: int) -> List[TrailBuffer]:
        return [TrailBuffer(self._trail_length()) for _ in range(n)]

    def _record_trails(self, indices=None):
        if not self._show_trails():
            return
        rows = range(len(self.trails)) if indices is None else indices
        for i in rows:
            self.trails[i].push(self.positions[i])

    def _on_config_change(self, previous: BaseConfig):
        for trail in self.trails:
            trail.resize(self._trail_length())

    def _point_blocks(self, skip: int = 0) -> List[np.ndarray]:
        """Per particle: its position followed by its trail."""
        blocks = []
        for i in range(skip, len(self.positions)):
            blocks.append(self.positions[i:i + 1].astype(np.float32))
            if self._show_trails() and len(self.trails[i]):
                blocks.append(self.trails[i].to_array())
        return blocks

    def get_points(self) -> np.ndarray:
        blocks = self._point_blocks()
        if not blocks:
            return empty_points()
        return np.concatenate(blocks, axis=0)
