"""
Particles tracing the field of a few magnetic poles.

Poles act as softened monopoles whose fields superpose; the resultant is
clamped to ``field_strength``. Particles move first-order along the field
(velocity is set from the field each step, not accumulated) and respawn
when they wander beyond twice the spawn radius.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from complexsim.simulations.base import EPS
from complexsim.simulations.particles import (
    BoundaryPolicy,
    ParticleConfig,
    TrailedParticleSimulation,
    clamp_norm,
    coerce_policy,
    sample_shell,
)

logger = logging.getLogger(__name__)

# Added to squared distances so the field stays finite at a pole
FIELD_SOFTENING = 0.1
MIN_SPAWN_RADIUS = 5.0


@dataclass
class MagneticConfig(ParticleConfig):
    particle_count: int = 200
    magnet_count: int = 2
    magnet_strength: float = 100.0
    field_strength: float = 50.0
    particle_speed: float = 2.0
    damping: float = 0.98
    spawn_radius: float = 30.0
    trail_length: int = 100
    show_trails: bool = True
    boundary: BoundaryPolicy = BoundaryPolicy.RESPAWN

    def __post_init__(self):
        self.boundary = coerce_policy(self.boundary, (BoundaryPolicy.RESPAWN,))


def magnet_layout(count: int, strength: float):
    """
    Pole positions and signed strengths for 1 to 4 magnets.

    1: monopole at the origin. 2: dipole on the x axis. 3: triangle of
    radius 15 with alternating polarity. 4 or more: quadrupole square.
    """
    if count <= 0:
        return np.zeros((0, 3)), np.zeros(0)
    if count == 1:
        positions = [[0.0, 0.0, 0.0]]
        polarity = [1.0]
    elif count == 2:
        positions = [[-10.0, 0.0, 0.0], [10.0, 0.0, 0.0]]
        polarity = [1.0, -1.0]
    elif count == 3:
        angles = np.array([0.0, 2.0 * np.pi / 3.0, 4.0 * np.pi / 3.0])
        positions = np.column_stack((15.0 * np.cos(angles), np.zeros(3), 15.0 * np.sin(angles)))
        polarity = [1.0, -1.0, 1.0]
    else:
        positions = [[-10.0, 0.0, -10.0], [10.0, 0.0, -10.0], [-10.0, 0.0, 10.0], [10.0, 0.0, 10.0]]
        polarity = [1.0, -1.0, -1.0, 1.0]
    return np.asarray(positions, dtype=float), strength * np.asarray(polarity, dtype=float)


def magnetic_field(
    points: np.ndarray,
    poles: np.ndarray,
    charges: np.ndarray,
    max_strength: float,
) -> np.ndarray:
    """Superposed softened monopole field at ``points``, clamped per point."""
    field = np.zeros((len(points), 3))
    if len(poles) == 0 or len(points) == 0:
        return field
    d = points[:, None, :] - poles[None, :, :]
    dist_sq = np.einsum("ijk,ijk->ij", d, d) + FIELD_SOFTENING
    dist = np.sqrt(dist_sq)
    magnitude = charges[None, :] / dist_sq
    field = np.einsum("ij,ijk->ik", magnitude / np.maximum(dist, EPS), d)
    return clamp_norm(field, max_strength)


class MagneticField(TrailedParticleSimulation):
    display_name = "Magnetic Field Lines"

    def __init__(self, config: Optional[MagneticConfig] = None, seed: Optional[int] = None):
        self.magnets = np.zeros((0, 3))
        self.charges = np.zeros(0)
        super().__init__(config or MagneticConfig(), seed)
        self.cfg: MagneticConfig = self.cfg

    def _time_scale(self) -> float:
        return 0.05

    def _spawn(self):
        cfg = self.cfg
        self.magnets, self.charges = magnet_layout(int(cfg.magnet_count), cfg.magnet_strength)
        n = max(int(cfg.particle_count), 0)
        self.positions = sample_shell(self.rng, n, MIN_SPAWN_RADIUS, cfg.spawn_radius)
        self.velocities = np.zeros((n, 3))
        self.trails = self._new_trails(n)

    def _on_config_change(self, previous):
        super()._on_config_change(previous)
        cfg = self.cfg
        if cfg.particle_count != previous.particle_count:
            self._spawn()
        elif cfg.magnet_count != previous.magnet_count or cfg.magnet_strength != previous.magnet_strength:
            self.magnets, self.charges = magnet_layout(int(cfg.magnet_count), cfg.magnet_strength)

    def _advance(self, h: float):
        cfg = self.cfg
        field = magnetic_field(self.positions, self.magnets, self.charges, cfg.field_strength)
        self.velocities = field * cfg.particle_speed * cfg.damping
        self.positions = self.positions + self.velocities * h
        self._record_trails()
        self._respawn_escaped()

    def _respawn_escaped(self):
        r = self.cfg.spawn_radius
        dist_sq = np.einsum("ij,ij->i", self.positions, self.positions)
        escaped = np.flatnonzero(dist_sq > 4.0 * r * r)
        if len(escaped) == 0:
            return
        self.positions[escaped] = sample_shell(self.rng, len(escaped), MIN_SPAWN_RADIUS, r)
        self.velocities[escaped] = 0.0
        for i in escaped:
            self.trails[i].clear()

    def get_points(self) -> np.ndarray:
        """Magnet positions first, then each particle followed by its trail."""
        blocks = [self.magnets.astype(np.float32)] + self._point_blocks()
        return np.concatenate(blocks, axis=0)
