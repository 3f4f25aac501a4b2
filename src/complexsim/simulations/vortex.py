"""
Particles swept around a handful of vortex cores.

Each vortex contributes a tangential swirl about the y axis, a radial pull
and an upward lift. Random turbulence is added on top and speeds are
clamped. Particles age, die, and are replaced at the outer ring.
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
)

logger = logging.getLogger(__name__)

MAX_VELOCITY = 30.0
# Copies of each vortex core emitted by get_points so viewers draw it larger
CORE_REPEAT = 5


@dataclass
class VortexConfig(ParticleConfig):
    particle_count: int = 300
    vortex_count: int = 3
    vortex_strength: float = 20.0
    turbulence: float = 5.0
    flow_speed: float = 3.0
    particle_life: float = 10.0
    spawn_rate: float = 0.3
    trail_length: int = 50
    show_trails: bool = True
    boundary: BoundaryPolicy = BoundaryPolicy.RESPAWN

    def __post_init__(self):
        self.boundary = coerce_policy(self.boundary, (BoundaryPolicy.RESPAWN,))


def vortex_layout(count: int) -> np.ndarray:
    """Vortex cores: 1 central, 2 twin, 3 on a ring of radius 20, 4+ square corners."""
    if count <= 0:
        return np.zeros((0, 3))
    if count == 1:
        return np.zeros((1, 3))
    if count == 2:
        return np.array([[-15.0, 0.0, 0.0], [15.0, 0.0, 0.0]])
    if count == 3:
        angles = np.array([0.0, 2.0 * np.pi / 3.0, 4.0 * np.pi / 3.0])
        return np.column_stack((20.0 * np.cos(angles), np.zeros(3), 20.0 * np.sin(angles)))
    return np.array([[15.0, 15.0, 0.0], [-15.0, 15.0, 0.0], [15.0, -15.0, 0.0], [-15.0, -15.0, 0.0]])


def vortex_force(points: np.ndarray, cores: np.ndarray, strength: float) -> np.ndarray:
    """Summed swirl, attraction and lift from every core."""
    force = np.zeros((len(points), 3))
    if len(points) == 0 or len(cores) == 0:
        return force
    d = points[:, None, :] - cores[None, :, :]
    dist_sq = np.einsum("ijk,ijk->ij", d, d) + 1.0
    dist = np.sqrt(dist_sq)

    # Swirl about the vertical axis through each core
    tangent = np.stack((-d[..., 2], np.zeros_like(dist), d[..., 0]), axis=-1)
    tangent_len = np.sqrt(tangent[..., 0] ** 2 + tangent[..., 2] ** 2)
    swirl = np.where(tangent_len > 0.01, strength / dist_sq / np.maximum(tangent_len, EPS), 0.0)
    force += np.einsum("ij,ijk->ik", swirl, tangent)

    attract = strength * 0.3 / dist_sq / np.maximum(dist, EPS)
    force -= np.einsum("ij,ijk->ik", attract, d)

    force[:, 1] += (strength * 0.5 / (dist + 5.0)).sum(axis=1)
    return force


class VortexTurbulence(TrailedParticleSimulation):
    display_name = "Vortex Turbulence"

    def __init__(self, config: Optional[VortexConfig] = None, seed: Optional[int] = None):
        self.vortices = np.zeros((0, 3))
        self.life = np.zeros(0)
        super().__init__(config or VortexConfig(), seed)
        self.cfg: VortexConfig = self.cfg

    def _time_scale(self) -> float:
        return 0.02

    def _ring_positions(self, n: int) -> np.ndarray:
        theta = self.rng.uniform(0.0, 2.0 * np.pi, n)
        radius = self.rng.uniform(30.0, 50.0, n)
        return np.column_stack((
            radius * np.cos(theta),
            self.rng.uniform(-20.0, 20.0, n),
            radius * np.sin(theta),
        ))

    def _spawn(self):
        cfg = self.cfg
        self.vortices = vortex_layout(int(cfg.vortex_count))
        n = max(int(cfg.particle_count), 0)
        self.positions = self._ring_positions(n)
        self.velocities = np.zeros((n, 3))
        # Staggered ages so the first generation does not die at once
        self.life = self.rng.uniform(0.0, max(cfg.particle_life, 0.0), n)
        self.trails = self._new_trails(n)

    def _on_config_change(self, previous):
        super()._on_config_change(previous)
        if self.cfg.vortex_count != previous.vortex_count:
            self.vortices = vortex_layout(int(self.cfg.vortex_count))
        target = max(int(self.cfg.particle_count), 0)
        drop = len(self.positions) - target
        if drop > 0:
            # Oldest particles go first; a higher target refills through _replenish
            self.positions = self.positions[drop:]
            self.velocities = self.velocities[drop:]
            self.life = self.life[drop:]
            self.trails = self.trails[drop:]

    def step(self, dt: float):
        # Replenishing must run even when every particle has died
        if dt <= 0:
            return
        if len(self.positions):
            super().step(dt)
        else:
            self._replenish()

    def _advance(self, h: float):
        cfg = self.cfg
        n = len(self.positions)
        turbulence = self.rng.uniform(-cfg.turbulence, cfg.turbulence, (n, 3)) if cfg.turbulence > 0 else 0.0
        force = vortex_force(self.positions, self.vortices, cfg.vortex_strength)
        self.velocities = clamp_norm(force * cfg.flow_speed + turbulence, MAX_VELOCITY)
        self.positions = self.positions + self.velocities * h
        self._record_trails()

        self.life = self.life - h
        alive = self.life > 0.0
        if not alive.all():
            self.positions = self.positions[alive]
            self.velocities = self.velocities[alive]
            self.life = self.life[alive]
            self.trails = [t for t, keep in zip(self.trails, alive) if keep]
        self._replenish()

    def _replenish(self):
        """Spawn at the outer ring while short of particles and each coin flip succeeds."""
        cfg = self.cfg
        target = max(int(cfg.particle_count), 0)
        rate = min(max(cfg.spawn_rate, 0.0), 1.0)
        born = 0
        while len(self.positions) + born < target and self.rng.random() < rate:
            born += 1
        if born == 0:
            return
        self.positions = np.vstack((self.positions, self._ring_positions(born)))
        self.velocities = np.vstack((self.velocities, np.zeros((born, 3))))
        self.life = np.concatenate((self.life, np.full(born, float(cfg.particle_life))))
        self.trails.extend(self._new_trails(born))

    def get_points(self) -> np.ndarray:
        """Each vortex core repeated, then each particle followed by its trail."""
        cores = np.repeat(self.vortices, CORE_REPEAT, axis=0).astype(np.float32)
        return np.concatenate([cores] + self._point_blocks(), axis=0)
