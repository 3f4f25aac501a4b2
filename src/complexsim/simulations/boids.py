"""
3D flocking (Reynolds boids).

Separation, alignment and cohesion are each turned into a steering force
(desired velocity at ``max_speed`` minus current velocity), weighted and
summed, then clamped to ``max_force``. A soft spherical wall steers boids
back once they pass 80% of ``bound_radius``.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from complexsim.simulations.base import EPS
from complexsim.simulations.particles import (
    BoundaryPolicy,
    ParticleConfig,
    ParticleSimulation,
    clamp_norm,
    coerce_policy,
    norms,
    normalize,
    random_directions,
)

logger = logging.getLogger(__name__)


@dataclass
class BoidsConfig(ParticleConfig):
    particle_count: int = 50
    separation_radius: float = 5.0
    alignment_radius: float = 10.0
    cohesion_radius: float = 10.0
    separation_strength: float = 1.5
    alignment_strength: float = 1.0
    cohesion_strength: float = 1.0
    max_speed: float = 2.0
    max_force: float = 0.1
    bound_radius: float = 30.0
    boundary: BoundaryPolicy = BoundaryPolicy.CONTAIN

    def __post_init__(self):
        self.boundary = coerce_policy(self.boundary, (BoundaryPolicy.CONTAIN,))


def _steer(desired: np.ndarray, velocities: np.ndarray, max_speed: float, active: np.ndarray) -> np.ndarray:
    """Reynolds steering towards ``desired``; rows without neighbours get zero."""
    steer = normalize(desired) * max_speed - velocities
    steer[~(active & (norms(desired) > EPS))] = 0.0
    return steer


class Boids(ParticleSimulation):
    display_name = "3D Boids"

    def __init__(self, config: Optional[BoidsConfig] = None, seed: Optional[int] = None):
        super().__init__(config or BoidsConfig(), seed)
        self.cfg: BoidsConfig = self.cfg

    def _spawn(self):
        cfg = self.cfg
        rng = self.rng
        n = max(int(cfg.particle_count), 0)
        r = rng.uniform(0.0, cfg.bound_radius * 0.5, n)
        self.positions = random_directions(rng, n) * r[:, None]
        speed = rng.uniform(0.0, cfg.max_speed, n)
        self.velocities = random_directions(rng, n) * speed[:, None]

    def _on_config_change(self, previous):
        if self.cfg.particle_count != previous.particle_count:
            self._spawn()

    def steering(self) -> np.ndarray:
        """Combined flocking and containment force per boid, before clamping."""
        cfg = self.cfg
        pos, vel = self.positions, self.velocities

        # offset[i, j] points from boid i to boid j
        offset = pos[None, :, :] - pos[:, None, :]
        dist_sq = np.einsum("ijk,ijk->ij", offset, offset)
        np.fill_diagonal(dist_sq, np.inf)
        sep_mask = (dist_sq < cfg.separation_radius ** 2) & (dist_sq > 0.0)
        align_mask = dist_sq < cfg.alignment_radius ** 2
        coh_mask = dist_sq < cfg.cohesion_radius ** 2

        # Away from close neighbours, weighted by inverse distance
        inv_sq = np.where(sep_mask, 1.0 / np.maximum(dist_sq, EPS), 0.0)
        sep = -np.einsum("ij,ijk->ik", inv_sq, offset)

        align_count = align_mask.sum(axis=1)
        align = (align_mask.astype(float) @ vel) / np.maximum(align_count, 1)[:, None]

        coh_count = coh_mask.sum(axis=1)
        centroid = (coh_mask.astype(float) @ pos) / np.maximum(coh_count, 1)[:, None]
        coh = centroid - pos

        force = (
            _steer(sep, vel, cfg.max_speed, sep_mask.any(axis=1)) * cfg.separation_strength
            + _steer(align, vel, cfg.max_speed, align_count > 0) * cfg.alignment_strength
            + _steer(coh, vel, cfg.max_speed, coh_count > 0) * cfg.cohesion_strength
        )
        return force + self._containment()

    def _containment(self) -> np.ndarray:
        """Soft wall beyond 80% of the bound radius, stronger further out."""
        radius = self.cfg.bound_radius
        d = norms(self.positions)
        edge = 0.8 * radius
        strength = np.where(d > edge, (d - edge) / max(0.2 * radius, EPS) * 2.0, 0.0)
        return -normalize(self.positions) * strength[:, None]

    def _advance(self, h: float):
        cfg = self.cfg
        force = clamp_norm(self.steering(), cfg.max_force)
        self.velocities = clamp_norm(self.velocities + force * h, cfg.max_speed)
        self.positions = self.positions + self.velocities * h
