"""
A swarm of short-lived particles riding the Lorenz flow.

Particles are released near the attractor at ``spawn_rate`` per second
until ``particle_count`` are alive, follow the flow with batched RK4 and
disappear after ``particle_lifetime`` seconds. Each keeps its own trail.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from complexsim.simulations.attractor import REFERENCE_DT, lorenz_rates, rk4_batch
from complexsim.simulations.particles import MAX_FRAME_DT, ParticleConfig, TrailedParticleSimulation

logger = logging.getLogger(__name__)

SPAWN_RADIUS = 5.0
SPAWN_HEIGHT = 20.0


@dataclass
class ParticleAttractorConfig(ParticleConfig):
    particle_count: int = 50
    sigma: float = 10.0
    rho: float = 28.0
    beta: float = 8.0 / 3.0
    # Seconds a particle stays alive
    particle_lifetime: float = 10.0
    # Particles released per second
    spawn_rate: float = 5.0
    trail_length: int = 100
    show_trails: bool = True
    internal_dt: float = 0.005
    substeps: int = 5


class ParticleAttractor(TrailedParticleSimulation):
    display_name = "Particle Lorenz Attractor"

    def __init__(self, config: Optional[ParticleAttractorConfig] = None, seed: Optional[int] = None):
        super().__init__(config or ParticleAttractorConfig(), seed)
        self.cfg: ParticleAttractorConfig = self.cfg

    def _spawn(self):
        """Start empty; particles arrive over time."""
        self.positions = np.zeros((0, 3))
        self.velocities = np.zeros((0, 3))
        self.age = np.zeros(0)
        self.trails = []
        self._spawn_accumulator = 0.0

    def _release(self, n: int):
        theta = self.rng.uniform(0.0, 2.0 * math.pi, n)
        new = np.stack(
            [SPAWN_RADIUS * np.cos(theta), SPAWN_RADIUS * np.sin(theta), np.full(n, SPAWN_HEIGHT)], axis=1
        )
        self.positions = np.concatenate([self.positions, new])
        self.velocities = np.concatenate([self.velocities, np.zeros((n, 3))])
        self.age = np.concatenate([self.age, np.zeros(n)])
        self.trails.extend(self._new_trails(n))

    def _keep(self, mask: np.ndarray):
        self.positions = self.positions[mask]
        self.velocities = self.velocities[mask]
        self.age = self.age[mask]
        self.trails = [t for t, alive in zip(self.trails, mask) if alive]

    def _rates(self, pts: np.ndarray) -> np.ndarray:
        c = self.cfg
        return lorenz_rates(pts, c.sigma, c.rho, c.beta)

    def _advance(self, h: float):
        for _ in range(max(int(self.cfg.substeps), 0)):
            self.positions = rk4_batch(self._rates, self.positions, h)
        self.velocities = self._rates(self.positions)

    def step(self, dt: float):
        if dt <= 0:
            return
        cfg = self.cfg
        frame = min(float(dt), MAX_FRAME_DT) * cfg.speed

        cap = max(int(cfg.particle_count), 0)
        self._spawn_accumulator += frame * cfg.spawn_rate
        n = min(int(self._spawn_accumulator), cap - len(self.positions))
        if n > 0:
            self._release(n)
            self._spawn_accumulator -= n
        if len(self.positions) >= cap:
            # No backlog builds up while the population is full
            self._spawn_accumulator = min(self._spawn_accumulator, 1.0)

        if len(self.positions):
            self._advance(cfg.internal_dt * frame / REFERENCE_DT)
            finite = np.isfinite(self.positions).all(axis=1)
            if not finite.all():
                logger.debug("%s: dropping %d diverged particle(s)", self.name, int((~finite).sum()))
                self._keep(finite)
            self._record_trails()

        self.age += frame
        alive = self.age <= cfg.particle_lifetime
        if not alive.all():
            self._keep(alive)

    def _on_config_change(self, previous):
        super()._on_config_change(previous)
        drop = len(self.positions) - max(int(self.cfg.particle_count), 0)
        if drop > 0:
            keep = np.zeros(len(self.positions), dtype=bool)
            keep[drop:] = True
            self._keep(keep)
