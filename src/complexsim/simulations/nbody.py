"""
Softened N-body gravity.

Each unordered pair is evaluated once and the force applied with opposite
signs to both bodies. In the ``orbit`` scenario body 0 is a heavy central
mass held in place.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from complexsim.simulations.particles import (
    BoundaryPolicy,
    ParticleConfig,
    TrailedParticleSimulation,
    apply_box_boundary,
    clamp_norm,
    coerce_policy,
)

logger = logging.getLogger(__name__)

SCENARIOS = ("orbit", "binary", "cluster")


@dataclass
class NBodyConfig(ParticleConfig):
    particle_count: int = 100
    gravitational_constant: float = 1.0
    softening: float = 0.5
    central_mass: float = 100.0
    spawn_radius: float = 30.0
    initial_velocity: float = 2.0
    trail_length: int = 50
    show_trails: bool = True
    max_velocity: float = 100.0
    scenario: str = "orbit"
    boundary: BoundaryPolicy = BoundaryPolicy.NONE
    boundary_size: float = 200.0

    def __post_init__(self):
        if self.scenario not in SCENARIOS:
            raise ValueError(f"Unknown scenario '{self.scenario}'. Choose from: {', '.join(SCENARIOS)}")
        self.boundary = coerce_policy(
            self.boundary, (BoundaryPolicy.NONE, BoundaryPolicy.REFLECT, BoundaryPolicy.WRAP)
        )


def pairwise_gravity(
    positions: np.ndarray,
    masses: np.ndarray,
    g: float,
    softening: float,
) -> np.ndarray:
    """
    Net softened gravitational force on every body.

    ``F = G mi mj / (r² + ε²)`` along the unit vector between each pair; the
    pair force is computed once and added to i, subtracted from j.
    """
    n = len(positions)
    forces = np.zeros((n, 3))
    if n < 2:
        return forces
    i, j = np.triu_indices(n, k=1)
    d = positions[j] - positions[i]
    dist_sq = np.einsum("ij,ij->i", d, d) + softening * softening
    dist_sq = np.maximum(dist_sq, 1e-12)
    magnitude = g * masses[i] * masses[j] / dist_sq
    f = (magnitude / np.sqrt(dist_sq))[:, None] * d
    for axis in range(3):
        forces[:, axis] += np.bincount(i, f[:, axis], n)
        forces[:, axis] -= np.bincount(j, f[:, axis], n)
    return forces


class NBodyGravity(TrailedParticleSimulation):
    display_name = "N-Body Gravity"
    PRESETS = {
        "solar_system": {
            "scenario": "orbit", "central_mass": 200.0, "particle_count": 50,
            "spawn_radius": 50.0, "initial_velocity": 2.5,
        },
        "binary_stars": {"scenario": "binary"},
        "chaotic_cloud": {"scenario": "cluster", "particle_count": 100},
    }

    def __init__(self, config: Optional[NBodyConfig] = None, seed: Optional[int] = None):
        super().__init__(config or NBodyConfig(), seed)
        self.cfg: NBodyConfig = self.cfg

    def _time_scale(self) -> float:
        return 0.1

    # -- scenarios ------------------------------------------------------------

    def _spawn(self):
        builder = {
            "orbit": self._spawn_orbit,
            "binary": self._spawn_binary,
            "cluster": self._spawn_cluster,
        }[self.cfg.scenario]
        self.positions, self.velocities, self.masses = builder()
        self.trails = self._new_trails(len(self.positions))

    def _spawn_orbit(self):
        cfg = self.cfg
        rng = self.rng
        n = max(int(cfg.particle_count), 0)
        theta = rng.uniform(0.0, 2.0 * np.pi, n)
        phi = rng.uniform(-np.pi / 4, np.pi / 4, n)
        radius = rng.uniform(cfg.spawn_radius * 0.5, cfg.spawn_radius, n)

        pos = np.column_stack((
            radius * np.cos(phi) * np.cos(theta),
            radius * np.sin(phi),
            radius * np.cos(phi) * np.sin(theta),
        ))
        orbital = cfg.initial_velocity * np.sqrt(max(cfg.central_mass, 0.0) / np.maximum(radius, 1e-9))
        vel = np.column_stack((
            -orbital * np.sin(theta),
            rng.uniform(-0.5, 0.5, n),
            orbital * np.cos(theta),
        ))
        mass = rng.uniform(0.1, 1.0, n)

        return (
            np.vstack((np.zeros((1, 3)), pos)),
            np.vstack((np.zeros((1, 3)), vel)),
            np.concatenate(([cfg.central_mass], mass)),
        )

    def _spawn_binary(self):
        rng = self.rng
        stars_pos = np.array([[-10.0, 0.0, 0.0], [10.0, 0.0, 0.0]])
        stars_vel = np.array([[0.0, 2.0, 0.0], [0.0, -2.0, 0.0]])
        debris = 30
        angle = rng.uniform(0.0, 2.0 * np.pi, debris)
        radius = rng.uniform(25.0, 40.0, debris)
        debris_pos = np.column_stack((radius * np.cos(angle), np.zeros(debris), radius * np.sin(angle)))
        debris_vel = np.column_stack((-2.0 * np.sin(angle), np.zeros(debris), 2.0 * np.cos(angle)))
        return (
            np.vstack((stars_pos, debris_pos)),
            np.vstack((stars_vel, debris_vel)),
            np.concatenate(([50.0, 50.0], np.full(debris, 0.1))),
        )

    def _spawn_cluster(self):
        rng = self.rng
        n = max(int(self.cfg.particle_count), 0)
        return (
            rng.uniform(-30.0, 30.0, (n, 3)),
            rng.uniform(-1.0, 1.0, (n, 3)),
            rng.uniform(0.5, 2.0, n),
        )

    def apply_preset(self, name: str):
        """
        Load a named scenario and respawn.

        Raises:
            KeyError: unknown preset.
        """
        if name not in self.PRESETS:
            raise KeyError(f"Unknown preset '{name}' for {self.name}. Choose from: {', '.join(self.PRESETS)}")
        self.set_parameters(**self.PRESETS[name])
        self.reset()

    def _on_config_change(self, previous):
        super()._on_config_change(previous)
        respawn_fields = ("scenario", "particle_count", "central_mass", "spawn_radius", "initial_velocity")
        if any(getattr(self.cfg, f) != getattr(previous, f) for f in respawn_fields):
            self._spawn()

    # -- dynamics -------------------------------------------------------------

    @property
    def fixed_center(self) -> bool:
        return self.cfg.scenario == "orbit"

    def forces(self) -> np.ndarray:
        return pairwise_gravity(self.positions, self.masses, self.cfg.gravitational_constant, self.cfg.softening)

    def _advance(self, h: float):
        cfg = self.cfg
        accel = self.forces() / np.maximum(self.masses, 1e-9)[:, None]
        moving = np.ones(len(self.positions), dtype=bool)
        if self.fixed_center:
            moving[0] = False

        self.velocities[moving] = clamp_norm(self.velocities[moving] + accel[moving] * h, cfg.max_velocity)
        self.positions[moving] += self.velocities[moving] * h
        if cfg.boundary != BoundaryPolicy.NONE:
            apply_box_boundary(self.positions, self.velocities, cfg.boundary_size / 2.0, cfg.boundary)
        self._record_trails(np.flatnonzero(moving))
