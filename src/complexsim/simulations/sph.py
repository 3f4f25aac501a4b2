"""
Smoothed-particle hydrodynamics in a box.

Density and pressure come from a poly6-style kernel over neighbours inside
the smoothing radius; pressure and viscosity forces act pairwise, gravity
pulls along -y. Neighbour pairs are found with a k-d tree, which yields the
same pairs as the all-pairs scan restricted to the cutoff.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.spatial import cKDTree

from complexsim.simulations.base import EPS
from complexsim.simulations.particles import (
    BoundaryPolicy,
    ParticleConfig,
    ParticleSimulation,
    apply_box_boundary,
    clamp_norm,
    coerce_policy,
    norms,
)

logger = logging.getLogger(__name__)


@dataclass
class SPHConfig(ParticleConfig):
    particle_count: int = 500
    smoothing_radius: float = 2.0
    particle_mass: float = 1.0
    rest_density: float = 8.0
    gas_constant: float = 20.0
    viscosity: float = 0.5
    gravity: float = 9.8
    damping: float = 0.95
    boundary_size: float = 25.0
    spacing: float = 1.5
    max_velocity: float = 50.0
    substeps: int = 2
    boundary: BoundaryPolicy = BoundaryPolicy.REFLECT

    def __post_init__(self):
        self.boundary = coerce_policy(self.boundary, (BoundaryPolicy.REFLECT, BoundaryPolicy.WRAP))


def sph_kernel(r: np.ndarray, h: float) -> np.ndarray:
    """W(r) = (h² - r²)³ / (πh⁴/6) inside the support, else 0."""
    volume = math.pi * h ** 4 / 6.0
    diff = np.maximum(h * h - r * r, 0.0)
    return diff ** 3 / volume


def sph_kernel_gradient(r: np.ndarray, h: float) -> np.ndarray:
    """Radial derivative coefficient: -6(h² - r²)² / (πh⁴/6), 0 outside."""
    volume = math.pi * h ** 4 / 6.0
    diff = np.maximum(h * h - r * r, 0.0)
    return -6.0 * diff ** 2 / volume


class SPHFluid(ParticleSimulation):
    """Particle fluid dropped from a lattice at the top of the box."""

    display_name = "SPH Fluid"

    def __init__(self, config: Optional[SPHConfig] = None, seed: Optional[int] = None):
        super().__init__(config or SPHConfig(), seed)
        self.cfg: SPHConfig = self.cfg

    def _spawn(self):
        cfg = self.cfg
        n = max(int(cfg.particle_count), 0)
        half = cfg.boundary_size / 2.0
        side = max(int(math.ceil(n ** (1.0 / 3.0))), 1)

        # Lattice filled x fastest, then z, then downward in y
        idx = np.arange(n)
        i = idx % side
        k = (idx // side) % side
        j = idx // (side * side)
        jitter = self.rng.uniform(-0.2, 0.2, (n, 2))

        pos = np.empty((n, 3))
        pos[:, 0] = -half + i * cfg.spacing + jitter[:, 0]
        pos[:, 1] = half - j * cfg.spacing
        pos[:, 2] = -half + k * cfg.spacing + jitter[:, 1]
        np.clip(pos, -half, half, out=pos)

        self.positions = pos
        self.velocities = np.zeros((n, 3))
        self.density = np.full(n, float(cfg.rest_density))
        self.pressure = np.zeros(n)

    def _on_config_change(self, previous):
        if self.cfg.particle_count != previous.particle_count:
            self._spawn()

    def _neighbour_pairs(self):
        radius = max(self.cfg.smoothing_radius, EPS)
        pairs = cKDTree(self.positions).query_pairs(radius, output_type="ndarray")
        i, j = pairs[:, 0], pairs[:, 1]
        d = self.positions[j] - self.positions[i]
        r = norms(d)
        keep = r > EPS
        return i[keep], j[keep], d[keep], r[keep]

    def _update_density(self, i, j, r):
        cfg = self.cfg
        n = len(self.positions)
        h = max(cfg.smoothing_radius, EPS)
        m = cfg.particle_mass
        w = m * sph_kernel(r, h)
        # Every particle sits inside its own support
        self_term = m * sph_kernel(np.zeros(1), h)[0]
        density = self_term + np.bincount(i, w, n) + np.bincount(j, w, n)
        self.density = np.maximum(density, cfg.rest_density)
        self.density = np.maximum(self.density, EPS)
        self.pressure = cfg.gas_constant * (self.density - cfg.rest_density)

    def _forces(self, i, j, d, r) -> np.ndarray:
        cfg = self.cfg
        n = len(self.positions)
        h = max(cfg.smoothing_radius, EPS)
        m = cfg.particle_mass
        rho, p, vel = self.density, self.pressure, self.velocities

        grad = sph_kernel_gradient(r, h)
        w = sph_kernel(r, h)
        unit = d / np.maximum(r, EPS)[:, None]
        p_sum = p[i] + p[j]

        # grad < 0, so these push i away from j and j away from i
        f_i = (m * p_sum / (2.0 * rho[j]) * grad)[:, None] * unit
        f_j = -(m * p_sum / (2.0 * rho[i]) * grad)[:, None] * unit

        dv = vel[j] - vel[i]
        f_i += (cfg.viscosity * m * w / rho[j])[:, None] * dv
        f_j -= (cfg.viscosity * m * w / rho[i])[:, None] * dv

        forces = np.zeros((n, 3))
        for axis in range(3):
            forces[:, axis] += np.bincount(i, f_i[:, axis], n)
            forces[:, axis] += np.bincount(j, f_j[:, axis], n)
        forces[:, 1] -= cfg.gravity * rho
        return forces

    def _advance(self, h: float):
        cfg = self.cfg
        substeps = max(int(cfg.substeps), 1)
        sub_h = h / substeps
        half = cfg.boundary_size / 2.0
        for _ in range(substeps):
            i, j, d, r = self._neighbour_pairs()
            self._update_density(i, j, r)
            accel = self._forces(i, j, d, r) / self.density[:, None]
            self.velocities = clamp_norm(self.velocities + accel * sub_h, cfg.max_velocity)
            self.positions = self.positions + self.velocities * sub_h
            apply_box_boundary(self.positions, self.velocities, half, cfg.boundary, cfg.damping)
