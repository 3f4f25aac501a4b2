"""
Rotating spiral galaxy.

Stars are laid out along logarithmic-looking arms and then move on
circular orbits whose angular speed falls with radius, so the arms wind
up over time. Each star also bobs about its disk height.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from complexsim.simulations.base import BaseConfig
from complexsim.simulations.particles import ParticleSimulation

logger = logging.getLogger(__name__)

CORE_STARS = 100

# Fields that change the star layout rather than its motion
_LAYOUT_FIELDS = (
    "num_arms", "stars_per_arm", "arm_spread", "core_radius", "max_radius",
    "disk_thickness", "show_core", "rotation_speed", "orbital_velocity_falloff",
)


@dataclass
class GalaxyConfig(BaseConfig):
    num_arms: int = 4
    stars_per_arm: int = 200
    # Turns an arm makes from core to rim
    arm_spread: float = 0.3
    # Angular speed scale, radians per second
    rotation_speed: float = 0.5
    core_radius: float = 5.0
    max_radius: float = 40.0
    disk_thickness: float = 8.0
    show_core: bool = True
    orbital_velocity_falloff: float = 0.8

    def __post_init__(self):
        if int(self.num_arms) < 0 or int(self.stars_per_arm) < 0:
            raise ValueError("num_arms and stars_per_arm must be >= 0")
        if self.max_radius < self.core_radius:
            raise ValueError(
                f"max_radius ({self.max_radius}) must not be below core_radius ({self.core_radius})"
            )


class GalaxySpiral(ParticleSimulation):
    display_name = "Galaxy Spiral"

    def __init__(self, config: Optional[GalaxyConfig] = None, seed: Optional[int] = None):
        super().__init__(config or GalaxyConfig(), seed)
        self.cfg: GalaxyConfig = self.cfg

    def _spawn(self):
        cfg = self.cfg
        arms, per_arm = int(cfg.num_arms), int(cfg.stars_per_arm)
        self.time = 0.0

        t = np.tile(np.arange(per_arm) / max(per_arm, 1), arms)
        arm_angle = np.repeat(np.arange(arms) / max(arms, 1) * 2.0 * math.pi, per_arm)
        n = len(t)
        base_radius = cfg.core_radius + (cfg.max_radius - cfg.core_radius) * t * t
        angle = arm_angle + t * cfg.arm_spread * 2.0 * math.pi + self.rng.uniform(-0.5, 0.5, n) * 0.3
        radius = np.maximum(base_radius + self.rng.uniform(-0.5, 0.5, n) * 3.0, 1.0)
        # Thinner towards the rim
        z = self.rng.uniform(-0.5, 0.5, n) * cfg.disk_thickness * (1.0 - t * 0.3)
        speed = cfg.rotation_speed / (1.0 + base_radius * cfg.orbital_velocity_falloff)

        if cfg.show_core:
            theta = self.rng.uniform(0.0, 2.0 * math.pi, CORE_STARS)
            phi = self.rng.uniform(0.0, math.pi, CORE_STARS)
            r = self.rng.uniform(0.0, cfg.core_radius, CORE_STARS)
            angle = np.concatenate([angle, theta])
            radius = np.concatenate([radius, r * np.sin(phi)])
            z = np.concatenate([z, r * np.cos(phi) * 0.3])
            speed = np.concatenate([speed, np.full(CORE_STARS, cfg.rotation_speed * 2.0)])

        self.orbit_angle = angle
        self.orbit_radius = radius
        self.orbit_speed = speed
        self.z_offset = z
        self.positions = np.zeros((len(angle), 3))
        self.velocities = np.zeros((len(angle), 3))
        self._place()
        logger.debug("%s: %d stars", self.name, len(self.positions))

    def _place(self):
        r, a = self.orbit_radius, self.orbit_angle
        self.positions[:, 0] = r * np.cos(a)
        self.positions[:, 1] = r * np.sin(a)
        self.positions[:, 2] = self.z_offset * (1.0 + 0.2 * np.sin(self.time * 0.5 + a))
        self.velocities[:, 0] = -r * self.orbit_speed * np.sin(a)
        self.velocities[:, 1] = r * self.orbit_speed * np.cos(a)

    def _advance(self, h: float):
        self.time += h
        self.orbit_angle = self.orbit_angle + self.orbit_speed * h
        self._place()

    def _on_config_change(self, previous):
        if any(getattr(self.cfg, f) != getattr(previous, f) for f in _LAYOUT_FIELDS):
            self._spawn()
