"""
Physarum-style slime mold.

Agents walk over a trail map. Each step every agent samples the map at
three sensors (ahead, left, right), turns toward the strongest reading,
moves one unit and deposits trail. The map then diffuses and decays.
The trail map is the automaton grid.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy import ndimage

from complexsim.simulations.automata import AutomatonConfig, AutomatonSimulation
from complexsim.simulations.colorgrade import apply_palette

logger = logging.getLogger(__name__)

MAX_TRAIL = 255.0
DIFFUSION_KERNEL = np.array([[0.0, 1.0, 0.0], [1.0, 4.0, 1.0], [0.0, 1.0, 0.0]]) / 8.0


@dataclass
class SlimeMoldConfig(AutomatonConfig):
    grid_width: int = 320
    grid_height: int = 240
    speed: float = 60.0
    agent_count: int = 3000
    # Agents start within this many cells of the centre
    spawn_radius: float = 20.0
    sensor_angle: float = 0.4
    sensor_distance: float = 9.0
    turn_angle: float = 0.4
    move_speed: float = 1.0
    deposit_amount: float = 5.0
    decay_rate: float = 0.1
    trail_brightness: float = 1.0
    color_scheme: str = "viridis"

    def __post_init__(self):
        super().__post_init__()
        if int(self.agent_count) < 0:
            raise ValueError(f"agent_count must be >= 0, got {self.agent_count}")
        if not 0.0 <= self.decay_rate <= 1.0:
            raise ValueError(f"decay_rate must be in [0, 1], got {self.decay_rate}")


class SlimeMold(AutomatonSimulation):
    display_name = "Slime Mold"

    def __init__(self, config: Optional[SlimeMoldConfig] = None, seed: Optional[int] = None):
        super().__init__(config or SlimeMoldConfig(), seed)
        self.cfg: SlimeMoldConfig = self.cfg

    def _init_grid(self):
        h, w = self.grid_shape
        n = max(int(self.cfg.agent_count), 0)
        self.grid = np.zeros((h, w))
        radius = self.rng.uniform(0.0, self.cfg.spawn_radius, n)
        theta = self.rng.uniform(0.0, 2.0 * math.pi, n)
        self.agent_x = np.clip(w / 2.0 + radius * np.cos(theta), 0.0, np.nextafter(w, 0))
        self.agent_y = np.clip(h / 2.0 + radius * np.sin(theta), 0.0, np.nextafter(h, 0))
        self.agent_angle = self.rng.uniform(0.0, 2.0 * math.pi, n)
        logger.debug("%s: %d agents on a %dx%d map", self.name, n, w, h)

    def _on_config_change(self, previous):
        if self.cfg.agent_count != previous.agent_count or self.cfg.spawn_radius != previous.spawn_radius:
            self.generation = 0
            self._init_grid()

    def sense(self, angle_offset: float) -> np.ndarray:
        """Trail under each agent's sensor at ``angle_offset``; 0 off the map."""
        h, w = self.grid.shape
        angle = self.agent_angle + angle_offset
        sx = self.agent_x + np.cos(angle) * self.cfg.sensor_distance
        sy = self.agent_y + np.sin(angle) * self.cfg.sensor_distance
        inside = (sx >= 0) & (sx < w) & (sy >= 0) & (sy < h)
        readings = np.zeros(len(angle))
        readings[inside] = self.grid[sy[inside].astype(int), sx[inside].astype(int)]
        return readings

    def _step(self):
        cfg = self.cfg
        h, w = self.grid.shape
        if len(self.agent_x):
            forward = self.sense(0.0)
            left = self.sense(-cfg.sensor_angle)
            right = self.sense(cfg.sensor_angle)

            ahead = (forward > left) & (forward > right)
            behind = ~ahead & (forward < left) & (forward < right)
            coin = self.rng.random(len(forward)) < 0.5
            turn = np.zeros(len(forward))
            turn[behind] = np.where(coin[behind], cfg.turn_angle, -cfg.turn_angle)
            side = ~ahead & ~behind
            turn[side & (left > right)] = -cfg.turn_angle
            turn[side & (right > left)] = cfg.turn_angle
            self.agent_angle = self.agent_angle + turn

            nx = self.agent_x + np.cos(self.agent_angle) * cfg.move_speed
            ny = self.agent_y + np.sin(self.agent_angle) * cfg.move_speed
            off_x = (nx < 0) | (nx >= w)
            off_y = ~off_x & ((ny < 0) | (ny >= h))
            moves = ~off_x & ~off_y
            self.agent_angle[off_x] = math.pi - self.agent_angle[off_x]
            self.agent_angle[off_y] = -self.agent_angle[off_y]
            self.agent_x[moves] = nx[moves]
            self.agent_y[moves] = ny[moves]

            np.add.at(
                self.grid,
                (self.agent_y.astype(int), self.agent_x.astype(int)),
                cfg.deposit_amount,
            )
            np.minimum(self.grid, MAX_TRAIL, out=self.grid)

        blurred = ndimage.convolve(self.grid, DIFFUSION_KERNEL, mode="constant", cval=0.0)
        blurred *= 1.0 - cfg.decay_rate
        blurred[0, :] = blurred[-1, :] = 0.0
        blurred[:, 0] = blurred[:, -1] = 0.0
        self.grid = np.maximum(blurred, 0.0)

    def _cell_colors(self) -> np.ndarray:
        cfg = self.cfg
        t = np.minimum(self.grid / MAX_TRAIL * cfg.trail_brightness, 1.0)
        return apply_palette(t, cfg.color_scheme, cfg.invert_colors)
