"""
Double pendulum.

Angles are measured from the downward vertical. The equations of motion
come from the Lagrangian of two point masses on rigid massless rods and
are integrated with RK4 on ``(angle1, angle2, velocity1, velocity2)``.
Physics runs in a fixed reference frame of ``REFERENCE_SIZE`` pixels, so
the motion does not depend on the canvas it is drawn on.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw

from complexsim.simulations.base import RasterConfig, RasterSimulation, empty_buffer
from complexsim.simulations.colorgrade import WHITE, apply_palette

logger = logging.getLogger(__name__)

# Canvas edge, in pixels, that the length ratios refer to
REFERENCE_SIZE = 600.0
SUBSTEPS = 3
# Simulated time units per second of host time
TIME_SCALE = 10.0
MAX_FRAME_DT = 0.1

PIVOT_COLOR = (100, 100, 100)
BOB1_COLOR = (255, 100, 100)
BOB2_COLOR = (100, 100, 255)

State = Tuple[float, float, float, float]


@dataclass
class PendulumConfig(RasterConfig):
    # Rod lengths as a fraction of the reference canvas
    length1: float = 0.2
    length2: float = 0.2
    mass1: float = 10.0
    mass2: float = 10.0
    gravity: float = 1.0
    # Velocity factor applied every substep
    damping: float = 0.9999
    scale: float = 1.0
    trace_length: int = 500
    show_trace: bool = True
    start_angle1: float = math.pi / 2.0
    start_angle2: float = math.pi / 2.0
    start_velocity1: float = 0.0
    start_velocity2: float = 0.0
    color_scheme: str = "rainbow"

    def __post_init__(self):
        super().__post_init__()
        for name in ("length1", "length2", "mass1", "mass2", "scale"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if int(self.trace_length) < 0:
            raise ValueError(f"trace_length must be >= 0, got {self.trace_length}")


class DoublePendulum(RasterSimulation):
    display_name = "Double Pendulum"
    PRESETS: Dict[str, Dict[str, float]] = {
        "classic": {"start_angle1": math.pi / 2.0, "start_angle2": math.pi / 2.0,
                    "start_velocity1": 0.0, "start_velocity2": 0.0},
        "chaotic": {"start_angle1": math.pi / 2.0 + 0.1, "start_angle2": math.pi / 2.0,
                    "start_velocity1": 0.0, "start_velocity2": 0.0},
        "high_energy": {"start_angle1": math.pi, "start_angle2": 0.0,
                        "start_velocity1": 0.2, "start_velocity2": 0.1},
    }

    def __init__(self, config: Optional[PendulumConfig] = None, seed: Optional[int] = None):
        super().__init__(config or PendulumConfig(), seed)
        self.cfg: PendulumConfig = self.cfg
        self.trace = deque(maxlen=max(int(self.cfg.trace_length), 1))
        self._restart()

    def _restart(self):
        c = self.cfg
        self.state: State = (c.start_angle1, c.start_angle2, c.start_velocity1, c.start_velocity2)
        self.trace.clear()

    def _on_config_change(self, previous):
        maxlen = max(int(self.cfg.trace_length), 1)
        if maxlen != self.trace.maxlen:
            self.trace = deque(self.trace, maxlen=maxlen)

    def apply_preset(self, name: str):
        """
        Load a starting state and restart from it.

        Raises:
            KeyError: unknown preset.
        """
        if name not in self.PRESETS:
            raise KeyError(f"Unknown preset '{name}' for {self.name}. Choose from: {', '.join(self.PRESETS)}")
        self.set_parameters(**self.PRESETS[name])
        self._restart()

    # -- physics --------------------------------------------------------------

    @property
    def lengths(self) -> Tuple[float, float]:
        c = self.cfg
        return c.length1 * REFERENCE_SIZE * c.scale, c.length2 * REFERENCE_SIZE * c.scale

    def derivatives(self, state: State) -> State:
        a1, a2, w1, w2 = state
        c = self.cfg
        g, m1, m2 = c.gravity, c.mass1, c.mass2
        l1, l2 = self.lengths
        delta = a1 - a2
        den = 2.0 * m1 + m2 - m2 * math.cos(2.0 * delta)

        acc1 = (
            -g * (2.0 * m1 + m2) * math.sin(a1)
            - m2 * g * math.sin(a1 - 2.0 * a2)
            - 2.0 * math.sin(delta) * m2 * (w2 * w2 * l2 + w1 * w1 * l1 * math.cos(delta))
        ) / (l1 * den)
        acc2 = (
            2.0 * math.sin(delta)
            * (w1 * w1 * l1 * (m1 + m2) + g * (m1 + m2) * math.cos(a1) + w2 * w2 * l2 * m2 * math.cos(delta))
        ) / (l2 * den)
        return w1, w2, acc1, acc2

    def _rk4(self, state: State, h: float) -> State:
        s = np.asarray(state)
        k1 = np.asarray(self.derivatives(state))
        k2 = np.asarray(self.derivatives(tuple(s + 0.5 * h * k1)))
        k3 = np.asarray(self.derivatives(tuple(s + 0.5 * h * k2)))
        k4 = np.asarray(self.derivatives(tuple(s + h * k3)))
        return tuple(s + h * (k1 + 2.0 * k2 + 2.0 * k3 + k4) / 6.0)

    def bob_offsets(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        """Both bobs relative to the pivot, in reference pixels (y down)."""
        a1, a2 = self.state[0], self.state[1]
        l1, l2 = self.lengths
        x1, y1 = l1 * math.sin(a1), l1 * math.cos(a1)
        return (x1, y1), (x1 + l2 * math.sin(a2), y1 + l2 * math.cos(a2))

    def energy(self) -> float:
        """Kinetic plus potential energy, with the pivot at zero height."""
        a1, a2, w1, w2 = self.state
        c = self.cfg
        l1, l2 = self.lengths
        kinetic = (
            0.5 * c.mass1 * (l1 * w1) ** 2
            + 0.5 * c.mass2 * ((l1 * w1) ** 2 + (l2 * w2) ** 2 + 2.0 * l1 * l2 * w1 * w2 * math.cos(a1 - a2))
        )
        potential = -(c.mass1 + c.mass2) * c.gravity * l1 * math.cos(a1) - c.mass2 * c.gravity * l2 * math.cos(a2)
        return kinetic + potential

    def advance(self, dt: float):
        if dt <= 0:
            return
        h = min(float(dt), MAX_FRAME_DT) * TIME_SCALE * self.cfg.speed
        for _ in range(SUBSTEPS):
            a1, a2, w1, w2 = self._rk4(self.state, h)
            self.state = (a1, a2, w1 * self.cfg.damping, w2 * self.cfg.damping)
            if not all(math.isfinite(v) for v in self.state):
                logger.warning("%s: state diverged, restarting", self.name)
                self._restart()
                return
            self.trace.append(self.bob_offsets()[1])

    # -- drawing --------------------------------------------------------------

    def compute(self, width: int, height: int) -> np.ndarray:
        if width <= 0 or height <= 0:
            return empty_buffer(width, height)
        width, height = int(width), int(height)
        cfg = self.cfg
        img = Image.new("RGB", (width, height), (0, 0, 0))
        draw = ImageDraw.Draw(img)
        cx, cy = width / 2.0, height / 4.0
        s = min(width, height) / REFERENCE_SIZE

        if cfg.show_trace and self.trace:
            trace = np.asarray(self.trace)
            colors = apply_palette(np.arange(len(trace)) / len(trace), cfg.color_scheme, cfg.invert_colors)
            for (tx, ty), color in zip(trace, colors):
                px, py = cx + tx * s, cy + ty * s
                draw.ellipse([px - 2, py - 2, px + 2, py + 2], fill=tuple(int(v) for v in color))

        (x1, y1), (x2, y2) = self.bob_offsets()
        b1 = (cx + x1 * s, cy + y1 * s)
        b2 = (cx + x2 * s, cy + y2 * s)
        draw.line([(cx, cy), b1], fill=WHITE)
        draw.line([b1, b2], fill=WHITE)

        r1, r2 = math.sqrt(cfg.mass1 * 2.0), math.sqrt(cfg.mass2 * 2.0)
        draw.ellipse([cx - 5, cy - 5, cx + 5, cy + 5], fill=PIVOT_COLOR)
        draw.ellipse([b1[0] - r1, b1[1] - r1, b1[0] + r1, b1[1] + r1], fill=BOB1_COLOR)
        draw.ellipse([b2[0] - r2, b2[1] - r2, b2[0] + r2, b2[1] + r2], fill=BOB2_COLOR)
        return np.asarray(img, dtype=np.uint8).copy()

    def reset(self):
        self._reseed()
        self._restart()
