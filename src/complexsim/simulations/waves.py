"""
Interference of circular waves from point sources.

Every pixel sums ``sin(2π d / wavelength - t * speed)`` over the active
sources, optionally damped with distance, and maps the average onto a
palette. Source positions are fractions of the canvas so the pattern
scales with it.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw

from complexsim.simulations.base import RasterConfig, RasterSimulation, empty_buffer
from complexsim.simulations.colorgrade import WHITE, apply_palette

logger = logging.getLogger(__name__)

RED = (255, 0, 0)
MAX_SOURCES = 6

SOURCE_LAYOUTS = {
    "pair": [(0.3, 0.5), (0.7, 0.5)],
    "triangle": [(0.3, 0.3), (0.7, 0.3), (0.5, 0.7)],
    "corners": [(0.25, 0.25), (0.75, 0.25), (0.25, 0.75), (0.75, 0.75)],
    "circle": [
        (0.5 + 0.3 * math.cos(i / 6.0 * 2.0 * math.pi), 0.5 + 0.3 * math.sin(i / 6.0 * 2.0 * math.pi))
        for i in range(6)
    ],
}


@dataclass
class WaveConfig(RasterConfig):
    wave_count: int = 3
    wavelength: float = 50.0
    # Phase advance in radians per second
    speed: float = 2.0
    # Amplitude falls off as exp(-d * damping / 100)
    damping: float = 0.0
    layout: str = "triangle"
    show_sources: bool = True
    color_scheme: str = "ocean"

    def __post_init__(self):
        super().__post_init__()
        if self.layout not in SOURCE_LAYOUTS:
            raise ValueError(f"Unknown layout '{self.layout}'. Choose from: {', '.join(SOURCE_LAYOUTS)}")
        if not 0 <= int(self.wave_count) <= MAX_SOURCES:
            raise ValueError(f"wave_count must be in [0, {MAX_SOURCES}], got {self.wave_count}")
        if self.wavelength <= 0:
            raise ValueError(f"wavelength must be positive, got {self.wavelength}")


class WaveInterference(RasterSimulation):
    display_name = "Wave Interference"

    def __init__(self, config: Optional[WaveConfig] = None, seed: Optional[int] = None):
        super().__init__(config or WaveConfig(), seed)
        self.cfg: WaveConfig = self.cfg
        self.time = 0.0
        self.sources: List[Tuple[float, float]] = []
        self._place_sources()

    def _place_sources(self):
        """Layout positions first, random fill-ins for any further sources."""
        self.sources = list(SOURCE_LAYOUTS[self.cfg.layout])
        while len(self.sources) < int(self.cfg.wave_count):
            self.sources.append(tuple(self.rng.uniform(0.2, 0.8, 2)))
        logger.debug("%s: %s layout, %d source(s)", self.name, self.cfg.layout, len(self.sources))

    def _on_config_change(self, previous):
        if self.cfg.layout != previous.layout:
            self._place_sources()
        while len(self.sources) < int(self.cfg.wave_count):
            self.sources.append(tuple(self.rng.uniform(0.2, 0.8, 2)))

    @property
    def active_sources(self) -> List[Tuple[float, float]]:
        return self.sources[:int(self.cfg.wave_count)]

    def advance(self, dt: float):
        if dt > 0:
            self.time += dt

    def wave_field(self, width: int, height: int) -> np.ndarray:
        """Averaged wave height in [-1, 1] for every pixel."""
        cfg = self.cfg
        sources = self.active_sources
        if not sources:
            return np.zeros((height, width))
        ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
        total = np.zeros((height, width))
        for sx, sy in sources:
            d = np.hypot(xs - width * sx, ys - height * sy)
            phase = d / cfg.wavelength * 2.0 * math.pi - self.time * cfg.speed
            wave = np.sin(phase)
            if cfg.damping > 0:
                wave *= np.exp(-d * cfg.damping / 100.0)
            total += wave
        return total / len(sources)

    def compute(self, width: int, height: int) -> np.ndarray:
        if width <= 0 or height <= 0:
            return empty_buffer(width, height)
        width, height = int(width), int(height)
        cfg = self.cfg
        intensity = (self.wave_field(width, height) + 1.0) / 2.0
        pixels = apply_palette(intensity, cfg.color_scheme, cfg.invert_colors)
        if not cfg.show_sources:
            return pixels

        img = Image.fromarray(pixels)
        draw = ImageDraw.Draw(img)
        for sx, sy in self.active_sources:
            x, y = width * sx, height * sy
            draw.ellipse([x - 8, y - 8, x + 8, y + 8], fill=WHITE)
            draw.ellipse([x - 5, y - 5, x + 5, y + 5], fill=RED)
        return np.asarray(img, dtype=np.uint8).copy()

    def reset(self):
        self._reseed()
        self.time = 0.0
        self._place_sources()
