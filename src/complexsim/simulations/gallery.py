"""
Host-side registry and frame driver.

The gallery keeps one list of raster simulations and one of point-cloud
simulations. Each frame the host advances a simulation and collects its
pixel buffer or point array; the viewer that draws them lives elsewhere.
"""

import logging
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Type, Union

import numpy as np

from complexsim.simulations.attractor import (
    AizawaAttractor,
    ChenAttractor,
    DadrasAttractor,
    HalvorsenAttractor,
    LorenzAttractor,
    RosslerAttractor,
    ThomasAttractor,
)
from complexsim.simulations.base import PointCloudSimulation, RasterSimulation, Simulation
from complexsim.simulations.boids import Boids
from complexsim.simulations.cyclic import CyclicAutomaton
from complexsim.simulations.dla import DiffusionLimitedAggregation
from complexsim.simulations.elementary import ElementaryAutomaton
from complexsim.simulations.falling_sand import FallingSand
from complexsim.simulations.fractal import BurningShip, Julia, Mandelbrot
from complexsim.simulations.galaxy import GalaxySpiral
from complexsim.simulations.langton import LangtonsAnt
from complexsim.simulations.life import GameOfLife
from complexsim.simulations.magnetic import MagneticField
from complexsim.simulations.nbody import NBodyGravity
from complexsim.simulations.particle_attractor import ParticleAttractor
from complexsim.simulations.pendulum import DoublePendulum
from complexsim.simulations.reaction_diffusion import ReactionDiffusion
from complexsim.simulations.sandpile import Sandpile
from complexsim.simulations.slime_mold import SlimeMold
from complexsim.simulations.sph import SPHFluid
from complexsim.simulations.vortex import VortexTurbulence
from complexsim.simulations.waves import WaveInterference

logger = logging.getLogger(__name__)

RASTER_SIMULATIONS: Dict[str, Type[RasterSimulation]] = {
    "mandelbrot": Mandelbrot,
    "julia": Julia,
    "burning_ship": BurningShip,
    "life": GameOfLife,
    "elementary": ElementaryAutomaton,
    "cyclic": CyclicAutomaton,
    "langton": LangtonsAnt,
    "sandpile": Sandpile,
    "falling_sand": FallingSand,
    "reaction_diffusion": ReactionDiffusion,
    "dla": DiffusionLimitedAggregation,
    "slime_mold": SlimeMold,
    "wave_interference": WaveInterference,
    "double_pendulum": DoublePendulum,
}

POINT_CLOUD_SIMULATIONS: Dict[str, Type[PointCloudSimulation]] = {
    "lorenz": LorenzAttractor,
    "rossler": RosslerAttractor,
    "aizawa": AizawaAttractor,
    "halvorsen": HalvorsenAttractor,
    "dadras": DadrasAttractor,
    "thomas": ThomasAttractor,
    "chen": ChenAttractor,
    "sph": SPHFluid,
    "nbody": NBodyGravity,
    "boids": Boids,
    "magnetic": MagneticField,
    "vortex": VortexTurbulence,
    "particle_attractor": ParticleAttractor,
    "galaxy": GalaxySpiral,
}

RASTER = "raster"
POINT_CLOUD = "point-cloud"

ProgressCallback = Callable[[int, int], None]


def registered() -> List[Tuple[str, str, str]]:
    """``(key, kind, display name)`` for every registered simulation."""
    rows = [(key, RASTER, cls.display_name) for key, cls in RASTER_SIMULATIONS.items()]
    rows += [(key, POINT_CLOUD, cls.display_name) for key, cls in POINT_CLOUD_SIMULATIONS.items()]
    return rows


def kind_of(sim: Simulation) -> str:
    return RASTER if isinstance(sim, RasterSimulation) else POINT_CLOUD


def create_simulation(name: str, seed: Optional[int] = None, **params) -> Simulation:
    """
    Build a registered simulation by key and apply parameter overrides.

    Raises:
        KeyError: unknown simulation key.
        ValueError: unknown or invalid parameter.
    """
    cls = RASTER_SIMULATIONS.get(name) or POINT_CLOUD_SIMULATIONS.get(name)
    if cls is None:
        known = list(RASTER_SIMULATIONS) + list(POINT_CLOUD_SIMULATIONS)
        raise KeyError(f"Unknown simulation '{name}'. Choose from: {', '.join(known)}")
    sim = cls(seed=seed)
    if params:
        sim.set_parameters(**params)
    return sim


def run_frames(
    sim: Simulation,
    frames: int,
    dt: float,
    width: int = 0,
    height: int = 0,
    progress_callback: Optional[ProgressCallback] = None,
) -> Iterator[np.ndarray]:
    """
    Drive a simulation for ``frames`` host frames.

    Raster simulations are advanced by ``dt`` and rendered at
    ``width`` x ``height``; point clouds are stepped and sampled.

    Yields:
        One pixel buffer or point array per frame.
    """
    total = max(int(frames), 0)
    for i in range(total):
        if isinstance(sim, RasterSimulation):
            sim.advance(dt)
            yield sim.compute(width, height)
        else:
            sim.step(dt)
            yield sim.get_points()

        if progress_callback:
            progress_callback(i + 1, total)


class Gallery:
    """Two homogeneous collections, one per simulation contract."""

    def __init__(self):
        self.rasters: List[RasterSimulation] = []
        self.point_clouds: List[PointCloudSimulation] = []
        self._keys: Dict[str, Simulation] = {}

    @classmethod
    def default(cls, seed: Optional[int] = None) -> "Gallery":
        """Every registered simulation with its default configuration."""
        gallery = cls()
        for key, sim_cls in RASTER_SIMULATIONS.items():
            gallery.add(key, sim_cls(seed=seed))
        for key, sim_cls in POINT_CLOUD_SIMULATIONS.items():
            gallery.add(key, sim_cls(seed=seed))
        logger.debug(
            "Gallery built: %d raster, %d point-cloud", len(gallery.rasters), len(gallery.point_clouds)
        )
        return gallery

    def add(self, key: str, sim: Union[RasterSimulation, PointCloudSimulation]):
        """
        Register a simulation under ``key``.

        Raises:
            ValueError: ``key`` is already taken.
            TypeError: ``sim`` implements neither contract.
        """
        if key in self._keys:
            raise ValueError(f"Simulation key '{key}' already registered")
        if isinstance(sim, RasterSimulation):
            self.rasters.append(sim)
        elif isinstance(sim, PointCloudSimulation):
            self.point_clouds.append(sim)
        else:
            raise TypeError(f"{type(sim).__name__} is not a raster or point-cloud simulation")
        self._keys[key] = sim

    def keys(self) -> List[str]:
        return list(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def _lookup(self, name: str, kind: type):
        sim = self._keys.get(name)
        if not isinstance(sim, kind):
            known = [k for k, s in self._keys.items() if isinstance(s, kind)]
            raise KeyError(f"No {kind.__name__} named '{name}'. Choose from: {', '.join(known)}")
        return sim

    def raster(self, name: str) -> RasterSimulation:
        return self._lookup(name, RasterSimulation)

    def point_cloud(self, name: str) -> PointCloudSimulation:
        return self._lookup(name, PointCloudSimulation)

    def frame_raster(self, index: int, dt: float, width: int, height: int) -> np.ndarray:
        """Advance raster ``index`` by ``dt`` and render it."""
        sim = self.rasters[index]
        sim.advance(dt)
        return sim.compute(width, height)

    def frame_point_cloud(self, index: int, dt: float) -> np.ndarray:
        """Step point cloud ``index`` by ``dt`` and return its points."""
        sim = self.point_clouds[index]
        sim.step(dt)
        return sim.get_points()

    def reset_all(self):
        for sim in self._keys.values():
            sim.reset()
