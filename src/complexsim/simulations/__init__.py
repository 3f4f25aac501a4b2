"""
Simulation kernels and the gallery that drives them.
Raster kernels render RGB buffers; point-cloud kernels return (N, 3) points.
"""

from complexsim.simulations.attractor import Attractor, LorenzAttractor
from complexsim.simulations.automata import AutomatonSimulation
from complexsim.simulations.base import BaseConfig, PointCloudSimulation, RasterSimulation
from complexsim.simulations.fractal import BurningShip, Julia, Mandelbrot
from complexsim.simulations.gallery import Gallery, create_simulation
from complexsim.simulations.particles import BoundaryPolicy
