"""
complexsim: a gallery of real-time visual simulations.

Fractals, chaotic attractors, particle fields and cellular automata behind
two small contracts (raster and point cloud).
"""

__version__ = "0.1.0"
