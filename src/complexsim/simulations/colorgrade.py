"""
Colour palettes.

Maps scalar fields in [0, 1] to RGB via HSV or piecewise-linear gradients.
Every function is vectorized; no per-pixel Python loops.
"""

from typing import Dict, List, Tuple

import numpy as np
from PIL import Image

BLACK = (0, 0, 0)
WHITE = (255, 255, 255)

# Gradient stops: (position, (r, g, b)) with channels in [0, 1]
_Stops = List[Tuple[float, Tuple[float, float, float]]]

_GRADIENTS: Dict[str, _Stops] = {
    "classic": [
        (0.0, (0.0, 0.0, 0.5)),
        (0.25, (0.0, 0.4, 1.0)),
        (0.5, (0.3, 1.0, 0.9)),
        (0.75, (1.0, 0.9, 0.2)),
        (1.0, (1.0, 0.3, 0.0)),
    ],
    "fire": [
        (0.0, (0.0, 0.0, 0.0)),
        (0.3, (0.7, 0.0, 0.0)),
        (0.6, (1.0, 0.5, 0.0)),
        (0.85, (1.0, 0.9, 0.2)),
        (1.0, (1.0, 1.0, 1.0)),
    ],
    "ocean": [
        (0.0, (0.0, 0.0, 0.1)),
        (0.35, (0.0, 0.2, 0.5)),
        (0.65, (0.0, 0.6, 0.7)),
        (0.9, (0.5, 0.9, 1.0)),
        (1.0, (1.0, 1.0, 1.0)),
    ],
    # The well-known Ultra Fractal gradient, wrapped so t=1 meets t=0
    "ultra": [
        (0.0, (0.0, 7 / 255, 100 / 255)),
        (0.16, (32 / 255, 107 / 255, 203 / 255)),
        (0.42, (237 / 255, 1.0, 1.0)),
        (0.6425, (1.0, 170 / 255, 0.0)),
        (0.8575, (0.0, 2 / 255, 0.0)),
        (1.0, (0.0, 7 / 255, 100 / 255)),
    ],
    "plasma": [
        (0.0, (0.05, 0.03, 0.53)),
        (0.25, (0.49, 0.01, 0.66)),
        (0.5, (0.80, 0.28, 0.47)),
        (0.75, (0.97, 0.59, 0.25)),
        (1.0, (0.94, 0.98, 0.13)),
    ],
    "viridis": [
        (0.0, (0.27, 0.00, 0.33)),
        (0.25, (0.23, 0.32, 0.55)),
        (0.5, (0.13, 0.57, 0.55)),
        (0.75, (0.37, 0.79, 0.38)),
        (1.0, (0.99, 0.91, 0.14)),
    ],
    "inferno": [
        (0.0, (0.00, 0.00, 0.02)),
        (0.25, (0.34, 0.06, 0.43)),
        (0.5, (0.73, 0.21, 0.33)),
        (0.75, (0.98, 0.55, 0.04)),
        (1.0, (0.99, 1.00, 0.64)),
    ],
    "magma": [
        (0.0, (0.00, 0.00, 0.02)),
        (0.25, (0.32, 0.07, 0.48)),
        (0.5, (0.72, 0.22, 0.47)),
        (0.75, (0.99, 0.53, 0.38)),
        (1.0, (0.99, 0.99, 0.75)),
    ],
    "grayscale": [
        (0.0, (0.0, 0.0, 0.0)),
        (1.0, (1.0, 1.0, 1.0)),
    ],
}

COLOR_SCHEMES = tuple(sorted(list(_GRADIENTS) + ["rainbow"]))


def _hsv_to_rgb_array(
    h: np.ndarray,
    s: np.ndarray,
    v: np.ndarray,
) -> np.ndarray:
    """
    Vectorized HSV to RGB conversion.

    Args:
        h, s, v: Arrays broadcastable to one shape, values in [0, 1].

    Returns:
        (..., 3) float32 array in [0, 1].
    """
    h, s, v = np.broadcast_arrays(
        np.asarray(h, dtype=np.float32),
        np.asarray(s, dtype=np.float32),
        np.asarray(v, dtype=np.float32),
    )
    h6 = (h * 6.0) % 6.0
    i = h6.astype(np.int32)
    f = h6 - i

    p = v * (1.0 - s)
    q = v * (1.0 - s * f)
    t = v * (1.0 - s * (1.0 - f))

    rgb = np.zeros(h.shape + (3,), dtype=np.float32)

    mask0 = i == 0
    mask1 = i == 1
    mask2 = i == 2
    mask3 = i == 3
    mask4 = i == 4
    mask5 = i == 5

    rgb[mask0, 0] = v[mask0]; rgb[mask0, 1] = t[mask0]; rgb[mask0, 2] = p[mask0]
    rgb[mask1, 0] = q[mask1]; rgb[mask1, 1] = v[mask1]; rgb[mask1, 2] = p[mask1]
    rgb[mask2, 0] = p[mask2]; rgb[mask2, 1] = v[mask2]; rgb[mask2, 2] = t[mask2]
    rgb[mask3, 0] = p[mask3]; rgb[mask3, 1] = q[mask3]; rgb[mask3, 2] = v[mask3]
    rgb[mask4, 0] = t[mask4]; rgb[mask4, 1] = p[mask4]; rgb[mask4, 2] = v[mask4]
    rgb[mask5, 0] = v[mask5]; rgb[mask5, 1] = p[mask5]; rgb[mask5, 2] = q[mask5]

    return rgb


def hsv_to_rgb(h, s, v) -> np.ndarray:
    """HSV in [0, 1] to uint8 RGB with a trailing channel axis."""
    return to_uint8(_hsv_to_rgb_array(h, s, v))


def _gradient(t: np.ndarray, stops: _Stops) -> np.ndarray:
    xs = [pos for pos, _ in stops]
    rgb = np.empty(t.shape + (3,), dtype=np.float32)
    for ch in range(3):
        rgb[..., ch] = np.interp(t, xs, [color[ch] for _, color in stops])
    return rgb


def palette_float(t, scheme: str = "classic") -> np.ndarray:
    """
    Map ``t`` to float RGB in [0, 1] using a named scheme.

    Values outside [0, 1] are clipped. NaN maps to 0.

    Raises:
        ValueError: unknown scheme name.
    """
    t = np.nan_to_num(np.asarray(t, dtype=np.float32), nan=0.0)
    t = np.clip(t, 0.0, 1.0)
    if scheme == "rainbow":
        return _hsv_to_rgb_array(t, np.ones_like(t), np.ones_like(t))
    try:
        stops = _GRADIENTS[scheme]
    except KeyError:
        raise ValueError(
            f"Unknown color scheme '{scheme}'. Choose from: {', '.join(COLOR_SCHEMES)}"
        ) from None
    return _gradient(t, stops)


def apply_palette(t, scheme: str = "classic", invert: bool = False) -> np.ndarray:
    """Map ``t`` to uint8 RGB, optionally inverted."""
    rgb = palette_float(t, scheme)
    if invert:
        rgb = 1.0 - rgb
    return to_uint8(rgb)


def to_uint8(rgb: np.ndarray) -> np.ndarray:
    return (np.clip(rgb, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)


def to_image(buffer: np.ndarray) -> Image.Image:
    """Wrap a (H, W, 3) uint8 pixel buffer as a PIL image."""
    return Image.fromarray(np.ascontiguousarray(buffer, dtype=np.uint8))
