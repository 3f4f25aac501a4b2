"""
CLI entry point for running simulations headless.

Usage:
    complexsim list
    complexsim run <name> [options]
    python -m complexsim run <name> [options]
"""

import argparse
import dataclasses
import enum
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from complexsim.logging_config import setup_logging
from complexsim.simulations.base import RasterSimulation, Simulation
from complexsim.simulations.colorgrade import to_image
from complexsim.simulations.gallery import (
    create_simulation,
    kind_of,
    registered,
    run_frames,
)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _progress_bar(current: int, total: int, width: int = 35):
    """Print a progress bar to stdout."""
    pct = current / max(total, 1) * 100
    filled = int(width * current / max(total, 1))
    bar = "#" * filled + "-" * (width - filled)
    if sys.stdout.isatty():
        sys.stdout.write(f"\r[{bar}] {pct:5.1f}%  frame {current}/{total}")
        sys.stdout.flush()
        if current >= total:
            sys.stdout.write("\n")
    else:
        if current % max(1, total // 20) == 0 or current >= total:
            print(f"{pct:5.1f}%  frame {current}/{total}", flush=True)


def _assignment(text: str) -> Tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got '{text}'")
    return key.strip(), value.strip()


def _coerce(current: Any, raw: str) -> Any:
    """Convert a command-line string to the type of the current value."""
    if isinstance(current, bool):
        lowered = raw.lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"expected a boolean, got '{raw}'")
    if isinstance(current, enum.Enum):
        return type(current)(raw)
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


def parse_overrides(sim: Simulation, pairs: Sequence[Tuple[str, str]]) -> Dict[str, Any]:
    """
    Typed parameter overrides for ``sim`` from ``key=value`` pairs.

    Raises:
        ValueError: unknown parameter name or unparsable value.
    """
    fields = {f.name for f in dataclasses.fields(sim.cfg)}
    overrides = {}
    for key, raw in pairs:
        if key not in fields:
            raise ValueError(f"Unknown parameter for {sim.name}: {key}")
        try:
            overrides[key] = _coerce(getattr(sim.cfg, key), raw)
        except ValueError as exc:
            raise ValueError(f"Bad value for {key}: {exc}") from None
    return overrides


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="complexsim",
        description="Headless runner for fractal, attractor, particle and automaton simulations",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List every registered simulation")

    run = sub.add_parser("run", help="Run one simulation for a number of frames")
    run.add_argument("name", help="Simulation key (see 'complexsim list')")
    run.add_argument("-n", "--frames", type=int, default=120, help="Frames to run (default: 120)")
    run.add_argument("--dt", type=float, default=1.0 / 60.0, help="Seconds per frame (default: 1/60)")
    run.add_argument("--width", type=int, default=320, help="Raster width (default: 320)")
    run.add_argument("--height", type=int, default=240, help="Raster height (default: 240)")
    run.add_argument("--seed", type=int, default=None, help="Random seed")
    run.add_argument(
        "--snapshot", type=Path, default=None,
        help="Save the last raster frame as an image (png, jpg, ...)",
    )
    run.add_argument(
        "--set", dest="overrides", type=_assignment, action="append", default=[],
        metavar="KEY=VALUE", help="Override a simulation parameter (repeatable)",
    )
    run.add_argument(
        "--log-level", type=str, default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    run.add_argument("--log-file", type=str, default=None, help="Also write log records to this file")
    return parser


def _list():
    print(f"{'KEY':<20} {'KIND':<12} NAME")
    for key, kind, display in registered():
        print(f"{key:<20} {kind:<12} {display}")


def _run(args) -> int:
    setup_logging(getattr(logging, args.log_level), log_file=args.log_file)

    sim = create_simulation(args.name, seed=args.seed)
    overrides = parse_overrides(sim, args.overrides)
    if overrides:
        sim.set_parameters(**overrides)

    kind = kind_of(sim)
    if args.snapshot is not None and kind != "raster":
        raise ValueError("--snapshot is only available for raster simulations")

    frames = max(args.frames, 0)
    size = f" at {args.width}x{args.height}" if isinstance(sim, RasterSimulation) else ""
    print(f"Running {sim.name} ({kind}) for {frames} frames{size}")
    for key in sorted(overrides):
        print(f"  {key} = {overrides[key]}")

    t0 = time.time()
    last = None
    for last in run_frames(sim, frames, args.dt, args.width, args.height, progress_callback=_progress_bar):
        pass
    elapsed = time.time() - t0

    print(f"\nDone! {frames} frames in {elapsed:.1f}s ({frames / max(elapsed, 0.01):.1f} fps)")

    if isinstance(sim, RasterSimulation):
        if args.snapshot is not None:
            if last is None:
                last = sim.compute(args.width, args.height)
            to_image(last).save(args.snapshot)
            print(f"  Snapshot: {args.snapshot}")
    else:
        points = last if last is not None else sim.get_points()
        print(f"  Points: {len(points)}")
        if len(points):
            lo, hi = points.min(axis=0), points.max(axis=0)
            print(f"  Bounds: {_fmt(lo)} .. {_fmt(hi)}")
    return 0


def _fmt(v: np.ndarray) -> str:
    return "(" + ", ".join(f"{x:.2f}" for x in v) + ")"


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "list":
        _list()
        return 0

    try:
        return _run(args)
    except (KeyError, ValueError, TypeError, OSError) as exc:
        message = exc.args[0] if isinstance(exc, KeyError) and exc.args else exc
        print(f"Error: {message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
