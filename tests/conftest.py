"""Pytest configuration and shared fixtures."""

import logging

import numpy as np
import pytest

from complexsim.simulations.gallery import Gallery

# Host frame delta used throughout the tests
FRAME_DT = 1.0 / 60.0


@pytest.fixture
def frame_dt() -> float:
    """One 60 fps frame in seconds."""
    return FRAME_DT


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded generator for building test inputs."""
    return np.random.default_rng(1234)


@pytest.fixture(scope="module")
def gallery() -> Gallery:
    """
    Every registered simulation, seeded.

    Module-scoped because building it runs attractor warm-ups; tests that
    mutate a simulation must reset it.
    """
    return Gallery.default(seed=0)


@pytest.fixture(autouse=True)
def _detach_log_handlers():
    """The CLI binds handlers to the captured stdout; drop them between tests."""
    yield
    logger = logging.getLogger("complexsim")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
