import logging
import os

import numpy as np
import pytest

# pygame surfaces are drawn off-screen; never open a real window.
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

from logger_setup import LOGGER_NAME
from sph_engine import SPHEngine
from flocking_engine import FlockingEngine


@pytest.fixture(autouse=True)
def app_logger():
    """Lets caplog see the application logger and undoes setup_logging()."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.propagate = True
    logger.setLevel(logging.DEBUG)
    yield logger
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True


@pytest.fixture
def rng():
    return np.random.default_rng(404)


@pytest.fixture
def sph(rng):
    return SPHEngine(1000, 1000, rng=rng)


@pytest.fixture
def ecosystem(rng):
    return FlockingEngine(800, 600, rng=rng)
