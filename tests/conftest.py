import logging

import numpy as np
import pytest

from particle import ParticleSet
from physics import SimulationParameters


@pytest.fixture
def still_params():
    """No gravity, so only collisions can move anything."""
    return SimulationParameters(delta_time=0.1, gravitational_constant=0.0, restitution=0.4)


@pytest.fixture
def grid_particles():
    """A 5x5 grid of separated, resting particles."""
    xs, ys = np.meshgrid(np.arange(5, dtype=np.float32), np.arange(5, dtype=np.float32))
    positions = np.stack([xs.ravel(), ys.ravel()], axis=1)
    return ParticleSet.from_arrays(positions, radii=0.1, masses=1.0)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
