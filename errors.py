# errors.py
"""
Exception types raised by the physics core.

Numeric degeneracies (coincident particles, zero mass) are masked inside
the kernels and never show up here. Only structural failures are raised,
and the controller always hands them on to its caller.
"""
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from reduction import AggregateStats


class SimulationError(Exception):
    """Base class for every failure reported by the physics core."""


class InvalidBufferSize(SimulationError):
    """A particle buffer does not hold the expected number of particles."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Particle buffer holds {actual} particles, expected {expected}."
        )


class ZeroActiveParticles(SimulationError):
    """
    The reduction found no particle with a non-zero mass.

    Non-fatal. `stats` still carries the bounding box of all particles,
    with center_of_mass and average_velocity set to None.
    """

    def __init__(self, stats: Optional["AggregateStats"] = None):
        self.stats = stats
        super().__init__(
            "No active particles: center of mass and average velocity are unavailable."
        )


class ResourceAllocationFailure(SimulationError):
    """Memory or compute resources for a pass could not be obtained."""
