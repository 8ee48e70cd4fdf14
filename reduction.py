# reduction.py
"""
Aggregate statistics over a particle set.

Computes the center of mass, bounding box and mean velocity that the
camera-follow logic consumes. The fold runs in two stages: a parallel
pass builds one partial result per chunk of particles, then the partials
are merged pairwise as a tree. Sum, min and max are associative and
commutative, so neither the chunking nor the merge order changes the
result beyond floating-point rounding.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from numba import njit, prange

from constants import MASS, POS_X, POS_Y, REDUCTION_CHUNK_SIZE, VEL_X, VEL_Y
from errors import ZeroActiveParticles
from particle import ParticleSet

# --- Data Contracts ---
#
# reduce(particles: ParticleSet, chunk_size: int = REDUCTION_CHUNK_SIZE,
#        tick: Optional[int] = None) -> AggregateStats:
#   - Outputs: statistics of the whole set. Bounds cover every particle,
#     center_of_mass and average_velocity cover active particles only.
#   - Errors: ZeroActiveParticles when no particle has non-zero mass. The
#     exception's `stats` attribute holds the bounds with the other two
#     fields set to None.

# Columns of a partial result row.
_SUM_MX, _SUM_MY, _SUM_M = 0, 1, 2
_MIN_X, _MIN_Y, _MAX_X, _MAX_Y = 3, 4, 5, 6
_SUM_VX, _SUM_VY, _COUNT = 7, 8, 9
_PARTIAL_WIDTH = 10

Vec2 = Tuple[float, float]


@dataclass(frozen=True)
class AggregateStats:
    """Statistics of one particle buffer. `tick` is the controller tick it describes."""
    center_of_mass: Optional[Vec2]
    bounding_min: Vec2
    bounding_max: Vec2
    average_velocity: Optional[Vec2]
    active_count: int
    total_mass: float
    tick: Optional[int] = None

    @property
    def available(self) -> bool:
        """False when there were no active particles to average over."""
        return self.center_of_mass is not None

    @property
    def extent(self) -> Vec2:
        return (
            self.bounding_max[0] - self.bounding_min[0],
            self.bounding_max[1] - self.bounding_min[1],
        )


@njit(parallel=True, cache=True)
def _reduce_chunks(data, chunk_size):
    """
    Numba-jitted first stage: one partial row per chunk, chunks in parallel.
    Every element is widened to float64 before it enters a sum.
    """
    n = data.shape[0]
    chunks = (n + chunk_size - 1) // chunk_size
    partials = np.empty((chunks, _PARTIAL_WIDTH), dtype=np.float64)

    for c in prange(chunks):
        start = c * chunk_size
        stop = min(start + chunk_size, n)

        sum_mx = 0.0
        sum_my = 0.0
        sum_m = 0.0
        sum_vx = 0.0
        sum_vy = 0.0
        count = 0.0
        min_x = np.inf
        min_y = np.inf
        max_x = -np.inf
        max_y = -np.inf

        for i in range(start, stop):
            x = np.float64(data[i, POS_X])
            y = np.float64(data[i, POS_Y])
            min_x = min(min_x, x)
            min_y = min(min_y, y)
            max_x = max(max_x, x)
            max_y = max(max_y, y)

            m = np.float64(data[i, MASS])
            if m != 0.0:
                sum_mx += m * x
                sum_my += m * y
                sum_m += m
                sum_vx += np.float64(data[i, VEL_X])
                sum_vy += np.float64(data[i, VEL_Y])
                count += 1.0

        partials[c, _SUM_MX] = sum_mx
        partials[c, _SUM_MY] = sum_my
        partials[c, _SUM_M] = sum_m
        partials[c, _MIN_X] = min_x
        partials[c, _MIN_Y] = min_y
        partials[c, _MAX_X] = max_x
        partials[c, _MAX_Y] = max_y
        partials[c, _SUM_VX] = sum_vx
        partials[c, _SUM_VY] = sum_vy
        partials[c, _COUNT] = count

    return partials


@njit(cache=True)
def _merge_rows(level, target, a, b):
    level[target, _SUM_MX] = level[a, _SUM_MX] + level[b, _SUM_MX]
    level[target, _SUM_MY] = level[a, _SUM_MY] + level[b, _SUM_MY]
    level[target, _SUM_M] = level[a, _SUM_M] + level[b, _SUM_M]
    level[target, _MIN_X] = min(level[a, _MIN_X], level[b, _MIN_X])
    level[target, _MIN_Y] = min(level[a, _MIN_Y], level[b, _MIN_Y])
    level[target, _MAX_X] = max(level[a, _MAX_X], level[b, _MAX_X])
    level[target, _MAX_Y] = max(level[a, _MAX_Y], level[b, _MAX_Y])
    level[target, _SUM_VX] = level[a, _SUM_VX] + level[b, _SUM_VX]
    level[target, _SUM_VY] = level[a, _SUM_VY] + level[b, _SUM_VY]
    level[target, _COUNT] = level[a, _COUNT] + level[b, _COUNT]


@njit(cache=True)
def _tree_merge(partials):
    """
    Second stage: merges neighbouring pairs level by level until one row is left.

    Merging works in place; row k of the next level is written only after
    rows 2k and 2k+1 of the current level have been read.
    """
    level = partials.copy()
    count = level.shape[0]
    while count > 1:
        pairs = count // 2
        for k in range(pairs):
            _merge_rows(level, k, 2 * k, 2 * k + 1)
        if count % 2 == 1:
            for col in range(_PARTIAL_WIDTH):
                level[pairs, col] = level[count - 1, col]
        count = pairs + count % 2
    return level[0].copy()


def reduce(
    particles: ParticleSet,
    chunk_size: int = REDUCTION_CHUNK_SIZE,
    tick: Optional[int] = None,
) -> AggregateStats:
    """
    Folds a particle set into its AggregateStats.

    Raises ZeroActiveParticles, carrying the bounds-only stats, when every
    particle is inert.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be at least 1, got {chunk_size}.")

    totals = _tree_merge(_reduce_chunks(particles.data, chunk_size))

    bounding_min = (float(totals[_MIN_X]), float(totals[_MIN_Y]))
    bounding_max = (float(totals[_MAX_X]), float(totals[_MAX_Y]))
    active_count = int(totals[_COUNT])
    total_mass = float(totals[_SUM_M])

    if active_count == 0:
        stats = AggregateStats(
            center_of_mass=None,
            bounding_min=bounding_min,
            bounding_max=bounding_max,
            average_velocity=None,
            active_count=0,
            total_mass=0.0,
            tick=tick,
        )
        raise ZeroActiveParticles(stats)

    stats = AggregateStats(
        center_of_mass=(float(totals[_SUM_MX]) / total_mass, float(totals[_SUM_MY]) / total_mass),
        bounding_min=bounding_min,
        bounding_max=bounding_max,
        average_velocity=(float(totals[_SUM_VX]) / active_count, float(totals[_SUM_VY]) / active_count),
        active_count=active_count,
        total_mass=total_mass,
        tick=tick,
    )
    logging.debug(
        f"Reduced {len(particles)} particles ({active_count} active): "
        f"COM=({stats.center_of_mass[0]:.4f}, {stats.center_of_mass[1]:.4f})"
    )
    return stats
