# physics.py
"""
Handles the per-tick physics transform.

This module defines SimulationParameters and the all-pairs gravity and
collision kernel. The kernel reads a frozen "current" ParticleSet and
writes every particle's next state into a separate buffer, so all
particles can be processed in parallel in any order.
"""
import logging
import math
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional

import numpy as np
from numba import njit, prange

from constants import (
    DEFAULT_DELTA_TIME, DEFAULT_GRAVITATIONAL_CONSTANT, DEFAULT_RESTITUTION,
    DEFAULT_SOFTENING_FLOOR, MASS, PARTICLE_STRIDE, POS_X, POS_Y, RADIUS,
    VEL_X, VEL_Y
)
from errors import InvalidBufferSize, ResourceAllocationFailure
from particle import ParticleSet

# --- Data Contracts ---
#
# class SimulationParameters (immutable):
#   - delta_time: float >= 0, seconds per tick; scales position integration.
#   - gravitational_constant: float, finite.
#   - restitution: float in [0, 1].
#   - softening_floor: float >= 0, lower bound applied to the squared
#     distance in the gravity term.
#   - inert_obstacles: bool. True makes inert (mass == 0) particles act as
#     immovable obstacles for collisions. False ignores them entirely.
#
# step(current: ParticleSet, params: SimulationParameters,
#      out: Optional[ParticleSet] = None, parallel: bool = True) -> ParticleSet:
#   - Outputs: the next state. len(result) == len(current).
#   - Side Effects: overwrites `out` when given; `current` is never written.
#   - Errors: InvalidBufferSize if len(out) != len(current);
#     ResourceAllocationFailure if the output buffer cannot be allocated.
#   - Invariants: result[i] depends only on `current` and `params`, so the
#     parallel and serial kernels produce identical buffers.


@dataclass(frozen=True)
class SimulationParameters:
    """An immutable snapshot of the physics settings for one tick."""
    delta_time: float = DEFAULT_DELTA_TIME
    gravitational_constant: float = DEFAULT_GRAVITATIONAL_CONSTANT
    restitution: float = DEFAULT_RESTITUTION
    softening_floor: float = DEFAULT_SOFTENING_FLOOR
    inert_obstacles: bool = True

    def __post_init__(self):
        problems = []
        if not math.isfinite(self.delta_time) or self.delta_time < 0:
            problems.append(f"delta_time must be finite and >= 0 (got {self.delta_time})")
        if not math.isfinite(self.gravitational_constant):
            problems.append(f"gravitational_constant must be finite (got {self.gravitational_constant})")
        if not (0.0 <= self.restitution <= 1.0):
            problems.append(f"restitution must lie in [0, 1] (got {self.restitution})")
        if not math.isfinite(self.softening_floor) or self.softening_floor < 0:
            problems.append(f"softening_floor must be finite and >= 0 (got {self.softening_floor})")
        if problems:
            msg = "Invalid simulation parameters: " + "; ".join(problems) + "."
            logging.critical(msg)
            raise ValueError(msg)

    @classmethod
    def from_config(cls, params: Dict[str, Any]) -> "SimulationParameters":
        """Builds parameters from the `simulation_parameters` config section."""
        return cls(
            delta_time=float(params.get('delta_time', DEFAULT_DELTA_TIME)),
            gravitational_constant=float(params.get('gravitational_constant', DEFAULT_GRAVITATIONAL_CONSTANT)),
            restitution=float(params.get('restitution', DEFAULT_RESTITUTION)),
            softening_floor=float(params.get('softening_floor', DEFAULT_SOFTENING_FLOOR)),
            inert_obstacles=bool(params.get('inert_obstacles', True)),
        )

    def with_changes(self, **changes) -> "SimulationParameters":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@njit(parallel=True, cache=True)
def _integrate_particles(
    current, out, delta_time, gravitational_constant, restitution,
    softening_floor, inert_obstacles
):
    """
    Numba-jitted all-pairs gravity and collision pass.

    One prange iteration per particle. Each iteration reads only `current`
    and writes only row i of `out`. The prange loop returns after every
    iteration has finished, which is the barrier before the reduction.
    Buffer reads are widened to float64; only the stores round to float32.
    """
    n = current.shape[0]
    for i in prange(n):
        mass_i = np.float64(current[i, MASS])

        # Inert particles pass through untouched.
        if mass_i == 0.0:
            for k in range(PARTICLE_STRIDE):
                out[i, k] = current[i, k]
            continue

        px = np.float64(current[i, POS_X])
        py = np.float64(current[i, POS_Y])
        vx_pre = np.float64(current[i, VEL_X])
        vy_pre = np.float64(current[i, VEL_Y])
        radius_i = np.float64(current[i, RADIUS])

        vx = vx_pre
        vy = vy_pre
        correction_x = 0.0
        correction_y = 0.0
        w0 = 1.0 / mass_i

        for j in range(n):
            if j == i:
                continue

            mass_j = np.float64(current[j, MASS])
            if mass_j == 0.0 and not inert_obstacles:
                continue

            dx = np.float64(current[j, POS_X]) - px
            dy = np.float64(current[j, POS_Y]) - py
            r2 = dx * dx + dy * dy
            dist = math.sqrt(r2)

            # Gravity. Coincident pairs have no direction and are skipped.
            if mass_j != 0.0 and r2 > 0.0:
                magnitude = gravitational_constant * mass_i * mass_j / max(r2, softening_floor)
                vx += dx / dist * magnitude
                vy += dy / dist * magnitude

            # Collision. A zero radius on either side never collides.
            radius_j = np.float64(current[j, RADIUS])
            reach = radius_i + radius_j
            if radius_i > 0.0 and radius_j > 0.0 and dist <= reach:
                if dist > 0.0:
                    nx = dx / dist
                    ny = dy / dist
                else:
                    # Exact overlap: opposite fixed axes for the two sides.
                    nx = 1.0 if i < j else -1.0
                    ny = 0.0

                w1 = 0.0 if mass_j == 0.0 else 1.0 / mass_j
                share = w0 / (w0 + w1)

                depth = reach - dist
                correction_x -= nx * depth * share
                correction_y -= ny * depth * share

                other_vx = np.float64(current[j, VEL_X])
                other_vy = np.float64(current[j, VEL_Y])
                approach = (vx - other_vx) * nx + (vy - other_vy) * ny
                if approach > 0.0:
                    approach_pre = (vx_pre - other_vx) * nx + (vy_pre - other_vy) * ny
                    impulse = (approach + restitution * max(approach_pre, 0.0)) * share
                    vx -= nx * impulse
                    vy -= ny * impulse

        out[i, POS_X] = px + vx * delta_time + correction_x
        out[i, POS_Y] = py + vy * delta_time + correction_y
        out[i, VEL_X] = vx
        out[i, VEL_Y] = vy
        out[i, RADIUS] = current[i, RADIUS]
        out[i, MASS] = current[i, MASS]


# Same kernel without threading, used to check order independence.
_integrate_particles_serial = njit(_integrate_particles.py_func)


def step(
    current: ParticleSet,
    params: SimulationParameters,
    out: Optional[ParticleSet] = None,
    parallel: bool = True,
) -> ParticleSet:
    """
    Advances `current` by one tick and returns the next state.

    When `out` is given it is overwritten and returned; it must hold the
    same number of particles and must not share memory with `current`.
    """
    n = len(current)
    if out is None:
        try:
            out = ParticleSet(np.zeros((n, PARTICLE_STRIDE), dtype=np.float32), copy=False)
        except MemoryError as e:
            logging.error(f"Could not allocate the next buffer for {n} particles.")
            raise ResourceAllocationFailure(
                f"Could not allocate the next particle buffer ({n} particles)."
            ) from e
    elif len(out) != n:
        logging.error(f"Next buffer holds {len(out)} particles, current holds {n}.")
        raise InvalidBufferSize(expected=n, actual=len(out))
    elif np.shares_memory(out.data, current.data):
        raise ValueError("The next buffer must not share memory with the current buffer.")

    kernel = _integrate_particles if parallel else _integrate_particles_serial
    kernel(
        current.data, out.data,
        params.delta_time, params.gravitational_constant, params.restitution,
        params.softening_floor, params.inert_obstacles
    )
    return out
