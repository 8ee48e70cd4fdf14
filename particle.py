# particle.py
"""
Particle state for the simulation.

This module defines the Particle record and the ParticleSet container,
which stores a fixed-length sequence of particles in one contiguous
float32 NumPy array using the record layout from constants.py. It also
provides the generator used to build the randomized initial state.
"""
import logging
from typing import Any, Dict, Iterable, NamedTuple, Optional, Tuple

import numpy as np

from constants import (
    CLUSTER_SIZE, CLUSTER_SPREAD, DEFAULT_PARTICLE_COUNT, DEFAULT_PARTICLE_MASS, DEFAULT_PARTICLE_RADIUS,
    MASS, PARTICLE_BYTES, PARTICLE_STRIDE, POS_X, POS_Y, RADIUS, SPAWN_EXTENT,
    VEL_X, VEL_Y
)

# --- Data Contracts ---
#
# class ParticleSet:
#   - __init__(self, data: np.ndarray, copy: bool = True):
#     - Inputs:
#       - data: array-like of shape (N, 6), columns ordered
#         position.x, position.y, velocity.x, velocity.y, radius, mass.
#     - Invariants:
#       - self.data is a C-contiguous float32 array of shape (N, 6), N >= 1.
#       - Every value is finite; radius >= 0 and mass >= 0.
#       - Row i is the identity of particle i for the whole run.
#
# generate_particles(count, seed, ...) -> ParticleSet:
#   - Outputs: `count` particles grouped into clusters, zero velocity.
#   - Invariants: identical seed and arguments give identical particles.

# Little-endian float32, the byte order used by tobytes/from_bytes.
_WIRE_DTYPE = np.dtype("<f4")


class Particle(NamedTuple):
    """A single particle record. `mass == 0` marks an inert placeholder."""
    position: Tuple[float, float]
    velocity: Tuple[float, float]
    radius: float
    mass: float

    @property
    def is_inert(self) -> bool:
        return self.mass == 0.0


class ParticleSet:
    """
    A fixed-length, ordered collection of particles backed by one NumPy array.
    """
    def __init__(self, data, copy: bool = True):
        array = np.array(data, dtype=np.float32, copy=True) if copy else np.asarray(data, dtype=np.float32)
        array = np.ascontiguousarray(array)

        if array.ndim != 2 or array.shape[1] != PARTICLE_STRIDE:
            raise ValueError(
                f"Particle data must have shape (N, {PARTICLE_STRIDE}), got {array.shape}."
            )
        if array.shape[0] < 1:
            raise ValueError("A particle set must hold at least one particle.")
        if not np.all(np.isfinite(array)):
            raise ValueError("Particle data contains NaN or infinite values.")
        if np.any(array[:, RADIUS] < 0):
            raise ValueError("Particle radius must be non-negative.")
        if np.any(array[:, MASS] < 0):
            raise ValueError("Particle mass must be non-negative.")

        self.data = array

    @classmethod
    def from_arrays(cls, positions, velocities=None, radii=None, masses=None) -> "ParticleSet":
        """
        Builds a set from per-field arrays. Missing velocities default to
        zero, missing radii and masses to the generator defaults.
        """
        positions = np.asarray(positions, dtype=np.float32).reshape(-1, 2)
        n = positions.shape[0]
        data = np.zeros((n, PARTICLE_STRIDE), dtype=np.float32)
        data[:, POS_X:POS_Y + 1] = positions
        if velocities is not None:
            data[:, VEL_X:VEL_Y + 1] = np.asarray(velocities, dtype=np.float32).reshape(n, 2)
        data[:, RADIUS] = DEFAULT_PARTICLE_RADIUS if radii is None else np.asarray(radii, dtype=np.float32)
        data[:, MASS] = DEFAULT_PARTICLE_MASS if masses is None else np.asarray(masses, dtype=np.float32)
        return cls(data, copy=False)

    @classmethod
    def from_particles(cls, particles: Iterable[Particle]) -> "ParticleSet":
        rows = [
            (p.position[0], p.position[1], p.velocity[0], p.velocity[1], p.radius, p.mass)
            for p in particles
        ]
        return cls(np.array(rows, dtype=np.float32).reshape(-1, PARTICLE_STRIDE), copy=False)

    @classmethod
    def from_bytes(cls, raw: bytes) -> "ParticleSet":
        """Decodes the packed 24-byte-per-particle layout."""
        if len(raw) % PARTICLE_BYTES != 0:
            raise ValueError(
                f"Byte length {len(raw)} is not a multiple of the {PARTICLE_BYTES}-byte particle record."
            )
        flat = np.frombuffer(raw, dtype=_WIRE_DTYPE)
        return cls(flat.reshape(-1, PARTICLE_STRIDE).astype(np.float32))

    def tobytes(self) -> bytes:
        return self.data.astype(_WIRE_DTYPE, copy=False).tobytes()

    def __len__(self) -> int:
        return self.data.shape[0]

    def __getitem__(self, index: int) -> Particle:
        row = self.data[index]
        return Particle(
            position=(float(row[POS_X]), float(row[POS_Y])),
            velocity=(float(row[VEL_X]), float(row[VEL_Y])),
            radius=float(row[RADIUS]),
            mass=float(row[MASS]),
        )

    def __iter__(self):
        for i in range(len(self)):
            yield self[i]

    def __eq__(self, other) -> bool:
        if not isinstance(other, ParticleSet):
            return NotImplemented
        return np.array_equal(self.data, other.data)

    def __repr__(self) -> str:
        return f"ParticleSet(n={len(self)}, active={self.active_count})"

    # Read-only field views. Writing through them raises ValueError.
    @property
    def positions(self) -> np.ndarray:
        return _readonly(self.data[:, POS_X:POS_Y + 1])

    @property
    def velocities(self) -> np.ndarray:
        return _readonly(self.data[:, VEL_X:VEL_Y + 1])

    @property
    def radii(self) -> np.ndarray:
        return _readonly(self.data[:, RADIUS])

    @property
    def masses(self) -> np.ndarray:
        return _readonly(self.data[:, MASS])

    @property
    def active_mask(self) -> np.ndarray:
        return self.data[:, MASS] != 0.0

    @property
    def active_count(self) -> int:
        return int(np.count_nonzero(self.active_mask))

    def copy(self) -> "ParticleSet":
        return ParticleSet(self.data, copy=True)

    def readonly(self) -> "ParticleSet":
        """
        Returns a view sharing this set's memory that cannot be written to.
        """
        view = ParticleSet.__new__(ParticleSet)
        view.data = _readonly(self.data)
        return view


def _readonly(array: np.ndarray) -> np.ndarray:
    view = array.view()
    view.flags.writeable = False
    return view


def generate_particles(
    count: int,
    seed: Optional[int] = None,
    cluster_size: int = CLUSTER_SIZE,
    spawn_extent: float = SPAWN_EXTENT,
    cluster_spread: float = CLUSTER_SPREAD,
    radius: float = DEFAULT_PARTICLE_RADIUS,
    mass: float = DEFAULT_PARTICLE_MASS,
) -> ParticleSet:
    """
    Generates a randomized initial state of `count` particles.

    Particles are grouped into clusters of `cluster_size`. Each cluster
    centre is uniform in [-spawn_extent, spawn_extent]^2 and each member is
    placed at centre + direction * distance, with direction uniform in
    [-1, 1]^2 and distance uniform in [0, cluster_spread]. Members of one
    cluster are spread through the index space rather than stored next to
    each other. All particles start at rest.
    """
    if count < 1:
        raise ValueError(f"Particle count must be at least 1, got {count}.")
    if cluster_size < 1:
        raise ValueError(f"Cluster size must be at least 1, got {cluster_size}.")

    rng = np.random.default_rng(seed)
    clusters = -(-count // cluster_size)

    centres = rng.uniform(-spawn_extent, spawn_extent, size=(clusters, 2))
    directions = rng.uniform(-1.0, 1.0, size=(clusters, cluster_size, 2))
    distances = rng.uniform(0.0, cluster_spread, size=(clusters, cluster_size, 1))
    members = centres[:, np.newaxis, :] + directions * distances

    # Member p of cluster c goes to index c + p * clusters; indices past
    # `count` belong to the last, partially filled round and are dropped.
    interleaved = members.transpose(1, 0, 2).reshape(-1, 2)[:count]

    data = np.zeros((count, PARTICLE_STRIDE), dtype=np.float32)
    data[:, POS_X:POS_Y + 1] = interleaved
    data[:, RADIUS] = radius
    data[:, MASS] = mass

    particles = ParticleSet(data, copy=False)
    logging.info(
        f"Generated {count} particles in {clusters} clusters of up to {cluster_size} (seed={seed})."
    )
    logging.debug(
        f"Particle data array created. Shape: {particles.data.shape}, "
        f"bytes per particle: {PARTICLE_BYTES}"
    )
    return particles


def generate_from_config(particle_params: Dict[str, Any]) -> ParticleSet:
    """Generates the initial state described by the `particles` config section."""
    keys = ('count', 'seed', 'cluster_size', 'spawn_extent', 'cluster_spread', 'radius', 'mass')
    kwargs = {key: particle_params[key] for key in keys if key in particle_params}
    kwargs.setdefault('count', DEFAULT_PARTICLE_COUNT)
    return generate_particles(**kwargs)
