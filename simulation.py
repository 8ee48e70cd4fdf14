# simulation.py
"""
Handles the simulation loop state.

This module defines the SimulationController, which owns the two particle
buffers, the live parameters, the latest aggregate statistics and the
paused/running flag. Each tick it runs the physics kernel from the current
buffer into the next one, swaps their roles and refreshes the statistics.
"""
import logging
import threading
from typing import Any, Dict, Optional

from errors import InvalidBufferSize, ResourceAllocationFailure, ZeroActiveParticles
from particle import ParticleSet, generate_from_config
from physics import SimulationParameters, step as physics_step
from reduction import AggregateStats, reduce as reduce_stats

# --- Data Contracts ---
#
# class SimulationController:
#   - __init__(self, particles: ParticleSet,
#              params: Optional[SimulationParameters] = None,
#              parallel: bool = True, compute_stats: bool = True):
#     - Side Effects: copies `particles` into the first of two buffers and
#       allocates the second. Starts Paused at tick 0 with no stats.
#
#   - step(self) -> bool:
#     - Outputs: True if a tick ran, False if paused.
#     - Side Effects: runs physics into the next buffer, swaps the buffer
#       roles, increments `tick`, refreshes stats when enabled.
#     - Errors: InvalidBufferSize and ResourceAllocationFailure propagate
#       with both buffers and `tick` as they were before the call.
#       ResourceAllocationFailure also pauses the controller.
#     - Invariants: ticks never overlap; the kernel never receives the
#       buffer it writes; the parameters of a tick are one snapshot.
#
#   - pause() / resume() / set_parameters(params) / current_state() /
#     aggregate_stats() / reset(particles)


class SimulationController:
    """
    Double-buffered driver for the physics and reduction kernels.
    """
    def __init__(
        self,
        particles: ParticleSet,
        params: Optional[SimulationParameters] = None,
        parallel: bool = True,
        compute_stats: bool = True,
    ):
        self.parallel = parallel
        self.compute_stats = compute_stats

        self._params = params if params is not None else SimulationParameters()
        self._params_lock = threading.Lock()
        self._step_lock = threading.RLock()
        self._running = False

        self._install(particles)

        logging.info(
            f"SimulationController initialized with {self.particle_count} particles "
            f"({self._buffers[0].active_count} active), parallel={parallel}."
        )
        logging.debug(f"Initial parameters: {self._params.to_dict()}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SimulationController":
        """Builds a controller and its initial particles from the loaded config.json."""
        sim_params = config.get('simulation_parameters', {})
        particle_params = config.get('particles', {})
        run_params = config.get('run_control', {})

        particles = generate_from_config(particle_params)
        controller = cls(
            particles,
            SimulationParameters.from_config(sim_params),
            parallel=bool(sim_params.get('parallel', True)),
            compute_stats=bool(run_params.get('compute_stats', True)),
        )
        if not run_params.get('start_paused', True):
            controller.resume()
        return controller

    def _install(self, particles: ParticleSet):
        """Allocates both buffers for a new run and clears tick and stats."""
        n = len(particles)
        try:
            buffers = [particles.copy(), particles.copy()]
        except MemoryError as e:
            logging.critical(f"Could not allocate particle buffers for {n} particles.")
            raise ResourceAllocationFailure(
                f"Could not allocate particle buffers ({n} particles)."
            ) from e

        self._buffers = buffers
        self._current = 0
        self.particle_count = n
        self.tick = 0
        self._stats: Optional[AggregateStats] = None

    # --- State machine ---

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return not self._running

    def pause(self):
        if self._running:
            self._running = False
            logging.info(f"Simulation paused at tick {self.tick}.")

    def resume(self):
        if not self._running:
            self._running = True
            logging.info(f"Simulation resumed at tick {self.tick}.")

    def toggle_pause(self):
        if self._running:
            self.pause()
        else:
            self.resume()

    # --- Parameters ---

    @property
    def parameters(self) -> SimulationParameters:
        with self._params_lock:
            return self._params

    def set_parameters(self, params: SimulationParameters):
        """Replaces the live parameters. The next tick picks them up."""
        with self._params_lock:
            old = self._params
            self._params = params
        logging.info(f"Simulation parameters updated: {old.to_dict()} -> {params.to_dict()}")

    def update_parameters(self, **changes) -> SimulationParameters:
        """Applies field changes to the live parameters and returns the result."""
        with self._params_lock:
            params = self._params.with_changes(**changes)
            self._params = params
        logging.info(f"Simulation parameters changed: {changes}")
        return params

    # --- Buffers ---

    @property
    def _next(self) -> int:
        return 1 - self._current

    def current_state(self) -> ParticleSet:
        """
        Read-only snapshot of the current buffer. Later ticks do not change
        it, since the buffers themselves are reused as write targets.
        """
        with self._step_lock:
            return self._buffers[self._current].copy().readonly()

    def aggregate_stats(self) -> Optional[AggregateStats]:
        """The last computed stats, or None before the first reduction."""
        return self._stats

    @property
    def stats_stale(self) -> bool:
        """True when the stored stats describe an older tick than the current one."""
        return self._stats is None or self._stats.tick != self.tick

    def reset(self, particles: ParticleSet):
        """
        Starts a new run from `particles`, which may have a different length.
        The paused/running flag and parameters are kept.
        """
        with self._step_lock:
            self._install(particles)
        logging.info(f"Simulation reset with {self.particle_count} particles.")

    # --- Tick ---

    def step(self) -> bool:
        """
        Executes one tick if running. Returns whether a tick was executed.
        """
        if not self._running:
            return False

        with self._step_lock:
            params = self.parameters
            current = self._buffers[self._current]
            target = self._buffers[self._next]

            try:
                physics_step(current, params, out=target, parallel=self.parallel)
            except InvalidBufferSize:
                logging.error(f"Tick {self.tick + 1} aborted: buffer size mismatch, state unchanged.")
                raise
            except ResourceAllocationFailure:
                logging.critical(f"Tick {self.tick + 1} aborted: resources unavailable. Halting.")
                self.pause()
                raise
            except MemoryError as e:
                logging.critical(f"Tick {self.tick + 1} aborted: out of memory. Halting.")
                self.pause()
                raise ResourceAllocationFailure(f"Out of memory during tick {self.tick + 1}.") from e

            # The next buffer is complete; promote it.
            self._current = self._next
            self.tick += 1

            if self.compute_stats:
                self._refresh_stats()

        return True

    def refresh_stats(self) -> Optional[AggregateStats]:
        """Runs the reduction over the current buffer outside of a tick."""
        with self._step_lock:
            self._refresh_stats()
        return self._stats

    def _refresh_stats(self):
        try:
            self._stats = reduce_stats(self._buffers[self._current], tick=self.tick)
        except ZeroActiveParticles as e:
            # Warn once per transition; every tick after that only logs at DEBUG.
            if self._stats is None or self._stats.available:
                logging.warning(f"Tick {self.tick}: no active particles, stats unavailable.")
            else:
                logging.debug(f"Tick {self.tick}: stats still unavailable.")
            self._stats = e.stats

