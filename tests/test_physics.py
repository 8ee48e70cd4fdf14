import numpy as np
import pytest

from errors import InvalidBufferSize
from particle import ParticleSet, generate_particles
from physics import SimulationParameters, step


def _kinetic_energy(particles):
    v = particles.velocities.astype(np.float64)
    return float(0.5 * np.sum(particles.masses * np.sum(v * v, axis=1)))


def test_no_force_stasis(grid_particles, still_params):
    state = grid_particles
    for _ in range(10):
        state = step(state, still_params)

    np.testing.assert_array_equal(state.positions, grid_particles.positions)
    np.testing.assert_array_equal(state.velocities, 0.0)


def test_two_body_gravity_matches_closed_form():
    g, d, dt = 0.5, 10.0, 0.1
    particles = ParticleSet.from_arrays([[0.0, 0.0], [d, 0.0]], radii=0.1, masses=1.0)
    params = SimulationParameters(delta_time=dt, gravitational_constant=g)

    result = step(particles, params)

    expected = g * 1.0 * 1.0 / d ** 2
    np.testing.assert_allclose(result[0].velocity, (expected, 0.0), rtol=1e-6, atol=1e-12)
    np.testing.assert_allclose(result[1].velocity, (-expected, 0.0), rtol=1e-6, atol=1e-12)
    np.testing.assert_allclose(result[0].position, (expected * dt, 0.0), rtol=1e-5, atol=1e-12)
    np.testing.assert_allclose(result[1].position, (d - expected * dt, 0.0), rtol=1e-6)


def test_gravity_scales_with_both_masses():
    particles = ParticleSet.from_arrays([[0.0, 0.0], [0.0, 4.0]], radii=0.0, masses=[2.0, 3.0])
    params = SimulationParameters(delta_time=0.0, gravitational_constant=1.0)

    result = step(particles, params)

    # Both sides receive G * m_i * m_j / r^2, pointing at each other.
    np.testing.assert_allclose(result[0].velocity, (0.0, 6.0 / 16.0), rtol=1e-6)
    np.testing.assert_allclose(result[1].velocity, (0.0, -6.0 / 16.0), rtol=1e-6)


def test_softening_floor_bounds_close_range_gravity():
    particles = ParticleSet.from_arrays([[0.0, 0.0], [1e-3, 0.0]], radii=0.0, masses=1.0)
    params = SimulationParameters(delta_time=0.0, gravitational_constant=1.0, softening_floor=1e-2)

    result = step(particles, params)

    np.testing.assert_allclose(result[0].velocity, (100.0, 0.0), rtol=1e-5)
    np.testing.assert_allclose(result[1].velocity, (-100.0, 0.0), rtol=1e-5)


def test_coincident_pair_skips_only_that_gravity_term():
    particles = ParticleSet.from_arrays(
        [[0.0, 0.0], [0.0, 0.0], [2.0, 0.0]], radii=0.0, masses=1.0
    )
    params = SimulationParameters(delta_time=0.0, gravitational_constant=1.0)

    result = step(particles, params)

    assert np.all(np.isfinite(result.data))
    # The coincident partner adds nothing; the third particle still pulls.
    np.testing.assert_allclose(result[0].velocity, (0.25, 0.0), rtol=1e-6)
    np.testing.assert_allclose(result[1].velocity, (0.25, 0.0), rtol=1e-6)
    np.testing.assert_allclose(result[2].velocity, (-0.5, 0.0), rtol=1e-6)


def test_inert_particle_never_changes():
    particles = ParticleSet.from_arrays(
        [[0.0, 0.0], [0.15, 0.0], [1.0, 1.0]],
        velocities=[[3.0, -2.0], [0.0, 0.0], [0.0, 0.0]],
        radii=0.1,
        masses=[0.0, 1.0, 1.0],
    )
    params = SimulationParameters(delta_time=0.1, gravitational_constant=1.0)

    state = particles
    for _ in range(20):
        state = step(state, params)
        np.testing.assert_array_equal(state.data[0], particles.data[0])


def test_inert_particle_is_an_immovable_obstacle(still_params):
    particles = ParticleSet.from_arrays(
        [[0.0, 0.0], [0.15, 0.0]], radii=0.1, masses=[0.0, 1.0]
    )

    result = step(particles, still_params)

    # The active side takes the whole correction: depth 0.2 - 0.15.
    np.testing.assert_allclose(result[1].position, (0.2, 0.0), rtol=1e-6)
    assert result[0] == particles[0]


def test_inert_particles_ignored_when_not_obstacles(still_params):
    particles = ParticleSet.from_arrays(
        [[0.0, 0.0], [0.15, 0.0]], radii=0.1, masses=[0.0, 1.0]
    )
    params = still_params.with_changes(inert_obstacles=False)

    result = step(particles, params)

    assert result == particles


def test_zero_radius_never_collides(still_params):
    particles = ParticleSet.from_arrays([[0.0, 0.0], [0.05, 0.0]], radii=[0.0, 0.1], masses=1.0)

    result = step(particles, still_params)

    assert result == particles


def test_overlap_separates_without_undershoot(still_params):
    particles = ParticleSet.from_arrays([[0.0, 0.0], [0.1, 0.0]], radii=0.1, masses=1.0)

    state = particles
    distances = []
    for _ in range(10):
        state = step(state, still_params)
        assert np.all(np.isfinite(state.data))
        distances.append(float(np.linalg.norm(state.positions[1] - state.positions[0])))

    assert all(b >= a - 1e-6 for a, b in zip(distances, distances[1:]))
    assert distances[-1] == pytest.approx(0.2, abs=1e-6)


def test_exact_overlap_separates_without_nan(still_params):
    particles = ParticleSet.from_arrays([[1.0, 1.0], [1.0, 1.0]], radii=0.1, masses=1.0)

    result = step(particles, still_params)

    assert np.all(np.isfinite(result.data))
    np.testing.assert_allclose(result[0].position, (0.9, 1.0), rtol=1e-6)
    np.testing.assert_allclose(result[1].position, (1.1, 1.0), rtol=1e-6)


def test_head_on_collision_applies_restitution(still_params):
    particles = ParticleSet.from_arrays(
        [[-0.25, 0.0], [0.25, 0.0]], velocities=[[1.0, 0.0], [-1.0, 0.0]], radii=0.1, masses=1.0
    )

    state = particles
    energies = [_kinetic_energy(state)]
    for _ in range(5):
        state = step(state, still_params)
        energies.append(_kinetic_energy(state))

    assert all(b <= a + 1e-9 for a, b in zip(energies, energies[1:]))
    # Separation speed after impact is restitution times the approach speed.
    np.testing.assert_allclose(state[0].velocity, (-0.4, 0.0), rtol=1e-5, atol=1e-7)
    np.testing.assert_allclose(state[1].velocity, (0.4, 0.0), rtol=1e-5, atol=1e-7)
    np.testing.assert_allclose(state.velocities.sum(axis=0), (0.0, 0.0), atol=1e-6)


def test_parallel_and_serial_kernels_agree():
    particles = generate_particles(300, seed=7, cluster_size=32, spawn_extent=3.0, cluster_spread=1.0)
    params = SimulationParameters(gravitational_constant=0.1)

    parallel_state = serial_state = particles
    for _ in range(5):
        parallel_state = step(parallel_state, params, parallel=True)
        serial_state = step(serial_state, params, parallel=False)

    np.testing.assert_allclose(parallel_state.data, serial_state.data, rtol=1e-6, atol=1e-7)


def test_repeated_runs_are_bit_identical():
    particles = generate_particles(256, seed=3, spawn_extent=2.0)
    params = SimulationParameters(gravitational_constant=0.1)

    def run():
        state = particles
        for _ in range(5):
            state = step(state, params)
        return state

    np.testing.assert_array_equal(run().data, run().data)


def test_step_writes_into_given_buffer_and_leaves_current_alone(grid_particles, still_params):
    before = grid_particles.copy()
    out = ParticleSet(np.zeros_like(grid_particles.data))

    result = step(grid_particles, still_params, out=out)

    assert result is out
    assert grid_particles == before
    assert out == before


def test_mismatched_output_buffer_is_rejected(grid_particles, still_params):
    out = ParticleSet(np.zeros((len(grid_particles) - 1, 6), dtype=np.float32))

    with pytest.raises(InvalidBufferSize) as excinfo:
        step(grid_particles, still_params, out=out)

    assert excinfo.value.expected == len(grid_particles)
    assert excinfo.value.actual == len(grid_particles) - 1


def test_output_buffer_may_not_alias_input(grid_particles, still_params):
    with pytest.raises(ValueError):
        step(grid_particles, still_params, out=grid_particles)


@pytest.mark.parametrize("changes", [
    {"restitution": 1.5},
    {"restitution": -0.1},
    {"delta_time": -1.0},
    {"softening_floor": -1.0},
    {"gravitational_constant": float("nan")},
])
def test_invalid_parameters_are_rejected(changes):
    with pytest.raises(ValueError):
        SimulationParameters(**changes)


def test_parameters_from_config_use_defaults_for_missing_keys():
    params = SimulationParameters.from_config({"gravitational_constant": 2.0, "inert_obstacles": False})

    assert params.gravitational_constant == 2.0
    assert params.inert_obstacles is False
    assert params.restitution == SimulationParameters().restitution


def test_gravity_is_computed_in_double_precision():
    particles = ParticleSet.from_arrays([[0.0, 0.0], [3.7, 0.0]], radii=0.0, masses=[1.3, 2.9])
    params = SimulationParameters(delta_time=0.0, gravitational_constant=0.7, softening_floor=0.0)
    x = float(particles.positions[1, 0])
    m0, m1 = (float(m) for m in particles.masses)

    result = step(particles, params)

    assert result.data[0, 2] == np.float32(0.7 * m0 * m1 / (x * x))


def test_default_softening_covers_contact_range():
    params = SimulationParameters()
    contact = 2 * ParticleSet.from_arrays([[0.0, 0.0]]).radii[0]

    assert params.softening_floor >= float(contact) ** 2 - 1e-6


@pytest.mark.parametrize("xs", [[-0.2, 0.0, 0.2], [0.0, 0.0, 0.0]], ids=["touching", "coincident"])
def test_resting_stack_stays_bounded(xs):
    particles = ParticleSet.from_arrays([[x, 0.0] for x in xs], radii=0.1, masses=1.0)
    params = SimulationParameters(gravitational_constant=0.1, restitution=0.0)

    state = particles
    for _ in range(200):
        state = step(state, params)

    assert np.all(np.isfinite(state.data))
    assert np.max(np.abs(state.velocities)) < 10.0
    assert np.max(np.abs(state.positions)) < 1.0
