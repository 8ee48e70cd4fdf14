import pytest

from particle import ParticleSet
from physics import SimulationParameters
from simulation import SimulationController

pygame = pytest.importorskip("pygame")


@pytest.fixture
def visualizer(monkeypatch):
    monkeypatch.setenv("SDL_VIDEODRIVER", "dummy")
    monkeypatch.setenv("SDL_AUDIODRIVER", "dummy")
    from visualization import Visualizer

    vis = Visualizer({'zoom': 1.0}, framerate=0)
    yield vis
    vis.close()


@pytest.fixture
def controller():
    particles = ParticleSet.from_arrays([[0.0, 0.0], [1.0, 0.0], [5.0, 5.0]], masses=[1.0, 1.0, 0.0])
    return SimulationController(particles, SimulationParameters(gravitational_constant=0.1))


def _press(key):
    pygame.event.post(pygame.event.Event(pygame.KEYDOWN, key=key))


def test_space_toggles_pause(visualizer, controller):
    _press(pygame.K_SPACE)
    assert visualizer.draw(controller)
    assert controller.is_running


def test_n_runs_a_single_tick(visualizer, controller):
    _press(pygame.K_n)
    assert visualizer.draw(controller)

    assert controller.tick == 1
    assert controller.is_paused


def test_follow_and_regenerate_keys(visualizer, controller):
    calls = []
    controller.compute_stats = False

    _press(pygame.K_f)
    _press(pygame.K_r)
    assert visualizer.draw(controller, regenerate=lambda: calls.append(True))

    assert visualizer.follow_enabled
    assert controller.compute_stats
    assert calls == [True]


def test_quit_ends_the_loop(visualizer, controller):
    pygame.event.post(pygame.event.Event(pygame.QUIT))
    assert not visualizer.draw(controller)
