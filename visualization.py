# visualization.py
"""
Pygame viewer for the particle gravity simulation.

The viewer only reads from the controller: it draws the current buffer,
shows a panel of run information and turns key and mouse input into
controller and camera calls.
"""
import logging
import pygame
import numpy as np
from camera import ViewTransform
from constants import (
    BACKGROUND_COLOR, FULLSCREEN, MIN_DRAW_RADIUS, PARTICLE_COLOR,
    UI_BACKGROUND_ALPHA, UI_PANEL_WIDTH, WINDOW_SIZE
)
from typing import Callable, List, Optional, Tuple

from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from simulation import SimulationController


# --- Data Contracts ---
#
# class Visualizer:
#   - __init__(self, vis_params: Optional[dict] = None, framerate: int = 0):
#     - Inputs:
#       - vis_params: the "visualization" config section (zoom, follow,
#         auto_zoom, particle_color).
#       - framerate: frame cap in frames per second; 0 means uncapped.
#     - Side Effects: opens the window and the panel font.
#
#   - draw(self, controller: "SimulationController",
#          regenerate: Optional[Callable[[], None]] = None) -> bool:
#     - Inputs:
#       - controller: source of the current particles and stats.
#       - regenerate: called when the user asks for a fresh initial state.
#     - Outputs:
#       - bool: False once the window was closed or Esc was pressed.
#     - Side Effects: Renders active particles and the UI panel, handles
#       Pygame events (pause, single tick, follow, zoom, pan).
#     - Invariants: inert particles are never drawn.

PANEL_MARGIN = 10
PANEL_PADDING = 8
PANEL_BOX_COLOR = (60, 60, 60, 160)
LABEL_COLOR = (200, 200, 200)
VALUE_COLOR = (255, 255, 255)


class Visualizer:
    """
    Renders the current particle buffer and a side panel of simulation info.
    """
    def __init__(self, vis_params: Optional[dict] = None, framerate: int = 0):
        vis_params = vis_params if vis_params is not None else {}

        pygame.init()

        if FULLSCREEN:
            self.screen = pygame.display.set_mode((0, 0), pygame.FULLSCREEN)
        else:
            self.screen = pygame.display.set_mode((WINDOW_SIZE[0] + UI_PANEL_WIDTH, WINDOW_SIZE[1]))
        width, height = self.screen.get_size()

        # Particles are drawn left of the panel.
        self.view_width = width - UI_PANEL_WIDTH
        self.view_height = height
        self.view_surface = pygame.Surface((self.view_width, self.view_height))
        self.panel_surface = pygame.Surface((UI_PANEL_WIDTH, height), pygame.SRCALPHA)

        pygame.display.set_caption("Particle Gravity")
        self.clock = pygame.time.Clock()
        self.framerate = framerate

        self.view = ViewTransform((self.view_width, self.view_height), zoom=vis_params.get('zoom', 0.05))
        self.follow_enabled = bool(vis_params.get('follow', False))
        self.auto_zoom = bool(vis_params.get('auto_zoom', False))
        self.particle_color = pygame.Color(*vis_params.get('particle_color', PARTICLE_COLOR))

        self.is_dragging = False
        self.last_mouse_pos: Tuple[int, int] = (0, 0)

        # SysFont falls back to pygame's bundled font when the name is missing.
        self.label_font = pygame.font.SysFont("dejavusans,arial", 14, bold=True)
        self.value_font = pygame.font.SysFont("dejavusans,arial", 14)

        logging.info(f"Visualizer opened a {width}x{height} window (framerate cap {framerate or 'off'}).")

    def _handle_events(self, controller: "SimulationController", regenerate: Optional[Callable[[], None]]) -> bool:
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                logging.info("Window closed, stopping the viewer.")
                return False

            if event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    logging.info("Esc pressed, stopping the viewer.")
                    return False
                elif event.key == pygame.K_SPACE:
                    controller.toggle_pause()
                elif event.key == pygame.K_n and controller.is_paused:
                    # Single tick: run exactly one step, then pause again.
                    controller.resume()
                    try:
                        controller.step()
                    finally:
                        controller.pause()
                elif event.key == pygame.K_f:
                    self.follow_enabled = not self.follow_enabled
                    controller.compute_stats = controller.compute_stats or self.follow_enabled
                    logging.info(f"Camera follow {'enabled' if self.follow_enabled else 'disabled'}.")
                elif event.key == pygame.K_a:
                    self.auto_zoom = not self.auto_zoom
                    logging.info(f"Auto zoom {'enabled' if self.auto_zoom else 'disabled'}.")
                elif event.key == pygame.K_r and regenerate is not None:
                    regenerate()

            if event.type == pygame.MOUSEWHEEL:
                self.view.zoom_by(event.y)

            if event.type == pygame.MOUSEBUTTONDOWN and event.button == 3:
                self.is_dragging = True
                self.last_mouse_pos = event.pos
            if event.type == pygame.MOUSEBUTTONUP and event.button == 3:
                self.is_dragging = False
            if event.type == pygame.MOUSEMOTION and self.is_dragging:
                dx = event.pos[0] - self.last_mouse_pos[0]
                dy = event.pos[1] - self.last_mouse_pos[1]
                self.view.pan((dx, dy))
                self.last_mouse_pos = event.pos
        return True

    def _draw_particles(self, controller: "SimulationController"):
        particles = controller.current_state()
        active = particles.active_mask
        if not np.any(active):
            return

        screen_pos = self.view.world_to_screen(particles.positions[active])
        screen_radii = np.maximum(particles.radii[active] * self.view.pixels_per_unit, MIN_DRAW_RADIUS)

        # Skip particles whose disc lies entirely off screen.
        visible = (
            (screen_pos[:, 0] + screen_radii >= 0) & (screen_pos[:, 0] - screen_radii <= self.view_width) &
            (screen_pos[:, 1] + screen_radii >= 0) & (screen_pos[:, 1] - screen_radii <= self.view_height)
        )
        for (x, y), r in zip(screen_pos[visible], screen_radii[visible]):
            pygame.draw.circle(self.view_surface, self.particle_color, (int(x), int(y)), max(int(r), MIN_DRAW_RADIUS))

    def _panel_entries(self, controller: "SimulationController") -> List[Tuple[str, str]]:
        params = controller.parameters
        stats = controller.aggregate_stats()
        entries = [
            ("State", "Paused [Space]" if controller.is_paused else "Running [Space]"),
            ("Tick", str(controller.tick)),
            ("FPS", f"{self.clock.get_fps():.1f}"),
            ("Particles", str(controller.particle_count)),
            ("Delta Time", f"{params.delta_time:.4f}"),
            ("Gravity", f"{params.gravitational_constant:.3f}"),
            ("Restitution", f"{params.restitution:.2f}"),
            ("Zoom", f"{self.view.zoom:.3f}"),
            ("Follow [f]", "On" if self.follow_enabled else "Off"),
            ("Auto Zoom [a]", "On" if self.auto_zoom else "Off"),
        ]
        if stats is not None and stats.available:
            stale = " (stale)" if controller.stats_stale else ""
            entries.append(("Center of Mass", f"{stats.center_of_mass[0]:.3f}, {stats.center_of_mass[1]:.3f}{stale}"))
            entries.append(("Avg Velocity", f"{stats.average_velocity[0]:.3f}, {stats.average_velocity[1]:.3f}{stale}"))
        else:
            entries.append(("Center of Mass", "unavailable"))
        return entries

    def _draw_panel(self, controller: "SimulationController"):
        """Draws one box per entry: label on the first line, value below it."""
        self.panel_surface.fill((40, 40, 40, UI_BACKGROUND_ALPHA))
        box_width = UI_PANEL_WIDTH - 2 * PANEL_MARGIN
        line_height = self.value_font.get_linesize()
        y = PANEL_MARGIN

        for label, value in self._panel_entries(controller):
            box = pygame.Rect(PANEL_MARGIN, y, box_width, 2 * line_height + 2 * PANEL_PADDING)
            pygame.draw.rect(self.panel_surface, PANEL_BOX_COLOR, box, border_radius=6)
            text_x = box.x + PANEL_PADDING
            self.panel_surface.blit(self.label_font.render(label, True, LABEL_COLOR), (text_x, box.y + PANEL_PADDING))
            self.panel_surface.blit(
                self.value_font.render(value, True, VALUE_COLOR), (text_x, box.y + PANEL_PADDING + line_height)
            )
            y = box.bottom + 4
            if y >= self.view_height:
                break

        self.screen.blit(self.panel_surface, (self.view_width, 0))

    def draw(self, controller: "SimulationController", regenerate: Optional[Callable[[], None]] = None) -> bool:
        """
        Handles input, then draws the particles and the panel for one frame.
        Returns False when the viewer should close.
        """
        if not self._handle_events(controller, regenerate):
            return False

        if self.follow_enabled:
            self.view.follow(controller.aggregate_stats(), center_of_mass=True, auto_zoom=self.auto_zoom)

        self.view_surface.fill(BACKGROUND_COLOR)
        self._draw_particles(controller)
        self.screen.blit(self.view_surface, (0, 0))
        self._draw_panel(controller)

        pygame.display.flip()
        self.clock.tick(self.framerate)
        return True

    def close(self):
        pygame.quit()
        logging.info("Visualizer closed.")
