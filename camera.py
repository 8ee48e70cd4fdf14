# camera.py
"""
View transform and camera-follow behaviour.

Maps simulation coordinates to screen pixels for the viewer and re-centres
the view on the aggregate statistics produced by the reduction pass.
"""
import logging
from typing import Optional, Tuple

import numpy as np

from constants import (
    AUTO_ZOOM_EXPONENT, DEFAULT_ZOOM, MAX_ZOOM, MIN_ZOOM, PAN_SENSITIVITY,
    SCROLL_SENSITIVITY
)
from reduction import AggregateStats

# --- Data Contracts ---
#
# class ViewTransform:
#   - offset: (x, y) added to world coordinates before zooming.
#   - zoom: float in [MIN_ZOOM, MAX_ZOOM]. At zoom 1, one world unit spans
#     half the viewport height.
#   - viewport: (width, height) in pixels.
#   - world_to_screen(points) -> np.ndarray of pixel coordinates, y down.
#   - follow(stats, center_of_mass, auto_zoom) -> bool: whether the view moved.


class ViewTransform:
    """Offset, zoom and viewport size used to place particles on screen."""

    def __init__(self, viewport: Tuple[int, int], offset=(0.0, 0.0), zoom: float = DEFAULT_ZOOM):
        self.viewport = (int(viewport[0]), int(viewport[1]))
        self.offset = np.array(offset, dtype=np.float64)
        self.zoom = float(np.clip(zoom, MIN_ZOOM, MAX_ZOOM))

    @property
    def pixels_per_unit(self) -> float:
        return self.zoom * self.viewport[1] / 2.0

    def world_to_screen(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        scale = self.pixels_per_unit
        screen = np.empty_like(points)
        screen[:, 0] = self.viewport[0] / 2.0 + (points[:, 0] + self.offset[0]) * scale
        screen[:, 1] = self.viewport[1] / 2.0 - (points[:, 1] + self.offset[1]) * scale
        return screen

    def pan(self, pixel_delta: Tuple[float, float]):
        """Moves the view by a mouse drag of `pixel_delta` pixels."""
        self.offset += np.array([pixel_delta[0], -pixel_delta[1]]) * PAN_SENSITIVITY / self.zoom

    def zoom_by(self, scroll: float):
        """Zooms proportionally to the current zoom; positive scroll zooms in."""
        self.zoom = float(np.clip(self.zoom + scroll * SCROLL_SENSITIVITY * self.zoom, MIN_ZOOM, MAX_ZOOM))

    def resize(self, viewport: Tuple[int, int]):
        self.viewport = (int(viewport[0]), int(viewport[1]))

    def follow(self, stats: Optional[AggregateStats], center_of_mass: bool = True, auto_zoom: bool = False) -> bool:
        """
        Re-centres the view on the center of mass and, with auto_zoom, fits
        the zoom to the bounding box. Unavailable stats leave the view as is.
        """
        if stats is None or not stats.available:
            return False

        if center_of_mass:
            self.offset = -np.array(stats.center_of_mass, dtype=np.float64)

        if auto_zoom:
            size = float(np.hypot(*stats.extent))
            if size > 0.0:
                self.zoom = float(np.clip(size ** -AUTO_ZOOM_EXPONENT, MIN_ZOOM, MAX_ZOOM))
            else:
                logging.debug("Auto zoom skipped: bounding box has zero size.")
        return True
