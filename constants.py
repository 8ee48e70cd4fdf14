# constants.py
"""
Application-level constants.

These values are static and do not change between simulation runs.
They cover the particle record layout shared with the renderer, the
fallback physics defaults used when config.json omits a value, and the
viewer's look and feel.
"""

# --- Particle record layout ---
# One particle is six 32-bit floats, in this order. Renderers and any
# byte-level consumer rely on it, so the order must never change.
PARTICLE_FIELDS = ("position_x", "position_y", "velocity_x", "velocity_y", "radius", "mass")
POS_X = 0
POS_Y = 1
VEL_X = 2
VEL_Y = 3
RADIUS = 4
MASS = 5
PARTICLE_STRIDE = len(PARTICLE_FIELDS)
PARTICLE_BYTES = PARTICLE_STRIDE * 4

# --- Physics defaults ---
DEFAULT_DELTA_TIME = 1.0 / 60.0
DEFAULT_GRAVITATIONAL_CONSTANT = 0.1
DEFAULT_RESTITUTION = 0.4
DEFAULT_SOFTENING_FLOOR = 0.04  # squared contact distance of two default-radius particles

# --- Initial state generation ---
DEFAULT_PARTICLE_COUNT = 4096
CLUSTER_SIZE = 128
SPAWN_EXTENT = 20.0   # cluster centres are drawn from [-extent, extent]^2
CLUSTER_SPREAD = 4.0  # max distance of a particle from its cluster centre
DEFAULT_PARTICLE_RADIUS = 0.1
DEFAULT_PARTICLE_MASS = 0.1

# --- Reduction ---
# Particles per leaf of the reduction tree.
REDUCTION_CHUNK_SIZE = 1024

# --- Camera ---
MIN_ZOOM = 0.01
MAX_ZOOM = 10.0
DEFAULT_ZOOM = 0.05
PAN_SENSITIVITY = 0.005
SCROLL_SENSITIVITY = 0.05
AUTO_ZOOM_EXPONENT = 0.75

# --- Visualization settings ---
FULLSCREEN = False
WINDOW_SIZE = (1280, 720)
UI_PANEL_WIDTH = 260
BACKGROUND_COLOR = (0, 0, 0)
PARTICLE_COLOR = (230, 230, 255)
MIN_DRAW_RADIUS = 1  # pixels
UI_BACKGROUND_ALPHA = 100
