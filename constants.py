# constants.py

"""
Application Constants

This module defines static configuration values for the demo driver and the
rendering collaborator. Physics tunables live in config.json and in the
engine defaults; these values are not expected to change between runs.

Data Contract:
- All values are immutable constants.
- Units are specified in comments where applicable.
"""

# Screen dimensions
WIDTH = 1280  # Pixels
HEIGHT = 720  # Pixels

# Framerate
FPS = 60  # Frames per second
FRAME_MS = 1000.0 / FPS  # Milliseconds per frame

# Window Title
TITLE = "404 NOT FOUND"

# 404 theme palette (hex strings, consumed by pygame.Color)
COLORS = {
    'error': '#ff0000',
    'error_dark': '#cc0000',
    'warning': '#ffb84d',
    'success': '#39ff14',
    'info': '#4da6ff',
    'corrupt': '#ff1493',
    'white': '#ffffff',
    'black': '#000000',
    'gray': '#808080',
}

# Colors cycled over the particles of an explosion burst.
BURST_PALETTE = (
    COLORS['error'],
    COLORS['warning'],
    COLORS['success'],
    COLORS['info'],
    COLORS['corrupt'],
)

# Default particle color for SPH particles added without one.
DEFAULT_PARTICLE_COLOR = COLORS['info']

# Organism colors used when mirroring a remote feed (no genome available).
SPECIES_COLORS = {
    'predator': COLORS['error'],
    'prey': COLORS['warning'],
    'producer': COLORS['success'],
    'decomposer': COLORS['info'],
}

# Visual Effects
TRAIL_EFFECT_COLOR = (0, 0, 0, 40)  # RGBA. Alpha controls trail length (lower = longer).
TRAIL_ALPHA = 80  # Alpha of organism trail polylines (0-255).
ENERGY_BAR_HEIGHT = 2  # Pixels
