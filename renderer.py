# renderer.py

import pygame
import constants


def fade(screen: pygame.Surface, trail_surface: pygame.Surface):
    """
    Blits a translucent black layer over the last frame so moving things
    leave short afterimages.
    """
    trail_surface.fill(constants.TRAIL_EFFECT_COLOR)
    screen.blit(trail_surface, (0, 0))


def draw_particles(surface: pygame.Surface, engine) -> int:
    """Draws every SPH particle from a snapshot. Returns the number drawn."""
    particles = engine.get_particles()
    for particle in particles:
        particle.draw(surface)
    return len(particles)


def draw_organisms(surface: pygame.Surface, organisms) -> int:
    """Draws organisms from a FlockingEngine, a RemoteMirror or a plain iterable."""
    if hasattr(organisms, 'organisms'):
        organisms = organisms.organisms
    count = 0
    for organism in organisms:
        organism.draw(surface, trail_alpha=constants.TRAIL_ALPHA, bar_height=constants.ENERGY_BAR_HEIGHT)
        count += 1
    return count
