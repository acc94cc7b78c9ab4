# particle.py

import pygame
from collections import namedtuple

_ParticleFields = namedtuple(
    '_ParticleFields',
    ['x', 'y', 'vx', 'vy', 'ax', 'ay', 'radius', 'mass', 'density', 'pressure', 'life', 'color']
)


class Particle(_ParticleFields):
    """
    Read-only snapshot of one SPH particle, as handed to the renderer.

    The engine stores particles as parallel NumPy arrays; a Particle is a copy
    of one row, so stepping the engine never changes an existing snapshot.
    """
    __slots__ = ()

    @property
    def speed(self) -> float:
        return (self.vx * self.vx + self.vy * self.vy) ** 0.5

    def draw(self, surface: pygame.Surface, streak: float = 0.02):
        """
        Draws the particle as a disc plus a short motion streak, faded by life.
        """
        if self.life <= 0:
            return
        base = pygame.Color(self.color)
        faded = (int(base.r * self.life), int(base.g * self.life), int(base.b * self.life))
        width = max(1, int(self.radius))
        center = (int(self.x), int(self.y))
        tail = (int(self.x - self.vx * streak), int(self.y - self.vy * streak))
        pygame.draw.line(surface, faded, center, tail, width)
        pygame.draw.circle(surface, faded, center, width)
