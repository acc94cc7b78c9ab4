# organism.py

import pygame
import numpy as np
from collections import deque, namedtuple

from genetics import GeneSequence

SpeciesTraits = namedtuple('SpeciesTraits', ['max_energy', 'max_age', 'speed_factor', 'vision', 'energy_decay'])

# Per-species lifecycle and movement constants.
SPECIES = {
    'predator': SpeciesTraits(max_energy=150.0, max_age=800, speed_factor=3.0, vision=150.0, energy_decay=0.3),
    'prey': SpeciesTraits(max_energy=100.0, max_age=600, speed_factor=2.5, vision=100.0, energy_decay=0.2),
    'producer': SpeciesTraits(max_energy=80.0, max_age=1000, speed_factor=1.5, vision=50.0, energy_decay=0.1),
    'decomposer': SpeciesTraits(max_energy=80.0, max_age=1000, speed_factor=1.5, vision=50.0, energy_decay=0.1),
}

ORGANISM_TYPES = tuple(SPECIES)


class Organism:
    """
    One agent of the ecosystem.

    - Inputs:
        - organism_id (str): unique within its engine.
        - organism_type (str): one of ORGANISM_TYPES.
        - position, velocity (np.ndarray): shape (2,).
        - genes (GeneSequence): size drives radius/mass, speed drives max speed.
        - color (str): display tag.
        - trail_length (int): number of past positions kept.
    - Invariants: 0 <= energy <= max_energy, trail never exceeds trail_length.
    """
    def __init__(self, organism_id: str, organism_type: str, position: np.ndarray, velocity: np.ndarray,
                 genes: GeneSequence, color: str, trail_length: int = 10):
        if organism_type not in SPECIES:
            raise ValueError(f"Unknown organism type '{organism_type}'. Expected one of {ORGANISM_TYPES}.")
        traits = SPECIES[organism_type]

        self.id = organism_id
        self.type = organism_type
        self.position = np.asarray(position, dtype=float).copy()
        self.velocity = np.asarray(velocity, dtype=float).copy()
        self.acceleration = np.zeros(2, dtype=float)
        self.genes = genes
        self.color = color

        self.max_energy = traits.max_energy
        self.energy = traits.max_energy
        self.max_age = traits.max_age
        self.age = 0
        self.energy_decay = traits.energy_decay
        self.max_speed = genes.speed * traits.speed_factor
        self.vision = traits.vision
        self.radius = genes.size * 2
        self.mass = genes.size
        self.reproduction_cooldown = 0
        self.life = 1.0
        self.trail = deque(maxlen=trail_length)

    def __repr__(self):
        return (
            f"Organism(id={self.id!r}, type={self.type!r}, pos=({self.position[0]:.1f}, {self.position[1]:.1f}), "
            f"energy={self.energy:.1f}, age={self.age})"
        )

    @property
    def is_alive(self) -> bool:
        return self.energy > 0 and self.age < self.max_age

    def limit_speed(self):
        """Rescales velocity so its magnitude does not exceed max_speed."""
        speed = np.hypot(self.velocity[0], self.velocity[1])
        if speed > self.max_speed:
            self.velocity *= self.max_speed / speed

    def draw(self, surface: pygame.Surface, trail_alpha: int = 80, bar_height: int = 2):
        """
        Draws trail, body, heading tick and energy bar.
        """
        color = pygame.Color(self.color)
        center = (int(self.position[0]), int(self.position[1]))
        radius = max(1, int(self.radius))

        if len(self.trail) >= 2:
            faded = (color.r * trail_alpha // 255, color.g * trail_alpha // 255, color.b * trail_alpha // 255)
            points = [(int(x), int(y)) for x, y in self.trail]
            pygame.draw.lines(surface, faded, False, points, max(1, radius // 2))

        pygame.draw.circle(surface, color, center, radius)

        angle = np.arctan2(self.velocity[1], self.velocity[0])
        tip = (int(center[0] + np.cos(angle) * radius * 2), int(center[1] + np.sin(angle) * radius * 2))
        pygame.draw.line(surface, (255, 255, 255), center, tip, 1)

        bar_width = radius * 3
        bar_x = center[0] - bar_width // 2
        bar_y = center[1] - radius - 5
        pygame.draw.rect(surface, (204, 0, 0), (bar_x, bar_y, bar_width, bar_height))
        filled = int(bar_width * max(0.0, min(1.0, self.energy / self.max_energy)))
        if filled > 0:
            pygame.draw.rect(surface, (57, 255, 20), (bar_x, bar_y, filled, bar_height))
