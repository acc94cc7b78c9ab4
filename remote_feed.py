# remote_feed.py

"""
Mirror of a remote boids simulation.

A remote simulation publishes a flat, normalised payload
[x0, y0, vx0, vy0, x1, y1, vx1, vy1, ...]. These helpers turn it into
screen-space samples, blend between two consecutive payloads, and keep a pool
of Organism objects that the renderer can draw like local ones. Fetching the
payload is the caller's business.

Data Contract:
- Payload coordinates and velocities are normalised; both are scaled to screen
  space (x and vx by width, y and vy by height).
- Sample i is typed by index: every 12th a predator, every 5th a producer, the rest prey.
- RemoteMirror owns its pool; organisms are reused across updates.
"""

import logging
import numpy as np
from collections import namedtuple

import constants
from genetics import GeneSequence
from organism import Organism

logger = logging.getLogger("glitchfield")

RemoteBoidState = namedtuple('RemoteBoidState', ['x', 'y', 'vx', 'vy', 'type'])

# Display radius per mirrored type.
REMOTE_RADII = {
    'predator': 5.0,
    'prey': 3.0,
    'producer': 2.5,
}

REMOTE_ENERGY = 60.0
REMOTE_MAX_ENERGY = 120.0
REMOTE_MIN_ENERGY = 10.0
REMOTE_MAX_AGE = 1200
REMOTE_VISION = 120.0
ENERGY_RETENTION = 0.98
SPEED_TO_ENERGY = 250.0


def remote_type_for_index(index: int) -> str:
    if index % 12 == 0:
        return 'predator'
    if index % 5 == 0:
        return 'producer'
    return 'prey'


def transform_remote_boids(data, width: float, height: float):
    """
    Scales positions and velocities of a flat normalised payload to screen
    space. A trailing partial record is ignored.
    """
    values = np.asarray(data, dtype=float).ravel()
    count = values.size // 4
    if values.size % 4:
        logger.warning(f"Remote payload has {values.size} values; ignoring {values.size % 4} trailing values.")

    records = values[:count * 4].reshape(count, 4)
    return [
        RemoteBoidState(
            x=float(x * width), y=float(y * height),
            vx=float(vx * width), vy=float(vy * height),
            type=remote_type_for_index(i)
        )
        for i, (x, y, vx, vy) in enumerate(records)
    ]


def interpolate_remote_boids(source, target, t: float):
    """
    Linear blend between two sample lists, paired by index. Types follow the
    target. Extra samples in the longer list are dropped.
    """
    t = min(1.0, max(0.0, t))
    return [
        RemoteBoidState(
            x=a.x + (b.x - a.x) * t,
            y=a.y + (b.y - a.y) * t,
            vx=a.vx + (b.vx - a.vx) * t,
            vy=a.vy + (b.vy - a.vy) * t,
            type=b.type
        )
        for a, b in zip(source, target)
    ]


class RemoteMirror:
    """Keeps one Organism per remote sample, creating pool entries on demand."""

    def __init__(self, trail_length: int = 20):
        self.trail_length = trail_length
        self._pool = []
        self._active = 0

    @property
    def organisms(self):
        return tuple(self._pool[:self._active])

    def _create(self, index: int, organism_type: str) -> Organism:
        genes = GeneSequence(
            hue=(index * 29) % 360,
            saturation=0.8,
            brightness=0.7,
            size=1.0,
            speed=1.0,
            aggression=0.8 if organism_type == 'predator' else 0.3,
            efficiency=0.6,
        )
        organism = Organism(
            f"remote-{index}", organism_type, np.zeros(2), np.zeros(2),
            genes, constants.SPECIES_COLORS[organism_type], self.trail_length
        )
        organism.max_energy = REMOTE_MAX_ENERGY
        organism.energy = REMOTE_ENERGY
        organism.max_age = REMOTE_MAX_AGE
        organism.vision = REMOTE_VISION
        organism.radius = REMOTE_RADII[organism_type]
        return organism

    def apply(self, samples):
        """Moves the pool onto the given samples. Returns the mirrored organisms."""
        while len(self._pool) < len(samples):
            index = len(self._pool)
            self._pool.append(self._create(index, samples[index].type))

        for organism, sample in zip(self._pool, samples):
            if organism.type != sample.type:
                organism.type = sample.type
                organism.color = constants.SPECIES_COLORS[sample.type]
                organism.radius = REMOTE_RADII[sample.type]

            organism.position[:] = (sample.x, sample.y)
            organism.velocity[:] = (sample.vx, sample.vy)
            speed = np.hypot(sample.vx, sample.vy)
            energy = organism.energy * ENERGY_RETENTION + speed * SPEED_TO_ENERGY
            organism.energy = min(organism.max_energy, max(REMOTE_MIN_ENERGY, energy))
            organism.age = (organism.age + 1) % organism.max_age
            organism.trail.append((float(sample.x), float(sample.y)))

        self._active = len(samples)
        return self.organisms
