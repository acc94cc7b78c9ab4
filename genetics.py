# genetics.py

"""
Genome model and mutation operators for the ecosystem phase.

Data Contract:
- GeneSequence is an immutable record of seven genes.
- GENE_RANGES gives the valid range of each gene. Hue is circular on
  [0, 360); every other gene is a closed interval.
- Every GeneSequence returned by GeneticsEngine lies inside GENE_RANGES.
- All randomness comes from the np.random.Generator passed at construction.
"""

import colorsys
import numpy as np
from collections import namedtuple

GeneSequence = namedtuple(
    'GeneSequence',
    ['hue', 'saturation', 'brightness', 'size', 'speed', 'aggression', 'efficiency']
)

GENE_RANGES = {
    'hue': (0.0, 360.0),
    'saturation': (0.0, 1.0),
    'brightness': (0.0, 1.0),
    'size': (0.5, 2.0),
    'speed': (0.5, 2.0),
    'aggression': (0.0, 1.0),
    'efficiency': (0.0, 1.0),
}

# Half-width of the uniform perturbation applied when a gene mutates.
MUTATION_DELTAS = {
    'hue': 30.0,
    'saturation': 0.1,
    'brightness': 0.1,
    'size': 0.2,
    'speed': 0.2,
    'aggression': 0.1,
    'efficiency': 0.1,
}

# Genes inherited by random pick during crossover; the rest are averaged.
PICKED_GENES = ('hue', 'size', 'speed', 'efficiency')


def clamp_gene(name: str, value: float) -> float:
    """Brings a gene value back into its valid range."""
    low, high = GENE_RANGES[name]
    if name == 'hue':
        wrapped = value % high
        # Float modulo of a tiny negative value can round up to the modulus.
        return 0.0 if wrapped >= high else wrapped
    return min(high, max(low, value))


class GeneticsEngine:
    def __init__(self, rng: np.random.Generator, mutation_rate: float = 0.1, crowding_limit: float = 12):
        self.rng = rng
        self.mutation_rate = mutation_rate
        self.crowding_limit = crowding_limit

    def create_gene(self) -> GeneSequence:
        """A fresh random genome for organisms without a parent."""
        rng = self.rng
        return GeneSequence(
            hue=rng.random() * 360.0,
            saturation=0.5 + rng.random() * 0.5,
            brightness=0.4 + rng.random() * 0.4,
            size=0.5 + rng.random() * 1.5,
            speed=0.5 + rng.random() * 1.5,
            aggression=rng.random(),
            efficiency=rng.random(),
        )

    def mutate(self, gene: GeneSequence) -> GeneSequence:
        """
        Each gene independently mutates with probability mutation_rate by a
        uniform delta of at most MUTATION_DELTAS[name], then is clamped.
        """
        values = {}
        for name in GeneSequence._fields:
            value = getattr(gene, name)
            if self.rng.random() < self.mutation_rate:
                delta = MUTATION_DELTAS[name]
                value += self.rng.uniform(-delta, delta)
            values[name] = clamp_gene(name, value)
        return GeneSequence(**values)

    def crossover(self, parent1: GeneSequence, parent2: GeneSequence) -> GeneSequence:
        values = {}
        for name in GeneSequence._fields:
            a, b = getattr(parent1, name), getattr(parent2, name)
            if name in PICKED_GENES:
                value = a if self.rng.random() < 0.5 else b
            else:
                value = (a + b) / 2
            values[name] = clamp_gene(name, value)
        return GeneSequence(**values)

    @staticmethod
    def gene_to_color(gene: GeneSequence) -> str:
        """Hex display color from the hue/saturation/brightness genes."""
        r, g, b = colorsys.hls_to_rgb(gene.hue / 360.0, gene.brightness, gene.saturation)
        return f"#{int(round(r * 255)):02x}{int(round(g * 255)):02x}{int(round(b * 255)):02x}"

    @staticmethod
    def calculate_fitness(gene: GeneSequence, energy: float, age: float) -> float:
        survival_bonus = energy * gene.efficiency
        reproduction_bonus = gene.size * gene.speed
        age_penalty = age / 1000
        return survival_bonus + reproduction_bonus - age_penalty

    def should_reproduce(self, gene: GeneSequence, energy: float, local_density: float) -> bool:
        """
        Efficient genomes reproduce at lower energy; crowding suppresses
        reproduction until it stops entirely at crowding_limit neighbors.
        """
        energy_threshold = 60 + (1 - gene.efficiency) * 40
        density_penalty = min(1.0, local_density / self.crowding_limit)
        return energy > energy_threshold and self.rng.random() > density_penalty
