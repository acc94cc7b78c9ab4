# flocking_engine.py

import logging
import numpy as np

from genetics import GeneticsEngine
from organism import Organism, SPECIES
from spatial_index import SpatialIndex

logger = logging.getLogger("glitchfield")

DEFAULT_CONFIG = {
    'separation_radius': 20.0,
    'alignment_radius': 50.0,
    'cohesion_radius': 80.0,
    'separation_weight': 1.5,
    'alignment_weight': 1.0,
    'cohesion_weight': 1.0,
    'pursuit_weight': 2.0,
    'evasion_weight': 3.0,
    'predation_reward': 50.0,
    'reproduction_threshold': 0.7,  # Fraction of max energy
    'reproduction_cost': 0.4,  # Fraction of max energy
    'reproduction_cooldown': 100,  # Steps
    'offspring_spread': 20.0,
    'crowding_limit': 12,
    'max_population': 200,
    'trail_length': 10,
    'time_scale': 10.0,
    'mutation_rate': 0.1,
    'replenish_prey_floor': 5,
    'replenish_prey_batch': 3,
    'replenish_producer_floor': 10,
    'replenish_producer_batch': 5,
    'log_throttle_steps': 100,
}

STATS_KEYS = {
    'predator': 'predators',
    'prey': 'prey',
    'producer': 'producers',
    'decomposer': 'decomposers',
}


class FlockingEngine:
    """
    Boids ecosystem with predator/prey dynamics and asexual reproduction.

    Steering forces are computed for every organism from a snapshot taken at
    the start of the step, so update order never matters. Deaths, predation
    and births are collected during the step and applied in one filter pass
    at its end.

    Data Contract:
    - Inputs:
        - width, height (float): toroidal world size.
        - config (dict, optional): the 'flocking' section of config.json.
        - rng (np.random.Generator, optional): all randomness (genes, spawn
          offsets, reproduction rolls).
    - Outputs: organisms (tuple snapshot), get_population_stats().
    - Side Effects: step() mutates and filters the organism list.
    - Invariants:
        - Every organism in the list has energy > 0 and age < max_age after step().
        - Population never grows past max_population through reproduction.
    """
    def __init__(self, width: float, height: float, config: dict = None, rng: np.random.Generator = None):
        if width <= 0 or height <= 0:
            msg = f"Simulation bounds must be positive, got width={width}, height={height}."
            logger.critical(msg)
            raise ValueError(msg)

        params = dict(DEFAULT_CONFIG)
        params.update(config or {})
        self.config = params
        self.width = float(width)
        self.height = float(height)
        self.rng = rng if rng is not None else np.random.default_rng()

        self.separation_radius = float(params['separation_radius'])
        self.alignment_radius = float(params['alignment_radius'])
        self.cohesion_radius = float(params['cohesion_radius'])
        self.separation_weight = float(params['separation_weight'])
        self.alignment_weight = float(params['alignment_weight'])
        self.cohesion_weight = float(params['cohesion_weight'])
        self.pursuit_weight = float(params['pursuit_weight'])
        self.evasion_weight = float(params['evasion_weight'])
        self.predation_reward = float(params['predation_reward'])
        self.reproduction_threshold = float(params['reproduction_threshold'])
        self.reproduction_cost = float(params['reproduction_cost'])
        self.reproduction_cooldown = int(params['reproduction_cooldown'])
        self.offspring_spread = float(params['offspring_spread'])
        self.max_population = int(params['max_population'])
        self.trail_length = int(params['trail_length'])
        self.time_scale = float(params['time_scale'])
        self.log_throttle_steps = int(params['log_throttle_steps'])

        self.genetics = GeneticsEngine(
            self.rng,
            mutation_rate=float(params['mutation_rate']),
            crowding_limit=float(params['crowding_limit'])
        )

        # One cell must cover the widest query (the largest vision radius).
        self.cell_size = max(
            self.separation_radius, self.alignment_radius, self.cohesion_radius,
            max(traits.vision for traits in SPECIES.values())
        )
        self.index = SpatialIndex()

        self._organisms = []
        self._id_counter = 0
        self.step_count = 0
        self.births = 0
        self.deaths = 0
        self.kills = 0

        logger.info(
            f"FlockingEngine created: bounds={self.width:.0f}x{self.height:.0f}, "
            f"cell_size={self.cell_size}, max_population={self.max_population}."
        )

    # --- Population ---

    @property
    def organisms(self):
        """Read snapshot of the current population."""
        return tuple(self._organisms)

    def __len__(self):
        return len(self._organisms)

    def _spawn(self, x: float, y: float, organism_type: str, parent: Organism = None) -> Organism:
        if organism_type not in SPECIES:
            raise ValueError(f"Unknown organism type '{organism_type}'. Expected one of {tuple(SPECIES)}.")

        genes = self.genetics.mutate(parent.genes) if parent is not None else self.genetics.create_gene()
        speed = genes.speed * SPECIES[organism_type].speed_factor
        velocity = (self.rng.random(2) - 0.5) * speed
        position = np.array([x % self.width, y % self.height], dtype=float)

        organism = Organism(
            f"org-{self._id_counter}", organism_type, position, velocity,
            genes, self.genetics.gene_to_color(genes), self.trail_length
        )
        self._id_counter += 1
        return organism

    def add_organism(self, x: float, y: float, organism_type: str, parent: Organism = None) -> Organism:
        """Spawns an organism immediately. With a parent, its genome is a mutation of the parent's."""
        organism = self._spawn(x, y, organism_type, parent)
        self._organisms.append(organism)
        return organism

    def _spawn_random(self, organism_type: str, count: int):
        for _ in range(count):
            self.add_organism(self.rng.random() * self.width, self.rng.random() * self.height, organism_type)

    def seed_population(self, prey: int = 20, producers: int = 30, predators: int = 5, decomposers: int = 0):
        """Initial population at random positions."""
        self._spawn_random('prey', prey)
        self._spawn_random('producer', producers)
        self._spawn_random('predator', predators)
        self._spawn_random('decomposer', decomposers)
        logger.info(
            f"Ecosystem seeded with {prey} prey, {producers} producers, "
            f"{predators} predators, {decomposers} decomposers."
        )

    def replenish(self) -> int:
        """
        Tops up collapsing prey and producer populations while prey, producers
        and predators together stay below max_population. Decomposers are not
        counted. Returns the number of organisms added.
        """
        stats = self.get_population_stats()
        if stats['prey'] + stats['producers'] + stats['predators'] >= self.max_population:
            return 0

        added = 0
        if stats['prey'] < self.config['replenish_prey_floor']:
            batch = int(self.config['replenish_prey_batch'])
            self._spawn_random('prey', batch)
            added += batch
        if stats['producers'] < self.config['replenish_producer_floor']:
            batch = int(self.config['replenish_producer_batch'])
            self._spawn_random('producer', batch)
            added += batch

        if added:
            logger.info(f"Replenished {added} organisms (prey={stats['prey']}, producers={stats['producers']}).")
        return added

    def clear(self):
        self._organisms = []

    def get_population_stats(self) -> dict:
        stats = {
            'total': len(self._organisms),
            'predators': 0,
            'prey': 0,
            'producers': 0,
            'decomposers': 0,
            'avg_energy': 0.0,
            'avg_age': 0.0,
        }
        for organism in self._organisms:
            stats[STATS_KEYS[organism.type]] += 1
            stats['avg_energy'] += organism.energy
            stats['avg_age'] += organism.age

        if stats['total'] > 0:
            stats['avg_energy'] /= stats['total']
            stats['avg_age'] /= stats['total']
        return stats

    # --- Behaviour ---

    def _steering(self, i: int, organism: Organism, positions: np.ndarray, velocities: np.ndarray, types: list):
        """
        Net steering acceleration for organism i from the step-start snapshot,
        and the number of organisms within its cohesion radius.
        """
        query_radius = max(self.separation_radius, self.alignment_radius, self.cohesion_radius, organism.vision)
        neighbors = self.index.neighbors_within(positions[i], query_radius, exclude_self_index=i)
        steer = np.zeros(2, dtype=float)
        if len(neighbors) == 0:
            return steer, 0

        # Offsets point from each neighbor toward this organism.
        offsets = positions[i] - positions[neighbors]
        dists = np.hypot(offsets[:, 0], offsets[:, 1])
        same_species = np.array([types[j] == organism.type for j in neighbors], dtype=bool)

        # Separation: unit vectors away from close neighbors of any species
        close = dists < self.separation_radius
        if close.any():
            safe = np.maximum(1.0, dists[close])
            steer += (offsets[close] / safe[:, np.newaxis]).sum(axis=0) * self.separation_weight

        # Alignment: match the average heading of the local flock
        flock = same_species & (dists < self.alignment_radius)
        if flock.any():
            steer += (velocities[neighbors[flock]].mean(axis=0) - velocities[i]) * self.alignment_weight

        # Cohesion: move toward the local flock's centre
        group = same_species & (dists < self.cohesion_radius)
        if group.any():
            steer += (positions[neighbors[group]].mean(axis=0) - positions[i]) * self.cohesion_weight

        visible = dists < organism.vision
        if organism.type == 'predator':
            prey_mask = visible & np.array([types[j] == 'prey' for j in neighbors], dtype=bool)
            if prey_mask.any():
                nearest = np.argmin(np.where(prey_mask, dists, np.inf))
                if dists[nearest] > 0:
                    steer += -offsets[nearest] / dists[nearest] * self.pursuit_weight
        elif organism.type == 'prey':
            predator_mask = visible & np.array([types[j] == 'predator' for j in neighbors], dtype=bool)
            if predator_mask.any():
                safe = np.maximum(1.0, dists[predator_mask])
                intensity = 1.0 - safe / organism.vision
                steer += (offsets[predator_mask] / safe[:, np.newaxis] * intensity[:, np.newaxis]).sum(axis=0) * self.evasion_weight

        local_density = int(np.count_nonzero(dists < self.cohesion_radius))
        return steer, local_density

    def _handle_predation(self, organisms: list, removed: set) -> int:
        """
        Any predator touching a prey eats it. Each prey is eaten at most once;
        dead predators do not hunt.
        """
        positions = np.array([o.position for o in organisms])
        self.index.rebuild(positions, self.cell_size)
        max_radius = max(o.radius for o in organisms)

        eaten = 0
        for i, predator in enumerate(organisms):
            if predator.type != 'predator' or i in removed:
                continue
            reach = min(self.cell_size, predator.radius + max_radius)
            for j in self.index.neighbors_within(positions[i], reach, exclude_self_index=i):
                prey = organisms[j]
                if prey.type != 'prey' or j in removed:
                    continue
                gap = np.hypot(*(positions[j] - positions[i]))
                if gap < predator.radius + prey.radius:
                    removed.add(int(j))
                    predator.energy = min(predator.max_energy, predator.energy + self.predation_reward)
                    eaten += 1
        return eaten

    def step(self, dt_ms: float):
        """
        Advances the ecosystem by one frame.

        Order: lifecycle + steering (snapshot), motion, death marking,
        predation, reproduction, single filter pass.
        """
        self.step_count += 1
        organisms = self._organisms
        if not organisms:
            return

        dt = dt_ms / 1000.0 * self.time_scale
        positions = np.array([o.position for o in organisms])
        velocities = np.array([o.velocity for o in organisms])
        types = [o.type for o in organisms]
        self.index.rebuild(positions, self.cell_size)

        # --- 1. Lifecycle and steering ---
        local_density = np.zeros(len(organisms), dtype=int)
        for i, organism in enumerate(organisms):
            organism.age += 1
            organism.energy = max(0.0, organism.energy - organism.energy_decay)
            organism.reproduction_cooldown = max(0, organism.reproduction_cooldown - 1)
            organism.acceleration, local_density[i] = self._steering(i, organism, positions, velocities, types)

        # --- 2. Motion (toroidal world) ---
        for organism in organisms:
            organism.velocity += organism.acceleration * dt
            organism.limit_speed()
            organism.position += organism.velocity * dt
            organism.position[0] %= self.width
            organism.position[1] %= self.height
            organism.trail.append((float(organism.position[0]), float(organism.position[1])))

        # --- 3. Death marking ---
        removed = {i for i, organism in enumerate(organisms) if not organism.is_alive}
        starved = len(removed)

        # --- 4. Predation ---
        eaten = self._handle_predation(organisms, removed)

        # --- 5. Reproduction ---
        offspring = []
        for i, organism in enumerate(organisms):
            if i in removed:
                continue
            population = len(organisms) - len(removed) + len(offspring)
            if (
                organism.reproduction_cooldown == 0
                and organism.energy > organism.max_energy * self.reproduction_threshold
                and population < self.max_population
                and self.genetics.should_reproduce(organism.genes, organism.energy, local_density[i])
            ):
                spread = (self.rng.random(2) - 0.5) * self.offspring_spread
                offspring.append(self._spawn(
                    organism.position[0] + spread[0], organism.position[1] + spread[1],
                    organism.type, parent=organism
                ))
                organism.energy -= organism.max_energy * self.reproduction_cost
                organism.reproduction_cooldown = self.reproduction_cooldown

        # --- 6. Single filter pass ---
        self._organisms = [o for i, o in enumerate(organisms) if i not in removed] + offspring

        self.births += len(offspring)
        self.deaths += starved
        self.kills += eaten

        # --- Logging (throttled) ---
        if self.step_count % self.log_throttle_steps == 0:
            stats = self.get_population_stats()
            logger.debug(
                f"Ecosystem step={self.step_count}, total={stats['total']}, "
                f"predators={stats['predators']}, prey={stats['prey']}, producers={stats['producers']}, "
                f"avg_energy={stats['avg_energy']:.1f}, births={self.births}, deaths={self.deaths}, kills={self.kills}"
            )
