# sph_engine.py

import math
import logging
import numpy as np
import numba

import constants
from kernels import poly6, spiky_gradient, viscosity_laplacian
from particle import Particle
from spatial_index import SpatialIndex, _cell_of_jit

logger = logging.getLogger("glitchfield")

# Absorbs float noise when a frame is an exact multiple of the adaptive dt.
SUBSTEP_TOLERANCE = 1e-9

# Adaptive timestep heuristic. Empirical values, kept as-is.
DT_GROWTH_CAP = 1.1
CFL_SAFETY = 0.9

DEFAULT_CONFIG = {
    'smoothing_radius': 10.0,
    'rest_density': 1.0,
    'stiffness': 0.1,
    'viscosity': 0.1,
    'surface_tension': 0.0728,
    'cfl': 0.5,
    'gravity': 98.0,
    'density_floor': 0.1,
    'min_dt': 0.001,
    'max_dt': 0.033,
    'max_substeps': 50,
    'restitution': 0.5,
    'particle_radius': 2.0,
    'particle_mass': 1.0,
    'surface_normal_epsilon': 1e-6,
    'log_throttle_steps': 100,
}

# --- JIT-Compiled Physics Functions ---
# Both passes walk the flattened grid built by SpatialIndex.rebuild() and
# scan the 3x3 block of cells around each particle. With cell size equal to
# the smoothing radius this visits every particle inside the kernel support.

@numba.jit(nopython=True)
def _compute_density_pressure_jit(positions, masses, densities, pressures, h, density_floor, stiffness, rest_density,
                                  cell_size, origin_x, origin_y, grid_width, grid_height, grid_offsets, grid_indices):
    """
    Pass 1: kernel-weighted density from true neighbors only (no self term),
    floored, followed by the linear equation of state.
    """
    h_sq = h * h
    for i in range(positions.shape[0]):
        p_x = positions[i, 0]
        p_y = positions[i, 1]
        cell_x, cell_y = _cell_of_jit(p_x, p_y, cell_size, origin_x, origin_y, grid_width, grid_height)

        density = 0.0
        for dy in range(-1, 2):
            for dx in range(-1, 2):
                check_x = cell_x + dx
                check_y = cell_y + dy
                if 0 <= check_x < grid_width and 0 <= check_y < grid_height:
                    cell_idx = check_y * grid_width + check_x
                    for k in range(grid_offsets[cell_idx], grid_offsets[cell_idx + 1]):
                        j = grid_indices[k]
                        if j == i:
                            continue
                        diff_x = p_x - positions[j, 0]
                        diff_y = p_y - positions[j, 1]
                        r_sq = diff_x * diff_x + diff_y * diff_y
                        if r_sq < h_sq:
                            density += masses[j] * poly6(r_sq, h)

        if density < density_floor:
            density = density_floor
        densities[i] = density
        pressures[i] = stiffness * (density - rest_density)

@numba.jit(nopython=True, fastmath=True)
def _compute_forces_jit(positions, velocities, masses, densities, pressures, accelerations,
                        h, viscosity, surface_tension, normal_epsilon, gravity,
                        cell_size, origin_x, origin_y, grid_width, grid_height, grid_offsets, grid_indices):
    """
    Pass 2: pressure, viscosity and surface tension per particle. Writes the
    full acceleration (force / density + gravity) and returns the largest
    particle speed seen, which bounds the next timestep.
    """
    h_sq = h * h
    max_speed = 0.0
    for i in range(positions.shape[0]):
        p_x = positions[i, 0]
        p_y = positions[i, 1]
        v_x = velocities[i, 0]
        v_y = velocities[i, 1]
        cell_x, cell_y = _cell_of_jit(p_x, p_y, cell_size, origin_x, origin_y, grid_width, grid_height)

        force_x = 0.0
        force_y = 0.0
        normal_x = 0.0
        normal_y = 0.0
        curvature = 0.0
        for dy in range(-1, 2):
            for dx in range(-1, 2):
                check_x = cell_x + dx
                check_y = cell_y + dy
                if 0 <= check_x < grid_width and 0 <= check_y < grid_height:
                    cell_idx = check_y * grid_width + check_x
                    for k in range(grid_offsets[cell_idx], grid_offsets[cell_idx + 1]):
                        j = grid_indices[k]
                        if j == i:
                            continue
                        diff_x = p_x - positions[j, 0]
                        diff_y = p_y - positions[j, 1]
                        r_sq = diff_x * diff_x + diff_y * diff_y
                        if r_sq >= h_sq:
                            continue

                        r = math.sqrt(r_sq)
                        grad_x, grad_y = spiky_gradient(diff_x, diff_y, r, h)
                        volume = masses[j] / densities[j]

                        # Pressure: symmetric average of both pressures
                        pressure_scalar = -masses[j] * (pressures[i] + pressures[j]) / (2.0 * densities[j])
                        force_x += pressure_scalar * grad_x
                        force_y += pressure_scalar * grad_y

                        # Viscosity: pull toward the neighbor's velocity
                        weight = poly6(r_sq, h)
                        force_x += viscosity * volume * (velocities[j, 0] - v_x) * weight
                        force_y += viscosity * volume * (velocities[j, 1] - v_y) * weight

                        # Surface tension estimates
                        normal_x += grad_x * volume
                        normal_y += grad_y * volume
                        curvature += viscosity_laplacian(r_sq, h) * volume

        normal_len = math.sqrt(normal_x * normal_x + normal_y * normal_y)
        if normal_len > normal_epsilon:
            force_x += -surface_tension * curvature * normal_x / normal_len
            force_y += -surface_tension * curvature * normal_y / normal_len

        accelerations[i, 0] = force_x / densities[i]
        accelerations[i, 1] = force_y / densities[i] + gravity

        speed = math.sqrt(v_x * v_x + v_y * v_y)
        if speed > max_speed:
            max_speed = speed
    return max_speed


def _read_only(array: np.ndarray) -> np.ndarray:
    view = array.view()
    view.flags.writeable = False
    return view


class SPHEngine:
    """
    2D Smoothed Particle Hydrodynamics integrator for the explosion phase.

    Particles are stored as a Structure of Arrays keyed by a stable index.
    Each step runs three passes in fixed order: density/pressure, forces,
    adaptive integrate. Large frame times are split into sub-steps bounded by
    a CFL condition.

    Data Contract:
    - Inputs:
        - width, height (float): simulation bounds used for boundary reflection.
        - config (dict, optional): the 'sph' section of config.json. Missing
          keys fall back to DEFAULT_CONFIG.
        - rng (np.random.Generator, optional): used by emit_burst().
    - Outputs: particle snapshots via get_particles() and read-only array views.
    - Side Effects: step() mutates the engine's particle arrays only.
    - Invariants:
        - All particle arrays have the same length.
        - Density is never below density_floor after pass 1.
        - adaptive_dt stays within [min_dt, max_dt].
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

        # --- Physical constants (fixed for the lifetime of the engine) ---
        self.h = float(params['smoothing_radius'])
        self.rest_density = float(params['rest_density'])
        self.stiffness = float(params['stiffness'])
        self.viscosity = float(params['viscosity'])
        self.surface_tension = float(params['surface_tension'])
        self.cfl = float(params['cfl'])
        self.gravity = float(params['gravity'])
        self.density_floor = float(params['density_floor'])
        self.min_dt = float(params['min_dt'])
        self.max_dt = float(params['max_dt'])
        self.max_substeps = int(params['max_substeps'])
        self.restitution = float(params['restitution'])
        self.particle_radius = float(params['particle_radius'])
        self.particle_mass = float(params['particle_mass'])
        self.normal_epsilon = float(params['surface_normal_epsilon'])
        self.log_throttle_steps = int(params['log_throttle_steps'])
        self._validate()

        # --- Timestep state ---
        self.adaptive_dt = self.max_dt
        self.last_substeps = 0
        self.last_max_speed = 0.0
        self.step_count = 0

        # --- Particle storage (Structure of Arrays) ---
        self._positions = np.empty((0, 2), dtype=np.float64)
        self._velocities = np.empty((0, 2), dtype=np.float64)
        self._accelerations = np.empty((0, 2), dtype=np.float64)
        self._radii = np.empty(0, dtype=np.float64)
        self._masses = np.empty(0, dtype=np.float64)
        self._densities = np.empty(0, dtype=np.float64)
        self._pressures = np.empty(0, dtype=np.float64)
        self._life = np.empty(0, dtype=np.float64)
        self._colors = []

        # Cell size equals the smoothing radius so the 3x3 scan is exhaustive.
        self.index = SpatialIndex()

        logger.info(
            f"SPHEngine created: bounds={self.width:.0f}x{self.height:.0f}, h={self.h}, "
            f"rest_density={self.rest_density}, k={self.stiffness}, mu={self.viscosity}, "
            f"sigma={self.surface_tension}, cfl={self.cfl}, dt band=[{self.min_dt}, {self.max_dt}]."
        )

    def _validate(self):
        problems = []
        if self.h <= 0:
            problems.append(f"smoothing_radius must be positive (got {self.h})")
        if not 0 < self.cfl < 1:
            problems.append(f"cfl must be in (0, 1) (got {self.cfl})")
        if self.density_floor <= 0:
            problems.append(f"density_floor must be positive (got {self.density_floor})")
        if not 0 < self.min_dt <= self.max_dt:
            problems.append(f"require 0 < min_dt <= max_dt (got {self.min_dt}, {self.max_dt})")
        if self.max_substeps < 1:
            problems.append(f"max_substeps must be at least 1 (got {self.max_substeps})")
        if problems:
            msg = "Invalid SPH configuration: " + "; ".join(problems) + "."
            logger.critical(msg)
            raise ValueError(msg)

    # --- Population ---

    @property
    def particle_count(self) -> int:
        return self._positions.shape[0]

    def add_particle(self, x: float, y: float, vx: float = 0.0, vy: float = 0.0, color: str = None) -> int:
        """Appends one particle at rest density and full life. Returns its index."""
        self._append(
            np.array([[x, y]], dtype=np.float64),
            np.array([[vx, vy]], dtype=np.float64),
            [color or constants.DEFAULT_PARTICLE_COLOR]
        )
        return self.particle_count - 1

    def emit_burst(self, x: float, y: float, count: int, speed_range=(50.0, 200.0)):
        """
        Seeds an explosion: count particles at (x, y) with velocities spread
        evenly around the circle, random speeds, and the 404 palette cycled
        over them.
        """
        if count <= 0:
            logger.warning(f"emit_burst called with count={count}; nothing emitted.")
            return

        angles = np.arange(count) / count * 2.0 * np.pi
        speeds = self.rng.uniform(speed_range[0], speed_range[1], count)
        positions = np.tile(np.array([x, y], dtype=np.float64), (count, 1))
        velocities = np.column_stack((np.cos(angles) * speeds, np.sin(angles) * speeds))
        palette = constants.BURST_PALETTE
        self._append(positions, velocities, [palette[i % len(palette)] for i in range(count)])

        logger.info(f"Burst of {count} particles emitted at ({x:.1f}, {y:.1f}). Total: {self.particle_count}.")

    def _append(self, positions, velocities, colors):
        count = positions.shape[0]
        self._positions = np.vstack((self._positions, positions))
        self._velocities = np.vstack((self._velocities, velocities))
        self._accelerations = np.vstack((self._accelerations, np.zeros((count, 2))))
        self._radii = np.append(self._radii, np.full(count, self.particle_radius))
        self._masses = np.append(self._masses, np.full(count, self.particle_mass))
        self._densities = np.append(self._densities, np.full(count, max(self.rest_density, self.density_floor)))
        self._pressures = np.append(self._pressures, np.zeros(count))
        self._life = np.append(self._life, np.ones(count))
        self._colors.extend(colors)

    def clear(self):
        """Drops every particle; constants and the adaptive dt are kept."""
        self._positions = self._positions[:0]
        self._velocities = self._velocities[:0]
        self._accelerations = self._accelerations[:0]
        self._radii = self._radii[:0]
        self._masses = self._masses[:0]
        self._densities = self._densities[:0]
        self._pressures = self._pressures[:0]
        self._life = self._life[:0]
        self._colors = []

    def set_life(self, value: float):
        """Global fade used only by the renderer."""
        self._life[:] = min(1.0, max(0.0, value))

    def apply_curl_noise(self, time: float, strength: float = 0.5, scale: float = 0.01):
        """
        Stirs velocities with the curl of a smooth scalar noise field. The curl
        is divergence-free, so it swirls particles without bunching them.
        """
        if self.particle_count == 0:
            return
        eps = 0.01
        x = self._positions[:, 0] * scale
        y = self._positions[:, 1] * scale
        n_up = _noise(x, y + eps, time)
        n_down = _noise(x, y - eps, time)
        n_right = _noise(x + eps, y, time)
        n_left = _noise(x - eps, y, time)
        self._velocities[:, 0] += (n_up - n_down) / (2 * eps) * strength
        self._velocities[:, 1] += (n_left - n_right) / (2 * eps) * strength

    # --- Read accessors (snapshots for the renderer) ---

    @property
    def positions(self) -> np.ndarray:
        return _read_only(self._positions)

    @property
    def velocities(self) -> np.ndarray:
        return _read_only(self._velocities)

    @property
    def accelerations(self) -> np.ndarray:
        return _read_only(self._accelerations)

    @property
    def densities(self) -> np.ndarray:
        return _read_only(self._densities)

    @property
    def pressures(self) -> np.ndarray:
        return _read_only(self._pressures)

    def get_particles(self):
        """Copies every particle into a Particle record."""
        return [
            Particle(
                x=float(self._positions[i, 0]), y=float(self._positions[i, 1]),
                vx=float(self._velocities[i, 0]), vy=float(self._velocities[i, 1]),
                ax=float(self._accelerations[i, 0]), ay=float(self._accelerations[i, 1]),
                radius=float(self._radii[i]), mass=float(self._masses[i]),
                density=float(self._densities[i]), pressure=float(self._pressures[i]),
                life=float(self._life[i]), color=self._colors[i]
            )
            for i in range(self.particle_count)
        ]

    # --- Physics passes ---

    def compute_density_pressure(self):
        """Pass 1. Rebuilds the spatial index over the current positions."""
        self.index.rebuild(self._positions, self.h)
        _compute_density_pressure_jit(
            self._positions, self._masses, self._densities, self._pressures,
            self.h, self.density_floor, self.stiffness, self.rest_density,
            *self.index.grid_arrays()
        )

    def compute_forces(self) -> float:
        """Pass 2. Must follow compute_density_pressure(). Returns the max speed."""
        max_speed = _compute_forces_jit(
            self._positions, self._velocities, self._masses, self._densities, self._pressures, self._accelerations,
            self.h, self.viscosity, self.surface_tension, self.normal_epsilon, self.gravity,
            *self.index.grid_arrays()
        )
        self.last_max_speed = float(max_speed)
        return self.last_max_speed

    def compute_adaptive_dt(self, max_speed: float = None) -> float:
        """
        Moves the running dt toward the CFL bound. Growth is capped at 10% per
        call; with no motion the dt only grows.
        """
        if max_speed is None:
            max_speed = self.last_max_speed
        candidate = self.adaptive_dt * DT_GROWTH_CAP
        if max_speed > 0:
            dt_cfl = self.cfl * self.h / max_speed
            candidate = min(candidate, dt_cfl * CFL_SAFETY)
        self.adaptive_dt = min(self.max_dt, max(self.min_dt, candidate))
        assert math.isfinite(self.adaptive_dt), "adaptive dt became non-finite"
        return self.adaptive_dt

    def integrate(self, dt: float):
        """
        Semi-implicit Euler followed by inelastic wall reflection:
        v += a*dt; x += v*dt.
        """
        self._velocities += self._accelerations * dt
        self._positions += self._velocities * dt
        self._reflect_at_boundaries()
        assert np.all(np.isfinite(self._positions)), "non-finite particle position after integration"

    def _reflect_at_boundaries(self):
        """
        Vectorized boundary reflection. Positions are clamped into
        [radius, dimension - radius] and the normal velocity component is
        reversed and scaled by the restitution factor.
        """
        radii = self._radii

        # Left/right walls
        left_mask = self._positions[:, 0] < radii
        right_mask = self._positions[:, 0] > self.width - radii
        self._positions[left_mask, 0] = radii[left_mask]
        self._positions[right_mask, 0] = self.width - radii[right_mask]
        self._velocities[left_mask | right_mask, 0] *= -self.restitution

        # Top/bottom walls
        top_mask = self._positions[:, 1] < radii
        bottom_mask = self._positions[:, 1] > self.height - radii
        self._positions[top_mask, 1] = radii[top_mask]
        self._positions[bottom_mask, 1] = self.height - radii[bottom_mask]
        self._velocities[top_mask | bottom_mask, 1] *= -self.restitution

    def step(self, dt_ms: float):
        """
        Advances the simulation by one frame of dt_ms milliseconds.

        The frame is split into ceil(frame / adaptive_dt) equal sub-steps,
        each running all three passes. The sub-step count is capped at
        max_substeps; simulated time beyond the cap is dropped.
        """
        frame_dt = dt_ms / 1000.0
        if frame_dt <= 0:
            return

        self.compute_density_pressure()
        max_speed = self.compute_forces()
        dt = self.compute_adaptive_dt(max_speed)

        substeps = 1
        if frame_dt > dt:
            substeps = max(1, math.ceil(frame_dt / dt - SUBSTEP_TOLERANCE))
        if substeps > self.max_substeps:
            dropped = frame_dt - self.max_substeps * dt
            logger.warning(
                f"Frame of {dt_ms:.1f} ms needs {substeps} sub-steps at dt={dt:.4f}; "
                f"capping at {self.max_substeps} and discarding {dropped:.3f} s."
            )
            substeps = self.max_substeps
            sub_dt = dt
        else:
            sub_dt = frame_dt / substeps

        for n in range(substeps):
            if n > 0:
                self.compute_density_pressure()
                self.compute_adaptive_dt(self.compute_forces())
            self.integrate(sub_dt)

        self.last_substeps = substeps
        self.step_count += 1

        # --- Logging (throttled) ---
        if self.step_count % self.log_throttle_steps == 0:
            logger.debug(
                f"SPH step={self.step_count}, particles={self.particle_count}, "
                f"substeps={substeps}, adaptive_dt={self.adaptive_dt:.4f}, "
                f"max_speed={self.last_max_speed:.2f}"
            )


def _noise(x, y, t):
    """Smooth periodic scalar field in [0, 1]."""
    n = np.sin(x * 0.01 + t) * np.cos(y * 0.01 + t) * np.sin((x + y) * 0.02 + t * 2)
    return (n + 1) / 2
