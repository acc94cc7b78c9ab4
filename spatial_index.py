# spatial_index.py

import math
import logging
import numpy as np
import numba

logger = logging.getLogger("glitchfield")

# Upper bound on grid cells per axis. Keys beyond it are clamped onto the edge
# cells; clamping is monotone so the 3x3 scan still sees every neighbor.
MAX_CELLS_PER_AXIS = 4096

# --- JIT-Compiled Grid Functions ---
# Kept outside the class and operating only on NumPy arrays and scalars, as
# required by Numba's nopython mode. The SPH passes call these directly.

@numba.jit(nopython=True)
def _cell_of_jit(x, y, cell_size, origin_x, origin_y, grid_width, grid_height):
    """Grid-local cell of a point, clamped to the allocated grid."""
    cell_x = int(math.floor(x / cell_size)) - origin_x
    cell_y = int(math.floor(y / cell_size)) - origin_y
    if cell_x < 0:
        cell_x = 0
    elif cell_x > grid_width - 1:
        cell_x = grid_width - 1
    if cell_y < 0:
        cell_y = 0
    elif cell_y > grid_height - 1:
        cell_y = grid_height - 1
    return cell_x, cell_y

@numba.jit(nopython=True)
def _bin_points_jit(points, cell_size, origin_x, origin_y, grid_width, grid_height, grid_offsets, grid_indices):
    """
    Counting-sort of point indices into the flattened grid.

    This O(n) operation involves three passes:
    1. Count points per cell.
    2. Calculate the starting offset for each cell in the final flat array.
    3. Populate the flat array with point indices.
    """
    num_points = points.shape[0]
    num_cells = grid_width * grid_height
    point_cells = np.empty(num_points, dtype=np.int64)
    counts = np.zeros(num_cells, dtype=np.int64)

    for i in range(num_points):
        cell_x, cell_y = _cell_of_jit(points[i, 0], points[i, 1], cell_size, origin_x, origin_y, grid_width, grid_height)
        cell_idx = cell_y * grid_width + cell_x
        point_cells[i] = cell_idx
        counts[cell_idx] += 1

    grid_offsets[0] = 0
    for c in range(num_cells):
        grid_offsets[c + 1] = grid_offsets[c] + counts[c]

    placement = grid_offsets[:num_cells].copy()
    for i in range(num_points):
        cell_idx = point_cells[i]
        grid_indices[placement[cell_idx]] = i
        placement[cell_idx] += 1

@numba.jit(nopython=True)
def _neighbors_within_jit(px, py, radius_sq, exclude, points, cell_size, origin_x, origin_y, grid_width, grid_height, grid_offsets, grid_indices):
    """
    Scans the 3x3 block of cells around (px, py) and returns the indices whose
    squared distance to the query point is below radius_sq.
    """
    result = np.empty(points.shape[0], dtype=np.int64)
    count = 0
    cell_x, cell_y = _cell_of_jit(px, py, cell_size, origin_x, origin_y, grid_width, grid_height)

    for dy in range(-1, 2):
        for dx in range(-1, 2):
            check_x = cell_x + dx
            check_y = cell_y + dy
            if 0 <= check_x < grid_width and 0 <= check_y < grid_height:
                cell_idx = check_y * grid_width + check_x
                for k in range(grid_offsets[cell_idx], grid_offsets[cell_idx + 1]):
                    j = grid_indices[k]
                    if j == exclude:
                        continue
                    diff_x = points[j, 0] - px
                    diff_y = points[j, 1] - py
                    if diff_x * diff_x + diff_y * diff_y < radius_sq:
                        result[count] = j
                        count += 1
    return result[:count]


class SpatialIndex:
    """
    Uniform grid bucketing 2D points into cells of a fixed size.

    The grid spans the bounding box of the points handed to rebuild(), so
    positions are unconstrained; internally it is the flattened
    (grid_offsets, grid_indices) layout the JIT passes iterate over.

    Data Contract:
    - rebuild(points, cell_size): clears every bucket and inserts each point
      index exactly once. An empty point set leaves an empty index.
    - neighbors_within(point, radius, exclude_self_index): indices within
      radius of point (strictly), excluding the given index. Requires
      radius <= cell_size so that the 3x3 scan is exhaustive.
    - Invariants: no entry refers to an index outside the last rebuild.
    """
    def __init__(self, max_cells_per_axis: int = MAX_CELLS_PER_AXIS):
        self.max_cells_per_axis = max_cells_per_axis
        self.cell_size = 1.0
        self.points = np.empty((0, 2), dtype=np.float64)
        self.origin_x = 0
        self.origin_y = 0
        self.grid_width = 0
        self.grid_height = 0
        self.grid_offsets = np.zeros(1, dtype=np.int64)
        self.grid_indices = np.empty(0, dtype=np.int64)

    def __len__(self):
        return self.points.shape[0]

    def cell_key(self, x: float, y: float):
        """Absolute cell coordinate of a point for the current cell size."""
        return (math.floor(x / self.cell_size), math.floor(y / self.cell_size))

    def rebuild(self, points, cell_size: float):
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}.")

        self.cell_size = float(cell_size)
        self.points = np.array(points, dtype=np.float64).reshape(-1, 2)
        num_points = self.points.shape[0]

        if num_points == 0:
            self.origin_x = self.origin_y = 0
            self.grid_width = self.grid_height = 0
            self.grid_offsets = np.zeros(1, dtype=np.int64)
            self.grid_indices = np.empty(0, dtype=np.int64)
            return

        lo = np.floor(self.points.min(axis=0) / self.cell_size)
        hi = np.floor(self.points.max(axis=0) / self.cell_size)
        self.origin_x = int(lo[0])
        self.origin_y = int(lo[1])
        self.grid_width = min(int(hi[0] - lo[0]) + 1, self.max_cells_per_axis)
        self.grid_height = min(int(hi[1] - lo[1]) + 1, self.max_cells_per_axis)

        self.grid_offsets = np.zeros(self.grid_width * self.grid_height + 1, dtype=np.int64)
        self.grid_indices = np.empty(num_points, dtype=np.int64)
        _bin_points_jit(
            self.points, self.cell_size,
            self.origin_x, self.origin_y,
            self.grid_width, self.grid_height,
            self.grid_offsets, self.grid_indices
        )

    def neighbors_within(self, point, radius: float, exclude_self_index: int = -1) -> np.ndarray:
        if radius > self.cell_size:
            raise ValueError(
                f"Query radius {radius} exceeds cell size {self.cell_size}; "
                f"the 3x3 cell scan would miss neighbors."
            )
        if self.grid_width == 0:
            return np.empty(0, dtype=np.int64)

        return _neighbors_within_jit(
            float(point[0]), float(point[1]), float(radius) ** 2, int(exclude_self_index),
            self.points, self.cell_size,
            self.origin_x, self.origin_y,
            self.grid_width, self.grid_height,
            self.grid_offsets, self.grid_indices
        )

    def grid_arrays(self):
        """The flattened grid in the argument order the JIT passes expect."""
        return (
            self.cell_size,
            self.origin_x, self.origin_y,
            self.grid_width, self.grid_height,
            self.grid_offsets, self.grid_indices
        )

    def buckets(self):
        """Non-empty cells as {(cell_x, cell_y): [indices]} in absolute cell coordinates."""
        cells = {}
        for cell_idx in range(self.grid_width * self.grid_height):
            start, end = self.grid_offsets[cell_idx], self.grid_offsets[cell_idx + 1]
            if end > start:
                key = (self.origin_x + cell_idx % self.grid_width, self.origin_y + cell_idx // self.grid_width)
                cells[key] = [int(i) for i in self.grid_indices[start:end]]
        return cells
