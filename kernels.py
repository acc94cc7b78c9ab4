# kernels.py

"""
SPH Smoothing Kernels

Radially symmetric weighting functions that fall to zero at the smoothing
radius h. The leading constants are the normalization factors used by the
engine and are not tunable.

Data Contract:
- poly6(r_sq, h) -> float: density and viscosity weighting.
- spiky_gradient(dx, dy, r, h) -> (float, float): pressure gradient and
  surface normal estimate. (dx, dy) is the vector from the neighbor to the
  particle; r is its length.
- viscosity_laplacian(r_sq, h) -> float: surface curvature estimate.
- All kernels return zero outside the support.

These are Numba-compiled so that the engine passes can inline them; they are
also callable from plain Python.
"""

import math
import numba


@numba.jit(nopython=True)
def poly6(r_sq, h):
    h_sq = h * h
    if r_sq >= h_sq:
        return 0.0
    x = 1.0 - r_sq / h_sq
    return 315.0 / (64.0 * math.pi * h ** 9) * x * x * x


@numba.jit(nopython=True)
def spiky_gradient(dx, dy, r, h):
    if r >= h or r <= 0.0:
        return 0.0, 0.0
    x = 1.0 - r / h
    f = -45.0 / (math.pi * h ** 6) * x * x / r
    return f * dx, f * dy


@numba.jit(nopython=True)
def viscosity_laplacian(r_sq, h):
    if r_sq >= h * h:
        return 0.0
    return 45.0 / (math.pi * h ** 6) * (h - math.sqrt(r_sq))
