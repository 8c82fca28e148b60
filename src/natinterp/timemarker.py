"""Nearest-sample times and marks on a grid, for anisotropic eikonal equations.

Known grid samples are those with zero time. For every other sample, the time marker computes
the least traveltime to a known sample by solving ``grad(t) · D grad(t) = 1``, where D is a
field of positive-definite (velocity-squared) tensors, and copies the mark of that known sample.
With isotropic tensors the times are Euclidean distances in sample units and the marks form a
discrete Voronoi diagram of the known samples.

Times are computed by iterative sweeps over an active list (Jeong and Whitaker, 2007),
separately from each known sample next to an unknown one, keeping the least time.
"""

import itertools
import logging
from typing import Dict, List, Sequence, Tuple

import numpy as np

from natinterp.tensors import Tensors

logger = logging.getLogger(__name__)

# Times are converged when the fractional change is less than this value.
EPSILON = 0.001

# Known samples are processed in a fixed pseudo-random order.
SHUFFLE_SEED = 314159

# Neighbors of a converged sample are only updated if its time is within this factor of the
# least time so far. Larger factors improve accuracy for strong anisotropy at a quadratic cost.
ACTIVATION_FACTOR = 1.5

Cell = Tuple[int, ...]
Stencil = Tuple[Tuple[int, ...], Tuple[int, ...]]


class TimeMarker:
    """Time and closest-point transform for a grid.

    Args:
        shape: Grid shape, ``(n2, n1)`` or ``(n3, n2, n1)``.
        tensors: Velocity-squared tensors with the same grid shape.
    """

    def __init__(self, shape: Sequence[int], tensors: Tensors):
        self._shape = tuple(int(n) for n in shape)
        ndim = len(self._shape)
        if ndim not in (2, 3):
            raise ValueError(f'Only 2D and 3D grids are supported, got shape {self._shape}')
        self._ndim = ndim
        self._steps = [(axis, sign) for axis in range(ndim) for sign in (-1, 1)]
        self._stencils = _stencils(ndim)
        self._step_stencils = [
            [(axes, signs) for axes, signs in self._stencils
             if axis in axes and signs[axes.index(axis)] == -sign]
            for axis, sign in self._steps]
        self.set_tensors(tensors)

    def set_tensors(self, tensors: Tensors):
        if tensors.shape != self._shape:
            raise ValueError(f'Tensors of grid shape {tensors.shape} for grid {self._shape}')
        inverse = np.linalg.inv(tensors.in_coordinate_order())

        # Eliminating the gradient components along axes that a stencil does not span leaves a
        # Schur complement of D, which is the inverse of the matching block of D⁻¹.
        self._metrics = {}
        for axes, _ in self._stencils:
            if axes not in self._metrics:
                block = inverse[..., axes, :][..., :, axes]
                self._metrics[axes] = np.linalg.inv(block)

    def apply(self, times: np.ndarray, marks: np.ndarray):
        """Computes times and marks for unknown samples, in place.

        Args:
            times: Times, zero for known samples. Other values are replaced by the least
                traveltime to a known sample, or infinity if none can be reached.
            marks: Marks of the known samples. Unknown samples get the mark of the known sample
                with least traveltime.
        """
        if times.shape != self._shape or marks.shape != self._shape:
            raise ValueError(f'Times and marks must have shape {self._shape}')
        known = times == 0.0
        times[~known] = np.inf

        sources = self._index_sources(known)
        np.random.RandomState(SHUFFLE_SEED).shuffle(sources)

        # Work in coordinate order, with cells indexed (i1, i2[, i3]).
        times_c = times.T
        marks_c = marks.T
        for source in sources:
            cell = tuple(int(i) for i in reversed(source))
            self._solve(cell, marks_c[cell], times_c, marks_c)
        logger.debug('Marked %d unknown samples from %d sources', np.count_nonzero(~known),
                     len(sources))

    def _index_sources(self, known: np.ndarray) -> np.ndarray:
        """Indices of known samples with at least one unknown neighbor, in array order."""
        bordering = np.zeros_like(known)
        for axis in range(self._ndim):
            unknown = ~known
            lower = [slice(None)] * self._ndim
            upper = [slice(None)] * self._ndim
            lower[axis] = slice(None, -1)
            upper[axis] = slice(1, None)
            bordering[tuple(lower)] |= unknown[tuple(upper)]
            bordering[tuple(upper)] |= unknown[tuple(lower)]
        return np.argwhere(known & bordering)

    def _solve(self, source: Cell, mark, times: np.ndarray, marks: np.ndarray):
        """Propagates times from one source until they converge."""
        t = {source: 0.0}
        active = [source]
        while active:
            pending = {}
            for cell in active:
                self._solve_one(cell, t, mark, times, marks, pending)
            active = list(pending)

    def _solve_one(self, cell: Cell, t: Dict[Cell, float], mark, times: np.ndarray,
                   marks: np.ndarray, pending: Dict[Cell, None]):
        ti = t.get(cell, np.inf)
        ci = self._compute_time(t, cell, self._stencils)
        t[cell] = ci
        if ci < ti * (1.0 - EPSILON):
            pending[cell] = None
            return

        check_neighbors = ci <= ACTIVATION_FACTOR * times[cell]
        if ci < times[cell]:
            times[cell] = ci
            marks[cell] = mark
        if not check_neighbors:
            return
        for k, (axis, sign) in enumerate(self._steps):
            j = cell[axis] + sign
            if j < 0 or j >= times.shape[axis]:
                continue
            neighbor = cell[:axis] + (j,) + cell[axis + 1:]
            tj = t.get(neighbor, np.inf)
            cj = self._compute_time(t, neighbor, self._step_stencils[k])
            if cj < tj * (1.0 - EPSILON):
                t[neighbor] = cj
                pending[neighbor] = None

    def _compute_time(self, t: Dict[Cell, float], cell: Cell, stencils: List[Stencil]) -> float:
        """First time from the stencils that is less than the current time of a cell."""
        tc = t.get(cell, np.inf)
        for axes, signs in stencils:
            neighbor_times = []
            for axis, sign in zip(axes, signs):
                neighbor = cell[:axis] + (cell[axis] + sign,) + cell[axis + 1:]
                neighbor_times.append(t.get(neighbor, np.inf))
            if np.inf in neighbor_times:
                continue
            t0 = _upwind_time(self._metrics[axes][cell], signs, neighbor_times)
            if t0 < tc:
                return t0
        return tc


def _stencils(ndim: int) -> List[Stencil]:
    """Neighbor offsets used to update a time: simplices with most axes first, edges last.

    Each stencil is a tuple of axes and a tuple of signs, one per axis. Within a set of axes,
    signs vary fastest along the first axis.
    """
    stencils = []
    for count in range(ndim, 0, -1):
        for axes in itertools.combinations(range(ndim), count):
            for signs in itertools.product((-1, 1), repeat=count):
                stencils.append((axes, signs[::-1]))
    return stencils


def _upwind_time(metric: np.ndarray, signs: Sequence[int], times: Sequence[float]) -> float:
    """Solves the eikonal equation over one stencil for a time t0 with a causal gradient.

    With ``t0 - t[a] = u + delta[a]`` and ``delta[a] = t[0] - t[a]``, the equation
    ``sum(ds[a, b] * (t0 - t[a]) * (t0 - t[b])) = 1`` becomes a quadratic in u; solving for u
    instead of t0 reduces rounding errors.
    """
    s = np.asarray(signs, np.float64)
    ds = metric * np.outer(s, s)
    times = np.asarray(times, np.float64)
    delta = times[0] - times
    a = ds.sum()
    b = 2.0 * np.sum(ds @ delta)
    c = delta @ ds @ delta - 1.0
    d = b * b - 4.0 * a * c
    if d < 0.0:
        return np.inf
    u = (-b + np.sqrt(d)) / (2.0 * a)
    if np.any(ds @ (u + delta) < 0.0):
        return np.inf
    return float(times[0] + u)
