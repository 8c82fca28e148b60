"""Gridding of scattered samples.

:class:`SimpleGridder` averages the scattered samples that fall on each grid sample.
:class:`BlendedGridder` fills the rest of the grid with the value of the nearest known sample,
nearest in traveltime for a tensor field, and then blends these values with a local smoothing
filter whose extent grows with the traveltime to the nearest known sample. Known samples keep
their values exactly.
:class:`DiscreteSibsonGridder` approximates natural neighbor interpolation on the grid itself,
without a Delaunay mesh.
"""

import itertools
import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import scipy.ndimage

from natinterp.exceptions import NonUniformSamplingError
from natinterp.geometry import stack_coordinates
from natinterp.sampling import Sampling
from natinterp.smoothing import LocalSmoothingFilter
from natinterp.tensors import Tensors
from natinterp.timemarker import TimeMarker

logger = logging.getLogger(__name__)

# Marks unknown grid samples before times are computed.
_NULL = -np.finfo(np.float32).max

# Grid samples at the same distance as the nearest known sample, to within this fraction, lie
# inside its circle.
_TIE = 1e-6


class SimpleGridder:
    """Grids scattered samples by averaging those nearest to each grid sample.

    Scattered samples further than half a sample interval outside the grid are ignored. Grid
    samples without any scattered samples get the null value, zero unless changed.

    Args:
        f: Sample values. Shape (N,).
        x: Sample coordinates. Shape (N, 2) or (N, 3).
    """

    def __init__(self, f: np.ndarray, x: np.ndarray):
        self._fnull = 0.0
        self._f, self._x = _check_scattered(f, x)

    def set_null_value(self, fnull: float):
        self._fnull = fnull

    def set_scattered(self, f: np.ndarray, x: np.ndarray):
        self._f, self._x = _check_scattered(f, x)

    def grid(self, *samplings: Sampling) -> np.ndarray:
        """Returns the gridded values, float32, indexed ``[i2, i1]`` or ``[i3, i2, i1]``."""
        sums, counts = _bin(samplings, self._f, self._x)
        g = np.full(sums.shape, self._fnull, np.float32)
        known = counts > 0
        g[known] = sums[known] / counts[known]
        logger.debug('Gridded %d scattered samples onto %d of %d grid samples',
                     len(self._f), np.count_nonzero(known), g.size)
        return g

    @staticmethod
    def samples_on_grid(
        samplings: Sequence[Sampling], f: np.ndarray, x: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Moves scattered samples to their nearest grid samples.

        Samples that share a grid sample are averaged.

        Returns:
            A tuple ``(f, x)`` of gridded sample values and their grid coordinates, ordered by
            grid index.
        """
        f, x = _check_scattered(f, x)
        sums, counts = _bin(samplings, f, x)
        return _grid_samples(samplings, counts > 0, sums / np.maximum(counts, 1))

    @staticmethod
    def get_gridded_samples(
        fnull: float, samplings: Sequence[Sampling], g: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Returns the non-null samples of a gridded array as ``(f, x)``."""
        g = np.asarray(g)
        if g.shape != _grid_shape(samplings):
            raise ValueError(f'Gridded array of shape {g.shape} does not match the samplings')
        return _grid_samples(samplings, g != fnull, g)


class SimpleGridder2(SimpleGridder):
    """Simple gridder for scattered samples f(x1, x2)."""

    def __init__(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray):
        super().__init__(f, stack_coordinates(x1, x2))

    def set_scattered(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray):
        super().set_scattered(f, stack_coordinates(x1, x2))


class SimpleGridder3(SimpleGridder):
    """Simple gridder for scattered samples f(x1, x2, x3)."""

    def __init__(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray, x3: np.ndarray):
        super().__init__(f, stack_coordinates(x1, x2, x3))

    def set_scattered(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray, x3: np.ndarray):
        super().set_scattered(f, stack_coordinates(x1, x2, x3))


class BlendedGridder:
    """Gridding by blending nearest-neighbor values with tensor-guided smoothing.

    Args:
        f: Sample values. Shape (N,).
        x: Sample coordinates. Shape (N, 2) or (N, 3).
        tensors: Tensors that define traveltimes and smoothing, with the shape of the grids
            passed in. None means isotropic, homogeneous tensors.
    """

    def __init__(self, f: np.ndarray, x: np.ndarray, tensors: Optional[Tensors] = None):
        self._tensors = tensors
        self._blending = True
        self._tmax = np.inf
        self._c = 0.5
        self._f, self._x = _check_scattered(f, x)

    def set_tensors(self, tensors: Optional[Tensors]):
        self._tensors = tensors

    def set_smoothness(self, smoothness: float):
        """Sets the smoothness of the blended values.

        The default is 0.5, which yields linear precision. Larger values blend less near known
        samples and yield plateaus there.
        """
        if not smoothness > 0.0:
            raise ValueError(f'Smoothness must be positive, got {smoothness}')
        self._c = 0.25 / smoothness

    def set_blending(self, blending: bool):
        """Enables or disables blending; if disabled, :meth:`grid` returns nearest values."""
        self._blending = blending

    def set_time_max(self, tmax: float):
        """Clamps times to at most tmax, which limits the extent of smoothing."""
        self._tmax = tmax

    def set_scattered(self, f: np.ndarray, x: np.ndarray):
        self._f, self._x = _check_scattered(f, x)

    def grid(self, *samplings: Sampling) -> np.ndarray:
        """Grids the scattered samples.

        Args:
            samplings: Uniform samplings, one per coordinate, in the order x1, x2[, x3].

        Returns:
            The gridded values, float32, indexed ``[i2, i1]`` or ``[i3, i2, i1]``.
        """
        if not all(s.is_uniform() for s in samplings):
            raise NonUniformSamplingError('Blended gridding requires uniform samplings')
        gridder = SimpleGridder(self._f, self._x)
        gridder.set_null_value(_NULL)
        p = gridder.grid(*samplings)
        t = np.where(p != _NULL, 0.0, _NULL).astype(np.float32)
        self.grid_nearest_times(t, p)
        if not self._blending:
            return p
        return self.grid_blended(t, p)

    def grid_nearest(self, pnull: float, p: np.ndarray) -> np.ndarray:
        """Replaces null values in a gridded array with the nearest non-null values.

        Args:
            pnull: Value that marks unknown samples in p.
            p: Gridded values, modified in place.

        Returns:
            Times to the nearest known samples, zero for known samples.
        """
        t = np.where(p != pnull, 0.0, _NULL).astype(np.float32)
        self.grid_nearest_times(t, p)
        return t

    def grid_nearest_times(self, t: np.ndarray, p: np.ndarray):
        """Like :meth:`grid_nearest`, with known samples given by zero times in t.

        Both t and p are modified in place: t gets times to the nearest known samples, clamped
        to the maximum time, and p gets the values of those samples.

        Raises:
            ValueError: If there are no known samples, or some grid samples cannot be reached
                from any of them.
        """
        if t.shape != p.shape:
            raise ValueError(f'Times of shape {t.shape} for values of shape {p.shape}')
        known = t == 0.0
        count = np.count_nonzero(known)
        if count == 0:
            raise ValueError('No known samples to grid from')
        values = p[known]
        marks = np.zeros(t.shape, np.int64)
        marks[known] = np.arange(count)

        TimeMarker(t.shape, self._get_tensors(t.shape)).apply(t, marks)
        unreached = np.count_nonzero(np.isinf(t))
        if unreached:
            raise ValueError(
                f'{unreached} grid samples cannot be reached from any known sample')
        p[~known] = values[marks[~known]]
        t[t > self._tmax] = self._tmax

    def grid_blended(self, t: np.ndarray, p: np.ndarray, q: Optional[np.ndarray] = None) -> np.ndarray:
        """Blends nearest values by smoothing them more where times are larger.

        Args:
            t: Times to the nearest known samples, zero for known samples.
            p: Nearest-neighbor values, as computed by :meth:`grid_nearest`.
            q: Output array; allocated if None.

        Returns:
            The blended values q, equal to p wherever t is zero.
        """
        if t.shape != p.shape:
            raise ValueError(f'Times of shape {t.shape} for values of shape {p.shape}')
        if not np.all(np.isfinite(t)):
            raise ValueError('Times must be finite; unreached grid samples cannot be blended')
        if q is None:
            q = np.empty(p.shape, np.float32)

        # Squared times, averaged onto the cells of the staggered smoothing stencil.
        s = np.square(t, dtype=np.float64)
        upper = tuple(slice(1, None) for _ in range(s.ndim))
        cell = np.zeros_like(s[upper])
        for corner in np.ndindex(*(2,) * s.ndim):
            cell += s[tuple(slice(1 - c, n - c) for c, n in zip(corner, s.shape))]
        s[upper] = cell / 2 ** s.ndim

        smoother = LocalSmoothingFilter(0.01, 10000)
        q[...] = smoother.apply(self._get_tensors(p.shape), self._c, s, p)

        # Smoothing changes known values slightly.
        known = t == 0.0
        q[known] = p[known]
        return q

    def _get_tensors(self, shape) -> Tensors:
        if self._tensors is None:
            return Tensors.identity(shape)
        return self._tensors


class BlendedGridder2(BlendedGridder):
    """Blended gridder for scattered samples f(x1, x2)."""

    def __init__(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray,
                 tensors: Optional[Tensors] = None):
        super().__init__(f, stack_coordinates(x1, x2), tensors)

    def set_scattered(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray):
        super().set_scattered(f, stack_coordinates(x1, x2))


class BlendedGridder3(BlendedGridder):
    """Blended gridder for scattered samples f(x1, x2, x3)."""

    def __init__(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray, x3: np.ndarray,
                 tensors: Optional[Tensors] = None):
        super().__init__(f, stack_coordinates(x1, x2, x3), tensors)

    def set_scattered(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray, x3: np.ndarray):
        super().set_scattered(f, stack_coordinates(x1, x2, x3))


class DiscreteSibsonGridder:
    """A discrete approximation of Sibson's natural neighbor interpolation.

    Scattered samples are moved to their nearest grid samples and averaged where they share
    one, as in :class:`SimpleGridder`. Every other grid sample is the center of a circle
    (a sphere in 3D) that reaches to the nearest known sample. The value of that known sample
    is scattered into all unknown grid samples inside the circle, and each unknown sample gets
    the average of the values scattered into it (Park et al., 2006). No Delaunay mesh is
    needed, and the cost decreases as the number of known samples increases.

    Sampling circles on a grid causes small axis-aligned ridges and valleys. Optional
    Gauss-Seidel iterations of bi-Laplacian smoothing attenuate them without changing the known
    samples.

    Args:
        f: Sample values. Shape (N,).
        x: Sample coordinates. Shape (N, 2) or (N, 3).
    """

    def __init__(self, f: np.ndarray, x: np.ndarray):
        self._nsmooth = 0
        self._f, self._x = _check_scattered(f, x)

    def set_smooth(self, nsmooth: int):
        """Sets the number of bi-Laplacian smoothing iterations, zero by default.

        Smoothing may also create unwanted oscillations in the gridded values.
        """
        if nsmooth < 0:
            raise ValueError(f'Number of smoothing iterations must be non-negative, got {nsmooth}')
        self._nsmooth = int(nsmooth)

    def set_scattered(self, f: np.ndarray, x: np.ndarray):
        self._f, self._x = _check_scattered(f, x)

    def grid(self, *samplings: Sampling) -> np.ndarray:
        """Grids the scattered samples.

        Args:
            samplings: Uniform samplings, one per coordinate, in the order x1, x2[, x3].

        Returns:
            The gridded values, float32, indexed ``[i2, i1]`` or ``[i3, i2, i1]``.
        """
        if not all(s.is_uniform() for s in samplings):
            raise NonUniformSamplingError('Discrete Sibson gridding requires uniform samplings')
        sums, counts = _bin(samplings, self._f, self._x)
        known = counts > 0
        if not known.any():
            raise ValueError('No known samples to grid from')
        g = np.zeros(sums.shape)
        g[known] = sums[known] / counts[known]

        # Squared distance from each grid sample to its nearest known sample, and that value.
        deltas = [s.delta for s in reversed(samplings)]
        distance, nearest = scipy.ndimage.distance_transform_edt(
            ~known, sampling=deltas, return_indices=True)
        r2 = distance.ravel() ** 2
        fn = g[tuple(nearest)].ravel()

        # Centers by decreasing radius, so the centers that reach an offset come first.
        centers = np.flatnonzero(~known.ravel())
        centers = centers[np.argsort(-r2[centers], kind='stable')]
        reach = r2[centers] * (1.0 + _TIE)
        center_index = np.column_stack(np.unravel_index(centers, g.shape))

        offsets, d2 = _offsets_within(deltas, r2.max() * (1.0 + _TIE))
        shape = np.array(g.shape)
        sums = np.zeros(g.size)
        counts = np.zeros(g.size)
        for offset, d2k in zip(offsets, d2):
            count = np.searchsorted(-reach, -d2k, side='right')
            targets = center_index[:count] + offset
            inside = np.all((targets >= 0) & (targets < shape), axis=1)
            flat = np.ravel_multi_index(tuple(targets[inside].T), g.shape)
            np.add.at(sums, flat, fn[centers[:count][inside]])
            np.add.at(counts, flat, 1.0)

        unknown = ~known
        g[unknown] = sums.reshape(g.shape)[unknown] / counts.reshape(g.shape)[unknown]
        if self._nsmooth > 0:
            _smooth_bilaplacian(g, unknown, self._nsmooth)
        logger.debug('Gridded %d known samples onto %d grid samples with %d offsets',
                     np.count_nonzero(known), g.size, len(offsets))
        return g.astype(np.float32)


class DiscreteSibsonGridder2(DiscreteSibsonGridder):
    """Discrete Sibson gridder for scattered samples f(x1, x2)."""

    def __init__(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray):
        super().__init__(f, stack_coordinates(x1, x2))

    def set_scattered(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray):
        super().set_scattered(f, stack_coordinates(x1, x2))


class DiscreteSibsonGridder3(DiscreteSibsonGridder):
    """Discrete Sibson gridder for scattered samples f(x1, x2, x3)."""

    def __init__(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray, x3: np.ndarray):
        super().__init__(f, stack_coordinates(x1, x2, x3))

    def set_scattered(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray, x3: np.ndarray):
        super().set_scattered(f, stack_coordinates(x1, x2, x3))


def _check_scattered(f, x):
    f = np.asarray(f, np.float32).ravel()
    x = np.asarray(x, np.float64)
    if x.ndim != 2 or x.shape[1] not in (2, 3):
        raise ValueError(f'Sample coordinates must have shape (N, 2) or (N, 3), got {x.shape}')
    if len(f) != len(x):
        raise ValueError(f'Got {len(f)} sample values for {len(x)} sample coordinates')
    return f, x


def _grid_shape(samplings: Sequence[Sampling]) -> Tuple[int, ...]:
    return tuple(s.count for s in reversed(samplings))


def _bin(samplings: Sequence[Sampling], f: np.ndarray, x: np.ndarray):
    """Sums and counts of the samples nearest to each grid sample."""
    ndim = x.shape[1]
    if len(samplings) != ndim:
        raise ValueError(f'Expected {ndim} samplings, got {len(samplings)}')
    inside = np.ones(len(x), bool)
    for k, s in enumerate(samplings):
        inside &= (x[:, k] >= s.first - 0.5 * s.delta) & (x[:, k] <= s.last + 0.5 * s.delta)
    index = tuple(
        np.asarray(samplings[k].index_of_nearest(x[inside, k]), np.int64)
        for k in reversed(range(ndim)))
    shape = _grid_shape(samplings)
    sums = np.zeros(shape)
    counts = np.zeros(shape)
    np.add.at(sums, index, f[inside])
    np.add.at(counts, index, 1.0)
    return sums, counts


def _grid_samples(samplings: Sequence[Sampling], mask: np.ndarray, values: np.ndarray):
    """Values and coordinates of the masked grid samples, in grid order."""
    index = np.nonzero(mask)
    ndim = len(samplings)
    x = np.column_stack([samplings[k].values[index[ndim - 1 - k]] for k in range(ndim)])
    return np.asarray(values[index], np.float32), x


def _offsets_within(deltas: Sequence[float], r2max: float):
    """Grid offsets no further than sqrt(r2max), in array axis order, by increasing distance."""
    radii = [int(np.sqrt(r2max) / d) for d in deltas]
    axes = [np.arange(-r, r + 1) for r in radii]
    offsets = np.stack(np.meshgrid(*axes, indexing='ij'), axis=-1).reshape(-1, len(deltas))
    d2 = np.sum((offsets * np.asarray(deltas)) ** 2, axis=1)
    order = np.argsort(d2, kind='stable')
    offsets = offsets[order]
    d2 = d2[order]
    inside = d2 <= r2max
    return offsets[inside], d2[inside]


def _bilaplacian_stencil(ndim: int):
    """Neighbor offsets and weights that set a sample to zero the discrete bi-Laplacian."""
    offsets = []
    weights = []
    for axis in range(ndim):
        for sign in (-1, 1):
            step = np.zeros(ndim, np.int64)
            step[axis] = sign
            offsets += [step, 2 * step]
            weights += [4.0 * ndim, -1.0]
    for axis_a, axis_b in itertools.combinations(range(ndim), 2):
        for sign_a, sign_b in itertools.product((-1, 1), repeat=2):
            step = np.zeros(ndim, np.int64)
            step[axis_a] = sign_a
            step[axis_b] = sign_b
            offsets.append(step)
            weights.append(-2.0)
    center = 6.0 * ndim + 4.0 * ndim * (ndim - 1)
    return np.array(offsets), np.array(weights) / center


def _smooth_bilaplacian(g: np.ndarray, mask: np.ndarray, niter: int):
    """Gauss-Seidel iterations of bi-Laplacian smoothing of the masked samples of g, in place.

    Neighbors beyond the grid edges are replaced by the nearest edge samples.
    """
    offsets, weights = _bilaplacian_stencil(g.ndim)
    upper = np.array(g.shape) - 1
    cells = np.argwhere(mask)
    for _ in range(niter):
        for cell in cells:
            neighbors = np.clip(cell + offsets, 0, upper)
            g[tuple(cell)] = weights @ g[tuple(neighbors.T)]
