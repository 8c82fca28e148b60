import itertools
import logging
import os
import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np
import scipy.sparse

from natinterp.accumulators import Method, get_accumulator
from natinterp.cavity import Cavity, find_cavity
from natinterp.geometry import stack_coordinates
from natinterp.gradients import estimate_gradients, linear_fit_operator
from natinterp.mesh import DelaunayMesh
from natinterp.sampling import Sampling

logger = logging.getLogger(__name__)

# A query closer to a node than this fraction of the data extent gets all weight on that node.
COINCIDENCE_TOLERANCE = 1e-12


def interpolate(
    queries: np.ndarray,
    keys: np.ndarray,
    values: np.ndarray,
    method: Union[Method, str] = Method.HALE_LIANG,
    parallel: bool = False,
    num_threads: Optional[int] = None,
) -> np.ndarray:
    """
    Interpolates function values at query points using Sibson's natural neighbor method,
    based on some known values of the function.

    Args:
        queries: The points at which to evaluate the function. Shape (M, 2) or (M, 3).
        keys: The points at which the function is known. Shape (N, 2) or (N, 3).
        values: The values of the function at the known points. Shape (N, D) or (N,).
        method: The algorithm used to compute natural neighbor areas or volumes.
        parallel: Whether to use multithreaded processing.
        num_threads: The number of threads to use for parallel processing. If None, the number of
            threads will be determined by the number of cores available. Ignored if ``parallel``
            is False.

    Returns:
        The interpolated values of the function at the query points, zero outside the convex
        hull of the keys. Shape (M, D) or (M,), depending on the shape of the ``values`` array.
    """
    interpolator = SibsonInterpolator(
        np.zeros(len(keys)), keys, method=method, parallel=parallel, num_threads=num_threads)
    weights = interpolator.get_weights(queries)
    values = np.asarray(values)
    if values.ndim == 1:
        return np.squeeze(weights @ values[:, np.newaxis], axis=1)
    return weights @ values


def get_weights(
    queries: np.ndarray,
    keys: np.ndarray,
    method: Union[Method, str] = Method.HALE_LIANG,
    parallel: bool = False,
    num_threads: Optional[int] = None,
) -> scipy.sparse.csr_matrix:
    """Returns the natural interpolation weights (Sibson coordinates) for the query points,
    given the known data points (keys, data sites).

    Args:
        queries: The points for which to compute the interpolation weights.
        keys: The points at which the function is known (sites).
        method: The algorithm used to compute natural neighbor areas or volumes.
        parallel: Whether to use multithreaded processing.
        num_threads: The number of threads to use for parallel processing. If None, the number
            of threads will be determined by the number of cores available. Ignored if ``parallel``
            is False.

    Returns:
        The interpolation weights for the query points as a sparse matrix of shape (M, N).
        Rows of queries outside the convex hull of the keys are empty.
    """
    interpolator = SibsonInterpolator(
        np.zeros(len(keys)), keys, method=method, parallel=parallel, num_threads=num_threads)
    return interpolator.get_weights(queries)


class SibsonInterpolator:
    """
    Sibson (natural neighbor) interpolator for scattered samples in 2D or 3D.

    The interpolant is continuous (C0) and has linear precision. If a positive gradient power
    is set, gradients at the samples (given or estimated) are blended in to obtain an
    interpolant that is also continuous in its first derivatives (C1) away from the samples.

    Queries outside the convex hull of the samples, or outside the bounds set with
    :meth:`set_bounds`, get the null value, which is zero unless changed.

    The Delaunay mesh is built once per sample set, so reusing one interpolator for many
    queries is much cheaper than calling :func:`interpolate` repeatedly. Queries do not modify
    the interpolator and may run concurrently.

    Args:
        f: Sample values. Shape (N,).
        x: Sample coordinates, which must be unique. Shape (N, 2) or (N, 3).
        method: The algorithm used to compute natural neighbor areas or volumes.
        parallel: Whether to evaluate batches of queries with a thread pool.
        num_threads: The number of threads to use for parallel processing. If None, the number
            of threads will be determined by the number of cores available. Ignored if ``parallel``
            is False.
    """

    def __init__(
        self,
        f: np.ndarray,
        x: np.ndarray,
        method: Union[Method, str] = Method.HALE_LIANG,
        parallel: bool = False,
        num_threads: Optional[int] = None,
    ):
        self._method = Method(method)
        self._num_threads = _resolve_num_threads(num_threads) if parallel else 1
        self._fnull = 0.0
        self._gradient_power = 0.0
        self._min_gradient_neighbors = None
        self._gradients = None
        self._gradients_explicit = False
        self._set_samples(f, x)

    @property
    def ndim(self) -> int:
        return self._sample_mesh.ndim

    @property
    def method(self) -> Method:
        return self._method

    def set_samples(self, f: np.ndarray, x: np.ndarray):
        """Replaces the samples. Gradients, bounds and ghost nodes are discarded."""
        self._set_samples(f, x)

    def _set_samples(self, f, x):
        f = np.asarray(f, np.float32).ravel()
        x = np.asarray(x, np.float64)
        if x.ndim != 2 or x.shape[1] not in (2, 3):
            raise ValueError(f'Sample coordinates must have shape (N, 2) or (N, 3), got {x.shape}')
        if len(f) != len(x):
            raise ValueError(f'Got {len(f)} sample values for {len(x)} sample coordinates')
        if self._gradients_explicit:
            warnings.warn('Replacing the samples discards the gradients that were set', stacklevel=3)

        # Qhull loses points far from the origin, so the mesh is built around the centroid.
        self._centroid = x.mean(axis=0) if len(x) else np.zeros(x.shape[1])
        self._sample_mesh = DelaunayMesh(x - self._centroid)
        self._accumulate = get_accumulator(self._method, self._sample_mesh.ndim)
        self._f = f
        self._x = x.copy()
        self._gradients = None
        self._gradients_explicit = False
        self._lower = None
        self._upper = None
        self._box = None
        self._ghost_fits = None
        self._set_mesh(self._sample_mesh)

    def set_null_value(self, fnull: float):
        """Sets the value returned for queries that cannot be interpolated."""
        self._fnull = float(fnull)

    def set_gradient_power(self, power: float):
        """Sets the power of distance used to blend in gradients; zero disables C1 blending.

        With power 1 the blend is Sibson's original C1 interpolant. If no gradients were set,
        they are estimated from the samples when first needed.
        """
        if not power >= 0.0:
            raise ValueError(f'Gradient power must be non-negative, got {power}')
        self._gradient_power = float(power)

    def set_min_gradient_neighbors(self, count: Optional[int]):
        """Sets the number of neighbors below which estimated gradients are left zero.

        None restores the default, the spatial dimension.
        """
        if count is not None and count < self.ndim:
            raise ValueError(
                f'At least {self.ndim} neighbors are needed to estimate a gradient, got {count}')
        self._min_gradient_neighbors = count
        if not self._gradients_explicit:
            self._gradients = None
            self._node_gradients = None

    def set_gradients(self, gradients: np.ndarray):
        """Sets the gradients at the samples. Shape (N, ndim)."""
        gradients = np.asarray(gradients, np.float64)
        if gradients.shape != self._x.shape:
            raise ValueError(f'Gradients must have shape {self._x.shape}, got {gradients.shape}')
        self._gradients = gradients.copy()
        self._gradients_explicit = True
        self._node_gradients = None

    def estimate_gradients(self) -> np.ndarray:
        """Estimates gradients at the samples and uses them for C1 interpolation.

        Returns:
            The estimated gradients. Shape (N, ndim).
        """
        self._gradients = estimate_gradients(
            self._sample_mesh, self._f, self._min_gradient_neighbors)
        self._gradients_explicit = False
        self._node_gradients = None
        return self._gradients.copy()

    def set_bounds(self, lower: Sequence[float], upper: Sequence[float], with_values: bool = False):
        """Extends interpolation beyond the convex hull, up to a bounding box.

        Ghost nodes are added around the samples so that their convex hull contains the box.
        Any ghost nodes of an earlier call are replaced. Queries outside the box get the null
        value.

        Args:
            lower: Lower corner of the box.
            upper: Upper corner of the box.
            with_values: If False, ghost nodes get no weight and the weights of the samples are
                renormalized. If True, each ghost node gets a value and gradient from a weighted
                least-squares linear fit to the samples around it and takes part in the
                interpolation.
        """
        lower = np.asarray(lower, np.float64).ravel()
        upper = np.asarray(upper, np.float64).ravel()
        ndim = self.ndim
        if lower.shape != (ndim,) or upper.shape != (ndim,):
            raise ValueError(f'Bounds must have {ndim} coordinates each')
        if np.any(lower > upper):
            raise ValueError(f'Lower bounds {lower} exceed upper bounds {upper}')

        lo = np.minimum(lower, self._x.min(axis=0))
        hi = np.maximum(upper, self._x.max(axis=0))
        center = 0.5 * (lo + hi)
        half = 0.5 * (hi - lo)
        half[half <= 0.0] = half.max()
        offsets = np.array([u for u in itertools.product((-1, 0, 1), repeat=ndim) if any(u)])
        ghosts = center + 2.0 * half * offsets
        n = len(self._x)
        mesh = DelaunayMesh(
            np.concatenate([self._x, ghosts]) - self._centroid,
            np.concatenate([np.arange(n), -1 - np.arange(len(ghosts))]))

        self._lower = lower
        self._upper = upper
        self._box = (lower - self._centroid, upper - self._centroid)
        self._ghost_fits = self._fit_ghosts(mesh) if with_values else None
        self._set_mesh(mesh)
        logger.debug('Added %d ghost nodes for bounds %s to %s', len(ghosts), lower, upper)

    def set_bounds_from_samplings(self, *samplings: Sampling, with_values: bool = False):
        """Sets the bounds to the extent of a grid; see :meth:`set_bounds`."""
        if len(samplings) != self.ndim:
            raise ValueError(f'Expected {self.ndim} samplings, got {len(samplings)}')
        self.set_bounds(
            [s.first for s in samplings], [s.last for s in samplings], with_values=with_values)

    def use_convex_hull_bounds(self):
        """Removes ghost nodes and bounds; only queries inside the convex hull are interpolated."""
        self._lower = None
        self._upper = None
        self._box = None
        self._ghost_fits = None
        self._set_mesh(self._sample_mesh)

    def interpolate(self, x: np.ndarray) -> Union[float, np.ndarray]:
        """Interpolates at one or many points.

        Args:
            x: One point, shape (ndim,), or many points, shape (M, ndim).

        Returns:
            A float for one point, or an array of shape (M,) with dtype float32.
        """
        x = np.asarray(x, np.float64)
        if x.ndim == 1:
            return float(self._interpolate_points(self._check_points(x[np.newaxis]))[0])
        return self._interpolate_points(self._check_points(x))

    def interpolate_grid(self, *samplings: Sampling) -> np.ndarray:
        """Interpolates at all nodes of a grid.

        Args:
            samplings: One sampling per coordinate, in the order x1, x2[, x3].

        Returns:
            The gridded values indexed as ``[i2, i1]`` in 2D or ``[i3, i2, i1]`` in 3D.
        """
        if len(samplings) != self.ndim:
            raise ValueError(f'Expected {self.ndim} samplings, got {len(samplings)}')
        axes = [s.values for s in reversed(samplings)]
        grids = np.meshgrid(*axes, indexing='ij')
        points = np.stack(grids[::-1], axis=-1).reshape(-1, self.ndim)
        shape = tuple(len(axis) for axis in axes)
        return self._interpolate_points(points).reshape(shape)

    def get_index_weights(self, x: np.ndarray) -> Optional[List[Tuple[int, float]]]:
        """Natural neighbor weights of one point.

        Args:
            x: The point. Shape (ndim,).

        Returns:
            Pairs ``(sample_index, weight)`` sorted by sample index, with weights summing to 1,
            or None if the point cannot be interpolated.
        """
        point = self._check_points(np.asarray(x, np.float64)[np.newaxis])[0]
        result = self._natural_weights(point - self._centroid)
        if result is None:
            return None
        nodes, weights = result
        by_sample = {}
        for node, weight in zip(nodes, weights):
            sample = int(self._mesh.index[node])
            if sample >= 0:
                by_sample[sample] = by_sample.get(sample, 0.0) + float(weight)
            else:
                support, operator = self._ghost_fits[-1 - sample]
                for s, coefficient in zip(support, operator[0]):
                    by_sample[int(s)] = by_sample.get(int(s), 0.0) + float(weight * coefficient)
        return sorted(by_sample.items())

    def get_weights(self, query_points: np.ndarray) -> scipy.sparse.csr_matrix:
        """Computes the natural neighbor weights (Sibson coordinates) for the query points.

        Args:
            query_points: The points for which to compute the weights. Shape (M, ndim).

        Returns:
            The weights as a sparse matrix of shape (M, N). Rows of points that cannot be
            interpolated are empty.
        """
        points = self._check_points(np.asarray(query_points, np.float64))
        rows = self._map(lambda chunk: [self.get_index_weights(p) for p in chunk], points)
        indptr = [0]
        indices = []
        data = []
        for row in rows:
            for sample, weight in row or ():
                indices.append(sample)
                data.append(weight)
            indptr.append(len(indices))
        return scipy.sparse.csr_matrix(
            (np.array(data, np.float64), np.array(indices, np.int64), np.array(indptr, np.int64)),
            shape=(len(points), len(self._x)))

    def validate(self, indices: Optional[Sequence[int]] = None) -> np.ndarray:
        """Leave-one-out cross-validation.

        For each sample, interpolates at its coordinates using all other samples, with the same
        method, null value, gradient power and bounds. Estimated gradients are estimated again
        without the sample; gradients that were set explicitly are used without its row.

        Args:
            indices: Indices of the samples to validate. Defaults to all samples.

        Returns:
            The interpolated values, float32, one per index.
        """
        n = len(self._x)
        indices = np.arange(n) if indices is None else np.atleast_1d(np.asarray(indices, np.int64))
        result = np.empty(len(indices), np.float32)
        for j, i in enumerate(indices):
            keep = np.arange(n) != i
            reduced = SibsonInterpolator(self._f[keep], self._x[keep], method=self._method)
            reduced.set_null_value(self._fnull)
            reduced.set_min_gradient_neighbors(self._min_gradient_neighbors)
            reduced.set_gradient_power(self._gradient_power)
            if self._gradients_explicit:
                reduced.set_gradients(self._gradients[keep])
            if self._lower is not None:
                reduced.set_bounds(self._lower, self._upper, with_values=self._ghost_fits is not None)
            result[j] = reduced.interpolate(self._x[i])
        return result

    def _set_mesh(self, mesh: DelaunayMesh):
        self._mesh = mesh
        self._tolerance2 = (COINCIDENCE_TOLERANCE * mesh.scale) ** 2
        values = np.zeros(mesh.n_nodes)
        real = mesh.index >= 0
        values[real] = self._f[mesh.index[real]]
        if self._ghost_fits is not None:
            for node in np.flatnonzero(~real):
                support, operator = self._ghost_fits[-1 - mesh.index[node]]
                values[node] = operator[0] @ self._f[support]
        self._node_values = values
        self._node_gradients = None

    def _fit_ghosts(self, mesh: DelaunayMesh):
        """Linear fits giving value and gradient of each ghost node from nearby samples."""
        fits = []
        for node in np.flatnonzero(mesh.index < 0):
            support = mesh.index[mesh.node_neighbors(node)]
            support = support[support >= 0]
            if len(support) < mesh.ndim + 1:
                support = np.arange(len(self._x))
            support_points = self._x[support] - self._centroid
            fits.append((support, linear_fit_operator(mesh.points[node], support_points)))
        return fits

    def _blend_gradients(self) -> Optional[np.ndarray]:
        """Gradients at all mesh nodes for C1 blending, or None if blending is off."""
        if self._gradient_power == 0.0:
            return None
        if self._node_gradients is None:
            if self._gradients is None:
                self.estimate_gradients()
            mesh = self._mesh
            gradients = np.zeros((mesh.n_nodes, mesh.ndim))
            real = mesh.index >= 0
            gradients[real] = self._gradients[mesh.index[real]]
            if self._ghost_fits is not None:
                for node in np.flatnonzero(~real):
                    support, operator = self._ghost_fits[-1 - mesh.index[node]]
                    gradients[node] = operator[1:] @ self._f[support]
            self._node_gradients = gradients
        return self._node_gradients

    def _check_points(self, points: np.ndarray) -> np.ndarray:
        if points.ndim != 2 or points.shape[1] != self.ndim:
            raise ValueError(
                f'Query points must have shape (M, {self.ndim}) or ({self.ndim},), '
                f'got {points.shape}')
        return points

    def _interpolate_points(self, points: np.ndarray) -> np.ndarray:
        gradients = self._blend_gradients()
        values = self._map(
            lambda chunk: [self._interpolate_point(p, gradients) for p in chunk], points)
        return np.array(values, np.float32)

    def _map(self, function: Callable[[np.ndarray], list], points: np.ndarray) -> list:
        """Applies a function to chunks of points, in parallel if enabled, and joins the results."""
        if self._num_threads <= 1 or len(points) < 2:
            return function(points)
        chunks = np.array_split(points, min(len(points), 4 * self._num_threads))
        with ThreadPoolExecutor(max_workers=self._num_threads) as executor:
            return [item for result in executor.map(function, chunks) for item in result]

    def _interpolate_point(self, point: np.ndarray, gradients: Optional[np.ndarray]) -> float:
        point = point - self._centroid
        result = self._natural_weights(point)
        if result is None:
            return self._fnull
        nodes, weights = result
        values = self._node_values[nodes]
        f0 = float(weights @ values)
        if gradients is None or len(nodes) == 1:
            return f0

        # Sibson's C1 interpolant, with distances raised to the gradient power.
        dx = point - self._mesh.points[nodes]
        dp = np.sqrt(np.sum(dx * dx, axis=1)) ** self._gradient_power
        taylor = values + np.sum(gradients[nodes] * dx, axis=1)
        wdp = weights / dp
        alpha = np.sum(weights * dp) / np.sum(wdp)
        beta = np.sum(weights * dp * dp)
        xi = np.sum(wdp * taylor) / np.sum(wdp)
        return float((alpha * f0 + beta * xi) / (alpha + beta))

    def _natural_weights(self, point: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Mesh nodes and normalized weights for a point relative to the centroid, or None if it
        cannot be interpolated.
        """
        if self._box is not None and (
                np.any(point < self._box[0]) or np.any(point > self._box[1])):
            return None
        mesh = self._mesh
        cavity = find_cavity(mesh, point)
        if cavity is None:
            return None
        node = self._coincident_node(cavity, point)
        if node is not None:
            return np.array([node]), np.ones(1)

        measures = self._accumulate(mesh, cavity, point)
        if measures is None:
            return None
        nodes = np.fromiter(measures.keys(), np.int64, len(measures))
        values = np.fromiter(measures.values(), np.float64, len(measures))
        if self._lower is not None and self._ghost_fits is None:
            real = mesh.index[nodes] >= 0
            nodes = nodes[real]
            values = values[real]
        total = values.sum()
        if not (np.isfinite(total) and total > 0.0):
            logger.debug('Natural neighbor measures at %s sum to %s', point, total)
            return None
        return nodes, values / total

    def _coincident_node(self, cavity: Cavity, point: np.ndarray) -> Optional[int]:
        nodes = self._mesh.cells[cavity.cells[0]]
        dx = self._mesh.points[nodes] - point
        d2 = np.sum(dx * dx, axis=1)
        nearest = int(np.argmin(d2))
        return int(nodes[nearest]) if d2[nearest] <= self._tolerance2 else None


class SibsonInterpolator2(SibsonInterpolator):
    """Sibson interpolator for scattered samples f(x1, x2).

    Args:
        f: Sample values. Shape (N,).
        x1: First coordinates of the samples. Shape (N,).
        x2: Second coordinates of the samples. Shape (N,).
        method: The algorithm used to compute natural neighbor areas.
        parallel: Whether to evaluate batches of queries with a thread pool.
        num_threads: The number of threads to use for parallel processing.
    """

    def __init__(
        self,
        f: np.ndarray,
        x1: np.ndarray,
        x2: np.ndarray,
        method: Union[Method, str] = Method.HALE_LIANG,
        parallel: bool = False,
        num_threads: Optional[int] = None,
    ):
        super().__init__(
            f, stack_coordinates(x1, x2), method=method, parallel=parallel,
            num_threads=num_threads)

    def set_samples(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray):
        self._set_samples(f, stack_coordinates(x1, x2))


class SibsonInterpolator3(SibsonInterpolator):
    """Sibson interpolator for scattered samples f(x1, x2, x3).

    Args:
        f: Sample values. Shape (N,).
        x1: First coordinates of the samples. Shape (N,).
        x2: Second coordinates of the samples. Shape (N,).
        x3: Third coordinates of the samples. Shape (N,).
        method: The algorithm used to compute natural neighbor volumes.
        parallel: Whether to evaluate batches of queries with a thread pool.
        num_threads: The number of threads to use for parallel processing.
    """

    def __init__(
        self,
        f: np.ndarray,
        x1: np.ndarray,
        x2: np.ndarray,
        x3: np.ndarray,
        method: Union[Method, str] = Method.HALE_LIANG,
        parallel: bool = False,
        num_threads: Optional[int] = None,
    ):
        super().__init__(
            f, stack_coordinates(x1, x2, x3), method=method, parallel=parallel,
            num_threads=num_threads)

    def set_samples(self, f: np.ndarray, x1: np.ndarray, x2: np.ndarray, x3: np.ndarray):
        self._set_samples(f, stack_coordinates(x1, x2, x3))


def _resolve_num_threads(num_threads: Optional[int]) -> int:
    if num_threads is None:
        # os.sched_getaffinity(0) gives the cores this process may actually use, which can be
        # fewer than os.cpu_count(), e.g. in a Slurm job.
        try:
            num_threads = len(os.sched_getaffinity(0))
        except AttributeError:
            num_threads = os.cpu_count() or 1
    if num_threads < 1:
        raise ValueError(f'Number of threads must be positive, got {num_threads}')
    return num_threads
