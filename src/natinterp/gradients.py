"""Gradient estimation at sample nodes and linear fits for ghost nodes."""

import logging
from typing import Optional

import numpy as np
import scipy.linalg

from natinterp.mesh import DelaunayMesh

logger = logging.getLogger(__name__)


def estimate_gradients(
    mesh: DelaunayMesh, values: np.ndarray, min_neighbors: Optional[int] = None
) -> np.ndarray:
    """Estimates the gradient of the sampled function at every node of a mesh.

    The natural neighbors of a node, with that node removed from the mesh, are exactly the
    nodes it shares a Delaunay edge with. At each node, the gradient is the weighted
    least-squares fit of the differences to those neighbors, with inverse squared distance
    weights. The normal equations are solved by Cholesky decomposition.

    Args:
        mesh: Mesh of the samples only (no ghost nodes).
        values: Sample values, one per mesh node.
        min_neighbors: Nodes with fewer neighbors than this keep a zero gradient. Defaults to
            the spatial dimension, the least that determines a gradient.

    Returns:
        Gradients, shape (N, ndim).

    Raises:
        numpy.linalg.LinAlgError: If the normal equations of a node are not positive definite,
            which means its neighbors are degenerate.
    """
    ndim = mesh.ndim
    if min_neighbors is None:
        min_neighbors = ndim
    values = np.asarray(values, np.float64)
    gradients = np.zeros((mesh.n_nodes, ndim))
    n_skipped = 0
    for node in range(mesh.n_nodes):
        nabors = mesh.node_neighbors(node)
        if len(nabors) < min_neighbors:
            n_skipped += 1
            continue
        dx = mesh.points[nabors] - mesh.points[node]
        df = values[nabors] - values[node]
        weights = 1.0 / np.sum(dx * dx, axis=1)
        weighted = dx * weights[:, np.newaxis]
        normal_matrix = weighted.T @ dx
        rhs = weighted.T @ df
        gradients[node] = scipy.linalg.cho_solve(scipy.linalg.cho_factor(normal_matrix), rhs)
    logger.debug(
        'Estimated gradients at %d nodes, %d skipped with fewer than %d neighbors',
        mesh.n_nodes - n_skipped, n_skipped, min_neighbors)
    return gradients


def linear_fit_operator(point: np.ndarray, support: np.ndarray) -> np.ndarray:
    """Linear operator giving the value and gradient at a point from a linear fit.

    Fits ``f(x) ≈ f0 + g·(x - point)`` to values at the support points by least squares,
    weighting each equation by the inverse distance of its support point, and solves it by QR
    decomposition.

    Args:
        point: Point at which the value and gradient are wanted. Shape (ndim,).
        support: Points at which values are known. Shape (M, ndim), M >= ndim + 1.

    Returns:
        Matrix L of shape (ndim + 1, M) such that ``L @ f`` is ``[f0, g1, ..., gndim]``.
    """
    dx = support - point
    ndim = len(point)
    if len(dx) < ndim + 1:
        raise ValueError(f'A linear fit in {ndim}D needs at least {ndim + 1} points, got {len(dx)}')
    weights = 1.0 / np.sqrt(np.sum(dx * dx, axis=1))
    design = weights[:, np.newaxis] * np.column_stack([np.ones(len(dx)), dx])
    q, r = scipy.linalg.qr(design, mode='economic')
    return scipy.linalg.solve_triangular(r, q.T * weights[np.newaxis, :])
