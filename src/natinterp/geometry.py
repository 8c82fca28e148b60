"""Geometric primitives for triangles and tetrahedra.

All functions are vectorized over leading axes: a simplex is given as an
array of shape ``(..., ndim + 1, ndim)`` with ``ndim`` equal to 2 or 3.
Degenerate (flat) simplices yield non-finite centers rather than raising.
"""

import numpy as np


def circumcenters(simplices: np.ndarray):
    """Centers and squared radii of the circumcircles/circumspheres of simplices.

    Args:
        simplices: Vertex coordinates, shape (..., ndim + 1, ndim).

    Returns:
        A tuple ``(centers, r2)`` with shapes (..., ndim) and (...).
    """
    simplices = np.asarray(simplices, np.float64)
    ndim = simplices.shape[-1]
    origin = simplices[..., 0, :]
    edges = simplices[..., 1:, :] - origin[..., np.newaxis, :]
    with np.errstate(divide='ignore', invalid='ignore'):
        if ndim == 2:
            offset = _circumcenter_offset_2d(edges[..., 0, :], edges[..., 1, :])
        elif ndim == 3:
            offset = _circumcenter_offset_3d(edges[..., 0, :], edges[..., 1, :], edges[..., 2, :])
        else:
            raise ValueError(f'Only 2D and 3D simplices are supported, got ndim={ndim}')
    r2 = np.sum(offset * offset, axis=-1)
    return origin + offset, r2


def _circumcenter_offset_2d(b, c):
    bb = np.sum(b * b, axis=-1)
    cc = np.sum(c * c, axis=-1)
    den = 2.0 * (b[..., 0] * c[..., 1] - b[..., 1] * c[..., 0])
    ux = (c[..., 1] * bb - b[..., 1] * cc) / den
    uy = (b[..., 0] * cc - c[..., 0] * bb) / den
    return np.stack([ux, uy], axis=-1)


def _circumcenter_offset_3d(b, c, d):
    bb = np.sum(b * b, axis=-1)[..., np.newaxis]
    cc = np.sum(c * c, axis=-1)[..., np.newaxis]
    dd = np.sum(d * d, axis=-1)[..., np.newaxis]
    cxd = np.cross(c, d)
    num = bb * cxd + cc * np.cross(d, b) + dd * np.cross(b, c)
    den = 2.0 * np.sum(b * cxd, axis=-1)[..., np.newaxis]
    return num / den


def orientation(simplices: np.ndarray) -> np.ndarray:
    """Signed orientation measure of simplices.

    In 2D this is twice the signed area of triangle ABC, positive when the
    vertices are counter-clockwise. In 3D it is ``(a-d)·((b-d)×(c-d))``, positive
    when D lies to the left of the plane through A, B and C (seen from the side
    where A, B, C appear counter-clockwise, D is behind).
    """
    simplices = np.asarray(simplices, np.float64)
    ndim = simplices.shape[-1]
    if ndim == 2:
        a = simplices[..., 0, :]
        ab = simplices[..., 1, :] - a
        ac = simplices[..., 2, :] - a
        return ab[..., 0] * ac[..., 1] - ab[..., 1] * ac[..., 0]
    d = simplices[..., 3, :]
    ad = simplices[..., 0, :] - d
    bd = simplices[..., 1, :] - d
    cd = simplices[..., 2, :] - d
    return np.sum(ad * np.cross(bd, cd), axis=-1)


def in_circumsphere(point, center, r2) -> bool:
    """Whether a point lies strictly inside a circumcircle/circumsphere."""
    offset = np.asarray(point, np.float64) - center
    return bool(np.dot(offset, offset) < r2)


def stack_coordinates(*coordinates) -> np.ndarray:
    """Stacks per-axis coordinate arrays ``x1, x2[, x3]`` into points of shape (N, ndim)."""
    coordinates = [np.asarray(x, np.float64).ravel() for x in coordinates]
    if len({len(x) for x in coordinates}) != 1:
        raise ValueError('All coordinate arrays must have the same length')
    return np.column_stack(coordinates)
