"""Volume of a convex polytope given as an intersection of half-spaces.

Uses the recursive algorithm of Lasserre (1983): the volume of ``{x : A x <= b}`` in ``n``
dimensions is ``1/n`` times the sum, over all facets, of the facet's ``(n-1)``-dimensional
volume scaled by the distance ``b_i / |a_i|`` of its hyperplane from the origin. Each facet
volume is computed recursively by eliminating one variable with the facet's equation.
"""

import numpy as np

# Normals shorter than this, relative to the longest, are zero.
_ZERO_NORM = 1e-12

# Unit normals closer than this in every component are parallel.
_PARALLEL = 1e-10


def polytope_volume(a: np.ndarray, b: np.ndarray) -> float:
    """Computes the volume (length, area) of the polytope ``A x <= b``.

    Args:
        a: Half-space normals. Shape (M, N).
        b: Right-hand sides. Shape (M,).

    Returns:
        The volume, zero for an empty polytope, or ``inf`` if it is unbounded. Half-spaces with
        ``b == 0`` (hyperplanes through the origin) contribute nothing but still bound the
        polytope, so placing the origin on as many hyperplanes as possible is cheapest.
    """
    a = np.asarray(a, np.float64)
    b = np.asarray(b, np.float64)
    if a.ndim != 2 or b.shape != (a.shape[0],):
        raise ValueError(f'Inconsistent half-space shapes {a.shape} and {b.shape}')
    return _volume(a, b)


def _volume(a, b):
    a, b = _reduce(a, b)
    if a is None:
        return 0.0
    m, n = a.shape
    if m <= n:
        return np.inf

    if n == 1:
        column = a[:, 0]
        lower = -np.inf
        upper = np.inf
        negative = column < 0.0
        positive = column > 0.0
        if negative.any():
            lower = np.max(b[negative] / column[negative])
        if positive.any():
            upper = np.min(b[positive] / column[positive])
        return max(float(upper - lower), 0.0)

    total = 0.0
    rows = np.arange(m)
    columns = np.arange(n)
    for i in range(m):
        bi = b[i]
        if bi == 0.0:
            continue
        row = a[i]
        jpiv = int(np.argmax(np.abs(row)))
        amax = abs(row[jpiv])

        # Eliminate variable jpiv using the equation of facet i.
        others = rows != i
        keep = columns != jpiv
        scale = a[others, jpiv] / row[jpiv]
        a_next = a[others][:, keep] - np.outer(scale, row[keep])
        b_next = b[others] - scale * bi
        volume = _volume(a_next, b_next)
        if volume == np.inf:
            return np.inf
        total += bi / amax * volume
    return total / n


def _reduce(a, b):
    """Normalizes half-spaces and removes those that cannot bound a facet.

    Rows with a zero normal are dropped, or make the polytope empty if violated. Opposite rows
    that exclude each other also make it empty. Of parallel rows with the same direction only
    the tightest is kept. Otherwise a duplicate facet would be counted twice, and so would a
    facet that a redundant half-space touches along an edge, once reduced to fewer dimensions.

    Returns:
        Normalized ``(a, b)``, or ``(None, None)`` if the polytope is empty.
    """
    norms = np.sqrt(np.sum(a * a, axis=1))
    zero = norms <= _ZERO_NORM * max(norms.max(initial=0.0), 1.0)
    slack = _ZERO_NORM * np.abs(b).max(initial=0.0)
    if np.any(b[zero] < -slack):
        return None, None
    order = np.argsort(b[~zero] / norms[~zero], kind='stable')
    a = (a[~zero] / norms[~zero, np.newaxis])[order]
    b = (b[~zero] / norms[~zero])[order]

    opposite = np.max(np.abs(a[:, np.newaxis] + a[np.newaxis]), axis=2, initial=0.0) <= _PARALLEL
    if np.any(opposite & (b[:, np.newaxis] + b[np.newaxis] < -slack)):
        return None, None
    parallel = np.max(np.abs(a[:, np.newaxis] - a[np.newaxis]), axis=2, initial=0.0) <= _PARALLEL
    looser = np.any(np.tril(parallel, -1), axis=1)
    return a[~looser], b[~looser]
