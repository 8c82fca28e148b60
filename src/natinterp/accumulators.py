import enum
from typing import Callable, Dict, Optional, Union

import numpy as np

from natinterp import braun_sambridge, hale_liang, watson_sambridge
from natinterp.cavity import Cavity
from natinterp.mesh import DelaunayMesh

Accumulator = Callable[[DelaunayMesh, Cavity, np.ndarray], Optional[Dict[int, float]]]


class Method(enum.Enum):
    """Algorithm used to compute the natural-neighbor areas or volumes."""

    HALE_LIANG = 'hale_liang'
    """Accumulates Voronoi measures over the cavity cells and the cavity boundary. Fast and
    accurate; the default."""

    WATSON_SAMBRIDGE = 'watson_sambridge'
    """Sums measures between virtual circumcenters of each cavity cell. Simplest, but loses
    precision near mesh edges and faces."""

    BRAUN_SAMBRIDGE = 'braun_sambridge'
    """Computes an explicit polytope per natural neighbor with Lasserre's algorithm. Slowest."""


_ACCUMULATORS = {
    (Method.HALE_LIANG, 2): hale_liang.accumulate_2d,
    (Method.HALE_LIANG, 3): hale_liang.accumulate_3d,
    (Method.WATSON_SAMBRIDGE, 2): watson_sambridge.accumulate_2d,
    (Method.WATSON_SAMBRIDGE, 3): watson_sambridge.accumulate_3d,
    (Method.BRAUN_SAMBRIDGE, 2): braun_sambridge.accumulate,
    (Method.BRAUN_SAMBRIDGE, 3): braun_sambridge.accumulate,
}


def get_accumulator(method: Union[Method, str], ndim: int) -> Accumulator:
    """Returns the function that accumulates natural-neighbor measures for a method.

    The function takes a mesh, the cavity of a query point and the query point, and returns a
    mapping from cavity nodes to unnormalized measures, or None if the measures could not be
    computed for this point.

    Args:
        method: A :class:`Method` or its string value.
        ndim: Spatial dimension, 2 or 3.
    """
    method = Method(method)
    try:
        return _ACCUMULATORS[method, ndim]
    except KeyError:
        raise ValueError(f'Only 2D and 3D interpolation is supported, got ndim={ndim}') from None
