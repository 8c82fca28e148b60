"""Braun-Sambridge accumulation of natural-neighbor areas and volumes.

For each natural neighbor j, the region stolen from its Voronoi cell by the query point p is a
convex polytope: the points closer to p than to j, and closer to j than to any natural
neighbor k adjacent to j in the mesh. Its measure is computed with Lasserre's algorithm. The
origin is placed at the midpoint of p and j, so the bisector of p and j passes through it.
This is much slower than the other methods but does not rely on virtual circumcenters.
"""

import logging
from typing import Dict, Optional

import numpy as np

from natinterp.cavity import Cavity
from natinterp.lasserre import polytope_volume
from natinterp.mesh import DelaunayMesh

logger = logging.getLogger(__name__)

# Work per query grows with the square of the number of natural neighbors.
MAX_NATURAL_NEIGHBORS = 256


def accumulate(
    mesh: DelaunayMesh, cavity: Cavity, point: np.ndarray
) -> Optional[Dict[int, float]]:
    """Natural-neighbor areas (2D) or volumes (3D) for the nodes of a cavity."""
    nodes = cavity.nodes
    if len(nodes) > MAX_NATURAL_NEIGHBORS:
        logger.warning(
            'Query at %s has %d natural neighbors, more than the limit of %d; skipped',
            point, len(nodes), MAX_NATURAL_NEIGHBORS)
        return None

    natural = set(nodes)
    measures = {}
    for j in nodes:
        xj = mesh.points[j]
        xs = 0.5 * (xj + point)
        normals = [xj - point]
        offsets = [0.0]
        for k in mesh.node_neighbors(j):
            if k not in natural:
                continue
            xk = mesh.points[k]
            normal = xk - xj
            normals.append(normal)
            offsets.append(float(np.dot(normal, 0.5 * (xk + xj) - xs)))
        measure = polytope_volume(np.array(normals), np.array(offsets))
        if not np.isfinite(measure):
            logger.debug('Unbounded natural-neighbor region for node %d at %s', j, point)
            return None
        measures[j] = measure
    return measures
