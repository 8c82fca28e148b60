"""Watson-Sambridge accumulation of natural-neighbor areas and volumes.

Each cavity cell is handled on its own. Replacing one of its nodes with the query point gives
a virtual cell whose circumcenter is a vertex of the query point's Voronoi cell. The signed
area (volume) between these virtual circumcenters and the cell's real circumcenter is the part
of the stolen Voronoi cell that the cell contributes to the replaced node. This is simple and
fully vectorized, but loses precision when the query point is very close to an edge or face of
the mesh, where nearly coincident circumcenters are subtracted.
"""

import logging
from typing import Dict, Optional

import numpy as np

from natinterp.cavity import Cavity
from natinterp.geometry import circumcenters
from natinterp.mesh import TET_FACES, TRI_EDGES, DelaunayMesh

logger = logging.getLogger(__name__)


def accumulate_2d(
    mesh: DelaunayMesh, cavity: Cavity, point: np.ndarray
) -> Optional[Dict[int, float]]:
    cell_nodes = mesh.cells[cavity.cells]
    cv = mesh.centers[cavity.cells]
    fake = _fake_centers(mesh, cell_nodes, point, TRI_EDGES)
    c0, c1, c2 = fake[:, 0], fake[:, 1], fake[:, 2]
    areas = np.stack([_areas(c1, c2, cv), _areas(c2, c0, cv), _areas(c0, c1, cv)], axis=1)
    return _collect(cavity, cell_nodes, areas, point)


def accumulate_3d(
    mesh: DelaunayMesh, cavity: Cavity, point: np.ndarray
) -> Optional[Dict[int, float]]:
    cell_nodes = mesh.cells[cavity.cells]
    cv = mesh.centers[cavity.cells]
    ca, cb, cc, cd = np.moveaxis(_fake_centers(mesh, cell_nodes, point, TET_FACES), 1, 0)
    volumes = np.stack([
        _volumes(cb, cv, cc, cd),
        _volumes(ca, cv, cd, cc),
        _volumes(ca, cv, cb, cd),
        _volumes(ca, cv, cc, cb),
    ], axis=1)
    return _collect(cavity, cell_nodes, volumes, point)


def _fake_centers(mesh, cell_nodes, point, opposite_faces):
    """Circumcenters of the cells with node k replaced by the point, for each k."""
    ncell, nvert = cell_nodes.shape
    faces = cell_nodes[:, np.array(opposite_faces)]
    simplices = np.empty((ncell, nvert, nvert, mesh.ndim))
    simplices[:, :, 0] = point
    simplices[:, :, 1:] = mesh.points[faces]
    centers, _ = circumcenters(simplices)
    return centers


def _areas(cj, ck, cv):
    dj = cj - cv
    dk = ck - cv
    return 0.5 * (dj[:, 0] * dk[:, 1] - dj[:, 1] * dk[:, 0])


def _volumes(ci, cj, ck, co):
    return np.sum((ci - co) * np.cross(cj - co, ck - co), axis=-1)


def _collect(cavity, cell_nodes, measures, point):
    if not np.all(np.isfinite(measures)):
        logger.debug('Non-finite natural-neighbor measure at %s', point)
        return None
    result = dict.fromkeys(cavity.nodes, 0.0)
    for node, measure in zip(cell_nodes.ravel(), measures.ravel()):
        result[int(node)] += float(measure)
    return result
