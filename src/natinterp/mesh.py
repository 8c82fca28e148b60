import logging
from typing import Optional

import numpy as np
from scipy.spatial import Delaunay, QhullError

from natinterp.exceptions import DegenerateSamplesError, DuplicateSampleError
from natinterp.geometry import circumcenters, orientation

logger = logging.getLogger(__name__)

# Nodes of the facet opposite each node of a positively oriented cell, ordered so that
# neighboring cells traverse their shared facet in opposite directions. For tetrahedra ABCD
# the faces are counter-clockwise as seen from outside.
TRI_EDGES = ((1, 2), (2, 0), (0, 1))
TET_FACES = ((1, 2, 3), (2, 0, 3), (3, 0, 1), (0, 2, 1))


class DelaunayMesh:
    """
    Delaunay triangulation (2D) or tetrahedralization (3D) of a fixed point set.

    The mesh is immutable: inserting or removing nodes means building a new mesh. Cells are
    stored with a consistent positive orientation, i.e. counter-clockwise triangles in 2D and
    tetrahedra ABCD with D to the left of the plane ABC in 3D, which the area and volume
    accumulators rely on. ``neighbors[c, k]`` is the cell sharing the facet opposite node ``k``
    of cell ``c``, or -1 on the boundary of the convex hull.

    Args:
        points: Node coordinates. Shape (N, 2) or (N, 3).
        index: For each node, the index of the sample it represents, or a negative number for
            ghost nodes that represent no sample. Defaults to ``arange(N)``.
    """

    def __init__(self, points: np.ndarray, index: Optional[np.ndarray] = None):
        points = np.ascontiguousarray(points, np.float64)
        if points.ndim != 2 or points.shape[1] not in (2, 3):
            raise ValueError(f'Points must have shape (N, 2) or (N, 3), got {points.shape}')
        n, ndim = points.shape
        if not np.all(np.isfinite(points)):
            raise ValueError('Point coordinates must be finite')
        if n < ndim + 1:
            raise DegenerateSamplesError(
                f'At least {ndim + 1} points are needed in {ndim}D, got {n}')
        n_unique = len(np.unique(points, axis=0))
        if n_unique != n:
            raise DuplicateSampleError(
                f'Sample coordinates must be unique, found {n - n_unique} duplicates')

        try:
            delaunay = Delaunay(points)
        except QhullError as e:
            raise DegenerateSamplesError(f'Cannot triangulate the points: {e}') from e
        if len(delaunay.coplanar) > 0:
            dropped = np.unique(delaunay.coplanar[:, 0])
            raise DegenerateSamplesError(
                f'{len(dropped)} points could not be included in the triangulation, '
                f'e.g. point {dropped[0]}')

        self.points = points
        self.index = np.arange(n) if index is None else np.asarray(index, np.int64)
        if self.index.shape != (n,):
            raise ValueError(f'Index must have shape ({n},), got {self.index.shape}')
        self.ndim = ndim
        self.scale = float(np.max(np.ptp(points, axis=0)))
        self._delaunay = delaunay

        cells = delaunay.simplices.copy()
        neighbors = delaunay.neighbors.copy()
        signs = orientation(points[cells])
        flip = signs < 0
        swap = [1, 0, 2] if ndim == 2 else [1, 0, 2, 3]
        cells[flip] = cells[flip][:, swap]
        neighbors[flip] = neighbors[flip][:, swap]
        self.cells = cells
        self.neighbors = neighbors

        centers, r2 = circumcenters(points[cells])
        degenerate = (signs == 0) | ~np.isfinite(r2)
        self.centers = centers
        self.r2 = r2
        if np.any(degenerate):
            self._repair_degenerate(degenerate)
        logger.debug(
            'Built %dD Delaunay mesh: %d nodes, %d cells (%d degenerate)',
            ndim, n, len(cells), int(degenerate.sum()))

    def _repair_degenerate(self, degenerate: np.ndarray):
        """Gives flat cells the orientation and circumsphere of a non-flat neighbor.

        Flat cells appear where Qhull triangulates cocircular or cospherical nodes, and then
        share the circumsphere of their neighbors. Flat cells without any non-flat neighbor get
        a squared radius of -inf, so that they never enter a cavity.
        """
        facets = TRI_EDGES if self.ndim == 2 else TET_FACES
        swap = [1, 0, 2] if self.ndim == 2 else [1, 0, 2, 3]
        pending = set(np.flatnonzero(degenerate).tolist())
        repaired = True
        while pending and repaired:
            repaired = False
            for cell in sorted(pending):
                for k, nabor in enumerate(self.neighbors[cell]):
                    if nabor < 0 or nabor in pending:
                        continue
                    facet = self.cells[cell][list(facets[k])]
                    k_nabor = int(np.flatnonzero(self.neighbors[nabor] == cell)[0])
                    nabor_facet = list(self.cells[nabor][list(facets[k_nabor])])
                    # Consistent cells traverse the shared facet in opposite directions.
                    if self.ndim == 2:
                        consistent = nabor_facet[0] == facet[1]
                    else:
                        j = nabor_facet.index(facet[1])
                        consistent = nabor_facet[(j + 1) % 3] == facet[0]
                    if not consistent:
                        self.cells[cell] = self.cells[cell][swap]
                        self.neighbors[cell] = self.neighbors[cell][swap]
                    self.centers[cell] = self.centers[nabor]
                    self.r2[cell] = self.r2[nabor]
                    pending.discard(cell)
                    repaired = True
                    break
        for cell in pending:
            self.r2[cell] = -np.inf

    @property
    def n_nodes(self) -> int:
        return len(self.points)

    @property
    def n_cells(self) -> int:
        return len(self.cells)

    def find_cell(self, point: np.ndarray) -> int:
        """Returns the index of a cell containing the point, or -1 if it is outside the hull."""
        point = np.asarray(point, np.float64).reshape(1, self.ndim)
        return int(self._delaunay.find_simplex(point)[0])

    def node_neighbors(self, node: int) -> np.ndarray:
        """Nodes connected to the given node by a mesh edge."""
        indptr, indices = self._delaunay.vertex_neighbor_vertices
        return indices[indptr[node]:indptr[node + 1]]

    def is_ghost(self, node: int) -> bool:
        return self.index[node] < 0
