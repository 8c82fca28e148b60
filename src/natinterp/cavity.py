"""Natural-neighbor cavity of a query point: the cells whose circumsphere contains it."""

from typing import List, Optional

import numpy as np

from natinterp.geometry import in_circumsphere
from natinterp.mesh import DelaunayMesh


class Cavity:
    """Cells of a mesh whose circumcircle (circumsphere) contains a query point.

    Attributes:
        cells: Cell indices in the order they were discovered. The first one is the cell that
            contains the query point.
        members: The same cells as a set, for membership tests.
        nodes: The natural neighbors, i.e. the distinct nodes of the cells, in the order they
            were first encountered.
    """

    def __init__(self, cells: List[int], nodes: List[int]):
        self.cells = cells
        self.members = set(cells)
        self.nodes = nodes

    def __contains__(self, cell: int) -> bool:
        return cell in self.members

    def __len__(self) -> int:
        return len(self.cells)


def find_cavity(mesh: DelaunayMesh, point: np.ndarray) -> Optional[Cavity]:
    """Finds the natural-neighbor cavity of a point.

    Starting from the cell that contains the point, neighboring cells are visited until a
    cell's circumsphere does not contain the point. The set of visited cells is local to this
    call, so concurrent calls on the same mesh do not interfere.

    Args:
        mesh: The Delaunay mesh.
        point: The query point. Shape (ndim,).

    Returns:
        The cavity, or None if the point is outside the convex hull of the mesh.
    """
    start = mesh.find_cell(point)
    if start < 0:
        return None

    centers = mesh.centers
    r2 = mesh.r2
    neighbors = mesh.neighbors
    cells = [start]
    visited = {start}
    stack = [start]
    while stack:
        cell = stack.pop()
        for nabor in neighbors[cell]:
            nabor = int(nabor)
            if nabor < 0 or nabor in visited:
                continue
            visited.add(nabor)
            if in_circumsphere(point, centers[nabor], r2[nabor]):
                cells.append(nabor)
                stack.append(nabor)

    nodes = list(dict.fromkeys(int(node) for node in mesh.cells[cells].ravel()))
    return Cavity(cells, nodes)
