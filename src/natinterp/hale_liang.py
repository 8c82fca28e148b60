"""Hale-Liang accumulation of natural-neighbor areas (2D) and volumes (3D).

The Voronoi cell that a query point would steal from each natural neighbor is never built
explicitly. In 2D, every cavity triangle contributes signed areas between its own
circumcenter and the circumcenters across its three edges. Across an edge shared with another
cavity triangle that is the neighbor's circumcenter. Across a cavity boundary edge it is the
circumcenter of a virtual triangle formed by the query point and the edge, which is a vertex of
the query point's Voronoi polygon. Areas are measured from a local origin per node, one of these
virtual circumcenters, to keep the sums well conditioned.

In 3D, cavity tetrahedra contribute signed volumes for the Voronoi edges through their interior
faces directly. Boundary faces are collected into a face-adjacency graph. Each face then adds
the volumes for the Voronoi edge through it and for the edges towards its three neighbor faces.
All coordinates are taken relative to the query point. If the face graph does not close, the
query is too close to the hull boundary to be processed and the accumulation fails.

Measures are returned unnormalized; only their ratios matter.
"""

import logging
from typing import Dict, Optional

import numpy as np

from natinterp.cavity import Cavity
from natinterp.geometry import circumcenters
from natinterp.mesh import TET_FACES, DelaunayMesh

logger = logging.getLogger(__name__)


def accumulate_2d(
    mesh: DelaunayMesh, cavity: Cavity, point: np.ndarray
) -> Optional[Dict[int, float]]:
    """Natural-neighbor areas (times two) for the nodes of a 2D cavity."""
    points = mesh.points
    cell_nodes = mesh.cells[cavity.cells]
    ntri = len(cavity.cells)

    # Circumcenters across the three edges of each tri, real or virtual.
    across = np.empty((ntri, 3, 2))
    real = np.zeros((ntri, 3), bool)
    for itri, cell in enumerate(cavity.cells):
        for k, nabor in enumerate(mesh.neighbors[cell]):
            if nabor >= 0 and nabor in cavity:
                real[itri, k] = True
                across[itri, k] = mesh.centers[nabor]

    itris, ks = np.nonzero(~real)
    nb = cell_nodes[itris, (ks + 1) % 3]
    nc = cell_nodes[itris, (ks + 2) % 3]
    virtual = np.stack([np.broadcast_to(point, (len(itris), 2)), points[nb], points[nc]], axis=1)
    fake_centers, _ = circumcenters(virtual)
    across[itris, ks] = fake_centers
    origins = {}
    for center, node_b, node_c in zip(fake_centers, nb, nc):
        origins[int(node_b)] = center
        origins[int(node_c)] = center

    areas = dict.fromkeys(cavity.nodes, 0.0)
    for itri, cell in enumerate(cavity.cells):
        xt = mesh.centers[cell]
        nodes = [int(node) for node in cell_nodes[itri]]
        for k in range(3):
            # Edge from node k to node k+1, opposite node k+2.
            first = nodes[k]
            second = nodes[(k + 1) % 3]
            xc = across[itri, (k + 2) % 3]
            areas[first] += _cross(xc, xt, origins.get(first, point))
            if not real[itri, (k + 2) % 3]:
                areas[second] += _cross(xt, xc, origins.get(second, point))

    if not all(np.isfinite(area) for area in areas.values()):
        logger.debug('Non-finite natural-neighbor area at %s', point)
        return None
    return areas


def _cross(u, v, origin):
    ux = u[0] - origin[0]
    uy = u[1] - origin[1]
    vx = v[0] - origin[0]
    vy = v[1] - origin[1]
    return float(ux * vy - vx * uy)


class _Face:
    """A cavity boundary face with its virtual and real circumcenters, relative to the query."""

    __slots__ = ('nodes', 'fake', 'real', 'nabors')

    def __init__(self, nodes, fake, real):
        self.nodes = nodes
        self.fake = fake
        self.real = real
        # Faces across edges (b, c), (c, a) and (a, b), for nodes (a, b, c).
        self.nabors = [None, None, None]


def accumulate_3d(
    mesh: DelaunayMesh, cavity: Cavity, point: np.ndarray
) -> Optional[Dict[int, float]]:
    """Natural-neighbor volumes (times six) for the nodes of a 3D cavity."""
    x = mesh.points - point
    volumes = dict.fromkeys(cavity.nodes, 0.0)
    boundary = []
    for cell in cavity.cells:
        nodes = mesh.cells[cell]
        ct = mesh.centers[cell] - point
        for k, nabor in enumerate(mesh.neighbors[cell]):
            face = [int(nodes[i]) for i in TET_FACES[k]]
            if nabor >= 0 and nabor in cavity:
                cross = np.cross(ct, mesh.centers[nabor] - point)
                for i in range(3):
                    node = face[i]
                    volumes[node] += float(np.dot(x[node] + x[face[i - 1]], cross))
            else:
                boundary.append((face, ct))

    if not boundary:
        return None
    face_points = np.stack(
        [np.stack([point] + [mesh.points[node] for node in face]) for face, _ in boundary])
    fake_centers, _ = circumcenters(face_points)
    faces = [
        _Face(nodes, fake - point, real)
        for (nodes, real), fake in zip(boundary, fake_centers)]
    if not _link_faces(faces):
        logger.debug('Open cavity face graph at %s', point)
        return None

    for face in faces:
        _process_face(face, x, volumes)

    if not all(np.isfinite(volume) for volume in volumes.values()):
        logger.debug('Non-finite natural-neighbor volume at %s', point)
        return None
    return volumes


def _link_faces(faces):
    """Connects faces that share an edge. Returns False unless every face has three neighbors."""
    open_edges = {}
    for face in faces:
        a, b, c = face.nodes
        for slot, edge in enumerate(((b, c), (c, a), (a, b))):
            match = open_edges.pop((edge[1], edge[0]), None)
            if match is None:
                open_edges.setdefault(edge, (face, slot))
            else:
                other, other_slot = match
                face.nabors[slot] = other
                other.nabors[other_slot] = face
    return all(nabor is not None for face in faces for nabor in face.nabors)


def _process_face(face, x, volumes):
    na, nb, nc = face.nodes
    xa, xb, xc = x[na], x[nb], x[nc]
    xab = xa + xb
    xbc = xb + xc
    xca = xc + xa

    # Voronoi edge through the face, accumulated in both directions.
    cross = np.cross(face.fake, face.real)
    vab = float(np.dot(xab, cross))
    vbc = float(np.dot(xbc, cross))
    vca = float(np.dot(xca, cross))
    volumes[na] += vab - vca
    volumes[nb] += vbc - vab
    volumes[nc] += vca - vbc

    # Voronoi edges between this face and its neighbor faces.
    fa, fb, fc = face.nabors
    cross = np.cross(face.fake, fa.fake)
    volumes[nb] += float(np.dot(xb, cross))
    volumes[nc] += float(np.dot(xbc, cross))
    cross = np.cross(face.fake, fb.fake)
    volumes[nc] += float(np.dot(xc, cross))
    volumes[na] += float(np.dot(xca, cross))
    cross = np.cross(face.fake, fc.fake)
    volumes[na] += float(np.dot(xa, cross))
    volumes[nb] += float(np.dot(xab, cross))
