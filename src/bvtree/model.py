"""A positioned model owning a mesh or point cloud and its search trees.

The model keeps two trees: the *structure* tree over mesh faces (or over
the points of a point cloud) and the *vertex* tree over mesh vertices.
Each has a validity flag owned here, not by the tree.  Any edit to the
geometry clears the flags; the next query through the model rebuilds the
stale tree once, so a batch of edits costs one rebuild.  Placing the
model (``setTransform``) never rebuilds: the transform is handed to the
trees, which keep their build-space coordinates.

Face, vertex and point indices reported by queries are the model's own
indices; :meth:`Model.getFace` and friends map them back to geometry.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from bvtree.bounded_sorted_array import BoundedSortedArray
from bvtree.geom import Ray, Vec3, dot, epsilon, mag, sub, vec3
from bvtree.kdtree import DEFAULT_LEAF_SIZE, KDTree
from bvtree.mesh import Face, TriangleMesh
from bvtree.metric import MetricL2
from bvtree.neighbors import RayStructureIntersection
from bvtree.primitives import Point
from bvtree.xform import AffineTransform

logger = logging.getLogger(__name__)

_L2 = MetricL2()


@dataclass
class PickedSample:
    """Result of the last successful :meth:`Model.pick`."""

    index: int = -1
    position: Optional[Vec3] = None
    time: float = -1.0


class Model:
    """Owner of source geometry and the lazily rebuilt trees over it."""

    def __init__(self, mesh: Optional[TriangleMesh] = None,
                 points: Optional[Iterable[Sequence[float]]] = None,
                 name: Optional[str] = None, leaf_size: int = DEFAULT_LEAF_SIZE):
        self._name = name
        self._mesh: Optional[TriangleMesh] = None
        self._points: Optional[List[Vec3]] = None
        self._transform: Optional[AffineTransform] = None

        self._kdtree = KDTree(leaf_size=leaf_size)
        self._valid_kdtree = True
        self._vertex_kdtree = KDTree(leaf_size=leaf_size)
        self._valid_vertex_kdtree = True

        self._picked = PickedSample()
        self._valid_pick = False
        self._vertex_features: Optional[np.ndarray] = None

        if mesh is not None:
            self.setMesh(mesh)
        if points is not None:
            self.setPoints(points)

    def __repr__(self):
        return 'Model(name={!r}, mesh={!r}, points={})'.format(
            self.getName(), self._mesh,
            None if self._points is None else len(self._points))

    def getName(self) -> str:
        if self._name:
            return self._name
        if self._mesh is not None and self._mesh.name:
            return self._mesh.name
        return 'Untitled'

    def isEmpty(self) -> bool:
        return ((self._mesh is None or self._mesh.is_empty()) and
                not self._points)

    ## geometry edits; each one invalidates the trees
    ## ----------------------------------------------

    def setMesh(self, mesh: TriangleMesh) -> None:
        self._mesh = mesh
        self._points = None
        self._vertex_features = None
        self.invalidateAll()

    def setPoints(self, points: Iterable[Sequence[float]]) -> None:
        self._points = [vec3(p) for p in points]
        self._mesh = None
        self._vertex_features = None
        self.invalidateAll()

    def clear(self) -> None:
        self._mesh = None
        self._points = None
        self._vertex_features = None
        self.invalidateAll()

    def moveVertex(self, i: int, position: Sequence[float]) -> None:
        if self._mesh is not None:
            self._mesh.set_vertex(i, position)
        elif self._points is not None:
            if i < 0 or i >= len(self._points):
                raise IndexError(f'point index out of range: {i}')
            self._points[i] = vec3(position)
        else:
            raise IndexError(f'model has no vertex {i}')
        self.invalidateAll()

    def addVertex(self, position: Sequence[float]) -> int:
        if self._mesh is None:
            if self._points is None:
                self._points = []
            self._points.append(vec3(position))
            index = len(self._points) - 1
        else:
            index = self._mesh.add_vertex(position)
        self.invalidateAll()
        return index

    def addFace(self, face: Sequence[int]) -> int:
        if self._mesh is None:
            raise ValueError('cannot add a face to a model without a mesh')
        index = self._mesh.add_face(face)
        self.invalidateAll()
        return index

    ## reverse lookup
    ## --------------

    def getMesh(self) -> Optional[TriangleMesh]:
        return self._mesh

    def getPoints(self) -> Optional[List[Vec3]]:
        return self._points

    def getFace(self, index: int) -> Face:
        if self._mesh is None:
            raise IndexError('model has no mesh')
        return self._mesh.face(index)

    def getFaceVertices(self, index: int) -> Tuple[Vec3, Vec3, Vec3]:
        if self._mesh is None:
            raise IndexError('model has no mesh')
        return self._mesh.face_vertices(index)

    ## placement
    ## ---------

    def setTransform(self, trans) -> None:
        if not isinstance(trans, AffineTransform):
            trans = AffineTransform(trans)
        self._transform = trans
        if self._valid_kdtree:
            self._kdtree.setTransform(trans)
        if self._valid_vertex_kdtree:
            self._vertex_kdtree.setTransform(trans)

    def clearTransform(self) -> None:
        self._transform = None
        if self._valid_kdtree:
            self._kdtree.clearTransform()
        if self._valid_vertex_kdtree:
            self._vertex_kdtree.clearTransform()

    def hasTransform(self) -> bool:
        return self._transform is not None

    def getTransform(self) -> Optional[AffineTransform]:
        return self._transform

    def _apply_transform(self, tree: KDTree) -> None:
        if self._transform is not None:
            tree.setTransform(self._transform)
        else:
            tree.clearTransform()

    ## validity flags and lazy rebuild
    ## -------------------------------

    def invalidateAll(self) -> None:
        self.invalidateVertexKDTree()
        self.invalidateKDTree()

    def invalidateKDTree(self) -> None:
        self._valid_kdtree = False
        self.invalidatePick()

    def invalidateVertexKDTree(self) -> None:
        self._valid_vertex_kdtree = False

    def isKDTreeValid(self) -> bool:
        return self._valid_kdtree

    def isVertexKDTreeValid(self) -> bool:
        return self._valid_vertex_kdtree

    def updateKDTree(self) -> None:
        if self._valid_kdtree:
            return

        self._kdtree.clear(False)
        if self._mesh is not None:
            for index, tri in self._mesh.triangles():
                self._kdtree.add(tri, index)
        elif self._points is not None:
            for index, p in enumerate(self._points):
                self._kdtree.add(Point(p), index)
        self._kdtree.init()
        self._apply_transform(self._kdtree)
        logger.debug('%s: updated kd-tree (%d elements)', self.getName(),
                     self._kdtree.numElements())

        self._valid_kdtree = True

    def updateVertexKDTree(self) -> None:
        if self._valid_vertex_kdtree:
            return

        self._vertex_kdtree.clear(False)
        if self._mesh is not None:
            for index, vertex in self._mesh.vertex_elements():
                self._vertex_kdtree.add(vertex, index)
        self._vertex_kdtree.init()
        self._apply_transform(self._vertex_kdtree)
        logger.debug('%s: updated vertex kd-tree (%d elements)', self.getName(),
                     self._vertex_kdtree.numElements())

        self._valid_vertex_kdtree = True

    def getKDTree(self, recompute_if_invalid: bool = True) -> KDTree:
        if recompute_if_invalid:
            self.updateKDTree()
        return self._kdtree

    def getVertexKDTree(self, recompute_if_invalid: bool = True) -> KDTree:
        if recompute_if_invalid:
            self.updateVertexKDTree()
        return self._vertex_kdtree

    ## queries
    ## -------

    def rayIntersects(self, ray: Ray, max_time: float = -1) -> bool:
        return self.getKDTree().rayIntersects(ray, max_time)

    def rayIntersectionTime(self, ray: Ray, max_time: float = -1) -> float:
        return self.getKDTree().rayIntersectionTime(ray, max_time)

    def rayIntersection(self, ray: Ray, max_time: float = -1) -> RayStructureIntersection:
        return self.getKDTree().rayStructureIntersection(ray, max_time)

    def closestPoint(self, q: Sequence[float], distance_bound: float = -1,
                     accelerate_with_vertices: bool = False):
        """Closest point of the model's surface (or point cloud) to ``q``.

        Returns ``(index, distance, point, normal)``; ``index`` is -1 and
        the rest ``None`` if nothing lies within ``distance_bound``.  With
        ``accelerate_with_vertices`` a query on the vertex tree first
        tightens the bound, since every used vertex lies on the surface.
        """
        if not self.isEmpty():
            if accelerate_with_vertices and self._mesh is not None:
                index, d = self.getVertexKDTree().closestElement(
                    q, distance_bound, _L2, distance=True)
                if index >= 0:
                    distance_bound = d + epsilon

            tree = self.getKDTree()
            index, d, p = tree.closestElement(q, distance_bound, _L2,
                                              distance=True, point=True)
            if index >= 0:
                # faces and points are added in order, so index == position
                normal = tree.getElements()[index].normal
                if normal is not None and self._transform is not None:
                    normal = self._transform.normal(normal)
                return index, d, p, normal

        return -1, None, None, None

    def pick(self, ray: Ray) -> float:
        """Pick the model with ``ray``.

        Uses the first hit if there is one; otherwise falls back to the
        element closest to the ray, accepted if its closest point on the
        ray is not behind the origin.  Returns the ray parameter of the
        pick, or -1.
        """
        isec = self.rayIntersection(ray)
        index = -1
        t = -1.0
        position = None
        if isec.is_valid():
            index = isec.element_index
            t = isec.time
            position = ray.point(t)
        else:
            cp = self.getKDTree().closestPair(ray, -1, True)
            if cp.is_valid():
                d = ray.direction
                t = dot(sub(cp.query_point, ray.origin), d) / dot(d, d)
                if t >= 0:
                    index = cp.target_index
                    position = cp.target_point
                else:
                    t = -1.0

        if index >= 0:
            self._picked = PickedSample(index=index, position=position, time=t)
            self._valid_pick = True
        return t

    def invalidatePick(self) -> None:
        self._valid_pick = False

    def hasPick(self) -> bool:
        return self._valid_pick

    def getPickedSample(self) -> Optional[PickedSample]:
        return self._picked if self._valid_pick else None

    ## features
    ## --------

    def propagateFeatures(self, feature_points: Sequence[Sequence[float]],
                          feature_values, max_neighbors: int = 8) -> np.ndarray:
        """Interpolate values sampled at ``feature_points`` onto the
        model's vertices (or points).

        Each vertex takes a Gaussian-weighted average of its
        ``max_neighbors`` nearest feature points.  The search is first
        limited to twice the kernel width and retried unbounded if that
        finds nothing.  Rows for vertices with no neighbour are NaN.
        ``max_neighbors`` must be at least 1.
        """
        values = np.asarray(feature_values, dtype=float)
        if len(feature_points) != values.shape[0]:
            raise ValueError('need one feature value per feature point, got {} points and {} values'
                             .format(len(feature_points), values.shape[0]))

        if self._mesh is not None:
            targets = self._mesh.vertices
        else:
            targets = self._points or []

        fkdtree = KDTree(feature_points)
        ext = fkdtree.getBounds().extent()
        scale = max(0.2 * mag(ext), 1.0e-8)
        scale2 = scale * scale

        out = np.full((len(targets),) + values.shape[1:], np.nan)
        nbrs = BoundedSortedArray(max_neighbors)
        missing = 0
        for i, v in enumerate(targets):
            num_nbrs = fkdtree.kClosestPairs(v, nbrs, 2 * scale)
            if num_nbrs <= 0:
                num_nbrs = fkdtree.kClosestPairs(v, nbrs)

            if num_nbrs > 0:
                acc = np.zeros(values.shape[1:])
                sum_weights = 0.0
                for pair in nbrs:
                    weight = math.exp(-pair.distance * pair.distance / scale2)
                    acc = acc + weight * values[pair.target_index]
                    sum_weights += weight
                if sum_weights > 0.0:
                    out[i] = acc / sum_weights
                else:
                    # every weight underflowed; take the nearest value
                    out[i] = values[nbrs[0].target_index]
            else:
                missing += 1

        if missing:
            logger.warning('%s: no nearest feature point found for %d vertices',
                           self.getName(), missing)
        self._vertex_features = out
        return out

    def hasFeatures(self) -> bool:
        return self._vertex_features is not None

    def getVertexFeatures(self) -> Optional[np.ndarray]:
        return self._vertex_features


__all__ = ['Model', 'PickedSample']
