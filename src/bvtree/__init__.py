# -*- coding: utf-8 -*-
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("bvtree")
except PackageNotFoundError:  # pragma: no cover - handled when package not installed
    __version__ = "unknown"

from bvtree.bounded_sorted_array import BoundedSortedArray
from bvtree.element import Element
from bvtree.geom import AABB, Ray
from bvtree.kdtree import KDTree
from bvtree.mesh import TriangleMesh
from bvtree.metric import Metric, MetricL1, MetricL2
from bvtree.model import Model, PickedSample
from bvtree.neighbors import NeighborPair, RayStructureIntersection
from bvtree.primitives import Point, Triangle, Vertex
from bvtree.xform import AffineTransform, Rotation, Scale, Translation

__all__ = [
    'AABB', 'AffineTransform', 'BoundedSortedArray', 'Element', 'KDTree',
    'Metric', 'MetricL1', 'MetricL2', 'Model', 'NeighborPair', 'PickedSample',
    'Point', 'Ray', 'RayStructureIntersection', 'Rotation', 'Scale',
    'Translation', 'Triangle', 'TriangleMesh', 'Vertex',
]
