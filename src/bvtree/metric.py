"""Distance metrics used to rank and prune during nearest-element queries.

A metric works in its own *monotone* scale (squared distance for
:class:`MetricL2`) and converts to true distances only when reporting.
The traversal relies on one property: for any query ``q``, box ``B`` and
element ``E`` whose box lies in ``B``::

    metric.bound(q, B) <= metric.distance(q, E)[0]

A metric that breaks this makes the tree silently skip the true answer.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Tuple

from bvtree.element import Element
from bvtree.geom import (AABB, INF, Ray, Vec3, dist2, point_box_dist1,
                         point_box_dist2, ray_box_dist2_bound)


class Metric(ABC):
    """Base class for tree distance metrics."""

    name = 'metric'

    @abstractmethod
    def distance(self, query, element: Element) -> Tuple[float, Vec3, Vec3]:
        """Return ``(monotone_distance, query_point, element_point)``."""

    @abstractmethod
    def bound(self, query, box: AABB) -> float:
        """Monotone lower bound on the distance from ``query`` to anything
        inside ``box``."""

    def to_distance(self, value: float) -> float:
        """Convert a monotone distance to a true distance."""
        return value

    def from_distance(self, d: float) -> float:
        """Convert a true distance to the monotone scale."""
        return d

    def __repr__(self):
        return f'{type(self).__name__}()'


class MetricL2(Metric):
    """Euclidean distance, compared in squared form."""

    name = 'L2'

    def distance(self, query, element: Element) -> Tuple[float, Vec3, Vec3]:
        prim = element.primitive
        if isinstance(query, Ray):
            q, p = prim.closest_points_to_ray(query)
        else:
            q = query
            p = prim.closest_point(query)
        return dist2(q, p), q, p

    def bound(self, query, box: AABB) -> float:
        if box.is_null():
            return INF
        if isinstance(query, Ray):
            return ray_box_dist2_bound(query, box)
        return point_box_dist2(query, box)

    def to_distance(self, value: float) -> float:
        return math.sqrt(value)

    def from_distance(self, d: float) -> float:
        return d * d


class MetricL1(Metric):
    """Manhattan distance between a point query and point-like elements."""

    name = 'L1'

    def distance(self, query, element: Element) -> Tuple[float, Vec3, Vec3]:
        if isinstance(query, Ray):
            raise TypeError('MetricL1 does not support ray queries')
        if not element.point_like:
            raise TypeError('MetricL1 only measures distances to point-like '
                            'elements, not {}'.format(type(element.primitive).__name__))
        p = element.primitive.position
        d = abs(query[0] - p[0]) + abs(query[1] - p[1]) + abs(query[2] - p[2])
        return d, query, p

    def bound(self, query, box: AABB) -> float:
        if isinstance(query, Ray):
            raise TypeError('MetricL1 does not support ray queries')
        if box.is_null():
            return INF
        return point_box_dist1(query, box)


DEFAULT_METRIC = MetricL2()


__all__ = ['Metric', 'MetricL2', 'MetricL1', 'DEFAULT_METRIC']
