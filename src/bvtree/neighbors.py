"""Query result records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from bvtree.geom import Vec3


@dataclass
class NeighborPair:
    """A query point paired with its nearest element.

    ``distance`` is a true (not squared) distance in world units.
    ``target_point`` is the closest point on the element when requested.
    A pair with a negative ``target_index`` is the "not found" sentinel.
    """

    query_point: Optional[Vec3] = None
    target_index: int = -1
    distance: float = -1.0
    target_point: Optional[Vec3] = None

    def is_valid(self) -> bool:
        return self.target_index >= 0

    def __bool__(self) -> bool:
        return self.is_valid()


@dataclass
class RayStructureIntersection:
    """First hit of a ray against a tree.

    ``time`` is the ray parameter of the hit, ``element_index`` the
    external index of the element hit.  ``barycentric`` holds the weights
    of the triangle's three vertices at the hit (``None`` for point-like
    elements) and ``normal`` the element's normal in world space when it
    has one.  Negative ``time`` means no hit.
    """

    time: float = -1.0
    element_index: int = -1
    barycentric: Optional[Tuple[float, float, float]] = None
    normal: Optional[Vec3] = None

    def is_valid(self) -> bool:
        return self.time >= 0.0 and self.element_index >= 0

    def __bool__(self) -> bool:
        return self.is_valid()


__all__ = ['NeighborPair', 'RayStructureIntersection']
