"""Tree element: a primitive, its bounding box and its external index."""

from __future__ import annotations

from bvtree.geom import AABB, Vec3


class Element:
    """Wraps one primitive for storage in a tree.

    The bounding box and centroid are computed once, when the element is
    created.  ``index`` is the caller's handle for the primitive (a face
    index, a vertex index, a point index) and is what queries report.
    """

    __slots__ = ('primitive', 'box', 'center', 'index')

    def __init__(self, primitive, index: int = -1):
        self.primitive = primitive
        self.box: AABB = primitive.bbox()
        self.center: Vec3 = primitive.centroid()
        self.index = index

    def __repr__(self):
        return f'Element(index={self.index}, primitive={self.primitive!r})'

    @property
    def point_like(self) -> bool:
        return self.primitive.point_like

    @property
    def normal(self):
        return getattr(self.primitive, 'normal', None)


__all__ = ['Element']
