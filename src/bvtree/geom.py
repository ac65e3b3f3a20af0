"""Vector, box and ray helpers shared by the tree and its primitives.

Vectors are plain ``(x, y, z)`` float tuples.  Boxes are axis-aligned and
stored as a pair of corner tuples.  Rays carry an origin and an
(unnormalised) direction; the hit parameter ``t`` is measured in units of
the direction vector, so mapping a ray through an affine transform leaves
``t`` unchanged.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence, Tuple

Vec3 = Tuple[float, float, float]

## geometric tolerance
epsilon = 0.000005

INF = float('inf')


def vec3(p: Sequence[float]) -> Vec3:
    """Return the XYZ components of a point-like sequence as a tuple."""

    if len(p) < 3:
        raise ValueError("value must have at least three components")
    x, y, z = float(p[0]), float(p[1]), float(p[2])
    if not (math.isfinite(x) and math.isfinite(y) and math.isfinite(z)):
        raise ValueError(f"non-finite coordinates: {p}")
    return x, y, z


def add(a: Vec3, b: Vec3) -> Vec3:
    return a[0] + b[0], a[1] + b[1], a[2] + b[2]


def sub(a: Vec3, b: Vec3) -> Vec3:
    return a[0] - b[0], a[1] - b[1], a[2] - b[2]


def scale3(a: Vec3, c: float) -> Vec3:
    return a[0] * c, a[1] * c, a[2] * c


def dot(a: Vec3, b: Vec3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def cross(a: Vec3, b: Vec3) -> Vec3:
    return (a[1] * b[2] - a[2] * b[1],
            a[2] * b[0] - a[0] * b[2],
            a[0] * b[1] - a[1] * b[0])


def mag(a: Vec3) -> float:
    return math.sqrt(a[0] * a[0] + a[1] * a[1] + a[2] * a[2])


def dist2(a: Vec3, b: Vec3) -> float:
    """Squared euclidean distance between two points."""
    dx = a[0] - b[0]
    dy = a[1] - b[1]
    dz = a[2] - b[2]
    return dx * dx + dy * dy + dz * dz


def dist(a: Vec3, b: Vec3) -> float:
    return math.sqrt(dist2(a, b))


def close(a: float, b: float) -> bool:
    return abs(a - b) < epsilon


def vclose(a: Vec3, b: Vec3) -> bool:
    return close(dist(a, b), 0.0)


class AABB:
    """Axis-aligned bounding box.

    A *null* box (``lo`` at +inf, ``hi`` at -inf) contains nothing and acts as
    the identity for :meth:`merge`.
    """

    __slots__ = ('lo', 'hi')

    def __init__(self, lo: Vec3, hi: Vec3):
        self.lo = lo
        self.hi = hi

    @classmethod
    def null(cls) -> "AABB":
        return cls((INF, INF, INF), (-INF, -INF, -INF))

    @classmethod
    def from_points(cls, points: Iterable[Vec3]) -> "AABB":
        box = cls.null()
        for p in points:
            box = box.merge_point(p)
        return box

    def __repr__(self):
        return f'AABB(lo={self.lo}, hi={self.hi})'

    def __eq__(self, other):
        if not isinstance(other, AABB):
            return NotImplemented
        return self.lo == other.lo and self.hi == other.hi

    def is_null(self) -> bool:
        return (self.lo[0] > self.hi[0] or self.lo[1] > self.hi[1]
                or self.lo[2] > self.hi[2])

    def merge(self, other: "AABB") -> "AABB":
        return AABB((min(self.lo[0], other.lo[0]),
                     min(self.lo[1], other.lo[1]),
                     min(self.lo[2], other.lo[2])),
                    (max(self.hi[0], other.hi[0]),
                     max(self.hi[1], other.hi[1]),
                     max(self.hi[2], other.hi[2])))

    def merge_point(self, p: Vec3) -> "AABB":
        return AABB((min(self.lo[0], p[0]),
                     min(self.lo[1], p[1]),
                     min(self.lo[2], p[2])),
                    (max(self.hi[0], p[0]),
                     max(self.hi[1], p[1]),
                     max(self.hi[2], p[2])))

    def extent(self) -> Vec3:
        if self.is_null():
            return 0.0, 0.0, 0.0
        return sub(self.hi, self.lo)

    def center(self) -> Vec3:
        return scale3(add(self.lo, self.hi), 0.5)

    def contains(self, other: "AABB") -> bool:
        """Does this box enclose ``other``?  Null boxes are enclosed by anything."""
        if other.is_null():
            return True
        return (self.lo[0] <= other.lo[0] and self.hi[0] >= other.hi[0] and
                self.lo[1] <= other.lo[1] and self.hi[1] >= other.hi[1] and
                self.lo[2] <= other.lo[2] and self.hi[2] >= other.hi[2])

    def contains_point(self, p: Vec3) -> bool:
        return (self.lo[0] <= p[0] <= self.hi[0] and
                self.lo[1] <= p[1] <= self.hi[1] and
                self.lo[2] <= p[2] <= self.hi[2])

    def corners(self):
        lo, hi = self.lo, self.hi
        for x in (lo[0], hi[0]):
            for y in (lo[1], hi[1]):
                for z in (lo[2], hi[2]):
                    yield x, y, z


class Ray:
    """Half-line ``origin + t * direction`` for ``t >= 0``."""

    __slots__ = ('origin', 'direction')

    def __init__(self, origin: Sequence[float], direction: Sequence[float]):
        self.origin = vec3(origin)
        self.direction = vec3(direction)
        if dot(self.direction, self.direction) <= epsilon * epsilon:
            raise ValueError('zero-length ray direction not allowed')

    def __repr__(self):
        return f'Ray(origin={self.origin}, direction={self.direction})'

    def point(self, t: float) -> Vec3:
        o, d = self.origin, self.direction
        return o[0] + d[0] * t, o[1] + d[1] * t, o[2] + d[2] * t

    def unit_direction(self) -> Vec3:
        return scale3(self.direction, 1.0 / mag(self.direction))


def point_box_dist2(p: Vec3, box: AABB) -> float:
    """Squared distance from ``p`` to the nearest point of ``box`` (0 inside)."""
    d = 0.0
    for i in range(3):
        v = p[i]
        if v < box.lo[i]:
            g = box.lo[i] - v
            d += g * g
        elif v > box.hi[i]:
            g = v - box.hi[i]
            d += g * g
    return d


def point_box_dist1(p: Vec3, box: AABB) -> float:
    """Manhattan distance from ``p`` to the nearest point of ``box``."""
    d = 0.0
    for i in range(3):
        v = p[i]
        if v < box.lo[i]:
            d += box.lo[i] - v
        elif v > box.hi[i]:
            d += v - box.hi[i]
    return d


def ray_point_param(ray: Ray, p: Vec3) -> float:
    """Parameter of the point on ``ray`` closest to ``p``."""
    d = ray.direction
    t = dot(sub(p, ray.origin), d) / dot(d, d)
    return t if t > 0.0 else 0.0


def ray_box_dist2_bound(ray: Ray, box: AABB) -> float:
    """Lower bound on the squared distance between ``ray`` and ``box``.

    Uses the box's circumscribed sphere, which encloses every point of the
    box, so the bound never exceeds the true distance.
    """
    if box.is_null():
        return INF
    c = box.center()
    r = 0.5 * mag(box.extent())
    q = ray.point(ray_point_param(ray, c))
    g = dist(q, c) - r
    if g <= 0.0:
        return 0.0
    return g * g


def ray_box_entry(ray: Ray, box: AABB, max_time: float = INF,
                  pad: float = 0.0) -> Optional[float]:
    """Slab test.  Return the parameter at which ``ray`` enters ``box``
    (0 if the origin is inside), or ``None`` if the ray misses the box
    within ``[0, max_time]``.  ``pad`` grows the box on every side.
    """
    if box.is_null():
        return None
    t0 = 0.0
    t1 = max_time
    o = ray.origin
    d = ray.direction
    for i in range(3):
        if d[i] == 0.0:
            if o[i] < box.lo[i] - pad or o[i] > box.hi[i] + pad:
                return None
            continue
        inv = 1.0 / d[i]
        tn = (box.lo[i] - pad - o[i]) * inv
        tf = (box.hi[i] + pad - o[i]) * inv
        if tn > tf:
            tn, tf = tf, tn
        if tn > t0:
            t0 = tn
        if tf < t1:
            t1 = tf
        if t0 > t1:
            return None
    return t0


__all__ = [
    'Vec3',
    'epsilon',
    'INF',
    'vec3',
    'add',
    'sub',
    'scale3',
    'dot',
    'cross',
    'mag',
    'dist',
    'dist2',
    'close',
    'vclose',
    'AABB',
    'Ray',
    'point_box_dist2',
    'point_box_dist1',
    'ray_point_param',
    'ray_box_dist2_bound',
    'ray_box_entry',
]
