"""Geometric primitives that can be stored in a tree.

Each primitive knows its bounding box, a representative centroid used by
the build, the exact closest point to a query point, the closest pair of
points to a ray, and how a ray intersects it.  Point-like primitives
(``Point`` and ``Vertex``) can only be hit by a ray that passes within
``RAY_TOL`` of them.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

from bvtree.geom import (AABB, Ray, Vec3, add, cross, dist2, dot, epsilon,
                         mag, ray_point_param, scale3, sub, vec3)

RAY_TOL = 1e-7

Barycentric = Tuple[float, float, float]


def closest_point_on_segment(p: Vec3, a: Vec3, b: Vec3) -> Vec3:
    ab = sub(b, a)
    denom = dot(ab, ab)
    if denom <= 0.0:
        return a
    t = dot(sub(p, a), ab) / denom
    if t <= 0.0:
        return a
    if t >= 1.0:
        return b
    return add(a, scale3(ab, t))


def closest_point_on_triangle(p: Vec3, a: Vec3, b: Vec3, c: Vec3) -> Vec3:
    """Closest point to ``p`` on the (non-degenerate) triangle ``abc``,
    found by classifying ``p`` against the Voronoi regions of the
    triangle's vertices, edges and face.
    """
    ab = sub(b, a)
    ac = sub(c, a)
    ap = sub(p, a)
    d1 = dot(ab, ap)
    d2 = dot(ac, ap)
    if d1 <= 0.0 and d2 <= 0.0:
        return a

    bp = sub(p, b)
    d3 = dot(ab, bp)
    d4 = dot(ac, bp)
    if d3 >= 0.0 and d4 <= d3:
        return b

    vc = d1 * d4 - d3 * d2
    if vc <= 0.0 and d1 >= 0.0 and d3 <= 0.0:
        v = d1 / (d1 - d3)
        return add(a, scale3(ab, v))

    cp = sub(p, c)
    d5 = dot(ab, cp)
    d6 = dot(ac, cp)
    if d6 >= 0.0 and d5 <= d6:
        return c

    vb = d5 * d2 - d1 * d6
    if vb <= 0.0 and d2 >= 0.0 and d6 <= 0.0:
        w = d2 / (d2 - d6)
        return add(a, scale3(ac, w))

    va = d3 * d6 - d5 * d4
    if va <= 0.0 and (d4 - d3) >= 0.0 and (d5 - d6) >= 0.0:
        w = (d4 - d3) / ((d4 - d3) + (d5 - d6))
        return add(b, scale3(sub(c, b), w))

    denom = 1.0 / (va + vb + vc)
    v = vb * denom
    w = vc * denom
    return add(a, add(scale3(ab, v), scale3(ac, w)))


def closest_points_ray_segment(ray: Ray, a: Vec3, b: Vec3) -> Tuple[Vec3, Vec3]:
    """Return ``(ray_point, segment_point)``, the closest pair between
    ``ray`` and the segment ``ab``.
    """
    d1 = ray.direction
    d2 = sub(b, a)
    r = sub(ray.origin, a)
    aa = dot(d1, d1)
    ee = dot(d2, d2)
    f = dot(d2, r)

    if ee <= epsilon * epsilon:
        s = ray_point_param(ray, a)
        return ray.point(s), a

    c = dot(d1, r)
    bb = dot(d1, d2)
    denom = aa * ee - bb * bb
    if denom > epsilon * epsilon * aa * ee:
        s = (bb * f - c * ee) / denom
        if s < 0.0:
            s = 0.0
    else:
        s = 0.0

    t = (bb * s + f) / ee
    if t < 0.0:
        t = 0.0
        s = -c / aa
    elif t > 1.0:
        t = 1.0
        s = (bb - c) / aa
    if s < 0.0:
        s = 0.0
    return ray.point(s), add(a, scale3(d2, t))


def ray_triangle_intersection(ray: Ray, v0: Vec3, v1: Vec3, v2: Vec3,
                              tol: float = RAY_TOL
                              ) -> Optional[Tuple[float, Barycentric]]:
    """Moller-Trumbore test.  Return ``(t, (b0, b1, b2))`` with barycentric
    weights for ``v0``, ``v1``, ``v2``, or ``None`` if there is no hit at
    ``t >= 0``.
    """
    direction = ray.direction
    e1 = sub(v1, v0)
    e2 = sub(v2, v0)
    h = cross(direction, e2)
    a = dot(e1, h)
    if abs(a) < tol * mag(direction) * mag(e1) * mag(e2):
        return None
    f = 1.0 / a
    s = sub(ray.origin, v0)
    u = f * dot(s, h)
    if u < -tol or u > 1.0 + tol:
        return None
    q = cross(s, e1)
    v = f * dot(direction, q)
    if v < -tol or u + v > 1.0 + tol:
        return None
    t = f * dot(e2, q)
    if t < 0.0:
        return None
    return t, (1.0 - u - v, u, v)


class Point:
    """A bare point, as stored in a point cloud."""

    __slots__ = ('position',)

    point_like = True

    def __init__(self, position: Sequence[float]):
        self.position = vec3(position)

    def __repr__(self):
        return f'Point({self.position})'

    def bbox(self) -> AABB:
        return AABB(self.position, self.position)

    def centroid(self) -> Vec3:
        return self.position

    def closest_point(self, p: Vec3) -> Vec3:
        return self.position

    def closest_points_to_ray(self, ray: Ray) -> Tuple[Vec3, Vec3]:
        return ray.point(ray_point_param(ray, self.position)), self.position

    def ray_intersection(self, ray: Ray, tol: float = RAY_TOL):
        t = ray_point_param(ray, self.position)
        if dist2(ray.point(t), self.position) <= tol * tol:
            return t, None
        return None


class Vertex(Point):
    """A mesh vertex: a point with an optional surface normal."""

    __slots__ = ('normal',)

    def __init__(self, position: Sequence[float],
                 normal: Optional[Sequence[float]] = None):
        super().__init__(position)
        self.normal = vec3(normal) if normal is not None else None

    def __repr__(self):
        return f'Vertex({self.position}, normal={self.normal})'


class Triangle:
    """A mesh face given by three vertex positions."""

    __slots__ = ('vertices', 'normal')

    point_like = False

    def __init__(self, v0: Sequence[float], v1: Sequence[float],
                 v2: Sequence[float]):
        self.vertices = (vec3(v0), vec3(v1), vec3(v2))
        a, b, c = self.vertices
        n = cross(sub(b, a), sub(c, a))
        m = mag(n)
        self.normal = scale3(n, 1.0 / m) if m > epsilon * epsilon else None

    def __repr__(self):
        return 'Triangle({}, {}, {})'.format(*self.vertices)

    def is_degenerate(self) -> bool:
        return self.normal is None

    def bbox(self) -> AABB:
        return AABB.from_points(self.vertices)

    def centroid(self) -> Vec3:
        a, b, c = self.vertices
        return ((a[0] + b[0] + c[0]) / 3.0,
                (a[1] + b[1] + c[1]) / 3.0,
                (a[2] + b[2] + c[2]) / 3.0)

    def closest_point(self, p: Vec3) -> Vec3:
        a, b, c = self.vertices
        if self.normal is not None:
            return closest_point_on_triangle(p, a, b, c)
        # collapsed to a segment or a point
        best = None
        best_d = 0.0
        for s0, s1 in ((a, b), (b, c), (c, a)):
            q = closest_point_on_segment(p, s0, s1)
            d = dist2(p, q)
            if best is None or d < best_d:
                best = q
                best_d = d
        return best

    def closest_points_to_ray(self, ray: Ray) -> Tuple[Vec3, Vec3]:
        a, b, c = self.vertices
        hit = self.ray_intersection(ray)
        if hit is not None:
            q = ray.point(hit[0])
            return q, q
        # no crossing: the minimum is reached at the ray origin or on an edge
        best_q = ray.origin
        best_p = self.closest_point(ray.origin)
        best_d = dist2(best_q, best_p)
        for s0, s1 in ((a, b), (b, c), (c, a)):
            q, p = closest_points_ray_segment(ray, s0, s1)
            d = dist2(q, p)
            if d < best_d:
                best_q, best_p, best_d = q, p, d
        return best_q, best_p

    def ray_intersection(self, ray: Ray, tol: float = RAY_TOL):
        if self.normal is None:
            return None
        return ray_triangle_intersection(ray, *self.vertices, tol=tol)


__all__ = [
    'RAY_TOL',
    'Point',
    'Vertex',
    'Triangle',
    'closest_point_on_segment',
    'closest_point_on_triangle',
    'closest_points_ray_segment',
    'ray_triangle_intersection',
]
