## affine transformations of 3D points, vectors, rays and boxes for bvtree

## Copyright (c) 2026 bvtree contributors
## All rights reserved

# Permission is hereby granted, free of charge, to any person
# obtaining a copy of this software and associated documentation files
# (the "Software"), to deal in the Software without restriction,
# including without limitation the rights to use, copy, modify, merge,
# publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so,
# subject to the following conditions:
#
# The above copyright notice and this permission notice shall be
# included in all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND,
# EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF
# MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS
# BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN
# ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN
# CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

from math import cos, pi, sin

import numpy as np

from bvtree.geom import AABB, Ray, Vec3, close, epsilon, mag, scale3

## An affine transform is a 4x4 homogeneous matrix whose last row is
## [0, 0, 0, 1].  Points are column vectors (Mx).  The inverse is
## computed once, when the transform is created, since every query
## against a transformed tree maps its input back into build space.


class AffineTransform:
    """Invertible 4x4 affine transformation of 3D space."""

    __slots__ = ('m', 'inv', '_scale')

    def __init__(self, a=None):
        if a is None:
            m = np.identity(4)
        elif isinstance(a, AffineTransform):
            m = a.m.copy()
        else:
            m = np.array(a, dtype=float)
            if m.shape == (16,):
                m = m.reshape(4, 4)
            elif m.shape == (3, 4):
                m = np.vstack([m, [0.0, 0.0, 0.0, 1.0]])
            if m.shape != (4, 4):
                raise ValueError('bad thing used in attempt to initialize transform: {}'.format(a))
        if not np.all(np.isfinite(m)):
            raise ValueError('non-finite element in transform: {}'.format(a))
        if not np.allclose(m[3], [0.0, 0.0, 0.0, 1.0]):
            raise ValueError('not an affine transform, bad last row: {}'.format(m[3]))

        det = np.linalg.det(m[:3, :3])
        if abs(det) < epsilon * epsilon:
            raise ValueError('singular transform cannot be inverted')
        self.m = m
        self.inv = np.linalg.inv(m)
        self._scale = abs(det) ** (1.0 / 3.0)

    def __repr__(self):
        return 'AffineTransform({})'.format(self.m.tolist())

    def get(self, i, j):
        return float(self.m[i, j])

    def mul(self, x):
        """Compose: ``self.mul(x)`` applies ``x`` first, then ``self``."""
        if isinstance(x, AffineTransform):
            return AffineTransform(self.m @ x.m)
        raise ValueError('bad thing passed to mul(): {}'.format(x))

    def inverse(self):
        return AffineTransform(self.inv)

    ## linear part and translation applied separately so that points
    ## and directions stay plain tuples

    def point(self, p: Vec3) -> Vec3:
        return _apply(self.m, p, 1.0)

    def vector(self, v: Vec3) -> Vec3:
        return _apply(self.m, v, 0.0)

    def inverse_point(self, p: Vec3) -> Vec3:
        return _apply(self.inv, p, 1.0)

    def inverse_vector(self, v: Vec3) -> Vec3:
        return _apply(self.inv, v, 0.0)

    def ray(self, r: Ray) -> Ray:
        """Map a ray without renormalising its direction, so ray
        parameters are the same in both spaces."""
        return Ray(self.point(r.origin), self.vector(r.direction))

    def inverse_ray(self, r: Ray) -> Ray:
        return Ray(self.inverse_point(r.origin), self.inverse_vector(r.direction))

    def normal(self, n: Vec3) -> Vec3:
        """Map a surface normal (inverse transpose), renormalised."""
        l = self.inv[:3, :3].T
        v = (float(l[0, 0] * n[0] + l[0, 1] * n[1] + l[0, 2] * n[2]),
             float(l[1, 0] * n[0] + l[1, 1] * n[1] + l[1, 2] * n[2]),
             float(l[2, 0] * n[0] + l[2, 1] * n[1] + l[2, 2] * n[2]))
        return scale3(v, 1.0 / mag(v))

    def scale_factor(self) -> float:
        """Uniform scale of the linear part, ``|det| ** (1/3)``.  Exact for
        rotations combined with uniform scaling."""
        return self._scale

    def is_rigid(self) -> bool:
        l = self.m[:3, :3]
        return bool(np.allclose(l.T @ l, np.identity(3), atol=epsilon))

    def is_identity(self) -> bool:
        return bool(np.allclose(self.m, np.identity(4), atol=epsilon))

    def bound(self, box: AABB) -> AABB:
        """Axis-aligned box enclosing the transformed ``box``."""
        if box.is_null():
            return AABB.null()
        return AABB.from_points(self.point(c) for c in box.corners())


def _apply(m, p, w):
    return (float(m[0, 0] * p[0] + m[0, 1] * p[1] + m[0, 2] * p[2] + m[0, 3] * w),
            float(m[1, 0] * p[0] + m[1, 1] * p[1] + m[1, 2] * p[2] + m[1, 3] * w),
            float(m[2, 0] * p[0] + m[2, 1] * p[1] + m[2, 2] * p[2] + m[2, 3] * w))


# return the generalized arbitrary axis rotation, angle in degrees
def Rotation(axis, angle, inverse=False):
    m = mag(axis)
    if m < epsilon:
        raise ValueError('zero-length rotation axis not allowed')
    u = axis
    if not close(m, 1.0):
        u = scale3(axis, 1.0 / m)

    if inverse:
        angle *= -1.0
    rad = (angle % 360.0) * 2.0 * pi / 360.0

    ux, uy, uz = u[0], u[1], u[2]
    cang = cos(rad)
    cmin = 1.0 - cang
    sang = sin(rad)

    R = [[cang + ux*ux*cmin, ux*uy*cmin - uz*sang, ux*uz*cmin + uy*sang, 0],
         [uy*ux*cmin + uz*sang, cang + uy*uy*cmin, uy*uz*cmin - ux*sang, 0],
         [uz*ux*cmin - uy*sang, uz*uy*cmin + ux*sang, cang + uz*uz*cmin, 0],
         [0, 0, 0, 1]]
    return AffineTransform(R)


def Translation(delta, inverse=False):
    dx, dy, dz = delta[0], delta[1], delta[2]
    if inverse:
        dx, dy, dz = -dx, -dy, -dz
    T = [[1, 0, 0, dx],
         [0, 1, 0, dy],
         [0, 0, 1, dz],
         [0, 0, 0, 1]]
    return AffineTransform(T)


def Scale(x, y=None, z=None, inverse=False):
    if isinstance(x, (tuple, list)):
        sx, sy, sz = x[0], x[1], x[2]
    elif y is not None and z is not None:
        sx, sy, sz = x, y, z
    else:
        sx = sy = sz = x

    if inverse:
        sx = 1.0 / sx
        sy = 1.0 / sy
        sz = 1.0 / sz

    S = [[sx, 0, 0, 0],
         [0, sy, 0, 0],
         [0, 0, sz, 0],
         [0, 0, 0, 1.0]]
    return AffineTransform(S)


__all__ = ['AffineTransform', 'Rotation', 'Translation', 'Scale']
