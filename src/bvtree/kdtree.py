## bounding-volume kd-tree over points, vertices and triangles
## Copyright (c) 2026 bvtree contributors

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

"""bounding-volume kd-tree over points, vertices and triangles"""

import logging
from numbers import Real

from bvtree import query
from bvtree.bounded_sorted_array import BoundedSortedArray
from bvtree.element import Element
from bvtree.geom import AABB, INF, Ray, vec3
from bvtree.metric import DEFAULT_METRIC
from bvtree.neighbors import NeighborPair, RayStructureIntersection
from bvtree.primitives import Point
from bvtree.xform import AffineTransform

logger = logging.getLogger(__name__)

DEFAULT_LEAF_SIZE = 8
DEFAULT_MAX_DEPTH = 64

## A tree is built in two steps, as with the other lazily-built
## structures in this package: elements are staged with add(), then
## init() builds the hierarchy over everything added so far.  Each
## node's box is the tight box of the elements below it, not a clipped
## piece of its parent's box.
##
## Split rule: take the axis along which the node box is longest (then
## the next two axes, round-robin) on which element centroids are not
## all equal; order the elements by (centroid, external index,
## insertion position) on that axis and cut at the median position.  A
## node whose centroids coincide on every axis becomes a leaf however
## many elements it holds.  The build is deterministic.


class Node:
    """kd-tree node.  Leaves have ``elems`` (positions in the element
    array) and no children; internal nodes have two children and
    ``elems is None``."""

    __slots__ = ('box', 'axis', 'split', 'left', 'right', 'elems')

    def __init__(self):
        self.reset()

    def reset(self):
        self.box = AABB.null()
        self.axis = -1
        self.split = 0.0
        self.left = None
        self.right = None
        self.elems = None

    def is_leaf(self):
        return self.elems is not None

    def __repr__(self):
        if self.elems is not None:
            return 'Node(leaf, box={}, elems={})'.format(self.box, self.elems)
        return 'Node(axis={}, split={}, box={})'.format(self.axis, self.split, self.box)


class KDTree:

    """Bounding-volume kd-tree answering ray, nearest and k-nearest queries"""

    def __init__(self, elements=None, leaf_size=DEFAULT_LEAF_SIZE,
                 max_depth=DEFAULT_MAX_DEPTH):
        if isinstance(leaf_size, bool) or not isinstance(leaf_size, int) or leaf_size < 1:
            raise ValueError('bad leaf_size value: ' + str(leaf_size))
        if isinstance(max_depth, bool) or not isinstance(max_depth, int) or max_depth < 0:
            raise ValueError('bad max_depth value: ' + str(max_depth))

        self.__leaf_size = leaf_size
        self.__max_depth = max_depth
        self.__elements = []
        self.__view = ()
        self.__staging = []
        self.__root = None
        self.__pool = []
        self.__num_nodes = 0
        self.__depth = 0
        self.__capped = 0
        self.__built = False
        self.__transform = None

        if elements is not None:
            self.add(elements)
            self.init()

    def __repr__(self):
        return 'KDTree(elements={}, nodes={}, depth={}, built={})'.format(
            len(self.__elements), self.__num_nodes, self.__depth, self.__built)

    ## construction
    ## ------------

    def add(self, element, index=None):
        """Stage an element, a primitive, a point, or an iterable of any of
        these.  Nothing is built until :meth:`init`.

        Primitives and points are wrapped in an :class:`Element` whose
        external index is ``index`` if given, else its insertion position.
        """
        if isinstance(element, Element):
            if index is not None:
                element.index = index
            elif element.index < 0:
                element.index = self.__next_position()
            self.__staging.append(element)
        elif hasattr(element, 'bbox') and hasattr(element, 'centroid'):
            pos = self.__next_position()
            self.__staging.append(Element(element, pos if index is None else index))
        elif _is_point(element):
            pos = self.__next_position()
            self.__staging.append(Element(Point(element), pos if index is None else index))
        elif isinstance(element, (str, bytes)) or not hasattr(element, '__iter__'):
            raise TypeError('bad element passed to add: {!r}'.format(element))
        else:
            if index is not None:
                raise ValueError('index can only be given for a single element')
            for e in element:
                self.add(e)

    def __next_position(self):
        return len(self.__elements) + len(self.__staging)

    def init(self):
        """Build the hierarchy over all elements added so far."""
        self.__elements.extend(self.__staging)
        self.__staging = []
        self.__view = tuple(self.__elements)

        self.__recycle(self.__root)
        self.__root = None
        self.__num_nodes = 0
        self.__depth = 0
        self.__capped = 0

        self.__root = self.__build(list(range(len(self.__elements))), 0)
        self.__built = True

        if self.__capped:
            logger.warning('kd-tree depth cap %d reached; %d oversize leaves emitted',
                           self.__max_depth, self.__capped)
        logger.debug('built kd-tree: %d elements, %d nodes, depth %d',
                     len(self.__elements), self.__num_nodes, self.__depth)

    def clear(self, release_memory=True):
        """Reset to an empty, unbuilt tree.  With ``release_memory=False``
        the node objects and element storage are kept for reuse by the
        next :meth:`init`.
        The transform is left untouched."""
        if release_memory:
            self.__pool = []
            self.__elements = []
        else:
            self.__recycle(self.__root)
            # keep the list object, only drop its contents
            del self.__elements[:]
        self.__root = None
        self.__view = ()
        self.__staging = []
        self.__num_nodes = 0
        self.__depth = 0
        self.__built = False

    def __new_node(self):
        self.__num_nodes += 1
        if self.__pool:
            node = self.__pool.pop()
            node.reset()
            return node
        return Node()

    def __recycle(self, root):
        if root is None:
            return
        stack = [root]
        while stack:
            node = stack.pop()
            if node.elems is None:
                stack.append(node.left)
                stack.append(node.right)
            self.__pool.append(node)

    def __build(self, positions, depth):
        elements = self.__elements
        node = self.__new_node()
        if depth > self.__depth:
            self.__depth = depth

        if positions:
            boxes = [elements[i].box for i in positions]
            node.box = AABB((min(b.lo[0] for b in boxes),
                             min(b.lo[1] for b in boxes),
                             min(b.lo[2] for b in boxes)),
                            (max(b.hi[0] for b in boxes),
                             max(b.hi[1] for b in boxes),
                             max(b.hi[2] for b in boxes)))

        n = len(positions)
        if n <= self.__leaf_size:
            node.elems = positions
            return node
        if depth >= self.__max_depth:
            self.__capped += 1
            node.elems = positions
            return node

        ext = node.box.extent()
        first = max(range(3), key=lambda i: ext[i])
        axis = -1
        for k in range(3):
            a = (first + k) % 3
            cs = [elements[i].center[a] for i in positions]
            if max(cs) > min(cs):
                axis = a
                break
        if axis < 0:
            # coincident centroids cannot be separated
            node.elems = positions
            return node

        positions.sort(key=lambda i: (elements[i].center[axis], elements[i].index, i))
        mid = n // 2
        node.axis = axis
        node.split = elements[positions[mid]].center[axis]
        node.left = self.__build(positions[:mid], depth + 1)
        node.right = self.__build(positions[mid:], depth + 1)
        return node

    ## properties and accessors
    ## ------------------------

    @property
    def depth(self):
        return self.__depth

    @property
    def leaf_size(self):
        return self.__leaf_size

    @property
    def max_depth(self):
        return self.__max_depth

    @property
    def root(self):
        return self.__root

    def isBuilt(self):
        return self.__built

    def numElements(self):
        return len(self.__elements)

    def numNodes(self):
        return self.__num_nodes

    def getElements(self):
        """Built elements, in insertion order (a read-only tuple)."""
        return self.__view

    def getBounds(self):
        """World-space box of the tree (null for an empty tree)."""
        if self.__root is None:
            return AABB.null()
        if self.__transform is not None:
            return self.__transform.bound(self.__root.box)
        return self.__root.box

    ## transform
    ## ---------

    def setTransform(self, trans):
        if not isinstance(trans, AffineTransform):
            trans = AffineTransform(trans)
        self.__transform = trans

    def clearTransform(self):
        self.__transform = None

    def hasTransform(self):
        return self.__transform is not None

    def getTransform(self):
        return self.__transform

    def __local_query(self, q):
        if isinstance(q, Ray):
            return q if self.__transform is None else self.__transform.inverse_ray(q)
        p = vec3(q)
        return p if self.__transform is None else self.__transform.inverse_point(p)

    def __local_bound(self, metric, d):
        if d is None or d < 0:
            return INF
        if self.__transform is not None:
            d = d / self.__transform.scale_factor()
        return metric.from_distance(d)

    def __world_distance(self, metric, value):
        d = metric.to_distance(value)
        if self.__transform is not None:
            d *= self.__transform.scale_factor()
        return d

    def __world_point(self, p):
        return p if self.__transform is None else self.__transform.point(p)

    def __pair(self, metric, world_query, get_closest_points):
        def make(value, pos, q, p):
            qp = world_query if not isinstance(world_query, Ray) else self.__world_point(q)
            return NeighborPair(query_point=qp,
                                target_index=self.__elements[pos].index,
                                distance=self.__world_distance(metric, value),
                                target_point=self.__world_point(p) if get_closest_points else None)
        return make

    ## ray queries
    ## -----------

    def rayIntersects(self, ray, max_time=-1):
        """Does ``ray`` hit any element within ``[0, max_time]``?"""
        local = self.__local_query(ray)
        hit = query.ray_intersection(self.__root, self.__elements, local,
                                     _time_limit(max_time), first_only=True)
        return hit is not None

    def rayIntersectionTime(self, ray, max_time=-1):
        """Parameter of the first hit along ``ray``, or -1 if none."""
        local = self.__local_query(ray)
        hit = query.ray_intersection(self.__root, self.__elements, local,
                                     _time_limit(max_time))
        return -1.0 if hit is None else hit[0]

    def rayStructureIntersection(self, ray, max_time=-1):
        """First hit along ``ray`` as a :class:`RayStructureIntersection`;
        an invalid one if nothing is hit."""
        local = self.__local_query(ray)
        hit = query.ray_intersection(self.__root, self.__elements, local,
                                     _time_limit(max_time))
        if hit is None:
            return RayStructureIntersection()
        t, pos, bary = hit
        elem = self.__elements[pos]
        normal = elem.normal
        if normal is not None and self.__transform is not None:
            normal = self.__transform.normal(normal)
        return RayStructureIntersection(time=t, element_index=elem.index,
                                        barycentric=bary, normal=normal)

    ## proximity queries
    ## -----------------

    def closestElement(self, q, distance_bound=-1, metric=None,
                       distance=False, point=False):
        """Index of the element nearest to point (or ray) ``q``, or -1 if
        none lies within ``distance_bound`` (negative means unbounded).

        If ``distance`` and/or ``point`` is true, return a tuple of the
        index followed by the requested distance and closest element point
        (``None`` values when nothing was found).
        """
        metric = metric or DEFAULT_METRIC
        best = query.closest(self.__root, self.__elements, self.__local_query(q),
                             metric, self.__local_bound(metric, distance_bound))
        if best is None:
            index, d, p = -1, None, None
        else:
            index = self.__elements[best[1]].index
            d = self.__world_distance(metric, best[0])
            p = self.__world_point(best[3])
        if not distance and not point:
            return index
        result = (index,)
        if distance:
            result += (d,)
        if point:
            result += (p,)
        return result

    def closestPair(self, q, max_distance=-1, get_closest_points=False, metric=None):
        """Nearest element to point or ray ``q`` as a :class:`NeighborPair`.

        For a ray, the pair's query point is the point on the ray closest
        to the element.  The pair is invalid if nothing is within
        ``max_distance``.
        """
        metric = metric or DEFAULT_METRIC
        best = query.closest(self.__root, self.__elements, self.__local_query(q),
                             metric, self.__local_bound(metric, max_distance))
        if best is None:
            return NeighborPair()
        world_query = q if isinstance(q, Ray) else vec3(q)
        return self.__pair(metric, world_query, get_closest_points)(*best)

    def kClosestPairs(self, q, array, max_distance=-1, metric=None,
                      get_closest_points=False, clear_set=True):
        """Fill ``array`` (a :class:`BoundedSortedArray`) with the pairs for
        the ``array.capacity`` elements nearest to ``q``, ascending by
        distance.  Returns how many pairs were found.

        The array's keys are the metric's monotone values measured in
        build space (squared, untransformed distances for L2), so
        ``array.max_key()`` is only comparable with keys from this same
        tree.  Each pair's ``distance`` is the true distance in world
        units.
        """
        if not isinstance(array, BoundedSortedArray):
            raise TypeError('kClosestPairs needs a BoundedSortedArray, not {}'.format(type(array).__name__))
        if clear_set:
            array.clear()
        metric = metric or DEFAULT_METRIC
        world_query = q if isinstance(q, Ray) else vec3(q)
        return query.k_closest(self.__root, self.__elements, self.__local_query(q),
                               metric, array, self.__local_bound(metric, max_distance),
                               self.__pair(metric, world_query, get_closest_points))


def _time_limit(max_time):
    if max_time is None or max_time < 0:
        return INF
    return max_time


def _is_point(x):
    if isinstance(x, (str, bytes)) or not hasattr(x, '__len__'):
        return False
    if len(x) not in (3, 4):
        return False
    return all(isinstance(v, Real) and not isinstance(v, bool) for v in x)


__all__ = ['KDTree', 'Node', 'DEFAULT_LEAF_SIZE', 'DEFAULT_MAX_DEPTH']
