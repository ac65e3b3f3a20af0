"""Branch-and-bound traversals over a built tree.

All functions here work in the tree's build space and take the root node
plus the element array; the transform handling lives in
:class:`bvtree.kdtree.KDTree`.  Traversal uses an explicit stack, so its
depth is bounded by the tree's depth and not by the interpreter's
recursion limit.  Children are pushed far-first so that the nearer one is
explored next.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from bvtree.bounded_sorted_array import BoundedSortedArray
from bvtree.element import Element
from bvtree.geom import INF, Ray, mag, ray_box_entry
from bvtree.metric import Metric
from bvtree.primitives import RAY_TOL


def _ray_pad(root) -> float:
    # a tolerant triangle hit can lie up to RAY_TOL times two edge
    # lengths outside the triangle, and no edge is longer than the
    # root box diagonal
    lo, hi = root.box.lo, root.box.hi
    coord = max(abs(lo[0]), abs(lo[1]), abs(lo[2]),
                abs(hi[0]), abs(hi[1]), abs(hi[2]))
    return RAY_TOL * (1.0 + 2.0 * mag(root.box.extent()) + coord)


def ray_intersection(root, elements: Sequence[Element], ray: Ray,
                     max_time: float = INF, first_only: bool = False):
    """Find the earliest hit of ``ray`` within ``[0, max_time]``.

    Returns ``(time, position, barycentric)`` where ``position`` indexes
    ``elements``, or ``None`` if nothing is hit.  With ``first_only`` the
    search stops at the first hit found, which need not be the earliest.
    """
    if root is None or root.box.is_null():
        return None
    pad = _ray_pad(root)
    entry = ray_box_entry(ray, root.box, max_time, pad)
    if entry is None:
        return None

    best_t = max_time
    best = None
    stack = [(entry, root)]
    while stack:
        entry, node = stack.pop()
        if entry > best_t:
            continue

        if node.elems is not None:
            for pos in node.elems:
                hit = elements[pos].primitive.ray_intersection(ray)
                if hit is None:
                    continue
                t = hit[0]
                if t > best_t or (best is not None and t >= best_t):
                    continue
                best_t = t
                best = (t, pos, hit[1])
                if first_only:
                    return best
            continue

        t_left = ray_box_entry(ray, node.left.box, best_t, pad)
        t_right = ray_box_entry(ray, node.right.box, best_t, pad)
        if t_left is None:
            if t_right is not None:
                stack.append((t_right, node.right))
        elif t_right is None:
            stack.append((t_left, node.left))
        elif t_left <= t_right:
            stack.append((t_right, node.right))
            stack.append((t_left, node.left))
        else:
            stack.append((t_left, node.left))
            stack.append((t_right, node.right))
    return best


def closest(root, elements: Sequence[Element], query, metric: Metric,
            bound: float = INF):
    """Find the element nearest to ``query`` (a point or a :class:`Ray`).

    ``bound`` is in the metric's monotone scale; elements farther than it
    are not considered.  Returns ``(distance, position, query_point,
    element_point)`` with a monotone distance, or ``None``.
    """
    if root is None or root.box.is_null():
        return None
    lb = metric.bound(query, root.box)
    if lb > bound:
        return None

    best_d = bound
    best = None
    stack = [(lb, root)]
    while stack:
        lb, node = stack.pop()
        if lb > best_d:
            continue

        if node.elems is not None:
            for pos in node.elems:
                d, q, p = metric.distance(query, elements[pos])
                if d < best_d or (best is None and d <= best_d):
                    best_d = d
                    best = (d, pos, q, p)
            continue

        _push_nearest_first(stack, query, metric, node, best_d)
    return best


def k_closest(root, elements: Sequence[Element], query, metric: Metric,
              array: BoundedSortedArray, bound: float = INF,
              make_pair: Optional[Callable] = None) -> int:
    """Collect the ``array.capacity`` elements nearest to ``query``.

    Keys inserted into ``array`` are monotone distances; values are
    ``make_pair(distance, position, query_point, element_point)`` (or that
    tuple itself when ``make_pair`` is ``None``).  Returns the number of
    pairs held by ``array`` afterwards.
    """
    if root is None or root.box.is_null():
        return len(array)

    def limit():
        if array.is_full():
            m = array.max_key()
            return m if m < bound else bound
        return bound

    lb = metric.bound(query, root.box)
    stack = [(lb, root)] if lb <= bound else []
    while stack:
        lb, node = stack.pop()
        if lb > limit() or (array.is_full() and lb >= array.max_key()):
            continue

        if node.elems is not None:
            for pos in node.elems:
                d, q, p = metric.distance(query, elements[pos])
                if d > bound or not array.would_accept(d):
                    continue
                pair = (d, pos, q, p) if make_pair is None else make_pair(d, pos, q, p)
                array.insert(d, pair)
            continue

        _push_nearest_first(stack, query, metric, node, limit())
    return len(array)


def _push_nearest_first(stack, query, metric: Metric, node, limit: float) -> None:
    lb_left = metric.bound(query, node.left.box)
    lb_right = metric.bound(query, node.right.box)
    if lb_left <= lb_right:
        if lb_right <= limit:
            stack.append((lb_right, node.right))
        if lb_left <= limit:
            stack.append((lb_left, node.left))
    else:
        if lb_left <= limit:
            stack.append((lb_left, node.left))
        if lb_right <= limit:
            stack.append((lb_right, node.right))


__all__ = [
    'ray_intersection',
    'closest',
    'k_closest',
]
