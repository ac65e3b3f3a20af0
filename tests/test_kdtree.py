import logging
import math
import random

import numpy as np
import pytest

from bvtree.bounded_sorted_array import BoundedSortedArray
from bvtree.element import Element
from bvtree.geom import AABB, Ray, dist, dist2
from bvtree.kdtree import DEFAULT_LEAF_SIZE, DEFAULT_MAX_DEPTH, KDTree
from bvtree.metric import MetricL1, MetricL2
from bvtree.neighbors import NeighborPair
from bvtree.primitives import Point, Triangle
from bvtree.xform import Scale


def randomPoints(n, lo=-10.0, hi=10.0):
    return [(random.uniform(lo, hi), random.uniform(lo, hi), random.uniform(lo, hi))
            for i in range(n)]


def randomTriangles(n, lo=-10.0, hi=10.0, size=1.5):
    tris = []
    for c in randomPoints(n, lo, hi):
        vs = [tuple(c[k] + random.uniform(-size, size) for k in range(3))
              for j in range(3)]
        tris.append(Triangle(*vs))
    return tris


def randomRay(lo=-15.0, hi=15.0):
    origin = randomPoints(1, lo, hi)[0]
    target = randomPoints(1, -5.0, 5.0)[0]
    return Ray(origin, tuple(target[k] - origin[k] for k in range(3)))


def bruteRay(tris, ray):
    """(time, index) of the earliest hit, or None"""
    best = None
    for i, t in enumerate(tris):
        hit = t.ray_intersection(ray)
        if hit is not None and (best is None or hit[0] < best[0]):
            best = (hit[0], i)
    return best


def bruteClosest(prims, q):
    ds = [dist(q, p.closest_point(q)) for p in prims]
    i = int(np.argmin(ds))
    return i, ds[i]


def walk(node):
    stack = [node]
    while stack:
        n = stack.pop()
        yield n
        if n.elems is None:
            stack.append(n.left)
            stack.append(n.right)


class CountingMetric(MetricL2):
    """L2 metric that counts exact distance evaluations"""

    def __init__(self):
        self.calls = 0

    def distance(self, query, element):
        self.calls += 1
        return super().distance(query, element)


class FarCornerMetric(MetricL2):
    """broken metric: reports the distance to the farthest box corner as
    the box bound, which overestimates"""

    def bound(self, query, box):
        if box.is_null():
            return math.inf
        return max(dist2(query, c) for c in box.corners())


class TestConstruction:

    def test_defaults(self):
        t = KDTree()
        assert t.leaf_size == DEFAULT_LEAF_SIZE == 8
        assert t.max_depth == DEFAULT_MAX_DEPTH == 64
        assert not t.isBuilt()
        assert t.numElements() == 0

    def test_bad_parameters(self):
        with pytest.raises(ValueError):
            KDTree(leaf_size=0)
        with pytest.raises(ValueError):
            KDTree(leaf_size=2.0)
        with pytest.raises(ValueError):
            KDTree(max_depth=-1)

    def test_add_types(self):
        t = KDTree()
        t.add((1, 2, 3))
        t.add(Point((0, 0, 0)))
        t.add(Triangle((0, 0, 0), (1, 0, 0), (0, 1, 0)), 42)
        t.add(Element(Point((5, 5, 5))))
        t.add([(1, 1, 1), (2, 2, 2)])
        t.init()
        assert t.numElements() == 6
        assert [e.index for e in t.getElements()] == [0, 1, 42, 3, 4, 5]
        for bad in ('abc', 5, None, [1, 2]):
            with pytest.raises(TypeError):
                t.add(bad)

    def test_staging(self):
        random.seed(1)
        t = KDTree(randomPoints(20))
        t.add((100, 100, 100))
        # staged elements are invisible until the next init()
        assert t.numElements() == 20
        assert t.closestElement((100, 100, 100)) != 20
        t.init()
        assert t.numElements() == 21
        assert t.closestElement((100, 100, 100)) == 20

    def test_structure(self):
        random.seed(2)
        pts = randomPoints(500)
        t = KDTree(pts, leaf_size=4)
        seen = []
        for node in walk(t.root):
            if node.elems is None:
                assert node.box.contains(node.left.box)
                assert node.box.contains(node.right.box)
            else:
                assert 0 < len(node.elems) <= 4
                for pos in node.elems:
                    assert node.box.contains(t.getElements()[pos].box)
                seen.extend(node.elems)
        assert sorted(seen) == list(range(500))
        assert t.getBounds() == AABB.from_points(pts)
        # balanced median split
        assert t.depth <= math.ceil(math.log2(500 / 4)) + 1

    def test_deterministic(self):
        random.seed(3)
        pts = randomPoints(300)
        a = KDTree(pts)
        b = KDTree(pts)
        la = [n.elems for n in walk(a.root) if n.elems is not None]
        lb = [n.elems for n in walk(b.root) if n.elems is not None]
        assert la == lb

    def test_coincident(self):
        t = KDTree([(1, 1, 1)] * 50, leaf_size=2)
        assert t.numNodes() == 1
        assert len(t.root.elems) == 50
        assert t.closestElement((0, 0, 0)) == 0

    def test_depth_cap(self, caplog):
        # geometrically skewed along x
        pts = [(2.0 ** -i, 0.0, 0.0) for i in range(200)]
        caplog.set_level(logging.WARNING, logger='bvtree.kdtree')
        t = KDTree(pts, leaf_size=1, max_depth=3)
        assert t.depth == 3
        assert any('depth cap' in r.getMessage() for r in caplog.records)
        leaves = [n for n in walk(t.root) if n.elems is not None]
        assert len(leaves) == 8
        assert sum(len(n.elems) for n in leaves) == 200
        for q in ((0.3, 0.1, 0.0), (1e-9, 0.0, 0.0), (2.0, 0.0, 0.0)):
            i, d = bruteClosest([Point(p) for p in pts], q)
            assert t.closestElement(q) == i

    def test_idempotent_init(self):
        random.seed(4)
        t = KDTree(randomPoints(100))
        nodes = t.numNodes()
        q = (0.5, 0.5, 0.5)
        before = t.closestElement(q)
        t.init()
        assert t.numNodes() == nodes
        assert t.numElements() == 100
        assert t.closestElement(q) == before

    def test_clear_reuses_nodes(self):
        random.seed(5)
        pts = randomPoints(200)
        t = KDTree(pts)
        old = set(id(n) for n in walk(t.root))
        t.clear(False)
        assert not t.isBuilt()
        assert t.numElements() == 0
        assert t.root is None
        t.add(pts)
        t.init()
        assert set(id(n) for n in walk(t.root)) == old

    def test_clear_keeps_element_storage(self):
        random.seed(5)
        pts = randomPoints(50)
        t = KDTree(pts)
        view = t.getElements()
        storage = t._KDTree__elements
        t.clear(False)
        assert t._KDTree__elements is storage
        assert len(storage) == 0
        # views handed out earlier are unaffected
        assert len(view) == 50
        t.add(pts)
        t.init()
        assert t._KDTree__elements is storage
        assert t.numElements() == 50
        t.clear()
        assert t._KDTree__elements is not storage

    def test_clear_keeps_transform(self):
        t = KDTree([(0, 0, 0)])
        t.setTransform(np.identity(4))
        t.clear()
        assert t.hasTransform()


class TestEmptyTree:

    @pytest.mark.parametrize('built', [True, False])
    def test_sentinels(self, built):
        t = KDTree()
        if built:
            t.init()
            assert t.numNodes() == 1
            assert t.root.box.is_null()
        ray = Ray((0, 0, 0), (1, 0, 0))
        assert not t.rayIntersects(ray)
        assert t.rayIntersectionTime(ray) == -1
        assert not t.rayStructureIntersection(ray).is_valid()
        assert t.closestElement((0, 0, 0)) == -1
        assert t.closestElement((0, 0, 0), distance=True, point=True) == (-1, None, None)
        assert not t.closestPair((0, 0, 0)).is_valid()
        assert not t.closestPair(ray).is_valid()
        arr = BoundedSortedArray(3)
        assert t.kClosestPairs((0, 0, 0), arr) == 0
        assert len(arr) == 0
        assert t.getBounds().is_null()


class TestRayQueries:

    def test_unit_triangle(self):
        t = KDTree([Triangle((0, 0, 0), (1, 0, 0), (0, 1, 0))])
        ray = Ray((0.5, 0.5, 5), (0, 0, -1))
        assert t.rayIntersects(ray)
        assert math.isclose(t.rayIntersectionTime(ray), 5.0)
        isec = t.rayStructureIntersection(ray)
        assert isec.is_valid()
        assert isec.element_index == 0
        assert math.isclose(isec.time, 5.0)
        assert math.isclose(sum(isec.barycentric), 1.0)
        assert isec.normal == (0.0, 0.0, 1.0)
        # max_time cuts the hit off
        assert not t.rayIntersects(ray, 4.0)
        assert t.rayIntersectionTime(ray, 4.0) == -1
        assert math.isclose(t.rayIntersectionTime(ray, 5.5), 5.0)

    def test_against_brute_force(self):
        random.seed(6)
        tris = randomTriangles(400)
        t = KDTree(tris)
        hits = 0
        for i in range(300):
            ray = randomRay()
            expect = bruteRay(tris, ray)
            assert t.rayIntersects(ray) == (expect is not None)
            got = t.rayIntersectionTime(ray)
            isec = t.rayStructureIntersection(ray)
            if expect is None:
                assert got == -1
                assert not isec
            else:
                hits += 1
                assert math.isclose(got, expect[0], rel_tol=1e-12, abs_tol=1e-12)
                assert isec.element_index == expect[1]
        assert hits > 50

    def test_nearest_hit_wins(self):
        # a stack of parallel triangles, hit front to back
        tris = [Triangle((-1, -1, z), (1, -1, z), (0, 1, z)) for z in range(20)]
        t = KDTree(tris, leaf_size=1)
        ray = Ray((0, 0, 100), (0, 0, -1))
        isec = t.rayStructureIntersection(ray)
        assert isec.element_index == 19
        assert math.isclose(isec.time, 81.0)
        ray = Ray((0, 0, -100), (0, 0, 1))
        assert t.rayStructureIntersection(ray).element_index == 0

    def test_points_are_hit_within_tolerance(self):
        t = KDTree([(0, 0, 0), (0, 0, 1)])
        assert math.isclose(t.rayIntersectionTime(Ray((0, 0, 5), (0, 0, -1))), 4.0)
        assert not t.rayIntersects(Ray((0.001, 0, 5), (0, 0, -1)))


    def test_large_triangle_edge_tolerance(self):
        # the hit lies just outside the triangle's box, within the
        # barycentric tolerance scaled by the 2000 unit edge
        tri = Triangle((-1000, 0, 0), (1000, 0, 0), (-1000, 1000, 0))
        ray = Ray((-1000.00015, 1, 5), (0, 0, -1))
        hit = tri.ray_intersection(ray)
        assert hit is not None
        assert ray.origin[0] < tri.bbox().lo[0]
        t = KDTree([tri])
        assert t.rayIntersects(ray)
        assert math.isclose(t.rayIntersectionTime(ray), hit[0])
        assert t.rayStructureIntersection(ray).element_index == 0

    def test_large_triangles_against_brute_force(self):
        random.seed(16)
        tris = randomTriangles(60, -500.0, 500.0, size=400.0)
        t = KDTree(tris, leaf_size=2)
        for i in range(200):
            ray = randomRay(-800.0, 800.0)
            expect = bruteRay(tris, ray)
            assert t.rayIntersects(ray) == (expect is not None)
            if expect is not None:
                assert math.isclose(t.rayIntersectionTime(ray), expect[0],
                                    rel_tol=1e-12, abs_tol=1e-12)


class TestProximityQueries:

    def test_k_closest_keys_are_build_space(self):
        t = KDTree([(1, 0, 0), (0, 3, 0)])
        t.setTransform(Scale(2))
        arr = BoundedSortedArray(2)
        assert t.kClosestPairs((0, 0, 0), arr) == 2
        assert [p.target_index for p in arr] == [0, 1]
        assert math.isclose(arr[0].distance, 2.0)
        assert math.isclose(arr[1].distance, 6.0)
        # keys stay squared and untransformed
        assert math.isclose(arr.key(0), 1.0)
        assert math.isclose(arr.max_key(), 9.0)

    def test_thousand_points_k5(self):
        random.seed(7)
        # unit cube, queried at a corner
        pts = randomPoints(1000, 0.0, 1.0)
        t = KDTree(pts)
        arr = BoundedSortedArray(5)
        n = t.kClosestPairs((0, 0, 0), arr)
        assert n == 5
        a = np.array(pts)
        d = np.sqrt(np.sum(a * a, axis=1))
        expect = np.argsort(d)[:5]
        assert [p.target_index for p in arr] == [int(i) for i in expect]
        for p, i in zip(arr, expect):
            assert isinstance(p, NeighborPair)
            assert math.isclose(p.distance, d[i])
            assert p.query_point == (0.0, 0.0, 0.0)
        assert arr.keys() == sorted(arr.keys())

    def test_closest_points(self):
        random.seed(8)
        pts = randomPoints(500)
        t = KDTree(pts)
        a = np.array(pts)
        for q in randomPoints(100, -15, 15):
            d = np.sqrt(np.sum((a - np.array(q)) ** 2, axis=1))
            i = int(np.argmin(d))
            index, dd, p = t.closestElement(q, distance=True, point=True)
            assert index == i
            assert math.isclose(dd, d[i])
            assert p == tuple(pts[i])
            pair = t.closestPair(q, get_closest_points=True)
            assert pair.target_index == i
            assert math.isclose(pair.distance, d[i])
            assert pair.target_point == tuple(pts[i])
            assert t.closestPair(q).target_point is None

    def test_closest_triangles(self):
        random.seed(9)
        tris = randomTriangles(300)
        t = KDTree(tris)
        for q in randomPoints(100, -15, 15):
            i, d = bruteClosest(tris, q)
            index, dd = t.closestElement(q, distance=True)
            assert index == i
            assert math.isclose(dd, d, rel_tol=1e-9, abs_tol=1e-12)

    def test_k_closest_triangles(self):
        random.seed(10)
        tris = randomTriangles(200)
        t = KDTree(tris)
        arr = BoundedSortedArray(7)
        for q in randomPoints(30, -15, 15):
            ds = sorted(dist(q, tr.closest_point(q)) for tr in tris)
            assert t.kClosestPairs(q, arr) == 7
            assert len(set(p.target_index for p in arr)) == 7
            for p, d in zip(arr, ds):
                assert math.isclose(p.distance, d, rel_tol=1e-9, abs_tol=1e-12)

    def test_k_larger_than_n(self):
        t = KDTree([(0, 0, 0), (1, 0, 0), (2, 0, 0)])
        arr = BoundedSortedArray(10)
        assert t.kClosestPairs((5, 0, 0), arr) == 3
        assert [p.target_index for p in arr] == [2, 1, 0]

    def test_distance_bounds(self):
        t = KDTree([(3, 4, 0), (30, 40, 0)])
        assert t.closestElement((0, 0, 0), 4.0) == -1
        assert t.closestElement((0, 0, 0), 5.0) == 0
        assert t.closestElement((0, 0, 0), -1) == 0
        assert not t.closestPair((0, 0, 0), 4.0)
        arr = BoundedSortedArray(5)
        assert t.kClosestPairs((0, 0, 0), arr, 10.0) == 1
        assert t.kClosestPairs((0, 0, 0), arr, 1.0) == 0
        assert t.kClosestPairs((0, 0, 0), arr) == 2

    def test_clear_set(self):
        t = KDTree([(0, 0, 0), (1, 0, 0)])
        arr = BoundedSortedArray(3)
        t.kClosestPairs((0, 0, 0), arr)
        assert t.kClosestPairs((0, 0, 0), arr, clear_set=False) == 3
        assert t.kClosestPairs((0, 0, 0), arr) == 2

    def test_k_closest_needs_array(self):
        t = KDTree([(0, 0, 0)])
        with pytest.raises(TypeError):
            t.kClosestPairs((0, 0, 0), [])

    def test_ray_closest_pair(self):
        random.seed(11)
        pts = randomPoints(300)
        prims = [Point(p) for p in pts]
        t = KDTree(pts)
        for i in range(50):
            ray = randomRay()
            ds = [dist(*p.closest_points_to_ray(ray)) for p in prims]
            j = int(np.argmin(ds))
            pair = t.closestPair(ray, get_closest_points=True)
            assert pair.target_index == j
            assert math.isclose(pair.distance, ds[j], rel_tol=1e-9, abs_tol=1e-12)
            q, p = prims[j].closest_points_to_ray(ray)
            assert math.isclose(dist(pair.query_point, q), 0.0, abs_tol=1e-9)

    def test_ray_closest_triangle(self):
        random.seed(12)
        tris = randomTriangles(100)
        t = KDTree(tris)
        for i in range(30):
            ray = randomRay()
            ds = [dist(*tr.closest_points_to_ray(ray)) for tr in tris]
            pair = t.closestPair(ray)
            assert math.isclose(pair.distance, min(ds), rel_tol=1e-9, abs_tol=1e-12)

    def test_l1_metric(self):
        random.seed(13)
        pts = randomPoints(400)
        t = KDTree(pts)
        a = np.array(pts)
        arr = BoundedSortedArray(4)
        m = MetricL1()
        for q in randomPoints(30):
            d = np.sum(np.abs(a - np.array(q)), axis=1)
            assert t.closestElement(q, metric=m) == int(np.argmin(d))
            t.kClosestPairs(q, arr, metric=m)
            assert [p.target_index for p in arr] == [int(i) for i in np.argsort(d)[:4]]
            assert math.isclose(arr[0].distance, float(np.min(d)))

    def test_l1_rejects_triangles(self):
        t = KDTree([Triangle((0, 0, 0), (1, 0, 0), (0, 1, 0))])
        with pytest.raises(TypeError):
            t.closestElement((0, 0, 5), metric=MetricL1())

    def test_pruning(self):
        random.seed(14)
        t = KDTree(randomPoints(2000))
        m = CountingMetric()
        t.closestElement((1, 2, 3), metric=m)
        assert 0 < m.calls < 200
        m.calls = 0
        t.kClosestPairs((1, 2, 3), BoundedSortedArray(5), metric=m)
        assert 0 < m.calls < 300

    def test_overestimating_bound_gives_wrong_answers(self):
        random.seed(15)
        pts = randomPoints(1000)
        t = KDTree(pts, leaf_size=2)
        good = MetricL2()
        bad = FarCornerMetric()
        wrong = 0
        for q in randomPoints(100):
            right = t.closestElement(q, metric=good)
            if t.closestElement(q, metric=bad) != right:
                wrong += 1
        assert wrong > 0
