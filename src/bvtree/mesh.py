"""Minimal indexed triangle mesh used as source geometry for trees."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from bvtree.geom import AABB, Vec3, add, cross, mag, scale3, sub, vec3
from bvtree.primitives import Triangle, Vertex

Face = Tuple[int, int, int]


class TriangleMesh:
    """Vertex positions plus triangular faces indexing into them.

    Face and vertex indices are stable handles: the trees built from a
    mesh report them, and :meth:`face` / :meth:`vertex` map them back.
    """

    def __init__(self, vertices: Iterable[Sequence[float]] = (),
                 faces: Iterable[Sequence[int]] = (), name: Optional[str] = None):
        self.name = name
        self.vertices: List[Vec3] = [vec3(v) for v in vertices]
        self.faces: List[Face] = []
        for f in faces:
            self.add_face(f)

    def __repr__(self):
        return 'TriangleMesh(name={!r}, vertices={}, faces={})'.format(
            self.name, len(self.vertices), len(self.faces))

    def is_empty(self) -> bool:
        return not self.faces and not self.vertices

    def num_vertices(self) -> int:
        return len(self.vertices)

    def num_faces(self) -> int:
        return len(self.faces)

    def add_vertex(self, p: Sequence[float]) -> int:
        self.vertices.append(vec3(p))
        return len(self.vertices) - 1

    def set_vertex(self, i: int, p: Sequence[float]) -> None:
        if i < 0 or i >= len(self.vertices):
            raise IndexError(f'vertex index out of range: {i}')
        self.vertices[i] = vec3(p)

    def add_face(self, face: Sequence[int]) -> int:
        if len(face) != 3:
            raise ValueError(f'faces must be triangles, got {face}')
        f = (int(face[0]), int(face[1]), int(face[2]))
        for i in f:
            if i < 0 or i >= len(self.vertices):
                raise IndexError(f'face {f} references missing vertex {i}')
        self.faces.append(f)
        return len(self.faces) - 1

    def face(self, i: int) -> Face:
        if i < 0 or i >= len(self.faces):
            raise IndexError(f'face index out of range: {i}')
        return self.faces[i]

    def vertex(self, i: int) -> Vec3:
        if i < 0 or i >= len(self.vertices):
            raise IndexError(f'vertex index out of range: {i}')
        return self.vertices[i]

    def face_vertices(self, i: int) -> Tuple[Vec3, Vec3, Vec3]:
        a, b, c = self.face(i)
        return self.vertices[a], self.vertices[b], self.vertices[c]

    def triangles(self) -> Iterator[Tuple[int, Triangle]]:
        """Yield ``(face_index, Triangle)`` for every face."""
        for i, (a, b, c) in enumerate(self.faces):
            yield i, Triangle(self.vertices[a], self.vertices[b], self.vertices[c])

    def used_vertices(self) -> List[int]:
        """Indices of vertices referenced by at least one face."""
        used = set()
        for f in self.faces:
            used.update(f)
        return sorted(used)

    def vertex_normals(self) -> List[Optional[Vec3]]:
        """Area-weighted unit vertex normals (``None`` where undefined)."""
        acc = [(0.0, 0.0, 0.0)] * len(self.vertices)
        for a, b, c in self.faces:
            va, vb, vc = self.vertices[a], self.vertices[b], self.vertices[c]
            # unnormalised face normal, length is twice the face area
            n = cross(sub(vb, va), sub(vc, va))
            for i in (a, b, c):
                acc[i] = add(acc[i], n)
        normals: List[Optional[Vec3]] = []
        for n in acc:
            m = mag(n)
            normals.append(scale3(n, 1.0 / m) if m > 0.0 else None)
        return normals

    def vertex_elements(self) -> Iterator[Tuple[int, Vertex]]:
        """Yield ``(vertex_index, Vertex)`` for vertices used by faces."""
        normals = self.vertex_normals()
        for i in self.used_vertices():
            yield i, Vertex(self.vertices[i], normals[i])

    def bbox(self) -> AABB:
        return AABB.from_points(self.vertices)


__all__ = ['Face', 'TriangleMesh']
