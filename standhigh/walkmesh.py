"""Walking on triangle meshes.

A position on a walk mesh is a triangle plus barycentric weights. By
convention, a point on an edge has its indices arranged so that the
third weight is zero.

Walk mesh files are chunk files holding ``p...`` (positions), ``n...``
(normals), ``tri0`` (triangles), ``str0`` (names) and ``idxA`` (an index
of named sub-meshes).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from standhigh.chunks import read_chunk
from standhigh.vecmath import normalize, rotation_between

logger = logging.getLogger(__name__)

NO_INDEX = 0xFFFFFFFF
_EDGE_EPSILON = 0.000001

_VEC3_FORMAT = "<3f"
_TRIANGLE_FORMAT = "<3I"
_INDEX_FORMAT = "<6I"

Indices = tuple[int, int, int]


def _vec3(values: Sequence[float]) -> np.ndarray:
    return np.array(values, dtype=float).reshape(3)


@dataclass
class WalkPoint:
    """A triangle (CCW vertex indices) and barycentric weights on it."""

    indices: Indices = (NO_INDEX, NO_INDEX, NO_INDEX)
    weights: np.ndarray = field(default_factory=lambda: np.full(3, math.nan))

    def __post_init__(self) -> None:
        self.indices = tuple(int(i) for i in self.indices)
        self.weights = _vec3(self.weights)


def barycentric_weights(a, b, c, pt) -> np.ndarray:
    """Project ``pt`` onto the plane of triangle ``a, b, c`` and return its barycentric weights."""
    a, b, c, pt = (_vec3(v) for v in (a, b, c, pt))
    n = normalize(np.cross(b - a, c - a))
    proj_pt = pt - float(np.dot(pt - a, n)) * n

    v0, v1, v2 = b - a, c - a, proj_pt - a
    d00 = float(np.dot(v0, v0))
    d01 = float(np.dot(v0, v1))
    d11 = float(np.dot(v1, v1))
    d20 = float(np.dot(v2, v0))
    d21 = float(np.dot(v2, v1))
    denom = d00 * d11 - d01 * d01
    v = (d11 * d20 - d01 * d21) / denom
    w = (d00 * d21 - d01 * d20) / denom
    return np.array([1.0 - v - w, v, w])


class WalkMesh:
    """A triangle mesh that positions can walk across."""

    def __init__(self, vertices, normals, triangles) -> None:
        self.vertices: list[np.ndarray] = [_vec3(v) for v in vertices]
        self.normals: list[np.ndarray] = [_vec3(n) for n in normals]
        self.triangles: list[Indices] = [tuple(int(i) for i in tri) for tri in triangles]

        # maps each directed edge (a, b) to the third vertex of its triangle:
        self.next_vertex: dict[tuple[int, int], int] = {}
        for x, y, z in self.triangles:
            for edge, opposite in (((x, y), z), ((y, z), x), ((z, x), y)):
                if edge in self.next_vertex:
                    raise ValueError(f"edge {edge} is used by more than one triangle")
                self.next_vertex[edge] = opposite

        for tri in self.triangles:
            out = self._triangle_normal(tri)
            if not all(float(np.dot(out, self.normals[i])) > 0.1 for i in tri):
                raise ValueError(
                    f"vertex normals of triangle {tri} disagree with its geometric normal"
                )

    def _triangle_normal(self, indices: Indices) -> np.ndarray:
        a, b, c = (self.vertices[i] for i in indices)
        return normalize(np.cross(b - a, c - a))

    def nearest_walk_point(self, world_point) -> WalkPoint:
        """Return the point on the mesh closest to ``world_point``."""
        if not self.triangles:
            raise ValueError("Cannot start on an empty walkmesh")
        target = _vec3(world_point)

        closest = WalkPoint()
        closest_dis2 = math.inf

        for tri in self.triangles:
            a, b, c = (self.vertices[i] for i in tri)
            coords = barycentric_weights(a, b, c, target)

            if (coords >= 0.0).all():
                diff = target - self.to_world_point(WalkPoint(tri, coords))
                dis2 = float(np.dot(diff, diff))
                if dis2 < closest_dis2:
                    closest_dis2 = dis2
                    closest = WalkPoint(tri, coords)
                continue

            x, y, z = tri
            for ai, bi, ci in ((x, y, z), (y, z, x), (z, x, y)):
                ea, eb = self.vertices[ai], self.vertices[bi]
                along = float(np.dot(target - ea, eb - ea))
                limit = float(np.dot(eb - ea, eb - ea))
                if along < 0.0:
                    pt, edge_coords = ea, (1.0, 0.0, 0.0)
                elif along > limit:
                    pt, edge_coords = eb, (0.0, 1.0, 0.0)
                else:
                    amt = along / limit
                    pt = ea + (eb - ea) * amt
                    edge_coords = (1.0 - amt, amt, 0.0)
                diff = target - pt
                dis2 = float(np.dot(diff, diff))
                if dis2 < closest_dis2:
                    closest_dis2 = dis2
                    closest = WalkPoint((ai, bi, ci), edge_coords)

        return closest

    def walk_in_triangle(self, start: WalkPoint, step) -> tuple[WalkPoint, float]:
        """Take ``step`` (world space, projected to the triangle), stopping at an edge.

        Returns the end point and the fraction of the step taken; the fraction
        is 1.0 when the whole step stays in the triangle. When an edge is
        reached the end point's third weight is zero.
        """
        step = _vec3(step)
        a, b, c = (self.vertices[i] for i in start.indices)
        v0, v1 = b - a, c - a
        d00 = float(np.dot(v0, v0))
        d01 = float(np.dot(v0, v1))
        d11 = float(np.dot(v1, v1))
        s0 = float(np.dot(step, v0))
        s1 = float(np.dot(step, v1))
        denom = d00 * d11 - d01 * d01
        v = (d11 * s0 - d01 * s1) / denom
        w = (d00 * s1 - d01 * s0) / denom
        step_coords = np.array([0.0 - v - w, v, w])

        new_weights = start.weights + step_coords
        t = 1.0
        for k in range(3):
            if new_weights[k] <= 0.0:
                if step_coords[k] == 0.0:
                    t = 0.0
                else:
                    t = float(np.fmin(t, -1.0 * start.weights[k] / step_coords[k]))
        t = float(np.fmax(t, 0.0))

        weights = start.weights + step_coords * t
        indices = start.indices
        if abs(weights[0]) < _EDGE_EPSILON:
            indices = (indices[1], indices[2], indices[0])
            weights = np.array([weights[1], weights[2], weights[0]])
        elif abs(weights[1]) < _EDGE_EPSILON:
            indices = (indices[2], indices[0], indices[1])
            weights = np.array([weights[2], weights[0], weights[1]])
        if abs(weights[2]) < _EDGE_EPSILON:
            weights[2] = 0.0

        return WalkPoint(indices, weights), t

    def cross_edge(self, start: WalkPoint) -> Optional[tuple[WalkPoint, np.ndarray]]:
        """Cross the edge that ``start`` lies on.

        Returns the point on the neighbouring triangle and the quaternion
        taking the old triangle's plane to the new one, or ``None`` when the
        edge is a boundary.
        """
        if start.weights[2] != 0.0:
            raise ValueError("walk point is not on an edge (third weight must be zero)")

        x, y, _ = start.indices
        opposite = self.next_vertex.get((y, x))
        if opposite is None:
            return None

        end = WalkPoint(
            (y, x, opposite),
            (start.weights[1], start.weights[0], 0.0),
        )
        rotation = rotation_between(
            self._triangle_normal(start.indices), self._triangle_normal(end.indices)
        )
        return end, rotation

    def to_world_point(self, wp: WalkPoint) -> np.ndarray:
        """Return the world-space position of ``wp``."""
        return sum(
            (wt * self.vertices[i] for wt, i in zip(wp.weights, wp.indices)),
            np.zeros(3),
        )

    def to_world_smooth_normal(self, wp: WalkPoint) -> np.ndarray:
        """Return the interpolated vertex normal at ``wp``."""
        return normalize(
            sum(
                (wt * self.normals[i] for wt, i in zip(wp.weights, wp.indices)),
                np.zeros(3),
            )
        )

    def to_world_triangle_normal(self, wp: WalkPoint) -> np.ndarray:
        """Return the geometric normal of the triangle ``wp`` is on."""
        return self._triangle_normal(wp.indices)


class WalkMeshes:
    """A collection of named walk meshes."""

    def __init__(self, meshes: Optional[dict[str, WalkMesh]] = None) -> None:
        self.meshes: dict[str, WalkMesh] = dict(meshes or {})

    @classmethod
    def from_file(cls, filename: str) -> "WalkMeshes":
        """Load every walk mesh listed in the index of ``filename``."""
        with open(filename, "rb") as stream:
            vertices = read_chunk(stream, "p...", _VEC3_FORMAT)
            normals = read_chunk(stream, "n...", _VEC3_FORMAT)
            triangles = read_chunk(stream, "tri0", _TRIANGLE_FORMAT)
            names = read_chunk(stream, "str0", None)
            index = read_chunk(stream, "idxA", _INDEX_FORMAT)
            if stream.read(1):
                logger.warning("trailing data in walkmesh file '%s'", filename)

        if len(vertices) != len(normals):
            raise ValueError(f"Mis-matched position and normal sizes in '{filename}'")

        meshes: dict[str, WalkMesh] = {}
        for (name_begin, name_end, vertex_begin, vertex_end,
             triangle_begin, triangle_end) in index:
            if not name_begin <= name_end <= len(names):
                raise ValueError(f"Invalid name indices in index of '{filename}'")
            if not vertex_begin <= vertex_end <= len(vertices):
                raise ValueError(f"Invalid vertex indices in index of '{filename}'")
            if not triangle_begin <= triangle_end <= len(triangles):
                raise ValueError(f"Invalid triangle indices in index of '{filename}'")

            local_triangles = []
            for tri in triangles[triangle_begin:triangle_end]:
                if not all(vertex_begin <= i < vertex_end for i in tri):
                    raise ValueError(f"Invalid triangle in '{filename}'")
                local_triangles.append(tuple(i - vertex_begin for i in tri))

            name = names[name_begin:name_end].decode("utf-8", errors="replace")
            if name in meshes:
                raise ValueError(
                    f"WalkMesh with duplicated name '{name}' in '{filename}'"
                )
            meshes[name] = WalkMesh(
                vertices[vertex_begin:vertex_end],
                normals[vertex_begin:vertex_end],
                local_triangles,
            )
        return cls(meshes)

    def lookup(self, name: str) -> WalkMesh:
        """Return the walk mesh called ``name``."""
        try:
            return self.meshes[name]
        except KeyError:
            raise KeyError(f"WalkMesh with name '{name}' not found.") from None