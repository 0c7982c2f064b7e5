"""Small vector and quaternion helpers.

Vectors are numpy arrays of three floats. Quaternions are numpy arrays of
four floats in (w, x, y, z) order.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

_EPSILON = float(np.finfo(np.float32).eps)


def _vec(v: Sequence[float]) -> np.ndarray:
    return np.asarray(v, dtype=float)


def normalize(v: Sequence[float]) -> np.ndarray:
    """Return ``v`` scaled to unit length (NaN for a zero vector)."""
    arr = _vec(v)
    with np.errstate(invalid="ignore", divide="ignore"):
        return arr / np.linalg.norm(arr)


def quat_to_mat3(q: Sequence[float]) -> np.ndarray:
    """Return the rotation matrix of unit quaternion ``q`` (columns are the rotated axes)."""
    w, x, y, z = _vec(q)
    return np.array(
        [
            [1.0 - 2.0 * (y * y + z * z), 2.0 * (x * y - w * z), 2.0 * (x * z + w * y)],
            [2.0 * (x * y + w * z), 1.0 - 2.0 * (x * x + z * z), 2.0 * (y * z - w * x)],
            [2.0 * (x * z - w * y), 2.0 * (y * z + w * x), 1.0 - 2.0 * (x * x + y * y)],
        ]
    )


def quat_inverse(q: Sequence[float]) -> np.ndarray:
    """Return the multiplicative inverse of ``q``."""
    arr = _vec(q)
    conj = np.array([arr[0], -arr[1], -arr[2], -arr[3]])
    return conj / float(np.dot(arr, arr))


def quat_mul(a: Sequence[float], b: Sequence[float]) -> np.ndarray:
    """Return the Hamilton product ``a * b`` (apply ``b`` first, then ``a``)."""
    aw, ax, ay, az = _vec(a)
    bw, bx, by, bz = _vec(b)
    return np.array(
        [
            aw * bw - ax * bx - ay * by - az * bz,
            aw * bx + ax * bw + ay * bz - az * by,
            aw * by - ax * bz + ay * bw + az * bx,
            aw * bz + ax * by - ay * bx + az * bw,
        ]
    )


def quat_rotate(q: Sequence[float], v: Sequence[float]) -> np.ndarray:
    """Rotate vector ``v`` by unit quaternion ``q``."""
    return quat_to_mat3(q) @ _vec(v)


def angle_axis(angle: float, axis: Sequence[float]) -> np.ndarray:
    """Return the quaternion rotating by ``angle`` radians about ``axis``."""
    half = 0.5 * angle
    return np.concatenate(([math.cos(half)], _vec(axis) * math.sin(half)))


def rotation_between(a: Sequence[float], b: Sequence[float]) -> np.ndarray:
    """Return the shortest-arc quaternion taking unit vector ``a`` to unit vector ``b``."""
    orig = _vec(a)
    dest = _vec(b)
    cos_theta = float(np.dot(orig, dest))

    if cos_theta >= 1.0 - _EPSILON:
        return np.array([1.0, 0.0, 0.0, 0.0])

    if cos_theta < -1.0 + _EPSILON:
        axis = np.cross([0.0, 0.0, 1.0], orig)
        if float(np.dot(axis, axis)) < _EPSILON:
            axis = np.cross([1.0, 0.0, 0.0], orig)
        return angle_axis(math.pi, normalize(axis))

    axis = np.cross(orig, dest)
    s = math.sqrt((1.0 + cos_theta) * 2.0)
    return np.concatenate(([0.5 * s], axis / s))