"""Z-up trackball-style camera controls for inspecting scenes and meshes."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from standhigh.scene import Camera
from standhigh.vecmath import angle_axis, quat_mul, quat_rotate, quat_to_mat3

_PI = 3.1415926

MIN_RADIUS = 1e-1
MAX_RADIUS = 1e6


def _round_half_away(x: float) -> float:
    return math.copysign(math.floor(abs(x) + 0.5), x)


def _wrap_angle(angle: float) -> float:
    """Wrap ``angle`` into [-pi, pi]."""
    turns = angle / (2.0 * _PI)
    turns -= _round_half_away(turns)
    return turns * (2.0 * _PI)


def normalized_drag(xrel: float, yrel: float, window_size: Sequence[int]) -> tuple[float, float]:
    """Convert a mouse motion in pixels into motion in a [-a,a]x[-1,1] window.

    The y axis points up, so downward mouse motion gives a negative result.
    """
    width, height = float(window_size[0]), float(window_size[1])
    dx = xrel / width * 2.0
    dx *= height / width
    dy = yrel / height * -2.0
    return dx, dy


@dataclass
class OrbitCamera:
    """A camera orbiting ``target`` at ``radius``.

    ``azimuth`` is the angle counter-clockwise of the -y axis and
    ``elevation`` the angle above the ground, both in radians in [-pi, pi].
    """

    radius: float = 2.0
    azimuth: float = 0.3
    elevation: float = 0.2
    target: np.ndarray = field(default_factory=lambda: np.zeros(3))
    flip_x: bool = False

    def __post_init__(self) -> None:
        self.target = np.array(self.target, dtype=float).reshape(3)

    def begin_drag(self) -> None:
        """Start a drag; horizontal motion is reversed when the camera is upside-down."""
        self.flip_x = abs(self.elevation) > 0.5 * _PI

    def tumble(self, dx: float, dy: float) -> None:
        """Rotate around the target by a normalized drag."""
        self.azimuth -= 3.0 * dx * (-1.0 if self.flip_x else 1.0)
        self.elevation -= 3.0 * dy
        self.azimuth = _wrap_angle(self.azimuth)
        self.elevation = _wrap_angle(self.elevation)

    def pan(self, dx: float, dy: float, rotation: Sequence[float]) -> None:
        """Slide the target in the plane of a camera with the given rotation."""
        frame = quat_to_mat3(rotation)
        self.target = self.target - (
            frame[:, 0] * (dx * self.radius) + frame[:, 1] * (dy * self.radius)
        )

    def dolly(self, wheel: float) -> None:
        """Move towards (positive ``wheel``) or away from the target."""
        self.radius *= math.pow(0.5, 0.1 * wheel)
        self.radius = min(MAX_RADIUS, max(MIN_RADIUS, self.radius))

    def apply_to(self, camera: Camera, drawable_size: Sequence[int]) -> None:
        """Place ``camera`` according to these controls and set its aspect."""
        rotation = quat_mul(
            angle_axis(self.azimuth, (0.0, 0.0, 1.0)),
            angle_axis(0.5 * _PI - self.elevation, (1.0, 0.0, 0.0)),
        )
        transform = camera.transform
        transform.rotation = rotation
        transform.position = self.target + self.radius * quat_rotate(rotation, (0.0, 0.0, 1.0))
        transform.scale = np.ones(3)
        camera.aspect = float(drawable_size[0]) / float(drawable_size[1])