"""A hierarchy of transforms with attached drawables, cameras and lights.

Scenes can be loaded from scene files made of tagged binary chunks:
``str0`` (names), ``xfh0`` (transform hierarchy), ``msh0`` (meshes),
``cam0`` (cameras) and ``lmp0`` (lamps).
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, field, replace
from typing import BinaryIO, Callable, Optional, Sequence

import numpy as np

from standhigh.chunks import read_chunk
from standhigh.vecmath import quat_inverse, quat_to_mat3

logger = logging.getLogger(__name__)

NO_INDEX = 0xFFFFFFFF
GL_TRIANGLES = 0x0004
GL_TEXTURE_2D = 0x0DE1
TEXTURE_COUNT = 4

_PI = 3.1415926

_HIERARCHY_FORMAT = "<3I3f4f3f"
_MESH_FORMAT = "<3I"
_CAMERA_FORMAT = "<I4s3f"
_LIGHT_FORMAT = "<Ic3B3f"


class SceneFormatError(ValueError):
    """Raised when a scene file holds inconsistent data."""


def _pad(m34: np.ndarray) -> np.ndarray:
    """Extend a 3x4 affine matrix to 4x4 with a (0, 0, 0, 1) row."""
    return np.vstack([m34, [0.0, 0.0, 0.0, 1.0]])


def _vec3(values: Sequence[float]) -> np.ndarray:
    return np.array(values, dtype=float).reshape(3)


@dataclass(eq=False)
class Transform:
    """A position, rotation and scale, optionally relative to a parent."""

    name: str = ""
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0]))
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))
    parent: Optional["Transform"] = None

    def __post_init__(self) -> None:
        self.position = _vec3(self.position)
        self.rotation = np.array(self.rotation, dtype=float).reshape(4)
        self.scale = _vec3(self.scale)

    def make_local_to_parent(self) -> np.ndarray:
        """Return the 3x4 matrix translate * rotate * scale."""
        rot = quat_to_mat3(self.rotation)
        return np.column_stack([rot * self.scale, self.position])

    def make_parent_to_local(self) -> np.ndarray:
        """Return the 3x4 inverse of :meth:`make_local_to_parent`.

        Zero scale components give a degenerate matrix rather than NaNs.
        """
        inv_scale = np.array([0.0 if s == 0.0 else 1.0 / s for s in self.scale])
        inv_rot = quat_to_mat3(quat_inverse(self.rotation)) * inv_scale[:, None]
        return np.column_stack([inv_rot, inv_rot @ -self.position])

    def make_local_to_world(self) -> np.ndarray:
        """Return the 3x4 matrix from this transform's space to world space."""
        if self.parent is None:
            return self.make_local_to_parent()
        return self.parent.make_local_to_world() @ _pad(self.make_local_to_parent())

    def make_world_to_local(self) -> np.ndarray:
        """Return the 3x4 matrix from world space to this transform's space."""
        if self.parent is None:
            return self.make_parent_to_local()
        return self.make_parent_to_local() @ _pad(self.parent.make_world_to_local())


@dataclass
class TextureInfo:
    """A texture object and the target it binds to."""

    texture: int = 0
    target: int = GL_TEXTURE_2D


@dataclass
class Pipeline:
    """Everything needed to draw a range of vertices with a shader program."""

    program: int = 0
    vao: int = 0
    type: int = GL_TRIANGLES
    start: int = 0
    count: int = 0
    OBJECT_TO_CLIP_mat4: int = NO_INDEX
    OBJECT_TO_LIGHT_mat4x3: int = NO_INDEX
    NORMAL_TO_LIGHT_mat3: int = NO_INDEX
    set_uniforms: Optional[Callable[[], None]] = None
    textures: list[TextureInfo] = field(
        default_factory=lambda: [TextureInfo() for _ in range(TEXTURE_COUNT)]
    )

    def clone(self) -> "Pipeline":
        return replace(self, textures=[replace(t) for t in self.textures])


def _require_transform(transform: Optional[Transform]) -> None:
    if transform is None:
        raise ValueError("a transform is required")


@dataclass(eq=False)
class Drawable:
    """Drawing data attached to a transform."""

    transform: Transform
    pipeline: Pipeline = field(default_factory=Pipeline)

    def __post_init__(self) -> None:
        _require_transform(self.transform)


@dataclass(eq=False)
class Camera:
    """A perspective camera looking along its transform's -z axis."""

    transform: Transform
    fovy: float = math.radians(60.0)
    aspect: float = 1.0
    near: float = 0.01

    def __post_init__(self) -> None:
        _require_transform(self.transform)

    def make_projection(self) -> np.ndarray:
        """Return the 4x4 infinite-far-plane perspective projection matrix."""
        tan_half = math.tan(0.5 * self.fovy)
        proj = np.zeros((4, 4))
        proj[0, 0] = 1.0 / (self.aspect * tan_half)
        proj[1, 1] = 1.0 / tan_half
        proj[2, 2] = -1.0
        proj[3, 2] = -1.0
        proj[2, 3] = -2.0 * self.near
        return proj


class LightType(enum.Enum):
    POINT = "p"
    HEMISPHERE = "h"
    SPOT = "s"
    DIRECTIONAL = "d"


@dataclass(eq=False)
class Light:
    """Light data attached to a transform; directed lights point along -z."""

    transform: Transform
    type: LightType = LightType.POINT
    energy: np.ndarray = field(default_factory=lambda: np.ones(3))
    spot_fov: float = math.radians(45.0)

    def __post_init__(self) -> None:
        _require_transform(self.transform)
        self.energy = _vec3(self.energy)


OnDrawable = Callable[["Scene", Transform, str], None]


class Scene:
    """Transforms plus the drawables, cameras and lights attached to them."""

    def __init__(self) -> None:
        self.transforms: list[Transform] = []
        self.drawables: list[Drawable] = []
        self.cameras: list[Camera] = []
        self.lights: list[Light] = []
        self.loaded_names: bytes = b""
        self.loaded_transforms: list[Transform] = []

    @classmethod
    def from_file(cls, filename: str, on_drawable: Optional[OnDrawable] = None) -> "Scene":
        """Create a scene and load ``filename`` into it."""
        scene = cls()
        scene.load(filename, on_drawable)
        return scene

    def load(self, filename: str, on_drawable: Optional[OnDrawable] = None) -> None:
        """Add the contents of a scene file to this scene.

        ``on_drawable(scene, transform, mesh_name)`` is called for each mesh
        entry. Raises :class:`SceneFormatError` on inconsistent data.
        """
        with open(filename, "rb") as stream:
            names = read_chunk(stream, "str0", None)
            hierarchy = read_chunk(stream, "xfh0", _HIERARCHY_FORMAT)
            meshes = read_chunk(stream, "msh0", _MESH_FORMAT)
            loaded_cameras = read_chunk(stream, "cam0", _CAMERA_FORMAT)
            loaded_lights = read_chunk(stream, "lmp0", _LIGHT_FORMAT)

            def name_at(begin: int, end: int) -> Optional[str]:
                if begin <= end <= len(names):
                    return names[begin:end].decode("utf-8", errors="replace")
                return None

            loaded: list[Transform] = []
            for entry in hierarchy:
                parent, name_begin, name_end = entry[0:3]
                px, py, pz, qx, qy, qz, qw, sx, sy, sz = entry[3:]
                transform = Transform()
                self.transforms.append(transform)
                if parent != NO_INDEX:
                    if parent >= len(loaded):
                        raise SceneFormatError(
                            f"scene file '{filename}' did not contain transforms "
                            "in topological-sort order."
                        )
                    transform.parent = loaded[parent]
                name = name_at(name_begin, name_end)
                if name is None:
                    raise SceneFormatError(
                        f"scene file '{filename}' contains hierarchy entry with invalid name indices"
                    )
                transform.name = name
                transform.position = np.array([px, py, pz], dtype=float)
                transform.rotation = np.array([qw, qx, qy, qz], dtype=float)
                transform.scale = np.array([sx, sy, sz], dtype=float)
                loaded.append(transform)

            for index, name_begin, name_end in meshes:
                if index >= len(loaded):
                    raise SceneFormatError(
                        f"scene file '{filename}' contains mesh entry with invalid "
                        f"transform index ({index})"
                    )
                name = name_at(name_begin, name_end)
                if name is None:
                    raise SceneFormatError(
                        f"scene file '{filename}' contains mesh entry with invalid name indices"
                    )
                if on_drawable is not None:
                    on_drawable(self, loaded[index], name)

            for index, kind, data, clip_near, _clip_far in loaded_cameras:
                if index >= len(loaded):
                    raise SceneFormatError(
                        f"scene file '{filename}' contains camera entry with invalid "
                        f"transform index ({index})"
                    )
                kind_text = kind.decode("latin-1")
                if kind_text != "pers":
                    logger.warning(
                        "Ignoring non-perspective camera (%s) stored in file.", kind_text
                    )
                    continue
                self.cameras.append(
                    Camera(loaded[index], fovy=data / 180.0 * _PI, near=clip_near)
                )

            for index, kind, r, g, b, energy, _distance, fov in loaded_lights:
                if index >= len(loaded):
                    raise SceneFormatError(
                        f"scene file '{filename}' contains lamp entry with invalid "
                        f"transform index ({index})"
                    )
                kind_text = kind.decode("latin-1")
                try:
                    light_type = LightType(kind_text)
                except ValueError:
                    logger.warning(
                        "Ignoring unrecognized lamp type (%s) stored in file.", kind_text
                    )
                    continue
                self.lights.append(
                    Light(
                        loaded[index],
                        type=light_type,
                        energy=np.array([r, g, b], dtype=float) / 255.0 * energy,
                        spot_fov=fov / 180.0 * _PI,
                    )
                )

            self.load_extra(stream, names, loaded)

            if stream.read(1):
                logger.warning("trailing data in scene file '%s'", filename)

    def load_extra(self, stream: BinaryIO, names: bytes, transforms: list[Transform]) -> None:
        """Hook for reading extra chunks after the standard ones.

        The default reads nothing from ``stream``; it keeps the string table
        and the loaded transforms so that subclasses and callers can look
        names up later. Subclasses may override it to read further chunks.
        """
        self.loaded_names = bytes(names)
        self.loaded_transforms = list(transforms)

    def set(self, other: "Scene") -> dict[Optional[Transform], Optional[Transform]]:
        """Make this scene a copy of ``other`` and return the old-to-new transform map."""
        mapping: dict[Optional[Transform], Optional[Transform]] = {None: None}
        transforms: list[Transform] = []
        for old in other.transforms:
            new = Transform(
                name=old.name,
                position=old.position.copy(),
                rotation=old.rotation.copy(),
                scale=old.scale.copy(),
                parent=old.parent,
            )
            mapping[old] = new
            transforms.append(new)
        for transform in transforms:
            transform.parent = mapping[transform.parent]

        drawables = [
            replace(d, transform=mapping[d.transform], pipeline=d.pipeline.clone())
            for d in other.drawables
        ]
        cameras = [replace(c, transform=mapping[c.transform]) for c in other.cameras]
        lights = [
            replace(light, transform=mapping[light.transform], energy=light.energy.copy())
            for light in other.lights
        ]

        self.transforms = transforms
        self.drawables = drawables
        self.cameras = cameras
        self.lights = lights
        return mapping

    def copy(self) -> "Scene":
        """Return a deep copy of this scene with all references fixed up."""
        duplicate = type(self)()
        duplicate.set(self)
        return duplicate