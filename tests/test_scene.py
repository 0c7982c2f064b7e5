import io
import math

import numpy as np
import pytest

from standhigh.chunks import ChunkError, write_chunk
from standhigh.scene import (
    Camera,
    Drawable,
    Light,
    LightType,
    Pipeline,
    Scene,
    SceneFormatError,
    Transform,
)
from standhigh.vecmath import angle_axis

NO_PARENT = 0xFFFFFFFF


def _pad(m):
    return np.vstack([m, [0.0, 0.0, 0.0, 1.0]])


def _write_scene(path, names, hierarchy, meshes=(), cameras=(), lights=(), extra=b""):
    buf = io.BytesIO()
    write_chunk(buf, "str0", names, None)
    write_chunk(buf, "xfh0", hierarchy, "<3I3f4f3f")
    write_chunk(buf, "msh0", meshes, "<3I")
    write_chunk(buf, "cam0", cameras, "<I4s3f")
    write_chunk(buf, "lmp0", lights, "<Ic3B3f")
    path.write_bytes(buf.getvalue() + extra)
    return str(path)


def _entry(parent, nb, ne, pos=(0, 0, 0), quat_xyzw=(0, 0, 0, 1), scale=(1, 1, 1)):
    return (parent, nb, ne, *pos, *quat_xyzw, *scale)


@pytest.fixture
def scene_file(tmp_path):
    names = b"RootChildBox"
    hierarchy = [
        _entry(NO_PARENT, 0, 4, pos=(1.0, 2.0, 3.0)),
        _entry(0, 4, 9, pos=(0.0, 0.0, 1.0), scale=(2.0, 2.0, 2.0)),
    ]
    meshes = [(1, 9, 12)]
    cameras = [(0, b"pers", 90.0, 0.5, 100.0), (1, b"orth", 3.0, 0.1, 10.0)]
    lights = [(1, b"s", 255, 0, 255, 2.0, 10.0, 90.0), (0, b"x", 1, 1, 1, 1.0, 1.0, 1.0)]
    return _write_scene(tmp_path / "a.scene", names, hierarchy, meshes, cameras, lights)


def test_local_to_parent_roundtrip():
    t = Transform(
        position=[1.0, -2.0, 0.5],
        rotation=angle_axis(0.7, [0.0, 0.6, 0.8]),
        scale=[2.0, 0.5, 3.0],
    )
    product = _pad(t.make_local_to_parent()) @ _pad(t.make_parent_to_local())
    assert np.allclose(product, np.eye(4))


def test_identity_transform_matrix():
    t = Transform()
    assert np.allclose(t.make_local_to_parent(), np.hstack([np.eye(3), np.zeros((3, 1))]))


def test_world_matrices_through_hierarchy():
    root = Transform(position=[1.0, 0.0, 0.0], rotation=angle_axis(0.4, [0.0, 0.0, 1.0]))
    mid = Transform(parent=root, scale=[2.0, 2.0, 2.0], rotation=angle_axis(1.1, [1.0, 0.0, 0.0]))
    leaf = Transform(parent=mid, position=[0.0, 3.0, -1.0])
    l2w = _pad(leaf.make_local_to_world())
    w2l = _pad(leaf.make_world_to_local())
    assert np.allclose(l2w @ w2l, np.eye(4))
    expected = _pad(root.make_local_to_parent()) @ _pad(mid.make_local_to_parent()) @ _pad(
        leaf.make_local_to_parent()
    )
    assert np.allclose(l2w, expected)


def test_zero_scale_gives_finite_inverse():
    t = Transform(scale=[0.0, 1.0, 1.0])
    m = t.make_parent_to_local()
    assert np.all(np.isfinite(m))
    assert np.allclose(m[0, :3], 0.0)


def test_projection_structure():
    cam = Camera(Transform(), aspect=2.0, near=0.01)
    proj = cam.make_projection()
    assert proj[2, 2] == -1.0
    assert proj[3, 2] == -1.0
    assert proj[3, 3] == 0.0
    assert proj[2, 3] == pytest.approx(-2.0 * cam.near)
    assert proj[1, 1] == pytest.approx(2.0 * proj[0, 0])


def test_attachments_require_transform():
    with pytest.raises(ValueError):
        Drawable(None)
    with pytest.raises(ValueError):
        Camera(None)
    with pytest.raises(ValueError):
        Light(None)


def test_pipeline_defaults():
    p = Pipeline()
    assert p.OBJECT_TO_CLIP_mat4 == 0xFFFFFFFF
    assert len(p.textures) == 4
    assert all(t.texture == 0 for t in p.textures)


def test_load_hierarchy(scene_file):
    scene = Scene.from_file(scene_file)
    assert [t.name for t in scene.transforms] == ["Root", "Child"]
    root, child = scene.transforms
    assert root.parent is None
    assert child.parent is root
    assert np.allclose(root.position, [1.0, 2.0, 3.0])
    assert np.allclose(child.rotation, [1.0, 0.0, 0.0, 0.0])
    assert np.allclose(child.make_local_to_world()[:, 3], [1.0, 2.0, 4.0])


def test_load_cameras_and_lights(scene_file):
    scene = Scene.from_file(scene_file)
    assert len(scene.cameras) == 1
    cam = scene.cameras[0]
    assert cam.transform is scene.transforms[0]
    assert cam.fovy == pytest.approx(math.pi / 2, rel=1e-6)
    assert cam.near == pytest.approx(0.5)
    assert len(scene.lights) == 1
    light = scene.lights[0]
    assert light.type is LightType.SPOT
    assert light.transform is scene.transforms[1]
    assert np.allclose(light.energy, [2.0, 0.0, 2.0])


def test_on_drawable_callback(scene_file):
    seen = []

    def on_drawable(scene, transform, name):
        seen.append((transform.name, name))
        scene.drawables.append(Drawable(transform))

    scene = Scene.from_file(scene_file, on_drawable)
    assert seen == [("Child", "Box")]
    assert scene.drawables[0].transform is scene.transforms[1]


def test_load_extra_receives_stream(tmp_path):
    path = _write_scene(tmp_path / "b.scene", b"A", [_entry(NO_PARENT, 0, 1)], extra=b"XTRA")

    class Level(Scene):
        def load_extra(self, stream, names, transforms):
            self.extra = (stream.read(4), names, [t.name for t in transforms])

    level = Level.from_file(path)
    assert level.extra == (b"XTRA", b"A", ["A"])


def test_bad_topological_order(tmp_path):
    path = _write_scene(tmp_path / "c.scene", b"AB", [_entry(1, 0, 1), _entry(NO_PARENT, 1, 2)])
    with pytest.raises(SceneFormatError):
        Scene.from_file(path)


def test_bad_name_indices(tmp_path):
    path = _write_scene(tmp_path / "d.scene", b"AB", [_entry(NO_PARENT, 1, 5)])
    with pytest.raises(SceneFormatError):
        Scene.from_file(path)


def test_bad_mesh_transform(tmp_path):
    path = _write_scene(tmp_path / "e.scene", b"AB", [_entry(NO_PARENT, 0, 1)], meshes=[(3, 0, 1)])
    with pytest.raises(SceneFormatError):
        Scene.from_file(path)


def test_bad_camera_and_lamp_transform(tmp_path):
    cam_path = _write_scene(
        tmp_path / "f.scene", b"A", [_entry(NO_PARENT, 0, 1)], cameras=[(2, b"pers", 60.0, 0.1, 1.0)]
    )
    with pytest.raises(SceneFormatError):
        Scene.from_file(cam_path)
    lamp_path = _write_scene(
        tmp_path / "g.scene", b"A", [_entry(NO_PARENT, 0, 1)], lights=[(2, b"p", 1, 1, 1, 1.0, 1.0, 1.0)]
    )
    with pytest.raises(SceneFormatError):
        Scene.from_file(lamp_path)


def test_truncated_file(tmp_path):
    path = tmp_path / "h.scene"
    buf = io.BytesIO()
    write_chunk(buf, "str0", b"A", None)
    path.write_bytes(buf.getvalue())
    with pytest.raises(ChunkError):
        Scene.from_file(str(path))


def test_copy_remaps_references():
    scene = Scene()
    root = Transform(name="root")
    child = Transform(name="child", parent=root, position=[0.0, 1.0, 0.0])
    scene.transforms += [root, child]
    scene.drawables.append(Drawable(child))
    scene.cameras.append(Camera(root, aspect=1.5))
    scene.lights.append(Light(child, type=LightType.DIRECTIONAL))

    dup = scene.copy()
    new_root, new_child = dup.transforms
    assert new_root is not root and new_child is not child
    assert new_child.parent is new_root
    assert dup.drawables[0].transform is new_child
    assert dup.cameras[0].transform is new_root
    assert dup.cameras[0].aspect == 1.5
    assert dup.lights[0].transform is new_child
    assert dup.lights[0].type is LightType.DIRECTIONAL

    new_child.position[1] = 5.0
    assert child.position[1] == 1.0
    dup.drawables[0].pipeline.textures[0].texture = 7
    assert scene.drawables[0].pipeline.textures[0].texture == 0


def test_set_returns_mapping():
    source = Scene()
    t = Transform(name="only")
    source.transforms.append(t)
    target = Scene()
    mapping = target.set(source)
    assert mapping[None] is None
    assert mapping[t] is target.transforms[0]
    assert target.transforms[0].name == "only"