# standhigh

The non-rendering core of a small 3D game, usable on its own from Python.

- **Chunked asset files** (`standhigh.chunks`): each chunk is a four-byte
  magic tag, a little-endian 32-bit byte count, and then tightly packed
  fixed-size records. `read_chunk(stream, magic, item_format)` returns a
  list of unpacked tuples for a `struct` format, or raw bytes when the
  format is `None`. `write_chunk(stream, magic, items, item_format)` writes
  one chunk. `ChunkError` is raised for a short read, the wrong magic tag,
  or a size that is not a whole number of records.
- **Scenes** (`standhigh.scene`): a hierarchy of `Transform`s (position,
  rotation quaternion in w, x, y, z order, scale, optional parent), with
  `Drawable`, `Camera` and `Light` objects attached to them. A `Transform`
  builds its local-to-parent, parent-to-local, local-to-world and
  world-to-local matrices as 3x4 numpy arrays. A `Camera` builds a 4x4
  infinite perspective projection. `Scene.from_file` loads a scene file
  (chunks `str0`, `xfh0`, `msh0`, `cam0` and `lmp0`) and calls your
  `on_drawable` callback once for each mesh entry. `Scene.copy` makes a
  deep copy with every transform reference remapped. `Scene.set` does the
  same into an existing scene and returns the old-to-new transform mapping.
  A malformed file raises `SceneFormatError`.
- **Walk meshes** (`standhigh.walkmesh`): a `WalkPoint` is a position on a
  triangle, given as barycentric weights. `WalkMesh` finds the nearest walk
  point, steps within a triangle and stops at its edges, crosses an edge
  into the neighbouring triangle together with the rotation between the
  two triangle planes, and converts points back to world positions and
  normals. `WalkMeshes.from_file` loads a file of named meshes (chunks
  `p...`, `n...`, `tri0`, `str0`, `idxA`), and `lookup` returns one of
  them by name.
- **Audio mixing** (`standhigh.sound`, `standhigh.wav`): mono 48 kHz
  `Sample`s, 2D (panned) and 3D (positioned relative to a `Listener`)
  playback, smoothly ramped volume, pan and position (`Ramp`), and a
  `Mixer` whose `mix` method returns each block of stereo output as a
  float32 array of shape `(1024, 2)`. `load_wav` reads an 8, 16, 24 or
  32-bit PCM or float WAV file and converts it to 48 kHz float32 mono.
- **Helpers**: `standhigh.pngio` loads and saves RGBA PNG images with the
  origin at the upper or lower left (`Origin`). `standhigh.data_path`
  joins a suffix onto the directory of the running program.
  `standhigh.orbit` provides `OrbitCamera`, a z-up trackball camera
  (`begin_drag`, `tumble`, `pan`, `dolly`, `apply_to`), and
  `normalized_drag` for turning mouse motion in pixels into
  window-relative deltas.

## Loading a scene

```python
from standhigh.scene import Scene

def on_drawable(scene, transform, mesh_name):
    print("mesh", mesh_name, "at", transform.name)

scene = Scene.from_file("level.scene", on_drawable)

for transform in scene.transforms:
    print(transform.name, transform.make_local_to_world())

for camera in scene.cameras:
    print("camera fovy (radians):", camera.fovy)
```

Transforms must appear in the file in topological order, with each parent
before its children. Non-perspective cameras and unknown lamp types are
skipped, and a warning is logged. By default `load_extra` keeps the string
table and the loaded transforms in `loaded_names` and `loaded_transforms`.
A subclass of `Scene` can override it to read further chunks that follow
the standard ones.

## Walking on a walk mesh

```python
from standhigh.walkmesh import WalkMeshes

meshes = WalkMeshes.from_file("level.w")
walkmesh = meshes.lookup("WalkMesh")

point = walkmesh.nearest_walk_point((0.0, 0.0, 1.0))
print(walkmesh.to_world_point(point))
print(walkmesh.to_world_smooth_normal(point))

end, fraction = walkmesh.walk_in_triangle(point, (0.1, 0.0, 0.0))
if fraction < 1.0:
    crossed = walkmesh.cross_edge(end)
    if crossed is not None:
        end, rotation = crossed
```

`walk_in_triangle` returns the end point and the fraction of the step it
took, which is 1.0 when the whole step stays inside the triangle. By
convention, a point on an edge has a third weight of zero. `cross_edge`
carries such a point into the adjacent triangle and returns it with the
rotation quaternion between the two triangle planes. At a boundary edge
it returns `None`.

## Mixing audio

```python
from standhigh.sound import Mixer, Sample

mixer = Mixer()
beep = Sample.from_file("beep.wav")

playing = mixer.play(beep, 1.0, 0.0)   # volume, pan (-1 = left, 1 = right)
playing.set_pan(0.5, 0.25)             # ramp to the new pan over 0.25 s
block = mixer.mix()                    # one block of stereo output
playing.stop(0.1)                      # fade out, then remove
```

Samples played with `play_3d` or `loop_3d` are panned and attenuated by
their distance from `mixer.listener`. The attenuation halves at the
sample's half-volume radius. `stop_all_samples` fades out everything that
is playing, and `set_volume` ramps the global volume.

## What this package does not do

- It draws nothing. There is no window, no OpenGL rendering and no scene
  or mesh viewer. `Pipeline` and `Drawable` only hold the values a
  renderer would use.
- It does not play sound through an audio device. `Mixer.mix` returns
  sample blocks, and sending them to an output is up to you.
- `Sample.from_file` loads only `.wav` files. Opus files are not supported.
- There is no command-line program.