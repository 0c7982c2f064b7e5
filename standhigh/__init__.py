"""Scene hierarchy, walk meshes, chunked asset files, PNG helpers and audio mixing for a small 3D game."""

__version__ = "0.1.0"