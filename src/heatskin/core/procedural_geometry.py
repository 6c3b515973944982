"""Procedural mesh and bone-chain builders for demos and tests.

Geometry builders return a :class:`Mesh`; the cylinder matches the vertex
layout of the common WebGL cylinder primitive (seam column duplicated, one
centre vertex per cap segment), so weights computed here line up with meshes
produced by such hosts.
"""

import math

import numpy as np
from numpy.typing import ArrayLike, NDArray

from heatskin.core.mesh import Mesh


def cylinder_geometry(
    radius_top: float = 1.0,
    radius_bottom: float = 1.0,
    height: float = 1.0,
    radial_segments: int = 32,
    height_segments: int = 1,
    open_ended: bool = False,
) -> Mesh:
    """Create a (possibly tapered) cylinder centred at the origin along +Y."""
    half = height / 2
    verts: list[tuple[float, float, float]] = []
    idxs: list[int] = []

    # Side: rows from top (v=0) to bottom (v=1)
    rows: list[list[int]] = []
    for iy in range(height_segments + 1):
        v = iy / height_segments
        radius = v * (radius_bottom - radius_top) + radius_top
        row = []
        for ix in range(radial_segments + 1):
            theta = ix / radial_segments * 2 * math.pi
            verts.append((radius * math.sin(theta), -v * height + half, radius * math.cos(theta)))
            row.append(len(verts) - 1)
        rows.append(row)

    for ix in range(radial_segments):
        for iy in range(height_segments):
            a = rows[iy][ix]
            b = rows[iy + 1][ix]
            c = rows[iy + 1][ix + 1]
            d = rows[iy][ix + 1]
            idxs.extend([a, b, d, b, c, d])

    if not open_ended:
        if radius_top > 0:
            _add_cap(verts, idxs, radius_top, half, radial_segments, top=True)
        if radius_bottom > 0:
            _add_cap(verts, idxs, radius_bottom, -half, radial_segments, top=False)

    pos = np.array(verts, dtype=np.float32).ravel()
    idx = np.array(idxs, dtype=np.uint32)
    return Mesh.from_buffers(pos, idx)


def _add_cap(
    verts: list[tuple[float, float, float]],
    idxs: list[int],
    radius: float,
    y: float,
    radial_segments: int,
    top: bool,
) -> None:
    center_start = len(verts)
    for _ in range(radial_segments):
        verts.append((0.0, y, 0.0))
    rim_start = len(verts)
    for ix in range(radial_segments + 1):
        theta = ix / radial_segments * 2 * math.pi
        verts.append((radius * math.sin(theta), y, radius * math.cos(theta)))

    for ix in range(radial_segments):
        c = center_start + ix
        i = rim_start + ix
        if top:
            idxs.extend([i, i + 1, c])
        else:
            idxs.extend([i + 1, i, c])


def make_box(width: float, height: float, depth: float) -> Mesh:
    """Create a closed box centred at the origin (24 verts, 12 tris).

    Dimensions along X, Y, Z respectively.
    """
    hw, hh, hd = width / 2, height / 2, depth / 2

    faces = [
        [(hw, -hh, -hd), (hw, hh, -hd), (hw, hh, hd), (hw, -hh, hd)],
        [(-hw, -hh, hd), (-hw, hh, hd), (-hw, hh, -hd), (-hw, -hh, -hd)],
        [(-hw, hh, -hd), (-hw, hh, hd), (hw, hh, hd), (hw, hh, -hd)],
        [(-hw, -hh, hd), (-hw, -hh, -hd), (hw, -hh, -hd), (hw, -hh, hd)],
        [(-hw, -hh, hd), (hw, -hh, hd), (hw, hh, hd), (-hw, hh, hd)],
        [(hw, -hh, -hd), (-hw, -hh, -hd), (-hw, hh, -hd), (hw, hh, -hd)],
    ]

    positions = []
    indices = []
    for corners in faces:
        base = len(positions)
        positions.extend(corners)
        indices.extend([base, base + 1, base + 2, base, base + 2, base + 3])

    pos = np.array(positions, dtype=np.float32).ravel()
    idx = np.array(indices, dtype=np.uint32)
    return Mesh.from_buffers(pos, idx)


def translate_mesh(mesh: Mesh, offset: ArrayLike) -> Mesh:
    """Return a copy of ``mesh`` moved by ``offset``."""
    moved = mesh.vertices + np.asarray(offset, dtype=np.float64)[np.newaxis, :]
    return Mesh.from_buffers(moved.ravel(), mesh.indices)


def merge_meshes(*meshes: Mesh) -> Mesh:
    """Concatenate meshes into one (disconnected components kept apart)."""
    positions = []
    indices = []
    base = 0
    for m in meshes:
        positions.append(m.positions)
        indices.append(m.indices.astype(np.int64) + base)
        base += m.vertex_count
    return Mesh.from_buffers(np.concatenate(positions), np.concatenate(indices))


def bone_chain_buffer(joints: ArrayLike) -> NDArray[np.float64]:
    """7-float bone buffer for a chain of consecutive joint positions.

    Bone ``i`` runs from ``joints[i]`` to ``joints[i + 1]``.
    """
    pts = np.asarray(joints, dtype=np.float64).reshape(-1, 3)
    rows = [
        np.concatenate([[i], pts[i], pts[i + 1]])
        for i in range(len(pts) - 1)
    ]
    return np.concatenate(rows)


def skeleton_from_joints(
    heads: ArrayLike,
    parents: list[int],
) -> NDArray[np.float64]:
    """7-float bone buffer from joint heads and a parent table.

    A bone's tail is the head of its first child; a leaf bone is extended one
    unit along +Y.  ``parents[i]`` is -1 for a root.
    """
    pts = np.asarray(heads, dtype=np.float64).reshape(-1, 3)
    if len(parents) != len(pts):
        raise ValueError(f"Expected {len(pts)} parent entries, got {len(parents)}")

    first_child: dict[int, int] = {}
    for child, parent in enumerate(parents):
        if parent >= 0 and parent not in first_child:
            first_child[parent] = child

    rows = []
    for i, head in enumerate(pts):
        if i in first_child:
            tail = pts[first_child[i]]
        else:
            tail = head + np.array([0.0, 1.0, 0.0])
        rows.append(np.concatenate([[i], head, tail]))
    return np.concatenate(rows)


def tapered_cylinder_demo() -> tuple[Mesh, NDArray[np.float64]]:
    """The reference scene: tapered cylinder skinned by a 3-bone chain along Y."""
    mesh = cylinder_geometry(0.3, 1.0, 3.0, 32, 32)
    bones = bone_chain_buffer([
        (0.0, -1.5, 0.0),
        (0.0, -0.5, 0.0),
        (0.0, 0.5, 0.0),
        (0.0, 1.5, 0.0),
    ])
    return mesh, bones
