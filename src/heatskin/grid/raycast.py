"""Ray-parity solid classification for voxel grids.

Every lattice row (fixed y, z) casts one ray along +X.  Because the
direction is fixed, a crossing reduces to a 2D point-in-triangle test in the
YZ plane: the barycentric coordinates of the ray's (y, z) inside the
projected triangle give both the hit and the crossing's x coordinate.  A cell
centre is inside when an odd number of crossings lie at or before its x.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from heatskin.constants import RAY_CHUNK_BUDGET, RAY_JITTER

# Projected triangles with |det| below this are edge-on to +X rays
_EDGE_ON_EPSILON = 1e-12


def x_ray_crossings(
    ray_yz: NDArray,
    v0: NDArray,
    v1: NDArray,
    v2: NDArray,
) -> tuple[NDArray[np.bool_], NDArray[np.float64]]:
    """Intersect +X rays (infinite in both directions) with triangles.

    Parameters
    ----------
    ray_yz : (N, 2) -- (y, z) of each ray
    v0, v1, v2 : (M, 3) -- triangle corners

    Returns
    -------
    hit : (N, M) bool -- ray i crosses triangle j
    x : (N, M) float -- x coordinate of the crossing (meaningful where hit)
    """
    e1 = (v1 - v0)[:, 1:]  # (M, 2) in (y, z)
    e2 = (v2 - v0)[:, 1:]
    det = e1[:, 0] * e2[:, 1] - e1[:, 1] * e2[:, 0]  # (M,)
    facing = np.abs(det) > _EDGE_ON_EPSILON
    inv_det = np.zeros_like(det)
    inv_det[facing] = 1.0 / det[facing]

    # Ray (y, z) relative to each triangle's first corner: (N, M)
    py = ray_yz[:, 0:1] - v0[np.newaxis, :, 1]
    pz = ray_yz[:, 1:2] - v0[np.newaxis, :, 2]
    u = (py * e2[:, 1] - pz * e2[:, 0]) * inv_det
    v = (pz * e1[:, 0] - py * e1[:, 1]) * inv_det

    hit = facing[np.newaxis, :] & (u >= 0) & (v >= 0) & (u + v <= 1)
    x = v0[:, 0] + u * (v1[:, 0] - v0[:, 0]) + v * (v2[:, 0] - v0[:, 0])
    return hit, x


def ray_parity_inside(
    origin: NDArray,
    cell_size: float,
    dims: tuple[int, int, int],
    v0: NDArray,
    v1: NDArray,
    v2: NDArray,
) -> NDArray[np.bool_]:
    """Classify lattice cell centres as inside (odd crossing count) the surface.

    Parameters
    ----------
    origin : (3,) -- lattice corner (minimum x/y/z of cell 0)
    cell_size : float -- cubic cell edge length
    dims : (nx, ny, nz) -- lattice size
    v0, v1, v2 : (M, 3) -- triangle corners

    Returns
    -------
    (nx, ny, nz) bool array
    """
    nx, ny, nz = dims
    inside = np.zeros(dims, dtype=bool)
    if len(v0) == 0:
        return inside

    # Sub-cell Y/Z jitter keeps rays off shared edges of axis-aligned meshes
    centers_x = origin[0] + (np.arange(nx) + 0.5) * cell_size
    ys = origin[1] + (np.arange(ny) + 0.5 + RAY_JITTER[0]) * cell_size
    zs = origin[2] + (np.arange(nz) + 0.5 + RAY_JITTER[1]) * cell_size

    tri_min = np.minimum(np.minimum(v0, v1), v2)
    tri_max = np.maximum(np.maximum(v0, v1), v2)

    for j, y in enumerate(ys):
        row_tris = np.flatnonzero((tri_min[:, 1] <= y) & (tri_max[:, 1] >= y))
        if not len(row_tris):
            continue

        chunk_size = max(1, RAY_CHUNK_BUDGET // len(row_tris))
        for start in range(0, nz, chunk_size):
            z_chunk = zs[start:start + chunk_size]
            # Triangles overlapping this chunk's Z span
            tris = row_tris[
                (tri_max[row_tris, 2] >= z_chunk[0]) & (tri_min[row_tris, 2] <= z_chunk[-1])
            ]
            if not len(tris):
                continue
            ray_yz = np.column_stack([np.full(len(z_chunk), y), z_chunk])
            hit, x = x_ray_crossings(ray_yz, v0[tris], v1[tris], v2[tris])
            for r in range(len(z_chunk)):
                crossings = np.sort(x[r][hit[r]])
                if len(crossings):
                    before = np.searchsorted(crossings, centers_x, side="right")
                    inside[:, j, start + r] = (before % 2) == 1

    return inside
