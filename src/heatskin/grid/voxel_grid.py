"""Voxel grid builder: lattice over the mesh bounds with per-cell occupancy.

Cells are cubes.  The longest bounding-box axis gets ``max_grid_num`` cells
(padding included); the other axes get proportionally fewer.  Every cell is
classified as

- BOUNDARY: the mesh surface passes through it (triangle rasterization),
- INSIDE: its centre is enclosed by the surface (ray parity; only computed
  when ``detect_solidify`` is on),
- OUTSIDE: anything else.

With ``detect_solidify`` the material region (INSIDE + BOUNDARY) is the only
place heat may flow; without it the whole lattice conducts so open or
non-watertight meshes still diffuse.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from heatskin.constants import DEGENERATE_EXTENT_RATIO, GRID_PADDING_CELLS, RAY_CHUNK_BUDGET
from heatskin.core.errors import DegenerateMeshError
from heatskin.core.math_utils import Points, Vec3
from heatskin.core.mesh import Mesh
from heatskin.grid.raycast import ray_parity_inside

logger = logging.getLogger(__name__)

CELL_OUTSIDE = 0
CELL_INSIDE = 1
CELL_BOUNDARY = 2


@dataclass
class VoxelGrid:
    """Axis-aligned cubic-cell lattice owned by a single solve."""
    origin: Vec3                    # minimum corner of cell (0, 0, 0)
    cell_size: float
    dims: tuple[int, int, int]      # (nx, ny, nz)
    occupancy: NDArray[np.int8]     # (nx, ny, nz) CELL_* codes
    detect_solidify: bool = False

    @property
    def cell_count(self) -> int:
        nx, ny, nz = self.dims
        return nx * ny * nz

    @property
    def material(self) -> NDArray[np.bool_]:
        """(nx, ny, nz) mask of cells heat may occupy."""
        if self.detect_solidify:
            return self.occupancy != CELL_OUTSIDE
        return np.ones(self.dims, dtype=bool)

    def count(self, state: int) -> int:
        return int(np.count_nonzero(self.occupancy == state))

    def cell_centers(self) -> Points:
        """(nx*ny*nz, 3) cell centre positions in C (x-major) order."""
        axes = [
            self.origin[a] + (np.arange(n) + 0.5) * self.cell_size
            for a, n in enumerate(self.dims)
        ]
        gx, gy, gz = np.meshgrid(*axes, indexing="ij")
        return np.column_stack([gx.ravel(), gy.ravel(), gz.ravel()])

    def cell_of(self, points: Points) -> NDArray[np.intp]:
        """(N, 3) integer cell coordinates containing each point (clamped)."""
        ijk = np.floor((points - self.origin[np.newaxis, :]) / self.cell_size).astype(np.intp)
        return np.clip(ijk, 0, np.array(self.dims) - 1)

    def contains(self, points: Points) -> NDArray[np.bool_]:
        """True for points inside the lattice bounds."""
        rel = (points - self.origin[np.newaxis, :]) / self.cell_size
        return np.all((rel >= 0) & (rel <= np.array(self.dims)), axis=1)

    def flat_index(self, ijk: NDArray[np.intp]) -> NDArray[np.intp]:
        """Flatten (N, 3) cell coordinates to C-order linear indices."""
        return np.ravel_multi_index((ijk[:, 0], ijk[:, 1], ijk[:, 2]), self.dims)


def build_grid(mesh: Mesh, max_grid_num: int, detect_solidify: bool = False) -> VoxelGrid:
    """Voxelize ``mesh`` into a lattice capped at ``max_grid_num`` cells per axis.

    Raises :class:`DegenerateMeshError` when the bounding box has (near) zero
    extent along any axis.
    """
    start = time.perf_counter()
    bmin, bmax = mesh.get_bounding_box()
    extent = bmax - bmin
    diag = float(np.linalg.norm(extent))
    if diag <= 0.0 or np.any(extent <= DEGENERATE_EXTENT_RATIO * diag):
        raise DegenerateMeshError(
            f"Degenerate mesh: bounding box extent {extent.tolist()} collapses along an axis"
        )

    interior = max_grid_num - 2 * GRID_PADDING_CELLS
    cell_size = float(extent.max()) / interior
    cells = np.clip(np.ceil(extent / cell_size - 1e-9).astype(int), 1, interior)
    dims = tuple(int(n) + 2 * GRID_PADDING_CELLS for n in cells)
    # Centre the lattice on the bounds so symmetric meshes get symmetric grids
    center = (bmin + bmax) / 2
    origin = center - np.array(dims, dtype=np.float64) * cell_size / 2

    grid = VoxelGrid(
        origin=origin,
        cell_size=cell_size,
        dims=dims,
        occupancy=np.zeros(dims, dtype=np.int8),
        detect_solidify=detect_solidify,
    )

    v0, v1, v2 = mesh.triangle_corners()
    boundary = _rasterize_surface(grid, mesh.vertices, v0, v1, v2)
    if detect_solidify:
        inside = ray_parity_inside(grid.origin, grid.cell_size, grid.dims, v0, v1, v2)
        grid.occupancy[inside] = CELL_INSIDE
    grid.occupancy[boundary] = CELL_BOUNDARY

    logger.info(
        "Voxel grid %dx%dx%d (cell %.4g): %d boundary, %d inside in %.2fs",
        dims[0], dims[1], dims[2], cell_size,
        grid.count(CELL_BOUNDARY), grid.count(CELL_INSIDE),
        time.perf_counter() - start,
    )
    return grid


def _rasterize_surface(
    grid: VoxelGrid,
    vertices: Points,
    v0: NDArray,
    v1: NDArray,
    v2: NDArray,
) -> NDArray[np.bool_]:
    """Mark cells touched by the surface.

    Each triangle is sampled on a barycentric lattice with spacing at most
    half a cell, so no cell the triangle crosses is skipped.
    """
    mask = np.zeros(grid.dims, dtype=bool)

    ijk = grid.cell_of(vertices)
    mask[ijk[:, 0], ijk[:, 1], ijk[:, 2]] = True

    edge_len = np.max(np.stack([
        np.linalg.norm(v1 - v0, axis=1),
        np.linalg.norm(v2 - v1, axis=1),
        np.linalg.norm(v0 - v2, axis=1),
    ]), axis=0)
    subdiv = np.maximum(np.ceil(edge_len / (0.5 * grid.cell_size)), 1).astype(int)

    for n in np.unique(subdiv):
        tris = np.flatnonzero(subdiv == n)
        a, b = _barycentric_lattice(int(n))
        c = 1.0 - a - b
        per_tri = len(a)
        chunk = max(1, RAY_CHUNK_BUDGET // per_tri)
        for s in range(0, len(tris), chunk):
            sel = tris[s:s + chunk]
            pts = (
                a[np.newaxis, :, np.newaxis] * v0[sel][:, np.newaxis, :]
                + b[np.newaxis, :, np.newaxis] * v1[sel][:, np.newaxis, :]
                + c[np.newaxis, :, np.newaxis] * v2[sel][:, np.newaxis, :]
            ).reshape(-1, 3)
            cells = grid.cell_of(pts)
            mask[cells[:, 0], cells[:, 1], cells[:, 2]] = True

    return mask


def _barycentric_lattice(n: int) -> tuple[NDArray, NDArray]:
    """Weights (a, b) of all points i/n, j/n with i + j <= n."""
    i, j = np.meshgrid(np.arange(n + 1), np.arange(n + 1), indexing="ij")
    keep = (i + j) <= n
    return i[keep] / n, j[keep] / n
