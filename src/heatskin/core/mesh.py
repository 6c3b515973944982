"""Triangle mesh value type consumed by the solver (no scene graph references)."""

from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray

from heatskin.constants import POSITION_STRIDE, TRIANGLE_STRIDE
from heatskin.core.errors import InvalidGeometryError
from heatskin.core.math_utils import Vec3, bounding_box


@dataclass(frozen=True)
class Mesh:
    """Immutable copy of the host's vertex and triangle buffers.

    positions: flat float64 array (x,y,z per vertex)
    indices: flat uint32 triangle index array (3 per triangle)

    The arrays are private copies marked read-only, so the solver can never
    write back into host-owned memory.
    """
    positions: NDArray[np.float64]
    indices: NDArray[np.uint32]

    @classmethod
    def from_buffers(cls, positions: ArrayLike, indices: ArrayLike) -> "Mesh":
        """Validate and copy flat vertex/index buffers.

        Raises :class:`InvalidGeometryError` for non-numeric or empty buffers,
        lengths that are not multiples of 3, non-finite coordinates, and
        indices that are negative, fractional, or >= the vertex count.
        """
        try:
            pos = np.array(positions, dtype=np.float64).ravel()
        except (TypeError, ValueError) as exc:
            raise InvalidGeometryError(
                f"Invalid geometry: vertex buffer is not numeric ({exc})"
            ) from exc
        if pos.size == 0:
            raise InvalidGeometryError("Invalid geometry: vertex buffer is empty")
        if pos.size % POSITION_STRIDE:
            raise InvalidGeometryError(
                f"Invalid geometry: vertex buffer length {pos.size} is not a multiple of 3"
            )
        if not np.all(np.isfinite(pos)):
            bad = int(np.flatnonzero(~np.isfinite(pos))[0]) // POSITION_STRIDE
            raise InvalidGeometryError(f"Invalid geometry: vertex {bad} has a non-finite coordinate")

        try:
            idx_f = np.asarray(indices, dtype=np.float64).ravel()
        except (TypeError, ValueError) as exc:
            raise InvalidGeometryError(
                f"Invalid geometry: index buffer is not numeric ({exc})"
            ) from exc
        if idx_f.size == 0:
            raise InvalidGeometryError("Invalid geometry: index buffer is empty")
        if idx_f.size % TRIANGLE_STRIDE:
            raise InvalidGeometryError(
                f"Invalid geometry: index buffer length {idx_f.size} is not a multiple of 3"
            )
        if not np.all(np.isfinite(idx_f)) or np.any(idx_f != np.floor(idx_f)):
            raise InvalidGeometryError("Invalid geometry: index buffer contains non-integer values")

        vertex_count = pos.size // POSITION_STRIDE
        bad = np.flatnonzero((idx_f < 0) | (idx_f >= vertex_count))
        if bad.size:
            first = int(bad[0])
            raise InvalidGeometryError(
                f"Invalid geometry: index {int(idx_f[first])} at position {first} "
                f"is out of range for {vertex_count} vertices"
            )

        pos.setflags(write=False)
        idx = idx_f.astype(np.uint32)
        idx.setflags(write=False)
        return cls(positions=pos, indices=idx)

    @property
    def vertex_count(self) -> int:
        return len(self.positions) // POSITION_STRIDE

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // TRIANGLE_STRIDE

    @property
    def vertices(self) -> NDArray[np.float64]:
        """(N, 3) view of the vertex positions."""
        return self.positions.reshape(-1, 3)

    @property
    def triangles(self) -> NDArray[np.uint32]:
        """(T, 3) view of the triangle indices."""
        return self.indices.reshape(-1, 3)

    def triangle_corners(self) -> tuple[NDArray, NDArray, NDArray]:
        """Return (v0, v1, v2), each (T, 3), the corners of every triangle."""
        verts = self.vertices
        tri = self.triangles
        return verts[tri[:, 0]], verts[tri[:, 1]], verts[tri[:, 2]]

    def get_bounding_box(self) -> tuple[Vec3, Vec3]:
        """Axis-aligned (min, max) corners of all vertices."""
        return bounding_box(self.vertices)

    def get_bounding_center(self) -> Vec3:
        """Compute centroid of all vertices."""
        return self.vertices.mean(axis=0)
