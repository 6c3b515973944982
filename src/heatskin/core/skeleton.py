"""Bone segment value types built from the flat 7-float-per-bone buffer."""

from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray

from heatskin.constants import BONE_EPSILON, BONE_STRIDE
from heatskin.core.errors import InvalidSkeletonError
from heatskin.core.math_utils import Points, Vec3, point_segment_distances, sample_segment

# Bone ids are written to a uint32 skin index buffer
_MAX_BONE_ID = np.iinfo(np.uint32).max


@dataclass(frozen=True)
class BoneSegment:
    """A bone as a world-space line segment.

    ``bone_id`` is the caller's bone index (the value written to the skin
    index buffer); it need not equal the segment's position in the buffer.
    """
    bone_id: int
    head: Vec3
    tail: Vec3

    @property
    def length(self) -> float:
        return float(np.linalg.norm(self.tail - self.head))

    def sample_points(self, count: int) -> Points:
        """``count`` evenly spaced points from head to tail."""
        return sample_segment(self.head, self.tail, count)

    def distances(self, points: Points) -> NDArray[np.float64]:
        """Distance from each of ``points`` (N, 3) to this segment."""
        return point_segment_distances(points, self.head, self.tail)


@dataclass(frozen=True)
class Skeleton:
    """Ordered, validated bone segments (buffer order is preserved)."""
    bones: tuple[BoneSegment, ...]

    @classmethod
    def from_buffer(cls, bones: ArrayLike) -> "Skeleton":
        """Parse ``[boneIndex, hx, hy, hz, tx, ty, tz] * B``.

        Raises :class:`InvalidSkeletonError` for a non-numeric or empty
        buffer, a length that is not a multiple of 7, non-finite values, bone
        indices that are negative, fractional, beyond uint32 or repeated, and
        zero-length bones.
        """
        try:
            data = np.array(bones, dtype=np.float64).ravel()
        except (TypeError, ValueError) as exc:
            raise InvalidSkeletonError(
                f"Invalid skeleton: bone buffer is not numeric ({exc})"
            ) from exc
        if data.size == 0:
            raise InvalidSkeletonError("Invalid skeleton: bone buffer is empty")
        if data.size % BONE_STRIDE:
            raise InvalidSkeletonError(
                f"Invalid skeleton: bone buffer length {data.size} is not a multiple of 7"
            )
        rows = data.reshape(-1, BONE_STRIDE)
        if not np.all(np.isfinite(rows)):
            bad = int(np.flatnonzero(~np.all(np.isfinite(rows), axis=1))[0])
            raise InvalidSkeletonError(f"Invalid skeleton: bone entry {bad} has a non-finite value")

        segments: list[BoneSegment] = []
        seen: set[int] = set()
        for i, row in enumerate(rows):
            raw_id = row[0]
            if raw_id < 0 or raw_id > _MAX_BONE_ID or raw_id != np.floor(raw_id):
                raise InvalidSkeletonError(
                    f"Invalid skeleton: bone entry {i} has invalid index {raw_id!r}"
                )
            bone_id = int(raw_id)
            if bone_id in seen:
                raise InvalidSkeletonError(f"Invalid skeleton: duplicate bone index {bone_id}")
            seen.add(bone_id)

            head = row[1:4].copy()
            tail = row[4:7].copy()
            if np.linalg.norm(tail - head) <= BONE_EPSILON:
                raise InvalidSkeletonError(
                    f"Invalid skeleton: bone {bone_id} has zero length (head == tail)"
                )
            head.setflags(write=False)
            tail.setflags(write=False)
            segments.append(BoneSegment(bone_id=bone_id, head=head, tail=tail))

        return cls(bones=tuple(segments))

    def __len__(self) -> int:
        return len(self.bones)

    def __iter__(self):
        return iter(self.bones)

    @property
    def bone_ids(self) -> NDArray[np.int64]:
        """Caller bone index per segment, in buffer order."""
        return np.array([b.bone_id for b in self.bones], dtype=np.int64)

    def sample_points(self, count: int) -> tuple[Points, NDArray[np.intp]]:
        """Sample every bone; returns (points (B*count, 3), owning segment position)."""
        pts = [b.sample_points(count) for b in self.bones]
        owner = np.repeat(np.arange(len(self.bones), dtype=np.intp), [len(p) for p in pts])
        return np.concatenate(pts, axis=0), owner

    def distance_matrix(self, points: Points) -> NDArray[np.float64]:
        """(N, B) distances from each point to each bone segment."""
        return np.column_stack([b.distances(points) for b in self.bones])

    def to_buffer(self) -> NDArray[np.float64]:
        """Flatten back to the 7-float-per-bone layout."""
        rows = [np.concatenate([[b.bone_id], b.head, b.tail]) for b in self.bones]
        return np.concatenate(rows).astype(np.float64)
