"""NumPy-backed vector and segment utilities.

Vectors are plain float64 numpy arrays; batches are (N, 3) arrays.
"""

import numpy as np
from numpy.typing import NDArray

# Type aliases
Vec3 = NDArray[np.float64]
Points = NDArray[np.float64]  # (N, 3)


def sample_segment(head: Vec3, tail: Vec3, count: int) -> Points:
    """Return ``count`` evenly spaced points from head to tail (inclusive)."""
    t = np.linspace(0.0, 1.0, max(int(count), 2))
    return head[np.newaxis, :] + t[:, np.newaxis] * (tail - head)[np.newaxis, :]


def point_segment_distances(points: Points, head: Vec3, tail: Vec3) -> NDArray[np.float64]:
    """Euclidean distance from each point to the closed segment head→tail.

    Parameters
    ----------
    points : (N, 3) array
    head, tail : (3,) segment endpoints

    Returns
    -------
    (N,) array of distances
    """
    ab = tail - head
    ab_len_sq = max(float(np.dot(ab, ab)), 1e-20)
    ap = points - head[np.newaxis, :]
    t = np.clip(ap @ ab / ab_len_sq, 0.0, 1.0)
    closest = head[np.newaxis, :] + t[:, np.newaxis] * ab[np.newaxis, :]
    diff = points - closest
    return np.sqrt(np.sum(diff * diff, axis=1))


def bounding_box(points: Points) -> tuple[Vec3, Vec3]:
    """Axis-aligned (min, max) corners of a point set."""
    return points.min(axis=0).astype(np.float64), points.max(axis=0).astype(np.float64)
