"""Per-vertex bone weights from diffused heat.

For every vertex:
1. interpolate_heat(): trilinear heat per bone from the 8 surrounding cell
   centres, using only material cells (renormalized corner weights); a
   vertex with no material corner reads its nearest material cell.
2. shape_weights(): keep the ``max_influence`` hottest bones (ties to the
   lower bone index), drop bones below ``max_fall_off`` x the hottest,
   sharpen, normalize to 1.

Sharpening works on the linear shares ``p`` (heat / total heat).  With
``r_i`` a bone's heat relative to the dominant bone and ``p0`` the
dominant share:

- sharpness >= 1: non-dominant weight = ``p0 * r_i ** sharpness``
- sharpness < 1: non-dominant shares are scaled by ``m``, which grows
  linearly from 1 (sharpness 1) to the value making the runner-up equal the
  dominant bone (sharpness 0)

The dominant bone takes the remainder.  Raising sharpness therefore never
raises a non-dominant weight and never lowers the dominant one.

Vertices whose dominant heat is zero get an all-zero record bound to bone 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.spatial import cKDTree

from heatskin.constants import HEAT_EPSILON
from heatskin.core.math_utils import Points
from heatskin.diffusion.heat_solver import HeatField

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WeightRecord:
    """Fixed-width (bone index, weight) slots for one vertex."""
    indices: NDArray[np.uint32]   # (K,)
    weights: NDArray[np.float32]  # (K,)

    def __len__(self) -> int:
        return len(self.indices)

    @property
    def is_unweighted(self) -> bool:
        return not np.any(self.weights)

    def as_pairs(self) -> list[tuple[int, float]]:
        return [(int(i), float(w)) for i, w in zip(self.indices, self.weights)]


def interpolate_heat(field: HeatField, points: Points) -> NDArray[np.float64]:
    """(N, B) heat per bone at each point."""
    grid = field.grid
    material = grid.material
    dims = np.array(grid.dims)

    # Position in "cell centre" coordinates: centre of cell i sits at i
    u = (points - grid.origin[np.newaxis, :]) / grid.cell_size - 0.5
    i0 = np.clip(np.floor(u).astype(np.intp), 0, dims - 2)
    frac = np.clip(u - i0, 0.0, 1.0)

    N = len(points)
    B = field.bone_count
    acc = np.zeros((N, B), dtype=np.float64)
    wsum = np.zeros(N, dtype=np.float64)
    for dx in (0, 1):
        wx = frac[:, 0] if dx else 1.0 - frac[:, 0]
        for dy in (0, 1):
            wy = frac[:, 1] if dy else 1.0 - frac[:, 1]
            for dz in (0, 1):
                wz = frac[:, 2] if dz else 1.0 - frac[:, 2]
                ix, iy, iz = i0[:, 0] + dx, i0[:, 1] + dy, i0[:, 2] + dz
                w = wx * wy * wz * material[ix, iy, iz]
                acc += w[:, np.newaxis] * field.values[:, ix, iy, iz].T
                wsum += w

    heat = np.zeros((N, B), dtype=np.float64)
    ok = wsum > 0
    heat[ok] = acc[ok] / wsum[ok, np.newaxis]

    # No material in the stencil: read the nearest material cell instead
    lost = np.flatnonzero(~ok)
    if len(lost):
        mat_idx = np.flatnonzero(material.ravel())
        tree = cKDTree(grid.cell_centers()[mat_idx])
        _, nearest = tree.query(points[lost])
        flat_values = field.values.reshape(B, -1)
        heat[lost] = flat_values[:, mat_idx[nearest]].T
        logger.debug("%d vertices sampled from their nearest material cell", len(lost))

    return heat


def shape_weights(
    heat: ArrayLike,
    bone_ids: ArrayLike,
    max_influence: int,
    max_fall_off: float,
    sharpness: float,
) -> tuple[NDArray[np.uint32], NDArray[np.float32]]:
    """Turn (N, B) heat into (N, K) bone indices and weights.

    Returns ``(indices, weights)``; each weight row sums to 1 or is all zero.
    """
    heat = np.atleast_2d(np.asarray(heat, dtype=np.float64))
    bone_ids = np.asarray(bone_ids, dtype=np.int64)
    N, B = heat.shape
    K = int(max_influence)
    take = min(K, B)

    # Hottest first; equal heat -> lower bone index first
    order = np.lexsort((np.broadcast_to(bone_ids, heat.shape), -heat), axis=1)[:, :take]
    top_heat = np.take_along_axis(heat, order, axis=1)
    top_ids = bone_ids[order]

    dominant = top_heat[:, 0]
    reachable = dominant > HEAT_EPSILON
    safe_dom = np.where(reachable, dominant, 1.0)
    ratio = top_heat / safe_dom[:, np.newaxis]
    ratio[ratio < max_fall_off] = 0.0
    ratio[:, 0] = 1.0
    ratio[~reachable] = 0.0

    weights = _sharpen(ratio, sharpness)
    weights[~reachable] = 0.0

    indices = np.zeros((N, K), dtype=np.uint32)
    out = np.zeros((N, K), dtype=np.float32)
    indices[:, :take] = top_ids
    indices[~reachable] = 0
    out[:, :take] = weights
    return indices, out


def _sharpen(ratio: NDArray[np.float64], sharpness: float) -> NDArray[np.float64]:
    """Weights from heat ratios (column 0 = dominant = 1, pruned = 0)."""
    total = ratio.sum(axis=1)
    total[total == 0] = 1.0
    p0 = 1.0 / total  # linear dominant share
    rest = ratio[:, 1:]

    if sharpness >= 1.0:
        others = p0[:, np.newaxis] * rest ** sharpness
    else:
        shares = p0[:, np.newaxis] * rest
        runner_up = shares.max(axis=1) if shares.shape[1] else np.zeros_like(p0)
        # Only the dominant bone left (p0 == 1): nothing to scale
        span = 1.0 - p0 + runner_up
        m0 = np.ones_like(p0)
        np.divide(1.0, span, out=m0, where=runner_up > 0)
        m = m0 - (m0 - 1.0) * sharpness
        others = shares * m[:, np.newaxis]

    weights = np.empty_like(ratio)
    weights[:, 1:] = others
    weights[:, 0] = 1.0 - others.sum(axis=1)
    np.maximum(weights, 0.0, out=weights)
    return weights / weights.sum(axis=1, keepdims=True)


def sample_weights(
    field: HeatField,
    points: Points,
    max_influence: int,
    max_fall_off: float,
    sharpness: float,
) -> list[WeightRecord]:
    """One :class:`WeightRecord` per point, in input order."""
    heat = interpolate_heat(field, np.asarray(points, dtype=np.float64).reshape(-1, 3))
    indices, weights = shape_weights(heat, field.bone_ids, max_influence, max_fall_off, sharpness)

    unweighted = int(np.count_nonzero(~weights.any(axis=1)))
    if unweighted:
        logger.warning("%d of %d vertices received no bone influence", unweighted, len(weights))
    return [WeightRecord(i, w) for i, w in zip(indices, weights)]


def sample_vertex(
    vertex: ArrayLike,
    field: HeatField,
    max_influence: int,
    max_fall_off: float,
    sharpness: float,
) -> WeightRecord:
    """Weight record for a single vertex position."""
    point = np.asarray(vertex, dtype=np.float64).reshape(1, 3)
    return sample_weights(field, point, max_influence, max_fall_off, sharpness)[0]
