"""Flatten weight records into fixed-width skin index/weight buffers."""

from __future__ import annotations

from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from heatskin.core.errors import PackingSizeError
from heatskin.weights.sampler import WeightRecord


def pack(
    records: Sequence[WeightRecord],
    max_influence: int,
) -> tuple[NDArray[np.uint32], NDArray[np.float32]]:
    """Return ``(skin_indices, skin_weights)``, each ``len(records) * max_influence`` long.

    Vertex-major: all slots of vertex 0, then vertex 1, ...  Raises
    :class:`PackingSizeError` when a record is not exactly ``max_influence``
    wide.
    """
    for v, rec in enumerate(records):
        if len(rec.indices) != max_influence or len(rec.weights) != max_influence:
            raise PackingSizeError(
                f"Weight record for vertex {v} has {len(rec.indices)} indices and "
                f"{len(rec.weights)} weights, expected {max_influence}"
            )

    if not records:
        return np.zeros(0, dtype=np.uint32), np.zeros(0, dtype=np.float32)

    skin_indices = np.concatenate([rec.indices for rec in records]).astype(np.uint32)
    skin_weights = np.concatenate([rec.weights for rec in records]).astype(np.float32)
    return skin_indices, skin_weights


def unpack(
    skin_indices: NDArray,
    skin_weights: NDArray,
    max_influence: int,
) -> list[WeightRecord]:
    """Split flat buffers back into per-vertex records."""
    idx = np.asarray(skin_indices, dtype=np.uint32)
    wts = np.asarray(skin_weights, dtype=np.float32)
    if len(idx) != len(wts) or len(idx) % max_influence:
        raise PackingSizeError(
            f"Buffers of length {len(idx)}/{len(wts)} do not split into "
            f"records of width {max_influence}"
        )
    return [
        WeightRecord(i, w)
        for i, w in zip(idx.reshape(-1, max_influence), wts.reshape(-1, max_influence))
    ]
