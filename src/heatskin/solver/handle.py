"""Two-phase solver handle: create once, then solve synchronously.

``SkinWeightSolver.create()`` (or the ``create_async()`` coroutine for hosts
with an event loop) validates the options and returns a ready handle.
``solve()`` then runs the pipeline grid -> diffusion -> sampling -> packing
as one blocking call.  Every solve allocates its own grid and heat field and
drops them before returning, so one handle may serve concurrent solves and
holds no scene references between calls.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping

import numpy as np
from numpy.typing import ArrayLike, NDArray

from heatskin.core.config import SolverConfig
from heatskin.core.mesh import Mesh
from heatskin.core.skeleton import Skeleton
from heatskin.diffusion.heat_solver import diffuse
from heatskin.grid.voxel_grid import build_grid
from heatskin.weights.packer import pack, unpack
from heatskin.weights.sampler import WeightRecord, sample_weights

logger = logging.getLogger(__name__)

# Share of the progress bar given to each stage
_STAGE_SPAN = {"grid": (0.0, 0.2), "diffuse": (0.2, 0.8), "sample": (0.8, 0.95), "pack": (0.95, 1.0)}


@dataclass(frozen=True)
class SkinWeights:
    """Solve result: vertex-major skin index and weight buffers."""
    skin_indices: NDArray[np.uint32]   # (V * K,)
    skin_weights: NDArray[np.float32]  # (V * K,)
    max_influence: int

    @property
    def vertex_count(self) -> int:
        return len(self.skin_indices) // self.max_influence

    def records(self) -> Iterator[WeightRecord]:
        return iter(unpack(self.skin_indices, self.skin_weights, self.max_influence))

    def influence_of(self, bone_id: int) -> NDArray[np.float32]:
        """(V,) weight of ``bone_id`` at every vertex (0 where it is absent)."""
        idx = self.skin_indices.reshape(-1, self.max_influence)
        wts = self.skin_weights.reshape(-1, self.max_influence)
        return np.where(idx == bone_id, wts, 0.0).sum(axis=1).astype(np.float32)


class SkinWeightSolver:
    """Ready-to-call heat diffusion skinning solver."""

    def __init__(self, config: SolverConfig):
        self.config = config

    @classmethod
    def create(cls, config: SolverConfig | Mapping[str, Any] | None = None) -> "SkinWeightSolver":
        """Validate options and return a handle (reference options when None)."""
        if config is None:
            config = SolverConfig.reference()
        elif not isinstance(config, SolverConfig):
            config = SolverConfig.from_dict(config)
        logger.debug("Solver created with %s", config.to_dict())
        return cls(config)

    @classmethod
    async def create_async(
        cls, config: SolverConfig | Mapping[str, Any] | None = None,
    ) -> "SkinWeightSolver":
        """Awaitable :meth:`create` for hosts that initialise off the main loop."""
        return await asyncio.to_thread(cls.create, config)

    def solve(
        self,
        positions: ArrayLike,
        indices: ArrayLike,
        bones: ArrayLike,
        progress_callback: Callable[[float], None] | None = None,
    ) -> SkinWeights:
        """Compute skin weights for one mesh and skeleton.

        Parameters
        ----------
        positions : flat float buffer, 3 per vertex
        indices : flat integer buffer, 3 per triangle
        bones : flat float buffer, 7 per bone
            ``[boneIndex, headX, headY, headZ, tailX, tailY, tailZ]``
        progress_callback : optional callable(float) -- called with 0..1 progress

        Raises
        ------
        InvalidGeometryError, InvalidSkeletonError
            Before any grid is built.
        DegenerateMeshError
            When the mesh bounds collapse.
        """
        cfg = self.config
        start = time.perf_counter()

        mesh = Mesh.from_buffers(positions, indices)
        skeleton = Skeleton.from_buffer(bones)

        def report(stage: str, fraction: float) -> None:
            if progress_callback is not None:
                lo, hi = _STAGE_SPAN[stage]
                progress_callback(lo + (hi - lo) * fraction)

        grid = build_grid(mesh, cfg.max_grid_num, cfg.detect_solidify)
        report("grid", 1.0)

        field = diffuse(
            grid, skeleton, cfg.max_diffuse_loop, cfg.max_sample_num,
            progress_callback=lambda f: report("diffuse", f),
        )
        report("diffuse", 1.0)

        records = sample_weights(
            field, mesh.vertices, cfg.max_influence, cfg.max_fall_off, cfg.sharpness,
        )
        report("sample", 1.0)

        skin_indices, skin_weights = pack(records, cfg.max_influence)
        report("pack", 1.0)

        logger.info(
            "Skin weights for %d vertices / %d bones in %.2fs",
            mesh.vertex_count, len(skeleton), time.perf_counter() - start,
        )
        return SkinWeights(skin_indices, skin_weights, cfg.max_influence)


def calculate_skin_weights(
    positions: ArrayLike,
    indices: ArrayLike,
    bones: ArrayLike,
    options: SolverConfig | Mapping[str, Any] | None = None,
) -> SkinWeights:
    """Create a solver and run a single solve."""
    return SkinWeightSolver.create(options).solve(positions, indices, bones)
