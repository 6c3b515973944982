"""Tests for the two-phase solver handle: creation, validation and solve contract."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from heatskin.constants import REFERENCE_OPTIONS
from heatskin.core.config import SolverConfig
from heatskin.core.errors import (
    DegenerateMeshError, InvalidConfigError, InvalidGeometryError, InvalidSkeletonError,
)
from heatskin.core.procedural_geometry import bone_chain_buffer, make_box
from heatskin.solver import SkinWeights, SkinWeightSolver, calculate_skin_weights
import heatskin.solver.handle as handle_module

SMALL_OPTIONS = {
    "maxGridNum": 12,
    "maxDiffuseLoop": 3,
    "maxSampleNum": 8,
    "maxInfluence": 3,
    "maxFallOff": 0.1,
    "sharpness": 1.0,
    "detectSolidify": False,
}


def _bar():
    mesh = make_box(2.0, 0.6, 0.6)
    bones = bone_chain_buffer([(-0.9, 0, 0), (0, 0, 0), (0.9, 0, 0)])
    return mesh.positions.copy(), mesh.indices.copy(), bones


class TestCreate:
    def test_create_default_uses_reference_options(self):
        solver = SkinWeightSolver.create()
        assert solver.config.to_dict() == REFERENCE_OPTIONS

    def test_create_from_mapping(self):
        solver = SkinWeightSolver.create(SMALL_OPTIONS)
        assert solver.config.max_grid_num == 12

    def test_create_from_config(self):
        cfg = SolverConfig.from_dict(SMALL_OPTIONS)
        assert SkinWeightSolver.create(cfg).config is cfg

    def test_create_async(self):
        solver = asyncio.run(SkinWeightSolver.create_async(SMALL_OPTIONS))
        assert isinstance(solver, SkinWeightSolver)
        assert solver.config.max_influence == 3

    def test_create_rejects_bad_options(self):
        with pytest.raises(InvalidConfigError):
            SkinWeightSolver.create(dict(SMALL_OPTIONS, maxInfluence=0))


class TestSolve:
    def test_buffer_shapes(self):
        positions, indices, bones = _bar()
        result = SkinWeightSolver.create(SMALL_OPTIONS).solve(positions, indices, bones)
        assert isinstance(result, SkinWeights)
        assert result.vertex_count == 24
        assert result.skin_indices.shape == (24 * 3,)
        assert result.skin_weights.shape == (24 * 3,)
        assert result.skin_indices.dtype == np.uint32
        assert result.skin_weights.dtype == np.float32

    def test_weights_normalized(self):
        positions, indices, bones = _bar()
        result = SkinWeightSolver.create(SMALL_OPTIONS).solve(positions, indices, bones)
        sums = result.skin_weights.reshape(-1, 3).sum(axis=1)
        np.testing.assert_allclose(sums, 1.0, atol=1e-5)
        assert np.all(result.skin_weights >= 0)
        assert set(np.unique(result.skin_indices)) <= {0, 1}

    def test_ends_follow_their_bone(self):
        positions, indices, bones = _bar()
        result = SkinWeightSolver.create(SMALL_OPTIONS).solve(positions, indices, bones)
        x = positions.reshape(-1, 3)[:, 0]
        np.testing.assert_array_less(0.5, result.influence_of(0)[x < 0])
        np.testing.assert_array_less(0.5, result.influence_of(1)[x > 0])
        np.testing.assert_allclose(result.influence_of(0) + result.influence_of(1), 1.0, atol=1e-5)

    def test_records(self):
        positions, indices, bones = _bar()
        result = SkinWeightSolver.create(SMALL_OPTIONS).solve(positions, indices, bones)
        records = list(result.records())
        assert len(records) == 24
        assert all(len(r) == 3 for r in records)

    def test_progress_reaches_one(self):
        positions, indices, bones = _bar()
        seen = []
        SkinWeightSolver.create(SMALL_OPTIONS).solve(
            positions, indices, bones, progress_callback=seen.append,
        )
        assert seen[-1] == pytest.approx(1.0)
        assert all(b >= a for a, b in zip(seen, seen[1:]))
        assert all(0.0 <= p <= 1.0 for p in seen)

    def test_inputs_not_modified(self):
        positions, indices, bones = _bar()
        before = (positions.copy(), indices.copy(), bones.copy())
        SkinWeightSolver.create(SMALL_OPTIONS).solve(positions, indices, bones)
        np.testing.assert_array_equal(positions, before[0])
        np.testing.assert_array_equal(indices, before[1])
        np.testing.assert_array_equal(bones, before[2])

    def test_plain_lists_accepted(self):
        positions, indices, bones = _bar()
        a = SkinWeightSolver.create(SMALL_OPTIONS).solve(positions, indices, bones)
        b = SkinWeightSolver.create(SMALL_OPTIONS).solve(
            positions.tolist(), indices.tolist(), bones.tolist(),
        )
        np.testing.assert_array_equal(a.skin_indices, b.skin_indices)
        np.testing.assert_array_equal(a.skin_weights, b.skin_weights)

    def test_calculate_skin_weights(self):
        positions, indices, bones = _bar()
        a = calculate_skin_weights(positions, indices, bones, SMALL_OPTIONS)
        b = SkinWeightSolver.create(SMALL_OPTIONS).solve(positions, indices, bones)
        np.testing.assert_array_equal(a.skin_weights, b.skin_weights)

    def test_handle_reusable_and_thread_safe(self):
        positions, indices, bones = _bar()
        solver = SkinWeightSolver.create(SMALL_OPTIONS)
        expected = solver.solve(positions, indices, bones)
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(
                lambda _: solver.solve(positions, indices, bones), range(4),
            ))
        for r in results:
            np.testing.assert_array_equal(r.skin_indices, expected.skin_indices)
            np.testing.assert_array_equal(r.skin_weights, expected.skin_weights)


class TestFailures:
    def test_bad_index_fails_before_grid(self, monkeypatch):
        positions, indices, bones = _bar()
        indices = indices.astype(np.int64)
        indices[5] = 24

        def fail_build_grid(*args, **kwargs):
            raise AssertionError("grid must not be built for invalid input")

        monkeypatch.setattr(handle_module, "build_grid", fail_build_grid)
        with pytest.raises(InvalidGeometryError, match="out of range"):
            SkinWeightSolver.create(SMALL_OPTIONS).solve(positions, indices, bones)

    def test_empty_bones(self):
        positions, indices, _ = _bar()
        with pytest.raises(InvalidSkeletonError):
            SkinWeightSolver.create(SMALL_OPTIONS).solve(positions, indices, [])

    def test_bone_index_beyond_uint32_rejected(self):
        positions, indices, _ = _bar()
        bones = [2**32 + 1, 0, -1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1, 0]
        with pytest.raises(InvalidSkeletonError):
            calculate_skin_weights(positions, indices, bones, SMALL_OPTIONS)

    def test_zero_length_bone(self):
        positions, indices, _ = _bar()
        with pytest.raises(InvalidSkeletonError):
            SkinWeightSolver.create(SMALL_OPTIONS).solve(
                positions, indices, [0, 0.1, 0.1, 0.1, 0.1, 0.1, 0.1],
            )

    def test_empty_mesh(self):
        _, _, bones = _bar()
        with pytest.raises(InvalidGeometryError):
            SkinWeightSolver.create(SMALL_OPTIONS).solve([], [], bones)

    def test_flat_mesh(self):
        positions = [0, 0, 0, 1, 0, 0, 1, 1, 0, 0, 1, 0]
        indices = [0, 1, 2, 0, 2, 3]
        with pytest.raises(DegenerateMeshError):
            SkinWeightSolver.create(SMALL_OPTIONS).solve(
                positions, indices, [0, 0, 0, 0, 1, 1, 0],
            )

    def test_errors_are_value_errors(self):
        positions, indices, _ = _bar()
        with pytest.raises(ValueError):
            SkinWeightSolver.create(SMALL_OPTIONS).solve(positions, indices, [1, 2, 3])
