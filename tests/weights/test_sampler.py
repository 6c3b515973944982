"""Tests for heat interpolation and per-vertex weight shaping."""

import numpy as np
import pytest

from heatskin.core.procedural_geometry import make_box
from heatskin.diffusion.heat_solver import HeatField
from heatskin.grid.voxel_grid import CELL_BOUNDARY, CELL_OUTSIDE, VoxelGrid, build_grid
from heatskin.weights.sampler import (
    WeightRecord, interpolate_heat, sample_vertex, sample_weights, shape_weights,
)


def _linear_field():
    """Two-bone field on a 6^3 unit-cell lattice: bone 0 heat rises along X."""
    dims = (6, 6, 6)
    grid = VoxelGrid(
        origin=np.zeros(3), cell_size=1.0, dims=dims,
        occupancy=np.full(dims, CELL_BOUNDARY, dtype=np.int8),
    )
    centers = grid.cell_centers().reshape(dims + (3,))
    hot = centers[..., 0] / 6.0
    values = np.stack([hot, 1.0 - hot])
    return HeatField(grid=grid, bone_ids=np.array([0, 1]), values=values)


class TestInterpolate:
    def test_trilinear_is_exact_for_linear_heat(self):
        field = _linear_field()
        pts = np.array([[1.3, 2.0, 3.7], [2.5, 2.5, 2.5], [4.9, 1.1, 0.6]])
        heat = interpolate_heat(field, pts)
        assert heat.shape == (3, 2)
        np.testing.assert_array_almost_equal(heat[:, 0], pts[:, 0] / 6.0)
        np.testing.assert_array_almost_equal(heat[:, 1], 1.0 - pts[:, 0] / 6.0)

    def test_cell_centre_reads_cell_value(self):
        field = _linear_field()
        heat = interpolate_heat(field, np.array([[3.5, 3.5, 3.5]]))
        np.testing.assert_array_almost_equal(heat[0], [3.5 / 6, 1 - 3.5 / 6])

    def test_blocked_corners_are_skipped(self):
        field = _linear_field()
        field.grid.detect_solidify = True
        # cells with x index >= 3 no longer carry heat
        field.grid.occupancy[3:] = CELL_OUTSIDE
        field.values[:, 3:] = 0.0
        heat = interpolate_heat(field, np.array([[3.0, 2.5, 2.5]]))
        # only the x=2 layer (centre 2.5) remains in the stencil
        np.testing.assert_array_almost_equal(heat[0], [2.5 / 6, 1 - 2.5 / 6])

    def test_no_material_corner_reads_nearest_cell(self):
        field = _linear_field()
        field.grid.detect_solidify = True
        field.grid.occupancy[:] = CELL_OUTSIDE
        field.grid.occupancy[0, 0, 0] = CELL_BOUNDARY
        heat = interpolate_heat(field, np.array([[5.5, 5.5, 5.5]]))
        np.testing.assert_array_almost_equal(heat[0], [0.5 / 6, 1 - 0.5 / 6])


class TestShapeWeights:
    def test_hottest_first(self):
        idx, w = shape_weights([[0.1, 0.7, 0.3]], [0, 1, 2], 3, 0.0, 1.0)
        np.testing.assert_array_equal(idx[0], [1, 2, 0])
        np.testing.assert_array_almost_equal(w[0], [0.7 / 1.1, 0.3 / 1.1, 0.1 / 1.1])
        assert idx.dtype == np.uint32
        assert w.dtype == np.float32

    def test_ties_go_to_lower_bone_index(self):
        idx, w = shape_weights([[0.5, 0.5, 0.1]], [3, 1, 2], 2, 0.0, 1.0)
        np.testing.assert_array_equal(idx[0], [1, 3])
        np.testing.assert_array_almost_equal(w[0], [0.5, 0.5])

    def test_top_k_truncation_renormalizes(self):
        idx, w = shape_weights([[0.4, 0.3, 0.2, 0.1]], [0, 1, 2, 3], 2, 0.0, 1.0)
        np.testing.assert_array_equal(idx[0], [0, 1])
        np.testing.assert_array_almost_equal(w[0], [4 / 7, 3 / 7])

    def test_falloff_prunes_weak_bones(self):
        idx, w = shape_weights([[1.0, 0.5, 0.1]], [0, 1, 2], 3, 0.2, 1.0)
        np.testing.assert_array_equal(idx[0], [0, 1, 2])
        np.testing.assert_array_almost_equal(w[0], [2 / 3, 1 / 3, 0.0])

    def test_falloff_one_keeps_only_dominant(self):
        _, w = shape_weights([[0.9, 0.8]], [0, 1], 2, 1.0, 1.0)
        np.testing.assert_array_almost_equal(w[0], [1.0, 0.0])

    def test_zero_heat_gives_unweighted_record(self):
        idx, w = shape_weights([[0.0, 0.0, 0.0]], [4, 5, 6], 2, 0.2, 1.0)
        np.testing.assert_array_equal(idx[0], [0, 0])
        np.testing.assert_array_equal(w[0], [0.0, 0.0])

    def test_more_slots_than_bones_pads_with_zero(self):
        idx, w = shape_weights([[0.2, 0.6]], [8, 9], 4, 0.0, 1.0)
        np.testing.assert_array_equal(idx[0], [9, 8, 0, 0])
        np.testing.assert_array_almost_equal(w[0], [0.75, 0.25, 0.0, 0.0])

    def test_single_influence(self):
        idx, w = shape_weights([[0.2, 0.6], [0.9, 0.1]], [0, 1], 1, 0.0, 1.0)
        np.testing.assert_array_equal(idx[:, 0], [1, 0])
        np.testing.assert_array_equal(w[:, 0], [1.0, 1.0])

    def test_sharpness_zero_equalizes_top_two(self):
        _, w = shape_weights([[1.0, 0.5, 0.25]], [0, 1, 2], 3, 0.0, 0.0)
        assert w[0, 0] == pytest.approx(w[0, 1], abs=1e-6)
        assert w[0, 0] > w[0, 2]

    def test_sharpness_above_one_concentrates(self):
        _, linear = shape_weights([[1.0, 0.5]], [0, 1], 2, 0.0, 1.0)
        _, sharp = shape_weights([[1.0, 0.5]], [0, 1], 2, 0.0, 2.0)
        assert sharp[0, 0] > linear[0, 0]
        # non-dominant: (2/3) * 0.5 ** 2
        np.testing.assert_array_almost_equal(sharp[0], [5 / 6, 1 / 6])

    def test_sharpness_monotone(self):
        rng = np.random.default_rng(7)
        heat = rng.random((200, 5))
        heat[:10] = heat[:10, :1]  # all-equal rows
        ids = np.arange(5)
        prev = None
        for s in (0.0, 0.25, 0.5, 1.0, 1.5, 2.0, 4.0, 8.0):
            idx, w = shape_weights(heat, ids, 4, 0.1, s)
            if prev is not None:
                prev_idx, prev_w = prev
                np.testing.assert_array_equal(idx, prev_idx)
                assert np.all(w[:, 0] >= prev_w[:, 0] - 1e-6)
                assert np.all(w[:, 1:] <= prev_w[:, 1:] + 1e-6)
            prev = (idx, w)

    def test_rows_sum_to_one_and_indices_distinct(self):
        rng = np.random.default_rng(3)
        heat = rng.random((300, 6)) * (rng.random((300, 6)) > 0.3)
        idx, w = shape_weights(heat, np.arange(10, 16), 4, 0.2, 1.5)
        sums = w.sum(axis=1)
        weighted = sums > 0
        np.testing.assert_allclose(sums[weighted], 1.0, atol=1e-5)
        assert np.all(w >= 0)
        for row in idx[weighted]:
            assert len(np.unique(row)) == 4


class TestSampleWeights:
    def test_records_per_point(self):
        field = _linear_field()
        pts = np.array([[1.0, 3.0, 3.0], [5.0, 3.0, 3.0]])
        records = sample_weights(field, pts, 2, 0.0, 1.0)
        assert len(records) == 2
        assert all(isinstance(r, WeightRecord) and len(r) == 2 for r in records)
        assert records[0].indices[0] == 1
        assert records[1].indices[0] == 0
        assert sum(w for _, w in records[0].as_pairs()) == pytest.approx(1.0)

    def test_sample_vertex_matches_batch(self):
        field = _linear_field()
        pts = np.array([[1.0, 3.0, 3.0], [4.2, 1.0, 2.0]])
        records = sample_weights(field, pts, 2, 0.1, 2.0)
        single = sample_vertex(pts[1], field, 2, 0.1, 2.0)
        np.testing.assert_array_equal(single.indices, records[1].indices)
        np.testing.assert_array_equal(single.weights, records[1].weights)

    def test_cold_vertex_warns(self, caplog):
        field = _linear_field()
        field.values[:] = 0.0
        records = sample_weights(field, np.array([[2.0, 2.0, 2.0]]), 2, 0.2, 1.0)
        assert records[0].is_unweighted
        assert "no bone influence" in caplog.text

    def test_on_built_grid(self):
        grid = build_grid(make_box(2.0, 1.0, 1.0), 10)
        values = np.ones((1,) + grid.dims)
        field = HeatField(grid=grid, bone_ids=np.array([4]), values=values)
        records = sample_weights(field, np.array([[0.9, 0.4, -0.4]]), 3, 0.2, 1.0)
        assert records[0].as_pairs() == [(4, 1.0), (0, 0.0), (0, 0.0)]
