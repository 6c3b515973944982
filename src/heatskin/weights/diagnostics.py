"""Skin weight diagnostics: summarize and sanity-check solver output.

Usage:
    report = analyze_weights(result)
    print(format_report(report))
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from heatskin.solver.handle import SkinWeights


@dataclass
class WeightReport:
    """Summary of one solve's weight buffers."""
    vertex_count: int
    max_influence: int
    unweighted_count: int          # all-zero records
    max_sum_error: float           # worst |sum - 1| over weighted records
    mean_dominant_weight: float    # mean of each weighted record's largest weight
    duplicate_index_count: int     # weighted records repeating a bone among nonzero slots
    dominant_counts: dict[int, int] = field(default_factory=dict)     # bone -> vertices it dominates
    influence_histogram: dict[int, int] = field(default_factory=dict)  # nonzero slots -> vertices

    @property
    def is_clean(self) -> bool:
        return self.max_sum_error < 1e-4 and self.duplicate_index_count == 0


def analyze_weights(result: SkinWeights) -> WeightReport:
    """Compute a :class:`WeightReport` for a solve result."""
    K = result.max_influence
    idx = result.skin_indices.reshape(-1, K)
    wts = result.skin_weights.reshape(-1, K).astype(np.float64)
    V = len(idx)

    nonzero = wts > 0
    weighted = nonzero.any(axis=1)
    sums = wts.sum(axis=1)
    max_sum_error = float(np.max(np.abs(sums[weighted] - 1.0))) if weighted.any() else 0.0

    dom_slot = np.argmax(wts, axis=1)
    dom_bone = idx[np.arange(V), dom_slot]
    dom_weight = wts[np.arange(V), dom_slot]

    duplicates = 0
    for row_idx, row_nz in zip(idx[weighted], nonzero[weighted]):
        bones = row_idx[row_nz]
        if len(np.unique(bones)) != len(bones):
            duplicates += 1

    bones, counts = np.unique(dom_bone[weighted], return_counts=True)
    slots, slot_counts = np.unique(nonzero.sum(axis=1), return_counts=True)

    return WeightReport(
        vertex_count=V,
        max_influence=K,
        unweighted_count=int(V - weighted.sum()),
        max_sum_error=max_sum_error,
        mean_dominant_weight=float(dom_weight[weighted].mean()) if weighted.any() else 0.0,
        duplicate_index_count=duplicates,
        dominant_counts={int(b): int(c) for b, c in zip(bones, counts)},
        influence_histogram={int(s): int(c) for s, c in zip(slots, slot_counts)},
    )


def format_report(report: WeightReport) -> str:
    """Generate a human-readable diagnostic report string."""
    lines = ["=" * 60, "SKIN WEIGHT REPORT", "=" * 60, ""]
    lines.append(f"Vertices:           {report.vertex_count}")
    lines.append(f"Max influence:      {report.max_influence}")
    lines.append(f"Unweighted:         {report.unweighted_count}")
    lines.append(f"Max sum error:      {report.max_sum_error:.2e}")
    lines.append(f"Mean dominant:      {report.mean_dominant_weight:.3f}")
    lines.append(f"Duplicate indices:  {report.duplicate_index_count}")
    lines.append("")

    lines.append("Dominant bone per vertex:")
    lines.append("-" * 40)
    for bone, cnt in sorted(report.dominant_counts.items()):
        lines.append(f"  bone {bone:4d}: {cnt}")
    lines.append("")

    lines.append("Nonzero influences per vertex:")
    lines.append("-" * 40)
    for slots, cnt in sorted(report.influence_histogram.items()):
        lines.append(f"  {slots} bones: {cnt}")
    lines.append("")

    lines.append("STATUS: " + ("clean" if report.is_clean else "ERRORS"))
    return "\n".join(lines)
