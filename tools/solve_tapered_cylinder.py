"""CLI entry point: solve the reference tapered-cylinder scene and report weights.

Usage::

    # Reference options (64 grid, 5 sweeps, 64 samples, 4 influences, falloff 0.2):
    python -m tools.solve_tapered_cylinder

    # Override options:
    python -m tools.solve_tapered_cylinder --max-grid-num 32 --sharpness 2 --detect-solidify

    # Load options from a JSON file, save buffers to JSON:
    python -m tools.solve_tapered_cylinder --config options.json --output weights.json
"""

from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path

import numpy as np

from heatskin.constants import REFERENCE_OPTIONS
from heatskin.core.config import SolverConfig
from heatskin.core.config_loader import load_solver_config
from heatskin.core.procedural_geometry import tapered_cylinder_demo
from heatskin.solver import SkinWeightSolver
from heatskin.weights.diagnostics import analyze_weights, format_report

# CLI flag -> option name
_OVERRIDES = {
    "max_grid_num": "maxGridNum",
    "max_diffuse_loop": "maxDiffuseLoop",
    "max_sample_num": "maxSampleNum",
    "max_influence": "maxInfluence",
    "max_fall_off": "maxFallOff",
    "sharpness": "sharpness",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Heat diffusion skin weights for the reference tapered cylinder",
    )
    parser.add_argument(
        "--config", type=Path, default=None, metavar="FILE",
        help="JSON file with solver options (default: reference options)",
    )
    parser.add_argument("--max-grid-num", type=int, default=None, metavar="N")
    parser.add_argument("--max-diffuse-loop", type=int, default=None, metavar="N")
    parser.add_argument("--max-sample-num", type=int, default=None, metavar="N")
    parser.add_argument("--max-influence", type=int, default=None, metavar="N")
    parser.add_argument("--max-fall-off", type=float, default=None, metavar="VAL")
    parser.add_argument("--sharpness", type=float, default=None, metavar="VAL")
    parser.add_argument(
        "--detect-solidify", action="store_true",
        help="Constrain diffusion to the mesh interior",
    )
    parser.add_argument(
        "--output", type=Path, default=None, metavar="FILE",
        help="Save skin index/weight buffers to JSON file",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable verbose logging",
    )
    return parser


def resolve_options(args: argparse.Namespace) -> SolverConfig:
    """Base options (file or reference) with CLI overrides applied."""
    if args.config is not None:
        options = load_solver_config(args.config).to_dict()
    else:
        options = dict(REFERENCE_OPTIONS)
    for attr, name in _OVERRIDES.items():
        value = getattr(args, attr)
        if value is not None:
            options[name] = value
    if args.detect_solidify:
        options["detectSolidify"] = True
    return SolverConfig.from_dict(options)


def run(config: SolverConfig, output_path: Path | None = None) -> dict:
    mesh, bones = tapered_cylinder_demo()
    solver = SkinWeightSolver.create(config)

    t0 = time.perf_counter()
    result = solver.solve(mesh.positions, mesh.indices, bones)
    elapsed = time.perf_counter() - t0

    report = analyze_weights(result)
    print(format_report(report))
    print(f"\nSolved {result.vertex_count} vertices in {elapsed:.2f}s")

    # Mean influence of each bone along the cylinder height (8 bands)
    heights = mesh.vertices[:, 1]
    bands = np.linspace(heights.min(), heights.max(), 9)
    band_of = np.clip(np.searchsorted(bands, heights, side="right") - 1, 0, 7)
    print("\nMean bone influence by height band:")
    for b in range(8):
        sel = band_of == b
        row = "  ".join(
            f"{result.influence_of(bone)[sel].mean():.2f}" for bone in range(3)
        )
        print(f"  y=[{bands[b]:5.2f},{bands[b + 1]:5.2f}]  {row}")

    output = {
        "options": config.to_dict(),
        "vertexCount": result.vertex_count,
        "elapsed": elapsed,
        "skinIndices": result.skin_indices.tolist(),
        "skinWeights": result.skin_weights.tolist(),
    }
    if output_path:
        output_path.write_text(json.dumps(output, indent=2))
        print(f"\nResults saved to {output_path}")
    return output


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")

    run(resolve_options(args), args.output)


if __name__ == "__main__":
    main()
