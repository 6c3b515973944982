"""Heat diffusion skin weight solver: public entry points."""

from heatskin.solver.handle import SkinWeights, SkinWeightSolver, calculate_skin_weights

__all__ = ["SkinWeights", "SkinWeightSolver", "calculate_skin_weights"]
