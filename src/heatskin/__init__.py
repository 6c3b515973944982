"""HeatSkin: heat diffusion skin weights for triangle meshes."""

__version__ = "0.1.0"
