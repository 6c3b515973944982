"""Error taxonomy for the skin weight solver.

Every error derives from :class:`SkinningError`, itself a ``ValueError``:
all of them describe inputs (or an internal invariant on derived data) that
the solver cannot turn into weights.  A solve either returns complete weight
buffers or raises one of these; there are no partial results.
"""


class SkinningError(ValueError):
    """Base class for all solver errors."""


class InvalidGeometryError(SkinningError):
    """Empty or malformed vertex/index buffers."""


class InvalidSkeletonError(SkinningError):
    """Empty or malformed bone buffer, or a zero-length bone."""


class InvalidConfigError(SkinningError):
    """Missing, unknown, mistyped or out-of-range solver option."""


class DegenerateMeshError(SkinningError):
    """Mesh bounding volume collapses along at least one axis."""


class PackingSizeError(SkinningError):
    """A weight record does not have exactly ``max_influence`` slots."""
