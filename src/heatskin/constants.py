"""Shared constants and defaults for HeatSkin."""

# Flat buffer strides (see solver interface)
POSITION_STRIDE = 3  # x, y, z per vertex
TRIANGLE_STRIDE = 3  # three vertex indices per triangle
BONE_STRIDE = 7      # boneIndex, headX, headY, headZ, tailX, tailY, tailZ

# Option names as they appear at the host boundary, in constructor order
OPTION_NAMES = (
    "maxGridNum",
    "maxDiffuseLoop",
    "maxSampleNum",
    "maxInfluence",
    "maxFallOff",
    "sharpness",
    "detectSolidify",
)

# Reference demo options (tapered cylinder + 3 bone chain)
REFERENCE_OPTIONS = {
    "maxGridNum": 64,
    "maxDiffuseLoop": 5,
    "maxSampleNum": 64,
    "maxInfluence": 4,
    "maxFallOff": 0.2,
    "sharpness": 1.0,
    "detectSolidify": False,
}

# Lower bounds for integer options
MIN_GRID_NUM = 4
MIN_SAMPLE_NUM = 2

# Grid construction
GRID_PADDING_CELLS = 1          # empty cells added around the bounding box per side
DEGENERATE_EXTENT_RATIO = 1e-6  # axis extent below this fraction of the diagonal = collapsed
RAY_JITTER = (1.0e-3, 2.3e-3)   # sub-cell (y, z) offset for parity rays, avoids edge hits
RAY_CHUNK_BUDGET = 500_000      # max ray x triangle pairs per intersection chunk

# Skeleton validation
BONE_EPSILON = 1e-9  # head/tail closer than this = zero-length bone

# Weight shaping
HEAT_EPSILON = 1e-12  # dominant heat at or below this = unreachable vertex
