"""Central module containing named tolerances, thresholds and defaults.

All thresholds are tuned for the default precision of 80 significant digits.
They are kept as strings so they are converted exactly at the working
precision; override them through the options objects in
hpgeom.arc_length and hpgeom.intersection.
"""

from __future__ import annotations

###############################################################################
# Precision
###############################################################################

DEFAULT_DIGITS: int = 80
MIN_DIGITS: int = 10
FAST_DIGITS: int = 40

###############################################################################
# CurveEvaluator
###############################################################################

# Below this derivative magnitude tangent/normal fall back to the next derivative
TANGENT_EPS: str = "1e-50"
# Leading coefficient below this makes the hodograph quadratic linear
QUADRATIC_LEADING_EPS: str = "1e-70"
# Subdivision root finding for hodographs of degree >= 3
ROOT_MAX_DEPTH: int = 50
ROOT_WIDTH: str = "1e-15"
ROOT_NEWTON_ITERATIONS: int = 20

###############################################################################
# ArcLengthEngine
###############################################################################

ARC_TOLERANCE: str = "1e-30"
ARC_MAX_DEPTH: int = 50
ARC_MIN_DEPTH: int = 3
INVERSE_MAX_ITERATIONS: int = 100
INVERSE_TOLERANCE: str = "1e-30"
# Speed below this triggers a bisection step in the inverse solver
CUSP_SPEED_EPS: str = "1e-60"
TABLE_SAMPLES: int = 100

###############################################################################
# IntersectionEngine
###############################################################################

INTERSECTION_TOLERANCE: str = "1e-30"
SUBDIVISION_TOLERANCE: str = "1e-6"
PARALLEL_THRESHOLD: str = "1e-60"
SINGULARITY_THRESHOLD: str = "1e-50"
VERIFY_FACTOR: int = 100
DEDUP_FACTOR: int = 1000
MAX_NEWTON_ITERATIONS: int = 30
MAX_BISECTION_ITERATIONS: int = 256
MAX_DEPTH: int = 50
SELF_MAX_DEPTH: int = 30
MIN_SEPARATION: str = "0.01"
SAMPLES_PER_DEGREE: int = 20
SELF_NUDGE: str = "0.0001"

###############################################################################
# Verification
###############################################################################

VERIFY_POINT_TOLERANCE: str = "1e-60"
VERIFY_SPLIT_TOLERANCE: str = "1e-50"
VERIFY_CURVATURE_STEP: str = "1e-8"
VERIFY_CURVATURE_TOLERANCE: str = "1e-10"
VERIFY_DERIVATIVE_STEP: str = "1e-10"
VERIFY_DERIVATIVE_TOLERANCE: str = "1e-8"
VERIFY_BBOX_TOLERANCE: str = "1e-40"
VERIFY_ON_CURVE_TOLERANCE: str = "1e-30"
VERIFY_ADDITIVITY_TOLERANCE: str = "1e-30"
VERIFY_INVERSE_TOLERANCE: str = "1e-25"
VERIFY_TABLE_TOLERANCE: str = "1e-20"
VERIFY_SUBDIVISION_TOLERANCE: str = "1e-3"
VERIFY_SUBDIVISIONS: int = 256
VERIFY_LINE_LINE_TOLERANCE: str = "1e-40"
VERIFY_CURVE_LINE_TOLERANCE: str = "1e-30"
VERIFY_PERTURBATION: str = "0.001"
