# constants.py
"""Shared constants for analysis modules."""

import numpy as np
from dataclasses import dataclass

# Maximum exponent before ``exp`` overflows a IEEE-754 double
EXP_OVERFLOW_DOUBLE = 700.0
# Iteration cap for ``scipy.optimize.curve_fit``
CURVE_FIT_MAX_EVALS = 10000


# Clip exponents to ``+/-EXP_OVERFLOW_DOUBLE`` to avoid floating-point overflow
# when evaluating the exponential attenuation model far from its seed.
def safe_exp(x: np.ndarray) -> np.ndarray:
    """Return ``exp(x)`` with the input clipped to ``[-EXP_OVERFLOW_DOUBLE, EXP_OVERFLOW_DOUBLE]``."""
    return np.exp(np.clip(x, -EXP_OVERFLOW_DOUBLE, EXP_OVERFLOW_DOUBLE))


# Eu-152 gamma lines (keV) used for peak identification.
EU152_LINES_KEV = {
    "122": 121.78,
    "245": 244.70,
    "344": 344.28,
    "411": 411.12,
    "444": 443.96,
    "779": 778.90,
    "867": 867.38,
    "964": 964.08,
    "1086": 1085.87,
    "1112": 1112.07,
    "1408": 1408.01,
}


@dataclass(frozen=True)
class PeakLine:
    """Photopeak energy and integration half-width, both in keV."""

    energy_keV: float
    half_width_keV: float


# The low line is photoelectric dominated (sensitive to Z), the high lines
# are Compton dominated (sensitive to density).
LOW_LINE = PeakLine(EU152_LINES_KEV["122"], 12.0)
HIGH_LINES = {
    "779": PeakLine(EU152_LINES_KEV["779"], 20.0),
    "1408": PeakLine(EU152_LINES_KEV["1408"], 25.0),
}
DEFAULT_HIGH_LINE = "779"

# Histogram defaults: 1 keV bins over 0-1600 keV
DEFAULT_BIN_COUNT = 1600
DEFAULT_ENERGY_MIN_KEV = 0.0
DEFAULT_ENERGY_MAX_KEV = 1600.0

DEFAULT_ENERGY_COLUMN = "Energy"

# Detectability thresholds in units of the combined standard error
DETECTION_SIGMA = 3.0
QUANTIFICATION_SIGMA = 10.0

# A net peak is significant when it exceeds this many standard errors
PEAK_SIGNIFICANCE_SIGMA = 3.0

# R = L_low / L_high is only evaluated above this attenuation floor
RATIO_L_HIGH_FLOOR = 1e-3

# Denominator floor for the count ratio Q = N_low / N_high
COUNT_RATIO_FLOOR = 0.0

# |Z| below this is treated as "no signal" when projecting event counts
Z_SCORE_FLOOR = 0.1

# Concentrations (%) up to this value belong to the fine (LOD) sweep
DEFAULT_FINE_SWEEP_MAX = 1.0

# Minimum counts expected in the high-energy ROI before a warning is issued
MIN_HIGH_LINE_COUNTS = 100

OBSERVABLE_KINDS = ("Q", "R", "delta", "L_low", "L_high", "T_low", "T_high")
FIT_MODELS = ("linear", "exponential")
NORMALIZATION_MODES = ("raw", "events")
