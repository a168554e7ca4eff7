"""
detectability.py

Significance of a sample against the blank (0 % reference) and the
limits of detection / quantification derived from it.
"""

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from constants import DETECTION_SIGMA, QUANTIFICATION_SIGMA, Z_SCORE_FLOOR

__all__ = [
    "Verdict",
    "Detectability",
    "z_score",
    "classify",
    "estimate_lod",
    "projected_z",
    "required_event_factor",
    "event_factor_for_improvement",
    "normalize_uncertainty",
    "observed_limits",
]


class Verdict(IntEnum):
    NOT_DETECTABLE = 0
    DETECTABLE = 1
    QUANTIFIABLE = 2

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class Detectability:
    z: Optional[float]
    verdict: Optional[Verdict]


def z_score(observable, reference_value, reference_uncertainty):
    """Return ``(v - v0)/sqrt(s^2 + s0^2)`` or ``None`` when undefined."""
    value, sigma = observable
    if value is None or sigma is None or reference_value is None:
        return None
    sigma0 = reference_uncertainty or 0.0
    combined = math.hypot(sigma, sigma0)
    if combined == 0 or not math.isfinite(combined):
        return None
    return (value - reference_value) / combined


def classify(
    observable,
    reference_value,
    reference_uncertainty,
    *,
    detection_sigma=DETECTION_SIGMA,
    quantification_sigma=QUANTIFICATION_SIGMA,
):
    """Grade ``observable`` by the magnitude of its Z-score.

    ``|Z| > quantification_sigma`` is QUANTIFIABLE, ``|Z| > detection_sigma``
    DETECTABLE, anything else NOT_DETECTABLE. Both ``z`` and ``verdict``
    are ``None`` when the Z-score is undefined.
    """
    z = z_score(observable, reference_value, reference_uncertainty)
    if z is None:
        return Detectability(None, None)
    if abs(z) > quantification_sigma:
        verdict = Verdict.QUANTIFIABLE
    elif abs(z) > detection_sigma:
        verdict = Verdict.DETECTABLE
    else:
        verdict = Verdict.NOT_DETECTABLE
    return Detectability(z, verdict)


def estimate_lod(
    slope,
    reference_uncertainty,
    detection_sigma=DETECTION_SIGMA,
    quantification_sigma=QUANTIFICATION_SIGMA,
):
    """Return the theoretical ``(LOD, LOQ)`` for calibration slope ``slope``."""
    if slope is None or slope == 0:
        return math.inf, math.inf
    k = abs(slope)
    return (
        detection_sigma * reference_uncertainty / k,
        quantification_sigma * reference_uncertainty / k,
    )


def projected_z(z, event_factor):
    """Z-score expected after multiplying the event count by ``event_factor``."""
    if z is None:
        return None
    return z * math.sqrt(event_factor)


def required_event_factor(z, target=DETECTION_SIGMA, floor=Z_SCORE_FLOOR):
    """Event-count multiplier needed to bring ``|z|`` up to ``target``.

    ``None`` when ``|z|`` is below ``floor``: there is no signal to scale.
    """
    if z is None or abs(z) < floor:
        return None
    return (target / abs(z)) ** 2


def event_factor_for_improvement(k):
    """Event-count multiplier that shrinks the statistical error ``k``-fold."""
    return float(k) ** 2


def normalize_uncertainty(sigma, entries, reference_entries):
    """Scale ``sigma`` to what it would be at ``reference_entries`` events.

    Statistical errors shrink as ``1/sqrt(N)``, so ``sigma`` measured with
    ``entries`` events becomes ``sigma*sqrt(entries/reference_entries)``.
    """
    if sigma is None or not entries or not reference_entries:
        return sigma
    return sigma * math.sqrt(entries / reference_entries)


def observed_limits(results):
    """Return the observed ``(LOD, LOQ)`` concentrations of a sweep.

    Only ``ok`` fine-sweep samples other than the reference are considered.
    LOD is the lowest concentration graded DETECTABLE or better, LOQ the
    lowest graded QUANTIFIABLE; either is ``None`` when never reached.
    """
    lod = loq = None
    candidates = sorted(
        (
            r
            for r in results
            if r.ok and r.sweep == "fine" and not r.reference and r.verdict is not None
        ),
        key=lambda r: r.concentration,
    )
    for r in candidates:
        if lod is None and r.verdict >= Verdict.DETECTABLE:
            lod = r.concentration
        if loq is None and r.verdict >= Verdict.QUANTIFIABLE:
            loq = r.concentration
    return lod, loq
