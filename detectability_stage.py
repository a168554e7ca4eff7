"""
detectability_stage.py

Grade every sample against the reference and derive detection limits.
"""

import logging
from typing import Any, Mapping

from analysis_helpers import _float_with_default
from constants import DETECTION_SIGMA, QUANTIFICATION_SIGMA
from detectability import (
    Verdict,
    classify,
    estimate_lod,
    normalize_uncertainty,
    observed_limits,
    required_event_factor,
    z_score,
)
from observables import Observable

logger = logging.getLogger(__name__)


def run_detectability_stage(results, reference, cfg: Mapping[str, Any], calibration=None) -> dict:
    """Fill in Z-scores and verdicts on ``results`` and summarise the sweep.

    Parameters
    ----------
    results : list of SampleResult
        Output of :func:`sample_stage.run_sample_stage`; updated in place.
    reference : ReferenceContext
        Reference sample supplying ``v0`` and the blank ``sigma0``.
    cfg : dict
        Configuration; ``analysis.observable`` selects the graded observable.
    calibration : CalibrationModel, optional
        Fitted curve whose slope gives the theoretical LOD/LOQ.

    Returns
    -------
    dict
        Thresholds, observed and theoretical limits and verdict counts.
    """
    analysis = cfg.get("analysis", {})
    kind = analysis.get("observable", "Q")
    det_sigma = _float_with_default(analysis.get("detection_sigma"), DETECTION_SIGMA)
    quant_sigma = _float_with_default(analysis.get("quantification_sigma"), QUANTIFICATION_SIGMA)

    ref_obs = reference.observable(kind)
    v0 = ref_obs.value
    s0 = reference.blank_uncertainty(kind)
    if not ref_obs.defined:
        logger.warning(
            "Reference %s is undefined (%s); Z-scores cannot be computed",
            kind,
            ref_obs.reason,
        )

    for r in results:
        if not r.ok:
            continue
        obs = r.observables.get(kind)
        if obs is None:
            continue
        graded = classify(
            obs,
            v0,
            s0,
            detection_sigma=det_sigma,
            quantification_sigma=quant_sigma,
        )
        r.z = graded.z
        r.verdict = graded.verdict
        if obs.defined and r.entries and reference.entries:
            scaled = Observable(
                obs.kind,
                obs.value,
                normalize_uncertainty(obs.uncertainty, r.entries, reference.entries),
            )
            r.z_normalized = z_score(scaled, v0, s0)
        if not r.reference:
            r.events_factor = required_event_factor(r.z, target=det_sigma)
            logger.debug(
                "%s: %s=%s Z=%s -> %s",
                r.label,
                kind,
                obs.value,
                r.z,
                r.verdict.label if r.verdict is not None else "undefined",
            )

    lod_obs, loq_obs = observed_limits(results)
    out = {
        "observable": kind,
        "reference_value": v0,
        "reference_uncertainty": s0,
        "detection_sigma": det_sigma,
        "quantification_sigma": quant_sigma,
        "lod_observed": lod_obs,
        "loq_observed": loq_obs,
        "lod_theoretical": None,
        "loq_theoretical": None,
        "verdict_counts": {
            v.label: sum(1 for r in results if r.ok and not r.reference and r.verdict is v)
            for v in Verdict
        },
    }

    if calibration is not None and s0 is not None:
        lod, loq = estimate_lod(calibration.slope, s0, det_sigma, quant_sigma)
        out["lod_theoretical"] = lod
        out["loq_theoretical"] = loq

    logger.info(
        "Observed LOD=%s LOQ=%s, theoretical LOD=%s LOQ=%s (%s)",
        lod_obs,
        loq_obs,
        out["lod_theoretical"],
        out["loq_theoretical"],
        kind,
    )
    return out


__all__ = ["run_detectability_stage"]
