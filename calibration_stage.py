"""
calibration_stage.py

Calibration pipeline stage.

Handles:
- Fitting the selected observable against concentration (linear or
  exponential model, optional fit range)
- Inverse concentration estimates and bias for every sample
- Ranking of the candidate observables by calibration precision
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from analysis_helpers import _fit_domain
from calibration import CalibrationFitError, CalibrationModel, fit_calibration, fit_linear

logger = logging.getLogger(__name__)

DEFAULT_COMPARE_KINDS = ("R", "Q", "delta", "L_low")


def _fit_points(results, kind):
    """Return the observables of ``kind`` usable as calibration points.

    The reference is the origin of every transmission-based observable, so
    it only enters the fit for the count ratio ``Q``.
    """
    points = []
    for r in results:
        if not r.ok or (r.reference and kind != "Q"):
            continue
        obs = r.observables.get(kind)
        if obs is not None and obs.defined:
            points.append(obs)
    return points


def inverse_estimates(results, model: CalibrationModel, kind: str) -> List[dict]:
    """Invert ``model`` for every non-reference sample.

    Each result gets ``estimate``, ``estimate_error`` and ``bias`` (estimate
    minus nominal concentration).
    """
    rows = []
    for r in results:
        if not r.ok or r.reference:
            continue
        obs = r.observables.get(kind)
        if obs is None or not obs.defined:
            continue
        c_est, sigma = model.invert(obs.value, obs.uncertainty)
        if c_est is None:
            continue
        r.estimate = c_est
        r.estimate_error = sigma
        r.bias = c_est - r.concentration
        rows.append(
            {
                "sample": r.label,
                "concentration": r.concentration,
                "estimate": c_est,
                "estimate_error": sigma,
                "bias": r.bias,
            }
        )
    return rows


def compare_observables(results, kinds=DEFAULT_COMPARE_KINDS, *, domain=None) -> dict:
    """Fit each observable linearly and rank them by precision.

    Precision is the mean uncertainty of the non-reference points divided
    by ``|slope|``: the concentration step that one standard error spans.
    The best observable has the smallest precision.
    """
    rows = []
    for kind in kinds:
        points = _fit_points(results, kind)
        row: Dict[str, Any] = {
            "observable": kind,
            "slope": None,
            "slope_error": None,
            "chi2_ndf": None,
            "n_points": len(points),
            "mean_uncertainty": None,
            "precision": None,
            "error": None,
        }
        try:
            model = fit_linear(points, domain=domain, observable=kind)
        except CalibrationFitError as e:
            row["error"] = str(e)
            logger.debug("Observable %s not fitted: %s", kind, e)
            rows.append(row)
            continue
        sigmas = [
            p.uncertainty
            for p in points
            if p.uncertainty and p.concentration is not None and p.concentration > 0
        ]
        mean_sigma = float(np.mean(sigmas)) if sigmas else None
        row.update(
            slope=model.slope,
            slope_error=model.slope_error,
            chi2_ndf=model.chi2_ndf,
            n_points=model.n_points,
            mean_uncertainty=mean_sigma,
        )
        if mean_sigma is not None and model.slope != 0:
            row["precision"] = mean_sigma / abs(model.slope)
        rows.append(row)

    ranked = [r for r in rows if r["precision"] is not None]
    best = min(ranked, key=lambda r: r["precision"])["observable"] if ranked else None
    if best is not None:
        logger.info("Most precise observable: %s", best)
    return {"rows": rows, "best": best}


def run_calibration_stage(
    results, cfg: Mapping[str, Any]
) -> Tuple[Optional[CalibrationModel], Dict[str, Any]]:
    """
    Fit the calibration curve of the configured observable.

    Returns:
        tuple: (model or None, calibration summary). A failed fit is logged
        and recorded under ``error``; the run continues without a model.
    """
    analysis = cfg.get("analysis", {})
    kind = analysis.get("observable", "Q")
    model_name = analysis.get("fit_model", "linear")
    domain = _fit_domain(cfg)

    summary: Dict[str, Any] = {
        "observable": kind,
        "model": model_name,
        "fit_domain": list(domain) if domain else None,
        "error": None,
    }

    points = _fit_points(results, kind)
    try:
        model = fit_calibration(points, model_name, domain=domain, observable=kind)
    except CalibrationFitError as e:
        logger.warning("Calibration fit of %s failed: %s", kind, e)
        summary["error"] = str(e)
        return None, summary

    summary.update(model.to_dict())
    logger.info(
        "Calibration %s (%s): theta0=%.6g +/- %.2g, theta1=%.6g +/- %.2g, chi2/ndf=%s",
        kind,
        model.model,
        model.params[0],
        model.errors[0],
        model.params[1],
        model.errors[1],
        f"{model.chi2_ndf:.3g}" if model.chi2_ndf is not None else "n/a",
    )
    return model, summary


__all__ = [
    "DEFAULT_COMPARE_KINDS",
    "inverse_estimates",
    "compare_observables",
    "run_calibration_stage",
]
