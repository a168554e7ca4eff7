import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
from scipy.optimize import curve_fit

from constants import CURVE_FIT_MAX_EVALS, safe_exp as _safe_exp
from observables import Observable

logger = logging.getLogger(__name__)

MIN_FIT_POINTS = 3


class CalibrationFitError(RuntimeError):
    """Raised when a calibration curve cannot be fitted."""


class InsufficientPoints(CalibrationFitError):
    """Raised when fewer than ``MIN_FIT_POINTS`` points survive filtering."""


@dataclass(frozen=True)
class CalibrationModel:
    """Fitted observable-vs-concentration curve.

    ``params`` is ``(theta0, theta1)``: intercept and slope for the linear
    model ``y = theta0 + theta1*c``, amplitude and decay constant for the
    exponential model ``y = theta0*exp(-theta1*c)``.
    """

    model: str
    params: Tuple[float, float]
    errors: Tuple[float, float]
    cov: np.ndarray = field(repr=False, compare=False)
    chi2: float
    ndf: int
    n_points: int
    fit_domain: Tuple[Optional[float], Optional[float]] = (None, None)
    observable: Optional[str] = None

    @property
    def slope(self) -> float:
        """Local sensitivity ``dy/dc`` at zero concentration."""
        if self.model == "linear":
            return self.params[1]
        return -self.params[0] * self.params[1]

    @property
    def slope_error(self) -> float:
        if self.model == "linear":
            return self.errors[1]
        a, b = self.params
        grad = np.array([-b, -a])
        return float(math.sqrt(max(grad @ self.cov @ grad, 0.0)))

    @property
    def chi2_ndf(self) -> Optional[float]:
        return self.chi2 / self.ndf if self.ndf > 0 else None

    def predict(self, concentration):
        c = np.asarray(concentration, dtype=float)
        a, b = self.params
        if self.model == "linear":
            out = a + b * c
        else:
            out = a * _safe_exp(-b * c)
        return float(out) if np.ndim(out) == 0 else out

    def invert(self, value, uncertainty=0.0):
        """Return ``(concentration, sigma)`` for a measured observable.

        ``(None, None)`` is returned when the model cannot be inverted at
        ``value`` (flat curve, or non-positive value for the exponential).
        """
        a, b = self.params
        if value is None or b == 0:
            return None, None
        sigma = 0.0 if uncertainty is None else float(uncertainty)
        if self.model == "linear":
            return (value - a) / b, sigma / abs(b)
        if value <= 0 or a <= 0:
            return None, None
        return -math.log(value / a) / b, sigma / (abs(b) * value)

    def to_dict(self):
        return {
            "model": self.model,
            "observable": self.observable,
            "params": list(self.params),
            "errors": list(self.errors),
            "cov": np.asarray(self.cov).tolist(),
            "chi2": self.chi2,
            "ndf": self.ndf,
            "chi2_ndf": self.chi2_ndf,
            "n_points": self.n_points,
            "fit_domain": list(self.fit_domain),
            "slope": self.slope,
            "slope_error": self.slope_error,
        }


def _as_triple(point):
    if isinstance(point, Observable):
        return point.concentration, point.value, point.uncertainty
    c, y, s = point
    return c, y, s


def _usable_points(points, domain):
    """Return ``(c, y, sigma)`` arrays of the points a fit may use."""
    lo, hi = domain if domain is not None else (None, None)
    cs, ys, ss = [], [], []
    for point in points:
        c, y, s = _as_triple(point)
        if c is None or y is None or s is None:
            continue
        c, y, s = float(c), float(y), float(s)
        if not (math.isfinite(c) and math.isfinite(y) and math.isfinite(s)):
            continue
        if s <= 0:
            continue
        if lo is not None and c < lo:
            continue
        if hi is not None and c > hi:
            continue
        cs.append(c)
        ys.append(y)
        ss.append(s)
    if len(cs) < MIN_FIT_POINTS:
        raise InsufficientPoints(
            f"{len(cs)} usable points, at least {MIN_FIT_POINTS} required"
        )
    return np.array(cs), np.array(ys), np.array(ss)


def _chi2(y, f, s):
    return float(np.sum(((y - f) / s) ** 2))


def fit_linear(points, *, domain=None, observable=None):
    """Weighted straight-line fit ``y = theta0 + theta1*c``.

    Parameters
    ----------
    points : iterable
        ``(concentration, value, uncertainty)`` triples or
        :class:`observables.Observable` instances.
    domain : tuple, optional
        Inclusive ``(lo, hi)`` concentration range; either end may be None.

    Raises
    ------
    InsufficientPoints
        If fewer than three points remain after filtering.
    """
    c, y, s = _usable_points(points, domain)
    coeffs, cov = np.polyfit(c, y, 1, w=1.0 / s, cov="unscaled")
    slope, intercept = float(coeffs[0]), float(coeffs[1])
    # polyfit orders parameters highest power first
    cov = np.array([[cov[1, 1], cov[1, 0]], [cov[0, 1], cov[0, 0]]])
    errors = np.sqrt(np.clip(np.diag(cov), 0.0, None))
    chi2 = _chi2(y, intercept + slope * c, s)
    logger.debug("Linear fit: y = %.6g + %.6g*c (chi2=%.3g)", intercept, slope, chi2)
    return CalibrationModel(
        model="linear",
        params=(intercept, slope),
        errors=(float(errors[0]), float(errors[1])),
        cov=cov,
        chi2=chi2,
        ndf=len(c) - 2,
        n_points=len(c),
        fit_domain=tuple(domain) if domain is not None else (None, None),
        observable=observable,
    )


def _exp_model(c, a, b):
    return a * _safe_exp(-b * c)


def fit_exponential(points, *, domain=None, observable=None):
    """Weighted fit of ``y = theta0*exp(-theta1*c)``.

    The starting point comes from a straight-line fit to ``ln y``; the
    uncertainties are treated as absolute.

    Raises
    ------
    InsufficientPoints
        If fewer than three points remain after filtering.
    CalibrationFitError
        If the minimiser does not converge or returns no covariance.
    """
    c, y, s = _usable_points(points, domain)

    pos = y > 0
    if pos.sum() >= 2:
        slope, intercept = np.polyfit(c[pos], np.log(y[pos]), 1, w=y[pos] / s[pos])
        p0 = [float(np.exp(intercept)), float(-slope)]
    else:
        p0 = [float(np.mean(y)) or 1.0, 0.0]

    try:
        popt, pcov = curve_fit(
            _exp_model,
            c,
            y,
            p0=p0,
            sigma=s,
            absolute_sigma=True,
            maxfev=CURVE_FIT_MAX_EVALS,
        )
    except (RuntimeError, ValueError) as e:
        raise CalibrationFitError(f"Exponential fit failed: {e}") from e

    if not np.all(np.isfinite(pcov)):
        raise CalibrationFitError("Exponential fit returned no covariance")

    a, b = float(popt[0]), float(popt[1])
    errors = np.sqrt(np.clip(np.diag(pcov), 0.0, None))
    chi2 = _chi2(y, _exp_model(c, a, b), s)
    logger.debug("Exponential fit: y = %.6g*exp(-%.6g*c) (chi2=%.3g)", a, b, chi2)
    return CalibrationModel(
        model="exponential",
        params=(a, b),
        errors=(float(errors[0]), float(errors[1])),
        cov=np.asarray(pcov, dtype=float),
        chi2=chi2,
        ndf=len(c) - 2,
        n_points=len(c),
        fit_domain=tuple(domain) if domain is not None else (None, None),
        observable=observable,
    )


def fit_calibration(points, model="linear", **kwargs):
    """Dispatch to :func:`fit_linear` or :func:`fit_exponential`."""
    if model == "linear":
        return fit_linear(points, **kwargs)
    if model == "exponential":
        return fit_exponential(points, **kwargs)
    raise ValueError(f"Unknown calibration model '{model}'")


__all__ = [
    "CalibrationFitError",
    "InsufficientPoints",
    "CalibrationModel",
    "MIN_FIT_POINTS",
    "fit_linear",
    "fit_exponential",
    "fit_calibration",
]
