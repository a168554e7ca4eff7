"""
observables.py

Transmission-derived observables with first-order error propagation.

For a photopeak with net counts ``I`` (sample) and ``I0`` (reference):

    T = I / I0                        transmission
    L = -ln T                         attenuation
    R = L_low / L_high                dual-energy ratio
    delta = L_low - L_high            dual-energy difference
    Q = N_low / N_high                count ratio within one sample

Every function returns an :class:`Observable`. Degenerate inputs never
raise; they give an UNDEFINED observable (``value is None``) with a short
``reason``.
"""

import math
from dataclasses import dataclass, replace
from typing import Optional

from constants import COUNT_RATIO_FLOOR, RATIO_L_HIGH_FLOOR

__all__ = [
    "Observable",
    "compute_transmission",
    "compute_attenuation",
    "compute_ratio",
    "compute_difference",
    "compute_count_ratio",
    "compute_observables",
    "blank_uncertainty",
]


@dataclass(frozen=True)
class Observable:
    kind: str
    value: Optional[float]
    uncertainty: Optional[float] = None
    concentration: Optional[float] = None
    reason: Optional[str] = None

    @classmethod
    def undefined(cls, kind, reason, concentration=None):
        return cls(kind, None, None, concentration, reason)

    @property
    def defined(self) -> bool:
        return self.value is not None

    def at(self, concentration):
        """Return a copy tagged with ``concentration``."""
        return replace(self, concentration=concentration)

    def __iter__(self):
        yield self.value
        yield self.uncertainty


def compute_transmission(measurement, reference, *, normalized=False, kind="T"):
    """Return ``T = I/I0`` with ``errT = T*sqrt((sI/I)^2 + (sI0/I0)^2)``.

    The reference compared with itself (the same object) gives exactly
    ``(1, 0)``. Separate measurements with equal counts are independent
    draws and keep the full error.
    """
    if measurement is reference:
        return Observable(kind, 1.0, 0.0)

    i, si = measurement.counts(normalized)
    i0, si0 = reference.counts(normalized)
    if i0 <= 0:
        return Observable.undefined(kind, "reference net counts <= 0")
    if i == 0:
        return Observable.undefined(kind, "net counts == 0")

    t = i / i0
    err = abs(t) * math.sqrt((si / i) ** 2 + (si0 / i0) ** 2)
    return Observable(kind, t, err)


def _attenuation_kind(kind):
    if kind.startswith("T"):
        return "L" + kind[1:]
    return kind


def compute_attenuation(transmission, *, kind=None):
    """Return ``L = -ln T`` with ``errL = errT/T``."""
    kind = kind or _attenuation_kind(transmission.kind)
    conc = transmission.concentration
    if not transmission.defined:
        return Observable.undefined(kind, transmission.reason, conc)
    t, err_t = transmission
    if t <= 0:
        return Observable.undefined(kind, "transmission <= 0", conc)
    return Observable(kind, -math.log(t), err_t / t, conc)


def compute_ratio(l_low, l_high, *, floor=RATIO_L_HIGH_FLOOR, kind="R"):
    """Return ``R = L_low/L_high``.

    Only evaluated when ``L_high > floor``. Differentiating ``R`` with respect
    to the four counts ``(I, I0, J, J0)`` and summing in quadrature gives
    ``errR = sqrt(errL_low^2 + R^2 errL_high^2) / L_high``.
    """
    conc = l_low.concentration
    if not l_low.defined:
        return Observable.undefined(kind, l_low.reason, conc)
    if not l_high.defined:
        return Observable.undefined(kind, l_high.reason, conc)
    if not l_high.value > floor:
        return Observable.undefined(kind, f"L_high <= {floor:g}", conc)
    r = l_low.value / l_high.value
    err = math.sqrt(l_low.uncertainty ** 2 + r ** 2 * l_high.uncertainty ** 2) / l_high.value
    return Observable(kind, r, err, conc)


def compute_difference(l_low, l_high, *, kind="delta"):
    """Return ``L_low - L_high`` with errors added in quadrature."""
    conc = l_low.concentration
    for part in (l_low, l_high):
        if not part.defined:
            return Observable.undefined(kind, part.reason, conc)
    value = l_low.value - l_high.value
    err = math.hypot(l_low.uncertainty, l_high.uncertainty)
    return Observable(kind, value, err, conc)


def compute_count_ratio(peak_low, peak_high, *, floor=COUNT_RATIO_FLOOR, kind="Q"):
    """Return ``Q = N_low/N_high`` of one sample from its raw net counts.

    ``errQ = sqrt((sN_low/N_high)^2 + (N_low*sN_high/N_high^2)^2)``, which is
    ``Q*sqrt((sN_low/N_low)^2 + (sN_high/N_high)^2)`` written so that it
    stays finite at ``N_low == 0``. Any common event-count scaling cancels,
    so the normalisation factor is not applied.
    """
    n_low, s_low = peak_low.net_counts, peak_low.error
    n_high, s_high = peak_high.net_counts, peak_high.error
    if n_high <= floor:
        return Observable.undefined(kind, f"high-energy net counts <= {floor:g}")
    q = n_low / n_high
    err = math.sqrt((s_low / n_high) ** 2 + (n_low * s_high / n_high ** 2) ** 2)
    return Observable(kind, q, err)


def compute_observables(
    low,
    high,
    reference,
    *,
    concentration=None,
    normalized=False,
    ratio_floor=RATIO_L_HIGH_FLOOR,
):
    """Return every observable of one sample keyed by kind.

    ``reference`` provides the reference sample's ``low`` and ``high``
    :class:`peaks.PeakMeasurement`.
    """
    t_low = compute_transmission(low, reference.low, normalized=normalized, kind="T_low")
    t_high = compute_transmission(high, reference.high, normalized=normalized, kind="T_high")
    l_low = compute_attenuation(t_low)
    l_high = compute_attenuation(t_high)
    out = {
        "T_low": t_low,
        "T_high": t_high,
        "L_low": l_low,
        "L_high": l_high,
        "R": compute_ratio(l_low, l_high, floor=ratio_floor),
        "delta": compute_difference(l_low, l_high),
        "Q": compute_count_ratio(low, high),
    }
    return {k: v.at(concentration) for k, v in out.items()}


def blank_uncertainty(low, high, kind, *, floor=COUNT_RATIO_FLOOR):
    """Counting uncertainty of the reference's own value of ``kind``.

    The reference compared with itself has zero error by construction, so
    the blank spread comes from its peak errors: ``sI0/I0`` for the low line,
    ``sJ0/J0`` for the high line and both in quadrature for ``delta``. ``R``
    is undefined at the reference (``0/0``) and gives ``None``.
    """
    rel_low = low.error / low.net_counts if low.net_counts > 0 else None
    rel_high = high.error / high.net_counts if high.net_counts > 0 else None
    if kind in ("T_low", "L_low"):
        return rel_low
    if kind in ("T_high", "L_high"):
        return rel_high
    if kind == "delta":
        if rel_low is None or rel_high is None:
            return None
        return math.hypot(rel_low, rel_high)
    if kind == "Q":
        return compute_count_ratio(low, high, floor=floor).uncertainty
    return None
