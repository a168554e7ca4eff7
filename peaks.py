"""
peaks.py

Photopeak integration with sideband background subtraction.
"""

import logging
import math
from dataclasses import dataclass, asdict

from background import sideband_windows, estimate_sideband_background
from constants import PEAK_SIGNIFICANCE_SIGMA

logger = logging.getLogger(__name__)

__all__ = ["PeakMeasurement", "integrate_peak", "normalization_factor"]


@dataclass(frozen=True)
class PeakMeasurement:
    """Net counts of one photopeak.

    ``net_counts`` is ``raw_counts - background`` and is never clamped, so a
    peak smaller than its background stays negative. ``normalization`` is
    the event-count factor ``N_ref / N`` carried into ``normalized_net`` and
    ``normalized_error``.
    """

    center: float
    half_width: float
    raw_counts: float = 0.0
    background: float = 0.0
    net_counts: float = 0.0
    error: float = 0.0
    valid: bool = False
    peak_bins: int = 0
    sideband_bins: int = 0
    normalization: float = 1.0

    @property
    def normalized_net(self) -> float:
        return self.net_counts * self.normalization

    @property
    def normalized_error(self) -> float:
        return self.error * self.normalization

    def counts(self, normalized=False):
        """Return ``(net, error)``, optionally scaled to the reference events."""
        if normalized:
            return self.normalized_net, self.normalized_error
        return self.net_counts, self.error

    def to_dict(self):
        out = asdict(self)
        out["normalized_net"] = self.normalized_net
        out["normalized_error"] = self.normalized_error
        return out


def normalization_factor(entries, reference_entries):
    """Return ``reference_entries / entries`` or ``1.0`` when undefined."""
    if not entries or entries <= 0 or not reference_entries or reference_entries <= 0:
        return 1.0
    return float(reference_entries) / float(entries)


def integrate_peak(spectrum, center, half_width, *, normalization=1.0):
    """Integrate the photopeak at ``center`` +/- ``half_width`` keV.

    The background under the peak is taken from two sidebands of width
    ``half_width`` on either side of the window (see
    :func:`background.sideband_windows`). The statistical error is
    ``sqrt(raw + background)`` and the peak is flagged ``valid`` when the
    net counts are positive and exceed three standard errors.

    Parameters
    ----------
    spectrum : Spectrum or None
        Histogram to integrate. ``None`` yields a zero-valued, invalid
        measurement.
    center, half_width : float
        Peak centroid and half-width in keV.
    normalization : float, optional
        Event-count factor stored on the measurement.

    Returns
    -------
    PeakMeasurement
    """
    if spectrum is None:
        return PeakMeasurement(center=float(center), half_width=float(half_width))

    windows = sideband_windows(spectrum, center, half_width)
    raw = spectrum.integral(windows.peak.first, windows.peak.last)
    background, _ = estimate_sideband_background(spectrum, windows)
    net = raw - background
    error = math.sqrt(max(raw + background, 0.0))
    valid = net > 0 and net > PEAK_SIGNIFICANCE_SIGMA * error

    if windows.left.empty or windows.right.empty:
        logger.debug(
            "%s: sideband at %.2f keV leaves the histogram, background set to 0",
            spectrum.label or "spectrum",
            center,
        )

    return PeakMeasurement(
        center=float(center),
        half_width=float(half_width),
        raw_counts=float(raw),
        background=float(background),
        net_counts=float(net),
        error=float(error),
        valid=bool(valid),
        peak_bins=windows.peak.n_bins,
        sideband_bins=windows.sideband_bins,
        normalization=float(normalization),
    )
