"""Quick look at a full Eu-152 spectrum: which lines are visible and how
many counts sit in the regions used by the analysis."""

import logging
from dataclasses import dataclass

import numpy as np
from scipy.signal import find_peaks

from constants import EU152_LINES_KEV, MIN_HIGH_LINE_COUNTS

logger = logging.getLogger(__name__)

__all__ = ["FoundPeak", "DIAGNOSTIC_ROIS", "find_photopeaks", "roi_counts", "diagnose_spectrum"]


# Fixed diagnostic windows in keV, keyed by the line they bracket
DIAGNOSTIC_ROIS = {
    "122": (100.0, 140.0),
    "344": (320.0, 370.0),
    "779": (750.0, 810.0),
    "1408": (1380.0, 1440.0),
}


@dataclass(frozen=True)
class FoundPeak:
    energy: float
    height: float
    nearest_line: str
    line_energy: float

    @property
    def offset(self) -> float:
        return self.energy - self.line_energy


def find_photopeaks(
    spectrum,
    known_lines=None,
    *,
    sigma_bins=3.0,
    threshold=0.05,
    max_peaks=30,
):
    """Locate peaks in ``spectrum`` and match each to the nearest known line.

    Peaks must be at least ``threshold`` times the tallest bin and roughly
    ``sigma_bins`` wide. At most ``max_peaks`` of the most prominent peaks
    are kept. The result is sorted by energy.
    """
    lines = EU152_LINES_KEV if known_lines is None else known_lines
    counts = np.asarray(spectrum.counts, dtype=float)
    if counts.size == 0 or counts.max() <= 0:
        return []

    idx, props = find_peaks(
        counts,
        height=threshold * counts.max(),
        prominence=threshold * counts.max(),
        width=max(sigma_bins / 2.0, 1.0),
    )
    if idx.size > max_peaks:
        order = np.argsort(props["prominences"])[::-1][:max_peaks]
        idx = idx[np.sort(order)]

    centers = spectrum.centers
    names = list(lines)
    energies = np.array([lines[k] for k in names], dtype=float)
    found = []
    for i in idx:
        e = float(centers[i])
        j = int(np.argmin(np.abs(energies - e)))
        found.append(
            FoundPeak(
                energy=e,
                height=float(counts[i]),
                nearest_line=names[j],
                line_energy=float(energies[j]),
            )
        )
    return sorted(found, key=lambda p: p.energy)


def roi_counts(spectrum, rois=None):
    """Return ``{name: counts}`` integrated between the bins of each window."""
    rois = DIAGNOSTIC_ROIS if rois is None else rois
    out = {}
    for name, (lo, hi) in rois.items():
        out[name] = spectrum.integral(spectrum.find_bin(lo), spectrum.find_bin(hi))
    return out


def diagnose_spectrum(spectrum, *, high_line="1408", min_counts=MIN_HIGH_LINE_COUNTS):
    """Summarise ``spectrum`` and warn when the high-energy line is starved.

    Returns a dictionary with the histogram statistics, the matched peaks
    and the ROI contents, suitable for ``summary.json``.
    """
    counts = np.asarray(spectrum.counts, dtype=float)
    total = counts.sum()
    centers = spectrum.centers
    if total > 0:
        mean = float(np.sum(centers * counts) / total)
        rms = float(np.sqrt(np.sum(counts * (centers - mean) ** 2) / total))
    else:
        mean = rms = 0.0

    peaks = find_photopeaks(spectrum)
    rois = roi_counts(spectrum)
    for p in peaks:
        logger.debug(
            "Peak at %.2f keV (%d counts) -> %s keV line (diff %.1f)",
            p.energy,
            p.height,
            p.nearest_line,
            p.offset,
        )

    starved = high_line in rois and rois[high_line] < min_counts
    if starved:
        alternatives = ", ".join(
            f"{k} keV ({rois[k]:.0f} counts)" for k in ("779", "344") if k in rois and k != high_line
        )
        logger.warning(
            "Low statistics in the %s keV region of %s (%.0f counts); consider %s",
            high_line,
            spectrum.label or "spectrum",
            rois[high_line],
            alternatives,
        )

    return {
        "label": spectrum.label,
        "entries": spectrum.entries,
        "mean_keV": mean,
        "rms_keV": rms,
        "max_bin_keV": float(centers[int(np.argmax(counts))]),
        "peaks": [
            {
                "energy_keV": p.energy,
                "height": p.height,
                "line": p.nearest_line,
                "offset_keV": p.offset,
            }
            for p in peaks
        ],
        "roi_counts": rois,
        "low_statistics": bool(starved),
    }
