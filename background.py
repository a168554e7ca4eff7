from dataclasses import dataclass

__all__ = [
    "BinRange",
    "SidebandWindows",
    "sideband_windows",
    "estimate_sideband_background",
]


@dataclass(frozen=True)
class BinRange:
    """Inclusive range of 0-based bin indices; empty when ``last < first``."""

    first: int
    last: int

    @property
    def n_bins(self) -> int:
        return max(self.last - self.first + 1, 0)

    @property
    def empty(self) -> bool:
        return self.n_bins == 0


EMPTY_RANGE = BinRange(0, -1)


@dataclass(frozen=True)
class SidebandWindows:
    peak: BinRange
    left: BinRange
    right: BinRange

    @property
    def sideband_bins(self) -> int:
        return self.left.n_bins + self.right.n_bins


def sideband_windows(spectrum, center, half_width):
    """Return the peak window and its two adjacent sidebands.

    Parameters
    ----------
    spectrum : Spectrum
        Histogram providing ``find_bin`` and ``bin_count``.
    center : float
        Peak centroid in keV.
    half_width : float
        Half-width ``w`` of the peak window in keV.

    Returns
    -------
    SidebandWindows
        ``peak`` covers ``[c-w, c+w]``, ``left`` covers ``[c-2w, c-w)`` and
        ``right`` covers ``(c+w, c+2w]``. A sideband that would extend
        outside the histogram is returned empty.
    """
    n = spectrum.bin_count
    w = float(half_width)
    c = float(center)

    peak_lo = spectrum.find_bin(c - w)
    peak_hi = spectrum.find_bin(c + w)
    peak = BinRange(max(peak_lo, 0), min(peak_hi, n - 1))

    left_lo = spectrum.find_bin(c - 2 * w)
    if left_lo < 0 or peak_lo < 0:
        left = EMPTY_RANGE
    else:
        left = BinRange(left_lo, peak_lo - 1)

    right_hi = spectrum.find_bin(c + 2 * w)
    if right_hi >= n or peak_hi >= n:
        right = EMPTY_RANGE
    else:
        right = BinRange(peak_hi + 1, right_hi)

    return SidebandWindows(peak=peak, left=left, right=right)


def estimate_sideband_background(spectrum, windows):
    """Scale the summed sideband counts to the width of the peak window.

    The background is assumed flat on each side of the peak, so the
    expected background under the peak is the sideband density times the
    number of peak bins. Returns ``(background, sideband_sum)``; both are
    exactly ``0.0`` when either sideband is empty.
    """
    if windows.left.empty or windows.right.empty or windows.peak.empty:
        return 0.0, 0.0
    left_sum = spectrum.integral(windows.left.first, windows.left.last)
    right_sum = spectrum.integral(windows.right.first, windows.right.last)
    sideband_sum = left_sum + right_sum
    background = sideband_sum * windows.peak.n_bins / windows.sideband_bins
    return float(background), float(sideband_sum)
