import math

import numpy as np
import pytest

from background import sideband_windows, estimate_sideband_background
from peaks import PeakMeasurement, integrate_peak, normalization_factor
from spectrum import Spectrum
from synthetic_dataset import synthetic_spectrum, gaussian_counts


def test_windows_for_low_line():
    spec = Spectrum.from_counts(np.zeros(1600), 0.0, 1600.0)
    w = sideband_windows(spec, 121.78, 12.0)
    assert (w.peak.first, w.peak.last) == (109, 133)
    assert (w.left.first, w.left.last) == (97, 108)
    assert (w.right.first, w.right.last) == (134, 145)
    assert w.peak.n_bins == 25
    assert w.sideband_bins == 24


def test_flat_background_plus_gaussian_recovers_area():
    spec = synthetic_spectrum(0.0)
    low = integrate_peak(spec, 121.78, 12.0)
    assert low.background == pytest.approx(25000.0, rel=1e-4)
    assert low.net_counts == pytest.approx(12500.0, rel=1e-3)
    assert low.error == pytest.approx(math.sqrt(low.raw_counts + low.background))
    assert low.valid

    high = integrate_peak(spec, 778.90, 20.0)
    assert high.peak_bins == 41
    assert high.sideband_bins == 40
    assert high.background == pytest.approx(41000.0, rel=1e-4)
    assert high.net_counts == pytest.approx(20000.0, rel=1e-3)
    assert high.valid


def test_net_counts_not_clamped():
    counts = np.full(200, 10.0)
    counts[95:106] = 2.0  # dip below the background
    spec = Spectrum.from_counts(counts, 0.0, 200.0)
    m = integrate_peak(spec, 100.0, 5.0)
    assert m.net_counts < 0
    assert not m.valid


def test_small_peak_not_valid():
    edges = np.linspace(0.0, 200.0, 201)
    counts = np.full(200, 100.0) + gaussian_counts(edges, 100.0, 2.0, 50.0)
    spec = Spectrum.from_counts(counts, 0.0, 200.0)
    m = integrate_peak(spec, 100.0, 8.0)
    assert m.net_counts > 0
    assert m.net_counts < 3 * m.error
    assert not m.valid


def test_sideband_outside_histogram_gives_zero_background():
    counts = np.full(100, 7.0)
    spec = Spectrum.from_counts(counts, 0.0, 100.0)
    windows = sideband_windows(spec, 5.0, 4.0)
    assert windows.left.empty
    background, sideband_sum = estimate_sideband_background(spec, windows)
    assert background == 0.0
    assert sideband_sum == 0.0

    m = integrate_peak(spec, 5.0, 4.0)
    assert m.background == 0.0
    assert m.net_counts == m.raw_counts

    upper = integrate_peak(spec, 95.0, 4.0)
    assert upper.background == 0.0


def test_none_spectrum_gives_empty_measurement():
    m = integrate_peak(None, 121.78, 12.0)
    assert m == PeakMeasurement(121.78, 12.0)
    assert m.net_counts == 0.0
    assert not m.valid


def test_normalization_scales_net_and_error():
    spec = synthetic_spectrum(0.0)
    m = integrate_peak(spec, 121.78, 12.0, normalization=2.0)
    assert m.normalized_net == pytest.approx(2.0 * m.net_counts)
    assert m.normalized_error == pytest.approx(2.0 * m.error)
    assert m.counts(normalized=True) == (m.normalized_net, m.normalized_error)


def test_normalization_factor():
    assert normalization_factor(500, 1000) == 2.0
    assert normalization_factor(0, 1000) == 1.0
    assert normalization_factor(1000, None) == 1.0
