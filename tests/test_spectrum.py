import numpy as np
import pytest

from spectrum import Spectrum, build_spectrum, load_spectrum
from data_loading import EmptyDataset, DataSourceUnavailable


def test_build_spectrum_counts_and_overflow():
    energies = [-5.0, 0.0, 0.5, 1.0, 9.99, 10.0, 25.0, np.nan, np.inf]
    spec = build_spectrum(energies, bin_count=10, energy_min=0.0, energy_max=10.0)
    assert spec.underflow == 1
    assert spec.overflow == 2  # 10.0 is on the upper edge
    assert spec.entries == 7  # non-finite values are dropped
    assert spec.counts.sum() + spec.underflow + spec.overflow == spec.entries
    assert spec.counts[0] == 2
    assert spec.counts[1] == 1
    assert spec.counts[9] == 1


def test_counts_are_read_only():
    spec = build_spectrum([1.0, 2.0], bin_count=4, energy_min=0.0, energy_max=4.0)
    with pytest.raises(ValueError):
        spec.counts[0] = 5


def test_find_bin_edges():
    spec = Spectrum.from_counts(np.zeros(1600), 0.0, 1600.0)
    assert spec.bin_width == pytest.approx(1.0)
    assert spec.find_bin(0.0) == 0
    assert spec.find_bin(121.78) == 121
    assert spec.find_bin(1599.9) == 1599
    assert spec.find_bin(-0.1) == -1
    assert spec.find_bin(1600.0) == 1600


def test_integral_is_inclusive_and_clamped():
    spec = Spectrum.from_counts(np.arange(10, dtype=float), 0.0, 10.0)
    assert spec.integral(2, 4) == 2 + 3 + 4
    assert spec.integral(-5, 1) == 0 + 1
    assert spec.integral(8, 50) == 8 + 9
    assert spec.integral(5, 4) == 0.0


def test_from_counts_entries_include_out_of_range():
    spec = Spectrum.from_counts([1, 2, 3], 0.0, 3.0, underflow=4, overflow=5)
    assert spec.entries == 15


def test_invalid_range_rejected():
    with pytest.raises(ValueError):
        Spectrum.from_counts([1.0], 5.0, 5.0)


def test_load_spectrum_converts_mev(tmp_path):
    path = tmp_path / "sample.csv"
    path.write_text("Energy\n0.12178\n0.7789\n1.4085\n2.0\n")
    spec = load_spectrum(path, 1600, 0.0, 1600.0, unit="MeV")
    assert spec.entries == 4
    assert spec.overflow == 1
    assert spec.counts[121] == 1
    assert spec.counts[778] == 1
    assert spec.counts[1408] == 1
    assert spec.label == "sample"


def test_load_spectrum_kev_unit(tmp_path):
    path = tmp_path / "kev.csv"
    path.write_text("Energy\n121.78\n778.9\n")
    spec = load_spectrum(path, 1600, 0.0, 1600.0, unit="keV")
    assert spec.counts[121] == 1
    assert spec.counts[778] == 1


def test_load_spectrum_errors_propagate(tmp_path):
    with pytest.raises(DataSourceUnavailable):
        load_spectrum(tmp_path / "missing.csv")
    empty = tmp_path / "empty.csv"
    empty.write_text("Energy\n")
    with pytest.raises(EmptyDataset):
        load_spectrum(empty)
