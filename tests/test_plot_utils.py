import pytest

from calibration_stage import run_calibration_stage
from constants import HIGH_LINES, LOW_LINE
from data_loading import SampleSpec
from detectability_stage import run_detectability_stage
from plot_utils import plot_calibration, plot_detectability, plot_spectra, plot_zscore
from sample_stage import AnalysisSettings, run_sample_stage
from synthetic_dataset import small_kwargs, write_dataset


CFG = {"analysis": {"observable": "Q", "fit_model": "linear"}}


@pytest.fixture(scope="module")
def analysed(tmp_path_factory):
    d = tmp_path_factory.mktemp("plots")
    samples = []
    for conc in (0.0, 1.0, 2.0, 5.0):
        path = write_dataset(d / f"s{conc:g}.csv", conc, **small_kwargs())
        samples.append(SampleSpec(path, conc, "fine", conc == 0.0))
    samples.append(SampleSpec(d / "missing.csv", 3.0, "fine"))
    settings = AnalysisSettings(low_line=LOW_LINE, high_line=HIGH_LINES["779"])
    reference, results = run_sample_stage(samples, settings, max_workers=1)
    model, _ = run_calibration_stage(results, CFG)
    limits = run_detectability_stage(results, reference, CFG, calibration=model)
    return results, model, limits


def test_plot_calibration(tmp_path, analysed):
    results, model, _ = analysed
    targets = plot_calibration(results, model, "Q", tmp_path / "cal.png", config={"plot_save_formats": ["png", "pdf"]})
    assert set(targets) == {"png", "pdf"}
    assert all(p.is_file() for p in targets.values())


def test_plot_calibration_without_model(tmp_path, analysed):
    results, _, _ = analysed
    targets = plot_calibration(results, None, "R", tmp_path / "cal.png")
    assert targets["png"].is_file()


def test_plot_zscore_and_detectability(tmp_path, analysed):
    results, _, limits = analysed
    z = plot_zscore(results, tmp_path / "z.png", config={"color_scheme": "grayscale"})
    d = plot_detectability(results, limits, tmp_path / "d.png")
    assert z["png"].is_file()
    assert d["png"].is_file()


def test_plot_spectra(tmp_path, analysed):
    results, _, _ = analysed
    targets = plot_spectra(results, (LOW_LINE, HIGH_LINES["779"]), tmp_path / "spec.png")
    assert targets["png"].is_file()


def test_plots_with_no_results(tmp_path):
    assert plot_zscore([], tmp_path / "z.png")["png"].is_file()
    assert plot_detectability([], {}, tmp_path / "d.png")["png"].is_file()
    assert plot_calibration([], None, "Q", tmp_path / "c.png")["png"].is_file()
