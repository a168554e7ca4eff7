import json
import logging
from pathlib import Path
from types import SimpleNamespace

from io_utils import Summary, write_summary
from reporting import (
    DEFAULT_DIAGNOSTICS,
    build_diagnostics,
    get_captured_warnings,
    start_warning_capture,
)
from spectrum import Spectrum


def _result(label, ok=True, reason=None, spectrum=None):
    return SimpleNamespace(label=label, ok=ok, reason=reason, spectrum=spectrum)


def test_build_diagnostics_counts():
    spec = Spectrum.from_counts([1.0, 2.0], 0.0, 2.0, underflow=3, overflow=4)
    results = [
        _result("0%", spectrum=spec),
        _result("1%", spectrum=spec),
        _result("2%", ok=False, reason="Dataset not found"),
    ]
    cfg = {
        "analysis": {"observable": "R", "fit_model": "linear", "normalization": "events"},
        "lines": {"high_line": "1408"},
        "dataset": {"energy_unit": "keV"},
    }
    diag = build_diagnostics(results, {"error": None}, cfg)
    assert diag["calibration_fit_valid"] is True
    assert diag["n_samples"] == 3
    assert diag["n_samples_ok"] == 2
    assert diag["skipped_samples"] == [{"sample": "2%", "reason": "Dataset not found"}]
    assert diag["n_entries_loaded"] == 20
    assert diag["n_entries_out_of_range"] == 14
    assert diag["selected_analysis_modes"]["high_line"] == "1408"
    assert diag["selected_analysis_modes"]["energy_unit"] == "keV"


def test_failed_fit_flagged():
    diag = build_diagnostics([], {"error": "2 usable points"}, {})
    assert diag["calibration_fit_valid"] is False


def test_warnings_are_captured():
    get_captured_warnings()
    start_warning_capture()
    logging.getLogger("sample_stage").warning("Skipping sample %s", "3%")
    logging.getLogger("sample_stage").info("not captured")
    assert get_captured_warnings() == ["Skipping sample 3%"]
    assert get_captured_warnings() == []


def test_diagnostics_written(tmp_path):
    summary = Summary()
    summary.diagnostics = build_diagnostics([_result("0%")], None, {})
    results_dir = write_summary(tmp_path, summary)
    data = json.loads((Path(results_dir) / "summary.json").read_text())
    assert set(DEFAULT_DIAGNOSTICS) <= set(data["diagnostics"])
    assert data["diagnostics"]["calibration_fit_valid"] is None


def test_missing_diagnostics_are_injected(tmp_path):
    results_dir = write_summary(tmp_path, {})
    data = json.loads((Path(results_dir) / "summary.json").read_text())
    assert data["diagnostics"] == DEFAULT_DIAGNOSTICS
