import json
import logging

import pandas as pd
import pytest
import yaml

import analyze
from cli_parser import parse_args
from pipeline_init import apply_config_overrides
from synthetic_dataset import small_kwargs, write_dataset


CONCENTRATIONS = {
    "Eu152_REE_0p00": 0.0,
    "Eu152_REE_0p005": 0.5,
    "Eu152_REE_0p01": 1.0,
    "Eu152_REE_0p02": 2.0,
    "Eu152_REE_0p05": 5.0,
    "Eu152_REE_0p10": 10.0,
}


def _config(**analysis):
    cfg = {
        "pipeline": {"log_level": "INFO", "max_workers": 2},
        "dataset": {"energy_unit": "MeV", "file_pattern": "*.csv"},
        "histogram": {"bin_count": 1600, "energy_min_keV": 0.0, "energy_max_keV": 1600.0},
        "lines": {"high_line": "779"},
        "analysis": {
            "observable": "Q",
            "fit_model": "linear",
            "normalization": "raw",
            "fine_sweep_max": 5.0,
        },
        "plotting": {"plot_save_formats": ["png"]},
    }
    cfg["analysis"].update(analysis)
    return cfg


@pytest.fixture
def workspace(tmp_path):
    data = tmp_path / "data"
    data.mkdir()
    for i, (stem, conc) in enumerate(CONCENTRATIONS.items()):
        write_dataset(data / f"{stem}.csv", conc, ntuple=bool(i % 2), **small_kwargs())
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(yaml.safe_dump(_config()))
    return tmp_path, data, cfg_path


def test_analyze_help_exits(capsys):
    with pytest.raises(SystemExit) as excinfo:
        analyze.main(["--help"])
    assert excinfo.value.code == 0
    out = capsys.readouterr().out
    assert "--high-line" in out
    assert "{1408,779}" in out


def test_full_run_writes_artifacts(workspace, capsys):
    tmp_path, data, cfg_path = workspace
    out = tmp_path / "results"
    argv = ["-c", str(cfg_path), "-i", str(data), "-o", str(out), "--job-id", "run1"]
    assert analyze.main(argv) == 0

    run_dir = out / "run1"
    for name in (
        "summary.json",
        "config_used.json",
        "results.csv",
        "observable_comparison.csv",
        "calibration.png",
        "zscore.png",
        "spectra.png",
        "detectability.png",
    ):
        assert (run_dir / name).is_file(), name
    assert "Analysis complete" in capsys.readouterr().out

    summary = json.loads((run_dir / "summary.json").read_text())
    assert summary["detectability"]["lod_observed"] == 2.0
    assert summary["detectability"]["loq_observed"] == 5.0
    assert summary["calibration"]["model"] == "linear"
    assert summary["reference"]["observables"]["T_low"]["value"] == 1.0
    assert summary["diagnostics"]["n_samples"] == 6
    assert summary["diagnostics"]["n_samples_skipped"] == 0
    assert summary["diagnostics"]["calibration_fit_valid"] is True
    assert summary["cli_args"] == argv

    table = pd.read_csv(run_dir / "results.csv")
    assert list(table["concentration"]) == [0.0, 0.5, 1.0, 2.0, 5.0, 10.0]
    assert table.loc[table["concentration"] == 2.0, "verdict"].item() == "detectable"

    used = json.loads((run_dir / "config_used.json").read_text())
    assert used["lines"]["high_line"] == "779"


def test_cli_overrides_reach_summary(workspace):
    tmp_path, data, cfg_path = workspace
    out = tmp_path / "results"
    argv = [
        "-c", str(cfg_path),
        "-i", str(data),
        "-o", str(out),
        "--job-id", "ovr",
        "--observable", "T_low",
        "--fit-model", "exponential",
        "--normalization", "events",
        "--palette", "colorblind",
        "--no-plots",
    ]
    analyze.main(argv)
    run_dir = out / "ovr"
    assert not (run_dir / "calibration.png").exists()
    summary = json.loads((run_dir / "summary.json").read_text())
    assert summary["analysis"]["observable"] == "T_low"
    assert summary["calibration"]["model"] == "exponential"
    assert summary["calibration"]["params"][1] == pytest.approx(0.1, rel=0.05)
    modes = summary["diagnostics"]["selected_analysis_modes"]
    assert modes["high_line"] == "779"
    assert modes["normalization"] == "events"


def test_duplicate_job_id_exits(workspace, caplog):
    tmp_path, data, cfg_path = workspace
    out = tmp_path / "results"
    argv = ["-c", str(cfg_path), "-i", str(data), "-o", str(out), "--job-id", "dup", "--no-plots"]
    analyze.main(argv)
    with caplog.at_level(logging.ERROR), pytest.raises(SystemExit) as excinfo:
        analyze.main(argv)
    assert excinfo.value.code == 1
    assert "already exists" in caplog.text
    assert analyze.main(argv + ["--overwrite"]) == 0


def test_missing_reference_exits(workspace):
    tmp_path, data, cfg_path = workspace
    (data / "Eu152_REE_0p00.csv").unlink()
    with pytest.raises(SystemExit) as excinfo:
        analyze.main(["-c", str(cfg_path), "-i", str(data), "-o", str(tmp_path / "r"), "--no-plots"])
    assert excinfo.value.code == 1


def test_empty_input_dir_exits(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(yaml.safe_dump(_config()))
    empty = tmp_path / "empty"
    empty.mkdir()
    with pytest.raises(SystemExit) as excinfo:
        analyze.main(["-c", str(cfg_path), "-i", str(empty), "-o", str(tmp_path / "r")])
    assert excinfo.value.code == 1


def test_invalid_config_exits(tmp_path):
    cfg = _config()
    cfg["dataset"]["energy_unit"] = "eV"
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(yaml.safe_dump(cfg))
    with pytest.raises(SystemExit) as excinfo:
        analyze.main(["-c", str(cfg_path), "-i", str(tmp_path)])
    assert excinfo.value.code == 1


def test_override_logging(caplog):
    cfg = _config()
    cfg["lines"]["high"] = {"energy_keV": 780.0, "half_width_keV": 15.0}
    args = parse_args(["--high-line", "1408", "--observable", "R", "--debug"])
    with caplog.at_level(logging.INFO):
        apply_config_overrides(cfg, args)
    assert cfg["lines"] == {"high_line": "1408"}
    assert cfg["analysis"]["observable"] == "R"
    assert cfg["pipeline"]["log_level"] == "DEBUG"
    assert "Overriding analysis.observable='Q' with 'R' from CLI" in caplog.text


def test_max_workers_must_be_positive():
    with pytest.raises(SystemExit):
        parse_args(["--max-workers", "0"])
