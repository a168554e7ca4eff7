"""
summary_stage.py

Summary JSON Construction and Writing
======================================

This module assembles the results of every stage into the run artifacts:
- ``summary.json`` (reference, calibration, detectability, diagnostics)
- ``results.csv`` with one flat record per sample
- ``observable_comparison.csv``
- ``config_used.json``
- calibration, Z-score, spectra and detectability plots
"""

import logging
import shutil
from pathlib import Path
from typing import Any, Mapping

from analysis_helpers import resolve_lines
from io_utils import Summary, copy_config, write_summary, write_table
from plot_utils import (
    plot_calibration,
    plot_detectability,
    plot_spectra,
    plot_zscore,
)
from reporting import build_diagnostics

logger = logging.getLogger(__name__)


def _write_plots(out_dir, cfg, results, model, kind, detectability):
    plot_cfg = cfg.get("plotting", {})
    analysis = cfg.get("analysis", {})
    plot_calibration(results, model, kind, out_dir / "calibration.png", config=plot_cfg)
    plot_zscore(
        results,
        out_dir / "zscore.png",
        config=plot_cfg,
        detection_sigma=detectability.get("detection_sigma", analysis.get("detection_sigma", 3.0)),
        quantification_sigma=detectability.get(
            "quantification_sigma", analysis.get("quantification_sigma", 10.0)
        ),
    )
    plot_spectra(results, resolve_lines(cfg), out_dir / "spectra.png", config=plot_cfg)
    plot_detectability(results, detectability, out_dir / "detectability.png", config=plot_cfg)


def build_and_write_summary(
    *,
    args,
    cfg: dict,
    reference,
    results: list,
    calibration_model,
    calibration: Mapping[str, Any],
    inverse_rows: list,
    comparison: Mapping[str, Any],
    detectability: Mapping[str, Any],
    spectrum_diagnostics: list,
    now_str: str,
    cfg_sha256: str | None,
    commit: str | None,
    cli_sha256: str | None,
    cli_args: list,
    timings: Mapping[str, float] | None = None,
) -> tuple[Summary, Path]:
    """
    Build and write the run artifacts.

    Parameters
    ----------
    args : argparse.Namespace
        Command-line arguments (``output_dir``, ``job_id``, ``overwrite``,
        ``no_plots``).
    cfg : dict
        Effective configuration after CLI overrides.
    reference : ReferenceContext
        Reference sample measurements.
    results : list of SampleResult
        Every sample of the run, skipped ones included.
    calibration_model : CalibrationModel or None
        Fitted curve, ``None`` when the fit failed.
    calibration : dict
        Calibration summary from :func:`calibration_stage.run_calibration_stage`.
    inverse_rows : list of dict
        Inverse concentration estimates.
    comparison : dict
        Output of :func:`calibration_stage.compare_observables`.
    detectability : dict
        Output of :func:`detectability_stage.run_detectability_stage`.
    spectrum_diagnostics : list of dict
        Per-sample peak diagnostics (empty unless requested).

    Returns
    -------
    summary : Summary
        Summary object that was written.
    out_dir : Path
        Results folder.
    """
    low, high = resolve_lines(cfg)
    summary = Summary(
        timestamp=now_str,
        config_used="config_used.json",
        config_sha256=cfg_sha256,
        git_commit=commit,
        cli_sha256=cli_sha256,
        cli_args=list(cli_args),
        lines={
            "low": {"energy_keV": low.energy_keV, "half_width_keV": low.half_width_keV},
            "high": {"energy_keV": high.energy_keV, "half_width_keV": high.half_width_keV},
        },
        reference=reference.to_dict(),
        samples=[r.to_record() for r in results],
        calibration=dict(calibration),
        inverse_estimates=list(inverse_rows),
        observable_comparison=dict(comparison),
        detectability=dict(detectability),
        spectrum_diagnostics=list(spectrum_diagnostics),
        analysis={
            "observable": cfg["analysis"].get("observable"),
            "fit_model": cfg["analysis"].get("fit_model"),
            "normalization": cfg["analysis"].get("normalization"),
            "timings_s": dict(timings or {}),
        },
    )
    summary.diagnostics = build_diagnostics(results, calibration, cfg)

    results_dir = Path(args.output_dir) / (args.job_id or now_str)
    if results_dir.exists():
        if args.overwrite:
            shutil.rmtree(results_dir)
        else:
            raise FileExistsError(f"Results folder already exists: {results_dir}")

    copy_config(results_dir, cfg, exist_ok=args.overwrite)
    out_dir = Path(write_summary(results_dir, summary))

    write_table(out_dir, "results.csv", summary.samples)
    write_table(out_dir, "observable_comparison.csv", comparison.get("rows", []))

    plots_enabled = cfg.get("plotting", {}).get("enabled", True) and not getattr(
        args, "no_plots", False
    )
    if plots_enabled:
        _write_plots(
            out_dir,
            cfg,
            results,
            calibration_model,
            cfg["analysis"].get("observable", "Q"),
            detectability,
        )
    else:
        logger.info("Plotting disabled")

    return summary, out_dir


__all__ = ["build_and_write_summary"]
